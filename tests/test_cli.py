"""Unit tests for CLI commands."""

import re

import pytest
import typer
from typer.testing import CliRunner

from socialfeed.cli import app

runner = CliRunner()

UUID_PATTERN = re.compile(r"id=([0-9a-f-]{36})")


@pytest.fixture
def database(tmp_path):
    """Initialized database with alice and bob registered."""
    db_path = tmp_path / "social.db"
    assert runner.invoke(app, ["init", "--database", str(db_path)]).exit_code == 0
    for user_id in ("alice", "bob"):
        result = runner.invoke(app, ["add-user", user_id, "--username", user_id, "--database", str(db_path)])
        assert result.exit_code == 0
    return str(db_path)


def _friendship_id(output: str) -> str:
    match = UUID_PATTERN.search(output)
    assert match, output
    return match.group(1)


class TestCLICommands:
    """Tests for CLI commands."""

    def test_cli_app_exists(self):
        """Test CLI app is defined."""
        assert isinstance(app, typer.Typer)

    def test_init_command(self, tmp_path):
        """Test init creates the database file."""
        db_path = tmp_path / "nested" / "social.db"

        result = runner.invoke(app, ["init", "--database", str(db_path)])

        assert result.exit_code == 0
        assert "Store ready" in result.stdout
        assert db_path.exists()

    def test_add_user(self, database):
        result = runner.invoke(app, ["add-user", "carol", "-u", "carol", "-d", database])

        assert result.exit_code == 0
        assert "User carol (carol) saved" in result.stdout

    def test_request_accept_and_list(self, database):
        """Test the friendship flow end to end through the CLI."""
        sent = runner.invoke(app, ["request", "alice", "bob", "--message", "hi", "-d", database])
        assert sent.exit_code == 0
        friendship_id = _friendship_id(sent.stdout)

        pending = runner.invoke(app, ["friends", "bob", "--incoming", "--status", "pending", "-d", database])
        accepted = runner.invoke(app, ["accept", "bob", friendship_id, "-d", database])
        listed = runner.invoke(app, ["friends", "alice", "-d", database])

        assert pending.exit_code == 0
        assert "alice" in pending.stdout
        assert accepted.exit_code == 0
        assert "alice and bob are now friends" in accepted.stdout
        assert listed.exit_code == 0
        assert "bob" in listed.stdout

    def test_request_error_exits_with_code(self, database):
        """Test domain errors are reported and exit with code 1."""
        result = runner.invoke(app, ["request", "alice", "alice", "-d", database])

        assert result.exit_code == 1
        assert "Request failed" in result.stdout

    def test_accept_by_requester_fails(self, database):
        sent = runner.invoke(app, ["request", "alice", "bob", "-d", database])

        result = runner.invoke(app, ["accept", "alice", _friendship_id(sent.stdout), "-d", database])

        assert result.exit_code == 1
        assert "not_addressee" in result.stdout

    def test_post_and_feed(self, database):
        posted = runner.invoke(app, ["post", "alice", "greetings", "-d", database])
        hidden = runner.invoke(app, ["post", "alice", "secret", "--visibility", "private", "-d", database])

        result = runner.invoke(app, ["feed", "bob", "-d", database])

        assert posted.exit_code == 0
        assert hidden.exit_code == 0
        assert result.exit_code == 0
        assert "greetings" in result.stdout
        assert "secret" not in result.stdout
        assert "queries" in result.stdout

    def test_empty_post_fails(self, database):
        result = runner.invoke(app, ["post", "alice", "   ", "-d", database])

        assert result.exit_code == 1
        assert "missing_content" in result.stdout

    def test_rebuild_index(self, database):
        runner.invoke(app, ["request", "alice", "bob", "-d", database])

        result = runner.invoke(app, ["rebuild-index", "-d", database])

        assert result.exit_code == 0
        assert "0 edges repaired" in result.stdout

    def test_status_command(self, database):
        """Test status shows configuration and entity counts."""
        result = runner.invoke(app, ["status", "-d", database])

        assert result.exit_code == 0
        assert "Configuration" in result.stdout
        assert "Store Statistics" in result.stdout
        assert "Profile" in result.stdout

    def test_help(self):
        result = runner.invoke(app, ["--help"])

        assert result.exit_code == 0
        for command in ("init", "add-user", "request", "accept", "friends", "post", "feed", "status"):
            assert command in result.stdout
