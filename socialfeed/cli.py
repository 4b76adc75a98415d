"""Command-line interface for SocialFeed.

This module provides a Typer-based CLI for local administration of a
SocialFeed store.

Commands:
- init: Create the database and its indexes
- add-user: Register a user profile
- request: Send a friend request
- accept: Accept a friend request
- friends: List a user's relationships
- post: Publish a post
- feed: Show a user's feed
- rebuild-index: Repair the reverse friendship index
- status: Show store statistics and configuration

Example:
    $ socialfeed init
    $ socialfeed add-user alice --username alice
    $ socialfeed request alice bob --message "hi"
    $ socialfeed feed alice --limit 10
"""

import asyncio
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any, Optional, TypeVar

import typer
from rich.console import Console
from rich.table import Table

from socialfeed.config import settings
from socialfeed.errors import AppError
from socialfeed.logging import setup_logging
from socialfeed.models import FriendshipStatus, Visibility
from socialfeed.service import SocialService

T = TypeVar("T")

# Initialize CLI app
app = typer.Typer(
    name="socialfeed",
    help="Friendship graph and privacy-aware activity feed",
    add_completion=False,
)
console = Console()

DatabaseOption = typer.Option(
    None,
    "--database",
    "-d",
    help="SQLite database file (defaults to settings.database_path)",
)
VerboseOption = typer.Option(
    False,
    "--verbose",
    "-v",
    help="Enable verbose logging",
)


# =============================================================================
# Helper Functions
# =============================================================================


def configure_logging(verbose: bool = False) -> None:
    """Configure logging based on verbosity level.

    Args:
        verbose: If True, set DEBUG level; otherwise WARNING
    """
    setup_logging(level="DEBUG" if verbose else "WARNING", json_logs=settings.log_json)


def run_with_service(
    database: Optional[Path],
    action: Callable[[SocialService], Awaitable[T]],
    failure: str,
) -> T:
    """Open a service, run ``action`` on it and close it again.

    Domain and store errors are reported and turned into exit code 1.
    """
    service = SocialService.create(database_path=database)
    try:
        return asyncio.run(action(service))
    except AppError as e:
        console.print(f"\n❌ [bold red]{failure}: {e.message}[/bold red] [dim]({e.code})[/dim]")
        raise typer.Exit(code=1)
    finally:
        service.close()


def _format(value: Any) -> str:
    return "" if value is None else str(value)


# =============================================================================
# CLI Commands
# =============================================================================


@app.command()
def init(
    database: Optional[Path] = DatabaseOption,
    verbose: bool = VerboseOption,
) -> None:
    """Create the database file, the items table and its indexes.

    Examples:
        $ socialfeed init
        $ socialfeed init --database ./data/dev.db
    """
    configure_logging(verbose)
    service = SocialService.create(database_path=database)
    service.close()
    console.print(f"✅ [bold green]Store ready at {database or settings.database_path}[/bold green]")


@app.command("add-user")
def add_user(
    user_id: str = typer.Argument(..., help="User identifier"),
    username: str = typer.Option(..., "--username", "-u", help="Handle shown to other users"),
    display_name: Optional[str] = typer.Option(None, "--display-name", help="Full display name"),
    profile_visibility: Visibility = typer.Option(
        Visibility.PUBLIC,
        "--profile-visibility",
        help="Who may see the full profile",
    ),
    database: Optional[Path] = DatabaseOption,
    verbose: bool = VerboseOption,
) -> None:
    """Register or replace a user profile."""
    configure_logging(verbose)

    async def _add(service: SocialService):
        return await service.register_user(
            user_id,
            username,
            display_name=display_name,
            profile_visibility=profile_visibility,
        )

    profile = run_with_service(database, _add, "Could not add user")
    console.print(f"✅ [bold green]User {profile.user_id} ({profile.username}) saved[/bold green]")


@app.command()
def request(
    requester_id: str = typer.Argument(..., help="User sending the request"),
    addressee_id: str = typer.Argument(..., help="User receiving the request"),
    message: Optional[str] = typer.Option(None, "--message", "-m", help="Note attached to the request"),
    database: Optional[Path] = DatabaseOption,
    verbose: bool = VerboseOption,
) -> None:
    """Send a friend request."""
    configure_logging(verbose)

    async def _send(service: SocialService):
        return await service.send_friend_request(requester_id, addressee_id, message)

    friendship = run_with_service(database, _send, "Request failed")
    console.print(f"✅ [bold green]Request sent[/bold green] id=[yellow]{friendship.friendship_id}[/yellow]")


@app.command()
def accept(
    user_id: str = typer.Argument(..., help="Addressee accepting the request"),
    friendship_id: str = typer.Argument(..., help="Friendship identifier"),
    database: Optional[Path] = DatabaseOption,
    verbose: bool = VerboseOption,
) -> None:
    """Accept a pending friend request."""
    configure_logging(verbose)

    async def _accept(service: SocialService):
        return await service.accept_friend_request(user_id, friendship_id)

    friendship = run_with_service(database, _accept, "Accept failed")
    console.print(
        f"✅ [bold green]{friendship.requester_id} and {friendship.addressee_id} are now friends[/bold green]"
    )


@app.command()
def friends(
    user_id: str = typer.Argument(..., help="User whose relationships to list"),
    status_filter: Optional[FriendshipStatus] = typer.Option(None, "--status", "-s", help="Only this status"),
    incoming: bool = typer.Option(False, "--incoming", help="List records pointing at the user instead"),
    limit: int = typer.Option(20, "--limit", "-n", help="Page size"),
    cursor: Optional[str] = typer.Option(None, "--cursor", help="Resume token from a previous page"),
    database: Optional[Path] = DatabaseOption,
    verbose: bool = VerboseOption,
) -> None:
    """List a user's relationships."""
    configure_logging(verbose)

    async def _list(service: SocialService):
        if incoming:
            return await service.list_incoming_requests(user_id, status_filter), None
        page = await service.list_friends(user_id, status_filter, limit, cursor)
        return page.friends, page.next_cursor

    rows, next_cursor = run_with_service(database, _list, "Listing failed")

    table = Table(title=f"{'Incoming' if incoming else 'Friends'} for {user_id}")
    table.add_column("User", style="cyan")
    table.add_column("Username")
    table.add_column("Status", style="green")
    table.add_column("Role")
    table.add_column("Friendship", style="yellow")
    table.add_column("Requested")
    for friend in rows:
        table.add_row(
            friend.user_id,
            friend.username,
            friend.friendship_status.value,
            friend.role.value,
            friend.friendship_id,
            _format(friend.requested_at),
        )
    console.print(table)
    if next_cursor:
        console.print(f"➡️  Next cursor: [yellow]{next_cursor}[/yellow]")


@app.command()
def post(
    author_id: str = typer.Argument(..., help="Author"),
    content: str = typer.Argument(..., help="Post body"),
    visibility: Visibility = typer.Option(Visibility.PUBLIC, "--visibility", help="Who may read the post"),
    database: Optional[Path] = DatabaseOption,
    verbose: bool = VerboseOption,
) -> None:
    """Publish a post."""
    configure_logging(verbose)

    async def _create(service: SocialService):
        return await service.create_post(author_id, content, visibility)

    created = run_with_service(database, _create, "Post failed")
    console.print(f"✅ [bold green]Post created[/bold green] id=[yellow]{created.post_id}[/yellow]")


@app.command()
def feed(
    user_id: str = typer.Argument(..., help="Viewer"),
    limit: Optional[int] = typer.Option(None, "--limit", "-n", help="Page size"),
    cursor: Optional[str] = typer.Option(None, "--cursor", help="Resume token from a previous page"),
    database: Optional[Path] = DatabaseOption,
    verbose: bool = VerboseOption,
) -> None:
    """Show one page of a user's feed."""
    configure_logging(verbose)

    async def _feed(service: SocialService):
        return await service.get_feed(user_id, limit, cursor)

    page = run_with_service(database, _feed, "Feed failed")

    table = Table(title=f"Feed for {user_id}")
    table.add_column("Created", style="dim")
    table.add_column("Author", style="cyan")
    table.add_column("Visibility", style="green")
    table.add_column("Content")
    for item in page.items:
        table.add_row(
            _format(item.post.created_at),
            item.author.username,
            item.post.visibility.value,
            item.post.content,
        )
    console.print(table)
    console.print(
        f"🔎 {page.metadata.query_count} queries, {page.metadata.scanned} scanned, "
        f"{page.metadata.execution_time_ms} ms"
    )
    if page.next_cursor:
        console.print(f"➡️  Next cursor: [yellow]{page.next_cursor}[/yellow]")


@app.command("rebuild-index")
def rebuild_index(
    database: Optional[Path] = DatabaseOption,
    verbose: bool = VerboseOption,
) -> None:
    """Repair the reverse friendship index from the edge records."""
    configure_logging(verbose)

    async def _rebuild(service: SocialService):
        return await service.reverse_index.rebuild()

    repaired = run_with_service(database, _rebuild, "Rebuild failed")
    console.print(f"✅ [bold green]Reverse index rebuilt, {repaired} edges repaired[/bold green]")


@app.command()
def status(
    database: Optional[Path] = DatabaseOption,
    verbose: bool = VerboseOption,
) -> None:
    """Show store statistics and configuration.

    Examples:
        $ socialfeed status
    """
    configure_logging(verbose)

    console.print("📊 [bold cyan]SocialFeed Status[/bold cyan]\n")

    config_table = Table(title="Configuration", show_header=False)
    config_table.add_column("Key", style="cyan")
    config_table.add_column("Value", style="yellow")

    config_table.add_row("Environment", settings.environment.value)
    config_table.add_row("Database Path", str(database or settings.database_path))
    config_table.add_row("Store Timeout", f"{settings.store_timeout_seconds}s")
    config_table.add_row(
        "Friend Cache",
        f"{settings.friend_cache_max_size} entries, {settings.friend_cache_ttl_seconds}s TTL",
    )
    config_table.add_row("Feed Page Size", f"{settings.feed_default_limit} (max {settings.feed_max_limit})")
    config_table.add_row("Friend Fan-out", str(settings.feed_friend_fanout))

    console.print(config_table)
    console.print()

    async def _counts(service: SocialService):
        return await service.store.entity_counts()

    counts = run_with_service(database, _counts, "Status failed")

    stats_table = Table(title="Store Statistics")
    stats_table.add_column("Entity", style="cyan")
    stats_table.add_column("Count", justify="right", style="green")
    for entity in ("profile", "friendship", "post", "privacy"):
        stats_table.add_row(entity.capitalize(), f"{counts.get(entity, 0):,}")

    console.print(stats_table)


if __name__ == "__main__":
    app()
