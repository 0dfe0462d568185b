"""
Typer CLI for the StudyBuddy service.

Commands:
    studybuddy serve                 - Run the API server
    studybuddy db init               - Initialize database tables
    studybuddy db seed               - Load the CBC demo catalog (and demo learners)
    studybuddy sync status           - Show reports waiting in the offline queue
    studybuddy sync enqueue          - Queue a report for later submission
    studybuddy sync submit           - Submit a report, queueing it when offline
    studybuddy sync drain            - Submit queued reports to the API
    studybuddy sync clear            - Drop all queued reports
    studybuddy cache show            - List recently cached activities
    studybuddy cache clear           - Empty the activity cache
    studybuddy activity next         - Fetch (and cache) the next activity
    studybuddy activity start        - Fetch (and cache) the session starter
    studybuddy auth token USER       - Mint a developer bearer token
    studybuddy auth grant USER ROLE  - Grant teacher/admin/student role

Usage:
    studybuddy --help
    studybuddy db seed --demo-learners 8
    studybuddy sync drain
"""

from __future__ import annotations

import asyncio
import json
from datetime import timedelta
from pathlib import Path

import typer
from loguru import logger
from rich import print as rprint
from rich.console import Console
from rich.table import Table

from config import get_settings
from studybuddy.core.errors import StudyBuddyError, UpstreamUnavailable
from studybuddy.core.logging import configure_logging

app = typer.Typer(
    help="StudyBuddy CLI: adaptive practice API, device sync and admin tools",
    no_args_is_help=True,
)

console = Console()

VALID_ROLES = ("student", "teacher", "admin")


def _sync_dir(path: Path | None) -> Path:
    return path or get_settings().sync_dir


def _parse_metadata(metadata: str | None) -> dict:
    try:
        return json.loads(metadata) if metadata else {}
    except json.JSONDecodeError as e:
        rprint(f"[red]✗[/red] Invalid metadata JSON: {e}")
        raise typer.Exit(code=1) from e


def _api_client(api_url: str | None, token: str | None):
    from studybuddy.integrations import report_client

    settings = get_settings()
    return report_client.StudyBuddyClient(
        api_url or settings.report_api_url,
        token or settings.report_api_token,
    )


# ========================================
# Server
# ========================================


@app.command("serve")
def serve(
    host: str | None = typer.Option(None, "--host", help="Bind address (default: API_HOST)"),
    port: int | None = typer.Option(None, "--port", help="Bind port (default: API_PORT)"),
    reload: bool = typer.Option(False, "--reload", help="Auto-reload on code changes"),
) -> None:
    """Run the StudyBuddy API with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "studybuddy.api.main:app",
        host=host or settings.api_host,
        port=port or settings.api_port,
        reload=reload,
        log_level=settings.log_level.lower(),
    )


# ========================================
# Database Commands
# ========================================

db_app = typer.Typer(help="Database management (init, seed)")
app.add_typer(db_app, name="db")


@db_app.command("init")
def db_init() -> None:
    """
    Initialize database tables from SQLAlchemy models.

    Safe to run multiple times (idempotent).
    """
    from studybuddy.db.database import init_db

    logger.info("Initializing database tables...")
    init_db()
    rprint("[green]✓[/green] Database initialized!")


@db_app.command("seed")
def db_seed(
    demo_learners: int = typer.Option(
        0, "--demo-learners", min=0, help="Also create this many demo learners with skills and reports"
    ),
    seed: int | None = typer.Option(None, "--seed", help="Random seed for reproducible demo data"),
) -> None:
    """Load the CBC demo activity catalog."""
    import random

    from studybuddy.db.database import init_db, session_scope
    from studybuddy.db.seed import seed_catalog, seed_demo_learners

    settings = get_settings()
    init_db()
    with session_scope() as session:
        added = seed_catalog(session, locale=settings.activity_locale)
        summary = None
        if demo_learners:
            summary = seed_demo_learners(session, learners=demo_learners, rng=random.Random(seed))

    rprint(f"[green]✓[/green] Catalog: {added} activities added")
    if summary is not None:
        rprint(
            f"[green]✓[/green] Demo learners: {summary.learners} "
            f"({summary.skills} skills, {summary.reports} reports)"
        )


# ========================================
# Offline Sync Commands
# ========================================

sync_app = typer.Typer(help="Offline report queue (status, enqueue, drain, clear)")
app.add_typer(sync_app, name="sync")


@sync_app.command("status")
def sync_status(
    sync_dir: Path | None = typer.Option(None, "--dir", help="Queue directory (default: SYNC_DIR)"),
) -> None:
    """Show reports waiting to be synced."""
    from studybuddy.sync.offline_queue import OfflineSyncQueue

    queue = OfflineSyncQueue(_sync_dir(sync_dir))
    items = queue.items()
    if not items:
        rprint("[green]All caught up![/green] No reports waiting to sync.")
        return

    table = Table(title=f"Pending reports ({len(items)})")
    table.add_column("Queued", style="dim")
    table.add_column("Activity")
    table.add_column("Skill")
    table.add_column("Score", justify="right")
    table.add_column("Time (s)", justify="right")
    for item in items:
        table.add_row(
            item.enqueued_at[:19],
            item.activity_id,
            item.skill_code or "-",
            f"{item.score:.2f}" if isinstance(item.score, (int, float)) else str(item.score),
            str(item.time_spent_sec),
        )
    console.print(table)


@sync_app.command("enqueue")
def sync_enqueue(
    activity_id: str = typer.Argument(..., help="Activity UUID"),
    score: float = typer.Argument(..., help="Score in [0, 1]"),
    time_spent_sec: int = typer.Argument(..., help="Seconds spent on the activity"),
    skill_code: str | None = typer.Option(None, "--skill", help="Skill code, keeps same-skill reports in order"),
    metadata: str | None = typer.Option(None, "--metadata", help="Flat JSON object"),
    sync_dir: Path | None = typer.Option(None, "--dir", help="Queue directory (default: SYNC_DIR)"),
) -> None:
    """Queue a report for later submission."""
    from studybuddy.sync.offline_queue import OfflineSyncQueue

    extra = _parse_metadata(metadata)
    queue = OfflineSyncQueue(_sync_dir(sync_dir))
    item = queue.enqueue(
        {
            "activity_id": activity_id,
            "score": score,
            "time_spent_sec": time_spent_sec,
            "metadata": extra,
        },
        skill_code=skill_code,
    )
    if item is None:
        rprint("[red]✗[/red] Could not write the offline queue")
        raise typer.Exit(code=1)
    rprint(f"[green]✓[/green] Queued report {item.id} ({len(queue)} pending)")


@sync_app.command("submit")
def sync_submit(
    activity_id: str = typer.Argument(..., help="Activity UUID"),
    score: float = typer.Argument(..., help="Score in [0, 1]"),
    time_spent_sec: int = typer.Argument(..., help="Seconds spent on the activity"),
    skill_code: str | None = typer.Option(None, "--skill", help="Skill code, keeps same-skill reports in order"),
    metadata: str | None = typer.Option(None, "--metadata", help="Flat JSON object"),
    api_url: str | None = typer.Option(None, "--api-url", help="StudyBuddy base URL (default: REPORT_API_URL)"),
    token: str | None = typer.Option(None, "--token", help="Bearer token (default: REPORT_API_TOKEN)"),
    sync_dir: Path | None = typer.Option(None, "--dir", help="Queue directory (default: SYNC_DIR)"),
) -> None:
    """Submit a report now, or queue it when StudyBuddy is unreachable."""
    from studybuddy.sync.offline_queue import OfflineSyncQueue

    extra = _parse_metadata(metadata)
    queue = OfflineSyncQueue(_sync_dir(sync_dir))
    report = {
        "activity_id": activity_id,
        "score": score,
        "time_spent_sec": time_spent_sec,
        "metadata": extra,
    }

    async def _submit():
        async with _api_client(api_url, token) as client:
            return await queue.submit_or_enqueue(report, client.submit_report, skill_code=skill_code)

    result = asyncio.run(_submit())
    if result.synced:
        rprint(f"[green]✓[/green] Report synced (proficiency {result.response.get('new_proficiency', 0):.2f})")
    elif result.queued is not None:
        rprint(f"[yellow]![/yellow] Saved offline, {len(queue)} reports pending")
    else:
        rprint("[red]✗[/red] Could not reach StudyBuddy or save the report offline")
        raise typer.Exit(code=1)


@sync_app.command("drain")
def sync_drain(
    api_url: str | None = typer.Option(None, "--api-url", help="StudyBuddy base URL (default: REPORT_API_URL)"),
    token: str | None = typer.Option(None, "--token", help="Bearer token (default: REPORT_API_TOKEN)"),
    sync_dir: Path | None = typer.Option(None, "--dir", help="Queue directory (default: SYNC_DIR)"),
) -> None:
    """Submit queued reports to the API in the order they were recorded."""
    from studybuddy.sync.offline_queue import OfflineSyncQueue

    queue = OfflineSyncQueue(_sync_dir(sync_dir))

    async def _drain():
        async with _api_client(api_url, token) as client:
            return await queue.drain(client.submit_report)

    result = asyncio.run(_drain())
    if result.synced:
        rprint(f"[green]✓[/green] Synced {result.synced} activity reports")
    if result.remaining:
        rprint(f"[yellow]![/yellow] {result.remaining} reports still pending")
    elif not result.synced:
        rprint("[green]All caught up![/green]")


@sync_app.command("clear")
def sync_clear(
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
    sync_dir: Path | None = typer.Option(None, "--dir", help="Queue directory (default: SYNC_DIR)"),
) -> None:
    """Drop every queued report."""
    from studybuddy.sync.offline_queue import OfflineSyncQueue

    queue = OfflineSyncQueue(_sync_dir(sync_dir))
    if not yes and len(queue) and not typer.confirm(f"Discard {len(queue)} unsynced reports?"):
        raise typer.Abort()
    removed = queue.clear()
    rprint(f"[green]✓[/green] Removed {removed} queued reports")


# ========================================
# Activity Cache Commands
# ========================================

cache_app = typer.Typer(help="Recently served activities kept for offline practice")
app.add_typer(cache_app, name="cache")


def _activity_cache(sync_dir: Path | None):
    from studybuddy.sync.activity_cache import RecentActivityCache

    settings = get_settings()
    return RecentActivityCache(
        _sync_dir(sync_dir),
        max_items=settings.activity_cache_size,
        expiry_days=settings.activity_cache_expiry_days,
    )


@cache_app.command("show")
def cache_show(
    sync_dir: Path | None = typer.Option(None, "--dir", help="Cache directory (default: SYNC_DIR)"),
) -> None:
    """List cached activities, newest first."""
    activities = _activity_cache(sync_dir).activities()
    if not activities:
        rprint("[dim]No cached activities.[/dim]")
        return

    table = Table(title=f"Cached activities ({len(activities)})")
    table.add_column("Activity")
    table.add_column("Type")
    table.add_column("Title")
    table.add_column("Time (s)", justify="right")
    for activity in activities:
        table.add_row(
            activity.activity_id,
            activity.type,
            str(activity.payload.get("title", "")),
            str(activity.estimated_time_sec),
        )
    console.print(table)


@cache_app.command("clear")
def cache_clear(
    sync_dir: Path | None = typer.Option(None, "--dir", help="Cache directory (default: SYNC_DIR)"),
) -> None:
    """Empty the activity cache."""
    _activity_cache(sync_dir).clear()
    rprint("[green]✓[/green] Activity cache cleared")


# ========================================
# Practice Commands
# ========================================

activity_app = typer.Typer(help="Fetch activities to practise (cached for offline use)")
app.add_typer(activity_app, name="activity")


def _show_activity(activity, reason: str | None) -> None:
    rprint(f"[bold]{activity.payload.get('title', activity.activity_id)}[/bold] ({activity.type})")
    if activity.payload.get("description"):
        rprint(f"  {activity.payload['description']}")
    rprint(f"  [dim]id {activity.activity_id}, about {activity.estimated_time_sec}s[/dim]")
    if reason:
        rprint(f"  [cyan]{reason}[/cyan]")


def _fetch_activity(kind: str, api_url: str | None, token: str | None, sync_dir: Path | None) -> None:
    from studybuddy.sync.activity_cache import CachedActivity

    cache = _activity_cache(sync_dir)

    async def _fetch():
        async with _api_client(api_url, token) as client:
            if kind == "hydrate":
                return await client.hydrate()
            return await client.get_next_activity()

    try:
        body = asyncio.run(_fetch())
    except UpstreamUnavailable:
        cached = cache.random_cached()
        if cached is None:
            rprint("[red]✗[/red] StudyBuddy is unreachable and no activities are cached")
            raise typer.Exit(code=1)
        rprint("[yellow]![/yellow] Offline, practising a cached activity")
        _show_activity(cached, cached.why or cached.reason)
        return

    activity = CachedActivity.from_response(body)
    cache.cache_activity(activity)
    _show_activity(activity, activity.why or activity.reason)


@activity_app.command("next")
def activity_next(
    api_url: str | None = typer.Option(None, "--api-url", help="StudyBuddy base URL (default: REPORT_API_URL)"),
    token: str | None = typer.Option(None, "--token", help="Bearer token (default: REPORT_API_TOKEN)"),
    sync_dir: Path | None = typer.Option(None, "--dir", help="Cache directory (default: SYNC_DIR)"),
) -> None:
    """Fetch the recommended next activity."""
    _fetch_activity("next", api_url, token, sync_dir)


@activity_app.command("start")
def activity_start(
    api_url: str | None = typer.Option(None, "--api-url", help="StudyBuddy base URL (default: REPORT_API_URL)"),
    token: str | None = typer.Option(None, "--token", help="Bearer token (default: REPORT_API_TOKEN)"),
    sync_dir: Path | None = typer.Option(None, "--dir", help="Cache directory (default: SYNC_DIR)"),
) -> None:
    """Fetch the starter activity for a new session."""
    _fetch_activity("hydrate", api_url, token, sync_dir)


# ========================================
# Auth Commands
# ========================================

auth_app = typer.Typer(help="Developer tokens and role grants")
app.add_typer(auth_app, name="auth")


@auth_app.command("token")
def auth_token(
    user_id: str = typer.Argument(..., help="Learner/teacher id placed in the token subject"),
    minutes: int | None = typer.Option(None, "--minutes", min=1, help="Lifetime (default: ACCESS_TOKEN_EXPIRE_MINUTES)"),
) -> None:
    """Print a signed bearer token for local testing."""
    from studybuddy.api.auth import create_access_token

    expires = timedelta(minutes=minutes) if minutes else None
    typer.echo(create_access_token(user_id, expires_delta=expires))


@auth_app.command("grant")
def auth_grant(
    user_id: str = typer.Argument(..., help="User to grant the role to"),
    role: str = typer.Argument(..., help="student, teacher or admin"),
) -> None:
    """Grant a role (teacher/admin unlock class insights)."""
    from studybuddy.db.database import init_db, session_scope
    from studybuddy.db.repository import LearningRepository

    role = role.lower()
    if role not in VALID_ROLES:
        rprint(f"[red]✗[/red] Unknown role '{role}'. Choose from: {', '.join(VALID_ROLES)}")
        raise typer.Exit(code=1)

    init_db()
    with session_scope() as session:
        LearningRepository(session, locale=None).grant_role(user_id, role)
    rprint(f"[green]✓[/green] Granted {role} to {user_id}")


def main() -> None:
    """Entry point for the CLI."""
    configure_logging()
    try:
        app()
    except StudyBuddyError as e:
        rprint(f"[red]✗[/red] {e.public_message}")
        raise SystemExit(1) from e


if __name__ == "__main__":
    main()
