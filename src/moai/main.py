"""
Moai - CLI Entry Point.

Usage:
    moai health                 Check configuration and store connectivity
    moai checkpoint <user_id>   Show a user's onboarding checkpoints
    moai tier <user_id>         Show a user's tier status and streak
    moai --help                 Show help
"""

import asyncio

import typer
from rich.console import Console
from rich.table import Table

app = typer.Typer(
    name="moai",
    help="Moai - onboarding and progression tooling.",
    add_completion=False,
)
console = Console()


def _setup():
    from moai.config import get_settings
    from moai.logging_config import configure_logging

    settings = get_settings()
    configure_logging(settings.log_level)
    return settings


@app.command()
def health() -> None:
    """Check configuration and store connectivity."""
    from moai.db.client import open_resources

    console.print("\n[bold]Moai Health Check[/bold]\n")

    try:
        settings = _setup()
        console.print("✅ Configuration loaded")
        console.print(f"   Environment: {settings.moai_env}")
        console.print(f"   Log level: {settings.log_level}")
    except Exception as e:
        console.print(f"\n[red]❌ Configuration error: {e}[/red]")
        console.print("[dim]Make sure you have a .env file with required variables.[/dim]")
        raise typer.Exit(1)

    if settings.supabase_url.startswith("https://"):
        console.print("✅ Supabase URL configured")
    else:
        console.print("❌ Supabase URL missing or invalid")
        raise typer.Exit(1)

    try:
        with open_resources(settings) as resources:
            for table in ("profiles", "activity_logs", "friend_requests"):
                try:
                    result = resources.client.table(table).select("id", count="exact").limit(0).execute()
                    count = result.count if hasattr(result, "count") else "?"
                    console.print(f"  ✅ {table}: {count} rows")
                except Exception as e:
                    console.print(f"  ❌ {table}: {e}")
    except Exception as e:
        console.print(f"\n[red]❌ Database connection failed: {e}[/red]")
        raise typer.Exit(1)

    console.print("\n[green]Health check complete![/green]")


@app.command()
def checkpoint(user_id: str = typer.Argument(..., help="Profile id")) -> None:
    """Show a user's onboarding checkpoints."""
    from moai.db.client import open_resources
    from onboarding.progress import AuthState, OnboardingProgressController
    from onboarding.steps import STEP_TITLES, OnboardingStep

    settings = _setup()

    with open_resources(settings) as resources:
        controller = OnboardingProgressController(resources.profiles, user_id, AuthState(is_authenticated=True))
        asyncio.run(controller.refresh())
        snapshot = controller.snapshot()

    if snapshot.error:
        console.print(f"[red]❌ {snapshot.error}[/red]")
        raise typer.Exit(1)
    if controller.profile is None:
        console.print(f"[yellow]No profile found for {user_id}[/yellow]")
        raise typer.Exit(1)

    table = Table(title=f"Onboarding - {controller.profile.full_name or user_id}")
    table.add_column("Step", justify="right")
    table.add_column("Checkpoint")
    table.add_column("Complete")
    table.add_column("Reachable")
    for status in snapshot.checkpoints:
        marker = " ◀" if status.step == snapshot.current_checkpoint else ""
        table.add_row(
            str(status.step),
            STEP_TITLES[OnboardingStep(status.step)] + marker,
            "✅" if status.completed else "·",
            "✅" if status.can_access else "🔒",
        )
    console.print(table)

    state = "[green]complete[/green]" if snapshot.is_complete else f"at checkpoint {snapshot.current_checkpoint}"
    console.print(f"\nOnboarding {state}")


@app.command()
def tier(
    user_id: str = typer.Argument(..., help="Profile id"),
    weeks: int = typer.Option(None, "--weeks", "-w", help="Weeks of history to evaluate"),
) -> None:
    """Show a user's tier status and weekly streak."""
    from moai.db.client import open_resources

    settings = _setup()
    weeks = weeks or settings.tier_history_weeks

    async def load(resources):
        status = await resources.activities.get_user_tier_status(user_id, weeks=weeks)
        streak = await resources.activities.get_user_streak_data(user_id)
        return status, streak

    try:
        with open_resources(settings) as resources:
            status, streak = asyncio.run(load(resources))
    except Exception as e:
        console.print(f"[red]❌ {e}[/red]")
        raise typer.Exit(1)

    console.print(f"\n[bold]Tier:[/bold] {status.current_tier.value}")
    console.print(f"   Consecutive weeks: {status.consecutive_weeks}")
    console.print(f"   This week: {status.current_week_progress}/{status.current_week_commitment}")
    if status.next_tier_requirements:
        req = status.next_tier_requirements
        eligible = "✅ eligible" if status.can_promote else "not yet"
        console.print(f"   Next: {req.level.value} ({req.description}) - {eligible}")
    else:
        console.print("   Top tier reached")

    table = Table(title="Weekly streak")
    table.add_column("Week of")
    table.add_column("Activities", justify="right")
    table.add_column("Met")
    for week in streak.weekly_streaks:
        table.add_row(str(week.week_start), str(week.activities_count), "✅" if week.completed else "·")
    console.print(table)
    console.print(f"Current streak: {streak.current_streak}  Longest: {streak.longest_streak}")


@app.command()
def version() -> None:
    """Show version information."""
    from moai import __version__

    console.print(f"Moai version {__version__}")


if __name__ == "__main__":
    app()
