"""Shop Spine CLI."""

from __future__ import annotations

import json
import sys

import typer

from shop_spine.core.settings import get_settings

app = typer.Typer(
    name="shop-spine",
    help="Shop Spine database layer CLI",
    no_args_is_help=True,
)


def _version_callback(value: bool) -> None:
    if value:
        from shop_spine import __version__

        typer.echo(f"shop-spine {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """Manage the Shop Spine database."""
    from shop_spine.observability.logging import bind_context, clear_context, configure_logging

    configure_logging(get_settings(), stream=sys.stderr)
    clear_context()
    bind_context(command=ctx.invoked_subcommand)


# Database commands
db_app = typer.Typer(help="Database management commands", no_args_is_help=True)
app.add_typer(db_app, name="db")


def _manager(*, with_monitor: bool = False):
    from shop_spine.db.connection import ConnectionManager

    return ConnectionManager.from_settings(get_settings(), with_monitor=with_monitor)


@db_app.command("init")
def db_init() -> None:
    """Create all tables (idempotent)."""
    from shop_spine.models import ShopBase

    manager = _manager()
    try:
        manager.connect()
        ShopBase.metadata.create_all(manager.engine)
    except Exception as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    finally:
        manager.close()

    typer.echo(f"Created tables: {', '.join(sorted(ShopBase.metadata.tables))}")


@db_app.command("health")
def db_health() -> None:
    """Check database connectivity; exits 1 when unhealthy."""
    manager = _manager()
    try:
        healthy = manager.health_check()
    finally:
        manager.close()

    if not healthy:
        typer.echo("Database: unhealthy", err=True)
        raise typer.Exit(1)
    typer.echo("Database: healthy")


@db_app.command("metrics")
def db_metrics(
    prometheus: bool = typer.Option(False, "--prometheus", help="Prometheus exposition format"),
) -> None:
    """Run a health check and print the monitor snapshot."""
    manager = _manager(with_monitor=True)
    try:
        manager.health_check()
        snapshot = manager.monitor.get_metrics()
    finally:
        manager.close()

    if prometheus:
        from prometheus_client import generate_latest

        typer.echo(generate_latest().decode())
        return
    typer.echo(json.dumps(snapshot.to_dict(), indent=2))


@db_app.command("maintain")
def db_maintain(
    vacuum: bool = typer.Option(True, "--vacuum/--no-vacuum", help="Run VACUUM"),
    reindex: bool = typer.Option(True, "--reindex/--no-reindex", help="Rebuild indexes"),
    days: int | None = typer.Option(
        None, "--days", help="Purge soft-deleted rows older than N days (default: RETENTION_DAYS)"
    ),
) -> None:
    """Purge old soft-deleted rows, vacuum and reindex."""
    from shop_spine.maintenance import run_maintenance

    settings = get_settings()
    manager = _manager()
    try:
        report = run_maintenance(
            manager.engine,
            older_than_days=days if days is not None else settings.retention_days,
            do_vacuum=vacuum,
            do_reindex=reindex,
        )
    except Exception as e:
        typer.echo(f"Maintenance failed: {e}", err=True)
        raise typer.Exit(1)
    finally:
        manager.close()

    typer.echo(json.dumps(report.to_dict(), indent=2))


if __name__ == "__main__":
    app()
