"""Typer CLI root application with serve command."""

import typer

from kmz_processor.core.config import get_settings
from kmz_processor.core.logging import setup_logging

app = typer.Typer(name="kmz-processor", help="KMZ ingestion pipeline CLI")


@app.callback()
def _main_callback() -> None:
    """Initialize logging for all CLI commands."""
    settings = get_settings()
    setup_logging(settings.log_level, log_dir=settings.log_dir)


@app.command()
def serve(
    reload: bool = typer.Option(False, "--reload", help="Enable auto-reload for development"),
    host: str = typer.Option("0.0.0.0", "--host", help="Bind host"),  # noqa: S104
    port: int = typer.Option(3001, "--port", help="Bind port"),
) -> None:
    """Start the API server."""
    import uvicorn

    uvicorn.run(
        "kmz_processor.main:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
    )


def _register_subcommands() -> None:
    """Register all CLI subcommand groups."""
    from kmz_processor.cli.db_cmd import db_app
    from kmz_processor.cli.kmz_cmd import enqueue, process
    from kmz_processor.cli.queue_cmd import queue_app
    from kmz_processor.cli.worker_cmd import worker

    app.add_typer(db_app, name="db", help="Database migration commands")
    app.add_typer(queue_app, name="queue", help="Processing queue commands")
    app.command("worker")(worker)
    app.command("process")(process)
    app.command("enqueue")(enqueue)


_register_subcommands()
