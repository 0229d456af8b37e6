"""Command line entry points for School Explorer."""

from __future__ import annotations

from pathlib import Path

import click

from school_explorer.config import get_settings


@click.group()
def main() -> None:
    """School Explorer: chat API and evaluation review tools."""


@main.command()
@click.option("--host", default=None, help="Interface to bind (default: API_HOST)")
@click.option("--port", type=int, default=None, help="Port to listen on (default: API_PORT)")
def serve(host: str | None, port: int | None) -> None:
    """Run the chat API server."""
    from school_explorer.api.server import main as run_api

    run_api(host=host, port=port)


@main.command("analyze-logs")
@click.argument("path", required=False, type=click.Path(dir_okay=False, path_type=Path))
@click.option("--lowest", default=5, show_default=True, help="Lowest-scoring entries to show")
@click.option("--top-flags", default=10, show_default=True, help="Most common flags to show")
def analyze_logs(path: Path | None, lowest: int, top_flags: int) -> None:
    """Print statistics for the evaluation review log."""
    from school_explorer.review.analysis import format_summary, load_entries, summarize

    path = path or Path(get_settings().evaluation_log_path)
    if not path.exists():
        click.echo(f"No evaluation logs found at {path}")
        click.echo("Entries are written when a response scores below 75 or a user flags it.")
        return

    entries, skipped = load_entries(path)
    if skipped:
        click.echo(f"Skipped {skipped} malformed line(s)", err=True)

    click.echo(format_summary(summarize(entries, top_flags=top_flags, lowest=lowest)))


if __name__ == "__main__":
    main()
