"""CLI entrypoint for feed-to-epub."""

import logging
from pathlib import Path

import rich_click as click

from feed_to_epub import __version__
from feed_to_epub.controllers import FeedCliController, PollCommand, StatusCommand
from feed_to_epub.storage.errors import SchemaError, StoreOpenError

click.rich_click.USE_MARKDOWN = True
FEED_CONTROLLER = FeedCliController()
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


@click.group()
@click.version_option(version=__version__, prog_name="feed-to-epub")
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default="INFO",
    show_default=True,
    help="Verbosity of the operator log on stderr.",
)
def feed_to_epub(log_level: str) -> None:
    """Poll RSS/Atom feeds and write new entries as EPUB files."""

    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@feed_to_epub.command("poll")
@click.option(
    "--config",
    "config_path",
    type=click.Path(path_type=Path),
    default=None,
    help="TOML config file. Defaults to ~/.config/rss-to-epub/config.toml.",
)
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option(
    "--loop/--once",
    default=False,
    show_default=True,
    help="Keep polling on a fixed schedule instead of running a single cycle.",
)
@click.option(
    "--interval-seconds",
    type=click.IntRange(min=1),
    default=300,
    show_default=True,
    help="Pause between cycles in --loop mode. Feeds still honour their own poll interval.",
)
@click.option(
    "--max-workers",
    type=click.IntRange(min=1, max=32),
    default=1,
    show_default=True,
    help="How many distinct feeds to poll concurrently.",
)
def poll(
    config_path: Path | None,
    db_path: Path | None,
    loop: bool,
    interval_seconds: int,
    max_workers: int,
) -> None:
    """Poll every configured feed that is due and convert new entries."""

    try:
        lines = FEED_CONTROLLER.poll(
            PollCommand(
                config_path=config_path,
                db_path=db_path,
                loop=loop,
                interval_seconds=interval_seconds,
                max_workers=max_workers,
            ),
        )
    except (StoreOpenError, SchemaError, ValueError) as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(lines)


@feed_to_epub.command("status")
@click.option(
    "--config",
    "config_path",
    type=click.Path(path_type=Path),
    default=None,
    help="TOML config file. Defaults to ~/.config/rss-to-epub/config.toml.",
)
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
def status(config_path: Path | None, db_path: Path | None) -> None:
    """Show stored fetch state for every tracked feed."""

    try:
        lines = FEED_CONTROLLER.status(StatusCommand(config_path=config_path, db_path=db_path))
    except (StoreOpenError, SchemaError, ValueError) as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(lines)


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    feed_to_epub()
