"""Command line entry point.

Commands:
    build   - Render the site in PATH (default: current directory) into its dist directory
    article - Create a new draft document with a metadata header
    clear   - Remove the dist directory and the build cache

Running ``trailpress`` without a command builds the current directory.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
import sys
from datetime import UTC, datetime
from pathlib import Path
from typing import Annotated

import frontmatter
import structlog
import typer

from trailpress.alt_text import AltTextProcessor, HttpDescriber, build_alt_cache, make_image_loader
from trailpress.cache import cache_dir
from trailpress.config import Config
from trailpress.content import DOCUMENT_EXTENSION, load_documents
from trailpress.errors import ErrorCode, SiteError, format_error_chain
from trailpress.files import write_file
from trailpress.renderer import render_site
from trailpress.site import Site, init_site
from trailpress.state import BuildState
from trailpress.templating import create_environment
from trailpress.tiles import TileFetcher, build_http_client, build_tile_cache

log = structlog.get_logger()

_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]

app = typer.Typer(
    help="Build a static site from Markdown documents, templates and GPX tracks.",
    add_completion=False,
    invoke_without_command=True,
)


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


def configure_logging(level: str, fmt: str) -> None:
    """Configure structlog. Called once per command before any log statements."""
    log_level = logging.getLevelNamesMapping()[level]

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if fmt == "json":
        processors = [*shared_processors, structlog.processors.JSONRenderer()]
    else:
        processors = [*shared_processors, structlog.dev.ConsoleRenderer()]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        # stdout stays free for command output
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


def effective_level(configured: str, verbose: int, quiet: bool) -> str:
    """Each -v lowers the configured level one step; -q shows errors only."""
    if quiet:
        return "ERROR"
    index = max(0, _LEVELS.index(configured) - verbose)
    return _LEVELS[index]


# ---------------------------------------------------------------------------
# Build
# ---------------------------------------------------------------------------


def _alt_text_processor(state: BuildState) -> AltTextProcessor | None:
    settings = state.config.processors.generate_alt_text
    if settings is None or state.http_client is None:
        return None
    loader = make_image_loader(
        state.http_client,
        [state.root / state.config.static_source_path, state.root],
    )
    return AltTextProcessor(
        HttpDescriber.from_settings(state.http_client, settings),
        build_alt_cache(state.root),
        loader,
    )


async def build_site(root: Path, config: Config) -> BuildState:
    """Run a full build of the project in ``root``."""
    settings = config.gpx_embedding
    async with build_http_client(settings) as client:
        state = BuildState(
            config=config,
            root=root,
            site=Site(root / config.dist_path),
            http_client=client,
            tile_source=TileFetcher(client, build_tile_cache(root, settings)),
        )
        log.info("build_started", root=str(root))

        init_site(state)
        await load_documents(state, alt_text=_alt_text_processor(state))
        env = create_environment(state)
        await render_site(state, env)
        await state.site.save()

        log.info("build_complete", pages=len(state.site), dist=str(state.site.dist))
        return state


def _fail(exc: SiteError) -> typer.Exit:
    for line in format_error_chain(exc):
        typer.echo(line, err=True)
    return typer.Exit(code=1)


def _build(path: Path, verbose: int, quiet: bool) -> None:
    try:
        config = Config.load(path)
        configure_logging(
            effective_level(config.logging.level, verbose, quiet), config.logging.format
        )
        asyncio.run(build_site(path, config))
    except SiteError as exc:
        raise _fail(exc) from exc


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.callback()
def main(
    ctx: typer.Context,
    verbose: Annotated[
        int,
        typer.Option("--verbose", "-v", count=True, help="More log output; repeat for more."),
    ] = 0,
    quiet: Annotated[
        bool,
        typer.Option("--quiet", "-q", help="Only log errors."),
    ] = False,
) -> None:
    """Build the current directory when no command is given."""
    ctx.obj = {"verbose": verbose, "quiet": quiet}
    if ctx.invoked_subcommand is None:
        _build(Path("."), verbose, quiet)


@app.command("build")
def build_command(
    ctx: typer.Context,
    path: Annotated[
        Path,
        typer.Argument(help="Project directory containing config.yaml."),
    ] = Path("."),
) -> None:
    """Render the site into its dist directory."""
    options = ctx.obj or {}
    _build(path, options.get("verbose", 0), options.get("quiet", False))


@app.command("article")
def article_command(
    ctx: typer.Context,
    title: Annotated[str, typer.Argument(help="Title of the new article; also its file name.")],
    force: Annotated[
        bool,
        typer.Option("--force", "-f", help="Overwrite an existing article."),
    ] = False,
) -> None:
    """Create ``./<TITLE>.md`` as a draft."""
    options = ctx.obj or {}
    configure_logging(effective_level("INFO", options.get("verbose", 0), options.get("quiet", False)), "text")

    path = Path(f"{title}.{DOCUMENT_EXTENSION}")
    try:
        if path.exists() and not force:
            raise SiteError(
                code=ErrorCode.INVALID_INPUT,
                message=f"Article with title {title!r} already exists at {path}",
                suggestion="Pass --force to overwrite it.",
            )
        post = frontmatter.Post(
            title,
            title=title,
            date=datetime.now(UTC).replace(microsecond=0),
            image="",
            preview="",
            tags=[],
            is_draft=True,
        )
        write_file(path, frontmatter.dumps(post) + "\n")
    except SiteError as exc:
        raise _fail(exc) from exc

    typer.echo(f"Article {title!r} is written to: {path}")


@app.command("clear")
def clear_command(
    path: Annotated[
        Path,
        typer.Argument(help="Project directory containing config.yaml."),
    ] = Path("."),
) -> None:
    """Remove the dist directory and the build cache."""
    try:
        config = Config.load(path)
        for directory in (path / config.dist_path, cache_dir(path)):
            try:
                shutil.rmtree(directory)
            except FileNotFoundError:
                continue
            except OSError as exc:
                raise SiteError(
                    code=ErrorCode.IO_FAILED,
                    message=f"Failed to remove directory: {directory}",
                ) from exc
            typer.echo(f"Removed {directory}")
    except SiteError as exc:
        raise _fail(exc) from exc


if __name__ == "__main__":
    app()
