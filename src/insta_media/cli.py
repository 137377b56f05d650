"""CLI interface for insta-media.

Commands:
    setup      - Configure HTTP settings and default output format
    fetch      - Resolve a post and list its media
    download   - Resolve a post and save its media files
    check-url  - Check a URL against the CDN host allowlist
"""

import asyncio
import json
import sys
from pathlib import Path

import click

from .config import (
    CONFIG_FILE,
    OUTPUT_FORMATS,
    AppConfig,
    config_exists,
    load_config,
    save_config,
)
from .errors import (
    DownloadError,
    InstaMediaError,
    InvalidPostUrlError,
    NoMediaFoundError,
    UpstreamBlockedError,
    UpstreamTransportError,
)
from .logging_config import setup_logging

EXIT_NO_MEDIA = 1
EXIT_INVALID_URL = 2
EXIT_BLOCKED = 3
EXIT_TRANSPORT = 4
EXIT_DOWNLOAD = 5


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.option("--quiet", "-q", is_flag=True, help="Only log warnings and errors")
@click.option("--config", type=click.Path(), default=None, help="Config file path")
@click.pass_context
def main(ctx, verbose, quiet, config):
    """Instagram Media: extract full-resolution media from public posts."""
    setup_logging(debug=verbose, quiet=quiet)
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = Path(config) if config else CONFIG_FILE


def _load_or_exit(config_path: Path) -> AppConfig:
    try:
        return load_config(config_path)
    except ValueError as e:
        click.echo(f"Error: Invalid config {config_path}: {e}", err=True)
        sys.exit(1)


ERROR_EXIT_CODES = [
    (InvalidPostUrlError, EXIT_INVALID_URL),
    (UpstreamBlockedError, EXIT_BLOCKED),
    (UpstreamTransportError, EXIT_TRANSPORT),
    (NoMediaFoundError, EXIT_NO_MEDIA),
    (DownloadError, EXIT_DOWNLOAD),
]


def _run_or_exit(coro):
    """Run a pipeline coroutine, turning its errors into an exit code."""
    try:
        return asyncio.run(coro)
    except InstaMediaError as e:
        click.echo(f"Error: {e}", err=True)
        for exc_type, code in ERROR_EXIT_CODES:
            if isinstance(e, exc_type):
                sys.exit(code)
        sys.exit(1)


@main.command()
@click.pass_context
def setup(ctx):
    """Configure HTTP settings and the default output format."""
    config_path = ctx.obj["config_path"]
    current = _load_or_exit(config_path)

    click.echo("Instagram Media Setup")
    click.echo("=" * 40)
    if config_exists(config_path):
        click.echo(f"Updating existing config at {config_path}.")
    else:
        click.echo(f"No config yet; a new one will be written to {config_path}.")
    click.echo("Press Enter to keep the value shown in brackets.")
    click.echo()

    timeout = click.prompt("Request timeout (seconds)", default=current.timeout, type=float)
    if timeout <= 0:
        click.echo("Error: Timeout must be positive.", err=True)
        sys.exit(1)
    user_agent = click.prompt("User-Agent", default=current.user_agent)
    output_format = click.prompt(
        "Default output format",
        default=current.output_format,
        type=click.Choice(OUTPUT_FORMATS),
    )

    config = AppConfig(
        timeout=timeout,
        user_agent=user_agent,
        output_format=output_format,
    )
    save_config(config, config_path)
    click.echo(f"\nConfig saved to {config_path}")


@main.command()
@click.argument("url")
@click.option(
    "--format",
    "output_format",
    type=click.Choice(OUTPUT_FORMATS),
    default=None,
    help="Output format (defaults to the configured one)",
)
@click.option("-o", "--output", type=click.Path(), default=None, help="Output file")
@click.option(
    "--no-enrich",
    is_flag=True,
    help="Skip resolution upgrades and size lookups",
)
@click.pass_context
def fetch(ctx, url, output_format, output, no_enrich):
    """Resolve a post URL and list its media items."""
    # Lazy imports so --help stays fast
    from .client import fetch_post_media
    from .converter import media_to_csv, render_text

    config = _load_or_exit(ctx.obj["config_path"])
    output_format = output_format or config.output_format

    extracted = _run_or_exit(
        fetch_post_media(
            url,
            timeout=config.timeout,
            user_agent=config.user_agent,
            enrich=not no_enrich,
        )
    )

    if output_format == "json":
        rendered = json.dumps(extracted.to_dict(), indent=2, ensure_ascii=False) + "\n"
    elif output_format == "csv":
        rendered = media_to_csv(extracted)
    else:
        rendered = render_text(extracted)

    if output:
        output_path = Path(output)
        output_path.write_text(rendered, encoding="utf-8")
        click.echo(
            f"Wrote {len(extracted.items)} item(s) to {output_path}", err=True
        )
    else:
        click.echo(rendered, nl=False)


@main.command("check-url")
@click.argument("url")
def check_url(url):
    """Check whether URL points at an allowlisted Instagram/CDN host."""
    from .cdn import is_allowed_host

    if is_allowed_host(url):
        click.echo(f"Allowed: {url}")
        return
    click.echo(f"Rejected: {url}", err=True)
    sys.exit(1)


@main.command()
@click.argument("url")
@click.option(
    "-d",
    "--directory",
    type=click.Path(file_okay=False),
    default=".",
    show_default=True,
    help="Directory to save files into",
)
@click.option(
    "--no-enrich",
    is_flag=True,
    help="Download the URLs as found, without resolution upgrades",
)
@click.pass_context
def download(ctx, url, directory, no_enrich):
    """Resolve a post URL and save its media files."""
    from .client import download_post_media

    config = _load_or_exit(ctx.obj["config_path"])
    paths = _run_or_exit(
        download_post_media(
            url,
            Path(directory),
            timeout=config.timeout,
            user_agent=config.user_agent,
            enrich=not no_enrich,
        )
    )

    for path in paths:
        click.echo(str(path))
    click.echo(f"Saved {len(paths)} file(s) to {directory}", err=True)
