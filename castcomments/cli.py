"""Command-line interface for castcomments."""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

import click

from castcomments.api import CastCommentsError, ConfigurationError, TwitcastingClient
from castcomments.config import load_config
from castcomments.models import Config
from castcomments.oauth import acquire_token, run_oauth_flow
from castcomments.poller import CommentPoller

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)


def _set_verbose(verbose: bool) -> None:
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)


async def run_poller(cfg: Config) -> None:
    """Acquire a token, then poll the configured user forever."""
    token = await acquire_token(cfg)

    async with TwitcastingClient(
        token,
        base_url=cfg.base_url,
        timeout=cfg.request_timeout_sec,
    ) as client:
        poller = CommentPoller(
            client=client,
            user=cfg.user,
            poll_interval_sec=cfg.poll_interval_sec,
            fatal_protocol_errors=cfg.fatal_protocol_errors,
        )
        await poller.start()


@click.group()
@click.version_option(version="0.1.0")
def cli():
    """castcomments - Print live comments of a TwitCasting broadcast."""
    pass


@cli.command()
@click.option(
    "--config",
    type=click.Path(path_type=Path),
    default="config.yaml",
    help="Path to config YAML file",
)
@click.option("--user", help="Broadcaster to follow (overrides config)")
@click.option(
    "--token-file",
    type=click.Path(exists=True, dir_okay=False),
    help="Read the access token from this file instead of running OAuth",
)
@click.option(
    "--interval",
    type=click.FloatRange(min=0, min_open=True),
    help="Seconds between polls (overrides config)",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def poll(
    config: Path,
    user: Optional[str],
    token_file: Optional[str],
    interval: Optional[float],
    verbose: bool,
):
    """Follow a broadcaster and print new comments as they arrive."""
    _set_verbose(verbose)

    try:
        cfg = load_config(config)
    except ConfigurationError as e:
        logger.error(f"Fatal error: {e}")
        sys.exit(1)

    overrides = {
        "user": user,
        "token_file": token_file,
        "poll_interval_sec": interval,
    }
    cfg = cfg.model_copy(update={k: v for k, v in overrides.items() if v is not None})

    if not cfg.user:
        logger.error("No user configured. Pass --user or set 'user' in config.yaml")
        sys.exit(1)

    try:
        asyncio.run(run_poller(cfg))
    except KeyboardInterrupt:
        logger.info("Received interrupt signal, stopping poller")
    except CastCommentsError as e:
        logger.error(f"Fatal error: {e}")
        sys.exit(1)


@cli.command()
@click.option(
    "--config",
    type=click.Path(path_type=Path),
    default="config.yaml",
    help="Path to config YAML file",
)
@click.option(
    "--out",
    type=click.Path(dir_okay=False, path_type=Path),
    default="token.txt",
    help="File to write the access token to",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def auth(config: Path, out: Path, verbose: bool):
    """Run the OAuth flow once and save the access token for later runs."""
    _set_verbose(verbose)

    try:
        cfg = load_config(config)
        token = asyncio.run(run_oauth_flow(cfg))
    except KeyboardInterrupt:
        logger.info("Received interrupt signal, aborting authorization")
        sys.exit(1)
    except CastCommentsError as e:
        logger.error(f"Authorization failed: {e}")
        sys.exit(1)

    out.write_text(f"{token}\n", encoding="utf-8")
    click.echo(f"Token saved to {out}", err=True)
    click.echo(f"Use it with: castcomments poll --token-file {out}", err=True)


if __name__ == "__main__":
    cli()
