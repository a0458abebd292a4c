"""Led Zeppelin fan site - content cache updater and command line."""

import json
import time
import logging
from datetime import datetime
from typing import Callable

import click

import config
import freshness
from freshness import DEFAULT_POLICY, FreshnessPolicy, ProfilesMode
from generator import TextGenerator
from search import search as search_content
from store import ContentStore
from updaters import update_history, update_profiles, update_shows

logger = logging.getLogger(__name__)

DELAY_BETWEEN_UPDATES = 10  # seconds


def configure_logging(level: str = config.LOG_LEVEL) -> None:
    logging.basicConfig(level=getattr(logging, level, logging.INFO), format="%(message)s")


def build_store() -> ContentStore:
    return ContentStore(config.DATA_FILE, fallback_path=config.SNAPSHOT_FILE)


def build_generator() -> TextGenerator:
    return TextGenerator(config.GOOGLE_API_KEY, model=config.GEMINI_MODEL)


# ---------------------------------------------------------------------------
# Orchestration
# ---------------------------------------------------------------------------

def run_updates(
    store: ContentStore,
    generator: TextGenerator,
    policy: FreshnessPolicy = DEFAULT_POLICY,
    force: bool = False,
    delay: float = DELAY_BETWEEN_UPDATES,
    profile_delay: float = config.PROFILE_DELAY,
    sleep: Callable[[float], None] = time.sleep,
    now: datetime | None = None,
) -> dict:
    """Run the three field updaters one after another.

    The force decision (explicit flag, expired cache file) is taken once up
    front and applies to every field. The same document is handed from one
    updater to the next, so content generated earlier in the run survives
    even when saving it to disk failed.
    """
    doc = store.load()
    force_all = freshness.should_force_all(doc, store.last_modified(), policy, force, now)
    if force_all:
        logger.info("Forcing regeneration of every field")

    doc = update_history(store, generator, policy, force=force_all, doc=doc)
    sleep(delay)
    doc = update_profiles(store, generator, policy, force=force_all,
                          delay=profile_delay, sleep=sleep, doc=doc)
    sleep(delay)
    doc = update_shows(store, generator, policy, force=force_all, doc=doc)

    return doc


def run_forever(
    store: ContentStore,
    generator: TextGenerator,
    policy: FreshnessPolicy = DEFAULT_POLICY,
    interval: float = config.REFRESH_INTERVAL,
    sleep: Callable[[float], None] = time.sleep,
    max_cycles: int | None = None,
) -> None:
    """Refresh the cache every ``interval`` seconds until the process exits."""
    cycles = 0
    while max_cycles is None or cycles < max_cycles:
        try:
            run_updates(store, generator, policy, delay=config.UPDATE_DELAY, sleep=sleep)
        except Exception:
            logger.exception("Content update failed, will retry in %ss", interval)
        cycles += 1
        if max_cycles is None or cycles < max_cycles:
            sleep(interval)


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def _policy(profiles_mode: str) -> FreshnessPolicy:
    return FreshnessPolicy(profiles_mode=ProfilesMode(profiles_mode))


_PROFILES_MODE = click.option(
    "--profiles-mode",
    type=click.Choice([m.value for m in ProfilesMode]),
    default=ProfilesMode.PER_MEMBER.value,
    show_default=True,
    help="Regenerate only incomplete member profiles, or all of them",
)


@click.group()
@click.version_option(version="1.0.0")
def cli():
    """Led Zeppelin fan site content tools."""
    configure_logging()


@cli.command()
@click.option("--force", is_flag=True, help="Regenerate every field regardless of freshness")
@click.option("--loop", is_flag=True, help="Keep refreshing on a fixed interval")
@click.option("--interval", type=int, default=config.REFRESH_INTERVAL, show_default=True,
              help="Seconds between refreshes with --loop")
@_PROFILES_MODE
def update(force, loop, interval, profiles_mode):
    """Regenerate stale content in the cache."""
    store, generator, policy = build_store(), build_generator(), _policy(profiles_mode)
    if loop:
        run_forever(store, generator, policy, interval=interval)
        return

    doc = run_updates(store, generator, policy, force=force, delay=config.UPDATE_DELAY)
    click.echo(f"  History: {len(doc['history'])} chars")
    click.echo(f"  Profiles: {len(doc['profiles'])}/{len(policy.members)}")
    click.echo(f"  Shows: {len(doc['shows'])}")
    click.echo(f"  Saved to: {store.path}")


@cli.command()
@_PROFILES_MODE
def status(profiles_mode):
    """Show which fields the next update would regenerate."""
    store, policy = build_store(), _policy(profiles_mode)
    doc = store.load()
    last_modified = store.last_modified()
    states = freshness.plan(doc, last_modified, policy)

    click.echo(f"  Cache: {store.path}")
    click.echo(f"  Last modified: {last_modified or 'never'}")
    for field, state in states.items():
        click.echo(f"  {field:<9} {state.value}")


@cli.command()
@click.argument("query")
def search(query):
    """Search the cached content and print the matches as JSON."""
    results = search_content(build_store().load(), query)
    click.echo(json.dumps(results, indent=2, ensure_ascii=False))


@cli.command()
@click.option("--port", type=int, default=config.PORT, show_default=True)
@click.option("--no-update", is_flag=True, help="Skip the content update at startup")
@click.option("--refresh-interval", type=int, default=config.REFRESH_INTERVAL, show_default=True,
              help="Seconds between background refreshes, 0 to disable")
@_PROFILES_MODE
def serve(port, no_update, refresh_interval, profiles_mode):
    """Serve the site and keep its content fresh."""
    from server import serve as run_server

    run_server(
        build_store(),
        build_generator(),
        port=port,
        update_on_start=not no_update,
        refresh_interval=refresh_interval,
        policy=_policy(profiles_mode),
    )


if __name__ == "__main__":
    cli()
