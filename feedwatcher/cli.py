"""CLI commands for FeedWatcher."""

import logging
from typing import Optional

import click

from .config import config
from .controllers import (
    FeedAlreadyExistsError,
    FeedNotFoundError,
    add_feed,
    export_feeds,
    get_articles,
    get_feed_log,
    import_feeds,
    refresh_feed,
    remove_feed,
    set_feed_disabled,
)
from .db import Database
from .downloader import DownloadError, FeedDownloader, RefreshResult
from .fetcher import HttpFetcher
from .opml import parse_opml
from .scheduler import Scheduler


def _error(message: str) -> None:
    click.echo(click.style(f"Error: {message}", fg="red"))
    raise SystemExit(1)


@click.group()
@click.version_option()
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging")
def cli(verbose: bool):
    """FeedWatcher - Download and track RSS, Atom and RDF feeds."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else config.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@cli.command()
@click.argument("url")
@click.option("--title", help="Feed title (read from the feed if not provided)")
@click.option("--kind", default="rss", show_default=True, help="Feed format family")
def add(url: str, title: Optional[str], kind: str):
    """Subscribe to a feed."""
    db = Database()
    try:
        feed = add_feed(db, url, title=title, kind=kind)
        click.echo(click.style(f"Added feed '{feed.title}' [{feed.id}]", fg="green"))
    except (FeedAlreadyExistsError, DownloadError) as e:
        _error(str(e))
    finally:
        db.close()


@cli.command()
@click.argument("feed_id", type=int)
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompt")
def remove(feed_id: int, yes: bool):
    """Unsubscribe from a feed."""
    db = Database()
    try:
        feed = db.get_feed(feed_id)
        if not feed:
            _error(f"Feed {feed_id} not found")

        if not yes:
            click.confirm(
                f"Remove feed '{feed.title}' and all its articles?",
                abort=True,
            )

        remove_feed(db, feed_id)
        click.echo(click.style(f"Removed feed '{feed.title}'", fg="green"))
    finally:
        db.close()


@cli.command()
@click.argument("feed_id", type=int)
def disable(feed_id: int):
    """Stop refreshing a feed."""
    _set_disabled(feed_id, True)


@cli.command()
@click.argument("feed_id", type=int)
def enable(feed_id: int):
    """Resume refreshing a feed."""
    _set_disabled(feed_id, False)


def _set_disabled(feed_id: int, disabled: bool):
    db = Database()
    try:
        feed = set_feed_disabled(db, feed_id, disabled)
        state = "Disabled" if disabled else "Enabled"
        click.echo(click.style(f"{state} feed '{feed.title}'", fg="green"))
    except FeedNotFoundError as e:
        _error(str(e))
    finally:
        db.close()


@cli.command()
def feeds():
    """List subscribed feeds."""
    db = Database()
    try:
        feed_list = db.list_feeds()
        if not feed_list:
            click.echo("No feeds yet. Use 'feedwatcher add' to add one.")
            return

        click.echo(click.style(f"Feeds ({len(feed_list)}):", fg="cyan", bold=True))
        click.echo()

        for feed in feed_list:
            label = click.style(f"  [{feed.id}] {feed.title}", fg="white", bold=True)
            if feed.disabled:
                label += click.style(" (disabled)", fg="bright_black")
            click.echo(label)
            click.echo(f"    URL: {feed.url}")
            if feed.html_url:
                click.echo(f"    Site: {feed.html_url}")
            click.echo(f"    Articles: {db.count_articles(feed.id)}")
            last_update = db.get_last_update(feed.id)
            if last_update:
                click.echo(f"    Last update: {last_update.strftime('%Y-%m-%d %H:%M')}")
            click.echo()
    finally:
        db.close()


@cli.command()
@click.argument("url")
@click.option("--limit", "-n", default=10, show_default=True, help="Number of articles to show")
def preview(url: str, limit: int):
    """Download a feed without subscribing and show what it contains."""
    downloader = FeedDownloader()
    try:
        downloaded = downloader.download_feed(url)
    except DownloadError as e:
        _error(str(e))
    finally:
        downloader.fetcher.close()

    click.echo(click.style(downloaded.title, fg="cyan", bold=True))
    if downloaded.link:
        click.echo(f"  Link: {downloaded.link}")
    click.echo(f"  Icon: {'yes' if downloaded.icon else 'no'}")
    click.echo(f"  Articles: {len(downloaded.articles)}")
    click.echo()

    for article in downloaded.articles[:limit]:
        click.echo(f"  {article.title}")
        click.echo(f"       ID: {article.article_id}")
        if article.link:
            click.echo(f"       URL: {article.link}")
        click.echo(f"       Published: {article.published.strftime('%Y-%m-%d %H:%M')}")


@cli.command()
@click.argument("feed_id", type=int, required=False)
@click.option(
    "--min-delay",
    type=float,
    default=0,
    show_default=True,
    help="Skip feeds updated within this many seconds",
)
def refresh(feed_id: Optional[int], min_delay: float):
    """Download new articles.

    If FEED_ID is provided, only that feed is refreshed.
    Otherwise, all enabled feeds are refreshed.
    """
    db = Database()
    downloader = FeedDownloader()
    try:
        if feed_id is not None:
            try:
                results = [refresh_feed(db, downloader, feed_id)]
            except FeedNotFoundError as e:
                _error(str(e))
        else:
            results = downloader.refresh_feeds(db, min_delay)

        if not results:
            click.echo("No feeds to refresh.")
            return

        for result in results:
            _print_refresh_result(result)

        failed = sum(1 for result in results if not result.success)
        click.echo()
        if failed:
            click.echo(click.style(f"{failed} of {len(results)} feed(s) failed.", fg="yellow"))
        else:
            click.echo(click.style(f"Refreshed {len(results)} feed(s).", fg="green", bold=True))
    finally:
        downloader.fetcher.close()
        db.close()


def _print_refresh_result(result: RefreshResult):
    """Print a single refresh result."""
    click.echo(click.style(f"  {result.feed.title}", fg="white", bold=True))
    if result.success:
        click.echo(f"    Articles: {result.articles}")
    else:
        click.echo(click.style(f"    Error: {result.error}", fg="red"))


@cli.command()
@click.option(
    "--interval",
    type=float,
    default=None,
    help="Seconds between refreshes (default: FEEDWATCHER_UPDATE_SEC)",
)
def watch(interval: Optional[float]):
    """Refresh feeds periodically until interrupted."""
    interval = interval or config.UPDATE_SEC
    db = Database()
    fetcher = HttpFetcher()
    scheduler = Scheduler(db, FeedDownloader(fetcher), interval)
    try:
        scheduler.start()
        scheduler.wait()
    except KeyboardInterrupt:
        click.echo("Shutting down...")
    finally:
        scheduler.stop()
        fetcher.close()
        db.close()


@cli.command()
@click.option("--feed", "-f", "feed_id", type=int, help="Filter by feed id")
@click.option("--limit", "-n", default=20, show_default=True, help="Number of articles to show")
def articles(feed_id: Optional[int], limit: int):
    """List stored articles, newest first."""
    db = Database()
    try:
        try:
            articles_list, feed_titles = get_articles(db, feed_id=feed_id)
        except FeedNotFoundError as e:
            _error(str(e))

        if not articles_list:
            click.echo("No articles found.")
            return

        click.echo(click.style(f"Articles ({len(articles_list)}):", fg="cyan", bold=True))
        click.echo()

        for article in articles_list[:limit]:
            id_str = click.style(f"[{article.id}]", fg="cyan")
            click.echo(f"  {id_str} {article.title}")
            click.echo(f"       Feed: {feed_titles.get(article.feed_id, 'Unknown')}")
            if article.link:
                click.echo(f"       URL: {article.link}")
            click.echo(f"       Published: {article.published.strftime('%Y-%m-%d')}")
            click.echo()
    finally:
        db.close()


@cli.command()
@click.argument("feed_id", type=int, required=False)
def log(feed_id: Optional[int]):
    """Show the refresh log."""
    db = Database()
    try:
        try:
            entries = get_feed_log(db, feed_id)
        except FeedNotFoundError as e:
            _error(str(e))

        if not entries:
            click.echo("No refreshes logged.")
            return

        for entry in entries:
            time_str = entry.time.strftime("%Y-%m-%d %H:%M:%S")
            if entry.success:
                status = click.style("ok", fg="green")
                click.echo(f"  {time_str} [{entry.feed_id}] {status}")
            else:
                status = click.style("failed", fg="red")
                click.echo(f"  {time_str} [{entry.feed_id}] {status}: {entry.message}")
    finally:
        db.close()


@cli.command("import")
@click.argument("file", type=click.File("r", encoding="utf-8"))
def import_command(file):
    """Import subscriptions from an OPML file."""
    try:
        entries = parse_opml(file.read())
    except ValueError as e:
        _error(str(e))

    db = Database()
    try:
        added = import_feeds(db, entries)
        click.echo(click.style(f"Imported {len(added)} of {len(entries)} feed(s)", fg="green"))
    finally:
        db.close()


@cli.command("export")
@click.argument("file", type=click.File("w", encoding="utf-8"))
def export_command(file):
    """Export subscriptions to an OPML file."""
    db = Database()
    try:
        file.write(export_feeds(db))
    finally:
        db.close()


if __name__ == "__main__":
    cli()
