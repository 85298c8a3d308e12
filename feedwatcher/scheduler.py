"""Periodic feed refresh for FeedWatcher."""

import logging
import threading
from datetime import timedelta
from typing import Optional, Union

from .db import FeedStore
from .downloader import FeedDownloader, RefreshResult

logger = logging.getLogger(__name__)


class Scheduler:
    """Runs refresh cycles on a background thread.

    Only one cycle runs at a time: a tick that arrives while a cycle is still
    in progress is skipped.
    """

    def __init__(
        self,
        store: FeedStore,
        downloader: FeedDownloader,
        interval: float,
        min_delay: Optional[Union[timedelta, float]] = None,
    ):
        """
        Args:
            store: Feed store the refresh cycles read and write
            downloader: Downloader used for every cycle
            interval: Seconds between cycles
            min_delay: Minimum age of a feed's last update before it is
                refreshed again; defaults to the interval
        """
        self.store = store
        self.downloader = downloader
        self.interval = interval
        self.min_delay = interval if min_delay is None else min_delay
        self._cycle_lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start refreshing now and then every interval. No-op if already running.

        A scheduler can be started again after stop().
        """
        if self.running:
            logger.debug("Scheduler already running")
            return

        self._stop.clear()
        self.downloader.fetcher.reset()
        self._thread = threading.Thread(target=self._run, name="feedwatcher-scheduler", daemon=True)
        self._thread.start()
        logger.info(f"Updating feeds every {self.interval:g} seconds")

    def stop(self, timeout: Optional[float] = None) -> None:
        """Stop the scheduler, aborting any in-flight downloads."""
        logger.info("Stopping feed scheduler")
        self._stop.set()
        self.downloader.fetcher.abort()

        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until stop() is called. Returns True if it was."""
        return self._stop.wait(timeout)

    def run_once(self) -> Optional[list[RefreshResult]]:
        """Run one refresh cycle unless one is already in progress.

        Returns:
            The cycle's results, or None if the cycle was skipped
        """
        if not self._cycle_lock.acquire(blocking=False):
            logger.info("Refresh already in progress, skipping")
            return None

        try:
            return self.downloader.refresh_feeds(self.store, self.min_delay)
        finally:
            self._cycle_lock.release()

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                self.run_once()
            except Exception:
                logger.exception("Refresh cycle failed")

            if self._stop.wait(self.interval):
                break
