"""
Connectivity signal and periodic sync tick.

ConnectivityMonitor holds the terminal's online flag and announces every
offline <-> online transition on the connectivity_changed signal; the sync
processor listens for the offline -> online edge. SyncScheduler is the
periodic trigger: every SYNC_INTERVAL_SECONDS it refreshes the flag (when a
probe URL is configured) and asks the processor for a pass.
"""

from __future__ import annotations

import logging
import threading

import httpx
from apscheduler.schedulers.background import BackgroundScheduler

from ..signals import connectivity_changed

logger = logging.getLogger(__name__)


class ConnectivityMonitor:
    def __init__(self, online: bool = True):
        self._lock = threading.Lock()
        self._online = online

    @property
    def is_online(self) -> bool:
        with self._lock:
            return self._online

    def set_online(self, online: bool) -> bool:
        """
        Update the flag. Returns True when this was a transition.

        Receivers run after the flag has changed and outside the lock.
        """
        online = bool(online)
        with self._lock:
            changed = online != self._online
            self._online = online
        if changed:
            logger.info("Connectivity changed: %s", "online" if online else "offline")
            connectivity_changed.send(self, online=online)
        return changed

    def probe(self, url: str, timeout: float = 5.0) -> bool:
        """Check the network with a HEAD request and record the result."""
        try:
            response = httpx.head(url, timeout=timeout)
            online = response.status_code < 500
        except httpx.HTTPError:
            online = False
        self.set_online(online)
        return online


class SyncScheduler:
    """Background interval job driving SyncQueueProcessor.run_pass."""

    def __init__(self, processor, monitor: ConnectivityMonitor, *, interval_seconds: int = 60,
                 probe_url: str | None = None):
        self.processor = processor
        self.monitor = monitor
        self.interval_seconds = interval_seconds
        self.probe_url = probe_url
        self.scheduler = None

    def tick(self):
        if self.probe_url:
            self.monitor.probe(self.probe_url)
        if not self.monitor.is_online:
            return None
        return self.processor.run_pass()

    def start(self) -> None:
        if self.scheduler:
            logger.warning("Sync scheduler already running")
            return

        self.scheduler = BackgroundScheduler()
        self.scheduler.add_job(
            func=self.tick,
            trigger="interval",
            seconds=self.interval_seconds,
            id="sync_queue",
            max_instances=1,
            coalesce=True,
        )
        self.scheduler.start()
        logger.info("Sync scheduler started. Will sync every %d seconds", self.interval_seconds)

    def stop(self) -> None:
        if self.scheduler:
            self.scheduler.shutdown(wait=False)
            self.scheduler = None
            logger.info("Sync scheduler stopped")
