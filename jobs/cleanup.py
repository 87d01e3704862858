"""Periodic cleanup of expired auth records and listings.

Every interval: delete expired OTPs and sessions. Once a day after
DAILY_HOUR_UTC: mark expired listings. Runs on the asyncio loop and calls
the synchronous services in a worker thread.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import date

from auth.otp import OTPStore
from auth.session import SessionManager
from core.services.listing_service import ListingService
from utils.timezone import now_utc

logger = logging.getLogger(__name__)

DAILY_HOUR_UTC = 2


@dataclass
class CleanupReport:
    """Counts from one cleanup pass. listings_expired is None when skipped."""

    otps_deleted: int
    sessions_deleted: int
    listings_expired: int | None = None


class CleanupJob:
    """Interval-driven cleanup loop with start/stop lifecycle."""

    def __init__(
        self,
        otp_store: OTPStore,
        session_manager: SessionManager,
        listing_service: ListingService | None = None,
        interval_minutes: int = 30,
    ):
        self._otp_store = otp_store
        self._session_manager = session_manager
        self._listing_service = listing_service
        self._interval_seconds = interval_minutes * 60
        self._task: asyncio.Task[None] | None = None
        self._stop_event = asyncio.Event()
        self._last_daily_run: date | None = None

    def _daily_due(self) -> bool:
        now = now_utc()
        return now.hour >= DAILY_HOUR_UTC and self._last_daily_run != now.date()

    def _expire_listings(self) -> int | None:
        if self._listing_service is None or not self._daily_due():
            return None
        try:
            expired = self._listing_service.expire_old_listings()
        except Exception:
            logger.exception("Listing expiry failed")
            return 0
        self._last_daily_run = now_utc().date()
        return expired

    def run_once(self) -> CleanupReport:
        """One cleanup pass. Never raises."""
        report = CleanupReport(
            otps_deleted=self._otp_store.cleanup(),
            sessions_deleted=self._session_manager.cleanup_expired(),
            listings_expired=self._expire_listings(),
        )
        logger.debug(f"Cleanup pass: {report}")
        return report

    async def start(self) -> None:
        """Start background loop if not already running."""
        if self._task and not self._task.done():
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._loop())
        logger.info(f"Cleanup job started (every {self._interval_seconds}s)")

    async def stop(self) -> None:
        """Stop background loop gracefully."""
        self._stop_event.set()
        if self._task:
            await self._task
            self._task = None
        logger.info("Cleanup job stopped")

    async def _loop(self) -> None:
        while not self._stop_event.is_set():
            await asyncio.to_thread(self.run_once)
            try:
                await asyncio.wait_for(
                    self._stop_event.wait(),
                    timeout=self._interval_seconds,
                )
            except asyncio.TimeoutError:
                continue
