"""Cross-process advisory lock for manifest read-modify-write cycles.

The lock is a zero-byte marker file created with O_CREAT | O_EXCL next to
the manifest. Its existence, not its content, is the signal. Every entry
point of this tool honors it; a process that ignores the convention is not
stopped. This trades strict safety for liveness: a lock left behind by a
crashed process is reclaimed once it is older than the staleness threshold.
Reclaim claims the stale file by renaming it, so concurrent waiters cannot
delete a lock another waiter has just taken. If the hand-back of such a
lock fails, its holder keeps running unlocked; that failure is logged.
Do not reuse this pattern where writers are untrusted.
"""

from __future__ import annotations

import os
import time
import uuid
from collections.abc import Callable
from pathlib import Path
from types import TracebackType

import structlog

from skills_installer.core.constants import (
    DEFAULT_LOCK_INITIAL_DELAY,
    DEFAULT_LOCK_MAX_DELAY,
    DEFAULT_LOCK_STALE_AFTER,
    DEFAULT_LOCK_TIMEOUT,
)
from skills_installer.core.errors import LockTimeoutError
from skills_installer.utils.debug import debug

__all__ = ["ManifestLock"]

logger = structlog.get_logger(__name__)


class ManifestLock:
    """Exclusive-create lock file with stale reclaim and bounded backoff.

    Usage:
        with ManifestLock(path):
            ...  # read, modify, write the manifest
    """

    def __init__(
        self,
        path: Path,
        *,
        timeout: float = DEFAULT_LOCK_TIMEOUT,
        stale_after: float = DEFAULT_LOCK_STALE_AFTER,
        initial_delay: float = DEFAULT_LOCK_INITIAL_DELAY,
        max_delay: float = DEFAULT_LOCK_MAX_DELAY,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the lock.

        Args:
            path: Lock file path
            timeout: Total seconds to keep retrying before LockTimeoutError
            stale_after: Lock file age (by mtime) treated as abandoned
            initial_delay: First backoff delay; doubled after each attempt
            max_delay: Cap for a single delay
            sleep: Sleep function (injectable for tests)
            clock: Monotonic clock (injectable for tests)
        """
        self.path = path
        self.timeout = timeout
        self.stale_after = stale_after
        self.initial_delay = initial_delay
        self.max_delay = max_delay
        self._sleep = sleep
        self._clock = clock
        self._held = False

    @property
    def held(self) -> bool:
        return self._held

    def acquire(self) -> None:
        """Acquire the lock or raise LockTimeoutError.

        Raises:
            LockTimeoutError: If the lock stayed held past the timeout
            RuntimeError: If this instance already holds the lock
        """
        if self._held:
            raise RuntimeError(f"Lock already held: {self.path}")

        self.path.parent.mkdir(parents=True, exist_ok=True)
        start = self._clock()
        delay = self.initial_delay
        attempts = 0

        while True:
            attempts += 1
            if self._try_create():
                self._held = True
                debug(f"Acquired lock {self.path} after {attempts} attempt(s)")
                return

            if self._reclaim_if_stale():
                continue

            waited = self._clock() - start
            if waited >= self.timeout:
                logger.warning(
                    "lock.timeout",
                    lock_path=str(self.path),
                    waited=round(waited, 3),
                    attempts=attempts,
                )
                raise LockTimeoutError(self.path, waited)

            self._sleep(min(delay, self.timeout - waited))
            delay = min(delay * 2, self.max_delay)

    def release(self) -> None:
        """Release the lock. A failed delete is logged, not raised."""
        if not self._held:
            return
        self._held = False
        try:
            self.path.unlink()
            debug(f"Released lock {self.path}")
        except FileNotFoundError:
            logger.warning("lock.already_removed", lock_path=str(self.path))
        except OSError as exc:
            # The staleness check reclaims it on a later run
            logger.warning(
                "lock.release_failed", lock_path=str(self.path), error=str(exc)
            )

    def _try_create(self) -> bool:
        try:
            fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            return False
        os.close(fd)
        return True

    def _reclaim_if_stale(self) -> bool:
        """Remove the lock file if it is older than stale_after.

        The stale file is first renamed to a unique name, so of several
        waiters only one can claim it. If the claimed file turns out to be
        fresh, another waiter reclaimed and re-created the lock after our
        stat; it is linked back into place instead of deleted.

        Returns:
            True if the caller should retry immediately
        """
        try:
            age = time.time() - self.path.stat().st_mtime
        except FileNotFoundError:
            # Released between our create attempt and the stat
            return True

        if age <= self.stale_after:
            return False

        claimed = self.path.with_name(f"{self.path.name}.stale-{uuid.uuid4().hex[:8]}")
        try:
            os.rename(self.path, claimed)
        except FileNotFoundError:
            # Another waiter claimed it first
            return True
        except OSError as exc:
            logger.warning(
                "lock.stale_remove_failed", lock_path=str(self.path), error=str(exc)
            )
            return False

        try:
            claimed_age = time.time() - claimed.stat().st_mtime
        except FileNotFoundError:
            claimed_age = age

        if claimed_age <= self.stale_after:
            self._hand_back(claimed)
            return False

        claimed.unlink(missing_ok=True)
        logger.warning(
            "lock.stale_removed", lock_path=str(self.path), age=round(age, 3)
        )
        return True

    def _hand_back(self, claimed: Path) -> None:
        try:
            # Fails if a new lock file already took the path
            os.link(claimed, self.path)
        except OSError as exc:
            logger.warning(
                "lock.hand_back_failed", lock_path=str(self.path), error=str(exc)
            )
        else:
            debug(f"Returned live lock {self.path} to its holder")
        finally:
            claimed.unlink(missing_ok=True)

    def __enter__(self) -> ManifestLock:
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.release()
