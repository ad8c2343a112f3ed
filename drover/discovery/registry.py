"""Process-local registry of cancellation handles for running discoveries."""

from __future__ import annotations

import asyncio
import collections.abc as cabc
import threading


class CancelToken:
    """Cooperative cancellation flag passed down a discovery run.

    Cancelling never interrupts work in flight; the run checks
    :attr:`cancelled` between organizations or projects.
    """

    def __init__(self) -> None:
        """Create an unset token."""
        self._event = asyncio.Event()

    def cancel(self) -> None:
        """Request cancellation."""
        self._event.set()

    @property
    def cancelled(self) -> bool:
        """Return whether cancellation has been requested."""
        return self._event.is_set()

    async def sleep(self, seconds: float) -> bool:
        """Wait up to ``seconds``, returning early if cancelled.

        Returns
        -------
        bool
            ``True`` when cancellation was requested during the wait.

        """
        if seconds <= 0:
            return self.cancelled
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except TimeoutError:
            return False
        return True


class CancellationRegistry:
    """Map discovery progress ids to cancel callables.

    All reads and writes hold a single lock. Entries exist only while the
    owning run is alive in this process, so the registry may be empty while
    the store still reports a run in progress (for example after a restart).
    """

    def __init__(self) -> None:
        """Create an empty registry."""
        self._lock = threading.Lock()
        self._cancels: dict[int, cabc.Callable[[], None]] = {}

    def register(self, progress_id: int, cancel: cabc.Callable[[], None]) -> None:
        """Register the cancel callable for a run."""
        with self._lock:
            self._cancels[progress_id] = cancel

    def cancel(self, progress_id: int) -> bool:
        """Invoke the cancel callable for a run.

        Returns
        -------
        bool
            ``False`` when no callable is registered for ``progress_id``.

        """
        with self._lock:
            cancel = self._cancels.get(progress_id)
        if cancel is None:
            return False
        cancel()
        return True

    def remove(self, progress_id: int) -> None:
        """Forget the cancel callable for a run; unknown ids are ignored."""
        with self._lock:
            self._cancels.pop(progress_id, None)

    def __contains__(self, progress_id: object) -> bool:
        """Return whether a run has a registered cancel callable."""
        with self._lock:
            return progress_id in self._cancels

    def __len__(self) -> int:
        """Return the number of registered runs."""
        with self._lock:
            return len(self._cancels)
