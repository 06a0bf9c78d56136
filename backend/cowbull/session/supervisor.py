"""Per-player disconnect grace-period countdowns."""

import asyncio
import contextlib
from collections.abc import Awaitable, Callable

import structlog

from cowbull.logic.settings import DISCONNECT_GRACE_SECONDS

DEFAULT_TICK_SECONDS = 1.0

logger = structlog.get_logger()

# (room_id, token, seconds_left) -> Awaitable[None]
TickCallback = Callable[[str, str, int], Awaitable[None]]
# (room_id, token) -> Awaitable[None]
ExpireCallback = Callable[[str, str], Awaitable[None]]


class DisconnectSupervisor:
    """Own one cancellable countdown per detached player token.

    Countdowns are keyed by token rather than connection id, so a rejoin
    over a new connection cancels the right one. The supervisor does not
    know about rooms beyond passing the room id back to its callbacks; the
    session manager decides what a tick or an expiry means.
    """

    def __init__(
        self,
        grace_seconds: int = DISCONNECT_GRACE_SECONDS,
        tick_seconds: float = DEFAULT_TICK_SECONDS,
    ) -> None:
        self._grace_seconds = grace_seconds
        self._tick_seconds = tick_seconds
        self._tasks: dict[str, asyncio.Task[None]] = {}  # token -> countdown task

    @property
    def grace_seconds(self) -> int:
        return self._grace_seconds

    def is_running(self, token: str) -> bool:
        task = self._tasks.get(token)
        return task is not None and not task.done()

    def start(self, room_id: str, token: str, on_tick: TickCallback, on_expire: ExpireCallback) -> None:
        """Start a countdown for token, superseding any countdown already running for it."""
        self.cancel(token)
        self._tasks[token] = asyncio.create_task(self._run(room_id, token, on_tick, on_expire))

    def cancel(self, token: str) -> bool:
        """Cancel and discard the countdown for token. Returns True if one was running."""
        task = self._tasks.pop(token, None)
        if task is None or task.done():
            return False
        task.cancel()
        return True

    async def cancel_all(self) -> None:
        """Cancel every countdown and wait for the tasks to finish (server shutdown)."""
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def _run(self, room_id: str, token: str, on_tick: TickCallback, on_expire: ExpireCallback) -> None:
        seconds_left = self._grace_seconds
        try:
            while True:
                await asyncio.sleep(self._tick_seconds)
                seconds_left -= 1
                if seconds_left > 0:
                    await on_tick(room_id, token, seconds_left)
                    continue
                # drop our own entry first so on_expire can cancel sibling countdowns freely
                if self._tasks.get(token) is asyncio.current_task():
                    del self._tasks[token]
                await on_expire(room_id, token)
                return
        except asyncio.CancelledError:
            pass
        except Exception:
            logger.exception("disconnect countdown callback failed", room_id=room_id)
