"""
Fixed-interval polling of backend snapshots.

A ``PollingLoop`` fetches once when started and then fires a new fetch every
``interval`` seconds, whether or not the previous one has finished. Each
completed fetch replaces the snapshot wholesale, so the last response to
arrive wins. Stopping a loop clears the interval only: fetches already in
flight run to completion and their results are dropped.
"""
from datetime import datetime
from fastapi import HTTPException
from pydantic import ValidationError
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set
import asyncio
import logging
import time

from ..core.config import settings
from .api_client import BackendClient

logger = logging.getLogger(__name__)

MALFORMED_RESPONSE_MESSAGE = "Received a malformed response"

class PollingLoop:
    def __init__(
        self,
        name: str,
        fetch: Callable[[], Awaitable[Any]],
        interval: float,
        on_error: Optional[Callable[[Exception], Any]] = None,
    ):
        self.name = name
        self.fetch = fetch
        self.interval = interval
        self.on_error = on_error
        self.snapshot: Any = None
        self.error: Optional[str] = None
        self.refreshed_at: Optional[datetime] = None
        self.stopped = False
        self._timer: Optional[asyncio.Task] = None
        self._in_flight: Set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        return self._timer is not None and not self.stopped

    async def poll_once(self):
        try:
            result = await self.fetch()
        except HTTPException as e:
            if self.stopped:
                return
            logger.warning(f"Polling {self.name} failed: {e.detail}")
            self.error = e.detail if isinstance(e.detail, str) else str(e.detail)
            if self.on_error:
                self.snapshot = self.on_error(e)
            return
        except ValidationError as e:
            if self.stopped:
                return
            logger.warning(f"Polling {self.name} got a malformed response: {e}")
            self.error = MALFORMED_RESPONSE_MESSAGE
            if self.on_error:
                self.snapshot = self.on_error(e)
            return

        if self.stopped:
            logger.debug(f"Discarding late {self.name} response")
            return
        self.snapshot = result
        self.error = None
        self.refreshed_at = datetime.utcnow()

    async def start(self):
        """Fetch immediately, then keep fetching on the interval."""
        if self._timer is not None or self.stopped:
            return
        self._timer = asyncio.create_task(self._tick())
        await self.poll_once()

    async def _tick(self):
        while not self.stopped:
            await asyncio.sleep(self.interval)
            if self.stopped:
                break
            task = asyncio.create_task(self.poll_once())
            self._in_flight.add(task)
            task.add_done_callback(self._in_flight.discard)

    def stop(self):
        self.stopped = True
        if self._timer is not None:
            self._timer.cancel()

    def abort(self):
        for task in list(self._in_flight):
            task.cancel()

    async def drain(self):
        """Wait for fetches that were in flight when the loop stopped."""
        if self._in_flight:
            await asyncio.gather(*self._in_flight, return_exceptions=True)

class SessionPollers:
    """The loops of one signed-in session, sharing one backend client."""

    def __init__(self, client: BackendClient):
        self.client = client
        self.loops: Dict[str, PollingLoop] = {}
        self.groups: Dict[str, str] = {}
        self.last_seen = time.time()
        self.expires_at: Optional[float] = None

    def touch(self, expires_at: Optional[float] = None):
        self.last_seen = time.time()
        if expires_at is not None:
            self.expires_at = expires_at

    def is_stale(self, now: float, idle_seconds: float) -> bool:
        if self.expires_at is not None and now >= self.expires_at:
            return True
        return now - self.last_seen > idle_seconds

    def stop(self, name: str) -> Optional[PollingLoop]:
        loop = self.loops.pop(name, None)
        if loop is not None:
            loop.stop()
        for group, member in list(self.groups.items()):
            if member == name:
                del self.groups[group]
        return loop

    def stop_all(self):
        for name in list(self.loops):
            self.stop(name)

class PollerRegistry:
    def __init__(self):
        self._sessions: Dict[int, SessionPollers] = {}
        self._closing: Set[asyncio.Task] = set()

    @property
    def session_count(self) -> int:
        return len(self._sessions)

    def get(self, session_key: int, name: str) -> Optional[PollingLoop]:
        pollers = self._sessions.get(session_key)
        return pollers.loops.get(name) if pollers else None

    async def ensure(
        self,
        session_key: int,
        name: str,
        client_factory: Callable[[], BackendClient],
        fetch_factory: Callable[[BackendClient], Callable[[], Awaitable[Any]]],
        interval: float,
        on_error: Optional[Callable[[Exception], Any]] = None,
        group: Optional[str] = None,
        expires_at: Optional[float] = None,
    ) -> PollingLoop:
        """Return the running loop ``name`` for a session, starting it if needed.

        Starting a loop in ``group`` stops the group's previous loop, so at most
        one loop per group runs (one open conversation at a time).

        Every call counts as activity for the session; ``expires_at`` is the
        epoch second after which its loops are swept regardless.
        """
        pollers = self._sessions.get(session_key)
        if pollers is None:
            pollers = SessionPollers(client_factory())
            self._sessions[session_key] = pollers
        pollers.touch(expires_at)

        loop = pollers.loops.get(name)
        if loop is not None and loop.running:
            return loop

        if group is not None:
            previous = pollers.groups.get(group)
            if previous is not None and previous != name:
                pollers.stop(previous)
            pollers.groups[group] = name

        loop = PollingLoop(name, fetch_factory(pollers.client), interval, on_error)
        pollers.loops[name] = loop
        logger.info(f"Started polling {name} every {interval}s for session {session_key}")
        await loop.start()
        return loop

    def stop(self, session_key: int, name: str):
        pollers = self._sessions.get(session_key)
        if pollers is not None and pollers.stop(name) is not None:
            logger.info(f"Stopped polling {name} for session {session_key}")

    def stop_group(self, session_key: int, group: str):
        pollers = self._sessions.get(session_key)
        if pollers is None:
            return
        name = pollers.groups.get(group)
        if name is not None:
            self.stop(session_key, name)

    def stop_session(self, session_key: int):
        """Stop every loop of a session and release its client in the background."""
        pollers = self._sessions.pop(session_key, None)
        if pollers is None:
            return
        loops = list(pollers.loops.values())
        pollers.stop_all()
        task = asyncio.create_task(self._close_after(loops, pollers.client))
        self._closing.add(task)
        task.add_done_callback(self._closing.discard)
        logger.info(f"Stopped all polling for session {session_key}")

    async def _close_after(self, loops, client: BackendClient):
        for loop in loops:
            await loop.drain()
        await client.close()

    def sweep(self, now: Optional[float] = None, idle_seconds: Optional[float] = None) -> List[int]:
        """Stop sessions that went quiet or whose token has expired."""
        now = time.time() if now is None else now
        if idle_seconds is None:
            idle_seconds = settings.POLLER_IDLE_SECONDS
        stale = [
            key for key, pollers in self._sessions.items()
            if pollers.is_stale(now, idle_seconds)
        ]
        for session_key in stale:
            logger.info(f"Sweeping idle polling session {session_key}")
            self.stop_session(session_key)
        return stale

    async def run_sweeper(self, every: float, idle_seconds: Optional[float] = None):
        while True:
            await asyncio.sleep(every)
            self.sweep(idle_seconds=idle_seconds)

    async def shutdown(self):
        """Stop everything, aborting fetches that are still in flight."""
        for session_key in list(self._sessions):
            pollers = self._sessions.pop(session_key)
            for loop in pollers.loops.values():
                loop.stop()
                loop.abort()
            pollers.loops.clear()
            await pollers.client.close()
        for task in list(self._closing):
            task.cancel()
