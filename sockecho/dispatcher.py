"""Admission control for sessions

The `Dispatcher` holds a `trio.CapacityLimiter` with one token per session slot. Each
admitted connection borrows a token on behalf of its `Session`, and gives it back when
its handler finishes, however it finishes. Admission is the only operation that touches
shared state, and trio runs it on one thread, so concurrent `admit` calls can't
over-commit the limiter.

"""
from __future__ import annotations
import logging
import outcome
import trio
import typing as t
from sockecho.exceptions import ReadError, WriteError
from sockecho.session import Connection, Session, SessionHandler
from sockecho.stats import ListenerStats

logger = logging.getLogger(__name__)

__all__ = [
    'Dispatcher',
]

class Dispatcher:
    def __init__(self, nursery: trio.Nursery, max_sessions: int,
                 admission_timeout: float=0.0, buffer_size: int=4096,
                 stats: t.Optional[ListenerStats]=None) -> None:
        self.nursery = nursery
        self.limiter = trio.CapacityLimiter(max_sessions)
        self.admission_timeout = admission_timeout
        self.buffer_size = buffer_size
        self.stats = stats if stats is not None else ListenerStats()
        self.handlers: t.Dict[Session, SessionHandler] = {}
        self._next_id = 0
        self._session_done = trio.Event()

    @property
    def active(self) -> int:
        return len(self.handlers)

    @property
    def available(self) -> int:
        return int(self.limiter.available_tokens)

    async def admit(self, connection: Connection) -> bool:
        """Start a session for this connection if a slot frees up within admission_timeout.

        Returns False if no slot was available; the connection is then still the
        caller's responsibility. Returns True once the session's task is started; from
        then on the connection belongs to the session.

        """
        session = Session(self._next_id, connection)
        self._next_id += 1
        if not await self._acquire(session):
            logger.debug("%s: no free slot out of %d", session, self.limiter.total_tokens)
            return False
        handler = SessionHandler(session, self.buffer_size)
        self.handlers[session] = handler
        try:
            self.nursery.start_soon(self._run_session, handler)
        except BaseException:
            del self.handlers[session]
            self.limiter.release_on_behalf_of(session)
            raise
        self.stats.admitted += 1
        return True

    async def _acquire(self, session: Session) -> bool:
        try:
            self.limiter.acquire_on_behalf_of_nowait(session)
            return True
        except trio.WouldBlock:
            if self.admission_timeout == 0:
                return False
        with trio.move_on_after(self.admission_timeout):
            await self.limiter.acquire_on_behalf_of(session)
            return True
        return False

    def interrupt_all(self) -> None:
        "Ask every active session to close after its current read/write cycle."
        for handler in list(self.handlers.values()):
            handler.interrupt()

    async def wait_idle(self) -> None:
        "Wait until no sessions are active."
        while self.handlers:
            await self._session_done.wait()

    async def _run_session(self, handler: SessionHandler) -> None:
        session = handler.session
        logger.info("%s: started", session)
        try:
            result = await outcome.acapture(handler.run)
        finally:
            del self.handlers[session]
            self.limiter.release_on_behalf_of(session)
            self.stats.bytes_echoed += handler.bytes_echoed
            self._session_done.set()
            self._session_done = trio.Event()
        self._report(handler, result)

    def _report(self, handler: SessionHandler, result: outcome.Outcome) -> None:
        session = handler.session
        if isinstance(result, outcome.Value):
            self.stats.completed += 1
            logger.info("%s: closed after %.3fs, %d bytes echoed",
                        session, session.elapsed(), handler.bytes_echoed)
            return
        error = result.error
        if isinstance(error, ReadError):
            self.stats.read_errors += 1
            logger.info("%s: %s", error, error.__cause__)
        elif isinstance(error, WriteError):
            self.stats.write_errors += 1
            logger.info("%s: %s", error, error.__cause__)
        elif isinstance(error, trio.Cancelled):
            self.stats.forced_closes += 1
            logger.warning("%s: forcibly closed after %d bytes echoed", session, handler.bytes_echoed)
            result.unwrap()
        elif isinstance(error, Exception):
            self.stats.failures += 1
            logger.error("%s: session failed", session, exc_info=error)
        else:
            result.unwrap()
