"""The per-connection echo loop

A `SessionHandler` owns one accepted connection. It reads a chunk, writes exactly that
chunk back (retrying short writes until all of it is out), and repeats until the peer
closes the connection, an I/O error happens, or it's interrupted. Whatever happens, the
connection is closed exactly once when `SessionHandler.run` returns or raises.

Writes for one read are always fully flushed before the next read starts, so the bytes
sent back on a connection are exactly the bytes received on it, in the same order.

"""
from __future__ import annotations
import enum
import logging
import trio
import typing as t
from dataclasses import dataclass, field
from sockecho.exceptions import ReadError, WriteError

logger = logging.getLogger(__name__)

__all__ = [
    'Connection',
    'Session',
    'SessionState',
    'SessionHandler',
]

class Connection(t.Protocol):
    "The subset of `trio.socket.SocketType` that a session uses"
    async def recv(self, bufsize: int) -> bytes: ...
    async def send(self, data: t.Union[bytes, memoryview]) -> int: ...
    def close(self) -> None: ...

@dataclass(eq=False)
class Session:
    "One accepted connection; hashable by identity, so it can borrow from a CapacityLimiter"
    id: int
    connection: Connection
    started: float = field(default_factory=trio.current_time)

    def elapsed(self) -> float:
        return trio.current_time() - self.started

    def __str__(self) -> str:
        return f"Session({self.id})"

class SessionState(enum.Enum):
    IDLE = enum.auto()
    READING = enum.auto()
    WRITING = enum.auto()
    CLOSED = enum.auto()

class SessionHandler:
    def __init__(self, session: Session, buffer_size: int) -> None:
        self.session = session
        self.buffer_size = buffer_size
        self.state = SessionState.IDLE
        self.bytes_echoed = 0
        self.interrupted = False
        self._read_scope: t.Optional[trio.CancelScope] = None

    def interrupt(self) -> None:
        """Ask this session to close after its current read/write cycle.

        If we're blocked waiting for data, the read is cancelled and we close right away;
        a cancelled read consumes nothing, so no received bytes go unechoed. If we're in
        the middle of writing, we finish writing and then close without reading again.

        """
        self.interrupted = True
        if self._read_scope is not None:
            self._read_scope.cancel()

    async def run(self) -> None:
        "Echo until the peer closes or we're interrupted; raise ReadError or WriteError on I/O failure"
        try:
            while not self.interrupted:
                data = await self._read()
                if data is None:
                    logger.debug("%s: interrupted while waiting for data", self.session)
                    break
                elif len(data) == 0:
                    logger.debug("%s: peer closed the connection", self.session)
                    break
                await self._write_all(data)
        finally:
            self._close()

    async def _read(self) -> t.Optional[bytes]:
        "Read up to buffer_size bytes; returns None if interrupted before anything arrived."
        self.state = SessionState.READING
        with trio.CancelScope() as scope:
            self._read_scope = scope
            try:
                return await self.session.connection.recv(self.buffer_size)
            except OSError as e:
                raise ReadError(f"{self.session}: recv failed") from e
            finally:
                self._read_scope = None
        return None

    async def _write_all(self, data: bytes) -> None:
        self.state = SessionState.WRITING
        to_write = memoryview(data)
        while len(to_write) > 0:
            try:
                written = await self.session.connection.send(to_write)
            except OSError as e:
                raise WriteError(f"{self.session}: send failed with {len(to_write)} bytes left") from e
            if written < len(to_write):
                logger.debug("%s: short write, %d of %d bytes", self.session, written, len(to_write))
            self.bytes_echoed += written
            to_write = to_write[written:]

    def _close(self) -> None:
        if self.state is SessionState.CLOSED:
            return
        self.state = SessionState.CLOSED
        try:
            self.session.connection.close()
        except OSError:
            logger.warning("%s: error while closing connection", self.session, exc_info=True)
