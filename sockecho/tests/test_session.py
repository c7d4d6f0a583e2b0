from __future__ import annotations
import errno
import typing as t
import trio
import trio.testing
from sockecho.tests.trio_test_case import TrioTestCase
from sockecho.exceptions import ReadError, WriteError
from sockecho.session import Session, SessionHandler, SessionState

class FakeConnection:
    """A connection fed from a list of chunks, which records what's sent back.

    `max_send` limits how many bytes each send accepts, to simulate short writes.
    A chunk that's an exception is raised from recv instead of returned. Once the chunks
    run out, recv blocks until `feed` adds more, or returns EOF if `eof` was called.

    """
    def __init__(self, chunks: t.Sequence[t.Union[bytes, Exception]]=(), max_send: t.Optional[int]=None,
                 send_error: t.Optional[Exception]=None, close_error: t.Optional[Exception]=None) -> None:
        self.chunks = list(chunks)
        self.max_send = max_send
        self.send_error = send_error
        self.close_error = close_error
        self.sent = bytearray()
        self.send_sizes: t.List[int] = []
        self.close_count = 0
        self.at_eof = False
        self.recv_sizes: t.List[int] = []
        self._readable = trio.Event()

    def feed(self, chunk: bytes) -> None:
        self.chunks.append(chunk)
        self._readable.set()

    def eof(self) -> None:
        self.at_eof = True
        self._readable.set()

    async def recv(self, bufsize: int) -> bytes:
        self.recv_sizes.append(bufsize)
        while not self.chunks and not self.at_eof:
            self._readable = trio.Event()
            await self._readable.wait()
        await trio.sleep(0)
        if not self.chunks:
            return b""
        chunk = self.chunks.pop(0)
        if isinstance(chunk, Exception):
            raise chunk
        if len(chunk) > bufsize:
            self.chunks.insert(0, chunk[bufsize:])
            chunk = chunk[:bufsize]
        return chunk

    async def send(self, data: t.Union[bytes, memoryview]) -> int:
        await trio.sleep(0)
        if self.send_error is not None:
            raise self.send_error
        count = len(data) if self.max_send is None else min(len(data), self.max_send)
        self.sent += bytes(data[:count])
        self.send_sizes.append(count)
        return count

    def close(self) -> None:
        self.close_count += 1
        if self.close_error is not None:
            raise self.close_error

class TestSession(TrioTestCase):
    def make(self, conn: FakeConnection, buffer_size: int=4096) -> SessionHandler:
        return SessionHandler(Session(0, conn), buffer_size)

    async def test_echo_until_eof(self) -> None:
        conn = FakeConnection([b"hello", b" ", b"world"])
        conn.eof()
        handler = self.make(conn)
        self.assertEqual(handler.state, SessionState.IDLE)
        await handler.run()
        self.assertEqual(bytes(conn.sent), b"hello world")
        self.assertEqual(handler.bytes_echoed, 11)
        self.assertEqual(handler.state, SessionState.CLOSED)
        self.assertEqual(conn.close_count, 1)

    async def test_buffer_size(self) -> None:
        data = bytes(range(256))*4
        conn = FakeConnection([data])
        conn.eof()
        handler = self.make(conn, buffer_size=100)
        await handler.run()
        self.assertEqual(bytes(conn.sent), data)
        self.assertEqual(set(conn.recv_sizes), {100})
        self.assertTrue(all(size <= 100 for size in conn.send_sizes))

    async def test_short_writes(self) -> None:
        "Short writes are retried until everything read has been written, before reading again."
        conn = FakeConnection([b"abcdefghij", b"0123456789"], max_send=3)
        conn.eof()
        handler = self.make(conn)
        reads_before_write_done: t.List[int] = []
        orig_send = conn.send
        async def send(data: t.Union[bytes, memoryview]) -> int:
            reads_before_write_done.append(len(conn.recv_sizes))
            return await orig_send(data)
        conn.send = send # type: ignore
        await handler.run()
        self.assertEqual(bytes(conn.sent), b"abcdefghij0123456789")
        self.assertEqual(conn.send_sizes, [3, 3, 3, 1, 3, 3, 3, 1])
        # every send for the first chunk happened after exactly one read, and so on
        self.assertEqual(reads_before_write_done, [1, 1, 1, 1, 2, 2, 2, 2])

    async def test_read_error(self) -> None:
        conn = FakeConnection([b"ok", ConnectionResetError(errno.ECONNRESET, "reset")])
        handler = self.make(conn)
        with self.assertRaises(ReadError) as cm:
            await handler.run()
        self.assertIsInstance(cm.exception.__cause__, ConnectionResetError)
        self.assertEqual(bytes(conn.sent), b"ok")
        self.assertEqual(handler.state, SessionState.CLOSED)
        self.assertEqual(conn.close_count, 1)

    async def test_write_error(self) -> None:
        conn = FakeConnection([b"data"], send_error=BrokenPipeError(errno.EPIPE, "broken pipe"))
        handler = self.make(conn)
        with self.assertRaises(WriteError) as cm:
            await handler.run()
        self.assertIsInstance(cm.exception.__cause__, BrokenPipeError)
        self.assertEqual(handler.state, SessionState.CLOSED)
        self.assertEqual(conn.close_count, 1)

    async def test_interrupt_while_reading(self) -> None:
        conn = FakeConnection([b"first"])
        handler = self.make(conn)
        async with trio.open_nursery() as nursery:
            nursery.start_soon(handler.run)
            await trio.testing.wait_all_tasks_blocked()
            self.assertEqual(handler.state, SessionState.READING)
            handler.interrupt()
        self.assertEqual(bytes(conn.sent), b"first")
        self.assertEqual(handler.state, SessionState.CLOSED)
        self.assertEqual(conn.close_count, 1)

    async def test_interrupt_while_writing(self) -> None:
        "An interrupt during a write lets the write finish, and then the session closes without reading again."
        conn = FakeConnection([b"0123456789", b"never read"], max_send=2)
        handler = self.make(conn)
        write_started = trio.Event()
        may_continue = trio.Event()
        orig_send = conn.send
        async def send(data: t.Union[bytes, memoryview]) -> int:
            write_started.set()
            await may_continue.wait()
            return await orig_send(data)
        conn.send = send # type: ignore
        async with trio.open_nursery() as nursery:
            nursery.start_soon(handler.run)
            await write_started.wait()
            self.assertEqual(handler.state, SessionState.WRITING)
            handler.interrupt()
            may_continue.set()
        self.assertEqual(bytes(conn.sent), b"0123456789")
        self.assertEqual(conn.recv_sizes, [4096])
        self.assertEqual(conn.chunks, [b"never read"])
        self.assertEqual(conn.close_count, 1)

    async def test_cancelled(self) -> None:
        "Even when cancelled from outside, the connection is closed."
        conn = FakeConnection()
        handler = self.make(conn)
        with trio.move_on_after(0.01):
            await handler.run()
        self.assertEqual(handler.state, SessionState.CLOSED)
        self.assertEqual(conn.close_count, 1)

    async def test_interleaved_feed(self) -> None:
        conn = FakeConnection()
        handler = self.make(conn)
        async with trio.open_nursery() as nursery:
            nursery.start_soon(handler.run)
            for chunk in [b"a", b"bc", b"def"]:
                await trio.testing.wait_all_tasks_blocked()
                conn.feed(chunk)
            await trio.testing.wait_all_tasks_blocked()
            conn.eof()
        self.assertEqual(bytes(conn.sent), b"abcdef")
        self.assertEqual(conn.send_sizes, [1, 2, 3])

    async def test_close_error_is_logged(self) -> None:
        "An error from close is logged; the session still ends normally, and close isn't retried."
        conn = FakeConnection([b"bye"], close_error=OSError(errno.EBADF, "bad file descriptor"))
        conn.eof()
        handler = self.make(conn)
        with self.assertLogs("sockecho.session", level="WARNING") as logs:
            await handler.run()
        self.assertIn("error while closing connection", logs.output[0])
        self.assertEqual(bytes(conn.sent), b"bye")
        self.assertEqual(handler.state, SessionState.CLOSED)
        self.assertEqual(conn.close_count, 1)
