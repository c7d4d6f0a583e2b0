"""Accepting connections and shutting down cleanly

A `Listener` binds its configured address, then loops accepting connections and
offering each one to its `sockecho.dispatcher.Dispatcher`. Connections that can't get a
session slot are closed straight away. The accept loop only ever waits in `accept` or in
the bounded admission wait; it never waits on session I/O.

`Listener.stop` ends the accept loop. `Listener.serve` then closes the listening socket,
optionally interrupts active sessions, and waits up to the grace period for them to
finish before cancelling whatever is left.

Typical use is from inside a nursery:

    listener = Listener(ListenerConfig.make("127.0.0.1:7000"))
    bound = await nursery.start(listener.serve)
    ...
    listener.stop()

"""
from __future__ import annotations
import errno
import logging
import os
import socket
import stat
import trio
import typing as t
from sockecho.address import Address, InetAddress, UnixAddress
from sockecho.config import ListenerConfig
from sockecho.dispatcher import Dispatcher
from sockecho.exceptions import BindError, Overloaded
from sockecho.session import Connection
from sockecho.stats import ListenerStats

logger = logging.getLogger(__name__)

__all__ = [
    'Listener',
]

# errors from accept which only affect the connection being accepted
IGNORABLE_ACCEPT_ERRNOS = {
    getattr(errno, name) for name in [
        "EPERM", "ECONNABORTED", "EPROTO", "ENETDOWN", "ENOPROTOOPT", "EHOSTDOWN",
        "ENONET", "EHOSTUNREACH", "EOPNOTSUPP", "ENETUNREACH",
    ] if hasattr(errno, name)
}
# errors from accept which mean we're out of some resource, and should back off
ACCEPT_CAPACITY_ERRNOS = {errno.EMFILE, errno.ENFILE, errno.ENOMEM, errno.ENOBUFS}
ACCEPT_CAPACITY_SLEEP = 0.1

class Listener:
    def __init__(self, config: ListenerConfig) -> None:
        self.config = config
        self.stats = ListenerStats()
        self.bound_address: t.Optional[Address] = None
        self.dispatcher: t.Optional[Dispatcher] = None
        self.stopping = False
        self._sock: t.Optional[trio.socket.SocketType] = None
        self._accept_scope: t.Optional[trio.CancelScope] = None
        self._socket_file: t.Optional[bytes] = None

    @property
    def active_sessions(self) -> int:
        return self.dispatcher.active if self.dispatcher is not None else 0

    def stop(self) -> None:
        "Stop accepting connections and start draining sessions; safe to call more than once."
        if self.stopping:
            return
        logger.info("stopping listener on %s", self.bound_address or self.config.address)
        self.stopping = True
        if self._accept_scope is not None:
            self._accept_scope.cancel()

    async def start(self) -> Address:
        """Bind and listen on the configured address, returning the address actually bound.

        Raises BindError if the address can't be used. Calling `serve` does this for you
        if it hasn't been done yet.

        """
        if self._sock is not None:
            raise RuntimeError("listener already started", self.bound_address)
        address = self.config.address
        try:
            if isinstance(address, UnixAddress):
                self._sock = await self._bind_unix(address)
            else:
                self._sock = await self._bind_inet(address)
        except OSError as e:
            raise BindError(f"can't listen on {address}: {e}") from e
        logger.info("listening on %s", self.bound_address)
        assert self.bound_address is not None
        return self.bound_address

    async def _bind_unix(self, address: UnixAddress) -> trio.socket.SocketType:
        await self._remove_stale_socket(address)
        sock = trio.socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        try:
            await sock.bind(address.sockaddr())
            self._socket_file = address.path
            sock.listen(self.config.backlog)
        except BaseException:
            sock.close()
            self._remove_socket_file()
            raise
        self.bound_address = address
        return sock

    async def _remove_stale_socket(self, address: UnixAddress) -> None:
        "Unlink a socket file left behind by a listener that's gone; refuse to touch anything else."
        try:
            st = os.stat(address.path)
        except FileNotFoundError:
            return
        if not stat.S_ISSOCK(st.st_mode):
            raise BindError(f"{address} exists and is not a socket")
        probe = trio.socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        try:
            await probe.connect(address.sockaddr())
        except ConnectionRefusedError:
            logger.info("removing stale socket file %s", address)
            os.unlink(address.path)
            return
        finally:
            probe.close()
        raise BindError(f"{address} is in use by another listener")

    async def _bind_inet(self, address: InetAddress) -> trio.socket.SocketType:
        infos = await trio.socket.getaddrinfo(
            address.host, address.port, family=address.family,
            type=socket.SOCK_STREAM, flags=socket.AI_PASSIVE)
        if not infos:
            raise BindError(f"{address.host} didn't resolve to any address")
        family, socktype, proto, _, sockaddr = infos[0]
        sock = trio.socket.socket(family, socktype, proto)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            await sock.bind(sockaddr)
            sock.listen(self.config.backlog)
            host, port = sock.getsockname()[:2]
        except BaseException:
            sock.close()
            raise
        self.bound_address = InetAddress(host, port)
        return sock

    def _remove_socket_file(self) -> None:
        if self._socket_file is None:
            return
        try:
            os.unlink(self._socket_file)
        except FileNotFoundError:
            pass
        except OSError:
            logger.warning("couldn't remove socket file %s", os.fsdecode(self._socket_file), exc_info=True)
        self._socket_file = None

    async def serve(self, *, task_status=trio.TASK_STATUS_IGNORED) -> None:
        """Accept and echo until stopped, then drain sessions and return.

        Reports the bound address through `task_status` once listening, so
        `await nursery.start(listener.serve)` returns it. BindError is raised before
        that point. A fatal accept error stops the listener like `stop` does, and is
        re-raised once sessions have drained.

        """
        if self._sock is None:
            await self.start()
        sock = self._sock
        assert sock is not None
        fatal: t.Optional[OSError] = None
        try:
            task_status.started(self.bound_address)
            async with trio.open_nursery() as nursery:
                self.dispatcher = Dispatcher(
                    nursery, self.config.max_sessions,
                    admission_timeout=self.config.admission_timeout,
                    buffer_size=self.config.buffer_size,
                    stats=self.stats,
                )
                try:
                    await self._accept_loop(sock)
                except OSError as e:
                    logger.error("accept on %s failed, shutting down: %s", self.bound_address, e)
                    fatal = e
                finally:
                    self.stopping = True
                    sock.close()
                    self._remove_socket_file()
                await self._drain(nursery, self.dispatcher)
        finally:
            sock.close()
            self._remove_socket_file()
        logger.info("listener on %s stopped: %s", self.bound_address, self.stats)
        if fatal is not None:
            raise fatal

    async def _accept_loop(self, sock: trio.socket.SocketType) -> None:
        with trio.CancelScope() as self._accept_scope:
            if self.stopping:
                self._accept_scope.cancel()
            while True:
                try:
                    conn, _ = await sock.accept()
                except OSError as e:
                    if e.errno in IGNORABLE_ACCEPT_ERRNOS:
                        logger.debug("ignoring accept error: %s", e)
                        continue
                    elif e.errno in ACCEPT_CAPACITY_ERRNOS:
                        logger.error("accept returned %s; sleeping %s seconds before retrying",
                                     errno.errorcode[e.errno], ACCEPT_CAPACITY_SLEEP)
                        await trio.sleep(ACCEPT_CAPACITY_SLEEP)
                        continue
                    raise
                self.stats.accepted += 1
                try:
                    await self._hand_off(conn)
                except Overloaded as e:
                    logger.warning("%s", e)

    async def _hand_off(self, conn: Connection) -> None:
        "Give this connection to the dispatcher, or close it and raise Overloaded."
        assert self.dispatcher is not None
        try:
            admitted = await self.dispatcher.admit(conn)
        except BaseException:
            conn.close()
            raise
        if not admitted:
            conn.close()
            self.stats.refused += 1
            raise Overloaded(f"refused connection: all {self.config.max_sessions} session slots are busy")

    async def _drain(self, nursery: trio.Nursery, dispatcher: Dispatcher) -> None:
        if dispatcher.active == 0:
            return
        if self.config.interrupt_idle_on_stop:
            logger.info("interrupting %d active sessions", dispatcher.active)
            dispatcher.interrupt_all()
        with trio.move_on_after(self.config.grace_period):
            await dispatcher.wait_idle()
        if dispatcher.active:
            logger.warning("%d sessions still active after %s second grace period; closing them",
                           dispatcher.active, self.config.grace_period)
            nursery.cancel_scope.cancel()
