"""A bounded byte-stream echo service over Unix domain or TCP sockets

sockecho accepts stream connections and writes back every byte it reads, unmodified
and in order. It's built on trio.

## `Listener`

The main entry point is `sockecho.listener.Listener`,
constructed from a `sockecho.config.ListenerConfig`.
The config's address is either a filesystem path for a Unix domain socket,
or a `host:port` pair for TCP; see `sockecho.address.parse_address`.

`Listener.serve` binds the address and runs the accept loop until `Listener.stop` is called.
It's meant to be started in a nursery with `nursery.start`,
which returns the address that was actually bound.

## Sessions and admission

Each accepted connection is offered to a `sockecho.dispatcher.Dispatcher`,
which admits it only if one of `max_sessions` slots is free
(waiting at most `admission_timeout` for one).
An admitted connection becomes a `sockecho.session.Session`,
run by a `sockecho.session.SessionHandler` in its own task.
A refused connection is closed immediately.

The handler reads up to `buffer_size` bytes at a time,
and writes all of them back, retrying short writes,
before reading again.

## Errors

All errors derive from `sockecho.exceptions.EchoError`.
Only `BindError` escapes from the listener;
`Overloaded`, `ReadError` and `WriteError` are logged,
counted in `sockecho.stats.ListenerStats`,
and affect only the connection they happened on.

## Shutting down

`Listener.stop` stops accepting,
asks each session to close after its current read/write cycle,
waits up to `grace_period` seconds,
and then cancels any sessions that are still running.

"""
from sockecho.address import Address, UnixAddress, InetAddress, parse_address
from sockecho.config import ListenerConfig
from sockecho.exceptions import EchoError, BindError, Overloaded, ReadError, WriteError
from sockecho.listener import Listener
from sockecho.dispatcher import Dispatcher
from sockecho.session import Session, SessionHandler, SessionState
from sockecho.stats import ListenerStats

__all__ = [
    'Address', 'UnixAddress', 'InetAddress', 'parse_address',
    'ListenerConfig',
    'EchoError', 'BindError', 'Overloaded', 'ReadError', 'WriteError',
    'Listener',
    'Dispatcher',
    'Session', 'SessionHandler', 'SessionState',
    'ListenerStats',
]
