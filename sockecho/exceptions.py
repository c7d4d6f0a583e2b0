"Errors raised by the echo service"

__all__ = [
    'EchoError',
    'BindError',
    'Overloaded',
    'ReadError',
    'WriteError',
]

class EchoError(Exception):
    pass

class BindError(EchoError):
    """The configured address can't be bound or listened on.

    This is fatal to startup; `Listener.serve` raises it before reporting that it has
    started. The underlying OSError, if any, is chained as __cause__.

    """
    pass

class Overloaded(EchoError):
    """No session slot became free within the admission timeout.

    The connection is closed without being read from. The listener logs and counts this,
    and keeps accepting.

    """
    pass

class ReadError(EchoError):
    "Reading from a session's connection failed; the session is over."
    pass

class WriteError(EchoError):
    """Writing back to a session's connection failed; the session is over.

    Some prefix of the bytes being echoed may have reached the peer.

    """
    pass
