"A minimal client for talking to an echo listener"
from __future__ import annotations
import logging
import os
import trio
from sockecho.address import Address, UnixAddress

logger = logging.getLogger(__name__)

__all__ = [
    'open_connection',
    'echo_once',
]

async def open_connection(address: Address) -> trio.SocketStream:
    "Connect to a listener at this address."
    if isinstance(address, UnixAddress):
        return await trio.open_unix_socket(os.fsdecode(address.path))
    else:
        return await trio.open_tcp_stream(address.host, address.port)

async def echo_once(address: Address, data: bytes, chunk_size: int=65536) -> bytes:
    """Send `data` over a new connection and return everything that comes back.

    We send at most `chunk_size` bytes at a time and wait for each chunk to be echoed
    before sending the next, so that neither side can fill up its send buffer while the
    other is blocked writing. After everything is sent, we shut down our side of the
    connection and read until EOF.

    If the listener closes the connection early, for example because it refused it,
    we return whatever was echoed before that; so an empty result for non-empty `data`
    usually means the connection was refused.

    """
    received = bytearray()
    async with await open_connection(address) as stream:
        for offset in range(0, len(data), chunk_size):
            chunk = data[offset:offset+chunk_size]
            await stream.send_all(chunk)
            expected = len(received) + len(chunk)
            while len(received) < expected:
                reply = await stream.receive_some(chunk_size)
                if not reply:
                    logger.debug("%s closed the connection after echoing %d bytes", address, len(received))
                    return bytes(received)
                received += reply
        await stream.send_eof()
        while True:
            reply = await stream.receive_some(chunk_size)
            if not reply:
                break
            received += reply
    return bytes(received)
