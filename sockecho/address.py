"Parsing and validation of bind addresses: a Unix socket path, or a host:port pair"
from __future__ import annotations
import ipaddress
import os
import socket
import typing as t
from dataclasses import dataclass

__all__ = [
    'PathTooLongError',
    'Address',
    'UnixAddress',
    'InetAddress',
    'parse_address',
]

# sizeof(sun_path) on Linux, including the null terminator
UNIX_PATH_MAX = 108

class PathTooLongError(ValueError):
    pass

@dataclass(frozen=True)
class UnixAddress:
    path: bytes

    family = socket.AF_UNIX
    def __post_init__(self) -> None:
        if not self.path:
            raise ValueError("empty unix socket path")
        if b'\0' in self.path:
            raise ValueError("unix socket path contains a null byte", self.path)
        if len(self.path) >= UNIX_PATH_MAX:
            raise PathTooLongError("path", self.path, "is longer than the maximum unix address size")

    @classmethod
    def from_path(cls, path: t.Union[str, os.PathLike]) -> UnixAddress:
        return cls(os.fsencode(path))

    def sockaddr(self) -> bytes:
        "The address in the form accepted by socket.bind and socket.connect"
        return self.path

    def __str__(self) -> str:
        return os.fsdecode(self.path)

@dataclass(frozen=True)
class InetAddress:
    """A TCP host and port.

    The host may be a name to be resolved, or an IPv4 or IPv6 literal. IPv6 literals are
    rendered in brackets by __str__, so that the result can be parsed again.

    """
    host: str
    port: int

    def __post_init__(self) -> None:
        if not self.host:
            raise ValueError("empty host")
        if not (0 <= self.port <= 65535):
            raise ValueError("port out of range", self.port)

    @property
    def family(self) -> int:
        "The address family, if the host is a literal; AF_UNSPEC if it must be resolved."
        try:
            ip = ipaddress.ip_address(self.host)
        except ValueError:
            return socket.AF_UNSPEC
        return socket.AF_INET6 if ip.version == 6 else socket.AF_INET

    def __str__(self) -> str:
        if ':' in self.host:
            return f"[{self.host}]:{self.port}"
        return f"{self.host}:{self.port}"

Address = t.Union[UnixAddress, InetAddress]

def _parse_port(text: str, port: str) -> int:
    if not port.isdigit():
        raise ValueError("invalid port in address", text)
    return int(port)

def parse_address(text: str) -> Address:
    """Parse a bind address.

    Anything containing a slash is a filesystem path, so relative socket paths must be
    written like "./echo.sock". Everything else must be "host:port", with IPv6 literals
    in brackets, like "[::1]:7000".

    """
    if '/' in text:
        return UnixAddress.from_path(text)
    if text.startswith('['):
        host, sep, rest = text[1:].partition(']')
        if not sep or not rest.startswith(':'):
            raise ValueError("malformed bracketed address, expected [host]:port", text)
        try:
            ipaddress.IPv6Address(host)
        except ValueError as e:
            raise ValueError("not an IPv6 literal", text) from e
        return InetAddress(host, _parse_port(text, rest[1:]))
    host, sep, port = text.rpartition(':')
    if not sep:
        raise ValueError("expected host:port, or a path containing a slash", text)
    if ':' in host:
        raise ValueError("IPv6 addresses must be written in brackets", text)
    return InetAddress(host, _parse_port(text, port))
