"Configuration for a `sockecho.listener.Listener`"
from __future__ import annotations
import typing as t
from dataclasses import dataclass, fields
from typeguard import check_type, TypeCheckError
from sockecho.address import Address, parse_address

__all__ = [
    'ListenerConfig',
]

@dataclass(frozen=True)
class ListenerConfig:
    """Everything a Listener needs to know, fixed at construction.

    `admission_timeout` is how long an accepted connection may wait for a session slot
    before being refused; 0 means refuse immediately when all slots are taken.
    `grace_period` is how long `Listener.stop` waits for sessions to finish before
    cancelling them. If `interrupt_idle_on_stop` is true, stopping also asks every
    session to close after its current read/write cycle.

    """
    address: Address
    backlog: int = 128
    max_sessions: int = 64
    admission_timeout: float = 0.0
    grace_period: float = 5.0
    buffer_size: int = 4096
    interrupt_idle_on_stop: bool = True

    def __post_init__(self) -> None:
        hints = t.get_type_hints(type(self))
        for field in fields(self):
            value = getattr(self, field.name)
            try:
                check_type(value, hints[field.name])
            except TypeCheckError as e:
                raise TypeError(f"ListenerConfig.{field.name}: {e}") from e
            # bool is an int as far as typeguard is concerned, but never a sensible count or duration
            if hints[field.name] in (int, float) and isinstance(value, bool):
                raise TypeError(f"ListenerConfig.{field.name}: expected {hints[field.name].__name__}, got bool")
        if self.backlog < 1:
            raise ValueError("backlog must be at least 1", self.backlog)
        if self.max_sessions < 1:
            raise ValueError("max_sessions must be at least 1", self.max_sessions)
        if self.buffer_size < 1:
            raise ValueError("buffer_size must be at least 1", self.buffer_size)
        if self.admission_timeout < 0:
            raise ValueError("admission_timeout can't be negative", self.admission_timeout)
        if self.grace_period < 0:
            raise ValueError("grace_period can't be negative", self.grace_period)

    @classmethod
    def make(cls, address: str, **kwargs: t.Any) -> ListenerConfig:
        "Parse `address` with `parse_address` and build a config around it"
        return cls(parse_address(address), **kwargs)
