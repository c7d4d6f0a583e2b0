"Counters describing what a listener has done so far"
from dataclasses import dataclass

__all__ = [
    'ListenerStats',
]

@dataclass
class ListenerStats:
    accepted: int = 0
    admitted: int = 0
    # connections dropped because no slot was free
    refused: int = 0
    completed: int = 0
    read_errors: int = 0
    write_errors: int = 0
    # sessions that died with some unexpected exception
    failures: int = 0
    # sessions cancelled when the shutdown grace period ran out
    forced_closes: int = 0
    bytes_echoed: int = 0
