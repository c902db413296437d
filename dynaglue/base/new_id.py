"""
Default identifier generator.

Identifiers are 24 hex characters in the MongoDB ObjectId layout:
4-byte big-endian seconds timestamp, 5 bytes unique to this process and a
3-byte counter starting at a random offset. They sort roughly by creation
time and never collide within a process.
"""

from __future__ import annotations

import os
import random
import threading
import time
from typing import Callable

IdGenerator = Callable[[], str]

_PROCESS_UNIQUE = os.urandom(5)
_counter = random.randint(0, 0xFFFFFF)
_counter_lock = threading.Lock()


def new_id() -> str:
    """Generate a fresh, globally unique identifier string."""
    global _counter
    with _counter_lock:
        _counter = (_counter + 1) % 0x1000000
        inc = _counter

    timestamp = int(time.time()) & 0xFFFFFFFF
    raw = timestamp.to_bytes(4, "big") + _PROCESS_UNIQUE + inc.to_bytes(3, "big")
    return raw.hex()
