"""Time sources shared by the resilience components.

Every component that reasons about windows, TTLs or timeouts takes a `clock`
(returning epoch seconds) and, where it waits, a `sleep` coroutine function.
Production code uses the defaults below; tests pass simulated ones.
"""

import asyncio
import time
from typing import Awaitable, Callable

Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[None]]

system_clock: Clock = time.time
async_sleep: Sleep = asyncio.sleep
