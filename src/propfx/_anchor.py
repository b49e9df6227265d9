"""Process-wide anchor state — identity counter and clock.

Everything else is owned per instance. The only values shared across
instances live here so that they can be reset or inspected in one place.
"""

import itertools
import time

# ID generation — itertools.count is thread-safe (C-level GIL atomic)
_id_counter = itertools.count(1)


def new_id() -> int:
    return next(_id_counter)


def now() -> float:
    """Wall-clock timestamp used for created/updated bookkeeping."""
    return time.time()
