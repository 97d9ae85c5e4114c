from __future__ import annotations

from .interfaces import StoreTransport

DEFAULT_SCAN_COUNT = 1000


async def scan_keys(transport: StoreTransport, pattern: str, count: int = DEFAULT_SCAN_COUNT) -> list[str]:
    """
    Collect every key matching ``pattern`` with SCAN, following the cursor
    until the server reports the iteration is complete.

    SCAN may return a key more than once; the result is de-duplicated and
    keeps first-seen order.
    """
    found: dict[str, None] = {}
    cursor = 0
    while True:
        cursor, batch = await transport.scan(cursor, pattern, count)
        for key in batch:
            found.setdefault(key, None)
        if int(cursor) == 0:
            return list(found)
