from __future__ import annotations

from pathlib import Path
import sys


import pytest


# Ensure the repository root (parent of ./tests) is importable during pytest collection.
# This avoids ModuleNotFoundError for imports like `import context_storage...` under pytest import modes
# that don't automatically prepend the cwd/rootdir to sys.path.
REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))


@pytest.fixture
def transport():
    from context_storage.memory_store import MemoryTransport

    return MemoryTransport()


@pytest.fixture
def storage(transport):
    """
    Storage over the in-memory transport, not opened yet: open() must run
    inside the test's own event loop.
    """
    from context_storage.redis_storage import RedisContextStorage

    return RedisContextStorage({"prefix": "test"}, transport=transport)


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    for name in (
        "CONTEXT_REDIS_HOST",
        "CONTEXT_REDIS_PORT",
        "CONTEXT_REDIS_DB",
        "CONTEXT_REDIS_PASSWORD",
        "CONTEXT_REDIS_TLS",
        "CONTEXT_REDIS_PREFIX",
        "CONTEXT_REDIS_SCAN_COUNT",
    ):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch
