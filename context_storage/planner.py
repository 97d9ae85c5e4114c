from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Sequence

from .codec import CircularReferenceLog, EncodedValue, decode_document, encode_value
from .errors import DecodeError, ProcedureMissingError
from .keys import to_store_key
from .paths import Segment, lookup, normalize
from .scripts import Procedure, encode_segments

logger = logging.getLogger(__name__)


class _Unset:
    """Marks a missing value: setting a path to UNSET deletes it."""

    _instance: "_Unset | None" = None

    def __new__(cls) -> "_Unset":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


@dataclass(frozen=True)
class MultiSet:
    pairs: tuple[tuple[str, str], ...]


@dataclass(frozen=True)
class MultiDelete:
    keys: tuple[str, ...]


@dataclass(frozen=True)
class NestedCall:
    procedure: Procedure
    key: str
    args: tuple[str, ...]


Command = MultiSet | MultiDelete | NestedCall


def as_path_list(key: Any) -> list[Any]:
    return list(key) if isinstance(key, (list, tuple)) else [key]


def pair_values(key: Any, value: Any) -> tuple[list[Any], list[Any]]:
    """
    Line up paths with values.

    - one path: one value
    - many paths, a list/tuple of values: parallel; missing values are UNSET
    - many paths, any other value: the value applies to every path
    """
    if not isinstance(key, (list, tuple)):
        return [key], [value]
    paths = list(key)
    if isinstance(value, (list, tuple)):
        values = list(value[: len(paths)])
        values.extend([UNSET] * (len(paths) - len(values)))
    else:
        values = [value] * len(paths)
    return paths, values


class BatchPlanner:
    """
    Accumulates writes for one call into the shortest ordered command list.

    Consecutive root-level writes share one MSET, consecutive root-level
    deletes share one DEL, nested writes and deletes are one script call each.
    Switching between kinds flushes what is pending, so effects land in the
    order the caller asked for.
    """

    def __init__(self) -> None:
        self._commands: list[Command] = []
        self._pending_set: list[tuple[str, str]] = []
        self._pending_delete: list[str] = []

    def _flush_set(self) -> None:
        if self._pending_set:
            self._commands.append(MultiSet(tuple(self._pending_set)))
            self._pending_set = []

    def _flush_delete(self) -> None:
        if self._pending_delete:
            self._commands.append(MultiDelete(tuple(self._pending_delete)))
            self._pending_delete = []

    def add_set(self, store_key: str, tail: Sequence[Segment], encoded: str) -> None:
        self._flush_delete()
        if not tail:
            self._pending_set.append((store_key, encoded))
            return
        self._flush_set()
        args = (*encode_segments(tail), encoded)
        self._commands.append(NestedCall(Procedure.SET_NESTED, store_key, args))

    def add_delete(self, store_key: str, tail: Sequence[Segment]) -> None:
        self._flush_set()
        if not tail:
            self._pending_delete.append(store_key)
            return
        self._flush_delete()
        args = tuple(encode_segments(tail))
        self._commands.append(NestedCall(Procedure.DELETE_NESTED, store_key, args))

    def commands(self) -> list[Command]:
        self._flush_set()
        self._flush_delete()
        return list(self._commands)


@dataclass(frozen=True)
class SetPlan:
    """
    The transaction for one set() call, plus what it means for the
    circular-reference log once it has been applied.

    ``writes`` holds ``(store_key, circular)`` per path in call order;
    ``circular`` is None for a delete.
    """

    commands: list[Command]
    writes: tuple[tuple[str, bool | None], ...] = ()

    def commit(self, circular_log: CircularReferenceLog) -> None:
        """Record the applied writes. Call only after the transaction succeeded."""
        for store_key, circular in self.writes:
            if circular is None:
                circular_log.forget(store_key)
            elif circular_log.record(store_key, circular):
                logger.warning(
                    "Context %s contains a circular reference that cannot be stored; "
                    "the circular part was dropped",
                    store_key,
                )


def plan_set(prefix: str | None, scope: str, key: Any, value: Any) -> SetPlan:
    """
    Build the transaction for one set() call.

    Every path is normalized and every value encoded before anything is
    planned, so a bad path or value fails the whole call with nothing sent.
    """
    paths, values = pair_values(key, value)
    parsed = [normalize(path) for path in paths]
    encoded: list[EncodedValue | None] = [
        None if v is UNSET else encode_value(v) for v in values
    ]

    planner = BatchPlanner()
    writes: list[tuple[str, bool | None]] = []
    for segments, item in zip(parsed, encoded):
        store_key = to_store_key(prefix, scope, segments[0])
        tail = segments[1:]
        if item is None:
            writes.append((store_key, None))
            planner.add_delete(store_key, tail)
        else:
            writes.append((store_key, item.circular))
            planner.add_set(store_key, tail, item.json)
    return SetPlan(planner.commands(), tuple(writes))


def _touched_keys(command: Command) -> tuple[str, ...]:
    if isinstance(command, MultiSet):
        return tuple(store_key for store_key, _ in command.pairs)
    if isinstance(command, MultiDelete):
        return command.keys
    return (command.key,)


def plan_replay(commands: Sequence[Command], replies: Sequence[Any]) -> list[NestedCall]:
    """
    Pick the commands to run again after script calls failed with NOSCRIPT
    inside a transaction whose other commands were applied.

    Root keys are independent, and a root-level MSET or DEL makes everything
    before it on that key irrelevant. So per key, the failed script calls
    after its last root-level write are replayed in their original order.
    That is exact only when they are the tail of the key's history: a script
    call that succeeded after one that failed already ran on the wrong
    document, and ProcedureMissingError is raised instead.
    """
    failed: dict[str, list[tuple[int, NestedCall]]] = {}
    overtaken: dict[str, NestedCall] = {}
    for index, (command, reply) in enumerate(zip(commands, replies)):
        missing = isinstance(reply, ProcedureMissingError)
        for store_key in _touched_keys(command):
            if not isinstance(command, NestedCall):
                failed.pop(store_key, None)
                overtaken.pop(store_key, None)
            elif missing:
                failed.setdefault(store_key, []).append((index, command))
            elif store_key in failed:
                overtaken[store_key] = failed[store_key][0][1]

    if overtaken:
        store_key, command = next(iter(overtaken.items()))
        raise ProcedureMissingError(
            f"Procedure {command.procedure.value} was missing during a transaction and later "
            f"writes to {store_key} were already applied; the change was applied partially",
        )
    pending = sorted((item for items in failed.values() for item in items), key=lambda item: item[0])
    return [command for _, command in pending]


@dataclass
class GetPlan:
    """One MGET for the distinct root keys of a get() call, plus how to answer each path."""

    roots: list[str]
    store_keys: list[str]
    paths: list[list[Segment]] = field(default_factory=list)

    def resolve(self, replies: Sequence[str | bytes | None]) -> list[Any]:
        documents: dict[str, Any] = {}
        for root, store_key, raw in zip(self.roots, self.store_keys, replies):
            if raw is None:
                continue
            try:
                documents[root] = decode_document(raw)
            except DecodeError:
                logger.debug("Ignoring non-JSON value stored at %s", store_key)
        results = []
        for segments in self.paths:
            root = segments[0]
            if root not in documents:
                results.append(None)
                continue
            results.append(lookup(documents[root], segments[1:]))
        return results


def plan_get(prefix: str | None, scope: str, key: Any) -> GetPlan:
    parsed = [normalize(path) for path in as_path_list(key)]
    roots = list(dict.fromkeys(segments[0] for segments in parsed))
    return GetPlan(
        roots=roots,
        store_keys=[to_store_key(prefix, scope, root) for root in roots],
        paths=parsed,
    )
