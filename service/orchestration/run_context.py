"""
Per-run state and the proposal model for field writes.

Plugins never touch the live target/context. Each dispatch receives private
working copies that journal every key assigned or deleted. When the plugin
finishes, every changed leaf and every journaled assignment becomes a proposed
Write, so rewriting a field with the value it already had still counts.
Field keys use "[0]" for the target and "[1]" for the context, followed by
dotted field names: "[0].domain", "[0].company.crunchbase".
"""

import asyncio
import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, NamedTuple, Optional, Set, Tuple

from orchestration.conflict import ConflictRecord, Write
from orchestration.registry import PluginDescriptor

SEED_PRODUCER = "init_person"

TARGET, CONTEXT = 0, 1


class _Removed:
    def __repr__(self) -> str:
        return "REMOVED"


REMOVED = _Removed()


class RunResult(NamedTuple):
    error: Optional[BaseException]
    target: dict
    context: dict


class RunState(str, Enum):
    INIT = "init"
    SCHEDULING = "scheduling"
    EXECUTING = "executing"
    DRAINING = "draining"
    COMPLETE = "complete"
    TIMEOUT = "timeout"


def field_key(path: tuple) -> str:
    root, *names = path
    return ".".join([f"[{root}]"] + [str(n) for n in names])


def diff(before: dict, after: dict, prefix: tuple) -> Iterator[Tuple[tuple, Any]]:
    """
    Yield (path, value) for every leaf that differs; nested dicts are walked.

    New nested dicts are reported leaf by leaf so two plugins adding different
    keys under the same new parent never conflict with each other.
    """
    for name, value in after.items():
        path = prefix + (name,)
        previous = before.get(name, REMOVED)
        if isinstance(value, dict) and isinstance(previous, dict):
            yield from diff(previous, value, path)
        elif previous is REMOVED or value != previous:
            if isinstance(value, dict) and value:
                yield from leaves(value, path)
            else:
                yield path, value
    for name in before:
        if name not in after:
            yield prefix + (name,), REMOVED


def leaves(data: dict, prefix: tuple) -> Iterator[Tuple[tuple, Any]]:
    for name, value in data.items():
        if isinstance(value, dict) and value:
            yield from leaves(value, prefix + (name,))
        else:
            yield prefix + (name,), value


def is_related(path: tuple, other: tuple) -> bool:
    """True when one path is a strict ancestor of the other."""
    if path == other:
        return False
    size = min(len(path), len(other))
    return path[:size] == other[:size]


class RecordingDict(dict):
    """
    Working-copy dict that journals the path of every key set or deleted.

    Nested dicts present at capture are wrapped too. Dicts assigned later are
    stored as given; their contents are reported through the assigned parent.
    Copies come back as plain dicts.
    """

    def __init__(self, data: dict, path: tuple, journal: List[tuple]):
        super().__init__()
        self._path = path
        self._journal = journal
        for name, value in data.items():
            if isinstance(value, dict):
                value = RecordingDict(value, path + (name,), journal)
            dict.__setitem__(self, name, value)

    def _record(self, name: Any) -> None:
        self._journal.append(self._path + (name,))

    def __setitem__(self, name, value):
        self._record(name)
        super().__setitem__(name, value)

    def __delitem__(self, name):
        super().__delitem__(name)
        self._record(name)

    def __ior__(self, other):
        self.update(other)
        return self

    def pop(self, name, *default):
        if name in self:
            self._record(name)
        return super().pop(name, *default)

    def popitem(self):
        name, value = super().popitem()
        self._record(name)
        return name, value

    def setdefault(self, name, default=None):
        if name not in self:
            self[name] = default
        return self[name]

    def update(self, *args, **kwargs):
        for name, value in dict(*args, **kwargs).items():
            self[name] = value

    def clear(self):
        for name in self:
            self._record(name)
        super().clear()

    def __copy__(self):
        return dict(self)

    def __deepcopy__(self, memo):
        return {name: copy.deepcopy(value, memo) for name, value in self.items()}


@dataclass
class Workspace:
    """Snapshot plus working copies handed to one plugin (or one cache lookup)."""

    before_target: dict
    before_context: dict
    target: dict
    context: dict
    journal: List[tuple] = field(default_factory=list)

    @classmethod
    def capture(cls, target: dict, context: dict) -> "Workspace":
        before_target = copy.deepcopy(target)
        before_context = copy.deepcopy(context)
        journal: List[tuple] = []
        return cls(
            before_target,
            before_context,
            RecordingDict(copy.deepcopy(before_target), (TARGET,), journal),
            RecordingDict(copy.deepcopy(before_context), (CONTEXT,), journal),
            journal,
        )

    def assigned(self, path: tuple) -> List[Tuple[tuple, Any]]:
        """Current leaves under a journaled path; empty if it no longer exists."""
        root, *names = path
        node: Any = self.target if root == TARGET else self.context
        for name in names:
            if not isinstance(node, dict) or name not in node:
                return []
            node = node[name]
        if isinstance(node, dict) and node:
            return list(leaves(node, path))
        return [(path, node)]

    def proposals(self, producer: str, assignments: bool = True) -> List[Write]:
        """
        Writes for every changed leaf, plus every journaled assignment unless
        assignments is False (cache hits replay whole entries, not writes).
        """
        changes = dict(diff(self.before_target, self.target, (TARGET,)))
        changes.update(diff(self.before_context, self.context, (CONTEXT,)))
        if assignments:
            for path in self.journal:
                for leaf, value in self.assigned(path):
                    changes.setdefault(leaf, value)
        return [Write(field_key(path), path, value, producer) for path, value in changes.items()]


@dataclass
class RunContext:
    target: dict
    context: dict
    pending: List[PluginDescriptor]
    running: List[PluginDescriptor] = field(default_factory=list)
    done: List[PluginDescriptor] = field(default_factory=list)
    error: Optional[BaseException] = None
    completed: bool = False
    state: RunState = RunState.INIT
    deadline: Optional[asyncio.TimerHandle] = None
    conflicts: Dict[str, ConflictRecord] = field(default_factory=dict)
    in_flight: Set[asyncio.Task] = field(default_factory=set)
    background: Set[asyncio.Task] = field(default_factory=set)
    driver: Optional[asyncio.Task] = None
    callback: Optional[Callable[[Optional[BaseException], dict, dict], Any]] = field(default=None, repr=False)
    result: Optional[asyncio.Future] = field(default=None, repr=False)
    emit: Callable[..., Any] = field(default=lambda *args: None, repr=False)

    def seed(self, producer: str = SEED_PRODUCER) -> None:
        """Attribute the fields present at run start to the seed producer."""
        for path, value in leaves(self.target, (TARGET,)):
            key = field_key(path)
            self.conflicts[key] = ConflictRecord(Write(key, path, value, producer))

    def record_error(self, error: BaseException) -> bool:
        if self.error is None:
            self.error = error
            return True
        return False

    def root(self, index: int) -> dict:
        return self.target if index == TARGET else self.context

    def apply(self, write: Write) -> None:
        """Commit a resolved write to the live target/context."""
        root, *names = write.path
        node = self.root(root)
        for name in names[:-1]:
            child = node.get(name)
            if not isinstance(child, dict):
                child = node[name] = {}
            node = child
        if write.value is REMOVED:
            node.pop(names[-1], None)
        else:
            node[names[-1]] = copy.deepcopy(write.value)

    def resolve(self, descriptor: PluginDescriptor) -> None:
        """Move a descriptor to done from wherever it currently is."""
        if descriptor in self.running:
            self.running.remove(descriptor)
        if descriptor in self.pending:
            self.pending.remove(descriptor)
        self.done.append(descriptor)

    def overlapping(self, path: tuple) -> List[str]:
        """Keys of records for strict ancestors or descendants of path."""
        return [key for key, record in self.conflicts.items() if is_related(path, record.current.path)]
