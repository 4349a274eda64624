import asyncio
import queue
import threading
import time
from typing import Iterable, List, Optional

import pytest

from ipwatch.kube.models import Address, Condition, Member


class NodeBuilder:
    def __init__(self):
        self.conditions: List[Condition] = []
        self.addresses: List[Address] = []
        self.labels = {}

    def condition(self, type_: str, status: str) -> "NodeBuilder":
        self.conditions.append(Condition(type=type_, status=status))
        return self

    def address(self, type_: str, address: str) -> "NodeBuilder":
        self.addresses.append(Address(type=type_, address=address))
        return self

    def label(self, key: str, value: str) -> "NodeBuilder":
        self.labels[key] = value
        return self

    def build(self, name: str) -> Member:
        return Member(
            name=name,
            labels=dict(self.labels),
            conditions=tuple(self.conditions),
            addresses=tuple(self.addresses),
        )


def build_node() -> NodeBuilder:
    return NodeBuilder()


healthy_node1 = build_node().condition("Ready", "True").address("ExternalIP", "1.2.3.4")
healthy_node2 = build_node().condition("Ready", "True").address("ExternalIP", "1.2.3.5")
healthy_multi_conditions_node = (
    build_node().condition("Ready", "True").condition("MemoryPressure", "True").address("ExternalIP", "1.2.3.6")
)
healthy_multi_addresses_node = (
    build_node().condition("Ready", "True").address("ExternalIP", "1.2.3.7").address("ExternalIP", "1.2.3.8")
)
unhealthy_multi_conditions_node = (
    build_node().condition("Ready", "False").condition("MemoryPressure", "True").address("ExternalIP", "1.2.3.9")
)
healthy_internal_addresses_node = (
    build_node().condition("Ready", "True").address("ExternalIP", "1.2.3.10").address("InternalIP", "1.2.3.11")
)


class FakeListWatcher:
    """In-memory stand-in for KubeClient driven from the test thread."""

    def __init__(self, initial: Optional[Iterable[Member]] = None):
        self.members = {m.name: m for m in initial or []}
        self.version = 1
        self.list_calls = 0
        self.list_error: Optional[Exception] = None
        self._events: queue.Queue = queue.Queue()
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._pending = 0

    def list_nodes(self):
        with self._lock:
            self.list_calls += 1
            if self.list_error is not None:
                raise self.list_error
            return list(self.members.values()), str(self.version)

    def watch_nodes(self, resource_version, timeout_seconds=60):
        # a fresh stop flag per watch, like KubeClient creating a new Watch
        stop = threading.Event()
        with self._lock:
            self._stop = stop
        deadline = time.monotonic() + timeout_seconds
        while not stop.is_set() and time.monotonic() < deadline:
            try:
                item = self._events.get(timeout=0.01)
            except queue.Empty:
                continue
            try:
                if isinstance(item, Exception):
                    raise item
                yield item
            finally:
                with self._lock:
                    self._pending -= 1

    def stop_watch(self):
        with self._lock:
            self._stop.set()

    @property
    def pending(self) -> int:
        with self._lock:
            return self._pending

    def _push(self, item):
        with self._lock:
            self.version += 1
            self._pending += 1
        self._events.put(item)

    def add(self, member: Member):
        self.members[member.name] = member
        self._push(("ADDED", member, str(self.version + 1)))

    def update(self, member: Member):
        self.members[member.name] = member
        self._push(("MODIFIED", member, str(self.version + 1)))

    def delete(self, name: str):
        member = self.members.pop(name)
        self._push(("DELETED", member, str(self.version + 1)))

    def bookmark(self):
        self._push(("BOOKMARK", None, str(self.version + 1)))

    def fail_watch(self, error: Exception):
        self._push(error)


class BlockingListWatcher(FakeListWatcher):
    """Watch reads block for ``block`` seconds and ignore stop requests until then."""

    def __init__(self, initial: Optional[Iterable[Member]] = None, block: float = 0.5):
        super().__init__(initial)
        self.block = block
        self._watching = set()

    def watch_nodes(self, resource_version, timeout_seconds=60):
        thread = threading.current_thread()
        with self._lock:
            self._watching.add(thread)
        try:
            time.sleep(self.block)
        finally:
            with self._lock:
                self._watching.discard(thread)
        return
        yield

    def stop_watch(self):
        pass

    def watching(self) -> set:
        with self._lock:
            return set(self._watching)


def wait_for(predicate, timeout: float = 2.0, interval: float = 0.01) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


async def settle(watcher: FakeListWatcher, timeout: float = 2.0) -> None:
    deadline = time.monotonic() + timeout
    while watcher.pending and time.monotonic() < deadline:
        await asyncio.sleep(0.01)
    await asyncio.sleep(0.05)


@pytest.fixture
def watcher():
    return FakeListWatcher()
