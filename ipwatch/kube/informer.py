"""In-memory node cache kept current by a list-watch loop.

The informer runs on its own thread. It performs an initial full list,
reports itself synced, then follows the watch stream and dispatches
add/update/delete callbacks to registered handlers from that thread.
Handlers must not block.
"""

import asyncio
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Protocol, Tuple, Iterator

from .client import WatchExpired
from .models import Member
from .selector import Selector
from ..errors import SourceUnavailable
from ..utils.logger import get_logger

EVENT_ADDED = "ADDED"
EVENT_MODIFIED = "MODIFIED"
EVENT_DELETED = "DELETED"
EVENT_BOOKMARK = "BOOKMARK"


class ListWatcher(Protocol):
    def list_nodes(self) -> Tuple[List[Member], str]: ...

    def watch_nodes(self, resource_version: str, timeout_seconds: int = 60) -> Iterator[Tuple[str, Optional[Member], str]]: ...

    def stop_watch(self) -> None: ...


@dataclass(eq=False)
class EventHandler:
    on_add: Optional[Callable[[Member], None]] = None
    on_update: Optional[Callable[[Member, Member], None]] = None
    on_delete: Optional[Callable[[Member], None]] = None


class MemberInformer:
    def __init__(
        self,
        list_watcher: ListWatcher,
        resync_period: float = 300.0,
        watch_timeout: int = 60,
        error_backoff: float = 1.0,
        max_error_backoff: float = 30.0,
    ):
        self.list_watcher = list_watcher
        self.resync_period = resync_period
        self.watch_timeout = watch_timeout
        self.error_backoff = error_backoff
        self.max_error_backoff = max_error_backoff
        self.logger = get_logger(__name__)

        self._store: Dict[str, Member] = {}
        self._lock = threading.Lock()
        self._handlers: List[EventHandler] = []
        self._synced = threading.Event()
        self._stopped = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._lingering: Optional[threading.Thread] = None
        self._resource_version: Optional[str] = None
        self._last_resync = 0.0

    @property
    def has_synced(self) -> bool:
        return self._synced.is_set()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def add_event_handler(
        self,
        on_add: Optional[Callable[[Member], None]] = None,
        on_update: Optional[Callable[[Member, Member], None]] = None,
        on_delete: Optional[Callable[[Member], None]] = None,
    ) -> EventHandler:
        handler = EventHandler(on_add=on_add, on_update=on_update, on_delete=on_delete)
        with self._lock:
            self._handlers.append(handler)
        return handler

    def remove_event_handler(self, handler: EventHandler) -> None:
        with self._lock:
            if handler in self._handlers:
                self._handlers.remove(handler)

    def start(self) -> None:
        if self.running:
            return

        if self._lingering is not None and self._lingering.is_alive():
            self.logger.warning("Previous member informer thread is still draining its watch")

        stopped = threading.Event()
        self._stopped = stopped
        self._synced.clear()
        self._resource_version = None
        with self._lock:
            self._store = {}
        self._thread = threading.Thread(target=self._run, args=(stopped,), name="member-informer", daemon=True)
        self._thread.start()
        self.logger.info("Member informer started")

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        if self._thread is None:
            return

        self._stopped.set()
        self.list_watcher.stop_watch()
        self._thread.join(timeout)
        if self._thread.is_alive():
            self.logger.warning("Member informer thread did not stop in time")
            self._lingering = self._thread
        self._thread = None
        self.logger.info("Member informer stopped")

    async def wait_for_sync(self, stop: asyncio.Event, poll_interval: float = 0.1) -> bool:
        while not self._synced.is_set():
            if stop.is_set():
                return False
            try:
                await asyncio.wait_for(stop.wait(), timeout=poll_interval)
            except asyncio.TimeoutError:
                pass
        return True

    def list_members(self, selector: Optional[Selector] = None) -> List[Member]:
        if not self._synced.is_set():
            raise SourceUnavailable("member cache has not synced")
        if self._stopped.is_set():
            raise SourceUnavailable("member informer is stopped")

        with self._lock:
            members = list(self._store.values())

        if selector is None:
            return members
        return [m for m in members if selector.matches(m)]

    def _run(self, stopped: threading.Event) -> None:
        attempt = 0
        while not stopped.is_set():
            try:
                if self._resource_version is None:
                    self._relist(stopped)
                self._watch(stopped)
                attempt = 0
            except WatchExpired as e:
                if stopped.is_set():
                    break
                self.logger.info(f"Watch expired ({e}), relisting nodes")
                self._resource_version = None
            except Exception as e:
                if stopped.is_set():
                    break
                attempt += 1
                delay = min(self.error_backoff * attempt, self.max_error_backoff)
                self.logger.error(f"Error in node list-watch (attempt {attempt}), retrying in {delay}s: {e}")
                self._resource_version = None
                stopped.wait(delay)
        self.logger.debug("Member informer loop exited")

    def _relist(self, stopped: threading.Event) -> None:
        members, resource_version = self.list_watcher.list_nodes()
        if stopped.is_set():
            return
        fresh = {m.name: m for m in members}

        with self._lock:
            previous = self._store
            self._store = dict(fresh)

        for name, member in fresh.items():
            old = previous.get(name)
            if old is None:
                self._dispatch_add(member)
            else:
                self._dispatch_update(old, member)
        for name, old in previous.items():
            if name not in fresh:
                self._dispatch_delete(old)

        self._resource_version = resource_version
        self._last_resync = time.monotonic()
        if not self._synced.is_set():
            self._synced.set()
            self.logger.info(f"Member cache synced with {len(fresh)} nodes")

    def _watch(self, stopped: threading.Event) -> None:
        if stopped.is_set():
            return

        for event_type, member, version in self.list_watcher.watch_nodes(
            self._resource_version, timeout_seconds=self.watch_timeout
        ):
            if stopped.is_set():
                return
            self._resource_version = version
            if event_type != EVENT_BOOKMARK and member is not None:
                self._apply(event_type, member)
            self._maybe_resync()
        if not stopped.is_set():
            self._maybe_resync()

    def _apply(self, event_type: str, member: Member) -> None:
        with self._lock:
            old = self._store.get(member.name)
            if event_type == EVENT_DELETED:
                self._store.pop(member.name, None)
            else:
                self._store[member.name] = member

        self.logger.debug(f"Node event {event_type}: {member}")
        if event_type == EVENT_DELETED:
            self._dispatch_delete(old or member)
        elif old is None:
            self._dispatch_add(member)
        else:
            self._dispatch_update(old, member)

    def _maybe_resync(self) -> None:
        if not self.resync_period or time.monotonic() - self._last_resync < self.resync_period:
            return

        self._last_resync = time.monotonic()
        with self._lock:
            members = list(self._store.values())
        self.logger.debug(f"Resyncing {len(members)} cached nodes")
        for member in members:
            self._dispatch_update(member, member)

    def _handlers_snapshot(self) -> List[EventHandler]:
        with self._lock:
            return list(self._handlers)

    def _dispatch_add(self, member: Member) -> None:
        for handler in self._handlers_snapshot():
            if handler.on_add:
                self._call(handler.on_add, member)

    def _dispatch_update(self, old: Member, new: Member) -> None:
        for handler in self._handlers_snapshot():
            if handler.on_update:
                self._call(handler.on_update, old, new)

    def _dispatch_delete(self, member: Member) -> None:
        for handler in self._handlers_snapshot():
            if handler.on_delete:
                self._call(handler.on_delete, member)

    def _call(self, callback: Callable, *args) -> None:
        try:
            callback(*args)
        except Exception as e:
            self.logger.error(f"Error in node event handler: {e}", exc_info=True)
