import asyncio
import threading
import time

import pytest

from conftest import BlockingListWatcher, FakeListWatcher, build_node, healthy_node1, healthy_node2, wait_for
from ipwatch.errors import SourceUnavailable
from ipwatch.kube.client import WatchExpired
from ipwatch.kube.informer import MemberInformer
from ipwatch.kube.selector import parse_selector


class Recorder:
    def __init__(self, informer: MemberInformer):
        self.events = []
        self._lock = threading.Lock()
        informer.add_event_handler(
            on_add=lambda m: self._record("add", m.name),
            on_update=lambda old, new: self._record("update", new.name),
            on_delete=lambda m: self._record("delete", m.name),
        )

    def _record(self, kind, name):
        with self._lock:
            self.events.append((kind, name))

    def snapshot(self):
        with self._lock:
            return list(self.events)


def make_informer(watcher, **kwargs) -> MemberInformer:
    kwargs.setdefault("resync_period", 0)
    kwargs.setdefault("watch_timeout", 1)
    kwargs.setdefault("error_backoff", 0.01)
    return MemberInformer(watcher, **kwargs)


def test_list_before_sync_is_unavailable(watcher):
    informer = make_informer(watcher)
    with pytest.raises(SourceUnavailable):
        informer.list_members()


def test_initial_sync_dispatches_adds():
    watcher = FakeListWatcher([healthy_node1.build("node1"), healthy_node2.build("node2")])
    informer = make_informer(watcher)
    recorder = Recorder(informer)

    informer.start()
    try:
        assert wait_for(lambda: informer.has_synced)
        assert sorted(m.name for m in informer.list_members()) == ["node1", "node2"]
        assert sorted(recorder.snapshot()) == [("add", "node1"), ("add", "node2")]
    finally:
        informer.stop()

    with pytest.raises(SourceUnavailable):
        informer.list_members()


def test_watch_events_update_cache_and_notify(watcher):
    informer = make_informer(watcher)
    recorder = Recorder(informer)
    informer.start()
    try:
        assert wait_for(lambda: informer.has_synced)

        watcher.add(healthy_node1.build("node1"))
        watcher.update(healthy_node2.build("node1"))
        watcher.add(healthy_node1.build("node2"))
        watcher.delete("node1")

        assert wait_for(lambda: len(recorder.snapshot()) == 4)
        assert recorder.snapshot() == [
            ("add", "node1"),
            ("update", "node1"),
            ("add", "node2"),
            ("delete", "node1"),
        ]
        assert [m.name for m in informer.list_members()] == ["node2"]
    finally:
        informer.stop()


def test_added_event_for_known_member_is_an_update():
    watcher = FakeListWatcher([healthy_node1.build("node1")])
    informer = make_informer(watcher)
    recorder = Recorder(informer)
    informer.start()
    try:
        assert wait_for(lambda: informer.has_synced)
        watcher.add(healthy_node2.build("node1"))
        assert wait_for(lambda: len(recorder.snapshot()) == 2)
        assert recorder.snapshot()[-1] == ("update", "node1")
    finally:
        informer.stop()


def test_list_members_applies_selector():
    edge = build_node().condition("Ready", "True").label("role", "edge").build("edge")
    watcher = FakeListWatcher([edge, healthy_node2.build("plain")])
    informer = make_informer(watcher)
    informer.start()
    try:
        assert wait_for(lambda: informer.has_synced)
        assert [m.name for m in informer.list_members(parse_selector("role=edge"))] == ["edge"]
    finally:
        informer.stop()


def test_expired_watch_relists_and_diffs():
    watcher = FakeListWatcher([healthy_node1.build("node1")])
    informer = make_informer(watcher)
    recorder = Recorder(informer)
    informer.start()
    try:
        assert wait_for(lambda: informer.has_synced)

        # changes the watch never saw
        watcher.members = {"node2": healthy_node2.build("node2")}
        watcher.fail_watch(WatchExpired("too old resource version"))

        assert wait_for(lambda: watcher.list_calls == 2)
        assert wait_for(lambda: len(recorder.snapshot()) == 3)
        assert sorted(recorder.snapshot()[1:]) == [("add", "node2"), ("delete", "node1")]
        assert [m.name for m in informer.list_members()] == ["node2"]
    finally:
        informer.stop()


def test_list_errors_are_retried(watcher):
    watcher.list_error = ConnectionError("apiserver unreachable")
    informer = make_informer(watcher)
    informer.start()
    try:
        assert wait_for(lambda: watcher.list_calls >= 2)
        assert not informer.has_synced

        watcher.list_error = None
        assert wait_for(lambda: informer.has_synced)
    finally:
        informer.stop()


def test_resync_replays_updates():
    watcher = FakeListWatcher([healthy_node1.build("node1")])
    informer = make_informer(watcher, resync_period=0.05)
    recorder = Recorder(informer)
    informer.start()
    try:
        assert wait_for(lambda: informer.has_synced)
        time.sleep(0.1)
        watcher.bookmark()
        assert wait_for(lambda: ("update", "node1") in recorder.snapshot())
    finally:
        informer.stop()


def test_handler_errors_do_not_stop_the_informer(watcher):
    informer = make_informer(watcher)
    informer.add_event_handler(on_add=lambda m: 1 / 0)
    recorder = Recorder(informer)
    informer.start()
    try:
        assert wait_for(lambda: informer.has_synced)
        watcher.add(healthy_node1.build("node1"))
        watcher.add(healthy_node2.build("node2"))
        assert wait_for(lambda: len(recorder.snapshot()) == 2)
    finally:
        informer.stop()


def test_removed_handler_gets_nothing(watcher):
    informer = make_informer(watcher)
    seen = []
    handler = informer.add_event_handler(on_add=lambda m: seen.append(m.name))
    informer.remove_event_handler(handler)
    recorder = Recorder(informer)
    informer.start()
    try:
        assert wait_for(lambda: informer.has_synced)
        watcher.add(healthy_node1.build("node1"))
        assert wait_for(lambda: len(recorder.snapshot()) == 1)
        assert seen == []
    finally:
        informer.stop()


@pytest.mark.asyncio
async def test_wait_for_sync_returns_false_when_stopped(watcher):
    watcher.list_error = ConnectionError("apiserver unreachable")
    informer = make_informer(watcher)
    informer.start()
    stop = asyncio.Event()
    try:
        asyncio.get_running_loop().call_later(0.1, stop.set)
        assert await asyncio.wait_for(informer.wait_for_sync(stop), timeout=2) is False
    finally:
        informer.stop()


def test_restart_while_previous_watch_is_still_blocked():
    watcher = BlockingListWatcher([healthy_node1.build("node1")], block=0.5)
    informer = make_informer(watcher)
    informer.start()
    assert wait_for(lambda: informer.has_synced and len(watcher.watching()) == 1)

    first = informer._thread
    informer.stop(timeout=0.05)
    assert first.is_alive()

    informer.start()
    try:
        assert wait_for(lambda: informer.has_synced)
        assert wait_for(lambda: not first.is_alive(), timeout=3)
        assert informer.running
        assert first not in watcher.watching()
        assert [m.name for m in informer.list_members()] == ["node1"]
    finally:
        informer.stop(timeout=2)


def test_stopped_run_does_not_touch_the_cache():
    watcher = BlockingListWatcher([healthy_node1.build("node1")], block=0.3)
    informer = make_informer(watcher)
    informer.start()
    assert wait_for(lambda: informer.has_synced and len(watcher.watching()) == 1)
    first = informer._thread
    informer.stop(timeout=0.01)

    watcher.members = {"node2": healthy_node2.build("node2")}
    informer.start()
    try:
        assert wait_for(lambda: not first.is_alive(), timeout=3)
        assert [m.name for m in informer.list_members()] == ["node2"]
    finally:
        informer.stop(timeout=2)
