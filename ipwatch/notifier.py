import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Union

from .errors import IPWatchError
from .kube.informer import MemberInformer
from .kube.models import Member
from .kube.selector import Selector
from .resolver import EndpointResolver
from .utils.logger import get_logger

DEFAULT_BUFFER_SIZE = 128

_CLOSED = object()


class NotifierState(str, Enum):
    UNSTARTED = "unstarted"
    SYNCING = "syncing"
    ACTIVE = "active"
    CLOSED = "closed"


@dataclass
class NotifierSession:
    has_emitted: bool = False
    last_emitted: List[str] = field(default_factory=list)

    def should_emit(self, endpoints: List[str]) -> bool:
        return not self.has_emitted or endpoints != self.last_emitted

    def record(self, endpoints: List[str]) -> None:
        self.has_emitted = True
        self.last_emitted = list(endpoints)


class EndpointStream:
    """Bounded FIFO of endpoint sets. Iteration ends once the stream is closed and drained."""

    def __init__(self, maxsize: int = DEFAULT_BUFFER_SIZE):
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def qsize(self) -> int:
        return self._queue.qsize()

    async def put(self, endpoints: List[str]) -> None:
        if self._closed:
            raise RuntimeError("endpoint stream is closed")
        await self._queue.put(list(endpoints))

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        # wakes a consumer blocked on an empty queue; a full queue is drained first
        try:
            self._queue.put_nowait(_CLOSED)
        except asyncio.QueueFull:
            pass

    def __aiter__(self):
        return self

    async def __anext__(self) -> List[str]:
        if self._closed and self._queue.empty():
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item


class ChangeNotifier:
    def __init__(
        self,
        informer: MemberInformer,
        selector: Union[str, Selector] = "",
        buffer_size: int = DEFAULT_BUFFER_SIZE,
        on_error: Optional[Callable[[IPWatchError], None]] = None,
    ):
        self.informer = informer
        self.resolver = EndpointResolver(informer, selector)
        self.buffer_size = buffer_size
        self.on_error = on_error
        self.state = NotifierState.UNSTARTED
        self._task: Optional[asyncio.Task] = None
        self._stopping: Optional[asyncio.Future] = None
        self.logger = get_logger(__name__)

    async def notify(self, stop: asyncio.Event) -> EndpointStream:
        """Start watching and return the stream of endpoint set changes.

        Blocks until the member cache has synced or ``stop`` is set. The
        stream is closed once ``stop`` is set.
        """
        if self._stopping is not None and not self._stopping.done():
            await self._stopping

        loop = asyncio.get_running_loop()
        session = NotifierSession()
        stream = EndpointStream(maxsize=self.buffer_size)
        events: asyncio.Queue = asyncio.Queue()

        def enqueue(kind: str, member: Member) -> None:
            try:
                loop.call_soon_threadsafe(events.put_nowait, (kind, member))
            except RuntimeError:
                self.logger.debug(f"Event loop closed, dropping {kind} event for {member.name}")

        handler = self.informer.add_event_handler(
            on_add=lambda m: enqueue("add", m),
            on_update=lambda old, new: enqueue("update", new),
            on_delete=lambda m: enqueue("delete", m),
        )

        self.state = NotifierState.SYNCING
        self.logger.info(f"Watching nodes (selector={str(self.resolver.selector) or '<all>'})")
        self.informer.start()

        if not await self.informer.wait_for_sync(stop):
            self.logger.info("Stopped before the node cache synced")
            await self._close(handler, stream)
            return stream

        self.state = NotifierState.ACTIVE
        await self._resolve_and_emit(session, stream)
        self._task = asyncio.create_task(self._consume(session, stream, events, handler, stop))
        return stream

    async def _consume(
        self,
        session: NotifierSession,
        stream: EndpointStream,
        events: asyncio.Queue,
        handler,
        stop: asyncio.Event,
    ) -> None:
        stop_task = asyncio.ensure_future(stop.wait())
        try:
            while not stop.is_set():
                get_task = asyncio.ensure_future(events.get())
                await asyncio.wait({get_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)
                if not get_task.done():
                    get_task.cancel()
                    break

                kind, member = get_task.result()
                self.logger.debug(f"Node {kind}: {member.name}")
                if not await self._resolve_and_emit(session, stream, stop_task):
                    break
        except asyncio.CancelledError:
            self.logger.debug("Notifier loop cancelled")
        except Exception as e:
            self.logger.error(f"Unexpected error in notifier loop: {e}", exc_info=True)
        finally:
            stop_task.cancel()
            await self._close(handler, stream)

    async def _resolve_and_emit(
        self,
        session: NotifierSession,
        stream: EndpointStream,
        stop_task: Optional[asyncio.Future] = None,
    ) -> bool:
        try:
            endpoints = self.resolver.resolve()
        except IPWatchError as e:
            self.logger.error(f"Failed to resolve endpoints: {e}")
            if self.on_error:
                self.on_error(e)
            return True

        if not session.should_emit(endpoints):
            self.logger.debug(f"Endpoints unchanged: {endpoints}")
            return True

        session.record(endpoints)
        self.logger.info(f"Endpoints changed: {endpoints}")

        if stop_task is None:
            await stream.put(endpoints)
            return True

        put_task = asyncio.ensure_future(stream.put(endpoints))
        await asyncio.wait({put_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)
        if not put_task.done():
            put_task.cancel()
            return False
        return True

    async def _close(self, handler, stream: EndpointStream) -> None:
        self.informer.remove_event_handler(handler)
        stream.close()
        self.state = NotifierState.CLOSED
        self.logger.info("Notifier closed")
        self._stopping = asyncio.ensure_future(asyncio.to_thread(self.informer.stop))
        await self._stopping
