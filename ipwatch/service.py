import asyncio
from typing import List, Optional

from .broadcast import Broadcaster
from .notifier import ChangeNotifier, EndpointStream
from .utils.logger import get_logger


class EndpointService:
    def __init__(self, notifier: ChangeNotifier, broadcaster: Broadcaster, retry_interval: float = 30.0):
        self.notifier = notifier
        self.broadcaster = broadcaster
        self.retry_interval = retry_interval
        self.logger = get_logger(__name__)

    async def run(self, stop: asyncio.Event) -> None:
        self.logger.info("Waiting for the node cache to sync")
        stream = await self.notifier.notify(stop)
        await self.broadcast_changes(stream)
        self.logger.info("Endpoint stream closed")

    async def broadcast_changes(self, stream: EndpointStream) -> None:
        async for endpoints in stream:
            current: Optional[List[str]] = endpoints
            while current is not None:
                if await self._try_broadcast(current):
                    break

                # a newer endpoint set supersedes the failed one
                self.logger.info(f"Retrying in {self.retry_interval} seconds unless endpoints change...")
                try:
                    current = await asyncio.wait_for(stream.__anext__(), timeout=self.retry_interval)
                except asyncio.TimeoutError:
                    continue
                except StopAsyncIteration:
                    return

    async def _try_broadcast(self, endpoints: List[str]) -> bool:
        try:
            await self.broadcaster.broadcast(endpoints)
        except Exception as e:
            self.logger.error(f"Broadcast of {endpoints} failed: {e}")
            return False

        self.logger.info(f"Broadcast of {endpoints} completed")
        return True
