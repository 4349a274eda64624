import asyncio
from typing import List, Optional, Protocol, Sequence

from .errors import AggregateError
from .utils.logger import get_logger

logger = get_logger(__name__)


class Publisher(Protocol):
    name: str

    async def publish(self, endpoints: Sequence[str]) -> None: ...


async def _publish(publisher: Optional[Publisher], endpoints: List[str]) -> None:
    if publisher is None:
        return

    name = getattr(publisher, "name", type(publisher).__name__)
    logger.debug(f"Publishing {endpoints} to {name}")
    await publisher.publish(endpoints)
    logger.info(f"Published {len(endpoints)} endpoints to {name}")


async def broadcast(
    endpoints: Sequence[str],
    publishers: Sequence[Optional[Publisher]],
    timeout: Optional[float] = None,
) -> None:
    """Publish ``endpoints`` to every publisher concurrently.

    Every publisher is attempted. A single failure is raised as is; two or
    more are raised together as an AggregateError, in registration order.
    """
    endpoints = list(endpoints)
    gathered = asyncio.gather(*(_publish(p, endpoints) for p in publishers), return_exceptions=True)
    if timeout is None:
        results = await gathered
    else:
        results = await asyncio.wait_for(gathered, timeout=timeout)

    errors = []
    for result in results:
        if isinstance(result, asyncio.CancelledError):
            raise result
        if isinstance(result, BaseException):
            errors.append(result)

    if not errors:
        return
    if len(errors) == 1:
        logger.error(f"One broadcast failed: {errors[0]}")
        raise errors[0]
    logger.error(f"{len(errors)} of {len(publishers)} broadcasts failed")
    raise AggregateError(errors)


class Broadcaster:
    def __init__(self, publishers: Sequence[Optional[Publisher]], timeout: Optional[float] = None):
        self.publishers = list(publishers)
        self.timeout = timeout

    async def broadcast(self, endpoints: Sequence[str]) -> None:
        await broadcast(endpoints, self.publishers, timeout=self.timeout)
