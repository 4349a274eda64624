from typing import Callable, Iterable, List, Optional, Protocol, Union

from .kube.models import Member
from .kube.selector import Selector, parse_selector
from .utils.logger import get_logger

SelectorLike = Union[str, Selector, Callable[[Member], bool], None]


class MemberRegistry(Protocol):
    def list_members(self, selector: Optional[Selector] = None) -> List[Member]: ...


def _as_predicate(selector: SelectorLike) -> Callable[[Member], bool]:
    if selector is None or isinstance(selector, str):
        return parse_selector(selector or "")
    return selector


def resolve_endpoints(members: Iterable[Member], selector: SelectorLike = "") -> List[str]:
    """Sorted, deduplicated external IPs of every ready member matching ``selector``.

    Raises InvalidSelector when ``selector`` is a string that does not parse.
    """
    predicate = _as_predicate(selector)

    ips = set()
    for member in members:
        if not predicate(member) or not member.is_ready:
            continue
        ips.update(member.external_ips)

    return sorted(ips)


class EndpointResolver:
    def __init__(self, registry: MemberRegistry, selector: Union[str, Selector] = ""):
        self.registry = registry
        self.selector = selector if isinstance(selector, Selector) else parse_selector(selector)
        self.logger = get_logger(__name__)

    def resolve(self) -> List[str]:
        members = self.registry.list_members(self.selector)
        endpoints = resolve_endpoints(members, self.selector)
        self.logger.debug(f"Resolved {len(endpoints)} endpoints from {len(members)} nodes: {endpoints}")
        return endpoints
