from dataclasses import dataclass, field
from typing import Any, Dict, Tuple

CONDITION_READY = "Ready"
CONDITION_TRUE = "True"

ADDRESS_EXTERNAL_IP = "ExternalIP"
ADDRESS_INTERNAL_IP = "InternalIP"


@dataclass(frozen=True)
class Condition:
    type: str
    status: str


@dataclass(frozen=True)
class Address:
    type: str
    address: str


@dataclass(frozen=True)
class Member:
    name: str
    labels: Dict[str, str] = field(default_factory=dict, hash=False)
    conditions: Tuple[Condition, ...] = ()
    addresses: Tuple[Address, ...] = ()

    @property
    def is_ready(self) -> bool:
        return any(c.type == CONDITION_READY and c.status == CONDITION_TRUE for c in self.conditions)

    @property
    def external_ips(self) -> Tuple[str, ...]:
        return tuple(a.address for a in self.addresses if a.type == ADDRESS_EXTERNAL_IP)

    @classmethod
    def from_node(cls, node: Any) -> "Member":
        """Build a snapshot from a ``kubernetes.client.V1Node``."""
        metadata = node.metadata
        status = node.status
        conditions = status.conditions if status and status.conditions else []
        addresses = status.addresses if status and status.addresses else []
        return cls(
            name=metadata.name,
            labels=dict(metadata.labels or {}),
            conditions=tuple(Condition(type=c.type, status=c.status) for c in conditions),
            addresses=tuple(Address(type=a.type, address=a.address) for a in addresses),
        )

    def __repr__(self):
        status = "ready" if self.is_ready else "not ready"
        return f"Member(name={self.name}, external_ips={list(self.external_ips)}, status={status})"
