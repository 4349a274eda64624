from dataclasses import dataclass, field
from typing import List


@dataclass(frozen=True)
class EndpointsChanged:
    name: str
    endpoints: List[str] = field(default_factory=list)
