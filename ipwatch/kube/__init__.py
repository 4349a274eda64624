from .models import Member, Condition, Address
from .selector import Selector, parse_selector
from .client import KubeClient, WatchExpired
from .informer import MemberInformer

__all__ = [
    "Member",
    "Condition",
    "Address",
    "Selector",
    "parse_selector",
    "KubeClient",
    "WatchExpired",
    "MemberInformer",
]
