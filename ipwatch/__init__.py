from .config import Config
from .kube import KubeClient, MemberInformer, Member
from .resolver import EndpointResolver, resolve_endpoints
from .notifier import ChangeNotifier, EndpointStream, NotifierState
from .broadcast import Broadcaster, broadcast
from .cloudflare_dns import CloudflareClient, CloudflareDNSPublisher
from .telegram import TelegramPublisher
from .service import EndpointService

__all__ = [
    "Config",
    "KubeClient",
    "MemberInformer",
    "Member",
    "EndpointResolver",
    "resolve_endpoints",
    "ChangeNotifier",
    "EndpointStream",
    "NotifierState",
    "Broadcaster",
    "broadcast",
    "CloudflareClient",
    "CloudflareDNSPublisher",
    "TelegramPublisher",
    "EndpointService",
]
