from .publisher import TelegramPublisher
from .events import EndpointsChanged
from .formatter import escape_markdown, render_message

__all__ = [
    "TelegramPublisher",
    "EndpointsChanged",
    "render_message",
    "escape_markdown",
]
