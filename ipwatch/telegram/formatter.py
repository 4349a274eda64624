from typing import Sequence

from .events import EndpointsChanged

ENDPOINT_SEPARATOR = "\t"
MARKDOWN_SPECIAL = "_*`["


def join(sep: str, items: Sequence[str]) -> str:
    return sep.join(items)


def italic(text: str) -> str:
    return f"_{text}_"


def escape_markdown(text: str) -> str:
    """Escape characters that legacy Telegram Markdown treats as entity delimiters."""
    return "".join(f"\\{c}" if c in MARKDOWN_SPECIAL else c for c in text)


def render_message(change: EndpointsChanged) -> str:
    if not change.endpoints:
        return f"IPs for {change.name} were deleted"
    return f"IPs for {change.name} changed:\n{italic(join(ENDPOINT_SEPARATOR, change.endpoints))}"
