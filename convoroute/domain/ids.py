"""
Deterministic id generation.

Ids derived from titles and descriptions must be identical across process
restarts so that persisted sessions keep pointing at the same route and step.
"""

import re
import zlib
from typing import Optional

_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyz"


def _stable_hash(value: str) -> str:
    number = zlib.crc32(value.encode("utf-8"))
    if number == 0:
        return "0"
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(_ALPHABET[remainder])
    return "".join(reversed(digits))


def _sanitize(value: str) -> str:
    return re.sub(r"[^a-z0-9]+", "_", value.lower()).strip("_")


def generate_route_id(title: str) -> str:
    """Format: route_{sanitized_title}_{hash}"""
    return f"route_{_sanitize(title)}_{_stable_hash(title)}"


def generate_step_id(
    route_id: str, description: Optional[str] = None, index: Optional[int] = None
) -> str:
    """Format: step_{sanitized_description}_{hash} or step_{route_id}_{index}"""
    if description:
        return f"step_{_sanitize(description)}_{_stable_hash(f'{route_id}_{description}')}"
    suffix = index if index is not None else _stable_hash(route_id)
    return f"step_{route_id}_{suffix}"


def generate_tool_id(name: str) -> str:
    """Format: tool_{sanitized_name}_{hash}"""
    return f"tool_{_sanitize(name)}_{_stable_hash(name)}"


def generate_inline_tool_id(step_id: str) -> str:
    """Format: tool_inline_{step_id}_{hash}"""
    return f"tool_inline_{step_id}_{_stable_hash(f'{step_id}_inline_tool')}"
