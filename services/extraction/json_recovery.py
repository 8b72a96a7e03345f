"""Recovery of a JSON object candidate from free-text model output.

This is a heuristic, not a parser: it does not check brace balance. A slice
that is not valid JSON is caught by the strict parse in validation.py.
"""

import re

from services.shared.errors import NoJsonFoundError

_FENCED_BLOCK = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```", re.IGNORECASE)


def recover_json_candidate(text: str, preview_chars: int = 1200) -> str:
    """Locate the JSON object in a model reply.

    Priority:
    1. Interior of the first fenced code block (```json ... ``` or ``` ... ```)
    2. Span from the first "{" to the last "}" inclusive

    Args:
        text: Raw model reply
        preview_chars: Length of the raw preview attached to the error

    Returns:
        Candidate JSON substring

    Raises:
        NoJsonFoundError: If neither strategy finds a candidate
    """
    text = text or ""

    fenced = _FENCED_BLOCK.search(text)
    if fenced and fenced.group(1).strip():
        return fenced.group(1).strip()

    first = text.find("{")
    last = text.rfind("}")
    if first >= 0 and last > first:
        return text[first : last + 1]

    raise NoJsonFoundError(text[:preview_chars])
