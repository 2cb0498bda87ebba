"""Email body cleanup applied before chunking."""

from __future__ import annotations

import re

# A line that is exactly "-- " (RFC 3676 signature separator).
_SIGNATURE_RE = re.compile(r"(?:^|\n)-- \n")
_BLANK_RUN_RE = re.compile(r"\n{3,}")


def strip_quoted_replies(text: str) -> str:
    """Remove every line whose left-trimmed form starts with ``>``."""
    return "\n".join(
        line for line in text.split("\n") if not line.lstrip().startswith(">")
    )


def strip_signature(text: str) -> str:
    """Cut *text* at the first signature separator line."""
    match = _SIGNATURE_RE.search(text)
    if match is None:
        return text
    return text[: match.start()]


def clean(raw: str | None) -> str:
    """Strip quoted replies and the signature, then normalise blank lines.

    Never raises; ``None`` or empty input yields ``""``.

    Example:
        >>> clean("On Monday, X wrote:\\n> quoted line\\n\\nMy reply.\\n-- \\nSig")
        'On Monday, X wrote:\\n\\nMy reply.'
    """
    if not raw:
        return ""
    text = raw.replace("\r\n", "\n")
    text = strip_quoted_replies(text)
    text = strip_signature(text)
    text = _BLANK_RUN_RE.sub("\n\n", text)
    return text.strip()
