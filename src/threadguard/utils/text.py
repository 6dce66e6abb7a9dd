"""Text and address helpers."""

from __future__ import annotations

import re
from email.utils import parseaddr
from html import unescape

_ADDRESS_RE = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
_REPLY_PREFIX_RE = re.compile(r"^\s*re\s*:", re.IGNORECASE)


def clean_html(html: str) -> str:
    """Strip HTML tags and decode entities, keeping line breaks between blocks."""
    text = re.sub(r"(?i)<br\s*/?>|</(?:p|div|li|tr|h[1-6])\s*>", "\n", html)
    text = re.sub(r"<[^>]+>", "", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return unescape(text).strip()


def truncate(text: str, max_length: int = 300, suffix: str = "...") -> str:
    """Truncate text to max_length, breaking at word boundary."""
    if len(text) <= max_length:
        return text
    truncated = text[: max_length - len(suffix)]
    # Break at last space
    last_space = truncated.rfind(" ")
    if last_space > max_length // 2:
        truncated = truncated[:last_space]
    return truncated + suffix


def is_valid_address(address: str) -> bool:
    """Check that ``address`` is a single well-formed mailbox."""
    return bool(_ADDRESS_RE.match((address or "").strip()))


def bare_address(value: str) -> str:
    """``"Ada <ada@example.com>"`` -> ``"ada@example.com"``."""
    return parseaddr(value or "")[1].strip()


def local_part(address: str) -> str:
    """Part of the address before the ``@``, lowercased."""
    return bare_address(address).split("@", 1)[0].lower()


def reply_subject(subject: str) -> str:
    subject = (subject or "").strip()
    if _REPLY_PREFIX_RE.match(subject):
        return subject
    return f"Re: {subject}" if subject else "Re:"
