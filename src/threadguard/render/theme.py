"""Theme-conditional placeholders embedded in message markup."""

from __future__ import annotations

import re

from threadguard.core.models import ThemeMode

# { $LIGHT ? <light> : <dark> }
_PLACEHOLDER_RE = re.compile(r"\{\s*\$LIGHT\s*\?\s*([^:{}]*?)\s*:\s*([^{}]*?)\s*\}")


def resolve_theme_placeholders(html: str, mode: ThemeMode) -> str:
    """Replace each placeholder with the expression for ``mode``.

    Expressions are taken verbatim; the result is sanitized afterwards.
    Malformed or unterminated placeholders do not match and stay as they are.
    """
    group = 1 if mode is ThemeMode.LIGHT else 2
    return _PLACEHOLDER_RE.sub(lambda m: m.group(group).strip(), html)
