"""Turn a stored message body into markup for the conversation view."""

from __future__ import annotations

import html
from typing import Optional

from threadguard.core.models import ContentKind, ThemeMode
from threadguard.render.policy import DEFAULT_POLICY, SanitizationPolicy
from threadguard.render.sanitize import UrlTransform, sanitize
from threadguard.render.theme import resolve_theme_placeholders


def render_plain(text: str) -> str:
    """Literal, pre-formatted text. No markup in ``text`` is interpreted."""
    return f'<pre class="message-body plain">{html.escape(text or "")}</pre>'


def render_body(
    body: str,
    content_kind: ContentKind,
    theme: ThemeMode = ThemeMode.LIGHT,
    policy: SanitizationPolicy = DEFAULT_POLICY,
    image_proxy: Optional[UrlTransform] = None,
) -> str:
    """Render a message body.

    Plain text bypasses sanitization entirely. HTML has its theme
    placeholders resolved first and is then sanitized under ``policy``.
    """
    if content_kind is ContentKind.PLAIN:
        return render_plain(body)
    resolved = resolve_theme_placeholders(body or "", theme)
    return sanitize(resolved, policy, image_proxy)
