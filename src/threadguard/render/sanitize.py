"""XSS and style sanitization for untrusted email bodies.

Two stages, both driven by one immutable :class:`SanitizationPolicy`:

1. a generic allowlist pass (bleach) over tags, attributes and URI schemes;
2. a visitor pass (BeautifulSoup) over the surviving tree that applies the
   tag-aware attribute allowlist, refines inline ``style`` declarations and
   routes every image source through the image proxy.

Nothing is registered globally, so concurrent renders with different
policies cannot see each other's rules.
"""

from __future__ import annotations

import html as _html
import logging
import re
from decimal import Decimal
from typing import Callable, Iterable, Optional

import bleach
from bleach.css_sanitizer import CSSSanitizer
from bs4 import BeautifulSoup, Tag

from threadguard.render.policy import DEFAULT_POLICY, SanitizationPolicy
from threadguard.utils.text import clean_html

logger = logging.getLogger(__name__)

UrlTransform = Callable[[str], str]

# Removed together with their content instead of being unwrapped to text
_INERT_CONTAINERS = ["script", "style", "template", "noscript", "iframe", "object", "title", "head"]

_URI_ATTRIBUTES = frozenset({"href", "src"})

_LENGTH_RE = re.compile(r"^(-?\d+(?:\.\d+)?)([a-z%]*)$", re.IGNORECASE | re.ASCII)
_BORDER_MIN = Decimal(0)
_BORDER_MAX = Decimal(20)


# ---- Style refinement ----

def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        return value[1:-1].strip()
    return value


def _clamp_lengths(value: str) -> str:
    """Clamp every numeric length in a border value to [0, 20]."""
    parts = []
    for token in value.split():
        m = _LENGTH_RE.match(token)
        if m:
            number = max(_BORDER_MIN, min(_BORDER_MAX, Decimal(m.group(1))))
            token = f"{int(number)}{m.group(2)}"
        parts.append(token)
    return " ".join(parts)


def refine_style(style: str, allowed_properties: Iterable[str]) -> str:
    """Filter a ``style`` attribute value down to allowed declarations.

    Declarations keep their original order and are joined with ``"; "``.
    Anything malformed is dropped silently.
    """
    allowed = allowed_properties if isinstance(allowed_properties, frozenset) else frozenset(allowed_properties)
    kept: list[str] = []
    for declaration in style.split(";"):
        prop, sep, value = declaration.partition(":")
        prop = prop.strip().lower()
        value = _unquote(value.strip())
        if not sep or not prop or not value:
            continue
        if prop not in allowed:
            continue
        if prop == "border" or prop.startswith("border-"):
            value = _clamp_lengths(value)
        kept.append(f"{prop}: {value}")
    return "; ".join(kept)


# ---- Stage 1: generic allowlist ----

def _drop_inert_containers(raw_html: str) -> str:
    soup = BeautifulSoup(raw_html, "html.parser")
    for tag in soup.find_all(_INERT_CONTAINERS):
        tag.decompose()
    return str(soup)


def _allowlist_pass(raw_html: str, policy: SanitizationPolicy) -> str:
    return bleach.clean(
        _drop_inert_containers(raw_html),
        tags=policy.tags,
        attributes={tag: sorted(names) for tag, names in policy.attributes.items()},
        protocols=policy.protocols,
        css_sanitizer=CSSSanitizer(
            allowed_css_properties=policy.css_properties,
            allowed_svg_properties=frozenset(),
        ),
        strip=True,
        strip_comments=True,
    )


# ---- Stage 2: tree visitor ----

class PolicyRefiner:
    """Walks a sanitized fragment and enforces the per-element rules."""

    def __init__(self, policy: SanitizationPolicy, image_proxy: Optional[UrlTransform] = None) -> None:
        self.policy = policy
        self.image_proxy = image_proxy

    def refine(self, fragment: str) -> str:
        soup = BeautifulSoup(fragment, "html.parser", multi_valued_attributes=None)
        for element in soup.find_all(True):
            self.visit(element)
        return str(soup)

    def visit(self, element: Tag) -> None:
        if element.name.lower() not in self.policy.tags:
            element.unwrap()
            return
        self._refine_attributes(element)
        if element.name.lower() == "img":
            self._rewrite_image(element)

    def _refine_attributes(self, element: Tag) -> None:
        allowed = self.policy.allowed_attributes_for(element.name)
        for name in list(element.attrs):
            key = name.lower()
            value = element.attrs[name]
            if key not in allowed:
                del element.attrs[name]
            elif key == "style":
                refined = refine_style(value, self.policy.css_properties)
                if refined:
                    element.attrs[name] = refined
                else:
                    del element.attrs[name]
            elif key in _URI_ATTRIBUTES and not self.policy.uri_allowed(value):
                del element.attrs[name]

    def _rewrite_image(self, element: Tag) -> None:
        src = element.get("src")
        if src and self.image_proxy is not None:
            element["src"] = self.image_proxy(src)


def sanitize(
    raw_html: str,
    policy: SanitizationPolicy = DEFAULT_POLICY,
    image_proxy: Optional[UrlTransform] = None,
) -> str:
    """Return markup that is safe to inject into the live document.

    Never raises for malformed input: if the sanitizer itself fails the body
    degrades to escaped text.
    """
    if not raw_html:
        return ""
    try:
        return PolicyRefiner(policy, image_proxy).refine(_allowlist_pass(raw_html, policy))
    except Exception:
        logger.warning("Sanitizer failed; rendering body as escaped text", exc_info=True)
        return _html.escape(clean_html(raw_html))
