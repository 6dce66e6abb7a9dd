"""Allowlist policy for untrusted email bodies."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterable, Mapping

WILDCARD = "*"

# Tags safe for rendering third-party mail inside the conversation view
_ALLOWED_TAGS = [
    "a", "abbr", "b", "blockquote", "br", "caption", "center", "code",
    "div", "em", "font", "h1", "h2", "h3", "h4", "h5", "h6", "hr", "i",
    "img", "li", "ol", "p", "pre", "s", "small", "span", "strong",
    "sub", "sup", "table", "tbody", "td", "tfoot", "th", "thead", "tr",
    "u", "ul",
]

_ALLOWED_ATTRIBUTES = {
    WILDCARD: ["style", "class", "dir", "align", "title"],
    "a": ["href", "name", "target", "rel"],
    "img": ["src", "alt", "width", "height"],
    "font": ["color", "face", "size"],
    "table": ["width", "border", "cellpadding", "cellspacing", "bgcolor"],
    "td": ["colspan", "rowspan", "width", "height", "valign", "bgcolor"],
    "th": ["colspan", "rowspan", "width", "height", "valign", "bgcolor"],
    "tr": ["valign", "bgcolor"],
    "ol": ["start", "type"],
    "abbr": ["title"],
}

# No positioning, no background images, no content injection
_ALLOWED_CSS_PROPERTIES = [
    "color", "background-color",
    "font-family", "font-size", "font-style", "font-weight",
    "text-align", "text-decoration", "text-transform", "line-height", "letter-spacing",
    "vertical-align", "white-space",
    "margin", "margin-top", "margin-right", "margin-bottom", "margin-left",
    "padding", "padding-top", "padding-right", "padding-bottom", "padding-left",
    "border", "border-top", "border-right", "border-bottom", "border-left",
    "border-color", "border-style", "border-width", "border-radius", "border-collapse",
    "width", "max-width", "min-width", "height", "max-height", "min-height",
    "list-style-type",
]

_ALLOWED_PROTOCOLS = ["http", "https", "mailto", "cid"]


@dataclass(frozen=True)
class SanitizationPolicy:
    """Immutable allowlist configuration.

    Attribute allowances for a tag are always the union of its own entry and
    the wildcard entry.
    """

    tags: frozenset[str]
    attributes: Mapping[str, frozenset[str]]
    css_properties: frozenset[str]
    protocols: frozenset[str] = field(default_factory=lambda: frozenset(_ALLOWED_PROTOCOLS))

    @classmethod
    def build(
        cls,
        tags: Iterable[str],
        attributes: Mapping[str, Iterable[str]],
        css_properties: Iterable[str],
        protocols: Iterable[str] = _ALLOWED_PROTOCOLS,
    ) -> "SanitizationPolicy":
        return cls(
            tags=frozenset(t.lower() for t in tags),
            attributes={tag.lower(): frozenset(a.lower() for a in names) for tag, names in attributes.items()},
            css_properties=frozenset(p.lower() for p in css_properties),
            protocols=frozenset(p.lower() for p in protocols),
        )

    def allowed_attributes_for(self, tag: str) -> frozenset[str]:
        tag = tag.lower()
        return self.attributes.get(tag, frozenset()) | self.attributes.get(WILDCARD, frozenset())

    @property
    def uri_pattern(self) -> re.Pattern[str]:
        """Match URIs with an allowed scheme, or no scheme at all (relative)."""
        schemes = "|".join(sorted(re.escape(p) for p in self.protocols))
        return re.compile(
            rf"^(?:(?:{schemes}):|[^a-z]|[a-z+.\-]+(?:[^a-z+.\-:]|$))",
            re.IGNORECASE,
        )

    def uri_allowed(self, value: str) -> bool:
        # Control characters and whitespace are ignored by browsers when parsing schemes
        compact = re.sub(r"[\x00-\x20]", "", value)
        return bool(self.uri_pattern.match(compact))


DEFAULT_POLICY = SanitizationPolicy.build(
    tags=_ALLOWED_TAGS,
    attributes=_ALLOWED_ATTRIBUTES,
    css_properties=_ALLOWED_CSS_PROPERTIES,
)
