"""Image proxy URL rewriting."""

from __future__ import annotations

from urllib.parse import quote, urlparse


class ImageProxy:
    """Rewrite third-party image URLs so the viewer never loads them directly.

    Instances are plain ``url -> url`` callables.
    """

    def __init__(self, base_url: str) -> None:
        self.base_url = base_url.rstrip("/")

    def __call__(self, url: str) -> str:
        url = url.strip()
        if self.is_proxied(url):
            return url
        scheme = urlparse(url).scheme.lower()
        # cid: parts and relative paths are served by the mail backend itself
        if scheme not in ("http", "https") and not url.startswith("//"):
            return url
        return f"{self.base_url}?url={quote(url, safe='')}"

    def is_proxied(self, url: str) -> bool:
        return url.startswith(f"{self.base_url}?url=")
