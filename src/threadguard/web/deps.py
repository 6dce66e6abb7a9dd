"""Shared dependencies for web routes."""

from __future__ import annotations

from pathlib import Path
from typing import AsyncIterator

from jinja2 import Environment, FileSystemLoader

from threadguard.client.mail_api import MailApiClient
from threadguard.core.config import load_config
from threadguard.core.models import AppConfig
from threadguard.utils.proxy import ImageProxy
from threadguard.utils.text import truncate

_TEMPLATES_DIR = Path(__file__).parent.parent.parent.parent / "templates" / "web"

_env = Environment(
    loader=FileSystemLoader(str(_TEMPLATES_DIR)),
    autoescape=True,
)

_env.filters["truncate_text"] = lambda s, n=120: truncate(s or "", n)


def get_config() -> AppConfig:
    return load_config()


def get_image_proxy() -> ImageProxy:
    return ImageProxy(get_config().proxy.image_proxy_url)


async def get_api_client() -> AsyncIterator[MailApiClient]:
    client = MailApiClient(get_config().api)
    try:
        yield client
    finally:
        await client.aclose()


def render(template_name: str, **ctx) -> str:
    tpl = _env.get_template(template_name)
    return tpl.render(**ctx)
