"""JSON endpoint that renders one message body."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from threadguard.core.models import ContentKind, ThemeMode
from threadguard.render.body import render_body
from threadguard.utils.proxy import ImageProxy
from threadguard.web.deps import get_image_proxy

router = APIRouter()


class RenderRequest(BaseModel):
    body: str
    content_kind: ContentKind = ContentKind.HTML
    theme: ThemeMode = ThemeMode.LIGHT


class RenderResponse(BaseModel):
    html: str


@router.post("/render", response_model=RenderResponse)
def render_message(req: RenderRequest, proxy: ImageProxy = Depends(get_image_proxy)) -> RenderResponse:
    return RenderResponse(html=render_body(req.body, req.content_kind, req.theme, image_proxy=proxy))
