"""Read-only thread page with sanitized message bodies."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import HTMLResponse

from threadguard.client.mail_api import MailApiClient
from threadguard.core.errors import MailApiError
from threadguard.core.models import AppConfig, ThemeMode
from threadguard.thread.view import ConversationView
from threadguard.utils.proxy import ImageProxy
from threadguard.web.deps import get_api_client, get_config, get_image_proxy, render

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/{thread_id}", response_class=HTMLResponse)
async def thread_page(
    thread_id: str,
    theme: Optional[ThemeMode] = None,
    client: MailApiClient = Depends(get_api_client),
    cfg: AppConfig = Depends(get_config),
    proxy: ImageProxy = Depends(get_image_proxy),
):
    view = ConversationView(
        client,
        identity=cfg.identity.address,
        theme=theme or cfg.render.default_theme,
        image_proxy=proxy,
    )
    try:
        await view.load(thread_id)
    except MailApiError as exc:
        logger.warning("Could not load thread %s: %s", thread_id, exc)
        raise HTTPException(status_code=502, detail="Thread unavailable")
    # Read markers go out before the client closes
    await view.drain()

    entries = [
        {
            "message": m,
            "html": view.render(m),
            "expanded": m.id in view.expanded,
            "iq": view.iq_for(m),
        }
        for m in view.messages
    ]
    return render("thread.html", thread_id=thread_id, entries=entries, theme=view.theme.value)
