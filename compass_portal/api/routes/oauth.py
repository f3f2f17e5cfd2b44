"""OAuth landing pages the backend redirects the authorization popup to."""

import logging
from pathlib import Path

from fastapi import APIRouter, Query, Request
from fastapi.responses import HTMLResponse
from fastapi.templating import Jinja2Templates

from compass_portal.ui.popup import PopupRegistry

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/oauth", tags=["oauth"])
templates = Jinja2Templates(directory=str(Path(__file__).resolve().parents[2] / "templates"))

DEFAULT_ERROR_MESSAGE = "Authorization was not completed."


def _registry(request: Request) -> PopupRegistry:
    return request.app.state.popups


def _result_page(request: Request, title: str, message: str, succeeded: bool):
    return templates.TemplateResponse(
        request,
        "oauth_result.html",
        {
            "app_name": request.app.state.settings.app_name,
            "title": title,
            "message": message,
            "succeeded": succeeded,
        },
    )


@router.get("/success", response_class=HTMLResponse)
async def oauth_success(request: Request, state: str | None = Query(default=None)):
    """Mark the popup for ``state`` as closed."""
    matched = _registry(request).close(state, result="success")
    logger.info(f"OAuth success callback for state {state} (matched={matched})")
    return _result_page(
        request,
        "Authorization complete",
        "Compass now has delegated access to this environment.",
        succeeded=True,
    )


@router.get("/error", response_class=HTMLResponse)
async def oauth_error(request: Request, message: str | None = Query(default=None)):
    """Close every pending popup and show the backend's message."""
    text = message or DEFAULT_ERROR_MESSAGE
    closed = _registry(request).close_all(result="error", message=text)
    logger.warning(f"OAuth error callback closed {closed} popup(s): {text}")
    return _result_page(request, "Authorization failed", text, succeeded=False)
