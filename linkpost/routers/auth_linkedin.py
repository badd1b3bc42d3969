# linkpost/routers/auth_linkedin.py
import logging
import secrets
from typing import Optional
from urllib.parse import quote, unquote

from fastapi import APIRouter, Cookie, Request
from fastapi.responses import HTMLResponse, JSONResponse

from linkpost.config import settings
from linkpost.errors import ProviderError
from linkpost.services import callback_page
import linkpost.services.linkedin_api as linkedin_api

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth/linkedin", tags=["linkedin-auth"])

STATE_COOKIE = "lp_li_state"
REDIRECT_COOKIE = "lp_li_redirect"
STATE_TTL_SECONDS = 600

def _set_flow_cookie(resp, name: str, value: str) -> None:
    resp.set_cookie(
        name, value,
        max_age=STATE_TTL_SECONDS, path="/", httponly=True, samesite="lax",
        secure=settings.is_production,
    )

@router.get("")
def start(request: Request, action: Optional[str] = None):
    if action != "start":
        return JSONResponse(status_code=400, content={"error": "Unsupported action"})
    state = secrets.token_urlsafe(24)
    redirect_uri = linkedin_api.resolve_redirect_uri(request.headers.get("origin"))
    url = linkedin_api.build_authorization_url(state, redirect_uri=redirect_uri)
    resp = JSONResponse(content={"url": url})
    _set_flow_cookie(resp, STATE_COOKIE, state)
    # the token exchange must repeat the exact redirect_uri of the authorization request
    _set_flow_cookie(resp, REDIRECT_COOKIE, quote(redirect_uri, safe=""))
    return resp

@router.get("/callback", response_class=HTMLResponse)
def callback(
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    error_description: Optional[str] = None,
    lp_li_state: Optional[str] = Cookie(None),
    lp_li_redirect: Optional[str] = Cookie(None),
):
    if error:
        logger.warning("[linkedin] provider returned error: %s (%s)", error, error_description)
        return callback_page.error_page(error, description=error_description)

    if not code or not state:
        return callback_page.error_page("missing_params")

    if not lp_li_state or not secrets.compare_digest(lp_li_state, state):
        logger.warning("[linkedin] state mismatch (cookie present: %s)", bool(lp_li_state))
        return callback_page.error_page("invalid_state")

    try:
        redirect_uri = unquote(lp_li_redirect) if lp_li_redirect else linkedin_api.resolve_redirect_uri()
        token = linkedin_api.exchange_code_for_token(code, redirect_uri=redirect_uri)
        access_token = token.get("access_token")
        if not access_token:
            raise ProviderError("token exchange", 200, "response carried no access_token")
        info = linkedin_api.fetch_profile(access_token)
    except Exception as e:
        logger.exception("[linkedin] OAuth callback failed")
        details = None
        if isinstance(e, ProviderError) and not settings.is_production:
            details = e.body
        return callback_page.error_page(
            "oauth_failed", status_code=500,
            message=str(e) or "OAuth failure", details=details,
        )

    data = {
        "accessToken": access_token,
        "expiresIn": token.get("expires_in"),
        "scope": token.get("scope") or settings.linkedin_scopes,
        "profile": info["profile"],
        "email": info["email"],
    }
    if token.get("refresh_token"):
        data["refreshToken"] = token["refresh_token"]

    resp = callback_page.success_page(data)
    resp.delete_cookie(STATE_COOKIE, path="/")
    resp.delete_cookie(REDIRECT_COOKIE, path="/")
    logger.info("[linkedin] OAuth callback succeeded")
    return resp
