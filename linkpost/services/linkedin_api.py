# linkpost/services/linkedin_api.py
import logging
import time
from typing import Any, Dict, Optional, Tuple
from urllib.parse import urlencode, quote

import httpx
from linkpost.config import settings, CALLBACK_PATH, ConfigError
from linkpost.errors import ProviderError

logger = logging.getLogger(__name__)

AUTH_URL     = "https://www.linkedin.com/oauth/v2/authorization"
TOKEN_URL    = "https://www.linkedin.com/oauth/v2/accessToken"
USERINFO_URL = "https://api.linkedin.com/v2/userinfo"
UGC_URL      = "https://api.linkedin.com/v2/ugcPosts"

TIMEOUT = httpx.Timeout(30, connect=5)


def resolve_redirect_uri(origin_fallback: Optional[str] = None) -> str:
    """Explicit LINKEDIN_REDIRECT_URI wins; otherwise derive from an origin."""
    if settings.linkedin_redirect_uri:
        return settings.linkedin_redirect_uri
    base = (origin_fallback or settings.app_base_url or "").rstrip("/")
    if not base:
        raise ConfigError("LINKEDIN_REDIRECT_URI or APP_BASE_URL must be configured")
    return f"{base}{CALLBACK_PATH}"


def build_authorization_url(
    state: str,
    origin_fallback: Optional[str] = None,
    scopes: Optional[str] = None,
    redirect_uri: Optional[str] = None,
) -> str:
    params = {
        "response_type": "code",
        "client_id": settings.require("linkedin_client_id"),
        "redirect_uri": redirect_uri or resolve_redirect_uri(origin_fallback),
        "scope": scopes or settings.linkedin_scopes,
        "state": state,
    }
    qs = urlencode(params, quote_via=quote, safe=":/")
    return f"{AUTH_URL}?{qs}"


def log_request_id(resp: httpx.Response) -> None:
    req_id = resp.headers.get("x-restli-request-id")
    if req_id:
        logger.info("[linkedin] request id: %s", req_id)


def exchange_code_for_token(code: str, redirect_uri: Optional[str] = None) -> Dict[str, Any]:
    """One POST to the token endpoint. Authorization codes are single use, so no retry."""
    data = {
        "grant_type": "authorization_code",
        "code": code,
        "redirect_uri": redirect_uri or resolve_redirect_uri(),
        "client_id": settings.require("linkedin_client_id"),
        "client_secret": settings.require("linkedin_client_secret"),
    }
    with httpx.Client(timeout=TIMEOUT) as c:
        r = c.post(TOKEN_URL, data=data, headers={"Content-Type": "application/x-www-form-urlencoded"})
    log_request_id(r)
    if not r.is_success:
        logger.error("[linkedin] token exchange failed: %s", r.status_code)
        raise ProviderError("token exchange", r.status_code, r.text)
    return r.json()


def fetch_profile(access_token: str) -> Dict[str, Any]:
    """OpenID userinfo for the token owner: {"profile": {...}, "email": str | None}."""
    with httpx.Client(timeout=TIMEOUT) as c:
        r = c.get(USERINFO_URL, headers={"Authorization": f"Bearer {access_token}"})
    log_request_id(r)
    if not r.is_success:
        logger.error("[linkedin] userinfo failed: %s", r.status_code)
        raise ProviderError("profile fetch", r.status_code, r.text)
    profile = r.json()
    return {"profile": profile, "email": profile.get("email")}


def linkedin_request_with_retry(method: str, url: str, **kwargs) -> httpx.Response:
    max_attempts = 4
    backoff = 2
    for attempt in range(1, max_attempts + 1):
        try:
            with httpx.Client(timeout=TIMEOUT) as c:
                resp = c.request(method, url, **kwargs)
            log_request_id(resp)
            if resp.status_code in (429, 500, 502, 503, 504) and attempt < max_attempts:
                logger.warning("[linkedin] %s attempt %d got %d, retrying", url, attempt, resp.status_code)
                time.sleep(backoff * attempt)
                continue
            return resp
        except httpx.RequestError as e:
            logger.warning("[linkedin] request error: %s", e)
            if attempt < max_attempts:
                time.sleep(backoff * attempt)
                continue
            raise
    raise RuntimeError(f"LinkedIn API failed after {max_attempts} attempts")


def exchange_refresh_for_token(refresh_token: str) -> Dict[str, Any]:
    payload = {
        "grant_type": "refresh_token",
        "refresh_token": refresh_token,
        "client_id": settings.require("linkedin_client_id"),
        "client_secret": settings.require("linkedin_client_secret"),
    }
    resp = linkedin_request_with_retry(
        "POST", TOKEN_URL,
        data=payload,
        headers={"Content-Type": "application/x-www-form-urlencoded"},
    )
    if not resp.is_success:
        raise ProviderError("token refresh", resp.status_code, resp.text)
    return resp.json()


def post_text(access_token: str, author_urn: str, text: str) -> Tuple[bool, Any]:
    """Create a text share. Returns (True, response) or (False, error_info)."""
    payload = {
        "author": author_urn,
        "lifecycleState": "PUBLISHED",
        "specificContent": {
            "com.linkedin.ugc.ShareContent": {
                "shareCommentary": {"text": text},
                "shareMediaCategory": "NONE",
            }
        },
        "visibility": {"com.linkedin.ugc.MemberNetworkVisibility": "PUBLIC"},
    }
    try:
        with httpx.Client(timeout=60) as c:
            r = c.post(
                UGC_URL,
                headers={
                    "Authorization": f"Bearer {access_token}",
                    "Content-Type": "application/json",
                    "X-Restli-Protocol-Version": "2.0.0",
                },
                json=payload,
            )
    except httpx.HTTPError as e:
        logger.error("[linkedin] post_text error: %s", e)
        return False, {"exception": str(e)}

    logger.info("[linkedin] post_text status: %s", r.status_code)
    log_request_id(r)
    if r.status_code in (201, 202):
        return True, r
    error_info: Dict[str, Any] = {"status": r.status_code, "body": r.text}
    try:
        err_json = r.json()
        error_info["serviceErrorCode"] = err_json.get("serviceErrorCode")
        error_info["message"] = err_json.get("message")
    except ValueError:
        pass
    return False, error_info


def post_id_from_response(resp: Any) -> str:
    # LinkedIn returns the new share URN in a header
    headers = getattr(resp, "headers", None) or {}
    return headers.get("x-restli-id") or "unknown"


def person_urn(profile_id: str) -> str:
    return f"urn:li:person:{profile_id}"
