from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from linkpost.config import settings, ConfigError
from linkpost.errors import ProviderError
from linkpost.services import linkedin_api

_RealClient = httpx.Client


def use_transport(monkeypatch, handler):
    """Route every httpx.Client the module creates through `handler`."""
    calls = []

    def recording(request):
        calls.append(request)
        return handler(request)

    def factory(*args, **kwargs):
        kwargs["transport"] = httpx.MockTransport(recording)
        return _RealClient(*args, **kwargs)

    monkeypatch.setattr(linkedin_api.httpx, "Client", factory)
    return calls


def test_authorization_url_embeds_config_and_state():
    url = linkedin_api.build_authorization_url("st4te")
    assert url.startswith(linkedin_api.AUTH_URL + "?")
    qs = parse_qs(urlparse(url).query)
    assert qs["response_type"] == ["code"]
    assert qs["client_id"] == ["test-client-id"]
    assert qs["state"] == ["st4te"]
    assert qs["scope"] == ["openid profile email w_member_social"]
    assert qs["redirect_uri"] == ["http://testserver/api/auth/linkedin/callback"]


def test_authorization_url_is_deterministic():
    assert linkedin_api.build_authorization_url("a") == linkedin_api.build_authorization_url("a")


def test_explicit_redirect_uri_wins_over_origin(monkeypatch):
    monkeypatch.setattr(settings, "linkedin_redirect_uri", "https://app.example.com/cb")
    url = linkedin_api.build_authorization_url("s", origin_fallback="https://other.example.com")
    assert parse_qs(urlparse(url).query)["redirect_uri"] == ["https://app.example.com/cb"]


def test_origin_fallback_used_without_explicit_redirect():
    url = linkedin_api.build_authorization_url("s", origin_fallback="https://web.example.com/")
    assert parse_qs(urlparse(url).query)["redirect_uri"] == ["https://web.example.com/api/auth/linkedin/callback"]


def test_missing_client_id_fails(monkeypatch):
    monkeypatch.setattr(settings, "linkedin_client_id", "")
    with pytest.raises(ConfigError):
        linkedin_api.build_authorization_url("s")


def test_exchange_code_posts_form_once(monkeypatch):
    calls = use_transport(monkeypatch, lambda req: httpx.Response(200, json={"access_token": "T", "expires_in": 60}))
    data = linkedin_api.exchange_code_for_token("the-code")
    assert data["access_token"] == "T"
    assert len(calls) == 1
    body = parse_qs(calls[0].content.decode())
    assert body["grant_type"] == ["authorization_code"]
    assert body["code"] == ["the-code"]
    assert body["client_secret"] == ["test-client-secret"]


def test_exchange_code_error_is_surfaced_without_retry(monkeypatch):
    calls = use_transport(monkeypatch, lambda req: httpx.Response(503, text='{"error":"temporarily_unavailable"}'))
    with pytest.raises(ProviderError) as exc:
        linkedin_api.exchange_code_for_token("the-code")
    assert exc.value.status_code == 503
    assert "temporarily_unavailable" in exc.value.body
    assert len(calls) == 1


def test_fetch_profile_uses_bearer_token(monkeypatch):
    calls = use_transport(monkeypatch, lambda req: httpx.Response(200, json={"sub": "P", "email": "e@x.com"}))
    info = linkedin_api.fetch_profile("T")
    assert info == {"profile": {"sub": "P", "email": "e@x.com"}, "email": "e@x.com"}
    assert calls[0].headers["Authorization"] == "Bearer T"


def test_fetch_profile_error(monkeypatch):
    use_transport(monkeypatch, lambda req: httpx.Response(401, text="expired"))
    with pytest.raises(ProviderError):
        linkedin_api.fetch_profile("T")


def test_post_text_reports_share_id(monkeypatch):
    use_transport(monkeypatch, lambda req: httpx.Response(201, headers={"x-restli-id": "urn:li:share:9"}))
    ok, resp = linkedin_api.post_text("T", "urn:li:person:P", "hello")
    assert ok
    assert linkedin_api.post_id_from_response(resp) == "urn:li:share:9"


def test_post_text_returns_error_info(monkeypatch):
    use_transport(monkeypatch, lambda req: httpx.Response(403, json={"serviceErrorCode": 100, "message": "denied"}))
    ok, info = linkedin_api.post_text("T", "urn:li:person:P", "hello")
    assert not ok
    assert info["status"] == 403
    assert info["message"] == "denied"


def test_resolved_redirect_uri_is_used_verbatim():
    url = linkedin_api.build_authorization_url("s", redirect_uri="https://proxy.example.com/api/auth/linkedin/callback")
    assert parse_qs(urlparse(url).query)["redirect_uri"] == ["https://proxy.example.com/api/auth/linkedin/callback"]
