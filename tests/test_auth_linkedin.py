from unittest.mock import patch
from urllib.parse import parse_qs, urlparse

from conftest import page_payload
from linkpost.config import settings
from linkpost.errors import ProviderError

CALLBACK = "/api/auth/linkedin/callback"


def start_state(client) -> str:
    """Run the start step so the client holds a real state cookie."""
    resp = client.get("/api/auth/linkedin", params={"action": "start"})
    return resp.cookies["lp_li_state"]


def test_start_returns_url_and_sets_state_cookie(client):
    resp = client.get("/api/auth/linkedin", params={"action": "start"})
    assert resp.status_code == 200

    state = resp.cookies.get("lp_li_state")
    assert state
    qs = parse_qs(urlparse(resp.json()["url"]).query)
    assert qs["state"] == [state]
    assert qs["client_id"] == ["test-client-id"]
    assert qs["redirect_uri"] == ["http://testserver/api/auth/linkedin/callback"]

    cookie_header = resp.headers["set-cookie"].lower()
    assert "httponly" in cookie_header
    assert "samesite=lax" in cookie_header
    assert "max-age=600" in cookie_header


def test_start_rejects_unknown_action(client):
    resp = client.get("/api/auth/linkedin", params={"action": "bogus"})
    assert resp.status_code == 400
    assert resp.json() == {"error": "Unsupported action"}


def test_callback_forwards_provider_error(client):
    resp = client.get(CALLBACK, params={"error": "access_denied", "error_description": "user said no"})
    assert resp.status_code == 400
    assert '"error": "access_denied"' in resp.text
    payload = page_payload(resp.text)
    assert payload["kind"] == "oauth-result"
    assert payload["description"] == "user said no"
    assert "window.opener.postMessage" in resp.text


def test_callback_missing_params(client):
    resp = client.get(CALLBACK, params={"code": "abc"})
    assert resp.status_code == 400
    assert page_payload(resp.text)["error"] == "missing_params"


@patch("linkpost.services.linkedin_api.exchange_code_for_token")
def test_callback_state_mismatch_never_exchanges(mock_exchange, client):
    start_state(client)
    resp = client.get(CALLBACK, params={"code": "abc", "state": "forged-state"})
    assert resp.status_code == 400
    assert page_payload(resp.text)["error"] == "invalid_state"
    mock_exchange.assert_not_called()


@patch("linkpost.services.linkedin_api.exchange_code_for_token")
def test_callback_without_state_cookie_is_invalid(mock_exchange, client):
    resp = client.get(CALLBACK, params={"code": "abc", "state": "s1"})
    assert resp.status_code == 400
    assert page_payload(resp.text)["error"] == "invalid_state"
    mock_exchange.assert_not_called()


@patch("linkpost.services.linkedin_api.fetch_profile")
@patch("linkpost.services.linkedin_api.exchange_code_for_token")
def test_callback_success_posts_tokens_to_opener(mock_exchange, mock_profile, client):
    mock_exchange.return_value = {"access_token": "T", "expires_in": 5184000, "refresh_token": "R"}
    mock_profile.return_value = {"profile": {"sub": "P", "email": "e@x.com"}, "email": "e@x.com"}

    state = start_state(client)
    resp = client.get(CALLBACK, params={"code": "abc", "state": state})
    assert resp.status_code == 200

    mock_exchange.assert_called_once_with("abc", redirect_uri="http://testserver/api/auth/linkedin/callback")
    mock_profile.assert_called_once_with("T")
    payload = page_payload(resp.text)
    assert payload["success"] is True
    assert payload["accessToken"] == "T"
    assert payload["refreshToken"] == "R"
    assert payload["expiresIn"] == 5184000
    assert payload["profile"] == {"sub": "P", "email": "e@x.com"}
    assert payload["email"] == "e@x.com"


@patch("linkpost.services.linkedin_api.fetch_profile")
@patch("linkpost.services.linkedin_api.exchange_code_for_token")
def test_callback_omits_refresh_token_when_absent(mock_exchange, mock_profile, client):
    mock_exchange.return_value = {"access_token": "T", "expires_in": 60}
    mock_profile.return_value = {"profile": {"sub": "P"}, "email": None}
    state = start_state(client)
    resp = client.get(CALLBACK, params={"code": "abc", "state": state})
    assert resp.status_code == 200
    assert "refreshToken" not in page_payload(resp.text)


@patch("linkpost.services.linkedin_api.exchange_code_for_token")
def test_callback_upstream_failure_is_500_with_details(mock_exchange, client):
    mock_exchange.side_effect = ProviderError("token exchange", 401, '{"error":"invalid_grant"}')
    state = start_state(client)
    resp = client.get(CALLBACK, params={"code": "abc", "state": state})
    assert resp.status_code == 500
    payload = page_payload(resp.text)
    assert payload["error"] == "oauth_failed"
    assert "invalid_grant" in payload["details"]


@patch("linkpost.services.linkedin_api.exchange_code_for_token")
def test_callback_hides_upstream_body_in_production(mock_exchange, client, monkeypatch):
    state = start_state(client)
    monkeypatch.setattr(settings, "app_env", "production")
    mock_exchange.side_effect = ProviderError("token exchange", 401, '{"error":"invalid_grant"}')
    resp = client.get(CALLBACK, params={"code": "abc", "state": state})
    assert resp.status_code == 500
    assert "invalid_grant" not in resp.text


def test_callback_escapes_script_breakout(client):
    evil = "</script><script>alert(1)</script>"
    resp = client.get(CALLBACK, params={"error": evil})
    assert resp.status_code == 400
    assert "<script>alert(1)" not in resp.text
    assert page_payload(resp.text)["error"] == evil


def authorize_redirect(resp) -> str:
    return parse_qs(urlparse(resp.json()["url"]).query)["redirect_uri"][0]


@patch("linkpost.services.linkedin_api.fetch_profile")
@patch("linkpost.services.linkedin_api.exchange_code_for_token")
def test_exchange_repeats_redirect_uri_from_base_url(mock_exchange, mock_profile, client, monkeypatch):
    mock_exchange.return_value = {"access_token": "T", "expires_in": 60}
    mock_profile.return_value = {"profile": {"sub": "P"}, "email": None}
    monkeypatch.setattr(settings, "app_base_url", "https://app.example.com")

    start = client.get("/api/auth/linkedin", params={"action": "start"})
    expected = authorize_redirect(start)
    assert expected == "https://app.example.com/api/auth/linkedin/callback"

    resp = client.get(CALLBACK, params={"code": "abc", "state": start.cookies["lp_li_state"]})
    assert resp.status_code == 200
    assert mock_exchange.call_args.kwargs["redirect_uri"] == expected


@patch("linkpost.services.linkedin_api.fetch_profile")
@patch("linkpost.services.linkedin_api.exchange_code_for_token")
def test_exchange_repeats_redirect_uri_from_origin(mock_exchange, mock_profile, client):
    mock_exchange.return_value = {"access_token": "T", "expires_in": 60}
    mock_profile.return_value = {"profile": {"sub": "P"}, "email": None}

    start = client.get("/api/auth/linkedin", params={"action": "start"}, headers={"Origin": "http://localhost:3000"})
    expected = authorize_redirect(start)
    assert expected == "http://localhost:3000/api/auth/linkedin/callback"

    resp = client.get(CALLBACK, params={"code": "abc", "state": start.cookies["lp_li_state"]})
    assert resp.status_code == 200
    assert mock_exchange.call_args.kwargs["redirect_uri"] == expected
    assert "lp_li_redirect" in resp.headers.get("set-cookie", "")


@patch("linkpost.services.linkedin_api.fetch_profile")
@patch("linkpost.services.linkedin_api.exchange_code_for_token")
def test_exchange_without_redirect_cookie_uses_configured_uri(mock_exchange, mock_profile, client, monkeypatch):
    mock_exchange.return_value = {"access_token": "T", "expires_in": 60}
    mock_profile.return_value = {"profile": {"sub": "P"}, "email": None}
    state = start_state(client)
    client.cookies.delete("lp_li_redirect")
    monkeypatch.setattr(settings, "app_base_url", "https://app.example.com")

    resp = client.get(CALLBACK, params={"code": "abc", "state": state})
    assert resp.status_code == 200
    assert mock_exchange.call_args.kwargs["redirect_uri"] == "https://app.example.com/api/auth/linkedin/callback"


def test_auth_router_exposes_no_config_details(client):
    assert client.get("/api/auth/linkedin/me").status_code in (404, 405)
