"""ApiClient against httpx.MockTransport: refresh-once, envelopes, token persistence."""
import json
import os
import stat

import httpx
import pytest

from apps.client.api import ApiClient, ApiProtocolError
from apps.client.token_store import FileTokenStore, MemoryTokenStore

BASE = "http://api.test/api"


def _client(handler, **tokens):
    store = MemoryTokenStore()
    if tokens:
        store.set_tokens(tokens["access"], tokens["refresh"])
    return ApiClient(BASE, store, transport=httpx.MockTransport(handler))


def test_401_triggers_one_refresh_and_one_retry():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append((request.url.path, request.headers.get("Authorization")))
        if request.url.path == "/api/auth/refresh":
            assert json.loads(request.content) == {"refreshToken": "r1"}
            return httpx.Response(200, json={"accessToken": "a2", "refreshToken": "r2"})
        if request.headers.get("Authorization") == "Bearer a2":
            return httpx.Response(200, json=[{"id": "x"}])
        return httpx.Response(401, json={"error": "Invalid or expired token"})

    api = _client(handler, access="a1", refresh="r1")
    response = api.get_activities()
    assert response.ok
    assert response.data == [{"id": "x"}]
    assert calls == [
        ("/api/activities", "Bearer a1"),
        ("/api/auth/refresh", None),
        ("/api/activities", "Bearer a2"),
    ]
    assert api.tokens.get_access_token() == "a2"
    assert api.tokens.get_refresh_token() == "r2"


def test_failed_refresh_returns_original_401():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.path)
        if request.url.path == "/api/auth/refresh":
            return httpx.Response(401, json={"error": "Invalid refresh token"})
        return httpx.Response(401, json={"error": "Invalid or expired token"})

    api = _client(handler, access="a1", refresh="r1")
    response = api.get_summaries()
    assert response.error == "Invalid or expired token"
    assert response.status_code == 401
    assert calls == ["/api/activities/summaries", "/api/auth/refresh"]
    assert api.tokens.get_access_token() == "a1"


def test_second_401_after_refresh_is_not_retried_again():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.path)
        if request.url.path == "/api/auth/refresh":
            return httpx.Response(200, json={"accessToken": "a2", "refreshToken": "r2"})
        return httpx.Response(401, json={"error": "Invalid or expired token"})

    response = _client(handler, access="a1", refresh="r1").get_summaries()
    assert response.status_code == 401
    assert calls.count("/api/auth/refresh") == 1
    assert len(calls) == 3


def test_no_refresh_without_access_token():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.path)
        return httpx.Response(401, json={"error": "Access token required"})

    response = _client(handler).get_activities()
    assert response.error == "Access token required"
    assert calls == ["/api/activities"]


def test_network_error_becomes_error_response():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    response = _client(handler, access="a1", refresh="r1").get_activities()
    assert response.error == "Network error"
    assert response.data is None


def test_error_status_without_json_body():
    response = _client(lambda r: httpx.Response(502, text="Bad gateway")).get_summaries()
    assert response.error == "Request failed"
    assert response.status_code == 502


def test_malformed_success_body_raises_protocol_error():
    api = _client(lambda r: httpx.Response(200, text="<html>"), access="a1", refresh="r1")
    with pytest.raises(ApiProtocolError):
        api.get_activities()


def test_login_stores_tokens_and_logout_clears_them():
    def handler(request: httpx.Request) -> httpx.Response:
        assert "Authorization" not in request.headers
        return httpx.Response(200, json={"user": {"id": "u1"}, "accessToken": "a1", "refreshToken": "r1"})

    api = _client(handler)
    assert api.login("alice@example.com", "Passw0rd!").ok
    assert api.tokens.get_access_token() == "a1"
    assert api.tokens.get_refresh_token() == "r1"
    api.logout()
    assert api.tokens.get_access_token() is None
    assert api.tokens.get_refresh_token() is None


def test_failed_login_does_not_store_tokens():
    api = _client(lambda r: httpx.Response(401, json={"error": "Invalid credentials"}))
    response = api.login("alice@example.com", "nope")
    assert response.error == "Invalid credentials"
    assert api.tokens.get_access_token() is None


def test_sync_sends_stored_youtube_tokens():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen.update(json.loads(request.content))
        return httpx.Response(200, json={"github": 0, "youtube": 1, "local": 0})

    api = _client(handler, access="a1", refresh="r1")
    api.tokens.set_youtube_tokens({"access_token": "yt"})
    assert api.sync_activities().ok
    assert seen == {"youtubeTokens": {"access_token": "yt"}}


def test_track_video_without_youtube_tokens_skips_request():
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    response = _client(handler, access="a1", refresh="r1").track_youtube_video("abc")
    assert response.error == "YouTube not connected"


def test_exchange_code_stores_youtube_tokens():
    api = _client(lambda r: httpx.Response(200, json={"tokens": {"access_token": "yt"}}), access="a1", refresh="r1")
    assert api.exchange_youtube_code("code").ok
    assert api.tokens.get_youtube_tokens() == {"access_token": "yt"}


def test_file_token_store_persists_with_private_mode(tmp_path):
    path = tmp_path / "cfg" / "tokens.json"
    store = FileTokenStore(path)
    store.set_tokens("a1", "r1")
    store.set_youtube_tokens({"access_token": "yt"})

    reopened = FileTokenStore(path)
    assert reopened.get_access_token() == "a1"
    assert reopened.get_youtube_tokens() == {"access_token": "yt"}
    assert stat.S_IMODE(os.stat(path).st_mode) == 0o600

    reopened.clear_tokens()
    assert FileTokenStore(path).get_refresh_token() is None
    assert FileTokenStore(path).get_youtube_tokens() == {"access_token": "yt"}


def test_file_token_store_treats_corrupt_file_as_empty(tmp_path):
    path = tmp_path / "tokens.json"
    path.write_text("{not json")
    assert FileTokenStore(path).get_access_token() is None


def test_base_url_comes_from_environment_at_construction(monkeypatch):
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        return httpx.Response(200, json=[])

    monkeypatch.setenv("PERSONAL_ASSISTANT_API_URL", "http://other.test/v2/")
    api = ApiClient(token_store=MemoryTokenStore(), transport=httpx.MockTransport(handler))
    assert api.base_url == "http://other.test/v2"
    api.get_summaries()
    assert seen == ["http://other.test/v2/activities/summaries"]


def test_default_base_url_without_environment(monkeypatch):
    monkeypatch.delenv("PERSONAL_ASSISTANT_API_URL", raising=False)
    assert ApiClient().base_url == "http://localhost:3000/api"


def test_refreshed_youtube_tokens_from_sync_and_track_are_stored():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/api/activities/sync":
            return httpx.Response(200, json={"github": 0, "youtube": 1, "local": 0,
                                             "youtubeTokens": {"access_token": "fresh", "refresh_token": "r"}})
        return httpx.Response(200, json={"success": True, "playlistId": "PL1",
                                         "tokens": {"access_token": "fresher", "refresh_token": "r"}})

    api = _client(handler, access="a1", refresh="r1")
    api.tokens.set_youtube_tokens({"access_token": "stale", "refresh_token": "r"})
    assert api.sync_activities().ok
    assert api.tokens.get_youtube_tokens()["access_token"] == "fresh"
    assert api.track_youtube_video("abc").ok
    assert api.tokens.get_youtube_tokens()["access_token"] == "fresher"
