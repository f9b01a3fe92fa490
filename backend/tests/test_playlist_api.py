"""HTTP surface: response bodies and status codes for every outcome."""

import pytest
from fastapi.testclient import TestClient

from playlistmaker.core.dependencies import AppServices, get_services
from playlistmaker.core.errors import LedgerUnavailableError, QuotaExhaustedError
from playlistmaker.main import app
from playlistmaker.services.credential_rotator import CredentialRotator
from playlistmaker.services.lookup import LookupOrchestrator
from playlistmaker.services.playlist_builder import PlaylistBuilder
from playlistmaker.services.usage_ledger import InMemoryUsageLedger

from conftest import FakeYouTube, WINDOW

TITLES = [
    "Queen - Bohemian Rhapsody",
    "The Beatles - Hey Jude",
    "Radiohead - Creep",
]


class FakeGenerator:
    configured = True

    def __init__(self, songs=TITLES, status="working"):
        self._songs = songs
        self._status = status

    async def generate(self, prompt, count):
        return list(self._songs)[:count]

    async def check_status(self):
        return self._status


class BrokenLedger(InMemoryUsageLedger):
    async def get_usage(self, client_id):
        raise LedgerUnavailableError("connection refused")


def _found(query, credential):
    return {"Queen - Bohemian Rhapsody": "fJ9rUzIMcZQ", "Radiohead - Creep": "XFkzRNyygfk"}.get(query)


def _services(ledger=None, youtube_script=_found, keys=("AIzaKeyNumberOne", "AIzaKeyNumberTwo"), generator=None):
    ledger = ledger or InMemoryUsageLedger(window=WINDOW)
    generator = generator or FakeGenerator()
    lookup = LookupOrchestrator(CredentialRotator(list(keys)), FakeYouTube(youtube_script))
    builder = PlaylistBuilder(
        ledger, generator, lookup,
        daily_limit=50, max_songs=30, default_songs=10,
        fallback=lambda prompt, count: [],
    )
    return AppServices(builder=builder, lookup=lookup, generator=generator)


@pytest.fixture
def services():
    return _services()


@pytest.fixture
def client(services):
    app.dependency_overrides[get_services] = lambda: services
    yield TestClient(app)
    app.dependency_overrides.clear()


def _use(services_obj):
    app.dependency_overrides[get_services] = lambda: services_obj


def test_index(client):
    response = client.get("/")

    assert response.status_code == 200
    assert response.json()["endpoints"]["playlist"] == "POST /api/playlist"


def test_create_playlist_success(client, services):
    response = client.post("/api/playlist", json={"prompt": "classics", "numSongs": 3})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["playlistUrl"] == (
        "https://www.youtube.com/watch_videos?video_ids=fJ9rUzIMcZQ,XFkzRNyygfk"
    )
    assert body["newUsageCount"] == 3
    assert body["usedAI"] is True
    assert body["stats"] == {
        "requested": 3,
        "generated": 3,
        "foundOnYoutube": 2,
        "successRate": 67,
    }
    assert body["message"] == "Playlist created with 2 of 3 songs"
    assert body["items"][1] == {
        "title": "The Beatles - Hey Jude",
        "videoUrl": None,
        "videoId": None,
        "found": False,
    }
    assert body["items"][0]["videoUrl"] == "https://www.youtube.com/watch?v=fJ9rUzIMcZQ"


@pytest.mark.parametrize("payload", [{}, {"prompt": ""}, {"prompt": "   "}])
def test_blank_prompt_returns_400(client, payload):
    response = client.post("/api/playlist", json=payload)

    assert response.status_code == 400
    assert "error" in response.json()


@pytest.mark.parametrize(
    "payload",
    [{"prompt": "x" * 1001}, {"prompt": 123}, {"prompt": ["rock"]}],
)
def test_invalid_body_returns_400_error_body(client, payload):
    response = client.post("/api/playlist", json=payload)

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "Invalid request"
    assert "prompt" in body["details"]
    assert "detail" not in body


def test_malformed_json_returns_400(client):
    response = client.post(
        "/api/playlist",
        content=b'{"prompt": "rock",',
        headers={"Content-Type": "application/json"},
    )

    assert response.status_code == 400
    assert response.json()["error"] == "Invalid request"


def test_invalid_body_is_not_charged(client):
    client.post("/api/playlist", json={"prompt": "x" * 1001, "numSongs": 3})

    assert client.get("/api/usage").json()["count"] == 0


def test_non_numeric_song_count_uses_default(client):
    response = client.post("/api/playlist", json={"prompt": "classics", "numSongs": "lots"})

    assert response.status_code == 200
    # default is 10; the fake generator only has three titles
    assert response.json()["stats"]["requested"] == 10


def test_quota_exceeded_returns_429_body(client, services):
    client.post("/api/playlist", json={"prompt": "classics", "numSongs": 3})
    services.builder.daily_limit = 4

    response = client.post("/api/playlist", json={"prompt": "more", "numSongs": 3})

    assert response.status_code == 429
    body = response.json()
    assert body["error"] == "Song limit exceeded"
    assert body["code"] == "LIMIT_REACHED"
    assert body["limit"] == 4
    assert body["remaining"] == 1
    assert "resetsAt" in body


def test_no_match_returns_404_and_charges_nothing(services):
    no_match = _services(ledger=services.ledger, youtube_script=lambda *_: None)
    _use(no_match)
    try:
        client = TestClient(app)
        response = client.post("/api/playlist", json={"prompt": "nothing", "numSongs": 3})
        usage = client.get("/api/usage").json()
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 404
    body = response.json()
    assert body["songs"] == TITLES
    assert body["usedAI"] is True
    assert all(item["found"] is False for item in body["items"])
    assert usage == {"count": 0, "limit": 50}


def test_ledger_failure_returns_500():
    _use(_services(ledger=BrokenLedger(window=WINDOW)))
    try:
        client = TestClient(app)
        response = client.post("/api/playlist", json={"prompt": "classics", "numSongs": 3})
        usage = client.get("/api/usage")
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 500
    assert response.json()["error"] == "Usage tracking is temporarily unavailable"
    assert usage.status_code == 500


def test_usage_reports_count_and_limit(client):
    client.post("/api/playlist", json={"prompt": "classics", "numSongs": 3})

    response = client.get("/api/usage")

    assert response.status_code == 200
    assert response.json() == {"count": 3, "limit": 50}


def test_client_identity_uses_forwarded_address(client):
    proxied = {"X-Forwarded-For": "198.51.100.1, 203.0.113.9"}
    client.post("/api/playlist", json={"prompt": "classics", "numSongs": 3}, headers=proxied)

    assert client.get("/api/usage", headers=proxied).json()["count"] == 3
    assert client.get("/api/usage", headers={"X-Forwarded-For": "203.0.113.10"}).json()["count"] == 0
    assert client.get("/api/usage").json()["count"] == 0


def test_spoofed_leftmost_entry_does_not_change_identity(client):
    client.post(
        "/api/playlist",
        json={"prompt": "classics", "numSongs": 3},
        headers={"X-Forwarded-For": "203.0.113.9"},
    )

    spoofed = {"X-Forwarded-For": "1.2.3.4, 203.0.113.9"}
    assert client.get("/api/usage", headers=spoofed).json()["count"] == 3


def test_health_reports_masked_key_stats(client):
    response = client.get("/api/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["services"] == {"youtube": True, "llm": True}
    assert body["llmStatus"] == "working"
    keys = body["youtubeKeys"]
    assert keys["total"] == 2
    assert keys["current"] == 1
    assert [stat["key"] for stat in keys["stats"]] == ["AIzaKeyNum...", "AIzaKeyNum..."]
    assert "AIzaKeyNumberOne" not in response.text


def test_health_after_key_rotation():
    def quota_on_first(query, credential):
        if credential.index == 0:
            raise QuotaExhaustedError("HTTP 403: quotaExceeded")
        return "vid"

    rotated = _services(youtube_script=quota_on_first)
    _use(rotated)
    try:
        client = TestClient(app)
        client.post("/api/playlist", json={"prompt": "classics", "numSongs": 1})
        keys = client.get("/api/health").json()["youtubeKeys"]
    finally:
        app.dependency_overrides.clear()

    assert keys["current"] == 2
    assert keys["stats"][0]["exhausted"] is True
    assert keys["stats"][0]["errors"] == 1


def test_health_without_keys():
    _use(_services(keys=(), generator=FakeGenerator(status="not_configured")))
    try:
        body = TestClient(app).get("/api/health").json()
    finally:
        app.dependency_overrides.clear()

    assert body["services"]["youtube"] is False
    assert body["youtubeKeys"] == {"total": 0, "current": 0, "stats": []}
    assert body["llmStatus"] == "not_configured"
