"""
test_analysis_routes.py — POST /api/v1/analysis and the history endpoints.

The orchestrator runs the real pipeline with seeded mock strategies; the
history store is backed by the in-memory FakeDB from conftest.
"""

import base64
from unittest.mock import patch

import pytest

from verisight.ai.analysis_orchestrator import AnalysisOrchestrator
from verisight.ai.decision_agent import DecisionAgent
from verisight.ai.detection_agent import DetectionAgent
from verisight.ai.strategies import mock_strategies
from verisight.core.config import settings
from verisight.routes.analysis import get_orchestrator
from verisight.services.history_store import HistoryStore
from verisight.services.kv_store import KeyValueStore
from verisight.services.stores import get_history_store

_VIDEO_B64 = base64.b64encode(b"\x00\x00\x00\x18ftypmp42fake-video").decode()
_AUDIO_B64 = base64.b64encode(b"RIFF....WAVEfake-audio").decode()


class ExplodingDecision(DecisionAgent):
    def decide(self, detection):
        raise RuntimeError("boom")


def _seeded() -> AnalysisOrchestrator:
    return AnalysisOrchestrator(detection_agent=DetectionAgent(mock_strategies(7)))


@pytest.fixture()
def history(fake_db):
    return HistoryStore(KeyValueStore(fake_db))


@pytest.fixture()
def app(history):
    from verisight.main import app

    app.dependency_overrides[get_history_store] = lambda: history
    app.dependency_overrides[get_orchestrator] = _seeded
    yield app
    app.dependency_overrides.clear()


async def _analyze(client, **overrides):
    body = {"media_type": "video", "file_name": "clip.mp4", "media_b64": _VIDEO_B64}
    body.update(overrides)
    return await client.post("/api/v1/analysis", json=body)


# ── POST /api/v1/analysis ─────────────────────────────────────────────────────

class TestRunAnalysis:

    async def test_video_analysis_created(self, app, client):
        r = await _analyze(client, file_size_bytes=2048)
        assert r.status_code == 201
        data = r.json()
        assert len(data["id"]) == 64
        assert data["media_type"] == "video"
        assert data["file_name"] == "clip.mp4"
        assert data["file_size_bytes"] == 2048
        assert data["detection"]["frame_count"] == 30
        assert data["decision"]["classification"] in {"REAL", "FAKE", "UNCERTAIN"}
        assert len(data["explanation"]["key_findings"]) == 4

    async def test_audio_analysis(self, app, client):
        r = await _analyze(client, media_type="audio", file_name="voice.wav", media_b64=_AUDIO_B64)
        assert r.status_code == 201
        assert r.json()["detection"]["sample_count"] == 100

    async def test_size_defaults_to_payload_length(self, app, client):
        r = await _analyze(client)
        assert r.json()["file_size_bytes"] == len(base64.b64decode(_VIDEO_B64))

    async def test_result_is_saved(self, app, client, history):
        created = (await _analyze(client)).json()
        saved = await history.results()
        assert [s.id for s in saved] == [created["id"]]

    async def test_media_reference_path(self, app, client, tmp_path):
        path = tmp_path / "clip.mp4"
        path.write_bytes(b"\x00\x00\x00\x18ftypmp42")
        r = await _analyze(client, media_b64=None, media_reference=str(path))
        assert r.status_code == 201

    async def test_missing_file_is_422(self, app, client, tmp_path, history):
        r = await _analyze(client, media_b64=None, media_reference=str(tmp_path / "gone.mp4"))
        assert r.status_code == 422
        assert await history.results() == []

    async def test_empty_payload_is_422(self, app, client):
        r = await _analyze(client, media_b64="")
        assert r.status_code == 422

    async def test_invalid_base64_is_422(self, app, client):
        r = await _analyze(client, media_b64="***not base64***")
        assert r.status_code == 422

    async def test_no_media_is_422(self, app, client):
        r = await _analyze(client, media_b64=None)
        assert r.status_code == 422

    async def test_unknown_media_type_is_422(self, app, client):
        r = await _analyze(client, media_type="image")
        assert r.status_code == 422

    async def test_stage_failure_is_502_and_not_saved(self, app, client, history):
        app.dependency_overrides[get_orchestrator] = lambda: AnalysisOrchestrator(
            detection_agent=DetectionAgent(mock_strategies(7)),
            decision_agent=ExplodingDecision(),
        )
        r = await _analyze(client)
        assert r.status_code == 502
        assert "decision" in r.json()["detail"]
        assert await history.results() == []

    async def test_history_write_failure_is_503(self, app, client):
        app.dependency_overrides[get_history_store] = lambda: HistoryStore(KeyValueStore(None))
        r = await _analyze(client)
        assert r.status_code == 503


# ── History ───────────────────────────────────────────────────────────────────

class TestHistoryRoutes:

    async def test_empty_history(self, app, client):
        r = await client.get("/api/v1/analysis/history")
        assert r.status_code == 200
        assert r.json() == []

    async def test_most_recent_first(self, app, client):
        first = (await _analyze(client, file_name="a.mp4")).json()
        second = (await _analyze(client, file_name="b.mp4")).json()
        ids = [item["id"] for item in (await client.get("/api/v1/analysis/history")).json()]
        assert ids == [second["id"], first["id"]]

    async def test_get_one(self, app, client):
        created = (await _analyze(client)).json()
        r = await client.get(f"/api/v1/analysis/history/{created['id']}")
        assert r.status_code == 200
        assert r.json() == created

    async def test_get_unknown_is_404(self, app, client):
        r = await client.get("/api/v1/analysis/history/" + "0" * 64)
        assert r.status_code == 404

    async def test_clear(self, app, client):
        await _analyze(client)
        r = await client.delete("/api/v1/analysis/history")
        assert r.status_code == 200
        assert r.json() == {"cleared": True}
        assert (await client.get("/api/v1/analysis/history")).json() == []

    async def test_clear_during_outage_is_503(self, app, client):
        app.dependency_overrides[get_history_store] = lambda: HistoryStore(KeyValueStore(None))
        r = await client.delete("/api/v1/analysis/history")
        assert r.status_code == 503


# ── Rate limiting ─────────────────────────────────────────────────────────────

class TestRateLimit:

    async def test_429_when_limit_exceeded(self, app, client):
        from verisight.core.rate_limit import limiter

        with patch.object(limiter.limiter, "hit", return_value=False):
            r = await _analyze(client)

        assert r.status_code == 429
        assert "error" in r.json()

    async def test_history_reads_are_not_limited(self, app, client):
        from verisight.core.rate_limit import limiter

        with patch.object(limiter.limiter, "hit", return_value=False):
            r = await client.get("/api/v1/analysis/history")

        assert r.status_code == 200

    def test_limit_is_configurable(self):
        assert settings.analysis_rate_limit == "20/minute"
