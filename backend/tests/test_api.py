"""HTTP-level tests for the generation and status endpoints."""

import time
from types import SimpleNamespace

import pytest

from povgen.api import routes
from povgen.core.config import settings
from povgen.main import app
from povgen.models import JobStatus, VideoJob
from povgen.services.generator import MockGenerationBackend
from povgen.services.pipeline import GenerationPipeline, get_pipeline, validate_request
from povgen.services.status_store import InMemoryJobStore

API = settings.api_prefix


def _seed(pipeline, job_id="pov_seed", **fields):
    return pipeline.store.create(job_id, VideoJob(id=job_id, prompt="A knight at dawn", duration=20, **fields))


class TestGenerateVideo:
    def test_success(self, client):
        resp = client.post(f"{API}/generate-video", json={"prompt": "You wake up as a pirate in 1700, stormy night", "duration": 20})
        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["status"] == "completed"
        assert body["progress"] == 100
        assert body["historicalPeriod"] == "Golden Age of Piracy (1650-1730)"
        assert body["subtitles"] == "The ship creaks beneath you..."
        assert body["sessionId"].startswith("session_")

        status = client.get(f"{API}/videos/{body['videoId']}/status").json()
        assert status["status"] == "completed"
        assert status["videoUrl"] == body["videoUrl"]
        assert "completedAt" in status

    def test_session_id_echoed(self, client):
        resp = client.post(f"{API}/generate-video", json={"prompt": "A quiet afternoon", "duration": 10, "sessionId": "abc"})
        body = resp.json()
        assert body["sessionId"] == "abc"
        assert body["historicalPeriod"] == "Historical Period"
        assert body["subtitles"] == "You are transported through time..."

    @pytest.mark.parametrize(
        ("payload", "message"),
        [
            ({"duration": 10}, "Prompt is required"),
            ({"prompt": "   ", "duration": 10}, "Prompt is required"),
            ({"prompt": "x" * 201, "duration": 10}, "Prompt must be 200 characters or less"),
            ({"prompt": "A knight", "duration": 15}, "Duration must be 10, 20, or 30 seconds"),
            ({"prompt": "A knight"}, "Duration must be 10, 20, or 30 seconds"),
        ],
    )
    def test_validation_creates_no_job(self, client, pipeline, payload, message):
        resp = client.post(f"{API}/generate-video", json=payload)
        assert resp.status_code == 400
        assert resp.json() == {"success": False, "error": message}
        assert pipeline.store.list_jobs() == []

    def test_describe(self, client):
        body = client.get(f"{API}/generate-video").json()
        assert body["durations"] == [10, 20, 30]
        assert body["costs"]["30s"] == "3 credits"


class TestAsyncGeneration:
    def test_start_and_poll(self, client):
        resp = client.post(f"{API}/generate-video/async", json={"prompt": "A samurai in the rain", "duration": 30})
        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["status"] == "pending"
        assert body["estimatedTime"] == 25

        seen = []
        deadline = time.monotonic() + 5
        while time.monotonic() < deadline:
            status = client.get(f"{API}/videos/{body['videoId']}/status").json()
            seen.append(status["progress"])
            if status["status"] == "completed":
                break
            time.sleep(0.01)
        assert status["status"] == "completed"
        assert status["subtitles"] == "Cherry blossoms fall around you..."
        assert seen == sorted(seen)


class TestStatus:
    def test_unknown_id_is_404(self, client):
        resp = client.get(f"{API}/videos/nope/status")
        assert resp.status_code == 404
        assert resp.json() == {"error": "Video not found"}

    def test_unknown_id_stubbed_in_demo_mode(self, client, pipeline, monkeypatch):
        monkeypatch.setattr(settings, "stub_unknown_status", True)
        body = client.get(f"{API}/videos/demo_1/status").json()
        assert body["status"] == "completed"
        assert body["progress"] == 100
        assert body["completedAt"]
        assert pipeline.store.get("demo_1").status is JobStatus.completed

    def test_blank_id_rejected(self, client, pipeline):
        resp = client.get(f"{API}/videos/%20/status")
        assert resp.status_code == 400
        assert resp.json()["error"] == "Video ID is required"
        assert pipeline.store.list_jobs() == []

    def test_fresh_job_reads_pending(self, client, pipeline):
        _seed(pipeline)
        body = client.get(f"{API}/videos/pov_seed/status").json()
        assert body["status"] == "pending"
        assert body["progress"] == 0
        assert "completedAt" not in body
        assert "videoUrl" not in body

    def test_put_merges_and_ignores_video_id(self, client, pipeline):
        _seed(pipeline)
        resp = client.put(
            f"{API}/videos/pov_seed/status",
            json={"videoId": "hijack", "status": "processing", "progress": 50, "currentStep": "Generating image"},
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["videoId"] == "pov_seed"
        assert body["progress"] == 50
        assert body["currentStep"] == "Generating image"

    def test_put_completion_sets_completed_at_once(self, client, pipeline):
        _seed(pipeline)
        first = client.put(f"{API}/videos/pov_seed/status", json={"status": "completed", "videoUrl": "https://v/1.mp4"}).json()
        assert first["progress"] == 100
        assert first["completedAt"]
        second = client.put(
            f"{API}/videos/pov_seed/status",
            json={"subtitles": "Honor calls to you...", "completedAt": "1999-01-01T00:00:00Z"},
        ).json()
        assert second["completedAt"] == first["completedAt"]

    def test_put_null_lifecycle_field_rejected(self, client, pipeline):
        _seed(pipeline)
        resp = client.put(f"{API}/videos/pov_seed/status", json={"currentStep": None})
        assert resp.status_code == 400
        assert "current_step" in resp.json()["error"]

        body = client.get(f"{API}/videos/pov_seed/status").json()
        assert body["currentStep"] == "Initializing..."

    def test_put_unknown_is_404(self, client, pipeline):
        resp = client.put(f"{API}/videos/ghost/status", json={"status": "processing"})
        assert resp.status_code == 404
        assert pipeline.store.list_jobs() == []

    def test_put_conflict(self, client, pipeline):
        _seed(pipeline)
        client.put(f"{API}/videos/pov_seed/status", json={"status": "failed", "error": "boom"})
        resp = client.put(f"{API}/videos/pov_seed/status", json={"status": "processing"})
        assert resp.status_code == 409

    def test_delete_twice(self, client, pipeline):
        _seed(pipeline)
        first = client.delete(f"{API}/videos/pov_seed/status")
        assert first.status_code == 200
        assert first.json()["success"] is True
        second = client.delete(f"{API}/videos/pov_seed/status")
        assert second.status_code == 404
        assert second.json() == {"error": "Video not found"}


class TestProgressAndCancel:
    def test_progress_view(self, client, pipeline):
        _seed(pipeline)
        client.put(f"{API}/videos/pov_seed/status", json={"status": "processing", "progress": 50})
        body = client.get(f"{API}/videos/pov_seed/progress").json()
        assert body["currentStage"] == "Image Generation"
        assert body["remainingSeconds"] == 12
        assert [s["state"] for s in body["stages"]] == ["completed", "active", "upcoming", "upcoming", "upcoming"]

    def test_cancel_running_job(self, client):
        slow = GenerationPipeline(store=InMemoryJobStore(), backend=MockGenerationBackend(0, 0, 0.3, 0))
        app.dependency_overrides[get_pipeline] = lambda: slow
        video_id = client.post(f"{API}/generate-video/async", json={"prompt": "A knight", "duration": 10}).json()["videoId"]

        resp = client.post(f"{API}/videos/{video_id}/cancel")
        assert resp.status_code == 200
        assert resp.json()["success"] is True

        deadline = time.monotonic() + 5
        while time.monotonic() < deadline:
            status = client.get(f"{API}/videos/{video_id}/status").json()
            if status["status"] == "failed":
                break
            time.sleep(0.01)
        assert status["status"] == "failed"
        assert status["errorCode"] == "CANCELLED"
        assert slow._cancel_tokens == {}

    def test_cancel_job_not_running_here_conflicts(self, client, pipeline):
        job = pipeline.create_job(validate_request("A knight", 10))
        assert client.post(f"{API}/videos/{job.id}/cancel").status_code == 409

    def test_cancel_queued_job_conflicts(self, client, pipeline, monkeypatch):
        queued = []
        monkeypatch.setattr(settings, "task_queue_enabled", True)
        monkeypatch.setattr(routes, "run_generation", SimpleNamespace(delay=queued.append))
        video_id = client.post(f"{API}/generate-video/async", json={"prompt": "A knight", "duration": 10}).json()["videoId"]

        assert queued == [video_id]
        assert client.post(f"{API}/videos/{video_id}/cancel").status_code == 409
        assert pipeline._cancel_tokens == {}
        assert pipeline.store.get(video_id).status is JobStatus.pending

    def test_cancel_finished_job_conflicts(self, client, pipeline):
        _seed(pipeline)
        client.put(f"{API}/videos/pov_seed/status", json={"status": "completed"})
        assert client.post(f"{API}/videos/pov_seed/cancel").status_code == 409


class TestDownloadAndSubtitles:
    def _completed(self, client):
        body = client.post(f"{API}/generate-video", json={"prompt": "You're a knight in a castle", "duration": 20}).json()
        return body["videoId"]

    def test_download_defaults(self, client):
        video_id = self._completed(client)
        body = client.get(f"{API}/download/{video_id}").json()
        assert body["format"] == "mp4"
        assert body["quality"] == "hd"
        assert body["resolution"] == "1080x1920"
        assert body["duration"] == "20 seconds"

    def test_download_rejects_bad_options_first(self, client):
        resp = client.get(f"{API}/download/unknown", params={"format": "avi"})
        assert resp.status_code == 400
        assert resp.json()["error"] == "Invalid format. Supported formats: mp4, webm"
        resp = client.get(f"{API}/download/unknown", params={"quality": "4k"})
        assert resp.status_code == 400

    def test_download_unfinished_conflicts(self, client, pipeline):
        _seed(pipeline)
        assert client.get(f"{API}/download/pov_seed").status_code == 409

    def test_prepare_download(self, client):
        video_id = self._completed(client)
        body = client.post(f"{API}/download/{video_id}", json={"format": "webm", "quality": "sd"}).json()
        assert body["videoId"] == video_id
        assert body["filename"].endswith(".webm")
        assert body["estimatedSize"] == "6.8 MB"

    def test_subtitles_vtt(self, client):
        video_id = self._completed(client)
        resp = client.get(f"{API}/videos/{video_id}/subtitles.vtt")
        assert resp.status_code == 200
        assert resp.text.startswith("WEBVTT")
        assert "00:00:00.000 --> 00:00:20.000" in resp.text
        assert "Honor calls to you..." in resp.text


class TestGallery:
    def test_lists_generated_videos(self, client):
        client.post(f"{API}/generate-video", json={"prompt": "You're a Viking on a longship", "duration": 10})
        body = client.get(f"{API}/videos").json()
        assert body["total"] == 1
        item = body["items"][0]
        assert item["historicalPeriod"] == "Viking Age (793-1066)"
        assert item["status"] == "completed"
        assert item["thumbnailUrl"]
