import asyncio
import json

import httpx
import pytest

from conftest import RecordingSleep
from creative_studio.generation.errors import InvalidRequestError, ProviderError
from creative_studio.generation.orchestrator import GenerationOrchestrator
from creative_studio.generation.plugins.copy_generation import CopyGenerationPlugin, CopyGenerationResult
from creative_studio.generation.plugins.image_to_video import ImageToVideoPlugin, VideoGenerationResult
from creative_studio.generation.plugins.music_generation import MusicGenerationPlugin, MusicGenerationResult
from creative_studio.generation.plugins.registry import PluginRegistry
from creative_studio.generation.plugins.text_to_image import TextToImagePlugin, TextToImageResult
from creative_studio.generation.plugins.voiceover_generation import VoiceoverGenerationPlugin, VoiceoverResult
from creative_studio.generation.poller import JobPoller
from creative_studio.generation.types import Immediate, JobHandle, Pending
from creative_studio.llm.client import LLMGenerationParams
from creative_studio.schemas.generation_service import ProviderTaskOut
from creative_studio.services.generation_service_client import GenerationServiceClient


def _service_client(handler) -> GenerationServiceClient:
    return GenerationServiceClient(
        base_url="https://gen.example.test",
        api_key="secret-key",
        transport=httpx.MockTransport(handler),
    )


def test_video_submit_returns_pending_handle_for_queued_task() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"id": "task-1", "status": "PENDING"})

    plugin = ImageToVideoPlugin(client=_service_client(handler))
    request = plugin.parse_request({"source_image_url": "https://x/still.png", "prompt": "slow zoom"})

    outcome = asyncio.run(plugin.submit(request))

    assert isinstance(outcome, Pending)
    assert outcome.handle == JobHandle(job_id="task-1", plugin_id="image-to-video")


def test_video_poll_maps_provider_statuses() -> None:
    plugin = ImageToVideoPlugin(client=_service_client(lambda request: httpx.Response(500)))

    running = plugin.to_job_status(ProviderTaskOut(id="t", status="RUNNING", progress=0.4))
    done = plugin.to_job_status(ProviderTaskOut(id="t", status="COMPLETED", resultUrl="https://x/y.mp4"))
    failed = plugin.to_job_status(ProviderTaskOut(id="t", status="FAILED", errorDetail="nsfw"))
    empty = plugin.to_job_status(ProviderTaskOut(id="t", status="SUCCEEDED"))

    assert running.state == "processing"
    assert running.progress == 0.4
    assert done.state == "succeeded"
    assert done.result == VideoGenerationResult(task_id="t", result_url="https://x/y.mp4")
    assert failed.state == "failed"
    assert failed.error_detail == "nsfw"
    assert empty.state == "failed"
    assert "without an output URL" in empty.error_detail


def test_provider_failure_on_poll_becomes_provider_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, json={"error": {"message": "busy"}})

    plugin = ImageToVideoPlugin(client=_service_client(handler))

    with pytest.raises(ProviderError, match="busy"):
        asyncio.run(plugin.poll_status(JobHandle(job_id="task-1", plugin_id="image-to-video")))


def test_video_cancel_deletes_remote_task() -> None:
    seen: list[tuple[str, str]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append((request.method, request.url.path))
        return httpx.Response(204)

    plugin = ImageToVideoPlugin(client=_service_client(handler))
    asyncio.run(plugin.cancel(JobHandle(job_id="task-1", plugin_id="image-to-video")))

    assert seen == [("DELETE", "/v1/tasks/task-1")]


def test_image_submit_returns_immediate_when_task_already_done() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        assert body["num_images"] == 2
        return httpx.Response(
            200,
            json={
                "id": "task-2",
                "status": "succeeded",
                "output": ["https://x/a.png", "https://x/b.png"],
                "seeds": [11, 12],
            },
        )

    plugin = TextToImagePlugin(client=_service_client(handler))
    outcome = asyncio.run(plugin.submit(plugin.parse_request({"prompt": "cat", "num_variations": 2})))

    assert isinstance(outcome, Immediate)
    assert isinstance(outcome.result, TextToImageResult)
    assert [(image.image_url, image.seed) for image in outcome.result.images] == [
        ("https://x/a.png", 11),
        ("https://x/b.png", 12),
    ]


def test_missing_provider_configuration_surfaces_as_provider_error(monkeypatch: pytest.MonkeyPatch) -> None:
    from creative_studio.services import generation_service_client as client_module

    monkeypatch.setattr(client_module.settings, "GENERATION_SERVICE_BASE_URL", None)
    plugin = TextToImagePlugin()

    with pytest.raises(ProviderError, match="GENERATION_SERVICE_BASE_URL"):
        asyncio.run(plugin.submit(plugin.parse_request({"prompt": "cat"})))


class _FakeLLM:
    def __init__(self, reply: str) -> None:
        self.reply = reply
        self.calls: list[tuple[str, LLMGenerationParams]] = []

    async def generate_text(self, prompt: str, params: LLMGenerationParams) -> str:
        self.calls.append((prompt, params))
        return self.reply


def test_copy_generation_returns_variations() -> None:
    llm = _FakeLLM(
        json.dumps(
            {
                "variations": [
                    {"headline": "Run further", "body": "Lightweight shoes.", "call_to_action": "Shop now"},
                ]
            }
        )
    )
    plugin = CopyGenerationPlugin(llm, model="gpt-4o-mini")

    request = plugin.parse_request(
        {"brief": "Trail running shoes", "tone": "energetic", "num_variations": 1, "length": "short"}
    )
    outcome = asyncio.run(plugin.submit(request))

    assert isinstance(outcome.result, CopyGenerationResult)
    assert outcome.result.variations[0].headline == "Run further"
    prompt, params = llm.calls[0]
    assert "Tone: energetic" in prompt
    assert "exactly 1 distinct variations" in prompt
    assert params.model == "gpt-4o-mini"
    assert params.response_format["json_schema"]["name"] == "AdCopyVariations"


def test_copy_generation_rejects_malformed_output() -> None:
    plugin = CopyGenerationPlugin(_FakeLLM("Here are some ideas!"))

    with pytest.raises(ProviderError, match="malformed"):
        asyncio.run(plugin.submit(plugin.parse_request({"brief": "Trail running shoes"})))


def test_video_run_completes_when_provider_reports_percent_progress() -> None:
    replies = iter(
        [
            {"id": "t1", "status": "RUNNING", "progress": 45},
            {"id": "t1", "status": "SUCCEEDED", "progress": 100, "resultUrl": "https://x/y.mp4"},
        ]
    )

    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            return httpx.Response(200, json={"id": "t1", "status": "PENDING"})
        assert request.url.path == "/v1/tasks/t1"
        return httpx.Response(200, json=next(replies))

    orchestrator = GenerationOrchestrator(
        registry=PluginRegistry([ImageToVideoPlugin(client=_service_client(handler))]),
        poller=JobPoller(poll_interval_seconds=0, max_attempts=5, sleep=RecordingSleep()),
    )
    events = []
    orchestrator.history.subscribe(events.append)

    entry = asyncio.run(
        orchestrator.run_and_wait("image-to-video", {"source_image_url": "https://x/still.png"})
    )

    assert entry.status == "success"
    assert entry.result == VideoGenerationResult(task_id="t1", result_url="https://x/y.mp4")
    assert [event.progress for event in events if event.kind == "progress"] == [pytest.approx(0.45)]


def test_video_run_accepts_lowercase_success_status() -> None:
    replies = iter(
        [
            {"id": "t1", "status": "processing"},
            {"id": "t1", "status": "success", "output": "https://x/y.mp4"},
        ]
    )

    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            return httpx.Response(200, json={"id": "t1", "status": "queued"})
        return httpx.Response(200, json=next(replies))

    orchestrator = GenerationOrchestrator(
        registry=PluginRegistry([ImageToVideoPlugin(client=_service_client(handler))]),
        poller=JobPoller(poll_interval_seconds=0, max_attempts=5, sleep=RecordingSleep()),
    )

    entry = asyncio.run(
        orchestrator.run_and_wait("image-to-video", {"source_image_url": "https://x/still.png"})
    )

    assert entry.status == "success"
    assert entry.result.result_url == "https://x/y.mp4"


def test_submit_retries_transient_failures() -> None:
    calls: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.path)
        if len(calls) == 1:
            raise httpx.ConnectError("connection reset", request=request)
        if len(calls) == 2:
            return httpx.Response(502, json={"error": {"message": "bad gateway"}})
        return httpx.Response(200, json={"id": "task-3", "status": "queued"})

    plugin = TextToImagePlugin(client=_service_client(handler), submit_max_attempts=3, submit_backoff_seconds=0)
    outcome = asyncio.run(plugin.submit(plugin.parse_request({"prompt": "cat"})))

    assert isinstance(outcome, Pending)
    assert outcome.handle.job_id == "task-3"
    assert calls == ["/v1/text_to_image"] * 3


def test_submit_does_not_retry_client_errors() -> None:
    calls: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.path)
        return httpx.Response(400, json={"error": {"code": "invalid_prompt", "message": "Prompt rejected"}})

    plugin = TextToImagePlugin(client=_service_client(handler), submit_max_attempts=3, submit_backoff_seconds=0)

    with pytest.raises(ProviderError, match="Prompt rejected"):
        asyncio.run(plugin.submit(plugin.parse_request({"prompt": "cat"})))
    assert len(calls) == 1


def test_submit_gives_up_after_max_attempts() -> None:
    calls: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.path)
        return httpx.Response(503, json={"error": {"message": "overloaded"}})

    plugin = ImageToVideoPlugin(client=_service_client(handler), submit_max_attempts=2, submit_backoff_seconds=0)
    request = plugin.parse_request({"source_image_url": "https://x/still.png"})

    with pytest.raises(ProviderError, match="overloaded"):
        asyncio.run(plugin.submit(request))
    assert len(calls) == 2


def test_image_cancel_deletes_remote_task() -> None:
    seen: list[tuple[str, str]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append((request.method, request.url.path))
        return httpx.Response(204)

    plugin = TextToImagePlugin(client=_service_client(handler))
    asyncio.run(plugin.cancel(JobHandle(job_id="task-2", plugin_id="text-to-image")))

    assert seen == [("DELETE", "/v1/tasks/task-2")]


def test_music_submit_and_result_mapping() -> None:
    seen: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"id": "music-1", "status": "queued"})

    plugin = MusicGenerationPlugin(client=_service_client(handler))
    request = plugin.parse_request({"prompt": "warm lo-fi bed", "genre": "ambient", "include_layered_tracks": True})
    outcome = asyncio.run(plugin.submit(request))

    done = plugin.to_job_status(
        ProviderTaskOut.model_validate(
            {
                "id": "music-1",
                "status": "succeeded",
                "audioUrl": "https://x/track.mp3",
                "waveformUrl": "https://x/track.png",
                "duration": 60,
                "individualTracks": [{"name": "drums", "url": "https://x/drums.mp3"}],
            }
        )
    )

    assert isinstance(outcome, Pending)
    assert outcome.handle == JobHandle(job_id="music-1", plugin_id="music-generation")
    assert seen["path"] == "/v1/music"
    assert seen["body"]["tempo"] == 120
    assert seen["body"]["duration"] == 60
    assert seen["body"]["genre"] == "ambient"
    assert seen["body"]["include_layered_tracks"] is True
    assert done.state == "succeeded"
    assert isinstance(done.result, MusicGenerationResult)
    assert done.result.audio_url == "https://x/track.mp3"
    assert done.result.duration_seconds == 60
    assert [(track.name, track.url) for track in done.result.tracks] == [("drums", "https://x/drums.mp3")]


def test_music_request_rejects_out_of_range_tempo() -> None:
    plugin = MusicGenerationPlugin(client=_service_client(lambda request: httpx.Response(500)))

    with pytest.raises(InvalidRequestError, match="tempo_bpm"):
        plugin.parse_request({"prompt": "warm lo-fi bed", "tempo_bpm": 300})


def test_voiceover_submit_and_result_mapping() -> None:
    seen: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"id": "vo-1", "status": "pending"})

    plugin = VoiceoverGenerationPlugin(client=_service_client(handler))
    outcome = asyncio.run(plugin.submit(plugin.parse_request({"text": "Run further.", "emotion": "excited"})))
    done = plugin.to_job_status(
        ProviderTaskOut.model_validate(
            {"id": "vo-1", "status": "completed", "audio_url": "https://x/vo.mp3", "transcript": "Run further."}
        )
    )
    missing_audio = plugin.to_job_status(ProviderTaskOut.model_validate({"id": "vo-1", "status": "completed"}))

    assert isinstance(outcome, Pending)
    assert seen["path"] == "/v1/voiceover"
    assert seen["body"]["voice"] == "en-US-female-1"
    assert seen["body"]["emotion"] == "excited"
    assert seen["body"]["speed"] == 1.0
    assert done.result == VoiceoverResult(task_id="vo-1", audio_url="https://x/vo.mp3", transcript="Run further.")
    assert missing_audio.state == "failed"
