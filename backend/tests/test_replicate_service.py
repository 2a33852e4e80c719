"""
Unit tests for the Replicate-backed image services
"""
import json
import httpx
import pytest

from core.errors import ExternalServiceError, ExternalServiceTimeoutError
from services.replicate_service import ReplicateService

PNG_BYTES = b"\x89PNG\r\n\x1a\nfake"
OUTPUT_URL = "https://replicate.delivery/out/result.png"
POLL_URL = "https://api.replicate.test/v1/predictions/abc"


def make_service(handler, **kwargs):
    kwargs.setdefault("api_token", "r8-test")
    kwargs.setdefault("base_url", "https://api.replicate.test/v1")
    kwargs.setdefault("poll_interval", 0)
    kwargs.setdefault("backoff_seconds", 0)
    return ReplicateService(transport=httpx.MockTransport(handler), **kwargs)


def download(request):
    return httpx.Response(200, content=PNG_BYTES, headers={"content-type": "image/png"})


@pytest.mark.unit
@pytest.mark.asyncio
class TestReplicateService:
    """Prediction lifecycle and output handling"""

    async def test_remove_background_returns_data_url(self, sample_image):
        captured = {}

        def handler(request):
            if request.url.path.endswith("/predictions"):
                captured["body"] = json.loads(request.content)
                captured["headers"] = request.headers
                return httpx.Response(201, json={"id": "abc", "status": "succeeded", "output": OUTPUT_URL})
            return download(request)

        result = await make_service(handler).remove_background(sample_image)

        assert result.startswith("data:image/png;base64,")
        assert captured["body"]["input"] == {"image": sample_image}
        assert captured["headers"]["Authorization"] == "Bearer r8-test"
        assert captured["headers"]["Prefer"] == "wait"

    async def test_generative_edit_uses_strength_and_first_output(self, sample_image):
        captured = {}

        def handler(request):
            if request.url.path.endswith("/predictions"):
                captured["body"] = json.loads(request.content)
                return httpx.Response(201, json={
                    "id": "abc",
                    "status": "succeeded",
                    "output": [OUTPUT_URL, "https://replicate.delivery/out/second.png"]
                })
            captured["downloaded"] = str(request.url)
            return download(request)

        await make_service(handler).generative_edit(sample_image, "make it a watercolor")

        assert captured["body"]["input"]["prompt"] == "make it a watercolor"
        assert captured["body"]["input"]["strength"] == 0.7
        assert captured["downloaded"] == OUTPUT_URL

    async def test_polls_until_finished(self, sample_image):
        polls = []

        def handler(request):
            if request.method == "POST":
                return httpx.Response(201, json={"id": "abc", "status": "starting", "urls": {"get": POLL_URL}})
            if str(request.url) == POLL_URL:
                polls.append(request)
                status = "processing" if len(polls) < 2 else "succeeded"
                return httpx.Response(200, json={
                    "id": "abc", "status": status, "urls": {"get": POLL_URL},
                    "output": OUTPUT_URL if status == "succeeded" else None
                })
            return download(request)

        result = await make_service(handler).remove_background(sample_image)

        assert len(polls) == 2
        assert result.startswith("data:image/png")

    async def test_failed_prediction(self, sample_image):
        def handler(request):
            return httpx.Response(201, json={"id": "abc", "status": "failed", "error": "NSFW content detected"})

        with pytest.raises(ExternalServiceError, match="NSFW content detected"):
            await make_service(handler).generative_edit(sample_image, "prompt")

    async def test_api_rejection(self, sample_image):
        def handler(request):
            return httpx.Response(422, json={"detail": "invalid version"})

        with pytest.raises(ExternalServiceError, match="422"):
            await make_service(handler).remove_background(sample_image)

    async def test_create_is_not_repeated_after_server_error(self, sample_image):
        creates = []

        def handler(request):
            creates.append(request)
            return httpx.Response(503, text="upstream unavailable")

        with pytest.raises(ExternalServiceError, match="503"):
            await make_service(handler).generative_edit(sample_image, "prompt")

        assert len(creates) == 1

    async def test_create_is_not_repeated_after_dropped_connection(self, sample_image):
        creates = []

        def handler(request):
            creates.append(request)
            raise httpx.ReadError("connection reset", request=request)

        with pytest.raises(ExternalServiceError, match="connection reset"):
            await make_service(handler).remove_background(sample_image)

        assert len(creates) == 1

    async def test_create_retries_when_never_accepted(self, sample_image):
        creates = []

        def handler(request):
            if request.method == "POST":
                creates.append(request)
                if len(creates) == 1:
                    raise httpx.ConnectError("connection refused", request=request)
                if len(creates) == 2:
                    return httpx.Response(429, json={"detail": "throttled"})
                return httpx.Response(201, json={"id": "abc", "status": "succeeded", "output": OUTPUT_URL})
            return download(request)

        result = await make_service(handler).remove_background(sample_image)

        assert len(creates) == 3
        assert result.startswith("data:image/png")

    async def test_status_checks_still_retry_server_errors(self, sample_image):
        polls = []

        def handler(request):
            if request.method == "POST":
                return httpx.Response(201, json={"id": "abc", "status": "starting", "urls": {"get": POLL_URL}})
            if str(request.url) == POLL_URL:
                polls.append(request)
                if len(polls) == 1:
                    return httpx.Response(502)
                return httpx.Response(200, json={"id": "abc", "status": "succeeded", "output": OUTPUT_URL})
            return download(request)

        result = await make_service(handler).remove_background(sample_image)

        assert len(polls) == 2
        assert result.startswith("data:image/png")

    async def test_empty_output(self, sample_image):
        def handler(request):
            return httpx.Response(201, json={"id": "abc", "status": "succeeded", "output": []})

        with pytest.raises(ExternalServiceError, match="no image received"):
            await make_service(handler).generative_edit(sample_image, "prompt")

    async def test_data_url_output_is_passed_through(self, sample_image):
        def handler(request):
            return httpx.Response(201, json={"id": "abc", "status": "succeeded", "output": sample_image})

        assert await make_service(handler).remove_background(sample_image) == sample_image

    async def test_missing_token(self, sample_image):
        service = make_service(lambda request: httpx.Response(500), api_token="")

        with pytest.raises(ExternalServiceError, match="not configured"):
            await service.remove_background(sample_image)

    async def test_timeout_is_a_distinct_error(self, sample_image):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(ExternalServiceTimeoutError):
            await make_service(handler).remove_background(sample_image)

    async def test_overall_deadline(self, sample_image):
        def handler(request):
            return httpx.Response(201, json={"id": "abc", "status": "processing", "urls": {"get": POLL_URL}})

        service = make_service(handler, timeout=0.05, poll_interval=0.01)

        with pytest.raises(ExternalServiceTimeoutError):
            await service.remove_background(sample_image)
