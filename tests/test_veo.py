"""
Tests for holoframe.pipeline.veo

Result-shape parsing, gs:// rewriting, and the submit/poll loop.
"""

import base64
import json

import httpx
import pytest

from holoframe.errors import ProviderError, ProviderTimeoutError, RequestValidationError
from holoframe.pipeline import veo
from holoframe.pipeline.models import VideoResultKind

OPERATION = "projects/test-project/locations/us-central1/publishers/google/models/veo/operations/op-1"
ENDPOINT = (
    "https://us-central1-aiplatform.googleapis.com/v1/projects/test-project/locations/us-central1"
    "/publishers/google/models/veo-3.1-fast-generate-preview"
)


def _client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _vertex(done_after, final):
    """Submit returns OPERATION; fetch is pending `done_after` times, then `final`."""
    calls = {"submit": [], "fetch": [], "image": 0}

    def handler(request: httpx.Request):
        url = str(request.url)
        if url.endswith(":predictLongRunning"):
            calls["submit"].append(request)
            return httpx.Response(200, json={"name": OPERATION})
        if url.endswith(":fetchPredictOperation"):
            calls["fetch"].append(request)
            if len(calls["fetch"]) <= done_after:
                return httpx.Response(200, json={"name": OPERATION, "done": False})
            return httpx.Response(200, json={"name": OPERATION, "done": True, **final})
        calls["image"] += 1
        return httpx.Response(200, content=b"\x89PNG-bytes", headers={"content-type": "image/png"})

    return handler, calls


class TestParseOperationResult:
    def test_storage_uri_prediction(self):
        result = veo.parse_operation_result(
            {"response": {"predictions": [{"storageUri": "gs://b/p.mp4"}]}}
        )
        assert result.kind == VideoResultKind.STORAGE_URI_PREDICTION
        assert result.uri == "gs://b/p.mp4"

    def test_gcs_uri_video(self):
        result = veo.parse_operation_result(
            {"response": {"videos": [{"gcsUri": "gs://b/f.mp4", "mimeType": "video/mp4"}]}}
        )
        assert result.kind == VideoResultKind.GCS_URI_VIDEO
        assert result.uri == "gs://b/f.mp4"

    def test_generated_video(self):
        result = veo.parse_operation_result({"response": {"generateVideoResponse": {
            "generatedVideos": [{"video": {"uri": "https://generativelanguage.googleapis.com/v/1"}}],
        }}})
        assert result.kind == VideoResultKind.GENERATED_VIDEO
        assert result.uri == "https://generativelanguage.googleapis.com/v/1"

    def test_generated_video_url_key(self):
        result = veo.parse_operation_result({"response": {"generateVideoResponse": {
            "generatedVideos": [{"video": {"url": "https://x/v.mp4"}}],
        }}})
        assert result.uri == "https://x/v.mp4"

    def test_storage_uri_wins_over_later_shapes(self):
        result = veo.parse_operation_result({"response": {
            "predictions": [{"storageUri": "gs://b/first.mp4"}],
            "videos": [{"gcsUri": "gs://b/second.mp4"}],
        }})
        assert result.uri == "gs://b/first.mp4"

    def test_inline_bytes(self):
        result = veo.parse_operation_result(
            {"response": {"videos": [{"bytesBase64Encoded": "AAAA"}]}}
        )
        assert result.kind == VideoResultKind.INLINE_BYTES
        assert result.uri is None

    def test_unrecognized(self):
        assert veo.parse_operation_result({"response": {"foo": 1}}).kind == VideoResultKind.UNRECOGNIZED
        assert veo.parse_operation_result({}).kind == VideoResultKind.UNRECOGNIZED


class TestResolveVideoUri:
    def test_error_field(self):
        with pytest.raises(ProviderError, match="RAI filter"):
            veo.resolve_video_uri({"done": True, "error": {"code": 3, "message": "RAI filter"}})

    def test_inline_bytes_is_an_error(self):
        with pytest.raises(ProviderError, match="VEO_OUTPUT_STORAGE_URI"):
            veo.resolve_video_uri({"response": {"predictions": [{"bytesBase64Encoded": "AAAA"}]}})

    def test_unrecognized_is_an_error(self):
        with pytest.raises(ProviderError):
            veo.resolve_video_uri({"done": True, "response": {}})


class TestHelpers:
    def test_gs_to_https(self):
        assert veo.gs_to_https("gs://b/o") == "https://storage.googleapis.com/b/o"
        assert veo.gs_to_https("gs://bucket/dir/f.mp4") == "https://storage.googleapis.com/bucket/dir/f.mp4"
        assert veo.gs_to_https("https://x/y") == "https://x/y"

    def test_split_data_url(self):
        assert veo.split_data_url("data:image/jpeg;base64,QUJD") == ("QUJD", "image/jpeg")
        assert veo.split_data_url("QUJD") == ("QUJD", None)


class TestSubmitAndFetch:
    @pytest.mark.asyncio
    async def test_submit_payload(self, token_provider, monkeypatch):
        monkeypatch.setattr(veo, "VEO_OUTPUT_STORAGE_URI", "gs://out-bucket/veo/")
        handler, calls = _vertex(0, {})

        name = await veo.submit_operation(
            "hologram prompt",
            image_url="https://x/fg.png",
            token_provider=token_provider,
            client=_client(handler),
        )

        assert name == OPERATION
        request = calls["submit"][0]
        assert str(request.url) == f"{ENDPOINT}:predictLongRunning"
        assert request.headers["Authorization"] == f"Bearer {token_provider.token}"
        body = json.loads(request.content)
        assert body["instances"] == [{
            "prompt": "hologram prompt",
            "image": {
                "bytesBase64Encoded": base64.b64encode(b"\x89PNG-bytes").decode(),
                "mimeType": "image/png",
            },
        }]
        assert body["parameters"] == {
            "aspectRatio": "16:9",
            "durationSeconds": 4,
            "resolution": "720p",
            "personGeneration": "allow_adult",
            "sampleCount": 1,
            "generateAudio": False,
            "storageUri": "gs://out-bucket/veo/",
        }

    @pytest.mark.asyncio
    async def test_submit_with_inline_image(self, token_provider):
        handler, calls = _vertex(0, {})
        await veo.submit_operation(
            "p",
            image_base64="data:image/webp;base64,QUJD",
            aspect_ratio="9:16",
            token_provider=token_provider,
            client=_client(handler),
        )

        body = json.loads(calls["submit"][0].content)
        assert body["instances"][0]["image"] == {"bytesBase64Encoded": "QUJD", "mimeType": "image/webp"}
        assert body["parameters"]["aspectRatio"] == "9:16"
        assert "storageUri" not in body["parameters"]
        assert calls["image"] == 0

    @pytest.mark.asyncio
    async def test_submit_requires_an_image(self, token_provider):
        handler, _ = _vertex(0, {})
        with pytest.raises(RequestValidationError):
            await veo.submit_operation("p", token_provider=token_provider, client=_client(handler))

    @pytest.mark.asyncio
    async def test_submit_api_error(self, token_provider):
        def handler(request):
            if request.method == "GET":
                return httpx.Response(200, content=b"img")
            return httpx.Response(403, json={"error": {"code": 403, "message": "Permission denied"}})

        with pytest.raises(ProviderError) as exc_info:
            await veo.submit_operation(
                "p", image_url="https://x/a.png", token_provider=token_provider, client=_client(handler)
            )
        assert exc_info.value.detail == "Permission denied"

    @pytest.mark.asyncio
    async def test_submit_non_json_body(self, token_provider):
        def handler(request):
            if request.method == "GET":
                return httpx.Response(200, content=b"img")
            return httpx.Response(200, content=b"<html>upstream connect error</html>")

        with pytest.raises(ProviderError, match="Vertex AI returned a non-JSON body") as exc_info:
            await veo.submit_operation(
                "p", image_url="https://x/a.png", token_provider=token_provider, client=_client(handler)
            )
        assert exc_info.value.detail == "<html>upstream connect error</html>"

    @pytest.mark.asyncio
    async def test_fetch_non_json_body(self, token_provider):
        def handler(request):
            return httpx.Response(200, content=b"not json")

        with pytest.raises(ProviderError, match="non-JSON body"):
            await veo.fetch_operation(OPERATION, token_provider, _client(handler))

    @pytest.mark.asyncio
    async def test_fetch_posts_operation_name(self, token_provider):
        handler, calls = _vertex(5, {})
        operation = await veo.fetch_operation(OPERATION, token_provider, _client(handler))

        assert operation["done"] is False
        request = calls["fetch"][0]
        assert request.method == "POST"
        assert str(request.url) == f"{ENDPOINT}:fetchPredictOperation"
        assert json.loads(request.content) == {"operationName": OPERATION}


class TestGenerateVideo:
    @pytest.mark.asyncio
    async def test_done_after_two_pending_polls(self, token_provider):
        handler, calls = _vertex(2, {"response": {"videos": [{"gcsUri": "gs://b/f.mp4"}]}})
        uri = await veo.generate_video(
            "https://x/fg.png", "p",
            token_provider=token_provider, client=_client(handler), poll_interval=0,
        )

        assert uri == "https://storage.googleapis.com/b/f.mp4"
        assert len(calls["fetch"]) == 3

    @pytest.mark.asyncio
    async def test_failed_operation(self, token_provider):
        handler, _ = _vertex(1, {"error": {"code": 13, "message": "Internal error"}})
        with pytest.raises(ProviderError) as exc_info:
            await veo.generate_video(
                "https://x/fg.png", "p",
                token_provider=token_provider, client=_client(handler), poll_interval=0,
            )
        assert not isinstance(exc_info.value, ProviderTimeoutError)

    @pytest.mark.asyncio
    async def test_cap_exhausted(self, token_provider):
        handler, calls = _vertex(100, {})
        with pytest.raises(ProviderTimeoutError, match="timed out"):
            await veo.generate_video(
                "https://x/fg.png", "p",
                token_provider=token_provider, client=_client(handler),
                poll_interval=0, max_polls=4,
            )
        assert len(calls["fetch"]) == 4

    @pytest.mark.asyncio
    async def test_on_submitted_gets_operation_name(self, token_provider):
        handler, calls = _vertex(1, {"response": {"videos": [{"gcsUri": "gs://b/f.mp4"}]}})
        seen = []
        await veo.generate_video(
            "https://x/fg.png", "p",
            token_provider=token_provider, client=_client(handler), poll_interval=0,
            on_submitted=lambda name: seen.append((name, len(calls["fetch"]))),
        )
        assert seen == [(OPERATION, 0)]
