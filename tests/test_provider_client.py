from __future__ import annotations

import json

import httpx
import pytest

from tts_gateway.schemas.tts import ProviderConfig, SynthesisRequest
from tts_gateway.services.tts.provider_client import (
    OPENAI_VOICES,
    TTSFormatError,
    TTSProviderClient,
    TTSUpstreamError,
    escape_xml,
)

EDGE = ProviderConfig(
    id="edge-api",
    name="Edge",
    wire_format="edge",
    endpoint="http://gateway.test/api/tts",
    custom=False,
)
OPENAI = ProviderConfig(
    id="oai-tts",
    name="OpenAI",
    wire_format="openai",
    endpoint="https://tts.test/v1/audio/speech",
    custom=False,
)


def _audio_response(content: bytes = b"ID3audio") -> httpx.Response:
    return httpx.Response(200, content=content, headers={"content-type": "audio/mpeg"})


class Recorder:
    def __init__(self, response: httpx.Response | None = None):
        self.requests: list[httpx.Request] = []
        self.response = response or _audio_response()

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.response

    @property
    def last_json(self) -> dict:
        return json.loads(self.requests[-1].content)


def test_escape_xml_keeps_pause_markers() -> None:
    text = 'Tom & "Jerry" it\'s <b> <break time="1s"/>'

    assert escape_xml(text) == (
        'Tom &amp; &quot;Jerry&quot; it&apos;s &lt;b&gt; <break time="1s"/>'
    )


@pytest.mark.anyio
async def test_edge_payload() -> None:
    recorder = Recorder()
    request = SynthesisRequest(voice="zh-CN-XiaoxiaoNeural", rate=10, pitch=-5)

    async with httpx.AsyncClient(transport=httpx.MockTransport(recorder)) as http:
        audio = await TTSProviderClient(EDGE, http_client=http).synthesize(
            'A & B <break time="1s"/>', request
        )

    assert audio == b"ID3audio"
    sent = recorder.requests[0]
    assert str(sent.url) == EDGE.endpoint
    assert "authorization" not in sent.headers
    assert recorder.last_json == {
        "text": 'A &amp; B <break time="1s"/>',
        "voice": "zh-CN-XiaoxiaoNeural",
        "rate": 10,
        "pitch": -5,
        "preview": False,
    }


@pytest.mark.anyio
async def test_builtin_openai_payload_strips_markers() -> None:
    recorder = Recorder()
    request = SynthesisRequest(voice="nova", instructions="Speak slowly")

    async with httpx.AsyncClient(transport=httpx.MockTransport(recorder)) as http:
        await TTSProviderClient(OPENAI, http_client=http).synthesize(
            'Hello<break time="2s"/> there', request
        )

    assert recorder.last_json == {
        "model": "nova",
        "input": "Hello there",
        "voice": "nova",
        "response_format": "mp3",
        "instructions": "Speak slowly",
    }


@pytest.mark.anyio
async def test_custom_openai_provider_uses_bearer_and_fixed_voice() -> None:
    provider = OPENAI.model_copy(update={"id": "mine", "custom": True, "api_key": "sk-test"})
    recorder = Recorder()

    async with httpx.AsyncClient(transport=httpx.MockTransport(recorder)) as http:
        await TTSProviderClient(provider, http_client=http).synthesize(
            "Hi", SynthesisRequest(voice="tts-1-hd")
        )

    assert recorder.requests[0].headers["authorization"] == "Bearer sk-test"
    assert recorder.last_json["model"] == "tts-1-hd"
    assert recorder.last_json["voice"] == "alloy"
    assert "instructions" not in recorder.last_json


@pytest.mark.anyio
async def test_custom_edge_provider_with_x_api_key() -> None:
    provider = EDGE.model_copy(update={"custom": True, "api_key": "x-api-key:abc123"})
    recorder = Recorder()

    async with httpx.AsyncClient(transport=httpx.MockTransport(recorder)) as http:
        await TTSProviderClient(provider, http_client=http).synthesize(
            "Hi", SynthesisRequest(voice="v")
        )

    headers = recorder.requests[0].headers
    assert headers["x-api-key"] == "abc123"
    assert "authorization" not in headers


@pytest.mark.anyio
async def test_error_status_raises_upstream_error() -> None:
    recorder = Recorder(httpx.Response(429, text="slow down"))

    async with httpx.AsyncClient(transport=httpx.MockTransport(recorder)) as http:
        with pytest.raises(TTSUpstreamError) as excinfo:
            await TTSProviderClient(EDGE, http_client=http).synthesize(
                "Hi", SynthesisRequest(voice="v")
            )

    assert excinfo.value.status_code == 429
    assert "slow down" in str(excinfo.value)


@pytest.mark.anyio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(200, json={"error": "nope"}),
        httpx.Response(200, content=b"", headers={"content-type": "audio/mpeg"}),
    ],
)
async def test_non_audio_body_raises_format_error(response: httpx.Response) -> None:
    async with httpx.AsyncClient(transport=httpx.MockTransport(Recorder(response))) as http:
        with pytest.raises(TTSFormatError):
            await TTSProviderClient(EDGE, http_client=http).synthesize(
                "Hi", SynthesisRequest(voice="v")
            )


@pytest.mark.anyio
async def test_transport_failure_maps_to_bad_gateway() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        with pytest.raises(TTSUpstreamError) as excinfo:
            await TTSProviderClient(EDGE, http_client=http).synthesize(
                "Hi", SynthesisRequest(voice="v")
            )

    assert excinfo.value.status_code == 502


@pytest.mark.anyio
async def test_manual_and_builtin_voice_lists() -> None:
    manual = OPENAI.model_copy(update={"custom": True, "voices": ["a", "b"]})

    assert await TTSProviderClient(manual).discover_voices() == {"a": "a", "b": "b"}
    builtin = await TTSProviderClient(OPENAI).discover_voices()
    assert list(builtin) == OPENAI_VOICES


@pytest.mark.anyio
async def test_voice_discovery_filters_model_listing() -> None:
    provider = OPENAI.model_copy(
        update={
            "custom": True,
            "api_key": "sk-test",
            "model_endpoint": "https://tts.test/v1/models",
        }
    )
    recorder = Recorder(
        httpx.Response(
            200,
            json={"data": [{"id": "tts-1"}, {"id": "gpt-4o"}, {"id": "nova"}, {"x": 1}]},
        )
    )

    async with httpx.AsyncClient(transport=httpx.MockTransport(recorder)) as http:
        voices = await TTSProviderClient(provider, http_client=http).discover_voices()

    assert voices == {"tts-1": "tts-1", "nova": "nova"}
    assert recorder.requests[0].headers["authorization"] == "Bearer sk-test"


@pytest.mark.anyio
async def test_voice_discovery_accepts_plain_mapping() -> None:
    provider = EDGE.model_copy(
        update={"custom": True, "model_endpoint": "https://edge.test/voices"}
    )
    recorder = Recorder(httpx.Response(200, json={"en-US-GuyNeural": "Guy"}))

    async with httpx.AsyncClient(transport=httpx.MockTransport(recorder)) as http:
        voices = await TTSProviderClient(provider, http_client=http).discover_voices()

    assert voices == {"en-US-GuyNeural": "Guy"}
