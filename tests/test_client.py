from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from cinematifier.providers.circuit_breaker import CircuitOpenError
from cinematifier.providers.client import ResilientProviderClient
from cinematifier.providers.errors import ErrorKind, ProviderError
from cinematifier.providers.model import ProviderConfig, ProviderName
from cinematifier.providers.retry import RetryPolicy

from conftest import RecordingTransport

OPENAI = ProviderConfig(provider=ProviderName.OPENAI, api_key="sk-test")


def _sse(*texts: str) -> str:
    events = [f"data: {json.dumps({'choices': [{'delta': {'content': text}}]})}" for text in texts]
    return "\n\n".join(events + ["data: [DONE]"]) + "\n\n"


@pytest.mark.asyncio
async def test_concurrent_identical_prompts_share_one_request(context, openai_reply):
    transport = RecordingTransport(lambda request: httpx.Response(200, json=openai_reply("BEAT")))
    async with ResilientProviderClient(context, transport.client()) as client:
        results = await asyncio.gather(*(client.call("same prompt", OPENAI) for _ in range(3)))

    assert results == ["BEAT", "BEAT", "BEAT"]
    assert len(transport.requests) == 1
    assert context.in_flight == {}
    body = json.loads(transport.requests[0].content)
    assert body["messages"][-1]["content"] == "same prompt"


@pytest.mark.asyncio
async def test_cached_until_ttl_expires(context, clock, openai_reply):
    transport = RecordingTransport(lambda request: httpx.Response(200, json=openai_reply("FADE IN.")))
    client = ResilientProviderClient(context, transport.client())

    assert await client.call("prompt", OPENAI) == "FADE IN."
    assert await client.call("prompt", OPENAI) == "FADE IN."
    assert len(transport.requests) == 1

    clock.advance(30 * 60 + 1)
    assert await client.call("prompt", OPENAI) == "FADE IN."
    assert len(transport.requests) == 2


@pytest.mark.asyncio
async def test_system_prompt_is_part_of_the_cache_key(context, openai_reply):
    transport = RecordingTransport(lambda request: httpx.Response(200, json=openai_reply("ok")))
    client = ResilientProviderClient(context, transport.client())
    await client.call("prompt", OPENAI, system="A")
    await client.call("prompt", OPENAI, system="B")
    assert len(transport.requests) == 2


@pytest.mark.asyncio
async def test_transient_errors_are_retried(context, clock, openai_reply):
    responses = [httpx.Response(503), httpx.Response(200, json=openai_reply("SFX: BOOM"))]
    transport = RecordingTransport(lambda request: responses.pop(0))
    client = ResilientProviderClient(context, transport.client())

    assert await client.call("prompt", OPENAI) == "SFX: BOOM"
    assert len(transport.requests) == 2
    assert clock.sleeps == [10.0]


@pytest.mark.asyncio
async def test_auth_failure_surfaces_without_retry(context, clock):
    transport = RecordingTransport(lambda request: httpx.Response(401, json={"error": "bad key"}))
    client = ResilientProviderClient(context, transport.client())

    with pytest.raises(ProviderError) as excinfo:
        await client.call("prompt", OPENAI)
    assert excinfo.value.kind is ErrorKind.AUTH
    assert len(transport.requests) == 1
    assert clock.sleeps == []
    assert context.in_flight == {}


@pytest.mark.asyncio
async def test_invalid_json_is_an_invalid_response(context):
    transport = RecordingTransport(lambda request: httpx.Response(200, text="<html>oops</html>"))
    client = ResilientProviderClient(context, transport.client())
    with pytest.raises(ProviderError) as excinfo:
        await client.call("prompt", OPENAI)
    assert excinfo.value.kind is ErrorKind.INVALID_RESPONSE


@pytest.mark.asyncio
async def test_breaker_opens_after_repeated_failures(context):
    transport = RecordingTransport(lambda request: httpx.Response(500))
    client = ResilientProviderClient(context, transport.client(), retry_policy=RetryPolicy(max_attempts=1))

    for index in range(5):
        with pytest.raises(ProviderError):
            await client.call(f"prompt {index}", OPENAI)
    with pytest.raises(CircuitOpenError):
        await client.call("prompt 5", OPENAI)
    assert len(transport.requests) == 5


@pytest.mark.asyncio
async def test_stream_yields_deltas_and_caches_full_text(context):
    transport = RecordingTransport(lambda request: httpx.Response(200, text=_sse("BEAT\n\n", "He runs.")))
    client = ResilientProviderClient(context, transport.client())

    deltas = [delta async for delta in client.stream("prompt", OPENAI)]
    assert deltas == ["BEAT\n\n", "He runs."]
    assert json.loads(transport.requests[0].content)["stream"] is True

    replay = [delta async for delta in client.stream("prompt", OPENAI)]
    assert replay == ["BEAT\n\nHe runs."]
    assert await client.call("prompt", OPENAI) == "BEAT\n\nHe runs."
    assert len(transport.requests) == 1


@pytest.mark.asyncio
async def test_stream_retries_before_first_delta(context, clock):
    responses = [httpx.Response(429, headers={"Retry-After": "2"}), httpx.Response(200, text=_sse("ok"))]
    transport = RecordingTransport(lambda request: responses.pop(0))
    client = ResilientProviderClient(context, transport.client())

    assert [delta async for delta in client.stream("prompt", OPENAI)] == ["ok"]
    assert len(transport.requests) == 2
    assert clock.sleeps == [2.0]


@pytest.mark.asyncio
async def test_empty_stream_is_invalid(context):
    transport = RecordingTransport(lambda request: httpx.Response(200, text="data: [DONE]\n\n"))
    client = ResilientProviderClient(context, transport.client())
    with pytest.raises(ProviderError) as excinfo:
        async for _ in client.stream("prompt", OPENAI):
            pass
    assert excinfo.value.kind is ErrorKind.INVALID_RESPONSE


async def _collect(stream):
    return [delta async for delta in stream]


@pytest.mark.asyncio
async def test_concurrent_identical_streams_share_one_request(context):
    async def slow_stream(request):
        await asyncio.sleep(0.01)
        return httpx.Response(200, text=_sse("BEAT\n\n", "He runs."))

    transport = RecordingTransport(slow_stream)
    client = ResilientProviderClient(context, transport.client())

    leader, *followers = await asyncio.gather(
        *(_collect(client.stream("same prompt", OPENAI)) for _ in range(3))
    )

    assert leader == ["BEAT\n\n", "He runs."]
    assert followers == [["BEAT\n\nHe runs."], ["BEAT\n\nHe runs."]]
    assert len(transport.requests) == 1
    assert context.in_flight == {}
    assert context.cache.get(client.cache_key("same prompt", OPENAI)) == "BEAT\n\nHe runs."


@pytest.mark.asyncio
async def test_stream_failure_reaches_joined_callers(context):
    async def refused(request):
        await asyncio.sleep(0.01)
        return httpx.Response(401, json={"error": "bad key"})

    transport = RecordingTransport(refused)
    client = ResilientProviderClient(context, transport.client())

    outcomes = await asyncio.gather(
        *(_collect(client.stream("same prompt", OPENAI)) for _ in range(2)), return_exceptions=True
    )

    assert all(isinstance(outcome, ProviderError) for outcome in outcomes)
    assert {outcome.kind for outcome in outcomes} == {ErrorKind.AUTH}
    assert len(transport.requests) == 1
    assert context.in_flight == {}


@pytest.mark.asyncio
async def test_abandoned_stream_releases_its_slot(context):
    transport = RecordingTransport(lambda request: httpx.Response(200, text=_sse("BEAT\n\n", "He runs.")))
    client = ResilientProviderClient(context, transport.client())

    stream = client.stream("prompt", OPENAI)
    assert await stream.__anext__() == "BEAT\n\n"
    await stream.aclose()
    await asyncio.sleep(0)

    assert context.in_flight == {}
    assert context.cache.get(client.cache_key("prompt", OPENAI)) is None


@pytest.mark.asyncio
async def test_non_streaming_provider_is_called_once(context):
    transport = RecordingTransport(lambda request: httpx.Response(200, json={"response": "FADE IN.", "done": True}))
    client = ResilientProviderClient(context, transport.client())
    ollama = ProviderConfig(provider=ProviderName.OLLAMA, base_url="http://gpu-box:11434")

    assert [delta async for delta in client.stream("prompt", ollama)] == ["FADE IN."]
    assert len(transport.requests) == 1
    assert json.loads(transport.requests[0].content)["stream"] is False
    assert json.loads(transport.requests[0].content)["options"]["temperature"] == 0.4
