"""
生成客户端单元测试

使用 httpx.MockTransport 模拟 OpenAI / Anthropic 接口
"""

import json

import httpx
import pytest

from sage_relay.services.generation_client import HttpGenerationClient, ProviderError

MESSAGES = [
    {"role": "user", "content": "Alex: you never listen"},
    {"role": "user", "content": "Blair: I do listen"},
]


def make_client(handler, provider="openai", api_key="test-key", **kwargs):
    return HttpGenerationClient(
        provider=provider,
        api_key=api_key,
        transport=httpx.MockTransport(handler),
        **kwargs
    )


class TestOpenAI:
    """OpenAI 兼容接口"""

    @pytest.mark.asyncio
    async def test_request_and_reply(self):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["url"] = str(request.url)
            captured["auth"] = request.headers["Authorization"]
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, json={
                "choices": [{"message": {"role": "assistant", "content": "  Let's pause.  "}}]
            })

        client = make_client(handler, model="gpt-test")
        text = await client.generate("be kind", MESSAGES, max_output_tokens=150, temperature=0.7)
        await client.aclose()

        assert text == "Let's pause."
        assert captured["url"] == "https://api.openai.com/v1/chat/completions"
        assert captured["auth"] == "Bearer test-key"
        body = captured["body"]
        assert body["model"] == "gpt-test"
        assert body["max_tokens"] == 150
        assert body["temperature"] == 0.7
        assert body["messages"][0] == {"role": "system", "content": "be kind"}
        assert body["messages"][1:] == MESSAGES

    @pytest.mark.asyncio
    async def test_custom_base_url(self):
        seen = []

        def handler(request):
            seen.append(str(request.url))
            return httpx.Response(200, json={"choices": [{"message": {"content": "ok"}}]})

        client = make_client(handler, base_url="http://localhost:8000/v1/")
        await client.generate("s", [], max_output_tokens=10, temperature=0.1)
        assert seen == ["http://localhost:8000/v1/chat/completions"]

    @pytest.mark.asyncio
    async def test_http_error(self):
        client = make_client(lambda request: httpx.Response(500, json={"error": "down"}))
        with pytest.raises(ProviderError, match="500"):
            await client.generate("s", MESSAGES, max_output_tokens=10, temperature=0.1)

    @pytest.mark.asyncio
    async def test_malformed_response(self):
        client = make_client(lambda request: httpx.Response(200, json={"unexpected": True}))
        with pytest.raises(ProviderError):
            await client.generate("s", MESSAGES, max_output_tokens=10, temperature=0.1)

    @pytest.mark.asyncio
    async def test_empty_reply(self):
        client = make_client(
            lambda request: httpx.Response(200, json={"choices": [{"message": {"content": "   "}}]})
        )
        with pytest.raises(ProviderError, match="empty"):
            await client.generate("s", MESSAGES, max_output_tokens=10, temperature=0.1)

    @pytest.mark.asyncio
    async def test_network_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        client = make_client(handler)
        with pytest.raises(ProviderError):
            await client.generate("s", MESSAGES, max_output_tokens=10, temperature=0.1)


class TestAnthropic:
    """Anthropic Messages 接口"""

    @pytest.mark.asyncio
    async def test_request_and_reply(self):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["url"] = str(request.url)
            captured["key"] = request.headers["x-api-key"]
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, json={
                "content": [
                    {"type": "text", "text": "Take a breath. "},
                    {"type": "text", "text": "Both of you matter."},
                ]
            })

        client = make_client(handler, provider="anthropic")
        text = await client.generate("be kind", MESSAGES, max_output_tokens=150, temperature=0.7)

        assert text == "Take a breath. Both of you matter."
        assert captured["url"] == "https://api.anthropic.com/v1/messages"
        assert captured["key"] == "test-key"
        body = captured["body"]
        assert body["system"] == "be kind"
        assert body["messages"] == [{
            "role": "user",
            "content": "Alex: you never listen\nBlair: I do listen",
        }]

    @pytest.mark.asyncio
    async def test_empty_context(self):
        bodies = []

        def handler(request):
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json={"content": [{"type": "text", "text": "Hi"}]})

        client = make_client(handler, provider="ANTHROPIC")
        await client.generate("s", [], max_output_tokens=10, temperature=0.1)
        assert bodies[0]["messages"][0]["content"] == "(no messages yet)"


@pytest.mark.asyncio
async def test_missing_api_key():
    def handler(request):
        raise AssertionError("no request expected")

    client = make_client(handler, api_key=None)
    assert not client.is_configured()
    with pytest.raises(ProviderError, match="not configured"):
        await client.generate("s", MESSAGES, max_output_tokens=10, temperature=0.1)


def test_unknown_provider():
    with pytest.raises(ValueError):
        HttpGenerationClient(provider="cohere", api_key="k")
