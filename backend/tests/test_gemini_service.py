import asyncio
import json
import sys
import pathlib

BASE_DIR = pathlib.Path(__file__).resolve().parents[1]
if str(BASE_DIR) not in sys.path:
    sys.path.insert(0, str(BASE_DIR))

import httpx
import pytest

from app.config import Settings
from app.schemas import ChatProxyRequest
from app.services.gemini import (
    GeminiClient,
    UpstreamCallError,
    build_upstream_body,
    build_upstream_url,
    is_model_allowed,
    select_model,
)


CONTENTS = [{"role": "user", "parts": [{"text": "hi"}]}]


def test_select_model():
    settings = Settings(gemini_api_key="k")
    assert select_model(ChatProxyRequest(contents=CONTENTS), settings) == "gemini-2.5-flash"
    assert select_model(ChatProxyRequest(contents=CONTENTS, model=""), settings) == "gemini-2.5-flash"
    assert select_model(ChatProxyRequest(contents=CONTENTS, model="gemini-2.5-pro"), settings) == "gemini-2.5-pro"


def test_is_model_allowed():
    assert is_model_allowed("gemini-2.5-flash", [])
    assert is_model_allowed("gemini-1.5-pro-002", [])
    assert not is_model_allowed("gemini/../../v1", [])
    assert not is_model_allowed("gemini?x=1", [])
    assert not is_model_allowed("", [])
    assert not is_model_allowed("gemini-2.5-pro", ["gemini-2.5-flash"])


def test_build_upstream_url_excludes_key():
    settings = Settings(gemini_api_key="secret", gemini_api_base="http://localhost:9000", gemini_api_version="v1")
    url = build_upstream_url("gemini-2.5-flash", settings)
    assert url == "http://localhost:9000/v1/models/gemini-2.5-flash:generateContent"
    assert "secret" not in url


def test_build_upstream_body_default_config_is_a_copy():
    settings = Settings(gemini_api_key="k")
    body = build_upstream_body(ChatProxyRequest(contents=CONTENTS), settings)
    assert body["contents"] == CONTENTS
    body["generationConfig"]["temperature"] = 0
    assert settings.generation_config["temperature"] == 0.8


def test_build_upstream_body_keeps_empty_caller_config():
    settings = Settings(gemini_api_key="k")
    body = build_upstream_body(ChatProxyRequest(contents=CONTENTS, generationConfig={}), settings)
    assert body["generationConfig"] == {}


def test_generate_content_success():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"candidates": []})

    client = GeminiClient(Settings(gemini_api_key="k"), transport=httpx.MockTransport(handler))
    result = asyncio.run(client.generate_content(model="gemini-2.5-flash", body={"contents": CONTENTS}))
    assert result.ok
    assert result.data == {"candidates": []}
    assert seen[0].url.params["key"] == "k"
    assert json.loads(seen[0].content) == {"contents": CONTENTS}


def test_generate_content_error_status():
    client = GeminiClient(
        Settings(gemini_api_key="k"),
        transport=httpx.MockTransport(lambda request: httpx.Response(503, text="unavailable")),
    )
    result = asyncio.run(client.generate_content(model="gemini-2.5-flash", body={}))
    assert not result.ok
    assert result.status_code == 503
    assert result.text == "unavailable"
    assert result.data is None


def test_generate_content_transport_error():
    def handler(request):
        raise httpx.ConnectError("boom")

    client = GeminiClient(Settings(gemini_api_key="k"), transport=httpx.MockTransport(handler))
    with pytest.raises(UpstreamCallError, match="boom"):
        asyncio.run(client.generate_content(model="gemini-2.5-flash", body={}))


def test_generate_content_requires_key():
    client = GeminiClient(Settings(gemini_api_key=None))
    with pytest.raises(UpstreamCallError, match="GEMINI_API_KEY"):
        asyncio.run(client.generate_content(model="gemini-2.5-flash", body={}))


def test_generate_content_non_http_failures():
    for exc in (httpx.InvalidURL("bad host"), ValueError("Out of range float values are not JSON compliant")):
        def handler(request, exc=exc):
            raise exc

        client = GeminiClient(Settings(gemini_api_key="k"), transport=httpx.MockTransport(handler))
        with pytest.raises(UpstreamCallError, match=str(exc)):
            asyncio.run(client.generate_content(model="gemini-2.5-flash", body={}))
