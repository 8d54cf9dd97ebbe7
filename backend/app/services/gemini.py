import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from ..config import Settings
from ..schemas import ChatProxyRequest, UpstreamRequest


logger = logging.getLogger(__name__)

FALLBACK_ERROR_MESSAGE = "Failed to call Gemini API"

_MODEL_NAME_RE = re.compile(r"^[A-Za-z0-9._-]+$")


class UpstreamCallError(RuntimeError):
    """The call to Gemini did not produce a usable response."""


@dataclass(frozen=True)
class UpstreamResult:
    status_code: int
    text: str
    data: Optional[Any] = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


def select_model(payload: ChatProxyRequest, settings: Settings) -> str:
    return payload.model or settings.gemini_model


def is_model_allowed(model: str, allowed_models: List[str]) -> bool:
    # The model is interpolated into the URL path, so it must stay a single segment.
    if not _MODEL_NAME_RE.match(model) or model in {".", ".."}:
        return False
    if allowed_models:
        return model in allowed_models
    return True


def build_upstream_url(model: str, settings: Settings) -> str:
    return (
        f"{settings.gemini_api_base}/{settings.gemini_api_version}"
        f"/models/{quote(model, safe='')}:generateContent"
    )


def build_upstream_body(payload: ChatProxyRequest, settings: Settings) -> Dict[str, Any]:
    generation_config = payload.generationConfig
    if generation_config is None:
        generation_config = dict(settings.generation_config)
    return UpstreamRequest(contents=payload.contents, generationConfig=generation_config).model_dump()


class GeminiClient:
    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._settings = settings
        self._transport = transport

    async def generate_content(self, *, model: str, body: Dict[str, Any]) -> UpstreamResult:
        api_key = self._settings.gemini_api_key
        if not api_key:
            raise UpstreamCallError("GEMINI_API_KEY not configured")

        url = build_upstream_url(model, self._settings)
        logger.info("Calling Gemini API (model=%s)", model)
        try:
            async with httpx.AsyncClient(
                transport=self._transport, timeout=self._settings.gemini_timeout
            ) as client:
                response = await client.post(
                    url,
                    params={"key": api_key},
                    json=body,
                    headers={"Content-Type": "application/json"},
                )
        except (httpx.HTTPError, httpx.InvalidURL, httpx.StreamError, ValueError) as exc:
            logger.error("Gemini API request failed: %s", exc.__class__.__name__)
            raise UpstreamCallError(str(exc) or FALLBACK_ERROR_MESSAGE) from exc

        if not response.is_success:
            logger.warning("Gemini API Error %s: %s", response.status_code, response.text)
            return UpstreamResult(status_code=response.status_code, text=response.text)

        try:
            data = response.json()
        except ValueError as exc:
            logger.error("Gemini API returned a non-JSON body (status=%s)", response.status_code)
            raise UpstreamCallError(str(exc) or FALLBACK_ERROR_MESSAGE) from exc
        return UpstreamResult(status_code=response.status_code, text=response.text, data=data)
