import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Request
from fastapi.exception_handlers import http_exception_handler
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException
from pydantic import ValidationError

from ..config import Settings
from ..schemas import ChatProxyRequest
from ..services.gemini import (
    GeminiClient,
    UpstreamCallError,
    build_upstream_body,
    is_model_allowed,
    select_model,
)

logger = logging.getLogger(__name__)

router = APIRouter()

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST,OPTIONS,GET",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
    "Content-Type": "application/json",
}

ALL_METHODS = ["OPTIONS", "GET", "HEAD", "POST", "PUT", "PATCH", "DELETE"]


def cors_headers() -> Dict[str, str]:
    return dict(CORS_HEADERS)


def _json(status_code: int, content: Any) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=content, headers=cors_headers())


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _reject_constant(name: str) -> Any:
    # NaN and Infinity are not JSON
    raise ValueError(f"Invalid JSON constant: {name}")


async def method_not_allowed_handler(request: Request, exc: StarletteHTTPException) -> Response:
    if exc.status_code == 405:
        return _json(405, {"error": "Method Not Allowed"})
    return await http_exception_handler(request, exc)


@router.api_route("/chat", methods=ALL_METHODS)
async def chat_proxy(request: Request):
    method = request.method.upper()
    if method == "OPTIONS":
        return Response(status_code=204, headers=cors_headers())
    if method == "GET":
        return _json(200, {"status": "ok", "time": _utc_timestamp()})
    if method != "POST":
        return _json(405, {"error": "Method Not Allowed"})
    return await _forward(request)


async def _forward(request: Request) -> Response:
    settings: Settings = request.app.state.settings

    if not settings.gemini_api_key:
        logger.error("GEMINI_API_KEY is not configured")
        return _json(500, {"error": "GEMINI_API_KEY not configured in environment variables"})

    raw = await request.body()
    try:
        parsed = json.loads(raw or b"{}", parse_constant=_reject_constant)
    except ValueError:
        logger.warning("Rejected request with invalid JSON body")
        return _json(400, {"error": "Invalid JSON body"})

    if not isinstance(parsed, dict) or not isinstance(parsed.get("contents"), list):
        logger.warning("Rejected request without a contents array")
        return _json(400, {"error": 'Request must include "contents" array'})

    try:
        payload = ChatProxyRequest.model_validate(parsed)
    except ValidationError as exc:
        logger.warning("Rejected request with invalid fields: %s", exc.errors(include_url=False))
        first = exc.errors()[0]
        field = ".".join(str(p) for p in first.get("loc", ())) or "body"
        return _json(400, {"error": "Invalid request body", "details": f"{field}: {first.get('msg')}"})

    model = select_model(payload, settings)
    if not is_model_allowed(model, settings.allowed_models):
        logger.warning("Rejected request for model %r", model)
        return _json(400, {"error": f"Model not allowed: {model}"})

    client = GeminiClient(settings, transport=request.app.state.upstream_transport)
    try:
        result = await client.generate_content(model=model, body=build_upstream_body(payload, settings))
    except UpstreamCallError as exc:
        return _json(500, {"error": str(exc)})

    if not result.ok:
        return _json(
            result.status_code,
            {"error": f"Gemini API Error: {result.status_code}", "details": result.text},
        )
    return Response(status_code=200, content=result.text, headers=cors_headers())
