import logging
import os
from typing import Optional

import httpx
from fastapi import FastAPI
from starlette.exceptions import HTTPException as StarletteHTTPException
from dotenv import load_dotenv

from .config import Settings, load_settings
from .routes.chat import method_not_allowed_handler, router as chat_router


def create_app(
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    if settings is None:
        # Load environment variables from .env if present
        if os.getenv("DOTENV_DISABLED", "false").lower() not in {"1", "true", "yes"}:
            load_dotenv()
        settings = load_settings()

    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # httpx logs the full request URL, which carries the API key
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    app = FastAPI(title="Gemini Chat Proxy", version="0.3.0")

    # Read-only for the app's lifetime; the chat route reads both per request.
    app.state.settings = settings
    app.state.upstream_transport = transport

    # CORS headers are fixed and attached by the chat route itself
    app.include_router(chat_router, prefix="/api")
    app.add_exception_handler(StarletteHTTPException, method_not_allowed_handler)

    return app
