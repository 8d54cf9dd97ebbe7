import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import pathlib
import yaml


DEFAULT_MODEL = "gemini-2.5-flash"
DEFAULT_API_BASE = "https://generativelanguage.googleapis.com"
DEFAULT_API_VERSION = "v1beta"
DEFAULT_TIMEOUT_SECONDS = 60.0

DEFAULT_GENERATION_CONFIG: Dict[str, Any] = {
    "temperature": 0.8,
    "topK": 40,
    "topP": 0.95,
    "maxOutputTokens": 1024,
}


@dataclass(frozen=True)
class Settings:
    gemini_api_key: Optional[str]
    gemini_model: str = DEFAULT_MODEL
    gemini_api_base: str = DEFAULT_API_BASE
    gemini_api_version: str = DEFAULT_API_VERSION
    gemini_timeout: float = DEFAULT_TIMEOUT_SECONDS
    generation_config: Dict[str, Any] = field(default_factory=lambda: dict(DEFAULT_GENERATION_CONFIG))
    allowed_models: List[str] = field(default_factory=list)
    log_level: str = "INFO"


def load_settings(config_path: Optional[pathlib.Path] = None) -> Settings:
    overrides = _load_overrides(config_path)

    timeout_env = os.getenv("GEMINI_TIMEOUT_SECONDS") or overrides.get("timeout_seconds")
    try:
        timeout = float(timeout_env) if timeout_env else DEFAULT_TIMEOUT_SECONDS
    except (TypeError, ValueError):
        timeout = DEFAULT_TIMEOUT_SECONDS
    if timeout <= 0:
        timeout = DEFAULT_TIMEOUT_SECONDS

    allowed_env = os.getenv("GEMINI_ALLOWED_MODELS")
    if allowed_env is not None:
        allowed = [m.strip() for m in allowed_env.split(",") if m.strip()]
    else:
        allowed = [str(m).strip() for m in overrides.get("allowed_models") or [] if str(m).strip()]

    generation_config = overrides.get("generation_config")
    if not isinstance(generation_config, dict):
        generation_config = dict(DEFAULT_GENERATION_CONFIG)

    return Settings(
        gemini_api_key=os.getenv("GEMINI_API_KEY") or None,
        gemini_model=os.getenv("GEMINI_MODEL") or overrides.get("model") or DEFAULT_MODEL,
        gemini_api_base=(
            os.getenv("GEMINI_API_BASE") or overrides.get("api_base") or DEFAULT_API_BASE
        ).rstrip("/"),
        gemini_api_version=os.getenv("GEMINI_API_VERSION") or overrides.get("api_version") or DEFAULT_API_VERSION,
        gemini_timeout=timeout,
        generation_config=generation_config,
        allowed_models=allowed,
        log_level=(os.getenv("LOG_LEVEL") or "INFO").upper(),
    )


def _load_overrides(config_path: Optional[pathlib.Path] = None) -> dict:
    # gemini.yml lives in the backend root (parent of app/)
    if config_path is None:
        backend_root = pathlib.Path(__file__).resolve().parents[1]
        config_path = backend_root / "gemini.yml"
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError):
        return {}
    if not isinstance(data, dict):
        return {}
    return data
