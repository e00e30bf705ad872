from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()

def _get_env(name: str, default: str | None = None) -> str | None:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value


def _get_env_bool(name: str, default: bool) -> bool:
    raw = _get_env(name, None)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _get_env_int(name: str, default: int) -> int:
    raw = _get_env(name, None)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _get_env_float(name: str, default: float | None) -> float | None:
    raw = _get_env(name, None)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _get_env_list(name: str, default: list[str]) -> tuple[str, ...]:
    raw = _get_env(name, None)
    if raw is None:
        return tuple(default)
    values = [item.strip() for item in raw.split(",")]
    clean = [item for item in values if item]
    return tuple(clean) if clean else tuple(default)


DEFAULT_INSTRUCTION = "生成简历与 JD 的匹配度分析报告"


@dataclass(frozen=True)
class Settings:
    rate_limit: str
    rate_limit_enabled: bool
    log_level: str
    sentry_dsn: str | None
    cors_allowed_origins: tuple[str, ...]
    cors_allow_origin_regex: str | None
    cors_allow_credentials: bool
    max_upload_bytes: int
    coze_api_token: str | None
    coze_workflow_id: str | None
    coze_base_url: str
    coze_upload_path: str
    coze_run_path: str
    coze_history_path: str
    coze_file_id_fields: tuple[str, ...]
    coze_resume_slot: str
    coze_jd_slot: str
    coze_instruction_slot: str
    coze_default_instruction: str
    coze_http_timeout_s: float | None
    coze_completed_statuses: tuple[str, ...]
    coze_failed_statuses: tuple[str, ...]
    poll_interval_s: float
    poll_max_attempts: int


def load_settings() -> Settings:
    poll_interval_s = _get_env_float("POLL_INTERVAL_S", None)
    loaded = Settings(
        rate_limit=_get_env("RATE_LIMIT", "30/minute") or "30/minute",
        rate_limit_enabled=_get_env_bool("RATE_LIMIT_ENABLED", True),
        log_level=_get_env("LOG_LEVEL", "INFO") or "INFO",
        sentry_dsn=_get_env("SENTRY_DSN"),
        cors_allowed_origins=_get_env_list(
            "CORS_ALLOWED_ORIGINS",
            [
                "http://localhost:3000",
                "http://127.0.0.1:3000",
                "http://localhost:5173",
            ],
        ),
        cors_allow_origin_regex=_get_env("CORS_ALLOW_ORIGIN_REGEX", r"^https:\/\/[a-z0-9-]+-.*\.vercel\.app$"),
        cors_allow_credentials=_get_env_bool("CORS_ALLOW_CREDENTIALS", False),
        max_upload_bytes=_get_env_int("MAX_UPLOAD_BYTES", 10 * 1024 * 1024),
        coze_api_token=_get_env("COZE_API_TOKEN") or _get_env("COZE_API_KEY"),
        coze_workflow_id=_get_env("COZE_WORKFLOW_ID"),
        coze_base_url=_get_env("COZE_BASE_URL", "https://api.coze.cn") or "https://api.coze.cn",
        coze_upload_path=_get_env("COZE_UPLOAD_PATH", "/v1/files/upload") or "/v1/files/upload",
        coze_run_path=_get_env("COZE_RUN_PATH", "/v1/workflow/run") or "/v1/workflow/run",
        coze_history_path=_get_env("COZE_HISTORY_PATH", "/open_api/v2/workflow/history")
        or "/open_api/v2/workflow/history",
        coze_file_id_fields=_get_env_list("COZE_FILE_ID_FIELDS", ["id", "file_id"]),
        coze_resume_slot=_get_env("COZE_RESUME_SLOT", "file") or "file",
        coze_jd_slot=_get_env("COZE_JD_SLOT", "jd") or "jd",
        coze_instruction_slot=_get_env("COZE_INSTRUCTION_SLOT", "content") or "content",
        coze_default_instruction=_get_env("COZE_DEFAULT_INSTRUCTION", DEFAULT_INSTRUCTION) or DEFAULT_INSTRUCTION,
        coze_http_timeout_s=_get_env_float("COZE_HTTP_TIMEOUT_S", None),
        coze_completed_statuses=_get_env_list(
            "COZE_COMPLETED_STATUSES", ["completed", "success", "done", "succeeded"]
        ),
        coze_failed_statuses=_get_env_list("COZE_FAILED_STATUSES", ["fail", "failed", "failure", "error"]),
        poll_interval_s=3.0 if poll_interval_s is None else poll_interval_s,
        poll_max_attempts=_get_env_int("POLL_MAX_ATTEMPTS", 0),
    )

    if loaded.poll_interval_s < 0:
        raise RuntimeError("POLL_INTERVAL_S must be zero or a positive number of seconds.")

    if loaded.poll_max_attempts < 0:
        raise RuntimeError("POLL_MAX_ATTEMPTS must be zero (unbounded) or a positive integer.")

    if loaded.max_upload_bytes <= 0:
        raise RuntimeError("MAX_UPLOAD_BYTES must be a positive integer.")

    return loaded


settings = load_settings()
