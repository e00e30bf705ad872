from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from app.core.config import Settings, settings
from app.services.workflow_types import FileReference, UploadRequest, WorkflowSubmission

logger = logging.getLogger(__name__)

_LOG_BODY_MAX_CHARS = 500

COMPLETED_STATUSES = ("completed", "success", "done", "succeeded")
FAILED_STATUSES = ("fail", "failed", "failure", "error")


class WorkflowError(RuntimeError):
    code = "workflow_error"

    def __init__(
        self,
        message: str,
        *,
        debug_url: str | None = None,
        http_status: int | None = None,
        vendor_code: int | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.debug_url = debug_url
        self.http_status = http_status
        self.vendor_code = vendor_code


class InvalidInput(WorkflowError):
    code = "invalid_input"


class WorkflowNotConfigured(WorkflowError):
    code = "not_configured"


class UploadFailed(WorkflowError):
    code = "upload_failed"

    def __init__(self, message: str, *, http_status: int | None = None, vendor_message: str | None = None):
        super().__init__(message, http_status=http_status)
        self.vendor_message = vendor_message


class VendorRejected(WorkflowError):
    code = "vendor_rejected"


class NetworkError(WorkflowError):
    code = "network_error"


@dataclass(frozen=True)
class CozeConfig:
    api_token: str | None
    workflow_id: str | None
    base_url: str = "https://api.coze.cn"
    upload_path: str = "/v1/files/upload"
    run_path: str = "/v1/workflow/run"
    history_path: str = "/open_api/v2/workflow/history"
    file_id_fields: tuple[str, ...] = ("id", "file_id")
    resume_slot: str = "file"
    jd_slot: str = "jd"
    instruction_slot: str = "content"
    default_instruction: str = ""
    timeout_s: float | None = None
    completed_statuses: tuple[str, ...] = COMPLETED_STATUSES
    failed_statuses: tuple[str, ...] = FAILED_STATUSES
    poll_interval_s: float = 3.0
    poll_max_attempts: int = 0

    @property
    def can_submit(self) -> bool:
        return bool(self.api_token and self.workflow_id)

    @property
    def can_poll(self) -> bool:
        return bool(self.api_token)

    def url(self, path: str) -> str:
        return self.base_url.rstrip("/") + "/" + path.lstrip("/")


def load_coze_config(source: Settings | None = None) -> CozeConfig:
    cfg = source or settings
    return CozeConfig(
        api_token=(cfg.coze_api_token or "").strip() or None,
        workflow_id=(cfg.coze_workflow_id or "").strip() or None,
        base_url=cfg.coze_base_url,
        upload_path=cfg.coze_upload_path,
        run_path=cfg.coze_run_path,
        history_path=cfg.coze_history_path,
        file_id_fields=cfg.coze_file_id_fields,
        resume_slot=cfg.coze_resume_slot,
        jd_slot=cfg.coze_jd_slot,
        instruction_slot=cfg.coze_instruction_slot,
        default_instruction=cfg.coze_default_instruction,
        timeout_s=cfg.coze_http_timeout_s,
        completed_statuses=tuple(status.lower() for status in cfg.coze_completed_statuses),
        failed_statuses=tuple(status.lower() for status in cfg.coze_failed_statuses),
        poll_interval_s=cfg.poll_interval_s,
        poll_max_attempts=cfg.poll_max_attempts,
    )


def _truncate(text: str | None) -> str:
    value = text or ""
    return value[:_LOG_BODY_MAX_CHARS]


def _json_body(response: httpx.Response) -> dict[str, Any] | None:
    try:
        payload = response.json()
    except ValueError:
        return None
    return payload if isinstance(payload, dict) else None


def vendor_code(payload: dict[str, Any]) -> int | None:
    raw = payload.get("code")
    if raw is None:
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        return -1


class CozeWorkflowClient:
    """Thin adapter over the Coze file, workflow-run and workflow-history endpoints.

    Every call is independent; nothing is cached between submissions.
    """

    def __init__(self, config: CozeConfig, http_client: httpx.Client | None = None):
        self._config = config
        self._owns_http = http_client is None
        if http_client is None:
            http_client = httpx.Client(timeout=httpx.Timeout(config.timeout_s))
        self._http = http_client

    @property
    def config(self) -> CozeConfig:
        return self._config

    def close(self) -> None:
        if self._owns_http:
            self._http.close()

    def _headers(self) -> dict[str, str]:
        if not self._config.api_token:
            raise WorkflowNotConfigured("Missing COZE_API_TOKEN")
        return {"Authorization": f"Bearer {self._config.api_token}"}

    def upload_file(self, upload: UploadRequest) -> FileReference:
        headers = self._headers()
        files = {"file": (upload.filename, upload.content, upload.mime_type)}
        try:
            response = self._http.post(self._config.url(self._config.upload_path), headers=headers, files=files)
        except httpx.HTTPError as exc:
            logger.warning("coze_upload_transport_failed file=%s: %s", upload.filename, exc)
            raise UploadFailed(f"Upload failed: {exc}", vendor_message=str(exc)) from exc

        if not response.is_success:
            body = _truncate(response.text)
            logger.error("coze_upload_failed status=%s file=%s body=%s", response.status_code, upload.filename, body)
            raise UploadFailed(
                f"Upload failed: {response.status_code} {body}".strip(),
                http_status=response.status_code,
                vendor_message=body,
            )

        payload = _json_body(response)
        if payload is None:
            raise UploadFailed(
                "Upload returned a non-JSON response.",
                http_status=response.status_code,
                vendor_message=_truncate(response.text),
            )

        code = vendor_code(payload)
        if code not in (None, 0):
            message = str(payload.get("msg") or "Upload rejected by vendor.")
            raise UploadFailed(message, http_status=response.status_code, vendor_message=message)

        data = payload.get("data") if isinstance(payload.get("data"), dict) else {}
        for field_name in self._config.file_id_fields:
            file_id = data.get(field_name)
            if file_id:
                logger.info("coze_upload_ok file=%s bytes=%s id=%s", upload.filename, len(upload.content), file_id)
                return FileReference(id=str(file_id))

        logger.error("coze_upload_missing_id file=%s body=%s", upload.filename, _truncate(response.text))
        raise UploadFailed(
            f"Upload missing file id. Response: {_truncate(response.text)}",
            http_status=response.status_code,
            vendor_message=str(payload.get("msg") or ""),
        )

    def run_workflow(self, submission: WorkflowSubmission) -> dict[str, Any]:
        headers = self._headers()
        body = {"workflow_id": submission.workflow_id, "parameters": submission.parameters()}
        try:
            response = self._http.post(self._config.url(self._config.run_path), headers=headers, json=body)
        except httpx.HTTPError as exc:
            logger.warning("coze_run_transport_failed workflow=%s: %s", submission.workflow_id, exc)
            raise VendorRejected(f"Workflow call failed: {exc}") from exc
        return self._vendor_envelope(response, fallback="Workflow execution failed")

    def workflow_history(self, execute_id: str) -> dict[str, Any]:
        headers = self._headers()
        try:
            response = self._http.post(
                self._config.url(self._config.history_path),
                headers=headers,
                json={"execute_id": execute_id},
            )
        except httpx.HTTPError as exc:
            logger.warning("coze_history_transport_failed execute_id=%s: %s", execute_id, exc)
            raise NetworkError(f"Status check failed: {exc}") from exc
        return self._vendor_envelope(response, fallback="Workflow query failed")

    def _vendor_envelope(self, response: httpx.Response, *, fallback: str) -> dict[str, Any]:
        payload = _json_body(response)
        if not response.is_success:
            logger.error("coze_api_error status=%s body=%s", response.status_code, _truncate(response.text))
            payload = payload or {}
            raise VendorRejected(
                str(payload.get("msg") or f"API request failed: {response.status_code}"),
                debug_url=payload.get("debug_url"),
                http_status=response.status_code,
                vendor_code=vendor_code(payload),
            )
        if payload is None:
            raise VendorRejected(
                f"{fallback}: vendor returned a non-JSON response.",
                http_status=response.status_code,
            )

        code = vendor_code(payload)
        if code != 0:
            logger.warning("coze_vendor_rejected code=%s msg=%s", code, payload.get("msg"))
            raise VendorRejected(
                str(payload.get("msg") or fallback),
                debug_url=payload.get("debug_url"),
                http_status=response.status_code,
                vendor_code=code,
            )
        return payload
