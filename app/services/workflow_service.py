from __future__ import annotations

import json
import logging
import time
from functools import lru_cache
from typing import Any, Callable

import httpx

from app.integrations.coze import (
    COMPLETED_STATUSES,
    FAILED_STATUSES,
    CozeConfig,
    CozeWorkflowClient,
    InvalidInput,
    VendorRejected,
    WorkflowError,
    WorkflowNotConfigured,
    load_coze_config,
    vendor_code,
)
from app.services.workflow_types import (
    ExecutionHandle,
    ExecutionResult,
    SubmissionOutcome,
    UploadRequest,
    WorkflowSubmission,
)

logger = logging.getLogger(__name__)

DEFAULT_RESUME_NAME = "resume.pdf"
DEFAULT_RESUME_MIME = "application/pdf"
DEFAULT_JD_NAME = "jd.jpg"
DEFAULT_JD_MIME = "image/jpeg"

_STATUS_FIELDS = ("status", "state", "execution_status", "execute_status")
_PAYLOAD_FIELDS = ("data", "output")
_RECORD_FIELDS = _STATUS_FIELDS + _PAYLOAD_FIELDS + ("is_completed", "debug_url")


def _as_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False)


def decode_output(raw: Any) -> str:
    """Unwrap a vendor result payload into display text.

    Strings are decoded as JSON when possible and a nested ``data`` field wins;
    anything that does not decode is returned verbatim.
    """
    if isinstance(raw, str):
        try:
            parsed = json.loads(raw)
        except ValueError:
            logger.debug("workflow_output_not_json len=%s", len(raw))
            return raw
        if isinstance(parsed, dict) and parsed.get("data"):
            return _as_text(parsed["data"])
        if isinstance(parsed, str):
            return parsed
        return raw

    if isinstance(raw, dict) and raw.get("data"):
        return _as_text(raw["data"])
    return _as_text(raw)


def _has_payload(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True


def _history_record(data: Any) -> dict[str, Any] | None:
    if isinstance(data, str):
        raw = data
        try:
            data = json.loads(raw)
        except ValueError:
            return {"data": raw}
        if not isinstance(data, (dict, list)):
            return {"data": raw}
        if isinstance(data, dict) and not any(name in data for name in _RECORD_FIELDS):
            return {"data": raw}
    if isinstance(data, list):
        records = [item for item in data if isinstance(item, dict)]
        if records:
            return records[-1]
        return {"data": data} if data else None
    if isinstance(data, dict):
        return data
    if data is None:
        return None
    return {"data": data}


def _status_marker(record: dict[str, Any]) -> str | None:
    for name in _STATUS_FIELDS:
        value = record.get(name)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def normalize_execution(
    envelope: dict[str, Any],
    *,
    completed_statuses: tuple[str, ...] = COMPLETED_STATUSES,
    failed_statuses: tuple[str, ...] = FAILED_STATUSES,
) -> ExecutionResult:
    """Map one workflow-history response onto Running / Success / Error.

    A failure marker on the record ends the execution as Error. Completion is
    only declared when the payload decodes to non-blank text; a status marker
    that claims completion without data keeps the execution Running.
    """
    debug_url = envelope.get("debug_url")
    if vendor_code(envelope) != 0:
        return ExecutionResult.error(
            str(envelope.get("msg") or "Workflow query failed"),
            code=VendorRejected.code,
            debug_url=debug_url,
        )

    record = _history_record(envelope.get("data"))
    if record is None:
        return ExecutionResult.running(debug_url=debug_url)

    debug_url = debug_url or record.get("debug_url")
    marker = _status_marker(record)
    status = (marker or "").lower()
    if status in failed_statuses:
        message = record.get("error_message") or record.get("msg") or "Workflow execution failed"
        logger.info("workflow_execution_failed status=%s", marker)
        return ExecutionResult.error(
            str(message),
            code=VendorRejected.code,
            debug_url=debug_url,
            vendor_status=marker,
        )

    payload = next((record[name] for name in _PAYLOAD_FIELDS if _has_payload(record.get(name))), None)
    output = decode_output(payload) if payload is not None else ""
    if output.strip():
        return ExecutionResult.success(output, debug_url=debug_url, vendor_status=marker)

    if status in completed_statuses or record.get("is_completed") is True:
        logger.info("workflow_completed_without_payload status=%s", marker)
    return ExecutionResult.running(debug_url=debug_url, vendor_status=marker)


class WorkflowSubmitter:
    def __init__(self, client: CozeWorkflowClient):
        self._client = client

    @property
    def config(self) -> CozeConfig:
        return self._client.config

    def submit(
        self,
        resume_bytes: bytes,
        resume_name: str | None,
        jd_bytes: bytes,
        jd_name: str | None,
        instruction_text: str | None = None,
        *,
        resume_mime: str | None = None,
        jd_mime: str | None = None,
    ) -> SubmissionOutcome:
        try:
            return self._submit(
                resume_bytes,
                resume_name,
                jd_bytes,
                jd_name,
                instruction_text,
                resume_mime=resume_mime,
                jd_mime=jd_mime,
            )
        except WorkflowError as exc:
            logger.warning("workflow_submit_failed code=%s: %s", exc.code, exc.message)
            return SubmissionOutcome.failed(
                exc.message,
                code=exc.code,
                debug_url=exc.debug_url,
                http_status=exc.http_status,
                vendor_code=exc.vendor_code,
            )

    def _submit(
        self,
        resume_bytes: bytes,
        resume_name: str | None,
        jd_bytes: bytes,
        jd_name: str | None,
        instruction_text: str | None,
        *,
        resume_mime: str | None,
        jd_mime: str | None,
    ) -> SubmissionOutcome:
        config = self.config
        if not config.can_submit:
            raise WorkflowNotConfigured("Missing COZE_API_TOKEN or COZE_WORKFLOW_ID")
        if not resume_bytes:
            raise InvalidInput("Resume file is required.")
        if not jd_bytes:
            raise InvalidInput("Job description file is required.")

        resume_ref = self._client.upload_file(
            UploadRequest(
                content=resume_bytes,
                filename=resume_name or DEFAULT_RESUME_NAME,
                mime_type=resume_mime or DEFAULT_RESUME_MIME,
            )
        )
        jd_ref = self._client.upload_file(
            UploadRequest(
                content=jd_bytes,
                filename=jd_name or DEFAULT_JD_NAME,
                mime_type=jd_mime or DEFAULT_JD_MIME,
            )
        )
        logger.info("workflow_files_uploaded resume_id=%s jd_id=%s", resume_ref.id, jd_ref.id)

        submission = WorkflowSubmission(
            workflow_id=config.workflow_id or "",
            file_references={config.resume_slot: resume_ref, config.jd_slot: jd_ref},
            instruction_text=(instruction_text or "").strip() or config.default_instruction,
            instruction_slot=config.instruction_slot,
        )
        envelope = self._client.run_workflow(submission)
        return self._interpret(envelope)

    def _interpret(self, envelope: dict[str, Any]) -> SubmissionOutcome:
        execute_id = envelope.get("execute_id")
        execute_id = str(execute_id) if execute_id else None
        debug_url = envelope.get("debug_url")

        data = envelope.get("data")
        output = decode_output(data) if isinstance(data, str) and data.strip() else ""
        if output.strip():
            logger.info("workflow_completed_inline execute_id=%s", execute_id)
            return SubmissionOutcome.success(output, execute_id=execute_id, debug_url=debug_url)

        if not execute_id:
            raise VendorRejected(
                "Workflow response carried neither output nor execute_id.",
                debug_url=debug_url,
                vendor_code=0,
            )
        logger.info("workflow_started execute_id=%s", execute_id)
        return SubmissionOutcome.pending(ExecutionHandle(execute_id=execute_id, debug_url=debug_url))


class ExecutionPoller:
    def __init__(self, client: CozeWorkflowClient, *, sleep: Callable[[float], None] = time.sleep):
        self._client = client
        self._sleep = sleep

    def poll(self, execute_id: str) -> ExecutionResult:
        execute_id = (execute_id or "").strip()
        if not execute_id:
            return ExecutionResult.error("execute_id is required", code=InvalidInput.code)
        try:
            envelope = self._client.workflow_history(execute_id)
        except WorkflowError as exc:
            return ExecutionResult.error(exc.message, code=exc.code, debug_url=exc.debug_url)
        config = self._client.config
        return normalize_execution(
            envelope,
            completed_statuses=config.completed_statuses,
            failed_statuses=config.failed_statuses,
        )

    def wait(
        self,
        execute_id: str,
        *,
        interval_s: float | None = None,
        max_attempts: int | None = None,
    ) -> ExecutionResult:
        config = self._client.config
        interval = config.poll_interval_s if interval_s is None else interval_s
        limit = config.poll_max_attempts if max_attempts is None else max_attempts

        attempts = 0
        debug_url = None
        while True:
            result = self.poll(execute_id)
            attempts += 1
            debug_url = result.debug_url or debug_url
            if result.is_terminal:
                return result
            if limit and attempts >= limit:
                logger.warning("workflow_poll_timeout execute_id=%s attempts=%s", execute_id, attempts)
                return ExecutionResult.timeout(attempts, debug_url=debug_url)
            self._sleep(interval)


class WorkflowService:
    """Submitter and poller sharing one vendor client."""

    def __init__(
        self,
        config: CozeConfig,
        http_client: httpx.Client | None = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.client = CozeWorkflowClient(config, http_client)
        self.submitter = WorkflowSubmitter(self.client)
        self.poller = ExecutionPoller(self.client, sleep=sleep)

    @property
    def config(self) -> CozeConfig:
        return self.client.config

    def submit(
        self,
        resume_bytes: bytes,
        resume_name: str | None,
        jd_bytes: bytes,
        jd_name: str | None,
        instruction_text: str | None = None,
        *,
        resume_mime: str | None = None,
        jd_mime: str | None = None,
    ) -> SubmissionOutcome:
        return self.submitter.submit(
            resume_bytes,
            resume_name,
            jd_bytes,
            jd_name,
            instruction_text,
            resume_mime=resume_mime,
            jd_mime=jd_mime,
        )

    def poll(self, execute_id: str) -> ExecutionResult:
        return self.poller.poll(execute_id)

    def wait(
        self,
        execute_id: str,
        *,
        interval_s: float | None = None,
        max_attempts: int | None = None,
    ) -> ExecutionResult:
        return self.poller.wait(execute_id, interval_s=interval_s, max_attempts=max_attempts)

    def close(self) -> None:
        self.client.close()


@lru_cache(maxsize=1)
def get_workflow_service() -> WorkflowService:
    return WorkflowService(load_coze_config())


def close_workflow_service() -> None:
    if get_workflow_service.cache_info().currsize:
        get_workflow_service().close()
        get_workflow_service.cache_clear()
