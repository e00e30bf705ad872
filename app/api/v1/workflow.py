import asyncio
import logging

from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile, status
from fastapi.responses import JSONResponse

from app.core.config import settings
from app.core.rate_limit import rate_limit
from app.integrations.coze import InvalidInput, NetworkError, WorkflowNotConfigured
from app.schemas.workflow import (
    CheckStatusResponse,
    RunWorkflowRequest,
    RunWorkflowResponse,
    WorkflowErrorResponse,
)
from app.services.file_payloads import decode_base64_payload, resolve_mime
from app.services.workflow_service import (
    DEFAULT_JD_MIME,
    DEFAULT_RESUME_MIME,
    WorkflowService,
    get_workflow_service,
)
from app.services.workflow_types import ExecutionState, SubmissionKind, SubmissionOutcome

router = APIRouter()
logger = logging.getLogger(__name__)

STARTED_MESSAGE = "Workflow started, still processing..."
NOT_CONFIGURED_MESSAGE = "Missing COZE_API_TOKEN or COZE_WORKFLOW_ID"

_ERROR_STATUS = {
    InvalidInput.code: status.HTTP_400_BAD_REQUEST,
    WorkflowNotConfigured.code: status.HTTP_500_INTERNAL_SERVER_ERROR,
}

_ERROR_RESPONSES = {
    400: {"model": WorkflowErrorResponse},
    413: {"model": WorkflowErrorResponse},
    500: {"model": WorkflowErrorResponse},
    502: {"model": WorkflowErrorResponse},
}


def _error_response(
    status_code: int,
    message: str,
    *,
    code: str | None = None,
    vendor_code: int | None = None,
    http_status: int | None = None,
    debug_url: str | None = None,
) -> JSONResponse:
    body = WorkflowErrorResponse(
        error=message,
        code=code,
        vendor_code=vendor_code,
        http_status=http_status,
        debug_url=debug_url,
    )
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


def _too_large(label: str) -> JSONResponse:
    limit_mb = settings.max_upload_bytes // (1024 * 1024)
    return _error_response(
        status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
        f"{label} is too large. Maximum allowed size is {limit_mb} MB.",
        code=InvalidInput.code,
    )


def _outcome_response(outcome: SubmissionOutcome):
    if outcome.kind is SubmissionKind.SUCCESS:
        return RunWorkflowResponse(
            status="Success",
            output=outcome.output,
            execute_id=outcome.execute_id,
            debug_url=outcome.debug_url,
        )
    if outcome.kind is SubmissionKind.PENDING:
        return RunWorkflowResponse(
            status="Started",
            execute_id=outcome.execute_id,
            debug_url=outcome.debug_url,
            message=STARTED_MESSAGE,
        )
    logger.info("run_workflow_failed code=%s http_status=%s", outcome.error_code, outcome.http_status)
    return _error_response(
        _ERROR_STATUS.get(outcome.error_code or "", status.HTTP_502_BAD_GATEWAY),
        outcome.error_message or "Workflow execution failed",
        code=outcome.error_code,
        vendor_code=outcome.vendor_code,
        http_status=outcome.http_status,
        debug_url=outcome.debug_url,
    )


@router.post("/run-workflow", response_model=RunWorkflowResponse, responses=_ERROR_RESPONSES)
@rate_limit()
def run_workflow(
    request: Request,
    payload: RunWorkflowRequest,
    service: WorkflowService = Depends(get_workflow_service),
):
    _ = request
    if not service.config.can_submit:
        return _error_response(500, NOT_CONFIGURED_MESSAGE, code=WorkflowNotConfigured.code)
    if not payload.resume_base64 or not payload.jd_base64:
        return _error_response(400, "resumeBase64 and jdBase64 are required", code=InvalidInput.code)

    try:
        resume_bytes = decode_base64_payload(payload.resume_base64, field_label="resumeBase64")
        jd_bytes = decode_base64_payload(payload.jd_base64, field_label="jdBase64")
    except InvalidInput as exc:
        return _error_response(400, exc.message, code=exc.code)

    if len(resume_bytes) > settings.max_upload_bytes:
        return _too_large("Resume")
    if len(jd_bytes) > settings.max_upload_bytes:
        return _too_large("Job description")

    outcome = service.submit(
        resume_bytes,
        payload.resume_name,
        jd_bytes,
        payload.jd_name,
        payload.content,
        resume_mime=resolve_mime(
            payload.resume_mime,
            data_url=payload.resume_base64,
            content=resume_bytes,
            default=DEFAULT_RESUME_MIME,
        ),
        jd_mime=resolve_mime(
            payload.jd_mime,
            data_url=payload.jd_base64,
            content=jd_bytes,
            default=DEFAULT_JD_MIME,
        ),
    )
    return _outcome_response(outcome)


async def _read_limited(file: UploadFile) -> bytes | None:
    chunks: list[bytes] = []
    total = 0
    while True:
        chunk = await file.read(1024 * 64)
        if not chunk:
            break
        total += len(chunk)
        if total > settings.max_upload_bytes:
            return None
        chunks.append(chunk)
    return b"".join(chunks)


@router.post("/run-workflow/upload", response_model=RunWorkflowResponse, responses=_ERROR_RESPONSES)
@rate_limit()
async def run_workflow_upload(
    request: Request,
    resume: UploadFile | None = File(default=None),
    jd: UploadFile | None = File(default=None),
    content: str | None = Form(default=None),
    service: WorkflowService = Depends(get_workflow_service),
):
    _ = request
    if not service.config.can_submit:
        return _error_response(500, NOT_CONFIGURED_MESSAGE, code=WorkflowNotConfigured.code)
    if resume is None or jd is None:
        return _error_response(400, "resume (PDF) and jd (image) are required", code=InvalidInput.code)

    resume_bytes = await _read_limited(resume)
    if resume_bytes is None:
        return _too_large("Resume")
    jd_bytes = await _read_limited(jd)
    if jd_bytes is None:
        return _too_large("Job description")

    outcome = await asyncio.to_thread(
        service.submit,
        resume_bytes,
        resume.filename,
        jd_bytes,
        jd.filename,
        content,
        resume_mime=resolve_mime(resume.content_type, content=resume_bytes, default=DEFAULT_RESUME_MIME),
        jd_mime=resolve_mime(jd.content_type, content=jd_bytes, default=DEFAULT_JD_MIME),
    )
    return _outcome_response(outcome)


@router.get("/check-status", response_model=CheckStatusResponse, responses=_ERROR_RESPONSES)
@rate_limit()
def check_status(
    request: Request,
    id_: str | None = Query(default=None, alias="id"),
    execute_id: str | None = Query(default=None),
    service: WorkflowService = Depends(get_workflow_service),
):
    _ = request
    target = (id_ or execute_id or "").strip()
    if not target:
        return _error_response(400, "execute_id is required", code=InvalidInput.code)
    if not service.config.can_poll:
        return _error_response(500, "Missing COZE_API_TOKEN", code=WorkflowNotConfigured.code)

    result = service.poll(target)
    if result.state is ExecutionState.ERROR and result.error_code == NetworkError.code:
        return _error_response(502, result.error_message or "check-status failed", code=result.error_code)

    return CheckStatusResponse(
        status=result.state.value,
        execute_id=target,
        output=result.output,
        error=result.error_message,
        code=result.error_code,
        debug_url=result.debug_url,
        execution_status=result.vendor_status,
    )
