from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Mapping


@dataclass(frozen=True)
class UploadRequest:
    content: bytes
    filename: str
    mime_type: str


@dataclass(frozen=True)
class FileReference:
    id: str


@dataclass(frozen=True)
class WorkflowSubmission:
    workflow_id: str
    file_references: Mapping[str, FileReference]
    instruction_text: str
    instruction_slot: str = "content"

    def parameters(self) -> dict[str, str]:
        """Vendor parameter mapping: each file slot carries a JSON-encoded ``{"file_id": ...}``."""
        params = {slot: json.dumps({"file_id": ref.id}) for slot, ref in self.file_references.items()}
        params[self.instruction_slot] = self.instruction_text
        return params


@dataclass(frozen=True)
class ExecutionHandle:
    execute_id: str
    debug_url: str | None = None


class ExecutionState(str, Enum):
    RUNNING = "Running"
    SUCCESS = "Success"
    ERROR = "Error"
    TIMEOUT = "Timeout"


@dataclass(frozen=True)
class ExecutionResult:
    state: ExecutionState
    output: str | None = None
    error_message: str | None = None
    debug_url: str | None = None
    error_code: str | None = None
    vendor_status: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.state is not ExecutionState.RUNNING

    @classmethod
    def running(cls, *, debug_url: str | None = None, vendor_status: str | None = None) -> "ExecutionResult":
        return cls(state=ExecutionState.RUNNING, debug_url=debug_url, vendor_status=vendor_status)

    @classmethod
    def success(
        cls,
        output: str,
        *,
        debug_url: str | None = None,
        vendor_status: str | None = None,
    ) -> "ExecutionResult":
        return cls(state=ExecutionState.SUCCESS, output=output, debug_url=debug_url, vendor_status=vendor_status)

    @classmethod
    def error(
        cls,
        message: str,
        *,
        code: str,
        debug_url: str | None = None,
        vendor_status: str | None = None,
    ) -> "ExecutionResult":
        return cls(
            state=ExecutionState.ERROR,
            error_message=message,
            error_code=code,
            debug_url=debug_url,
            vendor_status=vendor_status,
        )

    @classmethod
    def timeout(cls, attempts: int, *, debug_url: str | None = None) -> "ExecutionResult":
        return cls(
            state=ExecutionState.TIMEOUT,
            error_message=f"Workflow did not finish after {attempts} status checks.",
            error_code="timeout",
            debug_url=debug_url,
        )


class SubmissionKind(str, Enum):
    SUCCESS = "Success"
    PENDING = "Pending"
    ERROR = "Error"


@dataclass(frozen=True)
class SubmissionOutcome:
    kind: SubmissionKind
    output: str | None = None
    handle: ExecutionHandle | None = None
    error_message: str | None = None
    error_code: str | None = None
    debug_url: str | None = None
    http_status: int | None = None
    vendor_code: int | None = None
    execute_id: str | None = None

    @classmethod
    def success(
        cls,
        output: str,
        *,
        execute_id: str | None = None,
        debug_url: str | None = None,
    ) -> "SubmissionOutcome":
        return cls(kind=SubmissionKind.SUCCESS, output=output, execute_id=execute_id, debug_url=debug_url)

    @classmethod
    def pending(cls, handle: ExecutionHandle) -> "SubmissionOutcome":
        return cls(
            kind=SubmissionKind.PENDING,
            handle=handle,
            execute_id=handle.execute_id,
            debug_url=handle.debug_url,
        )

    @classmethod
    def failed(
        cls,
        message: str,
        *,
        code: str,
        debug_url: str | None = None,
        http_status: int | None = None,
        vendor_code: int | None = None,
    ) -> "SubmissionOutcome":
        return cls(
            kind=SubmissionKind.ERROR,
            error_message=message,
            error_code=code,
            debug_url=debug_url,
            http_status=http_status,
            vendor_code=vendor_code,
        )
