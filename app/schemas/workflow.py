from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

RunStatus = Literal["Success", "Started", "Error"]
CheckStatus = Literal["Running", "Success", "Error", "Timeout"]


class RunWorkflowRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    resume_base64: str = Field(default="", alias="resumeBase64")
    resume_name: str | None = Field(default=None, alias="resumeName", max_length=255)
    resume_mime: str | None = Field(default=None, alias="resumeMime", max_length=100)
    jd_base64: str = Field(default="", alias="jdBase64")
    jd_name: str | None = Field(default=None, alias="jdName", max_length=255)
    jd_mime: str | None = Field(default=None, alias="jdMime", max_length=100)
    content: str | None = Field(default=None, max_length=4000)


class RunWorkflowResponse(BaseModel):
    status: RunStatus
    output: str | None = None
    execute_id: str | None = None
    debug_url: str | None = None
    message: str | None = None


class WorkflowErrorResponse(BaseModel):
    status: Literal["Error"] = "Error"
    error: str
    code: str | None = None
    vendor_code: int | None = None
    http_status: int | None = None
    debug_url: str | None = None


class CheckStatusResponse(BaseModel):
    status: CheckStatus
    execute_id: str
    output: str | None = None
    error: str | None = None
    code: str | None = None
    debug_url: str | None = None
    execution_status: str | None = None
