"""Pydantic schemas for edit requests on published events."""
from typing import Any, Optional
from pydantic import BaseModel


class EditRequestCreate(BaseModel):
    requested_changes: dict[str, Any] = {}
    reason: str = ""
    version: Optional[int] = None


class EditRequestApprove(BaseModel):
    approver_changes: Optional[dict[str, Any]] = None
    version: Optional[int] = None


class EditRequestReject(BaseModel):
    reason: str = ""
    version: Optional[int] = None


class EditRequestCancel(BaseModel):
    version: Optional[int] = None
