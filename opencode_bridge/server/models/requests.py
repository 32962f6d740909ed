"""Request models for API endpoints."""
from typing import Annotated, Literal, Optional

from pydantic import BaseModel, Field, field_validator


class CreateSessionRequest(BaseModel):
    conversation_id: Annotated[str, Field(min_length=1, max_length=256)]
    owner_user_id: Annotated[str, Field(min_length=1, max_length=256)]
    project_path: Optional[str] = None


class SendMessageRequest(BaseModel):
    text: Annotated[str, Field(min_length=1)]

    @field_validator("text")
    @classmethod
    def validate_text(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Message text must not be blank")
        return v


class SwitchProjectRequest(BaseModel):
    project_path: Annotated[str, Field(min_length=1)]


class PermissionReplyRequest(BaseModel):
    decision: Literal["once", "always", "reject"]
