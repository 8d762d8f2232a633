from pydantic import BaseModel, ConfigDict, Field, HttpUrl
from pydantic.alias_generators import to_camel
from datetime import datetime
from typing import Optional

from gatelink.entities import MAX_STEP


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class LinkCreate(CamelModel):
    id: Optional[str] = Field(default=None, min_length=1, max_length=64, pattern=r"^[A-Za-z0-9_-]+$")
    original_url: HttpUrl
    title: str = Field(min_length=1, max_length=200)


class LinkResponse(CamelModel):
    id: str
    original_url: str
    title: str
    views: int
    active: bool
    created_at: datetime


class AdCreate(CamelModel):
    placement: str = Field(min_length=1, max_length=64)
    content: str = Field(min_length=1, alias="code")


class AdResponse(CamelModel):
    id: int
    placement: str
    content: str = Field(alias="code")
    active: bool


class InitSessionResponse(CamelModel):
    session_id: str
    step: int
    expires_at: datetime


class VerifyStepRequest(CamelModel):
    session_id: str = Field(min_length=1)
    step: int = Field(strict=True, ge=1, le=MAX_STEP)


class VerifyStepResponse(CamelModel):
    success: bool
    next_step: int
    message: Optional[str] = None


class FinalUrlResponse(CamelModel):
    url: str


class AdminLoginRequest(CamelModel):
    password: str = Field(min_length=1)


class AdminLoginResponse(CamelModel):
    success: bool
    token: str
    expires_at: datetime


class ErrorResponse(CamelModel):
    message: str
    code: str
    field: Optional[str] = None
