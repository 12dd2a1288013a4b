from __future__ import annotations

from pydantic import BaseModel, Field


class ProfileOut(BaseModel):
    id: int
    username: str
    first_name: str
    last_name: str
    avatar: str
    status: str
    is_test: bool = False


class StatusUpdateIn(BaseModel):
    status: str = Field(..., min_length=1, max_length=32)


class StatusOut(BaseModel):
    success: bool = True
    status: str


class UserOut(BaseModel):
    id: int
    username: str
    first_name: str
    last_name: str
    avatar: str
    status: str
