from __future__ import annotations

from datetime import datetime
from pydantic import BaseModel, Field
from typing import List


class ServerCreateIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: str = Field("", max_length=1000)


class ServerJoinIn(BaseModel):
    invite_code: str = Field(..., min_length=1)


class ServerOut(BaseModel):
    id: int
    name: str
    description: str
    owner_id: int
    invite_code: str
    created_at: datetime
    role: str


class ServerListOut(BaseModel):
    servers: List[ServerOut]
