from __future__ import annotations

from pydantic import BaseModel
from typing import List


class VoiceRoomMemberOut(BaseModel):
    user_id: int
    display_name: str


class VoiceRoomOut(BaseModel):
    room_id: str
    participant_count: int = 0
    members: List[VoiceRoomMemberOut] = []
