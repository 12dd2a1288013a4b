from __future__ import annotations

from typing import Any, List, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, field_validator


SignalKind = Literal["session_offer", "session_answer", "ice_candidate", "mute_state_changed"]


class _RoomIdMixin(BaseModel):
    room_id: str = Field(..., min_length=1, max_length=200)

    @field_validator("room_id", mode="before")
    @classmethod
    def _coerce_room_id(cls, v: Any) -> Any:
        # Channel ids arrive as numbers from the REST layer
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v


# ---- client -> server ----

class AuthenticateIn(BaseModel):
    type: Literal["authenticate"] = "authenticate"
    user_id: Optional[int] = None
    display_name: str = ""
    init_data: Optional[str] = None


class JoinRoomIn(_RoomIdMixin):
    type: Literal["join_room"] = "join_room"
    user_id: int
    display_name: str = ""


class LeaveRoomIn(_RoomIdMixin):
    type: Literal["leave_room"] = "leave_room"
    user_id: int


class SignalIn(BaseModel):
    type: SignalKind
    target: int
    payload: Any = None


class SetMutedIn(_RoomIdMixin):
    type: Literal["set_muted"] = "set_muted"
    is_muted: bool


ClientToServer = Union[AuthenticateIn, JoinRoomIn, LeaveRoomIn, SignalIn, SetMutedIn]


# ---- server -> clients ----

class RoommateOut(BaseModel):
    user_id: int
    display_name: str
    connection_id: str


class RoommatesOut(BaseModel):
    type: Literal["roommates"] = "roommates"
    room_id: str
    users: List[RoommateOut] = []


class PeerJoinedOut(BaseModel):
    type: Literal["peer_joined"] = "peer_joined"
    room_id: str
    user_id: int
    display_name: str
    connection_id: str


class PeerLeftOut(BaseModel):
    type: Literal["peer_left"] = "peer_left"
    room_id: str
    user_id: int
    connection_id: str


class SignalOut(BaseModel):
    """Relayed negotiation message; `payload` is forwarded untouched."""
    model_config = ConfigDict(populate_by_name=True)

    type: SignalKind
    payload: Any = None
    from_user_id: Optional[int] = Field(None, alias="from")
    from_connection: str


class MuteStateChangedOut(BaseModel):
    type: Literal["mute_state_changed"] = "mute_state_changed"
    room_id: str
    user_id: Optional[int]
    is_muted: bool


class ErrorOut(BaseModel):
    type: Literal["error"] = "error"
    detail: str


ServerToClient = Union[RoommatesOut, PeerJoinedOut, PeerLeftOut, SignalOut, MuteStateChangedOut, ErrorOut]
