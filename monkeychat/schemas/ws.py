from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Literal, Union
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel

from monkeychat.core.config import settings


class WireModel(BaseModel):
    """Events travel as camelCase JSON (roomId, partnerConnectionId, ...)."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


MessageKind = Literal["text", "system"]
SignalKind = Literal["offer", "answer", "ice-candidate"]


# ---- client -> server ----

class JoinIn(WireModel):
    type: Literal["join"] = "join"
    user_id: str = Field(..., min_length=1)
    display_name: str = Field(..., min_length=1, max_length=50)


class MatchRequestIn(WireModel):
    type: Literal["match-request"] = "match-request"


class MatchCancelIn(WireModel):
    type: Literal["match-cancel"] = "match-cancel"


class MessageSendIn(WireModel):
    type: Literal["message-send"] = "message-send"
    room_id: str
    text: str = Field(..., min_length=1, max_length=settings.MESSAGE_MAX_LENGTH)
    kind: MessageKind = "text"


class SignalOfferIn(WireModel):
    type: Literal["signal-offer"] = "signal-offer"
    room_id: str
    payload: Any


class SignalAnswerIn(WireModel):
    type: Literal["signal-answer"] = "signal-answer"
    room_id: str
    payload: Any


class SignalCandidateIn(WireModel):
    type: Literal["signal-candidate"] = "signal-candidate"
    room_id: str
    payload: Any


class RoomLeaveIn(WireModel):
    type: Literal["room-leave"] = "room-leave"
    room_id: str


ClientToServer = Annotated[
    Union[
        JoinIn,
        MatchRequestIn,
        MatchCancelIn,
        MessageSendIn,
        SignalOfferIn,
        SignalAnswerIn,
        SignalCandidateIn,
        RoomLeaveIn,
    ],
    Field(discriminator="type"),
]

client_event_adapter: TypeAdapter[ClientToServer] = TypeAdapter(ClientToServer)

# inbound signal event type -> kind passed to the room table
SIGNAL_KIND_BY_EVENT: dict[str, SignalKind] = {
    "signal-offer": "offer",
    "signal-answer": "answer",
    "signal-candidate": "ice-candidate",
}


# ---- server -> clients ----

class JoinAckOut(WireModel):
    type: Literal["join-ack"] = "join-ack"
    success: bool
    error: str | None = None


class PresenceCountOut(WireModel):
    type: Literal["presence-count"] = "presence-count"
    count: int


class MatchSearchingOut(WireModel):
    type: Literal["match-searching"] = "match-searching"


class MatchCancelledOut(WireModel):
    type: Literal["match-cancelled"] = "match-cancelled"


class MatchedOut(WireModel):
    type: Literal["matched"] = "matched"
    room_id: str
    partner_connection_id: str
    partner_name: str | None


class MessageReceivedOut(WireModel):
    type: Literal["message-received"] = "message-received"
    id: str
    user_id: str
    username: str
    text: str
    kind: MessageKind
    timestamp: datetime


class SignalOfferOut(WireModel):
    type: Literal["signal-offer"] = "signal-offer"
    payload: Any
    from_connection_id: str


class SignalAnswerOut(WireModel):
    type: Literal["signal-answer"] = "signal-answer"
    payload: Any
    from_connection_id: str


class SignalCandidateOut(WireModel):
    type: Literal["signal-candidate"] = "signal-candidate"
    payload: Any
    from_connection_id: str


class PartnerDisconnectedOut(WireModel):
    type: Literal["partner-disconnected"] = "partner-disconnected"


SIGNAL_OUT_BY_KIND: dict[str, type[WireModel]] = {
    "offer": SignalOfferOut,
    "answer": SignalAnswerOut,
    "ice-candidate": SignalCandidateOut,
}

ServerToClient = Union[
    JoinAckOut,
    PresenceCountOut,
    MatchSearchingOut,
    MatchCancelledOut,
    MatchedOut,
    MessageReceivedOut,
    SignalOfferOut,
    SignalAnswerOut,
    SignalCandidateOut,
    PartnerDisconnectedOut,
]
