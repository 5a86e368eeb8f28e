from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from enum import Enum
from typing import Any, List, Optional


class ListingType(str, Enum):
    adoption = "adoption"
    marketplace = "marketplace"


class MessageType(str, Enum):
    text = "text"
    image = "image"
    voice = "voice"


class MessageCreate(BaseModel):
    # Checked by the chat service so bad values map to 400
    type: Any = None
    content: Any = None


class ChatMessageOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    sender: str = Field(..., alias="from")
    type: MessageType = MessageType.text
    content: str
    timestamp: datetime
    sender_name: Optional[str] = None
    media_url: Optional[str] = None


class ChatOut(BaseModel):
    id: str
    listing_id: str
    listing_type: ListingType
    user_id: str
    owner_id: str
    messages: List[ChatMessageOut] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ChatHistoryResponse(BaseModel):
    messages: List[ChatMessageOut]
    total: int
    page: int
    limit: int


class SendMessageResponse(BaseModel):
    message: ChatMessageOut
    chat: ChatOut


class RoomTokenResponse(BaseModel):
    token: str
    room: str
    expires_in: int


class ChatSummary(BaseModel):
    id: str
    listing_id: str
    listing_type: ListingType
    user_id: str
    owner_id: str
    message_count: int
    last_message: Optional[ChatMessageOut] = None
    updated_at: Optional[datetime] = None


# ---------- Realtime frames ----------
class RelayFrame(BaseModel):
    event: str
    data: dict[str, Any] = Field(default_factory=dict)


class RoomRef(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    listing_type: str = Field(..., alias="listingType")
    listing_id: str = Field(..., alias="listingId")


class JoinRoomData(RoomRef):
    user_id: Optional[str] = Field(None, alias="userId")
    owner_id: Optional[str] = Field(None, alias="ownerId")
    token: Optional[str] = None


class RelayMessageData(RoomRef):
    user_id: Optional[str] = Field(None, alias="userId")
    owner_id: Optional[str] = Field(None, alias="ownerId")
    message: Any
