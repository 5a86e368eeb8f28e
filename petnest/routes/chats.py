from fastapi import APIRouter, BackgroundTasks, Body, Depends, HTTPException, Query, Request
from typing import List, Optional
from petnest import config
from petnest.database import get_db
from petnest.models.chat import (
    ChatHistoryResponse,
    ChatMessageOut,
    ChatSummary,
    MessageCreate,
    RoomTokenResponse,
    SendMessageResponse,
)
from petnest.models.user import TokenUser
from petnest.services.chat_service import (
    ChatError,
    ChatService,
    Forbidden,
    InvalidInput,
    RateLimited,
    room_name,
)
from petnest.utils.auth import get_current_user

router = APIRouter(prefix="/chats", tags=["Chats"])

ERROR_STATUS = {
    InvalidInput: 400,
    Forbidden: 403,
    RateLimited: 429,
}


def get_chat_service(db=Depends(get_db)) -> ChatService:
    return ChatService(db)


def get_relay(request: Request):
    return request.app.state.relay


def _http_error(exc: ChatError) -> HTTPException:
    # StoreError and anything unexpected stay generic
    status_code = ERROR_STATUS.get(type(exc), 500)
    detail = str(exc) if status_code != 500 else "Server error"
    return HTTPException(status_code=status_code, detail=detail)


# GET /chats/mine - chats the caller started, owns, or wrote in
@router.get("/mine", response_model=List[ChatSummary])
async def get_my_chats(
    user: TokenUser = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
):
    try:
        return await service.list_chats_for_user(user.id)
    except ChatError as e:
        raise _http_error(e) from e


@router.get("/{listing_type}/{listing_id}/{user_id}/{owner_id}", response_model=ChatHistoryResponse)
async def get_chat_history(
    listing_type: str,
    listing_id: str,
    user_id: str,
    owner_id: str,
    page: int = 1,
    limit: Optional[int] = Query(default=None),
    service: ChatService = Depends(get_chat_service),
):
    """Tail-anchored page of a listing's chat; page 1 is the newest messages."""
    try:
        return await service.get_history(listing_type, listing_id, page=page, limit=limit)
    except ChatError as e:
        raise _http_error(e) from e


@router.post(
    "/{listing_type}/{listing_id}/{user_id}/{owner_id}",
    response_model=SendMessageResponse,
    status_code=201,
)
async def send_chat_message(
    listing_type: str,
    listing_id: str,
    user_id: str,
    owner_id: str,
    background_tasks: BackgroundTasks,
    data: Optional[MessageCreate] = Body(None),
    user: TokenUser = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
    relay=Depends(get_relay),
):
    data = data or MessageCreate()
    try:
        message, chat = await service.send_message(
            listing_type,
            listing_id,
            sender_id=user.id,
            content=data.content,
            message_type=data.type,
            user_id=user_id,
            owner_id=owner_id,
        )
    except ChatError as e:
        raise _http_error(e) from e

    if config.CHAT_BROADCAST_ON_SEND:
        payload = ChatMessageOut.model_validate(message)
        background_tasks.add_task(
            relay.broadcast,
            room_name(listing_type, listing_id),
            {"event": "chatMessage", "data": payload.model_dump(mode="json", by_alias=True, exclude_none=True)},
        )

    return {"message": message, "chat": chat}


@router.post("/{listing_type}/{listing_id}/room-token", response_model=RoomTokenResponse)
async def get_room_token(
    listing_type: str,
    listing_id: str,
    user: TokenUser = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
):
    """Short-lived token that lets the caller join the listing's live room."""
    try:
        return await service.issue_room_token(listing_type, listing_id, user.id)
    except ChatError as e:
        raise _http_error(e) from e
