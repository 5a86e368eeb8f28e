import logging
from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError
from petnest import config
from petnest.models.chat import JoinRoomData, RelayFrame, RelayMessageData, RoomRef
from petnest.services.chat_service import InvalidInput, room_name, validate_listing_type
from petnest.utils.auth import TokenError, verify_room_token

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Realtime"])


async def _send_error(websocket: WebSocket, detail: str):
    await websocket.send_json({"event": "error", "data": {"detail": detail}})


def _room_for(ref: RoomRef) -> str:
    validate_listing_type(ref.listing_type)
    return room_name(ref.listing_type, ref.listing_id)


async def _handle_join(websocket: WebSocket, relay, data: dict):
    join = JoinRoomData.model_validate(data)
    room = _room_for(join)

    member = join.user_id
    if config.CHAT_REQUIRE_ROOM_TOKEN:
        if not join.token:
            await _send_error(websocket, "Room token required")
            return
        try:
            member = verify_room_token(join.token, room)
        except TokenError as e:
            logger.warning("Rejected join to %s: %s", room, e)
            await _send_error(websocket, str(e))
            return

    relay.join(room, websocket)
    logger.info("User %s joined chat room %s", member, room)


async def _handle_leave(websocket: WebSocket, relay, data: dict):
    room = _room_for(RoomRef.model_validate(data))
    relay.leave(room, websocket)


async def _handle_chat_message(websocket: WebSocket, relay, data: dict):
    relay_message = RelayMessageData.model_validate(data)
    room = _room_for(relay_message)
    if not relay.is_member(room, websocket):
        await _send_error(websocket, "Join the room before sending to it")
        return
    relay.publish(room, {"event": "chatMessage", "data": relay_message.message})
    logger.debug("Relayed message to %s", room)


HANDLERS = {
    "joinRoom": _handle_join,
    "leaveRoom": _handle_leave,
    "chatMessage": _handle_chat_message,
}


@router.websocket("/ws/chat")
async def chat_socket(websocket: WebSocket):
    relay = websocket.app.state.relay
    await websocket.accept()
    try:
        while True:
            raw = await websocket.receive_text()
            try:
                frame = RelayFrame.model_validate_json(raw)
                handler = HANDLERS.get(frame.event)
                if handler is None:
                    await _send_error(websocket, f"Unknown event: {frame.event}")
                    continue
                await handler(websocket, relay, frame.data)
            except ValidationError as e:
                await _send_error(websocket, f"Malformed frame: {e.errors()[0]['msg']}")
            except InvalidInput as e:
                await _send_error(websocket, str(e))
    except WebSocketDisconnect:
        pass
    finally:
        rooms = relay.leave_all(websocket)
        if rooms:
            logger.info("Connection left rooms %s", ", ".join(rooms))
