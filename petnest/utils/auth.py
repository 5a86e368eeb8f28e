import jwt
import logging
from datetime import datetime, timedelta, timezone
from fastapi import Depends, HTTPException
from fastapi.security import OAuth2PasswordBearer
from bson import ObjectId
from bson.errors import InvalidId
from petnest import config
from petnest.database import get_db
from petnest.models.user import TokenUser

logger = logging.getLogger(__name__)

# Tokens are issued by the account service; tokenUrl only feeds the OpenAPI docs
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")

ROOM_TOKEN_TYPE = "room"


class TokenError(Exception):
    pass


def decode_access_token(token: str) -> dict:
    try:
        return jwt.decode(token, config.JWT_SECRET_KEY, algorithms=[config.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise TokenError("Token expired")
    except jwt.InvalidTokenError:
        raise TokenError("Invalid token")


def create_room_token(user_id: str, room: str) -> str:
    """Short-lived capability allowing ``user_id`` to join relay ``room``."""
    expire = datetime.now(timezone.utc) + timedelta(seconds=config.ROOM_TOKEN_EXPIRE_SECONDS)
    payload = {"sub": user_id, "room": room, "typ": ROOM_TOKEN_TYPE, "exp": expire}
    return jwt.encode(payload, config.JWT_SECRET_KEY, algorithm=config.JWT_ALGORITHM)


def verify_room_token(token: str, room: str) -> str:
    """Return the user id bound to ``token`` if it grants access to ``room``."""
    payload = decode_access_token(token)
    if payload.get("typ") != ROOM_TOKEN_TYPE:
        raise TokenError("Not a room token")
    if payload.get("room") != room:
        raise TokenError("Token was issued for a different room")
    user_id = payload.get("sub")
    if not user_id:
        raise TokenError("Invalid token")
    return user_id


async def get_current_user(token: str = Depends(oauth2_scheme), db=Depends(get_db)) -> TokenUser:
    try:
        payload = decode_access_token(token)
    except TokenError as e:
        raise HTTPException(status_code=401, detail=str(e))

    # Room tokens only open relay rooms, never the HTTP API
    if payload.get("typ") == ROOM_TOKEN_TYPE:
        raise HTTPException(status_code=401, detail="Invalid token")

    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid token")

    try:
        user_doc = await db.users.find_one({"_id": ObjectId(user_id)})
    except InvalidId:
        raise HTTPException(status_code=401, detail="Invalid token")
    if not user_doc:
        raise HTTPException(status_code=401, detail="User not found")

    user = TokenUser(
        id=str(user_doc["_id"]),
        name=user_doc.get("name"),
        email=user_doc.get("email"),
        role=user_doc.get("role", "user"),
        is_suspended=bool(user_doc.get("is_suspended", False)),
    )
    if user.is_suspended:
        logger.warning("Suspended user %s rejected", user.id)
        raise HTTPException(status_code=403, detail="Account has been suspended")
    return user
