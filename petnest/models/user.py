from pydantic import BaseModel
from typing import Optional


class TokenUser(BaseModel):
    id: str
    name: Optional[str] = None
    email: Optional[str] = None
    role: str = "user"
    is_suspended: bool = False
