from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class AuthSession(BaseModel):
    user_id: str
    access_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None
