from datetime import datetime, timedelta, timezone
import jwt

from snbt.config import settings

# tokens are issued by the account service, this is used by tests and local runs


def create_token(user_id: str, email: str | None = None, expires_minutes: int | None = None) -> str:
    expires = datetime.now(timezone.utc) + timedelta(
        minutes=expires_minutes if expires_minutes is not None else settings.ACCESS_TOKEN_EXPIRE_MINUTES
    )
    data = {"user_id": user_id, "exp": expires}
    if email:
        data["sub"] = email
    return jwt.encode(data, settings.SECRET_KEY, algorithm=settings.ALGORITHM)
