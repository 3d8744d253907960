from jwt import decode, ExpiredSignatureError, InvalidTokenError
from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPBearer

from snbt.config import settings
from snbt.core.session import SessionRegistry

security = HTTPBearer()


async def get_current_user(credentials=Depends(security)) -> dict:
    try:
        payload = decode(
            credentials.credentials,
            settings.SECRET_KEY,
            algorithms=[settings.ALGORITHM]
        )
    except ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token has expired")
    except InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")

    if not payload.get("user_id"):
        raise HTTPException(status_code=401, detail="Invalid token")
    return payload


# engine objects live on app.state, set up in create_app
def get_store(request: Request):
    return request.app.state.store


def get_registry(request: Request) -> SessionRegistry:
    return request.app.state.registry
