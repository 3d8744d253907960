from fastapi import APIRouter, Depends

from snbt.api.dependencies.auth_dependencies import get_current_user, get_registry
from snbt.config import settings

auth_router = APIRouter(prefix=settings.AUTH_PREFIX, tags=["auth"])


@auth_router.post("/logout")
async def logout(user=Depends(get_current_user), registry=Depends(get_registry)):
    # running timers belong to this user only, drop them with the sessions
    registry.logout(user["user_id"])
    return {"status": "logged_out"}

'''
accounts and token issuing live in the account service, this app only verifies tokens
'''
