from fastapi import APIRouter, Depends

from core.auth import CurrentUser, optional_auth
from utils.response import envelope

router = APIRouter()


@router.get("/session")
async def session_status(current: CurrentUser | None = Depends(optional_auth)):
    if current is None:
        return envelope("Browsing as guest", {"authenticated": False})
    return envelope(
        "Recognised session",
        {
            "authenticated": True,
            "user": {
                "id": current.user_id,
                "role": current.role,
                "first_name": current.first_name,
            },
        },
    )
