from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from core.auth import CurrentUser, protect, restrict_to
from core.errors import BadRequest, NotFound
from core.sessions import SessionStore
from database.database import get_db
from models.user import Role, ServiceProvider, TravelAgency, User
from schema.auth import RoleUpdateRequest
from utils.clock import isonow
from utils.response import envelope
from utils.state import State

router = APIRouter()


def _account_details(user: User) -> dict:
    details = user.summary()
    account = user.account()
    profile = getattr(account, "profile", None)
    if isinstance(profile, ServiceProvider):
        details["business_name"] = profile.business_name
    elif isinstance(profile, TravelAgency):
        details["agency_name"] = profile.agency_name
    return details


@router.get("/me")
async def get_self(
    current: CurrentUser = Depends(protect),
    db: Session = Depends(get_db),
):
    user = db.query(User).filter(User.user_id == current.user_id).first()
    if not user:
        raise NotFound("User not found")
    return envelope("User fetched successfully", {"user": _account_details(user)})


@router.get("/")
async def get_users(
    _: CurrentUser = Depends(restrict_to(Role.ADMIN)),
    db: Session = Depends(get_db),
):
    users = db.query(User).order_by(User.time_created).all()
    return envelope(
        "Users fetched successfully", {"users": [user.summary() for user in users]}
    )


@router.patch("/{user_id}/role")
async def update_user_role(
    user_id: str,
    req: RoleUpdateRequest,
    current: CurrentUser = Depends(restrict_to(Role.ADMIN)),
    db: Session = Depends(get_db),
):
    user = db.query(User).filter(User.user_id == user_id).first()
    if not user:
        raise NotFound("User not found")

    now = isonow()
    if req.role is Role.SERVICE_PROVIDER and user.service_provider is None:
        if not req.business_name:
            raise BadRequest("business_name is required for role SERVICE_PROVIDER")
        user.service_provider = ServiceProvider(
            business_name=req.business_name, time_created=now
        )
    elif req.role is Role.TRAVEL_AGENCY and user.travel_agency is None:
        if not req.business_name:
            raise BadRequest("business_name is required for role TRAVEL_AGENCY")
        user.travel_agency = TravelAgency(agency_name=req.business_name, time_created=now)

    user.role = req.role.value
    user.time_updated = now
    db.commit()
    db.refresh(user)
    State.logger.info(f"Admin {current.user_id} set role of {user_id} to {req.role.value}")
    return envelope("User role updated successfully", {"user": _account_details(user)})


@router.delete("/{user_id}")
async def delete_user(
    user_id: str,
    current: CurrentUser = Depends(restrict_to(Role.ADMIN)),
    db: Session = Depends(get_db),
):
    user = db.query(User).filter(User.user_id == user_id).first()
    if not user:
        raise NotFound("User not found")
    SessionStore(db).revoke_all(user_id)
    db.delete(user)
    db.commit()
    State.logger.info(f"Admin {current.user_id} deleted user {user_id}")
    return envelope("User deleted successfully")
