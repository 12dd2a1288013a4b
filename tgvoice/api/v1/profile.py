from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from tgvoice.api.deps import get_identity
from tgvoice.core import get_db
from tgvoice.schemas.user import ProfileOut, StatusOut, StatusUpdateIn, UserOut
from tgvoice.services.identity_service import Identity
from tgvoice.services.user_service import UserService

router = APIRouter()


def _build_user_out(user) -> UserOut:
    return UserOut(
        id=user.id,
        username=user.username,
        first_name=user.first_name,
        last_name=user.last_name,
        avatar=user.avatar,
        status=user.status,
    )


@router.post("/profile", response_model=ProfileOut)
async def upsert_profile(
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
) -> ProfileOut:
    svc = UserService(db)
    user = await svc.upsert_profile(identity)
    return ProfileOut(**_build_user_out(user).model_dump(), is_test=identity.is_test)


@router.patch("/profile/status", response_model=StatusOut)
async def update_status(
    body: StatusUpdateIn,
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
) -> StatusOut:
    svc = UserService(db)
    user = await svc.set_status(identity.id, status=body.status)
    if user is None:
        raise HTTPException(status_code=404, detail="profile not found")
    return StatusOut(status=user.status)


@router.get("/users/{user_id}", response_model=UserOut)
async def get_user(
    user_id: int,
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
) -> UserOut:
    svc = UserService(db)
    user = await svc.get_user(user_id)
    if user is None:
        raise HTTPException(status_code=404, detail="user not found")
    return _build_user_out(user)
