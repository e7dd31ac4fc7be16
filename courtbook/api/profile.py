"""User profile endpoints."""
from fastapi import APIRouter, Depends

from courtbook.api.deps import get_repository
from courtbook.core.security import Principal, get_principal
from courtbook.repositories.base import BookingRepository
from courtbook.schemas.profile import UserProfileResponse

router = APIRouter(prefix="/profile", tags=["profile"])


@router.get("", response_model=UserProfileResponse)
async def get_profile(
    principal: Principal = Depends(get_principal),
    repo: BookingRepository = Depends(get_repository),
):
    """Get the caller's booking totals."""
    profile = await repo.get_user_profile(principal.user_id)
    if profile is None:
        return UserProfileResponse(user_id=principal.user_id)
    return UserProfileResponse.model_validate(profile)
