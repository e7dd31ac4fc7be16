"""User profile schemas."""
from pydantic import BaseModel, ConfigDict
from decimal import Decimal


class UserProfileResponse(BaseModel):
    """Schema for a user's running booking totals."""

    user_id: int
    total_bookings: int = 0
    total_spent: Decimal = Decimal("0.00")

    model_config = ConfigDict(from_attributes=True)
