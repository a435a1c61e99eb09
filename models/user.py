from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class UserProfile(BaseModel):
    """Public view of an account; never carries the password hash."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: str
    date_of_birth: date
    mobile: Optional[str] = None
    country_code: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    postal_code: Optional[str] = None
    created_at: Optional[datetime] = None
    last_login: Optional[datetime] = None


class UpdateUserRequest(BaseModel):
    # Omitted or empty fields keep their stored value
    name: Optional[str] = Field(default=None, examples=["John Doe"])
    mobile: Optional[str] = Field(default=None, max_length=15, examples=["5551234567"])
    country_code: Optional[str] = Field(default=None, max_length=5, examples=["+1"])
    address: Optional[str] = Field(default=None, examples=["123 Main St"])
    city: Optional[str] = Field(default=None, examples=["New York"])
    country: Optional[str] = Field(default=None, examples=["US"])
    postal_code: Optional[str] = Field(default=None, examples=["10001"])


class UserResponse(BaseModel):
    user: UserProfile


class UserUpdateResponse(BaseModel):
    message: str
    user: UserProfile
