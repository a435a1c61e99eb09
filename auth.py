"""
Authentication routes and dependencies
"""

from datetime import date
from typing import Optional
from fastapi import APIRouter, HTTPException, Header, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from database import get_db
from crud.user import UserRepository
from crud.token import TokenRepository
from auth_utils import hash_password, verify_password, create_jwt, decode_jwt, token_expiry
from services.token_validator import validate_token

logger = logging.getLogger(__name__)

# Create auth router
auth_router = APIRouter(prefix="/api/auth", tags=["auth"])


# Request models
class SignupRequest(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=8)
    date_of_birth: date
    mobile: Optional[str] = Field(default=None, max_length=15)
    country_code: Optional[str] = Field(default=None, max_length=5)
    address: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    postal_code: Optional[str] = None


class SigninRequest(BaseModel):
    email: EmailStr
    password: str


# Response models
class UserInfo(BaseModel):
    id: int
    name: str
    email: str


class AuthResponse(BaseModel):
    message: str
    user: UserInfo
    token: Optional[str] = None


class TokenResponse(BaseModel):
    message: str
    token: str


def _bearer_token(authorization: Optional[str]) -> str:
    """Extract the raw token from an Authorization: Bearer header"""
    if not authorization:
        raise HTTPException(status_code=401, detail="Authorization header is required")
    parts = authorization.split(" ")
    if len(parts) != 2 or parts[0] != "Bearer" or not parts[1]:
        raise HTTPException(status_code=401, detail="Authorization format must be Bearer {token}")
    return parts[1]


def _user_info(user) -> UserInfo:
    return UserInfo(id=user.id, name=user.name, email=user.email)


@auth_router.post("/signup", status_code=201, response_model=AuthResponse)
async def signup(request: SignupRequest, db: AsyncSession = Depends(get_db)):
    """Create a new user account with an empty billing record"""
    user_repo = UserRepository(db)

    existing_user = await user_repo.get_user_by_email(request.email)
    if existing_user:
        raise HTTPException(status_code=400, detail="Email already registered")

    user_data = request.model_dump(exclude={"password"})
    user_data["hashed_password"] = hash_password(request.password)
    user = await user_repo.create_user(user_data)

    try:
        token = create_jwt(str(user.id), user.email)
    except ValueError as e:
        logger.error(f"Token generation failed: {e}")
        raise HTTPException(status_code=500, detail="Failed to generate token")

    logger.info(f"User {user.id} registered")
    return AuthResponse(message="User registered successfully", user=_user_info(user), token=token)


@auth_router.post("/signin", response_model=AuthResponse)
async def signin(request: SigninRequest, db: AsyncSession = Depends(get_db)):
    """Login and get JWT token"""
    user_repo = UserRepository(db)

    user = await user_repo.get_user_by_email(request.email)
    if not user or not verify_password(request.password, user.hashed_password):
        raise HTTPException(status_code=401, detail="Invalid email or password")

    try:
        token = create_jwt(str(user.id), user.email)
    except ValueError as e:
        logger.error(f"Token generation failed: {e}")
        raise HTTPException(status_code=500, detail="Failed to generate token")

    await user_repo.update_last_login(user)
    return AuthResponse(message="Login successful", user=_user_info(user), token=token)


@auth_router.post("/logout")
async def logout(
    authorization: Optional[str] = Header(None, alias="Authorization"),
    db: AsyncSession = Depends(get_db)
):
    """Revoke the presented token until it expires"""
    token = _bearer_token(authorization)

    payload = decode_jwt(token)
    if not payload:
        raise HTTPException(status_code=401, detail="Invalid token")

    token_repo = TokenRepository(db)
    await token_repo.add_to_blacklist(token, token_expiry(payload))
    await token_repo.purge_expired()

    return JSONResponse(content={"message": "Logged out successfully"})


# Dependency for protected routes
async def get_current_user(
    authorization: Optional[str] = Header(None, alias="Authorization"),
    db: AsyncSession = Depends(get_db)
) -> dict:
    """
    Dependency function to get current authenticated user.

    Rejects:
    - missing or malformed Authorization header
    - tokens revoked at logout, even if the signature is still valid
    - invalid or expired tokens, or tokens without a numeric subject
    - tokens for users that no longer exist
    """
    token = _bearer_token(authorization)

    if await TokenRepository(db).is_blacklisted(token):
        raise HTTPException(status_code=401, detail="Token has been revoked")

    payload = decode_jwt(token)
    if not payload:
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    # Convert user_id to integer (JWT stores it as string)
    try:
        user_id = int(payload.get("sub"))
    except (ValueError, TypeError):
        raise HTTPException(status_code=401, detail="Invalid token payload")

    user = await UserRepository(db).get_user_by_id(user_id)
    if not user:
        raise HTTPException(status_code=401, detail="User not found")

    return {
        "user_id": user.id,
        "email": user.email,
        "name": user.name,
    }


@auth_router.post("/refresh-token", response_model=TokenResponse)
async def refresh_token(current_user: dict = Depends(get_current_user)):
    """Issue a fresh token for an authenticated user"""
    try:
        token = create_jwt(str(current_user["user_id"]), current_user["email"])
    except ValueError:
        raise HTTPException(status_code=500, detail="Failed to generate token")
    return TokenResponse(message="Token refreshed successfully", token=token)


@auth_router.get("/check-auth", response_model=AuthResponse)
async def check_auth(current_user: dict = Depends(get_current_user)):
    """Validate the presented token"""
    return AuthResponse(
        message="User authentication status",
        user=UserInfo(id=current_user["user_id"], name=current_user["name"], email=current_user["email"]),
    )


class ValidateTokenRequest(BaseModel):
    token: str


class ValidateTokenResponse(BaseModel):
    is_valid: bool


@auth_router.post("/validate-token", response_model=ValidateTokenResponse)
async def validate_ml_token(request: ValidateTokenRequest, db: AsyncSession = Depends(get_db)):
    """
    Token check for the translation service: valid only for a live,
    non-revoked token whose user has an active or trialing subscription.
    """
    logger.info(f"Validating token for ML service: {request.token[:10]}...")
    is_valid = await validate_token(db, request.token)
    logger.info(f"Token validation result: {is_valid}")
    return ValidateTokenResponse(is_valid=is_valid)
