"""
Token validation used by the report translation pipeline: a token is
accepted only if it is valid, not revoked, and its user is subscribed.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from auth_utils import decode_jwt
from crud.token import TokenRepository
from services.billing_store import BillingStore

logger = logging.getLogger(__name__)


async def validate_token(db: AsyncSession, token: str) -> bool:
    if not token:
        return False
    token = token.removeprefix("Bearer ").strip()

    if await TokenRepository(db).is_blacklisted(token):
        return False

    payload = decode_jwt(token)
    if not payload:
        return False

    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        return False

    record = await BillingStore(db).get_by_user_id(user_id)
    if record is None:
        logger.info(f"Token for unknown user {user_id} rejected")
        return False
    return record.is_subscribed()
