"""
TokenRepository for the bearer token revocation list
"""

from datetime import datetime
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, delete
from database_models import BlacklistedToken


class TokenRepository:
    """
    Repository class for revoked (logged out) tokens.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def add_to_blacklist(self, token: str, expires_at: datetime) -> None:
        """
        Revoke a raw token string until its expiry.
        Revoking the same token twice is a no-op.
        """
        if await self.is_blacklisted(token):
            return
        self.db.add(BlacklistedToken(token=token, expires_at=expires_at))
        await self.db.flush()

    async def is_blacklisted(self, token: str) -> bool:
        result = await self.db.execute(
            select(BlacklistedToken.id).where(BlacklistedToken.token == token)
        )
        return result.first() is not None

    async def purge_expired(self, now: datetime = None) -> int:
        """
        Drop revocations for tokens that are past their own expiry.

        Returns:
            Number of rows removed
        """
        now = now or datetime.utcnow()
        result = await self.db.execute(
            delete(BlacklistedToken).where(BlacklistedToken.expires_at < now)
        )
        return result.rowcount or 0
