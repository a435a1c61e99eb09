"""
UserRepository for database operations on User model
"""

from datetime import datetime
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from database_models import User, BillingRecord, SUBSCRIPTION_STATUS_NONE

# Email and password are not editable through profile updates
UPDATABLE_FIELDS = ("name", "mobile", "country_code", "address", "city", "country", "postal_code")


class UserRepository:
    """
    Repository class for User database operations.
    Encapsulates all database logic for the User model.
    """

    def __init__(self, db: AsyncSession):
        """
        Initialize the repository with a database session.

        Args:
            db: AsyncSession instance for database operations
        """
        self.db = db

    async def get_user_by_email(self, email: str) -> Optional[User]:
        """
        Retrieve a user by email address.

        Args:
            email: User's email address (case-insensitive search)

        Returns:
            User object if found, None otherwise
        """
        result = await self.db.execute(
            select(User).where(User.email == email.lower())
        )
        return result.scalar_one_or_none()

    async def get_user_by_id(self, user_id: int) -> Optional[User]:
        """
        Retrieve a user by ID.

        Args:
            user_id: User's ID

        Returns:
            User object if found, None otherwise
        """
        result = await self.db.execute(
            select(User).where(User.id == user_id)
        )
        return result.scalar_one_or_none()

    async def create_user(self, user_data: dict) -> User:
        """
        Create a new user together with its empty billing record.

        Args:
            user_data: Dictionary containing user data. Must include:
                - name: str
                - email: str
                - hashed_password: str
                - date_of_birth: date
                Optional:
                - mobile, country_code, address, city, country, postal_code: str

        Returns:
            Created User object
        """
        user = User(
            name=user_data["name"],
            email=user_data["email"].lower(),
            hashed_password=user_data["hashed_password"],
            date_of_birth=user_data["date_of_birth"],
            mobile=user_data.get("mobile"),
            country_code=user_data.get("country_code"),
            address=user_data.get("address"),
            city=user_data.get("city"),
            country=user_data.get("country"),
            postal_code=user_data.get("postal_code"),
        )
        self.db.add(user)
        await self.db.flush()  # Flush to get the ID without committing

        self.db.add(BillingRecord(user_id=user.id, subscription_status=SUBSCRIPTION_STATUS_NONE))
        await self.db.flush()
        await self.db.refresh(user)
        return user

    async def update_user(self, user: User, updates: dict) -> User:
        """
        Apply profile changes to a user.

        Args:
            user: User to modify
            updates: Field name to new value. Empty or None values are
                skipped, so a field can be changed but not cleared.

        Returns:
            The updated User object
        """
        for field in UPDATABLE_FIELDS:
            value = updates.get(field)
            if value:
                setattr(user, field, value)
        await self.db.flush()
        return user

    async def update_last_login(self, user: User) -> User:
        user.last_login = datetime.utcnow()
        await self.db.flush()
        return user
