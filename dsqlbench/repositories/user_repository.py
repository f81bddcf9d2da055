"""
Repository for the users table.

Every statement runs under a RetryExecutor. Transient faults are retried;
a duplicate email shows up as zero affected rows and becomes a
ConflictError after the executor has returned, so it never costs an attempt.
"""

import inspect
import uuid
from collections.abc import Awaitable, Callable
from uuid import UUID

from dsqlbench.db.errors import ConflictError, DatabaseError
from dsqlbench.db.helpers import Database
from dsqlbench.db.retry import RetryExecutor, RetryPolicy
from dsqlbench.infrastructure.observability.logging import get_logger
from dsqlbench.models.user import SAMPLE_USERS, User

logger = get_logger(__name__)

Confirmation = Callable[[], bool | Awaitable[bool]]

DROP_USERS_TABLE = "DROP TABLE IF EXISTS users"

CREATE_USERS_TABLE = """
CREATE TABLE {if_not_exists}users (
    id UUID PRIMARY KEY,
    name VARCHAR(100) NOT NULL,
    email VARCHAR(100) UNIQUE NOT NULL,
    role VARCHAR(50) NOT NULL,
    created_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP
)
"""

USERS_TABLE_EXISTS = """
SELECT EXISTS (
    SELECT FROM information_schema.tables
    WHERE table_schema = 'public' AND table_name = 'users'
)
"""

INSERT_USER = """
INSERT INTO users (id, name, email, role)
VALUES (%s, %s, %s, %s)
ON CONFLICT (email) DO NOTHING
"""

SELECT_USERS = "SELECT id, name, email, role, created_at FROM users"


class UserRepository:
    """CRUD operations on users over a pooled Database."""

    def __init__(self, db: Database, policy: RetryPolicy | None = None):
        self.db = db
        self.policy = policy or RetryPolicy()

    def _executor(self, operation_name: str) -> RetryExecutor:
        return RetryExecutor(self.policy, operation_name=operation_name)

    async def ensure_schema(self, confirm: Confirmation) -> bool:
        """
        Drop and recreate the users table.

        Args:
            confirm: Callable (sync or async) that must return True before
                anything is dropped

        Returns:
            bool: True if the table was recreated, False if declined
        """
        confirmed = confirm()
        if inspect.isawaitable(confirmed):
            confirmed = await confirmed

        if not confirmed:
            logger.info("Schema reset cancelled")
            return False

        async def recreate() -> None:
            logger.info("Dropping existing users table if it exists")
            await self.db.execute(DROP_USERS_TABLE)
            logger.info("Creating users table with UUID primary key")
            await self.db.execute(CREATE_USERS_TABLE.format(if_not_exists=""))

        await self._executor("ensure_schema").run(recreate)
        logger.info("Table 'users' successfully created")
        return True

    async def ensure_table_exists(self) -> bool:
        """
        Create the users table if it is missing. Never drops anything.

        Returns:
            bool: True if the table had to be created
        """
        exists = await self._executor("check_users_table").run(
            lambda: self.db.fetch_val(USERS_TABLE_EXISTS)
        )
        if exists:
            return False

        logger.info("The users table doesn't exist, creating it")
        await self._executor("create_users_table").run(
            lambda: self.db.execute(CREATE_USERS_TABLE.format(if_not_exists="IF NOT EXISTS "))
        )
        return True

    async def insert_user(self, user_id: UUID, name: str, email: str, role: str) -> None:
        """
        Insert one user; a duplicate email is left untouched.

        Raises:
            ConflictError: The email already exists (never retried)
            RetriesExhaustedError: Transient failures on every attempt
            DatabaseError: Permanent store error
        """
        affected_rows = await self._executor("insert_user").run(
            lambda: self.db.execute(INSERT_USER, (user_id, name, email, role))
        )

        if affected_rows > 0:
            logger.debug("User inserted", user_id=str(user_id), email=email)
            return

        logger.info("User already exists", email=email)
        raise ConflictError(email)

    async def list_users(self) -> list[User]:
        """Return every user in storage order."""
        rows = await self._executor("list_users").run(lambda: self.db.fetch_all(SELECT_USERS))
        logger.info("Found users in database", count=len(rows))
        return [User.model_validate(row) for row in rows]

    async def add_user(self, name: str, email: str, role: str = "User") -> UUID:
        """Insert a user under a freshly generated id and return the id."""
        user_id = uuid.uuid4()
        await self.insert_user(user_id, name, email, role)
        return user_id

    async def repopulate(self, confirm: Confirmation) -> int:
        """
        Reset the table and load the sample users.

        Returns:
            int: Number of sample users inserted (0 if the reset was declined)
        """
        if not await self.ensure_schema(confirm):
            return 0

        inserted = 0
        for sample in SAMPLE_USERS:
            try:
                user_id = await self.add_user(sample.name, sample.email, sample.role)
            except DatabaseError as e:
                logger.warning(
                    "Failed to insert sample user",
                    name=sample.name,
                    error=str(e),
                    operation=e.operation,
                )
                continue

            inserted += 1
            logger.info("Sample user inserted", name=sample.name, user_id=str(user_id))

        return inserted
