"""Credential store and verifier.

Learn: CredentialStore is plain persistence over the users table
(find_by_email / exists_by_email / insert). CredentialVerifier adds the
password rules on top:

- register: existence probe first, then insert. Two concurrent
  registrations can both pass the probe; the unique constraint on
  users.email rejects the second insert and that is surfaced as
  EmailTakenError too.
- verify: unknown email and wrong password raise the same
  InvalidCredentialsError. An unknown email still pays for one bcrypt
  comparison so response time doesn't reveal which case it was.
"""

import uuid
from dataclasses import dataclass

import structlog
from sqlalchemy import exists, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from newtab_auth.auth.errors import EmailTakenError, InvalidCredentialsError
from newtab_auth.auth.password import dummy_hash, hash_password, verify_password
from newtab_auth.auth.store import run_store_op
from newtab_auth.config import settings
from newtab_auth.db.models import User

logger = structlog.get_logger()


@dataclass(frozen=True)
class Identity:
    """A registered user as seen by the token layer."""

    id: uuid.UUID
    email: str


class CredentialStore:
    """Persistence for registered users."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_by_email(self, email: str) -> User | None:
        async def _select():
            result = await self.db.execute(select(User).where(User.email == email))
            return result.scalars().first()

        return await run_store_op(
            self.db, _select,
            action="credentials.find_by_email",
            retries=settings.store_read_retries,
        )

    async def exists_by_email(self, email: str) -> bool:
        async def _probe():
            result = await self.db.execute(select(exists().where(User.email == email)))
            return bool(result.scalar())

        return await run_store_op(
            self.db, _probe,
            action="credentials.exists_by_email",
            retries=settings.store_read_retries,
        )

    async def insert(self, email: str, password_hash: str) -> User:
        """Insert a user. IntegrityError propagates on a duplicate email."""
        user = User(email=email, password_hash=password_hash)

        async def _insert():
            self.db.add(user)
            await self.db.flush()

        await run_store_op(self.db, _insert, action="credentials.insert")
        return user


class CredentialVerifier:
    """Registers users and checks passwords against the credential store."""

    def __init__(self, store: CredentialStore):
        self.store = store

    async def register(self, email: str, password: str) -> Identity:
        if await self.store.exists_by_email(email):
            raise EmailTakenError()

        try:
            user = await self.store.insert(email, hash_password(password))
        except IntegrityError as e:
            # Lost the registration race — the unique constraint decided.
            await self.store.db.rollback()
            logger.info("credentials.register_race_lost", email=email)
            raise EmailTakenError() from e

        return Identity(id=user.id, email=user.email)

    async def verify(self, email: str, password: str) -> Identity:
        user = await self.store.find_by_email(email)
        if user is None:
            verify_password(password, dummy_hash())
            raise InvalidCredentialsError()

        if not verify_password(password, user.password_hash):
            raise InvalidCredentialsError()

        return Identity(id=user.id, email=user.email)
