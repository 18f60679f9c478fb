"""
Identity Resolver

Maps an authenticated session to the canonical ledger User.

DESIGN DECISION: Authentication itself happens elsewhere. We receive a
Session carrying the opaque token identifier issued by the auth provider and
only answer "which ledger user is this?". Every other component takes the
resolved User as an explicit argument; none of them look at sessions.
"""

from typing import Optional

from pydantic import BaseModel

from splitledger.models.ledger import User
from splitledger.services.storage import LedgerStorageInterface
from splitledger.validation.errors import (
    InvalidUserProfile,
    TextTooLong,
    Unauthenticated,
    UserNotProvisioned,
)
from splitledger.validation.validator import MAX_EMAIL_LENGTH, MAX_NAME_LENGTH


class Session(BaseModel):
    """What the authentication layer hands us about the caller."""

    token_identifier: Optional[str] = None
    issuer: Optional[str] = None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.token_identifier and self.token_identifier.strip())


class IdentityResolver:
    """
    Resolves sessions to users and provisions new users.

    resolve() is a pure lookup with no side effects on the ledger.
    """

    def __init__(self, storage: LedgerStorageInterface):
        self._storage = storage

    async def resolve(self, session: Optional[Session]) -> User:
        """
        Return the ledger user behind a session.

        Raises:
            Unauthenticated: No session, or a session without an identity
            UserNotProvisioned: The identity has no ledger user yet
        """
        if session is None or not session.is_authenticated:
            raise Unauthenticated()

        snapshot = await self._storage.snapshot()
        user = snapshot.get_user_by_token(session.token_identifier)
        if user is None:
            raise UserNotProvisioned(session.token_identifier)
        return user

    async def provision_user(
        self,
        session: Optional[Session],
        name: str,
        email: str,
        image_url: Optional[str] = None,
    ) -> tuple[User, bool]:
        """
        Create the ledger user for a session, or refresh its profile.

        Idempotent: calling it again for the same identity updates name,
        email and avatar but never the id.

        Returns:
            (user, created) where created is False for a refresh
        """
        if session is None or not session.is_authenticated:
            raise Unauthenticated()

        name = (name or "").strip()
        email = (email or "").strip()
        if not name:
            raise InvalidUserProfile("Name cannot be empty", field="name")
        if len(name) > MAX_NAME_LENGTH:
            raise TextTooLong("name", MAX_NAME_LENGTH, len(name))
        if len(email) > MAX_EMAIL_LENGTH:
            raise TextTooLong("email", MAX_EMAIL_LENGTH, len(email))
        if "@" not in email or email.startswith("@") or email.endswith("@"):
            raise InvalidUserProfile(f"Invalid email address: {email!r}", field="email")

        async with self._storage.transaction() as txn:
            existing = txn.get_user_by_token(session.token_identifier)
            if existing is None:
                user = User(
                    token_identifier=session.token_identifier,
                    name=name,
                    email=email,
                    image_url=image_url,
                )
                txn.insert_user(user)
                return user, True

            if (
                existing.name == name
                and existing.email == email
                and existing.image_url == image_url
            ):
                return existing, False

            user = existing.model_copy(update={
                "name": name,
                "email": email,
                "image_url": image_url,
            })
            txn.update_user(user)
            return user, False
