"""Identity resolution package."""

from splitledger.identity.resolver import IdentityResolver, Session

__all__ = ["IdentityResolver", "Session"]
