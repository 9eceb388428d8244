"""Bearer token verification delegated to Supabase Auth."""
import logging
from dataclasses import dataclass
from typing import Optional
from supabase import Client

from services.errors import UnauthorizedError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identity:
    """Authenticated owner of conversations."""
    user_id: str
    email: Optional[str] = None


class SupabaseAuthVerifier:
    """Resolves access tokens to identities using the Supabase admin client."""

    def __init__(self, client: Client):
        self.client = client

    def verify(self, token: Optional[str]) -> Identity:
        """
        Resolve a bearer token to the user it was issued for.

        Raises:
            UnauthorizedError: Token missing, malformed, expired or rejected
        """
        if not token:
            raise UnauthorizedError(details={"reason": "missing token"})

        try:
            response = self.client.auth.get_user(token)
        except Exception as e:
            logger.warning(f"Token verification failed: {e}")
            raise UnauthorizedError(details={"reason": str(e)}) from e

        user = getattr(response, "user", None)
        if user is None:
            logger.warning("Token verification returned no user")
            raise UnauthorizedError(details={"reason": "invalid token"})

        return Identity(user_id=str(user.id), email=getattr(user, "email", None))
