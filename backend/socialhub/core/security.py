"""Password hashing."""

import logging

from passlib.context import CryptContext
from starlette.concurrency import run_in_threadpool

logger = logging.getLogger(__name__)

# Password hashing context using Argon2
pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")


class PasswordService:
    """
    Argon2 password hashing.

    Argon2 is deliberately slow, so the async variants run in the threadpool
    to keep the event loop free.
    """

    def __init__(self, context: CryptContext = pwd_context):
        self._context = context

    def hash_sync(self, plain: str) -> str:
        """Hash a password with a fresh random salt."""
        return self._context.hash(plain)

    def verify_sync(self, plain: str, hashed: str) -> bool:
        """
        Verify a password against its hash.

        Returns False for a mismatch and for a malformed or unknown hash.
        """
        if not hashed:
            return False
        try:
            return self._context.verify(plain, hashed)
        except ValueError:
            logger.warning("Password verification against an unrecognised hash format")
            return False

    async def hash(self, plain: str) -> str:
        return await run_in_threadpool(self.hash_sync, plain)

    async def verify(self, plain: str, hashed: str) -> bool:
        return await run_in_threadpool(self.verify_sync, plain, hashed)
