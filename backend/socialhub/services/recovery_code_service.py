"""Single-use recovery codes for 2FA."""

import asyncio
import secrets
import string
from dataclasses import dataclass
from typing import Optional, Sequence

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError
from starlette.concurrency import run_in_threadpool

ALPHABET = string.ascii_uppercase + string.digits
CODE_LENGTH = 10


@dataclass(frozen=True)
class ConsumeResult:
    matched: bool
    matched_index: Optional[int]
    remaining: list[str]


class RecoveryCodeService:
    """Generate, hash and consume recovery codes."""

    def __init__(self, hasher: Optional[PasswordHasher] = None):
        self._hasher = hasher or PasswordHasher()

    @staticmethod
    def normalize(code: str) -> str:
        """Codes are compared trimmed, upper-cased, without separators."""
        return (code or "").strip().replace("-", "").replace(" ", "").upper()

    @staticmethod
    def generate(count: int = 10) -> list[str]:
        """
        Generate *count* codes of 10 characters from A-Z and 0-9.
        """
        return [
            "".join(secrets.choice(ALPHABET) for _ in range(CODE_LENGTH))
            for _ in range(count)
        ]

    def _hash_one(self, code: str) -> str:
        return self._hasher.hash(self.normalize(code))

    def _matches(self, code: str, hashed: str) -> bool:
        try:
            return self._hasher.verify(hashed, code)
        except (VerificationError, InvalidHashError):
            return False

    async def hash_all(self, codes: Sequence[str]) -> list[str]:
        """Hash every code; the hashes are computed concurrently."""
        return list(
            await asyncio.gather(*(run_in_threadpool(self._hash_one, code) for code in codes))
        )

    async def consume(self, submitted: str, stored: Sequence[str]) -> ConsumeResult:
        """
        Match *submitted* against the stored hashes.

        Every stored hash is checked even after a match, so the time taken
        does not depend on which code was used. The first match is removed
        from ``remaining``.
        """
        code = self.normalize(submitted)
        if not code or not stored:
            return ConsumeResult(matched=False, matched_index=None, remaining=list(stored))

        results = await asyncio.gather(
            *(run_in_threadpool(self._matches, code, hashed) for hashed in stored)
        )

        matched_index = next((i for i, ok in enumerate(results) if ok), None)
        if matched_index is None:
            return ConsumeResult(matched=False, matched_index=None, remaining=list(stored))

        remaining = [h for i, h in enumerate(stored) if i != matched_index]
        return ConsumeResult(matched=True, matched_index=matched_index, remaining=remaining)
