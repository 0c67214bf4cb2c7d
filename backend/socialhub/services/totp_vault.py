"""TOTP secret generation, verification and encrypted storage."""

import io
import logging
import os
import time
from base64 import b64decode, b64encode
from binascii import Error as BinasciiError
from dataclasses import dataclass
from typing import Optional

import pyotp
import qrcode
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from socialhub.core.exceptions import UnauthorizedError

logger = logging.getLogger(__name__)

IV_BYTES = 12
TAG_BYTES = 16
SECRET_LENGTH = 32  # base32 characters = 160 bits


@dataclass(frozen=True)
class GeneratedSecret:
    base32_secret: str
    otpauth_url: str


@dataclass(frozen=True)
class EncryptedSecret:
    """AES-GCM output, each field base64 encoded for storage."""

    ciphertext: str
    iv: str
    tag: str


class TOTPVault:
    """Create, encrypt and check TOTP secrets."""

    def __init__(self, master_key: bytes, issuer: str = "SocialHub"):
        self._aesgcm = AESGCM(master_key)
        self._issuer = issuer

    def generate_secret(self, label: str) -> GeneratedSecret:
        """
        Generate a new TOTP secret and its provisioning URI.

        Args:
            label: Account label shown in the authenticator app (the user's email)
        """
        secret = pyotp.random_base32(SECRET_LENGTH)
        url = pyotp.TOTP(secret).provisioning_uri(name=label, issuer_name=self._issuer)
        return GeneratedSecret(base32_secret=secret, otpauth_url=url)

    def encrypt(self, secret: str) -> EncryptedSecret:
        """Encrypt *secret* under the master key with a fresh random IV."""
        iv = os.urandom(IV_BYTES)
        sealed = self._aesgcm.encrypt(iv, secret.encode("utf-8"), None)
        ciphertext, tag = sealed[:-TAG_BYTES], sealed[-TAG_BYTES:]
        return EncryptedSecret(
            ciphertext=b64encode(ciphertext).decode(),
            iv=b64encode(iv).decode(),
            tag=b64encode(tag).decode(),
        )

    def decrypt(self, encrypted: EncryptedSecret) -> str:
        """
        Decrypt a stored secret.

        Raises:
            UnauthorizedError: the record is incomplete or fails authentication
        """
        try:
            ciphertext = b64decode(encrypted.ciphertext, validate=True)
            iv = b64decode(encrypted.iv, validate=True)
            tag = b64decode(encrypted.tag, validate=True)
            if len(iv) != IV_BYTES or len(tag) != TAG_BYTES:
                raise ValueError("bad IV or tag length")
            plaintext = self._aesgcm.decrypt(iv, ciphertext + tag, None)
        except (InvalidTag, BinasciiError, ValueError, TypeError) as exc:
            logger.warning("Stored 2FA secret failed to decrypt: %s", type(exc).__name__)
            raise UnauthorizedError("2FA is not active.")
        return plaintext.decode("utf-8")

    @staticmethod
    def verify_code(
        secret: str, code: str, window: int = 1, for_time: Optional[float] = None
    ) -> bool:
        """
        Check a 6-digit code, accepting one 30 second step of drift either way.
        """
        code = (code or "").replace(" ", "")
        if len(code) != 6 or not code.isdigit():
            return False
        totp = pyotp.TOTP(secret)
        return totp.verify(code, for_time=for_time if for_time is not None else time.time(),
                           valid_window=window)

    @staticmethod
    def qr_code_png(otpauth_url: str) -> str:
        """
        Render the provisioning URI as a QR code.

        Returns:
            Base64-encoded PNG image
        """
        qr = qrcode.QRCode(version=1, box_size=10, border=5)
        qr.add_data(otpauth_url)
        qr.make(fit=True)

        img = qr.make_image(fill_color="black", back_color="white")

        buffer = io.BytesIO()
        img.save(buffer, format="PNG")
        return b64encode(buffer.getvalue()).decode()
