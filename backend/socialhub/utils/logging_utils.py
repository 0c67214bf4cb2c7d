"""Logging utilities for PII redaction and secure logging."""

import hashlib
from typing import Optional


def redact_email(email: Optional[str]) -> str:
    """
    Redact email address for logging while maintaining uniqueness.

    Args:
        email: Email address to redact

    Returns:
        Redacted email in format: u***@example.com or hash:abc123@example.com
        for short local parts. Returns 'N/A' if email is None or empty.

    Examples:
        >>> redact_email("user@example.com")
        'u***@example.com'
        >>> redact_email(None)
        'N/A'
    """
    if not email:
        return "N/A"

    local, sep, domain = email.partition("@")
    if not sep or not local or not domain:
        # Malformed email - hash it
        return f"hash:{_short_hash(email)}"

    if len(local) < 3:
        return f"hash:{_short_hash(email)}@{domain}"

    return f"{local[0]}***@{domain}"


def redact_ip(ip_address: Optional[str]) -> str:
    """
    Redact IP address for logging while maintaining network info.

    Examples:
        >>> redact_ip("192.168.1.100")
        '192.168.1.***'
        >>> redact_ip(None)
        'N/A'
    """
    if not ip_address:
        return "N/A"

    if "." in ip_address:
        parts = ip_address.split(".")
        if len(parts) == 4:
            return f"{parts[0]}.{parts[1]}.{parts[2]}.***"

    if ":" in ip_address:
        parts = ip_address.split(":")
        if len(parts) >= 4:
            return ":".join(parts[:3]) + ":***"

    return f"hash:{_short_hash(ip_address)}"


def redact_token(token: Optional[str]) -> str:
    """Keep only a short fingerprint of a bearer token."""
    if not token:
        return "N/A"
    return f"tok:{_short_hash(token)}"


def _short_hash(value: str) -> str:
    return hashlib.sha256(value.encode()).hexdigest()[:6]
