"""
Prometheus metrics for authentication and two-factor flows.

The /metrics route is protected by HTTP Basic Auth
(METRICS_USERNAME / METRICS_PASSWORD).

Dev access: curl -u admin:metrics_admin http://localhost:8000/metrics
"""

import base64
import binascii
import hmac

from prometheus_client import CONTENT_TYPE_LATEST, Counter, generate_latest
from starlette.requests import Request
from starlette.responses import Response

from socialhub.config import Settings


logins_total = Counter(
    "auth_logins_total",
    "Login attempts by outcome",
    ["outcome"],  # success, pending_2fa, wrong_password, unknown_user
)

registrations_total = Counter(
    "auth_registrations_total",
    "Completed user registrations",
)

two_factor_verifications_total = Counter(
    "two_factor_verifications_total",
    "2FA verification attempts",
    ["method", "outcome"],  # method: totp, recovery; outcome: success, failure, locked
)

two_factor_lockouts_total = Counter(
    "two_factor_lockouts_total",
    "Times a user was locked out of 2FA verification",
)

two_factor_setups_total = Counter(
    "two_factor_setups_total",
    "Completed 2FA setups",
)


def track_login(outcome: str) -> None:
    logins_total.labels(outcome=outcome).inc()


def track_two_factor_attempt(method: str, outcome: str) -> None:
    two_factor_verifications_total.labels(method=method, outcome=outcome).inc()


def _unauthorized() -> Response:
    return Response(
        content="Unauthorized",
        status_code=401,
        headers={"WWW-Authenticate": 'Basic realm="metrics"'},
    )


def metrics_credentials_valid(auth_header: str, settings: Settings) -> bool:
    """Check an ``Authorization: Basic`` header against the metrics credentials."""
    if not auth_header.startswith("Basic "):
        return False

    try:
        decoded = base64.b64decode(auth_header[6:], validate=True).decode("utf-8", errors="replace")
        username, password = decoded.split(":", 1)
    except (binascii.Error, ValueError):
        return False

    # Evaluate both comparisons so timing doesn't reveal which one failed
    user_ok = hmac.compare_digest(username, settings.METRICS_USERNAME)
    pass_ok = hmac.compare_digest(password, settings.METRICS_PASSWORD)
    return user_ok and pass_ok


async def metrics_endpoint(request: Request) -> Response:
    """Serve Prometheus metrics behind HTTP Basic Auth."""
    settings: Settings = request.app.state.settings
    if not metrics_credentials_valid(request.headers.get("Authorization", ""), settings):
        return _unauthorized()
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
