"""Service wiring.

``build_services`` is called once per application by ``create_app``; the
result lives on ``app.state.services`` and is handed to endpoints through
``socialhub.dependencies.get_services``.
"""

from dataclasses import dataclass
from typing import Optional

from socialhub.config import Settings
from socialhub.core.security import PasswordService
from socialhub.services.auth_service import AuthService
from socialhub.services.email_service import EmailService
from socialhub.services.recovery_code_service import RecoveryCodeService
from socialhub.services.token_service import TokenService
from socialhub.services.totp_vault import TOTPVault
from socialhub.services.two_factor_service import TwoFactorService


@dataclass(frozen=True)
class Services:
    settings: Settings
    tokens: TokenService
    passwords: PasswordService
    vault: TOTPVault
    recovery_codes: RecoveryCodeService
    mailer: EmailService
    two_factor: TwoFactorService
    auth: AuthService


def build_services(settings: Settings, mailer: Optional[EmailService] = None) -> Services:
    tokens = TokenService(settings)
    passwords = PasswordService()
    vault = TOTPVault(settings.two_fa_master_key_bytes, issuer=settings.TWO_FA_ISSUER)
    recovery_codes = RecoveryCodeService()
    mailer = mailer or EmailService.from_settings(settings)
    two_factor = TwoFactorService(settings, tokens, vault, recovery_codes)
    auth = AuthService(tokens, passwords, mailer, two_factor)
    return Services(
        settings=settings,
        tokens=tokens,
        passwords=passwords,
        vault=vault,
        recovery_codes=recovery_codes,
        mailer=mailer,
        two_factor=two_factor,
        auth=auth,
    )
