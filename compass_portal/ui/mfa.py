"""MFA settings and login-time verification."""

import logging
import re
from datetime import datetime, timezone
from pathlib import Path

from compass_portal.api.services.mfa_service import MfaService
from compass_portal.core.errors import CompassError, describe_error
from compass_portal.schemas.mfa import MfaSetup, MfaStatus, MfaVerifyResult

logger = logging.getLogger(__name__)

TOTP_PATTERN = re.compile(r"\d{6}")
BACKUP_CODE_PATTERN = re.compile(r"[A-Z0-9]{4}-?[A-Z0-9]{4}")

CODE_REQUIRED_MESSAGE = "Please enter a code"
INVALID_TOTP_MESSAGE = "Please enter a valid 6-digit code"
INVALID_BACKUP_CODE_MESSAGE = "Please enter a valid backup code in format XXXX-XXXX"
FIELDS_REQUIRED_MESSAGE = "Please fill in all fields"
AUTHENTICATOR_CODE_REQUIRED_MESSAGE = "Please enter your authenticator code"
STATUS_FAILED_MESSAGE = "Failed to load MFA status"
INVALID_CODE_MESSAGE = "Invalid verification code"

BACKUP_CODES_FILENAME = "compass-backup-codes.txt"


def sanitize_totp(raw: str) -> str:
    """Keep digits only."""
    return re.sub(r"\D", "", raw or "")


def sanitize_backup_code(raw: str) -> str:
    """Upper-case, keep ``A-Z0-9-`` and insert the hyphen after four characters."""
    value = re.sub(r"[^A-Z0-9-]", "", (raw or "").upper())
    if len(value) == 4 and "-" not in value:
        value += "-"
    return value


def is_valid_totp(code: str) -> bool:
    return bool(TOTP_PATTERN.fullmatch(code or ""))


def is_valid_backup_code(code: str) -> bool:
    """``XXXX-XXXX`` (9 characters) or the same 8 characters without the hyphen."""
    return bool(BACKUP_CODE_PATTERN.fullmatch((code or "").upper()))


def backup_codes_text(codes: list[str], generated: datetime | None = None) -> str:
    generated = generated or datetime.now(timezone.utc)
    return (
        "Compass MFA Backup Codes\n"
        f"Generated: {generated.isoformat()}\n\n"
        + "\n".join(codes)
        + "\n\nKeep these codes safe! Each can only be used once."
    )


class MfaSettingsPanel:
    """Enable, disable and regenerate backup codes for the signed-in account."""

    def __init__(self, service: MfaService):
        self.service = service
        self.status: MfaStatus | None = None
        self.setup_data: MfaSetup | None = None
        self.new_backup_codes: list[str] = []
        self.setup_code = ""
        self.disable_password = ""
        self.disable_code = ""
        self.regenerate_code = ""
        self.error = ""
        self.is_loading = False

    @property
    def is_enabled(self) -> bool:
        return bool(self.status and self.status.is_enabled)

    async def load_status(self) -> MfaStatus | None:
        self.is_loading = True
        self.error = ""
        try:
            self.status = await self.service.get_status()
        except CompassError as e:
            self.error = STATUS_FAILED_MESSAGE
            logger.error(f"Loading MFA status failed: {e}")
        finally:
            self.is_loading = False
        return self.status

    # =========================================================================
    # Enable
    # =========================================================================

    async def begin_setup(self) -> MfaSetup | None:
        self.is_loading = True
        self.error = ""
        try:
            self.setup_data = await self.service.setup()
        except CompassError as e:
            self.error = describe_error(e, "Failed to start MFA setup")
            logger.error(f"MFA setup failed: {e}")
        finally:
            self.is_loading = False
        return self.setup_data

    def set_setup_code(self, raw: str) -> None:
        self.setup_code = sanitize_totp(raw)

    @property
    def can_verify_setup(self) -> bool:
        return not self.is_loading and self.setup_data is not None and is_valid_totp(self.setup_code)

    async def verify_setup(self) -> bool:
        if not is_valid_totp(self.setup_code):
            self.error = INVALID_TOTP_MESSAGE
            return False

        self.is_loading = True
        self.error = ""
        try:
            result = await self.service.verify_setup(self.setup_code)
        except CompassError as e:
            self.error = describe_error(e, INVALID_CODE_MESSAGE)
            return False
        finally:
            self.is_loading = False

        if not result.is_valid:
            self.error = result.message or INVALID_CODE_MESSAGE
            return False

        self.setup_code = ""
        await self.load_status()
        return True

    # =========================================================================
    # Disable
    # =========================================================================

    def set_disable_code(self, raw: str) -> None:
        self.disable_code = sanitize_totp(raw)

    @property
    def can_disable(self) -> bool:
        return not self.is_loading and bool(self.disable_password) and is_valid_totp(self.disable_code)

    async def disable(self) -> bool:
        if not self.disable_password or not self.disable_code:
            self.error = FIELDS_REQUIRED_MESSAGE
            return False
        if not is_valid_totp(self.disable_code):
            self.error = INVALID_TOTP_MESSAGE
            return False

        self.is_loading = True
        self.error = ""
        try:
            await self.service.disable(self.disable_password, self.disable_code)
        except CompassError as e:
            self.error = describe_error(e, "Failed to disable MFA")
            return False
        finally:
            self.is_loading = False

        self.disable_password = ""
        self.disable_code = ""
        self.setup_data = None
        await self.load_status()
        return True

    # =========================================================================
    # Regenerate backup codes
    # =========================================================================

    def set_regenerate_code(self, raw: str) -> None:
        self.regenerate_code = sanitize_totp(raw)

    @property
    def can_regenerate(self) -> bool:
        return not self.is_loading and is_valid_totp(self.regenerate_code)

    async def regenerate(self) -> list[str]:
        if not self.regenerate_code:
            self.error = AUTHENTICATOR_CODE_REQUIRED_MESSAGE
            return []
        if not is_valid_totp(self.regenerate_code):
            self.error = INVALID_TOTP_MESSAGE
            return []

        self.is_loading = True
        self.error = ""
        try:
            self.new_backup_codes = await self.service.regenerate_backup_codes(self.regenerate_code)
        except CompassError as e:
            self.error = describe_error(e, "Failed to regenerate backup codes")
            return []
        finally:
            self.is_loading = False

        self.regenerate_code = ""
        return self.new_backup_codes

    def save_backup_codes(self, directory: Path, codes: list[str] | None = None) -> Path:
        codes = codes if codes is not None else (self.new_backup_codes or (self.setup_data.backup_codes if self.setup_data else []))
        if not codes:
            raise ValueError("There are no backup codes to save")
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / BACKUP_CODES_FILENAME
        path.write_text(backup_codes_text(codes), encoding="utf-8")
        logger.info(f"Saved {len(codes)} backup codes to {path}")
        return path


class MfaVerificationPrompt:
    """Second-factor prompt shown after password login."""

    def __init__(self, service: MfaService):
        self.service = service
        self.code = ""
        self.use_backup_code = False
        self.error = ""
        self.is_loading = False

    def set_code(self, raw: str) -> None:
        self.code = sanitize_backup_code(raw) if self.use_backup_code else sanitize_totp(raw)

    def toggle_backup_code(self) -> None:
        self.use_backup_code = not self.use_backup_code
        self.code = ""
        self.error = ""

    def _format_error(self) -> str:
        if not self.code:
            return CODE_REQUIRED_MESSAGE
        if self.use_backup_code:
            return "" if is_valid_backup_code(self.code) else INVALID_BACKUP_CODE_MESSAGE
        return "" if is_valid_totp(self.code) else INVALID_TOTP_MESSAGE

    @property
    def can_submit(self) -> bool:
        return not self.is_loading and not self._format_error()

    async def submit(self) -> MfaVerifyResult | None:
        self.error = self._format_error()
        if self.error:
            return None

        self.is_loading = True
        try:
            result = await self.service.verify(self.code, self.use_backup_code)
        except CompassError as e:
            self.error = describe_error(e, INVALID_CODE_MESSAGE)
            return None
        finally:
            self.is_loading = False

        if not result.is_valid:
            self.error = result.message or INVALID_CODE_MESSAGE
            return None

        self.close()
        return result

    def close(self) -> None:
        self.code = ""
        self.use_backup_code = False
        self.error = ""
        self.is_loading = False
