"""Multi-factor authentication schemas."""

from datetime import datetime

from compass_portal.schemas.base import CompassModel


class MfaStatus(CompassModel):
    key_aliases = {"Enabled": "is_enabled", "MfaEnabled": "is_enabled"}

    is_enabled: bool = False
    setup_date: datetime | None = None
    last_used_date: datetime | None = None
    backup_codes_remaining: int = 0
    requires_setup: bool = False


class MfaSetup(CompassModel):
    secret: str | None = None
    qr_code_uri: str | None = None
    qr_code: str | None = None
    manual_entry_key: str | None = None
    backup_codes: list[str] = []


class MfaVerifyResult(CompassModel):
    key_aliases = {"Valid": "is_valid", "Success": "is_valid"}

    is_valid: bool = False
    message: str | None = None
    remaining_backup_codes: int | None = None


class BackupCodes(CompassModel):
    backup_codes: list[str] = []
