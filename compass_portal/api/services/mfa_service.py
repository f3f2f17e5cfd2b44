"""MFA API operations."""

import logging

from compass_portal.api.services.http import ApiClient
from compass_portal.schemas.base import parse
from compass_portal.schemas.mfa import BackupCodes, MfaSetup, MfaStatus, MfaVerifyResult

logger = logging.getLogger(__name__)


class MfaService:
    def __init__(self, api: ApiClient):
        self.api = api

    async def get_status(self) -> MfaStatus:
        return parse(MfaStatus, await self.api.get("/mfa/status") or {})

    async def setup(self) -> MfaSetup:
        """Start enrollment; returns the secret, QR data and backup codes."""
        return parse(MfaSetup, await self.api.post("/mfa/setup") or {})

    async def verify_setup(self, totp_code: str) -> MfaVerifyResult:
        """Confirm enrollment with the first code from the authenticator."""
        data = await self.api.post("/mfa/verify-setup", json={"totpCode": totp_code})
        result = parse(MfaVerifyResult, data or {})
        if result.is_valid:
            logger.info("MFA enabled")
        return result

    async def verify(self, token: str, is_backup_code: bool = False) -> MfaVerifyResult:
        data = await self.api.post(
            "/mfa/verify",
            json={"token": token, "isBackupCode": is_backup_code},
        )
        return parse(MfaVerifyResult, data or {})

    async def disable(self, password: str, token: str) -> str | None:
        data = await self.api.post("/mfa/disable", json={"password": password, "token": token})
        logger.info("MFA disabled")
        if isinstance(data, dict):
            return data.get("message") or data.get("Message")
        return None

    async def regenerate_backup_codes(self, token: str) -> list[str]:
        data = await self.api.post("/mfa/regenerate-backup-codes", json={"token": token})
        if isinstance(data, list):
            return [str(code) for code in data]
        codes = parse(BackupCodes, data or {}).backup_codes
        logger.info(f"Regenerated {len(codes)} backup codes")
        return codes
