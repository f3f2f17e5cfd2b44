"""Assessment API operations."""

import logging
from enum import Enum
from typing import Any

from compass_portal.api.services.http import ApiClient, Blob
from compass_portal.schemas.assessment import (
    Assessment,
    AssessmentResults,
    AssessmentStartRequest,
    AssessmentStartResponse,
)
from compass_portal.schemas.base import fold_key, normalize, parse
from compass_portal.schemas.finding import Finding
from compass_portal.schemas.resource import ResourceFilters, ResourcePage

logger = logging.getLogger(__name__)


class ExportFormat(str, Enum):
    CSV = "csv"
    XLSX = "xlsx"
    PDF = "pdf"


def _unwrap_list(data: Any, key: str) -> list:
    """Accept a bare list or an object wrapping it under ``key``."""
    if data is None:
        return []
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        for name, value in data.items():
            if fold_key(name) == key and isinstance(value, list):
                return value
    return []


class AssessmentService:
    """Start assessments and read their results."""

    def __init__(self, api: ApiClient):
        self.api = api

    async def start(self, request: AssessmentStartRequest) -> AssessmentStartResponse:
        payload = request.to_payload()
        logger.info(f"Starting assessment '{request.name}' (type {int(request.type)})")
        data = await self.api.post("/assessments", json=payload)
        return parse(AssessmentStartResponse, data or {})

    async def list_assessments(self) -> list[Assessment]:
        data = await self.api.get("/assessments")
        return normalize(Assessment, _unwrap_list(data, "assessments"))

    async def get(self, assessment_id: str) -> Assessment:
        data = await self.api.get(f"/assessments/{assessment_id}")
        return parse(Assessment, data)

    async def get_results(self, assessment_id: str) -> AssessmentResults:
        data = await self.api.get(f"/assessments/{assessment_id}/results")
        return parse(AssessmentResults, data)

    async def get_findings(self, assessment_id: str) -> list[Finding]:
        data = await self.api.get(f"/assessments/{assessment_id}/findings")
        findings = normalize(Finding, _unwrap_list(data, "findings"))
        logger.debug(f"Loaded {len(findings)} findings for assessment {assessment_id}")
        return findings

    async def get_resources(
        self,
        assessment_id: str,
        page: int = 1,
        limit: int = 50,
        filters: ResourceFilters | None = None,
    ) -> ResourcePage:
        params: dict[str, Any] = {"page": page, "limit": limit}
        if filters is not None:
            params.update(filters.to_params())
        data = await self.api.get(f"/assessments/{assessment_id}/resources", params=params)
        return parse(ResourcePage, data or {})

    async def export_resources(self, assessment_id: str, fmt: ExportFormat | str = ExportFormat.CSV) -> Blob:
        fmt = ExportFormat(fmt)
        if fmt == ExportFormat.PDF:
            raise ValueError("Resources can be exported as csv or xlsx only")
        return await self.api.get_blob(
            f"/assessments/{assessment_id}/resources/export",
            params={"format": fmt.value},
        )

    async def export_report(self, assessment_id: str) -> Blob:
        return await self.api.get_blob(f"/assessments/{assessment_id}/report/pdf")
