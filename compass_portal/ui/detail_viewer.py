"""Tabbed, read-only viewer for one assessment."""

import asyncio
import logging
from enum import Enum
from pathlib import Path
from typing import Callable

from compass_portal.api.services.assessment_service import AssessmentService, ExportFormat
from compass_portal.core.context import PortalContext
from compass_portal.core.errors import CompassError, describe_error
from compass_portal.core.polling import PollingTask
from compass_portal.schemas.assessment import Assessment, AssessmentCategory, AssessmentResults
from compass_portal.schemas.finding import Finding
from compass_portal.schemas.resource import ResourceFilters, ResourcePage
from compass_portal.ui.exports import Exporter
from compass_portal.ui.findings import (
    CategoryGroup,
    OverviewStats,
    RecommendationEntry,
    build_recommendations,
    group_findings,
    overview_stats,
)

logger = logging.getLogger(__name__)

FINDINGS_FAILED_MESSAGE = "Failed to load assessment findings"
DETAILS_FAILED_MESSAGE = "Failed to load assessment details"
RESOURCES_FAILED_MESSAGE = "Failed to load resources"

# Categories whose viewer also shows full results and the resource inventory
CATEGORIES_WITH_INVENTORY = frozenset({AssessmentCategory.RESOURCE_GOVERNANCE})

FILTER_FIELDS = ("resource_type", "resource_group", "location", "environment")


class DetailTab(str, Enum):
    OVERVIEW = "overview"
    FINDINGS = "findings"
    RECOMMENDATIONS = "recommendations"
    RESOURCES = "resources"


class TabMemory:
    """Last viewed tab per assessment id."""

    def __init__(self, default: DetailTab = DetailTab.OVERVIEW):
        self.default = default
        self._tabs: dict[str, DetailTab] = {}

    def get(self, assessment_id: str) -> DetailTab:
        return self._tabs.get(assessment_id, self.default)

    def remember(self, assessment_id: str, tab: DetailTab) -> None:
        self._tabs[assessment_id] = DetailTab(tab)

    def __len__(self) -> int:
        return len(self._tabs)


class AssessmentStatusWatcher:
    """Re-reads an in-progress assessment on a fixed interval until it finishes."""

    def __init__(
        self,
        service: AssessmentService,
        assessment_id: str,
        interval: float,
        on_update: Callable[[Assessment], None] | None = None,
    ):
        self.service = service
        self.assessment_id = assessment_id
        self.interval = interval
        self.on_update = on_update
        self.latest: Assessment | None = None
        self.error = ""
        self._poller: PollingTask | None = None

    async def _check(self) -> bool:
        try:
            assessment = await self.service.get(self.assessment_id)
        except CompassError as e:
            self.error = describe_error(e, "Failed to refresh assessment status")
            logger.warning(f"Status refresh for {self.assessment_id} failed: {e}")
            return False
        self.error = ""
        self.latest = assessment
        if self.on_update:
            self.on_update(assessment)
        return assessment.status.is_terminal

    def start(self) -> PollingTask:
        self._poller = PollingTask(
            check=self._check,
            interval=self.interval,
            name=f"assessment-status-{self.assessment_id}",
        ).start()
        return self._poller

    @property
    def running(self) -> bool:
        return self._poller is not None and self._poller.running

    async def wait(self) -> Assessment | None:
        if self._poller is not None:
            await self._poller.wait()
        return self.latest

    async def cancel(self) -> None:
        if self._poller is not None:
            await self._poller.cancel()


class AssessmentDetailViewer:
    """Overview / Findings / Recommendations / Resources for one assessment.

    Findings load on open; inventory categories also load results and the
    first resource page alongside. Each tab tracks its own loading flag and
    error. Responses for an assessment that is no longer shown are dropped.

    Args:
        ctx: Portal context
        alert: Blocking alert used for export failures
        tab_memory: Shared per-assessment tab memory
    """

    def __init__(
        self,
        ctx: PortalContext,
        alert: Callable[[str], None],
        tab_memory: TabMemory | None = None,
    ):
        self.ctx = ctx
        self.service = ctx.services.assessments
        self.page_size = ctx.settings.resource_page_size
        self.tab_memory = tab_memory or TabMemory()
        self.exporter = Exporter(self.service, ctx.settings.download_dir, alert)
        self.watcher: AssessmentStatusWatcher | None = None
        self._reset(None)

    def _reset(self, assessment: Assessment | None) -> None:
        self.assessment = assessment
        self.findings: list[Finding] = []
        self.findings_loaded = False
        self.results: AssessmentResults | None = None
        self.resources: ResourcePage | None = None
        self.filters = ResourceFilters()
        self.page = 1
        self.tab_loading = {tab: False for tab in DetailTab}
        self.tab_errors: dict[DetailTab, str] = {}
        self.active_tab = self.tab_memory.get(assessment.id) if assessment else DetailTab.OVERVIEW

    def _is_current(self, assessment_id: str) -> bool:
        return self.assessment is not None and self.assessment.id == assessment_id

    @property
    def has_inventory(self) -> bool:
        return self.assessment is not None and self.assessment.resolved_category in CATEGORIES_WITH_INVENTORY

    # =========================================================================
    # Opening and tabs
    # =========================================================================

    async def open(self, assessment: Assessment) -> None:
        await self._stop_watcher()
        self._reset(assessment)
        logger.info(f"Opening assessment {assessment.id} on tab {self.active_tab.value}")

        loads = [self.load_findings()]
        if self.has_inventory:
            loads.append(self.load_results())
            loads.append(self.load_resources(1))
        await asyncio.gather(*loads)

        if not assessment.status.is_terminal:
            self.watcher = AssessmentStatusWatcher(
                self.service,
                assessment.id,
                self.ctx.settings.assessment_poll_interval_seconds,
                on_update=self._on_status,
            )
            self.watcher.start()

    def _on_status(self, assessment: Assessment) -> None:
        if not self._is_current(assessment.id):
            return
        self.assessment = assessment
        if assessment.status.is_terminal:
            logger.info(f"Assessment {assessment.id} finished with status {assessment.status.value}")

    async def select_tab(self, tab: DetailTab) -> None:
        tab = DetailTab(tab)
        if self.assessment is None:
            raise RuntimeError("No assessment is open")
        self.active_tab = tab
        self.tab_memory.remember(self.assessment.id, tab)

        if tab in (DetailTab.FINDINGS, DetailTab.RECOMMENDATIONS) and not self.findings_loaded:
            await self.load_findings()
        elif tab == DetailTab.RESOURCES and self.has_inventory and self.resources is None:
            await self.load_resources(1)
        elif tab == DetailTab.OVERVIEW and self.has_inventory and self.results is None:
            await self.load_results()

    # =========================================================================
    # Loading
    # =========================================================================

    async def load_findings(self) -> None:
        assessment_id = self.assessment.id
        self.tab_loading[DetailTab.FINDINGS] = True
        self.tab_errors.pop(DetailTab.FINDINGS, None)
        try:
            findings = await self.service.get_findings(assessment_id)
            if self._is_current(assessment_id):
                self.findings = findings
                self.findings_loaded = True
        except CompassError as e:
            if self._is_current(assessment_id):
                self.tab_errors[DetailTab.FINDINGS] = describe_error(e, FINDINGS_FAILED_MESSAGE)
            logger.error(f"Loading findings for {assessment_id} failed: {e}")
        finally:
            self.tab_loading[DetailTab.FINDINGS] = False

    async def retry_findings(self) -> None:
        await self.load_findings()

    async def load_results(self) -> None:
        assessment_id = self.assessment.id
        self.tab_loading[DetailTab.OVERVIEW] = True
        self.tab_errors.pop(DetailTab.OVERVIEW, None)
        try:
            results = await self.service.get_results(assessment_id)
            if self._is_current(assessment_id):
                self.results = results
        except CompassError as e:
            if self._is_current(assessment_id):
                self.tab_errors[DetailTab.OVERVIEW] = describe_error(e, DETAILS_FAILED_MESSAGE)
            logger.error(f"Loading results for {assessment_id} failed: {e}")
        finally:
            self.tab_loading[DetailTab.OVERVIEW] = False

    async def load_resources(self, page: int = 1) -> None:
        assessment_id = self.assessment.id
        filters = self.filters.model_copy()
        self.tab_loading[DetailTab.RESOURCES] = True
        self.tab_errors.pop(DetailTab.RESOURCES, None)
        try:
            resources = await self.service.get_resources(
                assessment_id, page=page, limit=self.page_size, filters=filters
            )
            if self._is_current(assessment_id):
                self.resources = resources
                self.page = page
        except CompassError as e:
            if self._is_current(assessment_id):
                self.tab_errors[DetailTab.RESOURCES] = describe_error(e, RESOURCES_FAILED_MESSAGE)
            logger.error(f"Loading resources page {page} for {assessment_id} failed: {e}")
        finally:
            self.tab_loading[DetailTab.RESOURCES] = False

    # =========================================================================
    # Resource filters and pages
    # =========================================================================

    def set_search(self, text: str) -> None:
        self.filters = self.filters.model_copy(update={"search": text})

    def set_filter(self, name: str, value: str) -> None:
        if name not in FILTER_FIELDS:
            raise KeyError(f"Unknown resource filter {name!r}")
        self.filters = self.filters.model_copy(update={name: value or ""})

    async def apply_filters(self) -> None:
        await self.load_resources(1)

    async def clear_filters(self) -> None:
        """Reset every filter and reload page 1, even if nothing was set."""
        self.filters = ResourceFilters()
        await self.load_resources(1)

    async def next_page(self) -> None:
        if self.resources is not None and self.resources.has_next:
            await self.load_resources(self.page + 1)

    async def previous_page(self) -> None:
        if self.page > 1:
            await self.load_resources(self.page - 1)

    # =========================================================================
    # Derived views
    # =========================================================================

    @property
    def grouped_findings(self) -> list[CategoryGroup]:
        return group_findings(self.findings)

    @property
    def recommendations(self) -> list[RecommendationEntry]:
        return build_recommendations(self.grouped_findings)

    @property
    def overview(self) -> OverviewStats:
        total_resources = 0
        if self.results is not None and self.results.total_resources_analyzed:
            total_resources = self.results.total_resources_analyzed
        elif self.resources is not None:
            total_resources = self.resources.total_count
        elif self.assessment is not None:
            total_resources = self.assessment.total_resources_analyzed

        score = None
        if self.results is not None and self.results.overall_score is not None:
            score = self.results.overall_score
        elif self.assessment is not None:
            score = self.assessment.overall_score
        return overview_stats(self.findings, total_resources, score)

    # =========================================================================
    # Export and teardown
    # =========================================================================

    async def export(self, fmt: ExportFormat | str) -> Path | None:
        if self.assessment is None:
            raise RuntimeError("No assessment is open")
        return await self.exporter.export(self.assessment.id, fmt)

    async def _stop_watcher(self) -> None:
        if self.watcher is not None:
            await self.watcher.cancel()
            self.watcher = None

    async def close(self) -> None:
        """Stop status polling and drop data; tab memory is kept."""
        await self._stop_watcher()
        self._reset(None)
