"""Local grouping and presentation data for assessment findings."""

import math
import re
from dataclasses import dataclass, field

from compass_portal.schemas.finding import Finding, Severity

OTHER_CATEGORY = "Other"

_NON_ALNUM = re.compile(r"[^a-z0-9]")


@dataclass(frozen=True)
class SeverityStyle:
    label: str
    color: str
    badge: str
    icon: str


SEVERITY_STYLES = {
    Severity.CRITICAL: SeverityStyle("Critical", "#ef4444", "bg-red-600 text-white border-red-500", "alert-triangle"),
    Severity.HIGH: SeverityStyle("High", "#f97316", "bg-orange-500 text-white border-orange-400", "x-circle"),
    Severity.MEDIUM: SeverityStyle("Medium", "#eab308", "bg-yellow-500 text-black border-yellow-400", "alert-triangle"),
    Severity.LOW: SeverityStyle("Low", "#3b82f6", "bg-blue-500 text-white border-blue-400", "check-circle"),
    Severity.UNKNOWN: SeverityStyle("Unknown", "#6b7280", "bg-gray-500 text-white border-gray-400", "alert-triangle"),
}

# Order used by the donut chart, legend and bars
CHART_SEVERITIES = (Severity.CRITICAL, Severity.HIGH, Severity.MEDIUM, Severity.LOW)


def severity_style(severity) -> SeverityStyle:
    """Style for a severity; unrecognized values get the default entry."""
    return SEVERITY_STYLES[Severity.parse(severity)]


def issue_key(issue: str | None) -> str:
    """``"missing TAG!!"`` and ``"Missing tag"`` both map to ``"missingtag"``."""
    return _NON_ALNUM.sub("", (issue or "").lower())


def js_round(value: float) -> int:
    """Round half up, matching how percentages are shown in the web portal."""
    return int(math.floor(value + 0.5))


# =============================================================================
# Grouping
# =============================================================================


@dataclass(frozen=True)
class AffectedResource:
    resource_id: str | None
    name: str | None
    resource_type: str | None

    @property
    def key(self) -> str:
        return self.resource_id or self.name or ""


@dataclass
class FindingGroup:
    """Findings in one category that describe the same issue."""

    key: str
    category: str
    issue: str
    severity: Severity = Severity.UNKNOWN
    recommendation: str | None = None
    estimated_effort: str | None = None
    is_client_specific: bool = False
    findings: list[Finding] = field(default_factory=list)
    affected_resources: dict[str, AffectedResource] = field(default_factory=dict)

    def add(self, finding: Finding) -> None:
        self.findings.append(finding)
        if finding.severity.rank > self.severity.rank:
            self.severity = finding.severity
        if not self.recommendation and finding.recommendation:
            self.recommendation = finding.recommendation
        if not self.estimated_effort and finding.estimated_effort:
            self.estimated_effort = finding.estimated_effort
        self.is_client_specific = self.is_client_specific or finding.is_client_specific

        resource = AffectedResource(finding.resource_id, finding.resource_name, finding.resource_type)
        if resource.key and resource.key not in self.affected_resources:
            self.affected_resources[resource.key] = resource

    @property
    def count(self) -> int:
        return len(self.findings)

    @property
    def affected_count(self) -> int:
        return len(self.affected_resources)

    @property
    def style(self) -> SeverityStyle:
        return SEVERITY_STYLES[self.severity]


@dataclass
class CategoryGroup:
    category: str
    groups: list[FindingGroup] = field(default_factory=list)

    @property
    def finding_count(self) -> int:
        return sum(group.count for group in self.groups)

    @property
    def severity_counts(self) -> dict[Severity, int]:
        counts: dict[Severity, int] = {}
        for group in self.groups:
            for finding in group.findings:
                counts[finding.severity] = counts.get(finding.severity, 0) + 1
        return counts

    @property
    def priority(self) -> Severity:
        """Highest severity present; categories with only unknown findings count as medium."""
        counts = self.severity_counts
        for severity in CHART_SEVERITIES:
            if counts.get(severity):
                return severity
        return Severity.MEDIUM if counts else Severity.LOW


def group_findings(findings: list[Finding]) -> list[CategoryGroup]:
    """Group by category, then merge findings sharing a normalized issue key.

    Categories and groups keep the order in which they were first seen.
    """
    categories: dict[str, CategoryGroup] = {}
    lookup: dict[tuple[str, str], FindingGroup] = {}

    for finding in findings:
        category = finding.category or OTHER_CATEGORY
        key = issue_key(finding.issue)

        category_group = categories.get(category)
        if category_group is None:
            category_group = categories[category] = CategoryGroup(category)

        group = lookup.get((category, key))
        if group is None:
            group = FindingGroup(key=key, category=category, issue=finding.issue)
            lookup[(category, key)] = group
            category_group.groups.append(group)
        group.add(finding)

    return list(categories.values())


# =============================================================================
# Recommendations
# =============================================================================


@dataclass(frozen=True)
class RecommendationEntry:
    category: str
    priority: Severity
    recommendations: tuple[str, ...]
    issue_count: int
    affected_count: int
    estimated_effort: str | None = None
    has_client_rules: bool = False

    @property
    def style(self) -> SeverityStyle:
        return SEVERITY_STYLES[self.priority]


def build_recommendations(categories: list[CategoryGroup]) -> list[RecommendationEntry]:
    """One entry per category, most urgent first."""
    entries = []
    for category in categories:
        ordered = sorted(category.groups, key=lambda g: (-g.severity.rank, -g.affected_count))
        recommendations = []
        for group in ordered:
            if group.recommendation and group.recommendation not in recommendations:
                recommendations.append(group.recommendation)
        affected = {key for group in category.groups for key in group.affected_resources}
        effort = next((g.estimated_effort for g in ordered if g.estimated_effort), None)
        entries.append(
            RecommendationEntry(
                category=category.category,
                priority=category.priority,
                recommendations=tuple(recommendations),
                issue_count=category.finding_count,
                affected_count=len(affected),
                estimated_effort=effort,
                has_client_rules=any(g.is_client_specific for g in category.groups),
            )
        )
    entries.sort(key=lambda e: (-e.priority.rank, -e.affected_count))
    return entries


# =============================================================================
# Overview statistics
# =============================================================================


@dataclass(frozen=True)
class SeveritySlice:
    severity: Severity
    count: int
    percentage: float

    @property
    def style(self) -> SeverityStyle:
        return SEVERITY_STYLES[self.severity]


def severity_distribution(findings: list[Finding]) -> list[SeveritySlice]:
    """Donut/legend/bar data; percentages are of the four charted severities."""
    counts = {severity: 0 for severity in CHART_SEVERITIES}
    for finding in findings:
        if finding.severity in counts:
            counts[finding.severity] += 1
    total = sum(counts.values())
    return [
        SeveritySlice(severity, count, (count / total * 100) if total else 0.0)
        for severity, count in counts.items()
    ]


def compliance_rate(total_resources: int, resources_with_issues: int) -> int | None:
    if total_resources <= 0:
        return None
    compliant = max(total_resources - resources_with_issues, 0)
    return js_round(compliant / total_resources * 100)


def score_color(score: float | None) -> str:
    if score is None:
        return "gray"
    if score >= 90:
        return "green"
    if score >= 70:
        return "yellow"
    return "red"


@dataclass(frozen=True)
class OverviewStats:
    total_findings: int
    resources_with_issues: int
    total_resources: int
    compliance_rate: int | None
    score: float | None
    score_color: str
    distribution: list[SeveritySlice]


def overview_stats(findings: list[Finding], total_resources: int, score: float | None) -> OverviewStats:
    affected = {
        finding.resource_id or finding.resource_name
        for finding in findings
        if finding.resource_id or finding.resource_name
    }
    return OverviewStats(
        total_findings=len(findings),
        resources_with_issues=len(affected),
        total_resources=total_resources,
        compliance_rate=compliance_rate(total_resources, len(affected)),
        score=score,
        score_color=score_color(score),
        distribution=severity_distribution(findings),
    )
