"""Tests for local findings grouping and overview statistics."""

from compass_portal.schemas.finding import Finding, Severity
from compass_portal.ui.findings import (
    build_recommendations,
    compliance_rate,
    group_findings,
    issue_key,
    overview_stats,
    score_color,
    severity_distribution,
    severity_style,
)


def finding(issue, severity="medium", category="Tagging", resource="vm-1", recommendation=None, **extra):
    return Finding.model_validate({
        "Issue": issue,
        "Severity": severity,
        "Category": category,
        "ResourceId": f"/subscriptions/s/resourceGroups/rg/providers/x/{resource}" if resource else None,
        "ResourceName": resource,
        "Recommendation": recommendation,
        **extra,
    })


class TestGrouping:
    """Tests for merging findings that describe the same issue."""

    def test_issue_key_ignores_case_and_punctuation(self):
        assert issue_key("Missing tag") == issue_key("missing TAG!!") == "missingtag"
        assert issue_key(None) == ""

    def test_same_issue_merged(self):
        groups = group_findings([
            finding("Missing tag", "low", resource="vm-1"),
            finding("missing TAG!!", "high", resource="vm-2"),
        ])

        assert len(groups) == 1
        assert len(groups[0].groups) == 1
        group = groups[0].groups[0]
        assert group.count == 2
        assert group.affected_count == 2
        assert group.severity == Severity.HIGH
        assert group.issue == "Missing tag"

    def test_categories_kept_apart(self):
        groups = group_findings([
            finding("Missing tag", category="Tagging"),
            finding("Missing tag", category="Naming"),
            finding("Bad name", category=None),
        ])
        assert [g.category for g in groups] == ["Tagging", "Naming", "Other"]

    def test_same_resource_counted_once(self):
        group = group_findings([
            finding("Missing tag", resource="vm-1"),
            finding("Missing tag!", resource="vm-1"),
        ])[0].groups[0]
        assert group.count == 2
        assert group.affected_count == 1

    def test_unknown_severity_style(self):
        assert severity_style("nonsense").label == "Unknown"
        assert severity_style("CRITICAL").color == "#ef4444"


class TestRecommendations:
    def test_ordered_by_priority(self):
        entries = build_recommendations(group_findings([
            finding("Missing tag", "low", category="Tagging", recommendation="Add tags"),
            finding("Public IP", "critical", category="Network", recommendation="Remove public IPs"),
            finding("Open port", "medium", category="Network", recommendation="Close port 22"),
        ]))

        assert [e.category for e in entries] == ["Network", "Tagging"]
        assert entries[0].priority == Severity.CRITICAL
        assert entries[0].recommendations == ("Remove public IPs", "Close port 22")
        assert entries[0].issue_count == 2

    def test_client_rules_flagged(self):
        entries = build_recommendations(group_findings([
            finding("Custom rule", category="Naming", IsClientRule=True),
        ]))
        assert entries[0].has_client_rules


class TestOverview:
    def test_compliance_rate(self):
        assert compliance_rate(10, 3) == 70
        assert compliance_rate(3, 1) == 67
        assert compliance_rate(200, 1) == 100
        assert compliance_rate(0, 0) is None

    def test_score_color(self):
        assert score_color(95) == "green"
        assert score_color(90) == "green"
        assert score_color(70) == "yellow"
        assert score_color(69.9) == "red"
        assert score_color(None) == "gray"

    def test_distribution(self):
        slices = severity_distribution([
            finding("a", "critical"), finding("b", "critical"), finding("c", "low"), finding("d", "unknown"),
        ])
        by_severity = {s.severity: s for s in slices}
        assert [s.severity for s in slices] == [Severity.CRITICAL, Severity.HIGH, Severity.MEDIUM, Severity.LOW]
        assert by_severity[Severity.CRITICAL].count == 2
        assert round(by_severity[Severity.CRITICAL].percentage, 2) == 66.67

    def test_overview_stats(self):
        stats = overview_stats(
            [finding("a", resource="vm-1"), finding("b", resource="vm-1"), finding("c", resource="vm-2")],
            total_resources=10,
            score=82.5,
        )
        assert stats.total_findings == 3
        assert stats.resources_with_issues == 2
        assert stats.compliance_rate == 80
        assert stats.score_color == "yellow"
