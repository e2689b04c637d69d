import pytest

from admin_reports.analyzers.base import Finding
from admin_reports.scoring import compute_health, rating_for


def finding(check, severity, deduction, report="pki"):
    return Finding(id="X", report=report, check=check, title=check.replace("_", " "),
                   severity=severity, deduction=deduction)


@pytest.mark.parametrize("score, rating", [
    (100, "Healthy"), (90, "Healthy"), (89.5, "Fair"), (75, "Fair"),
    (74.9, "Degraded"), (50, "Degraded"), (49, "Critical"), (0, "Critical"),
])
def test_rating_bands(score, rating):
    assert rating_for(score) == rating


def test_no_findings_is_healthy():
    health = compute_health([])
    assert health.score == 100.0
    assert health.rating == "Healthy"
    assert health.severity_counts == {
        "critical": 0, "high": 0, "medium": 0, "low": 0, "informational": 0,
    }
    assert health.top_issues == []


def test_deductions_sum_and_floor():
    health = compute_health([finding("missing_aia", "low", 2), finding("missing_aia", "low", 2),
                             finding("weak_rsa_key", "high", 10)])
    assert health.score == 86.0
    assert health.rating == "Fair"
    assert health.total_deductions == 14

    many = [finding("ca_expired", "critical", 30)] * 4
    health = compute_health(many)
    assert health.score == 0.0
    assert health.rating == "Critical"
    assert health.total_deductions == 120


def test_top_issues_ordering():
    findings = (
        [finding("unlicensed_member", "informational", 0, "users")] * 5
        + [finding("guest_never_signed_in", "low", 0.5, "users")] * 4
        + [finding("dormant_licensed", "medium", 1, "users")] * 2
        + [finding("disabled_licensed", "medium", 2, "users")]
        + [finding("sku_near_capacity", "low", 3, "users")]
    )
    health = compute_health(findings)
    assert [i["check"] for i in health.top_issues] == [
        "sku_near_capacity",
        # equal total deduction: the more severe check first
        "dormant_licensed",
        "disabled_licensed",
        "guest_never_signed_in",
        "unlicensed_member",
    ]
    assert health.top_issues[3]["count"] == 4
    assert health.top_issues[3]["deduction"] == 2.0
    assert health.severity_counts["informational"] == 5

    data = health.to_dict()
    assert data["severity_summary"]["medium"] == 3
    assert data["total_findings"] == 13
