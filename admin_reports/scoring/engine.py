"""
Scoring Engine — Computes the 0-100 health score of a report from its findings.

Scoring model:
  - The report starts at 100 points.
  - Every finding subtracts the fixed deduction its analyzer assigned.
  - The score is floored at 0 and mapped to a rating band.
"""

from __future__ import annotations

from ..analyzers.base import SEVERITY_ORDER
from .models import HealthScore

RATING_THRESHOLDS = [
    (90, "Healthy"),
    (75, "Fair"),
    (50, "Degraded"),
    ( 0, "Critical"),
]

TOP_ISSUE_LIMIT = 10


def rating_for(score: float) -> str:
    for threshold, rating in RATING_THRESHOLDS:
        if score >= threshold:
            return rating
    return RATING_THRESHOLDS[-1][1]


def compute_health(findings: list) -> HealthScore:
    """
    Compute the report health score.

    Args:
        findings: Finding objects from the report's analyzer.

    Returns:
        HealthScore with score, rating, severity counts and top issues.
    """
    result = HealthScore()
    result.total_findings = len(findings)
    result.severity_counts = {sev: 0 for sev in SEVERITY_ORDER}

    # --- Deductions and severity counters ---
    by_check: dict[tuple[str, str], dict] = {}
    for f in findings:
        sev = (f.severity or "").lower()
        result.severity_counts[sev] = result.severity_counts.get(sev, 0) + 1
        result.total_deductions += f.deduction

        issue = by_check.setdefault((f.report, f.check), {
            "check": f.check,
            "title": f.title,
            "severity": sev,
            "count": 0,
            "deduction": 0.0,
        })
        issue["count"] += 1
        issue["deduction"] += f.deduction

    result.score = max(0.0, 100.0 - result.total_deductions)
    result.rating = rating_for(result.score)

    # --- Top issues: biggest total deduction, then most severe ---
    rank = {sev: i for i, sev in enumerate(SEVERITY_ORDER)}
    issues = sorted(
        by_check.values(),
        key=lambda i: (-i["deduction"], rank.get(i["severity"], len(rank)), -i["count"]),
    )
    for issue in issues[:TOP_ISSUE_LIMIT]:
        issue["deduction"] = round(issue["deduction"], 1)
        result.top_issues.append(issue)

    return result
