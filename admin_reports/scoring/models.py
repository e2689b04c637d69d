"""
Scoring data models — Structured type for the health score output.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class HealthScore:
    """Health score for one report run."""
    score: float = 100.0
    rating: str = "Healthy"
    total_findings: int = 0
    total_deductions: float = 0.0
    severity_counts: dict[str, int] = field(default_factory=dict)
    top_issues: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "score": round(self.score, 1),
            "rating": self.rating,
            "total_findings": self.total_findings,
            "total_deductions": round(self.total_deductions, 1),
            "severity_summary": dict(self.severity_counts),
            "top_issues": self.top_issues,
        }
