"""
Base analyzer class — Abstract interface for all report analyzers.
Defines the Finding data model and the deduction-table contract.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger("admin_reports.analyzers")

SEVERITY_ORDER = ["critical", "high", "medium", "low", "informational"]


@dataclass
class Finding:
    """
    A single detected issue. `deduction` is the number of points it takes
    off the report's health score.
    """
    id: str                              # e.g. "PKI-003"
    report: str                          # users, mailboxes, teams, ad, pki, pools, shares
    check: str                           # key into the analyzer's tables
    title: str                           # Human-readable check name
    subject: str = ""                    # Object the finding is about
    severity: str = "medium"             # critical, high, medium, low, informational
    deduction: float = 0.0
    detail: str = ""
    evidence: Any = None
    recommendation: str = ""

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "report": self.report,
            "check": self.check,
            "title": self.title,
            "subject": self.subject,
            "severity": self.severity,
            "deduction": self.deduction,
            "detail": self.detail,
            "evidence": self.evidence,
            "recommendation": self.recommendation,
        }

    def to_row(self) -> dict:
        """Flat form for CSV / Excel."""
        row = self.to_dict()
        evidence = row.pop("evidence")
        if isinstance(evidence, dict):
            row["evidence"] = "; ".join(f"{k}={v}" for k, v in evidence.items())
        elif isinstance(evidence, list):
            row["evidence"] = "; ".join(str(v) for v in evidence)
        else:
            row["evidence"] = "" if evidence is None else str(evidence)
        return row


class BaseAnalyzer(ABC):
    """
    Analyzers receive a collector's datasets and produce findings.

    Subclasses declare, per check key:
      TITLES      — display name
      SEVERITIES  — severity
      DEDUCTIONS  — points off the health score per occurrence
    """

    name: str = "base"
    report: str = "general"
    description: str = "Base analyzer"

    TITLES: dict[str, str] = {}
    SEVERITIES: dict[str, str] = {}
    DEDUCTIONS: dict[str, float] = {}

    def __init__(self, config=None):
        self.config = config
        self.findings: list[Finding] = []
        self._finding_counter = 0

    def analyze(self, data: dict[str, Any]) -> list[Finding]:
        """
        Execute analysis and return findings.
        Subclasses implement _analyze() with specific logic.
        """
        self.findings = []
        self._finding_counter = 0

        try:
            self._analyze(data)
        except Exception as e:
            logger.exception(f"[{self.name}] Analysis failed: {e}")
            self.findings.append(Finding(
                id=f"{self.report.upper()[:3]}-ERR",
                report=self.report,
                check="analyzer_error",
                title=f"{self.name} analysis error",
                severity="informational",
                detail=f"Analysis module {self.name} failed to complete: {e}",
                evidence={"error": str(e)},
            ))

        logger.info(f"[{self.name}] Analysis complete — {len(self.findings)} findings")
        return self.findings

    @abstractmethod
    def _analyze(self, data: dict[str, Any]):
        """Implement analysis logic. Add findings via self.add_finding()."""
        raise NotImplementedError

    def add_finding(self, check: str, subject: str = "", **kwargs) -> Finding:
        """Create and register a finding scored from the analyzer's tables."""
        self._finding_counter += 1
        finding = Finding(
            id=kwargs.pop("id", f"{self.report.upper()[:3]}-{self._finding_counter:03d}"),
            report=self.report,
            check=check,
            title=kwargs.pop("title", self.TITLES.get(check, check)),
            subject=subject,
            severity=self.SEVERITIES.get(check, "medium"),
            deduction=self.DEDUCTIONS.get(check, 0.0),
            **kwargs,
        )
        self.findings.append(finding)
        return finding

    def setting(self, name: str, default):
        """Read a CollectionConfig threshold, falling back when run without config."""
        return getattr(self.config, name, default) if self.config is not None else default

