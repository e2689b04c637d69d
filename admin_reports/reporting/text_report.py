"""
Plain-text summary — The short report an operator pastes into a ticket or mail.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, select_autoescape

from ..analyzers.base import SEVERITY_ORDER

TEMPLATE_DIR = Path(__file__).parent / "templates"
TEMPLATE_NAME = "summary.txt.j2"


def _render(**context) -> str:
    env = Environment(
        loader=FileSystemLoader(str(TEMPLATE_DIR)),
        autoescape=select_autoescape([]),
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=True,
    )
    return env.get_template(TEMPLATE_NAME).render(**context)


def export_text(
    result: Any,
    all_findings: list,
    health: Any,
    output_dir: Path,
    run_id: str,
    title: str = "",
    tenant_name: str = "",
    files: list[Path] | None = None,
) -> Path:
    """
    Render the text summary for one report run.
    """
    output_dir.mkdir(parents=True, exist_ok=True)
    filepath = output_dir / f"summary_{run_id}.txt"

    rank = {sev: i for i, sev in enumerate(SEVERITY_ORDER)}
    ordered = sorted(
        all_findings,
        key=lambda f: (rank.get(f.severity, len(rank)), -f.deduction, f.subject),
    )

    content = _render(
        title=title or result.collector_name,
        tenant_name=tenant_name,
        run_id=run_id,
        generated_utc=datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC"),
        health=health,
        datasets={name: len(rows) for name, rows in result.datasets().items()},
        metadata=result.metadata,
        findings=ordered,
        files=[Path(p).name for p in files or []],
    )

    with open(filepath, "w", encoding="utf-8") as fh:
        fh.write(content)

    return filepath
