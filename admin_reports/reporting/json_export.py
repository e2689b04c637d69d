"""
JSON exporter — Produces the full JSON dump of a report run.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .. import __mode__, __version__


def export_json(
    result: Any,
    all_findings: list,
    health: Any,
    output_dir: Path,
    run_id: str,
    title: str = "",
    tenant_name: str = "",
) -> Path:
    """
    Write the report's datasets, findings and health score to a JSON file.

    Returns:
        Path to the created JSON file.
    """
    output_dir.mkdir(parents=True, exist_ok=True)

    payload = {
        "metadata": {
            "tool": "admin-reports",
            "version": __version__,
            "report": result.collector_name,
            "title": title,
            "tenant": tenant_name,
            "run_id": run_id,
            "generated_utc": datetime.now(timezone.utc).isoformat(),
            "mode": __mode__,
        },
        "health": health.to_dict(),
        "findings": [f.to_dict() for f in all_findings],
        "datasets": result.datasets(),
        "collection": result.metadata,
    }

    filepath = output_dir / f"{result.collector_name}_{run_id}.json"

    with open(filepath, "w", encoding="utf-8") as fh:
        json.dump(payload, fh, indent=2, default=str, ensure_ascii=False)

    return filepath
