"""Write a finished (or failed) council run to disk."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import config
from schemas.council import PipelineState

logger = logging.getLogger(__name__)

ARTIFACT_NAMES = (
    "brand_profile.json",
    "personas.json",
    "judgments.json",
    "metrics.json",
    "report.md",
)


def _dump(items: list[Any]) -> str:
    return json.dumps(
        [item.model_dump(mode="json", by_alias=True, exclude_none=True) for item in items],
        indent=2,
        ensure_ascii=False,
    )


def write_run_artifacts(state: PipelineState, output_dir: Path | None = None) -> list[Path]:
    """Save whatever the run committed. Returns the paths written.

    Only artifacts that exist are written, so a run that failed in Judge
    still leaves its brand profile and personas behind. Artifacts from an
    earlier run that this run did not produce are removed, so the folder
    never mixes two runs.
    """
    output_dir = Path(output_dir or config.OUTPUT_DIR)
    output_dir.mkdir(parents=True, exist_ok=True)

    files: dict[str, str] = {}
    if state.brand_profile is not None:
        files["brand_profile.json"] = state.brand_profile.model_dump_json(
            indent=2, by_alias=True
        )
    if state.personas:
        files["personas.json"] = _dump(state.personas)
    if state.judgments:
        files["judgments.json"] = _dump(state.judgments)
    if state.metrics is not None:
        files["metrics.json"] = state.metrics.model_dump_json(indent=2)
    if state.final_report_text:
        files["report.md"] = state.final_report_text + "\n"

    written = []
    for name, text in files.items():
        path = output_dir / name
        path.write_text(text, encoding="utf-8")
        written.append(path)
    for name in ARTIFACT_NAMES:
        stale = output_dir / name
        if name not in files and stale.exists():
            stale.unlink()
            logger.debug("Removed stale artifact %s", stale)
    logger.info("Saved %d artifact(s) to %s", len(written), output_dir)
    return written
