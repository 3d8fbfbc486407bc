"""Artifact export: turn stored results into downloadable files."""

import json
import os

from core.state import Framework

# kind -> (results slot, filename or None for framework-specific, mimetype)
ARTIFACT_KINDS = {
    "summary": ("summary", "summary.md", "text/markdown"),
    "prd": ("prd", "prd.json", "application/json"),
    "test-plan": ("test_plan", "test-plan.json", "application/json"),
    "test-code": ("test_code", None, "text/javascript"),
}


def serialize(value):
    """Text slots are written as-is; JSON slots with 2-space indentation."""
    if isinstance(value, str):
        return value
    return json.dumps(value, indent=2, ensure_ascii=False)


def export_artifact(results, kind, framework=Framework.PLAYWRIGHT):
    """Return (filename, content, mimetype) for one artifact.

    Raises:
        KeyError: unknown kind.
        LookupError: the slot has not been produced yet.
    """
    if kind not in ARTIFACT_KINDS:
        raise KeyError(f"Unknown artifact '{kind}'. Choose one of: {', '.join(ARTIFACT_KINDS)}")
    slot, filename, mimetype = ARTIFACT_KINDS[kind]
    value = getattr(results, slot)
    if value is None:
        raise LookupError(f"Artifact '{kind}' has not been generated yet")
    if filename is None:
        filename = Framework.parse(framework).filename
    return filename, serialize(value), mimetype


def write_artifacts(state, output_dir):
    """Write every populated artifact into output_dir. Returns written names."""
    os.makedirs(output_dir, exist_ok=True)
    written = []
    for kind, (slot, _, _) in ARTIFACT_KINDS.items():
        if getattr(state.results, slot) is None:
            continue
        filename, content, _ = export_artifact(state.results, kind, state.framework)
        with open(os.path.join(output_dir, filename), "w", encoding="utf-8") as fp:
            fp.write(content)
        written.append(filename)
    return written
