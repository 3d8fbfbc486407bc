"""Prompt builders — render the instruction text for each stage.

Every function here is deterministic: the same inputs always give the same
prompt. Nothing calls the model or touches session state.
"""

import json

from config.defaults import DEFAULTS
from core.state import Framework
from utils.template_engine import render_template

NO_SEED_REQUIREMENTS = "None provided. Generate the PRD based solely on the code summary."


def format_files(files):
    """Concatenate files as delimited blocks, preserving their order."""
    return "".join(f"--- FILE: {f.path} ---\n\n{f.content}\n\n" for f in files)


def pretty_json(data):
    return json.dumps(data, indent=2, ensure_ascii=False)


def build_summary_prompt(files):
    # An empty sequence still renders; the orchestrator rejects it earlier.
    return render_template("summary.txt", {"files": format_files(files)})


def build_requirements_prompt(summary, seed_requirements=None):
    seed = seed_requirements if seed_requirements and seed_requirements.strip() else None
    return render_template("requirements.txt", {
        "summary": summary,
        "seed_requirements": seed or NO_SEED_REQUIREMENTS,
    })


def build_test_plan_prompt(summary, prd):
    return render_template("test_plan.txt", {
        "summary": summary,
        "prd": pretty_json(prd),
    })


def build_test_code_prompt(test_plan, framework):
    framework = Framework.parse(framework)
    return render_template("test_code.txt", {
        "framework": framework.display_name,
        "app_origin": DEFAULTS["app_origin"],
        "filename": framework.filename,
        "test_plan": pretty_json(test_plan),
    })


def build_structured_system_prompt(schema):
    """System instruction that pins a structured stage to `schema`."""
    return render_template("structured_system.txt", {"schema": pretty_json(schema)})
