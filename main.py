#!/usr/bin/env python3
"""QA Autopilot - code summary, PRD, test plan and test code from a project.

Usage:
    python main.py run ./my-app                                   # playwright by default
    python main.py run ./my-app --framework jest --out results/
    python main.py run ./my-app --prd requirements.txt --verbose
    python main.py schemas                                        # print both JSON schemas
"""

import argparse
import json
import logging
import sys

from config.schemas import SCHEMAS
from config.settings import Settings
from core.artifacts import write_artifacts
from core.errors import ConfigError, InputError
from core.orchestrator import Orchestrator
from core.state import Framework, PipelineState, Stage
from utils.project_files import collect_directory

_STAGE_LABELS = {
    Stage.SUMMARIZING: "Generating Code Summary",
    Stage.GENERATING_PRD: "Generating Normalized PRD",
    Stage.GENERATING_TEST_PLAN: "Generating Test Plan",
    Stage.GENERATING_TEST_CODE: "Generating Test Code",
    Stage.DONE: "Done",
}


def _print_stage(state):
    label = _STAGE_LABELS.get(state.stage, state.stage.value)
    print(f"[{state.stage.value}] {label}...")


def _read_seed(path):
    if not path:
        return None
    with open(path, encoding="utf-8") as f:
        return f.read()


def cmd_run(args):
    """Run all four stages against a local project directory."""
    try:
        settings = Settings.from_env()
    except ConfigError as e:
        print(str(e), file=sys.stderr)
        return 2

    try:
        files, skipped = collect_directory(args.project)
    except ValueError as e:
        print(str(e), file=sys.stderr)
        return 2

    print(f"Collected {len(files)} file(s) from {args.project}")
    if skipped and args.verbose:
        for path in skipped:
            print(f"  skipped {path}")

    try:
        seed = _read_seed(args.prd)
    except OSError as e:
        print(f"Cannot read requirements file: {e}", file=sys.stderr)
        return 2

    orchestrator = Orchestrator(settings=settings)
    state = PipelineState(framework=Framework.parse(args.framework))
    try:
        orchestrator.run_autopilot(
            state,
            files=files,
            seed_requirements=seed,
            on_stage=_print_stage,
        )
    except InputError as e:
        print(f"Please upload project files before starting ({e}).", file=sys.stderr)
        return 2

    written = write_artifacts(state, args.out)
    if written:
        print(f"\nWrote {len(written)} artifact(s) to {args.out}:")
        for name in written:
            print(f"  {name}")

    for warning in state.warnings:
        print(f"  [WARN] {warning}")

    if state.error:
        print(f"\n{state.error}", file=sys.stderr)
        return 1

    if args.verbose and state.results.test_plan:
        cases = state.results.test_plan.get("test_cases", [])
        print(f"\nTest plan: {len(cases)} test case(s)")
        for case in cases:
            print(f"  {case['id']} [{case['priority']}] {case['title']}")
    return 0


def cmd_schemas(args):
    print(json.dumps(SCHEMAS, indent=2))
    return 0


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="qa-autopilot",
        description="Generate a summary, PRD, test plan and test code for a project",
    )
    parser.add_argument("--log-level", default="WARNING",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    subparsers = parser.add_subparsers(dest="command")

    run_parser = subparsers.add_parser("run", help="Run the four-stage autopilot")
    run_parser.add_argument("project", help="Project directory to analyze")
    run_parser.add_argument("--framework", choices=[f.value for f in Framework],
                            default="playwright", help="Test framework (default: playwright)")
    run_parser.add_argument("--prd", help="Optional file with initial requirements")
    run_parser.add_argument("--out", default="autopilot_output",
                            help="Directory for generated artifacts")
    run_parser.add_argument("--verbose", action="store_true",
                            help="Show skipped files and the test case list")

    subparsers.add_parser("schemas", help="Print the JSON schemas for structured stages")

    args = parser.parse_args(argv)
    logging.basicConfig(level=args.log_level, format="%(levelname)s %(name)s: %(message)s")

    if args.command == "run":
        return cmd_run(args)
    if args.command == "schemas":
        return cmd_schemas(args)
    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
