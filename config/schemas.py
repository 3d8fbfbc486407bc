"""Structural schemas for the structured-output stages.

Both schemas are plain JSON Schema (draft 7). They are embedded in the
prompt as a constraint for the model and checked again with jsonschema
after the response is parsed.
"""

from collections import Counter

from jsonschema import Draft7Validator
from jsonschema.exceptions import best_match

from core.errors import SchemaViolationError

PRIORITIES = ["Low", "Medium", "High", "Critical"]


def _string(description):
    return {"type": "string", "description": description}


def _id_item(id_hint, description):
    return {
        "type": "object",
        "properties": {
            "id": _string(f"A unique identifier, e.g., '{id_hint}'."),
            "description": _string(description),
        },
        "required": ["id", "description"],
    }


REQUIREMENTS_SCHEMA = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "title": "NormalizedRequirementsDocument",
    "type": "object",
    "properties": {
        "app_name": _string("The name of the application."),
        "overview": _string("A brief description of the application's purpose."),
        "goals": {
            "type": "array",
            "items": _id_item("G001", "A description of the goal."),
        },
        "user_stories": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "id": _string("A unique identifier for the user story, e.g., 'US001'."),
                    "as_a": _string("The user persona."),
                    "i_want": _string("The user's need or action."),
                    "so_that": _string("The benefit or reason for the need."),
                },
                "required": ["id", "as_a", "i_want", "so_that"],
            },
        },
        "functional_requirements": {
            "type": "array",
            "items": _id_item("FR001", "A detailed description of the functional requirement."),
        },
        "non_functional_requirements": {
            "type": "object",
            "properties": {
                "performance": _string("Performance-related requirements."),
                "security": _string("Security-related requirements."),
                "usability": _string("Usability-related requirements."),
                "reliability": _string("Reliability-related requirements."),
            },
        },
    },
    "required": ["app_name", "overview", "goals", "user_stories", "functional_requirements"],
}

TEST_CASE_FIELDS = ["id", "title", "description", "category", "priority", "steps", "expected_result"]

TEST_PLAN_SCHEMA = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "title": "TestPlan",
    "type": "object",
    "properties": {
        "project_name": _string("The name of the project being tested."),
        "test_plan_version": _string("The version of this test plan, e.g., '1.0'."),
        "test_cases": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "id": _string("A unique identifier for the test case, e.g., 'TC001'."),
                    "title": _string("A concise title for the test case."),
                    "description": _string("A brief description of what this test case covers."),
                    "category": _string(
                        "The category of the test, e.g., 'Functional', 'UI/UX', 'Security'."
                    ),
                    "priority": {
                        "type": "string",
                        "enum": PRIORITIES,
                        "description": "The priority of the test case.",
                    },
                    "steps": {
                        "type": "array",
                        "items": {"type": "string"},
                        "description": "A list of steps to execute the test.",
                    },
                    "expected_result": _string("The expected outcome after executing the steps."),
                },
                "required": TEST_CASE_FIELDS,
            },
        },
    },
    "required": ["project_name", "test_plan_version", "test_cases"],
}

SCHEMAS = {
    "requirements": REQUIREMENTS_SCHEMA,
    "test_plan": TEST_PLAN_SCHEMA,
}


def validate_artifact(data, schema, name="artifact", raw_text=""):
    """Raise SchemaViolationError if `data` does not match `schema`.

    The message names the first failing location, e.g.
    "test_cases/0: 'steps' is a required property".
    """
    first = best_match(Draft7Validator(schema).iter_errors(data))
    if first is None:
        return data
    path = "/".join(str(p) for p in first.absolute_path) or "<root>"
    raise SchemaViolationError(
        f"{name} does not match schema at {path}: {first.message}",
        raw_text=raw_text,
        path=path,
    )


def find_duplicate_ids(items):
    """Return ids that appear more than once, in first-seen order."""
    counts = Counter(item.get("id") for item in items if isinstance(item, dict))
    return [i for i, n in counts.items() if i is not None and n > 1]


def requirements_id_warnings(prd):
    """Advisory duplicate-id findings for a requirements document."""
    warnings = []
    for key in ("goals", "user_stories", "functional_requirements"):
        for dup in find_duplicate_ids(prd.get(key, [])):
            warnings.append(f"Duplicate id '{dup}' in {key}")
    return warnings


def plan_id_warnings(plan):
    """Advisory duplicate-id findings for a test plan."""
    return [
        f"Duplicate id '{dup}' in test_cases"
        for dup in find_duplicate_ids(plan.get("test_cases", []))
    ]
