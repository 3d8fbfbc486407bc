"""Template engine using string.Template for safe rendering."""

import os
from functools import lru_cache
from string import Template


def get_templates_dir():
    """Return the absolute path to the prompt templates directory."""
    return os.path.join(os.path.dirname(os.path.dirname(__file__)), "agents", "prompts")


@lru_cache(maxsize=None)
def load_template(template_name):
    """Load a template file and return its contents as a string.

    Templates are read once per process; rendering afterwards does no I/O.
    """
    templates_dir = get_templates_dir()
    path = os.path.join(templates_dir, template_name)
    resolved = os.path.realpath(path)
    if not resolved.startswith(os.path.realpath(templates_dir) + os.sep):
        raise ValueError(f"Template path escapes templates directory: {template_name}")
    with open(resolved, "r", encoding="utf-8") as f:
        return f.read()


def render_template(template_name, variables):
    """Load and render a template with the given variables.

    Uses string.Template for safe substitution - unknown placeholders
    are left as-is rather than raising errors.
    """
    tmpl = Template(load_template(template_name))
    return tmpl.safe_substitute(variables)
