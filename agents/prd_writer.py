"""PRD writer agent — normalized requirements document from the summary."""

from agents.base import StructuredStageAgent
from config.schemas import REQUIREMENTS_SCHEMA, requirements_id_warnings
from core.prompts import build_requirements_prompt
from core.state import Stage


class PrdWriterAgent(StructuredStageAgent):
    """Turns the code summary (plus optional seed requirements) into a PRD.

    Seed requirements are consumed here and nowhere else.
    """

    name = "prd_writer"
    stage = Stage.GENERATING_PRD
    slot = "prd"
    schema = REQUIREMENTS_SCHEMA

    def build_prompt(self, state):
        return build_requirements_prompt(state.results.summary, state.seed_requirements)

    def review(self, artifact):
        return requirements_id_warnings(artifact)
