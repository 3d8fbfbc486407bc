"""Summarizer agent — prose overview of the uploaded project."""

from agents.base import StageAgent
from core.prompts import build_summary_prompt
from core.state import Stage


class SummarizerAgent(StageAgent):
    """Summarizes purpose, architecture and technologies as markdown."""

    name = "summarizer"
    stage = Stage.SUMMARIZING
    slot = "summary"

    def build_prompt(self, state):
        return build_summary_prompt(state.files)
