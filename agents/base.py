"""Abstract base class for the four pipeline stage agents."""

import logging
from abc import ABC, abstractmethod

from config.schemas import validate_artifact
from utils.llm import parse_json_response

logger = logging.getLogger(__name__)


class StageAgent(ABC):
    """One stage of the autopilot: prompt in, artifact out.

    Agents never write session state. The orchestrator hands them the state
    to read the previous artifact from and stores whatever `run` returns.
    """

    name = "base"
    stage = None        # core.state.Stage this agent runs under
    slot = ""           # StageResults attribute it fills
    schema = None       # set for structured-output stages

    @abstractmethod
    def build_prompt(self, state):
        """Render this stage's prompt from the artifacts already in `state`."""

    def run(self, client, state):
        """Call the model and post-process its reply into an artifact."""
        prompt = self.build_prompt(state)
        if self.schema is not None:
            raw = client.complete_structured(prompt, self.schema)
        else:
            raw = client.complete(prompt)
        return self.postprocess(raw)

    def postprocess(self, raw):
        return raw

    def review(self, artifact):
        """Advisory findings about a stored artifact. Never fails the run."""
        return []


class StructuredStageAgent(StageAgent):
    """Stage whose reply must parse as JSON and match `schema`."""

    def postprocess(self, raw):
        data = parse_json_response(raw)
        return validate_artifact(data, self.schema, name=self.name, raw_text=raw)
