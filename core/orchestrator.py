"""Main pipeline orchestrator — four-stage state machine with failure isolation."""

import logging
import threading

from agents.prd_writer import PrdWriterAgent
from agents.summarizer import SummarizerAgent
from agents.test_coder import TestCoderAgent
from agents.test_planner import TestPlannerAgent
from config.settings import Settings
from core.errors import (
    InputError,
    PipelineError,
    RunInProgressError,
    SchemaParseError,
    SchemaViolationError,
)
from core.state import Framework, Stage
from utils.llm import ModelClient

logger = logging.getLogger(__name__)


class Orchestrator:
    """Runs the chain: summarize → PRD → test plan → test code.

    Each stage reads only the artifact the previous stage stored. A failure
    stops the run at that stage; artifacts stored before it stay readable.
    The orchestrator is the only writer of a PipelineState while it is busy.
    """

    def __init__(self, client=None, settings=None):
        self._client = client
        self._settings = settings
        self._guard = threading.Lock()
        self.agents = [
            SummarizerAgent(),
            PrdWriterAgent(),
            TestPlannerAgent(),
            TestCoderAgent(),
        ]

    @property
    def client(self):
        """Model client, built from the environment on first use."""
        if self._client is None:
            self._client = ModelClient(self._settings or Settings.from_env())
        return self._client

    def configure(self, settings):
        """Bind the process-wide settings and build the client eagerly."""
        self._settings = settings
        self._client = ModelClient(settings)

    def start_run(self, state, files=None, seed_requirements=None, framework=None):
        """Validate inputs and claim the session for a new run.

        New files or seed text reset the session first. Returns the run id
        the caller must pass to execute_run().

        Raises:
            InputError: no files; the state is left untouched.
            RunInProgressError: the session is already busy.
        """
        if framework is not None:
            framework = Framework.parse(framework)

        with self._guard:
            if state.busy:
                raise RunInProgressError("A run is already in progress for this session.")
            if not (state.files if files is None else files):
                raise InputError("no files uploaded")
            self._apply_inputs(state, files, seed_requirements, framework)

            state.busy = True
            state.error = None
            state.warnings = []
            state.results.clear()
            state.run_id += 1
            return state.run_id

    def update_inputs(self, state, files=None, seed_requirements=None, framework=None):
        """Change the inputs of an idle session.

        Fields left as None keep their current value. New files or seed text
        discard previous results; a framework alone does not.

        Raises:
            RunInProgressError: the session is busy.
        """
        if framework is not None:
            framework = Framework.parse(framework)

        with self._guard:
            if state.busy:
                raise RunInProgressError("A run is in progress for this session.")
            self._apply_inputs(state, files, seed_requirements, framework)
        return state

    def execute_run(self, state, run_id, on_stage=None, raise_errors=False):
        """Drive all four stages for a run claimed by start_run().

        Every write to the state happens under the guard and only while
        `run_id` is still current, so a cancelled run never touches it again.
        """
        logger.info("Run %d started (%d files, framework=%s)",
                    run_id, len(state.files), state.framework.value)

        for agent in self.agents:
            with self._guard:
                if state.run_id != run_id:
                    return state
                state.stage = agent.stage
            if on_stage:
                on_stage(state)
            logger.info("Run %d: %s", run_id, agent.stage.value)

            try:
                artifact = agent.run(self.client, state)
            except PipelineError as e:
                if self._fail(state, run_id, agent.stage, e) and raise_errors:
                    raise
                return state
            except Exception as e:
                self._fail(state, run_id, agent.stage, e)
                raise

            warnings = agent.review(artifact)
            with self._guard:
                if state.run_id != run_id:
                    logger.info("Run %d superseded; dropping %s result", run_id, agent.slot)
                    return state
                setattr(state.results, agent.slot, artifact)
                state.warnings.extend(warnings)
            for warning in warnings:
                logger.warning("Run %d: %s", run_id, warning)

        with self._guard:
            if state.run_id != run_id:
                return state
            state.stage = Stage.DONE
            state.busy = False
        if on_stage:
            on_stage(state)
        logger.info("Run %d finished", run_id)
        return state

    def run_autopilot(self, state, files=None, seed_requirements=None, framework=None,
                      on_stage=None, raise_errors=False):
        """Run the whole pipeline synchronously.

        Args:
            state: PipelineState owned by this session.
            files: Optional new file set (resets the session).
            seed_requirements: Optional free text merged into the PRD stage.
            framework: Optional framework override.
            on_stage: Callback(state) invoked on every stage transition.
            raise_errors: Re-raise the stage error after recording it.

        Returns:
            The same PipelineState, either DONE or IDLE with `error` set.
        """
        run_id = self.start_run(state, files, seed_requirements, framework)
        return self.execute_run(state, run_id, on_stage=on_stage, raise_errors=raise_errors)

    def cancel(self, state):
        """Abandon the active run. A late response for it is ignored."""
        with self._guard:
            if not state.busy:
                return False
            logger.info("Run %d cancelled", state.run_id)
            state.run_id += 1
            state.busy = False
            state.stage = Stage.IDLE
            state.error = "Run cancelled"
            return True

    def _apply_inputs(self, state, files, seed_requirements, framework):
        # Caller holds _guard
        if files is not None or seed_requirements is not None:
            state.reset_inputs(
                state.files if files is None else files,
                state.seed_requirements if seed_requirements is None else (seed_requirements or None),
            )
        if framework is not None:
            state.framework = framework

    def _fail(self, state, run_id, stage, error):
        """Record a stage failure. Returns False if the run was superseded."""
        with self._guard:
            if state.run_id != run_id:
                logger.info("Run %d superseded; dropping failure: %s", run_id, error)
                return False

            if isinstance(error, (SchemaParseError, SchemaViolationError)):
                logger.error("%s at %s: %s\nRaw response:\n%s",
                             type(error).__name__, stage.value, error, error.raw_text)
            elif isinstance(error, PipelineError):
                logger.error("%s at %s: %s", type(error).__name__, stage.value, error)
            else:
                logger.exception("Unexpected error at %s", stage.value)

            message = str(error) or "An unknown error occurred."
            state.error = f"Failed at step {stage.value}: {message}"
            state.stage = Stage.IDLE
            state.busy = False
            return True
