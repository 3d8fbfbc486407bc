"""Error taxonomy for the autopilot pipeline."""


class PipelineError(Exception):
    """Base class for every error the pipeline reports to the user."""


class ConfigError(PipelineError, RuntimeError):
    """Startup configuration is unusable (e.g. no API key). Fatal."""


class InputError(PipelineError, ValueError):
    """Run preconditions not met. Raised before any state transition."""


class RunInProgressError(PipelineError):
    """A run is already active for this session."""


class ClientError(PipelineError):
    """The model API call failed (network, auth, quota, timeout)."""


class SchemaParseError(PipelineError):
    """A structured stage returned text that is not valid JSON."""

    def __init__(self, message, raw_text=""):
        super().__init__(message)
        self.raw_text = raw_text


class SchemaViolationError(PipelineError):
    """Parsed JSON does not match the stage's schema."""

    def __init__(self, message, raw_text="", path=""):
        super().__init__(message)
        self.raw_text = raw_text
        self.path = path


class PostProcessError(PipelineError):
    """Trimming or transforming free-text output failed."""
