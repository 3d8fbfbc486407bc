"""Pipeline state models shared across all stages."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum


class Stage(str, Enum):
    IDLE = "IDLE"
    SUMMARIZING = "SUMMARIZING"
    GENERATING_PRD = "GENERATING_PRD"
    GENERATING_TEST_PLAN = "GENERATING_TEST_PLAN"
    GENERATING_TEST_CODE = "GENERATING_TEST_CODE"
    DONE = "DONE"


# Working stages in execution order
STAGE_ORDER = [
    Stage.SUMMARIZING,
    Stage.GENERATING_PRD,
    Stage.GENERATING_TEST_PLAN,
    Stage.GENERATING_TEST_CODE,
]


class Framework(str, Enum):
    PLAYWRIGHT = "playwright"
    CYPRESS = "cypress"
    JEST = "jest"

    @property
    def display_name(self):
        return self.value.capitalize()

    @property
    def filename(self):
        """Download name for generated test code."""
        return {
            Framework.PLAYWRIGHT: "test-code.spec.js",
            Framework.CYPRESS: "test-code.cy.js",
            Framework.JEST: "test-code.test.js",
        }[self]

    @classmethod
    def parse(cls, value):
        """Accept a Framework or a case-insensitive name."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            choices = ", ".join(f.value for f in cls)
            raise ValueError(f"Unknown framework '{value}'. Choose one of: {choices}") from None


@dataclass(frozen=True)
class UploadedFile:
    path: str           # relative path e.g. "src/App.tsx"
    content: str


@dataclass
class StageResults:
    summary: str | None = None
    prd: dict | None = None
    test_plan: dict | None = None
    test_code: str | None = None

    # Slot names in stage order
    SLOTS = ("summary", "prd", "test_plan", "test_code")

    def clear(self):
        for slot in self.SLOTS:
            setattr(self, slot, None)

    def populated(self):
        """Names of the slots holding an artifact."""
        return [slot for slot in self.SLOTS if getattr(self, slot) is not None]

    def has_any(self):
        return bool(self.populated())


@dataclass
class PipelineState:
    files: list[UploadedFile] = field(default_factory=list)
    seed_requirements: str | None = None
    framework: Framework = Framework.PLAYWRIGHT
    stage: Stage = Stage.IDLE
    results: StageResults = field(default_factory=StageResults)
    error: str | None = None
    busy: bool = False
    run_id: int = 0                     # bumped on every run start and cancel
    warnings: list[str] = field(default_factory=list)

    def reset_inputs(self, files, seed_requirements=None):
        """Swap in new inputs. Previous results and errors are discarded."""
        self.files = list(files)
        self.seed_requirements = seed_requirements
        self.results.clear()
        self.warnings = []
        self.error = None
        self.stage = Stage.IDLE

    def to_dict(self):
        """Serialize to a JSON-safe dict for the presentation layer."""
        return {
            "stage": self.stage.value,
            "busy": self.busy,
            "error": self.error,
            "framework": self.framework.value,
            "seed_requirements": self.seed_requirements,
            "files": [f.path for f in self.files],
            "results": asdict(self.results),
            "warnings": list(self.warnings),
            "run_id": self.run_id,
        }
