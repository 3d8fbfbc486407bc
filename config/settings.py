"""Process-wide configuration, built once at startup."""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

from config.defaults import DEFAULTS
from core.errors import ConfigError


@dataclass(frozen=True)
class Settings:
    api_key: str
    model: str = DEFAULTS["model"]
    max_tokens: int = DEFAULTS["max_tokens"]
    timeout: float = DEFAULTS["request_timeout"]

    @classmethod
    def from_env(cls, env=None, dotenv=True):
        """Read settings from the environment (and `.env` when present).

        A missing ANTHROPIC_API_KEY is fatal: callers should let ConfigError
        stop the process rather than start serving requests.
        """
        if dotenv:
            load_dotenv()
        env = os.environ if env is None else env

        api_key = (env.get("ANTHROPIC_API_KEY") or "").strip()
        if not api_key:
            raise ConfigError(
                "ANTHROPIC_API_KEY environment variable is not set. "
                "Get a key at https://console.anthropic.com/ and run:\n"
                "  export ANTHROPIC_API_KEY='your-key-here'"
            )

        try:
            max_tokens = int(env.get("LLM_MAX_TOKENS") or DEFAULTS["max_tokens"])
            timeout = float(env.get("LLM_TIMEOUT_S") or DEFAULTS["request_timeout"])
        except ValueError as e:
            raise ConfigError(f"Invalid numeric setting: {e}") from e

        return cls(
            api_key=api_key,
            model=(env.get("LLM_MODEL") or DEFAULTS["model"]).strip(),
            max_tokens=max_tokens,
            timeout=timeout,
        )
