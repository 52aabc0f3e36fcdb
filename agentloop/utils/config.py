"""
Configuration Management
========================

All environment-driven settings live here. Values come from the process
environment, with a `.env` file loaded first through python-dotenv.

Nothing is required at import or load time: the runtime can be driven
entirely by test stubs. The OpenAI API key is only demanded when the
OpenAI-backed model client is constructed (see `require_openai_key`).

Usage:
    from agentloop.utils.config import get_config

    config = get_config()
    print(config.agent.max_tool_turns)
    print(config.refinement.threshold)
"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

from agentloop.utils.logger import Logger

logger = Logger("Config")


def _optional(name: str, default: str) -> str:
    """Read a string variable, falling back to `default` when unset."""
    return os.getenv(name, default)


def _optional_int(name: str, default: int) -> int:
    """Read an integer variable; invalid values fall back to `default`."""
    value = os.getenv(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning(f"{name} is not a valid integer, using default: {default}")
        return default


def _optional_float(name: str, default: float) -> float:
    """Read a float variable; invalid values fall back to `default`."""
    value = os.getenv(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning(f"{name} is not a valid number, using default: {default}")
        return default


# ==============================================================================
# Configuration Dataclasses
# ==============================================================================

@dataclass(frozen=True)
class OpenAIConfig:
    """OpenAI model client settings."""
    api_key: str | None      # sk-... API key
    model: str               # Chat completions model
    base_url: str | None     # Alternate OpenAI-compatible endpoint
    timeout_seconds: float   # Per-request timeout enforced by the client


@dataclass(frozen=True)
class AgentConfig:
    """Defaults for new Context instances."""
    max_tool_turns: int      # Model round trips allowed in one chat_with_tools
    system_prompt: str


@dataclass(frozen=True)
class RefinementConfig:
    """Defaults for the evaluator-optimizer workflow."""
    max_iterations: int
    threshold: float


@dataclass(frozen=True)
class ShellConfig:
    """Limits for the shell command tool."""
    timeout_seconds: float
    max_output_chars: int


@dataclass(frozen=True)
class Config:
    """
    Root configuration object.

        config = get_config()
        config.openai.model
        config.agent.max_tool_turns
        config.shell.timeout_seconds
    """
    openai: OpenAIConfig
    agent: AgentConfig
    refinement: RefinementConfig
    shell: ShellConfig
    log_level: str


def load_config() -> Config:
    """
    Load configuration from the environment.

    Loads `.env` (searching up from the working directory) and builds a
    fully typed Config with defaults for everything that is unset.
    """
    load_dotenv()

    return Config(
        openai=OpenAIConfig(
            api_key=os.getenv("OPENAI_API_KEY"),
            model=_optional("OPENAI_MODEL", "gpt-4o-mini"),
            base_url=os.getenv("OPENAI_BASE_URL"),
            timeout_seconds=_optional_float("OPENAI_TIMEOUT_SECONDS", 60.0),
        ),
        agent=AgentConfig(
            max_tool_turns=_optional_int("AGENT_MAX_TOOL_TURNS", 10),
            system_prompt=_optional("AGENT_SYSTEM_PROMPT", ""),
        ),
        refinement=RefinementConfig(
            max_iterations=_optional_int("REFINE_MAX_ITERATIONS", 3),
            threshold=_optional_float("REFINE_THRESHOLD", 0.8),
        ),
        shell=ShellConfig(
            timeout_seconds=_optional_float("SHELL_TIMEOUT_SECONDS", 30.0),
            max_output_chars=_optional_int("SHELL_MAX_OUTPUT_CHARS", 10000),
        ),
        log_level=_optional("LOG_LEVEL", "info"),
    )


_config_instance: Config | None = None


def get_config() -> Config:
    """Return the configuration, loading it on first access."""
    global _config_instance
    if _config_instance is None:
        _config_instance = load_config()
    return _config_instance


def require_openai_key(config: Config | None = None) -> str:
    """
    Return the OpenAI API key or fail with a clear message.

    Raises:
        ValueError: If OPENAI_API_KEY is not set
    """
    config = config or get_config()
    if not config.openai.api_key:
        raise ValueError(
            "Missing required environment variable: OPENAI_API_KEY\n"
            "Please ensure OPENAI_API_KEY is set in your .env file."
        )
    return config.openai.api_key
