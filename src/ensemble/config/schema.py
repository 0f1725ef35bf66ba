"""Configuration schema using Pydantic."""

from pathlib import Path

from pydantic import BaseModel, Field, field_validator

from ensemble.config.defaults import (
    DEFAULT_CONSENSUS_THRESHOLD,
    DEFAULT_DETECTION_MODEL,
    DEFAULT_MAX_ITERATIONS,
    DEFAULT_MAX_ROUNDS,
    DEFAULT_MAX_TOKENS,
    DEFAULT_MAX_TOOL_RETRIES,
    DEFAULT_MAX_TURNS,
    DEFAULT_ROLE,
    DEFAULT_ROUTING_KEYWORDS,
    DEFAULT_TEMPERATURE,
)
from ensemble.specialists.roles import AgentRole, Capability

TASK_PRESETS = ("default", "read_only", "permissive")


def _check_role(name: str) -> str:
    AgentRole.parse(name)
    return name.lower()


class GlobalConfig(BaseModel):
    """Global ensemble configuration."""

    color: bool = True
    verbose: bool = False


class ModelConfig(BaseModel):
    """Which model backs the specialists."""

    provider: str | None = None  # anthropic, openai, echo; None picks from available keys
    model: str = DEFAULT_DETECTION_MODEL
    max_tokens: int = Field(default=DEFAULT_MAX_TOKENS, gt=0)
    timeout_seconds: float = Field(default=120.0, gt=0)


class RoleOverride(BaseModel):
    """Per-role tweaks applied on top of the built-in profile."""

    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    system_prompt: str | None = None
    extra_capabilities: list[str] = Field(default_factory=list)

    @field_validator("extra_capabilities")
    @classmethod
    def _known_capabilities(cls, value: list[str]) -> list[str]:
        return [Capability.parse(name).value for name in value]


class SpecialistsConfig(BaseModel):
    """Specialist invocation defaults."""

    default_temperature: float = Field(default=DEFAULT_TEMPERATURE, ge=0.0, le=2.0)
    roles: dict[str, RoleOverride] = Field(default_factory=dict)

    @field_validator("roles")
    @classmethod
    def _known_roles(cls, value: dict[str, RoleOverride]) -> dict[str, RoleOverride]:
        return {_check_role(name): override for name, override in value.items()}


class RoutingConfig(BaseModel):
    """Keyword routing for specialist suggestion."""

    keywords: dict[str, list[str]] = Field(
        default_factory=lambda: {role: list(stems) for role, stems in DEFAULT_ROUTING_KEYWORDS.items()}
    )
    default_role: str = DEFAULT_ROLE

    @field_validator("keywords")
    @classmethod
    def _known_keyword_roles(cls, value: dict[str, list[str]]) -> dict[str, list[str]]:
        return {_check_role(name): stems for name, stems in value.items()}

    @field_validator("default_role")
    @classmethod
    def _known_default_role(cls, value: str) -> str:
        return _check_role(value)


class CollaborationConfig(BaseModel):
    """Collaboration session defaults."""

    max_turns: int = Field(default=DEFAULT_MAX_TURNS, gt=0)
    max_rounds: int = Field(default=DEFAULT_MAX_ROUNDS, gt=0)
    consensus_threshold: float = Field(default=DEFAULT_CONSENSUS_THRESHOLD, ge=0.0, le=1.0)


class ReviewConfig(BaseModel):
    """Implement/review loop configuration."""

    max_iterations: int = Field(default=DEFAULT_MAX_ITERATIONS, ge=1)


class TasksConfig(BaseModel):
    """Autonomous task defaults."""

    preset: str = "default"
    max_tool_retries: int = Field(default=DEFAULT_MAX_TOOL_RETRIES, ge=0)

    @field_validator("preset")
    @classmethod
    def _known_preset(cls, value: str) -> str:
        if value not in TASK_PRESETS:
            raise ValueError(f"Unknown task preset: {value}")
        return value


class EnsembleConfig(BaseModel):
    """Root configuration model for ensemble."""

    global_: GlobalConfig = Field(default_factory=GlobalConfig, alias="global")
    model: ModelConfig = Field(default_factory=ModelConfig)
    specialists: SpecialistsConfig = Field(default_factory=SpecialistsConfig)
    routing: RoutingConfig = Field(default_factory=RoutingConfig)
    collaboration: CollaborationConfig = Field(default_factory=CollaborationConfig)
    review: ReviewConfig = Field(default_factory=ReviewConfig)
    tasks: TasksConfig = Field(default_factory=TasksConfig)

    class Config:
        populate_by_name = True

    @classmethod
    def default(cls) -> "EnsembleConfig":
        """Create default configuration."""
        return cls()

    def get_role_override(self, role: AgentRole) -> RoleOverride:
        """Get overrides for a specific role."""
        return self.specialists.roles.get(role.value, RoleOverride())


def get_config_dir() -> Path:
    """Get the configuration directory path."""
    config_dir = Path.home() / ".config" / "ensemble"
    config_dir.mkdir(parents=True, exist_ok=True)
    return config_dir


def get_config_file() -> Path:
    """Get the main configuration file path."""
    return get_config_dir() / "config.toml"
