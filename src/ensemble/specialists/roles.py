"""Specialist roles and the capabilities they are granted."""

from dataclasses import dataclass
from enum import Enum


class Capability(Enum):
    """Atomic permission a specialist may hold."""

    READ_CODE = "read_code"
    WRITE_CODE = "write_code"
    RUN_TESTS = "run_tests"
    ANALYZE_AST = "analyze_ast"
    SEARCH_CODEBASE = "search_codebase"
    EXECUTE_COMMANDS = "execute_commands"
    MODIFY_CONFIG = "modify_config"
    CREATE_FILES = "create_files"
    DELETE_FILES = "delete_files"
    ACCESS_MEMORY = "access_memory"
    DELEGATE_TASKS = "delegate_tasks"

    @property
    def display_name(self) -> str:
        return self.value.replace("_", " ").title()

    @property
    def is_modifying(self) -> bool:
        return self in MODIFYING

    @classmethod
    def parse(cls, name: str) -> "Capability":
        """Look up a capability by value or member name, case-insensitively."""
        key = name.strip().lower()
        for capability in cls:
            if capability.value == key:
                return capability
        raise ValueError(f"Unknown capability: {name}")


# Capabilities that change the codebase
MODIFYING = frozenset(
    {
        Capability.WRITE_CODE,
        Capability.CREATE_FILES,
        Capability.DELETE_FILES,
        Capability.MODIFY_CONFIG,
    }
)

# Pure analysis capabilities
READ_ONLY = frozenset(
    {
        Capability.READ_CODE,
        Capability.ANALYZE_AST,
        Capability.SEARCH_CODEBASE,
    }
)

REQUIRES_CONFIRMATION = frozenset({Capability.DELETE_FILES, Capability.EXECUTE_COMMANDS})


@dataclass(frozen=True)
class RoleProfile:
    """Static description of a role."""

    display_name: str
    icon: str
    description: str
    capabilities: frozenset[Capability]


class AgentRole(Enum):
    """Specialist identity."""

    ARCHITECT = "architect"
    IMPLEMENTER = "implementer"
    REVIEWER = "reviewer"
    TESTER = "tester"
    DOCUMENTER = "documenter"
    DEBUGGER = "debugger"
    OPTIMIZER = "optimizer"
    SECURITY = "security"

    @property
    def profile(self) -> RoleProfile:
        return ROLE_CATALOG[self]

    @property
    def display_name(self) -> str:
        return self.profile.display_name

    @property
    def icon(self) -> str:
        return self.profile.icon

    @property
    def description(self) -> str:
        return self.profile.description

    @property
    def default_capabilities(self) -> frozenset[Capability]:
        return self.profile.capabilities

    @property
    def is_primary(self) -> bool:
        return self in PRIMARY_ROLES

    @property
    def is_read_only(self) -> bool:
        """Read-only iff none of the default capabilities modify files."""
        return not (self.default_capabilities & MODIFYING)

    @classmethod
    def parse(cls, name: str) -> "AgentRole":
        """Look up a role by value or member name, case-insensitively."""
        key = name.strip().lower()
        for role in cls:
            if role.value == key:
                return role
        raise ValueError(f"Unknown role: {name}")


ROLE_CATALOG: dict[AgentRole, RoleProfile] = {
    AgentRole.ARCHITECT: RoleProfile(
        display_name="Architect",
        icon="🏗️",
        description="Analyzes system structure, designs solutions, ensures architectural consistency",
        capabilities=frozenset(
            {
                Capability.READ_CODE,
                Capability.ANALYZE_AST,
                Capability.SEARCH_CODEBASE,
                Capability.DELEGATE_TASKS,
            }
        ),
    ),
    AgentRole.IMPLEMENTER: RoleProfile(
        display_name="Implementer",
        icon="⚙️",
        description="Writes clean, idiomatic code following project conventions",
        capabilities=frozenset(
            {
                Capability.READ_CODE,
                Capability.WRITE_CODE,
                Capability.CREATE_FILES,
                Capability.MODIFY_CONFIG,
                Capability.SEARCH_CODEBASE,
            }
        ),
    ),
    AgentRole.REVIEWER: RoleProfile(
        display_name="Reviewer",
        icon="👁️",
        description="Reviews code for correctness, style, best practices, and security",
        capabilities=frozenset(
            {Capability.READ_CODE, Capability.ANALYZE_AST, Capability.SEARCH_CODEBASE}
        ),
    ),
    AgentRole.TESTER: RoleProfile(
        display_name="Tester",
        icon="🧪",
        description="Creates comprehensive tests, identifies edge cases, ensures coverage",
        capabilities=frozenset(
            {
                Capability.READ_CODE,
                Capability.WRITE_CODE,
                Capability.RUN_TESTS,
                Capability.CREATE_FILES,
            }
        ),
    ),
    AgentRole.DOCUMENTER: RoleProfile(
        display_name="Documenter",
        icon="📝",
        description="Creates clear documentation, API docs, and usage examples",
        capabilities=frozenset(
            {Capability.READ_CODE, Capability.WRITE_CODE, Capability.CREATE_FILES}
        ),
    ),
    AgentRole.DEBUGGER: RoleProfile(
        display_name="Debugger",
        icon="🐛",
        description="Analyzes errors, identifies root causes, proposes minimal fixes",
        capabilities=frozenset(
            {
                Capability.READ_CODE,
                Capability.ANALYZE_AST,
                Capability.EXECUTE_COMMANDS,
                Capability.SEARCH_CODEBASE,
                Capability.ACCESS_MEMORY,
            }
        ),
    ),
    AgentRole.OPTIMIZER: RoleProfile(
        display_name="Optimizer",
        icon="⚡",
        description="Identifies bottlenecks, optimizes algorithms, improves efficiency",
        capabilities=frozenset(
            {
                Capability.READ_CODE,
                Capability.ANALYZE_AST,
                Capability.WRITE_CODE,
                Capability.RUN_TESTS,
            }
        ),
    ),
    AgentRole.SECURITY: RoleProfile(
        display_name="Security Analyst",
        icon="🔒",
        description="Identifies vulnerabilities, reviews auth logic, ensures secure coding",
        capabilities=frozenset(
            {Capability.READ_CODE, Capability.ANALYZE_AST, Capability.SEARCH_CODEBASE}
        ),
    ),
}

PRIMARY_ROLES = frozenset(
    {AgentRole.ARCHITECT, AgentRole.IMPLEMENTER, AgentRole.REVIEWER, AgentRole.TESTER}
)
SUPPORTING_ROLES = frozenset(
    {AgentRole.DOCUMENTER, AgentRole.DEBUGGER, AgentRole.OPTIMIZER, AgentRole.SECURITY}
)


def default_capabilities(role: AgentRole) -> frozenset[Capability]:
    """Default capability set for a role."""
    return ROLE_CATALOG[role].capabilities
