"""Keyword routing from free text to a specialist role."""

import logging
import re

from ensemble.config.defaults import DEFAULT_ROLE, DEFAULT_ROUTING_KEYWORDS
from ensemble.specialists.roles import AgentRole

logger = logging.getLogger(__name__)


class SpecialistRouter:
    """Suggests the specialist for a task description.

    Roles are checked in the order the keyword table lists them; the first
    role with any matching stem wins.
    """

    def __init__(
        self,
        keywords: dict[str, list[str]] | None = None,
        default_role: str = DEFAULT_ROLE,
    ) -> None:
        self.keywords = keywords if keywords is not None else DEFAULT_ROUTING_KEYWORDS
        self.default_role = AgentRole.parse(default_role)
        self._patterns: list[tuple[AgentRole, re.Pattern[str]]] = []
        self._compile_patterns()

    def _compile_patterns(self) -> None:
        """Compile keyword patterns for faster matching."""
        for role_name, stems in self.keywords.items():
            if not stems:
                continue
            pattern = "|".join(f"(?:{stem})" for stem in stems)
            self._patterns.append((AgentRole.parse(role_name), re.compile(pattern, re.IGNORECASE)))

    def suggest(self, text: str) -> AgentRole:
        """Return the first role whose keywords appear in ``text``."""
        for role, pattern in self._patterns:
            match = pattern.search(text)
            if match:
                logger.debug("Routed to %s on keyword %r", role.value, match.group(0))
                return role
        return self.default_role

    def suggest_with_explanation(self, text: str) -> tuple[AgentRole, str]:
        """Route with explanation of why.

        Returns:
            Tuple of (role, explanation)
        """
        for role, pattern in self._patterns:
            match = pattern.search(text)
            if match:
                return role, f"Matched keyword '{match.group(0)}' for {role.display_name}"
        return self.default_role, f"No keyword matched; using {self.default_role.display_name}"
