"""Heuristics that turn raw specialist text into structured fields."""

import re

from ensemble.config.defaults import CONFIDENT_PHRASES, DELEGATION_PHRASES, UNCERTAIN_PHRASES
from ensemble.specialists.models import (
    ArtifactType,
    ResponseArtifact,
    ReviewFeedback,
    ReviewItem,
    ReviewSeverity,
    SuggestedAction,
)
from ensemble.specialists.roles import AgentRole

CODE_BLOCK_PATTERN = re.compile(r"```(\w+)?\n(.*?)```", re.DOTALL)
ACTION_MARKER_PATTERN = re.compile(r"\b(todo|action):", re.IGNORECASE)


def extract_artifacts(content: str) -> list[ResponseArtifact]:
    """Every fenced code block becomes a CODE artifact."""
    artifacts = []
    for match in CODE_BLOCK_PATTERN.finditer(content):
        language = match.group(1) or "text"
        artifacts.append(
            ResponseArtifact(
                name="Code Block",
                type=ArtifactType.CODE,
                content=match.group(2).strip(),
                language=language,
            )
        )
    return artifacts


def extract_suggested_actions(content: str) -> list[SuggestedAction]:
    if ACTION_MARKER_PATTERN.search(content):
        return [SuggestedAction("follow_up", "Review suggested actions in response", 5)]
    return []


def extract_delegation(content: str) -> AgentRole | None:
    """First role whose delegation phrase appears in the text."""
    lowered = content.lower()
    for role_name, phrases in DELEGATION_PHRASES.items():
        if any(phrase in lowered for phrase in phrases):
            return AgentRole.parse(role_name)
    return None


def estimate_confidence(content: str) -> float:
    """Score hedging against assertive wording."""
    lowered = content.lower()
    uncertain = sum(1 for phrase in UNCERTAIN_PHRASES if phrase in lowered)
    confident = sum(1 for phrase in CONFIDENT_PHRASES if phrase in lowered)

    if confident > uncertain:
        return 0.9
    if uncertain > confident * 2:
        return 0.5
    return 0.7


def is_approval(content: str) -> bool:
    lowered = content.lower()
    return "approved" in lowered and "not approved" not in lowered


def parse_review_feedback(content: str, confidence: float) -> ReviewFeedback:
    lowered = content.lower()
    items = []
    if "critical" in lowered or "must fix" in lowered:
        items.append(
            ReviewItem(
                severity=ReviewSeverity.CRITICAL,
                description="Critical issue found",
                is_blocking=True,
            )
        )
    return ReviewFeedback(
        approved=is_approval(content),
        overall_assessment=content[:200],
        items=tuple(items),
        confidence=confidence,
    )
