"""Default configuration values."""

# Role keyword stems for specialist suggestion. Order matters: the first
# role with a matching stem wins. Stems are regular expression fragments
# matched case-insensitively anywhere in the text.
DEFAULT_ROUTING_KEYWORDS = {
    "architect": ["design", "architecture", "structure", "module"],
    "implementer": ["implement", "code", "write", "create", "add"],
    "reviewer": ["review", "check", "approve", "feedback"],
    "tester": ["test", "coverage", "unit", "integration"],
    "documenter": ["document", "readme", "comment", "explain"],
    "debugger": ["debug", "fix", "error", "bug", "issue"],
    "optimizer": ["optimi[sz]e", "performance", "speed", "memory"],
    "security": ["security", "vulnerab", "auth", "injection"],
}

DEFAULT_ROLE = "implementer"

# Phrases in a response that hand the work to another role
DELEGATION_PHRASES = {
    "implementer": ["delegate to implementer", "implementer should"],
    "reviewer": ["needs review", "delegate to reviewer"],
    "tester": ["needs tests", "delegate to tester"],
    "security": ["security review", "delegate to security"],
    "architect": ["delegate to architect"],
    "debugger": ["delegate to debugger"],
    "optimizer": ["delegate to optimizer"],
    "documenter": ["delegate to documenter"],
}

UNCERTAIN_PHRASES = ["might", "could", "perhaps", "not sure", "unclear"]
CONFIDENT_PHRASES = ["definitely", "certainly", "clearly", "obviously"]

HIGH_CONFIDENCE = 0.8

DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 4096
DEFAULT_DETECTION_MODEL = "claude-3-haiku-20240307"

# Collaboration
DEFAULT_MAX_TURNS = 20
DEFAULT_MAX_ROUNDS = 3
DEFAULT_CONSENSUS_THRESHOLD = 0.7

# Maximum implement/review iterations
DEFAULT_MAX_ITERATIONS = 3

# Attempts per retryable tool failure, beyond the first
DEFAULT_MAX_TOOL_RETRIES = 1
