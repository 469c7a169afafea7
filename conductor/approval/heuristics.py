"""Default approval patterns and the dangerous-operation heuristic."""

import re

DEFAULT_AUTO_APPROVED_TOOLS = ("file_read", "list_files")

DEFAULT_WHITELIST = (
    r"^ls\s",
    r"^dir\s",
    r"^pwd$",
    r"^echo\s",
    r"^cat\s.*\.txt$",
    r"^head\s",
    r"^tail\s",
)

DEFAULT_BLACKLIST = (
    r"^rm\s+-rf\s+/",
    r"^del\s+/s\s+/q\s+\*",
    r"^format\s",
    r"^fdisk\s",
    r"^mkfs",
    r"^dd\s+if=.*of=",
)

# (category, pattern)
DANGEROUS_PATTERNS = [
    ("filesystem", re.compile(r"\brm\s+", re.IGNORECASE)),
    ("filesystem", re.compile(r"\bdel\s+", re.IGNORECASE)),
    ("filesystem", re.compile(r"\brmdir\s+", re.IGNORECASE)),
    ("filesystem", re.compile(r"\bchmod\s+(-R\s+)?777", re.IGNORECASE)),
    ("filesystem", re.compile(r">\s*/dev/sd[a-z]", re.IGNORECASE)),
    ("disk", re.compile(r"\bformat\s+", re.IGNORECASE)),
    ("disk", re.compile(r"\bfdisk\s+", re.IGNORECASE)),
    ("disk", re.compile(r"\bmkfs(\.\w+)?\s+", re.IGNORECASE)),
    ("disk", re.compile(r"\bdd\s+", re.IGNORECASE)),
    ("system", re.compile(r"\breboot\s*$", re.IGNORECASE)),
    ("system", re.compile(r"\bshutdown\s+", re.IGNORECASE)),
    ("privilege", re.compile(r"\bsudo\s+", re.IGNORECASE)),
    ("privilege", re.compile(r"\bsu\s+-", re.IGNORECASE)),
    ("remote_code", re.compile(r"\bwget\s+.*\|\s*(ba|z)?sh\b", re.IGNORECASE)),
    ("remote_code", re.compile(r"\bcurl\s+.*\|\s*(ba|z)?sh\b", re.IGNORECASE)),
]


def classify_command(command: str) -> str | None:
    """Return the danger category of command, or None when it looks safe."""
    for category, pattern in DANGEROUS_PATTERNS:
        if pattern.search(command):
            return category
    return None


def is_dangerous(command: str) -> bool:
    return classify_command(command) is not None
