"""Build failure classification.

A failure is classified from its originating stage and free-text reason
by an ordered list of (pattern, category) rules; the first matching rule
wins and ``unknown`` is the terminal default.
"""

from __future__ import annotations

import re

from debmatrix.types import FailureCategory

DOCKER_BUILD_STAGE = "docker_build"

TIMEOUT_CODES = frozenset({"timeout", "build_timeout"})

Rule = tuple[re.Pattern[str], FailureCategory]


def _rules(*pairs: tuple[str, FailureCategory]) -> tuple[Rule, ...]:
    return tuple((re.compile(pattern, re.IGNORECASE), category) for pattern, category in pairs)


STAGE_RULES: dict[str, tuple[Rule, ...]] = {
    DOCKER_BUILD_STAGE: _rules(
        (r"no such file|not found|file.*missing|command.*not found", FailureCategory.DOCKER_MISSING_FILES),
        (r"permission|denied|access|cannot.*open", FailureCategory.DOCKER_PERMISSION),
        (r"memory|disk|space|resource|no space left", FailureCategory.DOCKER_RESOURCE),
        (r"network|connection|timeout|download|pull", FailureCategory.DOCKER_NETWORK),
        (r"dockerfile|syntax|invalid", FailureCategory.DOCKERFILE_SYNTAX),
    ),
}

STAGE_DEFAULTS: dict[str, FailureCategory] = {
    DOCKER_BUILD_STAGE: FailureCategory.DOCKER_GENERAL,
}

GENERIC_RULES: tuple[Rule, ...] = _rules(
    (r"connection|timeout|network|download|curl|wget|404|not found", FailureCategory.NETWORK),
    (r"dependency|apt|dpkg|install|package.*not found", FailureCategory.DEPENDENCY),
    (r"architecture|cross|qemu|multiarch|unsupported", FailureCategory.ARCHITECTURE),
    (r"compile|build|make|cmake|error.*\d+:|gcc|clang", FailureCategory.COMPILATION),
    (r"package|deb|lintian|debian|dpkg-deb", FailureCategory.PACKAGING),
    (r"config|yaml|setting|parameter|invalid.*argument", FailureCategory.CONFIGURATION),
    (r"permission|denied|access|auth|cannot.*create", FailureCategory.PERMISSION),
    (r"memory|disk|space|resource|out of memory|oom", FailureCategory.RESOURCE),
    (r"checksum|hash|security|verify|gpg|signature", FailureCategory.SECURITY),
)


def match_rules(
    text: str, rules: tuple[Rule, ...], default: FailureCategory | None = None
) -> FailureCategory | None:
    """Return the category of the first rule matching ``text``."""
    for pattern, category in rules:
        if pattern.search(text):
            return category
    return default


def classify_failure(
    stage: str, reason: str, code: str | None = None
) -> FailureCategory:
    """Classify a failure.

    Args:
        stage: Stage the failure originated in (e.g. ``docker_build``).
        reason: Free-text failure reason.
        code: Optional structured error code; timeout codes win outright.

    Returns:
        FailureCategory.
    """
    if code in TIMEOUT_CODES:
        return FailureCategory.TIMEOUT

    if stage in STAGE_RULES:
        category = match_rules(reason, STAGE_RULES[stage], STAGE_DEFAULTS.get(stage))
        if category is not None:
            return category

    category = match_rules(reason, GENERIC_RULES)
    return category or FailureCategory.UNKNOWN


__all__ = [
    "DOCKER_BUILD_STAGE",
    "GENERIC_RULES",
    "STAGE_RULES",
    "classify_failure",
    "match_rules",
]
