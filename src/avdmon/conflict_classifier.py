"""Azure Monitor apply-error classification.

Detects az CLI errors that mean "the desired end state already holds" so the
reconciler can record them as skips rather than failures. The az CLI does not
expose structured error codes to a calling process, so classification works on
stderr text (plain or JSON), case-insensitive.

Public API:
    is_benign_conflict: True if an apply error is a benign conflict
    parse_conflict: Extract details from a conflict error
    ConflictInfo: Dataclass containing conflict details

Example:
    >>> is_benign_conflict("Conflict: Data sink already used in diagnostic setting 'x'")
    True
    >>> is_benign_conflict("(AuthorizationFailed) The client does not have authorization")
    False
"""

import contextlib
import json
import re
from dataclasses import dataclass

__all__ = [
    "ConflictInfo",
    "is_benign_conflict",
    "is_not_found",
    "parse_conflict",
]

# Substring markers, matched against lowercased text
BENIGN_CONFLICT_MARKERS = (
    "already exists",
    "resourceexists",
    "resource exists",
    "conflicts with existing",
)

# Marker pairs that must both appear (diagnostic setting sink reuse)
BENIGN_CONFLICT_PAIRS = (
    ("data sink", "already used"),
    ("conflict", "already"),
)

# Markers that rule out a benign classification even if a conflict word appears
HARD_FAILURE_MARKERS = (
    "authorizationfailed",
    "authenticationfailed",
    "invalidauthenticationtoken",
    "please run 'az login'",
)

NOT_FOUND_MARKERS = (
    "resourcenotfound",
    "notfound",
    "was not found",
    "could not be found",
    "not found",
    "does not exist",
)

# The enclosing scope is missing, so nothing inside it was actually looked up
SCOPE_NOT_FOUND_PATTERNS = (
    re.compile(r"resourcegroupnotfound|subscriptionnotfound|invalidsubscriptionid"),
    re.compile(
        r"(?<!under )resource group ['\"][^'\"]*['\"] "
        r"(?:could not be found|was not found|not found|does not exist)"
    ),
    re.compile(
        r"subscription ['\"][^'\"]*['\"] "
        r"(?:could not be found|was not found|not found|does not exist|doesn't exist)"
    ),
)


@dataclass
class ConflictInfo:
    """Details extracted from a benign-conflict apply error.

    Attributes:
        code: Azure error code, if present (e.g. "Conflict")
        resource_name: Conflicting resource or setting name, if present
        original_error: Full original error text
    """

    code: str | None = None
    resource_name: str | None = None
    original_error: str | None = None


def is_benign_conflict(error_message: str | None) -> bool:
    """Detect if an apply error means the desired state is already satisfied.

    Recognizes:
    - "already exists" / ResourceExists
    - diagnostic-setting sink reuse ("Data sink ... is already used")
    - generic "Conflict ... already" wording

    Authorization and authentication failures are never benign.

    Args:
        error_message: stderr from the az CLI

    Returns:
        True if the error is a benign conflict, False otherwise
    """
    if not error_message:
        return False

    msg_lower = error_message.lower()

    if any(marker in msg_lower for marker in HARD_FAILURE_MARKERS):
        return False

    if any(marker in msg_lower for marker in BENIGN_CONFLICT_MARKERS):
        return True

    return any(first in msg_lower and second in msg_lower for first, second in BENIGN_CONFLICT_PAIRS)


def is_not_found(error_message: str | None) -> bool:
    """Detect if an az show error means the resource does not exist.

    A missing resource group or subscription is not a NotFound for the
    resource itself, since nothing inside it was looked up.

    Args:
        error_message: stderr from the az CLI

    Returns:
        True for ResourceNotFound-style errors
    """
    if not error_message:
        return False
    msg_lower = error_message.lower()
    if any(pattern.search(msg_lower) for pattern in SCOPE_NOT_FOUND_PATTERNS):
        return False
    return any(marker in msg_lower for marker in NOT_FOUND_MARKERS)


def parse_conflict(error_message: str, resource_name: str | None = None) -> ConflictInfo | None:
    """Extract conflict details from an az error message.

    Parses JSON error bodies first, then plain text.

    Args:
        error_message: stderr from the az CLI
        resource_name: Optional hint used when the text names no resource

    Returns:
        ConflictInfo, or None if the error is not a benign conflict
    """
    if not is_benign_conflict(error_message):
        return None

    info = ConflictInfo(original_error=error_message)

    with contextlib.suppress(json.JSONDecodeError, AttributeError, TypeError):
        _parse_json_error(error_message, info)

    _parse_plain_text_error(error_message, info)

    if not info.resource_name and resource_name:
        info.resource_name = resource_name

    return info


def _parse_json_error(error_message: str, info: ConflictInfo) -> None:
    """Fill info from an ARM JSON error body ({"error": {"code", "message"}})."""
    error_data = json.loads(error_message)
    error_obj = error_data.get("error", error_data)
    info.code = error_obj.get("code", info.code)
    message = error_obj.get("message")
    if message:
        _parse_plain_text_error(message, info)


def _parse_plain_text_error(error_message: str, info: ConflictInfo) -> None:
    """Fill info from plain az error text using regex."""
    if not info.code:
        # az formats ARM errors as "(Code) message" or "Code: message"
        match = re.search(r"\((\w+)\)", error_message) or re.match(
            r"\s*(?:ERROR:\s*)?(?!ERROR\b)(\w+):", error_message
        )
        if match:
            info.code = match.group(1)

    if not info.resource_name:
        name_patterns = [
            r"diagnostic setting ['\"`]([^'\"`]+)['\"`]",
            r"['\"`]([^'\"`]+)['\"`] already exists",
            r"[Rr]esource ['\"`]([^'\"`]+)['\"`]",
        ]
        for pattern in name_patterns:
            match = re.search(pattern, error_message)
            if match:
                info.resource_name = match.group(1)
                break
