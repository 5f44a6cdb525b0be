"""Log sanitization module for preventing secret leakage.

az CLI error output can echo request parameters back, including action group
webhook URLs, SAS signatures or storage keys. Everything that ends up in a
log line or in the exported results table passes through LogSanitizer first.

Redacted:
- Client secrets and passwords
- Bearer tokens and access tokens
- SAS signatures (sig=...)
- Shared access / account keys in connection strings
"""

import re
from re import Pattern


class LogSanitizer:
    """Sanitize sensitive data from logs and error messages.

    All methods are class methods and can be called without instantiation.
    """

    REDACTED = "[REDACTED]"

    # Order matters: more specific patterns come first
    SECRET_PATTERNS: dict[str, Pattern] = {
        "client_secret_assignment": re.compile(
            r'(client[_-]?secret["\']?\s*[:=]\s*["\']?)([^\s"\'&,\)]+)',
            re.IGNORECASE,
        ),
        "password": re.compile(r'(password["\']?\s*[:=]\s*["\']?)([^\s"\'&,\)]+)', re.IGNORECASE),
        "authorization_bearer": re.compile(r"(Authorization:\s*Bearer\s+)([^\s]+)", re.IGNORECASE),
        "access_token": re.compile(
            r'(access[_-]?token["\']?\s*[:=]\s*["\']?)([^\s"\'&,\)]+)',
            re.IGNORECASE,
        ),
        "sas_signature": re.compile(r"([?&]sig=)([^&\s\"']+)", re.IGNORECASE),
        "shared_access_key": re.compile(
            r"((?:SharedAccessKey|AccountKey)\s*=\s*)([^;\s\"']+)", re.IGNORECASE
        ),
    }

    # az CLI prefixes every error line with this marker
    AZ_ERROR_PREFIX: Pattern = re.compile(r"^\s*ERROR:\s*", re.IGNORECASE)

    @classmethod
    def sanitize(cls, message: str) -> str:
        """Redact every known secret pattern in message.

        Examples:
            >>> LogSanitizer.sanitize("client_secret=abc123")
            'client_secret=[REDACTED]'
        """
        if not isinstance(message, str):
            message = str(message)

        result = message
        for pattern in cls.SECRET_PATTERNS.values():
            result = pattern.sub(r"\1" + cls.REDACTED, result)
        return result

    @classmethod
    def truncate(cls, message: str, limit: int = 500) -> str:
        """Cap message length, marking the cut with an ellipsis."""
        if len(message) <= limit:
            return message
        return message[:limit] + "..."

    @classmethod
    def error_detail(cls, raw: str | None, limit: int = 500) -> str:
        """Turn raw az stderr into a single sanitized line suitable for a report.

        Examples:
            >>> LogSanitizer.error_detail("ERROR: (BadRequest) Invalid query\\n")
            '(BadRequest) Invalid query'
        """
        if not raw:
            return ""
        lines = [cls.AZ_ERROR_PREFIX.sub("", line).strip() for line in raw.splitlines()]
        collapsed = " ".join(line for line in lines if line)
        return cls.truncate(cls.sanitize(collapsed), limit)

    @classmethod
    def sanitize_exception(cls, exc: BaseException) -> str:
        """Sanitize exception message.

        Examples:
            >>> LogSanitizer.sanitize_exception(ValueError("password=hunter2"))
            'password=[REDACTED]'
        """
        return cls.sanitize(str(exc))


__all__ = ["LogSanitizer"]
