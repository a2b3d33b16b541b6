"""Error sanitization utilities to prevent information leakage."""

import re


# Patterns that might expose sensitive information
SENSITIVE_PATTERNS = [
    r"public[_\s]?api[_\s]?key[:=\s]+([a-zA-Z0-9]{8})",
    r"private[_\s]?api[_\s]?key[:=\s]+([a-fA-F0-9\-]{36})",
    r'digest username="([^"]+)"',
    r"org[_\s]?id[:=\s]+([a-f0-9]{24})",
]

# Fields to redact completely
SENSITIVE_FIELDS = {
    "publicapikey",
    "privateapikey",
    "password",
    "secret",
    "credentials",
    "token",
    "authorization",
}


def sanitize_error_message(message: str) -> str:
    """Sanitize error message to remove sensitive information.

    Args:
        message: Original error message

    Returns:
        Sanitized error message with sensitive data redacted
    """
    sanitized = message

    # Replace sensitive patterns
    for pattern in SENSITIVE_PATTERNS:
        sanitized = re.sub(
            pattern,
            lambda m: m.group(0).replace(m.group(1), "[REDACTED]"),
            sanitized,
            flags=re.IGNORECASE,
        )

    # Redact common sensitive field names
    for field in SENSITIVE_FIELDS:
        sanitized = re.sub(
            rf"\b{field}[:=]\s*([^\s,;\)]+)",
            rf"{field}: [REDACTED]",
            sanitized,
            flags=re.IGNORECASE,
        )

    return sanitized


def sanitize_exception(error: Exception) -> str:
    """Sanitize exception message.

    Args:
        error: Exception object

    Returns:
        Sanitized error message
    """
    return sanitize_error_message(str(error))
