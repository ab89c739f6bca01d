"""Log sanitization and credential masking."""

from __future__ import annotations

import re
import shlex
from collections.abc import Iterable, Sequence

DEFAULT_LOG_TRUNCATE_LIMIT = 400
_MASK = "***"
_URL_CREDENTIAL_PATTERN = re.compile(r"(https?://)[^/\s:@]+:[^/\s@]+@")
_PASSWORD_FIELD_PATTERN = re.compile(r'("password"\s*:\s*")[^"]*(")')


def truncate_log(value: str, limit: int = DEFAULT_LOG_TRUNCATE_LIMIT) -> str:
    """Truncate log text to the specified limit with ellipsis."""
    value = value.strip()
    if len(value) <= limit:
        return value
    return value[: max(0, limit - 3)] + "..."


def mask_secrets(value: str, secrets: Iterable[str] = ()) -> str:
    if not value:
        return ""
    masked = _URL_CREDENTIAL_PATTERN.sub(rf"\1{_MASK}:{_MASK}@", value)
    masked = _PASSWORD_FIELD_PATTERN.sub(rf"\1{_MASK}\2", masked)
    for secret in secrets:
        if secret:
            masked = masked.replace(secret, _MASK)
    return masked


def sanitize_log_text(
    value: str,
    secrets: Iterable[str] = (),
    limit: int = DEFAULT_LOG_TRUNCATE_LIMIT,
) -> str:
    """Mask sensitive values and return a bounded-length log string."""
    return truncate_log(mask_secrets(value, secrets), limit)


def command_for_log(args: Sequence[str], secrets: Iterable[str] = ()) -> str:
    """Return a shell-safe, masked command string bounded for logging."""
    if not args:
        return ""
    hidden = {secret for secret in secrets if secret}
    rendered = " ".join(_MASK if part in hidden else shlex.quote(part) for part in args)
    return truncate_log(rendered)
