import random
import string
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..config import settings
from .exceptions import GenerationExhausted


# Only lowercase letters and digits for case-insensitive short codes (Base36)
CHARSET = string.ascii_lowercase + string.digits  # a-z0-9

ALIAS_CHARSET = set(string.ascii_lowercase + string.digits + '-_')
ALIAS_MIN_LENGTH = 3
ALIAS_MAX_LENGTH = 30

RESERVED_ALIASES = {
    'admin', 'api', 'static', 'www', 'app', 'docs', 'redoc',
    'openapi', 'health', 'status', 'login', 'logout', 'auth'
}


def _random_code(length: int) -> str:
    return ''.join(random.choices(CHARSET, k=length))


def generate_short_code(
    db: Session,
    length: Optional[int] = None,
    max_attempts: Optional[int] = None,
) -> str:
    """
    Generate a unique case-insensitive short code.

    Args:
        db: Database session for uniqueness check
        length: Length of the code, defaults to SHORT_CODE_LENGTH
        max_attempts: Collision retries before giving up, defaults to SHORT_CODE_MAX_ATTEMPTS

    Returns:
        A unique lowercase short code

    Raises:
        GenerationExhausted: every candidate collided with an existing code or alias

    Note:
        - 7 chars: 36^7 = 78,364,164,096 combinations
    """
    length = length or settings.SHORT_CODE_LENGTH
    max_attempts = max_attempts or settings.SHORT_CODE_MAX_ATTEMPTS

    for _ in range(max_attempts):
        code = _random_code(length)
        if is_code_available(code, db):
            return code

    raise GenerationExhausted(max_attempts)


def validate_custom_alias(alias: str) -> tuple[bool, str]:
    """
    Validate custom alias for short code.

    Args:
        alias: The custom alias to validate

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not alias:
        return False, "Alias cannot be empty"

    # Check length
    if len(alias) < ALIAS_MIN_LENGTH:
        return False, f"Alias must be at least {ALIAS_MIN_LENGTH} characters"

    if len(alias) > ALIAS_MAX_LENGTH:
        return False, f"Alias must be at most {ALIAS_MAX_LENGTH} characters"

    # Only allowed characters: a-z, 0-9, hyphen, underscore
    alias_lower = alias.lower()

    if not all(c in ALIAS_CHARSET for c in alias_lower):
        return False, "Alias can only contain letters, digits, hyphens and underscores"

    # Cannot start or end with hyphen
    if alias_lower.startswith('-') or alias_lower.endswith('-'):
        return False, "Alias cannot start or end with a hyphen"

    if alias_lower in RESERVED_ALIASES:
        return False, f"'{alias}' is a reserved word and cannot be used"

    return True, ""


def is_code_available(code: str, db: Session) -> bool:
    """
    Check if a code is free both as a short code and as a custom alias.

    Args:
        code: The short code or alias to check
        db: Database session

    Returns:
        True if available, False otherwise
    """
    from ..models import Link

    code = code.lower()
    existing = db.query(Link.id).filter(
        or_(Link.short_code == code, Link.custom_alias == code)
    ).first()

    return existing is None
