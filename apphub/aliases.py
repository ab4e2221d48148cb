import secrets
import string
from typing import Callable, Sequence

from sqlalchemy.exc import IntegrityError

from apphub.exceptions import violates_unique
from apphub.models import APP_ALIAS_CONSTRAINT

ALIAS_ALPHABET = string.ascii_letters + string.digits


def generate_alias(length: int = 4, choice: Callable[[Sequence[str]], str] = secrets.choice) -> str:
    """Return a random alias of ``length`` alphanumeric characters."""
    if length < 1:
        raise ValueError("alias length must be positive")
    return "".join(choice(ALIAS_ALPHABET) for _ in range(length))


def is_app_alias_unique_error(exc: IntegrityError) -> bool:
    """True only for a unique violation on app.alias; other constraints never match."""
    return violates_unique(exc, APP_ALIAS_CONSTRAINT, ("app.alias",))
