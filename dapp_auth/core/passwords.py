"""
Password policy and hashing.

Hashes use Argon2 (memory-hard, per-password salt) through passlib's
CryptContext. `verify_dummy()` runs the same KDF against a throwaway hash so
that a login for an unknown email costs as much as a wrong password.
"""

import re
import secrets
from typing import Any, List, Optional

from passlib.context import CryptContext

from dapp_auth.core.errors import WeakPasswordError

MIN_PASSWORD_LENGTH = 8

_UPPERCASE = re.compile(r"[A-Z]")
_DIGIT = re.compile(r"\d")
_SYMBOL = re.compile(r"[^A-Za-z0-9]")


def password_policy_violations(password: str) -> List[str]:
    problems = []
    if len(password) < MIN_PASSWORD_LENGTH:
        problems.append(f"at least {MIN_PASSWORD_LENGTH} characters")
    if not _UPPERCASE.search(password):
        problems.append("an uppercase letter")
    if not _DIGIT.search(password):
        problems.append("a digit")
    if not _SYMBOL.search(password):
        problems.append("a symbol")
    return problems


def check_password_policy(password: str) -> None:
    """
    Raises:
        WeakPasswordError: listing every rule the password breaks
    """
    problems = password_policy_violations(password)
    if problems:
        raise WeakPasswordError("Password must contain " + ", ".join(problems))


class PasswordHasher:
    """Wrapper around Passlib's CryptContext simplifying hashing operations.

    Extra keyword arguments are passed to the argon2 handler, e.g.
    `PasswordHasher(memory_cost=1024, time_cost=1)` for fast tests.
    """

    def __init__(self, **argon2_options: Any) -> None:
        options = {f"argon2__{key}": value for key, value in argon2_options.items()}
        self._context = CryptContext(schemes=["argon2"], deprecated="auto", **options)
        self._dummy_hash: Optional[str] = None

    def hash(self, password: str) -> str:
        return self._context.hash(password)

    def verify(self, password: str, password_hash: str) -> bool:
        try:
            return self._context.verify(password, password_hash)
        except (ValueError, TypeError):
            # unknown or corrupt hash format
            return False

    def verify_dummy(self, password: str) -> bool:
        if self._dummy_hash is None:
            self._dummy_hash = self.hash(secrets.token_urlsafe(16))
        self._context.verify(password, self._dummy_hash)
        return False
