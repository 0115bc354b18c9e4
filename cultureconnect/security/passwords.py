"""
Password hashing and strength rules.

Argon2id is the preferred scheme; bcrypt (via Flask-Bcrypt) is selected by
configuration for runtimes where argon2-cffi cannot be installed. Verification
dispatches on the stored hash's prefix, so hashes made under either scheme keep
working after the scheme changes and are flagged for rehash on next login.

Comparison is always delegated to the hashing library (constant-time);
nothing here compares hashes by hand.
"""

import re
from typing import Iterable, List

from argon2 import PasswordHasher, Type
from argon2.exceptions import InvalidHashError, VerificationError

from cultureconnect.extensions import bcrypt

ARGON2_PREFIX = '$argon2'
BCRYPT_PREFIX = '$2'

_UPPER = re.compile(r'[A-Z]')
_LOWER = re.compile(r'[a-z]')
_DIGIT = re.compile(r'\d')
_SYMBOL = re.compile(r'[^A-Za-z0-9]')


class PasswordPolicy:
    """Hashing scheme plus the strength rules applied at registration."""

    def __init__(
        self,
        scheme: str = 'argon2id',
        argon2_memory_cost: int = 65536,
        argon2_time_cost: int = 4,
        argon2_parallelism: int = 3,
        bcrypt_rounds: int = 12,
        min_length: int = 12,
        denylist: Iterable[str] = (),
    ):
        if scheme not in ('argon2id', 'bcrypt'):
            raise ValueError(f'Unsupported password hash scheme: {scheme!r}')
        self.scheme = scheme
        self.bcrypt_rounds = bcrypt_rounds
        self.min_length = min_length
        self.denylist = frozenset(p.lower() for p in denylist)
        self.argon2 = PasswordHasher(
            time_cost=argon2_time_cost,
            memory_cost=argon2_memory_cost,
            parallelism=argon2_parallelism,
            type=Type.ID,
        )

    # --- Hashing ---

    def hash(self, plaintext: str) -> str:
        if self.scheme == 'argon2id':
            return self.argon2.hash(plaintext)
        return bcrypt.generate_password_hash(plaintext, self.bcrypt_rounds).decode('utf-8')

    def verify(self, plaintext: str, password_hash: str) -> bool:
        """True only if plaintext matches; malformed hashes verify as False."""
        if not isinstance(password_hash, str) or not password_hash:
            return False
        if not isinstance(plaintext, str):
            return False
        if password_hash.startswith(ARGON2_PREFIX):
            try:
                return self.argon2.verify(password_hash, plaintext)
            except (VerificationError, InvalidHashError):
                return False
        if password_hash.startswith(BCRYPT_PREFIX):
            try:
                return bcrypt.check_password_hash(password_hash, plaintext)
            except ValueError:
                return False
        return False

    def needs_rehash(self, password_hash: str) -> bool:
        """True when the hash's algorithm or parameters differ from this policy."""
        if not isinstance(password_hash, str) or not password_hash:
            return True
        if self.scheme == 'argon2id':
            if not password_hash.startswith(ARGON2_PREFIX):
                return True
            try:
                return self.argon2.check_needs_rehash(password_hash)
            except InvalidHashError:
                return True

        if not password_hash.startswith(BCRYPT_PREFIX):
            return True
        try:
            cost = int(password_hash.split('$')[2])
        except (IndexError, ValueError):
            return True
        return cost != self.bcrypt_rounds

    # --- Strength rules ---

    def validate(self, plaintext: str) -> List[str]:
        """
        Return the list of violated rules, in a stable order.

        An empty list means the password is acceptable. Messages are
        user-facing and can be flashed as-is.
        """
        if not isinstance(plaintext, str):
            plaintext = ''
        errors = []
        if len(plaintext) < self.min_length:
            errors.append(f'Password must be at least {self.min_length} characters')
        if not _UPPER.search(plaintext):
            errors.append('Password must contain an uppercase letter')
        if not _LOWER.search(plaintext):
            errors.append('Password must contain a lowercase letter')
        if not _DIGIT.search(plaintext):
            errors.append('Password must contain a number')
        if not _SYMBOL.search(plaintext):
            errors.append('Password must contain a special character')
        if plaintext.lower() in self.denylist:
            errors.append('Password is too common')
        return errors
