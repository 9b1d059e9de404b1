"""Password hashing and policy."""

from typing import List, Mapping, NamedTuple
from base64 import b64encode, b64decode
import hashlib
import hmac
import secrets

from ... import config

ALGORITHM = 'pbkdf2_sha256'
ITERATIONS = 100000


class PasswordAuthenticationFailed(RuntimeError):
    """Password is not correct."""


def _hash_salt_and_password(salt: bytes, password: str,
                            iterations: int) -> bytes:
    return hashlib.pbkdf2_hmac('sha256', password.encode('utf-8'), salt,
                               iterations)


def hash_password(password: str) -> str:
    """Generate a secure hash of a password."""
    salt = secrets.token_bytes(16)
    hashed = _hash_salt_and_password(salt, password, ITERATIONS)
    return '$'.join([ALGORITHM, str(ITERATIONS),
                     b64encode(salt).decode('ascii'),
                     b64encode(hashed).decode('ascii')])


def check_password(password: str, encrypted: str) -> bool:
    """Check a password against an encrypted hash."""
    try:
        algorithm, iterations, salt, enc_hashed = encrypted.split('$')
        rounds, salt_bytes = int(iterations), b64decode(salt)
        expected = b64decode(enc_hashed)
    except ValueError as e:     # Includes binascii.Error.
        raise PasswordAuthenticationFailed('Malformed password hash') from e
    if algorithm != ALGORITHM:
        raise PasswordAuthenticationFailed(f'Unknown algorithm {algorithm}')
    pass_hashed = _hash_salt_and_password(salt_bytes, password, rounds)
    if not hmac.compare_digest(pass_hashed, expected):
        raise PasswordAuthenticationFailed('Incorrect password')
    return True


class PasswordPolicy(NamedTuple):
    """Requirements that a new password must meet."""

    min_length: int = 4
    max_length: int = 100
    require_digit: bool = False
    require_lowercase: bool = False
    require_uppercase: bool = False
    require_non_alphanumeric: bool = False

    @classmethod
    def from_config(cls, settings: Mapping) -> 'PasswordPolicy':
        return cls(
            min_length=int(settings.get('PASSWORD_MIN_LENGTH', 4)),
            max_length=int(settings.get('PASSWORD_MAX_LENGTH', 100)),
            require_digit=config.flag(settings, 'PASSWORD_REQUIRE_DIGIT'),
            require_lowercase=config.flag(settings,
                                          'PASSWORD_REQUIRE_LOWERCASE'),
            require_uppercase=config.flag(settings,
                                          'PASSWORD_REQUIRE_UPPERCASE'),
            require_non_alphanumeric=config.flag(
                settings, 'PASSWORD_REQUIRE_NON_ALPHANUMERIC'
            )
        )

    def check(self, password: str) -> List[str]:
        """Get the reasons, if any, that ``password`` is not acceptable."""
        errors = []
        if len(password) < self.min_length:
            errors.append(f'Passwords must be at least {self.min_length}'
                          ' characters.')
        if len(password) > self.max_length:
            errors.append(f'Passwords must be at most {self.max_length}'
                          ' characters.')
        if self.require_digit and not any(c.isdigit() for c in password):
            errors.append("Passwords must have at least one digit"
                          " ('0'-'9').")
        if self.require_lowercase and not any(c.islower() for c in password):
            errors.append("Passwords must have at least one lowercase"
                          " ('a'-'z').")
        if self.require_uppercase and not any(c.isupper() for c in password):
            errors.append("Passwords must have at least one uppercase"
                          " ('A'-'Z').")
        if self.require_non_alphanumeric \
                and all(c.isalnum() for c in password):
            errors.append('Passwords must have at least one non'
                          ' alphanumeric character.')
        return errors
