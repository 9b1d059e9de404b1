"""Identity manager configuration."""
import secrets
import os
import re
from typing import Any, Dict

#################### General config ####################
BASE_SERVER = os.environ.get('BASE_SERVER', 'localhost:5001')
"""Sets base server for use when a domain name is needed.

The defaults for `BASE_URL` and `DEFAULT_LOGIN_REDIRECT_URL` use this. They
can be independently configured if needed.
"""

BASE_URL = os.environ.get('BASE_URL', f'https://{BASE_SERVER}')
"""Scheme and host used to build absolute callback URLs in e-mails."""

DEFAULT_LOGIN_REDIRECT_URL = os.environ.get('DEFAULT_LOGIN_REDIRECT_URL', '/')
"""Where the user goes after signing in, if no good return URL is given."""

_relative_urls = r"(^\/(?:[^\/]+\/)*[^\/]*$)"
_absolute_urls = rf"(^https://([a-zA-Z0-9\-.])*{re.escape(BASE_SERVER)}/.*$)"
LOGIN_REDIRECT_REGEX = os.environ.get('LOGIN_REDIRECT_REGEX',
                                      f"{_relative_urls}|{_absolute_urls}")
"""Regex that return URLs must match.

All others go to the DEFAULT_LOGIN_REDIRECT_URL. The default allows local
(relative) URLs and URLs on subdomains of the BASE_SERVER.
"""

CONFIRM_EMAIL_PATH = os.environ.get('CONFIRM_EMAIL_PATH',
                                    '/account/confirm-email')
RESET_PASSWORD_PATH = os.environ.get('RESET_PASSWORD_PATH',
                                     '/account/reset-password')


#################### Database ####################
DATABASE_URI = os.environ.get('DATABASE_URI', 'sqlite:///identity.db')
"""SQLAlchemy URI of the directory database."""

CREATE_DB = bool(int(os.environ.get('CREATE_DB', 0)))


#################### Tokens and sessions ####################
JWT_SECRET = os.environ.get('JWT_SECRET', secrets.token_urlsafe(16))
"""Signs purpose tokens, external login state and session cookies."""

TOKEN_LIFESPAN = os.environ.get('TOKEN_LIFESPAN', '86400')
"""Seconds that e-mail confirmation and password reset tokens stay valid."""

SESSION_DURATION = os.environ.get('SESSION_DURATION', '36000')
PERSISTENT_SESSION_DURATION = os.environ.get('PERSISTENT_SESSION_DURATION',
                                             '1209600')
"""Session lifetime when the user asked to be remembered."""

REDIS_HOST = os.environ.get('REDIS_HOST', 'localhost')
REDIS_PORT = os.environ.get('REDIS_PORT', '6379')
REDIS_DATABASE = os.environ.get('REDIS_DATABASE', '0')
REDIS_TOKEN = os.environ.get('REDIS_TOKEN', None)
"""This is the token used in the AUTH procedure."""
REDIS_CLUSTER = os.environ.get('REDIS_CLUSTER', '0')


#################### Lockout and password policy ####################
LOCKOUT_THRESHOLD = os.environ.get('LOCKOUT_THRESHOLD', '5')
"""Consecutive failed sign-ins that lock an account."""

LOCKOUT_DURATION = os.environ.get('LOCKOUT_DURATION', '300')
"""Seconds an account stays locked."""

PASSWORD_MIN_LENGTH = os.environ.get('PASSWORD_MIN_LENGTH', '4')
PASSWORD_MAX_LENGTH = os.environ.get('PASSWORD_MAX_LENGTH', '100')
PASSWORD_REQUIRE_DIGIT = os.environ.get('PASSWORD_REQUIRE_DIGIT', '0')
PASSWORD_REQUIRE_LOWERCASE = os.environ.get('PASSWORD_REQUIRE_LOWERCASE', '0')
PASSWORD_REQUIRE_UPPERCASE = os.environ.get('PASSWORD_REQUIRE_UPPERCASE', '0')
PASSWORD_REQUIRE_NON_ALPHANUMERIC = \
    os.environ.get('PASSWORD_REQUIRE_NON_ALPHANUMERIC', '0')


#################### Capabilities ####################
ROLE_MANAGEMENT_ENABLED = os.environ.get('ROLE_MANAGEMENT_ENABLED', '1')
EMAIL_CONFIRMATION_ENABLED = os.environ.get('EMAIL_CONFIRMATION_ENABLED', '1')
EXTERNAL_LOGIN_ENABLED = os.environ.get('EXTERNAL_LOGIN_ENABLED', '1')
EXTERNAL_LOGIN_PROVIDERS = os.environ.get('EXTERNAL_LOGIN_PROVIDERS',
                                          'Google,Facebook')
"""Comma-separated names of the external login providers on offer."""


#################### Mail ####################
SMTP_HOST = os.environ.get('SMTP_HOST', 'localhost')
SMTP_PORT = os.environ.get('SMTP_PORT', '25')
SMTP_USERNAME = os.environ.get('SMTP_USERNAME', None)
SMTP_PASSWORD = os.environ.get('SMTP_PASSWORD', None)
SMTP_USE_TLS = os.environ.get('SMTP_USE_TLS', '0')
MAIL_SENDER = os.environ.get('MAIL_SENDER',
                             f'noreply@{BASE_SERVER.split(":")[0]}')
MAIL_SENDER_NAME = os.environ.get('MAIL_SENDER_NAME', 'Identity Manager')


#################### Logging ####################
LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
LOG_JSON = os.environ.get('LOG_JSON', '1')


def as_dict() -> Dict[str, Any]:
    """Get the settings in this module as a config mapping."""
    return {key: value for key, value in globals().items()
            if key.isupper() and not key.startswith('_')}


def flag(config: Any, key: str, default: str = '0') -> bool:
    """Read a boolean setting that may be a bool, an int or a string."""
    value = config.get(key, default)
    if isinstance(value, str):
        return value.strip().lower() in ('1', 'true', 'yes', 'on')
    return bool(value)
