"""
Exceptions raised at the account orchestrator boundary.

Every failure reported by a collaborator is converted into one of these
kinds before it reaches the caller.
"""

from typing import Dict, Iterable, List, Optional


class AccountError(RuntimeError):
    """Base class for outcomes that end a workflow without success."""

    def __init__(self, message: str,
                 reasons: Optional[Iterable[str]] = None) -> None:
        super(AccountError, self).__init__(message)
        self.reasons: List[str] = list(reasons) if reasons else [message]


class ValidationError(AccountError):
    """Caller input is malformed; the caller may correct it and resubmit."""

    def __init__(self, errors: Dict[str, List[str]]) -> None:
        self.errors = errors
        reasons = [msg for messages in errors.values() for msg in messages]
        super(ValidationError, self).__init__('Invalid input', reasons)


class RegistrationError(AccountError):
    """The directory refused to create the account."""


class ResetError(AccountError):
    """The password could not be reset."""


class LinkingError(AccountError):
    """An external login could not be linked to a new account."""


class AuthenticationFailed(AccountError):
    """Invalid login attempt."""


class LockedOut(AccountError):
    """
    The account is locked out after too many failed sign-ins.

    Not a kind of :class:`AuthenticationFailed`.
    """


class InvalidRequest(AccountError):
    """A token or account reference could not be resolved."""


class InvalidCallback(AccountError):
    """An external login callback could not be correlated."""


class ExternalProviderError(AccountError):
    """The external login provider reported an error."""


class FeatureDisabled(AccountError):
    """The workflow is not enabled in this deployment."""


class Unavailable(AccountError):
    """A collaborator could not be reached."""


# Session transport.

class SessionCreationFailed(RuntimeError):
    """Failed to create a session in the session store."""


class SessionDeletionFailed(RuntimeError):
    """Failed to delete a session in the session store."""


class UnknownSession(RuntimeError):
    """Failed to locate a session in the session store."""


class InvalidToken(ValueError):
    """Token in request is not valid."""


class ExpiredToken(InvalidToken):
    """Session has expired."""
