"""Defines account concepts for use by the account orchestrator."""

from typing import Any, Optional, NamedTuple, List, Dict, Callable, Mapping, \
    Union, Tuple, get_args, get_origin, get_type_hints
from datetime import datetime
from enum import Enum
from functools import partial
import dateutil.parser
from pytz import UTC

from . import config


class Role(Enum):
    """The closed set of roles that an account can hold."""

    ADMIN = 'Admin'
    USER = 'User'

    @classmethod
    def from_selection(cls, selected: Optional[str]) -> 'Role':
        """
        Get the role for a value chosen by the registering user.

        Only the literal ``"Admin"`` selects :attr:`Role.ADMIN`; anything
        else, including no selection at all, is :attr:`Role.USER`.
        """
        if selected == cls.ADMIN.value:
            return cls.ADMIN
        return cls.USER


class Purpose(Enum):
    """What a purpose token authorizes."""

    EMAIL_CONFIRM = 'EmailConfirmation'
    PASSWORD_RESET = 'ResetPassword'


class SignInStatus(Enum):
    """Result of checking a password with the credential store."""

    SUCCESS = 'success'
    LOCKED_OUT = 'locked_out'
    FAILED = 'failed'


class Outcome(Enum):
    """Fixed confirmation outcomes of workflows that return no payload."""

    FORGOT_PASSWORD_CONFIRMATION = 'ForgotPasswordConfirmation'
    RESET_PASSWORD_CONFIRMATION = 'ResetPasswordConfirmation'
    CONFIRMED = 'ConfirmEmail'


class LinkState(Enum):
    """Where an external login callback left the user."""

    LINKED = 'linked'
    UNLINKED = 'unlinked'


class Account(NamedTuple):
    """A registered identity."""

    email: str
    """Primary e-mail address. Also the login identifier."""

    account_id: Optional[str] = None
    """Unique identifier for the account."""

    name: Optional[str] = None
    """Display name."""

    email_confirmed: bool = False
    """Whether or not the e-mail address has been confirmed."""


class AccountListing(NamedTuple):
    """An account together with the name of the role it holds."""

    account: Account
    role: str = 'None'


class ExternalLoginInfo(NamedTuple):
    """An identity asserted by an external login provider."""

    provider: str
    """Name of the provider, e.g. ``Google``."""

    provider_key: str
    """The provider's identifier for the user."""

    claims: Optional[Dict[str, Any]] = None
    """Claims about the user issued by the provider."""

    tokens: Optional[Dict[str, str]] = None
    """Access/refresh tokens issued by the provider."""

    @property
    def email(self) -> Optional[str]:
        """The e-mail address asserted by the provider, if any."""
        value: Optional[str] = (self.claims or {}).get('email')
        return value

    @property
    def name(self) -> Optional[str]:
        """The display name asserted by the provider, if any."""
        value: Optional[str] = (self.claims or {}).get('name')
        return value


class Session(NamedTuple):
    """An authenticated session for an :class:`.Account`."""

    session_id: str
    """Unique identifier for the session."""

    start_time: datetime
    """The ISO-8601 datetime when the session was created."""

    account: Optional[Account] = None
    """The account for which the session was created."""

    persistent: bool = False
    """Whether the session should outlive the browser ("remember me")."""

    end_time: Optional[datetime] = None
    """The ISO-8601 datetime when the session ends."""

    nonce: Optional[str] = None
    """A pseudo-random nonce generated when the session was created."""

    @property
    def expired(self) -> bool:
        """Expired if the current time is later than :attr:`.end_time`."""
        return bool(self.end_time is not None
                    and datetime.now(tz=UTC) >= self.end_time)

    @property
    def expires(self) -> Optional[int]:
        """
        Number of seconds until the session expires.

        If the session is already expired, returns 0.
        """
        if self.end_time is None:
            return None
        duration = (self.end_time - datetime.now(tz=UTC)).total_seconds()
        return int(max(duration, 0))


class Result(NamedTuple):
    """Success or failure of a collaborator operation, with reasons."""

    succeeded: bool
    errors: Tuple[str, ...] = ()

    @classmethod
    def success(cls) -> 'Result':
        return cls(True)

    @classmethod
    def failed(cls, *errors: str) -> 'Result':
        return cls(False, errors)


class Features(NamedTuple):
    """Capabilities that differ between deployments."""

    role_management: bool = True
    email_confirmation: bool = True
    external_login: bool = True

    @classmethod
    def from_config(cls, settings: Mapping) -> 'Features':
        """Read the capability flags from a config mapping."""
        return cls(
            role_management=config.flag(settings, 'ROLE_MANAGEMENT_ENABLED',
                                        '1'),
            email_confirmation=config.flag(settings,
                                           'EMAIL_CONFIRMATION_ENABLED', '1'),
            external_login=config.flag(settings, 'EXTERNAL_LOGIN_ENABLED', '1')
        )


class Registration(NamedTuple):
    """A completed registration."""

    account: Account
    role: Optional[Role]
    """The single role assigned, or ``None`` if roles are not managed."""

    session: Session
    confirmation_sent: bool = False
    """Whether an e-mail confirmation message was handed to the notifier."""


class ExternalChallenge(NamedTuple):
    """A challenge to send the user to an external login provider."""

    provider: str
    state: str
    """Opaque correlation state to round-trip through the provider."""

    return_url: str


class PendingExternalLogin(NamedTuple):
    """An external identity waiting for the user to confirm a new account."""

    provider: str
    provider_key: str
    email: Optional[str]
    """Suggested e-mail address, from the provider's claims."""

    name: Optional[str]
    """Suggested display name, from the provider's claims."""

    ticket: str
    """Opaque, signed reference to this pending login."""

    return_url: str


class ExternalSignIn(NamedTuple):
    """The state reached by an external login callback."""

    state: LinkState
    return_url: str
    session: Optional[Session] = None
    """Set when :attr:`state` is :attr:`LinkState.LINKED`."""

    pending: Optional[PendingExternalLogin] = None
    """Set when :attr:`state` is :attr:`LinkState.UNLINKED`."""


# Helpers and private functions.


def to_dict(obj: tuple) -> dict:
    """
    Generate a dict representation of a NamedTuple instance.

    This just uses the built-in ``_asdict`` method on the intance, but also
    calls this on any child NamedTuple instances (recursively) so that the
    entire tree is cast to ``dict``.

    Parameters
    ----------
    obj : tuple
        A NamedTuple instance.

    Returns
    -------
    dict

    """
    if not hasattr(obj, '_asdict'):  # NamedTuple-generated classes have this.
        return {}
    data = obj._asdict()  # type: ignore
    _data = {}

    def _cast(obj: Any) -> Any:
        if hasattr(obj, '_asdict'):
            obj = to_dict(obj)
        elif isinstance(obj, datetime):
            obj = obj.isoformat()
        elif isinstance(obj, Enum):
            obj = obj.value
        elif isinstance(obj, list):
            obj = [_cast(o) for o in obj]
        return obj

    for key, value in data.items():
        _data[key] = _cast(value)
    return _data


def from_dict(cls: type, data: dict) -> Any:
    """
    Generate a NamedTuple instance from a dict, with recursion.

    This is the inverse of :func:`to_dict`. Fields typed with another
    NamedTuple class (optionally wrapped in ``Optional``) are instantiated
    from the nested dict; datetime fields are parsed from ISO-8601 strings.

    Parameters
    ----------
    cls: type
        Any NamedTuple class.

    data: dict
        Data with which to instantiate ``cls`` and its children.

    Returns
    -------
    NamedTuple
        An instance of ``cls``.
    """
    _data = {}
    for field, field_type in get_type_hints(cls).items():
        if field not in data:
            continue
        value = data[field]
        target_type = _get_cast_type(field_type, value)
        if target_type:
            value = target_type(value)
        _data[field] = value
    return cls(**_data)


def _is_a_namedtuple(field_type: Any) -> bool:
    """Determine whether or not a field type is a NamedTuple class."""
    return isinstance(field_type, type) and hasattr(field_type, '_fields')


def _candidate_types(field_type: Any) -> List[Any]:
    """Unwrap ``Union``/``Optional`` into the types it admits."""
    if get_origin(field_type) is Union:
        return [t for t in get_args(field_type) if t is not type(None)]
    return [field_type]


def _get_cast_type(field_type: Any, value: Any) -> Optional[Callable]:
    """Get a casting callable for a field type/value."""
    if value is None:
        return None
    for candidate in _candidate_types(field_type):
        if type(value) is dict and _is_a_namedtuple(candidate):
            return partial(from_dict, candidate)
        if type(value) is str and candidate is datetime:
            return dateutil.parser.parse
        if isinstance(candidate, type) and issubclass(candidate, Enum) \
                and not isinstance(value, Enum):
            return candidate
    return None
