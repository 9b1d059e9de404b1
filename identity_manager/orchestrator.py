"""
The account orchestrator.

Turns caller input into accounts, role assignments, confirmed e-mail
addresses and sessions. Five workflows are provided: registration, sign in,
password recovery, e-mail confirmation and external login linking.

Each workflow checks the shape of the input with a form from
:mod:`.forms`, delegates to the collaborators in :mod:`.services`, and
either returns a payload from :mod:`.domain` or raises one of the kinds in
:mod:`.exceptions`. Establishing a session is always the last step of a
successful workflow.
"""

from typing import Any, Iterable, List, Mapping, Optional, Pattern, Type, \
    Union
from urllib.parse import urlencode
import logging
import uuid

from markupsafe import Markup

from . import forms
from .domain import Account, AccountListing, ExternalChallenge, \
    ExternalLoginInfo, ExternalSignIn, Features, LinkState, Outcome, \
    PendingExternalLogin, Purpose, Registration, Role, Session, SignInStatus
from .exceptions import AccountError, AuthenticationFailed, \
    ExternalProviderError, FeatureDisabled, InvalidCallback, \
    InvalidRequest, LinkingError, LockedOut, RegistrationError, ResetError, \
    SessionCreationFailed, SessionDeletionFailed, Unavailable, \
    ValidationError
from .external import CorrelationCodec
from .next_page import good_next_page
from .services import CredentialStore, DirectoryStore, Notifier, \
    SessionTransport, TokenProvider

logger = logging.getLogger(__name__)

INVALID_LOGIN = 'Invalid login attempt.'
LOCKED_OUT = 'This account has been locked out, please try again later.'


class AccountOrchestrator(object):
    """
    Composes the directory, credential, token, notifier and session
    collaborators into the account workflows.

    Collaborators are handed in at construction and never replaced; the
    orchestrator keeps no other state between calls.
    """

    def __init__(self, directory: DirectoryStore,
                 credentials: CredentialStore, tokens: TokenProvider,
                 notifier: Notifier, sessions: SessionTransport,
                 codec: CorrelationCodec, *,
                 features: Features = Features(),
                 base_url: str = '',
                 confirm_email_path: str = '/account/confirm-email',
                 reset_password_path: str = '/account/reset-password',
                 providers: Iterable[str] = (),
                 default_return_url: str = '/',
                 return_url_pattern: Union[str, Pattern] = r'^\/[^\/\\]',
                 password_min_length: int = 4,
                 password_max_length: int = 100) -> None:
        self._directory = directory
        self._credentials = credentials
        self._tokens = tokens
        self._notifier = notifier
        self._sessions = sessions
        self._codec = codec
        self._features = features
        self._base_url = base_url.rstrip('/')
        self._confirm_email_path = confirm_email_path
        self._reset_password_path = reset_password_path
        self._providers = frozenset(providers)
        self._default_return_url = default_return_url
        self._return_url_pattern = return_url_pattern
        self._password_bounds = {'min_length': password_min_length,
                                 'max_length': password_max_length}

    @property
    def features(self) -> Features:
        return self._features

    @property
    def providers(self) -> List[str]:
        """Names of the external login providers on offer."""
        if not self._features.external_login:
            return []
        return sorted(self._providers)

    # Roles.

    def bootstrap(self) -> None:
        """Prepare the directory when the service starts."""
        if self._features.role_management:
            self.ensure_roles()

    def ensure_roles(self) -> None:
        """
        Make sure that every :class:`.Role` exists in the directory.

        Safe to run concurrently: the directory's uniqueness constraint on
        role names decides which of several racing creations wins, and a
        lost race is not an error.
        """
        for role in Role:
            if self._directory.role_exists(role.value):
                continue
            result = self._directory.create_role(role.value)
            if result.succeeded:
                logger.info('Seeded role %s', role.value)
            elif not self._directory.role_exists(role.value):
                raise Unavailable(f'Cannot create role {role.value}',
                                  result.errors)

    def available_roles(self) -> List[str]:
        """Role names that a registering user may choose from."""
        if not self._features.role_management:
            return []
        return [role.value for role in Role]

    def list_accounts(self) -> List[AccountListing]:
        """All accounts, each with the name of its role."""
        return self._directory.list_accounts()

    def safe_return_url(self, return_url: Optional[str]) -> str:
        """Get ``return_url`` if it is local, otherwise the default."""
        return good_next_page(return_url, self._default_return_url,
                              self._return_url_pattern)

    # Registration.

    def register(self, data: Mapping) -> Registration:
        """
        Register a new account and sign it in.

        Parameters
        ----------
        data : Mapping
            ``email``, ``password``, ``confirm_password``, and optionally
            ``name`` and ``role_selected``.

        Returns
        -------
        :class:`.Registration`

        Raises
        ------
        :class:`.ValidationError`
            The input is malformed.
        :class:`.RegistrationError`
            The directory refused the account, e.g. the e-mail address is
            already taken. No session is created and no e-mail is sent.

        """
        form = forms.bind(forms.RegistrationForm, data,
                          **self._password_bounds)
        account = Account(account_id=str(uuid.uuid4()),
                          email=form.email.data.strip(),
                          name=form.name.data or None)
        role: Optional[Role] = None
        if self._features.role_management:
            role = Role.from_selection(form.role_selected.data)
            self._require_role(role)

        logger.debug('Registering account %s', account.account_id)
        with self._directory.transaction():
            result = self._directory.create(account, form.password.data)
            if not result.succeeded:
                raise RegistrationError('Registration failed', result.errors)
            if role is not None:
                self._assign(account, role, RegistrationError)

        confirmation_sent = False
        if self._features.email_confirmation:
            confirmation_sent = self._send_confirmation(account)
        session = self._establish(account, persistent=False)
        return Registration(account=account, role=role, session=session,
                            confirmation_sent=confirmation_sent)

    def _require_role(self, role: Role) -> None:
        if not self._directory.role_exists(role.value):
            logger.info('Role %s is missing; seeding roles', role.value)
            self.ensure_roles()

    def _assign(self, account: Account, role: Role,
                error: Type[AccountError]) -> None:
        result = self._directory.assign_role(account, role.value)
        if not result.succeeded:
            raise error(f'Could not assign role {role.value}', result.errors)

    def _send_confirmation(self, account: Account) -> bool:
        token = self._tokens.issue(account, Purpose.EMAIL_CONFIRM)
        url = self._callback(self._confirm_email_path,
                             userId=account.account_id, code=token)
        body = Markup('Please confirm your account by clicking here'
                      ' <a href="{}">link</a>').format(url)
        return self._notify(account.email, 'Confirm your account', body)

    # Sign in and sign out.

    def sign_in(self, data: Mapping) -> Session:
        """
        Sign in with an e-mail address and password.

        Parameters
        ----------
        data : Mapping
            ``email``, ``password`` and optionally ``remember_me``.

        Returns
        -------
        :class:`.Session`
            Persistent if the user asked to be remembered.

        Raises
        ------
        :class:`.ValidationError`
        :class:`.LockedOut`
            Too many failed attempts; the account is locked for a while.
        :class:`.AuthenticationFailed`
            Wrong e-mail address or password. The two are not told apart.

        """
        form = forms.bind(forms.LoginForm, data)
        account = self._directory.find_by_email(form.email.data)
        if account is None:
            logger.debug('Sign in failed: no such account')
            raise AuthenticationFailed(INVALID_LOGIN)

        status = self._credentials.verify_password(account,
                                                   form.password.data)
        if status is SignInStatus.LOCKED_OUT:
            logger.info('Account %s is locked out', account.account_id)
            raise LockedOut(LOCKED_OUT)
        if status is not SignInStatus.SUCCESS:
            logger.debug('Sign in failed for %s', account.account_id)
            raise AuthenticationFailed(INVALID_LOGIN)
        return self._establish(account, persistent=bool(form.remember_me.data))

    def sign_out(self, session: Session) -> None:
        """End ``session``."""
        try:
            self._sessions.clear(session)
        except SessionDeletionFailed as e:
            logger.debug('Sign out failed: %s', e)

    def _establish(self, account: Account, persistent: bool) -> Session:
        try:
            session = self._sessions.establish(account, persistent)
        except SessionCreationFailed as e:
            logger.error('Could not create session: %s', e)
            raise Unavailable('Cannot sign in') from e
        logger.debug('Created session %s', session.session_id)
        return session

    # Password recovery.

    def forgot_password(self, data: Mapping) -> Outcome:
        """
        Send a password reset link.

        The outcome is the same whether or not an account exists for the
        address; a link is only issued and sent if it does.
        """
        form = forms.bind(forms.ForgotPasswordForm, data)
        account = self._directory.find_by_email(form.email.data)
        if account is None:
            logger.debug('Password reset requested for unknown address')
            return Outcome.FORGOT_PASSWORD_CONFIRMATION

        token = self._tokens.issue(account, Purpose.PASSWORD_RESET)
        url = self._callback(self._reset_password_path,
                             userId=account.account_id, code=token)
        body = Markup('Please reset your password by clicking here'
                      ' <a href="{}">link</a>').format(url)
        self._notify(account.email, 'Reset Password', body)
        return Outcome.FORGOT_PASSWORD_CONFIRMATION

    def reset_password(self, data: Mapping) -> Outcome:
        """
        Choose a new password with a reset code.

        Parameters
        ----------
        data : Mapping
            ``email``, ``code``, ``password`` and ``confirm_password``.

        Raises
        ------
        :class:`.ValidationError`
        :class:`.ResetError`
            The code is not valid for this account, or the credential store
            rejected the password. The password is unchanged.

        """
        form = forms.bind(forms.ResetPasswordForm, data,
                          **self._password_bounds)
        account = self._directory.find_by_email(form.email.data)
        if account is None:
            logger.debug('Password reset for unknown address')
            return Outcome.RESET_PASSWORD_CONFIRMATION

        result = self._credentials.reset_password(account, form.code.data,
                                                  form.password.data)
        if not result.succeeded:
            raise ResetError('Password reset failed', result.errors)
        return Outcome.RESET_PASSWORD_CONFIRMATION

    # E-mail confirmation.

    def confirm_email(self, account_id: Optional[str],
                      token: Optional[str]) -> Outcome:
        """
        Confirm the e-mail address of an account.

        Confirming an address that is already confirmed succeeds, as long
        as the token is valid. A token can only be used once.

        Raises
        ------
        :class:`.InvalidRequest`
            Missing parameters, unknown account, or a token that is not
            valid for this account and purpose.

        """
        if not self._features.email_confirmation:
            raise FeatureDisabled('E-mail confirmation is not enabled')
        if not account_id or not token:
            raise InvalidRequest('Missing user id or code')

        account = self._directory.find_by_id(account_id)
        if account is None:
            logger.debug('Confirmation for unknown account')
            raise InvalidRequest('Invalid confirmation request')
        if not self._tokens.validate(account, Purpose.EMAIL_CONFIRM, token):
            raise InvalidRequest('Invalid confirmation request')

        if not account.email_confirmed:
            result = self._directory.confirm_email(account)
            if not result.succeeded:
                raise InvalidRequest('Invalid confirmation request',
                                     result.errors)
        logger.debug('Confirmed e-mail address of %s', account.account_id)
        return Outcome.CONFIRMED

    # External login.

    def challenge(self, provider: str,
                  return_url: Optional[str] = None) -> ExternalChallenge:
        """
        Start an external login with ``provider``.

        The returned ``state`` must be sent to the provider, and handed back
        to :meth:`external_callback` when the provider returns the user.
        """
        self._require_external_login()
        if provider not in self._providers:
            raise ValidationError({'provider': [
                f'Unknown login provider {provider}.'
            ]})
        return_url = self.safe_return_url(return_url)
        state = self._codec.encode_state(provider, return_url)
        logger.debug('Issued %s challenge', provider)
        return ExternalChallenge(provider=provider, state=state,
                                 return_url=return_url)

    def external_callback(self, state: Optional[str],
                          login: Optional[ExternalLoginInfo] = None,
                          remote_error: Optional[str] = None) \
            -> ExternalSignIn:
        """
        Handle the return from an external login provider.

        Parameters
        ----------
        state : str
            The ``state`` of the :class:`.ExternalChallenge`.
        login : :class:`.ExternalLoginInfo`
            The identity resolved from the provider's response, if any.
        remote_error : str
            Error reported by the provider, if any.

        Returns
        -------
        :class:`.ExternalSignIn`
            ``LINKED`` with a session if the identity belongs to an account;
            otherwise ``UNLINKED`` with a :class:`.PendingExternalLogin` for
            :meth:`confirm_external_login`.

        Raises
        ------
        :class:`.ExternalProviderError`
        :class:`.InvalidCallback`
            The state cannot be verified, or no identity was resolved.
        :class:`.LinkingError`
            The provider's tokens could not be stored.

        """
        self._require_external_login()
        if remote_error:
            logger.info('External provider error: %s', remote_error)
            raise ExternalProviderError(
                f'Error from external provider: {remote_error}'
            )
        correlation = self._codec.decode_state(state or '')
        if login is None or login.provider != correlation.provider:
            raise InvalidCallback('No external login information')

        account = self._directory.find_by_external_login(login.provider,
                                                         login.provider_key)
        if account is not None:
            if login.tokens:
                self._store_tokens(account, login)
            session = self._establish(account, persistent=False)
            logger.debug('Signed in %s with %s', account.account_id,
                         login.provider)
            return ExternalSignIn(state=LinkState.LINKED,
                                  return_url=correlation.return_url,
                                  session=session)

        logger.debug('No account linked to this %s login', login.provider)
        pending = PendingExternalLogin(
            provider=login.provider,
            provider_key=login.provider_key,
            email=login.email,
            name=login.name,
            ticket=self._codec.encode_ticket(login, correlation.return_url),
            return_url=correlation.return_url
        )
        return ExternalSignIn(state=LinkState.UNLINKED,
                              return_url=correlation.return_url,
                              pending=pending)

    def confirm_external_login(self, ticket: Optional[str],
                               data: Mapping) -> ExternalSignIn:
        """
        Create an account for a pending external login and sign it in.

        The account, its role and the link are created in one unit of work:
        if any of them fails, none of them remains.

        Parameters
        ----------
        ticket : str
            The ``ticket`` of the :class:`.PendingExternalLogin`.
        data : Mapping
            ``email`` and ``name`` confirmed by the user.

        Raises
        ------
        :class:`.InvalidCallback`
        :class:`.ValidationError`
        :class:`.LinkingError`

        """
        self._require_external_login()
        pending = self._codec.decode_ticket(ticket or '')
        form = forms.bind(forms.ExternalLoginConfirmationForm, data)
        login = pending.login
        email = form.email.data.strip()
        account = Account(
            account_id=str(uuid.uuid4()),
            email=email,
            name=form.name.data,
            email_confirmed=bool(login.email)
            and login.email.strip().lower() == email.lower()
        )
        role: Optional[Role] = None
        if self._features.role_management:
            role = Role.USER
            self._require_role(role)

        with self._directory.transaction():
            result = self._directory.create(account, None)
            if not result.succeeded:
                raise LinkingError('Could not create account', result.errors)
            if role is not None:
                self._assign(account, role, LinkingError)
            result = self._directory.add_external_login(
                account, login.provider, login.provider_key
            )
            if not result.succeeded:
                raise LinkingError('Could not link login', result.errors)
            if login.tokens:
                self._store_tokens(account, login)

        logger.debug('Linked %s login to new account %s', login.provider,
                     account.account_id)
        session = self._establish(account, persistent=False)
        return ExternalSignIn(state=LinkState.LINKED,
                              return_url=pending.return_url,
                              session=session)

    def _require_external_login(self) -> None:
        if not self._features.external_login:
            raise FeatureDisabled('External login is not enabled')

    def _store_tokens(self, account: Account,
                      login: ExternalLoginInfo) -> None:
        result = self._directory.update_external_tokens(
            account, login.provider, login.tokens or {}
        )
        if not result.succeeded:
            raise LinkingError('Could not store external tokens',
                               result.errors)

    # Notification.

    def _callback(self, path: str, **params: str) -> str:
        return f'{self._base_url}{path}?{urlencode(params)}'

    def _notify(self, to_address: str, subject: str, body: Any) -> bool:
        # Delivery problems never fail the workflow that sends the message.
        try:
            result = self._notifier.send(to_address, subject, str(body))
        except Exception as e:
            logger.exception('Notifier failed on "%s": %s', subject, e)
            return False
        if not result.succeeded:
            logger.warning('Could not send "%s": %s', subject,
                           '; '.join(result.errors))
        return result.succeeded
