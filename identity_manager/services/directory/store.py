"""Provide the directory of accounts, roles and external logins."""

from typing import Dict, Generator, List, Optional
from contextlib import contextmanager
import json
import logging

from retry import retry
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.session import Session

from ...domain import Account, AccountListing, Result
from ...exceptions import Unavailable
from .credentials import SQLCredentialStore
from .models import DBAccount, DBAccountPassword, DBAccountRole, DBRole, \
    DBExternalLogin
from . import util

logger = logging.getLogger(__name__)


def normalize(email: str) -> str:
    """E-mail addresses are unique regardless of case."""
    return email.strip().upper()


def _to_domain(db_account: DBAccount) -> Account:
    return Account(
        account_id=db_account.account_id,
        email=db_account.email,
        name=db_account.name,
        email_confirmed=bool(db_account.flag_email_confirmed)
    )


class SQLDirectoryStore(object):
    """
    Accounts, roles and external login links in a relational database.

    Uniqueness of e-mail addresses, role names and (provider, key) pairs is
    enforced by the database. A violation is reported as a failed
    :class:`.Result`, whether it is caught by the up-front lookup or, when
    two requests race, by the constraint itself.
    """

    def __init__(self, db: util.Database,
                 credentials: SQLCredentialStore) -> None:
        self._db = db
        self._credentials = credentials

    @contextmanager
    def transaction(self) -> Generator[Session, None, None]:
        """Group several operations into one unit of work."""
        with self._db.transaction() as session:
            yield session

    @retry(Unavailable, tries=3, delay=0.5, backoff=2)
    def find_by_email(self, email: str) -> Optional[Account]:
        """Get an account by e-mail address, ignoring case."""
        with self._db.transaction() as session:
            db_account = (
                session.query(DBAccount)
                .filter(DBAccount.normalized_email == normalize(email))
                .first()
            )
            return _to_domain(db_account) if db_account else None

    @retry(Unavailable, tries=3, delay=0.5, backoff=2)
    def find_by_id(self, account_id: str) -> Optional[Account]:
        with self._db.transaction() as session:
            db_account = session.get(DBAccount, account_id)
            return _to_domain(db_account) if db_account else None

    def create(self, account: Account, password: Optional[str]) -> Result:
        """
        Create an account.

        Parameters
        ----------
        account : :class:`.Account`
            Must carry its ``account_id``.
        password : str or None
            Accounts that sign in with an external login have no password.

        Returns
        -------
        :class:`.Result`
            Failed if the e-mail address is taken or the password is not
            acceptable to the credential store.

        """
        taken = Result.failed(f"Username '{account.email}' is already taken.")
        if password is not None:
            errors = self._credentials.check_policy(password)
            if errors:
                return Result.failed(*errors)
        try:
            with self._db.transaction() as session:
                exists = (
                    session.query(DBAccount.account_id)
                    .filter(DBAccount.normalized_email
                            == normalize(account.email))
                    .first()
                )
                if exists:
                    return taken
                session.add(DBAccount(
                    account_id=account.account_id,
                    email=account.email,
                    normalized_email=normalize(account.email),
                    name=account.name,
                    flag_email_confirmed=int(account.email_confirmed),
                    joined_date=util.now()
                ))
                if password is not None:
                    session.add(DBAccountPassword(
                        account_id=account.account_id,
                        password_enc=self._credentials.hash_password(password)
                    ))
                session.flush()
        except IntegrityError as e:
            logger.debug('Could not create %s: %s', account.account_id, e)
            return taken
        logger.debug('Created account %s', account.account_id)
        return Result.success()

    @retry(Unavailable, tries=3, delay=0.5, backoff=2)
    def role_exists(self, name: str) -> bool:
        with self._db.transaction() as session:
            return bool(
                session.query(DBRole.role_id)
                .filter(DBRole.name == name)
                .first()
            )

    def create_role(self, name: str) -> Result:
        try:
            with self._db.transaction() as session:
                session.add(DBRole(name=name))
                session.flush()
        except IntegrityError as e:
            logger.debug('Could not create role %s: %s', name, e)
            return Result.failed(f"Role name '{name}' is already taken.")
        logger.info('Created role %s', name)
        return Result.success()

    def roles(self) -> List[str]:
        """Get the names of all roles."""
        with self._db.transaction() as session:
            return [name for name, in
                    session.query(DBRole.name).order_by(DBRole.name)]

    def assign_role(self, account: Account, role_name: str) -> Result:
        try:
            with self._db.transaction() as session:
                db_role = (
                    session.query(DBRole)
                    .filter(DBRole.name == role_name)
                    .first()
                )
                if db_role is None:
                    return Result.failed(f"Role {role_name} does not exist.")
                session.add(DBAccountRole(account_id=account.account_id,
                                          role_id=db_role.role_id))
                session.flush()
        except IntegrityError as e:
            logger.debug('Could not assign %s to %s: %s', role_name,
                         account.account_id, e)
            return Result.failed(f"User already in role '{role_name}'.")
        return Result.success()

    def add_external_login(self, account: Account, provider: str,
                           key: str) -> Result:
        duplicate = Result.failed('A user with this login already exists.')
        try:
            with self._db.transaction() as session:
                if session.get(DBExternalLogin, (provider, key)) is not None:
                    return duplicate
                session.add(DBExternalLogin(provider=provider,
                                            provider_key=key,
                                            account_id=account.account_id,
                                            tokens='{}'))
                session.flush()
        except IntegrityError as e:
            logger.debug('Could not link %s login: %s', provider, e)
            return duplicate
        logger.debug('Linked %s login to %s', provider, account.account_id)
        return Result.success()

    @retry(Unavailable, tries=3, delay=0.5, backoff=2)
    def find_by_external_login(self, provider: str,
                               key: str) -> Optional[Account]:
        with self._db.transaction() as session:
            db_login = session.get(DBExternalLogin, (provider, key))
            if db_login is None:
                return None
            return _to_domain(db_login.account)

    def update_external_tokens(self, account: Account, provider: str,
                               tokens: Dict[str, str]) -> Result:
        """Store the tokens most recently issued by ``provider``."""
        with self._db.transaction() as session:
            db_login = (
                session.query(DBExternalLogin)
                .filter(DBExternalLogin.account_id == account.account_id)
                .filter(DBExternalLogin.provider == provider)
                .first()
            )
            if db_login is None:
                return Result.failed(f'No {provider} login is linked.')
            db_login.tokens = json.dumps(tokens)
        return Result.success()

    def external_tokens(self, account: Account,
                        provider: str) -> Dict[str, str]:
        """Get the tokens stored for a linked login."""
        with self._db.transaction() as session:
            db_login = (
                session.query(DBExternalLogin)
                .filter(DBExternalLogin.account_id == account.account_id)
                .filter(DBExternalLogin.provider == provider)
                .first()
            )
            if db_login is None:
                return {}
            tokens: Dict[str, str] = json.loads(db_login.tokens)
            return tokens

    def confirm_email(self, account: Account) -> Result:
        with self._db.transaction() as session:
            db_account = session.get(DBAccount, account.account_id)
            if db_account is None:
                return Result.failed('User does not exist.')
            db_account.flag_email_confirmed = 1
        return Result.success()

    def list_accounts(self) -> List[AccountListing]:
        """
        Get every account, with the name of its role.

        Accounts without a role are listed with the role ``"None"``.
        """
        with self._db.transaction() as session:
            db_accounts = (
                session.query(DBAccount)
                .order_by(DBAccount.joined_date, DBAccount.email)
                .all()
            )
            memberships = {
                account_id: name for account_id, name in
                session.query(DBAccountRole.account_id, DBRole.name)
                .join(DBRole, DBRole.role_id == DBAccountRole.role_id)
            }
            return [
                AccountListing(
                    account=_to_domain(db_account),
                    role=memberships.get(db_account.account_id, 'None')
                )
                for db_account in db_accounts
            ]
