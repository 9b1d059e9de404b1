"""Password verification, lockout and password reset."""

from typing import Optional, List
import logging

from ...domain import Account, Purpose, Result, SignInStatus
from .. import TokenProvider
from . import passwords, util
from .models import DBAccount, DBAccountPassword
from .passwords import PasswordPolicy, PasswordAuthenticationFailed

logger = logging.getLogger(__name__)


class SQLCredentialStore(object):
    """
    Credentials kept in the directory database.

    Lockout state lives on the account row. Failed attempts are counted
    while holding a lock on that row, so concurrent sign-ins for the same
    account are serialized here and nowhere else.
    """

    def __init__(self, db: util.Database, tokens: TokenProvider,
                 policy: Optional[PasswordPolicy] = None,
                 lockout_threshold: int = 5,
                 lockout_duration: int = 300) -> None:
        self._db = db
        self._tokens = tokens
        self._policy = policy or PasswordPolicy()
        self._lockout_threshold = lockout_threshold
        self._lockout_duration = lockout_duration

    def check_policy(self, password: str) -> List[str]:
        """Get the reasons, if any, that ``password`` is not acceptable."""
        return self._policy.check(password)

    def hash_password(self, password: str) -> str:
        return passwords.hash_password(password)

    def verify_password(self, account: Account,
                        password: str) -> SignInStatus:
        """
        Check a password, counting failures towards a lockout.

        Parameters
        ----------
        account : :class:`.Account`
        password : str
            Password (as entered).

        Returns
        -------
        :class:`.SignInStatus`
            ``LOCKED_OUT`` if the account is locked, or if this failure
            reached the threshold; ``FAILED`` for any other wrong password.

        """
        with self._db.transaction() as session:
            db_account: Optional[DBAccount] = (
                session.query(DBAccount)
                .filter(DBAccount.account_id == account.account_id)
                .with_for_update()
                .first()
            )
            if db_account is None:
                return SignInStatus.FAILED
            current = util.now()
            if db_account.lockout_end > current:
                logger.debug('Account %s is locked out', account.account_id)
                return SignInStatus.LOCKED_OUT

            db_pass: Optional[DBAccountPassword] = (
                session.query(DBAccountPassword)
                .filter(DBAccountPassword.account_id == account.account_id)
                .first()
            )
            try:
                if db_pass is None:
                    raise PasswordAuthenticationFailed('No password set')
                passwords.check_password(password, db_pass.password_enc)
            except PasswordAuthenticationFailed as e:
                logger.debug('Password check failed for %s: %s',
                             account.account_id, e)
                return self._access_failed(db_account, current)

            db_account.access_failed_count = 0
            db_account.lockout_end = 0
        return SignInStatus.SUCCESS

    def _access_failed(self, db_account: DBAccount,
                       current: int) -> SignInStatus:
        db_account.access_failed_count += 1
        if db_account.access_failed_count < self._lockout_threshold:
            return SignInStatus.FAILED
        logger.info('Locking out account %s for %i seconds',
                    db_account.account_id, self._lockout_duration)
        db_account.access_failed_count = 0
        db_account.lockout_end = current + self._lockout_duration
        return SignInStatus.LOCKED_OUT

    def reset_password(self, account: Account, token: str,
                       new_password: str) -> Result:
        """
        Replace the password of ``account`` if ``token`` allows it.

        The policy is checked before the token is validated, so that a
        rejected password does not use up the token.
        """
        errors = self.check_policy(new_password)
        if errors:
            return Result.failed(*errors)
        if not self._tokens.validate(account, Purpose.PASSWORD_RESET, token):
            return Result.failed('Invalid token.')

        with self._db.transaction() as session:
            db_pass = (
                session.query(DBAccountPassword)
                .filter(DBAccountPassword.account_id == account.account_id)
                .first()
            )
            if db_pass is None:
                db_pass = DBAccountPassword(account_id=account.account_id)
            db_pass.password_enc = passwords.hash_password(new_password)
            session.add(db_pass)
        logger.debug('Password reset for %s', account.account_id)
        return Result.success()
