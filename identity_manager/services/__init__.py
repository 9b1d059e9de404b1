"""
Collaborators of the account orchestrator.

The orchestrator only depends on the protocols below. The modules in this
package provide implementations backed by SQLAlchemy (directory,
credentials, token ledger), SMTP (notifier) and redis (sessions).
"""

from contextlib import AbstractContextManager
from typing import List, Optional, Protocol, Dict, runtime_checkable

from ..domain import Account, AccountListing, Purpose, Result, Session, \
    SignInStatus


@runtime_checkable
class DirectoryStore(Protocol):
    """Persistence of accounts, roles and external login links."""

    def find_by_email(self, email: str) -> Optional[Account]:
        """Get an account by e-mail address, ignoring case."""
        ...

    def find_by_id(self, account_id: str) -> Optional[Account]:
        ...

    def create(self, account: Account, password: Optional[str]) -> Result:
        """Create an account, with a password unless it signs in externally."""
        ...

    def assign_role(self, account: Account, role_name: str) -> Result:
        ...

    def role_exists(self, name: str) -> bool:
        ...

    def create_role(self, name: str) -> Result:
        ...

    def add_external_login(self, account: Account, provider: str,
                           key: str) -> Result:
        ...

    def find_by_external_login(self, provider: str,
                               key: str) -> Optional[Account]:
        ...

    def update_external_tokens(self, account: Account, provider: str,
                               tokens: Dict[str, str]) -> Result:
        ...

    def confirm_email(self, account: Account) -> Result:
        ...

    def list_accounts(self) -> List[AccountListing]:
        ...

    def transaction(self) -> AbstractContextManager:
        """Group several operations into one unit of work."""
        ...


@runtime_checkable
class CredentialStore(Protocol):
    """Password verification and lockout state."""

    def verify_password(self, account: Account,
                        password: str) -> SignInStatus:
        """Check a password, counting failures towards a lockout."""
        ...

    def reset_password(self, account: Account, token: str,
                       new_password: str) -> Result:
        ...


@runtime_checkable
class TokenProvider(Protocol):
    """Issues and validates account-bound, single-purpose tokens."""

    def issue(self, account: Account, purpose: Purpose) -> str:
        ...

    def validate(self, account: Account, purpose: Purpose,
                 token: str) -> bool:
        ...


@runtime_checkable
class Notifier(Protocol):
    """Delivers messages to account holders."""

    def send(self, to_address: str, subject: str, body: str) -> Result:
        ...


@runtime_checkable
class SessionTransport(Protocol):
    """Hands sessions to the client and takes them away again."""

    def establish(self, account: Account, persistent: bool) -> Session:
        ...

    def clear(self, session: Session) -> None:
        ...
