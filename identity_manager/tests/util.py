"""Testing helpers."""

from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Generator, List, Optional, Tuple
from unittest import TestCase, mock
import re
import uuid

from pytz import UTC
from sqlalchemy.pool import StaticPool

from ..domain import Account, Features, Result, Session
from ..exceptions import SessionCreationFailed
from ..external import CorrelationCodec
from ..orchestrator import AccountOrchestrator
from ..services.directory import Database, SQLCredentialStore, \
    SQLDirectoryStore, passwords
from ..services.tokens import JWTTokenProvider

SECRET = 'foosecret'


@contextmanager
def temporary_db(uri: str = 'sqlite://', create: bool = True,
                 drop: bool = True) -> Generator[Database, None, None]:
    """Provide an in-memory sqlite database for testing purposes."""
    db = Database(uri, poolclass=StaticPool,
                  connect_args={'check_same_thread': False})
    if create:
        db.create_all()
    try:
        yield db
    finally:
        if drop:
            db.drop_all()
        db.engine.dispose()


class FakeSessions(object):
    """Keeps sessions in memory, in place of redis."""

    def __init__(self) -> None:
        self.sessions = {}
        self.fail = False

    def establish(self, account: Account, persistent: bool = False) -> Session:
        if self.fail:
            raise SessionCreationFailed('Connection failed')
        start = datetime.now(tz=UTC)
        session = Session(session_id=str(uuid.uuid4()), start_time=start,
                          account=account, persistent=persistent,
                          end_time=start + timedelta(hours=1))
        self.sessions[session.session_id] = session
        return session

    def clear(self, session: Session) -> None:
        self.sessions.pop(session.session_id, None)


def sent_link(notifier: mock.MagicMock, index: int = -1) -> Tuple[str, str]:
    """Get the ``userId`` and ``code`` from a message handed to a notifier."""
    body = notifier.send.call_args_list[index][0][2]
    user_id = re.search(r'userId=([\w\-]+)', body).group(1)
    code = re.search(r'code=([\w\-.]+)', body).group(1)
    return user_id, code


class OrchestratorTestCase(TestCase):
    """Runs each test against a fresh directory database."""

    features = Features()
    providers = ['Google', 'Facebook']

    def setUp(self) -> None:
        patcher = mock.patch.object(passwords, 'ITERATIONS', 1000)
        patcher.start()
        self.addCleanup(patcher.stop)

        db_context = temporary_db()
        self.db = db_context.__enter__()
        self.addCleanup(db_context.__exit__, None, None, None)

        self.tokens = JWTTokenProvider(self.db, SECRET)
        self.credentials = SQLCredentialStore(self.db, self.tokens)
        self.directory = SQLDirectoryStore(self.db, self.credentials)
        self.notifier = mock.MagicMock()
        self.notifier.send.return_value = Result.success()
        self.sessions = FakeSessions()
        self.codec = CorrelationCodec(SECRET)
        self.orchestrator = self.build()
        self.orchestrator.bootstrap()

    def build(self, **kwargs) -> AccountOrchestrator:
        kwargs.setdefault('features', self.features)
        kwargs.setdefault('base_url', 'https://accounts.example.com')
        kwargs.setdefault('providers', self.providers)
        return AccountOrchestrator(self.directory, self.credentials,
                                   self.tokens, self.notifier, self.sessions,
                                   self.codec, **kwargs)

    def register(self, email: str = 'jane@example.com',
                 password: str = 'Secret123!',
                 role: Optional[str] = None, name: Optional[str] = None):
        return self.orchestrator.register({
            'email': email,
            'password': password,
            'confirm_password': password,
            'role_selected': role,
            'name': name
        })

    def roles_of(self, account: Account) -> List[str]:
        return [listing.role for listing in self.directory.list_accounts()
                if listing.account.account_id == account.account_id]
