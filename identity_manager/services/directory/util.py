"""Database connection and unit-of-work helpers."""

from typing import Any, Generator
from contextlib import contextmanager
from datetime import datetime
import logging
import threading

from pytz import UTC
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import scoped_session, sessionmaker
from sqlalchemy.orm.session import Session

from ...exceptions import Unavailable
from .models import Base

logger = logging.getLogger(__name__)


def now() -> int:
    """Get the current epoch/unix time."""
    return epoch(datetime.now(tz=UTC))


def epoch(t: datetime) -> int:
    """Convert a :class:`.datetime` to UNIX time."""
    return int(round(t.timestamp()))


class Database(object):
    """
    Connection to the directory database.

    Sessions are scoped to the current thread, so a single instance can be
    shared by every request handled by the process.
    """

    def __init__(self, uri: str, **engine_options: Any) -> None:
        """Create the engine for ``uri``."""
        logger.debug('New database engine for %s', uri.split('@')[-1])
        self.engine = create_engine(uri, **engine_options)
        self.session = scoped_session(
            sessionmaker(bind=self.engine, expire_on_commit=False)
        )
        self._local = threading.local()

    @contextmanager
    def transaction(self) -> Generator[Session, None, None]:
        """
        Context manager for a database transaction.

        Nested use joins the outermost transaction: only the outermost block
        commits, and an exception escaping any block rolls everything back.
        """
        session = self.session()
        depth = getattr(self._local, 'depth', 0)
        self._local.depth = depth + 1
        if depth:
            try:
                yield session
            finally:
                self._local.depth = depth
            return

        try:
            yield session
            session.commit()
        except OperationalError as e:
            logger.error('Database unavailable, rolling back: %s', str(e))
            session.rollback()
            raise Unavailable('Database unavailable') from e
        except Exception as e:
            logger.error('Commit failed, rolling back: %s', str(e))
            session.rollback()
            raise
        finally:
            self._local.depth = 0
            self.session.remove()

    def create_all(self) -> None:
        """Create all tables in the database."""
        Base.metadata.create_all(self.engine)

    def drop_all(self) -> None:
        """Drop all tables in the database."""
        Base.metadata.drop_all(self.engine)
