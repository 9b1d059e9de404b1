"""
Distributed session store.

Session data is held in redis as a JSON web token. When a session is
established, a cookie value is created (also a JSON web token) that contains
information sufficient to retrieve the session.
"""

import random
import uuid
from datetime import datetime, timedelta
import logging
from typing import Any, Mapping, Optional, Union

import dateutil.parser
import jwt
import redis
from pytz import UTC

from .. import config, domain
from ..exceptions import SessionCreationFailed, InvalidToken, \
    SessionDeletionFailed, UnknownSession, ExpiredToken

logger = logging.getLogger(__name__)


def _generate_nonce(length: int = 8) -> str:
    return ''.join([str(random.randint(0, 9)) for i in range(length)])


class SessionStore(object):
    """
    Manages a connection to Redis.

    In fact, the Redis client is thread safe and connections are attached
    at the time a command is executed. This class simply provides a container
    for configuration.
    """

    def __init__(self, host: str, port: int, db: int, secret: str,
                 duration: int = 36000, persistent_duration: int = 1209600,
                 token: Optional[str] = None, cluster: bool = False) -> None:
        """Open the connection to Redis."""
        logger.debug('New Redis connection at %s, port %s', host, port)
        self.r: Any
        if cluster:
            self.r = redis.cluster.RedisCluster(host=host, port=port,
                                                password=token)
        else:
            self.r = redis.StrictRedis(host=host, port=port, db=db,
                                       password=token)
        self._secret = secret
        self._duration = duration
        self._persistent_duration = persistent_duration

    def establish(self, account: domain.Account,
                  persistent: bool = False) -> domain.Session:
        """
        Create a new session for ``account``.

        Parameters
        ----------
        account : :class:`domain.Account`
        persistent : bool
            If ``True`` the session lasts for the persistent duration
            ("remember me"), otherwise for the regular duration.

        Returns
        -------
        :class:`.Session`

        Raises
        ------
        :class:`SessionCreationFailed`

        """
        duration = self._persistent_duration if persistent \
            else self._duration
        session_id = str(uuid.uuid4())
        start_time = datetime.now(tz=UTC)
        session = domain.Session(
            session_id=session_id,
            account=account,
            start_time=start_time,
            persistent=persistent,
            end_time=start_time + timedelta(seconds=duration),
            nonce=_generate_nonce()
        )
        try:
            self.r.set(session_id, self._encode(domain.to_dict(session)),
                       ex=duration)
        except redis.exceptions.ConnectionError as e:
            raise SessionCreationFailed(f'Connection failed: {e}') from e
        except Exception as e:
            raise SessionCreationFailed(f'Failed to create: {e}') from e
        return session

    def generate_cookie(self, session: domain.Session) -> str:
        """Generate a cookie from a :class:`domain.Session`."""
        if session.account is None or session.end_time is None:
            raise InvalidToken('Session has no account or no end time')
        return self._pack_cookie({
            'account_id': session.account.account_id,
            'session_id': session.session_id,
            'nonce': session.nonce,
            'expires': session.end_time.isoformat()
        })

    def clear(self, session: domain.Session) -> None:
        """Delete ``session``; the client is no longer signed in."""
        self.clear_by_id(session.session_id)

    def clear_by_id(self, session_id: str) -> None:
        """
        Delete a session in the key-value store by ID.

        Parameters
        ----------
        session_id : str
        """
        try:
            self.r.delete(session_id)
        except redis.exceptions.ConnectionError as e:
            raise SessionDeletionFailed(f'Connection failed: {e}') from e
        except Exception as e:
            raise SessionDeletionFailed(f'Failed to delete: {e}') from e

    def validate_session_against_cookie(self, session: domain.Session,
                                        cookie: str) -> None:
        """
        Validate session data against a cookie.

        Raises
        ------
        :class:`InvalidToken`
            Raised if the data in the cookie does not match the session data.
        """
        cookie_data = self._unpack_cookie(cookie)
        if session.account is None \
                or cookie_data['nonce'] != session.nonce \
                or session.account.account_id != cookie_data['account_id']:
            raise InvalidToken('Invalid token; likely a forgery')

    def load(self, cookie: str) -> domain.Session:
        """Load a session using a session cookie."""
        try:
            cookie_data = self._unpack_cookie(cookie)
            expires = dateutil.parser.parse(cookie_data['expires'])
            session_id = cookie_data['session_id']
        except (KeyError, ValueError) as e:
            raise InvalidToken('Token payload malformed') from e

        if expires <= datetime.now(tz=UTC):
            raise InvalidToken('Session has expired')

        session = self.load_by_id(session_id)
        if session.expired:
            raise ExpiredToken('Session has expired')
        self.validate_session_against_cookie(session, cookie)
        return session

    def load_by_id(self, session_id: str) -> domain.Session:
        """Get session data by session ID."""
        session_jwt: Union[str, bytes, None] = self.r.get(session_id)
        if not session_jwt:
            logger.debug('No such session: %s', session_id)
            raise UnknownSession(f'Failed to find session {session_id}')
        if isinstance(session_jwt, bytes):
            session_jwt = session_jwt.decode('ascii')
        return self._decode(session_jwt)

    def _encode(self, session_data: dict) -> str:
        return jwt.encode(session_data, self._secret, algorithm='HS256')

    def _decode(self, session_jwt: str) -> domain.Session:
        try:
            session: domain.Session = domain.from_dict(
                domain.Session,
                jwt.decode(session_jwt, self._secret, algorithms=['HS256'])
            )
        except jwt.exceptions.InvalidTokenError as e:
            raise InvalidToken('Invalid or corrupted session token') from e
        return session

    def _unpack_cookie(self, cookie: str) -> dict:
        try:
            data = dict(jwt.decode(cookie, self._secret,
                                   algorithms=['HS256']))
        except jwt.exceptions.InvalidTokenError as e:
            raise InvalidToken('Session cookie is malformed') from e
        return data

    def _pack_cookie(self, cookie_data: dict) -> str:
        return jwt.encode(cookie_data, self._secret, algorithm='HS256')


def get_session_store(settings: Mapping) -> SessionStore:
    """Get a new session store configured from ``settings``."""
    return SessionStore(
        settings.get('REDIS_HOST', 'localhost'),
        int(settings.get('REDIS_PORT', '6379')),
        int(settings.get('REDIS_DATABASE', '0')),
        settings['JWT_SECRET'],
        duration=int(settings.get('SESSION_DURATION', '36000')),
        persistent_duration=int(settings.get('PERSISTENT_SESSION_DURATION',
                                             '1209600')),
        token=settings.get('REDIS_TOKEN', None),
        cluster=config.flag(settings, 'REDIS_CLUSTER')
    )
