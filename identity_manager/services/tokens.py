"""
Purpose tokens for e-mail confirmation and password reset.

A token is a JSON web token whose subject is the account and whose audience
is the purpose, so a token issued for one account or purpose cannot be
validated for another. Each token carries a unique ``jti``; validation
records it in a ledger table, and a token whose ``jti`` is already recorded
does not validate again.
"""

from datetime import datetime, timedelta
import logging
import uuid

import jwt
from pytz import UTC
from sqlalchemy.exc import IntegrityError

from ..domain import Account, Purpose
from .directory import util
from .directory.models import DBConsumedToken

logger = logging.getLogger(__name__)


class JWTTokenProvider(object):
    """Issues and validates single-use purpose tokens."""

    def __init__(self, db: util.Database, secret: str,
                 lifespan: int = 86400) -> None:
        self._db = db
        self._secret = secret
        self._lifespan = lifespan

    def issue(self, account: Account, purpose: Purpose) -> str:
        """Issue a token that authorizes ``purpose`` for ``account``."""
        issued_at = datetime.now(tz=UTC)
        claims = {
            'sub': account.account_id,
            'aud': purpose.value,
            'jti': uuid.uuid4().hex,
            'iat': issued_at,
            'exp': issued_at + timedelta(seconds=self._lifespan)
        }
        return jwt.encode(claims, self._secret, algorithm='HS256')

    def validate(self, account: Account, purpose: Purpose,
                 token: str) -> bool:
        """
        Validate and use up a token.

        Returns
        -------
        bool
            ``True`` only the first time a token issued for this account and
            purpose is presented before it expires.

        """
        try:
            claims = jwt.decode(token, self._secret, algorithms=['HS256'],
                                audience=purpose.value,
                                options={'require': ['sub', 'jti', 'exp']})
        except jwt.exceptions.InvalidTokenError as e:
            logger.debug('Rejected %s token: %s', purpose.value, e)
            return False
        if claims['sub'] != account.account_id:
            logger.debug('%s token is bound to another account',
                         purpose.value)
            return False
        return self._consume(claims['jti'], account, purpose)

    def _consume(self, jti: str, account: Account, purpose: Purpose) -> bool:
        try:
            with self._db.transaction() as session:
                if session.get(DBConsumedToken, jti) is not None:
                    logger.debug('%s token was already used', purpose.value)
                    return False
                session.add(DBConsumedToken(jti=jti,
                                            account_id=account.account_id,
                                            purpose=purpose.value,
                                            consumed_at=util.now()))
                session.flush()
        except IntegrityError:
            logger.debug('%s token was used concurrently', purpose.value)
            return False
        return True
