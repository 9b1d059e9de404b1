"""
Correlation of external login round trips.

Two opaque values cross the client during an external login: the ``state``
that is sent to the provider with the challenge and comes back with the
callback, and the ``ticket`` that carries an unlinked external identity
through the confirmation form. Both are signed, expiring JSON web tokens.
"""

from datetime import datetime, timedelta
from typing import NamedTuple
import logging

import jwt
from pytz import UTC

from .domain import ExternalLoginInfo
from .exceptions import InvalidCallback

logger = logging.getLogger(__name__)

STATE = 'external-login-state'
TICKET = 'external-login-ticket'


class Correlation(NamedTuple):
    """What the challenge remembered about the round trip."""

    provider: str
    return_url: str


class PendingLink(NamedTuple):
    """The external identity that a confirmation form is completing."""

    login: ExternalLoginInfo
    return_url: str


class CorrelationCodec(object):
    """Signs and verifies external login state and tickets."""

    def __init__(self, secret: str, lifespan: int = 900) -> None:
        self._secret = secret
        self._lifespan = lifespan

    def _encode(self, audience: str, claims: dict) -> str:
        issued_at = datetime.now(tz=UTC)
        claims.update({
            'aud': audience,
            'iat': issued_at,
            'exp': issued_at + timedelta(seconds=self._lifespan)
        })
        return jwt.encode(claims, self._secret, algorithm='HS256')

    def _decode(self, audience: str, token: str) -> dict:
        if not token:
            raise InvalidCallback('Missing correlation state')
        try:
            return dict(jwt.decode(token, self._secret, algorithms=['HS256'],
                                   audience=audience))
        except jwt.exceptions.InvalidTokenError as e:
            logger.debug('Cannot correlate external login: %s', e)
            raise InvalidCallback('Cannot correlate external login') from e

    def encode_state(self, provider: str, return_url: str) -> str:
        return self._encode(STATE, {'provider': provider,
                                    'return_url': return_url})

    def decode_state(self, state: str) -> Correlation:
        claims = self._decode(STATE, state)
        try:
            return Correlation(provider=claims['provider'],
                               return_url=claims['return_url'])
        except KeyError as e:
            raise InvalidCallback('Incomplete correlation state') from e

    def encode_ticket(self, login: ExternalLoginInfo, return_url: str) -> str:
        return self._encode(TICKET, {
            'provider': login.provider,
            'provider_key': login.provider_key,
            'claims': login.claims or {},
            'tokens': login.tokens or {},
            'return_url': return_url
        })

    def decode_ticket(self, ticket: str) -> PendingLink:
        claims = self._decode(TICKET, ticket)
        try:
            login = ExternalLoginInfo(provider=claims['provider'],
                                      provider_key=claims['provider_key'],
                                      claims=claims.get('claims', {}),
                                      tokens=claims.get('tokens', {}))
            return PendingLink(login=login, return_url=claims['return_url'])
        except KeyError as e:
            raise InvalidCallback('Incomplete external login ticket') from e
