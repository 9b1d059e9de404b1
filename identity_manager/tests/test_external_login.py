"""Tests for signing in with an external login provider."""

from unittest import mock

from ..domain import ExternalLoginInfo, Features, LinkState, Result, Role
from ..exceptions import AuthenticationFailed, ExternalProviderError, \
    FeatureDisabled, InvalidCallback, LinkingError, ValidationError
from .util import OrchestratorTestCase

GOOGLE = ExternalLoginInfo(
    provider='Google',
    provider_key='123',
    claims={'email': 'jane@example.com', 'name': 'Jane Doe'},
    tokens={'access_token': 'ya29.foo'}
)


class TestChallenge(OrchestratorTestCase):
    def test_challenge(self):
        challenge = self.orchestrator.challenge('Google', '/manage')
        self.assertEqual(challenge.provider, 'Google')
        self.assertEqual(challenge.return_url, '/manage')
        self.assertTrue(bool(challenge.state))

    def test_unknown_provider(self):
        with self.assertRaises(ValidationError) as caught:
            self.orchestrator.challenge('Myspace')
        self.assertIn('provider', caught.exception.errors)

    def test_return_url_elsewhere(self):
        """Return URLs on other sites are replaced with the default."""
        for url in ['https://evil.example.net/', '//evil.example.net/',
                    '/\\evil.example.net', None]:
            challenge = self.orchestrator.challenge('Google', url)
            self.assertEqual(challenge.return_url, '/', f'{url!r} is refused')

    def test_providers(self):
        self.assertEqual(self.orchestrator.providers, ['Facebook', 'Google'])


class TestCallback(OrchestratorTestCase):
    """The provider returns the user with an external identity."""

    def setUp(self):
        super(TestCallback, self).setUp()
        self.state = self.orchestrator.challenge('Google', '/manage').state

    def test_unlinked(self):
        """An unknown identity must be confirmed before a session exists."""
        result = self.orchestrator.external_callback(self.state, GOOGLE)
        self.assertEqual(result.state, LinkState.UNLINKED)
        self.assertIsNone(result.session)
        self.assertEqual(result.return_url, '/manage')
        self.assertEqual(result.pending.provider, 'Google')
        self.assertEqual(result.pending.provider_key, '123')
        self.assertEqual(result.pending.email, 'jane@example.com')
        self.assertEqual(result.pending.name, 'Jane Doe')
        self.assertEqual(self.sessions.sessions, {})
        self.assertEqual(self.orchestrator.list_accounts(), [])

    def test_remote_error(self):
        with self.assertRaises(ExternalProviderError) as caught:
            self.orchestrator.external_callback(self.state, GOOGLE,
                                                remote_error='access_denied')
        self.assertEqual(caught.exception.reasons,
                         ['Error from external provider: access_denied'])

    def test_no_login(self):
        with self.assertRaises(InvalidCallback):
            self.orchestrator.external_callback(self.state, None)

    def test_bad_state(self):
        for state in [None, '', 'foo', self.codec.encode_ticket(GOOGLE, '/')]:
            with self.assertRaises(InvalidCallback):
                self.orchestrator.external_callback(state, GOOGLE)

    def test_provider_mismatch(self):
        facebook = GOOGLE._replace(provider='Facebook')
        with self.assertRaises(InvalidCallback):
            self.orchestrator.external_callback(self.state, facebook)


class TestConfirmExternalLogin(OrchestratorTestCase):
    """A new account is created and linked to the external identity."""

    def setUp(self):
        super(TestConfirmExternalLogin, self).setUp()
        state = self.orchestrator.challenge('Google', '/manage').state
        self.pending = self.orchestrator.external_callback(state,
                                                           GOOGLE).pending

    def confirm(self, email='jane@example.com', name='Jane Doe'):
        return self.orchestrator.confirm_external_login(
            self.pending.ticket, {'email': email, 'name': name}
        )

    def test_confirm(self):
        result = self.confirm()
        self.assertEqual(result.state, LinkState.LINKED)
        self.assertEqual(result.return_url, '/manage')
        account = result.session.account
        self.assertEqual(account.email, 'jane@example.com')
        self.assertTrue(account.email_confirmed,
                        'The provider vouches for the address')
        self.assertEqual(self.roles_of(account), [Role.USER.value])
        self.assertEqual(
            self.directory.find_by_external_login('Google', '123'), account
        )
        self.assertEqual(self.directory.external_tokens(account, 'Google'),
                         {'access_token': 'ya29.foo'})

    def test_other_address(self):
        """An address that the provider did not vouch for is unconfirmed."""
        account = self.confirm(email='jd@example.com').session.account
        self.assertFalse(account.email_confirmed)

    def test_sign_in_again(self):
        """Once linked, the identity signs in directly."""
        account = self.confirm().session.account
        state = self.orchestrator.challenge('Google').state
        refreshed = GOOGLE._replace(tokens={'access_token': 'ya29.bar'})
        result = self.orchestrator.external_callback(state, refreshed)

        self.assertEqual(result.state, LinkState.LINKED)
        self.assertEqual(result.session.account.account_id,
                         account.account_id)
        self.assertIsNone(result.pending)
        self.assertEqual(self.directory.external_tokens(account, 'Google'),
                         {'access_token': 'ya29.bar'})

    def test_no_password(self):
        self.confirm()
        with self.assertRaises(AuthenticationFailed):
            self.orchestrator.sign_in({'email': 'jane@example.com',
                                       'password': 'Secret123!'})

    def test_email_taken(self):
        self.register()
        sessions = dict(self.sessions.sessions)
        with self.assertRaises(LinkingError) as caught:
            self.confirm()
        self.assertEqual(caught.exception.reasons,
                         ["Username 'jane@example.com' is already taken."])
        self.assertIsNone(
            self.directory.find_by_external_login('Google', '123')
        )
        self.assertEqual(self.sessions.sessions, sessions)

    def test_link_fails(self):
        """Nothing is kept if the link cannot be added."""
        failed = Result.failed('A user with this login already exists.')
        with mock.patch.object(self.directory, 'add_external_login',
                               return_value=failed):
            with self.assertRaises(LinkingError) as caught:
                self.confirm()
        self.assertEqual(caught.exception.reasons,
                         ['A user with this login already exists.'])
        self.assertIsNone(self.directory.find_by_email('jane@example.com'))
        self.assertEqual(self.orchestrator.list_accounts(), [])
        self.assertEqual(self.sessions.sessions, {})

    def test_ticket_reused(self):
        self.confirm()
        with self.assertRaises(LinkingError):
            self.confirm(email='jd@example.com')
        self.assertEqual(len(self.orchestrator.list_accounts()), 1)

    def test_bad_ticket(self):
        with self.assertRaises(InvalidCallback):
            self.orchestrator.confirm_external_login(
                'foo', {'email': 'jane@example.com', 'name': 'Jane Doe'}
            )

    def test_missing_name(self):
        with self.assertRaises(ValidationError) as caught:
            self.confirm(name=None)
        self.assertIn('name', caught.exception.errors)


class TestExternalLoginDisabled(OrchestratorTestCase):
    features = Features(external_login=False)

    def test_disabled(self):
        self.assertEqual(self.orchestrator.providers, [])
        with self.assertRaises(FeatureDisabled):
            self.orchestrator.challenge('Google')
        with self.assertRaises(FeatureDisabled):
            self.orchestrator.external_callback('foo', GOOGLE)
        with self.assertRaises(FeatureDisabled):
            self.orchestrator.confirm_external_login(
                'foo', {'email': 'jane@example.com', 'name': 'Jane Doe'}
            )
