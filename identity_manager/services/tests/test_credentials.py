"""Tests for passwords and lockout in the directory database."""

import string
from unittest import TestCase, mock

from hypothesis import given, settings
from hypothesis import strategies as st

from ...domain import Account, Purpose, SignInStatus
from ...tests.util import SECRET, temporary_db
from ..directory import PasswordPolicy, SQLCredentialStore, \
    SQLDirectoryStore, passwords, util
from ..directory.passwords import PasswordAuthenticationFailed
from ..tokens import JWTTokenProvider

JANE = Account(account_id='1', email='jane@example.com')


class TestCheckPassword(TestCase):
    """Tests for :mod:`passwords`."""

    def setUp(self):
        patcher = mock.patch.object(passwords, 'ITERATIONS', 10)
        patcher.start()
        self.addCleanup(patcher.stop)

    @given(st.text(alphabet=string.printable))
    @settings(max_examples=100)
    def test_check_passwords_successful(self, passw):
        encrypted = passwords.hash_password(passw)
        self.assertTrue(passwords.check_password(passw, encrypted),
                        f"should work for password '{passw}'")

    @given(st.text(alphabet=string.printable), st.text())
    @settings(max_examples=100)
    def test_check_passwords_fuzz(self, passw, fuzzpw):
        encrypted = passwords.hash_password(passw)
        if passw == fuzzpw:
            self.assertTrue(passwords.check_password(fuzzpw, encrypted))
        else:
            with self.assertRaises(PasswordAuthenticationFailed):
                passwords.check_password(fuzzpw, encrypted)

    def test_malformed_hash(self):
        for encrypted in ['', 'foo', 'md5$1$c2FsdA==$aGFzaA==',
                          'pbkdf2_sha256$x$c2FsdA==$aGFzaA==']:
            with self.assertRaises(PasswordAuthenticationFailed):
                passwords.check_password('foo', encrypted)

    def test_format(self):
        algorithm, iterations, _, _ = passwords.hash_password('foo').split('$')
        self.assertEqual(algorithm, 'pbkdf2_sha256')
        self.assertEqual(iterations, '10')


class TestPasswordPolicy(TestCase):
    def test_default(self):
        policy = PasswordPolicy()
        self.assertEqual(policy.check('abcd'), [])
        self.assertEqual(policy.check('abc'),
                         ['Passwords must be at least 4 characters.'])

    def test_everything(self):
        policy = PasswordPolicy.from_config({
            'PASSWORD_MIN_LENGTH': '6',
            'PASSWORD_REQUIRE_DIGIT': '1',
            'PASSWORD_REQUIRE_LOWERCASE': '1',
            'PASSWORD_REQUIRE_UPPERCASE': '1',
            'PASSWORD_REQUIRE_NON_ALPHANUMERIC': '1'
        })
        self.assertEqual(policy.check('Secret123!'), [])
        self.assertEqual(policy.check('abc'), [
            'Passwords must be at least 6 characters.',
            "Passwords must have at least one digit ('0'-'9').",
            "Passwords must have at least one uppercase ('A'-'Z').",
            'Passwords must have at least one non alphanumeric character.'
        ])


class TestVerifyPassword(TestCase):
    """Tests for :meth:`.SQLCredentialStore.verify_password`."""

    def setUp(self):
        patcher = mock.patch.object(passwords, 'ITERATIONS', 1000)
        patcher.start()
        self.addCleanup(patcher.stop)
        db_context = temporary_db()
        self.db = db_context.__enter__()
        self.addCleanup(db_context.__exit__, None, None, None)
        self.tokens = JWTTokenProvider(self.db, SECRET)
        self.credentials = SQLCredentialStore(self.db, self.tokens,
                                              lockout_threshold=3,
                                              lockout_duration=60)
        SQLDirectoryStore(self.db, self.credentials).create(JANE, 'Secret1')

    def test_verify(self):
        self.assertEqual(self.credentials.verify_password(JANE, 'Secret1'),
                         SignInStatus.SUCCESS)
        self.assertEqual(self.credentials.verify_password(JANE, 'secret1'),
                         SignInStatus.FAILED)

    def test_unknown_account(self):
        other = Account(account_id='2', email='john@example.com')
        self.assertEqual(self.credentials.verify_password(other, 'Secret1'),
                         SignInStatus.FAILED)

    def test_lockout(self):
        statuses = [self.credentials.verify_password(JANE, 'wrong')
                    for _ in range(3)]
        self.assertEqual(statuses, [SignInStatus.FAILED, SignInStatus.FAILED,
                                    SignInStatus.LOCKED_OUT])
        self.assertEqual(self.credentials.verify_password(JANE, 'Secret1'),
                         SignInStatus.LOCKED_OUT)

        with mock.patch.object(util, 'now', return_value=util.now() + 61):
            self.assertEqual(
                self.credentials.verify_password(JANE, 'Secret1'),
                SignInStatus.SUCCESS
            )

    def test_reset_password(self):
        token = self.tokens.issue(JANE, Purpose.PASSWORD_RESET)
        self.assertTrue(
            self.credentials.reset_password(JANE, token, 'Secret2').succeeded
        )
        self.assertEqual(self.credentials.verify_password(JANE, 'Secret2'),
                         SignInStatus.SUCCESS)
        self.assertFalse(
            self.credentials.reset_password(JANE, token, 'Secret3').succeeded
        )

    def test_reset_sets_first_password(self):
        """Accounts without a password can get one."""
        john = Account(account_id='2', email='john@example.com')
        SQLDirectoryStore(self.db, self.credentials).create(john, None)
        token = self.tokens.issue(john, Purpose.PASSWORD_RESET)
        self.assertTrue(
            self.credentials.reset_password(john, token, 'Secret2').succeeded
        )
        self.assertEqual(self.credentials.verify_password(john, 'Secret2'),
                         SignInStatus.SUCCESS)
