"""Tests for :mod:`identity_manager.next_page`."""

from unittest import TestCase

from .. import config
from ..next_page import good_next_page

DEFAULT = 'https://localhost:5001/account'


class TestGoodNextPage(TestCase):
    def check(self, next_page):
        return good_next_page(next_page, DEFAULT,
                              config.LOGIN_REDIRECT_REGEX)

    def test_default(self):
        for next_page in [None, '', DEFAULT]:
            self.assertEqual(self.check(next_page), DEFAULT)

    def test_good(self):
        for next_page in ['/', '/some/page', '/some/page?q=1',
                          f'https://{config.BASE_SERVER}/some/page',
                          f'https://sub.{config.BASE_SERVER}/some/page']:
            self.assertEqual(self.check(next_page), next_page)

    def test_bad(self):
        for next_page in ['https://evil.example.net/some/page',
                          'http://localhost:5001/some/page',
                          'javascript:alert(1)',
                          '//evil.example.net/',
                          '/some\\page',
                          '/' + 'a' * 300]:
            self.assertEqual(self.check(next_page), DEFAULT,
                             f'{next_page!r} is refused')
