"""Tests for the project-level rate limiting support."""

import json

from django.core.cache import caches
from django.http import HttpResponse
from django.test import RequestFactory, TestCase
from django_ratelimit.exceptions import Ratelimited

from lingomeet.ratelimit_middleware import RateLimitMiddleware


class AtomicIncrementDatabaseCacheTest(TestCase):
    """Test the counter cache used by django-ratelimit."""

    def setUp(self) -> None:
        self.cache = caches['ratelimit']
        self.cache.clear()

    def test_incr_creates_missing_key(self):
        self.assertEqual(self.cache.incr('tutor-reply:1', 1), 1)
        self.assertEqual(self.cache.get('tutor-reply:1'), 1)

    def test_incr_and_decr_existing_key(self):
        self.cache.set('tutor-reply:2', 4)

        self.assertEqual(self.cache.incr('tutor-reply:2', 3), 7)
        self.assertEqual(self.cache.decr('tutor-reply:2'), 6)

    def test_incr_resets_non_numeric_value(self):
        self.cache.set('tutor-reply:3', 'garbage')

        self.assertEqual(self.cache.incr('tutor-reply:3', 2), 2)


class RateLimitMiddlewareTest(TestCase):
    """Test translation of rate limit errors to HTTP 429."""

    def setUp(self) -> None:
        self.middleware = RateLimitMiddleware(lambda request: HttpResponse())
        self.request = RequestFactory().post('/api/sessions/1/reply/')

    def test_ratelimited_becomes_429(self):
        response = self.middleware.process_exception(self.request, Ratelimited())

        self.assertEqual(response.status_code, 429)
        self.assertIn('error', json.loads(response.content))

    def test_other_exceptions_pass_through(self):
        self.assertIsNone(
            self.middleware.process_exception(self.request, ValueError('boom'))
        )
