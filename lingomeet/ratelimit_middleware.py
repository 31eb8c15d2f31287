"""Middleware translating django-ratelimit rejections into JSON responses."""

import logging
from typing import Callable, Optional

from django.http import HttpRequest, HttpResponse, JsonResponse
from django_ratelimit.exceptions import Ratelimited

logger = logging.getLogger(__name__)


class RateLimitMiddleware:
    """Return HTTP 429 with a JSON body when a view is rate limited."""

    def __init__(self, get_response: Callable[[HttpRequest], HttpResponse]) -> None:
        self.get_response = get_response

    def __call__(self, request: HttpRequest) -> HttpResponse:
        return self.get_response(request)

    def process_exception(
        self, request: HttpRequest, exception: Exception
    ) -> Optional[JsonResponse]:
        """Handle rate limit exceptions; anything else falls through."""
        if not isinstance(exception, Ratelimited):
            return None

        logger.warning("Rate limit hit on %s", request.path)
        return JsonResponse(
            {'error': 'Too many tutor requests. Please wait a moment and try again.'},
            status=429,
        )
