"""
tutoring/views.py.

JSON API for tutoring sessions and learner analytics. Every view is async
and hands ORM work to the services through ``sync_to_async``.
"""

import asyncio
import logging
from typing import Optional

from asgiref.sync import sync_to_async
from django.contrib.auth.decorators import login_required
from django.http import HttpRequest, JsonResponse
from django.shortcuts import aget_object_or_404
from django_ratelimit.core import is_ratelimited
from django_ratelimit.exceptions import Ratelimited

from .adaptive_service import adaptive_service
from .ai_service import ai_service
from .analytics_service import analytics_service, serialize_correction
from .exceptions import SessionAlreadyEnded
from .models import SESSION_MODES, SEVERITY_LEVELS, Correction, LearningSession
from .session_service import session_service

logger = logging.getLogger(__name__)

# Tutor replies hit the model provider; keep them bounded per learner
REPLY_RATE_LIMITS = ['30/h', '200/d']
MAX_HISTORY_LIMIT = 100
MAX_PROGRESS_DAYS = 365
ERROR_TYPE_MAX_LENGTH = Correction._meta.get_field('error_type').max_length

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _method_not_allowed(method: str) -> JsonResponse:
    return JsonResponse({'error': f'Only {method} requests are allowed'}, status=405)


def _bad_request(message: str) -> JsonResponse:
    return JsonResponse({'error': message}, status=400)


def _optional_float(
    raw: Optional[str], name: str, low: float, high: float
) -> Optional[float]:
    """Parse an optional numeric form field, raising ``ValueError`` when invalid."""
    if raw is None or raw.strip() == '':
        return None
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f'{name} must be a number')
    if not low <= value <= high:
        raise ValueError(f'{name} must be between {low:g} and {high:g}')
    return value


def _bounded_int(raw: Optional[str], name: str, default: int, high: int) -> int:
    """Parse a positive integer query parameter capped at ``high``."""
    if raw is None or raw == '':
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f'{name} must be an integer')
    if not 1 <= value <= high:
        raise ValueError(f'{name} must be between 1 and {high}')
    return value


async def _get_user_session(request: HttpRequest, session_id: int) -> LearningSession:
    """Look up a session owned by the requesting user, or 404."""
    user = await request.auser()
    return await aget_object_or_404(LearningSession, pk=session_id, user=user)


async def _enforce_reply_rate_limit(request: HttpRequest) -> None:
    for rate in REPLY_RATE_LIMITS:
        limited = await sync_to_async(is_ratelimited)(
            request,
            group='tutoring.tutor_reply',
            key='user',
            rate=rate,
            method='POST',
            increment=True,
        )
        if limited:
            raise Ratelimited()


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------


@login_required  # type: ignore
async def start_session(request: HttpRequest) -> JsonResponse:
    """Open a session and return it together with the tutor's system prompt."""
    if request.method != 'POST':
        return _method_not_allowed('POST')

    user = await request.auser()
    mode = request.POST.get('mode') or None
    if mode is not None and mode not in dict(SESSION_MODES):
        return _bad_request(f'Unknown mode: {mode}')

    target_language = await sync_to_async(analytics_service.resolve_language)(
        user.id, request.POST.get('target_language', '').strip() or None
    )
    topic = request.POST.get('topic', '').strip() or None

    session, system_prompt = await sync_to_async(session_service.start_session)(
        user, target_language, topic, mode
    )

    return JsonResponse(
        {
            'session_id': session.id,
            'target_language': session.target_language,
            'topic': session.topic,
            'mode': session.mode,
            'difficulty_level': session.difficulty_level,
            'start_time': session.start_time.isoformat(),
            'system_prompt': system_prompt,
        },
        status=201,
    )


@login_required  # type: ignore
async def session_history(request: HttpRequest) -> JsonResponse:
    """List the learner's ended sessions, newest first."""
    if request.method != 'GET':
        return _method_not_allowed('GET')

    try:
        limit = _bounded_int(request.GET.get('limit'), 'limit', 10, MAX_HISTORY_LIMIT)
    except ValueError as e:
        return _bad_request(str(e))

    user = await request.auser()
    sessions = await sync_to_async(session_service.session_history)(user, limit)
    return JsonResponse({'sessions': sessions})


@login_required  # type: ignore
async def session_detail(request: HttpRequest, session_id: int) -> JsonResponse:
    """Return one session with its transcript and corrections."""
    if request.method != 'GET':
        return _method_not_allowed('GET')

    session = await _get_user_session(request, session_id)
    details = await sync_to_async(session_service.session_details)(session)
    return JsonResponse(details)


@login_required  # type: ignore
async def add_message(request: HttpRequest, session_id: int) -> JsonResponse:
    """Append a transcribed utterance to an active session."""
    if request.method != 'POST':
        return _method_not_allowed('POST')

    session = await _get_user_session(request, session_id)
    if not session.is_active:
        return JsonResponse({'error': 'Session has already ended'}, status=409)

    text = request.POST.get('text', '').strip()
    if not text:
        return _bad_request('Message cannot be empty')

    try:
        confidence = _optional_float(
            request.POST.get('confidence'), 'confidence', 0.0, 1.0
        )
    except ValueError as e:
        return _bad_request(str(e))

    is_user = request.POST.get('is_user', 'true').lower() not in ('0', 'false', 'no')
    message = await sync_to_async(session_service.add_message)(
        session,
        is_user,
        text,
        request.POST.get('language') or None,
        confidence,
    )

    return JsonResponse(
        {
            'message_id': message.id,
            'session_id': session.id,
            'is_user': message.is_user,
            'timestamp': message.timestamp.isoformat(),
        },
        status=201,
    )


@login_required  # type: ignore
async def add_correction(request: HttpRequest, session_id: int) -> JsonResponse:
    """Record a correction for an active session."""
    if request.method != 'POST':
        return _method_not_allowed('POST')

    session = await _get_user_session(request, session_id)
    if not session.is_active:
        return JsonResponse({'error': 'Session has already ended'}, status=409)

    original_text = request.POST.get('original_text', '').strip()
    corrected_text = request.POST.get('corrected_text', '').strip()
    error_type = request.POST.get('error_type', '').strip()
    if not (original_text and corrected_text and error_type):
        return _bad_request(
            'original_text, corrected_text and error_type are required'
        )
    if len(error_type) > ERROR_TYPE_MAX_LENGTH:
        return _bad_request(
            f'error_type must be at most {ERROR_TYPE_MAX_LENGTH} characters'
        )

    severity = request.POST.get('severity') or None
    if severity is not None and severity not in dict(SEVERITY_LEVELS):
        return _bad_request(f'Unknown severity: {severity}')

    correction = await sync_to_async(session_service.add_correction)(
        session,
        original_text,
        corrected_text,
        error_type,
        request.POST.get('explanation', '').strip(),
        severity,
    )
    return JsonResponse(serialize_correction(correction), status=201)


@login_required  # type: ignore
async def tutor_reply(request: HttpRequest, session_id: int) -> JsonResponse:
    """
    Send a learner utterance to the tutor.

    The reply and the correction review run concurrently. The learner
    message, detected corrections and the reply are stored only when the
    reply succeeded.
    """
    if request.method != 'POST':
        return _method_not_allowed('POST')

    await _enforce_reply_rate_limit(request)

    session = await _get_user_session(request, session_id)
    if not session.is_active:
        return JsonResponse({'error': 'Session has already ended'}, status=409)

    user_message = request.POST.get('message', '').strip()
    if not user_message:
        return _bad_request('Message cannot be empty')

    # ------------------------------------------------------------------
    # 1. Personalized prompt and transcript so far
    # ------------------------------------------------------------------
    system_prompt = await sync_to_async(adaptive_service.generate_personalized_prompt)(
        session.user_id,
        session.target_language,
        session.topic,
        session.difficulty_level,
    )
    conversation_history = await sync_to_async(session_service.conversation_history)(
        session
    )

    # ------------------------------------------------------------------
    # 2. Tutor reply and correction review concurrently
    # ------------------------------------------------------------------
    try:
        reply, report = await asyncio.gather(
            ai_service.generate_tutor_reply(
                system_prompt, user_message, conversation_history
            ),
            ai_service.detect_corrections(
                user_message, session.target_language, session.difficulty_level
            ),
        )
    except Exception as e:
        logger.exception("Tutor reply failed for session %s", session.id)
        return JsonResponse(
            {'error': f'Error communicating with AI service: {str(e)}'}, status=500
        )

    # ------------------------------------------------------------------
    # 3. Persist the exchange
    # ------------------------------------------------------------------
    learner_message, tutor_message, corrections = await sync_to_async(
        session_service.record_exchange
    )(session, user_message, reply, report)

    return JsonResponse(
        {
            'message': user_message,
            'response': reply,
            'user_message_id': learner_message.id,
            'tutor_message_id': tutor_message.id,
            'corrections': [serialize_correction(c) for c in corrections],
            'timestamp': tutor_message.timestamp.isoformat(),
        }
    )


@login_required  # type: ignore
async def end_session(request: HttpRequest, session_id: int) -> JsonResponse:
    """End a session, update progress and return the session summary."""
    if request.method != 'POST':
        return _method_not_allowed('POST')

    session = await _get_user_session(request, session_id)

    try:
        accuracy = _optional_float(
            request.POST.get('accuracy_score'), 'accuracy_score', 0.0, 100.0
        )
    except ValueError as e:
        return _bad_request(str(e))

    vocabulary = [w.strip() for w in request.POST.getlist('vocabulary') if w.strip()]
    mistakes = [m.strip() for m in request.POST.getlist('common_mistakes') if m.strip()]

    try:
        ended = await sync_to_async(session_service.end_session)(
            session,
            accuracy,
            request.POST.get('summary', '').strip(),
            vocabulary,
            mistakes,
        )
    except SessionAlreadyEnded as e:
        return JsonResponse({'error': str(e)}, status=409)

    summary = await sync_to_async(session_service.session_summary)(ended)
    return JsonResponse(summary)


# ---------------------------------------------------------------------------
# Analytics
# ---------------------------------------------------------------------------


@login_required  # type: ignore
async def dashboard(request: HttpRequest) -> JsonResponse:
    """Overview, weekly progress, weak areas and recent corrections."""
    if request.method != 'GET':
        return _method_not_allowed('GET')

    user = await request.auser()
    data = await sync_to_async(analytics_service.dashboard)(
        user.id, request.GET.get('language') or None
    )
    return JsonResponse(data)


@login_required  # type: ignore
async def progress(request: HttpRequest) -> JsonResponse:
    """Daily progress series, zero-filled, oldest first."""
    if request.method != 'GET':
        return _method_not_allowed('GET')

    try:
        days = _bounded_int(request.GET.get('days'), 'days', 30, MAX_PROGRESS_DAYS)
    except ValueError as e:
        return _bad_request(str(e))

    user = await request.auser()
    language = await sync_to_async(analytics_service.resolve_language)(
        user.id, request.GET.get('language') or None
    )
    series = await sync_to_async(analytics_service.progress_series)(
        user.id, language, days
    )
    return JsonResponse({'target_language': language, 'days': days, 'progress': series})


@login_required  # type: ignore
async def weak_areas(request: HttpRequest) -> JsonResponse:
    """Error types from the last 30 days with examples."""
    if request.method != 'GET':
        return _method_not_allowed('GET')

    user = await request.auser()
    language = await sync_to_async(analytics_service.resolve_language)(
        user.id, request.GET.get('language') or None
    )
    details = await sync_to_async(analytics_service.weak_area_details)(
        user.id, language
    )
    return JsonResponse({'target_language': language, 'weak_areas': details})


@login_required  # type: ignore
async def vocabulary(request: HttpRequest) -> JsonResponse:
    """Vocabulary lists collected from recent sessions."""
    if request.method != 'GET':
        return _method_not_allowed('GET')

    try:
        limit = _bounded_int(request.GET.get('limit'), 'limit', 20, MAX_HISTORY_LIMIT)
    except ValueError as e:
        return _bad_request(str(e))

    user = await request.auser()
    language = await sync_to_async(analytics_service.resolve_language)(
        user.id, request.GET.get('language') or None
    )
    history = await sync_to_async(analytics_service.vocabulary_history)(
        user.id, language, limit
    )
    return JsonResponse({'target_language': language, 'sessions': history})
