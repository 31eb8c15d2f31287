"""
Session lifecycle: start, append messages and corrections, end.

Starting a session snapshots the adapted difficulty and builds the tutor
prompt; ending it records duration and accuracy and hands the session to
the progress aggregator exactly once.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from django.contrib.auth.models import User
from django.db import transaction
from django.db.models import Count, F
from django.utils import timezone

from .adaptive_service import AdaptiveLearningService, adaptive_service
from .analysis_models import CorrectionReport
from .analytics_service import serialize_correction
from .exceptions import SessionAlreadyEnded
from .models import ConversationMessage, Correction, LearningSession, UserProfile

logger = logging.getLogger(__name__)


class SessionService:
    """Create and mutate learning sessions on behalf of the HTTP layer."""

    def __init__(
        self,
        adaptive: Optional[AdaptiveLearningService] = None,
        clock: Callable[[], datetime] = timezone.now,
    ) -> None:
        self.adaptive = adaptive or adaptive_service
        self.clock = clock
        self.default_topic = "General Conversation"
        self.default_mode = "Casual"
        self.default_accuracy = 75.0
        self.top_mistake_count = 3

    def start_session(
        self,
        user: User,
        target_language: str,
        topic: Optional[str] = None,
        mode: Optional[str] = None,
    ) -> Tuple[LearningSession, str]:
        """
        Open a new session for ``user``.

        Args:
            user: Learner starting the session
            target_language: Language tag to practice
            topic: Conversation topic, defaults to general conversation
            mode: Casual, Lesson or Practice

        Returns:
            The created session and the personalized system prompt
        """
        UserProfile.objects.get_or_create(
            user=user, defaults={'target_language': target_language}
        )
        difficulty = self.adaptive.get_adapted_difficulty(user.id, target_language)

        session = LearningSession.objects.create(
            user=user,
            start_time=self.clock(),
            target_language=target_language,
            topic=topic or self.default_topic,
            mode=mode or self.default_mode,
            difficulty_level=difficulty,
        )
        system_prompt = self.adaptive.generate_personalized_prompt(
            user.id, target_language, session.topic, difficulty
        )

        logger.info(
            "Session %s started for user %s (%s, %s)",
            session.id,
            user.id,
            target_language,
            difficulty,
        )
        return session, system_prompt

    def add_message(
        self,
        session: LearningSession,
        is_user: bool,
        text: str,
        language: Optional[str] = None,
        confidence: Optional[float] = None,
        has_error: bool = False,
    ) -> ConversationMessage:
        """Append a message and bump the session's message counter."""
        message = ConversationMessage.objects.create(
            session=session,
            timestamp=self.clock(),
            is_user=is_user,
            text=text,
            language=language or session.target_language,
            transcription_confidence=confidence,
            has_error=has_error,
        )
        LearningSession.objects.filter(pk=session.pk).update(
            message_count=F('message_count') + 1
        )
        return message

    def add_correction(
        self,
        session: LearningSession,
        original_text: str,
        corrected_text: str,
        error_type: str,
        explanation: str = '',
        severity: Optional[str] = None,
    ) -> Correction:
        """Append a correction and bump the session's correction counter."""
        correction = Correction.objects.create(
            session=session,
            timestamp=self.clock(),
            original_text=original_text,
            corrected_text=corrected_text,
            error_type=error_type,
            explanation=explanation,
            severity=severity or 'Medium',
        )
        LearningSession.objects.filter(pk=session.pk).update(
            correction_count=F('correction_count') + 1
        )
        return correction

    def record_exchange(
        self,
        session: LearningSession,
        user_text: str,
        tutor_text: str,
        report: CorrectionReport,
    ) -> Tuple[ConversationMessage, ConversationMessage, List[Correction]]:
        """
        Store one learner turn, the corrections found in it and the tutor reply.

        The learner message is flagged ``has_error`` when the report is not
        empty. All rows commit together.
        """
        with transaction.atomic():
            user_message = self.add_message(
                session, True, user_text, has_error=bool(report.corrections)
            )
            corrections = [
                self.add_correction(
                    session,
                    detected.original_text,
                    detected.corrected_text,
                    detected.error_type.value,
                    detected.explanation,
                    detected.severity.value,
                )
                for detected in report.corrections
            ]
            tutor_message = self.add_message(session, False, tutor_text)
        return user_message, tutor_message, corrections

    def end_session(
        self,
        session: LearningSession,
        accuracy_score: Optional[float] = None,
        summary: str = '',
        vocabulary_list: Optional[List[str]] = None,
        common_mistakes: Optional[List[str]] = None,
    ) -> LearningSession:
        """
        Close ``session`` and aggregate it into the learner's progress.

        Duration is the wall-clock delta in whole minutes. The session row
        and the progress rollup commit together.

        Raises:
            SessionAlreadyEnded: If the session already has an end time
        """
        with transaction.atomic():
            locked = LearningSession.objects.select_for_update().get(pk=session.pk)
            if locked.end_time is not None:
                raise SessionAlreadyEnded(locked.pk)

            end_time = self.clock()
            elapsed = (end_time - locked.start_time).total_seconds()
            vocabulary = list(vocabulary_list or [])

            locked.end_time = end_time
            locked.duration_minutes = max(0, int(elapsed // 60))
            locked.accuracy_score = (
                self.default_accuracy if accuracy_score is None else accuracy_score
            )
            locked.conversation_summary = summary
            locked.vocabulary_list = vocabulary
            locked.common_mistakes = list(common_mistakes or [])
            locked.new_vocabulary_learned = len(vocabulary)
            locked.save(
                update_fields=[
                    'end_time',
                    'duration_minutes',
                    'accuracy_score',
                    'conversation_summary',
                    'vocabulary_list',
                    'common_mistakes',
                    'new_vocabulary_learned',
                ]
            )

            self.adaptive.update_user_progress(locked.user_id, locked.pk)

        logger.info(
            "Session %s ended after %s min with accuracy %.1f",
            locked.pk,
            locked.duration_minutes,
            locked.accuracy_score,
        )
        return locked

    # ------------------------------------------------------------------
    # Read helpers for the API
    # ------------------------------------------------------------------

    def session_summary(self, session: LearningSession) -> Dict[str, Any]:
        """Figures shown to the learner when a session ends."""
        session.refresh_from_db()
        top_mistakes = (
            session.corrections.values('error_type')
            .annotate(count=Count('id'))
            .order_by('-count', 'error_type')[: self.top_mistake_count]
        )
        return {
            'session_id': session.id,
            'duration_minutes': session.duration_minutes,
            'message_count': session.message_count,
            'correction_count': session.correction_count,
            'accuracy_score': session.accuracy_score,
            'difficulty_level': session.difficulty_level,
            'top_mistakes': [
                {'error_type': row['error_type'], 'count': row['count']}
                for row in top_mistakes
            ],
        }

    def session_history(self, user: User, limit: int = 10) -> List[Dict[str, Any]]:
        """Ended sessions of ``user``, newest first."""
        sessions = LearningSession.objects.filter(
            user=user, end_time__isnull=False
        ).order_by('-start_time', '-id')[:limit]
        return [self._serialize_session(s) for s in sessions]

    def conversation_history(self, session: LearningSession) -> List[Dict[str, str]]:
        """Transcript as ``[{'role': 'user' | 'assistant', 'content': ...}]``."""
        return [
            {'role': 'user' if m.is_user else 'assistant', 'content': m.text}
            for m in session.messages.all()
        ]

    def session_details(self, session: LearningSession) -> Dict[str, Any]:
        """A session with its full transcript and corrections."""
        details = self._serialize_session(session)
        details.update(
            {
                'mode': session.mode,
                'conversation_summary': session.conversation_summary,
                'vocabulary_list': session.vocabulary_list,
                'messages': [
                    {
                        'id': m.id,
                        'timestamp': m.timestamp.isoformat(),
                        'is_user': m.is_user,
                        'text': m.text,
                        'language': m.language,
                    }
                    for m in session.messages.all()
                ],
                'corrections': [
                    serialize_correction(c) for c in session.corrections.all()
                ],
            }
        )
        return details

    def _serialize_session(self, session: LearningSession) -> Dict[str, Any]:
        return {
            'id': session.id,
            'start_time': session.start_time.isoformat(),
            'end_time': session.end_time.isoformat() if session.end_time else None,
            'duration_minutes': session.duration_minutes,
            'target_language': session.target_language,
            'topic': session.topic,
            'message_count': session.message_count,
            'correction_count': session.correction_count,
            'accuracy_score': session.accuracy_score,
            'difficulty_level': session.difficulty_level,
        }


# Default global service instance
session_service = SessionService()
