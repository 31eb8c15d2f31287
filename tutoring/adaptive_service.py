"""
Adaptive learning service.

Derives a learner's difficulty tier and weak areas from recent sessions,
composes the personalized system prompt for the tutor, and folds an ended
session into the daily progress rollup and the lifetime profile statistics.
"""

import logging
from datetime import date, datetime, timedelta
from datetime import timezone as dt_timezone
from typing import Callable, List, Optional

from django.db import transaction
from django.db.models import Count, ExpressionWrapper, F, FloatField, Value
from django.db.models.expressions import Combinable
from django.db.models.functions import Greatest
from django.utils import timezone

from .models import (
    DEFAULT_PROFICIENCY_LEVEL,
    Correction,
    DailyProgress,
    LearningSession,
    UserProfile,
)

logger = logging.getLogger(__name__)

LEVEL_PROGRESSION = ['Beginner', 'Intermediate', 'Advanced']

# Error-type substrings feeding each daily skill score
SKILL_ERROR_KEYWORDS = {
    'grammar_score': 'grammar',
    'vocabulary_score': 'vocabulary',
    'pronunciation_score': 'pronunciation',
}


def normalize_level(level: Optional[str]) -> str:
    """Map a stored tier onto the known progression (unknown → Beginner)."""
    if level in LEVEL_PROGRESSION:
        return level
    return DEFAULT_PROFICIENCY_LEVEL


def get_next_level(level: str) -> str:
    """Get the tier above ``level``; Advanced stays Advanced."""
    current_index = LEVEL_PROGRESSION.index(normalize_level(level))
    return LEVEL_PROGRESSION[min(current_index + 1, len(LEVEL_PROGRESSION) - 1)]


def get_previous_level(level: str) -> str:
    """Get the tier below ``level``; Beginner stays Beginner."""
    current_index = LEVEL_PROGRESSION.index(normalize_level(level))
    return LEVEL_PROGRESSION[max(current_index - 1, 0)]


def count_errors(corrections: List[Correction], keyword: str) -> int:
    """Count corrections whose error type contains ``keyword`` (any case)."""
    keyword = keyword.lower()
    return sum(1 for c in corrections if keyword in c.error_type.lower())


def _as_float(expression: Combinable) -> ExpressionWrapper:
    return ExpressionWrapper(expression, output_field=FloatField())


def running_mean(average_field: str, count_field: str, sample: float) -> ExpressionWrapper:
    """
    Incremental mean evaluated by the database in the same ``UPDATE``.

    Both fields are read with their pre-update values, so the result is
    ``(avg * n + sample) / (n + 1)`` where ``n`` is the count before the
    increment.
    """
    return _as_float(
        (F(average_field) * F(count_field) + Value(float(sample)))
        / (F(count_field) + Value(1))
    )


class AdaptiveLearningService:
    """Service for difficulty adaptation, prompts and progress rollups."""

    def __init__(self, clock: Callable[[], datetime] = timezone.now) -> None:
        self.clock = clock
        self.recent_session_window = 5
        self.promote_min_accuracy = 85.0
        self.promote_max_corrections = 3.0
        self.demote_max_accuracy = 60.0
        self.demote_min_corrections = 8.0
        self.weak_area_lookback_days = 30
        self.weak_area_limit = 5

    def today(self) -> date:
        """Current UTC calendar date according to the service clock."""
        return self.clock().astimezone(dt_timezone.utc).date()

    # ------------------------------------------------------------------
    # Difficulty adaptation
    # ------------------------------------------------------------------

    def get_adapted_difficulty(self, user_id: int, target_language: str) -> str:
        """
        Return the tier the learner should practice at next.

        Looks at the five most recent sessions in ``target_language`` (active
        or ended). High accuracy with few corrections promotes one tier; low
        accuracy or many corrections demotes one tier. Read-only.

        Args:
            user_id: Learner's user id
            target_language: Language tag of the sessions to consider

        Returns:
            One of ``LEVEL_PROGRESSION``
        """
        profile = UserProfile.objects.filter(user_id=user_id).first()
        current_level = normalize_level(profile.proficiency_level if profile else None)

        recent_sessions = list(
            LearningSession.objects.filter(
                user_id=user_id, target_language=target_language
            )
            .order_by('-start_time', '-id')
            .values_list('accuracy_score', 'correction_count')[
                : self.recent_session_window
            ]
        )

        if not recent_sessions:
            return current_level

        avg_accuracy = sum(row[0] for row in recent_sessions) / len(recent_sessions)
        avg_corrections = sum(row[1] for row in recent_sessions) / len(recent_sessions)

        if (
            avg_accuracy > self.promote_min_accuracy
            and avg_corrections < self.promote_max_corrections
        ):
            return get_next_level(current_level)
        if (
            avg_accuracy < self.demote_max_accuracy
            or avg_corrections > self.demote_min_corrections
        ):
            return get_previous_level(current_level)
        return current_level

    # ------------------------------------------------------------------
    # Weak areas
    # ------------------------------------------------------------------

    def identify_weak_areas(self, user_id: int, target_language: str) -> List[str]:
        """
        Rank error types from the last 30 days, most frequent first.

        Ties are broken alphabetically so the ranking is stable for a fixed
        set of corrections. At most five labels are returned.
        """
        cutoff = self.clock() - timedelta(days=self.weak_area_lookback_days)
        ranked = (
            Correction.objects.filter(
                session__user_id=user_id,
                session__target_language=target_language,
                session__start_time__gt=cutoff,
            )
            .values('error_type')
            .annotate(count=Count('id'))
            .order_by('-count', 'error_type')[: self.weak_area_limit]
        )
        return [row['error_type'] for row in ranked]

    # ------------------------------------------------------------------
    # Prompt composition
    # ------------------------------------------------------------------

    def generate_personalized_prompt(
        self,
        user_id: int,
        target_language: str,
        topic: str,
        difficulty: Optional[str] = None,
    ) -> str:
        """
        Build the tutor's system prompt for this learner and topic.

        ``difficulty`` pins the tier, e.g. to a running session's snapshot;
        otherwise it is adapted from recent sessions.
        """
        profile = UserProfile.objects.filter(user_id=user_id).first()
        weak_areas = self.identify_weak_areas(user_id, target_language)
        if difficulty is None:
            difficulty = self.get_adapted_difficulty(user_id, target_language)

        focus_areas = [area for area in (profile.focus_areas if profile else []) if area]
        focus_text = ", ".join(focus_areas) if focus_areas else "General"
        weak_text = ", ".join(weak_areas) if weak_areas else "None identified yet"
        attention_text = ", ".join(weak_areas) if weak_areas else "overall improvement"

        return (
            f"You are an AI language tutor teaching {target_language} to a "
            f"{difficulty} level student.\n\n"
            f"Current Topic: {topic}\n"
            f"Student's Weak Areas: {weak_text}\n"
            f"Focus Areas: {focus_text}\n\n"
            "Guidelines:\n"
            f"- Adapt your language complexity to {difficulty} level\n"
            f"- Provide extra attention to: {attention_text}\n"
            "- Be encouraging and supportive\n"
            "- Correct mistakes gently but clearly\n"
            "- Ask follow-up questions to encourage conversation\n"
            "- Use natural, conversational language"
        )

    # ------------------------------------------------------------------
    # Progress aggregation
    # ------------------------------------------------------------------

    def update_user_progress(self, user_id: int, session_id: int) -> None:
        """
        Fold an ended session into today's progress row and the profile.

        Must run once per session, after its end time and accuracy were
        saved. A session deleted in the meantime is skipped silently.

        Every counter and average is written with a single ``UPDATE`` built
        from ``F()`` expressions inside one transaction, and the profile row
        is locked first, so concurrent session ends for the same learner and
        day cannot overwrite each other.
        """
        session = LearningSession.objects.filter(pk=session_id).first()
        if session is None:
            logger.info("Session %s no longer exists; progress update skipped", session_id)
            return

        corrections = list(session.corrections.all())
        user_messages = session.messages.filter(is_user=True).count()
        now = self.clock()
        today = now.astimezone(dt_timezone.utc).date()

        with transaction.atomic():
            profile = (
                UserProfile.objects.select_for_update().filter(user_id=user_id).first()
            )
            progress, created = DailyProgress.objects.get_or_create(
                user_id=user_id,
                date=today,
                target_language=session.target_language,
            )
            self._apply_session_to_day(progress.pk, session, user_messages, corrections)

            if profile is not None:
                self._apply_session_to_profile(profile, session, len(corrections), now)

        logger.info(
            "Progress updated for user %s session %s (%s, new day row: %s)",
            user_id,
            session_id,
            today.isoformat(),
            created,
        )

    def _apply_session_to_day(
        self,
        progress_id: int,
        session: LearningSession,
        user_messages: int,
        corrections: List[Correction],
    ) -> None:
        """
        Add one session to a daily row.

        Skill scores are recomputed from this session's corrections only and
        replace whatever an earlier session of the day left there.
        """
        new_average = running_mean(
            'average_accuracy', 'sessions_completed', session.accuracy_score
        )
        messages_today = Greatest(
            F('messages_spoken') + Value(user_messages), Value(1)
        )

        skill_scores = {
            field: Greatest(
                Value(0.0),
                _as_float(
                    Value(100.0)
                    - Value(count_errors(corrections, keyword) * 100.0)
                    / messages_today
                    * Value(10.0)
                ),
            )
            for field, keyword in SKILL_ERROR_KEYWORDS.items()
        }

        DailyProgress.objects.filter(pk=progress_id).update(
            sessions_completed=F('sessions_completed') + 1,
            minutes_learned=F('minutes_learned') + session.duration_minutes,
            messages_spoken=F('messages_spoken') + user_messages,
            corrections_received=F('corrections_received') + len(corrections),
            new_vocabulary=F('new_vocabulary') + session.new_vocabulary_learned,
            average_accuracy=new_average,
            fluency_score=new_average,
            **skill_scores,
        )

    def _apply_session_to_profile(
        self,
        profile: UserProfile,
        session: LearningSession,
        correction_total: int,
        now: datetime,
    ) -> None:
        """Update lifetime counters, the stored tier and weak areas in one write."""
        new_level = self.get_adapted_difficulty(profile.user_id, session.target_language)
        weak_areas = self.identify_weak_areas(profile.user_id, session.target_language)

        UserProfile.objects.filter(pk=profile.pk).update(
            total_sessions=F('total_sessions') + 1,
            total_minutes_learned=F('total_minutes_learned') + session.duration_minutes,
            total_corrections=F('total_corrections') + correction_total,
            average_accuracy=running_mean(
                'average_accuracy', 'total_sessions', session.accuracy_score
            ),
            proficiency_level=new_level,
            weak_areas=weak_areas,
            last_session_date=now,
            updated_at=now,
        )

        if new_level != profile.proficiency_level:
            logger.info(
                "User %s moved from %s to %s in %s",
                profile.user_id,
                profile.proficiency_level,
                new_level,
                session.target_language,
            )


# Default global service instance
adaptive_service = AdaptiveLearningService()
