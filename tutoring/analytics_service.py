"""
Read-side reporting over sessions, corrections and daily progress.

Nothing here writes to the database; every figure is recomputed per call.
"""

from datetime import date, datetime, timedelta
from datetime import timezone as dt_timezone
from typing import Any, Callable, Dict, List, Optional

from django.db.models import Avg, Count, Sum
from django.db.models.functions import TruncDate
from django.utils import timezone

from .adaptive_service import AdaptiveLearningService, adaptive_service, normalize_level
from .models import Correction, DailyProgress, LearningSession, UserProfile


PROGRESS_FIELDS = (
    'minutes_learned',
    'sessions_completed',
    'messages_spoken',
    'corrections_received',
    'average_accuracy',
    'grammar_score',
    'vocabulary_score',
    'pronunciation_score',
    'fluency_score',
)


def serialize_correction(correction: Correction) -> Dict[str, Any]:
    """JSON-ready view of a correction row."""
    return {
        'id': correction.id,
        'timestamp': correction.timestamp.isoformat(),
        'original_text': correction.original_text,
        'corrected_text': correction.corrected_text,
        'error_type': correction.error_type,
        'explanation': correction.explanation,
        'severity': correction.severity,
    }


class AnalyticsService:
    """Dashboards, progress series, weak-area details and streaks."""

    def __init__(
        self,
        adaptive: Optional[AdaptiveLearningService] = None,
        clock: Callable[[], datetime] = timezone.now,
    ) -> None:
        self.adaptive = adaptive or adaptive_service
        self.clock = clock
        self.streak_lookback_days = 365
        self.weak_area_example_count = 3
        self.recent_correction_count = 5

    def today(self) -> date:
        return self.clock().astimezone(dt_timezone.utc).date()

    def resolve_language(self, user_id: int, language: Optional[str]) -> str:
        """Use the requested language, else the profile's, else ``en-US``."""
        if language:
            return language
        profile = UserProfile.objects.filter(user_id=user_id).first()
        return profile.target_language if profile else 'en-US'

    # ------------------------------------------------------------------
    # Streak
    # ------------------------------------------------------------------

    def calculate_streak(self, user_id: int, target_language: str) -> int:
        """
        Count consecutive practice days ending today or yesterday.

        A missing session today does not break the streak, since the day is
        still open; any earlier gap ends it. Looks back at most one year.
        """
        today = self.today()
        window_start = today - timedelta(days=self.streak_lookback_days - 1)

        active_days = set(
            LearningSession.objects.filter(
                user_id=user_id,
                target_language=target_language,
                start_time__date__gte=window_start,
                start_time__date__lte=today,
            )
            .annotate(day=TruncDate('start_time'))
            .order_by()
            .values_list('day', flat=True)
            .distinct()
        )

        streak = 0
        for offset in range(self.streak_lookback_days):
            if today - timedelta(days=offset) in active_days:
                streak += 1
            elif offset > 0:
                break
        return streak

    # ------------------------------------------------------------------
    # Weak areas
    # ------------------------------------------------------------------

    def weak_area_details(self, user_id: int, target_language: str) -> List[Dict[str, Any]]:
        """
        Every error type from the last 30 days with its count and the three
        most recent examples, most frequent first.
        """
        cutoff = self.clock() - timedelta(days=self.adaptive.weak_area_lookback_days)
        recent = Correction.objects.filter(
            session__user_id=user_id,
            session__target_language=target_language,
            session__start_time__gt=cutoff,
        )

        groups = (
            recent.values('error_type')
            .annotate(count=Count('id'))
            .order_by('-count', 'error_type')
        )

        details = []
        for group in groups:
            examples = recent.filter(error_type=group['error_type']).order_by(
                '-timestamp', '-id'
            )[: self.weak_area_example_count]
            details.append(
                {
                    'error_type': group['error_type'],
                    'count': group['count'],
                    'examples': [
                        {
                            'original_text': c.original_text,
                            'corrected_text': c.corrected_text,
                            'explanation': c.explanation,
                            'timestamp': c.timestamp.isoformat(),
                        }
                        for c in examples
                    ],
                }
            )
        return details

    # ------------------------------------------------------------------
    # Daily / weekly rollups
    # ------------------------------------------------------------------

    def progress_series(
        self, user_id: int, target_language: str, days: int = 30
    ) -> List[Dict[str, Any]]:
        """One entry per day, oldest first, zero-filled where nothing happened."""
        today = self.today()
        start = today - timedelta(days=days - 1)
        rows = {
            row.date: row
            for row in DailyProgress.objects.filter(
                user_id=user_id, target_language=target_language, date__gte=start
            )
        }

        series = []
        for offset in range(days):
            day = start + timedelta(days=offset)
            row = rows.get(day)
            entry: Dict[str, Any] = {'date': day.isoformat()}
            for field in PROGRESS_FIELDS:
                entry[field] = getattr(row, field) if row else 0
            series.append(entry)
        return series

    def weekly_summary(self, user_id: int, target_language: str) -> Dict[str, Any]:
        """Roll the last seven daily rows (today included) into one week."""
        today = self.today()
        week_start = today - timedelta(days=6)
        rows = list(
            DailyProgress.objects.filter(
                user_id=user_id,
                target_language=target_language,
                date__gte=week_start,
                date__lte=today,
            )
        )

        sessions = sum(row.sessions_completed for row in rows)
        weighted_accuracy = sum(row.average_accuracy * row.sessions_completed for row in rows)
        return {
            'week_start': week_start.isoformat(),
            'week_end': today.isoformat(),
            'sessions_completed': sessions,
            'minutes_learned': sum(row.minutes_learned for row in rows),
            'messages_spoken': sum(row.messages_spoken for row in rows),
            'corrections_received': sum(row.corrections_received for row in rows),
            'average_accuracy': round(weighted_accuracy / sessions, 2) if sessions else 0.0,
            'active_days': sum(1 for row in rows if row.sessions_completed > 0),
        }

    # ------------------------------------------------------------------
    # Dashboard
    # ------------------------------------------------------------------

    def dashboard(self, user_id: int, target_language: Optional[str] = None) -> Dict[str, Any]:
        """Overview, recent progress, weak areas and latest corrections."""
        profile = UserProfile.objects.filter(user_id=user_id).first()
        language = self.resolve_language(user_id, target_language)

        # Lifetime figures span every language the user practiced
        all_sessions = LearningSession.objects.filter(user_id=user_id)
        totals = all_sessions.aggregate(
            total_sessions=Count('id'), total_minutes=Sum('duration_minutes')
        )
        ended_accuracy = all_sessions.filter(end_time__isnull=False).aggregate(
            avg=Avg('accuracy_score')
        )['avg']

        # Inclusive of the day a week back, so up to eight daily rows
        week_ago = self.today() - timedelta(days=7)
        weekly_progress = [
            {
                'date': row.date.isoformat(),
                'target_language': row.target_language,
                **{field: getattr(row, field) for field in PROGRESS_FIELDS},
            }
            for row in DailyProgress.objects.filter(
                user_id=user_id, date__gte=week_ago
            ).order_by('date', 'target_language')
        ]

        recent_corrections = [
            serialize_correction(c)
            for c in Correction.objects.filter(
                session__user_id=user_id, session__target_language=language
            ).order_by('-timestamp', '-id')[: self.recent_correction_count]
        ]

        return {
            'target_language': language,
            'overview': {
                'total_sessions': totals['total_sessions'],
                'total_minutes': totals['total_minutes'] or 0,
                'average_accuracy': round(ended_accuracy or 0.0, 2),
                'current_streak': self.calculate_streak(user_id, language),
                'proficiency_level': normalize_level(
                    profile.proficiency_level if profile else None
                ),
                'current_level': profile.current_level if profile else 1,
            },
            'weekly_progress': weekly_progress,
            'weekly_summary': self.weekly_summary(user_id, language),
            'weak_areas': self.adaptive.identify_weak_areas(user_id, language),
            'recent_corrections': recent_corrections,
        }

    def vocabulary_history(
        self, user_id: int, target_language: str, limit: int = 20
    ) -> List[Dict[str, Any]]:
        """Sessions that produced a vocabulary list, newest first."""
        sessions = (
            LearningSession.objects.filter(user_id=user_id, target_language=target_language)
            .exclude(vocabulary_list=[])
            .order_by('-start_time', '-id')[:limit]
        )
        return [
            {
                'session_id': s.id,
                'start_time': s.start_time.isoformat(),
                'topic': s.topic,
                'vocabulary_list': s.vocabulary_list,
            }
            for s in sessions
        ]


# Default global service instance
analytics_service = AnalyticsService()
