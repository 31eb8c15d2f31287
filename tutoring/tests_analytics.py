"""
Tests for the analytics service: streaks, progress series, weekly summary,
weak-area details, vocabulary history and the dashboard payload.
"""

from datetime import datetime, timedelta
from datetime import timezone as dt_timezone

from django.contrib.auth.models import User
from django.test import TestCase

from tutoring.adaptive_service import AdaptiveLearningService
from tutoring.analytics_service import AnalyticsService
from tutoring.models import Correction, DailyProgress, LearningSession, UserProfile

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=dt_timezone.utc)
TODAY = NOW.date()


def make_analytics() -> AnalyticsService:
    return AnalyticsService(
        adaptive=AdaptiveLearningService(clock=lambda: NOW), clock=lambda: NOW
    )


class StreakTest(TestCase):
    """Test calculate_streak."""

    def setUp(self) -> None:
        self.user = User.objects.create_user(username='learner', password='testpass123')
        self.service = make_analytics()

    def practice_on(self, days_ago: int, language: str = 'es-ES') -> None:
        LearningSession.objects.create(
            user=self.user,
            target_language=language,
            start_time=NOW - timedelta(days=days_ago, hours=1),
        )

    def streak(self) -> int:
        return self.service.calculate_streak(self.user.id, 'es-ES')

    def test_no_sessions(self):
        self.assertEqual(self.streak(), 0)

    def test_yesterday_only(self):
        self.practice_on(1)
        self.assertEqual(self.streak(), 1)

    def test_two_previous_days_without_today(self):
        self.practice_on(2)
        self.practice_on(1)
        self.assertEqual(self.streak(), 2)

    def test_today_only(self):
        self.practice_on(0)
        self.assertEqual(self.streak(), 1)

    def test_gap_ends_streak(self):
        self.practice_on(0)
        self.practice_on(1)
        self.practice_on(3)
        self.practice_on(4)
        self.assertEqual(self.streak(), 2)

    def test_multiple_sessions_per_day_count_once(self):
        self.practice_on(0)
        self.practice_on(0)
        self.practice_on(1)
        self.assertEqual(self.streak(), 2)

    def test_gap_before_yesterday_means_no_streak(self):
        self.practice_on(2)
        self.practice_on(3)
        self.assertEqual(self.streak(), 0)

    def test_other_language_does_not_count(self):
        self.practice_on(0, language='de-DE')
        self.practice_on(1)
        self.assertEqual(self.streak(), 1)


class ProgressSeriesTest(TestCase):
    """Test progress_series and weekly_summary."""

    def setUp(self) -> None:
        self.user = User.objects.create_user(username='learner', password='testpass123')
        self.service = make_analytics()

    def add_day(self, days_ago: int, **values) -> DailyProgress:
        return DailyProgress.objects.create(
            user=self.user,
            date=TODAY - timedelta(days=days_ago),
            target_language='es-ES',
            **values,
        )

    def test_series_is_zero_filled_and_oldest_first(self):
        self.add_day(2, minutes_learned=15, sessions_completed=1, average_accuracy=88.0)

        series = self.service.progress_series(self.user.id, 'es-ES', days=7)

        self.assertEqual(len(series), 7)
        self.assertEqual(series[0]['date'], (TODAY - timedelta(days=6)).isoformat())
        self.assertEqual(series[-1]['date'], TODAY.isoformat())
        self.assertEqual(series[4]['minutes_learned'], 15)
        self.assertEqual(series[4]['average_accuracy'], 88.0)
        self.assertEqual(series[5]['minutes_learned'], 0)
        self.assertEqual(sum(entry['sessions_completed'] for entry in series), 1)

    def test_series_ignores_other_languages(self):
        DailyProgress.objects.create(
            user=self.user, date=TODAY, target_language='de-DE', minutes_learned=30
        )

        series = self.service.progress_series(self.user.id, 'es-ES', days=3)

        self.assertTrue(all(entry['minutes_learned'] == 0 for entry in series))

    def test_weekly_summary(self):
        self.add_day(0, sessions_completed=2, minutes_learned=20, average_accuracy=80.0)
        self.add_day(3, sessions_completed=1, minutes_learned=10, average_accuracy=50.0)
        self.add_day(10, sessions_completed=5, minutes_learned=100, average_accuracy=10.0)

        summary = self.service.weekly_summary(self.user.id, 'es-ES')

        self.assertEqual(summary['week_start'], (TODAY - timedelta(days=6)).isoformat())
        self.assertEqual(summary['week_end'], TODAY.isoformat())
        self.assertEqual(summary['sessions_completed'], 3)
        self.assertEqual(summary['minutes_learned'], 30)
        self.assertEqual(summary['average_accuracy'], 70.0)
        self.assertEqual(summary['active_days'], 2)

    def test_empty_week(self):
        summary = self.service.weekly_summary(self.user.id, 'es-ES')

        self.assertEqual(summary['sessions_completed'], 0)
        self.assertEqual(summary['average_accuracy'], 0.0)
        self.assertEqual(summary['active_days'], 0)


class WeakAreaDetailsTest(TestCase):
    """Test weak_area_details and vocabulary_history."""

    def setUp(self) -> None:
        self.user = User.objects.create_user(username='learner', password='testpass123')
        self.service = make_analytics()
        self.session = LearningSession.objects.create(
            user=self.user,
            target_language='es-ES',
            start_time=NOW - timedelta(days=1),
            vocabulary_list=['mesa', 'silla'],
        )

    def test_groups_with_most_recent_examples(self):
        for i in range(4):
            Correction.objects.create(
                session=self.session,
                timestamp=NOW - timedelta(hours=10 - i),
                original_text=f'grammar {i}',
                corrected_text=f'fixed {i}',
                error_type='Grammar',
            )
        Correction.objects.create(
            session=self.session,
            original_text='tree',
            corrected_text='three',
            error_type='Pronunciation',
        )

        details = self.service.weak_area_details(self.user.id, 'es-ES')

        self.assertEqual([d['error_type'] for d in details], ['Grammar', 'Pronunciation'])
        self.assertEqual(details[0]['count'], 4)
        self.assertEqual(
            [e['original_text'] for e in details[0]['examples']],
            ['grammar 3', 'grammar 2', 'grammar 1'],
        )

    def test_vocabulary_history_skips_empty_lists(self):
        LearningSession.objects.create(
            user=self.user, target_language='es-ES', start_time=NOW - timedelta(hours=2)
        )

        history = self.service.vocabulary_history(self.user.id, 'es-ES')

        self.assertEqual(len(history), 1)
        self.assertEqual(history[0]['vocabulary_list'], ['mesa', 'silla'])


class DashboardTest(TestCase):
    """Test the dashboard payload."""

    def setUp(self) -> None:
        self.user = User.objects.create_user(username='learner', password='testpass123')
        UserProfile.objects.create(
            user=self.user, target_language='es-ES', proficiency_level='Intermediate'
        )
        self.service = make_analytics()

    def test_dashboard_for_new_learner(self):
        data = self.service.dashboard(self.user.id)

        self.assertEqual(data['target_language'], 'es-ES')
        self.assertEqual(data['overview']['total_sessions'], 0)
        self.assertEqual(data['overview']['total_minutes'], 0)
        self.assertEqual(data['overview']['current_streak'], 0)
        self.assertEqual(data['overview']['proficiency_level'], 'Intermediate')
        self.assertEqual(data['weekly_progress'], [])
        self.assertEqual(data['weak_areas'], [])
        self.assertEqual(data['recent_corrections'], [])

    def test_dashboard_with_history(self):
        ended = LearningSession.objects.create(
            user=self.user,
            target_language='es-ES',
            start_time=NOW - timedelta(days=1, hours=1),
            end_time=NOW - timedelta(days=1),
            duration_minutes=20,
            accuracy_score=90.0,
        )
        LearningSession.objects.create(
            user=self.user,
            target_language='de-DE',
            start_time=NOW - timedelta(hours=3),
            end_time=NOW - timedelta(hours=2),
            duration_minutes=10,
            accuracy_score=70.0,
        )
        # Still running, excluded from the accuracy mean
        LearningSession.objects.create(
            user=self.user, target_language='es-ES', start_time=NOW - timedelta(minutes=5)
        )
        for i in range(7):
            Correction.objects.create(
                session=ended,
                timestamp=NOW - timedelta(days=1, minutes=50 - i),
                original_text=f'o{i}',
                corrected_text=f'c{i}',
                error_type='Grammar',
            )
        DailyProgress.objects.create(
            user=self.user, date=TODAY - timedelta(days=1), target_language='es-ES',
            sessions_completed=1, minutes_learned=20, average_accuracy=90.0,
        )
        DailyProgress.objects.create(
            user=self.user, date=TODAY - timedelta(days=20), target_language='es-ES',
            sessions_completed=1, minutes_learned=5,
        )

        data = self.service.dashboard(self.user.id, 'es-ES')
        overview = data['overview']

        self.assertEqual(overview['total_sessions'], 3)
        self.assertEqual(overview['total_minutes'], 30)
        self.assertEqual(overview['average_accuracy'], 80.0)
        self.assertEqual(overview['current_streak'], 2)
        self.assertEqual(len(data['weekly_progress']), 1)
        self.assertEqual(data['weekly_summary']['sessions_completed'], 1)
        self.assertEqual(data['weak_areas'], ['Grammar'])
        self.assertEqual(len(data['recent_corrections']), 5)
        self.assertEqual(data['recent_corrections'][0]['original_text'], 'o6')

    def test_weekly_progress_includes_the_day_a_week_back(self):
        for days_back in range(9):
            DailyProgress.objects.create(
                user=self.user,
                date=TODAY - timedelta(days=days_back),
                target_language='es-ES',
                sessions_completed=1,
            )

        data = self.service.dashboard(self.user.id, 'es-ES')

        dates = [row['date'] for row in data['weekly_progress']]
        self.assertEqual(len(dates), 8)
        self.assertEqual(dates[0], (TODAY - timedelta(days=7)).isoformat())
        self.assertEqual(dates[-1], TODAY.isoformat())
