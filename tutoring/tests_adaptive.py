"""
Unit tests for the adaptive learning service.

Covers difficulty adaptation, weak-area ranking, prompt composition and the
progress rollup written when a session ends. The service clock is pinned so
dates are deterministic.
"""

from datetime import datetime, timedelta
from datetime import timezone as dt_timezone
from unittest.mock import patch

from django.contrib.auth.models import User
from django.db import connection
from django.db.models import F
from django.test import TestCase
from django.test.utils import CaptureQueriesContext

from tutoring.adaptive_service import (
    AdaptiveLearningService,
    get_next_level,
    get_previous_level,
    normalize_level,
)
from tutoring.models import (
    ConversationMessage,
    Correction,
    DailyProgress,
    LearningSession,
    UserProfile,
)

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=dt_timezone.utc)


class AdaptiveTestMixin:
    """Helpers shared by the adaptive service test cases."""

    def make_session(self, user, accuracy=75.0, corrections=0, hours_ago=1, **kwargs):
        start = NOW - timedelta(hours=hours_ago)
        defaults = {
            'target_language': 'es-ES',
            'start_time': start,
            'accuracy_score': accuracy,
            'correction_count': corrections,
        }
        defaults.update(kwargs)
        return LearningSession.objects.create(user=user, **defaults)


class LevelHelpersTest(TestCase):
    """Test tier progression helpers."""

    def test_next_level_caps_at_advanced(self):
        self.assertEqual(get_next_level('Beginner'), 'Intermediate')
        self.assertEqual(get_next_level('Intermediate'), 'Advanced')
        self.assertEqual(get_next_level('Advanced'), 'Advanced')

    def test_previous_level_floors_at_beginner(self):
        self.assertEqual(get_previous_level('Advanced'), 'Intermediate')
        self.assertEqual(get_previous_level('Intermediate'), 'Beginner')
        self.assertEqual(get_previous_level('Beginner'), 'Beginner')

    def test_unknown_level_is_treated_as_beginner(self):
        self.assertEqual(normalize_level('Medium'), 'Beginner')
        self.assertEqual(normalize_level(None), 'Beginner')
        self.assertEqual(get_next_level('Medium'), 'Intermediate')


class DifficultyAdaptationTest(AdaptiveTestMixin, TestCase):
    """Test get_adapted_difficulty."""

    def setUp(self) -> None:
        self.user = User.objects.create_user(username='learner', password='testpass123')
        self.service = AdaptiveLearningService(clock=lambda: NOW)

    def set_level(self, level: str) -> None:
        UserProfile.objects.update_or_create(
            user=self.user, defaults={'proficiency_level': level}
        )

    def test_no_profile_and_no_sessions_is_beginner(self):
        self.assertEqual(
            self.service.get_adapted_difficulty(self.user.id, 'es-ES'), 'Beginner'
        )

    def test_no_sessions_returns_stored_level(self):
        self.set_level('Intermediate')
        self.assertEqual(
            self.service.get_adapted_difficulty(self.user.id, 'es-ES'), 'Intermediate'
        )

    def test_strong_sessions_promote_one_tier(self):
        self.set_level('Beginner')
        for i in range(5):
            self.make_session(self.user, accuracy=90.0, corrections=1, hours_ago=i + 1)

        self.assertEqual(
            self.service.get_adapted_difficulty(self.user.id, 'es-ES'), 'Intermediate'
        )

    def test_low_accuracy_demotes_one_tier(self):
        self.set_level('Intermediate')
        for i, accuracy in enumerate([40.0, 60.0, 50.0, 45.0, 55.0]):
            self.make_session(self.user, accuracy=accuracy, corrections=4, hours_ago=i + 1)

        self.assertEqual(
            self.service.get_adapted_difficulty(self.user.id, 'es-ES'), 'Beginner'
        )

    def test_many_corrections_demote(self):
        self.set_level('Advanced')
        for i in range(3):
            self.make_session(self.user, accuracy=80.0, corrections=10, hours_ago=i + 1)

        self.assertEqual(
            self.service.get_adapted_difficulty(self.user.id, 'es-ES'), 'Intermediate'
        )

    def test_middling_sessions_keep_level(self):
        self.set_level('Intermediate')
        for i in range(5):
            self.make_session(self.user, accuracy=75.0, corrections=5, hours_ago=i + 1)

        self.assertEqual(
            self.service.get_adapted_difficulty(self.user.id, 'es-ES'), 'Intermediate'
        )

    def test_promotion_caps_at_advanced(self):
        self.set_level('Advanced')
        self.make_session(self.user, accuracy=99.0, corrections=0)

        self.assertEqual(
            self.service.get_adapted_difficulty(self.user.id, 'es-ES'), 'Advanced'
        )

    def test_demotion_floors_at_beginner(self):
        self.set_level('Beginner')
        self.make_session(self.user, accuracy=10.0, corrections=20)

        self.assertEqual(
            self.service.get_adapted_difficulty(self.user.id, 'es-ES'), 'Beginner'
        )

    def test_only_five_most_recent_sessions_count(self):
        self.set_level('Beginner')
        for i in range(5):
            self.make_session(self.user, accuracy=95.0, corrections=0, hours_ago=i + 1)
        for i in range(5):
            self.make_session(self.user, accuracy=10.0, corrections=20, hours_ago=48 + i)

        self.assertEqual(
            self.service.get_adapted_difficulty(self.user.id, 'es-ES'), 'Intermediate'
        )

    def test_other_languages_are_ignored(self):
        self.set_level('Intermediate')
        self.make_session(self.user, accuracy=10.0, corrections=20, target_language='de-DE')

        self.assertEqual(
            self.service.get_adapted_difficulty(self.user.id, 'es-ES'), 'Intermediate'
        )

    def test_unknown_stored_level_falls_back_to_beginner(self):
        UserProfile.objects.create(user=self.user, proficiency_level='Medium')

        self.assertEqual(
            self.service.get_adapted_difficulty(self.user.id, 'es-ES'), 'Beginner'
        )

    def test_adaptation_is_idempotent_and_read_only(self):
        self.set_level('Beginner')
        for i in range(5):
            self.make_session(self.user, accuracy=90.0, corrections=1, hours_ago=i + 1)

        first = self.service.get_adapted_difficulty(self.user.id, 'es-ES')
        second = self.service.get_adapted_difficulty(self.user.id, 'es-ES')

        self.assertEqual(first, second)
        self.assertEqual(
            UserProfile.objects.get(user=self.user).proficiency_level, 'Beginner'
        )


class WeakAreaTest(AdaptiveTestMixin, TestCase):
    """Test identify_weak_areas."""

    def setUp(self) -> None:
        self.user = User.objects.create_user(username='learner', password='testpass123')
        self.service = AdaptiveLearningService(clock=lambda: NOW)

    def add_corrections(self, session, error_type: str, count: int) -> None:
        for i in range(count):
            Correction.objects.create(
                session=session,
                timestamp=session.start_time,
                original_text=f'wrong {i}',
                corrected_text=f'right {i}',
                error_type=error_type,
            )

    def test_no_corrections(self):
        self.assertEqual(self.service.identify_weak_areas(self.user.id, 'es-ES'), [])

    def test_ranked_by_count_then_label_and_limited_to_five(self):
        session = self.make_session(self.user)
        self.add_corrections(session, 'Grammar', 3)
        self.add_corrections(session, 'Vocabulary', 2)
        self.add_corrections(session, 'Pronunciation', 2)
        self.add_corrections(session, 'Spelling', 1)
        self.add_corrections(session, 'Other', 1)
        self.add_corrections(session, 'Fluency', 1)

        weak_areas = self.service.identify_weak_areas(self.user.id, 'es-ES')

        self.assertEqual(
            weak_areas, ['Grammar', 'Pronunciation', 'Vocabulary', 'Fluency', 'Other']
        )

    def test_only_last_thirty_days_count(self):
        recent = self.make_session(self.user, hours_ago=29 * 24)
        boundary = self.make_session(self.user, hours_ago=30 * 24)
        old = self.make_session(self.user, hours_ago=31 * 24)
        self.add_corrections(recent, 'Grammar', 1)
        self.add_corrections(boundary, 'Vocabulary', 3)
        self.add_corrections(old, 'Spelling', 5)

        self.assertEqual(
            self.service.identify_weak_areas(self.user.id, 'es-ES'), ['Grammar']
        )

    def test_other_users_and_languages_are_ignored(self):
        other = User.objects.create_user(username='other', password='testpass123')
        self.add_corrections(self.make_session(other), 'Grammar', 4)
        self.add_corrections(
            self.make_session(self.user, target_language='de-DE'), 'Spelling', 2
        )
        self.add_corrections(self.make_session(self.user), 'Vocabulary', 1)

        self.assertEqual(
            self.service.identify_weak_areas(self.user.id, 'es-ES'), ['Vocabulary']
        )


class PersonalizedPromptTest(AdaptiveTestMixin, TestCase):
    """Test generate_personalized_prompt."""

    def setUp(self) -> None:
        self.user = User.objects.create_user(username='learner', password='testpass123')
        self.service = AdaptiveLearningService(clock=lambda: NOW)

    def test_prompt_for_new_learner(self):
        UserProfile.objects.create(user=self.user, target_language='es-ES')

        prompt = self.service.generate_personalized_prompt(
            self.user.id, 'es-ES', 'Travel and directions'
        )

        self.assertIn('teaching es-ES to a Beginner level student', prompt)
        self.assertIn('Current Topic: Travel and directions', prompt)
        self.assertIn("Student's Weak Areas: None identified yet", prompt)
        self.assertIn('Focus Areas: Grammar, Vocabulary, Pronunciation', prompt)
        self.assertIn('- Adapt your language complexity to Beginner level', prompt)
        self.assertIn('- Provide extra attention to: overall improvement', prompt)
        self.assertIn('- Be encouraging and supportive', prompt)
        self.assertIn('- Correct mistakes gently but clearly', prompt)
        self.assertIn('- Ask follow-up questions to encourage conversation', prompt)
        self.assertIn('- Use natural, conversational language', prompt)

    def test_prompt_lists_weak_areas(self):
        UserProfile.objects.create(user=self.user, focus_areas=['Listening'])
        session = self.make_session(self.user)
        for error_type in ['Grammar', 'Grammar', 'Spelling']:
            Correction.objects.create(
                session=session,
                original_text='a',
                corrected_text='b',
                error_type=error_type,
            )

        prompt = self.service.generate_personalized_prompt(self.user.id, 'es-ES', 'Food')

        self.assertIn("Student's Weak Areas: Grammar, Spelling", prompt)
        self.assertIn('- Provide extra attention to: Grammar, Spelling', prompt)
        self.assertIn('Focus Areas: Listening', prompt)

    def test_prompt_without_profile_uses_general_focus(self):
        prompt = self.service.generate_personalized_prompt(self.user.id, 'fr-FR', 'Music')

        self.assertIn('Focus Areas: General', prompt)
        self.assertIn('to a Beginner level student', prompt)

    def test_prompt_with_pinned_difficulty(self):
        prompt = self.service.generate_personalized_prompt(
            self.user.id, 'es-ES', 'Music', difficulty='Advanced'
        )

        self.assertIn('to a Advanced level student', prompt)
        self.assertIn('- Adapt your language complexity to Advanced level', prompt)

    def test_prompt_does_not_write(self):
        UserProfile.objects.create(user=self.user)
        before = UserProfile.objects.get(user=self.user).updated_at

        self.service.generate_personalized_prompt(self.user.id, 'es-ES', 'Food')

        self.assertEqual(UserProfile.objects.get(user=self.user).updated_at, before)


class ProgressAggregationTest(AdaptiveTestMixin, TestCase):
    """Test update_user_progress."""

    def setUp(self) -> None:
        self.user = User.objects.create_user(username='learner', password='testpass123')
        self.profile = UserProfile.objects.create(user=self.user, target_language='es-ES')
        self.service = AdaptiveLearningService(clock=lambda: NOW)

    def make_ended_session(
        self, accuracy=80.0, duration=10, grammar_errors=0, user_messages=0, **kwargs
    ):
        session = self.make_session(
            self.user,
            accuracy=accuracy,
            corrections=grammar_errors,
            end_time=NOW,
            duration_minutes=duration,
            **kwargs,
        )
        for i in range(user_messages):
            ConversationMessage.objects.create(
                session=session, is_user=True, text=f'learner {i}'
            )
            ConversationMessage.objects.create(
                session=session, is_user=False, text=f'tutor {i}'
            )
        for i in range(grammar_errors):
            Correction.objects.create(
                session=session,
                original_text=f'wrong {i}',
                corrected_text=f'right {i}',
                error_type='Grammar',
            )
        return session

    def test_single_session_rollup(self):
        session = self.make_ended_session(
            accuracy=80.0, duration=10, grammar_errors=2, user_messages=6
        )

        self.service.update_user_progress(self.user.id, session.id)

        progress = DailyProgress.objects.get(user=self.user)
        self.assertEqual(progress.date, NOW.date())
        self.assertEqual(progress.target_language, 'es-ES')
        self.assertEqual(progress.sessions_completed, 1)
        self.assertEqual(progress.minutes_learned, 10)
        self.assertEqual(progress.messages_spoken, 6)
        self.assertEqual(progress.corrections_received, 2)
        self.assertAlmostEqual(progress.average_accuracy, 80.0)
        self.assertAlmostEqual(progress.grammar_score, 0.0)
        self.assertAlmostEqual(progress.vocabulary_score, 100.0)
        self.assertAlmostEqual(progress.pronunciation_score, 100.0)
        self.assertAlmostEqual(progress.fluency_score, 80.0)

    def test_same_day_sessions_share_one_row(self):
        first = self.make_ended_session(accuracy=80.0, duration=10, user_messages=2)
        second = self.make_ended_session(accuracy=60.0, duration=5, user_messages=3)

        self.service.update_user_progress(self.user.id, first.id)
        self.service.update_user_progress(self.user.id, second.id)

        self.assertEqual(DailyProgress.objects.filter(user=self.user).count(), 1)
        progress = DailyProgress.objects.get(user=self.user)
        self.assertEqual(progress.sessions_completed, 2)
        self.assertEqual(progress.minutes_learned, 15)
        self.assertEqual(progress.messages_spoken, 5)
        self.assertAlmostEqual(progress.average_accuracy, 70.0)
        self.assertAlmostEqual(progress.fluency_score, 70.0)

    def test_running_mean_on_existing_day(self):
        DailyProgress.objects.create(
            user=self.user,
            date=NOW.date(),
            target_language='es-ES',
            sessions_completed=3,
            average_accuracy=70.0,
        )
        session = self.make_ended_session(accuracy=90.0)

        self.service.update_user_progress(self.user.id, session.id)

        progress = DailyProgress.objects.get(user=self.user)
        self.assertEqual(progress.sessions_completed, 4)
        self.assertAlmostEqual(progress.average_accuracy, 75.0)

    def test_interleaved_session_end_is_not_lost(self):
        session = self.make_ended_session(
            accuracy=90.0, duration=10, grammar_errors=1, user_messages=6
        )
        real_get_or_create = DailyProgress.objects.get_or_create

        def get_or_create_then_interleave(**kwargs):
            progress, created = real_get_or_create(**kwargs)
            # Another session of the same day commits after the row was read
            DailyProgress.objects.filter(pk=progress.pk).update(
                sessions_completed=F('sessions_completed') + 1,
                minutes_learned=F('minutes_learned') + 20,
                messages_spoken=F('messages_spoken') + 14,
                average_accuracy=60.0,
            )
            return progress, created

        with patch.object(
            DailyProgress.objects,
            'get_or_create',
            side_effect=get_or_create_then_interleave,
        ):
            self.service.update_user_progress(self.user.id, session.id)

        progress = DailyProgress.objects.get(user=self.user)
        self.assertEqual(progress.sessions_completed, 2)
        self.assertEqual(progress.minutes_learned, 30)
        self.assertEqual(progress.messages_spoken, 20)
        self.assertAlmostEqual(progress.average_accuracy, 75.0)
        self.assertAlmostEqual(progress.fluency_score, 75.0)
        # 100 - 1 * 100 / 20 * 10
        self.assertAlmostEqual(progress.grammar_score, 50.0)

    def test_skill_scores_use_day_message_total(self):
        DailyProgress.objects.create(
            user=self.user,
            date=NOW.date(),
            target_language='es-ES',
            sessions_completed=1,
            messages_spoken=90,
            average_accuracy=80.0,
        )
        session = self.make_ended_session(grammar_errors=1, user_messages=10)

        self.service.update_user_progress(self.user.id, session.id)

        progress = DailyProgress.objects.get(user=self.user)
        # 100 - 1 * 100 / 100 * 10
        self.assertAlmostEqual(progress.grammar_score, 90.0)
        self.assertAlmostEqual(progress.vocabulary_score, 100.0)

    def test_skill_score_matching_ignores_case(self):
        session = self.make_ended_session(user_messages=20)
        Correction.objects.create(
            session=session,
            original_text='a',
            corrected_text='b',
            error_type='vocabulary choice',
        )

        self.service.update_user_progress(self.user.id, session.id)

        progress = DailyProgress.objects.get(user=self.user)
        self.assertAlmostEqual(progress.vocabulary_score, 50.0)
        self.assertAlmostEqual(progress.grammar_score, 100.0)

    def test_profile_statistics_are_updated(self):
        session = self.make_ended_session(
            accuracy=80.0, duration=10, grammar_errors=2, user_messages=6
        )

        self.service.update_user_progress(self.user.id, session.id)

        profile = UserProfile.objects.get(user=self.user)
        self.assertEqual(profile.total_sessions, 1)
        self.assertEqual(profile.total_minutes_learned, 10)
        self.assertEqual(profile.total_corrections, 2)
        self.assertAlmostEqual(profile.average_accuracy, 80.0)
        self.assertEqual(profile.last_session_date, NOW)
        self.assertEqual(profile.weak_areas, ['Grammar'])
        self.assertEqual(profile.proficiency_level, 'Beginner')

    def test_profile_is_written_with_one_update(self):
        session = self.make_ended_session(grammar_errors=1, user_messages=2)

        with CaptureQueriesContext(connection) as queries:
            self.service.update_user_progress(self.user.id, session.id)

        profile_updates = [
            query['sql']
            for query in queries.captured_queries
            if query['sql'].startswith('UPDATE "tutoring_userprofile"')
        ]
        self.assertEqual(len(profile_updates), 1)
        profile = UserProfile.objects.get(user=self.user)
        self.assertEqual(profile.total_sessions, 1)
        self.assertEqual(profile.weak_areas, ['Grammar'])

    def test_profile_mean_accumulates_over_sessions(self):
        for accuracy in [90.0, 70.0, 50.0]:
            session = self.make_ended_session(accuracy=accuracy)
            self.service.update_user_progress(self.user.id, session.id)

        profile = UserProfile.objects.get(user=self.user)
        self.assertEqual(profile.total_sessions, 3)
        self.assertAlmostEqual(profile.average_accuracy, 70.0)

    def test_profile_level_follows_recent_performance(self):
        for i in range(4):
            self.make_session(self.user, accuracy=90.0, corrections=1, hours_ago=i + 2)
        session = self.make_ended_session(accuracy=90.0, grammar_errors=1)

        self.service.update_user_progress(self.user.id, session.id)

        self.assertEqual(
            UserProfile.objects.get(user=self.user).proficiency_level, 'Intermediate'
        )

    def test_missing_session_is_a_no_op(self):
        self.service.update_user_progress(self.user.id, 999999)

        self.assertFalse(DailyProgress.objects.exists())
        self.assertEqual(UserProfile.objects.get(user=self.user).total_sessions, 0)

    def test_missing_profile_still_records_day(self):
        other = User.objects.create_user(username='no_profile', password='testpass123')
        session = self.make_session(
            other, accuracy=60.0, end_time=NOW, duration_minutes=3
        )

        self.service.update_user_progress(other.id, session.id)

        self.assertTrue(DailyProgress.objects.filter(user=other).exists())
        self.assertFalse(UserProfile.objects.filter(user=other).exists())

    def test_rows_are_split_by_language(self):
        spanish = self.make_ended_session()
        german = self.make_ended_session(target_language='de-DE')

        self.service.update_user_progress(self.user.id, spanish.id)
        self.service.update_user_progress(self.user.id, german.id)

        self.assertEqual(
            sorted(
                DailyProgress.objects.filter(user=self.user).values_list(
                    'target_language', flat=True
                )
            ),
            ['de-DE', 'es-ES'],
        )
