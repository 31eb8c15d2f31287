"""
Tests for the session lifecycle service and the AI tutor adapter.

AI tests patch the pydantic-ai ``Agent`` so no request leaves the process.
"""

from datetime import datetime, timedelta
from datetime import timezone as dt_timezone
from io import StringIO
from unittest.mock import AsyncMock, MagicMock, patch

from django.contrib.auth.models import User
from django.core.management import call_command
from django.test import SimpleTestCase, TestCase
from pydantic_ai.exceptions import AgentRunError
from pydantic_ai.messages import ModelRequest, ModelResponse

from tutoring.adaptive_service import AdaptiveLearningService
from tutoring.ai_service import AIService
from tutoring.analysis_models import (
    CorrectionReport,
    CorrectionSeverity,
    DetectedCorrection,
    ErrorCategory,
)
from tutoring.exceptions import SessionAlreadyEnded
from tutoring.models import DailyProgress, LearningSession, UserProfile
from tutoring.session_service import SessionService

START = datetime(2026, 10, 19, 11, 30, tzinfo=dt_timezone.utc)


class SessionServiceTest(TestCase):
    """Test the session lifecycle."""

    def setUp(self) -> None:
        self.user = User.objects.create_user(username='learner', password='testpass123')
        self.now = START
        clock = lambda: self.now  # noqa: E731
        self.service = SessionService(
            adaptive=AdaptiveLearningService(clock=clock), clock=clock
        )

    def test_start_session_creates_profile_and_prompt(self):
        session, prompt = self.service.start_session(self.user, 'es-ES', 'Food', 'Lesson')

        profile = UserProfile.objects.get(user=self.user)
        self.assertEqual(profile.target_language, 'es-ES')
        self.assertEqual(session.start_time, START)
        self.assertEqual(session.topic, 'Food')
        self.assertEqual(session.mode, 'Lesson')
        self.assertEqual(session.difficulty_level, 'Beginner')
        self.assertTrue(session.is_active)
        self.assertIn('Current Topic: Food', prompt)

    def test_start_session_defaults(self):
        session, _ = self.service.start_session(self.user, 'es-ES')

        self.assertEqual(session.topic, 'General Conversation')
        self.assertEqual(session.mode, 'Casual')

    def test_start_session_snapshots_adapted_difficulty(self):
        UserProfile.objects.create(user=self.user, proficiency_level='Beginner')
        for i in range(5):
            LearningSession.objects.create(
                user=self.user,
                target_language='es-ES',
                start_time=START - timedelta(days=i + 1),
                accuracy_score=95.0,
            )

        session, prompt = self.service.start_session(self.user, 'es-ES')

        self.assertEqual(session.difficulty_level, 'Intermediate')
        self.assertIn('Intermediate level student', prompt)

    def test_messages_and_corrections_bump_counters(self):
        session, _ = self.service.start_session(self.user, 'es-ES')

        self.service.add_message(session, True, 'Hola, yo es Ana')
        self.service.add_message(session, False, 'Hola Ana!')
        correction = self.service.add_correction(
            session, 'yo es', 'yo soy', 'Grammar', 'ser conjugation'
        )

        session.refresh_from_db()
        self.assertEqual(session.message_count, 2)
        self.assertEqual(session.correction_count, 1)
        self.assertEqual(correction.severity, 'Medium')
        self.assertEqual(session.messages.first().language, 'es-ES')

    def test_record_exchange_stores_everything(self):
        session, _ = self.service.start_session(self.user, 'es-ES')
        report = CorrectionReport(
            corrections=[
                DetectedCorrection(
                    error_type=ErrorCategory.GRAMMAR,
                    severity=CorrectionSeverity.HIGH,
                    original_text='yo es',
                    corrected_text='yo soy',
                    explanation='Use soy with yo',
                )
            ]
        )

        learner, tutor, corrections = self.service.record_exchange(
            session, 'yo es Ana', 'Encantada, Ana!', report
        )

        self.assertTrue(learner.has_error)
        self.assertTrue(learner.is_user)
        self.assertFalse(tutor.is_user)
        self.assertEqual(len(corrections), 1)
        self.assertEqual(corrections[0].error_type, 'Grammar')
        self.assertEqual(corrections[0].severity, 'High')
        session.refresh_from_db()
        self.assertEqual(session.message_count, 2)
        self.assertEqual(session.correction_count, 1)

    def test_end_session_records_and_aggregates(self):
        session, _ = self.service.start_session(self.user, 'es-ES')
        self.service.add_message(session, True, 'uno')
        self.now = START + timedelta(minutes=25, seconds=40)

        ended = self.service.end_session(
            session, summary='Talked about food', vocabulary_list=['mesa', 'silla']
        )

        self.assertFalse(ended.is_active)
        self.assertEqual(ended.duration_minutes, 25)
        self.assertEqual(ended.accuracy_score, 75.0)
        self.assertEqual(ended.new_vocabulary_learned, 2)
        progress = DailyProgress.objects.get(user=self.user)
        self.assertEqual(progress.sessions_completed, 1)
        self.assertEqual(progress.minutes_learned, 25)
        self.assertEqual(progress.messages_spoken, 1)
        self.assertEqual(progress.new_vocabulary, 2)
        self.assertEqual(UserProfile.objects.get(user=self.user).total_sessions, 1)

    def test_ending_twice_raises_and_counts_once(self):
        session, _ = self.service.start_session(self.user, 'es-ES')
        self.service.end_session(session, accuracy_score=90.0)

        with self.assertRaises(SessionAlreadyEnded):
            self.service.end_session(session, accuracy_score=10.0)

        progress = DailyProgress.objects.get(user=self.user)
        self.assertEqual(progress.sessions_completed, 1)
        self.assertAlmostEqual(progress.average_accuracy, 90.0)

    def test_session_summary_lists_top_three_mistakes(self):
        session, _ = self.service.start_session(self.user, 'es-ES')
        for error_type, count in [('Grammar', 3), ('Spelling', 1), ('Vocabulary', 2), ('Other', 1)]:
            for _ in range(count):
                self.service.add_correction(session, 'a', 'b', error_type)
        self.service.end_session(session, accuracy_score=65.0)

        summary = self.service.session_summary(session)

        self.assertEqual(summary['correction_count'], 7)
        self.assertEqual(summary['accuracy_score'], 65.0)
        self.assertEqual(
            summary['top_mistakes'],
            [
                {'error_type': 'Grammar', 'count': 3},
                {'error_type': 'Vocabulary', 'count': 2},
                {'error_type': 'Other', 'count': 1},
            ],
        )

    def test_history_lists_ended_sessions_newest_first(self):
        first, _ = self.service.start_session(self.user, 'es-ES', 'First')
        self.service.end_session(first)
        self.now = START + timedelta(hours=1)
        second, _ = self.service.start_session(self.user, 'es-ES', 'Second')
        self.service.end_session(second)
        self.service.start_session(self.user, 'es-ES', 'Still running')

        history = self.service.session_history(self.user)

        self.assertEqual([s['topic'] for s in history], ['Second', 'First'])
        self.assertEqual(len(self.service.session_history(self.user, limit=1)), 1)

    def test_conversation_history_roles(self):
        session, _ = self.service.start_session(self.user, 'es-ES')
        self.service.add_message(session, True, 'Hola')
        self.service.add_message(session, False, 'Hola! Que tal?')

        self.assertEqual(
            self.service.conversation_history(session),
            [
                {'role': 'user', 'content': 'Hola'},
                {'role': 'assistant', 'content': 'Hola! Que tal?'},
            ],
        )


class AIServiceTest(SimpleTestCase):
    """Test the pydantic-ai adapter with a mocked Agent."""

    def setUp(self) -> None:
        self.service = AIService(model_name='test-model')
        self.service._model = MagicMock()

    @patch('tutoring.ai_service.Agent')
    async def test_generate_tutor_reply_without_history(self, mock_agent_class):
        mock_agent = mock_agent_class.return_value
        mock_agent.run = AsyncMock(return_value=MagicMock(output='Hola! Que tal?'))

        reply = await self.service.generate_tutor_reply('You are a tutor', 'Hola', [])

        self.assertEqual(reply, 'Hola! Que tal?')
        mock_agent_class.assert_called_once_with(
            model=self.service._model, system_prompt='You are a tutor'
        )
        mock_agent.run.assert_called_once_with('Hola')

    @patch('tutoring.ai_service.Agent')
    async def test_generate_tutor_reply_with_history(self, mock_agent_class):
        mock_agent = mock_agent_class.return_value
        mock_agent.run = AsyncMock(return_value=MagicMock(output='Muy bien'))
        history = [
            {'role': 'user', 'content': 'Hola'},
            {'role': 'assistant', 'content': 'Hola! Que tal?'},
        ]

        await self.service.generate_tutor_reply('You are a tutor', 'Bien', history)

        _, kwargs = mock_agent.run.call_args
        messages = kwargs['message_history']
        self.assertEqual(len(messages), 2)
        self.assertIsInstance(messages[0], ModelRequest)
        self.assertIsInstance(messages[1], ModelResponse)

    @patch('tutoring.ai_service.Agent')
    async def test_detect_corrections_returns_structured_report(self, mock_agent_class):
        report = CorrectionReport(
            corrections=[
                DetectedCorrection(
                    error_type=ErrorCategory.SPELLING,
                    original_text='recieve',
                    corrected_text='receive',
                    explanation='i before e',
                )
            ]
        )
        mock_agent = mock_agent_class.return_value
        mock_agent.run = AsyncMock(return_value=MagicMock(output=report))

        result = await self.service.detect_corrections('I recieve it', 'en-US', 'Beginner')

        self.assertEqual(result, report)
        _, kwargs = mock_agent_class.call_args
        self.assertIs(kwargs['output_type'], CorrectionReport)
        self.assertIn('Beginner', kwargs['system_prompt'])

    @patch('tutoring.ai_service.Agent')
    async def test_detect_corrections_provider_failure_is_empty(self, mock_agent_class):
        mock_agent = mock_agent_class.return_value
        mock_agent.run = AsyncMock(side_effect=AgentRunError('quota exceeded'))

        with self.assertLogs('tutoring.ai_service', level='WARNING'):
            result = await self.service.detect_corrections('Hola', 'es-ES', 'Beginner')

        self.assertEqual(result.corrections, [])

    def test_report_defaults_to_no_corrections(self):
        self.assertEqual(CorrectionReport().corrections, [])
        correction = DetectedCorrection(
            error_type=ErrorCategory.OTHER,
            original_text='a',
            corrected_text='b',
            explanation='c',
        )
        self.assertEqual(correction.severity, CorrectionSeverity.MEDIUM)


class SeedLearningHistoryCommandTest(TestCase):
    """Test the seed_learning_history management command."""

    @patch('tutoring.management.commands.seed_learning_history.random.random', return_value=0.0)
    def test_seeded_sessions_are_aggregated(self, _mock_random):
        out = StringIO()

        call_command('seed_learning_history', count=2, weeks=1, stdout=out)

        sessions = LearningSession.objects.filter(user__username__startswith='sample_learner_')
        self.assertEqual(sessions.count(), 16)
        self.assertFalse(sessions.filter(end_time__isnull=True).exists())
        self.assertEqual(
            sum(
                DailyProgress.objects.filter(
                    user__username__startswith='sample_learner_'
                ).values_list('sessions_completed', flat=True)
            ),
            16,
        )
        self.assertEqual(
            UserProfile.objects.filter(user__username__startswith='sample_learner_')
            .values_list('total_sessions', flat=True)
            .distinct()
            .get(),
            8,
        )
        self.assertIn('Successfully seeded 16 sessions', out.getvalue())

    def test_clear_removes_previous_learners(self):
        User.objects.create_user(username='sample_learner_9', password='testpass123')

        call_command('seed_learning_history', count=0, clear=True, stdout=StringIO())

        self.assertFalse(User.objects.filter(username__startswith='sample_learner_').exists())
