"""
Tests for the tutoring JSON API with async views.

These tests drive every endpoint through ``AsyncClient`` and mock the AI
service so no request reaches the model provider.
"""

import json
from unittest.mock import ANY, AsyncMock, MagicMock, patch

from asgiref.sync import sync_to_async
from django.contrib.auth.models import User
from django.test import TransactionTestCase
from django.test.client import AsyncClient
from django.urls import reverse
from django.utils import timezone

from .analysis_models import CorrectionReport, DetectedCorrection, ErrorCategory
from .models import ConversationMessage, Correction, DailyProgress, LearningSession


class TutoringApiTestBase(TransactionTestCase):
    """Shared fixtures for the API tests."""

    def setUp(self) -> None:
        self.client = AsyncClient()

    async def asetUp(self) -> None:
        self.user = await User.objects.acreate_user(
            username='testuser', password='testpass123', email='test@example.com'
        )
        self.session = await LearningSession.objects.acreate(
            user=self.user, target_language='es-ES', topic='Food'
        )

    async def login(self, user: User = None) -> None:
        await sync_to_async(self.client.force_login)(user or self.user)


class SessionApiTest(TutoringApiTestBase):
    """Test the session lifecycle endpoints."""

    async def test_start_session_requires_login(self) -> None:
        await self.asetUp()
        response = await self.client.post(reverse('start_session'))

        self.assertEqual(response.status_code, 302)
        self.assertIn('login', response.url)

    async def test_start_session(self) -> None:
        await self.asetUp()
        await self.login()

        response = await self.client.post(
            reverse('start_session'),
            {'target_language': 'es-ES', 'topic': 'Travel', 'mode': 'Practice'},
        )

        self.assertEqual(response.status_code, 201)
        data = json.loads(response.content)
        self.assertEqual(data['topic'], 'Travel')
        self.assertEqual(data['mode'], 'Practice')
        self.assertEqual(data['difficulty_level'], 'Beginner')
        self.assertIn('Current Topic: Travel', data['system_prompt'])
        self.assertTrue(
            await LearningSession.objects.filter(pk=data['session_id']).aexists()
        )

    async def test_start_session_rejects_unknown_mode(self) -> None:
        await self.asetUp()
        await self.login()

        response = await self.client.post(reverse('start_session'), {'mode': 'Exam'})

        self.assertEqual(response.status_code, 400)

    async def test_start_session_get_request(self) -> None:
        await self.asetUp()
        await self.login()

        response = await self.client.get(reverse('start_session'))

        self.assertEqual(response.status_code, 405)

    async def test_add_message(self) -> None:
        await self.asetUp()
        await self.login()

        response = await self.client.post(
            reverse('add_message', kwargs={'session_id': self.session.id}),
            {'text': 'Me gusta la paella', 'confidence': '0.92'},
        )

        self.assertEqual(response.status_code, 201)
        message = await ConversationMessage.objects.aget(session=self.session)
        self.assertTrue(message.is_user)
        self.assertEqual(message.transcription_confidence, 0.92)
        await self.session.arefresh_from_db()
        self.assertEqual(self.session.message_count, 1)

    async def test_add_message_validation(self) -> None:
        await self.asetUp()
        await self.login()
        url = reverse('add_message', kwargs={'session_id': self.session.id})

        empty = await self.client.post(url, {'text': '   '})
        bad_confidence = await self.client.post(url, {'text': 'Hola', 'confidence': '7'})

        self.assertEqual(empty.status_code, 400)
        self.assertEqual(json.loads(empty.content)['error'], 'Message cannot be empty')
        self.assertEqual(bad_confidence.status_code, 400)

    async def test_foreign_session_is_not_found(self) -> None:
        await self.asetUp()
        other = await User.objects.acreate_user(username='other', password='testpass123')
        await self.login(other)

        detail = await self.client.get(
            reverse('session_detail', kwargs={'session_id': self.session.id})
        )
        message = await self.client.post(
            reverse('add_message', kwargs={'session_id': self.session.id}),
            {'text': 'Hola'},
        )

        self.assertEqual(detail.status_code, 404)
        self.assertEqual(message.status_code, 404)

    async def test_add_correction(self) -> None:
        await self.asetUp()
        await self.login()

        response = await self.client.post(
            reverse('add_correction', kwargs={'session_id': self.session.id}),
            {
                'original_text': 'yo es',
                'corrected_text': 'yo soy',
                'error_type': 'Grammar',
                'severity': 'High',
            },
        )

        self.assertEqual(response.status_code, 201)
        data = json.loads(response.content)
        self.assertEqual(data['error_type'], 'Grammar')
        self.assertEqual(data['severity'], 'High')
        await self.session.arefresh_from_db()
        self.assertEqual(self.session.correction_count, 1)

    async def test_add_correction_requires_fields(self) -> None:
        await self.asetUp()
        await self.login()

        response = await self.client.post(
            reverse('add_correction', kwargs={'session_id': self.session.id}),
            {'original_text': 'yo es'},
        )

        self.assertEqual(response.status_code, 400)

    async def test_add_correction_rejects_overlong_error_type(self) -> None:
        await self.asetUp()
        await self.login()

        response = await self.client.post(
            reverse('add_correction', kwargs={'session_id': self.session.id}),
            {
                'original_text': 'yo es',
                'corrected_text': 'yo soy',
                'error_type': 'x' * 60,
            },
        )

        self.assertEqual(response.status_code, 400)
        self.assertIn('at most 50 characters', json.loads(response.content)['error'])
        self.assertFalse(await Correction.objects.filter(session=self.session).aexists())

    async def test_end_session_returns_summary(self) -> None:
        await self.asetUp()
        await self.login()
        await Correction.objects.acreate(
            session=self.session,
            original_text='yo es',
            corrected_text='yo soy',
            error_type='Grammar',
        )

        response = await self.client.post(
            reverse('end_session', kwargs={'session_id': self.session.id}),
            {'accuracy_score': '90', 'vocabulary': ['mesa', 'silla']},
        )

        self.assertEqual(response.status_code, 200)
        data = json.loads(response.content)
        self.assertEqual(data['accuracy_score'], 90.0)
        self.assertEqual(data['top_mistakes'], [{'error_type': 'Grammar', 'count': 1}])
        self.assertTrue(await DailyProgress.objects.filter(user=self.user).aexists())

    async def test_end_session_twice_conflicts(self) -> None:
        await self.asetUp()
        await self.login()
        url = reverse('end_session', kwargs={'session_id': self.session.id})

        first = await self.client.post(url)
        second = await self.client.post(url)

        self.assertEqual(first.status_code, 200)
        self.assertEqual(second.status_code, 409)
        progress = await DailyProgress.objects.aget(user=self.user)
        self.assertEqual(progress.sessions_completed, 1)

    async def test_end_session_rejects_bad_accuracy(self) -> None:
        await self.asetUp()
        await self.login()

        response = await self.client.post(
            reverse('end_session', kwargs={'session_id': self.session.id}),
            {'accuracy_score': '120'},
        )

        self.assertEqual(response.status_code, 400)
        await self.session.arefresh_from_db()
        self.assertTrue(self.session.is_active)

    async def test_ended_session_rejects_messages(self) -> None:
        await self.asetUp()
        await self.login()
        self.session.end_time = timezone.now()
        await self.session.asave(update_fields=['end_time'])

        response = await self.client.post(
            reverse('add_message', kwargs={'session_id': self.session.id}),
            {'text': 'Hola'},
        )

        self.assertEqual(response.status_code, 409)

    async def test_session_history_and_detail(self) -> None:
        await self.asetUp()
        await self.login()
        await ConversationMessage.objects.acreate(
            session=self.session, is_user=True, text='Hola'
        )
        await self.client.post(
            reverse('end_session', kwargs={'session_id': self.session.id})
        )

        history = await self.client.get(reverse('session_history'))
        detail = await self.client.get(
            reverse('session_detail', kwargs={'session_id': self.session.id})
        )

        self.assertEqual(history.status_code, 200)
        self.assertEqual(len(json.loads(history.content)['sessions']), 1)
        self.assertEqual(detail.status_code, 200)
        self.assertEqual(json.loads(detail.content)['messages'][0]['text'], 'Hola')


class TutorReplyApiTest(TutoringApiTestBase):
    """Test the tutor reply endpoint with a mocked AI service."""

    @patch('tutoring.views.ai_service')
    async def test_tutor_reply_success(self, mock_ai_service: MagicMock) -> None:
        await self.asetUp()
        await self.login()
        await ConversationMessage.objects.acreate(
            session=self.session, is_user=False, text='Hola! Que comes hoy?'
        )

        mock_ai_service.generate_tutor_reply = AsyncMock(return_value='Que rico!')
        mock_ai_service.detect_corrections = AsyncMock(
            return_value=CorrectionReport(
                corrections=[
                    DetectedCorrection(
                        error_type=ErrorCategory.GRAMMAR,
                        original_text='yo come',
                        corrected_text='yo como',
                        explanation='First person ends in -o',
                    )
                ]
            )
        )

        response = await self.client.post(
            reverse('tutor_reply', kwargs={'session_id': self.session.id}),
            {'message': 'yo come paella'},
        )

        self.assertEqual(response.status_code, 200)
        data = json.loads(response.content)
        self.assertEqual(data['response'], 'Que rico!')
        self.assertEqual(len(data['corrections']), 1)
        self.assertEqual(data['corrections'][0]['corrected_text'], 'yo como')

        mock_ai_service.generate_tutor_reply.assert_called_once_with(
            ANY,
            'yo come paella',
            [{'role': 'assistant', 'content': 'Hola! Que comes hoy?'}],
        )
        mock_ai_service.detect_corrections.assert_called_once_with(
            'yo come paella', 'es-ES', 'Beginner'
        )

        learner_message = await ConversationMessage.objects.aget(
            pk=data['user_message_id']
        )
        self.assertTrue(learner_message.has_error)
        await self.session.arefresh_from_db()
        self.assertEqual(self.session.message_count, 2)
        self.assertEqual(self.session.correction_count, 1)

    @patch('tutoring.views.ai_service')
    async def test_tutor_reply_ai_error(self, mock_ai_service: MagicMock) -> None:
        await self.asetUp()
        await self.login()
        mock_ai_service.generate_tutor_reply = AsyncMock(
            side_effect=Exception("AI service error")
        )
        mock_ai_service.detect_corrections = AsyncMock(return_value=CorrectionReport())

        response = await self.client.post(
            reverse('tutor_reply', kwargs={'session_id': self.session.id}),
            {'message': 'Hola'},
        )

        self.assertEqual(response.status_code, 500)
        self.assertIn('AI service error', json.loads(response.content)['error'])
        self.assertEqual(
            await ConversationMessage.objects.filter(session=self.session).acount(), 0
        )

    async def test_tutor_reply_empty_message(self) -> None:
        await self.asetUp()
        await self.login()

        response = await self.client.post(
            reverse('tutor_reply', kwargs={'session_id': self.session.id}),
            {'message': ''},
        )

        self.assertEqual(response.status_code, 400)

    @patch('tutoring.views.is_ratelimited', return_value=True)
    async def test_tutor_reply_rate_limited(self, _mock_limited: MagicMock) -> None:
        await self.asetUp()
        await self.login()

        response = await self.client.post(
            reverse('tutor_reply', kwargs={'session_id': self.session.id}),
            {'message': 'Hola'},
        )

        self.assertEqual(response.status_code, 429)
        self.assertIn('error', json.loads(response.content))


class AnalyticsApiTest(TutoringApiTestBase):
    """Test the analytics endpoints."""

    async def test_dashboard(self) -> None:
        await self.asetUp()
        await self.login()

        response = await self.client.get(reverse('dashboard'), {'language': 'es-ES'})

        self.assertEqual(response.status_code, 200)
        data = json.loads(response.content)
        self.assertEqual(data['target_language'], 'es-ES')
        self.assertEqual(data['overview']['total_sessions'], 1)
        self.assertEqual(data['overview']['current_streak'], 1)
        for key in ('weekly_progress', 'weekly_summary', 'weak_areas', 'recent_corrections'):
            self.assertIn(key, data)

    async def test_dashboard_requires_login(self) -> None:
        response = await self.client.get(reverse('dashboard'))

        self.assertEqual(response.status_code, 302)

    async def test_progress_series(self) -> None:
        await self.asetUp()
        await self.login()

        response = await self.client.get(
            reverse('progress'), {'language': 'es-ES', 'days': '7'}
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(json.loads(response.content)['progress']), 7)

    async def test_progress_rejects_bad_days(self) -> None:
        await self.asetUp()
        await self.login()

        zero = await self.client.get(reverse('progress'), {'days': '0'})
        text = await self.client.get(reverse('progress'), {'days': 'week'})

        self.assertEqual(zero.status_code, 400)
        self.assertEqual(text.status_code, 400)

    async def test_weak_areas_and_vocabulary(self) -> None:
        await self.asetUp()
        await self.login()
        await Correction.objects.acreate(
            session=self.session,
            original_text='recieve',
            corrected_text='receive',
            error_type='Spelling',
        )

        weak = await self.client.get(reverse('weak_areas'), {'language': 'es-ES'})
        vocabulary = await self.client.get(reverse('vocabulary'), {'language': 'es-ES'})

        self.assertEqual(weak.status_code, 200)
        self.assertEqual(
            json.loads(weak.content)['weak_areas'][0]['error_type'], 'Spelling'
        )
        self.assertEqual(vocabulary.status_code, 200)
        self.assertEqual(json.loads(vocabulary.content)['sessions'], [])
