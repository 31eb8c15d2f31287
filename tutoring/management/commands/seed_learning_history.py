"""
Management command to create sample learners with a practice history.

Each sample user gets a few weeks of sessions with messages and corrections.
Sessions are ended through the session service, so daily progress, profile
statistics and difficulty tiers come out exactly as they would in production.
"""

import random
from datetime import datetime, timedelta

from django.contrib.auth.models import User
from django.core.management.base import BaseCommand
from django.db import transaction
from django.utils import timezone

from tutoring.adaptive_service import AdaptiveLearningService
from tutoring.models import DailyProgress, LearningSession, UserProfile
from tutoring.session_service import SessionService

SAMPLE_PREFIX = 'sample_learner_'

TOPICS = [
    'Ordering at a restaurant',
    'Weekend plans',
    'Travel and directions',
    'Family and friends',
    'Job interviews',
    'General Conversation',
]

SAMPLE_ERRORS = {
    'Grammar': [
        ('I goed to the store', 'I went to the store', 'Irregular past tense'),
        ('She have two cats', 'She has two cats', 'Third person singular'),
    ],
    'Vocabulary': [
        ('I made a photo', 'I took a photo', 'Collocation with "photo"'),
        ('It was very funny to travel', 'It was a lot of fun to travel', '"Fun" vs "funny"'),
    ],
    'Pronunciation': [
        ('tree o\'clock', 'three o\'clock', 'Voiceless "th"'),
    ],
    'Spelling': [
        ('recieve', 'receive', '"i" before "e" except after "c"'),
    ],
}


class SeedClock:
    """Settable clock shared by the services while history is replayed."""

    def __init__(self) -> None:
        self.current = timezone.now()

    def __call__(self) -> datetime:
        return self.current


class Command(BaseCommand):
    help = "Create sample learners with several weeks of tutoring sessions"

    def add_arguments(self, parser):
        parser.add_argument(
            '--count',
            type=int,
            default=3,
            help='Number of sample learners to create (default: 3)',
        )
        parser.add_argument(
            '--weeks',
            type=int,
            default=4,
            help='Weeks of history per learner (default: 4)',
        )
        parser.add_argument(
            '--language',
            default='es-ES',
            help='Target language of the generated sessions (default: es-ES)',
        )
        parser.add_argument(
            '--clear',
            action='store_true',
            help='Clear existing sample learners before creating new ones',
        )

    def handle(self, *args, **options):
        if options['clear']:
            self.stdout.write('Clearing existing sample learners...')
            User.objects.filter(username__startswith=SAMPLE_PREFIX).delete()

        clock = SeedClock()
        service = SessionService(
            adaptive=AdaptiveLearningService(clock=clock), clock=clock
        )

        start_number = (
            User.objects.filter(username__startswith=SAMPLE_PREFIX).count() + 1
        )
        with transaction.atomic():
            for number in range(start_number, start_number + options['count']):
                self._create_learner(
                    service, clock, number, options['language'], options['weeks']
                )

        total_sessions = LearningSession.objects.filter(
            user__username__startswith=SAMPLE_PREFIX
        ).count()
        total_days = DailyProgress.objects.filter(
            user__username__startswith=SAMPLE_PREFIX
        ).count()

        self.stdout.write(
            self.style.SUCCESS(
                f'Successfully seeded {total_sessions} sessions over {total_days} practice days!'
            )
        )

    def _create_learner(
        self,
        service: SessionService,
        clock: SeedClock,
        number: int,
        language: str,
        weeks: int,
    ) -> None:
        """Create one learner and replay their sessions oldest first."""
        username = f'{SAMPLE_PREFIX}{number}'
        user = User.objects.create_user(
            username=username,
            email=f'{username}@example.com',
            first_name='Sample',
            last_name=f'Learner {number}',
            password='testpass123',
        )
        UserProfile.objects.create(
            user=user,
            target_language=language,
            learning_goals='Hold a 10 minute conversation without switching languages',
        )

        # Later learners practice more often and more accurately
        practice_chance = min(0.35 + 0.2 * number, 0.9)
        base_accuracy = min(55.0 + 10.0 * number, 90.0)

        now = timezone.now()
        sessions = 0
        for days_ago in range(weeks * 7, -1, -1):
            if random.random() > practice_chance:
                continue
            started = now - timedelta(days=days_ago, minutes=random.randint(30, 240))
            self._replay_session(service, clock, user, language, started, base_accuracy)
            sessions += 1

        profile = UserProfile.objects.get(user=user)
        self.stdout.write(
            f"Created learner: {username} -> {sessions} sessions, "
            f"{profile.proficiency_level} level"
        )

    def _replay_session(
        self,
        service: SessionService,
        clock: SeedClock,
        user: User,
        language: str,
        started: datetime,
        base_accuracy: float,
    ) -> None:
        clock.current = started
        session, _ = service.start_session(
            user, language, random.choice(TOPICS), random.choice(['Casual', 'Practice'])
        )

        for turn in range(random.randint(3, 8)):
            clock.current = started + timedelta(minutes=turn * 2)
            service.add_message(session, True, f'Learner turn {turn + 1}')
            if random.random() < 0.4:
                error_type = random.choice(list(SAMPLE_ERRORS))
                original, corrected, explanation = random.choice(SAMPLE_ERRORS[error_type])
                service.add_correction(
                    session, original, corrected, error_type, explanation
                )
            service.add_message(session, False, f'Tutor turn {turn + 1}')

        clock.current = started + timedelta(minutes=random.randint(8, 25))
        accuracy = max(0.0, min(100.0, random.gauss(base_accuracy, 8.0)))
        service.end_session(
            session,
            accuracy_score=round(accuracy, 1),
            summary='Generated practice session',
            vocabulary_list=random.sample(
                ['reservation', 'menu', 'schedule', 'direction', 'colleague', 'weekend'],
                k=random.randint(0, 3),
            ),
        )
