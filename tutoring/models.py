"""Database models for the tutoring application.

Contains the session store used by the *lingomeet* project: learner profiles,
tutoring sessions with their messages and corrections, and the per-day
progress rollups written when a session ends.
"""

# ---------------------------------------------------------------------------
# Django
from django.conf import settings
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.utils import timezone


PROFICIENCY_LEVELS = [
    ('Beginner', 'Beginner'),
    ('Intermediate', 'Intermediate'),
    ('Advanced', 'Advanced'),
]
DEFAULT_PROFICIENCY_LEVEL = 'Beginner'

SESSION_MODES = [
    ('Casual', 'Casual'),
    ('Lesson', 'Lesson'),
    ('Practice', 'Practice'),
]

SEVERITY_LEVELS = [
    ('Low', 'Low'),
    ('Medium', 'Medium'),
    ('High', 'High'),
]


def default_focus_areas() -> list[str]:
    """Focus areas a new learner starts with."""
    return ['Grammar', 'Vocabulary', 'Pronunciation']


class UserProfile(models.Model):
    """
    Learner profile with lifetime statistics.

    One row per user. The counters and the running ``average_accuracy`` are
    only written by the progress aggregator after a session ends.
    """

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="tutoring_profile",
        help_text="Associated user account",
    )
    target_language = models.CharField(
        max_length=16, default='en-US', help_text="Language being learned"
    )
    proficiency_level = models.CharField(
        max_length=16,
        choices=PROFICIENCY_LEVELS,
        default=DEFAULT_PROFICIENCY_LEVEL,
        help_text="Current difficulty tier",
    )
    current_level = models.IntegerField(
        default=1,
        validators=[MinValueValidator(1), MaxValueValidator(10)],
        help_text="Numeric level on a 1-10 scale",
    )
    focus_areas = models.JSONField(
        default=default_focus_areas, help_text="Skills the learner wants to work on"
    )
    learning_goals = models.TextField(blank=True, default='')
    total_sessions = models.IntegerField(default=0)
    total_minutes_learned = models.IntegerField(default=0)
    total_corrections = models.IntegerField(default=0)
    average_accuracy = models.FloatField(
        default=0.0, help_text="Running mean of ended session accuracy (0-100)"
    )
    weak_areas = models.JSONField(
        default=list, help_text="Most frequent recent error types"
    )
    mastered_topics = models.JSONField(default=list, blank=True)
    last_session_date = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "User Profile"
        verbose_name_plural = "User Profiles"

    def __str__(self) -> str:
        username: str = str(self.user.username)
        return f"{username} ({self.proficiency_level}, {self.target_language})"


class LearningSession(models.Model):
    """One bounded tutoring conversation."""

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="learning_sessions",
        help_text="Owner of this session",
    )
    target_language = models.CharField(max_length=16, default='en-US')
    topic = models.CharField(max_length=255, default="General Conversation")
    mode = models.CharField(max_length=16, choices=SESSION_MODES, default='Casual')
    start_time = models.DateTimeField(default=timezone.now)
    end_time = models.DateTimeField(null=True, blank=True)
    duration_minutes = models.IntegerField(default=0)

    # Session metrics
    message_count = models.IntegerField(default=0)
    correction_count = models.IntegerField(default=0)
    new_vocabulary_learned = models.IntegerField(default=0)
    accuracy_score = models.FloatField(
        default=0.0,
        validators=[MinValueValidator(0.0), MaxValueValidator(100.0)],
    )
    difficulty_level = models.CharField(
        max_length=16,
        choices=PROFICIENCY_LEVELS,
        default=DEFAULT_PROFICIENCY_LEVEL,
        help_text="Tier snapshot taken when the session started",
    )

    # Filled in when the session ends
    conversation_summary = models.TextField(blank=True, default='')
    vocabulary_list = models.JSONField(default=list, blank=True)
    common_mistakes = models.JSONField(default=list, blank=True)

    class Meta:
        ordering = ["-start_time"]
        verbose_name = "Learning Session"
        verbose_name_plural = "Learning Sessions"
        indexes = [
            models.Index(
                fields=['user', 'target_language', '-start_time'],
                name='tutoring_session_recent_idx',
            ),
            models.Index(fields=['start_time'], name='tutoring_session_start_idx'),
        ]

    def __str__(self) -> str:
        friendly_date: str = self.start_time.strftime("%Y-%m-%d %H:%M")
        return f"{self.topic} - {self.target_language} ({friendly_date})"

    @property
    def is_active(self) -> bool:
        """A session stays active until its end time is recorded."""
        return self.end_time is None


class ConversationMessage(models.Model):
    """A single utterance inside a session, from the learner or the tutor."""

    session = models.ForeignKey(
        LearningSession,
        on_delete=models.CASCADE,
        related_name="messages",
    )
    timestamp = models.DateTimeField(default=timezone.now)
    is_user = models.BooleanField(help_text="True when the learner said it")
    text = models.TextField()
    language = models.CharField(max_length=16, default='en-US')
    transcription_confidence = models.FloatField(null=True, blank=True)
    has_error = models.BooleanField(default=False)

    class Meta:
        ordering = ["session_id", "timestamp", "id"]
        verbose_name = "Conversation Message"
        verbose_name_plural = "Conversation Messages"

    def __str__(self) -> str:
        speaker = "user" if self.is_user else "tutor"
        text: str = str(self.text)
        return f"{speaker}: " + text[:50] + ("…" if len(text) > 50 else "")


class Correction(models.Model):
    """A flagged language error with its corrected form."""

    session = models.ForeignKey(
        LearningSession,
        on_delete=models.CASCADE,
        related_name="corrections",
    )
    timestamp = models.DateTimeField(default=timezone.now)
    original_text = models.TextField()
    corrected_text = models.TextField()
    error_type = models.CharField(
        max_length=50,
        help_text="Grammar, Vocabulary, Pronunciation, Spelling, ...",
    )
    explanation = models.TextField(blank=True, default='')
    severity = models.CharField(
        max_length=8, choices=SEVERITY_LEVELS, default='Medium'
    )
    is_resolved = models.BooleanField(default=False)

    class Meta:
        ordering = ["session_id", "timestamp", "id"]
        verbose_name = "Correction"
        verbose_name_plural = "Corrections"
        indexes = [
            models.Index(fields=['error_type'], name='tutoring_correction_type_idx'),
        ]

    def __str__(self) -> str:
        return f"{self.error_type}: {self.original_text[:30]} -> {self.corrected_text[:30]}"


class DailyProgress(models.Model):
    """
    Per-user, per-day, per-language rollup of session activity.

    Created on the first session end of the day and updated in place by
    every later one.
    """

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="daily_progress",
    )
    date = models.DateField()
    target_language = models.CharField(max_length=16, default='en-US')

    # Daily metrics
    sessions_completed = models.IntegerField(default=0)
    minutes_learned = models.IntegerField(default=0)
    messages_spoken = models.IntegerField(default=0)
    corrections_received = models.IntegerField(default=0)
    new_vocabulary = models.IntegerField(default=0)
    average_accuracy = models.FloatField(default=0.0)

    # Skill scores (0-100)
    grammar_score = models.FloatField(default=0.0)
    vocabulary_score = models.FloatField(default=0.0)
    pronunciation_score = models.FloatField(default=0.0)
    fluency_score = models.FloatField(default=0.0)

    class Meta:
        ordering = ["date"]
        verbose_name = "Daily Progress"
        verbose_name_plural = "Daily Progress"
        constraints = [
            models.UniqueConstraint(
                fields=['user', 'date', 'target_language'],
                name='unique_daily_progress_per_language',
            ),
        ]

    def __str__(self) -> str:
        return f"{self.user_id} {self.date:%Y-%m-%d} {self.target_language}"
