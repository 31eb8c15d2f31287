"""
tutoring.admin module.

Django-admin registrations for the *lingomeet* tutoring application.
"""

from django.contrib import admin

from .models import (
    ConversationMessage,
    Correction,
    DailyProgress,
    LearningSession,
    UserProfile,
)

# ---------------------------------------------------------------------------
# Inlines
# ---------------------------------------------------------------------------


class ConversationMessageInline(admin.TabularInline):
    model = ConversationMessage
    extra = 0
    fields = ("timestamp", "is_user", "text", "has_error")
    readonly_fields = ("timestamp",)


class CorrectionInline(admin.TabularInline):
    model = Correction
    extra = 0
    fields = ("error_type", "severity", "original_text", "corrected_text", "is_resolved")


# ---------------------------------------------------------------------------
# Admin registrations
# ---------------------------------------------------------------------------


@admin.register(UserProfile)
class UserProfileAdmin(admin.ModelAdmin):
    """Admin configuration for :class:`tutoring.models.UserProfile`."""

    list_display = (
        "user",
        "target_language",
        "proficiency_level",
        "total_sessions",
        "average_accuracy",
        "last_session_date",
    )
    list_filter = ("target_language", "proficiency_level")
    search_fields = ("user__username", "user__email")
    readonly_fields = ("created_at", "updated_at")
    ordering = ("-last_session_date",)

    def get_queryset(self, request):
        """Optimize queryset with select_related."""
        return super().get_queryset(request).select_related('user')


@admin.register(LearningSession)
class LearningSessionAdmin(admin.ModelAdmin):
    """Admin configuration for :class:`tutoring.models.LearningSession`."""

    list_display = (
        "id",
        "user",
        "target_language",
        "topic",
        "difficulty_level",
        "start_time",
        "duration_minutes",
        "accuracy_score",
        "is_active_display",
    )
    list_filter = ("target_language", "mode", "difficulty_level", "start_time")
    search_fields = ("user__username", "topic", "conversation_summary")
    ordering = ("-start_time",)
    inlines = (ConversationMessageInline, CorrectionInline)

    @staticmethod
    def is_active_display(obj: "LearningSession") -> str:
        """Display whether the session is still running."""
        return "Yes" if obj.is_active else "No"

    is_active_display.short_description = "Active"


@admin.register(ConversationMessage)
class ConversationMessageAdmin(admin.ModelAdmin):
    """Admin configuration for :class:`tutoring.models.ConversationMessage`."""

    list_display = ("id", "short_text", "session", "is_user", "has_error", "timestamp")
    list_filter = ("is_user", "has_error", "language")
    search_fields = ("text",)
    ordering = ("-timestamp",)

    @staticmethod
    def short_text(obj: "ConversationMessage") -> str:
        """Return a truncated preview of the message."""
        text: str = str(obj.text)
        return text[:60] + ("…" if len(text) > 60 else "")


@admin.register(Correction)
class CorrectionAdmin(admin.ModelAdmin):
    """Admin configuration for :class:`tutoring.models.Correction`."""

    list_display = (
        "id",
        "error_type",
        "severity",
        "original_text",
        "corrected_text",
        "is_resolved",
        "timestamp",
    )
    list_filter = ("error_type", "severity", "is_resolved")
    search_fields = ("original_text", "corrected_text", "explanation")
    ordering = ("-timestamp",)


@admin.register(DailyProgress)
class DailyProgressAdmin(admin.ModelAdmin):
    """Admin configuration for :class:`tutoring.models.DailyProgress`."""

    list_display = (
        "user",
        "date",
        "target_language",
        "sessions_completed",
        "minutes_learned",
        "average_accuracy",
    )
    list_filter = ("target_language", "date")
    search_fields = ("user__username",)
    ordering = ("-date",)
