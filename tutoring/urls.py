"""
tutoring.urls module.

URL configuration for the tutoring JSON API.
"""

from django.urls import path
from . import views

urlpatterns = [
    # Session lifecycle
    path('sessions/start/', views.start_session, name='start_session'),
    path('sessions/history/', views.session_history, name='session_history'),
    path('sessions/<int:session_id>/', views.session_detail, name='session_detail'),
    path(
        'sessions/<int:session_id>/messages/',
        views.add_message,
        name='add_message',
    ),
    path(
        'sessions/<int:session_id>/corrections/',
        views.add_correction,
        name='add_correction',
    ),
    # Learner utterance -> tutor reply with corrections
    path('sessions/<int:session_id>/reply/', views.tutor_reply, name='tutor_reply'),
    path('sessions/<int:session_id>/end/', views.end_session, name='end_session'),
    # Analytics
    path('analytics/dashboard/', views.dashboard, name='dashboard'),
    path('analytics/progress/', views.progress, name='progress'),
    path('analytics/weak-areas/', views.weak_areas, name='weak_areas'),
    path('analytics/vocabulary/', views.vocabulary, name='vocabulary'),
]
