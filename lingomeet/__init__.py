"""
lingomeet package - Django backend for spoken language tutoring sessions.

This is the project package for lingomeet, a Django application where
learners hold conversations with an AI tutor, receive corrections, and
track their progress over time.

Key features:
- Learning sessions with messages and corrections
- Adaptive difficulty tiers and personalized tutor prompts
- Daily progress rollups, weak-area ranking and practice streaks
- Gemini-backed tutor replies through Pydantic AI

The project uses Python 3.12+ and Django 5.2.
"""
