import django.core.validators
import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models

import tutoring.models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='LearningSession',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('target_language', models.CharField(default='en-US', max_length=16)),
                ('topic', models.CharField(default='General Conversation', max_length=255)),
                ('mode', models.CharField(choices=[('Casual', 'Casual'), ('Lesson', 'Lesson'), ('Practice', 'Practice')], default='Casual', max_length=16)),
                ('start_time', models.DateTimeField(default=django.utils.timezone.now)),
                ('end_time', models.DateTimeField(blank=True, null=True)),
                ('duration_minutes', models.IntegerField(default=0)),
                ('message_count', models.IntegerField(default=0)),
                ('correction_count', models.IntegerField(default=0)),
                ('new_vocabulary_learned', models.IntegerField(default=0)),
                ('accuracy_score', models.FloatField(default=0.0, validators=[django.core.validators.MinValueValidator(0.0), django.core.validators.MaxValueValidator(100.0)])),
                ('difficulty_level', models.CharField(choices=[('Beginner', 'Beginner'), ('Intermediate', 'Intermediate'), ('Advanced', 'Advanced')], default='Beginner', help_text='Tier snapshot taken when the session started', max_length=16)),
                ('conversation_summary', models.TextField(blank=True, default='')),
                ('vocabulary_list', models.JSONField(blank=True, default=list)),
                ('common_mistakes', models.JSONField(blank=True, default=list)),
                ('user', models.ForeignKey(help_text='Owner of this session', on_delete=django.db.models.deletion.CASCADE, related_name='learning_sessions', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'Learning Session',
                'verbose_name_plural': 'Learning Sessions',
                'ordering': ['-start_time'],
                'indexes': [
                    models.Index(fields=['user', 'target_language', '-start_time'], name='tutoring_session_recent_idx'),
                    models.Index(fields=['start_time'], name='tutoring_session_start_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='ConversationMessage',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('timestamp', models.DateTimeField(default=django.utils.timezone.now)),
                ('is_user', models.BooleanField(help_text='True when the learner said it')),
                ('text', models.TextField()),
                ('language', models.CharField(default='en-US', max_length=16)),
                ('transcription_confidence', models.FloatField(blank=True, null=True)),
                ('has_error', models.BooleanField(default=False)),
                ('session', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='messages', to='tutoring.learningsession')),
            ],
            options={
                'verbose_name': 'Conversation Message',
                'verbose_name_plural': 'Conversation Messages',
                'ordering': ['session_id', 'timestamp', 'id'],
            },
        ),
        migrations.CreateModel(
            name='Correction',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('timestamp', models.DateTimeField(default=django.utils.timezone.now)),
                ('original_text', models.TextField()),
                ('corrected_text', models.TextField()),
                ('error_type', models.CharField(help_text='Grammar, Vocabulary, Pronunciation, Spelling, ...', max_length=50)),
                ('explanation', models.TextField(blank=True, default='')),
                ('severity', models.CharField(choices=[('Low', 'Low'), ('Medium', 'Medium'), ('High', 'High')], default='Medium', max_length=8)),
                ('is_resolved', models.BooleanField(default=False)),
                ('session', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='corrections', to='tutoring.learningsession')),
            ],
            options={
                'verbose_name': 'Correction',
                'verbose_name_plural': 'Corrections',
                'ordering': ['session_id', 'timestamp', 'id'],
                'indexes': [
                    models.Index(fields=['error_type'], name='tutoring_correction_type_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='DailyProgress',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('date', models.DateField()),
                ('target_language', models.CharField(default='en-US', max_length=16)),
                ('sessions_completed', models.IntegerField(default=0)),
                ('minutes_learned', models.IntegerField(default=0)),
                ('messages_spoken', models.IntegerField(default=0)),
                ('corrections_received', models.IntegerField(default=0)),
                ('new_vocabulary', models.IntegerField(default=0)),
                ('average_accuracy', models.FloatField(default=0.0)),
                ('grammar_score', models.FloatField(default=0.0)),
                ('vocabulary_score', models.FloatField(default=0.0)),
                ('pronunciation_score', models.FloatField(default=0.0)),
                ('fluency_score', models.FloatField(default=0.0)),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='daily_progress', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'Daily Progress',
                'verbose_name_plural': 'Daily Progress',
                'ordering': ['date'],
                'constraints': [
                    models.UniqueConstraint(fields=('user', 'date', 'target_language'), name='unique_daily_progress_per_language'),
                ],
            },
        ),
        migrations.CreateModel(
            name='UserProfile',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('target_language', models.CharField(default='en-US', help_text='Language being learned', max_length=16)),
                ('proficiency_level', models.CharField(choices=[('Beginner', 'Beginner'), ('Intermediate', 'Intermediate'), ('Advanced', 'Advanced')], default='Beginner', help_text='Current difficulty tier', max_length=16)),
                ('current_level', models.IntegerField(default=1, help_text='Numeric level on a 1-10 scale', validators=[django.core.validators.MinValueValidator(1), django.core.validators.MaxValueValidator(10)])),
                ('focus_areas', models.JSONField(default=tutoring.models.default_focus_areas, help_text='Skills the learner wants to work on')),
                ('learning_goals', models.TextField(blank=True, default='')),
                ('total_sessions', models.IntegerField(default=0)),
                ('total_minutes_learned', models.IntegerField(default=0)),
                ('total_corrections', models.IntegerField(default=0)),
                ('average_accuracy', models.FloatField(default=0.0, help_text='Running mean of ended session accuracy (0-100)')),
                ('weak_areas', models.JSONField(default=list, help_text='Most frequent recent error types')),
                ('mastered_topics', models.JSONField(blank=True, default=list)),
                ('last_session_date', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('user', models.OneToOneField(help_text='Associated user account', on_delete=django.db.models.deletion.CASCADE, related_name='tutoring_profile', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'User Profile',
                'verbose_name_plural': 'User Profiles',
            },
        ),
    ]
