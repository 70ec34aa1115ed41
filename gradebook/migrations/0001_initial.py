import uuid

import django.core.validators
import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('core', '0001_initial'),
        ('students', '0001_initial'),
        ('academics', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='GradingScheme',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('name', models.CharField(help_text='Name of the grading scheme (e.g., WAEC, Custom)', max_length=100)),
                ('gpa_max', models.DecimalField(blank=True, decimal_places=2, help_text='Top of the GPA scale, if the scheme carries GPA values', max_digits=4, null=True)),
                ('is_active', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('school', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='grading_schemes', to='core.school')),
            ],
            options={
                'db_table': 'grading_scheme',
                'ordering': ['school', 'name'],
                'unique_together': {('school', 'name')},
            },
        ),
        migrations.CreateModel(
            name='GradingSchemeRule',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('min_score', models.DecimalField(decimal_places=2, help_text='Lowest score for this grade (inclusive)', max_digits=5, validators=[django.core.validators.MinValueValidator(0), django.core.validators.MaxValueValidator(100)])),
                ('max_score', models.DecimalField(decimal_places=2, help_text='Highest score for this grade (inclusive)', max_digits=5, validators=[django.core.validators.MinValueValidator(0), django.core.validators.MaxValueValidator(100)])),
                ('grade_label', models.CharField(help_text='Grade label (e.g., A1, B2)', max_length=10)),
                ('gpa_value', models.DecimalField(blank=True, decimal_places=2, max_digits=4, null=True)),
                ('remark', models.CharField(blank=True, help_text='e.g., Excellent', max_length=50)),
                ('scheme', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='rules', to='gradebook.gradingscheme')),
            ],
            options={
                'db_table': 'grading_scheme_rule',
                'ordering': ['scheme', 'min_score'],
                'indexes': [models.Index(fields=['scheme', 'min_score', 'max_score'], name='scheme_rule_band_idx')],
            },
        ),
        migrations.CreateModel(
            name='SubjectGradingRule',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('min_score', models.DecimalField(decimal_places=2, help_text='Lowest score for this grade (inclusive)', max_digits=5, validators=[django.core.validators.MinValueValidator(0), django.core.validators.MaxValueValidator(100)])),
                ('max_score', models.DecimalField(decimal_places=2, help_text='Highest score for this grade (inclusive)', max_digits=5, validators=[django.core.validators.MinValueValidator(0), django.core.validators.MaxValueValidator(100)])),
                ('grade_label', models.CharField(help_text='Grade label (e.g., A1, B2)', max_length=10)),
                ('gpa_value', models.DecimalField(blank=True, decimal_places=2, max_digits=4, null=True)),
                ('remark', models.CharField(blank=True, help_text='e.g., Excellent', max_length=50)),
                ('scheme', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='subject_rules', to='gradebook.gradingscheme')),
                ('subject', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='grading_rules', to='academics.subject')),
            ],
            options={
                'db_table': 'subject_grading_rule',
                'ordering': ['scheme', 'subject', 'min_score'],
            },
        ),
        migrations.CreateModel(
            name='ScoreEntry',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('component_scores', models.JSONField(blank=True, default=dict, help_text='Component name to score, e.g. {"CA1": 15, "EXAM": 60}')),
                ('total_score', models.DecimalField(blank=True, decimal_places=2, max_digits=6, null=True)),
                ('grade_label', models.CharField(blank=True, max_length=10)),
                ('gpa_value', models.DecimalField(blank=True, decimal_places=2, max_digits=4, null=True)),
                ('grade_remark', models.CharField(blank=True, max_length=50)),
                ('teacher_comment', models.CharField(blank=True, max_length=200)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('academic_class', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='score_entries', to='academics.academicclass')),
                ('school', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='score_entries', to='core.school')),
                ('student', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='score_entries', to='students.student')),
                ('subject', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='score_entries', to='academics.subject')),
                ('term', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='score_entries', to='core.term')),
            ],
            options={
                'verbose_name_plural': 'Score Entries',
                'db_table': 'score_entry',
                'ordering': ['term', 'subject', '-total_score'],
                'indexes': [
                    models.Index(fields=['student', 'term'], name='score_entry_student_term_idx'),
                    models.Index(fields=['term', 'academic_class', 'subject'], name='score_entry_class_subject_idx'),
                ],
                'unique_together': {('term', 'academic_class', 'subject', 'student')},
            },
        ),
        migrations.CreateModel(
            name='StudentTermReport',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('total_score', models.DecimalField(decimal_places=2, default=0, max_digits=8)),
                ('average_score', models.DecimalField(blank=True, decimal_places=2, max_digits=6, null=True)),
                ('subjects_count', models.PositiveSmallIntegerField(default=0)),
                ('position_in_class', models.PositiveSmallIntegerField(blank=True, null=True)),
                ('teacher_comment', models.TextField(blank=True)),
                ('principal_comment', models.TextField(blank=True)),
                ('is_published', models.BooleanField(default=False)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('academic_class', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='term_reports', to='academics.academicclass')),
                ('student', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='term_reports', to='students.student')),
                ('term', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='term_reports', to='core.term')),
            ],
            options={
                'db_table': 'student_term_report',
                'ordering': ['term', 'position_in_class'],
                'indexes': [models.Index(fields=['term', 'average_score'], name='term_report_average_idx')],
                'unique_together': {('student', 'term')},
            },
        ),
        migrations.CreateModel(
            name='AcademicGoal',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('goal_text', models.TextField()),
                ('target_average', models.DecimalField(blank=True, decimal_places=2, max_digits=5, null=True)),
                ('target_position', models.PositiveSmallIntegerField(blank=True, null=True)),
                ('target_subjects', models.JSONField(blank=True, default=dict)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('student', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='academic_goals', to='students.student')),
                ('term', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='academic_goals', to='core.term')),
            ],
            options={
                'db_table': 'academic_goal',
                'unique_together': {('student', 'term')},
            },
        ),
        migrations.CreateModel(
            name='GoalAnalysis',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('analysis_text', models.TextField()),
                ('achievement_rating', models.CharField(blank=True, choices=[('exceeded', 'Exceeded'), ('met', 'Met'), ('partially_met', 'Partially Met'), ('not_met', 'Not Met')], max_length=20)),
                ('generated_at', models.DateTimeField(blank=True, null=True)),
                ('report', models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, related_name='goal_analysis', to='gradebook.studenttermreport')),
            ],
            options={
                'verbose_name_plural': 'Goal Analyses',
                'db_table': 'goal_analysis',
            },
        ),
        migrations.CreateModel(
            name='RecalculationRun',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('running', 'Running'), ('completed', 'Completed'), ('failed', 'Failed')], default='pending', max_length=10)),
                ('updated_count', models.PositiveIntegerField(default=0)),
                ('failures', models.JSONField(blank=True, default=list)),
                ('error', models.TextField(blank=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('started_at', models.DateTimeField(blank=True, null=True)),
                ('finished_at', models.DateTimeField(blank=True, null=True)),
                ('grading_scheme', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='recalculation_runs', to='gradebook.gradingscheme')),
                ('school', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='recalculation_runs', to='core.school')),
                ('term', models.ForeignKey(blank=True, help_text='Blank means every term', null=True, on_delete=django.db.models.deletion.CASCADE, related_name='recalculation_runs', to='core.term')),
            ],
            options={
                'db_table': 'recalculation_run',
                'ordering': ['-created_at'],
                'indexes': [models.Index(fields=['school', 'status'], name='recalc_run_school_status_idx')],
            },
        ),
    ]
