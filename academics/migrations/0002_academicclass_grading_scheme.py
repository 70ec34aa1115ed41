import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ('academics', '0001_initial'),
        ('gradebook', '0001_initial'),
    ]

    operations = [
        migrations.AddField(
            model_name='academicclass',
            name='grading_scheme',
            field=models.ForeignKey(blank=True, help_text="Overrides the school's active grading scheme for this class", null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='classes', to='gradebook.gradingscheme'),
        ),
    ]
