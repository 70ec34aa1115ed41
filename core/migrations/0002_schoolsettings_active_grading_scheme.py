import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ('core', '0001_initial'),
        ('gradebook', '0001_initial'),
    ]

    operations = [
        migrations.AddField(
            model_name='schoolsettings',
            name='active_grading_scheme',
            field=models.ForeignKey(blank=True, help_text='Scheme applied to classes that do not pin their own', null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to='gradebook.gradingscheme'),
        ),
    ]
