import django.core.validators
import django.db.models.deletion
from decimal import Decimal
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('core', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='Treatment',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('code', models.CharField(blank=True, max_length=20)),
                ('name', models.CharField(max_length=100)),
                ('description', models.TextField(blank=True, max_length=500)),
                ('standard_cost', models.DecimalField(decimal_places=2, help_text='Default price billed for this procedure', max_digits=10, validators=[django.core.validators.MinValueValidator(Decimal('0'))])),
                ('category', models.CharField(choices=[('Preventive', 'Preventive'), ('Restorative', 'Restorative'), ('Endodontic', 'Endodontic'), ('Periodontic', 'Periodontic'), ('Prosthodontic', 'Prosthodontic'), ('Orthodontic', 'Orthodontic'), ('Oral Surgery', 'Oral Surgery'), ('Cosmetic', 'Cosmetic'), ('Diagnostic', 'Diagnostic'), ('Emergency', 'Emergency')], max_length=20)),
                ('duration_minutes', models.PositiveIntegerField(blank=True, help_text='Typical chair time in minutes', null=True, validators=[django.core.validators.MinValueValidator(5), django.core.validators.MaxValueValidator(480)])),
                ('is_active', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('clinic', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='treatments', to='core.clinic')),
            ],
            options={
                'ordering': ['category', 'name'],
                'indexes': [models.Index(fields=['clinic', 'is_active', 'category'], name='treatment_catalog_idx')],
            },
        ),
    ]
