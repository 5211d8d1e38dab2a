# Generated manually for the audit log

import uuid
from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion
import django.utils.timezone


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='AuditLogEntry',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('table_name', models.CharField(db_index=True, max_length=64)),
                ('record_id', models.CharField(db_index=True, max_length=64)),
                ('operation', models.CharField(choices=[('create', 'Create'), ('update', 'Update'), ('delete', 'Delete'), ('soft_delete', 'Soft delete'), ('restore', 'Restore')], max_length=20)),
                ('old_snapshot', models.JSONField(blank=True, null=True)),
                ('new_snapshot', models.JSONField(blank=True, null=True)),
                ('diff', models.JSONField(blank=True, default=list)),
                ('reason', models.TextField(blank=True)),
                ('timestamp', models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ('audit_version', models.PositiveSmallIntegerField(default=1)),
                ('checksum', models.CharField(max_length=64)),
                ('actor', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='audit_entries', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'audit_log',
                'ordering': ['-timestamp'],
                'verbose_name_plural': 'audit log entries',
                'indexes': [
                    models.Index(fields=['table_name', 'record_id', 'timestamp'], name='audit_log_table_n_5b1c2e_idx'),
                    models.Index(fields=['actor', 'timestamp'], name='audit_log_actor_i_7d3f9a_idx'),
                    models.Index(fields=['operation', 'timestamp'], name='audit_log_operati_2a8e4c_idx'),
                ],
            },
        ),
    ]
