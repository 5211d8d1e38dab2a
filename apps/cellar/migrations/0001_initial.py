# Generated manually for the cellar ledger

from decimal import Decimal
import uuid
from django.conf import settings
import django.core.validators
from django.db import migrations, models
import django.db.models.deletion
import django.utils.timezone


ABV_VALIDATORS = [
    django.core.validators.MinValueValidator(Decimal('0')),
    django.core.validators.MaxValueValidator(Decimal('100')),
]

TAX_CLASS_CHOICES = [
    ('hard_cider', 'Hard cider (<8.5% ABV)'),
    ('wine_under_16', 'Still wine, not over 16% ABV'),
    ('wine_16_to_21', 'Still wine, 16-21% ABV'),
    ('wine_21_to_24', 'Still wine, 21-24% ABV'),
    ('sparkling_wine', 'Sparkling wine'),
    ('carbonated_wine', 'Artificially carbonated wine'),
    ('apple_brandy', 'Apple brandy'),
    ('grape_spirits', 'Grape spirits'),
    ('non_taxable', 'Juice / non-taxable'),
]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Vessel',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('name', models.CharField(max_length=100, unique=True)),
                ('vessel_type', models.CharField(choices=[('fermenter', 'Fermenter'), ('conditioning_tank', 'Conditioning tank'), ('bright_tank', 'Bright tank'), ('storage', 'Storage'), ('barrel', 'Barrel')], default='fermenter', max_length=30)),
                ('material', models.CharField(choices=[('stainless_steel', 'Stainless steel'), ('oak', 'Oak'), ('plastic', 'Plastic'), ('glass', 'Glass'), ('other', 'Other')], default='stainless_steel', max_length=30)),
                ('location', models.CharField(blank=True, max_length=100)),
                ('capacity_liters', models.DecimalField(decimal_places=3, max_digits=14, validators=[django.core.validators.MinValueValidator(Decimal('0.001'))])),
                ('capacity_unit', models.CharField(choices=[('L', 'Liters'), ('gal', 'US gallons')], default='L', max_length=10)),
                ('status', models.CharField(choices=[('available', 'Available'), ('occupied', 'Occupied'), ('cleaning', 'Cleaning'), ('maintenance', 'Maintenance'), ('retired', 'Retired')], default='available', max_length=20)),
                ('version', models.PositiveIntegerField(default=1)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'db_table': 'vessels',
                'ordering': ['name'],
                'indexes': [models.Index(fields=['status'], name='vessels_status_idx')],
            },
        ),
        migrations.CreateModel(
            name='Batch',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('batch_number', models.CharField(db_index=True, max_length=40, unique=True)),
                ('name', models.CharField(max_length=200)),
                ('status', models.CharField(choices=[('fermentation', 'Fermentation'), ('aging', 'Aging'), ('conditioning', 'Conditioning'), ('completed', 'Completed'), ('cancelled', 'Cancelled')], default='fermentation', max_length=20)),
                ('tax_class', models.CharField(choices=TAX_CLASS_CHOICES, default='hard_cider', max_length=30)),
                ('abv', models.DecimalField(blank=True, decimal_places=3, max_digits=6, null=True, validators=ABV_VALIDATORS)),
                ('current_volume_liters', models.DecimalField(decimal_places=3, default=Decimal('0'), max_digits=14)),
                ('version', models.PositiveIntegerField(default=1)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('completed_at', models.DateTimeField(blank=True, null=True)),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='created_batches', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'batches',
                'ordering': ['-created_at'],
                'verbose_name_plural': 'batches',
                'indexes': [
                    models.Index(fields=['status', 'created_at'], name='batches_status_idx'),
                    models.Index(fields=['tax_class'], name='batches_tax_class_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Occupancy',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('since', models.DateTimeField(default=django.utils.timezone.now)),
                ('ended_at', models.DateTimeField(blank=True, null=True)),
                ('batch', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='occupancies', to='cellar.batch')),
                ('vessel', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='occupancies', to='cellar.vessel')),
            ],
            options={
                'db_table': 'vessel_occupancies',
                'ordering': ['-since'],
                'verbose_name_plural': 'occupancies',
                'indexes': [models.Index(fields=['batch', 'ended_at'], name='occupancy_batch_idx')],
                'constraints': [
                    models.UniqueConstraint(condition=models.Q(('ended_at__isnull', True)), fields=('vessel',), name='one_active_occupancy_per_vessel'),
                ],
            },
        ),
        migrations.CreateModel(
            name='BatchSource',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('source_label', models.CharField(blank=True, max_length=200)),
                ('volume_liters', models.DecimalField(decimal_places=3, max_digits=14)),
                ('abv', models.DecimalField(blank=True, decimal_places=3, max_digits=6, null=True)),
                ('proportion', models.DecimalField(decimal_places=6, max_digits=7)),
                ('operation_id', models.UUIDField(db_index=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('batch', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='composition_sources', to='cellar.batch')),
                ('source_batch', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='contributions', to='cellar.batch')),
            ],
            options={
                'db_table': 'batch_sources',
                'ordering': ['created_at', '-proportion'],
            },
        ),
        migrations.CreateModel(
            name='TransactionEntry',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('sequence', models.PositiveIntegerField()),
                ('entry_type', models.CharField(choices=[('fill', 'Fill'), ('transfer', 'Transfer'), ('adjustment', 'Adjustment'), ('blend', 'Blend'), ('split', 'Split'), ('loss', 'Loss'), ('removal', 'Removal')], max_length=20)),
                ('delta_liters', models.DecimalField(decimal_places=3, max_digits=14)),
                ('balance_after_liters', models.DecimalField(decimal_places=3, max_digits=14)),
                ('abv', models.DecimalField(blank=True, decimal_places=3, max_digits=6, null=True)),
                ('reason_code', models.CharField(blank=True, max_length=40)),
                ('notes', models.TextField(blank=True)),
                ('operation_id', models.UUIDField(db_index=True)),
                ('timestamp', models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ('actor', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='ledger_entries', to=settings.AUTH_USER_MODEL)),
                ('batch', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='transactions', to='cellar.batch')),
                ('counterpart_batch', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='+', to='cellar.batch')),
                ('vessel', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='transactions', to='cellar.vessel')),
            ],
            options={
                'db_table': 'transaction_entries',
                'ordering': ['timestamp', 'sequence'],
                'verbose_name_plural': 'transaction entries',
                'indexes': [
                    models.Index(fields=['batch', 'timestamp'], name='entries_batch_ts_idx'),
                    models.Index(fields=['vessel', 'timestamp'], name='entries_vessel_ts_idx'),
                    models.Index(fields=['entry_type', 'timestamp'], name='entries_type_ts_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(fields=('batch', 'sequence'), name='unique_entry_sequence_per_batch'),
                ],
            },
        ),
        migrations.CreateModel(
            name='DistillationRecord',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('distillery_name', models.CharField(max_length=200)),
                ('volume_sent_liters', models.DecimalField(decimal_places=3, max_digits=14)),
                ('abv_sent', models.DecimalField(decimal_places=3, max_digits=6, validators=ABV_VALIDATORS)),
                ('proof_gallons_sent', models.DecimalField(decimal_places=3, max_digits=14)),
                ('sent_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('removal_operation_id', models.UUIDField()),
                ('volume_received_liters', models.DecimalField(blank=True, decimal_places=3, max_digits=14, null=True)),
                ('abv_received', models.DecimalField(blank=True, decimal_places=3, max_digits=6, null=True, validators=ABV_VALIDATORS)),
                ('proof_gallons_received', models.DecimalField(blank=True, decimal_places=3, max_digits=14, null=True)),
                ('received_at', models.DateTimeField(blank=True, null=True)),
                ('status', models.CharField(choices=[('sent', 'Sent'), ('received', 'Received')], default='sent', max_length=20)),
                ('notes', models.TextField(blank=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='distillation_records', to=settings.AUTH_USER_MODEL)),
                ('received_batch', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='distillations_received', to='cellar.batch')),
                ('source_batch', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='distillations_sent', to='cellar.batch')),
                ('source_vessel', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='+', to='cellar.vessel')),
            ],
            options={
                'db_table': 'distillation_records',
                'ordering': ['-sent_at'],
            },
        ),
    ]
