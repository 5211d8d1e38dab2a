# Generated manually for period reconciliation

from decimal import Decimal
import uuid
from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion
import django.utils.timezone


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


def gallons(**kwargs):
    return models.DecimalField(decimal_places=3, max_digits=14, **kwargs)


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('cellar', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='ReportedBalance',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('tax_class', models.CharField(choices=TAX_CLASS_CHOICES, max_length=30)),
                ('period_start', models.DateField()),
                ('period_end', models.DateField()),
                ('opening_gallons', gallons()),
                ('closing_gallons', gallons(blank=True, null=True)),
                ('source', models.CharField(blank=True, max_length=200)),
                ('notes', models.TextField(blank=True)),
                ('version', models.PositiveIntegerField(default=1)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='reported_balances', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'reported_balances',
                'ordering': ['-period_start', 'tax_class'],
                'constraints': [
                    models.UniqueConstraint(fields=('tax_class', 'period_start', 'period_end'), name='reported_balance_unique_period'),
                ],
            },
        ),
        migrations.CreateModel(
            name='ReconciliationSnapshot',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('period_start', models.DateField()),
                ('period_end', models.DateField()),
                ('label', models.CharField(blank=True, max_length=50)),
                ('tolerance_gallons', gallons()),
                ('balanced', models.BooleanField(default=True)),
                ('discrepancy_count', models.PositiveIntegerField(default=0)),
                ('computed_at', models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='reconciliation_snapshots', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'reconciliation_snapshots',
                'ordering': ['-computed_at'],
                'indexes': [
                    models.Index(fields=['period_start', 'period_end', 'computed_at'], name='recon_snap_period_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='ReconciliationLine',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('tax_class', models.CharField(choices=TAX_CLASS_CHOICES, max_length=30)),
                ('opening_gallons', gallons(default=Decimal('0'))),
                ('production_gallons', gallons(default=Decimal('0'))),
                ('receipts_gallons', gallons(default=Decimal('0'))),
                ('gains_gallons', gallons(default=Decimal('0'))),
                ('removals_gallons', gallons(default=Decimal('0'))),
                ('tax_paid_removals_gallons', gallons(default=Decimal('0'))),
                ('losses_gallons', gallons(default=Decimal('0'))),
                ('reductions_gallons', gallons(default=Decimal('0'))),
                ('blended_out_gallons', gallons(default=Decimal('0'))),
                ('closing_gallons', gallons(default=Decimal('0'))),
                ('opening_proof_gallons', gallons(blank=True, null=True)),
                ('closing_proof_gallons', gallons(blank=True, null=True)),
                ('reported_opening_gallons', gallons(blank=True, null=True)),
                ('reported_closing_gallons', gallons(blank=True, null=True)),
                ('opening_variance_gallons', gallons(blank=True, null=True)),
                ('closing_variance_gallons', gallons(blank=True, null=True)),
                ('balance_variance_gallons', gallons(default=Decimal('0'))),
                ('balanced', models.BooleanField(default=True)),
                ('snapshot', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='lines', to='compliance.reconciliationsnapshot')),
            ],
            options={
                'db_table': 'reconciliation_lines',
                'ordering': ['tax_class'],
                'constraints': [
                    models.UniqueConstraint(fields=('snapshot', 'tax_class'), name='recon_line_unique_class'),
                ],
            },
        ),
    ]
