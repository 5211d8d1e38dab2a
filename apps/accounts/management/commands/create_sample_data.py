"""
Management command to create sample cellar data for trying out the API.

Usage:
    python manage.py create_sample_data

This creates:
- 3 operators (manager, operator, compliance officer)
- 4 vessels (two fermenters, a bright tank and a barrel)
- A cider batch pressed into Tank 1 and a juice batch in Tank 2
- A distillery round trip producing apple brandy
- A brandy/juice blend (pommeau style) in the barrel
"""

from decimal import Decimal

from django.core.management.base import BaseCommand
from django.db import transaction

from apps.accounts.models import OperatorRole, User
from apps.cellar.models import FillSource, TaxClass, VesselMaterial, VesselType
from apps.cellar.services import (
    BlendOperation,
    BlendSource,
    apply_blend,
    assign,
    create_batch,
    receive_from_distillery,
    register_vessel,
    send_to_distillery,
)
from apps.units import Quantity


class Command(BaseCommand):
    help = 'Create sample cellar data for trying out the API'

    @transaction.atomic
    def handle(self, *args, **options):
        if User.objects.filter(email='manager@example.com').exists():
            self.stdout.write(self.style.WARNING('Sample data already exists, nothing to do.'))
            return

        self.stdout.write('Creating sample data...')

        users = self.create_users()
        vessels = self.create_vessels(users['manager'])
        self.run_season(users['operator'], vessels)

        self.stdout.write(self.style.SUCCESS('Sample data created successfully!'))
        self.stdout.write('')
        self.stdout.write('Test accounts:')
        self.stdout.write('  manager@example.com / cellar123 (superuser)')
        self.stdout.write('  operator@example.com / cellar123')
        self.stdout.write('  compliance@example.com / cellar123')

    def create_users(self):
        manager = User.objects.create_superuser(
            email='manager@example.com',
            password='cellar123',
            display_name='Cellar Manager',
        )
        operator = User.objects.create_user(
            email='operator@example.com',
            password='cellar123',
            display_name='Cellar Operator',
            role=OperatorRole.CELLAR_OPERATOR,
        )
        compliance = User.objects.create_user(
            email='compliance@example.com',
            password='cellar123',
            display_name='Compliance Officer',
            role=OperatorRole.COMPLIANCE_OFFICER,
        )
        self.stdout.write(f'  Created {User.objects.count()} users')
        return {'manager': manager, 'operator': operator, 'compliance': compliance}

    def create_vessels(self, manager):
        vessels = {
            'tank_1': register_vessel(name='Tank 1', capacity=Quantity.liters(1000), actor=manager),
            'tank_2': register_vessel(name='Tank 2', capacity=Quantity.liters(1000), actor=manager),
            'bright': register_vessel(
                name='Bright 1',
                capacity=Quantity.liters(500),
                vessel_type=VesselType.BRIGHT_TANK,
                actor=manager,
            ),
            'barrel': register_vessel(
                name='Barrel 1',
                capacity=Quantity(Decimal('59'), 'gal'),
                vessel_type=VesselType.BARREL,
                material=VesselMaterial.OAK,
                actor=manager,
            ),
        }
        self.stdout.write(f'  Created {len(vessels)} vessels')
        return vessels

    def run_season(self, operator, vessels):
        cider = create_batch(
            name='Kingston Black 2026',
            tax_class=TaxClass.HARD_CIDER,
            abv=Decimal('6.5'),
            source_label='Press run 2026-10-01',
            actor=operator,
        )
        assign(
            batch_id=cider.id,
            vessel_id=vessels['tank_1'].id,
            quantity=Quantity.liters(800, abv=Decimal('6.5')),
            reason_code=FillSource.PRESS,
            actor=operator,
        )

        juice = create_batch(
            name='Dabinett juice',
            tax_class=TaxClass.NON_TAXABLE,
            abv=Decimal('0'),
            source_label='Press run 2026-10-03',
            actor=operator,
        )
        assign(
            batch_id=juice.id,
            vessel_id=vessels['tank_2'].id,
            quantity=Quantity.liters(400, abv=0),
            reason_code=FillSource.PRESS,
            actor=operator,
        )

        shipment = send_to_distillery(
            batch_id=cider.id,
            quantity=Quantity.liters(500),
            distillery_name='Orchard Still Co.',
            actor=operator,
        )
        shipment = receive_from_distillery(
            record_id=shipment.id,
            quantity=Quantity.liters(60, abv=Decimal('65')),
            name='Apple brandy 2026',
            actor=operator,
        )

        apply_blend(
            BlendOperation(
                sources=[
                    BlendSource(batch_id=shipment.received_batch_id, volume=Quantity.liters(50)),
                    BlendSource(batch_id=juice.id, volume=Quantity.liters(150)),
                ],
                destination_vessel_id=vessels['barrel'].id,
                name='Pommeau 2026',
                tax_class=TaxClass.WINE_16_TO_21,
            ),
            actor=operator,
        )
        self.stdout.write('  Pressed, distilled and blended one season')
