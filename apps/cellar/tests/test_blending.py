"""
Tests for the blending engine.

Tests cover:
- Weighted-average calculation
- Applying a blend to the ledger
- Blending into an occupied vessel
- Rollback when a source is short
- The full distill, receive and blend round trip
"""

from decimal import Decimal

import pytest

from apps.audit.models import AuditLogEntry, AuditOperation
from apps.cellar.models import Batch, BatchSource, EntryType, TaxClass, TransactionEntry, VesselStatus
from apps.cellar.services import (
    BlendOperation,
    BlendSource,
    CapacityExceededError,
    EmptyBlendError,
    InsufficientVolumeError,
    InvalidEntryError,
    MissingAbvError,
    VesselOccupiedError,
    apply_blend,
    assign,
    blend,
    create_batch,
    current_composition,
    current_volume,
    occupant,
    receive_from_distillery,
    send_to_distillery,
    snapshot_batch,
)
from apps.units import Quantity, Unit


class TestBlendCalculation:
    """Tests for blend()."""

    def test_weighted_abv(self):
        result = blend([Quantity.liters(10, abv=10), Quantity.liters(5, abv=40)])

        assert result.total_volume == Quantity.liters('15.000')
        assert result.weighted_abv == Decimal('20.000')
        assert result.proportions == [Decimal('0.666667'), Decimal('0.333333')]

    def test_mixed_units(self):
        """Gallons and liters are combined in liters."""
        result = blend([(Quantity(Decimal('1'), Unit.GALLON), Decimal('6')), (Decimal('1.214589'), Decimal('6'))])

        assert result.total_volume.amount == Decimal('5.000')
        assert result.weighted_abv == Decimal('6.000')

    def test_empty(self):
        with pytest.raises(EmptyBlendError):
            blend([])

    def test_all_zero_volume(self):
        with pytest.raises(EmptyBlendError):
            blend([(0, 5), (0, 10)])

    def test_missing_abv(self):
        with pytest.raises(MissingAbvError):
            blend([Quantity.liters(10)])

    def test_negative_volume(self):
        with pytest.raises(InvalidEntryError):
            blend([(-1, 5)])


@pytest.fixture
def juice_in_tank_two(juice_batch, tank_two, cellar_user):
    """30 L of fresh juice in Tank 2."""
    return assign(
        batch_id=juice_batch.id,
        vessel_id=tank_two.id,
        quantity=Quantity.liters(30, abv=0),
        actor=cellar_user,
    ).batch


@pytest.mark.django_db
class TestApplyBlend:
    """Tests for apply_blend()."""

    def test_blend_into_empty_vessel(self, filled_batch, juice_in_tank_two, barrel, cellar_user):
        result = apply_blend(
            BlendOperation(
                sources=[
                    BlendSource(batch_id=filled_batch.id, volume=Quantity.liters(60)),
                    BlendSource(batch_id=juice_in_tank_two.id, volume=Quantity.liters(20)),
                ],
                destination_vessel_id=barrel.id,
                name='House blend',
            ),
            actor=cellar_user,
        )

        assert result.created is True
        assert result.batch.name == 'House blend'
        assert result.batch.current_volume_liters == Decimal('80.000')
        assert result.batch.abv == Decimal('4.500')
        assert result.batch.tax_class == TaxClass.HARD_CIDER
        assert occupant(barrel.id) == result.batch.id
        assert current_volume(filled_batch.id).amount == Decimal('40.000')
        assert current_volume(juice_in_tank_two.id).amount == Decimal('10.000')

        blend_entries = TransactionEntry.objects.filter(operation_id=result.operation_id)
        assert blend_entries.count() == 3
        assert {entry.entry_type for entry in blend_entries} == {EntryType.BLEND}
        assert sum(entry.delta_liters for entry in blend_entries) == 0

    def test_composition_proportions_sum_to_one(self, filled_batch, juice_in_tank_two, barrel, cellar_user):
        result = apply_blend(
            BlendOperation(
                sources=[
                    BlendSource(batch_id=filled_batch.id, volume=Quantity.liters(10)),
                    BlendSource(batch_id=juice_in_tank_two.id, volume=Quantity.liters(20)),
                ],
                destination_vessel_id=barrel.id,
            ),
            actor=cellar_user,
        )

        sources = BatchSource.objects.filter(batch=result.batch)
        assert sum(source.proportion for source in sources) == Decimal('1')

    def test_merge_into_occupant(self, filled_batch, juice_in_tank_two, tank, cellar_user):
        """A blend into an occupied vessel is added to the batch already there."""
        result = apply_blend(
            BlendOperation(
                sources=[BlendSource(batch_id=juice_in_tank_two.id, volume=Quantity.liters(20))],
                destination_vessel_id=tank.id,
            ),
            actor=cellar_user,
        )

        assert result.created is False
        assert result.batch.id == filled_batch.id
        assert result.batch.current_volume_liters == Decimal('120.000')
        assert result.batch.abv == Decimal('5.000')
        self_share = BatchSource.objects.get(batch=filled_batch, source_batch=filled_batch)
        assert self_share.proportion == Decimal('0.833333')

    def test_current_composition_follows_latest_blend(self, filled_batch, juice_in_tank_two, tank, cellar_user):
        """Blending twice keeps the first set as history; the latest set sums to one."""
        for _ in range(2):
            result = apply_blend(
                BlendOperation(
                    sources=[BlendSource(batch_id=juice_in_tank_two.id, volume=Quantity.liters(10))],
                    destination_vessel_id=tank.id,
                ),
                actor=cellar_user,
            )

        filled_batch.refresh_from_db()
        current = current_composition(filled_batch)

        assert BatchSource.objects.filter(batch=filled_batch).count() == 4
        assert {source.operation_id for source in current} == {result.operation_id}
        assert {source.source_batch_id for source in current} == {filled_batch.id, juice_in_tank_two.id}
        assert sum(source.proportion for source in current) == Decimal('1')
        existing = next(
            row for row in snapshot_batch(filled_batch)['composition'] if row['source_batch_id'] == filled_batch.id
        )
        assert existing['volume_liters'] == Decimal('110.000')

    def test_target_mismatch_rejected(self, filled_batch, juice_in_tank_two, tank, cider_batch, cellar_user):
        other = create_batch(name='Other', abv=Decimal('5'), actor=cellar_user)

        with pytest.raises(VesselOccupiedError):
            apply_blend(
                BlendOperation(
                    sources=[BlendSource(batch_id=juice_in_tank_two.id, volume=Quantity.liters(5))],
                    destination_vessel_id=tank.id,
                    target_batch_id=other.id,
                ),
                actor=cellar_user,
            )

    def test_source_cannot_be_target(self, filled_batch, tank, cellar_user):
        with pytest.raises(InvalidEntryError):
            apply_blend(
                BlendOperation(
                    sources=[BlendSource(batch_id=filled_batch.id, volume=Quantity.liters(5))],
                    destination_vessel_id=tank.id,
                ),
                actor=cellar_user,
            )

    def test_short_source_rolls_back_everything(self, filled_batch, juice_in_tank_two, barrel, cellar_user):
        """If any source is short, no entry, batch or composition row is written."""
        batches_before = Batch.objects.count()
        entries_before = TransactionEntry.objects.count()
        audits_before = AuditLogEntry.objects.count()

        with pytest.raises(InsufficientVolumeError):
            apply_blend(
                BlendOperation(
                    sources=[
                        BlendSource(batch_id=filled_batch.id, volume=Quantity.liters(50)),
                        BlendSource(batch_id=juice_in_tank_two.id, volume=Quantity.liters(31)),
                    ],
                    destination_vessel_id=barrel.id,
                ),
                actor=cellar_user,
            )

        assert Batch.objects.count() == batches_before
        assert TransactionEntry.objects.count() == entries_before
        assert AuditLogEntry.objects.count() == audits_before
        assert not BatchSource.objects.filter(source_batch=filled_batch).exists()
        assert current_volume(filled_batch.id).amount == Decimal('100.000')

    def test_repeated_source_is_checked_in_aggregate(self, filled_batch, barrel, cellar_user):
        """Two draws from the same batch cannot exceed what it holds."""
        with pytest.raises(InsufficientVolumeError):
            apply_blend(
                BlendOperation(
                    sources=[
                        BlendSource(batch_id=filled_batch.id, volume=Quantity.liters(60)),
                        BlendSource(batch_id=filled_batch.id, volume=Quantity.liters(60)),
                    ],
                    destination_vessel_id=barrel.id,
                ),
                actor=cellar_user,
            )

    def test_destination_capacity(self, filled_batch, cellar_user):
        from apps.cellar.services import register_vessel

        keg = register_vessel(name='Keg', capacity=Quantity.liters(50), actor=cellar_user)

        with pytest.raises(CapacityExceededError):
            apply_blend(
                BlendOperation(
                    sources=[BlendSource(batch_id=filled_batch.id, volume=Quantity.liters(51))],
                    destination_vessel_id=keg.id,
                ),
                actor=cellar_user,
            )

    def test_audits_sources_and_target(self, filled_batch, juice_in_tank_two, barrel, cellar_user):
        result = apply_blend(
            BlendOperation(
                sources=[
                    BlendSource(batch_id=filled_batch.id, volume=Quantity.liters(10)),
                    BlendSource(batch_id=juice_in_tank_two.id, volume=Quantity.liters(10)),
                ],
                destination_vessel_id=barrel.id,
            ),
            actor=cellar_user,
        )

        target_audit = AuditLogEntry.objects.get(table_name='batches', record_id=str(result.batch.id))
        assert target_audit.operation == AuditOperation.CREATE
        for source in (filled_batch, juice_in_tank_two):
            latest = AuditLogEntry.objects.filter(table_name='batches', record_id=str(source.id)).first()
            assert latest.operation == AuditOperation.UPDATE
            assert 'current_volume_liters' in {item['field'] for item in latest.diff}


@pytest.mark.django_db
class TestDistillAndBlendRoundTrip:

    def test_brandy_and_juice_blend(self, filled_batch, juice_in_tank_two, tank, barrel, cellar_user):
        """Distill a whole batch, receive brandy and blend it with juice."""
        record = send_to_distillery(
            batch_id=filled_batch.id,
            quantity=Quantity.liters(100),
            distillery_name='Copper Pot Co.',
            actor=cellar_user,
        )
        tank.refresh_from_db()
        assert current_volume(filled_batch.id).is_zero
        assert tank.status == VesselStatus.AVAILABLE

        record = receive_from_distillery(
            record_id=record.id,
            quantity=Quantity.liters(20),
            abv=Decimal('55'),
            vessel_id=barrel.id,
            actor=cellar_user,
        )
        brandy = record.received_batch

        result = apply_blend(
            BlendOperation(
                sources=[
                    BlendSource(batch_id=brandy.id, volume=Quantity.liters(20)),
                    BlendSource(batch_id=juice_in_tank_two.id, volume=Quantity.liters(30)),
                ],
                destination_vessel_id=tank.id,
                name='Pommeau',
                tax_class=TaxClass.WINE_21_TO_24,
            ),
            actor=cellar_user,
        )

        assert result.computation.total_volume == Quantity.liters(50)
        assert result.computation.weighted_abv == Decimal('22.000')
        assert result.computation.proportions == [Decimal('0.400000'), Decimal('0.600000')]
        assert current_volume(brandy.id).is_zero
        assert current_volume(juice_in_tank_two.id).is_zero

        composition = {
            source.source_batch_id: source.proportion
            for source in BatchSource.objects.filter(batch=result.batch)
        }
        assert composition == {brandy.id: Decimal('0.400000'), juice_in_tank_two.id: Decimal('0.600000')}
        assert occupant(tank.id) == result.batch.id
        assert occupant(barrel.id) is None
