from decimal import Decimal
import uuid

import pytest

from apps.cellar.models import DistillationStatus, EntryType, FillSource, TaxClass, TransactionEntry
from apps.cellar.services import (
    DistillationNotFoundError,
    DistillationStateError,
    InsufficientVolumeError,
    InvalidEntryError,
    MissingAbvError,
    create_batch,
    current_volume,
    get_distillation,
    receive_from_distillery,
    record_fill,
    send_to_distillery,
)
from apps.units import Quantity


@pytest.fixture
def shipment(filled_batch, cellar_user):
    """60 L of the 6% cider sent to a distillery."""
    return send_to_distillery(
        batch_id=filled_batch.id,
        quantity=Quantity.liters(60),
        distillery_name='Copper Pot Co.',
        actor=cellar_user,
    )


@pytest.mark.django_db
class TestSendToDistillery:

    def test_removal_and_proof_gallons(self, shipment, filled_batch):
        """60 L at 6% is 15.850 wine gallons, 1.902 proof gallons."""
        removal = TransactionEntry.objects.get(operation_id=shipment.removal_operation_id)

        assert removal.entry_type == EntryType.REMOVAL
        assert removal.reason_code == 'distillery'
        assert removal.delta_liters == Decimal('-60.000')
        assert shipment.status == DistillationStatus.SENT
        assert shipment.abv_sent == Decimal('6.000')
        assert shipment.proof_gallons_sent == Decimal('1.902')
        assert current_volume(filled_batch.id).amount == Decimal('40.000')

    def test_abv_override(self, filled_batch, cellar_user):
        record = send_to_distillery(
            batch_id=filled_batch.id,
            quantity=Quantity.liters(20),
            abv=Decimal('55'),
            distillery_name='Copper Pot Co.',
            actor=cellar_user,
        )

        assert record.proof_gallons_sent == Decimal('5.812')

    def test_batch_without_abv(self, cellar_user):
        batch = create_batch(name='Unmeasured', actor=cellar_user)
        record_fill(batch_id=batch.id, quantity=Quantity.liters(10), actor=cellar_user)

        with pytest.raises(MissingAbvError):
            send_to_distillery(
                batch_id=batch.id,
                quantity=Quantity.liters(10),
                distillery_name='Copper Pot Co.',
                actor=cellar_user,
            )

    def test_more_than_available(self, filled_batch, cellar_user):
        with pytest.raises(InsufficientVolumeError):
            send_to_distillery(
                batch_id=filled_batch.id,
                quantity=Quantity.liters(150),
                distillery_name='Copper Pot Co.',
                actor=cellar_user,
            )

    def test_distillery_name_required(self, filled_batch, cellar_user):
        with pytest.raises(InvalidEntryError):
            send_to_distillery(
                batch_id=filled_batch.id,
                quantity=Quantity.liters(10),
                distillery_name='',
                actor=cellar_user,
            )


@pytest.mark.django_db
class TestReceiveFromDistillery:

    def test_creates_spirit_batch(self, shipment, filled_batch, barrel, cellar_user):
        record = receive_from_distillery(
            record_id=shipment.id,
            quantity=Quantity.liters(20),
            abv=Decimal('55'),
            vessel_id=barrel.id,
            actor=cellar_user,
        )

        spirit = record.received_batch
        assert record.status == DistillationStatus.RECEIVED
        assert record.proof_gallons_received == Decimal('5.812')
        assert spirit.tax_class == TaxClass.APPLE_BRANDY
        assert spirit.name == 'Kingston Black 2026 brandy'
        assert current_volume(spirit.id).amount == Decimal('20.000')

        fill = TransactionEntry.objects.get(batch=spirit)
        assert fill.reason_code == FillSource.DISTILLERY_RETURN
        assert fill.vessel_id == barrel.id
        assert spirit.composition_sources.get().source_batch_id == filled_batch.id

    def test_receive_twice_rejected(self, shipment, cellar_user):
        receive_from_distillery(
            record_id=shipment.id,
            quantity=Quantity.liters(20),
            abv=Decimal('55'),
            actor=cellar_user,
        )

        with pytest.raises(DistillationStateError):
            receive_from_distillery(
                record_id=shipment.id,
                quantity=Quantity.liters(20),
                abv=Decimal('55'),
                actor=cellar_user,
            )

    def test_abv_required(self, shipment, cellar_user):
        with pytest.raises(MissingAbvError):
            receive_from_distillery(record_id=shipment.id, quantity=Quantity.liters(20), actor=cellar_user)

    def test_unknown_record(self, cellar_user):
        with pytest.raises(DistillationNotFoundError):
            receive_from_distillery(
                record_id=uuid.uuid4(),
                quantity=Quantity.liters(20),
                abv=Decimal('55'),
                actor=cellar_user,
            )

        with pytest.raises(DistillationNotFoundError):
            get_distillation(uuid.uuid4())
