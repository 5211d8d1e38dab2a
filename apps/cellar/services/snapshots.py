"""
Audit snapshots of cellar records.

A batch snapshot includes where its liquid sits (volume per vessel) and
its composition, so moves that leave the batch total unchanged still
produce a diff.
"""

from django.db.models import Sum

from apps.cellar.models import Batch, Occupancy, TransactionEntry, Vessel
from apps.units.conversions import quantize_volume

UNASSIGNED = 'unassigned'


def batch_locations(batch: Batch) -> dict:
    rows = (
        TransactionEntry.objects
        .filter(batch=batch)
        .values('vessel_id')
        .annotate(total=Sum('delta_liters'))
    )
    locations = {}
    for row in rows:
        if row['total'] == 0:
            continue
        key = str(row['vessel_id']) if row['vessel_id'] else UNASSIGNED
        locations[key] = quantize_volume(row['total'])
    return locations


def current_composition(batch: Batch) -> list:
    """
    Composition rows written by the latest operation that shaped the batch.

    BatchSource is a per-operation ledger: each blend, split or sourced
    create appends a full set of rows whose proportions sum to 1. Earlier
    sets stay as history. Works from a prefetched composition_sources.
    """
    rows = sorted(batch.composition_sources.all(), key=lambda source: (source.created_at, str(source.id)))
    if not rows:
        return []
    latest = rows[-1].operation_id
    return [source for source in rows if source.operation_id == latest]


def snapshot_batch(batch: Batch) -> dict:
    composition = [
        {
            'source_batch_id': source.source_batch_id,
            'source_label': source.source_label,
            'volume_liters': source.volume_liters,
            'proportion': source.proportion,
        }
        for source in current_composition(batch)
    ]
    return {
        'id': batch.id,
        'batch_number': batch.batch_number,
        'name': batch.name,
        'status': batch.status,
        'tax_class': batch.tax_class,
        'abv': batch.abv,
        'current_volume_liters': batch.current_volume_liters,
        'locations': batch_locations(batch),
        'composition': composition,
        'completed_at': batch.completed_at,
        'version': batch.version,
    }


def snapshot_vessel(vessel: Vessel) -> dict:
    occupancy = Occupancy.objects.filter(vessel=vessel, ended_at__isnull=True).first()
    return {
        'id': vessel.id,
        'name': vessel.name,
        'vessel_type': vessel.vessel_type,
        'material': vessel.material,
        'location': vessel.location,
        'capacity_liters': vessel.capacity_liters,
        'capacity_unit': vessel.capacity_unit,
        'status': vessel.status,
        'occupant_batch_id': occupancy.batch_id if occupancy else None,
        'version': vessel.version,
    }
