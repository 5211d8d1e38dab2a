"""
Cellar app services layer.

Vessel-batch ledger, transaction log, blending and the distillery round
trip. Views and the compliance app call these functions; nothing else
writes ledger tables.
"""

from .exceptions import (
    CellarServiceError,
    BatchNotFoundError,
    VesselNotFoundError,
    DistillationNotFoundError,
    LedgerValidationError,
    CapacityExceededError,
    InsufficientVolumeError,
    EmptyBlendError,
    AdjustmentDirectionError,
    ZeroAdjustmentError,
    InvalidEntryError,
    InvalidVesselTransitionError,
    VesselUnavailableError,
    SourceVesselRequiredError,
    MissingAbvError,
    BatchClosedError,
    BatchNotEmptyError,
    DistillationStateError,
    LedgerConflictError,
    VesselOccupiedError,
    ConcurrentModificationError,
    LedgerIntegrityError,
)

from .transaction_log import (
    append_entry,
    entries_for,
    entries_for_vessel,
    history,
    sum_deltas,
)

from .snapshots import (
    current_composition,
    snapshot_batch,
    snapshot_vessel,
)

from .ledger import (
    LargeAdjustmentWarning,
    LedgerResult,
    get_batch,
    get_vessel,
    current_volume,
    volume_by_vessel,
    vessel_volume,
    occupant,
    verify_batch_integrity,
    create_batch,
    record_fill,
    assign,
    transfer,
    adjust,
    record_loss,
    record_removal,
    split_batch,
    change_batch_status,
    complete_batch,
)

from .vessels import (
    register_vessel,
    change_vessel_status,
    list_vessels,
)

from .blending import (
    BlendComputation,
    BlendSource,
    BlendOperation,
    BlendResult,
    blend,
    apply_blend,
)

from .distillation import (
    send_to_distillery,
    receive_from_distillery,
    get_distillation,
)


__all__ = [
    # Exceptions
    'CellarServiceError',
    'BatchNotFoundError',
    'VesselNotFoundError',
    'DistillationNotFoundError',
    'LedgerValidationError',
    'CapacityExceededError',
    'InsufficientVolumeError',
    'EmptyBlendError',
    'AdjustmentDirectionError',
    'ZeroAdjustmentError',
    'InvalidEntryError',
    'InvalidVesselTransitionError',
    'VesselUnavailableError',
    'SourceVesselRequiredError',
    'MissingAbvError',
    'BatchClosedError',
    'BatchNotEmptyError',
    'DistillationStateError',
    'LedgerConflictError',
    'VesselOccupiedError',
    'ConcurrentModificationError',
    'LedgerIntegrityError',

    # Transaction log
    'append_entry',
    'entries_for',
    'entries_for_vessel',
    'history',
    'sum_deltas',

    # Snapshots
    'current_composition',
    'snapshot_batch',
    'snapshot_vessel',

    # Ledger
    'LargeAdjustmentWarning',
    'LedgerResult',
    'get_batch',
    'get_vessel',
    'current_volume',
    'volume_by_vessel',
    'vessel_volume',
    'occupant',
    'verify_batch_integrity',
    'create_batch',
    'record_fill',
    'assign',
    'transfer',
    'adjust',
    'record_loss',
    'record_removal',
    'split_batch',
    'change_batch_status',
    'complete_batch',

    # Vessels
    'register_vessel',
    'change_vessel_status',
    'list_vessels',

    # Blending
    'BlendComputation',
    'BlendSource',
    'BlendOperation',
    'BlendResult',
    'blend',
    'apply_blend',

    # Distillation
    'send_to_distillery',
    'receive_from_distillery',
    'get_distillation',
]
