"""
Units app - volume, mass and alcohol strength conversions.

Pure functions in ``conversions`` plus the immutable ``Quantity`` value
type used by the cellar ledger, blending and reconciliation code.
"""

from .conversions import Unit, Dimension, convert, quantize_volume
from .quantity import Quantity

__all__ = ['Unit', 'Dimension', 'convert', 'quantize_volume', 'Quantity']
