"""
Services Package
Plot inventory domain logic: numbering, status machine, stats, store and canvas
"""

from services.errors import (
    PlotInventoryError,
    ValidationError,
    InvalidTransitionError,
    NotFoundError,
    TransportError,
)
from services.plot_store import PlotStore, SupabasePlotStore
from services.plot_service import PlotService
from services.canvas_reconciler import CanvasSession, CanvasSessionRegistry
from services.logger import logger

__all__ = [
    'PlotInventoryError',
    'ValidationError',
    'InvalidTransitionError',
    'NotFoundError',
    'TransportError',
    'PlotStore',
    'SupabasePlotStore',
    'PlotService',
    'CanvasSession',
    'CanvasSessionRegistry',
    'logger'
]
