"""Shared components between the scan pipeline and the API."""

from .catalog import BanknoteCatalog
from .memory import SharedMemory
from .state import ClassPrediction, ScanSnapshot, ScanState

__all__ = ["BanknoteCatalog", "ClassPrediction", "ScanSnapshot", "ScanState", "SharedMemory"]
