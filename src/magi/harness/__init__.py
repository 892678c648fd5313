"""Persistence of finished deliberations."""
from .history import HistoryLog, HistoryLogEntry, HistorySink
