"""
ATS Services Package
"""
from .ats_generator import AtsGenerator, create_ats_generator
from .history import HistoryEntry, HistoryRecorder, SQLAlchemyHistoryRecorder, InMemoryHistoryRecorder

__all__ = [
    'AtsGenerator', 'create_ats_generator',
    'HistoryEntry', 'HistoryRecorder', 'SQLAlchemyHistoryRecorder', 'InMemoryHistoryRecorder'
]
