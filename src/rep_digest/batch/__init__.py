"""
Staged batch pipeline for the monthly sales digest.
"""

from .enumerator import InputEnumerator
from .journal import DispatchJournal
from .mapper import map_record
from .partitions import PartitionStore
from .pipeline import DigestPipeline
from .reducer import Reducer, build_report, compose_message, resolve_recipient
from .scheduler import ExecutionStats, StageScheduler, UnitResult
from .summarizer import Summarizer

__all__ = [
    "DigestPipeline",
    "InputEnumerator",
    "map_record",
    "PartitionStore",
    "Reducer",
    "build_report",
    "compose_message",
    "resolve_recipient",
    "StageScheduler",
    "ExecutionStats",
    "UnitResult",
    "Summarizer",
    "DispatchJournal",
]
