"""Validation orchestration for staycheck.

This module provides:
- ValidationService: the five-layer validation pipeline
- Batch and history records
- EventNotifier and sinks for real-time result fan-out
"""

from staycheck.pipeline.batch import BatchItemResult, BatchReport, BatchRequest, BatchSummary, HistoryPage
from staycheck.pipeline.events import CallbackSink, EventNotifier, EventSink, QueueSink
from staycheck.pipeline.service import ServiceMetrics, ValidationService

__all__ = [
    "ValidationService",
    "ServiceMetrics",
    # Batch
    "BatchRequest",
    "BatchItemResult",
    "BatchSummary",
    "BatchReport",
    "HistoryPage",
    # Events
    "EventNotifier",
    "EventSink",
    "QueueSink",
    "CallbackSink",
]
