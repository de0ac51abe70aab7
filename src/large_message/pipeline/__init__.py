"""
Module: pipeline
Description: Send, receive, batch and cleanup stages composed by the clients.
"""

from .batch import AsyncBatchAssembler, BatchAssembler
from .cleanup import AsyncCleanupCoordinator, CleanupCoordinator, PeriodicTtlSweeper
from .receive import AsyncReceivePipeline, ReceivePipeline
from .send import AsyncSendPipeline, SendPipeline

__all__ = [
    "AsyncBatchAssembler",
    "BatchAssembler",
    "AsyncCleanupCoordinator",
    "CleanupCoordinator",
    "PeriodicTtlSweeper",
    "AsyncReceivePipeline",
    "ReceivePipeline",
    "AsyncSendPipeline",
    "SendPipeline",
]
