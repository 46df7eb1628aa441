"""Orchestrator module for planning and executing resource changes."""

from cloudwait.orchestrator.orchestrator import (
    ExecutionResult,
    ExecutionStatus,
    ProgressCallback,
    ResourceExecutionResult,
    ResourceOrchestrator,
    dependency_order,
)

__all__ = [
    'ExecutionResult',
    'ExecutionStatus',
    'ProgressCallback',
    'ResourceExecutionResult',
    'ResourceOrchestrator',
    'dependency_order',
]
