"""
Orchestrator package.

- RunOrchestrator: runs requests, races the deadline, applies fallback
- RunHandle: caller's handle on one started run
- ResultAssembler: builds ResultRecords from payloads and failures
"""

from sara.orchestrator.assembler import ResultAssembler
from sara.orchestrator.diagnostics import diagnostic_answer
from sara.orchestrator.run import RunHandle, RunOrchestrator, RunPlan

__all__ = [
    "ResultAssembler",
    "RunHandle",
    "RunOrchestrator",
    "RunPlan",
    "diagnostic_answer",
]
