"""
Pipeline module for snapship.

This module sequences snapshot and upload into one backup pass and owns
the artifact lifetime.

Invariants:
    - The artifact never outlives the run that created it
    - run() reports a boolean; details go to the log and the RunReport
"""

from .orchestrator import BackupPipeline, PipelineState, RunReport, artifact_name

__all__ = ["BackupPipeline", "PipelineState", "RunReport", "artifact_name"]
