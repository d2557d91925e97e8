"""
snapship - unattended SQLite snapshots shipped to an FTPS endpoint.

This package implements a single-pass backup pipeline:
- Snapshot engine: page-by-page online copy of a live SQLite database
- Transport client: FTPS upload with retry, backoff and TLS policy
- Orchestrator: sequences both stages and owns the artifact lifetime

Architecture:
    ┌─────────────┐     ┌──────────────┐     ┌──────────────┐
    │   SQLite    │────▶│   Snapshot   │────▶│   Artifact   │
    │  (source)   │     │    Engine    │     │ (local file) │
    └─────────────┘     └──────────────┘     └──────┬───────┘
                                                    │
                                                    ▼
                        ┌──────────────┐     ┌──────────────┐
                        │ FTPS server  │◀────│  Transport   │
                        │  (remote)    │     │    Client    │
                        └──────────────┘     └──────────────┘

Invariants:
    - At most one artifact exists per run
    - The artifact is removed exactly once, whatever the outcome
    - Callers of the orchestrator only ever see a boolean

How to change safely:
    - Keep component results explicit (no raw errors across the orchestrator)
    - New transfer backends implement the TransferPrimitive protocol
    - Never log credentials

Version: see _version.py.
"""

from ._version import __version__

__all__ = ["__version__"]
