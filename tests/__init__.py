"""
snapship Test Suite.

This package contains:
- unit/: Unit tests (no network, fake sleep/delay, temporary SQLite files)
- integration/: Full pipeline runs against real SQLite files and a fake
  transfer backend
"""
