"""Salsa installer: guided, resumable Arch Linux provisioning.

Core design goals:
- Validated, immutable session input
- Plans as explicit stages of actions (dry-run printable)
- Checkpointed and resumable execution
- Rollback of a stage where actions can be undone
- Centralized logging
"""

__all__ = []
