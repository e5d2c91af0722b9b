from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Protocol

import yaml

from .errors import CheckpointMismatch

logger = logging.getLogger(__name__)

OUTCOME_SUCCEEDED = "succeeded"
OUTCOME_SKIPPED = "skipped"
OUTCOME_COMPENSATED = "compensated"
OUTCOME_COMPLETED = "completed"


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


@dataclass(frozen=True)
class Checkpoint:
    """Last durable position of a run.

    action_index -1 means no action of stage_index is complete yet.
    """

    stage_index: int
    action_index: int
    action_id: Optional[str]
    timestamp: str
    outcome: str
    plan_digest: str

    def position(self) -> tuple[int, int]:
        return (self.stage_index, self.action_index)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Checkpoint":
        try:
            return cls(
                stage_index=int(data["stage_index"]),
                action_index=int(data["action_index"]),
                action_id=data.get("action_id"),
                timestamp=str(data["timestamp"]),
                outcome=str(data["outcome"]),
                plan_digest=str(data["plan_digest"]),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ValueError(f"Malformed checkpoint: {e}") from e


class CheckpointStore(Protocol):
    location: str

    def load(self) -> Optional[Checkpoint]:
        ...

    def save(self, checkpoint: Checkpoint) -> None:
        ...

    def clear(self) -> None:
        ...


def _detect_format(path: Path) -> str:
    ext = path.suffix.lower().lstrip(".")
    if ext in {"json", "yaml", "yml"}:
        return ext
    # Default to JSON for unknown extensions.
    return "json"


class FileCheckpointStore:
    """Checkpoint persisted as JSON or YAML (chosen by file extension).

    save() writes a temp file in the same directory, fsyncs it and renames
    it over the old checkpoint, so a crash leaves either the old or the new
    record, never a torn one.
    """

    def __init__(self, path: str) -> None:
        self.path = Path(path)

    @property
    def location(self) -> str:
        return str(self.path)

    def load(self) -> Optional[Checkpoint]:
        if not self.path.exists():
            return None
        try:
            text = self.path.read_text(encoding="utf-8")
            if _detect_format(self.path) == "json":
                data = json.loads(text)
            else:
                data = yaml.safe_load(text) or {}
            if not isinstance(data, dict):
                raise ValueError(f"Checkpoint file must be an object/dict, got {type(data)}")
            return Checkpoint.from_dict(data)
        except (OSError, ValueError, yaml.YAMLError) as e:
            raise CheckpointMismatch(f"Unreadable checkpoint {self.path}: {e}") from e

    def _serialize(self, checkpoint: Checkpoint) -> str:
        if _detect_format(self.path) == "json":
            return json.dumps(checkpoint.to_dict(), indent=2, sort_keys=True) + "\n"
        return yaml.safe_dump(checkpoint.to_dict(), sort_keys=False)

    def save(self, checkpoint: Checkpoint) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = self._serialize(checkpoint)

        fd, tmp = tempfile.mkstemp(prefix=".checkpoint-", dir=str(self.path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(payload)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp, self.path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

        dir_fd = os.open(str(self.path.parent), os.O_RDONLY)
        try:
            os.fsync(dir_fd)
        finally:
            os.close(dir_fd)

        logger.debug(
            "Checkpoint saved stage=%s action=%s outcome=%s",
            checkpoint.stage_index,
            checkpoint.action_index,
            checkpoint.outcome,
        )

    def clear(self) -> None:
        if self.path.exists():
            self.path.unlink()
            logger.info("Cleared checkpoint %s", self.path)
