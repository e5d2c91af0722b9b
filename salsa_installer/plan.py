from __future__ import annotations

import dataclasses
import hashlib
import json
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterator, List, Optional, Protocol, Sequence, Tuple

from .lib.command import Command
from .lib.manifests import PackageManifest
from .preconditions import AllOf, Mounted

if TYPE_CHECKING:
    from .preconditions import Predicate
    from .session import Session

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Action:
    """One system mutation.

    compensation undoes the action during rollback (empty: irreversible).
    idempotent actions may be retried and re-run on resume.
    Consecutive actions sharing parallel_group may run concurrently;
    uses_package_db actions are serialized behind the package manager lock.
    """

    action_id: str
    commands: Tuple[Command, ...]
    stage_id: str = ""
    ordinal: int = 0
    description: str = ""
    precondition: Optional["Predicate"] = None
    when: Optional["Predicate"] = None
    compensation: Tuple[Command, ...] = ()
    idempotent: bool = False
    parallel_group: Optional[str] = None
    uses_package_db: bool = False

    @property
    def key(self) -> str:
        return f"{self.stage_id}/{self.action_id}"

    @property
    def compensable(self) -> bool:
        return bool(self.compensation)


def step(action_id: str, *commands: Command, **kwargs) -> Action:
    """Action template; stage membership and ordinal are bound by Stage.build."""

    if not commands:
        raise ValueError(f"Action {action_id} has no commands")
    return Action(action_id=action_id, commands=tuple(commands), **kwargs)


def require(predicate: "Predicate", actions: Sequence[Action]) -> List[Action]:
    """Add predicate to each action's precondition, ahead of any it already has."""

    gated = []
    for a in actions:
        if a.precondition is None or a.precondition == predicate:
            pre = predicate
        else:
            pre = AllOf((predicate, a.precondition))
        gated.append(dataclasses.replace(a, precondition=pre))
    return gated


@dataclass(frozen=True)
class Stage:
    stage_id: str
    actions: Tuple[Action, ...]

    @classmethod
    def build(cls, stage_id: str, actions: Sequence[Action], *, sequential_only: bool = False) -> "Stage":
        bound = tuple(
            dataclasses.replace(a, stage_id=stage_id, ordinal=i) for i, a in enumerate(actions)
        )
        ids = [a.action_id for a in bound]
        if len(set(ids)) != len(ids):
            raise ValueError(f"Stage {stage_id} has duplicate action ids")

        seen_groups: List[str] = []
        prev: Optional[str] = None
        for a in bound:
            g = a.parallel_group
            if g is not None:
                if sequential_only:
                    raise ValueError(f"Stage {stage_id} must run sequentially; {a.action_id} is in group {g}")
                # A group is checkpointed as a whole, so a resume may re-run any member.
                if not a.idempotent:
                    raise ValueError(f"{a.action_id} is in parallel group {g} but is not idempotent")
                if g != prev and g in seen_groups:
                    raise ValueError(f"Parallel group {g} in stage {stage_id} is not contiguous")
                if g not in seen_groups:
                    seen_groups.append(g)
            prev = g
        return cls(stage_id=stage_id, actions=bound)

    def batches(self, start: int = 0) -> Iterator[Tuple[int, Tuple[Action, ...]]]:
        """Yield (first index, actions) runs from start: a parallel group or a single action."""

        i = start
        while i < len(self.actions):
            a = self.actions[i]
            j = i + 1
            if a.parallel_group is not None:
                while j < len(self.actions) and self.actions[j].parallel_group == a.parallel_group:
                    j += 1
            yield i, self.actions[i:j]
            i = j


@dataclass(frozen=True)
class Plan:
    stages: Tuple[Stage, ...]

    def positions(self) -> Iterator[Tuple[int, int, Action]]:
        for si, stage in enumerate(self.stages):
            for ai, action in enumerate(stage.actions):
                yield si, ai, action

    def action_keys(self) -> List[str]:
        return [a.key for _, _, a in self.positions()]

    def stage(self, stage_id: str) -> Stage:
        for s in self.stages:
            if s.stage_id == stage_id:
                return s
        raise KeyError(stage_id)

    def digest(self) -> str:
        """Fingerprint of the plan (secret stdin payloads excluded)."""

        doc = [
            {
                "key": a.key,
                "commands": [list(c.argv) for c in a.commands],
                "stdin": [None if c.secret else c.input_text for c in a.commands],
                "compensation": [list(c.argv) for c in a.compensation],
                "idempotent": a.idempotent,
                "parallel_group": a.parallel_group,
            }
            for _, _, a in self.positions()
        ]
        blob = json.dumps(doc, sort_keys=True).encode("utf-8")
        return hashlib.sha256(blob).hexdigest()

    def render(self) -> str:
        lines: List[str] = []
        for si, stage in enumerate(self.stages):
            lines.append(f"[{si}] {stage.stage_id}")
            for a in stage.actions:
                flags = []
                if a.idempotent:
                    flags.append("idempotent")
                if a.compensable:
                    flags.append("compensable")
                if a.parallel_group:
                    flags.append(f"parallel={a.parallel_group}")
                if a.when is not None:
                    flags.append(f"when: {a.when.describe()}")
                suffix = f"  ({', '.join(flags)})" if flags else ""
                lines.append(f"  {a.ordinal:>2} {a.action_id}{suffix}")
                for c in a.commands:
                    lines.append(f"       $ {c.render()}")
        return "\n".join(lines)


class StageTemplate(Protocol):
    stage_id: str
    sequential_only: bool
    # Every action requires the target root to be mounted.
    on_target: bool

    def actions(self, session: "Session", manifest: PackageManifest) -> List[Action]:
        ...


def build_plan(session: "Session", manifest: PackageManifest) -> Plan:
    """Bind the static stage templates to a confirmed session.

    Pure and deterministic: nothing is executed or read here.
    """

    from .stages import STAGES

    mounted = Mounted(session.target_root)
    built: List[Stage] = []
    for t in STAGES:
        actions = t.actions(session, manifest)
        if t.on_target:
            actions = require(mounted, actions)
        built.append(Stage.build(t.stage_id, actions, sequential_only=t.sequential_only))
    plan = Plan(stages=tuple(built))
    logger.debug("Built plan with %d stages, %d actions", len(built), len(plan.action_keys()))
    return plan
