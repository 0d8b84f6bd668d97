"""Ordering of the statements needed to commit an entity graph.

Planning is kept apart from execution so the order can be checked without a
database: ``Database.commit`` simply runs the returned steps in sequence.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import List

from entities import Entity


class Action(str, Enum):
    INSERT = "insert"
    UPDATE = "update"


@dataclass(frozen=True)
class CommitStep:
    action: Action
    entity: Entity

    @property
    def statement(self) -> str:
        """Name of the catalogue statement that executes this step."""
        return f"{self.action.value}_{self.entity.kind}"


def plan_commit(entity: Entity) -> List[CommitStep]:
    """Return the steps that commit ``entity``.

    A persisted entity is a single update of its own row. An unpersisted one first
    commits each owned child in declaration order (each child planned the same
    way, so it may itself be an insert or an update), then inserts itself.
    """
    if entity.is_persisted:
        return [CommitStep(Action.UPDATE, entity)]
    steps: List[CommitStep] = []
    for child in entity.children():
        steps.extend(plan_commit(child))
    steps.append(CommitStep(Action.INSERT, entity))
    return steps
