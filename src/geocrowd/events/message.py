"""
Mutation Event
==============

Internal representation of a store mutation that requires a density
recompute.

Design Rules:
    - Carries only what a recompute needs: the cell of the mutated signal
    - Immutable; the same event may be delivered more than once
"""

import time
from dataclasses import dataclass, field

from geocrowd.models.entity import SpatialEntity
from geocrowd.store.base import MutationKind


@dataclass(frozen=True, slots=True)
class MutationEvent:
    """
    A create or delete of a signal.

    Attributes:
        kind: CREATE or DELETE
        entity_id: Id of the mutated document
        cell: Cell of the mutated document at mutation time
        timestamp: UNIX time the event was built
    """

    kind: MutationKind
    entity_id: str
    cell: str
    timestamp: float = field(default_factory=time.time)

    @classmethod
    def from_entity(cls, kind: MutationKind, entity: SpatialEntity) -> "MutationEvent":
        """Build an event from a mutated document."""
        return cls(kind=MutationKind(kind), entity_id=entity.id, cell=entity.cell)

    def group_key(self, grouping_precision: int) -> str:
        """Grouping prefix this event schedules a recompute for."""
        return self.cell[:grouping_precision]

    def __repr__(self) -> str:
        return (
            f"MutationEvent({self.kind.value}, id={self.entity_id!r}, "
            f"cell={self.cell!r})"
        )
