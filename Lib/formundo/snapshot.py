from dataclasses import dataclass, field
import itertools
import time
import typing
import uuid

from .diffEngine import Patch


@dataclass(frozen=True)
class Snapshot:

    """A Snapshot is one entry of the undo history:

    - id: a unique identifier
    - timestamp: creation time, in seconds since the epoch
    - patch: the Patch that transforms the previously committed state into
      the state committed with this snapshot
    - metadata: a dict with the changed field paths under "affectedFields",
      and any keyword arguments passed to update() or snapshot()
    - parentId: the id of the snapshot this one was committed on top of, or
      None if it was committed on top of the initial state
    """

    id: str
    timestamp: float
    patch: Patch
    metadata: dict = field(default_factory=dict)
    parentId: typing.Optional[str] = None


class SnapshotFactory:

    """Creates snapshots with ids that increase monotonically for this
    factory and do not collide with ids of other factories. A custom id
    source (a callable returning a new id on each call) can be passed instead.
    """

    def __init__(self, idSource=None, clock=time.time):
        self._counter = itertools.count()
        self._token = uuid.uuid4().hex[:8]
        self._idSource = idSource if idSource is not None else self._generateId
        self._clock = clock

    def create(self, patch, parentId=None, metadata=None):
        return Snapshot(
            id=self._idSource(),
            timestamp=self._clock(),
            patch=patch,
            metadata=dict(metadata or {}),
            parentId=parentId,
        )

    def _generateId(self):
        return f"snapshot_{int(self._clock() * 1000)}_{next(self._counter)}_{self._token}"
