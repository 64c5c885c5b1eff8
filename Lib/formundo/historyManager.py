import asyncio
from dataclasses import dataclass, field, replace
import logging
import time
import typing

from .diffEngine import UPDATE, Sentinel, applyPatch, createPatch, deepClone, reversePatch
from .snapshot import SnapshotFactory


logger = logging.getLogger(__name__)


# Returned by undo(), redo() and jumpTo() when there was nothing to do.
NOTHING = Sentinel("NOTHING")


@dataclass
class HistoryOptions:

    """Configuration for a HistoryManager.

    - maxHistory: the maximum number of snapshots to keep
    - debounceMs: how long update() waits for further updates before
      committing, in milliseconds
    - excludeFields: field paths whose changes are never recorded; an entry
      ending in "*" matches every path starting with the preceding text
    - enableBranching: keep snapshots that a new edit made unreachable via
      redo, instead of discarding them
    - onSnapshot, onUndo, onRedo: called with the Snapshot concerned
    - onClear: called without arguments
    - scheduler: called as scheduler(delaySeconds, callback), returning a
      handle with a cancel() method, like loop.call_later(). By default the
      running asyncio loop is used if there is one.
    - clock: a monotonic time source in seconds, used to settle pending
      updates when there is no event loop
    - idSource: a callable returning a new unique snapshot id on each call
    """

    maxHistory: int = 50
    debounceMs: float = 500
    excludeFields: typing.Sequence[str] = ()
    enableBranching: bool = False
    onSnapshot: typing.Optional[typing.Callable] = None
    onUndo: typing.Optional[typing.Callable] = None
    onRedo: typing.Optional[typing.Callable] = None
    onClear: typing.Optional[typing.Callable] = None
    scheduler: typing.Optional[typing.Callable] = None
    clock: typing.Callable[[], float] = time.monotonic
    idSource: typing.Optional[typing.Callable[[], str]] = None

    def __post_init__(self):
        if self.maxHistory < 0:
            raise ValueError(f"maxHistory must not be negative, got {self.maxHistory}")
        if self.debounceMs < 0:
            raise ValueError(f"debounceMs must not be negative, got {self.debounceMs}")


@dataclass(frozen=True)
class HistoryInfo:

    position: int
    size: int
    canUndo: bool
    canRedo: bool
    isPaused: bool
    snapshots: tuple = field(default_factory=tuple)


class HistoryManager:

    """A HistoryManager records the changes made to a state value, and can
    roll them back or replay them. The state is any tree of dicts, lists and
    scalar values; changes are found by diffing, so the state needs no
    awareness of the history manager.

        >>> hm = HistoryManager({"title": "", "count": 0})

    New versions of the state are passed in with snapshot(), which records
    the difference with the current state right away:

        >>> hm.snapshot({"title": "a", "count": 0}, description="set title")
        >>> hm.snapshot({"title": "ab", "count": 0})
        >>> hm.undo()
        {'title': 'a', 'count': 0}
        >>> hm.redo()
        {'title': 'ab', 'count': 0}

    The keyword arguments passed for the snapshot that undo() would roll back
    are available via undoInfo(), along with the changed field paths:

        >>> hm.undo()
        {'title': 'a', 'count': 0}
        >>> hm.undoInfo()
        {'description': 'set title', 'affectedFields': ['title']}

    When there is nothing to undo or redo, the NOTHING marker is returned and
    the state is left alone:

        >>> hm.undo()
        {'title': '', 'count': 0}
        >>> hm.undo()
        NOTHING

    update() is the variant to use for rapid changes such as keystrokes: it
    waits until no new update arrived for `debounceMs` milliseconds, then
    commits only the latest state. Within a running asyncio event loop the
    commit happens from a loop callback; without one, it happens at the start
    of the first call to the manager after the delay expired. Operations that
    read the state or move through the history (getCurrentState(), undo(),
    jumpTo() and others) commit a pending update first.

    Options are given as a HistoryOptions object, as keyword arguments, or
    both, in which case the keyword arguments take precedence.
    """

    def __init__(self, initialState, options=None, **optionOverrides):
        if options is None:
            options = HistoryOptions(**optionOverrides)
        elif optionOverrides:
            options = replace(options, **optionOverrides)
        self.options = options
        self.history = []
        self.position = -1
        self._currentState = deepClone(initialState)
        self._floorId = None  # parentId of the snapshots applied directly on the floor state
        self._isPaused = False
        self._pending = None  # (state, metadata)
        self._debounceTimer = None
        self._deadline = None
        self._listeners = []
        self._snapshotFactory = SnapshotFactory(options.idSource)

    def update(self, newState, **metadata):
        """Propose a new state. The state will be committed once no further
        update arrived during the debounce delay; keyword arguments form the
        snapshot's metadata. While paused, the state is adopted immediately
        and no snapshot is recorded.

        `newState` may also be a callable, which will be called with a copy
        of the latest state, and which should return the new state.
        """
        self._settleIfDue()
        if callable(newState):
            latest = self._pending[0] if self._pending is not None else self._currentState
            newState = newState(deepClone(latest))
        if self._isPaused:
            self._currentState = deepClone(newState)
            return
        self._pending = (deepClone(newState), metadata)
        self._cancelDebounce()
        self._scheduleSettle()

    def snapshot(self, newState, **metadata):
        """Commit a pending update if there is one, then commit `newState`
        without waiting.
        """
        self._flushPending()
        self._commit(deepClone(newState), metadata)

    def flush(self):
        """Commit a pending update now, instead of waiting for the debounce
        delay to expire.
        """
        self._flushPending()

    def undo(self):
        """Roll back the snapshot at the current position, and return a copy
        of the resulting state. Return NOTHING if there is nothing to undo.
        """
        self._settleIfDue()
        if not self.canUndo():
            return NOTHING
        self._flushPending()
        snapshot = self.history[self.position]
        self._currentState = applyPatch(self._currentState, reversePatch(snapshot.patch))
        self.position = self._indexOf(snapshot.parentId)
        logger.debug("undo %s, position is now %d", snapshot.id, self.position)
        if self.options.onUndo is not None:
            self.options.onUndo(snapshot)
        self._notifyListeners()
        return deepClone(self._currentState)

    def redo(self):
        """Replay the next snapshot, and return a copy of the resulting
        state. Return NOTHING if there is nothing to redo.

        A pending update stays pending, and is committed on top of the
        replayed state.
        """
        self._settleIfDue()
        index = self._redoIndex()
        if index is None:
            return NOTHING
        snapshot = self.history[index]
        self._currentState = applyPatch(self._currentState, snapshot.patch)
        self.position = index
        logger.debug("redo %s, position is now %d", snapshot.id, self.position)
        if self.options.onRedo is not None:
            self.options.onRedo(snapshot)
        self._notifyListeners()
        return deepClone(self._currentState)

    def canUndo(self):
        self._settleIfDue()
        return self.position >= 0

    def canRedo(self):
        self._settleIfDue()
        return self._redoIndex() is not None

    def undoInfo(self):
        """Return the metadata dict of the snapshot that undo() would roll
        back, or None if there is nothing to undo.
        """
        if not self.canUndo():
            return None
        self._flushPending()
        return self.history[self.position].metadata

    def redoInfo(self):
        """Return the metadata dict of the snapshot that redo() would replay,
        or None if there is nothing to redo.
        """
        self._settleIfDue()
        index = self._redoIndex()
        if index is None:
            return None
        return self.history[index].metadata

    def pause(self):
        """Stop recording: until resume() is called, update() changes the
        state without creating snapshots. A pending update is committed first.
        """
        self._flushPending()
        self._isPaused = True

    def resume(self):
        self._isPaused = False

    def clear(self):
        """Forget all snapshots. The current state is kept, and becomes the
        state that can't be undone.
        """
        self._settleIfDue()
        self._cancelDebounce()
        self._pending = None
        self.history = []
        self.position = -1
        self._floorId = None
        logger.debug("history cleared")
        if self.options.onClear is not None:
            self.options.onClear()

    def getCurrentState(self):
        self._flushPending()
        return deepClone(self._currentState)

    def getInfo(self):
        self._settleIfDue()
        return HistoryInfo(
            position=self.position,
            size=len(self.history),
            canUndo=self.position >= 0,
            canRedo=self._redoIndex() is not None,
            isPaused=self._isPaused,
            snapshots=tuple(self.history),
        )

    def jumpTo(self, targetPosition):
        """Move to `targetPosition` in the history, -1 being the state before
        the first snapshot, and return a copy of the state at that position.
        Return NOTHING if the position is out of range.

        The state is rebuilt by rolling back every applied snapshot, then
        replaying the snapshots leading up to the target.
        """
        self._settleIfDue()
        if not -1 <= targetPosition < len(self.history):
            return NOTHING
        self._flushPending()
        if not -1 <= targetPosition < len(self.history):
            # the pending update truncated the history
            return NOTHING
        state = self._currentState
        while self.position >= 0:
            snapshot = self.history[self.position]
            state = applyPatch(state, reversePatch(snapshot.patch))
            self.position = self._indexOf(snapshot.parentId)
        for index in self._lineage(targetPosition):
            state = applyPatch(state, self.history[index].patch)
            self.position = index
        self._currentState = state
        logger.debug("jumped to position %d", self.position)
        return deepClone(self._currentState)

    def subscribe(self, listener):
        """Register `listener` to be called with a copy of the state after
        each snapshot, undo and redo. Return a function that unregisters it.
        """
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def destroy(self):
        """Cancel any pending update and forget all history and listeners.
        The manager should not be used afterwards.
        """
        self._cancelDebounce()
        self.clear()
        self._listeners = []

    # Committing

    def _commit(self, newState, metadata):
        patch = createPatch(self._currentState, newState, self.options.excludeFields)
        if patch is None:
            logger.debug("no changes to record")
            return
        parentId = self.history[self.position].id if self.position >= 0 else self._floorId
        if not self.options.enableBranching:
            del self.history[self.position + 1:]
        affectedFields = list(patch.changes) if patch.kind == UPDATE else []
        snapshot = self._snapshotFactory.create(
            patch, parentId, dict(metadata, affectedFields=affectedFields))
        self.history.append(snapshot)
        self.position = len(self.history) - 1
        self._enforceMaxHistory()
        self._currentState = newState
        logger.debug("recorded %s changing %s", snapshot.id,
                     ", ".join(affectedFields) or "the whole state")
        if self.options.onSnapshot is not None:
            self.options.onSnapshot(snapshot)
        self._notifyListeners()

    def _enforceMaxHistory(self):
        numEvicted = len(self.history) - self.options.maxHistory
        if numEvicted <= 0:
            return
        currentId = self.history[self.position].id if self.position >= 0 else None
        lineIds = {self.history[index].id for index in self._lineage(self.position)}
        evicted = self.history[:numEvicted]
        for snapshot in evicted:
            if snapshot.id in lineIds:
                # the floor state moves up to the state after this snapshot
                self._floorId = snapshot.id
        # Snapshots that were based on an evicted state other than the new
        # floor can no longer be applied to anything we have: drop them too.
        retained = []
        retainedIds = set()
        for snapshot in self.history[numEvicted:]:
            if snapshot.parentId == self._floorId or snapshot.parentId in retainedIds:
                retained.append(snapshot)
                retainedIds.add(snapshot.id)
        logger.debug("evicted %d snapshot(s), dropped %d unreachable",
                     numEvicted, len(self.history) - numEvicted - len(retained))
        self.history = retained
        self.position = self._indexOf(currentId)

    # Navigation

    def _indexOf(self, snapshotId):
        if snapshotId is not None:
            for index, snapshot in enumerate(self.history):
                if snapshot.id == snapshotId:
                    return index
        return -1

    def _redoIndex(self):
        parentId = self.history[self.position].id if self.position >= 0 else self._floorId
        # The most recent child wins; in non-branching mode that is the only one.
        for index in range(len(self.history) - 1, self.position, -1):
            if self.history[index].parentId == parentId:
                return index
        return None

    def _lineage(self, position):
        """Return the indices of the snapshots leading from the floor state up
        to and including `position`, in application order.
        """
        indices = []
        while position >= 0:
            indices.append(position)
            position = self._indexOf(self.history[position].parentId)
        indices.reverse()
        return indices

    # Debouncing

    def _scheduleSettle(self):
        delay = self.options.debounceMs / 1000
        scheduler = self.options.scheduler
        if scheduler is None:
            try:
                scheduler = asyncio.get_running_loop().call_later
            except RuntimeError:
                # no event loop to call us back: settle on a later call
                self._deadline = self.options.clock() + delay
                return
        self._debounceTimer = scheduler(delay, self._settle)

    def _settle(self):
        self._debounceTimer = None
        self._flushPending()

    def _settleIfDue(self):
        if self._deadline is not None and self.options.clock() >= self._deadline:
            self._flushPending()

    def _cancelDebounce(self):
        if self._debounceTimer is not None:
            self._debounceTimer.cancel()
            self._debounceTimer = None
        self._deadline = None

    def _flushPending(self):
        self._cancelDebounce()
        if self._pending is not None:
            state, metadata = self._pending
            self._pending = None
            self._commit(state, metadata)

    def _notifyListeners(self):
        if not self._listeners:
            return
        state = deepClone(self._currentState)
        for listener in list(self._listeners):
            listener(state)
