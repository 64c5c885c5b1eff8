"""# formundo

A library to add undo and redo to stateful records such as form data, editor
buffers or configuration objects.

The main idea is that if one limits oneself to state that can be viewed as a
JSON-like data structure (ie. is composed of strings, numbers, lists and
dictionaries), changes can be found by comparing two versions of the state.
Only the differences are recorded, not full copies, and they can be rolled
back or replayed to implement undo and redo.

The state is completely decoupled from the recording mechanism: client code
keeps producing new versions of its state as plain values, and hands them to
a history manager:

    >>> hm = HistoryManager({"name": "", "email": ""})
    >>> hm.snapshot({"name": "Jane", "email": ""})
    >>> hm.snapshot({"name": "Jane", "email": "jane@example.com"})
    >>> hm.undo()
    {'name': 'Jane', 'email': ''}
    >>> hm.redo()
    {'name': 'Jane', 'email': 'jane@example.com'}

Rapid changes, such as one state per keystroke, are best passed to
`hm.update()`, which groups them into a single undo step once no new change
arrived for a while (500 milliseconds by default).

Nested dictionaries are compared field by field, so a change deep inside the
state is recorded under its dotted path, for example "address.city". Fields
can be kept out of the history altogether with the `excludeFields` option.

The diffing functions are available on their own as well, see
`createPatch()`, `applyPatch()` and `reversePatch()`.
"""

from .diffEngine import (
    MISSING,
    Patch,
    PatchError,
    applyPatch,
    createPatch,
    deepClone,
    reversePatch,
)
from .historyManager import NOTHING, HistoryInfo, HistoryManager, HistoryOptions
from .snapshot import Snapshot, SnapshotFactory

__all__ = [
    "HistoryInfo",
    "HistoryManager",
    "HistoryOptions",
    "MISSING",
    "NOTHING",
    "Patch",
    "PatchError",
    "Snapshot",
    "SnapshotFactory",
    "applyPatch",
    "createPatch",
    "deepClone",
    "reversePatch",
]

try:
    from ._version import version as __version__
except ImportError:
    __version__ = "<unknown>"
