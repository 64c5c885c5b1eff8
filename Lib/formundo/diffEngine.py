from collections.abc import Mapping, MutableSet, Sequence
from dataclasses import dataclass
from functools import singledispatch
import typing


class PatchError(Exception):
    pass


class Sentinel:

    """A named marker object that keeps its identity when copied, so it can
    safely be compared with `is`.
    """

    def __init__(self, name):
        self._name = name

    def __repr__(self):
        return self._name

    def __copy__(self):
        return self

    def __deepcopy__(self, memo):
        return self


# Stands for "no value at this path": a key that is absent from a record.
MISSING = Sentinel("MISSING")


UPDATE = "update"
REPLACE = "replace"


@dataclass(frozen=True)
class Patch:

    """A Patch is the unit of recorded change. It has three fields:

    - kind: either "update" or "replace"
    - changes: for "update", a dict mapping dotted field paths to new values;
      for "replace", the complete new value
    - previous: the same structure holding the values before the change, used
      to build the inverse patch. MISSING if it was not captured.

    A field path is the dot-joined list of keys leading from the root record
    to a value. For example, "user.name" represents "Jane" in this state:
    {"user": {"name": "Jane"}, "tags": ["a", "b"]}. Sequences are never
    entered: "tags" is the deepest path into the second item.

    A value of MISSING in an "update" patch means the key is absent, so
    applying it removes the key.
    """

    kind: str
    changes: typing.Any
    previous: typing.Any = MISSING


# Value model

RECORD = "record"
SEQUENCE = "sequence"
SCALAR = "scalar"


@singledispatch
def valueKind(value):
    # None, booleans, numbers, date-like values and everything else that is
    # compared and copied as one opaque value.
    return SCALAR


@valueKind.register(Mapping)
def _valueKind_record(value):
    return RECORD


@valueKind.register(Sequence)
def _valueKind_sequence(value):
    return SEQUENCE


@valueKind.register(str)
@valueKind.register(bytes)
@valueKind.register(bytearray)
def _valueKind_atomic(value):
    return SCALAR


def deepClone(value):
    """Return a structural copy of a state value. Records become dicts, lists
    and tuples keep their type, mutable sets are copied, and scalars (which
    includes the immutable datetime types) are returned as-is.

    Cyclic structures are not supported.
    """
    kind = valueKind(value)
    if kind == RECORD:
        return {key: deepClone(item) for key, item in value.items()}
    if kind == SEQUENCE:
        items = [deepClone(item) for item in value]
        return tuple(items) if isinstance(value, tuple) else items
    if isinstance(value, MutableSet):
        return set(value)
    return value


def deepEqual(a, b):
    """Compare two state values structurally. Sequences compare element by
    element in order, records compare by key set and per-key value. Unlike
    Python's ==, True and 1 are considered different values.
    """
    if a is b:
        return True
    kind = valueKind(a)
    if kind != valueKind(b):
        return False
    if kind == RECORD:
        return a.keys() == b.keys() and all(deepEqual(a[key], b[key]) for key in a)
    if kind == SEQUENCE:
        return len(a) == len(b) and all(deepEqual(x, y) for x, y in zip(a, b))
    if isinstance(a, bool) != isinstance(b, bool):
        return False
    return a == b


def isFieldExcluded(path, excludeFields):
    """Return True if `path` is excluded by one of `excludeFields`. An entry
    excludes its own path and every path nested under it; an entry ending in
    "*" excludes every path starting with the text before the "*".

        >>> isFieldExcluded("secret.pin", ["secret"])
        True
        >>> isFieldExcluded("user.name", ["user.*"])
        True
        >>> isFieldExcluded("username", ["user"])
        False
    """
    for excluded in excludeFields:
        if excluded.endswith("*"):
            if path.startswith(excluded[:-1]):
                return True
        elif path == excluded or path.startswith(excluded + "."):
            return True
    return False


# Patch functions

def createPatch(oldState, newState, excludeFields=()):
    """Return a Patch that transforms `oldState` into `newState`, or None if
    the two states do not differ outside of `excludeFields`. When both states
    are records this is an "update" patch, otherwise it is a "replace" patch
    holding both whole values.

        >>> patch = createPatch({"title": "", "count": 0}, {"title": "a", "count": 0})
        >>> patch.changes, patch.previous
        ({'title': 'a'}, {'title': ''})

    Records are compared key by key, recursively. Any other value, including
    sequences, is compared as a whole and recorded as one change at its path.
    """
    if oldState is newState:
        return None
    if valueKind(oldState) != RECORD or valueKind(newState) != RECORD:
        if deepEqual(oldState, newState):
            return None
        return Patch(REPLACE, newState, oldState)
    changes = {}
    previous = {}
    _diffValues(oldState, newState, None, changes, previous, excludeFields)
    if not changes:
        return None
    return Patch(UPDATE, changes, previous)


def _diffValues(oldValue, newValue, path, changes, previous, excludeFields):
    if oldValue is newValue:
        return
    if valueKind(oldValue) == RECORD and valueKind(newValue) == RECORD:
        for key in _mergedKeys(oldValue, newValue):
            childPath = str(key) if path is None else f"{path}.{key}"
            _diffValues(oldValue.get(key, MISSING), newValue.get(key, MISSING),
                        childPath, changes, previous, excludeFields)
    elif not deepEqual(oldValue, newValue):
        if not isFieldExcluded(path, excludeFields):
            changes[path] = newValue
            previous[path] = oldValue


def _mergedKeys(oldRecord, newRecord):
    keys = list(oldRecord)
    keys.extend(key for key in newRecord if key not in oldRecord)
    return keys


def applyPatch(state, patch):
    """Return the result of applying `patch` to `state`. The state object
    itself is never modified.

    A "replace" patch returns its payload as-is, without copying it.
    """
    if patch.kind == REPLACE:
        return patch.changes
    if patch.kind != UPDATE:
        raise PatchError(f"unknown patch kind: {patch.kind!r}")
    newState = deepClone(state)
    for path, value in patch.changes.items():
        if valueKind(newState) != RECORD:
            newState = {}
        setValueAtPath(newState, path, value)
    return newState


def setValueAtPath(record, path, value):
    """Set the value at the dotted `path` inside `record`, which must be a
    mutable mapping. Missing (or non-record) intermediate values are replaced
    by empty dicts. A value of MISSING removes the key instead.
    """
    *parentKeys, lastKey = path.split(".")
    current = record
    for key in parentKeys:
        key = _resolveKey(current, key)
        child = current.get(key)
        if valueKind(child) != RECORD:
            child = current[key] = {}
        current = child
    lastKey = _resolveKey(current, lastKey)
    if value is MISSING:
        current.pop(lastKey, None)
    else:
        current[lastKey] = deepClone(value)


def _resolveKey(record, pathElement):
    # Paths hold str(key); map the element back to a non-str key it came from.
    if pathElement in record:
        return pathElement
    for key in record:
        if str(key) == pathElement:
            return key
    return pathElement


def reversePatch(patch):
    """Return the inverse of `patch`, by swapping its changes and previous
    values. This raises PatchError for a "replace" patch that was created
    without a previous value, as its inverse would lose data.
    """
    previous = patch.previous
    if previous is MISSING:
        if patch.kind == REPLACE:
            raise PatchError("can't reverse a replace patch without a previous value")
        previous = {}
    return Patch(patch.kind, previous, patch.changes)
