import copy
from datetime import date, datetime
import pytest
from formundo.diffEngine import (
    MISSING,
    Patch,
    PatchError,
    applyPatch,
    createPatch,
    deepClone,
    deepEqual,
    isFieldExcluded,
    reversePatch,
    setValueAtPath,
    valueKind,
)


class TestValueModel:

    def test_valueKind(self):
        assert valueKind({}) == "record"
        assert valueKind([]) == "sequence"
        assert valueKind((1, 2)) == "sequence"
        assert valueKind("abc") == "scalar"
        assert valueKind(b"abc") == "scalar"
        assert valueKind(None) == "scalar"
        assert valueKind(12.5) == "scalar"
        assert valueKind(date(2024, 1, 1)) == "scalar"
        assert valueKind({1, 2}) == "scalar"

    def test_deepClone(self):
        when = datetime(2024, 1, 1, 12, 30)
        state = {"a": [1, {"b": 2}], "c": (3, [4]), "d": {"e": when}, "f": {5}}
        clone = deepClone(state)
        assert clone == state
        assert clone is not state
        assert clone["a"] is not state["a"]
        assert clone["a"][1] is not state["a"][1]
        assert type(clone["c"]) == tuple
        assert clone["c"][1] is not state["c"][1]
        assert clone["d"]["e"] == when
        assert clone["f"] is not state["f"]
        clone["a"][1]["b"] = 200
        assert state["a"][1]["b"] == 2

    def test_deepClone_scalars(self):
        assert deepClone(None) is None
        assert deepClone("abc") == "abc"
        assert deepClone(12) == 12

    def test_deepEqual(self):
        assert deepEqual({"a": [1, 2]}, {"a": [1, 2]})
        assert not deepEqual({"a": [1, 2]}, {"a": [2, 1]})
        assert deepEqual({"a": 1, "b": 2}, {"b": 2, "a": 1})
        assert not deepEqual({"a": 1}, {"a": 1, "b": None})
        assert not deepEqual([1], {"0": 1})
        assert not deepEqual(True, 1)
        assert deepEqual(1, 1.0)
        assert not deepEqual(None, 0)
        assert deepEqual(date(2024, 1, 1), date(2024, 1, 1))
        assert not deepEqual(date(2024, 1, 1), date(2024, 1, 2))

    def test_missing_survives_copy(self):
        assert copy.copy(MISSING) is MISSING
        assert copy.deepcopy({"a": MISSING})["a"] is MISSING


class TestExclusion:

    def test_exact(self):
        assert isFieldExcluded("password", ["password"])
        assert not isFieldExcluded("name", ["password"])

    def test_nested(self):
        assert isFieldExcluded("secret.pin", ["secret"])
        assert isFieldExcluded("secret.a.b", ["secret"])
        assert not isFieldExcluded("secrets", ["secret"])

    def test_wildcard(self):
        assert isFieldExcluded("user.name", ["user.*"])
        assert not isFieldExcluded("admin.name", ["user.*"])
        assert isFieldExcluded("temp_value", ["temp*"])

    def test_empty(self):
        assert not isFieldExcluded("anything", [])


class TestCreatePatch:

    def test_simple(self):
        patch = createPatch({"name": "John", "age": 30}, {"name": "Jane", "age": 30})
        assert patch == Patch("update", {"name": "Jane"}, {"name": "John"})

    def test_no_changes(self):
        assert createPatch({"a": 1, "b": [1, 2]}, {"a": 1, "b": [1, 2]}) is None

    def test_same_object(self):
        state = {"a": 1}
        assert createPatch(state, state) is None

    def test_nested_records(self):
        old = {"a": {"b": {"c": {"d": 1}}}, "x": 1}
        new = {"a": {"b": {"c": {"d": 2}}}, "x": 1}
        patch = createPatch(old, new)
        assert patch.changes == {"a.b.c.d": 2}
        assert patch.previous == {"a.b.c.d": 1}

    def test_sequences_as_a_whole(self):
        patch = createPatch({"tags": ["a", "b"]}, {"tags": ["a", "c"]})
        assert patch.changes == {"tags": ["a", "c"]}
        assert patch.previous == {"tags": ["a", "b"]}

    def test_sequence_order(self):
        patch = createPatch({"tags": ["a", "b"]}, {"tags": ["b", "a"]})
        assert patch.changes == {"tags": ["b", "a"]}

    def test_equal_sequence_copies(self):
        assert createPatch({"tags": [{"a": 1}]}, {"tags": [{"a": 1}]}) is None

    def test_added_and_removed_keys(self):
        patch = createPatch({"a": 1, "b": 2}, {"a": 1, "c": 3})
        assert patch.changes == {"b": MISSING, "c": 3}
        assert patch.previous == {"b": 2, "c": MISSING}

    def test_null_values(self):
        patch = createPatch({"value": None}, {"value": "test"})
        assert patch.changes == {"value": "test"}
        assert patch.previous == {"value": None}

    def test_type_change(self):
        patch = createPatch({"a": {"x": 1}}, {"a": 5})
        assert patch.changes == {"a": 5}
        assert patch.previous == {"a": {"x": 1}}
        patch = createPatch({"a": [1]}, {"a": {"0": 1}})
        assert patch.changes == {"a": {"0": 1}}

    def test_dates(self):
        patch = createPatch({"due": date(2024, 1, 1)}, {"due": date(2024, 2, 1)})
        assert patch.changes == {"due": date(2024, 2, 1)}
        assert createPatch({"due": date(2024, 1, 1)}, {"due": date(2024, 1, 1)}) is None

    def test_root_scalars(self):
        patch = createPatch("abc", "abd")
        assert patch == Patch("replace", "abd", "abc")
        assert createPatch(3, 3) is None
        assert createPatch([1, 2], [1, 2]) is None

    def test_empty_string_key(self):
        old = {"": 1, "x": 0}
        new = {"": 2, "x": 0}
        patch = createPatch(old, new)
        assert patch == Patch("update", {"": 2}, {"": 1})
        assert applyPatch(old, patch) == new
        assert applyPatch(new, reversePatch(patch)) == old

    def test_nested_under_empty_string_key(self):
        old = {"": {"a": 1}}
        new = {"": {"a": 2}}
        patch = createPatch(old, new)
        assert patch.changes == {".a": 2}
        assert applyPatch(old, patch) == new
        assert applyPatch(new, reversePatch(patch)) == old

    def test_non_str_keys(self):
        old = {1: "a", "n": {2: "b"}}
        new = {1: "b", "n": {2: "c", 3: "d"}}
        patch = createPatch(old, new)
        assert patch.changes == {"1": "b", "n.2": "c", "n.3": "d"}
        assert applyPatch(old, patch) == new
        assert applyPatch(new, reversePatch(patch)) == old

    def test_exclude(self):
        patch = createPatch(
            {"name": "", "password": ""},
            {"name": "John", "password": "secret"},
            ["password"],
        )
        assert patch.changes == {"name": "John"}
        assert patch.previous == {"name": ""}

    def test_exclude_only_change(self):
        patch = createPatch({"secret": {"pin": 1}}, {"secret": {"pin": 2}}, ["secret"])
        assert patch is None

    def test_exclude_wildcard(self):
        patch = createPatch(
            {"user": {"name": "John", "id": 1}, "admin": {"name": "Boss", "id": 2}},
            {"user": {"name": "Jane", "id": 1}, "admin": {"name": "Chief", "id": 2}},
            ["user.*"],
        )
        assert patch.changes == {"admin.name": "Chief"}


class TestApplyPatch:

    def test_update(self):
        state = {"name": "John", "age": 30}
        result = applyPatch(state, Patch("update", {"name": "Jane"}, {"name": "John"}))
        assert result == {"name": "Jane", "age": 30}
        assert state == {"name": "John", "age": 30}

    def test_nested(self):
        old = {"a": {"b": {"c": {"d": 1}}}}
        new = {"a": {"b": {"c": {"d": 2}}}}
        result = applyPatch(old, createPatch(old, new))
        assert result == new
        assert old["a"]["b"]["c"]["d"] == 1

    def test_create_intermediate_records(self):
        result = applyPatch({"a": {}}, Patch("update", {"a.b.c": 123}, {}))
        assert result == {"a": {"b": {"c": 123}}}
        result = applyPatch({"a": 5}, Patch("update", {"a.b": 1}, {}))
        assert result == {"a": {"b": 1}}

    def test_missing_deletes(self):
        result = applyPatch({"a": 1, "b": 2}, Patch("update", {"b": MISSING}, {"b": 2}))
        assert result == {"a": 1}
        assert "b" not in result

    def test_values_are_copied(self):
        tags = ["a"]
        patch = Patch("update", {"tags": tags}, {"tags": MISSING})
        result = applyPatch({}, patch)
        result["tags"].append("b")
        assert tags == ["a"]

    def test_dates_preserved(self):
        state = {"date": date(2024, 1, 1), "name": "test"}
        patch = createPatch(state, dict(state, name="updated"))
        result = applyPatch(state, patch)
        assert result["name"] == "updated"
        assert result["date"] == date(2024, 1, 1)

    def test_root_change(self):
        patch = createPatch({"a": 1}, [1, 2])
        assert patch == Patch("replace", [1, 2], {"a": 1})
        assert applyPatch({"a": 1}, patch) == [1, 2]
        assert applyPatch([1, 2], reversePatch(patch)) == {"a": 1}

    def test_replace(self):
        payload = {"x": 1}
        result = applyPatch({"a": 1}, Patch("replace", payload, {"a": 1}))
        assert result is payload

    def test_unknown_kind(self):
        with pytest.raises(PatchError):
            applyPatch({}, Patch("move", {}, {}))

    def test_setValueAtPath(self):
        record = {"a": {"b": 1}}
        setValueAtPath(record, "a.c", 2)
        setValueAtPath(record, "d.e.f", 3)
        setValueAtPath(record, "a.b", MISSING)
        assert record == {"a": {"c": 2}, "d": {"e": {"f": 3}}}

    def test_non_str_key_removed(self):
        old = {1: "a", 2: "b"}
        new = {2: "b"}
        patch = createPatch(old, new)
        assert patch.changes == {"1": MISSING}
        assert applyPatch(old, patch) == new
        assert applyPatch(new, reversePatch(patch)) == old


class TestReversePatch:

    def test_update(self):
        patch = Patch("update", {"name": "Jane"}, {"name": "John"})
        assert reversePatch(patch) == Patch("update", {"name": "John"}, {"name": "Jane"})

    def test_roundtrip(self):
        old = {"title": "", "meta": {"tags": ["x"], "extra": 1}, "gone": True}
        new = {"title": "t", "meta": {"tags": ["x", "y"]}, "added": None}
        patch = createPatch(old, new)
        assert applyPatch(old, patch) == new
        assert applyPatch(new, reversePatch(patch)) == old

    def test_update_without_previous(self):
        reversed_ = reversePatch(Patch("update", {"a": 1}))
        assert reversed_ == Patch("update", {}, {"a": 1})

    def test_replace(self):
        patch = Patch("replace", {"new": 1}, {"old": 1})
        assert reversePatch(patch) == Patch("replace", {"old": 1}, {"new": 1})

    def test_replace_without_previous(self):
        with pytest.raises(PatchError):
            reversePatch(Patch("replace", {"new": 1}))
