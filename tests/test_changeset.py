"""Tests for staging, resolving, committing and rolling back changes."""
import asyncio

import pytest

from changeset import (
    Change,
    Changeset,
    ContentMissingError,
    Err,
    ErrorPayloadError,
    NotASequenceError,
    PROPERTY_CHANGED,
    PrepareError,
)


def test_missing_content_raises():
    with pytest.raises(ContentMissingError):
        Changeset(None)


def test_readme_scenario(validator):
    """Reject blank, accept, commit, rollback - the whole lifecycle."""
    content = {"name": "Al"}
    cs = Changeset(content, validator)

    result = cs.set("name", "")
    assert result == Err("", "name can't be blank")
    assert cs.is_invalid
    assert cs.get("name") == ""
    assert content == {"name": "Al"}

    assert cs.set("name", "Bob") == "Bob"
    assert cs.is_valid
    assert cs.get("name") == "Bob"

    cs.execute()
    assert content == {"name": "Bob"}

    cs.rollback()
    assert cs.changes == []
    assert cs.errors == []
    assert cs.get("name") == "Bob"


def test_accepted_value_is_change_only(content, validator):
    cs = Changeset(content, validator)
    cs.set("name", "Jim")
    assert cs.get("name") == "Jim"
    assert "name" in cs.bare_changes
    assert cs.error == {}
    assert cs.is_dirty


def test_rejected_value_is_error_only(content, validator):
    cs = Changeset(content, validator)
    cs.set("name", "Jim")
    cs.set("name", "")
    assert cs.errors == [{"key": "name", "value": "", "validation": "name can't be blank"}]
    assert cs.bare_changes == {}
    assert cs.is_pristine


def test_setting_original_value_removes_change(content):
    cs = Changeset(content)
    cs.set("name", "Jim")
    assert cs.is_dirty
    cs.set("name", "Al")
    assert cs.is_pristine
    assert cs.get("name") == "Al"


def test_falsy_and_list_results_reject():
    results = iter([False, ["too short", "no digits"], [True], None])

    def validator(**context):
        return next(results)

    cs = Changeset({"pw": "x"}, validator)
    assert cs.set("pw", "a") == Err("a", False)
    assert cs.set("pw", "b") == Err("b", ["too short", "no digits"])
    assert cs.set("pw", "c") == "c"
    assert cs.is_valid
    # None from a validator counts as valid
    assert cs.set("pw", "d") == "d"
    assert cs.bare_changes == {"pw": "d"}


def test_validator_receives_context(content):
    seen = []

    def validator(**context):
        seen.append(context)
        return True

    cs = Changeset(content, validator)
    cs.set("address.city", "Shelbyville")
    ctx = seen[-1]
    assert ctx["key"] == "address.city"
    assert ctx["new_value"] == "Shelbyville"
    assert ctx["old_value"] == "Springfield"
    assert ctx["content"] is content
    assert ctx["changes"] == {"address": {"city": "Shelbyville"}}


def test_validator_cannot_corrupt_change_view(content):
    def validator(changes, **context):
        changes["address"]["city"] = "tampered"
        changes["injected"] = True
        return True

    cs = Changeset(content, validator)
    cs.set("address.city", "Shelbyville")
    assert cs.change == {"address": {"city": "Shelbyville"}}
    cs.set("age", 31)
    assert cs.change == {"address": {"city": "Shelbyville"}, "age": 31}


def test_raising_validator_leaves_nothing_staged(content):
    def validator(key, new_value, **context):
        if new_value == "X":
            raise ValueError("lookup failed")
        return True

    cs = Changeset(content, validator)
    with pytest.raises(ValueError, match="lookup failed"):
        cs.set("name", "X")
    assert cs.is_pristine
    assert cs.get("name") == "Al"
    cs.execute()
    assert content["name"] == "Al"


def test_raising_validator_restores_previous_entry(content, validator):
    def flaky(key, new_value, **context):
        if new_value == "X":
            raise ValueError("lookup failed")
        return validator(key=key, new_value=new_value, **context)

    cs = Changeset(content, flaky)
    cs.set("name", "Bob")
    cs.set("address.city", "")
    changed = []
    cs.on(PROPERTY_CHANGED, changed.append)
    with pytest.raises(ValueError):
        cs.set("name", "X")
    with pytest.raises(ValueError):
        cs.set("address", "X")
    assert cs.bare_changes == {"name": "Bob"}
    assert cs.errors == [{"key": "address.city", "value": "", "validation": "address.city can't be blank"}]
    assert cs.get("name") == "Bob"
    assert "name" in changed


def test_skip_validate_records_without_validating(content):
    def validator(**context):
        raise AssertionError("validator must not run")

    cs = Changeset(content, validator, options={"skip_validate": True})
    assert cs.set("name", "") == ""
    assert cs.is_valid
    assert cs.bare_changes == {"name": ""}


def test_item_access_sugar(content):
    cs = Changeset(content)
    cs["age"] = 31
    assert cs["age"] == 31
    assert repr(cs) == f"changeset:{content!r}"


# ==================== VALUE RESOLUTION ====================

def test_nested_key_reads_from_changed_parent(content):
    cs = Changeset(content)
    cs.set("address", {"city": "Ogdenville"})
    assert cs.get("address.city") == "Ogdenville"
    assert cs.get("address.zip") is None


def test_nested_key_under_scalar_change_returns_change_value(content):
    cs = Changeset(content)
    cs.set("address", None)
    assert cs.get("address.city") is None
    cs.set("address", "unknown")
    assert cs.get("address.city") == "unknown"


def test_error_value_takes_precedence_over_content(content, validator):
    cs = Changeset(content, validator)
    cs.set("address.city", "")
    assert cs.get("address.city") == ""
    assert cs.get("address.zip") == "00000"


def test_dotted_set_keeps_sibling_content(content):
    cs = Changeset(content)
    cs.set("address.city", "Capital City")
    assert cs.get("address.zip") == "00000"
    cs.execute()
    assert content["address"] == {"city": "Capital City", "zip": "00000"}


def test_attribute_content(user):
    cs = Changeset(user)
    cs.set("address.city", "Shelbyville")
    assert cs.get("address.city") == "Shelbyville"
    assert user.address.city == "Springfield"
    cs.execute()
    assert user.address.city == "Shelbyville"


# ==================== EXECUTE / SAVE ====================

def test_execute_is_noop_with_errors(content, validator):
    cs = Changeset(content, validator)
    cs.set("age", 40)
    cs.set("name", "")
    cs.execute()
    assert content["age"] == 30
    assert content["name"] == "Al"


def test_execute_is_noop_when_pristine(content):
    cs = Changeset(content)
    assert cs.execute() is cs
    assert content == {"name": "Al", "age": 30, "address": {"city": "Springfield", "zip": "00000"}}


def test_execute_keeps_changes(content):
    cs = Changeset(content)
    cs.set("age", 40)
    cs.execute()
    assert content["age"] == 40
    assert cs.bare_changes == {"age": 40}


def test_save_calls_content_save_and_rolls_back(user):
    cs = Changeset(user)
    cs.set("name", "Bob")
    result = asyncio.run(cs.save({"adapter": "rest"}))
    assert result == "saved"
    assert user.name == "Bob"
    assert user.saved == [{"adapter": "rest"}]
    assert cs.is_pristine


def test_save_awaits_async_save():
    calls = []

    async def save():
        calls.append("saved")
        return {"id": 1}

    content = {"name": "Al", "save": save}
    cs = Changeset(content)
    cs.set("name", "Bob")
    assert asyncio.run(cs.save()) == {"id": 1}
    assert calls == ["saved"]
    assert content["name"] == "Bob"
    assert cs.is_pristine


def test_save_without_content_save_returns_changeset(content):
    cs = Changeset(content)
    cs.set("age", 5)
    assert asyncio.run(cs.save()) is cs
    assert content["age"] == 5


def test_failing_save_does_not_rollback():
    class Record:
        name = "Al"

        def save(self):
            raise IOError("disk full")

    cs = Changeset(Record())
    cs.set("name", "Bob")
    with pytest.raises(IOError):
        asyncio.run(cs.save())
    assert cs.bare_changes == {"name": "Bob"}


def test_prepare_replaces_changes(content):
    cs = Changeset(content)
    cs.set("name", "Bob")
    cs.set("age", 40)
    cs.prepare(lambda changes: {key.upper(): value for key, value in changes.items()})
    assert cs.bare_changes == {"NAME": "Bob", "AGE": 40}
    cs.execute()
    assert content["NAME"] == "Bob"


def test_prepare_requires_mapping(content):
    cs = Changeset(content)
    with pytest.raises(PrepareError):
        cs.prepare(lambda changes: ["not", "a", "mapping"])


# ==================== ROLLBACK ====================

def test_rollback_always_pristine(content, validator):
    cs = Changeset(content, validator)
    cs.set("name", "")
    cs.set("age", 99)
    cs.rollback()
    assert cs.is_pristine
    assert cs.is_valid
    assert cs.get("age") == 30


def test_rollback_invalid_without_key(content, validator):
    cs = Changeset(content, validator)
    cs.set("age", 31)
    cs.set("name", "")
    cs.add_error("address.city", "bad city")
    cs.rollback_invalid()
    assert cs.is_valid
    assert cs.bare_changes == {"age": 31}


def test_rollback_invalid_with_key(content, validator):
    cs = Changeset(content, validator)
    cs.set("name", "")
    cs.add_error("age", "too old")
    cs.set("address.zip", "12345")
    cs.rollback_invalid("name")
    assert [e["key"] for e in cs.errors] == ["age"]
    # a key without an error keeps its change
    cs.rollback_invalid("address.zip")
    assert cs.bare_changes == {"address.zip": "12345"}


def test_rollback_property(content, validator):
    cs = Changeset(content, validator)
    cs.set("name", "")
    cs.set("age", 31)
    cs.rollback_property("name")
    cs.rollback_property("age")
    assert cs.is_valid
    assert cs.is_pristine


# ==================== MANUAL ERRORS ====================

def test_add_error_with_structured_payload(content):
    cs = Changeset(content)
    cs.set("name", "Bob")
    err = cs.add_error("name", {"value": "Bob", "validation": "taken"})
    assert err == Err("Bob", "taken")
    assert cs.get("name") == "Bob"
    assert cs.bare_changes == {}
    assert cs.error == {"name": {"value": "Bob", "validation": "taken"}}


def test_add_error_with_bare_reason_uses_resolved_value(content):
    cs = Changeset(content)
    err = cs.add_error("address.city", "not on the map")
    assert err == Err("Springfield", "not on the map")


@pytest.mark.parametrize("payload", [{"value": 1}, {"validation": "x"}])
def test_add_error_rejects_incomplete_payload(content, payload):
    cs = Changeset(content)
    with pytest.raises(ErrorPayloadError):
        cs.add_error("name", payload)


def test_push_errors_appends_and_normalises(content):
    cs = Changeset(content)
    cs.add_error("name", "too short")
    err = cs.push_errors("name", "no digits", "no symbols")
    assert err.validation == ["too short", "no digits", "no symbols"]
    assert err.value == "Al"


def test_push_errors_creates_entry(content):
    cs = Changeset(content)
    err = cs.push_errors("age", "must be even")
    assert err == Err(30, ["must be even"])
    assert cs.is_invalid


# ==================== CAST ====================

def test_cast_empty_list_keeps_every_change(content):
    """An empty allow-list is permissive on purpose: nothing is dropped."""
    cs = Changeset(content)
    cs.set("name", "Bob")
    cs.set("age", 1)
    cs.cast([])
    assert cs.bare_changes == {"name": "Bob", "age": 1}


def test_cast_drops_disallowed_keys():
    cs = Changeset({"a": 0, "b": 0})
    cs.set("a", 1)
    cs.set("b", 2)
    cs.cast(["a"])
    assert cs.bare_changes == {"a": 1}


def test_cast_requires_sequence(content):
    cs = Changeset(content)
    with pytest.raises(NotASequenceError):
        cs.cast("name")


def test_change_wrapper_is_immutable():
    change = Change(1)
    with pytest.raises(AttributeError):
        change.value = 2
