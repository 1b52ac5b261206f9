"""Unit tests for modifier application."""

import pytest

from observable_collection import InvalidModifierError
from observable_collection.local.modifier import apply_modifier, modified_fields, upsert_seed


@pytest.mark.unit
@pytest.mark.modifier
def test_set_and_unset_dotted_paths():
    """$set creates intermediate documents and $unset removes fields."""
    doc = {"_id": "a", "profile": {"name": "Ada"}, "old": 1}

    result = apply_modifier(doc, {"$set": {"profile.city": "London", "n": 1}, "$unset": {"old": ""}})

    assert result == {"_id": "a", "profile": {"name": "Ada", "city": "London"}, "n": 1}
    assert doc == {"_id": "a", "profile": {"name": "Ada"}, "old": 1}


@pytest.mark.unit
@pytest.mark.modifier
def test_inc_starts_missing_fields_at_zero():
    """$inc adds to existing numbers and treats missing fields as 0."""
    result = apply_modifier({"_id": "a", "n": 2}, {"$inc": {"n": 3, "m": -1}})

    assert result["n"] == 5
    assert result["m"] == -1


@pytest.mark.unit
@pytest.mark.modifier
def test_array_operators():
    """$push, $addToSet and $pull edit arrays in place of the copy."""
    doc = {"_id": "a", "tags": ["x"], "scores": [1, 5, 9]}

    result = apply_modifier(
        doc,
        {
            "$push": {"tags": {"$each": ["y", "x"]}},
            "$addToSet": {"labels": "new"},
            "$pull": {"scores": {"$gte": 5}},
        },
    )

    assert result["tags"] == ["x", "y", "x"]
    assert result["labels"] == ["new"]
    assert result["scores"] == [1]


@pytest.mark.unit
@pytest.mark.modifier
def test_add_to_set_skips_existing_values():
    """$addToSet never duplicates an element."""
    result = apply_modifier({"_id": "a", "tags": ["x"]}, {"$addToSet": {"tags": {"$each": ["x", "y"]}}})

    assert result["tags"] == ["x", "y"]


@pytest.mark.unit
@pytest.mark.modifier
def test_replacement_keeps_id():
    """A plain document replaces everything but the _id."""
    result = apply_modifier({"_id": "a", "old": 1}, {"new": 2})

    assert result == {"_id": "a", "new": 2}


@pytest.mark.unit
@pytest.mark.modifier
def test_set_on_insert_only_on_insert():
    """$setOnInsert is ignored for plain updates."""
    modifier = {"$setOnInsert": {"created": True}, "$set": {"v": 1}}

    assert "created" not in apply_modifier({"_id": "a"}, modifier)
    assert apply_modifier({"_id": "a"}, modifier, is_insert=True)["created"] is True


@pytest.mark.unit
@pytest.mark.modifier
@pytest.mark.parametrize(
    "modifier",
    [
        {"$rename": {"a": "b"}},
        {"$set": {"a": 1}, "b": 2},
        {"$inc": {"n": "1"}},
        {"$inc": {"name": 1}},
        {"$push": {"name": 1}},
        {"$set": {"_id": "other"}},
        {"_id": "other", "v": 1},
        {"$set": ["a"]},
    ],
)
def test_invalid_modifiers_rejected(modifier):
    """Bad modifiers raise InvalidModifierError."""
    with pytest.raises(InvalidModifierError):
        apply_modifier({"_id": "a", "name": "Ada"}, modifier)


@pytest.mark.unit
@pytest.mark.modifier
def test_modified_fields():
    """modified_fields lists the top-level fields an update touches."""
    assert modified_fields({"$set": {"a.b": 1, "c": 2}, "$inc": {"a.d": 1}}) == ["a", "c"]
    assert modified_fields({"_id": "x", "v": 1}) == ["v"]


@pytest.mark.unit
@pytest.mark.modifier
def test_upsert_seed_from_selector_and_modifier():
    """The inserted upsert document merges selector equality and the modifier."""
    seed = upsert_seed({"kind": "a", "n": {"$gt": 1}}, {"$set": {"v": 1}, "$setOnInsert": {"new": True}})

    assert seed == {"kind": "a", "v": 1, "new": True}


@pytest.mark.unit
@pytest.mark.modifier
def test_upsert_seed_with_replacement_keeps_selector_id():
    """A replacement upsert keeps only the selector's _id."""
    assert upsert_seed({"_id": "z", "kind": "a"}, {"v": 2}) == {"_id": "z", "v": 2}
