"""Unit tests for the in-memory LocalCollection host."""

import asyncio
import re

import pytest

from observable_collection import (
    CollectionError,
    ConfigError,
    DuplicateKeyError,
    InvalidDocumentError,
    InvalidModifierError,
    InvalidRulesError,
    InvalidSelectorError,
    LocalCollection,
    UpsertResult,
    autorun,
)
from observable_collection.local.ids import UNMISTAKABLE_CHARS


def seed(collection, *docs):
    return [collection.insert(doc) for doc in docs]


@pytest.mark.unit
@pytest.mark.local
class TestLocalInsert:
    """Inserting documents."""

    def test_generates_string_ids(self, local):
        """Default ids are 17 characters from the unmistakable alphabet."""
        doc_id = local.insert({})

        assert len(doc_id) == 17
        assert set(doc_id) <= set(UNMISTAKABLE_CHARS)

    def test_generates_mongo_ids(self):
        """The MONGO strategy generates 24 hex characters."""
        doc_id = LocalCollection(id_generation="MONGO").insert({})

        assert re.fullmatch(r"[0-9a-f]{24}", doc_id)

    def test_unknown_id_strategy_rejected(self):
        """An unrecognised id strategy is a configuration error."""
        with pytest.raises(ConfigError):
            LocalCollection(id_generation="UUID")

    def test_keeps_supplied_id(self, local):
        """A document that brings its own _id keeps it."""
        assert local.insert({"_id": "mine"}) == "mine"

    def test_duplicate_id_rejected(self, local):
        """Inserting the same _id twice fails."""
        local.insert({"_id": "x"})

        with pytest.raises(DuplicateKeyError):
            local.insert({"_id": "x"})

    def test_non_mapping_rejected(self, local):
        """Only mappings can be stored."""
        with pytest.raises(InvalidDocumentError):
            local.insert(["not", "a", "doc"])

    def test_inserted_document_is_copied(self, local):
        """Changing the caller's dict afterwards does not change the store."""
        doc = {"tags": ["a"]}
        doc_id = local.insert(doc)
        doc["tags"].append("b")

        assert local.find_one(doc_id)["tags"] == ["a"]


@pytest.mark.unit
@pytest.mark.local
class TestLocalQueries:
    """find / find_one and their options."""

    def test_find_sort_skip_limit(self, local):
        """Sort, skip and limit apply in that order."""
        seed(local, *({"_id": str(n), "n": n} for n in [3, 1, 4, 1.5, 9]))

        docs = local.find({}, {"sort": {"n": -1}, "skip": 1, "limit": 2}).fetch()

        assert [doc["n"] for doc in docs] == [4, 3]

    def test_find_preserves_insertion_order(self, local):
        """Without sort, documents come back in insertion order."""
        seed(local, {"_id": "b"}, {"_id": "a"}, {"_id": "c"})

        assert [doc["_id"] for doc in local.find().fetch()] == ["b", "a", "c"]

    def test_projection_include_and_exclude(self, local):
        """fields selects or drops fields, keeping _id unless excluded."""
        local.insert({"_id": "a", "x": 1, "y": 2})

        assert local.find_one("a", {"fields": {"x": 1}}) == {"_id": "a", "x": 1}
        assert local.find_one("a", {"fields": {"x": 0}}) == {"_id": "a", "y": 2}
        assert local.find_one("a", {"fields": {"x": 1, "_id": 0}}) == {"x": 1}

    def test_projection_cannot_mix_modes(self, local):
        """Inclusion and exclusion cannot be combined."""
        with pytest.raises(InvalidSelectorError):
            local.find({}, {"fields": {"x": 1, "y": 0}})

    def test_collection_transform_and_override(self):
        """The collection transform applies unless find overrides or disables it."""
        collection = LocalCollection(transform=lambda doc: doc["v"])
        collection.insert({"v": 7})

        assert collection.find().fetch() == [7]
        assert collection.find({}, {"transform": lambda doc: -doc["v"]}).fetch() == [-7]
        assert collection.find({}, {"transform": None}).fetch()[0]["v"] == 7

    def test_find_one_returns_none_when_empty(self, local):
        """No match means None."""
        assert local.find_one({"v": 1}) is None

    def test_fetched_documents_are_copies(self, local):
        """Mutating a fetched document leaves the store alone."""
        doc_id = local.insert({"v": 1})
        local.find_one(doc_id)["v"] = 99

        assert local.find_one(doc_id)["v"] == 1

    def test_count(self, local):
        """count() honours the selector."""
        seed(local, {"v": 1}, {"v": 1}, {"v": 2})

        assert local.find({"v": 1}).count() == 2

    def test_find_one_async(self, local):
        """The async lookup returns the same document."""
        doc_id = local.insert({"v": 1})

        assert asyncio.run(local.find_one_async(doc_id))["v"] == 1


@pytest.mark.unit
@pytest.mark.local
class TestLocalMutations:
    """remove / update / upsert."""

    def test_remove_returns_count(self, local):
        """remove deletes every match."""
        seed(local, {"v": 1}, {"v": 1}, {"v": 2})

        assert local.remove({"v": 1}) == 2
        assert len(local) == 1

    def test_update_single_by_default(self, local):
        """Without multi only the first match changes."""
        seed(local, {"v": 1}, {"v": 1})

        assert local.update({"v": 1}, {"$set": {"seen": True}}) == 1
        assert local.find({"seen": True}).count() == 1

    def test_update_multi(self, local):
        """multi updates every match."""
        seed(local, {"v": 1}, {"v": 1}, {"v": 1}, {"v": 2})

        assert local.update({"v": 1}, {"$inc": {"n": 1}}, {"multi": True}) == 3

    def test_failed_modifier_changes_nothing(self, local):
        """An update that fails on any document leaves all documents untouched."""
        seed(local, {"_id": "a", "n": 1}, {"_id": "b", "n": "text"})

        with pytest.raises(InvalidModifierError):
            local.update({}, {"$inc": {"n": 1}}, {"multi": True})

        assert local.find_one("a")["n"] == 1

    def test_upsert_updates_existing(self, local):
        """upsert on a match behaves like update."""
        local.insert({"_id": "a", "v": 1})

        assert local.upsert({"_id": "a"}, {"$set": {"v": 2}}) == UpsertResult(number_affected=1)
        assert local.find_one("a")["v"] == 2

    def test_upsert_inserts_when_missing(self, local):
        """upsert with no match inserts a seeded document and reports its id."""
        result = local.upsert({"kind": "x"}, {"$set": {"v": 1}})

        assert result.number_affected == 1
        assert local.find_one(result.inserted_id) == {"_id": result.inserted_id, "kind": "x", "v": 1}

    def test_update_with_upsert_option(self, local):
        """update(..., {"upsert": True}) inserts and returns 1."""
        assert local.update({"_id": "new"}, {"$set": {"v": 1}}, {"upsert": True}) == 1
        assert local.find_one("new") == {"_id": "new", "v": 1}


@pytest.mark.unit
@pytest.mark.local
class TestLocalReactivity:
    """Cursors and invalidation."""

    def test_mutations_invalidate_reactive_cursor(self, local):
        """Insert, update and remove each rerun computations that fetched."""
        snapshots = []
        autorun(lambda c: snapshots.append(local.find().count()))

        doc_id = local.insert({"v": 1})
        local.update(doc_id, {"$set": {"v": 2}})
        local.remove(doc_id)

        assert snapshots == [0, 1, 1, 0]

    def test_noop_mutations_do_not_invalidate(self, local):
        """Mutations that change nothing leave computations alone."""
        runs = []
        autorun(lambda c: runs.append(local.find().fetch()))

        local.remove({"v": 1})
        local.update({"v": 1}, {"$set": {"w": 1}})

        assert len(runs) == 1

    def test_non_reactive_cursor_is_not_tracked(self, local):
        """reactive=False fetches do not register a dependency."""
        runs = []
        autorun(lambda c: runs.append(local.find({}, {"reactive": False}).fetch()))

        local.insert({"v": 1})

        assert len(runs) == 1


@pytest.mark.unit
@pytest.mark.local
class TestLocalRules:
    """allow / deny registration and checks."""

    def test_allow_and_deny_return_true(self, local):
        """Valid rules are accepted."""
        rules = {"insert": lambda user_id, doc: True, "fetch": ["owner"], "transform": None}

        assert local.allow(rules) is True
        assert local.deny(rules) is True

    @pytest.mark.parametrize(
        "rules",
        [
            {"upsert": lambda *args: True},
            {"insert": True},
            {"fetch": "owner"},
            {"transform": "upper"},
            ["insert"],
        ],
    )
    def test_malformed_rules_rejected(self, local, rules):
        """Unknown keys and wrong value types raise InvalidRulesError."""
        with pytest.raises(InvalidRulesError):
            local.allow(rules)

    def test_no_allow_rule_means_denied(self, local):
        """Without any allow rule every write is rejected."""
        assert local.is_permitted("insert", "u1", {"owner": "u1"}) is False

    def test_deny_overrides_allow(self, local):
        """A deny rule returning True wins over allow rules."""
        local.allow({"insert": lambda user_id, doc: True})
        local.deny({"insert": lambda user_id, doc: doc.get("locked", False)})

        assert local.is_permitted("insert", "u1", {"locked": False}) is True
        assert local.is_permitted("insert", "u1", {"locked": True}) is False

    def test_update_rule_receives_fields_and_modifier(self, local):
        """Update predicates get the touched top-level fields and the modifier."""
        seen = []

        def allow_update(user_id, doc, field_names, modifier):
            seen.append((user_id, field_names, modifier))
            return True

        local.allow({"update": allow_update})
        modifier = {"$set": {"title": "x", "meta.a": 1}}

        assert local.is_permitted("update", "u1", {"_id": "a"}, modifier=modifier)
        assert seen == [("u1", ["title", "meta"], modifier)]

    def test_rule_transform_applies_to_doc(self, local):
        """A rule's transform shapes the document its predicate sees."""
        local.allow({"remove": lambda user_id, owner: owner == user_id, "transform": lambda doc: doc["owner"]})

        assert local.is_permitted("remove", "u1", {"owner": "u1"})
        assert not local.is_permitted("remove", "u2", {"owner": "u1"})


@pytest.mark.unit
@pytest.mark.local
def test_local_raw_handles_unavailable(local):
    """Local collections have no driver handles."""
    with pytest.raises(CollectionError):
        local.raw_collection()
    with pytest.raises(CollectionError):
        local.raw_database()
