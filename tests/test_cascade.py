"""Tests for the per-row create/update cascade and existence matching."""

from __future__ import annotations

import pytest

from relbatch import (CallbackDelete, ConditionDelete, ValidationAggregateError,
                      check_exist, create_record, find_exists, insert_many,
                      record_spec_from_table, update_record)

from .conftest import ParentRow, children, fetch, parents


class TestCreateRecord:
    def test_children_get_parent_key(self, db, parent_spec) -> None:
        result = create_record(db, parent_spec, {"title": "p", "children": [{"x": 1}]})

        parent_id = result["id"]
        assert isinstance(parent_id, int)
        assert result["title"] == "p"
        assert len(result["children"]) == 1
        child = result["children"][0]
        assert child["x"] == 1
        assert child["parent_id"] == parent_id
        assert fetch(db, "SELECT parent_id, x FROM children") == [{"parent_id": parent_id, "x": 1}]

    def test_single_child_mapping(self, db, parent_spec) -> None:
        result = create_record(db, parent_spec, {"title": "p", "children": {"x": 2}})
        assert [c["x"] for c in result["children"]] == [2]

    def test_absent_relation_is_not_in_result(self, db, parent_spec) -> None:
        result = create_record(db, parent_spec, {"title": "p"})
        assert "children" not in result

    def test_validation_error(self, db, parent_spec) -> None:
        with pytest.raises(ValidationAggregateError, match="title"):
            create_record(db, parent_spec, {"title": ""})
        assert fetch(db, "SELECT id FROM parents") == []


class TestFindExists:
    def test_round_trip(self, db, parent_spec) -> None:
        created = create_record(db, parent_spec, {"title": "x"})
        rows = find_exists(db, parent_spec, [{"id": created["id"]}])
        assert len(rows) == 1
        assert rows[0]["title"] == "x"

    def test_candidates_without_keys_match_nothing(self, db, parent_spec) -> None:
        create_record(db, parent_spec, {"title": "x"})
        assert find_exists(db, parent_spec, [{"title": "x"}]) == []

    def test_composite_key_needs_every_column(self, db, line_spec) -> None:
        insert_many(db, line_spec, [{"order_id": 1, "line": 1}, {"order_id": 1, "line": 2}])
        assert find_exists(db, line_spec, [{"order_id": 1}]) == []
        rows = find_exists(db, line_spec, [{"order_id": 1, "line": 2}])
        assert [(r["order_id"], r["line"]) for r in rows] == [(1, 2)]


class TestCheckExist:
    existing = [{"id": 1, "title": "a"}, {"id": 2, "title": "b"}]

    def test_empty_existing_never_matches(self) -> None:
        assert check_exist({"id": 1}, [], ["id"]) is None

    def test_empty_key_columns_never_match(self) -> None:
        assert check_exist({"id": 1}, self.existing, []) is None

    def test_first_full_match(self) -> None:
        assert check_exist({"id": 2, "title": "new"}, self.existing, ["id"]) == {"id": 2, "title": "b"}

    def test_every_key_must_match(self) -> None:
        assert check_exist({"id": 2, "title": "a"}, self.existing, ["id", "title"]) is None

    def test_missing_key_in_row(self) -> None:
        assert check_exist({"title": "a"}, self.existing, ["id"]) is None


class TestUpdateRecord:
    def test_matched_row_is_updated(self, db, parent_spec) -> None:
        created = create_record(db, parent_spec, {"title": "old", "score": 1})
        existing = find_exists(db, parent_spec, [{"id": created["id"]}])[0]

        result = update_record(db, parent_spec, {"id": created["id"], "title": "new"}, existing)

        assert result["title"] == "new"
        assert result["score"] == 1
        assert fetch(db, "SELECT id, title, score FROM parents") == [
            {"id": created["id"], "title": "new", "score": 1}
        ]

    def test_unmatched_row_is_inserted(self, db, parent_spec) -> None:
        result = update_record(db, parent_spec, {"title": "fresh"}, None)
        assert fetch(db, "SELECT id, title FROM parents") == [{"id": result["id"], "title": "fresh"}]

    def test_children_are_matched_or_created(self, db, parent_spec) -> None:
        created = create_record(db, parent_spec, {"title": "p", "children": [{"x": 1}]})
        child_id = created["children"][0]["id"]
        existing = find_exists(db, parent_spec, [{"id": created["id"]}])[0]

        result = update_record(
            db,
            parent_spec,
            {"id": created["id"], "title": "p", "children": [{"id": child_id, "x": 5}, {"x": 7}]},
            existing,
        )

        assert [c["x"] for c in result["children"]] == [5, 7]
        assert fetch(db, "SELECT id, parent_id, x FROM children ORDER BY x") == [
            {"id": child_id, "parent_id": created["id"], "x": 5},
            {"id": result["children"][1]["id"], "parent_id": created["id"], "x": 7},
        ]

    def test_delete_policy_runs_before_matching(self, db, child_spec) -> None:
        seen = []
        spec = record_spec_from_table(parents, validator=ParentRow).with_relation(
            "children",
            child_spec,
            {"parent_id": "id"},
            on_delete=CallbackDelete(lambda target, rows: seen.append([dict(r) for r in rows])),
        )
        update_record(db, spec, {"title": "p", "children": [{"x": 1}]}, None)
        assert seen == [[{"x": 1}]]

    def test_condition_policy_clears_children_before_matching(self, db, child_spec) -> None:
        spec = record_spec_from_table(parents, validator=ParentRow).with_relation(
            "children",
            child_spec,
            {"parent_id": "id"},
            on_delete=ConditionDelete({"parent_id": 1}),
        )
        db.connection.execute(parents.insert().values(id=1, title="p"))
        db.connection.execute(children.insert().values(id=7, parent_id=1, x=9))
        db.connection.execute(children.insert().values(id=8, parent_id=2, x=9))
        existing = fetch(db, "SELECT * FROM parents WHERE id = 1")[0]

        result = update_record(
            db, spec, {"id": 1, "title": "p", "children": [{"id": 7, "x": 2}]}, existing
        )

        # The stale row is gone before matching, so the child is inserted afresh.
        assert result["children"] == [{"id": 7, "x": 2, "parent_id": 1}]
        assert fetch(db, "SELECT id, parent_id, x FROM children ORDER BY id") == [
            {"id": 7, "parent_id": 1, "x": 2},
            {"id": 8, "parent_id": 2, "x": 9},
        ]
