from __future__ import annotations

import pytest

from bomsync.models.dataset import ColumnRole, DatasetSnapshot
from bomsync.services.workspace import Workspace
from bomsync.tables.preprocess import PreprocessError, PreprocessOptions


@pytest.fixture()
def events():
    return []


@pytest.fixture()
def workspace(events) -> Workspace:
    ws = Workspace()
    ws.add_listener(lambda key, reason: events.append((key, reason)))
    return ws


def test_load_snapshot_normalizes_and_notifies(workspace, events, bom_a):
    snap = workspace.load_snapshot("a", bom_a, "a.csv", file_path="/tmp/a.csv")

    assert workspace.snapshot("a") is snap
    assert snap.column_order == ("col-0", "col-1")
    assert workspace.slot("a").file_name == "a.csv"
    assert workspace.slot("a").last_updated is not None
    assert events == [("a", "load")]
    assert workspace.any_loaded() and not workspace.both_loaded()


def test_set_column_role_records_explicit_edit(workspace, events, bom_a):
    workspace.load_snapshot("a", bom_a, "a.csv")

    assert workspace.set_column_role("a", "col-1", ColumnRole.MANUFACTURER) is True

    slot = workspace.slot("a")
    assert slot.explicit_roles == {"col-1": "manufacturer"}
    assert slot.column_roles == {"col-0": "ref", "col-1": "manufacturer"}
    assert events[-1] == ("a", "roles")


def test_set_column_role_none_means_ignore(workspace, bom_a):
    workspace.load_snapshot("a", bom_a, "a.csv")
    workspace.set_column_role("a", "col-1", None)
    assert workspace.slot("a").explicit_roles == {"col-1": "ignore"}


def test_set_column_role_unknown_column_is_noop(workspace, events, bom_a):
    workspace.load_snapshot("a", bom_a, "a.csv")
    events.clear()

    assert workspace.set_column_role("a", "col-9", "ref") is False
    assert workspace.set_column_role("b", "col-0", "ref") is False
    assert events == []


def test_set_column_role_rejects_unknown_role(workspace, bom_a):
    workspace.load_snapshot("a", bom_a, "a.csv")
    with pytest.raises(ValueError):
        workspace.set_column_role("a", "col-0", "quantity")


def test_reload_drops_role_edits(workspace, bom_a):
    workspace.load_snapshot("a", bom_a, "a.csv")
    workspace.set_column_role("a", "col-1", "ignore")
    workspace.load_snapshot("a", bom_a, "a.csv")
    assert workspace.slot("a").explicit_roles == {}


def test_replace_snapshot_keeps_role_edits(workspace, events, bom_a, bom_b):
    workspace.load_snapshot("a", bom_a, "a.csv")
    workspace.set_column_role("a", "col-1", "manufacturer")

    workspace.replace_snapshot("a", bom_b)

    assert workspace.slot("a").column_roles["col-1"] == "manufacturer"
    assert workspace.slot("a").file_name == "a.csv"
    assert events[-1] == ("a", "replace")


def test_restore_and_clear_use_restore_reason(workspace, events, bom_b):
    workspace.restore("b", bom_b, {"col-1": "ignore", "col-0": "bogus"}, "b.csv", "2025-01-01T00:00:00.000Z")

    slot = workspace.slot("b")
    assert slot.explicit_roles == {"col-1": "ignore"}
    assert slot.last_updated == "2025-01-01T00:00:00.000Z"
    assert slot.file_path is None

    workspace.clear("b")
    assert workspace.snapshot("b") is None
    assert events == [("b", "restore"), ("b", "restore")]


def test_restore_none_empties_slot(workspace, bom_a):
    workspace.load_snapshot("a", bom_a, "a.csv")
    workspace.restore("a", None, {"col-0": "ref"}, "a.csv")
    slot = workspace.slot("a")
    assert slot.snapshot is None
    assert slot.file_name is None
    assert slot.explicit_roles == {}


def test_file_name_hint_only_for_loaded_slots(workspace, events, bom_a):
    workspace.set_file_name_hint("a", "ignored")
    assert workspace.slot("a").file_name is None

    workspace.load_snapshot("a", bom_a, "a.csv")
    workspace.set_file_name_hint("a", "Renamed")
    assert workspace.slot("a").file_name == "Renamed"
    assert events[-1] == ("a", "restore")


def test_set_loading_does_not_notify(workspace, events):
    workspace.set_loading("a", True)
    assert workspace.slot("a").loading is True
    assert events == []


def test_unknown_slot_key_raises(workspace):
    with pytest.raises(KeyError):
        workspace.slot("c")


class TestApplyPreprocess:
    def test_rows_are_processed_and_role_edits_kept(self, workspace, events):
        ranged = DatasetSnapshot.from_rows(
            [["C1-C3", "GRM"], ["R1", ""]], headers=["Ref", "Part_No"], roles={"ref": ["col-0"]}
        )
        workspace.load_snapshot("a", ranged, "a.csv")
        workspace.set_column_role("a", "col-1", "part_no")

        snap = workspace.apply_preprocess("a", PreprocessOptions(expand_ref=True, fill_blank=True))

        assert workspace.snapshot("a") is snap
        assert snap.rows == (("C1", "GRM"), ("C2", "GRM"), ("C3", "GRM"), ("R1", "GRM"))
        assert workspace.slot("a").explicit_roles == {"col-1": "part_no"}
        assert snap.column_roles["part_no"] == ("col-1",)
        assert events[-1] == ("a", "preprocess")

    def test_empty_slot_or_no_options_is_a_noop(self, workspace, events, bom_a):
        assert workspace.apply_preprocess("b", PreprocessOptions(cleanse=True)) is None
        workspace.load_snapshot("a", bom_a, "a.csv")
        before = workspace.snapshot("a")

        assert workspace.apply_preprocess("a", PreprocessOptions()) is before
        assert events == [("a", "load")]

    def test_rejected_range_leaves_slot_untouched(self, workspace, events):
        bad = DatasetSnapshot.from_rows([["C5-C1"]], headers=["Ref"], roles={"ref": ["col-0"]})
        workspace.load_snapshot("a", bad, "a.csv")
        before = workspace.snapshot("a")

        with pytest.raises(PreprocessError):
            workspace.apply_preprocess("a", PreprocessOptions(expand_ref=True))

        assert workspace.snapshot("a") is before
        assert events == [("a", "load")]
