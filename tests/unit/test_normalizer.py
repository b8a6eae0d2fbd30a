from __future__ import annotations

import pytest

from bomsync.models.dataset import ColumnMeta, ColumnRole, DatasetSnapshot
from bomsync.tables.normalizer import (
    canonical_label,
    display_name,
    normalize_snapshot,
    resolve_columns,
    role_assignments,
    set_column_role,
)


def _raw(rows, headers, **evidence) -> DatasetSnapshot:
    return DatasetSnapshot.from_rows(rows, headers=headers).evolve(**evidence)


def test_role_columns_are_ordered_first():
    snap = _raw(
        [["1", "R1", "P1"]],
        ["Qty", "Designator", "MPN"],
        guessed_roles={"col-1": "ref", "col-2": "part_no"},
    )
    out = normalize_snapshot(snap)

    assert out.column_order == ("col-1", "col-2", "col-0")
    assert dict(out.column_roles) == {"ref": ("col-1",), "part_no": ("col-2",)}
    # 位置は変えない (descriptor i <-> cell i)
    assert out.column_ids == ["col-0", "col-1", "col-2"]
    assert out.rows == (("1", "R1", "P1"),)


def test_ref_part_manufacturer_group_order():
    snap = _raw(
        [["a", "b", "c", "d"]],
        ["Maker", "MPN", "Note", "Ref"],
        guessed_roles={"col-0": "manufacturer", "col-1": "part_no", "col-3": "ref"},
    )
    assert normalize_snapshot(snap).column_order == ("col-3", "col-1", "col-0", "col-2")


def test_explicit_edit_beats_name_guess():
    snap = _raw([["R1"]], ["Ref"], guessed_roles={"col-0": "ref"})
    out = normalize_snapshot(snap, {"col-0": "part_no"})

    assert dict(out.column_roles) == {"part_no": ("col-0",)}
    assert role_assignments(out) == {"col-0": "part_no"}


def test_snapshot_role_map_beats_guesses():
    snap = _raw(
        [["x", "y"]],
        ["A", "B"],
        column_roles={"ref": ("col-1",)},
        guessed_roles={"col-1": "manufacturer"},
    )
    out = normalize_snapshot(snap)
    assert out.column_roles == {"ref": ("col-1",)}
    assert role_assignments(out) == {"col-1": "ref"}


def test_guessed_column_index_does_not_override_known_column():
    snap = _raw(
        [["x", "y"]],
        ["A", "B"],
        guessed_roles={"col-0": "manufacturer"},
        guessed_columns={"ref": 0, "part_no": 1},
    )
    # col-0 は名前推定で確定済み -> index 推定は col-1 にだけ効く
    assert role_assignments(normalize_snapshot(snap)) == {"col-1": "part_no", "col-0": "manufacturer"}


def test_guessed_column_index_used_as_last_resort():
    snap = _raw([["a", "b", "c"]], ["A", "B", "C"], guessed_columns={"part_no": 2})
    out = normalize_snapshot(snap)
    assert out.column_roles == {"part_no": ("col-2",)}
    assert out.column_order[0] == "col-2"


def test_explicit_edit_for_unknown_column_is_dropped():
    snap = _raw([["a"]], ["A"])
    out = normalize_snapshot(snap, {"missing": "ref"})
    assert out.column_roles == {}
    assert out.column_ids == ["col-0"]


def test_normalization_is_idempotent():
    snap = _raw(
        [["1", "R1", "", "ACME"], ["2", "R2", "P2"]],
        ["Qty", "", "Column 3", "Vendor"],
        guessed_roles={"col-1": "ref", "col-3": "manufacturer"},
        guessed_columns={"part_no": 2},
    )
    explicit = {"col-0": "ignore"}
    once = normalize_snapshot(snap, explicit)
    twice = normalize_snapshot(once, explicit)

    assert twice.column_order == once.column_order
    assert [c.name for c in twice.columns] == [c.name for c in once.columns]
    assert twice == once


def test_adding_ignore_role_keeps_existing_order():
    snap = _raw(
        [["a", "b", "R1", "d"]],
        ["A", "B", "Ref", "D"],
        guessed_roles={"col-2": "ref"},
    )
    before = normalize_snapshot(snap)
    after = set_column_role(before, "col-1", None)

    assert before.column_order == ("col-2", "col-0", "col-1", "col-3")
    assert after.column_order == before.column_order
    assert after.column_roles["ignore"] == ("col-1",)


def test_set_column_role_moves_column_between_roles():
    snap = normalize_snapshot(_raw([["R1", "P1"]], ["Ref", "MPN"], guessed_roles={"col-0": "ref"}))
    out = set_column_role(snap, "col-0", ColumnRole.PART_NO)

    assert out.column_roles == {"part_no": ("col-0",)}
    assert snap.column_roles == {"ref": ("col-0",)}  # 元のスナップショットは不変


def test_set_column_role_on_unknown_column_is_noop():
    snap = normalize_snapshot(_raw([["R1"]], ["Ref"]))
    assert set_column_role(snap, "nope", "ref") is snap


def test_placeholder_and_blank_names_get_role_labels():
    snap = _raw(
        [["R1", "P1", "M1", "x"]],
        ["", "Column 2", "Maker", "column 4"],
        guessed_roles={"col-0": "ref", "col-1": "part_no", "col-2": "manufacturer"},
    )
    names = {c.id: c.name for c in normalize_snapshot(snap).columns}
    assert names == {"col-0": "Ref", "col-1": "Part_No", "col-2": "Maker", "col-3": "column 4"}


def test_short_rows_are_padded_and_synthetic_columns_added():
    snap = DatasetSnapshot(
        rows=(("a", "b", "c"), ("d",)),
        columns=(ColumnMeta("col-0", "Ref"),),
        column_roles={"ref": ("col-0",)},
    )
    out = normalize_snapshot(snap)

    assert out.column_ids == ["col-0", "col-1", "col-2"]
    assert [c.name for c in out.columns] == ["Ref", "Column 2", "Column 3"]
    assert out.rows == (("a", "b", "c"), ("d", "", ""))
    assert len(out.column_order) >= max(len(r) for r in snap.rows)
    assert out.row_numbers == (1, 2)


def test_role_evidence_without_descriptor_gets_one():
    snap = DatasetSnapshot(
        rows=(("x",),),
        columns=(ColumnMeta("col-0", "Qty"),),
        column_order=("col-0",),
        column_roles={"part_no": ("mpn",)},
    )
    out = normalize_snapshot(snap)

    assert out.column_ids == ["col-0", "mpn"]
    assert out.column_order == ("mpn", "col-0")
    assert out.columns[1].name == "Part_No"
    assert out.rows == (("x", ""),)


def test_every_role_id_exists_in_descriptors():
    snap = _raw(
        [["a", "b"]],
        ["A", "B"],
        column_roles={"ref": ("ghost",), "ignore": ("col-1",)},
    )
    out = normalize_snapshot(snap)
    ids = set(out.column_ids)
    for role_ids in out.column_roles.values():
        assert set(role_ids) <= ids
    assert sorted(out.column_order) == sorted(ids)


def test_empty_snapshot_normalizes_without_error():
    out = normalize_snapshot(DatasetSnapshot())
    assert out.rows == ()
    assert out.columns == ()
    assert out.column_order == ()


def test_header_only_snapshot_gets_descriptors():
    out = normalize_snapshot(DatasetSnapshot(headers=("Ref", "Qty")))
    assert out.column_ids == ["col-0", "col-1"]
    assert out.rows == ()


def test_resolve_columns_uses_order_ids_when_descriptors_missing():
    snap = DatasetSnapshot(rows=(("R1", "P"),), column_order=("ref", "pn"), headers=("Ref", "PN"))
    cols = resolve_columns(snap)
    assert [(c.id, c.name) for c in cols] == [("ref", "Ref"), ("pn", "PN")]


def test_row_numbers_padded_to_row_count():
    snap = DatasetSnapshot(rows=(("a",), ("b",), ("c",)), row_numbers=(10,))
    assert normalize_snapshot(snap).row_numbers == (10, 2, 3)


@pytest.mark.parametrize(
    "role,label",
    [("ref", "Ref"), (ColumnRole.PART_NO, "Part_No"), ("manufacturer", "Manufacturer"),
     ("ignore", None), ("bogus", None)],
)
def test_canonical_label(role, label):
    assert canonical_label(role) == label


class TestColumnsImpliedByLaterRows:
    def test_edit_on_column_only_in_a_later_row(self):
        raw = DatasetSnapshot(rows=(("R1",), ("R2", "100")))
        edits = {"col-1": "part_no"}

        once = normalize_snapshot(raw, edits)
        twice = normalize_snapshot(once, edits)

        assert once.column_roles == {"part_no": ("col-1",)}
        assert once.column_order == ("col-1", "col-0")
        assert once.rows == (("R1", ""), ("R2", "100"))
        assert twice == once

    def test_edit_on_evidence_only_column_beats_its_guess(self):
        raw = DatasetSnapshot(rows=(("x",),), guessed_roles={"mpn": "ref"})

        out = normalize_snapshot(raw, {"mpn": "part_no"})

        assert out.column_ids == ["col-0", "mpn"]
        assert out.column_roles == {"part_no": ("mpn",)}
        assert normalize_snapshot(out, {"mpn": "part_no"}) == out

    def test_resolve_columns_covers_widest_row(self):
        raw = DatasetSnapshot(rows=(("a",), ("b", "c", "d")), headers=("H",))
        assert [(c.id, c.name) for c in resolve_columns(raw)] == [
            ("col-0", "H"), ("col-1", ""), ("col-2", ""),
        ]


class TestRoleLabelsFollowRoleChanges:
    def test_blank_header_is_relabelled(self):
        snap = normalize_snapshot(_raw([["R1", "x"]], ["Ref", ""], guessed_roles={"col-0": "ref"}))

        as_part = set_column_role(snap, "col-1", "part_no")
        as_maker = set_column_role(as_part, "col-1", "manufacturer")
        cleared = set_column_role(as_maker, "col-1", None)

        assert as_part.columns[1].name == "Part_No"
        assert as_maker.columns[1].name == "Manufacturer"
        assert cleared.columns[1].name == "Column 2"
        # 元のヘッダは保持される
        assert cleared.headers == ("Ref", "")

    def test_placeholder_header_is_relabelled(self):
        snap = normalize_snapshot(_raw([["R1", "x"]], ["Ref", "Column 2"]))

        out = set_column_role(set_column_role(snap, "col-1", "part_no"), "col-1", "manufacturer")

        assert out.columns[1].name == "Manufacturer"
        assert out.headers[1] == "Column 2"

    def test_meaningful_header_is_never_relabelled(self):
        snap = normalize_snapshot(_raw([["R1", "x"]], ["Ref", "MPN"]))
        assert set_column_role(snap, "col-1", "manufacturer").columns[1].name == "MPN"


@pytest.mark.parametrize(
    "source,role,expected",
    [("", ColumnRole.REF, "Ref"), ("column 7", ColumnRole.PART_NO, "Part_No"),
     ("", None, "Column 3"), ("Column 9", ColumnRole.IGNORE, "Column 9"), ("Qty", ColumnRole.REF, "Qty")],
)
def test_display_name(source, role, expected):
    assert display_name(source, role, 2) == expected
