from __future__ import annotations

import json
import re
from pathlib import Path

import pandas as pd
import pytest

from bomsync.cli import main as cli_main

"""CLI runs against real CSV files and a directory-backed project store."""

PROJECT_ID = re.compile(r"^project-\d+$", re.MULTILINE)


@pytest.fixture()
def bom_files(write_csv):
    a = write_csv("rev_a.csv", "Ref,Part_No,Value\nR1,100,10k\nR2,200,1k\n")
    b = write_csv("rev_b.csv", "Ref,Part_No,Value\nR1,100,10k\nR3,300,4k\n")
    return a, b


def _stored_projects(workdir: Path, store: str = "store") -> list[dict]:
    return json.loads((workdir / store / "bomsync_projects.json").read_text(encoding="utf-8"))


def test_replace_persists_project_and_writes_report(write_config, bom_files, temp_workdir: Path, capsys):
    a, b = bom_files
    out = temp_workdir / "out" / "merged.csv"

    code = cli_main(["replace", str(a), str(b), "--output", str(out), "--project-name", "Rev B"])

    stdout = capsys.readouterr().out
    assert code == 2
    assert "SUMMARY mode=replacement rows=3 added=1 removed=1 modified=0 unchanged=1 other=0" in stdout
    project_id = PROJECT_ID.search(stdout).group(0)

    frame = pd.read_csv(out, dtype=str, keep_default_na=False, encoding="utf-8-sig")
    assert frame["status"].tolist() == ["unchanged", "removed", "added"]
    assert frame["Ref"].tolist() == ["R1", "R2", "R3"]

    stored = _stored_projects(temp_workdir)
    assert [p["id"] for p in stored] == [project_id]
    assert stored[0]["name"] == "Rev B"
    assert [row[0] for row in stored[0]["data"]["bomA"]["rows"]] == ["R1", "R2", "R3"]
    assert stored[0]["data"]["fileNameB"] == "rev_b.csv"


def test_compare_writes_report_without_persisting(write_config, bom_files, temp_workdir: Path):
    a, b = bom_files
    report = temp_workdir / "report.csv"

    assert cli_main(["compare", str(a), str(b), "--report", str(report)]) == 2

    frame = pd.read_csv(report, dtype=str, keep_default_na=False, encoding="utf-8-sig")
    assert frame["ref"].tolist() == ["R1", "R2", "R3"]
    assert not (temp_workdir / "store").exists()


def test_project_management_commands(write_config, temp_workdir: Path, capsys):
    assert cli_main(["projects", "new", "--name", "Main board"]) == 0
    project_id = PROJECT_ID.search(capsys.readouterr().out).group(0)

    assert cli_main(["projects", "rename", project_id, "Main board rev2"]) == 0
    assert cli_main(["projects", "favorite", project_id]) == 0
    assert "favorited" in capsys.readouterr().out

    assert cli_main(["projects", "delete", project_id]) == 0
    capsys.readouterr()
    assert cli_main(["projects", "list"]) == 0
    listing = capsys.readouterr().out

    assert f" F {project_id}\tMain board rev2\t(archived)" in listing
    assert len(_stored_projects(temp_workdir)) == 1

    assert cli_main(["projects", "delete", "project-404"]) == 1
    assert cli_main(["projects", "favorite", "project-404"]) == 1


def test_backup_export_import(write_config, temp_workdir: Path, monkeypatch, capsys):
    cli_main(["projects", "new", "--name", "Backed up"])
    backup = temp_workdir / "backup.json"
    assert cli_main(["backup", "export", str(backup)]) == 0

    monkeypatch.setenv("BOMSYNC_STORAGE_DIR", str(temp_workdir / "restored"))
    assert cli_main(["backup", "import", str(backup)]) == 0

    restored = _stored_projects(temp_workdir, "restored")
    assert [p["name"] for p in restored] == ["Backed up"]
    logs = "".join(p.read_text(encoding="utf-8") for p in (temp_workdir / "logs").glob("activity-*.log"))
    assert '"action": "imported"' in logs


def test_backup_import_rejects_invalid_file(write_config, temp_workdir: Path, capsys):
    bad = temp_workdir / "bad.json"
    bad.write_text('{"version": 1}', encoding="utf-8")

    assert cli_main(["backup", "import", str(bad)]) == 1
    assert "ERROR file:" in capsys.readouterr().out


def test_env_file_sets_storage_directory(write_config, temp_workdir: Path, monkeypatch):
    monkeypatch.setenv("BOMSYNC_STORAGE_DIR", "unused")
    (temp_workdir / ".env").write_text("BOMSYNC_STORAGE_DIR=envstore\n", encoding="utf-8")

    assert cli_main(["projects", "new"]) == 0
    assert (temp_workdir / "envstore" / "bomsync_projects.json").exists()


def test_debug_flag_enables_debug_output(write_config, capsys):
    assert cli_main(["--debug", "projects", "list"]) == 0
    assert "DEBUG debug mode enabled" in capsys.readouterr().out


def test_compare_with_ref_expansion(write_config, write_csv, capsys):
    a = write_csv("ranged.csv", "Ref,Part_No\nR1-R2,100\nR3,300\n")
    b = write_csv("flat.csv", "Ref,Part_No\nR1,100\nR2,100\nR3,300\n")

    code = cli_main(["compare", str(a), str(b), "--expand-ref"])

    assert code == 0
    assert "SUMMARY mode=comparison rows=3 added=0 removed=0 modified=0 unchanged=3 other=0" in capsys.readouterr().out


def test_inverted_ref_range_is_fatal(write_config, write_csv, capsys):
    a = write_csv("ranged.csv", "Ref,Part_No\nR5-R1,100\n")
    b = write_csv("flat.csv", "Ref,Part_No\nR1,100\n")

    assert cli_main(["compare", str(a), str(b), "--expand-ref"]) == 1
    captured = capsys.readouterr()
    assert "R5-R1" in captured.out + captured.err
