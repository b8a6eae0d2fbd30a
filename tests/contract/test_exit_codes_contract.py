from __future__ import annotations

from pathlib import Path

from bomsync.cli import main as cli_main

"""Exit code contract: 0 success / no differences, 2 differences, 1 fatal."""

SAME = "Ref,Part_No\nR1,100\nR2,200\n"
CHANGED = "Ref,Part_No\nR1,100\nR3,300\n"


def test_exit_code_no_differences(write_csv, capsys):
    a = write_csv("a.csv", SAME)
    b = write_csv("b.csv", SAME)

    code = cli_main(["compare", str(a), str(b)])

    out = capsys.readouterr().out
    assert code == 0
    assert "SUMMARY mode=comparison rows=2 added=0 removed=0 modified=0 unchanged=2 other=0" in out


def test_exit_code_differences(write_csv, capsys):
    a = write_csv("a.csv", SAME)
    b = write_csv("b.csv", CHANGED)

    code = cli_main(["compare", str(a), str(b)])

    assert code == 2
    assert "SUMMARY mode=comparison rows=3 added=1 removed=1" in capsys.readouterr().out


def test_exit_code_unreadable_input(write_csv, temp_workdir: Path, capsys):
    a = write_csv("a.csv", SAME)

    code = cli_main(["compare", str(a), str(temp_workdir / "data" / "missing.csv")])

    assert code == 1
    assert "ERROR backend:" in capsys.readouterr().out


def test_exit_code_missing_ref_column(write_csv, capsys):
    a = write_csv("a.csv", "Qty,Note\n1,x\n")
    b = write_csv("b.csv", SAME)

    assert cli_main(["compare", str(a), str(b)]) == 1
    assert "no ref column" in capsys.readouterr().out


def test_exit_code_bad_config(temp_workdir: Path, capsys):
    code = cli_main(["--config", str(temp_workdir / "config" / "missing.yml"), "projects", "list"])
    assert code == 1
    assert "ERROR config:" in capsys.readouterr().out


def test_exit_code_usage_error(temp_workdir: Path):
    assert cli_main([]) == 1
    assert cli_main(["--help"]) == 0
