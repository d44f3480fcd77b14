import pytest

from collision_eda.__main__ import main


def test_check_prints_tests(crash_csv, tmp_path, capsys):
    main(["--data-dir", str(tmp_path), "--csv", str(crash_csv), "--offline", "check"])
    out = capsys.readouterr().out
    assert "COLLISION DATA CHECKS" in out
    assert "299 / 300 (99.67%) rows have a matching sum" in out
    assert "factor1 x nkilled" in out
    assert "DoF: 3" in out


def test_report_writes_file(crash_csv, tmp_path, capsys):
    main(["--data-dir", str(tmp_path), "--csv", str(crash_csv), "--offline",
          "report", "--output", str(tmp_path / "out")])
    assert len(list((tmp_path / "out").glob("collision_report_*.html"))) == 1
    assert "Report saved to:" in capsys.readouterr().out


def test_missing_csv_exits(tmp_path, capsys):
    with pytest.raises(SystemExit) as exc:
        main(["--data-dir", str(tmp_path), "--offline", "check"])
    assert exc.value.code == 1
    assert "Required data file not found!" in capsys.readouterr().out


def test_bad_threshold_is_rejected(tmp_path):
    with pytest.raises(SystemExit):
        main(["--threshold", "0", "check"])
