import json

from main import main


def test_main_writes_outputs(survey, tmp_path, capsys):
    path = tmp_path / "survey.csv"
    survey.to_csv(path, index=False)
    out = tmp_path / "out"

    code = main(["--input", str(path), "--output-dir", str(out), "--quiet", "--ego", "1"])

    assert code == 0
    assert json.loads((out / "stats.json").read_text())["aaties"] == 3
    printed = capsys.readouterr().out
    assert "Ego 1: 4 nodes, 4 edges" in printed


def test_main_missing_input(tmp_path, capsys):
    code = main(["--input", str(tmp_path / "nope.csv"), "--output-dir", str(tmp_path / "out")])
    assert code == 1
    assert "not found" in capsys.readouterr().out


def test_main_unknown_ego(survey, tmp_path, capsys):
    path = tmp_path / "survey.csv"
    survey.to_csv(path, index=False)

    code = main(["--input", str(path), "--output-dir", str(tmp_path / "out"),
                 "--quiet", "--no-graphs", "--no-metrics", "--ego", "42"])

    assert code == 1
    assert not (tmp_path / "out" / "ego_graphs.json").exists()
    assert "ego 42" in capsys.readouterr().out


def test_main_bad_schema(survey, tmp_path, capsys):
    path = tmp_path / "survey.csv"
    survey.to_csv(path, index=False)
    schema = tmp_path / "schema.json"
    schema.write_text("{}")

    code = main(["--input", str(path), "--schema", str(schema), "--output-dir", str(tmp_path / "out")])
    assert code == 1
    assert "not a valid survey schema" in capsys.readouterr().out
