import json

import pytest

from lpdriver.cli import main


def test_example_prints_both_objectives(capsys):
    assert main(["example"]) == 0

    lines = capsys.readouterr().out.strip().splitlines()
    assert lines[0].startswith("The optimal objective value is ")
    assert float(lines[0].rsplit(" ", 1)[1]) == pytest.approx(14.5)
    assert lines[1].startswith("The revised optimal objective value is ")
    assert float(lines[1].rsplit(" ", 1)[1]) == pytest.approx(10.0)


def test_example_writes_log_file(tmp_path, capsys):
    log_file = tmp_path / "example.log"

    main(["--log-file", str(log_file), "example"])

    text = log_file.read_text()
    assert "primal simplex" in text
    assert "dual simplex" in text


def test_generate_writes_instances(tmp_path):
    out = tmp_path / "instances.json"

    main(["generate", "--rows", "4", "--columns", "3", "--count", "2", "--seed", "5", "--out", str(out)])

    payload = json.loads(out.read_text())
    assert len(payload) == 2
    first = payload[0]
    assert len(first["rows"]) == 4
    assert len(first["columns"]) == 3
    assert len(first["matrix"]["column_start"]) == 4


def test_bench_prints_csv(capsys):
    main(["bench", "--rows", "5", "--columns", "4", "--cuts", "2", "--count", "1"])

    lines = capsys.readouterr().out.strip().splitlines()
    assert lines[0] == "name,method,status,objective,iterations,time_ms"
    assert {line.split(",")[1] for line in lines[1:]} == {"dual", "primal"}
    warm, cold = (float(line.split(",")[3]) for line in lines[1:])
    assert warm == pytest.approx(cold, rel=1e-6)
