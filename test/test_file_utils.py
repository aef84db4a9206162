import json

import pytest

from cltuner import util
from cltuner.core import ExecutionResult
from cltuner.file_utils import get_configuration_validity, read_csv_file, store_csv_file, store_output_file
from cltuner.reporter import Reporter


def make_result(kernel_name, config, time, error=None, detail=None):
    times = [] if time is None else [time, time + 0.5]
    return ExecutionResult(kernel_name, config, time, error, detail, times, 1.5, 0.25, 3.0, "2024-01-01 00:00:00+00:00")


@pytest.fixture
def reporter():
    reporter = Reporter(quiet=True)
    reporter.add(make_result("gemm", dict(MWG=32, NWG=16), 0.123456789))
    reporter.add(make_result("gemm", dict(MWG=64, NWG=16), None, util.CompilationFailedConfig(), "error: unknown type"))
    reporter.add(make_result("gemm", dict(MWG=16, NWG=16), 0.05, util.VerificationFailedConfig()))
    reporter.add(make_result("copy", dict(TBX=128), 1.0 / 3.0))
    return reporter


def test_csv_round_trip(tmp_path, reporter):
    filename = str(tmp_path / "results.csv")
    reporter.print_to_file(filename)

    rows = read_csv_file(filename)
    table = reporter.table()
    assert len(rows) == len(table)
    for row, result in zip(rows, table):
        assert row["kernel"] == result.kernel_name
        assert row["config"] == result.config
        assert row["time"] == result.time
        assert row["status"] == result.status


def test_csv_layout(tmp_path, reporter):
    filename = str(tmp_path / "results.csv")
    store_csv_file(filename, reporter.results)
    with open(filename) as fh:
        lines = fh.read().splitlines()
    assert lines[0] == "kernel;MWG;NWG;TBX;time;status"
    assert lines[1] == "gemm;32;16;;0.123456789;Success"
    assert lines[2] == "gemm;64;16;;;CompileFailed"
    assert lines[4].startswith("copy;;;128;0.333")


def test_read_csv_file_rejects_other_files(tmp_path):
    filename = str(tmp_path / "other.csv")
    with open(filename, "w") as fh:
        fh.write("a;b;c\n1;2;3\n")
    with pytest.raises(ValueError):
        read_csv_file(filename)


def test_store_output_file(tmp_path, reporter):
    filename = str(tmp_path / "results")
    store_output_file(filename, reporter.results, dict(device_name="FakeDevice"))

    with open(filename + ".json") as fh:
        data = json.load(fh)

    assert data["environment"] == dict(device_name="FakeDevice")
    results = data["results"]
    assert len(results) == 4
    assert results[0]["configuration"] == dict(MWG=32, NWG=16)
    assert results[0]["times"]["runtimes"] == [0.123456789, 0.123456789 + 0.5]
    assert results[0]["times"]["compilation"] == 1.5
    assert results[0]["invalidity"] == "correct"
    assert results[1]["invalidity"] == "compile"
    assert results[1]["detail"] == "error: unknown type"
    assert results[2]["correctness"] == 0
    assert results[2]["status"] == "VerificationFailed"
    assert results[3]["kernel"] == "copy"


def test_get_configuration_validity():
    assert get_configuration_validity(None) == "correct"
    assert get_configuration_validity(util.CompilationFailedConfig()) == "compile"
    assert get_configuration_validity(util.RuntimeFailedConfig()) == "runtime"
    assert get_configuration_validity(util.VerificationFailedConfig()) == "verification"
