"""This module contains utility functions for operations on files, the result tables and JSON output files."""

import csv
import json
from pathlib import Path

from cltuner import util

csv_delimiter = ";"


def get_configuration_validity(error) -> str:
    """Convert internal cltuner error to string."""
    errorstring: str
    if not isinstance(error, util.ErrorConfig):
        errorstring = "correct"
    else:
        if isinstance(error, util.CompilationFailedConfig):
            errorstring = "compile"
        elif isinstance(error, util.RuntimeFailedConfig):
            errorstring = "runtime"
        elif isinstance(error, util.VerificationFailedConfig):
            errorstring = "verification"
        else:
            raise ValueError(f"Unkown error type {type(error)}, value {error}")
    return errorstring


def filename_ensure_json_extension(filename: str) -> str:
    """Check if the filename has a .json extension, if not, add it."""
    if filename[-5:] != ".json":
        filename += ".json"
    return filename


def make_filenamepath(filenamepath: Path):
    """Create the given path to a filename if the path does not yet exist."""
    filepath = filenamepath.parents[0]
    if not filepath.exists():
        filepath.mkdir(parents=True)


def get_param_columns(results):
    """Collect the parameter names of all results, in order of first appearance."""
    columns = []
    for result in results:
        for name in result.config:
            if name not in columns:
                columns.append(name)
    return columns


def store_csv_file(filename, results):
    """Store a table of results as semicolon-delimited text.

    The header is ``kernel;<parameter names>;time;status`` and every result becomes one
    row in the order given. Parameters that a kernel does not have, and times that were
    never measured, are left empty.

    :param filename: Name or 'path / name' of the to be created file
    :type filename: string

    :param results: The results to store
    :type results: list(cltuner.core.ExecutionResult)
    """
    filenamepath = Path(filename)
    make_filenamepath(filenamepath)
    param_columns = get_param_columns(results)

    with open(filenamepath, "w", newline="") as fh:
        writer = csv.writer(fh, delimiter=csv_delimiter)
        writer.writerow(["kernel"] + param_columns + ["time", "status"])
        for result in results:
            row = [result.kernel_name]
            row += [result.config.get(name, "") for name in param_columns]
            row.append("" if result.time is None else repr(float(result.time)))
            row.append(result.status)
            writer.writerow(row)


def read_csv_file(filename):
    """Read a table written by store_csv_file.

    :returns: One dictionary per row with the keys ``kernel``, ``config``, ``time`` and ``status``.
        Parameter values are restored as ints, the time as a float or None.
    :rtype: list(dict)
    """
    rows = []
    with open(filename, "r", newline="") as fh:
        reader = csv.reader(fh, delimiter=csv_delimiter)
        header = next(reader)
        if header[0] != "kernel" or header[-2:] != ["time", "status"]:
            raise ValueError(f"{filename} is not a cltuner results table")
        param_columns = header[1:-2]
        for line in reader:
            if not line:
                continue
            if len(line) != len(header):
                raise ValueError(f"malformed row in {filename}: {line}")
            config = {name: int(value) for name, value in zip(param_columns, line[1:-2]) if value != ""}
            status = line[-1]
            if status not in util.status_map:
                raise ValueError(f"unknown status {status} in {filename}")
            rows.append(dict(kernel=line[0], config=config, time=float(line[-2]) if line[-2] else None, status=status))
    return rows


def store_output_file(output_filename: str, results, env=None):
    """Store the obtained auto-tuning results in a JSON output file.

    :param output_filename: Name or 'path / name' of the to be created output file
    :type output_filename: string

    :param results: Results list as returned by Tuner.tune
    :type results: list(cltuner.core.ExecutionResult)

    :param env: Information about the environment the results were obtained in
    :type env: dict
    """
    output_filenamepath = Path(filename_ensure_json_extension(output_filename))
    make_filenamepath(output_filenamepath)

    output_data = []

    for result in results:
        out = {}

        out["timestamp"] = result.timestamp
        out["kernel"] = result.kernel_name
        out["configuration"] = dict(result.config)

        # collect configuration specific timings
        timings = dict()
        timings["compilation"] = result.compile_time
        timings["benchmark"] = result.benchmark_time
        timings["validation"] = result.verification_time
        timings["runtimes"] = list(result.times)
        out["times"] = timings

        # encode the validity of the configuration
        out["invalidity"] = get_configuration_validity(result.error)
        out["correctness"] = 0 if isinstance(result.error, util.VerificationFailedConfig) else 1
        out["status"] = result.status
        if result.detail:
            out["detail"] = result.detail

        out["measurements"] = [dict(name="time", value=result.time, unit="ms")]
        out["objectives"] = ["time"]

        # append to output
        output_data.append(out)

    # write output_data to a JSON file
    output_json = dict(results=output_data, environment=env or {})
    with open(output_filenamepath, "w+") as fh:
        json.dump(output_json, fh, cls=util.NpEncoder)
