import os

import pandas as pd
from click.testing import CliRunner

import run_dcf
from dcfSimpy.Simulation import NonConvergenceError, SimulationStats
from run_cw_sweep import run_cw_sweep


def parse_report(output):
    report = {}
    for line in output.splitlines():
        if ":" in line:
            key, value = line.split(":", 1)
            report[key] = value.strip()
    return report


def test_report_lines():
    result = CliRunner().invoke(run_dcf.run_dcf, ["5", "1", "16", "--seed", "3"])

    assert result.exit_code == 0, result.output
    report = parse_report(result.output)
    slots = int(report["Total slots used for simulation"])
    assert (int(report["Idle Slots"]) + int(report["Transmission Slots"])
            + int(report["Collision Slots"])) == slots
    assert int(report["Collision Slots"]) == 0
    packets = int(report["Packets successfully transmitted"])
    assert abs(float(report["Throughput"]) - packets / slots) < 1e-6
    assert result.output.splitlines()[-1].startswith(" 16 ")


def test_inputs_above_bounds_are_rejected():
    result = CliRunner().invoke(run_dcf.run_dcf, ["101", "10", "16"])

    assert result.exit_code == 1
    assert "Error taking inputs!" in result.output


def test_zero_nodes_are_rejected():
    result = CliRunner().invoke(run_dcf.run_dcf, ["5", "0", "16"])

    assert result.exit_code == 1
    assert "Error taking inputs!" in result.output


def test_non_convergence_exits_with_error(monkeypatch):
    def never_converges(*args, **kwargs):
        raise NonConvergenceError(SimulationStats(slots=100000))

    monkeypatch.setattr(run_dcf, "run_simulation", never_converges)

    result = CliRunner().invoke(run_dcf.run_dcf, ["5", "10", "16", "--seed", "1"])

    assert result.exit_code == 1
    assert "Simulation failed to converge. Exiting..." in result.output


def test_result_row_is_written(tmp_path):
    output = tmp_path / "result.csv"

    result = CliRunner().invoke(run_dcf.run_dcf, ["5", "1", "16", "--seed", "3", "--output", str(output)])

    assert result.exit_code == 0, result.output
    df = pd.read_csv(output)
    assert len(df) == 1
    assert df.loc[0, "Seed"] == 3
    assert df.loc[0, "Nodes"] == 1


def test_sweep_writes_one_row_per_run(tmp_path):
    result = CliRunner().invoke(run_cw_sweep, [
        "-r", "2", "-p", "5", "-n", "1", "-w", "8", "-w", "16",
        "--output-dir", str(tmp_path), "--no-visualize",
    ])

    assert result.exit_code == 0, result.output
    df = pd.read_csv(tmp_path / "cw_sweep.csv")
    assert len(df) == 4
    assert sorted(df["CW_Size"].unique()) == [8, 16]
    assert sorted(df["Seed"].unique()) == [1, 2]


def test_sweep_heatmaps(tmp_path):
    result = CliRunner().invoke(run_cw_sweep, [
        "-r", "1", "-p", "5", "-n", "1", "-w", "8", "-w", "16",
        "--output-dir", str(tmp_path), "--visualize",
    ])

    assert result.exit_code == 0, result.output
    for name in ["Efficiency", "Throughput", "Collision_Probability"]:
        assert os.path.isfile(tmp_path / f"{name}_heatmap.png")
