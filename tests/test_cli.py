"""Tests for the lisaflow command line."""

import polars as pl
import pytest
from typer.testing import CliRunner

from lisaflow import __version__
from lisaflow.cli.main import app

runner = CliRunner()


@pytest.fixture
def units_csv(tmp_path, grid, gradient):
    ids, geoms = grid
    path = tmp_path / "tracts.csv"
    pl.DataFrame(
        {
            "GEOID": ids,
            "geometry": [g.wkt for g in geoms],
            "gradient": gradient,
            "constant": [1.0] * 9,
        }
    ).write_csv(path)
    return path


def test_version() -> None:
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert f"lisaflow version {__version__}" in result.output


def test_list_steps_by_tag() -> None:
    result = runner.invoke(app, ["list-steps", "--tag", "autocorrelation"])
    assert result.exit_code == 0
    assert "global_moran" in result.output
    assert "local_moran" in result.output
    assert "build_weights" not in result.output


def test_validate_config(tmp_path) -> None:
    good = tmp_path / "good.yaml"
    good.write_text("analysis:\n  contiguity: queen\n  permutations: 99\n  random_seed: 1\n")
    result = runner.invoke(app, ["validate", "--config", str(good)])
    assert result.exit_code == 0
    assert "Valid analysis configuration" in result.output

    bad = tmp_path / "bad.yaml"
    bad.write_text("analysis:\n  contiguity: bishop\n")
    result = runner.invoke(app, ["validate", "--config", str(bad)])
    assert result.exit_code == 1


def test_analyze_writes_unit_table(tmp_path, units_csv) -> None:
    output = tmp_path / "lisa.csv"
    result = runner.invoke(
        app,
        ["analyze", "--units", str(units_csv), "--attribute", "gradient", "--output", str(output)],
    )
    assert result.exit_code == 0, result.output
    assert "gradient" in result.output

    table = pl.read_csv(output)
    assert table.height == 9
    assert {"GEOID", "value", "local_i", "p_value", "quadrant", "hotspot", "attribute"} <= set(
        table.columns
    )


def test_analyze_reports_library_errors(units_csv) -> None:
    result = runner.invoke(app, ["analyze", "--units", str(units_csv), "--attribute", "constant"])
    assert result.exit_code == 1


def test_analyze_missing_units(tmp_path) -> None:
    result = runner.invoke(
        app, ["analyze", "--units", str(tmp_path / "nope.csv"), "--attribute", "x"]
    )
    assert result.exit_code == 1


def test_analyze_keeps_zero_padded_ids(tmp_path, grid, gradient) -> None:
    ids, geoms = grid
    fips = [f"0100102{i:04d}" for i in range(len(ids))]
    units = tmp_path / "tracts.csv"
    pl.DataFrame(
        {"GEOID": fips, "geometry": [g.wkt for g in geoms], "gradient": gradient}
    ).write_csv(units)
    output = tmp_path / "lisa.csv"

    result = runner.invoke(
        app,
        ["analyze", "--units", str(units), "--attribute", "gradient", "--output", str(output)],
    )
    assert result.exit_code == 0, result.output

    table = pl.read_csv(output, schema_overrides={"GEOID": pl.Utf8})
    assert table["GEOID"].to_list() == fips


def test_validate_resolves_steps(tmp_path) -> None:
    good = tmp_path / "steps.yaml"
    good.write_text(
        "analysis:\n  steps:\n    - validate_geometry\n"
        "    - name: build_weights\n      params: {contiguity: queen}\n"
    )
    result = runner.invoke(app, ["validate", "--config", str(good)])
    assert result.exit_code == 0, result.output
    assert "ValidateGeometryStep() -> BuildWeightsStep()" in result.output

    unknown = tmp_path / "unknown.yaml"
    unknown.write_text("analysis:\n  steps:\n    - smooth_rates\n")
    result = runner.invoke(app, ["validate", "--config", str(unknown)])
    assert result.exit_code == 1


def test_analyze_with_configured_steps(tmp_path, units_csv) -> None:
    config = tmp_path / "analysis.yaml"
    config.write_text(
        "analysis:\n  steps:\n    - build_weights\n"
        "    - name: exclude_islands\n"
    )
    result = runner.invoke(
        app,
        ["analyze", "--units", str(units_csv), "--attribute", "gradient", "--config", str(config)],
    )
    assert result.exit_code == 0, result.output
    assert "gradient" in result.output
