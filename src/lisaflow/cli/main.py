"""Main CLI application using Typer."""

from pathlib import Path
from typing import Annotated

import polars as pl
import typer

from lisaflow.core.errors import LisaflowError
from lisaflow.core.registry import StepRegistry

app = typer.Typer(help="Lisaflow: Spatial autocorrelation analysis for areal units")

# --------------------------------------------------------------------------- #
# Global registry (built-in steps plus entry-point plugins, loaded on first access)
# --------------------------------------------------------------------------- #
_step_registry: StepRegistry | None = None


def get_step_registry() -> StepRegistry:
    """Return the global step registry, loading entry points on first call."""
    global _step_registry
    if _step_registry is None:
        from lisaflow.core.steps import get_default_registry

        _step_registry = get_default_registry()
        _step_registry.load_entry_points()
    return _step_registry


def _read_units(path: Path, id_col: str) -> pl.DataFrame:
    # Identifiers such as FIPS codes keep their leading zeros
    if path.suffix == ".parquet":
        return pl.read_parquet(path)
    if path.suffix == ".csv":
        return pl.read_csv(path, schema_overrides={id_col: pl.Utf8})
    typer.echo(f"Error: Unsupported unit table format: {path.suffix}", err=True)
    raise typer.Exit(code=1)


@app.command()
def analyze(
    units: Annotated[Path, typer.Option(help="Unit table (.csv or .parquet) with WKT geometry")],
    attribute: Annotated[list[str], typer.Option(help="Attribute to analyse (repeatable)")],
    config: Annotated[Path | None, typer.Option(help="Path to analysis config YAML")] = None,
    id_col: Annotated[str, typer.Option(help="Unit identifier column")] = "GEOID",
    geometry_col: Annotated[str, typer.Option(help="WKT geometry column")] = "geometry",
    crs: Annotated[str | None, typer.Option(help="CRS of the unit boundaries")] = None,
    output: Annotated[Path | None, typer.Option(help="Output CSV for per-unit results")] = None,
) -> None:
    """
    Run global and local Moran's I on a unit table.

    Example:
        lisaflow analyze --units tracts.parquet --config analysis.yaml --attribute single_ratio
    """
    from lisaflow.analysis import AutocorrelationAnalyzer
    from lisaflow.core.schema import AnalysisConfig
    from lisaflow.core.unit_frame import UnitFrame

    if not units.exists():
        typer.echo(f"Error: Unit table not found: {units}", err=True)
        raise typer.Exit(code=1) from None
    if config is not None and not config.exists():
        typer.echo(f"Error: Config file not found: {config}", err=True)
        raise typer.Exit(code=1) from None

    try:
        analysis_config = AnalysisConfig.from_yaml(config) if config else AnalysisConfig()
        frame = UnitFrame.from_wkt(
            _read_units(units, id_col),
            id_col=id_col,
            geometry_col=geometry_col,
            attribute_cols=attribute,
            dataset_name=units.stem,
            crs=crs,
        )
        result = AutocorrelationAnalyzer(
            analysis_config, step_registry=get_step_registry()
        ).run(frame, attribute)
    except LisaflowError as e:
        typer.echo(f"Error: {type(e).__name__}: {e}", err=True)
        raise typer.Exit(code=1) from None

    with pl.Config(tbl_rows=-1, tbl_cols=-1):
        typer.echo(result.summary())
    if result.excluded_ids:
        typer.echo(f"Excluded {len(result.excluded_ids)} unit(s)")
    for name in result.skipped:
        typer.echo(f"Skipped '{name}': zero variance")

    if output is not None and result.local_results:
        tables = [
            result.unit_table(name).with_columns(pl.lit(name).alias("attribute"))
            for name in result.local_results
        ]
        pl.concat(tables).write_csv(output)
        typer.echo(f"Wrote per-unit results to {output}")


@app.command()
def validate(
    config: Annotated[Path, typer.Option(help="Path to config YAML to validate")],
) -> None:
    """Validate an analysis configuration file and resolve its steps."""
    from lisaflow.core.schema import AnalysisConfig

    if not config.exists():
        typer.echo(f"Error: Config file not found: {config}", err=True)
        raise typer.Exit(code=1) from None

    try:
        analysis_config = AnalysisConfig.from_yaml(config)
        if analysis_config.steps:
            pipeline = get_step_registry().build_pipeline(analysis_config.steps)
    except LisaflowError as e:
        typer.echo(f"Error: Invalid configuration: {e}", err=True)
        raise typer.Exit(code=1) from None
    typer.echo(f"✓ Valid analysis configuration: {config}")
    if analysis_config.steps:
        typer.echo(f"  Preparation steps: {pipeline}")


@app.command()
def version() -> None:
    """Show lisaflow version."""
    from lisaflow import __version__

    typer.echo(f"lisaflow version {__version__}")


# --------------------------------------------------------------------------- #
# Registry inspection commands
# --------------------------------------------------------------------------- #


@app.command()
def list_steps(
    tag: Annotated[str | None, typer.Option(help="Filter steps by tag")] = None,
) -> None:
    """List registered pipeline steps."""
    registry = get_step_registry()
    specs = registry.list(tag=tag)

    if not specs:
        typer.echo("No steps registered" + (f" with tag '{tag}'" if tag else ""))
        return

    typer.echo("Registered steps:")
    for spec in specs:
        tags_str = ", ".join(sorted(spec.tags)) if spec.tags else "none"
        desc = spec.description or ""
        typer.echo(f"  {spec.name}  [tags: {tags_str}]")
        if desc:
            typer.echo(f"      {desc}")


if __name__ == "__main__":
    app()
