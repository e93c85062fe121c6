"""
Command-line interface for Stress Lab.

Usage:
    stress-lab info              Show model families and transform types
    stress-lab fit PATH          Fit a stress model to a CSV dissimilarity matrix
    stress-lab anneal PATH       Run tau annealing for the sparsified model
"""

import json
from enum import Enum
from pathlib import Path
from typing import Annotated

import pandas as pd
import typer
from loguru import logger
from rich.console import Console
from rich.table import Table

from stress_lab import __version__
from stress_lab.algorithms import (
    MDSResult,
    TauAnnealing,
    run_box_cox,
    run_power_stress,
    run_sparsified_power_stress,
)
from stress_lab.data import TransformType, get_spec, list_model_families
from stress_lab.exceptions import StressLabError

app = typer.Typer(
    name="stress-lab",
    help="Power-stress, sparsified and Box-Cox multidimensional scaling",
    add_completion=False,
)
console = Console()


class FitModel(str, Enum):
    """Models available to the fit command."""

    POWER = "power"
    SPARSIFIED = "sparsified"
    BOX_COX = "box-cox"


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"stress-lab version {__version__}")
        raise typer.Exit()


@app.callback()  # type: ignore[misc]
def main(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-v",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = False,
) -> None:
    """Stress Lab - multidimensional scaling by stress minimization."""
    logger.enable("stress_lab")


@app.command()  # type: ignore[misc]
def info() -> None:
    """Display the model families and optimal-scaling transforms."""
    table = Table(title="Model Families")

    table.add_column("Family", style="cyan", no_wrap=True)
    table.add_column("Model")
    table.add_column("Hyperparameters")
    table.add_column("acc", justify="right")
    table.add_column("itmax", justify="right")
    table.add_column("Solver")

    for family in list_model_families():
        spec = get_spec(family)
        table.add_row(
            family.value,
            spec.label,
            ", ".join(spec.hyperparameters),
            f"{spec.acc:.0e}",
            str(spec.itmax),
            "majorization" if spec.majorization else "gradient descent",
        )

    console.print(table)

    transforms = Table(title="Optimal-Scaling Transforms")
    transforms.add_column("Type", style="cyan")
    transforms.add_column("Disparities")
    descriptions = {
        TransformType.RATIO: "proportional to the dissimilarities",
        TransformType.INTERVAL: "linear in the dissimilarities",
        TransformType.ORDINAL: "monotone in the dissimilarities (primary/secondary/tertiary ties)",
        TransformType.SPLINE: "monotone spline of the dissimilarities",
    }
    for kind in TransformType:
        transforms.add_row(kind.value, descriptions[kind])

    console.print(transforms)


@app.command()  # type: ignore[misc]
def fit(
    path: Annotated[Path, typer.Argument(help="CSV dissimilarity matrix, labels in the first column")],
    model: Annotated[FitModel, typer.Option("--model", "-m", help="Model to fit")] = FitModel.POWER,
    kappa: Annotated[float, typer.Option(help="Exponent of the fitted distances")] = 1.0,
    lambda_: Annotated[float, typer.Option("--lambda", help="Exponent of the dissimilarities")] = 1.0,
    nu: Annotated[float, typer.Option(help="Exponent of the weights")] = 1.0,
    tau: Annotated[float | None, typer.Option(help="Neighborhood radius (sparsified)")] = None,
    mu: Annotated[float, typer.Option(help="Repulsion exponent (Box-Cox)")] = 1.0,
    rho: Annotated[float, typer.Option(help="Weight exponent (Box-Cox)")] = 0.0,
    transform: Annotated[str, typer.Option("--type", "-t", help="Optimal-scaling type")] = "ratio",
    ties: Annotated[str, typer.Option(help="Tie handling for ordinal scaling")] = "primary",
    neighborhood: Annotated[
        str, typer.Option(help="Neighborhood mode for the sparsified model: quasi or ratchet")
    ] = "quasi",
    ndim: Annotated[int, typer.Option("--ndim", "-d", help="Dimensions")] = 2,
    itmax: Annotated[int | None, typer.Option("--max-iter", "-i", help="Maximum iterations")] = None,
    seed: Annotated[int | None, typer.Option(help="Random seed for the initializer")] = None,
    verbose: Annotated[int, typer.Option("--verbose", help="Logging level (0-3)")] = 0,
    output: Annotated[Path | None, typer.Option("--output", "-o", help="Write the result as JSON")] = None,
) -> None:
    """Fit a stress model and print a summary."""
    delta = _read_matrix(path)

    try:
        if model is FitModel.POWER:
            result = run_power_stress(
                delta,
                kappa=kappa,
                lambda_=lambda_,
                nu=nu,
                type=transform,
                ties=ties,
                ndim=ndim,
                itmax=itmax,
                verbose=verbose,
                random_state=seed,
            )
        elif model is FitModel.SPARSIFIED:
            result = run_sparsified_power_stress(
                delta,
                kappa=kappa,
                lambda_=lambda_,
                nu=nu,
                tau=tau,
                type=transform,
                ties=ties,
                neighborhood=neighborhood,
                ndim=ndim,
                itmax=itmax,
                verbose=verbose,
                random_state=seed,
            )
        else:
            result = run_box_cox(
                delta,
                mu=mu,
                lambda_=lambda_,
                rho=rho,
                ndim=ndim,
                itmax=itmax,
                verbose=verbose,
                random_state=seed,
            )
    except StressLabError as exc:
        console.print(f"[red]Error:[/] {exc}")
        raise typer.Exit(code=1) from exc

    _print_summary(result)

    if output is not None:
        output.write_text(json.dumps(result.to_dict(), indent=2))
        console.print(f"\nResult written to [bold]{output}[/]")


@app.command()  # type: ignore[misc]
def anneal(
    path: Annotated[Path, typer.Argument(help="CSV dissimilarity matrix, labels in the first column")],
    tau: Annotated[float | None, typer.Option(help="Largest radius (default: max dissimilarity)")] = None,
    epochs: Annotated[int, typer.Option("--epochs", "-e", help="Number of radii")] = 10,
    kappa: Annotated[float, typer.Option(help="Exponent of the fitted distances")] = 1.0,
    lambda_: Annotated[float, typer.Option("--lambda", help="Exponent of the dissimilarities")] = 1.0,
    nu: Annotated[float, typer.Option(help="Exponent of the weights")] = 1.0,
    transform: Annotated[str, typer.Option("--type", "-t", help="Optimal-scaling type")] = "ratio",
    ndim: Annotated[int, typer.Option("--ndim", "-d", help="Dimensions")] = 2,
    seed: Annotated[int | None, typer.Option(help="Random seed for the initializer")] = None,
    output: Annotated[Path | None, typer.Option("--output", "-o", help="Write the trace as JSON")] = None,
) -> None:
    """Anneal the neighborhood radius of the sparsified model."""
    delta = _read_matrix(path)

    annealing = TauAnnealing(
        tau=tau,
        epochs=epochs,
        kappa=kappa,
        lambda_=lambda_,
        nu=nu,
        solver_options={"type": transform, "ndim": ndim, "random_state": seed},
    )
    try:
        trace = annealing.run(delta)
    except StressLabError as exc:
        console.print(f"[red]Error:[/] {exc}")
        raise typer.Exit(code=1) from exc

    table = Table(title="Tau Annealing")
    table.add_column("Epoch", justify="right")
    table.add_column("tau", justify="right")
    table.add_column("Iterations", justify="right")
    table.add_column("Start stress", justify="right")
    table.add_column("End stress", justify="right")
    table.add_column("Active pairs", justify="right")
    table.add_column("Converged", justify="center")

    for e in trace.epochs:
        table.add_row(
            str(e.epoch),
            f"{e.tau:.4g}",
            str(e.iterations),
            f"{e.start_stress:.6f}",
            f"{e.end_stress:.6f}",
            str(e.active_pairs),
            "✓" if e.converged else "✗",
        )

    console.print(table)
    console.print(f"\nFinal stress: [bold]{trace.result.stress:.6f}[/]")

    if output is not None:
        output.write_text(json.dumps(trace.to_dict(), indent=2))
        console.print(f"Trace written to [bold]{output}[/]")


def _read_matrix(path: Path) -> pd.DataFrame:
    if not path.exists():
        console.print(f"[red]Error:[/] file not found: {path}")
        raise typer.Exit(code=1)
    return pd.read_csv(path, index_col=0)


def _print_summary(result: MDSResult) -> None:
    table = Table(title=result.model)

    table.add_column("Property", style="bold")
    table.add_column("Value", justify="right")

    table.add_row("Type", result.type)
    for name, value in result.parameters.items():
        table.add_row(name, f"{value:.6g}")
    table.add_row("Stress", f"{result.stress:.6f}")
    table.add_row("Stress (squared)", f"{result.stress_m:.6f}")
    table.add_row("Iterations", str(result.niter))
    table.add_row("Converged", "✓" if result.converged else "✗")
    table.add_row("Rejected steps", str(result.rejected_steps))

    console.print(table)

    conf = Table(title="Configuration")
    frame = result.to_frame()
    conf.add_column("Object", style="cyan")
    for column in frame.columns:
        conf.add_column(column, justify="right")
    conf.add_column("SPP %", justify="right")
    for (label, row), spp in zip(frame.iterrows(), result.spp, strict=True):
        conf.add_row(str(label), *[f"{v:.4f}" for v in row], f"{spp:.2f}")

    console.print(conf)


if __name__ == "__main__":
    app()
