"""Generate convergence traces for the stress solvers.

This script generates JSON trace files for:
- Power-stress majorization over a grid of distance exponents
- Sparsified majorization at a fixed radius
- Tau annealing (one entry per epoch)
- Box-Cox gradient descent

Output JSON files are suitable for plotting stress against iterations.
"""

from __future__ import annotations

import json
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import numpy as np

from stress_lab.algorithms.annealing import TauAnnealing
from stress_lab.algorithms.box_cox import run_box_cox
from stress_lab.algorithms.initializer import classical_scaling
from stress_lab.algorithms.power_stress import run_power_stress
from stress_lab.algorithms.results import MDSResult
from stress_lab.algorithms.sparsified import run_sparsified_power_stress
from stress_lab.data.examples import ExampleMatrix, create_experiment


def _metadata(experiment: ExampleMatrix, result: MDSResult) -> dict[str, Any]:
    return {
        "model": result.model,
        "parameters": result.parameters,
        "nobj": result.nobj,
        "ndim": result.ndim,
        "seed": experiment.seed,
        "noise": experiment.noise,
        "timestamp": datetime.now(UTC).isoformat(),
    }


def _write(output: dict[str, Any], path: Path) -> None:
    with path.open("w") as f:
        json.dump(output, f, indent=2)


def generate_power_stress_traces(
    experiment: ExampleMatrix,
    kappas: tuple[float, ...] = (0.5, 1.0, 2.0),
    output_dir: Path | None = None,
) -> None:
    """Generate power-stress traces for several distance exponents.

    Args:
        experiment: Example dissimilarities.
        kappas: Distance exponents to run.
        output_dir: Output directory (defaults to experiments/traces/).
    """
    if output_dir is None:
        output_dir = Path(__file__).parent / "traces"

    output_dir.mkdir(parents=True, exist_ok=True)
    print(f"Generating power-stress traces (n={experiment.delta.shape[0]})...")

    init = classical_scaling(experiment.delta, 2, random_state=experiment.seed)

    for kappa in kappas:
        print(f"  Running kappa={kappa}...", end=" ", flush=True)
        result = run_power_stress(experiment.delta, kappa=kappa, init=init)

        output = {
            "metadata": _metadata(experiment, result),
            "summary": {
                "iterations": result.niter,
                "stress": result.stress,
                "converged": result.converged,
            },
            "trace": list(result.history),
        }
        _write(output, output_dir / f"trace_power_stress_kappa{kappa:g}.json")

        print(f"✓ {result.niter} iterations, stress={result.stress:.4f}")


def generate_sparsified_trace(
    experiment: ExampleMatrix,
    tau: float = 0.5,
    output_dir: Path | None = None,
) -> None:
    """Generate a sparsified-majorization trace with active-pair counts."""
    if output_dir is None:
        output_dir = Path(__file__).parent / "traces"

    output_dir.mkdir(parents=True, exist_ok=True)
    print(f"\nGenerating sparsified trace (tau={tau})...", end=" ", flush=True)

    init = classical_scaling(experiment.delta, 2, random_state=experiment.seed)
    result = run_sparsified_power_stress(experiment.delta, tau=tau, init=init)

    output = {
        "metadata": _metadata(experiment, result),
        "summary": {
            "iterations": result.niter,
            "stress": result.stress,
            "converged": result.converged,
        },
        "trace": list(result.history),
    }
    _write(output, output_dir / "trace_sparsified.json")

    print(f"✓ {result.niter} iterations, stress={result.stress:.4f}")


def generate_annealing_trace(
    experiment: ExampleMatrix,
    epochs: int = 10,
    output_dir: Path | None = None,
) -> None:
    """Generate a tau-annealing trace, one entry per radius."""
    if output_dir is None:
        output_dir = Path(__file__).parent / "traces"

    output_dir.mkdir(parents=True, exist_ok=True)
    print(f"\nGenerating annealing trace ({epochs} epochs)...", end=" ", flush=True)

    annealing = TauAnnealing(epochs=epochs, solver_options={"random_state": experiment.seed})
    trace = annealing.run(experiment.delta)
    _write(trace.to_dict(), output_dir / "trace_annealing.json")

    print(f"✓ {trace.total_iterations} iterations")

    print("\n  Epochs:")
    for epoch in trace.epochs:
        print(
            f"    tau={epoch.tau:.3f}: {epoch.iterations} iterations, "
            f"{epoch.active_pairs} active pairs, stress={epoch.end_stress:.5f}"
        )


def generate_box_cox_trace(
    experiment: ExampleMatrix,
    mu: float = 1.0,
    lambda_: float = 1.0,
    output_dir: Path | None = None,
) -> None:
    """Generate a Box-Cox descent trace with step sizes."""
    if output_dir is None:
        output_dir = Path(__file__).parent / "traces"

    output_dir.mkdir(parents=True, exist_ok=True)
    print(f"\nGenerating Box-Cox trace (mu={mu}, lambda={lambda_})...", end=" ", flush=True)

    result = run_box_cox(experiment.delta, mu=mu, lambda_=lambda_, random_state=experiment.seed)

    output = {
        "metadata": _metadata(experiment, result),
        "summary": {
            "iterations": result.niter,
            "stress": result.stress,
            "stress_raw": result.stress_r,
            "rejected_steps": result.rejected_steps,
            "converged": result.converged,
        },
        "trace": list(result.history),
        "spp": np.round(result.spp, 4).tolist(),
    }
    _write(output, output_dir / "trace_box_cox.json")

    print(f"✓ {result.niter} iterations, {result.rejected_steps} rejected")


def main() -> None:
    """Generate all traces."""
    print("=" * 70)
    print("Stress Lab - Trace Data Generation")
    print("=" * 70)

    experiment = create_experiment(40, 2, noise=0.1, seed=42)
    output_dir = Path(__file__).parent / "traces"

    generate_power_stress_traces(experiment, output_dir=output_dir)
    generate_sparsified_trace(experiment, output_dir=output_dir)
    generate_annealing_trace(experiment, output_dir=output_dir)
    generate_box_cox_trace(experiment, output_dir=output_dir)

    print("\n" + "=" * 70)
    print("✓ All traces generated successfully!")
    print("=" * 70)
    print(f"\nOutput directory: {output_dir.absolute()}")
    print("\nGenerated files:")
    for trace_file in sorted(output_dir.glob("trace_*.json")):
        size_kb = trace_file.stat().st_size / 1024
        print(f"  - {trace_file.name} ({size_kb:.1f} KB)")


if __name__ == "__main__":
    main()
