"""Tests for tau annealing."""

import json

import numpy as np
import pytest

from stress_lab.algorithms.annealing import (
    AnnealingTrace,
    EpochResult,
    TauAnnealing,
    anneal_sparsified_power_stress,
    anneal_sparsified_stress,
)
from stress_lab.algorithms.initializer import classical_scaling
from stress_lab.algorithms.sparsified import run_sparsified_power_stress
from stress_lab.data.examples import SIX_POINT_DELTA
from stress_lab.exceptions import ValidationError


@pytest.fixture
def init():
    """Shared starting configuration."""
    return classical_scaling(SIX_POINT_DELTA, 2, random_state=0)


class TestSchedule:
    """Tests for TauAnnealing.schedule."""

    def test_scalar_linspace(self) -> None:
        """A scalar expands to linspace(tau, tau/epochs, epochs)."""
        schedule = TauAnnealing(tau=2.0, epochs=4).schedule(6.0)
        assert np.allclose(schedule, [2.0, 1.5, 1.0, 0.5])

    def test_default_from_delta_max(self) -> None:
        """Without tau the largest dissimilarity is the first radius."""
        schedule = TauAnnealing(epochs=3).schedule(6.0)
        assert np.allclose(schedule, [6.0, 4.0, 2.0])

    def test_sequence_kept(self) -> None:
        """A decreasing sequence is used as given."""
        schedule = TauAnnealing(tau=[3.0, 2.5, 0.5]).schedule(6.0)
        assert schedule == (3.0, 2.5, 0.5)

    def test_sequence_sorted(self) -> None:
        """An increasing sequence is sorted descending."""
        schedule = TauAnnealing(tau=[0.5, 3.0, 1.0]).schedule(6.0)
        assert schedule == (3.0, 1.0, 0.5)

    def test_single_element_sequence(self) -> None:
        """A one-element sequence is a one-epoch schedule."""
        schedule = TauAnnealing(tau=[1.5], epochs=10).schedule(6.0)
        assert schedule == (1.5,)

    def test_default_epochs(self) -> None:
        """Ten epochs by default."""
        assert len(TauAnnealing(tau=1.0).schedule(6.0)) == 10

    @pytest.mark.parametrize("tau", [0.0, [1.0, -1.0], []])
    def test_invalid_tau(self, tau) -> None:
        """Radii must be positive."""
        with pytest.raises(ValidationError, match="tau"):
            TauAnnealing(tau=tau).schedule(6.0)


class TestTauAnnealing:
    """Tests for TauAnnealing.run."""

    def test_invalid_epochs(self) -> None:
        """epochs must be a positive integer."""
        with pytest.raises(ValidationError, match="epochs"):
            TauAnnealing(tau=1.0, epochs=0)

    def test_reserved_options(self) -> None:
        """Options controlled by the schedule are rejected."""
        with pytest.raises(ValidationError, match="solver_options"):
            TauAnnealing(tau=1.0, solver_options={"tau": 2.0})

    def test_one_epoch_matches_direct_solve(self, init) -> None:
        """A single radius is one sparsified solve."""
        trace = TauAnnealing(tau=[40.0]).run(SIX_POINT_DELTA, init=init)
        direct = run_sparsified_power_stress(SIX_POINT_DELTA, tau=40.0, init=init)

        assert len(trace.epochs) == 1
        assert np.allclose(trace.result.conf, direct.conf)
        assert trace.result.stress == pytest.approx(direct.stress)

    def test_trace(self, init) -> None:
        """One EpochResult per radius, largest first."""
        trace = TauAnnealing(tau=30.0, epochs=3).run(SIX_POINT_DELTA, init=init)

        assert isinstance(trace, AnnealingTrace)
        assert all(isinstance(e, EpochResult) for e in trace.epochs)
        assert trace.taus == (30.0, 20.0, 10.0)
        assert [e.epoch for e in trace.epochs] == [1, 2, 3]
        assert trace.total_iterations == sum(e.iterations for e in trace.epochs)
        assert all(e.active_pairs == 15 for e in trace.epochs)

    def test_result_is_last_epoch(self, init) -> None:
        """The trace result is the solve of the smallest radius."""
        trace = TauAnnealing(tau=30.0, epochs=3).run(SIX_POINT_DELTA, init=init)
        last = trace.epochs[-1]
        assert last.tau == pytest.approx(10.0)
        assert trace.result.stress_m == pytest.approx(last.end_stress)
        assert trace.result.niter == last.iterations

    def test_empty_schedule_raises(self, init) -> None:
        """An empty radius sequence fails before any solve."""
        with pytest.raises(ValidationError, match="tau must not be empty"):
            TauAnnealing(tau=[]).run(SIX_POINT_DELTA, init=init)

    def test_warm_start(self, init) -> None:
        """Each epoch starts from the previous configuration."""
        trace = TauAnnealing(tau=30.0, epochs=2).run(SIX_POINT_DELTA, init=init)
        first, second = trace.epochs
        assert second.start_stress == pytest.approx(first.end_stress, abs=1e-8)

    def test_to_dict_serializable(self, init) -> None:
        """Dictionary form is JSON serializable."""
        trace = TauAnnealing(tau=30.0, epochs=2).run(SIX_POINT_DELTA, init=init)
        data = trace.to_dict()
        json.dumps(data)
        assert data["summary"]["epochs"] == 2
        assert len(data["epochs"]) == 2


class TestAnnealFunctions:
    """Tests for the annealing entry points."""

    def test_power_stress_label(self, init) -> None:
        """Result of the last epoch under the annealed label."""
        result = anneal_sparsified_power_stress(SIX_POINT_DELTA, tau=30.0, epochs=2, kappa=2.0, init=init)
        assert result.model == "Annealed Sparsified Power-Stress SMACOF"
        assert result.parameters["tau"] == pytest.approx(15.0)
        assert result.parameters["kappa"] == 2.0
        assert result.call.function == "anneal_sparsified_power_stress"

    def test_stress_wrapper(self, init) -> None:
        """Unit-exponent wrapper keeps only tau."""
        result = anneal_sparsified_stress(SIX_POINT_DELTA, tau=30.0, epochs=2, init=init)
        assert result.model == "Annealed Sparsified SMACOF"
        assert result.parameters == {"tau": pytest.approx(15.0)}
        assert result.call.function == "anneal_sparsified_stress"

    def test_default_tau(self) -> None:
        """The default schedule starts at the largest dissimilarity."""
        result = anneal_sparsified_stress(SIX_POINT_DELTA, epochs=2, random_state=0)
        assert result.parameters["tau"] == pytest.approx(3.0)
