"""Tests for the power-stress majorizer."""

import warnings

import numpy as np
import pandas as pd
import pytest

from stress_lab.algorithms.initializer import classical_scaling
from stress_lab.algorithms.matrices import enorm, lower_triangle
from stress_lab.algorithms.power_stress import (
    MajorizerState,
    PowerStressMajorizer,
    prepare_majorizer,
    run_majorizer,
    run_power_stress,
)
from stress_lab.algorithms.results import IterationResult, MDSResult
from stress_lab.data.examples import FIVE_POINT_DELTA, SIX_POINT_DELTA, create_experiment
from stress_lab.exceptions import IterationLimitWarning, ValidationError


def _setup(delta, **overrides):
    options = {
        "kappa": 1.0,
        "lambda_": 1.0,
        "nu": 1.0,
        "type": "ratio",
        "ties": "primary",
        "weightmat": None,
        "init": None,
        "ndim": 2,
        "spline_degree": 2,
        "spline_int_knots": 2,
        "random_state": 0,
    }
    options.update(overrides)
    return prepare_majorizer(delta, **options)


class TestPrepareMajorizer:
    """Tests for prepare_majorizer function."""

    def test_tdelta_normalized(self) -> None:
        """Transformed dissimilarities have unit weighted norm."""
        setup = _setup(FIVE_POINT_DELTA, lambda_=2.0)
        assert enorm(setup.tdelta, setup.weights) == pytest.approx(1.0)

    def test_weights_powered(self) -> None:
        """Weights are raised to nu."""
        weightmat = np.full((5, 5), 2.0)
        setup = _setup(FIVE_POINT_DELTA, weightmat=weightmat, nu=2.0)
        assert setup.weights[0, 1] == pytest.approx(4.0)
        assert setup.weights[0, 0] == 0.0

    def test_non_finite_weights_zeroed(self) -> None:
        """0 ** negative nu gives zero weight, not inf."""
        weightmat = 1.0 - np.eye(5)
        weightmat[0, 1] = weightmat[1, 0] = 0.0
        setup = _setup(FIVE_POINT_DELTA, weightmat=weightmat, nu=-1.0)
        assert setup.weights[0, 1] == 0.0
        assert np.all(np.isfinite(setup.weights))

    def test_lambda_forced_for_ordinal(self) -> None:
        """Nonmetric transforms ignore lambda."""
        setup = _setup(FIVE_POINT_DELTA, type="ordinal", lambda_=3.0)
        assert setup.lambda_ == 1.0

    @pytest.mark.parametrize(
        ("overrides", "match"),
        [
            ({"kappa": 0.0}, "kappa parameter must be strictly positive"),
            ({"lambda_": -1.0}, "lambda parameter must be strictly positive"),
            ({"nu": np.inf}, "nu parameter must be finite"),
            ({"ndim": 5}, "Maximum number of dimensions"),
            ({"type": "nominal"}, "Unknown transform type"),
            ({"init": np.zeros((5, 2))}, "zero configuration"),
        ],
    )
    def test_invalid(self, overrides: dict, match: str) -> None:
        """Preconditions raise ValidationError."""
        with pytest.raises(ValidationError, match=match):
            _setup(FIVE_POINT_DELTA, **overrides)

    def test_zero_delta(self) -> None:
        """All-zero dissimilarities cannot be normalized."""
        with pytest.raises(ValidationError, match="no positive"):
            _setup(np.zeros((4, 4)))


class TestPowerStressMajorizer:
    """Tests for PowerStressMajorizer engine."""

    @pytest.fixture
    def engine(self):
        """Engine on the five-point matrix."""
        setup = _setup(FIVE_POINT_DELTA)
        return PowerStressMajorizer(setup.weights, setup.transform, setup.init, kappa=1.0)

    def test_initial_state(self, engine) -> None:
        """Starting configuration is scaled to unit norm."""
        state = engine.state
        assert isinstance(state, MajorizerState)
        assert enorm(state.conf) == pytest.approx(1.0)
        assert engine.iteration == 0

    def test_dhat_normalized(self, engine) -> None:
        """Disparities satisfy sum over pairs of w·dhat² = 1/2."""
        state = engine.state
        assert np.sum(lower_triangle(state.weights * state.dhat**2)) == pytest.approx(0.5)

    def test_iterate_returns_result(self, engine) -> None:
        """iterate() should return IterationResult."""
        result = engine.iterate()
        assert isinstance(result, IterationResult)
        assert result.iteration == 1
        assert not result.step_rejected

    def test_change_is_stress_difference(self, engine) -> None:
        """change equals previous minus current stress."""
        before = engine.state.stress
        result = engine.iterate()
        assert result.change == pytest.approx(before - result.stress)

    def test_configuration_stays_normalized(self, engine) -> None:
        """Every step returns a unit-norm configuration."""
        for _ in range(10):
            engine.iterate()
        assert enorm(engine.state.conf) == pytest.approx(1.0)

    def test_best_state(self, engine) -> None:
        """best_state returns the lower-stress of the last two states."""
        engine.iterate()
        engine.iterate()
        state, iteration = engine.best_state()
        assert iteration in (1, 2)
        assert state.stress <= engine.state.stress

    def test_stress_identity(self, engine) -> None:
        """sigma equals 1 - alpha * rho at the optimal scale."""
        engine.iterate()
        state = engine.state
        e = np.sqrt(state.sqdist)
        rho = np.sum(state.weights * state.dhat * e)
        assert state.stress == pytest.approx(1.0 - state.alpha * rho)


class TestMonotoneDecrease:
    """Stress never increases for true majorization."""

    @pytest.mark.parametrize("kappa", [0.25, 0.5, 0.8, 1.0, 2.0])
    def test_ratio(self, kappa: float) -> None:
        """Ratio transforms decrease monotonically on both sides of kappa = 1."""
        result = run_power_stress(FIVE_POINT_DELTA, kappa=kappa, itmax=200, random_state=1)
        assert np.all(np.diff(result.trace) <= 1e-10)

    def test_lower_branch_engine(self) -> None:
        """kappa < 1 takes the identity-offset update and still descends."""
        setup = _setup(FIVE_POINT_DELTA, kappa=0.5)
        engine = PowerStressMajorizer(setup.weights, setup.transform, setup.init, kappa=0.5)
        assert engine.r == pytest.approx(0.25)
        before = engine.state.stress
        result = engine.iterate()
        assert not result.step_rejected
        assert result.stress <= before + 1e-10

    def test_interval_with_lambda(self) -> None:
        """An interval transform on powered dissimilarities keeps monotonicity."""
        result = run_power_stress(
            FIVE_POINT_DELTA,
            kappa=1.0,
            lambda_=2.0,
            type="interval",
            itmax=200,
            random_state=1,
        )
        assert result.type == "interval"
        assert result.parameters["lambda"] == 2.0
        assert np.all(np.diff(result.trace) <= 1e-8)

    def test_with_lambda_and_nu(self) -> None:
        """Powers of the dissimilarities and weights keep monotonicity."""
        weightmat = np.ones((6, 6))
        weightmat[0, 5] = weightmat[5, 0] = 3.0
        result = run_power_stress(
            SIX_POINT_DELTA,
            kappa=2.0,
            lambda_=1.5,
            nu=0.5,
            weightmat=weightmat,
            itmax=200,
            random_state=1,
        )
        assert np.all(np.diff(result.trace) <= 1e-10)


class TestRunMajorizer:
    """Tests for run_majorizer function."""

    def test_converges(self) -> None:
        """A well-posed problem converges before the cap."""
        setup = _setup(FIVE_POINT_DELTA)
        engine = PowerStressMajorizer(setup.weights, setup.transform, setup.init, kappa=1.0)
        trace = run_majorizer(engine, acc=1e-8, itmax=5000)
        assert trace.converged
        assert trace.rejected_steps == 0
        assert len(trace.history) <= 5000

    def test_iteration_limit_warning(self) -> None:
        """Hitting the cap warns and reports non-convergence."""
        setup = _setup(FIVE_POINT_DELTA)
        engine = PowerStressMajorizer(setup.weights, setup.transform, setup.init, kappa=1.0)
        with pytest.warns(IterationLimitWarning, match="increase itmax"):
            trace = run_majorizer(engine, acc=1e-30, itmax=3)
        assert not trace.converged
        assert len(trace.history) == 3


class TestRejectedStep:
    """A non-finite stress keeps the previous state and stops the run."""

    COINCIDENT_INIT = np.array([[0.0, 0.0], [0.0, 0.0], [1.0, 0.0], [0.0, 1.0], [1.0, 1.0]])

    def test_engine_keeps_state(self) -> None:
        """The rejected iterate reports zero change and the kept stress."""
        setup = _setup(FIVE_POINT_DELTA, init=self.COINCIDENT_INIT)
        engine = PowerStressMajorizer(setup.weights, setup.transform, setup.init, kappa=1.0)
        before = engine.state

        result = engine.iterate()

        assert result.step_rejected
        assert result.change == 0.0
        assert result.stress == before.stress
        assert engine.state is before
        state, iteration = engine.best_state()
        assert state is before
        assert iteration == 0

    def test_run_stops_without_converging(self) -> None:
        """run_majorizer stops on the rejection, unconverged and without a limit warning."""
        setup = _setup(FIVE_POINT_DELTA, init=self.COINCIDENT_INIT)
        engine = PowerStressMajorizer(setup.weights, setup.transform, setup.init, kappa=1.0)

        with warnings.catch_warnings():
            warnings.simplefilter("error", IterationLimitWarning)
            trace = run_majorizer(engine, acc=1e-6, itmax=100)

        assert trace.rejected_steps == 1
        assert not trace.converged
        assert len(trace.history) == 1
        assert trace.iterations == 0

    def test_result_is_starting_state(self) -> None:
        """The returned configuration and stress are the last accepted ones."""
        setup = _setup(FIVE_POINT_DELTA, init=self.COINCIDENT_INIT)
        start = PowerStressMajorizer(setup.weights, setup.transform, setup.init, kappa=1.0).state

        result = run_power_stress(FIVE_POINT_DELTA, init=self.COINCIDENT_INIT)

        assert result.rejected_steps >= 1
        assert not result.converged
        assert result.niter == 0
        assert result.history[0]["step_rejected"]
        assert result.history[0]["change"] == 0.0
        assert result.stress_m == pytest.approx(start.stress)
        assert np.allclose(result.conf, self.COINCIDENT_INIT / enorm(self.COINCIDENT_INIT))


class TestRunPowerStress:
    """Tests for run_power_stress function."""

    @pytest.fixture
    def result(self):
        """Fitted five-point result."""
        return run_power_stress(FIVE_POINT_DELTA, kappa=2.0, lambda_=1.5, random_state=3)

    def test_returns_result(self, result) -> None:
        """Result carries the model label and parameters."""
        assert isinstance(result, MDSResult)
        assert result.model == "Power-Stress SMACOF"
        assert result.type == "ratio"
        assert result.parameters == {"kappa": 2.0, "lambda": 1.5, "nu": 1.0}

    def test_shapes(self, result) -> None:
        """Matrices are n×n and the configuration n×ndim."""
        assert result.conf.shape == (5, 2)
        assert result.confdist.shape == (5, 5)
        assert result.dhat.shape == (5, 5)
        assert result.spp.shape == (5,)
        assert result.nobj == 5
        assert result.ndim == 2

    def test_stress_is_root(self, result) -> None:
        """Reported stress is the square root of the normalized stress."""
        assert result.stress == pytest.approx(np.sqrt(result.stress_m))
        assert 0.0 <= result.stress_m < 1.0

    def test_alpha_identity(self, result) -> None:
        """With scaled distances, sum w·(αd)² equals sum w·dhat·(αd)."""
        scaled = result.alpha * result.confdist
        w = result.weightmat
        assert np.sum(w * scaled**2) == pytest.approx(np.sum(w * result.dhat * scaled))

    def test_niter_within_history(self, result) -> None:
        """Returned iteration never exceeds the number of steps."""
        assert result.niter <= len(result.history)
        assert len(result.trace) == len(result.history)

    def test_spp(self, result) -> None:
        """Stress per point sums to 100 percent."""
        assert result.spp.sum() == pytest.approx(100.0)

    def test_call_recorded(self, result) -> None:
        """Call record summarizes the input."""
        assert result.call.function == "run_power_stress"
        assert result.call.arguments["delta"] == "<array 5x5>"
        assert str(result.call).startswith("run_power_stress(")

    def test_reproducible(self) -> None:
        """Same seed gives the same fit."""
        a = run_power_stress(FIVE_POINT_DELTA, random_state=9)
        b = run_power_stress(FIVE_POINT_DELTA, random_state=9)
        assert np.array_equal(a.conf, b.conf)
        assert a.trace == b.trace

    def test_explicit_init(self) -> None:
        """A user configuration is used as the start."""
        init = classical_scaling(FIVE_POINT_DELTA, 2, random_state=4)
        result = run_power_stress(FIVE_POINT_DELTA, init=init)
        assert np.array_equal(result.init, init)

    def test_dataframe_labels(self) -> None:
        """DataFrame labels flow through to the result."""
        names = ["a", "b", "c", "d", "e"]
        frame = pd.DataFrame(FIVE_POINT_DELTA, index=names, columns=names)
        result = run_power_stress(frame, random_state=0)
        assert result.labels == tuple(names)
        assert list(result.to_frame().index) == names
        assert list(result.to_frame().columns) == ["D1", "D2"]

    def test_principal_axes(self) -> None:
        """Principal rotation decorrelates the coordinates."""
        result = run_power_stress(FIVE_POINT_DELTA, principal=True, random_state=0)
        cross = result.conf.T @ result.conf
        assert abs(cross[0, 1]) < 1e-10

    def test_euclidean_fit_is_near_perfect(self) -> None:
        """Exact planar distances are recovered with near-zero stress."""
        exp = create_experiment(8, 2, seed=2)
        result = run_power_stress(exp.delta, acc=1e-12, itmax=20000, random_state=0)
        assert result.stress_m < 1e-6

    @pytest.mark.parametrize("kind", ["interval", "ordinal", "spline"])
    def test_transforms(self, kind: str) -> None:
        """Every optimal-scaling regime runs to a finite stress."""
        exp = create_experiment(10, 2, noise=0.2, seed=5)
        result = run_power_stress(exp.delta, type=kind, random_state=0)
        assert np.isfinite(result.stress)
        assert result.type.startswith(kind)

    def test_ordinal_type_label(self) -> None:
        """Ordinal results name the tie regime."""
        result = run_power_stress(FIVE_POINT_DELTA, type="ordinal", ties="secondary", random_state=0)
        assert result.type == "ordinal (secondary)"

    def test_to_dict(self, result) -> None:
        """Dictionary form is JSON-friendly."""
        data = result.to_dict()
        assert data["metadata"]["model"] == "Power-Stress SMACOF"
        assert data["summary"]["niter"] == result.niter
        assert len(data["conf"]) == 5
