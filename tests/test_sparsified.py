"""Tests for the sparsified power-stress majorizer."""

import numpy as np
import pytest

from stress_lab.algorithms.initializer import classical_scaling
from stress_lab.algorithms.matrices import lower_triangle, mk_power, sqdist
from stress_lab.algorithms.power_stress import prepare_majorizer, run_power_stress
from stress_lab.algorithms.sparsified import (
    SparsifiedMajorizer,
    default_tau,
    resolve_tau,
    run_sparsified_power_stress,
    run_sparsified_stress,
)
from stress_lab.data.examples import FIVE_POINT_DELTA, SIX_POINT_DELTA
from stress_lab.data.model_types import NeighborhoodMode
from stress_lab.exceptions import EmptyNeighborhoodError, ValidationError


@pytest.fixture
def init():
    """Shared starting configuration for the six-point matrix."""
    return classical_scaling(SIX_POINT_DELTA, 2, random_state=0)


@pytest.fixture
def setup(init):
    """Prepared six-point majorization inputs."""
    return prepare_majorizer(
        SIX_POINT_DELTA,
        kappa=1.0,
        lambda_=1.0,
        nu=1.0,
        type="ratio",
        ties="primary",
        weightmat=None,
        init=init,
        ndim=2,
        spline_degree=2,
        spline_int_knots=2,
        random_state=0,
    )


class TestSparsifiedMajorizer:
    """Tests for SparsifiedMajorizer engine."""

    def test_pairs_beyond_tau_are_zeroed(self, setup) -> None:
        """Pairs whose fitted distance exceeds tau get weight zero."""
        d = mk_power(sqdist(setup.init / np.linalg.norm(setup.init)), 0.5)
        tau = float(np.median(lower_triangle(d)))
        engine = SparsifiedMajorizer(setup.weights, setup.transform, setup.init, kappa=1.0, tau=tau)

        weights = engine.state.weights
        assert np.all(weights[d > tau] == 0.0)
        assert np.all(weights[(d <= tau) & (d > 0)] == 1.0)

    def test_active_pairs_reported(self, setup) -> None:
        """IterationResult counts the pairs inside the neighborhood."""
        engine = SparsifiedMajorizer(setup.weights, setup.transform, setup.init, kappa=1.0, tau=100.0)
        result = engine.iterate()
        assert result.active_pairs == 15

    def test_properties(self, setup) -> None:
        """tau and mode are exposed."""
        engine = SparsifiedMajorizer(
            setup.weights, setup.transform, setup.init, kappa=1.0, tau=2.0, neighborhood="ratchet"
        )
        assert engine.tau == 2.0
        assert engine.neighborhood is NeighborhoodMode.RATCHET

    def test_empty_neighborhood(self, setup) -> None:
        """A radius below every fitted distance stops the solve."""
        engine = SparsifiedMajorizer(setup.weights, setup.transform, setup.init, kappa=1.0, tau=1e-9)
        with pytest.raises(EmptyNeighborhoodError) as excinfo:
            engine.iterate()
        assert excinfo.value.tau == 1e-9
        assert excinfo.value.iteration == 1
        assert "Increase tau" in str(excinfo.value)

    def test_ratchet_never_readmits(self, setup) -> None:
        """In ratchet mode the active set only shrinks."""
        d = mk_power(sqdist(setup.init / np.linalg.norm(setup.init)), 0.5)
        tau = float(np.quantile(lower_triangle(d), 0.8))
        engine = SparsifiedMajorizer(
            setup.weights, setup.transform, setup.init, kappa=1.0, tau=tau, neighborhood="ratchet"
        )
        counts = [int(np.count_nonzero(lower_triangle(engine.state.weights)))]
        for _ in range(20):
            counts.append(engine.iterate().active_pairs)
        assert all(b <= a for a, b in zip(counts, counts[1:]))


class TestTau:
    """Tests for tau defaults and resolution."""

    def test_default_tau_quantile(self) -> None:
        """Default radius is the 0.9 quantile of the lower triangle."""
        tdelta = SIX_POINT_DELTA / 10.0
        assert default_tau(tdelta) == pytest.approx(np.quantile(lower_triangle(tdelta), 0.9))

    def test_resolve_scalar(self) -> None:
        """Scalars pass through."""
        assert resolve_tau(0.4, SIX_POINT_DELTA) == 0.4

    def test_resolve_sequence_warns(self) -> None:
        """A sequence is reduced to its maximum with a warning."""
        with pytest.warns(UserWarning, match="maximum is used"):
            assert resolve_tau([0.1, 0.7, 0.3], SIX_POINT_DELTA) == 0.7

    @pytest.mark.parametrize("tau", [0.0, -1.0, []])
    def test_resolve_invalid(self, tau) -> None:
        """Non-positive or empty tau is rejected."""
        with pytest.raises(ValidationError, match="tau must"):
            resolve_tau(tau, SIX_POINT_DELTA)


class TestRunSparsifiedPowerStress:
    """Tests for run_sparsified_power_stress function."""

    def test_large_tau_matches_plain_majorizer(self, init) -> None:
        """With every pair inside the neighborhood the solve is unchanged."""
        tau = 10.0 * float(np.max(SIX_POINT_DELTA))
        sparse = run_sparsified_power_stress(SIX_POINT_DELTA, kappa=2.0, tau=tau, init=init)
        plain = run_power_stress(SIX_POINT_DELTA, kappa=2.0, init=init)

        assert np.allclose(sparse.conf, plain.conf)
        assert sparse.stress == pytest.approx(plain.stress)
        assert sparse.niter == plain.niter

    def test_result_metadata(self, init) -> None:
        """Model label, parameters and effective weights."""
        result = run_sparsified_power_stress(SIX_POINT_DELTA, tau=50.0, lambda_=2.0, init=init)
        assert result.model == "Sparsified Power-Stress SMACOF"
        assert result.parameters == {"kappa": 1.0, "lambda": 2.0, "nu": 1.0, "tau": 50.0}
        assert result.tweightmat is not None
        assert result.tweightmat.shape == (6, 6)

    def test_tweightmat_consistent_with_confdist(self, init) -> None:
        """Returned weights exclude exactly the pairs beyond tau."""
        result = run_sparsified_power_stress(SIX_POINT_DELTA, tau=0.7, init=init, itmax=500)
        off = ~np.eye(6, dtype=bool)
        outside = (result.confdist > 0.7) & off
        assert np.all(result.tweightmat[outside] == 0.0)
        assert np.all(result.tweightmat[~outside & off] == 1.0)

    def test_alpha_identity_on_effective_weights(self, init) -> None:
        """Optimal scale identity holds with the effective weights."""
        result = run_sparsified_power_stress(SIX_POINT_DELTA, tau=0.7, init=init, itmax=500)
        scaled = result.alpha * result.confdist
        w = result.tweightmat
        assert np.sum(w * scaled**2) == pytest.approx(np.sum(w * result.dhat * scaled))

    def test_empty_neighborhood_propagates(self, init) -> None:
        """The solver does not swallow the empty-neighborhood error."""
        with pytest.raises(EmptyNeighborhoodError):
            run_sparsified_power_stress(SIX_POINT_DELTA, tau=1e-9, init=init)

    def test_sequence_tau_warns(self, init) -> None:
        """A tau sequence is reduced to its maximum."""
        with pytest.warns(UserWarning, match="maximum is used"):
            result = run_sparsified_power_stress(SIX_POINT_DELTA, tau=[5.0, 50.0], init=init)
        assert result.parameters["tau"] == 50.0


class TestRunSparsifiedStress:
    """Tests for the kappa = lambda = nu = 1 wrapper."""

    def test_equivalent_to_unit_exponents(self, init) -> None:
        """Same fit as the general solver with unit exponents."""
        wrapped = run_sparsified_stress(FIVE_POINT_DELTA, tau=50.0, init=init[:5])
        general = run_sparsified_power_stress(FIVE_POINT_DELTA, tau=50.0, init=init[:5])
        assert np.allclose(wrapped.conf, general.conf)

    def test_metadata(self, init) -> None:
        """Label and parameters are overridden."""
        result = run_sparsified_stress(SIX_POINT_DELTA, tau=50.0, init=init)
        assert result.model == "Sparsified SMACOF"
        assert result.parameters == {"tau": 50.0}
        assert result.call.function == "run_sparsified_stress"
