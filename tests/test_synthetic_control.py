"""Tests for synthetic control method implementation."""

import numpy as np
import pandas as pd
import pytest
from scipy.optimize import OptimizeResult

import congo_growth.synthetic_control as synthetic_control
from congo_growth.exceptions import MissingDataError, OptimizationError
from congo_growth.panel import Panel
from congo_growth.synthetic_control import (
    Counterfactual,
    WeightSolution,
    compute_rmspe,
    evaluate,
    fit,
    solve_weights,
    standardize_predictors,
)

PRE = list(range(2005, 2018))
PLOT = list(range(2005, 2024))
DONORS = ["AGO", "CMR", "ZMB", "TZA"]

COPY_PRE = list(range(2013, 2021))
COPY_PLOT = list(range(2013, 2024))


def assert_on_simplex(weights):
    weights = np.asarray(weights)
    assert np.isclose(weights.sum(), 1.0, atol=1e-6)
    assert np.all(weights >= -1e-9)


class TestSolveWeights:
    """Tests for the solve_weights function."""

    def test_weights_sum_to_one(self, simple_matrices):
        """Weights should sum to 1."""
        X0, X1, V = simple_matrices
        W = solve_weights(X0, X1, V)
        assert np.isclose(np.sum(W), 1.0, atol=1e-6)

    def test_weights_non_negative(self, simple_matrices):
        """All weights should be non-negative."""
        X0, X1, V = simple_matrices
        W = solve_weights(X0, X1, V)
        assert np.all(W >= -1e-9)

    def test_weights_shape(self, simple_matrices):
        """Weights should have correct shape."""
        X0, X1, V = simple_matrices
        W = solve_weights(X0, X1, V)
        assert W.shape == (X0.shape[1],)

    def test_vector_and_matrix_v_agree(self, simple_matrices):
        """A weight vector and its diagonal matrix should give the same W."""
        X0, X1, _ = simple_matrices
        v = np.array([0.1, 0.4, 0.2, 0.2, 0.1])
        np.testing.assert_allclose(
            solve_weights(X0, X1, v), solve_weights(X0, X1, np.diag(v)), atol=1e-6
        )

    def test_exact_match_recovered(self, simple_matrices):
        """If X1 is a donor column, that donor should get all the weight."""
        X0, _, V = simple_matrices
        W = solve_weights(X0, X0[:, 2], V)
        assert np.isclose(W[2], 1.0, atol=1e-4)

    def test_single_donor(self, simple_matrices):
        """One donor is the only feasible solution."""
        X0, X1, V = simple_matrices
        W = solve_weights(X0[:, :1], X1, V)
        assert W.tolist() == [1.0]

    def test_empty_donor_pool(self, simple_matrices):
        """No donors makes the problem infeasible."""
        X0, X1, V = simple_matrices
        with pytest.raises(OptimizationError):
            solve_weights(X0[:, :0], X1, V)

    def test_iteration_cap(self, simple_matrices):
        """Hitting the iteration cap should raise rather than return."""
        X0, X1, V = simple_matrices
        with pytest.raises(OptimizationError):
            solve_weights(X0, X1, V, max_iter=1)


class TestComputeRMSPE:
    """Tests for the compute_rmspe function."""

    def test_rmspe_positive(self, outcome_matrices):
        """RMSPE should be positive."""
        Y0, Y1, W = outcome_matrices
        rmspe = compute_rmspe(Y0, Y1, W)
        assert rmspe >= 0

    def test_rmspe_zero_perfect_fit(self):
        """RMSPE should be zero for perfect fit."""
        Y0 = np.array([[1, 2], [3, 4], [5, 6]])
        Y1 = np.array([1.5, 3.5, 5.5])
        W = np.array([0.5, 0.5])
        rmspe = compute_rmspe(Y0, Y1, W)
        assert np.isclose(rmspe, 0.0, atol=1e-10)

    def test_rmspe_known_value(self):
        """RMSPE should match known value."""
        Y0 = np.array([[1], [2], [3]])
        Y1 = np.array([2, 3, 4])
        W = np.array([1.0])
        rmspe = compute_rmspe(Y0, Y1, W)
        # Errors are [1, 1, 1], RMSPE = sqrt(mean([1, 1, 1])) = 1
        assert np.isclose(rmspe, 1.0, atol=1e-10)


class TestStandardize:
    """Tests for predictor standardization."""

    def test_constant_row_kept_finite(self):
        """A predictor equal across units should not divide by zero."""
        X0 = np.array([[2.0, 2.0], [1.0, 3.0]])
        X1 = np.array([2.0, 2.0])
        X0_norm, X1_norm = standardize_predictors(X0, X1)

        assert np.all(np.isfinite(X0_norm))
        np.testing.assert_allclose(X0_norm[0], [0.0, 0.0])
        assert X1_norm[0] == 0.0


class TestFit:
    """Tests for the fit function."""

    def test_returns_weight_solution(self, sample_panel, predictors):
        """Should return a WeightSolution."""
        solution = fit(sample_panel, "COD", DONORS, predictors, PRE, PRE)
        assert isinstance(solution, WeightSolution)
        assert solution.treated == "COD"

    def test_donor_weights_on_simplex(self, sample_panel, predictors):
        """w should be non-negative and sum to 1, one entry per donor."""
        solution = fit(sample_panel, "COD", DONORS, predictors, PRE, PRE)
        assert list(solution.donor_weights.index) == DONORS
        assert_on_simplex(solution.donor_weights)

    def test_predictor_weights_on_simplex(self, sample_panel, predictors):
        """v should be non-negative and sum to 1, one entry per predictor."""
        solution = fit(sample_panel, "COD", DONORS, predictors, PRE, PRE)
        assert list(solution.predictor_weights.index) == predictors
        assert_on_simplex(solution.predictor_weights)

    def test_rmse_matches_weights(self, sample_panel, predictors):
        """Reported RMSE should be the fit error of the returned weights."""
        solution = fit(sample_panel, "COD", DONORS, predictors, PRE, PRE)

        Y = sample_panel.matrix(["COD", *DONORS], PRE, "gdp_per_capita")
        expected = compute_rmspe(
            Y[DONORS].to_numpy(), Y["COD"].to_numpy(), solution.donor_weights.to_numpy()
        )
        assert np.isclose(solution.rmse, expected)

    def test_predictor_balance(self, sample_panel, predictors):
        """Predictor balance table should have correct columns."""
        solution = fit(sample_panel, "COD", DONORS, predictors, PRE, PRE)
        balance = solution.predictor_balance
        assert list(balance.columns) == ["Actual", "Synthetic", "Sample Mean"]
        assert list(balance.index) == predictors

    def test_outcome_lags(self, sample_panel, predictors):
        """Outcome lags should be added as extra predictors."""
        solution = fit(
            sample_panel, "COD", DONORS, predictors, PRE, PRE, outcome_lags=[2010, 2015]
        )
        assert list(solution.predictor_weights.index) == predictors + [
            "gdp_per_capita_2010",
            "gdp_per_capita_2015",
        ]
        assert_on_simplex(solution.predictor_weights)

    def test_single_predictor(self, sample_panel):
        """One predictor gets all the predictor weight."""
        solution = fit(sample_panel, "COD", DONORS, ["birth_rate"], PRE, PRE)
        assert solution.predictor_weights.tolist() == [1.0]
        assert_on_simplex(solution.donor_weights)

    def test_deterministic(self, sample_panel, predictors):
        """Same inputs should give the same weights."""
        first = fit(sample_panel, "COD", DONORS, predictors, PRE, PRE)
        second = fit(sample_panel, "COD", DONORS, predictors, PRE, PRE)
        pd.testing.assert_series_equal(first.donor_weights, second.donor_weights)
        assert np.isclose(first.rmse, second.rmse)

    def test_unconverged_outer_search_flagged(self, monkeypatch, sample_panel, predictors):
        """A predictor-weight search that stops early is marked on the solution."""

        def _minimize(fun, x0, **kwargs):
            return OptimizeResult(x=x0, success=False, message="ABNORMAL_TERMINATION")

        monkeypatch.setattr(synthetic_control, "minimize", _minimize)

        solution = fit(sample_panel, "COD", DONORS, predictors, PRE, PRE)

        assert solution.converged is False
        assert_on_simplex(solution.donor_weights)
        np.testing.assert_allclose(solution.predictor_weights, 1 / len(predictors))

    def test_single_donor_counts_as_converged(self, sample_panel, predictors):
        """Fits with no outer search are converged by construction."""
        solution = fit(sample_panel, "COD", ["AGO"], predictors, PRE, PRE)
        assert solution.converged is True


class TestFitEdgeCases:
    """Tests for edge cases and error handling."""

    def test_single_donor(self, sample_panel, predictors):
        """A single donor has weight exactly 1."""
        solution = fit(sample_panel, "COD", ["AGO"], predictors, PRE, PRE)
        assert solution.donor_weights.tolist() == [1.0]
        assert_on_simplex(solution.predictor_weights)

    def test_exact_copy_recovered(self, copy_panel):
        """A treated unit equal to donor 1 before treatment is matched by it alone."""
        solution = fit(copy_panel, 0, [1, 2, 3], ["x_a", "x_b", "x_c"], COPY_PRE, COPY_PRE)

        np.testing.assert_allclose(solution.donor_weights.to_numpy(), [1, 0, 0], atol=1e-4)
        assert solution.rmse < 1e-3

    def test_missing_data_raises(self, sample_panel_data, predictors):
        """Missing predictor data should raise rather than be dropped."""
        mask = (sample_panel_data["country"] == "ZMB") & (sample_panel_data["year"] == 2009)
        sample_panel_data.loc[mask, "trade_openness"] = np.nan
        panel = Panel(sample_panel_data)

        with pytest.raises(MissingDataError) as exc_info:
            fit(panel, "COD", DONORS, predictors, PRE, PRE)

        assert exc_info.value.missing == [("ZMB", 2009, "trade_openness")]
        assert exc_info.value.unit == "COD"
        assert exc_info.value.predictors == tuple(predictors)

    def test_missing_outcome_raises(self, sample_panel, predictors):
        """Optimization years without outcome data should raise."""
        with pytest.raises(MissingDataError):
            fit(sample_panel, "COD", DONORS, predictors, PRE, [2000, 2001])

    def test_treated_in_donors(self, sample_panel, predictors):
        """The treated unit cannot be its own donor."""
        with pytest.raises(ValueError, match="donor pool"):
            fit(sample_panel, "COD", DONORS + ["COD"], predictors, PRE, PRE)

    def test_empty_donor_pool(self, sample_panel, predictors):
        """An empty donor pool is infeasible."""
        with pytest.raises(OptimizationError):
            fit(sample_panel, "COD", [], predictors, PRE, PRE)

    def test_outcome_as_predictor(self, sample_panel, predictors):
        """The outcome may only enter through outcome lags."""
        with pytest.raises(ValueError, match="outcome_lags"):
            fit(sample_panel, "COD", DONORS, predictors + ["gdp_per_capita"], PRE, PRE)

    def test_duplicate_predictors(self, sample_panel):
        """Predictor names must be distinct."""
        with pytest.raises(ValueError, match="duplicates"):
            fit(sample_panel, "COD", DONORS, ["birth_rate", "birth_rate"], PRE, PRE)

    def test_no_predictors(self, sample_panel):
        """At least one predictor is needed."""
        with pytest.raises(ValueError):
            fit(sample_panel, "COD", DONORS, [], PRE, PRE)

    def test_empty_window(self, sample_panel, predictors):
        """Windows cannot be empty."""
        with pytest.raises(ValueError, match="optimize_window"):
            fit(sample_panel, "COD", DONORS, predictors, PRE, [])


class TestEvaluate:
    """Tests for the evaluate function."""

    @pytest.fixture
    def solution(self, sample_panel, predictors):
        return fit(sample_panel, "COD", DONORS, predictors, PRE, PRE)

    def test_returns_counterfactual(self, sample_panel, solution):
        """Should return a Counterfactual."""
        result = evaluate(sample_panel, "COD", DONORS, solution, PLOT)
        assert isinstance(result, Counterfactual)

    def test_series_cover_plot_window(self, sample_panel, solution):
        """Every series should have one ascending entry per plot year."""
        result = evaluate(sample_panel, "COD", DONORS, solution, list(reversed(PLOT)))
        for series in result:
            assert list(series.index) == PLOT

    def test_gap_calculation(self, sample_panel, solution):
        """Effect should equal actual minus synthetic."""
        result = evaluate(sample_panel, "COD", DONORS, solution, PLOT)
        pd.testing.assert_series_equal(
            result.effect,
            result.actual - result.synthetic,
            check_names=False,
        )

    def test_synthetic_is_weighted_donors(self, sample_panel, solution):
        """Synthetic outcome should be the donor-weighted outcome."""
        result = evaluate(sample_panel, "COD", DONORS, solution, PLOT)
        expected = sum(
            solution.donor_weights[d] * sample_panel.value(d, 2020, "gdp_per_capita")
            for d in DONORS
        )
        assert np.isclose(result.synthetic.loc[2020], expected)

    def test_idempotent(self, sample_panel, solution):
        """Evaluating twice should give identical effects."""
        first = evaluate(sample_panel, "COD", DONORS, solution, PLOT)
        second = evaluate(sample_panel, "COD", DONORS, solution, PLOT)
        pd.testing.assert_series_equal(first.effect, second.effect)

    def test_donor_order_irrelevant(self, sample_panel, solution):
        """Donors are matched to weights by name."""
        first = evaluate(sample_panel, "COD", DONORS, solution, PLOT)
        second = evaluate(sample_panel, "COD", list(reversed(DONORS)), solution, PLOT)
        pd.testing.assert_series_equal(first.synthetic, second.synthetic)

    def test_mismatched_donors(self, sample_panel, solution):
        """Donors must match the fitted weights."""
        with pytest.raises(ValueError, match="Donor pool"):
            evaluate(sample_panel, "COD", DONORS[:2], solution, PLOT)

    def test_missing_outcome(self, sample_panel, solution):
        """Years outside the data should raise."""
        with pytest.raises(MissingDataError):
            evaluate(sample_panel, "COD", DONORS, solution, [2030])

    def test_treatment_effect_direction(self, sample_panel, solution):
        """The DRC should show a negative gap after its simulated slowdown."""
        result = evaluate(sample_panel, "COD", DONORS, solution, PLOT)
        post_gap = result.effect[result.effect.index >= 2018]
        assert post_gap.mean() < 0

    def test_exact_copy_effect(self, copy_panel):
        """Effect should be zero before treatment and -20 after."""
        donors = [1, 2, 3]
        solution = fit(copy_panel, 0, donors, ["x_a", "x_b", "x_c"], COPY_PRE, COPY_PRE)
        result = evaluate(copy_panel, 0, donors, solution, COPY_PLOT)

        np.testing.assert_allclose(result.effect.loc[2013:2020], 0.0, atol=0.05)
        np.testing.assert_allclose(result.effect.loc[2021:2023], -20.0, atol=0.05)
