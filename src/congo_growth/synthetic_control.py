"""
Synthetic Control Method estimation for the DRC growth report.
Based on Abadie, Diamond & Hainmueller (2010, 2015) and Abadie (2021).
"""

from typing import Hashable, NamedTuple, Sequence

import cvxpy as cp
import numpy as np
import pandas as pd
from scipy.optimize import minimize

from .config import OUTER_MAXITER, QP_MAX_ITER
from .exceptions import OptimizationError
from .logger import logger
from .panel import Panel


class WeightSolution(NamedTuple):
    """Container for fitted SCM weights."""

    treated: Hashable  # Unit the weights were fitted for
    donor_weights: pd.Series  # Donor weights w (J x 1), on the simplex
    predictor_weights: pd.Series  # Predictor importance weights v (K x 1), sum to 1
    rmse: float  # Pre-treatment RMSE over the optimization window
    predictor_balance: pd.DataFrame  # Predictor balance table
    converged: bool = True  # False if the predictor-weight search stopped early


class Counterfactual(NamedTuple):
    """Actual and synthetic outcome paths, indexed by year."""

    actual: pd.Series
    synthetic: pd.Series
    effect: pd.Series  # Treatment effect (actual - synthetic)


class DonorWeightSolver:
    """
    Donor-weight quadratic program for one treated unit and donor pool.

    Minimizes: sum_k v_k * (X1_k - (X0 @ W)_k)^2
    Subject to: W >= 0, sum(W) = 1

    The cvxpy problem is compiled once with v as a parameter and re-solved
    for every candidate v of the outer search.

    Args:
        X0: Predictor matrix for control units (K x J)
        X1: Predictor vector for treated unit (K,)
        max_iter: Iteration cap for each solve
        **context: unit/predictors attached to any OptimizationError
    """

    def __init__(
        self,
        X0: np.ndarray,
        X1: np.ndarray,
        max_iter: int = QP_MAX_ITER,
        **context,
    ):
        K, J = X0.shape
        self.context = context
        self.max_iter = max_iter

        if J == 0:
            raise OptimizationError(
                "Donor pool is empty, weight problem is infeasible", **context
            )

        self.n_donors = J

        self._sqrt_v = cp.Parameter(K, nonneg=True)
        self._W = cp.Variable(J)

        diff = X1 - X0 @ self._W
        objective = cp.sum_squares(cp.multiply(self._sqrt_v, diff))

        constraints = [
            self._W >= 0,
            cp.sum(self._W) == 1,
        ]

        self._problem = cp.Problem(cp.Minimize(objective), constraints)

    def solve(self, v: np.ndarray) -> np.ndarray:
        """Return donor weights W (J,) for predictor weights v (K,)."""
        # The simplex has a single point
        if self.n_donors == 1:
            return np.ones(1)

        self._sqrt_v.value = np.sqrt(np.clip(v, 0, None))

        try:
            self._problem.solve(solver=cp.CLARABEL, max_iter=self.max_iter)
        except cp.SolverError as e:
            raise OptimizationError(
                f"Donor-weight solver failed: {e}", **self.context
            ) from e

        status = self._problem.status
        if status not in (cp.OPTIMAL, cp.OPTIMAL_INACCURATE) or self._W.value is None:
            raise OptimizationError(
                f"Donor-weight problem ended with status '{status}' "
                f"(max_iter={self.max_iter})",
                **self.context,
            )

        W = np.clip(self._W.value, 0, None)
        return W / W.sum()


def solve_weights(
    X0: np.ndarray,
    X1: np.ndarray,
    V: np.ndarray,
    max_iter: int = QP_MAX_ITER,
) -> np.ndarray:
    """
    Solve for optimal synthetic control weights given predictor weights V.

    Args:
        X0: Predictor matrix for control units (K x J)
        X1: Predictor vector for treated unit (K,)
        V: Predictor weights, either a vector (K,) or diagonal matrix (K x K)
        max_iter: Solver iteration cap

    Returns:
        Optimal weights W (J,)

    Raises:
        OptimizationError: If the problem is infeasible or not solved
    """
    V = np.asarray(V, dtype=float)
    v = np.diag(V) if V.ndim == 2 else V

    return DonorWeightSolver(X0, X1, max_iter=max_iter).solve(v)


def compute_rmspe(
    Y0: np.ndarray,
    Y1: np.ndarray,
    W: np.ndarray,
) -> float:
    """
    Compute Root Mean Square Prediction Error.

    Args:
        Y0: Outcome matrix for control units (T x J)
        Y1: Outcome vector for treated unit (T,)
        W: Synthetic control weights (J,)

    Returns:
        RMSPE value
    """
    synthetic = Y0 @ W
    errors = Y1 - synthetic
    return float(np.sqrt(np.mean(errors**2)))


def outer_objective(
    v: np.ndarray,
    solver: DonorWeightSolver,
    Y0_pre: np.ndarray,
    Y1_pre: np.ndarray,
) -> float:
    """Pre-treatment RMSPE of the inner optimum for predictor weights v."""
    W = solver.solve(v)
    return compute_rmspe(Y0_pre, Y1_pre, W)


def standardize_predictors(
    X0: np.ndarray,
    X1: np.ndarray,
) -> tuple[np.ndarray, np.ndarray]:
    """Scale each predictor row to zero mean and unit spread across units."""
    X_all = np.hstack([X0, X1.reshape(-1, 1)])
    X_mean = X_all.mean(axis=1)
    X_std = X_all.std(axis=1)
    X_std[X_std == 0] = 1

    X0_norm = (X0 - X_mean.reshape(-1, 1)) / X_std.reshape(-1, 1)
    X1_norm = (X1 - X_mean) / X_std

    return X0_norm, X1_norm


def predictor_matrix(
    panel: Panel,
    units: Sequence[Hashable],
    predictor_vars: Sequence[str],
    predictors_prior: Sequence[int],
    outcome_lags: Sequence[int] = (),
) -> pd.DataFrame:
    """
    Predictor values per unit: means over the prior window plus outcome lags.

    Returns:
        Predictors x units frame
    """
    X = panel.means(units, predictor_vars, predictors_prior)

    if len(outcome_lags):
        lags = panel.matrix(units, outcome_lags, panel.outcome)
        lags.index = [f"{panel.outcome}_{year}" for year in lags.index]
        X = pd.concat([X, lags])

    return X


def _check_inputs(
    panel: Panel,
    treated_unit: Hashable,
    donors: list,
    predictors: list[str],
    windows: dict[str, Sequence[int]],
) -> None:
    if treated_unit in donors:
        raise ValueError(f"Treated unit '{treated_unit}' is also in the donor pool")

    if len(set(donors)) != len(donors):
        raise ValueError("Donor pool contains duplicates")

    if not predictors:
        raise ValueError("At least one predictor is required")

    if len(set(predictors)) != len(predictors):
        raise ValueError(f"Predictor set contains duplicates: {predictors}")

    if panel.outcome in predictors:
        raise ValueError(
            f"Outcome '{panel.outcome}' cannot be a predictor; use outcome_lags"
        )

    for name, years in windows.items():
        if len(years) == 0:
            raise ValueError(f"Window '{name}' is empty")


def fit(
    panel: Panel,
    treated_unit: Hashable,
    donor_pool: Sequence[Hashable],
    predictor_vars: Sequence[str],
    predictors_prior: Sequence[int],
    optimize_window: Sequence[int],
    outcome_lags: Sequence[int] = (),
    max_iter: int = QP_MAX_ITER,
    outer_maxiter: int = OUTER_MAXITER,
) -> WeightSolution:
    """
    Fit predictor weights v and donor weights w for one treated unit.

    The inner problem matches the treated unit's standardized predictors with
    a convex combination of donors under v; the outer problem picks v to
    minimize the outcome RMSE over the optimization window.

    Args:
        panel: Panel dataset
        treated_unit: Unit to build a synthetic control for
        donor_pool: Candidate control units
        predictor_vars: Predictor variable names (outcome excluded)
        predictors_prior: Years over which predictors are averaged
        optimize_window: Years over which the outcome fit is minimized
        outcome_lags: Years of the outcome added as extra predictors
        max_iter: Iteration cap for each donor-weight solve
        outer_maxiter: Iteration cap for the predictor-weight search

    Returns:
        WeightSolution with weights, fit error and balance table

    Raises:
        ValueError: If the inputs are inconsistent
        MissingDataError: If required observations are absent
        OptimizationError: If the weight problem is infeasible or unsolved
    """
    donors = list(donor_pool)
    predictors = list(predictor_vars)

    _check_inputs(
        panel,
        treated_unit,
        donors,
        predictors,
        {"predictors_prior": predictors_prior, "optimize_window": optimize_window},
    )

    context = {"unit": treated_unit, "predictors": predictors}

    if not donors:
        raise OptimizationError(
            "Donor pool is empty, weight problem is infeasible", **context
        )

    units = [treated_unit, *donors]
    panel.require(units, predictors_prior, predictors, **context)
    panel.require(units, optimize_window, [panel.outcome], **context)
    if len(outcome_lags):
        panel.require(units, outcome_lags, [panel.outcome], **context)

    # X0: K x J, X1: K (vectors of prior-window averages)
    X = predictor_matrix(panel, units, predictors, predictors_prior, outcome_lags)
    X1 = X[treated_unit].to_numpy(dtype=float)
    X0 = X[donors].to_numpy(dtype=float)

    X0_norm, X1_norm = standardize_predictors(X0, X1)

    Y = panel.matrix(units, optimize_window, panel.outcome)
    Y1_pre = Y[treated_unit].to_numpy()
    Y0_pre = Y[donors].to_numpy()

    K = X.shape[0]
    solver = DonorWeightSolver(X0_norm, X1_norm, max_iter=max_iter, **context)

    converged = True

    if K == 1 or solver.n_donors == 1:
        v_opt = np.ones(K) / K
    else:
        v0 = np.ones(K) / K

        result = minimize(
            outer_objective,
            v0,
            args=(solver, Y0_pre, Y1_pre),
            method="L-BFGS-B",
            bounds=[(0, 1)] * K,
            options={"maxiter": outer_maxiter},
        )

        converged = bool(result.success)
        if not result.success:
            logger.warning(
                f"Predictor-weight search for {treated_unit} did not converge: "
                f"{result.message}"
            )

        if result.x.sum() <= 0:
            raise OptimizationError("Predictor weights collapsed to zero", **context)

        v_opt = result.x / result.x.sum()

    W_opt = solver.solve(v_opt)
    rmse = compute_rmspe(Y0_pre, Y1_pre, W_opt)

    logger.debug(f"Fitted {treated_unit} on {len(donors)} donors: RMSE {rmse:.4f}")

    predictor_balance = pd.DataFrame(
        {
            "Actual": X1,
            "Synthetic": X0 @ W_opt,
            "Sample Mean": X0.mean(axis=1),
        },
        index=X.index,
    )

    return WeightSolution(
        treated=treated_unit,
        donor_weights=pd.Series(W_opt, index=donors, name="weight"),
        predictor_weights=pd.Series(v_opt, index=X.index, name="v"),
        rmse=rmse,
        predictor_balance=predictor_balance,
        converged=converged,
    )


def evaluate(
    panel: Panel,
    treated_unit: Hashable,
    donor_pool: Sequence[Hashable],
    solution: WeightSolution,
    plot_window: Sequence[int],
) -> Counterfactual:
    """
    Apply fitted donor weights over the full plotting window.

    Args:
        panel: Panel dataset
        treated_unit: Unit the solution was fitted for
        donor_pool: Donors of the solution
        solution: Output of fit
        plot_window: Years to evaluate

    Returns:
        Counterfactual with actual, synthetic and effect series in ascending
        year order

    Raises:
        ValueError: If donors do not match the solution
        MissingDataError: If an outcome observation is absent
    """
    donors = list(donor_pool)

    if len(donors) != len(solution.donor_weights) or set(donors) != set(
        solution.donor_weights.index
    ):
        raise ValueError("Donor pool does not match the fitted donor weights")

    years = sorted(int(y) for y in plot_window)
    Y = panel.matrix([treated_unit, *donors], years, panel.outcome)

    W = solution.donor_weights.reindex(donors).to_numpy()

    synthetic = pd.Series(Y[donors].to_numpy() @ W, index=Y.index, name="synthetic")
    actual = Y[treated_unit].rename("actual")

    gap = actual - synthetic
    gap.name = "effect"

    return Counterfactual(actual=actual, synthetic=synthetic, effect=gap)
