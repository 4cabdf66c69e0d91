"""Robustness checks: leave-one-out donor pools and in-time placebos."""

from typing import Hashable, NamedTuple, Sequence

from tqdm import tqdm

from .config import QP_MAX_ITER, WEIGHT_DISPLAY_THRESHOLD
from .exceptions import MissingDataError, OptimizationError
from .logger import logger
from .panel import Panel
from .synthetic_control import Counterfactual, WeightSolution, evaluate, fit


class SCMFit(NamedTuple):
    solution: WeightSolution
    counterfactual: Counterfactual


class LeaveOneOutResult(NamedTuple):
    full: SCMFit
    dropped: dict  # dropped donor -> SCMFit
    excluded: dict  # dropped donor -> reason the refit failed


def leave_one_out(
    panel: Panel,
    treated_unit: Hashable,
    donor_pool: Sequence[Hashable],
    predictor_vars: Sequence[str],
    predictors_prior: Sequence[int],
    optimize_window: Sequence[int],
    plot_window: Sequence[int],
    threshold: float = WEIGHT_DISPLAY_THRESHOLD,
    max_iter: int = QP_MAX_ITER,
) -> LeaveOneOutResult:
    """
    Run leave-one-out (jackknife) robustness test.

    Drops each donor with weight above threshold and re-estimates.

    Returns:
        LeaveOneOutResult with the full fit, one refit per dropped donor and
        the refits that failed
    """
    donors = list(donor_pool)

    solution = fit(
        panel, treated_unit, donors, predictor_vars, predictors_prior,
        optimize_window, max_iter=max_iter,
    )
    full = SCMFit(solution, evaluate(panel, treated_unit, donors, solution, plot_window))

    weights = solution.donor_weights
    positive_weight_donors = weights[weights > threshold].index.tolist()

    dropped = {}
    excluded = {}

    for drop_unit in tqdm(positive_weight_donors, desc="Leave-one-out"):
        new_donors = [d for d in donors if d != drop_unit]

        try:
            refit = fit(
                panel, treated_unit, new_donors, predictor_vars,
                predictors_prior, optimize_window, max_iter=max_iter,
            )
            dropped[drop_unit] = SCMFit(
                refit, evaluate(panel, treated_unit, new_donors, refit, plot_window)
            )
        except (OptimizationError, MissingDataError) as e:
            logger.warning(f"Failed leave-one-out w/o {drop_unit}: {e}")
            excluded[drop_unit] = f"{type(e).__name__}: {e}"

    return LeaveOneOutResult(full=full, dropped=dropped, excluded=excluded)


def in_time_placebo(
    panel: Panel,
    treated_unit: Hashable,
    donor_pool: Sequence[Hashable],
    predictor_vars: Sequence[str],
    placebo_year: int,
    predictors_prior: Sequence[int],
    optimize_window: Sequence[int],
    plot_window: Sequence[int],
    max_iter: int = QP_MAX_ITER,
) -> SCMFit:
    """
    Run in-time placebo test with an earlier, fake treatment year.

    Both fitting windows are cut to the years before placebo_year.

    Raises:
        ValueError: If no fitting years remain before placebo_year
    """
    prior = [y for y in predictors_prior if y < placebo_year]
    window = [y for y in optimize_window if y < placebo_year]

    if not prior or not window:
        raise ValueError(f"No fitting years before placebo year {placebo_year}")

    solution = fit(
        panel, treated_unit, donor_pool, predictor_vars, prior, window,
        max_iter=max_iter,
    )

    return SCMFit(solution, evaluate(panel, treated_unit, donor_pool, solution, plot_window))
