"""
Randomized search over predictor subsets.

Each trial draws a subset of the candidate predictors, fits the synthetic
control and records the pre-treatment RMSE. The subset with the lowest RMSE
wins; ties go to the earliest trial.
"""

from typing import Hashable, NamedTuple, Sequence

import numpy as np
from joblib import Parallel, delayed
from tqdm import tqdm

from .config import MIN_PREDICTORS, QP_MAX_ITER
from .exceptions import OptimizationError, SCMError
from .logger import logger
from .panel import Panel
from .synthetic_control import WeightSolution, fit


class TrialResult(NamedTuple):
    """Outcome of one search trial."""

    trial: int
    predictors: tuple[str, ...]
    rmse: float  # NaN when the fit failed
    error: str | None = None


class SearchResult(NamedTuple):
    """Container for the randomized predictor search."""

    best_predictors: tuple[str, ...]
    best_solution: WeightSolution
    best_rmse: float
    trials: list[TrialResult]

    @property
    def failed(self) -> list[TrialResult]:
        return [t for t in self.trials if t.error is not None]

    @property
    def complete(self) -> bool:
        return not self.failed


def draw_subsets(
    candidates: Sequence[str],
    iterations: int,
    rng: np.random.Generator,
    min_predictors: int = MIN_PREDICTORS,
) -> list[tuple[str, ...]]:
    """
    Draw predictor subsets for every trial.

    The subset size is uniform on [min(min_predictors, n), n] and the members
    are drawn without replacement. Subsets keep the candidate order.
    """
    n = len(candidates)
    low = min(min_predictors, n)

    subsets = []
    for _ in range(iterations):
        size = int(rng.integers(low, n + 1))
        chosen = np.sort(rng.choice(n, size=size, replace=False))
        subsets.append(tuple(candidates[i] for i in chosen))

    return subsets


def _run_trial(
    trial: int,
    predictors: tuple[str, ...],
    panel: Panel,
    treated_unit: Hashable,
    donors: list,
    predictors_prior: Sequence[int],
    optimize_window: Sequence[int],
    max_iter: int,
) -> tuple[TrialResult, WeightSolution | None]:
    try:
        solution = fit(
            panel,
            treated_unit,
            donors,
            predictors,
            predictors_prior,
            optimize_window,
            max_iter=max_iter,
        )
    except SCMError as e:
        e.trial = trial
        if not isinstance(e, OptimizationError):
            raise
        logger.warning(f"Search trial {trial} failed: {e}")
        return TrialResult(trial, predictors, float("nan"), str(e)), None

    return TrialResult(trial, predictors, solution.rmse), solution


def search(
    panel: Panel,
    treated_unit: Hashable,
    donor_pool: Sequence[Hashable],
    candidate_predictors: Sequence[str],
    iterations: int,
    rng: np.random.Generator | int,
    predictors_prior: Sequence[int],
    optimize_window: Sequence[int],
    min_predictors: int = MIN_PREDICTORS,
    n_jobs: int = 1,
    max_iter: int = QP_MAX_ITER,
) -> SearchResult:
    """
    Find the predictor subset with the lowest pre-treatment RMSE.

    Args:
        panel: Panel dataset
        treated_unit: Unit to build a synthetic control for
        donor_pool: Candidate control units
        candidate_predictors: Pool the subsets are drawn from
        iterations: Number of trials
        rng: Seeded numpy Generator, or an integer seed for one
        predictors_prior: Years over which predictors are averaged
        optimize_window: Years over which the outcome fit is minimized
        min_predictors: Smallest subset size drawn
        n_jobs: 1 runs serially, anything else uses a joblib thread pool
        max_iter: Iteration cap for each donor-weight solve

    Returns:
        SearchResult with the winning subset, its fit and every trial

    Raises:
        ValueError: If there are no candidates or no iterations
        MissingDataError: If a trial needs absent observations (with .trial set)
        OptimizationError: If every trial failed
    """
    candidates = list(candidate_predictors)
    donors = list(donor_pool)

    if not candidates:
        raise ValueError("candidate_predictors is empty")

    if iterations < 1:
        raise ValueError("iterations must be at least 1")

    if len(set(candidates)) != len(candidates):
        raise ValueError(f"Candidate predictors contain duplicates: {candidates}")

    if not isinstance(rng, np.random.Generator):
        rng = np.random.default_rng(rng)

    subsets = draw_subsets(candidates, iterations, rng, min_predictors)

    args = (panel, treated_unit, donors, predictors_prior, optimize_window, max_iter)

    if n_jobs == 1:
        outcomes = [
            _run_trial(i, subset, *args)
            for i, subset in enumerate(tqdm(subsets, desc="Predictor search"))
        ]
    else:
        # joblib returns results in submission order
        outcomes = Parallel(n_jobs=n_jobs, prefer="threads")(
            delayed(_run_trial)(i, subset, *args) for i, subset in enumerate(subsets)
        )

    trials = [trial for trial, _ in outcomes]

    best = None
    for trial, solution in outcomes:
        if solution is None:
            continue
        if best is None or trial.rmse < best[0].rmse:
            best = (trial, solution)

    if best is None:
        raise OptimizationError(
            f"All {iterations} search trials failed", unit=treated_unit
        )

    best_trial, best_solution = best

    n_failed = sum(1 for trial in trials if trial.error is not None)
    if n_failed:
        logger.warning(f"INCOMPLETE: {n_failed} of {iterations} search trials failed")

    logger.info(
        f"Best predictor set (trial {best_trial.trial}, RMSE {best_trial.rmse:.4f}): "
        f"{list(best_trial.predictors)}"
    )

    return SearchResult(
        best_predictors=best_trial.predictors,
        best_solution=best_solution,
        best_rmse=best_trial.rmse,
        trials=trials,
    )
