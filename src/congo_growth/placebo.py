"""
Placebo-in-space inference for the synthetic control estimate.

Every unit in the sample is treated in turn as if it had received the
intervention. Units are ranked by their post/pre MSPE ratio and the treated
unit's rank gives an exact permutation p-value.
"""

from typing import Hashable, NamedTuple, Sequence

import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from tqdm import tqdm

from .config import DEGENERATE_MSPE_TOL, QP_MAX_ITER
from .exceptions import DegenerateFitError, MissingDataError, OptimizationError
from .logger import logger
from .panel import Panel
from .synthetic_control import Counterfactual, WeightSolution, evaluate, fit

ZERO_PRE_MSPE_POLICIES = ("raise", "inf", "exclude")


class PlaceboFit(NamedTuple):
    """SCM fit of one unit treated as if it received the intervention."""

    unit: Hashable
    solution: WeightSolution
    counterfactual: Counterfactual
    pre_mspe: float
    post_mspe: float
    ratio: float


class PlaceboResult(NamedTuple):
    """Container for placebo inference results."""

    treated: Hashable
    fits: dict  # unit -> PlaceboFit, ranked units only
    ranking: pd.DataFrame  # pre_mspe, post_mspe, ratio, rank; descending ratio
    excluded: dict  # unit -> reason
    p_value: float  # NaN if the treated unit was excluded

    @property
    def complete(self) -> bool:
        return not self.excluded


def mspe(effect: pd.Series, years: Sequence[int]) -> float:
    """Mean squared prediction error of an effect series over some years."""
    return float(np.mean(effect.loc[list(years)].to_numpy() ** 2))


def pre_post_mspe(effect: pd.Series, treatment_year: int) -> tuple[float, float]:
    """
    Split an effect series at the treatment year and compute MSPE on each side.

    Raises:
        ValueError: If either side is empty
    """
    pre_years = [y for y in effect.index if y < treatment_year]
    post_years = [y for y in effect.index if y >= treatment_year]

    if not pre_years or not post_years:
        raise ValueError(
            f"Treatment year {treatment_year} must split the window into "
            f"non-empty pre and post periods"
        )

    return mspe(effect, pre_years), mspe(effect, post_years)


def mspe_ratio(pre: float, post: float) -> float:
    """Post/pre MSPE ratio; infinite when the pre-treatment fit is perfect."""
    if pre <= DEGENERATE_MSPE_TOL:
        return np.inf
    return post / pre


def _fit_placebo_unit(
    unit: Hashable,
    universe: list,
    panel: Panel,
    predictor_vars: Sequence[str],
    predictors_prior: Sequence[int],
    optimize_window: Sequence[int],
    plot_window: Sequence[int],
    treatment_year: int,
    max_iter: int,
) -> tuple[Hashable, PlaceboFit | None, str | None]:
    donors = [u for u in universe if u != unit]

    try:
        solution = fit(
            panel,
            unit,
            donors,
            predictor_vars,
            predictors_prior,
            optimize_window,
            max_iter=max_iter,
        )
        counterfactual = evaluate(panel, unit, donors, solution, plot_window)
    except (OptimizationError, MissingDataError) as e:
        return unit, None, f"{type(e).__name__}: {e}"

    pre, post = pre_post_mspe(counterfactual.effect, treatment_year)

    ratio = mspe_ratio(pre, post)

    return unit, PlaceboFit(unit, solution, counterfactual, pre, post, ratio), None


def run_placebo(
    panel: Panel,
    treated_unit: Hashable,
    donor_pool: Sequence[Hashable],
    predictor_vars: Sequence[str],
    predictors_prior: Sequence[int],
    optimize_window: Sequence[int],
    plot_window: Sequence[int],
    treatment_year: int,
    on_zero_pre_mspe: str = "raise",
    n_jobs: int = 1,
    max_iter: int = QP_MAX_ITER,
) -> PlaceboResult:
    """
    Run placebo tests by applying SCM to every unit in the sample.

    Args:
        panel: Panel dataset
        treated_unit: The actually treated unit
        donor_pool: Control units
        predictor_vars: Fixed predictor set used for every fit
        predictors_prior: Years over which predictors are averaged
        optimize_window: Years over which the outcome fit is minimized
        plot_window: Years the effect series is computed on
        treatment_year: First post-treatment year
        on_zero_pre_mspe: What to do when a unit's pre-treatment MSPE is zero:
            "raise" raises DegenerateFitError, "inf" ranks it with an infinite
            ratio, "exclude" drops it and records why
        n_jobs: 1 runs serially, anything else uses a joblib thread pool
        max_iter: Iteration cap for each donor-weight solve

    Returns:
        PlaceboResult with the ratio ranking, the exclusions and the p-value

    Raises:
        ValueError: If arguments are inconsistent
        DegenerateFitError: If a pre-treatment MSPE is zero under "raise"
    """
    if on_zero_pre_mspe not in ZERO_PRE_MSPE_POLICIES:
        raise ValueError(
            f"on_zero_pre_mspe must be one of {ZERO_PRE_MSPE_POLICIES}, "
            f"got '{on_zero_pre_mspe}'"
        )

    donors = list(donor_pool)
    if treated_unit in donors:
        raise ValueError(f"Treated unit '{treated_unit}' is also in the donor pool")

    years = sorted(int(y) for y in plot_window)
    if not any(y < treatment_year for y in years) or not any(
        y >= treatment_year for y in years
    ):
        raise ValueError(
            f"Treatment year {treatment_year} must split the plot window"
        )

    universe = [treated_unit, *donors]
    args = (
        universe,
        panel,
        list(predictor_vars),
        predictors_prior,
        optimize_window,
        years,
        treatment_year,
        max_iter,
    )

    if n_jobs == 1:
        outcomes = [
            _fit_placebo_unit(unit, *args)
            for unit in tqdm(universe, desc="Placebo tests")
        ]
    else:
        outcomes = Parallel(n_jobs=n_jobs, prefer="threads")(
            delayed(_fit_placebo_unit)(unit, *args) for unit in universe
        )

    fits = {}
    excluded = {}

    for unit, placebo_fit, reason in outcomes:
        if placebo_fit is None:
            excluded[unit] = reason
            continue

        if np.isinf(placebo_fit.ratio):
            if on_zero_pre_mspe == "raise":
                raise DegenerateFitError(
                    "Pre-treatment MSPE is zero, post/pre ratio is undefined",
                    unit=unit,
                    predictors=predictor_vars,
                )
            if on_zero_pre_mspe == "exclude":
                excluded[unit] = "DegenerateFitError: pre-treatment MSPE is zero"
                continue

        fits[unit] = placebo_fit

    for unit, reason in excluded.items():
        logger.warning(f"Placebo unit {unit} excluded from ranking: {reason}")

    ranking = pd.DataFrame(
        {
            "pre_mspe": [f.pre_mspe for f in fits.values()],
            "post_mspe": [f.post_mspe for f in fits.values()],
            "ratio": [f.ratio for f in fits.values()],
        },
        index=pd.Index(list(fits), name="unit"),
    )
    # "max" counts every unit tied with a ratio as ranked at or above it
    ranking["rank"] = ranking["ratio"].rank(ascending=False, method="max")
    ranking = ranking.sort_values(["rank", "ratio"], ascending=[True, False], kind="stable")

    if treated_unit in fits:
        p_value = float(ranking.loc[treated_unit, "rank"] / len(ranking))
    else:
        p_value = float("nan")
        logger.error(f"Treated unit {treated_unit} could not be ranked; p-value undefined")

    logger.info(
        f"Placebo ranking: {len(ranking)} of {len(universe)} units ranked, "
        f"p-value {p_value:.3f}"
    )

    return PlaceboResult(
        treated=treated_unit,
        fits=fits,
        ranking=ranking,
        excluded=excluded,
        p_value=p_value,
    )


def yearly_p_values(
    result: PlaceboResult,
    years: Sequence[int] | None = None,
    treatment_year: int | None = None,
) -> pd.Series:
    """
    Compute per-year p-values for the treatment effect.

    P-value = share of ranked units whose |gap| is at least the treated unit's

    Args:
        result: Output of run_placebo
        years: Years to compute p-values for
        treatment_year: Used to default years to the post-treatment period

    Returns:
        Series of p-values by year
    """
    if result.treated not in result.fits:
        raise ValueError(f"Treated unit {result.treated} has no placebo fit")

    treated_gap = result.fits[result.treated].counterfactual.effect

    if years is None:
        if treatment_year is None:
            raise ValueError("Either years or treatment_year is required")
        years = [y for y in treated_gap.index if y >= treatment_year]

    p_values = {}

    for year in years:
        target = abs(treated_gap.loc[year])

        n_larger = sum(
            1
            for placebo_fit in result.fits.values()
            if abs(placebo_fit.counterfactual.effect.loc[year]) >= target
        )

        p_values[year] = n_larger / len(result.fits)

    return pd.Series(p_values, name="p_value")
