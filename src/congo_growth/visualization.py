"""
Figures and tables for the DRC growth report.
"""

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
from matplotlib.ticker import FuncFormatter

from .config import (
    COUNTRY_NAMES,
    HP_LAMBDA,
    TREATED_COUNTRY,
    TREATMENT_YEAR,
    WEIGHT_DISPLAY_THRESHOLD,
)
from .placebo import PlaceboResult
from .predictor_search import SearchResult
from .robustness import LeaveOneOutResult
from .synthetic_control import Counterfactual, WeightSolution


def setup_style():
    """Set up matplotlib style for publication-quality figures."""
    plt.style.use("seaborn-v0_8-whitegrid")
    plt.rcParams.update({
        "figure.figsize": (10, 6),
        "figure.dpi": 100,
        "font.size": 11,
        "axes.labelsize": 12,
        "axes.titlesize": 14,
        "legend.fontsize": 10,
        "xtick.labelsize": 10,
        "ytick.labelsize": 10,
        "lines.linewidth": 2,
    })


def dollar_formatter(x, pos):
    """Format axis ticks as dollars."""
    return f"${x:,.0f}"


def _finish(fig, save_path):
    fig.tight_layout()
    if save_path:
        fig.savefig(save_path, dpi=300, bbox_inches="tight")


def hp_filter(series: pd.Series, lamb: float = HP_LAMBDA) -> pd.Series:
    """
    Apply Hodrick-Prescott filter to extract trend.

    Args:
        series: Time series data
        lamb: Smoothing parameter (100 for annual data)

    Returns:
        Trend component
    """
    from statsmodels.tsa.filters.hp_filter import hpfilter
    cycle, trend = hpfilter(series.dropna(), lamb=lamb)
    return trend


def plot_counterfactual(
    result: Counterfactual,
    treated_unit: str = TREATED_COUNTRY,
    treatment_year: int = TREATMENT_YEAR,
    title: str = "GDP per capita",
    save_path: str | None = None,
):
    """
    Plot actual against synthetic outcome.

    Args:
        result: Counterfactual from evaluate
        treated_unit: ISO3 code used in the legend
        treatment_year: Year marked with a vertical line
        title: Plot title
        save_path: Path to save figure
    """
    setup_style()
    fig, ax = plt.subplots(figsize=(10, 7))

    name = COUNTRY_NAMES.get(treated_unit, treated_unit)
    years = result.actual.index

    ax.plot(years, result.actual, "b-", label=f"Real {name}", linewidth=2.5)
    ax.plot(years, result.synthetic, "r--", label=f"Synthetic {name}", linewidth=2)

    ax.axvline(x=treatment_year, color="black", linestyle=":", alpha=0.7)

    # Annotations for end values
    final_year = years[-1]
    for series in (result.synthetic, result.actual):
        ax.annotate(
            f"${series.iloc[-1]:,.0f}",
            xy=(final_year, series.iloc[-1]),
            xytext=(final_year + 0.3, series.iloc[-1]),
            fontsize=10,
        )

    ax.set_xlabel("Year")
    ax.set_ylabel("Real GDP per capita constant 2015 US$")
    ax.set_title(title)
    ax.legend(loc="upper left")
    ax.yaxis.set_major_formatter(FuncFormatter(dollar_formatter))

    _finish(fig, save_path)

    return fig, ax


def plot_counterfactual_trend(
    result: Counterfactual,
    treated_unit: str = TREATED_COUNTRY,
    treatment_year: int = TREATMENT_YEAR,
    title: str = "GDP per capita (HP filtered trends)",
    save_path: str | None = None,
):
    """Plot HP filtered trends of the actual and synthetic outcome."""
    setup_style()
    fig, ax = plt.subplots(figsize=(10, 7))

    name = COUNTRY_NAMES.get(treated_unit, treated_unit)

    actual_trend = hp_filter(result.actual)
    synthetic_trend = hp_filter(result.synthetic)

    ax.plot(actual_trend.index, actual_trend, "b-", label=f"Real {name} Trend", linewidth=2.5)
    ax.plot(
        synthetic_trend.index,
        synthetic_trend,
        "r--",
        label=f"Synthetic {name} Trend",
        linewidth=2,
    )

    ax.axvline(x=treatment_year, color="black", linestyle=":", alpha=0.7)

    ax.set_xlabel("Year")
    ax.set_ylabel("Real GDP per capita constant 2015 US$")
    ax.set_title(title)
    ax.legend(loc="upper left")
    ax.yaxis.set_major_formatter(FuncFormatter(dollar_formatter))

    _finish(fig, save_path)

    return fig, ax


def plot_placebo_gaps(
    result: PlaceboResult,
    treatment_year: int = TREATMENT_YEAR,
    title: str = "Country placebo tests",
    save_path: str | None = None,
):
    """
    Plot the effect series of every ranked placebo unit.

    Args:
        result: PlaceboResult from run_placebo
        treatment_year: Year marked with a vertical line
        title: Plot title
        save_path: Path to save figure
    """
    setup_style()
    fig, ax = plt.subplots(figsize=(10, 7))

    # Plot all placebos in gray
    for unit, placebo_fit in result.fits.items():
        if unit != result.treated:
            gap = placebo_fit.counterfactual.effect
            ax.plot(gap.index, gap, color="gray", alpha=0.3, linewidth=1)

    # Plot treated unit in bold
    if result.treated in result.fits:
        gap = result.fits[result.treated].counterfactual.effect
        ax.plot(
            gap.index,
            gap,
            "b-",
            linewidth=2.5,
            label=COUNTRY_NAMES.get(result.treated, result.treated),
        )

    ax.axvline(x=treatment_year, color="black", linestyle=":", alpha=0.7)
    ax.axhline(y=0, color="black", alpha=0.3)

    if not result.complete:
        title = f"{title} (INCOMPLETE: {len(result.excluded)} excluded)"

    ax.set_xlabel("Year")
    ax.set_ylabel("Deviations = Effective - Synthetic")
    ax.set_title(title)
    ax.legend(loc="upper left")

    _finish(fig, save_path)

    return fig, ax


def plot_mspe_ratios(
    result: PlaceboResult,
    title: str = "Post/pre MSPE ratios",
    save_path: str | None = None,
):
    """Horizontal bar chart of the placebo ranking, treated unit highlighted."""
    setup_style()
    ranking = result.ranking.iloc[::-1]

    fig, ax = plt.subplots(figsize=(10, max(4, 0.35 * len(ranking))))

    infinite = np.isinf(ranking["ratio"]).to_numpy()
    finite = ranking["ratio"][~infinite]
    # Perfect pre-treatment fits are drawn at the largest finite ratio
    cap = finite.max() if len(finite) else 1.0
    ratios = ranking["ratio"].where(~infinite, cap)

    colors = ["darkblue" if u == result.treated else "gray" for u in ranking.index]
    labels = [COUNTRY_NAMES.get(u, str(u)) for u in ranking.index]

    bars = ax.barh(labels, ratios, color=colors, alpha=0.8)

    for bar, is_inf in zip(bars, infinite):
        if is_inf:
            ax.annotate(
                "∞",
                xy=(bar.get_width(), bar.get_y() + bar.get_height() / 2),
                xytext=(4, 0),
                textcoords="offset points",
                va="center",
                fontweight="bold",
            )

    title = f"{title} (p = {result.p_value:.3f})"
    if not result.complete:
        title = f"{title} (INCOMPLETE: {len(result.excluded)} excluded)"

    ax.set_xlabel("Post-treatment MSPE / Pre-treatment MSPE")
    ax.set_title(title)

    _finish(fig, save_path)

    return fig, ax


def plot_p_values(
    p_values: pd.Series,
    treatment_effect: pd.Series,
    title: str = "Effects of treatment and p-values",
    save_path: str | None = None,
):
    """
    Plot treatment effects with per-year p-values.

    Args:
        p_values: Series of p-values by year
        treatment_effect: Series of treatment effects (gaps)
        title: Plot title
        save_path: Path to save figure
    """
    setup_style()
    fig, ax = plt.subplots(figsize=(10, 6))

    years = list(p_values.index)

    colors = ["gray" if p > 0.1 else "darkblue" for p in p_values.loc[years]]
    bars = ax.bar(years, treatment_effect.loc[years], color=colors, alpha=0.8)

    for year, bar in zip(years, bars):
        ax.annotate(
            f"{p_values.loc[year]:.2f}",
            xy=(bar.get_x() + bar.get_width() / 2, bar.get_height() / 2),
            ha="center",
            va="center",
            fontsize=10,
            fontweight="bold",
        )

    ax.axhline(y=0, color="black", alpha=0.3)
    ax.set_xlabel("Post-Treatment Years")
    ax.set_ylabel("Effect (actual - synthetic)")
    ax.set_title(title)

    _finish(fig, save_path)

    return fig, ax


def plot_search_rmse(
    result: SearchResult,
    title: str = "Randomized predictor search",
    save_path: str | None = None,
):
    """Scatter of pre-treatment RMSE by trial, with the running minimum."""
    setup_style()
    fig, ax = plt.subplots(figsize=(10, 6))

    trials = [t.trial for t in result.trials]
    rmse = pd.Series([t.rmse for t in result.trials], index=trials)

    ax.scatter(trials, rmse, color="gray", alpha=0.6, label="Trial")
    ax.plot(trials, rmse.cummin(), "r-", label="Best so far")

    if not result.complete:
        title = f"{title} (INCOMPLETE: {len(result.failed)} trials failed)"

    ax.set_xlabel("Trial")
    ax.set_ylabel("Pre-treatment RMSE")
    ax.set_title(title)
    ax.legend(loc="upper right")

    _finish(fig, save_path)

    return fig, ax


def plot_leave_one_out(
    result: LeaveOneOutResult,
    treatment_year: int = TREATMENT_YEAR,
    title: str = "Leave-one-out synthetic controls",
    save_path: str | None = None,
):
    """
    Plot leave-one-out robustness test results.

    Args:
        result: LeaveOneOutResult from leave_one_out
        treatment_year: Year marked with a vertical line
        title: Plot title
        save_path: Path to save figure
    """
    setup_style()
    fig, ax = plt.subplots(figsize=(10, 7))

    full = result.full.counterfactual

    for unit, refit in result.dropped.items():
        ax.plot(
            refit.counterfactual.synthetic.index,
            refit.counterfactual.synthetic,
            color="gray",
            alpha=0.5,
            linewidth=1,
        )

    ax.plot(full.actual.index, full.actual, "b-", linewidth=2.5, label="Real")
    ax.plot(full.synthetic.index, full.synthetic, "r--", linewidth=2, label="Synthetic")

    ax.axvline(x=treatment_year, color="black", linestyle=":", alpha=0.7)

    ax.set_xlabel("Year")
    ax.set_ylabel("Real GDP per capita constant 2015 US$")
    ax.set_title(title)
    ax.legend(loc="upper left")
    ax.yaxis.set_major_formatter(FuncFormatter(dollar_formatter))

    _finish(fig, save_path)

    return fig, ax


def weights_table(
    solution: WeightSolution,
    threshold: float = WEIGHT_DISPLAY_THRESHOLD,
) -> pd.DataFrame:
    """Donor weights above threshold, largest first, with country names."""
    weights = solution.donor_weights
    weights = weights[weights > threshold].sort_values(ascending=False)

    return pd.DataFrame({
        "country": [COUNTRY_NAMES.get(u, u) for u in weights.index],
        "weight": weights.values,
    }, index=weights.index)


def placebo_table(result: PlaceboResult) -> pd.DataFrame:
    """Placebo ranking with country names and the exclusions appended."""
    table = result.ranking.copy()
    table.insert(0, "country", [COUNTRY_NAMES.get(u, u) for u in table.index])
    table["excluded"] = ""

    if result.excluded:
        excluded = pd.DataFrame({
            "country": [COUNTRY_NAMES.get(u, u) for u in result.excluded],
            "excluded": list(result.excluded.values()),
        }, index=pd.Index(list(result.excluded), name=table.index.name))
        table = pd.concat([table, excluded])

    return table
