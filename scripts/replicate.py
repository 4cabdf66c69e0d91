#!/usr/bin/env python3
"""
Main script for the DRC corporate tax and growth report.

Usage:
    uv run replicate.py                       # Run full analysis
    uv run replicate.py --data-only           # Only fetch and save data
    uv run replicate.py --skip-search         # Fit on all candidate predictors
    uv run replicate.py --tax-path rates.csv  # Include corporate tax rates
"""

import argparse
from pathlib import Path

import pandas as pd

from congo_growth.logger import logger
from congo_growth.config import (
    CANDIDATE_PREDICTORS,
    COUNTRY_NAMES,
    DATA_DIR,
    DONOR_POOL,
    FIGURES_DIR,
    MIN_PREDICTORS,
    OPTIMIZE_WINDOW,
    PLOT_WINDOW,
    PREDICTORS_PRIOR,
    RANDOM_SEED,
    RESULTS_DIR,
    SEARCH_ITERATIONS,
    TREATED_COUNTRY,
    TREATMENT_YEAR,
)
from congo_growth.data_loader import assemble_panel_data, build_panel
from congo_growth.panel import Panel
from congo_growth.placebo import mspe_ratio, pre_post_mspe, run_placebo, yearly_p_values
from congo_growth.predictor_search import search
from congo_growth.robustness import in_time_placebo, leave_one_out
from congo_growth.synthetic_control import evaluate, fit
from congo_growth.visualization import (
    placebo_table,
    plot_counterfactual,
    plot_counterfactual_trend,
    plot_leave_one_out,
    plot_mspe_ratios,
    plot_p_values,
    plot_placebo_gaps,
    plot_search_rmse,
    weights_table,
)


def create_directories():
    """Create output directories."""
    (DATA_DIR / "raw").mkdir(parents=True, exist_ok=True)
    FIGURES_DIR.mkdir(parents=True, exist_ok=True)
    RESULTS_DIR.mkdir(parents=True, exist_ok=True)


def load_or_fetch_data(
    tax_path: str | None = None,
    force_refresh: bool = False,
) -> pd.DataFrame:
    """
    Load data from cache or fetch from sources.

    Args:
        tax_path: Path to corporate tax rate CSV
        force_refresh: If True, fetch fresh data even if cache exists

    Returns:
        Panel data with all countries and variables
    """
    data_path = DATA_DIR / "raw" / "panel_data.csv"

    if data_path.exists() and not force_refresh:
        logger.info(f"Loading cached data from {data_path}")
        return pd.read_csv(data_path)

    logger.info("Fetching data from sources...")
    return assemble_panel_data(tax_path=tax_path, save_path=data_path)


def available_predictors(panel: Panel) -> list[str]:
    """Candidate predictors present in the panel."""
    present = [p for p in CANDIDATE_PREDICTORS if p in panel.variables]
    skipped = sorted(set(CANDIDATE_PREDICTORS) - set(present))
    if skipped:
        logger.warning(f"Candidate predictors not in data: {skipped}")
    return present


def run_main_analysis(panel: Panel, args) -> dict:
    """
    Select predictors, fit the synthetic control and evaluate it.

    Returns:
        Dictionary with search, solution and counterfactual results
    """
    logger.info("\n" + "=" * 60)
    logger.info("SYNTHETIC CONTROL METHOD ANALYSIS")
    logger.info("=" * 60)

    candidates = available_predictors(panel)
    results = {}

    if args.skip_search:
        predictors = candidates
    else:
        logger.info(f"\nRandomized predictor search ({args.iterations} trials)...")
        search_result = search(
            panel,
            TREATED_COUNTRY,
            DONOR_POOL,
            candidates,
            iterations=args.iterations,
            rng=RANDOM_SEED,
            predictors_prior=PREDICTORS_PRIOR,
            optimize_window=OPTIMIZE_WINDOW,
            min_predictors=MIN_PREDICTORS,
            n_jobs=args.n_jobs,
        )
        results["search"] = search_result
        predictors = list(search_result.best_predictors)

        if not search_result.complete:
            logger.warning(
                f"   INCOMPLETE: {len(search_result.failed)} of {args.iterations} "
                f"search trials failed; best subset is over the remaining trials"
            )

    solution = fit(
        panel,
        TREATED_COUNTRY,
        DONOR_POOL,
        predictors,
        PREDICTORS_PRIOR,
        OPTIMIZE_WINDOW,
    )
    counterfactual = evaluate(panel, TREATED_COUNTRY, DONOR_POOL, solution, PLOT_WINDOW)

    results["predictors"] = predictors
    results["solution"] = solution
    results["counterfactual"] = counterfactual

    logger.info("\n" + "-" * 40)
    logger.info("OPTIMAL WEIGHTS")
    logger.info("-" * 40)
    logger.info(weights_table(solution).to_string())

    logger.info("\n" + "-" * 40)
    logger.info("PREDICTOR WEIGHTS")
    logger.info("-" * 40)
    logger.info(solution.predictor_weights.to_string())

    pre, post = pre_post_mspe(counterfactual.effect, TREATMENT_YEAR)
    logger.info("\n" + "-" * 40)
    logger.info("MODEL FIT")
    logger.info("-" * 40)
    logger.info(f"  Pre-treatment RMSE (optimize window): {solution.rmse:.2f}")
    logger.info(f"  Pre-treatment MSPE:  {pre:.2f}")
    logger.info(f"  Post-treatment MSPE: {post:.2f}")

    logger.info("\n" + "-" * 40)
    logger.info("TREATMENT EFFECT")
    logger.info("-" * 40)
    name = COUNTRY_NAMES[TREATED_COUNTRY]
    final_year = counterfactual.actual.index[-1]
    synthetic_final = counterfactual.synthetic.iloc[-1]
    gap_final = counterfactual.effect.iloc[-1]
    logger.info(f"  Year {final_year}:")
    logger.info(f"    Actual {name}:    ${counterfactual.actual.iloc[-1]:,.0f}")
    logger.info(f"    Synthetic {name}: ${synthetic_final:,.0f}")
    logger.info(f"    Gap: ${gap_final:,.0f} ({gap_final / synthetic_final * 100:.1f}%)")

    logger.info("\n" + "-" * 40)
    logger.info("PREDICTOR BALANCE")
    logger.info("-" * 40)
    logger.info(solution.predictor_balance.to_string())

    return results


def run_inference(panel: Panel, predictors: list[str], args) -> dict:
    """
    Run placebo inference and robustness tests.

    Returns:
        Dictionary with placebo, p-values, leave-one-out and in-time results
    """
    results = {}

    logger.info("\n" + "=" * 60)
    logger.info("INFERENCE AND ROBUSTNESS")
    logger.info("=" * 60)

    logger.info("\n1. Country placebo tests...")
    placebo = run_placebo(
        panel,
        TREATED_COUNTRY,
        DONOR_POOL,
        predictors,
        PREDICTORS_PRIOR,
        OPTIMIZE_WINDOW,
        PLOT_WINDOW,
        TREATMENT_YEAR,
        on_zero_pre_mspe="inf",
        n_jobs=args.n_jobs,
    )
    results["placebo"] = placebo

    if not placebo.complete:
        logger.warning(
            f"   INCOMPLETE: {len(placebo.excluded)} units excluded from the ranking"
        )
    logger.info(f"   Permutation p-value: {placebo.p_value:.3f}")

    if TREATED_COUNTRY in placebo.fits:
        p_values = yearly_p_values(placebo, treatment_year=TREATMENT_YEAR)
        results["p_values"] = p_values
        logger.info("   P-values by year:")
        for year, p in p_values.items():
            logger.info(f"     {year}: {p:.2f}")

    if args.skip_robustness:
        return results

    logger.info("\n2. Leave-one-out tests...")
    results["leave_one_out"] = leave_one_out(
        panel,
        TREATED_COUNTRY,
        DONOR_POOL,
        predictors,
        PREDICTORS_PRIOR,
        OPTIMIZE_WINDOW,
        PLOT_WINDOW,
    )

    placebo_year = TREATMENT_YEAR - 4
    logger.info(f"\n3. In-time placebo test ({placebo_year})...")
    in_time = in_time_placebo(
        panel,
        TREATED_COUNTRY,
        DONOR_POOL,
        predictors,
        placebo_year,
        PREDICTORS_PRIOR,
        OPTIMIZE_WINDOW,
        PLOT_WINDOW,
    )
    results["in_time_placebo"] = in_time
    in_pre, in_post = pre_post_mspe(in_time.counterfactual.effect, placebo_year)
    logger.info(f"   MSPE ratio: {mspe_ratio(in_pre, in_post):.2f}")

    return results


def generate_figures(results: dict):
    """Generate all figures."""
    logger.info("\n" + "=" * 60)
    logger.info("GENERATING FIGURES")
    logger.info("=" * 60)

    counterfactual = results.get("counterfactual")
    if counterfactual is not None:
        plot_counterfactual(counterfactual, save_path=FIGURES_DIR / "scm_main.png")
        plot_counterfactual_trend(counterfactual, save_path=FIGURES_DIR / "scm_trend.png")

    search_result = results.get("search")
    if search_result is not None:
        plot_search_rmse(search_result, save_path=FIGURES_DIR / "predictor_search.png")

    placebo = results.get("placebo")
    if placebo is not None:
        plot_placebo_gaps(placebo, save_path=FIGURES_DIR / "placebo_gaps.png")
        plot_mspe_ratios(placebo, save_path=FIGURES_DIR / "mspe_ratios.png")

    p_values = results.get("p_values")
    if p_values is not None and counterfactual is not None:
        plot_p_values(p_values, counterfactual.effect, save_path=FIGURES_DIR / "p_values.png")

    loo = results.get("leave_one_out")
    if loo is not None:
        plot_leave_one_out(loo, save_path=FIGURES_DIR / "leave_one_out.png")

    logger.info(f"Figures saved to {FIGURES_DIR}/")


def save_results(results: dict):
    """Save numerical results to CSV."""
    counterfactual = results.get("counterfactual")
    if counterfactual is not None:
        pd.DataFrame({
            "actual": counterfactual.actual,
            "synthetic": counterfactual.synthetic,
            "effect": counterfactual.effect,
        }).to_csv(RESULTS_DIR / "scm_series.csv", index_label="year")

    solution = results.get("solution")
    if solution is not None:
        solution.donor_weights.to_csv(RESULTS_DIR / "scm_weights.csv")
        solution.predictor_weights.to_csv(RESULTS_DIR / "predictor_weights.csv")
        solution.predictor_balance.to_csv(RESULTS_DIR / "predictor_balance.csv")

    search_result = results.get("search")
    if search_result is not None:
        pd.DataFrame(
            [t._asdict() for t in search_result.trials]
        ).to_csv(RESULTS_DIR / "predictor_search.csv", index=False)

    placebo = results.get("placebo")
    if placebo is not None:
        placebo_table(placebo).to_csv(RESULTS_DIR / "placebo_ranking.csv")

    logger.info(f"Results saved to {RESULTS_DIR}/")


def main():
    parser = argparse.ArgumentParser(
        description="Synthetic control report for DRC GDP per capita"
    )
    parser.add_argument(
        "--data-only",
        action="store_true",
        help="Only fetch and save data",
    )
    parser.add_argument(
        "--skip-search",
        action="store_true",
        help="Use every candidate predictor instead of the randomized search",
    )
    parser.add_argument(
        "--skip-robustness",
        action="store_true",
        help="Skip leave-one-out and in-time placebo tests",
    )
    parser.add_argument(
        "--refresh-data",
        action="store_true",
        help="Force refresh data from sources",
    )
    parser.add_argument(
        "--tax-path",
        type=Path,
        default=None,
        help="Corporate tax rate CSV (iso_3, year, rate)",
    )
    parser.add_argument(
        "--iterations",
        type=int,
        default=SEARCH_ITERATIONS,
        help="Number of predictor search trials",
    )
    parser.add_argument(
        "--n-jobs",
        type=int,
        default=1,
        help="Worker threads for search and placebo fits",
    )

    args = parser.parse_args()

    logger.info(f"Random seed set to {RANDOM_SEED}")

    create_directories()

    df = load_or_fetch_data(tax_path=args.tax_path, force_refresh=args.refresh_data)

    if args.data_only:
        logger.info("\nData fetched and saved. Exiting.")
        return

    panel = build_panel(df)

    all_results = run_main_analysis(panel, args)
    all_results.update(run_inference(panel, all_results["predictors"], args))

    generate_figures(all_results)
    save_results(all_results)

    logger.info("\n" + "=" * 60)
    problems = []
    if not all_results["placebo"].complete:
        problems.append("excluded placebo units")
    if "search" in all_results and not all_results["search"].complete:
        problems.append("failed search trials")

    if problems:
        logger.warning(f"ANALYSIS INCOMPLETE: see {' and '.join(problems)}")
    else:
        logger.info("ANALYSIS COMPLETE")
    logger.info("=" * 60)


if __name__ == "__main__":
    main()
