"""
Data loading utilities for the DRC growth report.
Fetches World Bank indicators and reads corporate tax rates from CSV.
"""

from pathlib import Path

import pandas as pd
import wbgapi as wb

from .config import (
    CORPORATE_TAX_COLUMNS,
    COUNTRY_NAMES,
    DONOR_POOL,
    OUTCOME_VAR,
    POST_TREATMENT_END,
    PRE_TREATMENT_START,
    TREATED_COUNTRY,
    WB_INDICATORS,
)
from .logger import logger
from .panel import Panel


def _reshape_wb_frame(df: pd.DataFrame, var_name: str) -> pd.DataFrame:
    """
    Reshape a wbgapi frame to long format.

    wbgapi returns country as index, years as columns (YR2005, YR2006, etc.)
    """
    df = df.reset_index()
    df = df.melt(id_vars=["economy"], var_name="year", value_name=var_name)
    df.columns = ["country", "year", var_name]

    # Convert year from 'YR2005' format to int
    df["year"] = df["year"].str.replace("YR", "").astype(int)

    return df


def fetch_world_bank_data(
    countries: list[str] | None = None,
    start_year: int = PRE_TREATMENT_START,
    end_year: int = POST_TREATMENT_END,
    indicators: dict[str, str] | None = None,
) -> pd.DataFrame:
    """
    Fetch World Bank indicators for specified countries.

    An indicator that cannot be fetched is skipped with a warning, except the
    outcome, whose failure is raised.

    Args:
        countries: List of ISO3 country codes
        start_year: Start year for data
        end_year: End year for data
        indicators: Mapping of variable name to World Bank indicator code

    Returns:
        DataFrame with one column per indicator and a row per (country, year)
    """
    if countries is None:
        countries = [TREATED_COUNTRY] + DONOR_POOL

    if indicators is None:
        indicators = WB_INDICATORS

    all_data = []

    for var_name, indicator_code in indicators.items():
        try:
            df = wb.data.DataFrame(
                indicator_code,
                economy=countries,
                time=range(start_year, end_year + 1),
            )
        except Exception as e:
            if var_name == OUTCOME_VAR:
                raise
            logger.warning(f"Error fetching {var_name} ({indicator_code}): {e}")
            continue

        df = _reshape_wb_frame(df, var_name)
        all_data.append(df)
        logger.info(f"Fetched {var_name}: {len(df)} obs")

    if not all_data:
        raise ValueError("No World Bank indicators could be fetched")

    # Merge all indicators
    result = all_data[0]
    for df in all_data[1:]:
        result = result.merge(df, on=["year", "country"], how="outer")

    return result.sort_values(["country", "year"]).reset_index(drop=True)


def load_corporate_tax_rates(filepath: str | Path) -> pd.DataFrame:
    """
    Load statutory corporate income tax rates.

    Expects the Tax Foundation worldwide corporate tax rate layout, with
    iso_3, year and rate columns (rate in percent).

    Args:
        filepath: Path to the CSV file

    Returns:
        DataFrame with country, year and corporate_tax_rate columns
    """
    df = pd.read_csv(filepath)

    missing_cols = [c for c in CORPORATE_TAX_COLUMNS if c not in df.columns]
    if missing_cols:
        raise ValueError(f"Missing required columns in {filepath}: {missing_cols}")

    df = df[list(CORPORATE_TAX_COLUMNS)].rename(columns=CORPORATE_TAX_COLUMNS)
    df["year"] = df["year"].astype(int)
    df["corporate_tax_rate"] = pd.to_numeric(df["corporate_tax_rate"], errors="coerce")

    return df


def assemble_panel_data(
    tax_path: str | Path | None = None,
    countries: list[str] | None = None,
    save_path: str | Path | None = None,
) -> pd.DataFrame:
    """
    Assemble complete panel dataset for SCM analysis.

    Args:
        tax_path: Path to corporate tax rate CSV
        countries: ISO3 codes to fetch (treated country plus donors by default)
        save_path: Path to save assembled data

    Returns:
        Complete panel DataFrame
    """
    if countries is None:
        countries = [TREATED_COUNTRY] + DONOR_POOL

    logger.info("Fetching World Bank data...")
    df = fetch_world_bank_data(countries=countries)

    if tax_path is not None:
        logger.info(f"Loading corporate tax rates from {tax_path}...")
        tax_df = load_corporate_tax_rates(tax_path)
        tax_df = tax_df[tax_df["country"].isin(countries)]
        df = df.merge(tax_df, on=["year", "country"], how="left")
    else:
        logger.warning("No corporate tax file given; corporate_tax_rate unavailable")

    # Add country names
    df["country_name"] = df["country"].map(COUNTRY_NAMES)

    # Sort and clean
    df = df.sort_values(["country", "year"]).reset_index(drop=True)

    # Save if path provided
    if save_path is not None:
        Path(save_path).parent.mkdir(parents=True, exist_ok=True)
        df.to_csv(save_path, index=False)
        logger.info(f"Data saved to {save_path}")

    logger.info(f"Panel data assembled: {len(df)} observations")
    logger.info(f"Countries: {df['country'].nunique()}")
    logger.info(f"Years: {df['year'].min()} - {df['year'].max()}")

    return df


def build_panel(df: pd.DataFrame, outcome: str = OUTCOME_VAR) -> Panel:
    """Wrap an assembled country-year frame in a Panel."""
    return Panel(df, unit_col="country", time_col="year", outcome=outcome)
