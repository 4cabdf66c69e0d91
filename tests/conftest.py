"""Pytest fixtures for the DRC growth report tests."""

import matplotlib

matplotlib.use("Agg")

import numpy as np
import pandas as pd
import pytest

from congo_growth.panel import Panel


PREDICTORS = [
    "population_growth",
    "life_expectancy",
    "birth_rate",
    "gov_consumption",
    "trade_openness",
]


@pytest.fixture
def sample_panel_data():
    """Create sample panel data for testing."""
    np.random.seed(42)

    countries = ["COD", "AGO", "CMR", "ZMB", "TZA"]
    years = list(range(2005, 2024))

    data = []
    for country in countries:
        base_gdp = 450 if country == "COD" else np.random.uniform(400, 1200)
        growth_rate = 0.04 if country == "COD" else np.random.uniform(0.02, 0.05)

        for i, year in enumerate(years):
            # Add slowdown for the DRC after 2018
            if country == "COD" and year >= 2018:
                growth_rate = 0.0

            gdp = base_gdp * (1 + growth_rate) ** i

            data.append({
                "country": country,
                "year": year,
                "gdp_per_capita": gdp + np.random.normal(0, 5),
                "population_growth": np.random.uniform(2.0, 3.5),
                "life_expectancy": np.random.uniform(55, 65),
                "birth_rate": np.random.uniform(30, 45),
                "gov_consumption": np.random.uniform(8, 18),
                "trade_openness": np.random.uniform(40, 90),
            })

    return pd.DataFrame(data)


@pytest.fixture
def sample_panel(sample_panel_data):
    return Panel(sample_panel_data)


@pytest.fixture
def predictors():
    return list(PREDICTORS)


@pytest.fixture
def copy_panel():
    """
    Treated unit 0 equals donor 1 in every variable for 2013-2020.

    Donors 1, 2, 3 have distinct predictor profiles and donor 1 is not a
    convex combination of donors 2 and 3. After 2020 the treated unit falls
    20 below donor 1.
    """
    years = list(range(2013, 2024))
    profiles = {
        1: (1.0, 5.0, 3.0),
        2: (4.0, 2.0, 7.0),
        3: (8.0, 9.0, 1.0),
    }
    outcomes = {
        1: lambda t: 100 + 5 * t,
        2: lambda t: 200 + 2 * t + 3 * np.sin(t),
        3: lambda t: 50 + 8 * t,
    }

    rows = []
    for unit in (1, 2, 3):
        for t, year in enumerate(years):
            a, b, c = profiles[unit]
            rows.append({
                "unit": unit,
                "year": year,
                "gdp_per_capita": outcomes[unit](t),
                "x_a": a + 0.1 * t,
                "x_b": b - 0.05 * t,
                "x_c": c + 0.02 * t,
            })

    for t, year in enumerate(years):
        donor = rows[t]
        row = dict(donor, unit=0)
        if year >= 2021:
            row["gdp_per_capita"] = donor["gdp_per_capita"] - 20
        rows.append(row)

    return Panel(pd.DataFrame(rows), unit_col="unit")


@pytest.fixture
def twin_panel():
    """Two units with identical pre-treatment paths that split in 2021."""
    rows = []
    for unit in (0, 1):
        for t, year in enumerate(range(2013, 2024)):
            gdp = 100.0 + 4 * t
            if unit == 0 and year >= 2021:
                gdp -= 10
            rows.append({
                "unit": unit,
                "year": year,
                "gdp_per_capita": gdp,
                "x_a": 1.0 + t,
                "x_b": 2.0,
            })

    return Panel(pd.DataFrame(rows), unit_col="unit")


@pytest.fixture
def simple_matrices():
    """Create simple matrices for testing optimization."""
    np.random.seed(42)

    # K predictors, J donors
    K, J = 5, 4

    X0 = np.random.randn(K, J)  # Control units
    X1 = np.random.randn(K)     # Treated unit
    V = np.eye(K)               # Identity weights

    return X0, X1, V


@pytest.fixture
def outcome_matrices():
    """Create outcome matrices for RMSPE testing."""
    np.random.seed(42)

    T, J = 10, 4

    Y0 = np.random.randn(T, J) * 100 + 500  # Control outcomes
    Y1 = np.random.randn(T) * 100 + 500      # Treated outcome
    W = np.array([0.3, 0.3, 0.2, 0.2])       # Weights

    return Y0, Y1, W
