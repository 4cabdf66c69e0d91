"""
Configuration parameters for the DRC corporate tax / growth report.
Synthetic control estimate of GDP per capita for the Democratic Republic of the Congo.
"""

from pathlib import Path

# Treatment configuration
TREATMENT_YEAR = 2018
PRE_TREATMENT_START = 2005
PRE_TREATMENT_END = 2017
POST_TREATMENT_END = 2023

# Year windows used by the estimation engine
PREDICTORS_PRIOR = list(range(PRE_TREATMENT_START, PRE_TREATMENT_END + 1))
OPTIMIZE_WINDOW = list(range(PRE_TREATMENT_START, PRE_TREATMENT_END + 1))
PLOT_WINDOW = list(range(PRE_TREATMENT_START, POST_TREATMENT_END + 1))

# Treated unit
TREATED_COUNTRY = "COD"  # Democratic Republic of the Congo ISO3 code

# Outcome
OUTCOME_VAR = "gdp_per_capita"

# Donor pool - sub-Saharan Africa
DONOR_POOL = [
    "AGO",  # Angola
    "BDI",  # Burundi
    "BEN",  # Benin
    "BFA",  # Burkina Faso
    "CMR",  # Cameroon
    "CIV",  # Cote d'Ivoire
    "COG",  # Congo, Rep.
    "ETH",  # Ethiopia
    "GAB",  # Gabon
    "GHA",  # Ghana
    "KEN",  # Kenya
    "MDG",  # Madagascar
    "MLI",  # Mali
    "MOZ",  # Mozambique
    "MWI",  # Malawi
    "NER",  # Niger
    "NGA",  # Nigeria
    "RWA",  # Rwanda
    "SEN",  # Senegal
    "TCD",  # Chad
    "TGO",  # Togo
    "TZA",  # Tanzania
    "UGA",  # Uganda
    "ZMB",  # Zambia
]

# World Bank indicator codes
WB_INDICATORS = {
    "gdp_per_capita": "NY.GDP.PCAP.KD",  # GDP per capita (constant 2015 US$)
    "population_growth": "SP.POP.GROW",  # Population growth (annual %)
    "life_expectancy": "SP.DYN.LE00.IN",  # Life expectancy at birth
    "birth_rate": "SP.DYN.CBRT.IN",  # Crude birth rate
    "gov_consumption": "NE.CON.GOVT.ZS",  # Government consumption (% of GDP)
    "gross_capital_formation": "NE.GDI.TOTL.ZS",  # Gross capital formation (% of GDP)
    "trade_openness": "NE.TRD.GNFS.ZS",  # Trade (% of GDP)
    "inflation": "FP.CPI.TOTL.ZG",  # Inflation, consumer prices (annual %)
    "fdi_inflows": "BX.KLT.DINV.WD.GD.ZS",  # FDI, net inflows (% of GDP)
    "resource_rents": "NY.GDP.TOTL.RT.ZS",  # Total natural resources rents (% of GDP)
    "agriculture_share": "NV.AGR.TOTL.ZS",  # Agriculture value added (% of GDP)
    "urban_population": "SP.URB.TOTL.IN.ZS",  # Urban population (% of total)
}

# Corporate tax rate CSV (Tax Foundation worldwide corporate tax rates layout)
CORPORATE_TAX_COLUMNS = {
    "iso_3": "country",
    "year": "year",
    "rate": "corporate_tax_rate",
}

# Candidate predictors for the randomized search (averages over PREDICTORS_PRIOR)
CANDIDATE_PREDICTORS = [
    "corporate_tax_rate",
    "population_growth",
    "life_expectancy",
    "birth_rate",
    "gov_consumption",
    "gross_capital_formation",
    "trade_openness",
    "inflation",
    "fdi_inflows",
    "resource_rents",
    "agriculture_share",
    "urban_population",
]

# Country name mapping
COUNTRY_NAMES = {
    "AGO": "Angola",
    "BDI": "Burundi",
    "BEN": "Benin",
    "BFA": "Burkina Faso",
    "CMR": "Cameroon",
    "CIV": "Cote d'Ivoire",
    "COD": "Congo, Dem. Rep.",
    "COG": "Congo, Rep.",
    "ETH": "Ethiopia",
    "GAB": "Gabon",
    "GHA": "Ghana",
    "KEN": "Kenya",
    "MDG": "Madagascar",
    "MLI": "Mali",
    "MOZ": "Mozambique",
    "MWI": "Malawi",
    "NER": "Niger",
    "NGA": "Nigeria",
    "RWA": "Rwanda",
    "SEN": "Senegal",
    "TCD": "Chad",
    "TGO": "Togo",
    "TZA": "Tanzania",
    "UGA": "Uganda",
    "ZMB": "Zambia",
}

# Randomized predictor search
SEARCH_ITERATIONS = 50
MIN_PREDICTORS = 4

# Solver budgets
QP_MAX_ITER = 200  # inner donor-weight QP (Clarabel iterations)
OUTER_MAXITER = 1000  # outer predictor-weight search (L-BFGS-B iterations)

# Pre-treatment MSPE at or below this is treated as a perfect (degenerate) fit
DEGENERATE_MSPE_TOL = 0.0

# Donor weights below this are hidden in tables and skipped by leave-one-out
WEIGHT_DISPLAY_THRESHOLD = 0.001

# Hodrick-Prescott filter parameter for yearly data
HP_LAMBDA = 100

# Random seed for reproducibility
RANDOM_SEED = 89

# Logging
LOG_LEVEL = "INFO"

# Output locations
DATA_DIR = Path("data")
FIGURES_DIR = Path("reports/figures")
RESULTS_DIR = Path("results")
