"""
DRC Corporate Tax and Growth Report
===================================
Synthetic control estimate of GDP per capita for the
Democratic Republic of the Congo.

Methods:
- Synthetic Control Method (SCM) with randomized predictor search
- Placebo-in-space permutation inference
"""

__version__ = "0.1.0"
