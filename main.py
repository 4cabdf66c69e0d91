#!/usr/bin/env python3
"""
Main entry point for the DRC corporate tax and growth report.

This module serves as the primary entry point for the analysis.
It delegates to scripts/replicate.py which contains the full pipeline.

Usage:
    uv run main.py                      # Run full analysis
    uv run main.py --data-only          # Only fetch and save data
    uv run main.py --skip-search        # Fit on all candidate predictors
    uv run main.py --skip-robustness    # Skip robustness tests
    uv run main.py --refresh-data       # Force refresh data from sources
"""

from scripts.replicate import main as run_analysis


def main():
    """Run the DRC synthetic control analysis."""
    run_analysis()


if __name__ == "__main__":
    main()
