"""
Immutable panel dataset shared by every estimation step.

Observations are indexed by (unit, year) with one column per variable, so each
variable appears at most once for a given unit and year.
"""

from typing import Hashable, Sequence

import numpy as np
import pandas as pd

from .config import OUTCOME_VAR
from .exceptions import MissingDataError


class Panel:
    """
    Read-only (unit, year, variable) table.

    Args:
        df: Wide panel with one row per unit and year
        unit_col: Column holding the unit identifier
        time_col: Column holding the integer year
        outcome: Name of the dependent variable

    Raises:
        ValueError: If identifier columns or the outcome are absent, or a
            (unit, year) pair appears more than once
    """

    def __init__(
        self,
        df: pd.DataFrame,
        unit_col: str = "country",
        time_col: str = "year",
        outcome: str = OUTCOME_VAR,
    ):
        missing_cols = [c for c in (unit_col, time_col) if c not in df.columns]
        if missing_cols:
            raise ValueError(f"Missing required columns: {missing_cols}")

        if outcome not in df.columns:
            raise ValueError(f"Outcome variable '{outcome}' not in DataFrame")

        duplicated = df.duplicated(subset=[unit_col, time_col], keep=False)
        if duplicated.any():
            pairs = df.loc[duplicated, [unit_col, time_col]].drop_duplicates()
            raise ValueError(
                f"Duplicate (unit, year) observations: "
                f"{list(pairs.itertuples(index=False, name=None))[:5]}"
            )

        data = df.copy()
        data[time_col] = data[time_col].astype(int)

        self._data = data.set_index([unit_col, time_col]).sort_index()
        self.unit_col = unit_col
        self.time_col = time_col
        self.outcome = outcome

    @classmethod
    def from_long(
        cls,
        df: pd.DataFrame,
        unit_col: str = "country",
        time_col: str = "year",
        variable_col: str = "variable",
        value_col: str = "value",
        outcome: str = OUTCOME_VAR,
    ) -> "Panel":
        """Build a panel from (unit, year, variable, value) rows."""
        key = [unit_col, time_col, variable_col]
        if df.duplicated(subset=key).any():
            raise ValueError("Duplicate (unit, year, variable) observations")

        wide = df.pivot(
            index=[unit_col, time_col], columns=variable_col, values=value_col
        ).reset_index()
        wide.columns.name = None

        return cls(wide, unit_col=unit_col, time_col=time_col, outcome=outcome)

    @property
    def units(self) -> list:
        return list(self._data.index.get_level_values(0).unique())

    @property
    def years(self) -> list[int]:
        return sorted(self._data.index.get_level_values(1).unique())

    @property
    def variables(self) -> list[str]:
        return list(self._data.columns)

    @property
    def frame(self) -> pd.DataFrame:
        """Copy of the underlying data in wide format."""
        return self._data.reset_index()

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return (
            f"Panel(units={len(self.units)}, years={len(self.years)}, "
            f"variables={len(self.variables)}, outcome={self.outcome!r})"
        )

    def _block(
        self,
        units: Sequence[Hashable],
        years: Sequence[int],
        variables: Sequence[str],
    ) -> pd.DataFrame:
        index = pd.MultiIndex.from_product(
            [list(units), [int(y) for y in years]],
            names=[self.unit_col, self.time_col],
        )
        return self._data.reindex(index=index, columns=list(variables))

    def missing(
        self,
        units: Sequence[Hashable],
        years: Sequence[int],
        variables: Sequence[str],
    ) -> list[tuple]:
        """
        List the (unit, year, variable) triples that are absent or NaN.

        Args:
            units: Units to check
            years: Years to check
            variables: Variables to check

        Returns:
            Missing triples in unit, year, variable order
        """
        block = self._block(units, years, variables)
        rows, cols = np.nonzero(block.isna().to_numpy())

        return [
            (block.index[r][0], int(block.index[r][1]), block.columns[c])
            for r, c in zip(rows, cols)
        ]

    def require(
        self,
        units: Sequence[Hashable],
        years: Sequence[int],
        variables: Sequence[str],
        **context,
    ) -> None:
        """Raise MissingDataError unless every requested observation exists."""
        missing = self.missing(units, years, variables)
        if missing:
            raise MissingDataError(missing, **context)

    def value(self, unit: Hashable, year: int, variable: str) -> float:
        try:
            value = self._data.at[(unit, int(year)), variable]
        except KeyError:
            raise MissingDataError([(unit, year, variable)]) from None

        if pd.isna(value):
            raise MissingDataError([(unit, year, variable)])

        return float(value)

    def matrix(
        self,
        units: Sequence[Hashable],
        years: Sequence[int],
        variable: str,
    ) -> pd.DataFrame:
        """
        Values of one variable as a years x units frame.

        Raises:
            MissingDataError: If any requested observation is absent
        """
        self.require(units, years, [variable])

        values = self._block(units, years, [variable])[variable].to_numpy(dtype=float)

        return pd.DataFrame(
            values.reshape(len(units), len(years)).T,
            index=pd.Index([int(y) for y in years], name=self.time_col),
            columns=list(units),
        )

    def series(self, unit: Hashable, variable: str, years: Sequence[int]) -> pd.Series:
        return self.matrix([unit], years, variable)[unit].rename(variable)

    def means(
        self,
        units: Sequence[Hashable],
        variables: Sequence[str],
        years: Sequence[int],
    ) -> pd.DataFrame:
        """
        Average each variable over the given years.

        Returns:
            variables x units frame of means

        Raises:
            MissingDataError: If any requested observation is absent
        """
        self.require(units, years, variables)

        block = self._block(units, years, variables).astype(float)
        averages = block.groupby(level=0, sort=False).mean()

        return averages.T.reindex(index=list(variables), columns=list(units))
