"""
Immutable tabular data source for chart building.

DataTable wraps a private copy of a pandas DataFrame and records the kind of
every column (numeric, categorical, identifier). The builder only ever reads
from it; filtering returns new tables.
"""

from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

import numpy as np
import pandas as pd
from pandas.api import types as ptypes

from .errors import SpecError


class ColumnKind(str, Enum):
    NUMERIC = 'numeric'
    CATEGORICAL = 'categorical'
    IDENTIFIER = 'identifier'


def _infer_kind(series: pd.Series) -> ColumnKind:
    if ptypes.is_bool_dtype(series) or isinstance(series.dtype, pd.CategoricalDtype):
        return ColumnKind.CATEGORICAL
    if ptypes.is_numeric_dtype(series):
        return ColumnKind.NUMERIC
    return ColumnKind.CATEGORICAL


def _sort_key(value: Any):
    # Mixed-type object columns still need a total order.
    return (type(value).__name__, value) if not isinstance(value, (int, float, np.number)) else ('', value)


class DataTable:
    """Ordered, named, typed columns. Never mutated after construction.

    Parameters
    ----------
    frame : pd.DataFrame
        Source data. A copy is taken; later changes to ``frame`` are not seen.
    identifiers : sequence of str
        Columns holding observation identifiers (usable for ``group`` only).
    kinds : mapping, optional
        Explicit column kinds, overriding inference.
    """

    def __init__(
        self,
        frame: pd.DataFrame,
        identifiers: Sequence[str] = (),
        kinds: Optional[Mapping[str, ColumnKind]] = None,
    ):
        if not isinstance(frame, pd.DataFrame):
            raise TypeError(f"DataTable expects a pandas DataFrame, got {type(frame).__name__}")
        self._frame = frame.reset_index(drop=True).copy()
        self._kinds: Dict[str, ColumnKind] = {}
        for name in self._frame.columns:
            self._kinds[name] = _infer_kind(self._frame[name])
        for name in identifiers:
            if name not in self._kinds:
                raise SpecError(f"Identifier column '{name}' not found in data")
            self._kinds[name] = ColumnKind.IDENTIFIER
        for name, kind in (kinds or {}).items():
            if name not in self._kinds:
                raise SpecError(f"Column '{name}' not found in data")
            self._kinds[name] = ColumnKind(kind)

    @classmethod
    def from_records(
        cls,
        records: Iterable[Mapping[str, Any]],
        identifiers: Sequence[str] = (),
        kinds: Optional[Mapping[str, ColumnKind]] = None,
    ) -> 'DataTable':
        return cls(pd.DataFrame.from_records(list(records)), identifiers=identifiers, kinds=kinds)

    @classmethod
    def _derived(cls, frame: pd.DataFrame, kinds: Dict[str, ColumnKind]) -> 'DataTable':
        table = cls.__new__(cls)
        table._frame = frame.reset_index(drop=True)
        table._kinds = dict(kinds)
        return table

    # --- Introspection ---

    @property
    def columns(self) -> tuple:
        return tuple(self._frame.columns)

    @property
    def frame(self) -> pd.DataFrame:
        """A copy of the underlying frame; changes to it are not seen by the table."""
        return self._frame.copy()

    def __len__(self) -> int:
        return len(self._frame)

    def __contains__(self, name: object) -> bool:
        return name in self._kinds

    def __repr__(self) -> str:
        cols = ', '.join(f"{n}:{k.value}" for n, k in self._kinds.items())
        return f"DataTable({len(self)} rows; {cols})"

    def kind(self, name: str) -> ColumnKind:
        try:
            return self._kinds[name]
        except KeyError:
            raise SpecError(
                f"Column '{name}' not found in data. Available: {list(self._kinds)}"
            ) from None

    def require(self, name: str, kinds: Iterable[ColumnKind], channel: str) -> ColumnKind:
        """Check that ``name`` exists and is one of ``kinds`` for ``channel``."""
        kind = self.kind(name)
        allowed = tuple(kinds)
        if kind not in allowed:
            wanted = ' or '.join(k.value for k in allowed)
            raise SpecError(
                f"Channel '{channel}' requires a {wanted} column; '{name}' is {kind.value}"
            )
        return kind

    # --- Values ---

    def values(self, name: str) -> np.ndarray:
        self.kind(name)
        series = self._frame[name]
        if self._kinds[name] is ColumnKind.NUMERIC:
            return series.to_numpy(dtype=float, na_value=np.nan)
        return series.to_numpy(dtype=object)

    def categories(self, name: str) -> List[Any]:
        """Values present in a column, in a fixed order.

        Declared Categorical order if the column has one, else sorted.
        Missing values are never a category.
        """
        self.kind(name)
        series = self._frame[name]
        if isinstance(series.dtype, pd.CategoricalDtype):
            present = set(series.dropna().unique().tolist())
            return [c for c in series.cat.categories if c in present]
        uniq = series.dropna().unique().tolist()
        return sorted(uniq, key=_sort_key)

    def missing_mask(self, columns: Iterable[str]) -> np.ndarray:
        cols = list(columns)
        if not cols:
            return np.zeros(len(self), dtype=bool)
        return self._frame[cols].isna().any(axis=1).to_numpy()

    # --- Derivation ---

    def filter(self, mask: np.ndarray) -> 'DataTable':
        return DataTable._derived(self._frame.loc[np.asarray(mask, dtype=bool)], self._kinds)

    def where(self, column: str, value: Any) -> 'DataTable':
        return self.filter((self._frame[column] == value).to_numpy())

    def dropna(self, columns: Iterable[str]) -> 'DataTable':
        return self.filter(~self.missing_mask(columns))


__all__ = ['DataTable', 'ColumnKind']
