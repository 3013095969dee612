"""
Data Cleaning Utilities for RegCal

Listwise deletion of incomplete rows before estimation:
- Drop rows with missing values in the model or replicate columns
- Summarize missingness per variable
"""

import numpy as np
import pandas as pd
from typing import List, Optional, Union

from .exceptions import ConfigurationError


class DataCleaner:
    """
    Data cleaning utilities for main and reliability datasets

    Provides methods to:
    1. Check that required columns exist
    2. Remove rows with missing values in specified columns
    3. Summarize missing data patterns
    """

    def __init__(self, data: pd.DataFrame, label: str = 'data'):
        """
        Initialize DataCleaner

        Parameters
        ----------
        data : pd.DataFrame
            Dataset to clean; never modified
        label : str, default 'data'
            Name used in messages (e.g. 'main', 'reliability')
        """
        if not isinstance(data, pd.DataFrame):
            raise ConfigurationError(f"{label} must be a pandas DataFrame")
        self.data = data
        self.label = label

    def require_columns(self, columns: List[str]):
        """Raise ConfigurationError if any column is absent"""
        missing = [c for c in columns if c not in self.data.columns]
        if missing:
            raise ConfigurationError(f"Columns not found in {self.label} data: {missing}")

    def drop_incomplete(self,
                        columns: List[str],
                        verbose: bool = True) -> pd.DataFrame:
        """
        Remove rows with missing values in the given columns

        Parameters
        ----------
        columns : list of str
            Columns to check for missing values
        verbose : bool, default True
            Print summary statistics

        Returns
        -------
        pd.DataFrame
            Copy of the complete rows, restricted to `columns`, with a
            fresh RangeIndex
        """
        self.require_columns(columns)

        complete_mask = self.get_complete_cases(columns, return_mask=True)
        n_total = len(self.data)
        n_missing = int((~complete_mask).sum())

        if verbose and n_missing:
            print(f"\n{self.label.capitalize()} data: dropped {n_missing:,} of {n_total:,} rows "
                  f"with missing values ({100*n_missing/n_total:.2f}%)")

        return self.data.loc[complete_mask, columns].reset_index(drop=True)

    def get_complete_cases(self,
                           columns: List[str],
                           return_mask: bool = False) -> Union[pd.DataFrame, pd.Series]:
        """
        Get complete cases (no missing values in specified columns)

        Parameters
        ----------
        columns : list of str
            Columns to check for missing values
        return_mask : bool, default False
            Return boolean mask instead of data

        Returns
        -------
        pd.DataFrame or pd.Series
            Complete cases or boolean mask
        """
        complete_mask = ~pd.DataFrame(self.data[columns]).isna().any(axis=1)

        if return_mask:
            return complete_mask
        else:
            return self.data[complete_mask].copy()

    def summarize_missingness(self,
                              columns: Optional[List[str]] = None) -> pd.DataFrame:
        """
        Summarize missing data per variable

        Parameters
        ----------
        columns : list of str, optional
            Columns to check (default: all columns)

        Returns
        -------
        pd.DataFrame
            One row per variable with n_total, n_missing and pct_missing
        """
        if columns is None:
            columns = self.data.columns.tolist()
        self.require_columns(columns)

        results = []
        n_total = len(self.data)
        for col in columns:
            n_missing = int(self.data[col].isna().sum())
            pct_missing = 100 * n_missing / n_total if n_total else np.nan

            results.append({
                'variable': col,
                'n_total': n_total,
                'n_missing': n_missing,
                'pct_missing': pct_missing
            })

        return pd.DataFrame(results)
