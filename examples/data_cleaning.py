"""
Data Cleaning Example

Demonstrates the missing-data utilities used before a correction:
- Summarizing missingness in the main and reliability data
- Dropping incomplete rows for a model
- Getting complete cases
"""

import pandas as pd
import numpy as np
from regcal import DataCleaner, regcal

# Create synthetic data with missing values
np.random.seed(42)
n_main = 2000
n_rel = 400

true_x = np.random.normal(0, 1, n_main)
data = pd.DataFrame({
    'x': true_x + np.random.normal(0, 0.7, n_main),
    'age': np.random.normal(50, 10, n_main),
})
data['y'] = 1.0 + true_x + 0.02 * data['age'] + np.random.normal(0, 1, n_main)
data.loc[np.random.random(n_main) < 0.08, 'x'] = np.nan
data.loc[np.random.random(n_main) < 0.05, 'age'] = np.nan

rel_x = np.random.normal(0, 1, n_rel)
reliability = pd.DataFrame({
    'x1': rel_x + np.random.normal(0, 0.7, n_rel),
    'x2': rel_x + np.random.normal(0, 0.7, n_rel),
})
reliability.loc[np.random.random(n_rel) < 0.15, 'x2'] = np.nan

print("="*80)
print("DATA CLEANING EXAMPLE")
print("="*80)

main_cleaner = DataCleaner(data, label='main')
rel_cleaner = DataCleaner(reliability, label='reliability')

print("\n" + "="*80)
print("EXAMPLE 1: Summarize Missing Data")
print("="*80)

print("\nMain data:")
print(main_cleaner.summarize_missingness(columns=['y', 'x', 'age']).to_string(index=False))
print("\nReliability data:")
print(rel_cleaner.summarize_missingness().to_string(index=False))

print("\n" + "="*80)
print("EXAMPLE 2: Drop Incomplete Rows for a Model")
print("="*80)

cleaned_main = main_cleaner.drop_incomplete(columns=['y', 'x', 'age'], verbose=True)
cleaned_rel = rel_cleaner.drop_incomplete(columns=['x1', 'x2'], verbose=True)

print(f"\nOriginal main shape: {data.shape}, cleaned: {cleaned_main.shape}")
print(f"Original reliability shape: {reliability.shape}, cleaned: {cleaned_rel.shape}")

print("\n" + "="*80)
print("EXAMPLE 3: Get Complete Cases Only")
print("="*80)

complete = main_cleaner.get_complete_cases(columns=['x', 'age'])
print(f"Complete cases: {len(complete)} / {len(data)} "
      f"({100*len(complete)/len(data):.1f}%)")

print("\n" + "="*80)
print("EXAMPLE 4: Correction Drops Incomplete Rows Itself")
print("="*80)

results = regcal('linear', 'y ~ x + age', data, reliability, rep=2,
                 evar=['x'], rvar=['x1', 'x2'], display=True)
print(f"Rows used: main={results.n_main}, reliability={results.n_reliability}")

print("\n" + "="*80)
print("DATA CLEANING EXAMPLES COMPLETE")
print("="*80)
