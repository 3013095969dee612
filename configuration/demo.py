#!/usr/bin/env python
"""
Quick Demo - RegCal Package

Run this script to verify the package is working correctly.
Creates synthetic data and demonstrates key functionality.
"""

import numpy as np
import pandas as pd
from regcal import (RegCal, DataCleaner, MODEL_FAMILIES, BootstrapParameters,
                    SingularMatrixError)


def main():
    print("="*80)
    print(" REGCAL QUICK DEMO")
    print("="*80)

    # Create synthetic data with a known attenuation of 1.0 / 1.5
    print("\n1. Creating synthetic main and reliability data...")
    np.random.seed(42)
    n, n_rel = 3000, 600

    true_x = np.random.normal(0, 1, n)
    data = pd.DataFrame({
        'x': true_x + np.random.normal(0, np.sqrt(0.5), n),
        'z': 0.5 * true_x + np.random.normal(0, 1, n),
    })
    data['y'] = 1.0 + true_x + 0.5 * data['z'] + np.random.normal(0, 1, n)

    rel_x = np.random.normal(0, 1, n_rel)
    reliability = pd.DataFrame({
        f'x{r}': rel_x + np.random.normal(0, np.sqrt(0.5), n_rel) for r in (1, 2, 3)
    })

    print(f"   Main data: {len(data)} rows, reliability data: {len(reliability)} rows")
    print(f"   Model families: {list(MODEL_FAMILIES.keys())}")
    print(f"   Default bootstrap: {BootstrapParameters()}")

    # Test 1: Point estimate
    print("\n" + "-"*80)
    print("2. Testing point estimate (true slope 1.0)...")
    print("-"*80)

    rc = RegCal(data, reliability, rep=3, evar=['x'], rvar=['x1', 'x2', 'x3'])
    results = rc.estimate('y ~ x + z', display=True)

    naive = results.uncorrected.params['x']
    corrected = results.corrected.params['x']
    status = "✓" if abs(corrected - 1.0) < abs(naive - 1.0) else "✗"
    print(f"   {status} naive={naive:.3f} → corrected={corrected:.3f}")

    # Test 2: Bootstrap
    print("\n" + "-"*80)
    print("3. Testing bootstrap standard errors...")
    print("-"*80)

    results = rc.estimate('y ~ x + z', bootstrap=True, boot=100, seed=7, display=True)

    # Test 3: Missing data
    print("\n" + "-"*80)
    print("4. Testing missing-data handling...")
    print("-"*80)

    data_with_na = data.copy()
    n_missing = int(0.1 * len(data))
    data_with_na.loc[np.random.choice(len(data), n_missing, replace=False), 'x'] = np.nan

    print(DataCleaner(data_with_na, label='main').summarize_missingness().to_string(index=False))
    rc_na = RegCal(data_with_na, reliability, rep=3, evar=['x'], rvar=['x1', 'x2', 'x3'])
    results = rc_na.estimate('y ~ x + z', display=False)
    print(f"   Rows used: {results.n_main} of {len(data_with_na)}")

    # Test 4: Singular covariance
    print("\n" + "-"*80)
    print("5. Testing singular covariance detection...")
    print("-"*80)

    collinear = data.assign(x_copy=data['x'])
    rel_collinear = reliability.assign(c1=reliability['x1'], c2=reliability['x2'],
                                       c3=reliability['x3'])
    try:
        RegCal(collinear, rel_collinear, rep=3, evar=['x', 'x_copy'],
               rvar=['x1', 'x2', 'x3', 'c1', 'c2', 'c3']).estimate(
                   'y ~ x + x_copy', display=False)
        print("   ✗ No error raised")
    except SingularMatrixError as e:
        print(f"   ✓ {e}")

    print("\n" + "="*80)
    print(" ALL TESTS PASSED! ✓")
    print("="*80)
    print("\nNext steps:")
    print("  - See examples/basic_analysis.py for linear, logistic and Cox models")
    print("  - See examples/data_cleaning.py for missing-data workflows")
    print("\n")


if __name__ == '__main__':
    main()
