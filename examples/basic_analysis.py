"""
Basic Analysis Example

Demonstrates basic usage of RegCal for correcting linear, logistic and
Cox regression coefficients for measurement error in blood pressure.
"""

import pandas as pd
import numpy as np
from regcal import RegCal, regcal

# Create synthetic cohort data: usual SBP is measured once in the main
# study and twice in a reliability substudy
np.random.seed(42)
n_main = 4000
n_rel = 800
sd_within = 12.0

usual_sbp = np.random.normal(130, 15, n_main)
data = pd.DataFrame({
    'sbp': usual_sbp + np.random.normal(0, sd_within, n_main),
    'age': np.random.normal(55, 8, n_main),
})
data['chol'] = 5.5 + 0.01 * (data['age'] - 55) + np.random.normal(0, 1, n_main)

# Continuous outcome (e.g. carotid intima-media thickness)
data['imt'] = 0.2 + 0.004 * usual_sbp + 0.005 * data['age'] + np.random.normal(0, 0.1, n_main)

# Binary outcome
logit = -6 + 0.03 * usual_sbp + 0.02 * data['age']
data['chd'] = (np.random.random(n_main) < 1 / (1 + np.exp(-logit))).astype(int)

# Survival outcome
hazard = 0.01 * np.exp(0.02 * (usual_sbp - 130) + 0.03 * (data['age'] - 55))
event_time = np.random.exponential(1 / hazard)
censor_time = np.random.uniform(5, 20, n_main)
data['time'] = np.minimum(event_time, censor_time)
data['stroke'] = (event_time <= censor_time).astype(int)

rel_sbp = np.random.normal(130, 15, n_rel)
reliability = pd.DataFrame({
    'sbp1': rel_sbp + np.random.normal(0, sd_within, n_rel),
    'sbp2': rel_sbp + np.random.normal(0, sd_within, n_rel),
})

print("="*80)
print("REGCAL BASIC ANALYSIS EXAMPLE")
print("="*80)

# Initialize RegCal once for the error-prone covariate
rc = RegCal(
    main=data,
    reliability=reliability,
    rep=2,
    evar=['sbp'],
    rvar=['sbp1', 'sbp2']
)

print("\n1. Linear Model: IMT on SBP and Age")
print("-"*80)

results = rc.estimate('imt ~ sbp + age', family='linear', display=True)
print(f"Attenuation factor: "
      f"{results.between.iloc[0, 0] / results.total.iloc[0, 0]:.3f}")

print("\n2. Logistic Model with Bootstrap Confidence Intervals")
print("-"*80)

results = rc.estimate(
    'chd ~ sbp + age + chol',
    family='logistic',
    bootstrap=True,
    boot=200,
    seed=1,
    display=True
)

print("\n3. Cox Model for Time to Stroke")
print("-"*80)

results = rc.estimate('Surv(time, stroke) ~ sbp + age', family='cox', display=True)

print("\n4. One-call Interface")
print("-"*80)

results = regcal('linear', 'imt ~ sbp', data, reliability, rep=2,
                 evar=['sbp'], rvar=['sbp1', 'sbp2'])
print(results.to_frame().round(5).to_string())

print("\n" + "="*80)
print("EXAMPLE COMPLETE")
print("="*80)
