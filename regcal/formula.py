"""
Model formula parsing

Supports the small formula language used by RegCal:

    y ~ x1 + x2 + z
    Surv(time, event) ~ x1 + z

Covariates are plain column names; no transformations or interactions.
"""

import re
from typing import List, Tuple

from .exceptions import ConfigurationError


_NAME = r'[A-Za-z_.][A-Za-z0-9_.]*'
_SURV_RE = re.compile(rf'^Surv\(\s*({_NAME})\s*,\s*({_NAME})\s*\)$')
_NAME_RE = re.compile(rf'^{_NAME}$')


def parse_formula(formula: str) -> Tuple[List[str], List[str]]:
    """
    Split a formula into outcome and covariate names

    Parameters
    ----------
    formula : str
        Formula string, e.g. 'y ~ x + z' or 'Surv(time, status) ~ x'

    Returns
    -------
    outcomes : list of str
        One name, or two (time, event) for a Surv() left-hand side
    covariates : list of str
        Covariate names in formula order
    """
    if not isinstance(formula, str) or formula.count('~') != 1:
        raise ConfigurationError(f"Formula must contain exactly one '~': {formula!r}")

    lhs, rhs = (side.strip() for side in formula.split('~'))
    if not lhs:
        raise ConfigurationError(f"Formula has no outcome: {formula!r}")
    if not rhs:
        raise ConfigurationError(f"Formula has no covariates: {formula!r}")

    # Outcome side
    if lhs.startswith('Surv'):
        match = _SURV_RE.match(lhs)
        if match is None:
            raise ConfigurationError(f"Malformed Surv() outcome: {lhs!r}")
        outcomes = [match.group(1), match.group(2)]
    elif _NAME_RE.match(lhs):
        outcomes = [lhs]
    else:
        raise ConfigurationError(f"Invalid outcome name: {lhs!r}")

    # Covariate side
    covariates = [term.strip() for term in rhs.split('+')]
    for term in covariates:
        if not _NAME_RE.match(term):
            raise ConfigurationError(f"Invalid covariate term: {term!r}")

    duplicated = sorted({c for c in covariates if covariates.count(c) > 1})
    if duplicated:
        raise ConfigurationError(f"Duplicate covariates in formula: {duplicated}")

    overlap = set(outcomes) & set(covariates)
    if overlap:
        raise ConfigurationError(f"Outcome also used as covariate: {sorted(overlap)}")

    return outcomes, covariates
