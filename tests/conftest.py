"""
Shared fixtures for the plpkit test suite.

The synthetic cohort has one strongly predictive covariate (101), one noise
covariate (102) and one constant covariate (103), spread over two time
steps so the same data serves sparse and temporal feature builders.
"""

import numpy as np
import pandas as pd
import pytest

from plpkit.config import get_config, reset_config
from plpkit.data.covariates import PlpData


def build_cohort(n_rows: int = 120, first_row_id: int = 1, n_folds: int = 3, seed: int = 0):
    rng = np.random.default_rng(seed)
    row_ids = np.arange(first_row_id, first_row_id + n_rows)

    outcome = np.zeros(n_rows, dtype=int)
    outcome[::3] = 1

    # covariate 101 equals the outcome except on every tenth row
    signal = outcome.copy()
    signal[::10] = 1 - signal[::10]

    records = []
    for i, row_id in enumerate(row_ids):
        if signal[i]:
            records.append((row_id, 101, 1.0, 1 + i % 2))
        if rng.random() < 0.5:
            records.append((row_id, 102, 1.0, 1 + (i + 1) % 2))
        records.append((row_id, 103, 1.0, 1))

    covariates = pd.DataFrame(
        records, columns=["rowId", "covariateId", "covariateValue", "timeId"]
    )
    population = pd.DataFrame({
        "rowId": row_ids,
        "subjectId": row_ids + 10000,
        "outcomeCount": outcome,
        "indexes": np.arange(n_rows) % n_folds + 1,
    })
    covariate_ref = pd.DataFrame({
        "covariateId": [101, 102, 103],
        "covariateName": ["signal", "noise", "constant"],
    })
    return population, PlpData(covariates=covariates, covariate_ref=covariate_ref)


@pytest.fixture(autouse=True)
def fresh_config(monkeypatch):
    """Every test starts from default configuration with progress bars off."""
    for name in (
        "PLPKIT_ARTIFACT_ROOT",
        "PLPKIT_PYTHON",
        "PLPKIT_SESSION_TIMEOUT",
        "PLPKIT_N_FOLDS",
        "PLPKIT_RANDOM_SEED",
    ):
        monkeypatch.delenv(name, raising=False)
    reset_config()
    get_config().show_progress = False
    yield
    reset_config()


@pytest.fixture
def cohort():
    """Training cohort: rowIds 1..120, three folds."""
    return build_cohort()


@pytest.fixture
def disjoint_cohort():
    """
    Scoring cohort with rowIds 1001..1040 and an extra covariate (999)
    that the training cohort never saw.
    """
    population, plp_data = build_cohort(n_rows=40, first_row_id=1001, seed=1)
    extra = pd.DataFrame({
        "rowId": population["rowId"].iloc[:5],
        "covariateId": 999,
        "covariateValue": 1.0,
        "timeId": 1,
    })
    plp_data.covariates = pd.concat([plp_data.covariates, extra], ignore_index=True)
    return population, plp_data


@pytest.fixture
def make_cohort():
    """Factory for cohorts of a chosen size and fold count."""
    return build_cohort
