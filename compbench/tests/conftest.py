"""
Pytest Configuration and Shared Fixtures for CompBench Tests.

This module provides fixtures and configuration for all engine tests:
- Market curves with easy-to-verify percentile arithmetic
- The four-provider Cardiology group (two eligible, two new hires)
- Optimizer settings and a Settings instance for API/config tests
- Helpers for building records and tables

Curve arithmetic used throughout the tests:
- TCC:  25 -> $300k, 50 -> $400k, 75 -> $500k, 90 -> $600k
- wRVU: 25 -> 4000,  50 -> 5000,  75 -> 6000,  90 -> 7000
- CF:   25 -> $40,   50 -> $50,   75 -> $65,   90 -> $80
"""

import io
from typing import Any, Dict, List

import pandas as pd
import pytest

from compbench.core.config import Settings
from compbench.models import (
    CompensationRecord,
    MarketBenchmark,
    OptimizerSettings,
    PercentileCurve,
)


# ============================================================
# PYTEST HOOKS
# ============================================================

def pytest_configure(config) -> None:
    """
    Configure custom pytest markers for test organization.

    Custom markers defined:
    - slow: Marks tests as slow (deselect with -m "not slow")
    - scenario: Marks end-to-end specialty scenarios
    """
    config.addinivalue_line(
        'markers',
        'slow: marks tests as slow (deselect with -m "not slow")'
    )
    config.addinivalue_line(
        'markers',
        'scenario: marks end-to-end specialty scenarios'
    )


# ============================================================
# HELPERS
# ============================================================

def make_record(provider_id: str, **overrides: Any) -> CompensationRecord:
    """
    Build a full-time record with sensible defaults.

    Defaults: Cardiology, 1.0 total/clinical FTE, $400k base, 5000 wRVUs,
    $50 current CF, no flags.
    """
    data: Dict[str, Any] = {
        'providerId': provider_id,
        'providerName': f'Provider {provider_id}',
        'specialty': 'Cardiology',
        'totalFTE': 1.0,
        'clinicalFTE': 1.0,
        'baseSalary': 400000.0,
        'qualityPayments': 0.0,
        'workRVUs': 5000.0,
        'currentCF': 50.0,
    }
    data.update(overrides)
    return CompensationRecord(**data)


def create_csv_bytes(rows: List[Dict[str, Any]]) -> bytes:
    """Serialize rows to CSV bytes the way an upload would arrive."""
    buffer = io.StringIO()
    pd.DataFrame(rows).to_csv(buffer, index=False)
    return buffer.getvalue().encode('utf-8')


# ============================================================
# MARKET FIXTURES
# ============================================================

@pytest.fixture
def tcc_curve() -> PercentileCurve:
    return PercentileCurve(p25=300000, p50=400000, p75=500000, p90=600000)


@pytest.fixture
def wrvu_curve() -> PercentileCurve:
    return PercentileCurve(p25=4000, p50=5000, p75=6000, p90=7000)


@pytest.fixture
def cf_curve() -> PercentileCurve:
    return PercentileCurve(p25=40.0, p50=50.0, p75=65.0, p90=80.0)


@pytest.fixture
def cardiology_benchmark(tcc_curve, wrvu_curve, cf_curve) -> MarketBenchmark:
    return MarketBenchmark(specialty='Cardiology', tcc=tcc_curve, cf=cf_curve, wrvu=wrvu_curve)


@pytest.fixture
def benchmarks(cardiology_benchmark) -> List[MarketBenchmark]:
    return [cardiology_benchmark]


# ============================================================
# PROVIDER FIXTURES
# ============================================================

@pytest.fixture
def cardiology_records() -> List[CompensationRecord]:
    """
    Four Cardiology providers at a $50 current CF.

    With the derived threshold (base / CF) none of them earns an incentive,
    so pay percentile comes straight from base salary:
    - C-1: $480k -> pay 70, 4600 wRVUs -> productivity 40
    - C-2: $420k -> pay 55, 5400 wRVUs -> productivity 60
    - C-3, C-4: same data, new hires with 3 months tenure (excluded)
    """
    return [
        make_record('C-1', baseSalary=480000.0, workRVUs=4600.0),
        make_record('C-2', baseSalary=420000.0, workRVUs=5400.0),
        make_record('C-3', baseSalary=480000.0, workRVUs=4600.0, newHire=True, tenureMonths=3),
        make_record('C-4', baseSalary=420000.0, workRVUs=5400.0, newHire=True, tenureMonths=3),
    ]


@pytest.fixture
def dermatology_records() -> List[CompensationRecord]:
    """Providers of a specialty with no market benchmark."""
    return [
        make_record('D-1', specialty='Dermatology', currentCF=45.0),
        make_record('D-2', specialty='Dermatology', currentCF=47.0),
    ]


# ============================================================
# SETTINGS FIXTURES
# ============================================================

@pytest.fixture
def optimizer_settings() -> OptimizerSettings:
    return OptimizerSettings()


@pytest.fixture
def mock_settings() -> Settings:
    """Settings with explicit values, independent of the environment."""
    return Settings(
        app_name='CompBench Test API',
        log_level='DEBUG',
        single_active_run=True,
        max_retained_runs=10,
        max_cf_change_pct=20.0,
        outlier_min_population=5,
    )
