"""
Tabular Ingestion Service

Turns uploaded provider, market survey and synonym tables (CSV/XLSX or rows
posted as JSON) into validated engine inputs.

Tables:
- Provider file: one row per provider, camelCase columns named after
  CompensationRecord fields (providerId and specialty required)
- Market file: one row per specialty with flat percentile columns
  TCC_25..TCC_90 and CF_25..CF_90 (required), WRVU_25..WRVU_90 (optional)
- Synonym file: label -> specialty pairs

Key Features:
- Optional column mapping from source headers to expected names
- Case-insensitive header matching
- Tolerant numeric coercion ("$1,234.50" -> 1234.5)
- Yes/No style flag coercion
- Duplicate provider id detection
- Per-row pydantic validation; bad rows are reported, not raised

Every parse function returns (parsed objects, list of ValidationIssue).
"""

import io
import logging
import math
from typing import Any, BinaryIO, Dict, Iterable, List, Mapping, Optional, Tuple, Union

import numpy as np
import pandas as pd
from pydantic import ValidationError

from compbench.models import (
    CompensationRecord,
    MarketBenchmark,
    PercentileCurve,
    ValidationIssue,
)


logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS - Expected Columns
# =============================================================================

PROVIDER_REQUIRED_COLUMNS: List[str] = [
    'providerId',
    'specialty',
]

PROVIDER_TEXT_COLUMNS: List[str] = [
    'providerName',
    'division',
    'providerType',
    'productivityModel',
]

PROVIDER_NUMERIC_COLUMNS: List[str] = [
    'totalFTE',
    'clinicalFTE',
    'baseSalary',
    'clinicalFTESalary',
    'qualityPayments',
    'otherIncentives',
    'workRVUs',
    'outsideWRVUs',
    'totalWRVUs',
    'currentCF',
    'currentThreshold',
    'tenureMonths',
]

PROVIDER_FLAG_COLUMNS: List[str] = [
    'leaveOfAbsence',
    'newHire',
    'manualExclude',
]

BENCHMARK_PERCENTILES: Tuple[int, ...] = (25, 50, 75, 90)

MARKET_TCC_COLUMNS: List[str] = [f'TCC_{p}' for p in BENCHMARK_PERCENTILES]
MARKET_CF_COLUMNS: List[str] = [f'CF_{p}' for p in BENCHMARK_PERCENTILES]
MARKET_WRVU_COLUMNS: List[str] = [f'WRVU_{p}' for p in BENCHMARK_PERCENTILES]

MARKET_REQUIRED_COLUMNS: List[str] = ['specialty'] + MARKET_TCC_COLUMNS + MARKET_CF_COLUMNS

MARKET_TEXT_COLUMNS: List[str] = [
    'providerType',
    'region',
]

SYNONYM_REQUIRED_COLUMNS: List[str] = [
    'label',
    'specialty',
]

TRUE_FLAG_VALUES = frozenset({'true', 't', 'yes', 'y', '1', 'x'})
FALSE_FLAG_VALUES = frozenset({'false', 'f', 'no', 'n', '0', ''})

EXCEL_EXTENSIONS = ('.xlsx', '.xlsm')

# Issues reported per column before the rest are summarized
MAX_ROWS_IN_MESSAGE = 5


TableSource = Union[str, bytes, BinaryIO]


# =============================================================================
# READING & COLUMN HANDLING
# =============================================================================


def read_table(source: TableSource, filename: Optional[str] = None) -> pd.DataFrame:
    """
    Read a CSV or Excel table into a DataFrame of strings.

    Values are kept as text so numeric coercion can report the offending
    cells instead of pandas silently choosing a dtype.

    Args:
        source: Path, raw bytes or binary file object.
        filename: Name used to pick the format; defaults to the path.

    Returns:
        DataFrame with one row per data row.
    """
    name = (filename or (source if isinstance(source, str) else '')).lower()

    if isinstance(source, bytes):
        source = io.BytesIO(source)

    if name.endswith(EXCEL_EXTENSIONS):
        df = pd.read_excel(source, engine='openpyxl', dtype=str)
    else:
        df = pd.read_csv(source, dtype=str, skipinitialspace=True)

    logger.info(f"Read table {name or '<stream>'} with {len(df)} rows and {len(df.columns)} columns")
    return df


def dataframe_from_rows(rows: Iterable[Mapping[str, Any]]) -> pd.DataFrame:
    """Build a DataFrame from JSON-style row dicts."""
    return pd.DataFrame.from_records(list(rows))


def apply_column_mapping(
    df: pd.DataFrame,
    mapping: Optional[Mapping[str, str]] = None,
) -> pd.DataFrame:
    """
    Rename source headers to expected column names.

    Args:
        df: Source DataFrame.
        mapping: {source header: expected column}; unknown headers are ignored.

    Returns:
        Renamed copy of the DataFrame.
    """
    renamed = df.copy()
    renamed.columns = [str(col).strip() for col in renamed.columns]
    if mapping:
        present = {source: target for source, target in mapping.items() if source in renamed.columns}
        renamed = renamed.rename(columns=present)
    return renamed


def canonicalize_columns(df: pd.DataFrame, expected: Iterable[str]) -> pd.DataFrame:
    """Rename headers that match an expected column case-insensitively."""
    by_lower = {col.lower(): col for col in expected}
    rename = {}
    for col in df.columns:
        target = by_lower.get(str(col).strip().lower())
        if target is not None and target != col:
            rename[col] = target
    return df.rename(columns=rename)


# =============================================================================
# VALIDATION
# =============================================================================


def _as_text(series: pd.Series) -> pd.Series:
    """Stripped string form of a column; missing cells become empty strings."""
    return series.where(series.notna(), '').astype(str).str.strip()


def _row_numbers(mask: pd.Series) -> List[int]:
    """1-based row numbers of the True positions in a boolean mask."""
    return [int(position) + 1 for position, flagged in enumerate(mask.tolist()) if flagged]


def validate_columns(df: pd.DataFrame, required_columns: Iterable[str]) -> List[ValidationIssue]:
    """
    Validate that all required columns are present.

    Args:
        df: DataFrame after column mapping.
        required_columns: Expected column names.

    Returns:
        One ValidationIssue per missing column.
    """
    errors: List[ValidationIssue] = []
    df_columns = set(str(col).lower() for col in df.columns)
    for col in required_columns:
        if col.lower() not in df_columns:
            errors.append(ValidationIssue(
                field=col,
                message=f"Required column '{col}' is missing",
            ))
    return errors


def validate_unique_ids(df: pd.DataFrame, id_column: str = 'providerId') -> List[ValidationIssue]:
    """
    Report every row whose id appears more than once.

    Args:
        df: DataFrame with canonical column names.
        id_column: Column holding the unique identifier.

    Returns:
        One ValidationIssue per duplicated id, pointing at its first row.
    """
    if id_column not in df.columns:
        return []

    ids = _as_text(df[id_column])
    duplicated_mask = ids.duplicated(keep=False) & (ids != '')
    if not duplicated_mask.any():
        return []

    errors: List[ValidationIssue] = []
    rows = _row_numbers(duplicated_mask)
    seen = set()
    for row_number in rows:
        value = ids.iloc[row_number - 1]
        if value in seen:
            continue
        seen.add(value)
        occurrences = [r for r in rows if ids.iloc[r - 1] == value]
        errors.append(ValidationIssue(
            field=id_column,
            message=f"Duplicate {id_column} '{value}' at rows {occurrences}",
            rowNumber=row_number,
        ))
    return errors


def coerce_numeric(series: pd.Series) -> pd.Series:
    """
    Convert a column to floats, tolerating currency symbols and separators.

    "$1,234.50" -> 1234.5, "12%" -> 12.0, "(500)" -> -500.0. Blank cells and
    unparseable text become NaN.
    """
    if pd.api.types.is_numeric_dtype(series) and not pd.api.types.is_bool_dtype(series):
        return series.astype(float)

    text = _as_text(series)
    negative = text.str.match(r'^\(.*\)$')
    cleaned = text.str.replace(r'[\$,%\s()]', '', regex=True)
    numeric = pd.to_numeric(cleaned.where(cleaned != '', np.nan), errors='coerce').astype(float)
    return numeric.where(~negative, -numeric)


def coerce_flags(series: pd.Series) -> pd.Series:
    """
    Convert Yes/No style values to booleans.

    Blank cells are False; unrecognized values become NA so they can be
    reported.
    """
    if pd.api.types.is_bool_dtype(series):
        return series.astype('boolean')

    text = _as_text(series).str.lower()
    result = pd.Series(pd.NA, index=series.index, dtype='boolean')
    result[text.isin(TRUE_FLAG_VALUES)] = True
    result[text.isin(FALSE_FLAG_VALUES)] = False
    return result


def validate_numeric(df: pd.DataFrame, columns: Iterable[str]) -> List[ValidationIssue]:
    """Report cells that are non-blank but not numeric."""
    errors: List[ValidationIssue] = []
    for col in columns:
        if col not in df.columns:
            continue
        raw = df[col]
        blank = _as_text(raw) == ''
        invalid_mask = coerce_numeric(raw).isna() & ~blank
        if invalid_mask.any():
            rows = _row_numbers(invalid_mask)
            errors.append(ValidationIssue(
                field=col,
                message=f"Found {len(rows)} non-numeric values in column '{col}'. "
                        f"First invalid rows: {rows[:MAX_ROWS_IN_MESSAGE]}",
                rowNumber=rows[0],
            ))
    return errors


def validate_flags(df: pd.DataFrame, columns: Iterable[str]) -> List[ValidationIssue]:
    """Report flag cells that are neither a yes nor a no value."""
    errors: List[ValidationIssue] = []
    for col in columns:
        if col not in df.columns:
            continue
        invalid_mask = coerce_flags(df[col]).isna()
        if invalid_mask.any():
            rows = _row_numbers(invalid_mask)
            errors.append(ValidationIssue(
                field=col,
                message=f"Found {len(rows)} unrecognized flag values in column '{col}'. "
                        f"First invalid rows: {rows[:MAX_ROWS_IN_MESSAGE]}",
                rowNumber=rows[0],
            ))
    return errors


def _issues_from_validation_error(exc: ValidationError, row_number: int) -> List[ValidationIssue]:
    issues = []
    for error in exc.errors():
        location = '.'.join(str(part) for part in error.get('loc', ())) or 'row'
        issues.append(ValidationIssue(field=location, message=error.get('msg', str(exc)), rowNumber=row_number))
    return issues


def _clean_text(value: Any) -> Optional[str]:
    if value is None or (isinstance(value, float) and math.isnan(value)) or value is pd.NA:
        return None
    text = str(value).strip()
    return text or None


def _clean_number(value: Any) -> Optional[float]:
    if value is None or value is pd.NA or pd.isna(value):
        return None
    return float(value)


# =============================================================================
# PARSERS
# =============================================================================


def _normalize_provider_frame(df: pd.DataFrame) -> pd.DataFrame:
    normalized = df.copy()
    for col in PROVIDER_NUMERIC_COLUMNS:
        if col in normalized.columns:
            normalized[col] = coerce_numeric(normalized[col])
    for col in PROVIDER_FLAG_COLUMNS:
        if col in normalized.columns:
            normalized[col] = coerce_flags(normalized[col])
    return normalized


def parse_providers(
    df: pd.DataFrame,
    mapping: Optional[Mapping[str, str]] = None,
) -> Tuple[List[CompensationRecord], List[ValidationIssue]]:
    """
    Parse a provider table into CompensationRecords.

    Performs the following steps:
    1. Apply the column mapping and case-insensitive header matching
    2. Validate required columns (stops on failure)
    3. Validate numeric and flag cells
    4. Report duplicate provider ids (first occurrence is kept)
    5. Validate each row with pydantic; invalid rows are skipped

    Args:
        df: Raw provider table.
        mapping: Optional {source header: expected column}.

    Returns:
        Tuple of (valid records, validation issues).
    """
    expected = PROVIDER_REQUIRED_COLUMNS + PROVIDER_TEXT_COLUMNS + PROVIDER_NUMERIC_COLUMNS + PROVIDER_FLAG_COLUMNS
    df = canonicalize_columns(apply_column_mapping(df, mapping), expected)

    errors = validate_columns(df, PROVIDER_REQUIRED_COLUMNS)
    if errors:
        return [], errors

    errors.extend(validate_numeric(df, PROVIDER_NUMERIC_COLUMNS))
    errors.extend(validate_flags(df, PROVIDER_FLAG_COLUMNS))
    errors.extend(validate_unique_ids(df, 'providerId'))

    normalized = _normalize_provider_frame(df)
    records: List[CompensationRecord] = []
    seen_ids = set()

    for position, row in enumerate(normalized.to_dict(orient='records')):
        row_number = position + 1
        provider_id = _clean_text(row.get('providerId'))
        if provider_id is None:
            errors.append(ValidationIssue(field='providerId', message='providerId is blank', rowNumber=row_number))
            continue
        if provider_id in seen_ids:
            continue
        seen_ids.add(provider_id)

        payload: Dict[str, Any] = {
            'providerId': provider_id,
            'specialty': _clean_text(row.get('specialty')) or '',
        }
        for col in PROVIDER_TEXT_COLUMNS:
            value = _clean_text(row.get(col))
            if value is not None:
                payload[col] = value
        for col in PROVIDER_NUMERIC_COLUMNS:
            value = _clean_number(row.get(col))
            if value is not None:
                payload[col] = value
        for col in PROVIDER_FLAG_COLUMNS:
            value = row.get(col)
            if value is not None and value is not pd.NA:
                payload[col] = bool(value)

        try:
            records.append(CompensationRecord.model_validate(payload))
        except ValidationError as exc:
            errors.extend(_issues_from_validation_error(exc, row_number))

    if errors:
        logger.warning(f"Provider ingestion found {len(errors)} issues in {len(df)} rows")
    logger.info(f"Parsed {len(records)} provider records")
    return records, errors


def _curve(row: Mapping[str, Any], columns: List[str]) -> Optional[PercentileCurve]:
    values = [_clean_number(row.get(col)) for col in columns]
    if any(value is None for value in values):
        return None
    return PercentileCurve(p25=values[0], p50=values[1], p75=values[2], p90=values[3])


def parse_market(
    df: pd.DataFrame,
    mapping: Optional[Mapping[str, str]] = None,
) -> Tuple[List[MarketBenchmark], List[ValidationIssue]]:
    """
    Parse a market survey table into MarketBenchmarks.

    A row needs all four TCC and CF points; the wRVU curve is attached only
    when all four WRVU columns are filled.

    Args:
        df: Raw market table.
        mapping: Optional {source header: expected column}.

    Returns:
        Tuple of (valid benchmarks, validation issues).
    """
    expected = MARKET_REQUIRED_COLUMNS + MARKET_WRVU_COLUMNS + MARKET_TEXT_COLUMNS
    df = canonicalize_columns(apply_column_mapping(df, mapping), expected)

    errors = validate_columns(df, MARKET_REQUIRED_COLUMNS)
    if errors:
        return [], errors

    numeric_columns = MARKET_TCC_COLUMNS + MARKET_CF_COLUMNS + MARKET_WRVU_COLUMNS
    errors.extend(validate_numeric(df, numeric_columns))

    normalized = df.copy()
    for col in numeric_columns:
        if col in normalized.columns:
            normalized[col] = coerce_numeric(normalized[col])

    benchmarks: List[MarketBenchmark] = []
    for position, row in enumerate(normalized.to_dict(orient='records')):
        row_number = position + 1
        specialty = _clean_text(row.get('specialty'))
        if specialty is None:
            errors.append(ValidationIssue(field='specialty', message='specialty is blank', rowNumber=row_number))
            continue

        tcc = _curve(row, MARKET_TCC_COLUMNS)
        cf = _curve(row, MARKET_CF_COLUMNS)
        if tcc is None or cf is None:
            errors.append(ValidationIssue(
                field='row',
                message=f"Market row for '{specialty}' is missing TCC or CF percentile values",
                rowNumber=row_number,
            ))
            continue

        try:
            benchmarks.append(MarketBenchmark(
                specialty=specialty,
                providerType=_clean_text(row.get('providerType')),
                region=_clean_text(row.get('region')),
                tcc=tcc,
                cf=cf,
                wrvu=_curve(row, MARKET_WRVU_COLUMNS),
            ))
        except ValidationError as exc:
            errors.extend(_issues_from_validation_error(exc, row_number))

    if errors:
        logger.warning(f"Market ingestion found {len(errors)} issues in {len(df)} rows")
    logger.info(f"Parsed {len(benchmarks)} market benchmarks")
    return benchmarks, errors


def parse_synonym_rows(
    df: pd.DataFrame,
    mapping: Optional[Mapping[str, str]] = None,
) -> Tuple[Dict[str, str], List[ValidationIssue]]:
    """
    Parse a synonym table into {label: benchmark specialty}.

    Blank rows are skipped; a label listed twice keeps its first target.
    """
    df = canonicalize_columns(apply_column_mapping(df, mapping), SYNONYM_REQUIRED_COLUMNS)

    errors = validate_columns(df, SYNONYM_REQUIRED_COLUMNS)
    if errors:
        return {}, errors

    synonyms: Dict[str, str] = {}
    for position, row in enumerate(df.to_dict(orient='records')):
        label = _clean_text(row.get('label'))
        target = _clean_text(row.get('specialty'))
        if label is None or target is None:
            continue
        if label in synonyms:
            if synonyms[label] != target:
                errors.append(ValidationIssue(
                    field='label',
                    message=f"Synonym '{label}' maps to both '{synonyms[label]}' and '{target}'",
                    rowNumber=position + 1,
                ))
            continue
        synonyms[label] = target

    return synonyms, errors


__all__ = [
    "PROVIDER_REQUIRED_COLUMNS",
    "PROVIDER_TEXT_COLUMNS",
    "PROVIDER_NUMERIC_COLUMNS",
    "PROVIDER_FLAG_COLUMNS",
    "MARKET_REQUIRED_COLUMNS",
    "MARKET_WRVU_COLUMNS",
    "SYNONYM_REQUIRED_COLUMNS",
    "read_table",
    "dataframe_from_rows",
    "apply_column_mapping",
    "canonicalize_columns",
    "validate_columns",
    "validate_unique_ids",
    "validate_numeric",
    "validate_flags",
    "coerce_numeric",
    "coerce_flags",
    "parse_providers",
    "parse_market",
    "parse_synonym_rows",
]
