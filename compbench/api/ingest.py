"""
FastAPI router module for tabular data ingestion.

Implements:
- POST /ingest/providers: provider rows -> CompensationRecords
- POST /ingest/market: market survey rows -> MarketBenchmarks
- POST /ingest/synonyms: label/specialty rows -> synonym map
- POST /ingest/{providers,market,synonyms}/file: the same from an uploaded
  CSV or XLSX file

Rows are posted as JSON objects keyed by source header, optionally with a
column mapping to the expected names. Files are posted as the raw request
body with a `filename` query parameter that selects the format. Row-level
problems are returned as ValidationIssues alongside whatever could be parsed;
the request only fails when no row could be read at all.
"""

import logging
from typing import Annotated, Any, Dict, List

import pandas as pd

from fastapi import APIRouter, Body, HTTPException, Query, Request
from pydantic import BaseModel, Field

from compbench.models import CompensationRecord, MarketBenchmark, ValidationIssue
from compbench.services.ingestion import (
    dataframe_from_rows,
    parse_market,
    parse_providers,
    parse_synonym_rows,
    read_table,
)


logger = logging.getLogger(__name__)


# =============================================================================
# Local Pydantic Models for API Requests and Responses
# =============================================================================

class IngestRequest(BaseModel):
    """Rows of an uploaded table."""
    rows: List[Dict[str, Any]] = Field(
        ...,
        description="One object per data row, keyed by column header"
    )
    columnMapping: Dict[str, str] = Field(
        default_factory=dict,
        description="Source header -> expected column name"
    )


class ProviderIngestResponse(BaseModel):
    records: List[CompensationRecord] = Field(default_factory=list)
    errors: List[ValidationIssue] = Field(default_factory=list)


class MarketIngestResponse(BaseModel):
    benchmarks: List[MarketBenchmark] = Field(default_factory=list)
    errors: List[ValidationIssue] = Field(default_factory=list)


class SynonymIngestResponse(BaseModel):
    synonymMap: Dict[str, str] = Field(default_factory=dict)
    errors: List[ValidationIssue] = Field(default_factory=list)


def _require_rows(request: IngestRequest) -> None:
    if not request.rows:
        raise HTTPException(status_code=400, detail="No data rows provided")


async def _read_upload(request: Request, filename: str) -> pd.DataFrame:
    """Read the raw request body as a CSV or XLSX table."""
    content = await request.body()
    if not content:
        raise HTTPException(status_code=400, detail="Uploaded file is empty")
    try:
        return read_table(content, filename=filename)
    except Exception as e:
        logger.warning(f"Could not read uploaded file '{filename}': {e}")
        raise HTTPException(
            status_code=400,
            detail=f"Could not read '{filename}' as a CSV or XLSX table"
        )


FilenameQuery = Annotated[str, Query(min_length=1, description="Uploaded file name, e.g. providers.xlsx")]


router = APIRouter()


# =============================================================================
# Endpoint Implementations
# =============================================================================


@router.post("/providers", response_model=ProviderIngestResponse)
async def ingest_providers(request: IngestRequest = Body(...)) -> ProviderIngestResponse:
    """
    Parse provider rows into validated compensation records.

    Raises:
        HTTPException(400) if there are no rows
    """
    _require_rows(request)
    try:
        records, errors = parse_providers(dataframe_from_rows(request.rows), request.columnMapping)
    except Exception as e:
        logger.exception("Error parsing provider rows")
        raise HTTPException(
            status_code=500,
            detail=f"Failed to parse provider rows: {str(e)}"
        )
    return ProviderIngestResponse(records=records, errors=errors)


@router.post("/market", response_model=MarketIngestResponse)
async def ingest_market(request: IngestRequest = Body(...)) -> MarketIngestResponse:
    """
    Parse market survey rows into benchmarks.

    Raises:
        HTTPException(400) if there are no rows
    """
    _require_rows(request)
    try:
        benchmarks, errors = parse_market(dataframe_from_rows(request.rows), request.columnMapping)
    except Exception as e:
        logger.exception("Error parsing market rows")
        raise HTTPException(
            status_code=500,
            detail=f"Failed to parse market rows: {str(e)}"
        )
    return MarketIngestResponse(benchmarks=benchmarks, errors=errors)


@router.post("/synonyms", response_model=SynonymIngestResponse)
async def ingest_synonyms(request: IngestRequest = Body(...)) -> SynonymIngestResponse:
    """Parse label/specialty rows into a synonym map."""
    _require_rows(request)
    synonyms, errors = parse_synonym_rows(dataframe_from_rows(request.rows), request.columnMapping)
    return SynonymIngestResponse(synonymMap=synonyms, errors=errors)


@router.post("/providers/file", response_model=ProviderIngestResponse)
async def ingest_provider_file(request: Request, filename: FilenameQuery) -> ProviderIngestResponse:
    """
    Parse an uploaded provider file (CSV, or XLSX via openpyxl).

    Raises:
        HTTPException(400) if the body is empty or cannot be read as a table
    """
    records, errors = parse_providers(await _read_upload(request, filename))
    return ProviderIngestResponse(records=records, errors=errors)


@router.post("/market/file", response_model=MarketIngestResponse)
async def ingest_market_file(request: Request, filename: FilenameQuery) -> MarketIngestResponse:
    """Parse an uploaded market survey file."""
    benchmarks, errors = parse_market(await _read_upload(request, filename))
    return MarketIngestResponse(benchmarks=benchmarks, errors=errors)


@router.post("/synonyms/file", response_model=SynonymIngestResponse)
async def ingest_synonym_file(request: Request, filename: FilenameQuery) -> SynonymIngestResponse:
    """Parse an uploaded label/specialty file."""
    synonyms, errors = parse_synonym_rows(await _read_upload(request, filename))
    return SynonymIngestResponse(synonymMap=synonyms, errors=errors)


__all__ = [
    "router",
    "IngestRequest",
    "ProviderIngestResponse",
    "MarketIngestResponse",
    "SynonymIngestResponse",
]
