"""
CompBench API package.

Router modules:
- runs: start, poll and cancel background engine runs
- ingest: parse uploaded provider, market and synonym tables
- analysis: CF percentile sweep and imputed vs market comparison
"""

from fastapi import APIRouter

from compbench.api.analysis import router as analysis_router
from compbench.api.ingest import router as ingest_router
from compbench.api.runs import router as runs_router

# Main API router, mounted under /api by main.py
api_router = APIRouter()

api_router.include_router(runs_router, prefix="/runs", tags=["runs"])
api_router.include_router(ingest_router, prefix="/ingest", tags=["ingest"])
api_router.include_router(analysis_router, prefix="/analysis", tags=["analysis"])

__all__ = [
    "api_router",
    "runs_router",
    "ingest_router",
    "analysis_router",
]
