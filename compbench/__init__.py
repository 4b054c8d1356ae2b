"""
CompBench Package.

Clinician compensation benchmarking and conversion-factor (CF) recommendation
engine, with a FastAPI service layer for running it in the background.

Subpackages:
    - api: FastAPI route handlers
    - core: Configuration, exceptions, and dependencies
    - models: Pydantic schemas and enums
    - services: Benchmarking, eligibility, scenario, optimizer and batch services
"""

__version__ = "1.0.0"
