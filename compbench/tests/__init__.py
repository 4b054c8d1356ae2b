"""
CompBench test package.

Test Modules:
- test_interpolation: percentile curve lookups
- test_specialty_match: exact / synonym / missing resolution
- test_normalization: FTE, incentive and effective-rate math
- test_eligibility: rule exclusions and outlier fences
- test_scenario: scenario merging and provider evaluation
- test_optimizer: CF search and specialty results
- test_batch: orchestrator, progress and cancellation
- test_runner: background runs on asyncio
- test_ingestion: tabular parsing with pandas
- test_config: settings and defaults
- test_api: FastAPI endpoints
"""
