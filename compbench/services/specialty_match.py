"""
Specialty Matching Service

Resolves a compensation record's raw specialty label to a MarketBenchmark.

Matching order:
1. Exact match on the normalized label.
2. Synonym map: normalized raw label -> canonical label, then exact match on
   the normalized canonical label.
3. Otherwise the record is unmatched (MatchStatus.MISSING).

The lookup tables are built once per run by SpecialtyLookup.build() and are
read-only afterwards, so a single instance can be shared by every specialty
processed in that run.
"""

import logging
import re
from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Iterable, Mapping, Optional

from compbench.models import MarketBenchmark, MatchStatus


logger = logging.getLogger(__name__)


_PUNCTUATION = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")


def normalize_specialty_key(label: Optional[str]) -> str:
    """
    Normalize a specialty label for lookup.

    Trims, case-folds, drops punctuation and collapses runs of whitespace, so
    "  Cardiology - Invasive " and "cardiology invasive" share a key.
    """
    if not label:
        return ""
    key = _PUNCTUATION.sub(" ", label.strip().casefold())
    return _WHITESPACE.sub(" ", key).strip()


@dataclass(frozen=True)
class SpecialtyMatch:
    """
    Result of a specialty lookup.

    Attributes:
        status: exact, synonym or missing.
        benchmark: The matched benchmark, None when missing.
        matched_specialty: Benchmark specialty label, None when missing.
    """
    status: MatchStatus
    benchmark: Optional[MarketBenchmark] = None
    matched_specialty: Optional[str] = None

    @property
    def is_matched(self) -> bool:
        return self.benchmark is not None


class SpecialtyLookup:
    """
    Read-only hash lookup over benchmarks and synonyms for one run.

    Example:
        lookup = SpecialtyLookup.build(benchmarks, {"Cards": "Cardiology"})
        match = lookup.match("cards")
        assert match.status == MatchStatus.SYNONYM
    """

    def __init__(
        self,
        benchmarks_by_key: Mapping[str, MarketBenchmark],
        synonyms_by_key: Mapping[str, str],
    ):
        self._benchmarks = MappingProxyType(dict(benchmarks_by_key))
        self._synonyms = MappingProxyType(dict(synonyms_by_key))

    @classmethod
    def build(
        cls,
        benchmarks: Iterable[MarketBenchmark],
        synonym_map: Optional[Mapping[str, str]] = None,
    ) -> "SpecialtyLookup":
        """
        Build the lookup tables.

        Duplicate benchmark specialties (after normalization) keep the first
        row. Synonyms with an empty key or target are ignored.
        """
        benchmarks_by_key: Dict[str, MarketBenchmark] = {}
        for benchmark in benchmarks:
            key = normalize_specialty_key(benchmark.specialty)
            if key in benchmarks_by_key:
                logger.warning(
                    f"Duplicate market benchmark for specialty '{benchmark.specialty}'; "
                    f"keeping the first row"
                )
                continue
            benchmarks_by_key[key] = benchmark

        synonyms_by_key: Dict[str, str] = {}
        for raw, canonical in (synonym_map or {}).items():
            raw_key = normalize_specialty_key(raw)
            canonical_key = normalize_specialty_key(canonical)
            if raw_key and canonical_key:
                synonyms_by_key.setdefault(raw_key, canonical_key)

        logger.debug(
            f"Built specialty lookup: {len(benchmarks_by_key)} benchmarks, "
            f"{len(synonyms_by_key)} synonyms"
        )
        return cls(benchmarks_by_key, synonyms_by_key)

    @property
    def benchmark_count(self) -> int:
        return len(self._benchmarks)

    def match(self, label: Optional[str]) -> SpecialtyMatch:
        """Resolve a raw specialty label."""
        key = normalize_specialty_key(label)
        if not key:
            return SpecialtyMatch(MatchStatus.MISSING)

        benchmark = self._benchmarks.get(key)
        if benchmark is not None:
            return SpecialtyMatch(MatchStatus.EXACT, benchmark, benchmark.specialty)

        canonical_key = self._synonyms.get(key)
        if canonical_key is not None:
            benchmark = self._benchmarks.get(canonical_key)
            if benchmark is not None:
                return SpecialtyMatch(MatchStatus.SYNONYM, benchmark, benchmark.specialty)

        return SpecialtyMatch(MatchStatus.MISSING)


__all__ = [
    "normalize_specialty_key",
    "SpecialtyMatch",
    "SpecialtyLookup",
]
