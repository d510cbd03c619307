"""
Clause Benchmarking

Compares a reviewed clause against the reference clause library by
embedding similarity and records whether it looks market standard.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

logger = logging.getLogger(__name__)

BENCHMARK_MATCH_THRESHOLD = 0.7
BENCHMARK_MATCH_COUNT = 5
MARKET_STANDARD_MIN_MATCHES = 3
MARKET_STANDARD_SIMILARITY = 0.85


def compute_benchmark_data(similar_clauses: Optional[list[dict]], now: Optional[datetime] = None) -> dict:
    """
    Summarize benchmark matches.

    A clause is market standard when at least three reference clauses match
    and at least one of them is more than 0.85 similar.
    """
    clauses = list(similar_clauses or [])
    similarities = [float(c.get("similarity") or 0) for c in clauses]

    return {
        "similar_clauses": clauses,
        "total_matches": len(clauses),
        "average_similarity": sum(similarities) / len(similarities) if similarities else 0,
        "is_market_standard": (
            len(clauses) >= MARKET_STANDARD_MIN_MATCHES
            and any(s > MARKET_STANDARD_SIMILARITY for s in similarities)
        ),
        "benchmarked_at": (now or datetime.now(timezone.utc)).isoformat(),
    }


class ClauseBenchmarker:
    """
    Benchmarks clause findings against the reference library.

    Usage:
        benchmarker = ClauseBenchmarker(store, embedding_service)
        data = benchmarker.benchmark(finding_id, clause_text, clause_type="Limitation of Liability")
    """

    def __init__(self, store, embedding_service):
        self.store = store
        self.embeddings = embedding_service

    def benchmark(self, finding_id: str, clause_text: str, clause_type: Optional[str] = None) -> dict:
        """
        Embed the clause, match it against benchmark clauses and store the
        result on the finding.

        Returns:
            The benchmark data written to the finding

        Raises:
            ValueError: If clause_text is empty
        """
        if not clause_text or not clause_text.strip():
            raise ValueError("clause_text is required")

        logger.info(f"Benchmarking clause for finding {finding_id}")
        embedding = self.embeddings.embed_query(clause_text)
        matches = self.store.match_benchmark_clauses(
            embedding,
            match_threshold=BENCHMARK_MATCH_THRESHOLD,
            match_count=BENCHMARK_MATCH_COUNT,
            clause_type=clause_type or None,
        )

        data = compute_benchmark_data(matches)
        self.store.update_finding_benchmark(finding_id, data)
        logger.info(
            f"Benchmark for {finding_id}: {data['total_matches']} matches, "
            f"market standard={data['is_market_standard']}"
        )
        return data
