"""
Vectorize every pending (or failed) document of an organization.

Documents are processed one at a time through the same pipeline as the
API endpoint, so the per-user vectorize limit (5/hour) still applies;
use --ignore-limits for bulk backfills.

Usage:
    python vectorize_pending.py --org-id <uuid>
    python vectorize_pending.py --org-id <uuid> --retry-failed --limit 20
"""

import sys
import time
import argparse
import logging
from pathlib import Path
from dotenv import load_dotenv

# Ensure project root is on path
PROJECT_ROOT = Path(__file__).resolve().parent
sys.path.insert(0, str(PROJECT_ROOT))
load_dotenv()

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)


class _NoLimit:
    def enforce(self, action, user_id, organization_id=None):
        return None


def main():
    parser = argparse.ArgumentParser(description="Vectorize pending documents")
    parser.add_argument("--org-id", required=True, help="Organization UUID")
    parser.add_argument("--limit", type=int, default=100, help="Maximum documents to process (default: 100)")
    parser.add_argument("--retry-failed", action="store_true", help="Also retry documents in 'failed' state")
    parser.add_argument("--ignore-limits", action="store_true", help="Skip the per-user vectorize limit")
    args = parser.parse_args()

    from execution.briefly.embeddings import get_embedding_service
    from execution.briefly.vector_store import VectorStore
    from execution.briefly.vectorizer import VectorizationPipeline, VectorizationError

    store = VectorStore()
    store.connect()

    statuses = ("pending", "failed") if args.retry_failed else ("pending",)
    document_ids = store.list_document_ids_by_status(args.org_id, statuses=statuses, limit=args.limit)
    if not document_ids:
        logger.info("No documents to vectorize")
        store.close()
        return

    pipeline = VectorizationPipeline(
        store,
        get_embedding_service(),
        rate_limiter=_NoLimit() if args.ignore_limits else None,
    )

    logger.info(f"Vectorizing {len(document_ids)} document(s)")
    start = time.time()
    done, failed = 0, 0
    for i, document_id in enumerate(document_ids, 1):
        try:
            result = pipeline.vectorize(document_id)
            done += 1
            logger.info(f"[{i}/{len(document_ids)}] {document_id}: {result.chunk_count} chunks")
        except VectorizationError as e:
            failed += 1
            logger.error(f"[{i}/{len(document_ids)}] {document_id}: {e.status_code} {e.message}")
            if e.status_code == 429:
                logger.error("Vectorize limit reached; stopping (use --ignore-limits for backfills)")
                break

    store.close()
    logger.info(f"Done in {time.time() - start:.0f}s: {done} vectorized, {failed} failed")


if __name__ == "__main__":
    main()
