"""
CUAD Import

Loads the Contract Understanding Atticus Dataset (CUAD_v1.json, SQuAD
format) into an organization's document repository. Each contract becomes
a 'cuad_contract' document awaiting vectorization, with its expert clause
annotations kept in metadata. The annotated answer spans can also seed the
benchmark clause library, labelled with their CUAD clause category.
"""

import re
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

logger = logging.getLogger(__name__)

CUAD_FILE_TYPE = "cuad_contract"
IMPORT_BATCH_SIZE = 50
MAX_REPORTED_ERRORS = 10

# Checked in order; the first group with a keyword in the title wins
CONTRACT_TYPE_KEYWORDS = (
    (("distribution", "distributor"), "Distribution Agreement"),
    (("nda", "non-disclosure", "confidentiality"), "Non-Disclosure Agreement"),
    (("employment", "employee"), "Employment Agreement"),
    (("license", "licensing"), "License Agreement"),
    (("service",), "Service Agreement"),
    (("joint venture",), "Joint Venture Agreement"),
)
DEFAULT_CONTRACT_TYPE = "General Agreement"

# CUAD questions name their category: ... related to "Governing Law" that ...
CATEGORY_PATTERN = re.compile(r'related to "([^"]+)"')
# Metadata categories whose answers are names and dates, not clauses
NON_CLAUSE_CATEGORIES = ("Document Name", "Parties", "Agreement Date", "Effective Date", "Expiration Date")
BENCHMARK_SOURCE = "CUAD"


@dataclass
class ImportSummary:
    """Counts from a CUAD import run."""
    total: int = 0
    imported: int = 0
    skipped: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        result = {
            "success": True,
            "summary": {
                "total": self.total,
                "imported": self.imported,
                "skipped": self.skipped,
                "failed": self.failed,
            },
        }
        if self.errors:
            result["errors"] = self.errors[:MAX_REPORTED_ERRORS]
        return result


@dataclass
class BenchmarkSeedSummary:
    """Counts from seeding the benchmark clause library."""
    contracts: int = 0
    skipped: int = 0
    inserted: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        result = {
            "success": True,
            "summary": {
                "contracts": self.contracts,
                "skipped": self.skipped,
                "inserted": self.inserted,
                "failed": self.failed,
            },
        }
        if self.errors:
            result["errors"] = self.errors[:MAX_REPORTED_ERRORS]
        return result


def infer_contract_type(title: str) -> str:
    """Guess the agreement type from a contract title."""
    lowered = (title or "").lower()
    for keywords, contract_type in CONTRACT_TYPE_KEYWORDS:
        if any(k in lowered for k in keywords):
            return contract_type
    return DEFAULT_CONTRACT_TYPE


def contracts_from_dataset(dataset: dict) -> list[dict]:
    """
    Flatten a CUAD/SQuAD payload into contracts.

    Accepts both the flattened shape ({title, paragraphs: [str], qa}) and
    the raw SQuAD shape ({title, paragraphs: [{context, qas}]}).
    """
    contracts = []
    for entry in dataset.get("data") or []:
        paragraphs = entry.get("paragraphs") or []
        if paragraphs and isinstance(paragraphs[0], dict):
            texts = [p.get("context", "") for p in paragraphs]
            qa = [
                {
                    "question": q.get("question", ""),
                    "answers": [a.get("text", "") for a in q.get("answers") or []],
                    "is_impossible": bool(q.get("is_impossible", False)),
                }
                for p in paragraphs
                for q in p.get("qas") or []
            ]
        else:
            texts = list(paragraphs)
            qa = list(entry.get("qa") or [])
        contracts.append({"title": entry.get("title", ""), "paragraphs": texts, "qa": qa})
    return contracts


def build_document_row(contract: dict, organization_id: str, user_id: str, now: Optional[datetime] = None) -> dict:
    """Turn one CUAD contract into a documents row."""
    content = "\n\n".join(contract.get("paragraphs") or [])
    qa = contract.get("qa") or []
    return {
        "organization_id": organization_id,
        "user_id": user_id,
        "filename": contract["title"],
        "content_text": content,
        "file_type": CUAD_FILE_TYPE,
        "file_size": len(content),
        "metadata": {
            "source": "CUAD",
            "contract_type": infer_contract_type(contract["title"]),
            "cuad_annotations": qa,
            "total_clauses": len(qa),
            "import_date": (now or datetime.now(timezone.utc)).isoformat(),
        },
        "vectorization_status": "pending",
    }


def clause_category(question: str) -> Optional[str]:
    """Extract the CUAD clause category quoted in an annotation question."""
    match = CATEGORY_PATTERN.search(question or "")
    return match.group(1).strip() if match else None


def benchmark_clauses_from_contract(contract: dict) -> list[dict]:
    """
    Turn a contract's answered annotations into benchmark clause rows.

    Unanswerable questions, metadata categories and repeated spans are
    dropped. Rows carry everything insert_benchmark_clause needs except
    the embedding.
    """
    title = contract.get("title", "")
    contract_type = infer_contract_type(title)
    rows = []
    seen = set()
    for qa in contract.get("qa") or []:
        if qa.get("is_impossible"):
            continue
        category = clause_category(qa.get("question", ""))
        if not category or category in NON_CLAUSE_CATEGORIES:
            continue
        for answer in qa.get("answers") or []:
            text = (answer.get("text", "") if isinstance(answer, dict) else str(answer)).strip()
            if not text or (category, text) in seen:
                continue
            seen.add((category, text))
            rows.append({
                "clause_type": category,
                "clause_text": text,
                "source_document": title,
                "metadata": {"source": BENCHMARK_SOURCE, "contract_type": contract_type},
            })
    return rows


def _make_session() -> requests.Session:
    """Create a session with retry backoff for dataset downloads."""
    s = requests.Session()
    retries = Retry(total=3, backoff_factor=2, status_forcelist=[500, 502, 503, 504])
    s.mount("https://", HTTPAdapter(max_retries=retries))
    return s


class CuadImporter:
    """
    Imports CUAD contracts into the documents table.

    Usage:
        importer = CuadImporter(store)
        summary = importer.import_from_url(url, organization_id, user_id)
    """

    def __init__(self, store, session: Optional[requests.Session] = None, batch_size: int = IMPORT_BATCH_SIZE):
        self.store = store
        self.session = session or _make_session()
        self.batch_size = batch_size

    def fetch_dataset(self, url: str) -> dict:
        """Download and decode the dataset JSON."""
        logger.info(f"Fetching CUAD dataset from: {url}")
        resp = self.session.get(url, timeout=120)
        resp.raise_for_status()
        return resp.json()

    def import_from_url(self, url: str, organization_id: str, user_id: str) -> ImportSummary:
        return self.import_contracts(contracts_from_dataset(self.fetch_dataset(url)), organization_id, user_id)

    def import_contracts(self, contracts: list[dict], organization_id: str, user_id: str) -> ImportSummary:
        """
        Insert contracts in batches, skipping titles already in the organization.

        A failed batch insert counts every contract in that batch as failed.
        """
        summary = ImportSummary(total=len(contracts))
        logger.info(f"Found {len(contracts)} contracts in CUAD dataset")
        total_batches = (len(contracts) + self.batch_size - 1) // self.batch_size

        for start in range(0, len(contracts), self.batch_size):
            batch = contracts[start:start + self.batch_size]
            logger.info(
                f"Processing batch {start // self.batch_size + 1}/{total_batches} ({len(batch)} contracts)"
            )

            rows = []
            for contract in batch:
                title = contract.get("title", "")
                try:
                    if self.store.find_document_by_filename(organization_id, title):
                        logger.debug(f"Skipping existing contract: {title}")
                        summary.skipped += 1
                        continue
                    rows.append(build_document_row(contract, organization_id, user_id))
                except Exception as e:
                    logger.error(f"Error processing contract {title}: {e}")
                    summary.errors.append(f"{title}: {e}")
                    summary.failed += 1

            if not rows:
                continue

            try:
                self.store.insert_documents(rows)
                summary.imported += len(rows)
            except Exception as e:
                logger.error(f"Batch insert error: {e}")
                summary.errors.append(f"Batch insert failed: {e}")
                summary.failed += len(rows)

        logger.info(
            f"Import complete: {summary.imported} imported, {summary.skipped} skipped, {summary.failed} failed"
        )
        return summary

    def seed_benchmarks(self, contracts: list[dict], embedding_service) -> BenchmarkSeedSummary:
        """
        Embed CUAD answer spans and store them as benchmark clauses.

        Contracts whose clauses are already in the library are skipped, so
        re-running a seed only adds new contracts. Embedding errors propagate;
        a failed insert is counted and the rest continue.
        """
        summary = BenchmarkSeedSummary(contracts=len(contracts))
        clauses = []
        for contract in contracts:
            title = contract.get("title", "")
            if self.store.has_benchmark_clauses(title):
                logger.debug(f"Benchmarks already seeded for: {title}")
                summary.skipped += 1
                continue
            clauses.extend(benchmark_clauses_from_contract(contract))

        logger.info(f"Seeding {len(clauses)} benchmark clauses from {len(contracts) - summary.skipped} contracts")
        for start, vectors in embedding_service.iter_batches([c["clause_text"] for c in clauses]):
            for clause, vector in zip(clauses[start:start + len(vectors)], vectors):
                try:
                    self.store.insert_benchmark_clause(embedding=vector, **clause)
                    summary.inserted += 1
                except Exception as e:
                    logger.error(f"Benchmark insert error ({clause['clause_type']}): {e}")
                    summary.errors.append(f"{clause['source_document']}: {e}")
                    summary.failed += 1

        logger.info(f"Benchmark seed complete: {summary.inserted} inserted, {summary.failed} failed")
        return summary
