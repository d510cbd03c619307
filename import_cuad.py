"""
Import the CUAD contract dataset into an organization's repository.

Each contract becomes a 'cuad_contract' document with status 'pending';
run vectorize_pending.py afterwards to make them searchable. With
--seed-benchmarks the expert-annotated clause spans are also embedded into
the benchmark clause library used by clause benchmarking.

Usage:
    python import_cuad.py --org-id <uuid> --user-id <uuid>
    python import_cuad.py --org-id <uuid> --user-id <uuid> --url https://.../CUAD_v1.json
    python import_cuad.py --org-id <uuid> --user-id <uuid> --file CUAD_v1.json --seed-benchmarks
"""

import sys
import json
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

DEFAULT_CUAD_URL = "https://raw.githubusercontent.com/TheAtticusProject/cuad/main/data/CUAD_v1.json"


def main():
    arg_parser = argparse.ArgumentParser(description="Import the CUAD dataset")
    arg_parser.add_argument("--org-id", required=True, help="Organization UUID to import into")
    arg_parser.add_argument("--user-id", required=True, help="User UUID recorded as the uploader")
    arg_parser.add_argument("--url", default=DEFAULT_CUAD_URL, help="CUAD_v1.json location")
    arg_parser.add_argument("--file", type=str, help="Read the dataset from a local JSON file instead")
    arg_parser.add_argument("--batch-size", type=int, default=50, help="Contracts per insert (default: 50)")
    arg_parser.add_argument(
        "--seed-benchmarks", action="store_true",
        help="Also embed annotated clauses into the benchmark clause library",
    )
    args = arg_parser.parse_args()

    from execution.briefly.cuad_import import CuadImporter, contracts_from_dataset
    from execution.briefly.vector_store import VectorStore

    store = VectorStore()
    store.connect()
    store.initialize_schema()

    importer = CuadImporter(store, batch_size=args.batch_size)
    results = {}
    try:
        if args.file:
            path = Path(args.file)
            if not path.exists():
                logger.error(f"File not found: {path}")
                sys.exit(1)
            dataset = json.loads(path.read_text(encoding="utf-8"))
        else:
            dataset = importer.fetch_dataset(args.url)
        contracts = contracts_from_dataset(dataset)

        results["import"] = importer.import_contracts(contracts, args.org_id, args.user_id).to_dict()
        if args.seed_benchmarks:
            from execution.briefly.embeddings import get_embedding_service
            results["benchmarks"] = importer.seed_benchmarks(contracts, get_embedding_service()).to_dict()
    finally:
        store.close()

    print(json.dumps(results, indent=2))


if __name__ == "__main__":
    main()
