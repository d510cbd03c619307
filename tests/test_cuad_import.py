"""
Tests for execution/briefly/cuad_import.py

Covers: contract type inference, both dataset shapes, row construction,
batched inserts with skip/failure accounting, and the HTTP fetch.
"""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from tests.conftest import ORG_ID, USER_ID

SQUAD_DATASET = {
    "version": "aok_v1.0",
    "data": [
        {
            "title": "ACME_DISTRIBUTOR AGREEMENT",
            "paragraphs": [{
                "context": "This Distributor Agreement is made between Acme and Beta.",
                "qas": [{
                    "question": "Highlight the parts related to \"Governing Law\"",
                    "answers": [{"text": "laws of Delaware", "answer_start": 10}],
                    "is_impossible": False,
                }, {
                    "question": "Highlight the parts related to \"Non-Compete\"",
                    "answers": [],
                    "is_impossible": True,
                }],
            }],
        },
        {
            "title": "Widget Supply Contract",
            "paragraphs": [{"context": "Supply terms.", "qas": []}],
        },
    ],
}


def _contracts(n):
    return [{"title": f"Contract {i}", "paragraphs": [f"Body {i}"], "qa": []} for i in range(n)]


class TestInferContractType:

    @pytest.mark.parametrize("title,expected", [
        ("Acme Distributor Agreement", "Distribution Agreement"),
        ("Mutual NDA", "Non-Disclosure Agreement"),
        ("Executive Employment Agreement", "Employment Agreement"),
        ("Software Licensing Agreement", "License Agreement"),
        ("Master Service Agreement", "Service Agreement"),
        ("Joint Venture Agreement", "Joint Venture Agreement"),
        ("Supply Contract", "General Agreement"),
        ("", "General Agreement"),
    ])
    def test_keywords(self, title, expected):
        from execution.briefly.cuad_import import infer_contract_type
        assert infer_contract_type(title) == expected

    def test_first_group_wins(self):
        from execution.briefly.cuad_import import infer_contract_type
        assert infer_contract_type("Distribution and License Agreement") == "Distribution Agreement"


class TestContractsFromDataset:

    def test_squad_shape(self):
        from execution.briefly.cuad_import import contracts_from_dataset
        contracts = contracts_from_dataset(SQUAD_DATASET)
        assert [c["title"] for c in contracts] == ["ACME_DISTRIBUTOR AGREEMENT", "Widget Supply Contract"]
        assert contracts[0]["paragraphs"] == ["This Distributor Agreement is made between Acme and Beta."]
        assert contracts[0]["qa"][0]["answers"] == ["laws of Delaware"]
        assert contracts[0]["qa"][1]["is_impossible"] is True

    def test_flattened_shape(self):
        from execution.briefly.cuad_import import contracts_from_dataset
        dataset = {"data": [{"title": "T", "paragraphs": ["p1", "p2"], "qa": [{"question": "q"}]}]}
        assert contracts_from_dataset(dataset) == [{"title": "T", "paragraphs": ["p1", "p2"], "qa": [{"question": "q"}]}]

    def test_missing_data(self):
        from execution.briefly.cuad_import import contracts_from_dataset
        assert contracts_from_dataset({}) == []


class TestBuildDocumentRow:

    def test_row(self):
        from execution.briefly.cuad_import import build_document_row
        now = datetime(2024, 2, 1, tzinfo=timezone.utc)
        contract = {"title": "Reseller License", "paragraphs": ["A", "B"], "qa": [{"question": "q"}]}
        row = build_document_row(contract, ORG_ID, USER_ID, now)

        assert row["content_text"] == "A\n\nB"
        assert row["file_size"] == 4
        assert row["file_type"] == "cuad_contract"
        assert row["vectorization_status"] == "pending"
        assert row["metadata"] == {
            "source": "CUAD",
            "contract_type": "License Agreement",
            "cuad_annotations": [{"question": "q"}],
            "total_clauses": 1,
            "import_date": now.isoformat(),
        }


class TestCuadImporter:

    def test_imports_in_batches(self, mock_store):
        from execution.briefly.cuad_import import CuadImporter
        calls = []
        original = mock_store.insert_documents

        def tracking_insert(rows):
            calls.append(len(rows))
            return original(rows)

        mock_store.insert_documents = tracking_insert
        summary = CuadImporter(mock_store, session=MagicMock(), batch_size=2).import_contracts(
            _contracts(5), ORG_ID, USER_ID
        )

        assert calls == [2, 2, 1]
        assert (summary.total, summary.imported, summary.skipped, summary.failed) == (5, 5, 0, 0)

    def test_existing_titles_skipped(self, mock_store):
        from execution.briefly.cuad_import import CuadImporter
        mock_store.add_document("old", filename="Contract 1", file_type="cuad_contract")
        summary = CuadImporter(mock_store, session=MagicMock()).import_contracts(_contracts(3), ORG_ID, USER_ID)
        assert summary.imported == 2
        assert summary.skipped == 1

    def test_failed_batch_counts_all_rows(self, mock_store):
        from execution.briefly.cuad_import import CuadImporter

        def failing_insert(rows):
            raise RuntimeError("duplicate key")

        mock_store.insert_documents = failing_insert
        summary = CuadImporter(mock_store, session=MagicMock(), batch_size=2).import_contracts(
            _contracts(3), ORG_ID, USER_ID
        )
        assert summary.failed == 3
        assert summary.imported == 0
        assert summary.errors == ["Batch insert failed: duplicate key"] * 2

    def test_summary_dict_caps_errors(self):
        from execution.briefly.cuad_import import ImportSummary
        summary = ImportSummary(total=12, failed=12, errors=[f"e{i}" for i in range(12)])
        data = summary.to_dict()
        assert data["success"] is True
        assert data["summary"] == {"total": 12, "imported": 0, "skipped": 0, "failed": 12}
        assert len(data["errors"]) == 10
        assert "errors" not in ImportSummary().to_dict()

    def test_import_from_url(self, mock_store):
        from execution.briefly.cuad_import import CuadImporter
        session = MagicMock()
        session.get.return_value.json.return_value = SQUAD_DATASET

        summary = CuadImporter(mock_store, session=session).import_from_url("https://example.com/CUAD_v1.json", ORG_ID, USER_ID)

        session.get.assert_called_once_with("https://example.com/CUAD_v1.json", timeout=120)
        assert summary.imported == 2
        docs = mock_store.list_documents(ORG_ID, file_type="cuad_contract")
        assert {d["filename"] for d in docs} == {"ACME_DISTRIBUTOR AGREEMENT", "Widget Supply Contract"}
        imported = next(d for d in docs if d["filename"] == "ACME_DISTRIBUTOR AGREEMENT")
        assert imported["metadata"]["contract_type"] == "Distribution Agreement"

    def test_fetch_error_propagates(self, mock_store):
        import requests
        from execution.briefly.cuad_import import CuadImporter
        session = MagicMock()
        session.get.return_value.raise_for_status.side_effect = requests.HTTPError("404")
        with pytest.raises(requests.HTTPError):
            CuadImporter(mock_store, session=session).import_from_url("https://x", ORG_ID, USER_ID)


ANNOTATED_CONTRACT = {
    "title": "Beta Software License",
    "paragraphs": ["..."],
    "qa": [
        {"question": 'Highlight the parts (if any) of this contract related to "Parties" that should be reviewed',
         "answers": ["Beta Corp"], "is_impossible": False},
        {"question": 'Highlight the parts (if any) of this contract related to "Governing Law" that should be reviewed',
         "answers": ["governed by the laws of New York", "governed by the laws of New York"],
         "is_impossible": False},
        {"question": 'Highlight the parts (if any) of this contract related to "Cap On Liability" that should be reviewed',
         "answers": [{"text": " liability shall not exceed fees paid ", "answer_start": 3}, ""],
         "is_impossible": False},
        {"question": 'Highlight the parts (if any) of this contract related to "Non-Compete" that should be reviewed',
         "answers": [], "is_impossible": True},
        {"question": "Unlabelled question", "answers": ["ignored"], "is_impossible": False},
    ],
}


class TestBenchmarkClausesFromContract:

    def test_clause_category(self):
        from execution.briefly.cuad_import import clause_category
        assert clause_category('... related to "Anti-Assignment" that should ...') == "Anti-Assignment"
        assert clause_category("no quotes here") is None

    def test_rows(self):
        from execution.briefly.cuad_import import benchmark_clauses_from_contract
        rows = benchmark_clauses_from_contract(ANNOTATED_CONTRACT)
        assert [(r["clause_type"], r["clause_text"]) for r in rows] == [
            ("Governing Law", "governed by the laws of New York"),
            ("Cap On Liability", "liability shall not exceed fees paid"),
        ]
        assert rows[0]["source_document"] == "Beta Software License"
        assert rows[0]["metadata"] == {"source": "CUAD", "contract_type": "License Agreement"}

    def test_raw_squad_answers(self):
        from execution.briefly.cuad_import import benchmark_clauses_from_contract, contracts_from_dataset
        contract = contracts_from_dataset(SQUAD_DATASET)[0]
        rows = benchmark_clauses_from_contract(contract)
        assert [(r["clause_type"], r["clause_text"]) for r in rows] == [("Governing Law", "laws of Delaware")]


class TestSeedBenchmarks:

    def test_seeds_embedded_clauses(self, mock_store, mock_embeddings):
        from execution.briefly.cuad_import import CuadImporter
        from tests.conftest import fake_vector
        contracts = [ANNOTATED_CONTRACT, {"title": "Empty", "paragraphs": [], "qa": []}]

        summary = CuadImporter(mock_store, session=MagicMock()).seed_benchmarks(contracts, mock_embeddings)

        assert (summary.contracts, summary.skipped, summary.inserted, summary.failed) == (2, 0, 2, 0)
        stored = mock_store.benchmark_clauses
        assert [c["clause_type"] for c in stored] == ["Governing Law", "Cap On Liability"]
        assert stored[1]["embedding"] == fake_vector("liability shall not exceed fees paid")
        assert stored[0]["source_document"] == "Beta Software License"

    def test_embeds_in_batches(self, mock_store):
        from execution.briefly.cuad_import import CuadImporter
        from tests.conftest import MockEmbeddingService
        contract = {
            "title": "Many Clauses",
            "qa": [{"question": 'related to "Audit Rights"', "answers": [f"audit clause {i}" for i in range(5)]}],
        }
        embeddings = MockEmbeddingService(batch_size=2)

        summary = CuadImporter(mock_store, session=MagicMock()).seed_benchmarks([contract], embeddings)

        assert summary.inserted == 5
        assert [c["clause_text"] for c in mock_store.benchmark_clauses] == [f"audit clause {i}" for i in range(5)]

    def test_already_seeded_contract_skipped(self, mock_store, mock_embeddings):
        from execution.briefly.cuad_import import CuadImporter
        importer = CuadImporter(mock_store, session=MagicMock())
        importer.seed_benchmarks([ANNOTATED_CONTRACT], mock_embeddings)

        summary = importer.seed_benchmarks([ANNOTATED_CONTRACT], mock_embeddings)

        assert (summary.skipped, summary.inserted) == (1, 0)
        assert len(mock_store.benchmark_clauses) == 2

    def test_failed_insert_counted(self, mock_store, mock_embeddings):
        from execution.briefly.cuad_import import CuadImporter
        mock_store.fail_insert_benchmark = True

        summary = CuadImporter(mock_store, session=MagicMock()).seed_benchmarks([ANNOTATED_CONTRACT], mock_embeddings)

        assert (summary.inserted, summary.failed) == (0, 2)
        assert summary.to_dict()["errors"] == ["Beta Software License: insert failed"] * 2

    def test_seeded_library_feeds_benchmarking(self, mock_store, mock_embeddings):
        from execution.briefly.benchmark import ClauseBenchmarker
        from execution.briefly.cuad_import import CuadImporter
        from tests.conftest import make_finding
        CuadImporter(mock_store, session=MagicMock()).seed_benchmarks([ANNOTATED_CONTRACT], mock_embeddings)
        mock_store.benchmark_matches = [
            {**c, "similarity": 0.9} for c in mock_store.benchmark_clauses if c["clause_type"] == "Governing Law"
        ]
        review_id = mock_store.create_contract_review("doc-1", "u1", "org-1")["id"]
        mock_store.insert_clause_findings(review_id, [make_finding("Governing Law")])
        finding_id = mock_store.list_clause_findings(review_id)[0]["id"]

        data = ClauseBenchmarker(mock_store, mock_embeddings).benchmark(
            finding_id, "governed by New York law", clause_type="Governing Law"
        )

        assert data["total_matches"] == 1
        assert data["similar_clauses"][0]["clause_text"] == "governed by the laws of New York"
