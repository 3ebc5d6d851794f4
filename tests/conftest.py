import json
import threading
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pytest

from rank_eval.packages.evaluation_framework.search_platform import QueryOrSearchResponse, SearchPlatform

QUERY_TEMPLATE = '{"text": {"query": "$query", "path": "title"}}'


class StubSearchPlatform(SearchPlatform):
    """In-memory platform answering every query with canned hits per version."""

    def __init__(
        self,
        responses: Optional[Dict[str, QueryOrSearchResponse]] = None,
        corpora_required: bool = True,
        handler: Optional[Callable[[str, str, str], QueryOrSearchResponse]] = None
    ):
        self.responses = responses or {}
        self.corpora_required = corpora_required
        self.handler = handler
        self.loads: List[Dict[str, Any]] = []
        self.queries: List[Dict[str, Any]] = []
        self.closed = False
        self._lock = threading.Lock()

    def load(self, corpus_file, settings_folder, internal_index_name, version):
        self.loads.append({
            "corpus_file": corpus_file,
            "settings_folder": Path(settings_folder),
            "internal_index_name": internal_index_name,
            "version": version,
        })

    def execute_query(self, internal_index_name, version, query_string, fields, max_rows):
        with self._lock:
            self.queries.append({
                "internal_index_name": internal_index_name,
                "version": version,
                "query_string": query_string,
                "fields": list(fields),
                "max_rows": max_rows,
            })
        if self.handler is not None:
            return self.handler(internal_index_name, version, query_string)
        return self.responses.get(version, QueryOrSearchResponse.empty())

    def is_corpora_required(self):
        return self.corpora_required

    def close(self):
        self.closed = True


def hits(*doc_ids: str) -> QueryOrSearchResponse:
    """Response returning the given documents in order."""
    return QueryOrSearchResponse(total_hits=len(doc_ids), hits=[{"id": doc_id} for doc_id in doc_ids])


def ratings_document(**overrides) -> Dict[str, Any]:
    document = {
        "index": "products",
        "id_field": "id",
        "collection_file": "products.json",
        "topics": [
            {
                "description": "Laptops",
                "query_groups": [
                    {
                        "name": "Brand queries",
                        "template": "query.json",
                        "relevant_documents": {
                            "doc1": {"gain": 3},
                            "doc2": {"gain": 1},
                        },
                        "queries": [
                            {"placeholders": {"$query": "laptop"}},
                        ],
                    }
                ],
            }
        ],
    }
    document.update(overrides)
    return document


@pytest.fixture
def stub_platform():
    return StubSearchPlatform()


@pytest.fixture
def templates_folder(tmp_path):
    folder = tmp_path / "templates"
    folder.mkdir()
    (folder / "query.json").write_text(QUERY_TEMPLATE, encoding="utf-8")
    return folder


@pytest.fixture
def workspace(tmp_path, templates_folder):
    """Configuration sets for versions v1.0 and v1.1, a corpus and a ratings file."""
    configurations = tmp_path / "configuration_sets"
    for version in ("v1.0", "v1.1"):
        (configurations / version / "products").mkdir(parents=True)

    corpora = tmp_path / "corpora"
    corpora.mkdir()
    (corpora / "products.json").write_text(
        json.dumps([{"id": "doc1"}, {"id": "doc2"}, {"id": "doc3"}]), encoding="utf-8")

    ratings = tmp_path / "ratings"
    ratings.mkdir()
    ratings_file = ratings / "ratings.json"
    ratings_file.write_text(json.dumps(ratings_document()), encoding="utf-8")

    return {
        "root": tmp_path,
        "configurations_folder": configurations,
        "corpora_folder": corpora,
        "ratings_file": ratings_file,
        "templates_folder": templates_folder,
    }
