"""
MongoDB Atlas Search implementation of the search platform interface.

Each (index, version) pair is a collection named after the internal index
name. Query templates are JSON: either a full aggregation pipeline (a list of
stages) or the body of a single $search stage.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from pymongo import MongoClient
from pymongo.errors import ConfigurationError, PyMongoError
from pymongo.operations import SearchIndexModel

from rank_eval.packages.evaluation_framework.search_platform import QueryOrSearchResponse, SearchPlatform

# Configure logging
logger = logging.getLogger(__name__)

SEARCH_INDEX_FILE = "search-index.json"
DEFAULT_SEARCH_INDEX_NAME = "default"


class MongoDBSearchPlatform(SearchPlatform):
    """Runs evaluation queries as aggregation pipelines against MongoDB collections."""

    def __init__(self, mongo_client: MongoClient, database_name: str, corpora_required: bool = True):
        """Initialize MongoDB search platform."""
        self.mongo_client = mongo_client
        self.database_name = database_name
        self.corpora_required = corpora_required

    def load(
        self,
        corpus_file: Optional[Path],
        settings_folder: Path,
        internal_index_name: str,
        version: str
    ) -> None:
        """Refill the version collection from the corpus and create its search index."""
        logger.info(f"Loading version {version} into collection '{internal_index_name}'")
        collection = self.mongo_client[self.database_name][internal_index_name]

        if corpus_file is None:
            logger.info(f"No corpus file given, using existing collection '{internal_index_name}'")
        else:
            documents = self._read_corpus(corpus_file)
            collection.drop()
            if documents:
                collection.insert_many(documents)
            logger.info(f"Indexed {len(documents)} documents into '{internal_index_name}'")

        settings_file = Path(settings_folder) / SEARCH_INDEX_FILE
        if settings_file.is_file():
            with open(settings_file, 'r', encoding='utf-8') as f:
                settings = json.load(f)
            model = SearchIndexModel(
                definition=settings.get("definition", settings),
                name=settings.get("name", DEFAULT_SEARCH_INDEX_NAME)
            )
            collection.create_search_index(model)
            logger.info(f"Created search index from {settings_file}")

    def execute_query(
        self,
        internal_index_name: str,
        version: str,
        query_string: str,
        fields: List[str],
        max_rows: int
    ) -> QueryOrSearchResponse:
        """Execute the query pipeline. Platform errors degrade to a failed, empty response."""
        logger.debug(f"Running query on '{internal_index_name}' (version {version}) with limit {max_rows}")

        stages = self._parse_pipeline(query_string, internal_index_name)
        hits_pipeline = stages + [
            {"$limit": max_rows},
            {"$project": self._build_projection(fields)}
        ]
        count_pipeline = stages + [{"$count": "total"}]

        try:
            collection = self.mongo_client[self.database_name][internal_index_name]
            hits = list(collection.aggregate(hits_pipeline))
            counted = list(collection.aggregate(count_pipeline))
        except ConfigurationError:
            raise
        except PyMongoError as e:
            logger.error(f"Search error on '{internal_index_name}' (version {version}): {e}")
            return QueryOrSearchResponse.empty(failed=True)

        total_hits = counted[0]["total"] if counted else 0
        logger.debug(f"Query on '{internal_index_name}' returned {len(hits)} of {total_hits} hits")
        return QueryOrSearchResponse(total_hits=total_hits, hits=hits)

    def is_corpora_required(self) -> bool:
        return self.corpora_required

    def close(self) -> None:
        logger.info("Closing MongoDB client")
        self.mongo_client.close()

    def _parse_pipeline(self, query_string: str, internal_index_name: str) -> List[Dict[str, Any]]:
        """Turn the resolved template into aggregation stages."""
        try:
            parsed = json.loads(query_string)
        except json.JSONDecodeError as e:
            raise ValueError(f"Query for '{internal_index_name}' is not valid JSON: {e}") from e

        if isinstance(parsed, dict):
            return [{"$search": parsed}]
        if isinstance(parsed, list):
            return parsed
        raise ValueError(
            f"Query for '{internal_index_name}' must be a pipeline or a $search body, got {type(parsed).__name__}")

    def _build_projection(self, fields: List[str]) -> Dict[str, int]:
        projection = {field: 1 for field in fields}
        if "_id" not in projection:
            projection["_id"] = 0
        return projection

    def _read_corpus(self, corpus_file: Path) -> List[Dict[str, Any]]:
        """Read the corpus as a JSON array or as JSON lines."""
        logger.info(f"Reading corpus from {corpus_file}")

        with open(corpus_file, 'r', encoding='utf-8') as f:
            content = f.read()

        if content.lstrip().startswith("["):
            try:
                return json.loads(content)
            except json.JSONDecodeError as e:
                raise ValueError(f"Error parsing corpus file {corpus_file}: {e}") from e

        documents: List[Dict[str, Any]] = []
        for line_num, line in enumerate(content.splitlines(), 1):
            line = line.strip()
            if not line:
                continue
            try:
                documents.append(json.loads(line))
            except json.JSONDecodeError as e:
                raise ValueError(f"Error parsing line {line_num} in {corpus_file}: {e}") from e
        return documents
