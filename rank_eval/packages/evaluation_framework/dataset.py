"""
Ratings management: topics, query groups, queries and relevance judgments.
"""

import json
import logging
from pathlib import Path
from typing import Iterator, List, Tuple

from pydantic import ValidationError

from .models import QueryGroupRatings, QueryRatings, RatingsDocument, TopicRatings

logger = logging.getLogger(__name__)


class RatingsDataset:
    """Ground truth: the ratings document of one evaluation suite."""

    def __init__(self, document: RatingsDocument):
        """Initialize dataset with a parsed ratings document."""
        logger.info(f"Initializing ratings dataset for index '{document.index}'")
        self._document = document
        self._validate()
        logger.info("Ratings dataset initialized successfully")

    def _validate(self) -> None:
        """Validate dataset integrity."""
        logger.info("Validating ratings")

        for topic in self._document.topics:
            # Query group names identify tree nodes, so they must be unique per topic
            names = [group.name for group in topic.query_groups]
            if len(names) != len(set(names)):
                seen = set()
                duplicates = []
                for name in names:
                    if name in seen:
                        duplicates.append(name)
                    seen.add(name)

                duplicate_list = "\n".join(f"  - {name}" for name in duplicates)
                raise ValueError(
                    f"Duplicate query groups found in topic '{topic.description}':\n{duplicate_list}")

            for group in topic.query_groups:
                if len(group.relevant_documents) == 0:
                    logger.warning(f"Query group '{group.name}' has 0 relevant documents")
                if len(group.queries) == 0:
                    logger.warning(f"Query group '{group.name}' has no queries")

        logger.info("Ratings validation complete")

    @classmethod
    def from_json(cls, path: str) -> "RatingsDataset":
        """Load ratings from a JSON file."""
        logger.info(f"Loading ratings from {path}")

        path_obj = Path(path)
        if not path_obj.is_file():
            raise FileNotFoundError(f"Ratings file not found: {path}")

        with open(path_obj, 'r', encoding='utf-8') as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as e:
                raise ValueError(f"Error parsing ratings file {path}: {e}") from e

        try:
            document = RatingsDocument.model_validate(data)
        except ValidationError:
            logger.error(f"Ratings file {path} is missing required fields")
            raise

        logger.info(f"Loaded {len(document.topics)} topics from {path}")
        return cls(document)

    @property
    def index(self) -> str:
        return self._document.index

    @property
    def id_field(self) -> str:
        return self._document.id_field

    @property
    def collection_file(self) -> str:
        return self._document.collection_file

    def get_topics(self) -> List[TopicRatings]:
        """Get all topics."""
        return self._document.topics

    def iter_queries(self) -> Iterator[Tuple[TopicRatings, QueryGroupRatings, QueryRatings]]:
        """Walk every (topic, query group, query) combination in document order."""
        for topic in self._document.topics:
            for group in topic.query_groups:
                for query in group.queries:
                    yield topic, group, query

    def count_queries(self) -> int:
        return sum(1 for _ in self.iter_queries())
