"""
Abstract search platform interface for the evaluation framework.
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class QueryOrSearchResponse(BaseModel):
    """Hits returned by a platform for one query."""
    total_hits: int = Field(default=0, description="Total number of matching documents")
    hits: List[Dict[str, Any]] = Field(default_factory=list, description="Ranked hit window")
    failed: bool = Field(default=False,
                         description="True when the platform failed and the response was degraded to empty")

    @classmethod
    def empty(cls, failed: bool = False) -> "QueryOrSearchResponse":
        return cls(total_hits=0, hits=[], failed=failed)


class SearchPlatform(ABC):
    """Abstract interface for any search platform you evaluate."""

    @abstractmethod
    def load(
        self,
        corpus_file: Optional[Path],
        settings_folder: Path,
        internal_index_name: str,
        version: str
    ) -> None:
        """Index the corpus for one version, using that version's settings folder."""
        pass

    @abstractmethod
    def execute_query(
        self,
        internal_index_name: str,
        version: str,
        query_string: str,
        fields: List[str],
        max_rows: int
    ) -> QueryOrSearchResponse:
        """Run a query and return total hits plus the ordered hit window.

        Transient platform failures must be returned as a failed, empty response.
        """
        pass

    def is_corpora_required(self) -> bool:
        """Whether load() needs a readable corpus file."""
        return True

    def close(self) -> None:
        """Release platform resources."""
        pass
