"""
Data models for the ratings (relevance judgments) document.
"""

from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, Field

DEFAULT_GAIN = 2


class Judgment(BaseModel):
    """Relevance judgment attached to a single document."""
    gain: Optional[int] = Field(default=None, description="Relevance grade, commonly 0-3")

    @property
    def grade(self) -> int:
        """Judged grade, or the default grade when the judgment carries none."""
        return DEFAULT_GAIN if self.gain is None else self.gain


class QueryRatings(BaseModel):
    """One templated query of a query group."""
    template: Optional[str] = Field(default=None, description="Query-specific template file name")
    placeholders: Dict[str, Any] = Field(default_factory=dict,
                                         description="Placeholder name -> replacement value")


class QueryGroupRatings(BaseModel):
    """Group of related queries sharing one judgment set."""
    name: str
    description: str = ""
    template: Optional[str] = Field(default=None, description="Default template for the group queries")
    relevant_documents: Dict[str, Judgment] = Field(default_factory=dict)
    queries: List[QueryRatings] = Field(default_factory=list)

    def judgments(self) -> Mapping[str, Judgment]:
        """Read-only view over the judgment set."""
        return MappingProxyType(self.relevant_documents)


class TopicRatings(BaseModel):
    """A judgment scenario (search intent)."""
    description: str
    query_groups: List[QueryGroupRatings] = Field(default_factory=list)


class RatingsDocument(BaseModel):
    """Top-level ratings document."""
    index: str = Field(description="Index name, matched against the configuration subfolders")
    id_field: str = Field(default="id", description="Document identifier field in the search hits")
    collection_file: str = Field(description="Corpus file name inside the corpora folder")
    topics: List[TopicRatings] = Field(default_factory=list)
