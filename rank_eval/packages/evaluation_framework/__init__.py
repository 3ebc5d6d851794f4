"""
Evaluation Framework for Search Relevance

Runs templated queries against every version of a search platform configuration,
scores the hits against relevance judgments and rolls the metrics up a result tree.
"""

from .dataset import RatingsDataset
from .domain import Configuration, Corpus, Evaluation, Query, QueryGroup, QueryStatus, Topic
from .engine import Engine
from .evaluation_manager import (
    AsynchronousQueryEvaluationManager,
    BaseEvaluationManager,
    SynchronousQueryEvaluationManager,
)
from .experiment import compare_versions, display_summary, load_evaluation, save_evaluation
from .metrics import F0_5, F1, AveragedMetric, FMeasure, Metric, NDCGAtTen, Precision, Recall
from .models import Judgment, QueryGroupRatings, QueryRatings, RatingsDocument, TopicRatings
from .search_platform import QueryOrSearchResponse, SearchPlatform
from .templates import CachingQueryTemplateManager, FileQueryTemplateManager, TemplateNotFoundError

__all__ = [
    "Judgment",
    "QueryRatings",
    "QueryGroupRatings",
    "TopicRatings",
    "RatingsDocument",
    "RatingsDataset",
    "Metric",
    "Precision",
    "Recall",
    "FMeasure",
    "F1",
    "F0_5",
    "NDCGAtTen",
    "AveragedMetric",
    "Evaluation",
    "Corpus",
    "Configuration",
    "Topic",
    "QueryGroup",
    "Query",
    "QueryStatus",
    "SearchPlatform",
    "QueryOrSearchResponse",
    "FileQueryTemplateManager",
    "CachingQueryTemplateManager",
    "TemplateNotFoundError",
    "BaseEvaluationManager",
    "SynchronousQueryEvaluationManager",
    "AsynchronousQueryEvaluationManager",
    "Engine",
    "save_evaluation",
    "load_evaluation",
    "display_summary",
    "compare_versions",
]
