"""
Evaluation result tree.

Evaluation -> Corpus -> Configuration -> Topic -> QueryGroup -> Query.
Every node owns its children, keyed by name and kept in insertion order.
Query nodes hold per-version metric state. Completed queries push their
values into the parent query group; the levels above are rolled up on demand
by Evaluation.notify_collected_metrics().
"""

import logging
import threading
from decimal import Decimal
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Type

from .metrics import AveragedMetric, Hit, Metric

logger = logging.getLogger(__name__)


class QueryStatus(str, Enum):
    """Outcome of running one query against one version."""
    PENDING = "pending"
    OK = "ok"
    FAILED = "failed"


class DomainMember:
    """Base class for composite tree nodes."""

    child_type: ClassVar[Optional[Type["DomainMember"]]] = None
    children_key: ClassVar[str] = "children"

    def __init__(self, name: str, parent: Optional["DomainMember"] = None):
        self.name = name
        self.parent = parent
        self._children: Dict[str, Any] = {}
        self._children_lock = threading.Lock()
        self.metrics: Dict[str, AveragedMetric] = {}
        self._metrics_lock = threading.Lock()

    def find_or_create(self, name: str):
        """Child with the given name, created on first access."""
        with self._children_lock:
            child = self._children.get(name)
            if child is None:
                child = self.child_type(name, parent=self)
                self._children[name] = child
            return child

    def get_children(self) -> List[Any]:
        with self._children_lock:
            return list(self._children.values())

    def get_child(self, name: str):
        return self._children.get(name)

    def collect(self, version: str, metric_name: str, value: Decimal) -> None:
        """Add a child value to the running mean of a metric."""
        metric = self.metrics.get(metric_name)
        if metric is None:
            with self._metrics_lock:
                metric = self.metrics.setdefault(metric_name, AveragedMetric(metric_name))
        metric.collect(version, value)

    def notify_collected_metrics(self) -> None:
        """Recompute this node's means from the means of its children."""
        children = self.get_children()
        for child in children:
            child.notify_collected_metrics()

        with self._metrics_lock:
            self.metrics = {}
        for child in children:
            for metric_name, metric in child.metrics.items():
                for version, value in metric.get_versions().items():
                    self.collect(version, metric_name, value)

    def metric_values(self) -> Dict[str, Dict[str, float]]:
        return {
            name: {version: float(value) for version, value in metric.get_versions().items()}
            for name, metric in self.metrics.items()
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "metrics": self.metric_values(),
            self.children_key: [child.to_dict() for child in self.get_children()],
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


class Query:
    """A single resolved query, evaluated against every version."""

    def __init__(self, name: str, parent: Optional["QueryGroup"] = None):
        self.name = name
        self.parent = parent
        self.metrics: Dict[str, Metric] = {}
        self.total_hits: Dict[str, int] = {}
        self.hits: Dict[str, List[Hit]] = {}
        self.status: Dict[str, QueryStatus] = {}
        self._last_rank: Dict[str, int] = {}
        self._completed = False
        self._lock = threading.Lock()

    def add_all(self, metrics: Dict[str, Metric]) -> None:
        self.metrics.update(metrics)

    def set_total_hits(self, total_hits: int, version: str) -> None:
        self.total_hits[version] = total_hits
        for metric in self.metrics.values():
            metric.set_total_hits(total_hits, version)

    def collect(self, hit: Hit, rank: int, version: str) -> None:
        """Feed a hit to every metric. Ranks must start at 1 and increase by one per version."""
        expected = self._last_rank.get(version, 0) + 1
        if rank != expected:
            raise ValueError(f"Out of order hit for version {version}: got rank {rank}, expected {expected}")
        self._last_rank[version] = rank

        self.hits.setdefault(version, []).append(hit)
        for metric in self.metrics.values():
            metric.collect(hit, rank, version)

    def set_status(self, version: str, status: QueryStatus) -> None:
        self.status[version] = status

    def is_completed(self) -> bool:
        return self._completed

    def notify_collected_metrics(self) -> None:
        """Push the final metric values into the parent query group, once."""
        with self._lock:
            if self._completed:
                logger.warning(f"Query '{self.name}' already rolled up, ignoring")
                return
            self._completed = True

        if self.parent is None:
            return
        for metric_name, metric in self.metrics.items():
            for version in metric.get_versions():
                self.parent.collect(version, metric_name, metric.value(version))

    def metric_values(self) -> Dict[str, Dict[str, float]]:
        return {
            name: {version: float(metric.value(version)) for version in metric.get_versions()}
            for name, metric in self.metrics.items()
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "query": self.name,
            "total_hits": dict(self.total_hits),
            "status": {version: status.value for version, status in self.status.items()},
            "metrics": self.metric_values(),
        }

    def __repr__(self) -> str:
        return f"Query(name={self.name!r})"


class QueryGroup(DomainMember):
    """Queries sharing one judgment set. Its means are fed by completed queries."""

    child_type = Query
    children_key = "queries"

    def notify_collected_metrics(self) -> None:
        # Already up to date: each query pushed its values when it completed
        pending = [query.name for query in self.get_children() if not query.is_completed()]
        if pending:
            logger.warning(f"Query group '{self.name}' has {len(pending)} incomplete queries")


class Topic(DomainMember):
    child_type = QueryGroup
    children_key = "query_groups"


class Configuration(DomainMember):
    """A configuration set under test. Its versions are the keys of every metric."""

    child_type = Topic
    children_key = "topics"

    def __init__(self, name: str, parent: Optional[DomainMember] = None):
        super().__init__(name, parent)
        self.versions: List[str] = []

    def add_version(self, version: str) -> None:
        if version not in self.versions:
            self.versions.append(version)

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result["versions"] = list(self.versions)
        return result


class Corpus(DomainMember):
    child_type = Configuration
    children_key = "configurations"


class Evaluation(DomainMember):
    """Root of the evaluation result tree."""

    child_type = Corpus
    children_key = "corpora"

    def __init__(self, name: str = "evaluation", parent: Optional[DomainMember] = None):
        super().__init__(name, parent)
