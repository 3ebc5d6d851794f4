"""
Stateful ranking metrics computed incrementally from search hits.

Each metric keeps one ValueFactory per platform version. A ValueFactory is fed
the total hit count and then every hit in rank order, and exposes the metric
value computed from what it has collected so far.
"""

import importlib
import logging
import threading
from abc import ABC, abstractmethod
from decimal import ROUND_FLOOR, Decimal
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Type

from .models import Judgment

logger = logging.getLogger(__name__)

Hit = Mapping[str, Any]

ZERO = Decimal(0)
ONE = Decimal(1)


class ValueFactory(ABC):
    """Scoring state of one metric for one version."""

    def __init__(self, metric: "Metric", version: str):
        self.metric = metric
        self.version = version
        self.total_hits = 0

    def set_total_hits(self, total_hits: int) -> None:
        self.total_hits = total_hits

    @abstractmethod
    def collect(self, hit: Hit, rank: int) -> None:
        """Ingest the hit found at the given 1-based rank."""
        pass

    @abstractmethod
    def value(self) -> Decimal:
        """Metric value computed from the state collected so far."""
        pass


class Metric(ABC):
    """Base class for per-query metrics."""

    def __init__(self, name: str):
        self.name = name
        self.id_field_name = "id"
        self.relevant_documents: Mapping[str, Judgment] = MappingProxyType({})
        self._value_factories: Dict[str, ValueFactory] = {}

    @abstractmethod
    def create_value_factory(self, version: str) -> ValueFactory:
        """Create the scoring state for a version."""
        pass

    def set_id_field_name(self, id_field_name: str) -> None:
        self.id_field_name = id_field_name

    def set_relevant_documents(self, relevant_documents: Mapping[str, Judgment]) -> None:
        self.relevant_documents = MappingProxyType(dict(relevant_documents))

    def set_versions(self, versions: Iterable[str]) -> None:
        self._value_factories = {version: self.create_value_factory(version) for version in versions}

    def get_versions(self) -> Dict[str, ValueFactory]:
        return dict(self._value_factories)

    def value_factory(self, version: str) -> ValueFactory:
        """Scoring state for the version, created on first use."""
        factory = self._value_factories.get(version)
        if factory is None:
            factory = self._value_factories.setdefault(version, self.create_value_factory(version))
        return factory

    def set_total_hits(self, total_hits: int, version: str) -> None:
        self.value_factory(version).set_total_hits(total_hits)

    def collect(self, hit: Hit, rank: int, version: str) -> None:
        self.value_factory(version).collect(hit, rank)

    def value(self, version: str) -> Decimal:
        return self.value_factory(version).value()

    def judgment(self, doc_id: Optional[str]) -> Optional[Judgment]:
        """Judgment of the given document, if any."""
        if doc_id is None:
            return None
        return self.relevant_documents.get(doc_id)

    def id(self, hit: Hit) -> Optional[str]:
        """Identifier of a hit, read from the configured id field."""
        value = hit.get(self.id_field_name)
        return None if value is None else str(value)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


class _JudgedHitsCounter(ValueFactory):
    """Counts collected hits and how many of them are judged."""

    def __init__(self, metric: Metric, version: str):
        super().__init__(metric, version)
        self.relevant_found = 0
        self.collected = 0

    def collect(self, hit: Hit, rank: int) -> None:
        self.collected += 1
        if self.metric.judgment(self.metric.id(hit)) is not None:
            self.relevant_found += 1

    def _no_results_value(self) -> Decimal:
        # Nothing to find and nothing found is a perfect answer
        return ONE if len(self.metric.relevant_documents) == 0 else ZERO


class _PrecisionValueFactory(_JudgedHitsCounter):

    def value(self) -> Decimal:
        if self.total_hits == 0:
            return self._no_results_value()
        if len(self.metric.relevant_documents) == 0 or self.collected == 0:
            return ZERO
        return Decimal(self.relevant_found) / Decimal(self.collected)


class _RecallValueFactory(_JudgedHitsCounter):

    def value(self) -> Decimal:
        if self.total_hits == 0:
            return self._no_results_value()
        if len(self.metric.relevant_documents) == 0:
            return ZERO
        return Decimal(self.relevant_found) / Decimal(len(self.metric.relevant_documents))


class Precision(Metric):
    """Fraction of the returned hits that are judged relevant."""

    def __init__(self):
        super().__init__("P")

    def create_value_factory(self, version: str) -> ValueFactory:
        return _PrecisionValueFactory(self, version)


class Recall(Metric):
    """Fraction of the judged documents that have been returned."""

    def __init__(self):
        super().__init__("R")

    def create_value_factory(self, version: str) -> ValueFactory:
        return _RecallValueFactory(self, version)


class _FMeasureValueFactory(ValueFactory):

    def set_total_hits(self, total_hits: int) -> None:
        super().set_total_hits(total_hits)
        self.metric.precision.set_total_hits(total_hits, self.version)
        self.metric.recall.set_total_hits(total_hits, self.version)

    def collect(self, hit: Hit, rank: int) -> None:
        self.metric.precision.collect(hit, rank, self.version)
        self.metric.recall.collect(hit, rank, self.version)

    def value(self) -> Decimal:
        p = self.metric.precision.value(self.version)
        r = self.metric.recall.value(self.version)
        if p == ZERO or r == ZERO:
            return ZERO

        beta_squared = self.metric.beta_squared
        return (ONE + beta_squared) * (p * r) / (beta_squared * p + r)


class FMeasure(Metric):
    """
    Weighted harmonic mean of precision and recall.

    Recall is considered beta times as important as precision.
    """

    def __init__(self, name: str, beta: float):
        super().__init__(name)
        self.beta_squared = Decimal(str(beta)) ** 2
        self.precision = Precision()
        self.recall = Recall()

    def create_value_factory(self, version: str) -> ValueFactory:
        return _FMeasureValueFactory(self, version)

    def set_id_field_name(self, id_field_name: str) -> None:
        super().set_id_field_name(id_field_name)
        self.precision.set_id_field_name(id_field_name)
        self.recall.set_id_field_name(id_field_name)

    def set_relevant_documents(self, relevant_documents: Mapping[str, Judgment]) -> None:
        super().set_relevant_documents(relevant_documents)
        self.precision.set_relevant_documents(relevant_documents)
        self.recall.set_relevant_documents(relevant_documents)

    def set_versions(self, versions: Iterable[str]) -> None:
        versions = list(versions)
        super().set_versions(versions)
        self.precision.set_versions(versions)
        self.recall.set_versions(versions)


class F1(FMeasure):
    """F-Measure with precision and recall equally weighted."""

    def __init__(self):
        super().__init__("F1", 1)


class F0_5(FMeasure):
    """F-Measure weighting precision higher than recall."""

    def __init__(self):
        super().__init__("F0.5", 0.5)


_LN_2 = Decimal(2).ln()
_TWO_DECIMALS = Decimal("0.01")


def _discounted(gain: int, rank: int) -> Decimal:
    """Gain discounted by its rank: raw at rank 1, gain / log2(rank + 1) after."""
    if rank == 1:
        return Decimal(gain)
    return Decimal(gain) / (Decimal(rank + 1).ln() / _LN_2)


class _NDCGValueFactory(ValueFactory):

    def __init__(self, metric: "NDCGAtTen", version: str):
        super().__init__(metric, version)
        self.dcg = ZERO

    def collect(self, hit: Hit, rank: int) -> None:
        if rank > NDCGAtTen.WINDOW:
            return
        judgment = self.metric.judgment(self.metric.id(hit))
        if judgment is None:
            return
        self.dcg += _discounted(judgment.grade, rank)

    def value(self) -> Decimal:
        if self.total_hits == 0:
            return ONE if len(self.metric.relevant_documents) == 0 else ZERO

        ideal_dcg = self.metric.ideal_dcg()
        # Covers the 0/0 case: no judged hit and nothing to judge against
        if ideal_dcg == ZERO:
            return ZERO

        return (self.dcg / ideal_dcg).quantize(_TWO_DECIMALS, rounding=ROUND_FLOOR)


class NDCGAtTen(Metric):
    """Normalized Discounted Cumulative Gain over the first ten hits."""

    WINDOW = 10

    def __init__(self):
        super().__init__("NDCG@10")

    def create_value_factory(self, version: str) -> ValueFactory:
        return _NDCGValueFactory(self, version)

    def ideal_gains(self) -> List[int]:
        """Best possible gain sequence given the judgment set."""
        window_size = min(len(self.relevant_documents), self.WINDOW)
        grades = [judgment.grade for judgment in self.relevant_documents.values()]

        highly_relevant = min(grades.count(3), window_size)
        relevant = min(grades.count(2), window_size - highly_relevant)
        # Whatever is left in the window is filled with marginally relevant gains
        marginal = window_size - highly_relevant - relevant

        return [3] * highly_relevant + [2] * relevant + [1] * marginal

    def ideal_dcg(self) -> Decimal:
        result = ZERO
        for rank, gain in enumerate(self.ideal_gains(), start=1):
            result += _discounted(gain, rank)
        return result


class _Accumulator:
    """Running (total, count) pair guarded by its own lock."""

    def __init__(self):
        self._lock = threading.Lock()
        self.total = ZERO
        self.count = 0

    def add(self, value: Decimal) -> None:
        with self._lock:
            self.total += value
            self.count += 1

    def snapshot(self) -> Tuple[Decimal, int]:
        with self._lock:
            return self.total, self.count


class AveragedMetric:
    """
    Mean of a metric across many queries, kept per version.

    collect() may be called concurrently. Each version has its own lock, so
    updates for different versions never wait on each other.
    """

    def __init__(self, name: str):
        self.name = name
        self._buckets: Dict[str, _Accumulator] = {}
        self._buckets_lock = threading.Lock()

    def _bucket(self, version: str) -> _Accumulator:
        bucket = self._buckets.get(version)
        if bucket is None:
            with self._buckets_lock:
                bucket = self._buckets.setdefault(version, _Accumulator())
        return bucket

    def collect(self, version: str, value: Decimal) -> None:
        self._bucket(version).add(value)

    def count(self, version: str) -> int:
        bucket = self._buckets.get(version)
        return 0 if bucket is None else bucket.snapshot()[1]

    def value(self, version: str) -> Decimal:
        bucket = self._buckets.get(version)
        if bucket is None:
            return ZERO
        total, count = bucket.snapshot()
        if count == 0:
            return ZERO
        return total / Decimal(count)

    def get_versions(self) -> Dict[str, Decimal]:
        """Mean value of every version collected so far."""
        return {version: self.value(version) for version in list(self._buckets)}

    def __repr__(self) -> str:
        return f"AveragedMetric(name={self.name!r})"


METRIC_REGISTRY: Dict[str, Type[Metric]] = {
    "P": Precision,
    "R": Recall,
    "F1": F1,
    "F0.5": F0_5,
    "NDCG@10": NDCGAtTen,
}


def resolve_metric_class(name: str) -> Type[Metric]:
    """Map a short metric name or a dotted class path to a Metric class."""
    if name in METRIC_REGISTRY:
        return METRIC_REGISTRY[name]

    logger.debug(f"Loading metric class {name}")

    module_name, _, class_name = name.rpartition(".")
    if not module_name:
        raise ValueError(f"Unknown metric: {name}. Known metrics: {', '.join(METRIC_REGISTRY)}")

    try:
        metric_class = getattr(importlib.import_module(module_name), class_name)
    except (ImportError, AttributeError) as e:
        raise ValueError(f"Unable to load metric class {name}: {e}") from e

    if not isinstance(metric_class, type) or not issubclass(metric_class, Metric):
        raise ValueError(f"{name} is not a Metric class")

    return metric_class


def create_metrics(
    metric_classes: List[Type[Metric]],
    id_field_name: str,
    relevant_documents: Mapping[str, Judgment],
    versions: List[str]
) -> Dict[str, Metric]:
    """Instantiate and configure the metric set of a single query."""
    metrics: Dict[str, Metric] = {}
    for metric_class in metric_classes:
        try:
            metric = metric_class()
        except Exception as e:
            raise ValueError(f"Unable to instantiate metric {metric_class.__name__}: {e}") from e

        metric.set_id_field_name(id_field_name)
        metric.set_relevant_documents(relevant_documents)
        metric.set_versions(versions)
        metrics[metric.name] = metric

    return metrics
