from decimal import Decimal

import pytest

from rank_eval.packages.evaluation_framework.metrics import (
    F0_5,
    F1,
    NDCGAtTen,
    Precision,
    Recall,
    create_metrics,
    resolve_metric_class,
)
from rank_eval.packages.evaluation_framework.models import Judgment

VERSION = "v1.0"
ALL_METRICS = [Precision, Recall, F1, F0_5, NDCGAtTen]


def make_metric(metric_class, judgments):
    metric = metric_class()
    metric.set_relevant_documents({doc_id: Judgment(gain=gain) for doc_id, gain in judgments.items()})
    metric.set_versions([VERSION])
    return metric


def feed(metric, doc_ids, total_hits=None):
    metric.set_total_hits(len(doc_ids) if total_hits is None else total_hits, VERSION)
    for rank, doc_id in enumerate(doc_ids, start=1):
        metric.collect({"id": doc_id}, rank, VERSION)


@pytest.mark.parametrize("metric_class", ALL_METRICS)
def test_no_judgments_and_no_results_is_perfect(metric_class):
    metric = make_metric(metric_class, {})
    feed(metric, [])
    assert metric.value(VERSION) == Decimal(1)


@pytest.mark.parametrize("metric_class", ALL_METRICS)
def test_no_judgments_with_results_is_zero(metric_class):
    metric = make_metric(metric_class, {})
    feed(metric, ["doc1", "doc2"])
    assert metric.value(VERSION) == Decimal(0)


@pytest.mark.parametrize("metric_class", ALL_METRICS)
def test_judgments_without_results_is_zero(metric_class):
    metric = make_metric(metric_class, {"doc1": 3})
    feed(metric, [])
    assert metric.value(VERSION) == Decimal(0)


def test_precision_counts_judged_hits_over_returned_hits():
    metric = make_metric(Precision, {"doc1": 3, "doc2": 1})
    feed(metric, ["doc1", "doc2", "doc3"])
    assert metric.value(VERSION) == Decimal(2) / Decimal(3)


def test_recall_counts_judged_hits_over_judgments():
    metric = make_metric(Recall, {"doc1": 3, "doc2": 1, "doc4": 2, "doc5": 2})
    feed(metric, ["doc1", "doc3"])
    assert metric.value(VERSION) == Decimal("0.25")


def test_hit_id_is_read_from_configured_field():
    metric = make_metric(Precision, {"42": 3})
    metric.set_id_field_name("product_id")
    metric.set_total_hits(1, VERSION)
    metric.collect({"product_id": 42}, 1, VERSION)
    assert metric.value(VERSION) == Decimal(1)


def test_f1_is_harmonic_mean():
    metric = make_metric(F1, {"doc1": 3, "doc2": 1})
    feed(metric, ["doc1", "doc2", "doc3"])
    # P = 2/3, R = 1
    assert float(metric.value(VERSION)) == pytest.approx(0.8)


def test_f0_5_weights_precision():
    metric = make_metric(F0_5, {"doc1": 3, "doc2": 1})
    feed(metric, ["doc1", "doc2", "doc3"])
    # (1 + 0.25) * (2/3) / (0.25 * 2/3 + 1)
    assert float(metric.value(VERSION)) == pytest.approx(1.25 * (2 / 3) / (0.25 * 2 / 3 + 1))


@pytest.mark.parametrize("metric_class", [F1, F0_5])
def test_fmeasure_is_zero_when_nothing_relevant_is_found(metric_class):
    metric = make_metric(metric_class, {"doc1": 3})
    feed(metric, ["doc8", "doc9"])
    assert metric.value(VERSION) == Decimal(0)


def test_ndcg_perfect_ranking_is_one():
    judgments = {f"doc{i}": 3 for i in range(1, 11)}
    metric = make_metric(NDCGAtTen, judgments)
    feed(metric, [f"doc{i}" for i in range(1, 11)], total_hits=50)
    assert metric.value(VERSION) == Decimal("1.00")


def test_ndcg_mixed_grades_in_ideal_order_is_one():
    metric = make_metric(NDCGAtTen, {"doc1": 3, "doc2": 2, "doc3": 1})
    feed(metric, ["doc1", "doc2", "doc3"])
    assert metric.value(VERSION) == Decimal("1.00")


def test_ndcg_swapped_ranking_is_floored_to_two_decimals():
    metric = make_metric(NDCGAtTen, {"doc1": 3, "doc2": 2})
    feed(metric, ["doc2", "doc1"])
    # (2 + 3 / log2(3)) / (3 + 2 / log2(3)) = 0.9134...
    assert metric.value(VERSION) == Decimal("0.91")


def test_ndcg_ignores_hits_after_rank_ten():
    metric = make_metric(NDCGAtTen, {"doc11": 3})
    feed(metric, [f"doc{i}" for i in range(1, 12)])
    assert metric.value(VERSION) == Decimal(0)


def test_ndcg_judgment_without_gain_defaults_to_two():
    metric = NDCGAtTen()
    metric.set_relevant_documents({"doc1": Judgment(), "doc2": Judgment(gain=3)})
    metric.set_versions([VERSION])
    assert metric.ideal_gains() == [3, 2]
    feed(metric, ["doc2", "doc1"])
    assert metric.value(VERSION) == Decimal("1.00")


def test_ndcg_ideal_window_is_capped_at_ten():
    metric = make_metric(NDCGAtTen, {f"doc{i}": 1 for i in range(15)})
    assert len(metric.ideal_gains()) == 10


def test_versions_are_scored_independently():
    metric = Precision()
    metric.set_relevant_documents({"doc1": Judgment(gain=3)})
    metric.set_versions(["v1", "v2"])

    metric.set_total_hits(1, "v1")
    metric.collect({"id": "doc1"}, 1, "v1")
    metric.set_total_hits(2, "v2")
    metric.collect({"id": "doc7"}, 1, "v2")
    metric.collect({"id": "doc1"}, 2, "v2")

    assert metric.value("v1") == Decimal(1)
    assert metric.value("v2") == Decimal("0.5")
    assert set(metric.get_versions()) == {"v1", "v2"}


def test_judgments_are_read_only():
    metric = make_metric(Precision, {"doc1": 3})
    with pytest.raises(TypeError):
        metric.relevant_documents["doc2"] = Judgment(gain=1)


def test_resolve_metric_class_by_short_name_and_path():
    assert resolve_metric_class("NDCG@10") is NDCGAtTen
    assert resolve_metric_class("F0.5") is F0_5
    assert resolve_metric_class("rank_eval.packages.evaluation_framework.metrics.Recall") is Recall


@pytest.mark.parametrize("name", ["MRR", "rank_eval.packages.evaluation_framework.metrics.Missing",
                                  "rank_eval.packages.evaluation_framework.models.Judgment"])
def test_resolve_metric_class_rejects_unknown(name):
    with pytest.raises(ValueError):
        resolve_metric_class(name)


def test_create_metrics_configures_every_metric():
    metrics = create_metrics(
        [Precision, NDCGAtTen], "sku", {"doc1": Judgment(gain=3)}, ["v1", "v2"])

    assert list(metrics) == ["P", "NDCG@10"]
    for metric in metrics.values():
        assert metric.id_field_name == "sku"
        assert set(metric.get_versions()) == {"v1", "v2"}
        assert "doc1" in metric.relevant_documents
