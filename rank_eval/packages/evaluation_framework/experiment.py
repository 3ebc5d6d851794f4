"""
Evaluation persistence and reporting: saving, loading, and comparing versions.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict

from .domain import Evaluation

logger = logging.getLogger(__name__)


def save_evaluation(evaluation: Evaluation, output_file: str) -> Path:
    """Save the evaluation tree as JSON."""
    logger.info(f"Saving evaluation to {output_file}")

    path = Path(output_file)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(evaluation.to_dict(), f, indent=2)

    logger.info(f"Evaluation saved to {path}")
    return path


def load_evaluation(output_file: str) -> Dict[str, Any]:
    """Load a saved evaluation tree."""
    path = Path(output_file)
    if not path.exists():
        raise FileNotFoundError(f"Evaluation file not found: {path}")

    with open(path, 'r', encoding='utf-8') as f:
        return json.load(f)


def display_summary(evaluation: Evaluation) -> None:
    """Log every configuration's metric means per version."""
    logger.info("=" * 80)
    logger.info("EVALUATION SUMMARY")
    logger.info("=" * 80)

    for corpus in evaluation.get_children():
        for configuration in corpus.get_children():
            logger.info(f"Corpus: {corpus.name}  Index: {configuration.name}")
            header = " ".join(f"{version:>12}" for version in configuration.versions)
            logger.info(f"{'Metric':<20} {header}")
            logger.info("-" * 80)

            for metric_name, values in configuration.metric_values().items():
                row = " ".join(f"{values.get(version, 0.0):>12.3f}" for version in configuration.versions)
                logger.info(f"{metric_name:<20} {row}")

    logger.info("=" * 80)


def compare_versions(evaluation: Evaluation, baseline: str, candidate: str) -> Dict[str, float]:
    """Log the metric deltas of a candidate version against a baseline. Returns metric -> delta."""
    logger.info(f"Comparing versions: {baseline} vs {candidate}")

    deltas: Dict[str, float] = {}

    logger.info("=" * 80)
    logger.info("VERSION COMPARISON")
    logger.info("=" * 80)
    logger.info(f"{'Metric':<20} {baseline:>10} {candidate:>10} {'Delta':>12} {'% Change':>12}")
    logger.info("-" * 80)

    for metric_name, values in evaluation.metric_values().items():
        if baseline not in values or candidate not in values:
            logger.warning(f"Metric {metric_name} has no value for both versions, skipping")
            continue

        value1 = values[baseline]
        value2 = values[candidate]
        delta = value2 - value1
        pct = (delta / value1 * 100) if value1 != 0 else 0
        deltas[metric_name] = delta

        logger.info(f"{metric_name:<20} {value1:>10.3f} {value2:>10.3f} {delta:>+12.3f} {pct:>+11.1f}%")

    logger.info("=" * 80)
    return deltas
