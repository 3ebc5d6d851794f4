"""
Evaluation engine: drives one full evaluation run.

Loads the ratings, loads the corpus into the platform once per version, builds
the evaluation tree and hands every query to the evaluation manager.
"""

import json
import logging
import os
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from .dataset import RatingsDataset
from .domain import Evaluation
from .evaluation_manager import BaseEvaluationManager, internal_index_name
from .metrics import create_metrics, resolve_metric_class
from .models import QueryRatings
from .search_platform import SearchPlatform

logger = logging.getLogger(__name__)

ManagerFactory = Callable[[List[str]], BaseEvaluationManager]


def query_name(query_definition: QueryRatings) -> str:
    """Identity of a query node: its explicit template, if any, and its placeholder mapping."""
    name = json.dumps(query_definition.placeholders, ensure_ascii=False)
    if query_definition.template is not None:
        return f"{query_definition.template} {name}"
    return name


class Engine:
    """Runs every query of a ratings document against every configured version."""

    def __init__(
        self,
        platform: SearchPlatform,
        manager_factory: ManagerFactory,
        configurations_folder: str,
        corpora_folder: str,
        ratings_file: str,
        metrics: List[str],
        versions: Optional[List[str]] = None
    ):
        """
        Initialize the engine.

        Args:
            platform: Search platform the versions are loaded into
            manager_factory: Builds the evaluation manager for the discovered versions
            configurations_folder: Folder with one subfolder per version
            corpora_folder: Folder holding the corpus files
            ratings_file: Ratings (judgments) JSON file
            metrics: Metric short names or dotted class paths
            versions: Restrict the run to these versions (all when None)
        """
        self.platform = platform
        self.manager_factory = manager_factory
        self.configurations_folder = Path(configurations_folder)
        self.corpora_folder = Path(corpora_folder)
        self.ratings_file = ratings_file
        self.metrics = list(metrics)
        self.versions = list(versions) if versions else None

    def evaluate(self) -> Evaluation:
        """Execute the evaluation process and return the rolled-up result tree."""
        metric_classes = [resolve_metric_class(name) for name in self.metrics]
        logger.info(f"Metrics in use: {', '.join(self.metrics)}")

        ratings = RatingsDataset.from_json(self.ratings_file)
        corpus_file = self._corpus_file(ratings.collection_file)

        evaluation = Evaluation()
        corpus = evaluation.find_or_create(Path(ratings.collection_file).name)

        version_folders = self.find_version_folders(ratings.index)
        if not version_folders:
            logger.warning(f"No configuration folder holds settings for index '{ratings.index}'")
            self.platform.close()
            return evaluation

        versions = [version for version, _ in version_folders]
        for version, settings_folder in version_folders:
            self.platform.load(corpus_file, settings_folder, internal_index_name(ratings.index, version), version)

        configuration = corpus.find_or_create(ratings.index)
        for version in versions:
            configuration.add_version(version)

        manager = self.manager_factory(versions)
        # Hits must carry the field the judgments are keyed by
        manager.require_field(ratings.id_field)
        logger.info(f"Evaluating {ratings.count_queries()} queries against versions {', '.join(versions)}")

        try:
            try:
                for topic_ratings, group_ratings, query_ratings in ratings.iter_queries():
                    self._submit(manager, configuration, ratings, topic_ratings, group_ratings, query_ratings,
                                 metric_classes, versions)
            finally:
                if manager.stop():
                    logger.warning("Evaluation manager was forced to stop, results may be incomplete")
            manager.raise_for_errors()
        finally:
            self.platform.close()

        evaluation.notify_collected_metrics()
        logger.info(f"Evaluation complete: {manager.get_queries_completed()} queries evaluated")
        return evaluation

    def _submit(self, manager, configuration, ratings, topic_ratings, group_ratings, query_ratings,
                metric_classes, versions) -> None:
        """Create the query node with its metrics and hand it to the manager."""
        topic = configuration.find_or_create(topic_ratings.description)
        group = topic.find_or_create(group_ratings.name)

        name = query_name(query_ratings)
        if group.get_child(name) is not None:
            logger.warning(f"Skipping duplicate query '{name}' in query group '{group_ratings.name}'")
            return

        query = group.find_or_create(name)
        query.add_all(create_metrics(metric_classes, ratings.id_field, group_ratings.judgments(), versions))

        manager.evaluate_query(
            query,
            ratings.index,
            query_ratings,
            group_ratings.template,
            len(group_ratings.relevant_documents)
        )

    def find_version_folders(self, index_name: str) -> List[Tuple[str, Path]]:
        """(version, settings folder) pairs for every version folder holding the index, sorted by version."""
        if not self.configurations_folder.is_dir():
            raise FileNotFoundError(f"Configurations folder not found: {self.configurations_folder}")

        version_folders = []
        for version_folder in sorted(self.configurations_folder.iterdir()):
            if not version_folder.is_dir():
                continue
            if self.versions is not None and version_folder.name not in self.versions:
                logger.debug(f"Skipping version {version_folder.name}")
                continue

            settings_folder = version_folder / index_name
            if settings_folder.is_dir():
                version_folders.append((version_folder.name, settings_folder))

        return version_folders

    def _corpus_file(self, collection_file: str) -> Optional[Path]:
        corpus_file = self.corpora_folder / collection_file
        if corpus_file.is_file() and os.access(corpus_file, os.R_OK):
            return corpus_file

        if self.platform.is_corpora_required():
            raise FileNotFoundError(f"Unable to read the corpus file {corpus_file.absolute()}")

        logger.info(f"Corpus file {corpus_file} not available, the platform uses its existing data")
        return None
