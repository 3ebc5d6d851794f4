"""
Command-line entry point: runs one search relevance evaluation.
"""

import logging
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from rank_eval.config import Config, EvaluationManagerKind, get_config
from rank_eval.packages.evaluation_framework import (
    AsynchronousQueryEvaluationManager,
    BaseEvaluationManager,
    CachingQueryTemplateManager,
    Engine,
    Evaluation,
    FileQueryTemplateManager,
    SearchPlatform,
    SynchronousQueryEvaluationManager,
    compare_versions,
    display_summary,
    save_evaluation,
)
from rank_eval.packages.mongodb_client import MongoDBClient
from rank_eval.packages.mongodb_search_platform import MongoDBSearchPlatform

# Configure logging
logger = logging.getLogger(__name__)


def load_environment(env_file: str = '.env.local') -> None:
    """Load .env.local from the working directory, when present."""
    env_local_path = Path(env_file)
    if env_local_path.exists():
        load_dotenv(env_local_path)
        logger.info(f"Loaded {env_file} for local development")
    else:
        logger.info(f"No {env_file} file found")


def create_template_manager(config: Config) -> FileQueryTemplateManager:
    if config.cache_templates:
        return CachingQueryTemplateManager(config.templates_folder)
    return FileQueryTemplateManager(config.templates_folder)


def create_manager_factory(config: Config, platform: SearchPlatform, template_manager: FileQueryTemplateManager):
    """Evaluation manager factory for the versions the engine discovers."""

    def factory(versions: List[str]) -> BaseEvaluationManager:
        if config.evaluation_manager == EvaluationManagerKind.ASYNC:
            return AsynchronousQueryEvaluationManager(
                platform,
                template_manager,
                config.fields,
                versions,
                threadpool_size=config.threadpool_size,
                max_rows=config.max_rows,
                query_timeout=config.query_timeout,
                shutdown_timeout=config.shutdown_timeout
            )
        return SynchronousQueryEvaluationManager(
            platform, template_manager, config.fields, versions, max_rows=config.max_rows)

    return factory


def run(config: Config, platform: SearchPlatform) -> Evaluation:
    """Run the evaluation described by the configuration on the given platform."""
    logger.info("Starting evaluation")

    template_manager = create_template_manager(config)
    engine = Engine(
        platform=platform,
        manager_factory=create_manager_factory(config, platform, template_manager),
        configurations_folder=config.configurations_folder,
        corpora_folder=config.corpora_folder,
        ratings_file=config.ratings_file,
        metrics=config.metrics,
        versions=config.versions
    )
    evaluation = engine.evaluate()

    display_summary(evaluation)

    if config.compare_versions:
        baseline, candidate = config.compare_versions
        compare_versions(evaluation, baseline, candidate)

    if config.output_file:
        save_evaluation(evaluation, config.output_file)
    else:
        logger.info("Skipping save (use --output-file to save the evaluation)")

    return evaluation


def main(argv: Optional[List[str]] = None):
    load_environment()

    # Load configuration from environment variables and command-line arguments
    config = get_config(argv)

    # Configure logging
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    mongodb_client_factory = MongoDBClient(
        username=config.MONGODB_USERNAME,
        password=config.MONGODB_PASSWORD,
        uri=config.MONGODB_URI,
    )
    platform = MongoDBSearchPlatform(
        mongo_client=mongodb_client_factory.get_client(),
        database_name=config.MONGODB_DATABASE_NAME,
        corpora_required=config.corpora_required
    )

    run(config, platform)
    logger.info("Evaluation run complete")


if __name__ == "__main__":
    main()
