"""
Configuration management for evaluation runs: environment settings and command-line arguments.
"""

import argparse
from enum import Enum
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class EvaluationManagerKind(str, Enum):
    SYNC = "sync"
    ASYNC = "async"


class Config(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="RANK_EVAL_", populate_by_name=True, extra="ignore")

    configurations_folder: str = Field("configuration_sets",
                                       description="Folder with one settings subfolder per version")
    corpora_folder: str = Field("corpora", description="Folder holding the corpus files")
    ratings_file: str = Field("ratings/ratings.json", description="Ratings (judgments) JSON file")
    templates_folder: str = Field("templates", description="Query templates folder")
    metrics: List[str] = Field(
        default_factory=lambda: ["P", "R", "F1", "NDCG@10"],
        description="Metric short names or dotted class paths",
        examples=[["P", "R", "F1", "F0.5", "NDCG@10"]]
    )
    fields: List[str] = Field(default_factory=lambda: ["id"], description="Fields returned with every hit")
    max_rows: int = Field(10, description="Minimum number of rows requested per query")
    versions: Optional[List[str]] = Field(None, description="Restrict the run to these versions")
    evaluation_manager: EvaluationManagerKind = Field(
        EvaluationManagerKind.SYNC,
        description=f"Evaluation manager, allowed: {[k.value for k in EvaluationManagerKind]}"
    )
    threadpool_size: int = Field(4, description="Threads shared by the asynchronous evaluation pools")
    query_timeout: Optional[float] = Field(None, description="Seconds to wait for all versions of a query")
    shutdown_timeout: float = Field(30.0, description="Seconds to wait for running queries on stop")
    cache_templates: bool = Field(True, description="Read each query template file once")
    corpora_required: bool = Field(True, description="Fail when the corpus file cannot be read")
    output_file: Optional[str] = Field(None, description="Write the evaluation tree to this JSON file")
    compare_versions: Optional[List[str]] = Field(None, description="Baseline and candidate versions to compare")
    log_level: str = Field('INFO', description="Logging level",
                           examples=["CRITICAL", "FATAL", "ERROR", "WARNING", "INFO", "DEBUG"])
    MONGODB_DATABASE_NAME: str = Field(default="rank-eval", alias="MONGODB_DATABASE_NAME",
                                       description="MongoDB database name")
    MONGODB_USERNAME: Optional[str] = Field(None, alias="MONGODB_USERNAME", description="Mongodb user")
    MONGODB_PASSWORD: Optional[str] = Field(None, alias="MONGODB_PASSWORD", description="Mongodb password")
    MONGODB_URI: str = Field(
        alias="MONGODB_URI",
        description="Mongodb uri. Example: mongodb+srv://cluster0.example.mongodb.net/?retryWrites=true&w=majority")

    @field_validator("threadpool_size", "max_rows")
    def reject_non_positive(cls, v):
        if v < 1:
            raise ValueError("must be a positive number")
        return v

    @field_validator("query_timeout", "shutdown_timeout")
    def reject_negative_timeout(cls, v):
        if v is not None and v < 0:
            raise ValueError("timeout cannot be negative")
        return v

    @field_validator("compare_versions")
    def require_version_pair(cls, v):
        if v is not None and len(v) != 2:
            raise ValueError("compare_versions takes a baseline and a candidate version")
        return v


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Search relevance evaluation")

    # Input folders
    parser.add_argument("--configurations-folder", help="Folder with one settings subfolder per version")
    parser.add_argument("--corpora-folder", help="Folder holding the corpus files")
    parser.add_argument("--ratings-file", help="Ratings (judgments) JSON file")
    parser.add_argument("--templates-folder", help="Query templates folder")

    # Evaluation
    parser.add_argument("--metrics", nargs="+", help="Metrics to compute (e.g. P R F1 NDCG@10)")
    parser.add_argument("--fields", nargs="+", help="Fields returned with every hit")
    parser.add_argument("--max-rows", type=int, help="Minimum number of rows requested per query")
    parser.add_argument("--versions", nargs="+", help="Only evaluate these versions")

    # Evaluation manager
    parser.add_argument(
        "--evaluation-manager",
        choices=[k.value for k in EvaluationManagerKind],
        help="Run queries inline (sync) or on thread pools (async)",
    )
    parser.add_argument("--threadpool-size", type=int, help="Threads for the asynchronous manager")
    parser.add_argument("--query-timeout", type=float, help="Seconds to wait for all versions of a query")
    parser.add_argument("--shutdown-timeout", type=float, help="Seconds to wait for running queries on stop")
    parser.add_argument(
        "--no-cache-templates",
        dest="cache_templates",
        action="store_const",
        const=False,
        help="Read query templates from disk on every query",
    )
    parser.add_argument(
        "--no-corpora",
        dest="corpora_required",
        action="store_const",
        const=False,
        help="Evaluate against already loaded collections",
    )

    # Output
    parser.add_argument("--output-file", help="Write the evaluation tree to this JSON file")
    parser.add_argument(
        "--compare-versions",
        nargs=2,
        metavar=("BASELINE", "CANDIDATE"),
        help="Log metric deltas between two versions",
    )

    # Optional log level
    parser.add_argument(
        "--log-level",
        help="Logging level",
    )

    args = parser.parse_args(argv)

    return args


def get_config(argv: Optional[List[str]] = None) -> Config:
    args = parse_args(argv)
    # Only include CLI values that are actually set
    cli_overrides = {k: v for k, v in vars(args).items() if v is not None}
    return Config(**cli_overrides)
