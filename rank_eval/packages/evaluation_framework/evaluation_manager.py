"""
Evaluation managers: run every query against every version and collect the hits.

The synchronous manager evaluates inline, one version after the other. The
asynchronous manager splits its threads into two pools: one task per query in
the evaluation pool, and one task per (query, version) in the query pool.
"""

import logging
import threading
from abc import ABC, abstractmethod
from concurrent.futures import Future, ThreadPoolExecutor, wait
from enum import Enum
from typing import List, Optional

from .domain import Query, QueryStatus
from .models import QueryRatings
from .search_platform import QueryOrSearchResponse, SearchPlatform
from .templates import FileQueryTemplateManager, substitute_placeholders

logger = logging.getLogger(__name__)

DEFAULT_MAX_ROWS = 10
DEFAULT_SHUTDOWN_TIMEOUT = 30.0


class ManagerState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    DRAINING = "draining"
    STOPPED = "stopped"


def internal_index_name(index_name: str, version: str) -> str:
    """Name of the platform index holding one version of an index."""
    return f"{index_name}_{version}"


class BaseEvaluationManager(ABC):
    """Shared query execution, hit collection and progress bookkeeping."""

    def __init__(
        self,
        platform: SearchPlatform,
        template_manager: FileQueryTemplateManager,
        fields: List[str],
        versions: List[str],
        max_rows: int = DEFAULT_MAX_ROWS
    ):
        self.platform = platform
        self.template_manager = template_manager
        self.fields = list(fields)
        self.versions = list(versions)
        self.max_rows = max_rows

        self._state = ManagerState.IDLE
        self._lock = threading.Lock()
        self._all_done = threading.Condition(self._lock)
        self._submitted = 0
        self._completed = 0
        self._errors: List[BaseException] = []

    @abstractmethod
    def evaluate_query(
        self,
        query: Query,
        index_name: str,
        query_definition: QueryRatings,
        default_template: Optional[str],
        relevant_doc_count: int
    ) -> None:
        """Evaluate the query against every version, then roll its metrics up."""
        pass

    @abstractmethod
    def stop(self) -> bool:
        """Stop accepting queries and wait for the running ones. Returns True if termination was forced."""
        pass

    @property
    def state(self) -> ManagerState:
        return self._state

    def get_versions(self) -> List[str]:
        return list(self.versions)

    def require_field(self, field: str) -> None:
        """Request the field with every hit, in addition to the configured ones."""
        if field not in self.fields:
            logger.debug(f"Adding field '{field}' to the requested fields")
            self.fields.append(field)

    def get_total_queries(self) -> int:
        return self._submitted

    def get_queries_completed(self) -> int:
        return self._completed

    def get_queries_remaining(self) -> int:
        with self._lock:
            return self._submitted - self._completed

    def is_running(self) -> bool:
        with self._lock:
            return self._completed < self._submitted

    def get_errors(self) -> List[BaseException]:
        with self._lock:
            return list(self._errors)

    def raise_for_errors(self) -> None:
        """Re-raise the first fatal error hit by a query task."""
        errors = self.get_errors()
        if errors:
            if len(errors) > 1:
                logger.error(f"{len(errors)} queries failed, raising the first error")
            raise errors[0]

    def _start_running(self) -> None:
        with self._lock:
            if self._state in (ManagerState.DRAINING, ManagerState.STOPPED):
                raise RuntimeError(f"Evaluation manager is {self._state.value}, no new queries accepted")
            self._state = ManagerState.RUNNING
            self._submitted += 1

    def _stop_running(self) -> None:
        with self._lock:
            self._state = ManagerState.DRAINING

    def _mark_completed(self, error: Optional[BaseException] = None) -> int:
        with self._all_done:
            if error is not None:
                self._errors.append(error)
            self._completed += 1
            self._all_done.notify_all()
            return self._completed

    def _wait_for_completion(self, timeout: Optional[float]) -> bool:
        with self._all_done:
            return self._all_done.wait_for(lambda: self._completed >= self._submitted, timeout=timeout)

    def complete_query(self, query: Query) -> None:
        """Roll the query metrics up into its query group."""
        query.notify_collected_metrics()
        completed = self._mark_completed()
        logger.debug(f"Completed query '{query.name}' ({completed}/{self._submitted})")

    def execute_query(
        self,
        index_name: str,
        version: str,
        query_definition: QueryRatings,
        default_template: Optional[str],
        relevant_doc_count: int
    ) -> QueryOrSearchResponse:
        """Resolve the template for the version, fill its placeholders and run it."""
        template = self.template_manager.resolve(default_template, query_definition.template, version)
        query_string = substitute_placeholders(template, query_definition.placeholders)

        # Ask for enough rows to see every relevant document
        rows = max(self.max_rows, relevant_doc_count)
        return self.platform.execute_query(
            internal_index_name(index_name, version), version, query_string, self.fields, rows)

    def collect_response(self, query: Query, version: str, response: QueryOrSearchResponse) -> None:
        """Feed the response to the query, ranking hits from 1."""
        query.set_total_hits(response.total_hits, version)
        for rank, hit in enumerate(response.hits, start=1):
            query.collect(hit, rank, version)

        if response.failed:
            logger.warning(f"Query '{query.name}' failed on version {version}, scored as 0 hits")
            query.set_status(version, QueryStatus.FAILED)
        else:
            query.set_status(version, QueryStatus.OK)


class SynchronousQueryEvaluationManager(BaseEvaluationManager):
    """Evaluates each query inline, versions in declaration order."""

    def evaluate_query(
        self,
        query: Query,
        index_name: str,
        query_definition: QueryRatings,
        default_template: Optional[str],
        relevant_doc_count: int
    ) -> None:
        self._start_running()
        try:
            for version in self.versions:
                response = self.execute_query(
                    index_name, version, query_definition, default_template, relevant_doc_count)
                self.collect_response(query, version, response)
        except Exception as e:
            self._mark_completed(e)
            raise
        self.complete_query(query)

    def stop(self) -> bool:
        self._stop_running()
        with self._lock:
            self._state = ManagerState.STOPPED
        logger.info("Synchronous evaluation manager stopped")
        return False


class AsynchronousQueryEvaluationManager(BaseEvaluationManager):
    """
    Evaluates queries on two thread pools.

    The evaluation pool runs one task per query. That task submits one task per
    version to the query pool and waits for all of them before handing the
    query back for rollup. Callers of evaluate_query() never block.
    """

    def __init__(
        self,
        platform: SearchPlatform,
        template_manager: FileQueryTemplateManager,
        fields: List[str],
        versions: List[str],
        threadpool_size: int,
        max_rows: int = DEFAULT_MAX_ROWS,
        query_timeout: Optional[float] = None,
        shutdown_timeout: float = DEFAULT_SHUTDOWN_TIMEOUT
    ):
        super().__init__(platform, template_manager, fields, versions, max_rows)
        query_threads = max(1, min(threadpool_size // 2, len(self.versions)))
        evaluation_threads = max(1, threadpool_size - query_threads)

        self.query_timeout = query_timeout
        self.shutdown_timeout = shutdown_timeout
        self.forced_termination = False

        self._executor = ThreadPoolExecutor(max_workers=evaluation_threads, thread_name_prefix="evaluation")
        self._query_executor = ThreadPoolExecutor(max_workers=query_threads, thread_name_prefix="query")

        logger.info(
            f"Asynchronous evaluation with {evaluation_threads} evaluation and {query_threads} query threads")

    def evaluate_query(
        self,
        query: Query,
        index_name: str,
        query_definition: QueryRatings,
        default_template: Optional[str],
        relevant_doc_count: int
    ) -> None:
        self._start_running()
        future = self._executor.submit(
            self._evaluate_query_async, query, index_name, query_definition, default_template,
            relevant_doc_count)
        future.add_done_callback(self._on_query_done)

    def _evaluate_query_async(
        self,
        query: Query,
        index_name: str,
        query_definition: QueryRatings,
        default_template: Optional[str],
        relevant_doc_count: int
    ) -> Query:
        """Run every version of the query on the query pool and wait for all of them."""
        version_futures = [
            self._query_executor.submit(
                self._evaluate_version, query, version, index_name, query_definition, default_template,
                relevant_doc_count)
            for version in self.versions
        ]

        done, not_done = wait(version_futures, timeout=self.query_timeout)
        if not_done:
            # Best effort: the query is handed back with whatever has been collected
            logger.error(
                f"Gave up waiting for {len(not_done)} versions of query '{query.name}' "
                f"after {self.query_timeout}s")

        for future in done:
            if future.cancelled():
                logger.warning(f"A version of query '{query.name}' was cancelled by shutdown")
                continue
            error = future.exception()
            if error is not None:
                raise error

        return query

    def _evaluate_version(
        self,
        query: Query,
        version: str,
        index_name: str,
        query_definition: QueryRatings,
        default_template: Optional[str],
        relevant_doc_count: int
    ) -> None:
        response = self.execute_query(index_name, version, query_definition, default_template, relevant_doc_count)
        self.collect_response(query, version, response)

    def _on_query_done(self, future: Future) -> None:
        if future.cancelled():
            logger.warning("Query evaluation cancelled before it started")
            self._mark_completed()
            return

        error = future.exception()
        if error is not None:
            logger.error(f"Query evaluation failed: {error}")
            self._mark_completed(error)
            return

        try:
            self.complete_query(future.result())
        except Exception as e:
            logger.error(f"Query rollup failed: {e}")
            self._mark_completed(e)

    def stop(self) -> bool:
        """
        Wait up to shutdown_timeout for the submitted queries, then force the shutdown.

        Forcing cancels the queued tasks only. Tasks already running keep their
        worker threads until they return, and interpreter exit waits for them.
        """
        self._stop_running()
        logger.info("Waiting for asynchronous query evaluation threads to stop.")

        finished = self._wait_for_completion(self.shutdown_timeout)

        if not finished:
            logger.info("  ... forcing executor shutdown.")
            logger.warning(
                f"{self.get_queries_remaining()} queries still pending, running tasks cannot be "
                f"interrupted and will keep their threads until they return")
            self.forced_termination = True
            self._query_executor.shutdown(wait=False, cancel_futures=True)
            self._executor.shutdown(wait=False, cancel_futures=True)
        else:
            logger.info("  ... all threads stopped within timeout period.")
            self._query_executor.shutdown(wait=False)
            self._executor.shutdown(wait=False)

        with self._lock:
            self._state = ManagerState.STOPPED
        return self.forced_termination
