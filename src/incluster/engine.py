"""Incremental clustering engine.

Owns every data point and the five similarity matrices. Work runs on three
single-threaded queues:

- mutation queue: add / remove / change_candidate bodies, strictly serial
- clustering queue: the spectral pipeline, started once no mutation is in flight
- completion queue: resolves the futures handed back to callers

Requests arriving while a clustering pass runs are answered with
ConcurrencyDeferral and replayed as soon as the pass ends.
"""

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Hashable, Iterable

import numpy as np

from .clustering.adjacency import SimilaritySignals, build_adjacency
from .clustering.candidates import get_candidate, get_note_candidate
from .clustering.relationships import create_similarities
from .clustering.spectral import SpectralClustering
from .clustering.stabilizer import clusterize_ids, stabilize
from .config import merge_defaults, validate_weights
from .embeddings.embedder import SentenceTransformerEncoder, TextEncoder, cosine_similarity
from .enrichment.entities import EntityExtractor, HeuristicEntityExtractor, entity_similarity
from .errors import (
    ClusteringError,
    ConcurrencyDeferral,
    DimensionMismatch,
    EncodingError,
    NotSquare,
    ValidationError,
)
from .matrices import NavigationMatrix, SimilarityMatrix
from .models import (
    ClusteringResult,
    DataPoint,
    DataPointType,
    EntitiesInText,
    Flag,
    InformationForId,
    Note,
    Page,
)

logger = logging.getLogger(__name__)


@dataclass
class _PendingRequest:
    operation: str
    body: Callable[..., Iterable[Hashable] | None]
    args: tuple
    replay: Future


@dataclass
class _Waiter:
    future: Future
    active_sources: Iterable[Hashable] | None


@dataclass
class _Snapshot:
    adjacency: np.ndarray
    text: np.ndarray
    note_ids: list[Hashable]
    page_ids: list[Hashable]
    content_pages: int
    clusterer: SpectralClustering


def _all_entities(point: DataPoint) -> EntitiesInText | None:
    if point.entities is None and point.entities_in_title is None:
        return None
    return (point.entities or EntitiesInText()) | (point.entities_in_title or EntitiesInText())


class ClusteringEngine:
    """Groups pages and notes into topical clusters as they come and go."""

    def __init__(
        self,
        config: dict[str, Any] | None = None,
        encoder: TextEncoder | None = None,
        entity_extractor: EntityExtractor | None = None,
    ):
        self.config = merge_defaults(config)
        # Invalid configuration is fatal here
        self._candidate = get_candidate(self.config["candidate"])
        self._note_candidate = get_note_candidate(self.config["note_candidate"])
        self._weights = validate_weights(self.config["weights"])

        self.encoder = encoder or SentenceTransformerEncoder(self.config["embedding_model"])
        self.entity_extractor = entity_extractor or HeuristicEntityExtractor()

        self.pages: list[Page] = []
        self.notes: list[Note] = []
        self.navigation_matrix = NavigationMatrix()
        self.text_matrix = SimilarityMatrix()
        self.entities_matrix = SimilarityMatrix()
        self.be_together_matrix = SimilarityMatrix()
        self.be_apart_matrix = SimilarityMatrix()
        self.adjacency = np.zeros((1, 1))

        self._lock = threading.Lock()
        self._clustering_in_progress = False
        self._in_flight = 0
        self._closed = False
        self._pending: list[_PendingRequest] = []
        self._waiters: list[_Waiter] = []

        self._mutation_queue = ThreadPoolExecutor(max_workers=1, thread_name_prefix="incluster-mutation")
        self._clustering_queue = ThreadPoolExecutor(max_workers=1, thread_name_prefix="incluster-clustering")
        self._completion_queue = ThreadPoolExecutor(max_workers=1, thread_name_prefix="incluster-completion")

    # -- public operations -------------------------------------------------

    def add(
        self,
        page: Page | None = None,
        note: Note | None = None,
        ranking: list[Hashable] | None = None,
        active_sources: list[Hashable] | None = None,
        replace_content: bool = False,
    ) -> Future:
        """Add (or update) exactly one page or note and re-cluster.

        Args:
            page: The page to add.
            note: The note to add.
            ranking: Existing page ids ordered worst to best; the worst ones
                are evicted before the new point goes in.
            active_sources: Pages that must not be evicted and that get
                similarity scores in the result.
            replace_content: Replace the text of an already known point
                instead of appending to it.

        Returns:
            Future resolving to a ClusteringResult.
        """
        if (page is None) == (note is None):
            future: Future = Future()
            reason = "both a page and a note" if page is not None else "neither a page nor a note"
            self._resolve(future, error=ValidationError(f"Add needs exactly one data point, got {reason}"))
            return future

        return self._submit(
            "add",
            self._apply_add,
            (page if page is not None else note, ranking, active_sources, replace_content),
        )

    def remove_note(self, note_id: Hashable) -> Future:
        return self._submit("remove_note", self._apply_remove, (DataPointType.NOTE, note_id))

    def remove_page(self, page_id: Hashable) -> Future:
        return self._submit("remove_page", self._apply_remove, (DataPointType.PAGE, page_id))

    def change_candidate(self, strategy_id: int, weights: dict[str, float] | None = None) -> Future:
        """Switch strategy preset (and optionally weights), then re-cluster."""
        return self._submit("change_candidate", self._apply_change_candidate, (strategy_id, weights))

    def get_export_information_for_id(self, point_id: Hashable) -> InformationForId:
        return self._mutation_queue.submit(self._export_information, point_id).result()

    def close(self) -> None:
        """Finish queued work and stop the queues.

        Requests still deferred by a running pass fail with ClusteringError
        instead of being replayed.
        """
        with self._lock:
            self._closed = True
        self._mutation_queue.shutdown(wait=True)
        self._clustering_queue.shutdown(wait=True)
        self._completion_queue.shutdown(wait=True)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    # -- scheduling ---------------------------------------------------------

    def _submit(self, operation: str, body, args: tuple, future: Future | None = None) -> Future:
        future = future or Future()
        with self._lock:
            if self._closed:
                raise RuntimeError("cannot schedule new requests after the engine is closed")
            if self._clustering_in_progress:
                replay: Future = Future()
                self._pending.append(_PendingRequest(operation, body, args, replay))
                logger.debug(f"Deferred '{operation}' until the running clustering pass ends")
                self._resolve(future, error=ConcurrencyDeferral(operation, replay))
                return future
            self._in_flight += 1
            # Queue order must match the order requests pass this lock
            self._mutation_queue.submit(self._run_mutation, operation, body, args, future)
        return future

    def _run_mutation(self, operation: str, body, args: tuple, future: Future) -> None:
        try:
            active_sources = body(*args)
            error = None
        except Exception as e:
            logger.warning(f"'{operation}' failed: {e}")
            error = e

        snapshot = None
        with self._lock:
            if error is None:
                self._waiters.append(_Waiter(future, active_sources))
            self._in_flight -= 1
            if self._in_flight == 0 and self._waiters:
                self._clustering_in_progress = True
                waiters, self._waiters = self._waiters, []
                snapshot = self._snapshot()

        if error is not None:
            self._resolve(future, error=error)
        if snapshot is not None:
            self._clustering_queue.submit(self._run_clustering, snapshot, waiters)

    def _run_clustering(self, snapshot: _Snapshot, waiters: list[_Waiter]) -> None:
        outcomes: list[tuple[Future, Any, BaseException | None]] = []
        start = time.perf_counter()
        try:
            labels = snapshot.clusterer.fit_predict(snapshot.adjacency, num_notes=len(snapshot.note_ids))
            labels = stabilize(labels)
            page_groups, note_groups = clusterize_ids(labels, snapshot.note_ids, snapshot.page_ids)
            elapsed = time.perf_counter() - start
            flag = self._advisory_flag(snapshot, elapsed)
            logger.info(
                f"Clustered {len(snapshot.note_ids)} notes and {len(snapshot.page_ids)} pages "
                f"into {len(page_groups)} groups in {elapsed:.3f}s"
            )
            for waiter in waiters:
                similarities = create_similarities(
                    page_groups, note_groups, snapshot.text,
                    snapshot.note_ids, snapshot.page_ids, waiter.active_sources,
                )
                result = ClusteringResult(
                    page_groups=page_groups,
                    note_groups=note_groups,
                    flag=flag,
                    similarities=similarities,
                )
                outcomes.append((waiter.future, result, None))
        except Exception as e:
            logger.error(f"Clustering pass failed: {e}")
            outcomes = [(waiter.future, None, e) for waiter in waiters]
        finally:
            # Replays must be queued before any caller is released
            with self._lock:
                self._clustering_in_progress = False
                pending, self._pending = self._pending, []
                closed = self._closed
                if not closed:
                    self._in_flight += len(pending)
                    for request in pending:
                        logger.debug(f"Replaying deferred '{request.operation}'")
                        self._mutation_queue.submit(
                            self._run_mutation, request.operation, request.body, request.args, request.replay
                        )
            for future, result, error in outcomes:
                self._resolve(future, result, error)
            if closed:
                for request in pending:
                    logger.warning(f"Dropping deferred '{request.operation}', engine is closed")
                    self._resolve(
                        request.replay,
                        error=ClusteringError(
                            "Engine closed before the deferred request could be replayed",
                            {"operation": request.operation},
                        ),
                    )

    def _resolve(self, future: Future, result: Any = None, error: BaseException | None = None) -> None:
        def _complete():
            if future.done():
                return
            if error is not None:
                future.set_exception(error)
            else:
                future.set_result(result)

        self._completion_queue.submit(_complete)

    def _snapshot(self) -> _Snapshot:
        return _Snapshot(
            adjacency=self.adjacency.copy(),
            text=self.text_matrix.matrix.copy(),
            note_ids=[note.id for note in self.notes],
            page_ids=[page.id for page in self.pages],
            content_pages=sum(1 for page in self.pages if page.has_content),
            clusterer=SpectralClustering(
                laplacian_candidate=self._candidate.laplacian,
                num_clusters_candidate=self._candidate.num_clusters,
                trials=self.config["kmeans_trials"],
                max_depth=self.config["max_depth"],
            ),
        )

    def _advisory_flag(self, snapshot: _Snapshot, elapsed: float) -> Flag:
        if elapsed > self.config["time_to_remove"]:
            return Flag.SEND_RANKING
        if snapshot.content_pages >= self.config["pages_before_ranking"]:
            return Flag.SEND_RANKING
        if not snapshot.note_ids and snapshot.content_pages >= self.config["pages_before_notes"]:
            return Flag.ADD_NOTES
        return Flag.NONE

    # -- mutation bodies (mutation queue only) -------------------------------

    def _apply_add(
        self,
        point: DataPoint,
        ranking: list[Hashable] | None,
        active_sources: list[Hashable] | None,
        replace_content: bool,
    ) -> list[Hashable] | None:
        if ranking:
            self._evict(ranking, active_sources, point.id)

        if point.kind == DataPointType.PAGE:
            index = self._find_page(point.id)
        else:
            index = self._find_note(point.id)

        if index is None:
            self._insert(point)
        else:
            self._merge(point.kind, index, point, replace_content)

        self._check_dimensions()
        self._rebuild_adjacency()
        return active_sources

    def _apply_remove(self, kind: DataPointType, point_id: Hashable) -> None:
        index = self._find_page(point_id) if kind == DataPointType.PAGE else self._find_note(point_id)
        if index is None:
            logger.debug(f"Nothing to remove for unknown {kind.value} {point_id}")
            return None

        if kind == DataPointType.PAGE:
            self._detach(point_id)
        self._remove_at(kind, index)
        self._check_dimensions()
        self._rebuild_adjacency()
        return None

    def _apply_change_candidate(self, strategy_id: int, weights: dict[str, float] | None) -> None:
        candidate = get_candidate(strategy_id)
        new_weights = validate_weights(weights) if weights is not None else self._weights

        self._candidate = candidate
        self._weights = new_weights
        self.config["candidate"] = int(strategy_id)
        self.config["weights"] = dict(new_weights)
        logger.info(f"Switched to candidate {strategy_id} ({candidate.adjacency.value}, "
                    f"{candidate.laplacian.value}, {candidate.num_clusters.value})")

        self._rebuild_adjacency()
        return None

    def _insert(self, point: DataPoint) -> None:
        if point.kind == DataPointType.PAGE:
            self._detach(point.id)
        self._prepare(point)

        vectors = self._similarity_vectors(point)
        num_notes, num_pages = len(self.notes), len(self.pages)
        for matrix, vector in zip(self._matrices(), vectors):
            matrix.add_data_point(vector, point.kind, num_notes, num_pages)

        if point.kind == DataPointType.PAGE:
            self.pages.append(point)
        else:
            self.notes.append(point)
        logger.debug(f"Added {point.kind.value} {point.id}")

    def _merge(self, kind: DataPointType, index: int, update: DataPoint, replace_content: bool) -> None:
        existing = self.pages[index] if kind == DataPointType.PAGE else self.notes[index]

        if replace_content:
            existing.content = update.content
        elif update.content and update.content not in (existing.content or ""):
            existing.content = f"{existing.content}\n{update.content}" if existing.content else update.content
        if update.title:
            existing.title = update.title

        self._prepare(existing)
        text, entities, *_ = self._similarity_vectors(existing, skip=existing)
        matrix_index = index if kind == DataPointType.NOTE else len(self.notes) + index
        self.text_matrix.update_data_point(matrix_index, text)
        self.entities_matrix.update_data_point(matrix_index, entities)
        logger.debug(f"Merged content into {kind.value} {existing.id}")

    def _evict(self, ranking: list[Hashable], active_sources: list[Hashable] | None, adding: Hashable) -> None:
        protected = set(active_sources or [])
        protected.add(adding)
        evicted = 0

        for page_id in ranking:
            if evicted >= self.config["eviction_quota"]:
                break
            if page_id in protected:
                continue
            try:
                self._evict_page(page_id)
                evicted += 1
            except (LookupError, ClusteringError) as e:
                logger.warning(f"Could not evict page {page_id}, trying the next one: {e}")

    def _evict_page(self, page_id: Hashable) -> None:
        index = self._find_page(page_id)
        if index is None:
            raise KeyError(f"Unknown page {page_id}")

        page = self.pages[index]
        target = self._most_similar_page(index)
        if target is not None:
            target.attached_pages.extend([page.id, *page.attached_pages])

        self._remove_at(DataPointType.PAGE, index)
        self._check_dimensions()
        self._rebuild_adjacency()
        logger.debug(f"Evicted page {page_id}" + (f", attached to {target.id}" if target else ", unrelated to every page"))

    def _most_similar_page(self, index: int) -> Page | None:
        if len(self.pages) < 2:
            return None
        num_notes = len(self.notes)
        row = self.adjacency[num_notes + index, num_notes:].astype(float)
        row[index] = -np.inf
        best = int(np.argmax(row))
        # No link to any page: nothing to attach to
        if row[best] <= 0:
            return None
        return self.pages[best]

    def _detach(self, page_id: Hashable) -> None:
        for page in self.pages:
            if page_id in page.attached_pages:
                page.attached_pages = [p for p in page.attached_pages if p != page_id]

    def _remove_at(self, kind: DataPointType, index: int) -> None:
        matrix_index = index if kind == DataPointType.NOTE else len(self.notes) + index
        for matrix in self._matrices():
            matrix.remove_data_point(matrix_index)

        if kind == DataPointType.PAGE:
            removed = self.pages.pop(index)
        else:
            removed = self.notes.pop(index)
        logger.debug(f"Removed {kind.value} {removed.id}")

        if not self.pages and not self.notes:
            for matrix in self._matrices():
                matrix.reset()

    # -- helpers ------------------------------------------------------------

    def _matrices(self) -> tuple[SimilarityMatrix, ...]:
        return (
            self.text_matrix,
            self.entities_matrix,
            self.navigation_matrix,
            self.be_together_matrix,
            self.be_apart_matrix,
        )

    def _prepare(self, point: DataPoint) -> None:
        try:
            point.embedding = self.encoder.encode(point.title, point.content)
        except EncodingError as e:
            logger.warning(f"No embedding for {point.kind.value} {point.id}: {e}")
            point.embedding = None
        point.entities = self.entity_extractor.extract(point.content)
        point.entities_in_title = self.entity_extractor.extract(point.title)

    def _similarity_vectors(self, point: DataPoint, skip: DataPoint | None = None) -> list[list[float]]:
        """Scores of ``point`` against every other point, one list per matrix.

        Order matches ``_matrices()``.
        """
        others = [o for o in [*self.notes, *self.pages] if o is not skip]
        point_entities = _all_entities(point)
        is_page = point.kind == DataPointType.PAGE

        text, entities, navigation, together, apart = [], [], [], [], []
        for other in others:
            text.append(cosine_similarity(point.embedding, other.embedding))
            entities.append(entity_similarity(point_entities, _all_entities(other)))

            both_pages = is_page and other.kind == DataPointType.PAGE
            linked = both_pages and (other.id == point.parent_id or other.parent_id == point.id)
            navigation.append(1.0 if linked else 0.0)
            with_ = both_pages and (other.id in point.must_be_with or point.id in other.must_be_with)
            together.append(1.0 if with_ else 0.0)
            forbidden = both_pages and (other.id in point.must_be_apart or point.id in other.must_be_apart)
            apart.append(0.0 if forbidden else 1.0)

        return [text, entities, navigation, together, apart]

    def _rebuild_adjacency(self) -> None:
        sigmoid_cfg = self.config["sigmoid"]
        signals = SimilaritySignals(
            navigation=self.navigation_matrix.matrix,
            text=self.text_matrix.matrix,
            entities=self.entities_matrix.matrix,
            be_together=self.be_together_matrix.matrix,
            be_apart=self.be_apart_matrix.matrix,
        )
        self.adjacency = build_adjacency(
            signals,
            num_notes=len(self.notes),
            candidate=self._candidate.adjacency,
            note_candidate=self._note_candidate,
            weights=self._weights,
            text_middle=sigmoid_cfg["text_middle"],
            entities_middle=sigmoid_cfg["entities_middle"],
            beta=sigmoid_cfg["beta"],
            epsilon=self.config["noise_epsilon"],
        )

    def _check_dimensions(self) -> None:
        expected = max(len(self.notes) + len(self.pages), 1)
        for matrix in self._matrices():
            rows, cols = matrix.matrix.shape
            if rows != cols:
                raise NotSquare(matrix.matrix.shape)
            if rows != expected:
                raise DimensionMismatch(expected, rows)

    def _find_page(self, page_id: Hashable) -> int | None:
        for i, page in enumerate(self.pages):
            if page.id == page_id:
                return i
        return None

    def _find_note(self, note_id: Hashable) -> int | None:
        for i, note in enumerate(self.notes):
            if note.id == note_id:
                return i
        return None

    def _export_information(self, point_id: Hashable) -> InformationForId:
        index = self._find_page(point_id)
        if index is not None:
            page = self.pages[index]
            return InformationForId(
                title=page.title,
                content=page.content,
                entities=page.entities,
                entities_in_title=page.entities_in_title,
                parent_id=page.parent_id,
            )
        index = self._find_note(point_id)
        if index is not None:
            note = self.notes[index]
            return InformationForId(
                title=note.title,
                content=note.content,
                entities=note.entities,
                entities_in_title=note.entities_in_title,
            )
        return InformationForId()
