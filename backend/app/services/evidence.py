from __future__ import annotations

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Optional

from app.core.config import Settings
from app.core.errors import SourceQueryError
from app.schemas.chat import SourceInfo
from app.schemas.routing import SOURCE_PRECEDENCE, SearchParams, SourceTag
from app.services.catalog import CatalogStore
from app.services.drive_files import FileRecord, FileStore, search_files
from app.services.knowledge import KnowledgeEntry, KnowledgeStore, search_knowledge
from app.services.legality import LegalityFact, resolve_legality
from app.services.ranking import ScoredResult

logger = logging.getLogger(__name__)

NO_MATCH_MESSAGE = "No matching information found in any database"


@dataclass
class EvidenceBundle:
    legality_facts: list[LegalityFact] = field(default_factory=list)
    knowledge_hits: list[ScoredResult[KnowledgeEntry]] = field(default_factory=list)
    file_hits: list[ScoredResult[FileRecord]] = field(default_factory=list)
    source_info: SourceInfo = field(
        default_factory=lambda: SourceInfo(source="no_match", found=False, message=NO_MATCH_MESSAGE)
    )
    failed_sources: list[SourceTag] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.legality_facts or self.knowledge_hits or self.file_hits)


def _brand_logo_url(hits: Iterable[ScoredResult[FileRecord]]) -> Optional[str]:
    for h in hits:
        if h.payload.is_logo_image and h.payload.file_url:
            return h.payload.file_url
    return None


def choose_provenance(bundle: EvidenceBundle, params: SearchParams) -> SourceInfo:
    """First non-empty source in SOURCE_PRECEDENCE wins."""
    for tag in SOURCE_PRECEDENCE:
        if tag is SourceTag.STATE_MAP and bundle.legality_facts:
            top = bundle.legality_facts[0]
            return SourceInfo(
                source="state_map",
                found=True,
                state=top.state,
                brand=top.brand or params.brand,
            )
        if tag is SourceTag.KNOWLEDGE_BASE and bundle.knowledge_hits:
            return SourceInfo(
                source="knowledge_base",
                found=True,
                brand=params.brand,
                state=params.state,
            )
        if tag is SourceTag.DRIVE_FILES and bundle.file_hits:
            top = bundle.file_hits[0].payload
            return SourceInfo(
                source="drive_files",
                found=True,
                brand=params.brand or top.brand,
                brandLogo=_brand_logo_url(bundle.file_hits),
            )
    return SourceInfo(source="no_match", found=False, message=NO_MATCH_MESSAGE)


class EvidenceAggregator:
    """
    Fans out to the requested sources in parallel and joins before returning.
    A failing or slow source contributes an empty list; it never fails the request.
    """

    def __init__(
        self,
        cfg: Settings,
        catalog: CatalogStore,
        knowledge: KnowledgeStore,
        files: FileStore,
        *,
        on_source_error: Optional[Callable[[SourceQueryError], None]] = None,
    ) -> None:
        self.cfg = cfg
        self.catalog = catalog
        self.knowledge = knowledge
        self.files = files
        self.on_source_error = on_source_error

    def _runner(self, tag: SourceTag, params: SearchParams) -> Callable[[], list[Any]]:
        if tag is SourceTag.STATE_MAP:
            return lambda: resolve_legality(params, self.catalog)
        if tag is SourceTag.KNOWLEDGE_BASE:
            return lambda: search_knowledge(
                params.query,
                self.knowledge,
                fetch_limit=self.cfg.KNOWLEDGE_FETCH_LIMIT,
                top_k=self.cfg.KNOWLEDGE_TOP_K,
            )
        return lambda: search_files(
            params,
            self.files,
            fetch_limit=self.cfg.FILE_FETCH_LIMIT,
            top_k=self.cfg.FILE_TOP_K,
            min_confidence=self.cfg.FILE_MIN_CONFIDENCE,
        )

    def _source_failed(self, tag: SourceTag, exc: BaseException, on_error) -> None:
        err = SourceQueryError(tag.value, exc)
        logger.error("evidence.source_failed source=%s err=%s", tag.value, exc)
        for cb in (self.on_source_error, on_error):
            if cb is None:
                continue
            try:
                cb(err)
            except Exception as cb_exc:
                logger.warning("evidence.error_callback_failed err=%s", cb_exc)

    def _collect(self, tag: SourceTag, future: Future, results, failed, on_error) -> None:
        try:
            results[tag] = future.result()
        except Exception as exc:
            failed.append(tag)
            self._source_failed(tag, exc, on_error)

    def aggregate(
        self,
        data_sources: Iterable[SourceTag],
        params: SearchParams,
        *,
        on_error: Optional[Callable[[SourceQueryError], None]] = None,
    ) -> EvidenceBundle:
        # Sources not requested are never invoked.
        tags = [t for t in SOURCE_PRECEDENCE if t in set(data_sources)]
        results: dict[SourceTag, list[Any]] = {t: [] for t in tags}
        failed: list[SourceTag] = []
        t0 = time.time()

        if tags:
            # Per-call executor, one worker per source: the timeout only covers
            # running lookups, never time spent queued behind other requests.
            executor = ThreadPoolExecutor(
                max_workers=len(tags),
                thread_name_prefix="evidence",
            )
            pending: dict[Future, SourceTag] = {
                executor.submit(self._runner(tag, params)): tag for tag in tags
            }
            try:
                for future in as_completed(list(pending), timeout=self.cfg.SOURCE_TIMEOUT_SECONDS):
                    self._collect(pending.pop(future), future, results, failed, on_error)
            except FutureTimeout as exc:
                for future, tag in pending.items():
                    if future.done() and not future.cancelled():
                        self._collect(tag, future, results, failed, on_error)
                        continue
                    future.cancel()
                    failed.append(tag)
                    self._source_failed(tag, exc, on_error)
            finally:
                executor.shutdown(wait=False, cancel_futures=True)

        bundle = EvidenceBundle(
            legality_facts=results.get(SourceTag.STATE_MAP, []),
            knowledge_hits=results.get(SourceTag.KNOWLEDGE_BASE, []),
            file_hits=results.get(SourceTag.DRIVE_FILES, []),
            failed_sources=failed,
        )
        bundle.source_info = choose_provenance(bundle, params)

        logger.info(
            "evidence.aggregated sources=%s facts=%d knowledge=%d files=%d failed=%s source=%s %.2fs",
            [t.value for t in tags],
            len(bundle.legality_facts),
            len(bundle.knowledge_hits),
            len(bundle.file_hits),
            [t.value for t in failed],
            bundle.source_info.source,
            time.time() - t0,
        )
        return bundle
