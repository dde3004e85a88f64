import threading
import time
from concurrent.futures import TimeoutError as FutureTimeout
from concurrent.futures import wait

import pytest

from app.schemas.routing import SearchParams, SourceTag
from app.services.catalog import CatalogStore
from app.services.drive_files import FileStore
from app.services import evidence
from app.services.evidence import NO_MATCH_MESSAGE, EvidenceAggregator
from app.services.knowledge import KnowledgeStore

from conftest import add_file, add_knowledge

ALL = {SourceTag.STATE_MAP, SourceTag.KNOWLEDGE_BASE, SourceTag.DRIVE_FILES}


class BrokenKnowledge(KnowledgeStore):
    def search(self, substring, *, limit=5):
        raise RuntimeError("knowledge backend unavailable")


class SlowFiles(FileStore):
    def search(self, params, *, limit=10):
        time.sleep(1.5)
        return super().search(params, limit=limit)


class BlockingKnowledge(KnowledgeStore):
    """Holds every search open until `release` is set."""

    def __init__(self, db_path):
        super().__init__(db_path)
        self.entered = threading.Semaphore(0)
        self.release = threading.Event()

    def search(self, substring, *, limit=5):
        self.entered.release()
        self.release.wait(timeout=10)
        return super().search(substring, limit=limit)


class SpyCatalog(CatalogStore):
    def __init__(self, db_path):
        super().__init__(db_path)
        self.calls = 0

    def query_allow_list(self, **kw):
        self.calls += 1
        return super().query_allow_list(**kw)


@pytest.fixture
def aggregator_for(cfg, db_path):
    def make(catalog=None, knowledge=None, files=None, settings=None):
        return EvidenceAggregator(
            settings or cfg,
            catalog or CatalogStore(db_path),
            knowledge or KnowledgeStore(db_path),
            files or FileStore(db_path),
        )

    return make


def _seed_all_sources(db_path):
    add_knowledge(db_path, "k1", "BrandX overview", "BrandX makes Delta-8 gummies")
    add_file(db_path, "f1", "brandx_logo.png", "image/png", brand="BrandX", file_url="https://drive.example/f1")


def test_state_map_wins_when_it_has_facts(seeded_catalog, db_path, aggregator_for):
    _seed_all_sources(db_path)
    params = SearchParams(state="Texas", brand="BrandX", query="BrandX")

    bundle = aggregator_for().aggregate(ALL, params)

    assert bundle.legality_facts and bundle.knowledge_hits and bundle.file_hits
    info = bundle.source_info.model_dump(exclude_none=True)
    assert info == {"source": "state_map", "found": True, "state": "Texas", "brand": "BrandX"}


def test_knowledge_wins_over_files(db_path, aggregator_for):
    _seed_all_sources(db_path)
    params = SearchParams(brand="BrandX", query="BrandX")

    bundle = aggregator_for().aggregate(ALL, params)

    assert bundle.legality_facts == []
    assert bundle.source_info.source == "knowledge_base"
    assert bundle.source_info.brand == "BrandX"


def test_files_provenance_carries_brand_logo(db_path, aggregator_for):
    _seed_all_sources(db_path)
    bundle = aggregator_for().aggregate({SourceTag.DRIVE_FILES}, SearchParams(brand="brandx", file_type="logo"))

    info = bundle.source_info
    assert (info.source, info.found) == ("drive_files", True)
    assert info.brand == "brandx"
    assert info.brandLogo == "https://drive.example/f1"


def test_no_match_when_everything_is_empty(db_path, aggregator_for):
    bundle = aggregator_for().aggregate(ALL, SearchParams(state="Texas", query="anything"))

    assert bundle.is_empty
    info = bundle.source_info
    assert (info.source, info.found, info.message) == ("no_match", False, NO_MATCH_MESSAGE)


def test_failing_source_is_isolated(seeded_catalog, db_path, aggregator_for):
    _seed_all_sources(db_path)
    errors = []
    agg = aggregator_for(knowledge=BrokenKnowledge(db_path))

    bundle = agg.aggregate(ALL, SearchParams(brand="BrandX", query="BrandX"), on_error=errors.append)

    assert bundle.failed_sources == [SourceTag.KNOWLEDGE_BASE]
    assert bundle.knowledge_hits == []
    assert bundle.legality_facts and bundle.file_hits
    assert [e.source for e in errors] == ["knowledge_base"]
    assert isinstance(errors[0].cause, RuntimeError)


def test_slow_source_times_out_without_failing_request(db_path, cfg, aggregator_for):
    add_knowledge(db_path, "k1", "Sell sheets", "where to find sell sheets")
    add_file(db_path, "f1", "sell sheets.pdf", "application/pdf")
    errors = []
    agg = aggregator_for(files=SlowFiles(db_path), settings=cfg.model_copy(update={"SOURCE_TIMEOUT_SECONDS": 0.3}))

    bundle = agg.aggregate(
        {SourceTag.KNOWLEDGE_BASE, SourceTag.DRIVE_FILES},
        SearchParams(query="sell sheets"),
        on_error=errors.append,
    )

    assert bundle.failed_sources == [SourceTag.DRIVE_FILES]
    assert [h.payload.id for h in bundle.knowledge_hits] == ["k1"]
    assert bundle.source_info.source == "knowledge_base"
    assert [e.source for e in errors] == ["drive_files"]


def test_only_requested_sources_are_queried(seeded_catalog, db_path, aggregator_for):
    catalog = SpyCatalog(db_path)
    agg = aggregator_for(catalog=catalog)

    bundle = agg.aggregate({SourceTag.KNOWLEDGE_BASE}, SearchParams(state="Texas", query="texas"))

    assert catalog.calls == 0
    assert bundle.legality_facts == []

    agg.aggregate({SourceTag.STATE_MAP}, SearchParams(state="Texas"))
    assert catalog.calls == 1


def test_broken_error_callback_does_not_escape(db_path, aggregator_for):
    def explode(err):
        raise ValueError("callback bug")

    agg = aggregator_for(knowledge=BrokenKnowledge(db_path))
    bundle = agg.aggregate({SourceTag.KNOWLEDGE_BASE}, SearchParams(query="x y z"), on_error=explode)
    assert bundle.failed_sources == [SourceTag.KNOWLEDGE_BASE]
    assert bundle.source_info.source == "no_match"


def test_slow_requests_do_not_starve_other_requests(db_path, cfg, aggregator_for):
    add_file(db_path, "logo", "galaxy_treats_logo.png", "image/png", brand="Galaxy Treats")
    knowledge = BlockingKnowledge(db_path)
    agg = aggregator_for(knowledge=knowledge, settings=cfg.model_copy(update={"SOURCE_TIMEOUT_SECONDS": 1.0}))

    stuck = [
        threading.Thread(target=agg.aggregate, args=({SourceTag.KNOWLEDGE_BASE}, SearchParams(query="policy")))
        for _ in range(3)
    ]
    for t in stuck:
        t.start()
    try:
        for _ in stuck:
            assert knowledge.entered.acquire(timeout=5)

        bundle = agg.aggregate({SourceTag.DRIVE_FILES}, SearchParams(brand="Galaxy Treats", file_type="logo"))

        assert bundle.failed_sources == []
        assert bundle.source_info.source == "drive_files"
        assert [h.payload.id for h in bundle.file_hits] == ["logo"]
    finally:
        knowledge.release.set()
        for t in stuck:
            t.join(timeout=5)


def test_results_finishing_at_the_timeout_are_kept(db_path, aggregator_for, monkeypatch):
    add_knowledge(db_path, "k1", "Sell sheets", "where to find sell sheets")

    def late_as_completed(fs, timeout=None):
        # every future finishes, but the deadline fires before any is yielded
        wait(fs)
        raise FutureTimeout()
        yield

    monkeypatch.setattr(evidence, "as_completed", late_as_completed)
    errors = []

    bundle = aggregator_for().aggregate(
        {SourceTag.KNOWLEDGE_BASE, SourceTag.DRIVE_FILES},
        SearchParams(query="sell sheets"),
        on_error=errors.append,
    )

    assert [h.payload.id for h in bundle.knowledge_hits] == ["k1"]
    assert bundle.failed_sources == []
    assert errors == []
    assert bundle.source_info.source == "knowledge_base"
