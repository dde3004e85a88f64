from __future__ import annotations

from functools import lru_cache

from app.core.config import Settings, settings
from app.services.assistant import AssistantPipeline
from app.services.catalog import CatalogStore
from app.services.chat_logs import ChatEventLog
from app.services.classifier import IntentClassifier
from app.services.drive_files import FileStore
from app.services.evidence import EvidenceAggregator
from app.services.knowledge import KnowledgeStore
from app.services.llm import LLMClient, get_llm
from app.services.synthesis import AnswerSynthesizer


def build_assistant(cfg: Settings, llm: LLMClient) -> AssistantPipeline:
    """Wire the pipeline against the sqlite stores at cfg.DB_PATH."""
    events = ChatEventLog(cfg.DB_PATH)
    aggregator = EvidenceAggregator(
        cfg,
        CatalogStore(cfg.DB_PATH),
        KnowledgeStore(cfg.DB_PATH),
        FileStore(cfg.DB_PATH),
    )
    return AssistantPipeline(
        cfg,
        classifier=IntentClassifier(cfg, llm),
        aggregator=aggregator,
        synthesizer=AnswerSynthesizer(cfg, llm),
        events=events,
    )


@lru_cache(maxsize=1)
def get_assistant() -> AssistantPipeline:
    """
    App-wide pipeline. Tests override this via app.dependency_overrides.
    """
    return build_assistant(settings, get_llm())
