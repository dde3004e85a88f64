from __future__ import annotations

import logging
import time
import uuid
from typing import Optional

from app.core.config import Settings
from app.core.errors import RequestMalformedError, SourceQueryError, SynthesisError
from app.schemas.chat import ChatRequest, ChatResponse
from app.services.chat_logs import ChatEvent, ChatEventLog
from app.services.classifier import IntentClassifier
from app.services.evidence import EvidenceAggregator
from app.services.llm import LLMMessage
from app.services.synthesis import AnswerSynthesizer

logger = logging.getLogger(__name__)

COMPONENT = "assistant"


def conversation_from_request(req: ChatRequest) -> list[LLMMessage]:
    msgs = [LLMMessage(role=m.role, content=m.content) for m in req.messages]
    if not msgs and req.message and req.message.strip():
        msgs = [LLMMessage(role="user", content=req.message.strip())]
    return msgs


class AssistantPipeline:
    """
    classify -> parallel evidence lookup -> synthesize.
    Holds no per-request state; every call builds its own evidence bundle.
    """

    def __init__(
        self,
        cfg: Settings,
        classifier: IntentClassifier,
        aggregator: EvidenceAggregator,
        synthesizer: AnswerSynthesizer,
        events: Optional[ChatEventLog] = None,
    ) -> None:
        self.cfg = cfg
        self.classifier = classifier
        self.aggregator = aggregator
        self.synthesizer = synthesizer
        self.events = events

    def _emit(self, base: dict, event_type: str, message: str, **kw) -> None:
        if self.events is None:
            return
        try:
            self.events.record(ChatEvent(event_type=event_type, component=COMPONENT, message=message, **base, **kw))
        except Exception as e:
            logger.warning("assistant.event_dropped event=%s err=%s", event_type, e)

    def answer(self, req: ChatRequest, *, request_id: Optional[str] = None) -> ChatResponse:
        conversation = conversation_from_request(req)
        if not conversation or not conversation[-1].content.strip():
            raise RequestMalformedError()

        utterance = conversation[-1].content.strip()
        base = {
            "request_id": request_id or str(uuid.uuid4()),
            "chat_id": req.chatId,
            "user_id": req.userId,
        }
        t0 = time.time()
        self._emit(base, "chat_request_received", "Chat request received", metadata={"messages": len(conversation)})

        classification = self.classifier.classify(utterance, conversation)
        self._emit(
            base,
            "classification_complete",
            f"Classified via {classification.path}",
            metadata={
                "path": classification.path,
                "sources": sorted(t.value for t in classification.data_sources),
                "params": classification.params.model_dump(exclude_none=True),
            },
        )

        def _source_failed(err: SourceQueryError) -> None:
            self._emit(
                base,
                "source_query_failed",
                str(err),
                severity="error",
                error_details={"source": err.source, "error": repr(err.cause)},
            )

        bundle = self.aggregator.aggregate(
            classification.data_sources,
            classification.params,
            on_error=_source_failed,
        )
        self._emit(
            base,
            "evidence_aggregated",
            f"Provenance: {bundle.source_info.source}",
            metadata={
                "facts": len(bundle.legality_facts),
                "knowledge": len(bundle.knowledge_hits),
                "files": len(bundle.file_hits),
                "source_info": bundle.source_info.model_dump(exclude_none=True),
            },
        )

        def _synthesis_failed(err: SynthesisError) -> None:
            self._emit(base, "synthesis_failed", str(err), severity="error")

        text = self.synthesizer.synthesize(conversation, bundle, on_error=_synthesis_failed)

        duration_ms = int((time.time() - t0) * 1000)
        logger.info(
            "assistant.path=%s sources=%s provenance=%s found=%s duration_ms=%d",
            classification.path,
            sorted(t.value for t in classification.data_sources),
            bundle.source_info.source,
            bundle.source_info.found,
            duration_ms,
        )
        self._emit(base, "chat_response_sent", "Chat response sent", duration_ms=duration_ms)
        return ChatResponse(response=text, sourceInfo=bundle.source_info)
