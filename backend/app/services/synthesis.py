from __future__ import annotations

import logging
from typing import Callable, Optional, Sequence

from app.core.config import Settings
from app.core.errors import SynthesisError
from app.services.evidence import EvidenceBundle
from app.services.llm import LLMClient, LLMMessage

logger = logging.getLogger(__name__)

APOLOGY = (
    "I apologize, but I encountered an error while processing your request. "
    "Please try again or contact support if the issue persists."
)


SYSTEM_PROMPT = """You are the AI assistant for {company} employees inside the {company} Portal.

You answer questions about product legality by state, company information, and company files,
using ONLY the CONTEXT below. Do not introduce facts that are not in the CONTEXT.

Rules:
- Cite the source category explicitly, e.g. "According to the State Map data...",
  "Based on the Knowledge Base...", or "I found these files in the Drive...".
- State Map entries mean the product is on the allowed list for that state. If a product is not
  listed, say the State Map has no record of it; do NOT claim that it is prohibited.
- Never include raw URLs or file links. If a file has a download link, tell the user it is
  available to download from the file search results.
- If the CONTEXT says nothing was found, say so politely, ask one clarifying follow-up question,
  and suggest submitting a request via the {form} or contacting the appropriate department.
- Answer in a professional, clear, and helpful tone. Keep it concise; use short bullet lists for
  multiple items.

CONTEXT:
{context}
"""


def _truncate(text: str, n: int) -> str:
    s = (text or "").strip()
    if len(s) > n:
        return s[:n].rstrip() + "..."
    return s


def render_context(bundle: EvidenceBundle, *, content_chars: int = 500) -> str:
    """
    Evidence as Markdown-ish sections in fixed order:
    state map, knowledge base, drive files. File URLs are never rendered.
    """
    if bundle.is_empty:
        return (
            "Nothing was found in the State Map, the Knowledge Base, or the Drive files for this "
            "question. Tell the user plainly that no matching information was found and ask a "
            "clarifying follow-up question (for example the exact product, brand, state, or file name)."
        )

    sections: list[str] = []

    if bundle.legality_facts:
        lines = ["## State Map (product legality)"]
        for f in bundle.legality_facts:
            brand = f" by {f.brand}" if f.brand else ""
            status = "LEGAL (on the allowed-products list)" if f.is_legal else "NOT LISTED"
            lines.append(f"- {f.product}{brand} in {f.state}: {status}. {f.details}".rstrip())
        sections.append("\n".join(lines))

    if bundle.knowledge_hits:
        lines = ["## Knowledge Base"]
        for i, hit in enumerate(bundle.knowledge_hits, start=1):
            e = hit.payload
            lines.append(f"### [{i}] {e.title}")
            lines.append(_truncate(e.content, content_chars))
            if e.tags:
                lines.append(f"Tags: {', '.join(e.tags)}")
        sections.append("\n".join(lines))

    if bundle.file_hits:
        lines = ["## Drive Files"]
        for hit in bundle.file_hits:
            f = hit.payload
            parts = [f"- {f.file_name}"]
            if f.id:
                parts.append(f"ID: {f.id}")
            if f.brand:
                parts.append(f"Brand: {f.brand}")
            if f.category:
                parts.append(f"Category: {f.category}")
            parts.append("Download link: available" if f.file_url else "Download link: not available")
            lines.append(" | ".join(parts))
        sections.append("\n".join(lines))

    return "\n\n".join(sections)


class AnswerSynthesizer:
    def __init__(self, cfg: Settings, llm: LLMClient) -> None:
        self.cfg = cfg
        self.llm = llm

    def build_system_prompt(self, bundle: EvidenceBundle) -> str:
        return SYSTEM_PROMPT.format(
            company=self.cfg.COMPANY_NAME,
            form=self.cfg.FALLBACK_FORM_NAME,
            context=render_context(bundle, content_chars=self.cfg.KNOWLEDGE_CONTENT_CHARS),
        )

    def _complete(self, conversation: Sequence[LLMMessage], bundle: EvidenceBundle) -> str:
        try:
            text = self.llm.complete(self.build_system_prompt(bundle), list(conversation))
        except Exception as e:
            raise SynthesisError(f"completion failed: {e}") from e
        if not isinstance(text, str) or not text.strip():
            raise SynthesisError("completion returned an empty payload")
        return text.strip()

    def synthesize(
        self,
        conversation: Sequence[LLMMessage],
        bundle: EvidenceBundle,
        *,
        on_error: Optional[Callable[[SynthesisError], None]] = None,
    ) -> str:
        """
        One completion request over the rendered evidence + full conversation.
        Any failure degrades to the fixed APOLOGY string.
        """
        try:
            return self._complete(conversation, bundle)
        except SynthesisError as e:
            logger.error("synthesis.failed err=%s", e)
            if on_error is not None:
                on_error(e)
            return APOLOGY
