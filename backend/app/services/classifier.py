from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Optional, Sequence

from pydantic import ValidationError

from app.core.config import Settings
from app.core.errors import ClassificationParseError
from app.schemas.routing import ClassifierOutput, SearchParams, SourceTag
from app.services.llm import LLMClient, LLMMessage, parse_json_object

logger = logging.getLogger(__name__)


_UUID_RE = re.compile(
    r"\b[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}\b",
    re.I,
)

# Words that end a brand name captured from free text.
_BRAND_STOP_WORDS = r"(?:for|in|to|on|please|from|with|at|and|so)"

# "logo for Galaxy Treats", "picture of the Modus brand", "logo for Cake in Texas"
_ASSET_FOR_BRAND_RE = re.compile(
    r"\b(?P<kind>logo|image|icon|picture|photo|file)s?\s+(?:for|of)\s+(?:the\s+)?"
    r"(?P<brand>[^\s?!.,][^?!.,]*?)(?:\s+brand)?"
    rf"(?=\s+{_BRAND_STOP_WORDS}\b|\s*[?!.,]|\s*$)",
    re.I,
)

# "find the Juice Head logo", "find me a Modus document"
_FIND_BRAND_ASSET_RE = re.compile(
    r"\bfind\s+(?:me\s+)?(?:the|a)\s+(?P<brand>.+?)\s+(?P<kind>logo|image|file|document)s?\b",
    re.I,
)

_FILE_WORDS_RE = re.compile(r"\b(logo|file|image|document|pdf|picture|photo)\b", re.I)

# First match wins, in this order.
FILE_TYPE_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("logo", ("logo", "brand image", "company logo")),
    ("document", ("document", "doc", "pdf", "file", "form", "agreement")),
    ("image", ("image", "picture", "photo", "graphic", "banner")),
)


ROUTER_PROMPT = """You route employee questions to company data sources.

Sources:
- "state_map": product legality by U.S. state (which products/brands are allowed in which states).
- "knowledge_base": company information, policies, brands, forms, procedures, general questions.
- "drive_files": files and documents (logos, images, PDFs, sell sheets, agreements).

Return ONLY a JSON object:
{"dataSources": ["state_map" | "knowledge_base" | "drive_files", ...],
 "searchParams": {"state": str?, "brand": str?, "product": str?, "query": str?, "fileType": str?, "category": str?}}

Examples:
- "Is Delta-8 legal in Texas?" -> {"dataSources": ["state_map"], "searchParams": {"state": "Texas", "product": "Delta-8"}}
- "Which Juice Head products can we sell in Florida?" -> {"dataSources": ["state_map"], "searchParams": {"state": "Florida", "brand": "Juice Head"}}
- "Where is the marketing request form?" -> {"dataSources": ["knowledge_base", "drive_files"], "searchParams": {"query": "marketing request form", "fileType": "document"}}
- "What brands do we sell?" -> {"dataSources": ["knowledge_base"], "searchParams": {"query": "brands"}}
- "Send me the Modus sell sheet" -> {"dataSources": ["drive_files"], "searchParams": {"brand": "Modus", "query": "sell sheet"}}

Use the conversation for context (e.g. a state or brand mentioned earlier). Only include keys you can fill.
"""


@dataclass
class Classification:
    data_sources: frozenset[SourceTag]
    params: SearchParams
    path: str  # uuid | asset_phrase | model | model_unparseable | model_failed


def _contains_word(haystack: str, needle: str) -> bool:
    return re.search(rf"\b{re.escape(needle)}s?\b", haystack, re.I) is not None


def extract_brand(text: str, known_brands: Sequence[str]) -> Optional[str]:
    low = (text or "").lower()
    for brand in known_brands:
        if brand.lower() in low:
            return brand
    return None


def extract_file_type(text: str) -> Optional[str]:
    for file_type, keywords in FILE_TYPE_KEYWORDS:
        if any(_contains_word(text or "", kw) for kw in keywords):
            return file_type
    return None


def _kind_to_file_type(kind: str) -> str:
    return extract_file_type(kind) or "image"


def _clean_brand(raw: str, known_brands: Sequence[str] = ()) -> Optional[str]:
    brand = re.sub(r"\s+", " ", raw or "").strip(" \t'\"")
    if not brand:
        return None
    return extract_brand(brand, known_brands) or brand


class IntentClassifier:
    """
    Turns an utterance (+ recent turns) into target sources and search params.
    Unambiguous phrasings skip the model entirely.
    """

    def __init__(self, cfg: Settings, llm: LLMClient) -> None:
        self.cfg = cfg
        self.llm = llm

    def classify(self, utterance: str, recent_messages: Sequence[LLMMessage] = ()) -> Classification:
        fast = self.fast_path(utterance)
        if fast is not None:
            return fast

        try:
            raw = self._ask_model(utterance, recent_messages)
        except Exception as e:
            logger.warning("classifier.model_failed err=%s", e)
            return self.fallback(utterance, path="model_failed")

        try:
            out = self._decode(raw)
        except ClassificationParseError as e:
            logger.info("classifier.unparseable err=%s", e)
            return self.fallback(utterance, path="model_unparseable")

        sources = set(out.data_sources)
        if SourceTag.DRIVE_FILES not in sources and _FILE_WORDS_RE.search(utterance or ""):
            sources.add(SourceTag.DRIVE_FILES)

        params = out.search_params
        if SourceTag.KNOWLEDGE_BASE in sources and not params.query:
            params = params.model_copy(update={"query": utterance.strip()})

        return Classification(data_sources=frozenset(sources), params=params, path="model")

    def fast_path(self, utterance: str) -> Optional[Classification]:
        text = utterance or ""

        m = _UUID_RE.search(text)
        if m:
            return Classification(
                data_sources=frozenset({SourceTag.DRIVE_FILES}),
                params=SearchParams(file_id=m.group(0)),
                path="uuid",
            )

        # "find the X logo for the website" must not read "website" as the brand
        for pattern in (_FIND_BRAND_ASSET_RE, _ASSET_FOR_BRAND_RE):
            m = pattern.search(text)
            if not m:
                continue
            brand = _clean_brand(m.group("brand"), self.cfg.KNOWN_BRANDS)
            if not brand:
                continue
            return Classification(
                data_sources=frozenset({SourceTag.DRIVE_FILES}),
                params=SearchParams(brand=brand, file_type=_kind_to_file_type(m.group("kind"))),
                path="asset_phrase",
            )
        return None

    def fallback(self, utterance: str, *, path: str) -> Classification:
        return Classification(
            data_sources=frozenset({SourceTag.KNOWLEDGE_BASE, SourceTag.DRIVE_FILES}),
            params=SearchParams(
                query=utterance,
                brand=extract_brand(utterance, self.cfg.KNOWN_BRANDS),
                file_type=extract_file_type(utterance),
            ),
            path=path,
        )

    def _ask_model(self, utterance: str, recent_messages: Sequence[LLMMessage]) -> str:
        history = list(recent_messages)[-self.cfg.CLASSIFIER_HISTORY :]
        if not history or history[-1].content.strip() != (utterance or "").strip():
            history.append(LLMMessage(role="user", content=utterance))
        return self.llm.complete(
            ROUTER_PROMPT,
            history,
            temperature=self.cfg.CLASSIFIER_TEMPERATURE,
            max_tokens=self.cfg.CLASSIFIER_MAX_TOKENS,
            json_mode=True,
        )

    @staticmethod
    def _decode(raw: str) -> ClassifierOutput:
        obj = parse_json_object(raw)
        if obj is None:
            raise ClassificationParseError(f"not a JSON object: {(raw or '')[:120]!r}")
        try:
            return ClassifierOutput.model_validate(obj)
        except ValidationError as e:
            raise ClassificationParseError(json.dumps(e.errors(include_url=False), default=str)) from e
