from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import httpx
from openai import OpenAI

from app.core.config import Settings, settings as default_settings


# ----------------------------
# Public types
# ----------------------------

logger = logging.getLogger(__name__)

@dataclass
class LLMMessage:
    role: str  # "system" | "user" | "assistant"
    content: str


class LLMError(RuntimeError):
    """Raised when the LLM provider returns an error or is misconfigured."""


def _require(value: Optional[str], name: str) -> str:
    if not value:
        raise LLMError(f"Missing required setting: {name}")
    return value


# ----------------------------
# Main client
# ----------------------------

class LLMClient:
    """
    Pluggable completion client.

    Providers:
      - openai: OpenAI official API (default, gpt-4o-mini)
      - groq: OpenAI-compatible API at https://api.groq.com/openai/v1
      - ollama: local Ollama server at http://localhost:11434
      - mock: returns deterministic placeholder output for local dev
    """

    def __init__(self, cfg: Optional[Settings] = None) -> None:
        cfg = cfg or default_settings
        self.provider = cfg.LLM_PROVIDER.strip().lower()
        self.timeout_s = cfg.LLM_TIMEOUT_SECONDS
        self.max_tokens = cfg.LLM_MAX_TOKENS
        self.temperature = cfg.LLM_TEMPERATURE
        self._client: Optional[OpenAI] = None

        if self.provider == "openai":
            api_key = _require(cfg.OPENAI_API_KEY, "OPENAI_API_KEY")
            self.model = cfg.OPENAI_MODEL
            http_client = httpx.Client(timeout=self.timeout_s)
            if cfg.OPENAI_BASE_URL:
                self._client = OpenAI(api_key=api_key, base_url=cfg.OPENAI_BASE_URL, http_client=http_client)
            else:
                self._client = OpenAI(api_key=api_key, http_client=http_client)

        elif self.provider == "groq":
            api_key = _require(cfg.GROQ_API_KEY, "GROQ_API_KEY")
            self.model = cfg.GROQ_MODEL
            http_client = httpx.Client(timeout=self.timeout_s)
            self._client = OpenAI(api_key=api_key, base_url=cfg.GROQ_BASE_URL, http_client=http_client)

        elif self.provider == "ollama":
            self.model = cfg.OLLAMA_MODEL
            self.base_url = cfg.OLLAMA_BASE_URL.rstrip("/")

        elif self.provider == "mock":
            self.model = "mock"

        else:
            raise LLMError(f"Unsupported LLM_PROVIDER: {self.provider}")
        logger.info("LLM initialized; provider=%s model=%s", self.provider, self.model)

    def chat(
        self,
        messages: List[LLMMessage],
        *,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        response_format: Optional[Dict[str, Any]] = None,
    ) -> str:
        """
        Basic chat completion. Returns assistant text.
        """
        if self.provider == "mock":
            return self._mock_response(messages)

        temp = self.temperature if temperature is None else temperature
        mx = self.max_tokens if max_tokens is None else max_tokens

        if self.provider == "ollama":
            body: Dict[str, Any] = {
                "model": self.model,
                "prompt": _messages_to_prompt(messages),
                "stream": False,
                "options": {"temperature": temp, "num_predict": mx},
            }
            if response_format:
                body["format"] = "json"
            try:
                with httpx.Client(timeout=self.timeout_s) as client:
                    resp = client.post(f"{self.base_url}/api/generate", json=body)
                if resp.status_code >= 400:
                    raise LLMError(
                        f"LLM call failed ({self.provider}) status={resp.status_code}: {resp.text}"
                    )
                data = resp.json()
                return (data.get("response") or "").strip()
            except LLMError:
                raise
            except Exception as e:
                raise LLMError(f"LLM call failed ({self.provider}): {e}") from e

        # openai / groq
        assert self._client is not None
        payload_messages = [{"role": m.role, "content": m.content} for m in messages]

        try:
            kwargs: Dict[str, Any] = {}
            if response_format:
                kwargs["response_format"] = response_format

            resp = self._client.chat.completions.create(
                model=self.model,
                messages=payload_messages,
                temperature=temp,
                max_tokens=mx,
                **kwargs,
            )
        except Exception as e:
            status = getattr(getattr(e, "response", None), "status_code", None)
            suffix = f" status={status}" if status else ""
            raise LLMError(f"LLM call failed ({self.provider}){suffix}: {e}") from e

        if not resp.choices:
            raise LLMError(f"LLM call failed ({self.provider}): empty choices")
        return (resp.choices[0].message.content or "").strip()

    def complete(
        self,
        system_prompt: str,
        messages: Sequence[LLMMessage],
        *,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        json_mode: bool = False,
    ) -> str:
        """
        One completion request: system prompt first, then the conversation.
        Raises LLMError on transport/provider failure.
        """
        payload = [LLMMessage(role="system", content=system_prompt), *messages]
        return self.chat(
            payload,
            temperature=temperature,
            max_tokens=max_tokens,
            response_format={"type": "json_object"} if json_mode else None,
        )

    @staticmethod
    def _mock_response(messages: List[LLMMessage]) -> str:
        # deterministic + useful for UI wiring
        last_user = next((m.content for m in reversed(messages) if m.role == "user"), "")
        return (
            "MOCK_ANSWER: I received your question. "
            "This is a placeholder response for local development.\n\n"
            f"User asked: {last_user[:200]}"
        )


def parse_json_object(text: str) -> Optional[Dict[str, Any]]:
    """
    Parse a JSON object out of model output.
    Tolerates code fences and leading/trailing prose; returns None when no object is found.
    """
    raw = (text or "").strip()
    try:
        obj = json.loads(raw)
    except json.JSONDecodeError:
        # Basic salvage: find first '{' and last '}'
        start = raw.find("{")
        end = raw.rfind("}")
        if start == -1 or end <= start:
            return None
        try:
            obj = json.loads(raw[start : end + 1])
        except json.JSONDecodeError:
            return None
    return obj if isinstance(obj, dict) else None


# Singleton helper (simple + practical)
_llm_singleton: Optional[LLMClient] = None


def get_llm(*, force_reload: bool = False) -> LLMClient:
    global _llm_singleton
    if force_reload or _llm_singleton is None:
        _llm_singleton = LLMClient()
    return _llm_singleton


def reset_llm() -> None:
    global _llm_singleton
    _llm_singleton = None


def _messages_to_prompt(messages: List[LLMMessage]) -> str:
    parts: list[str] = []
    for m in messages:
        role = m.role.upper()
        parts.append(f"{role}:\n{m.content}".strip())
    parts.append("ASSISTANT:\n")
    return "\n\n".join(parts).strip()
