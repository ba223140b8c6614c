"""
Candidate extraction from conversational turns.

Supports multiple providers:
- Ollama (local, default)
- OpenAI
- Anthropic
- Keyword / regex fallback (no external calls)

LLM extraction is wrapped by ResilientExtractor, which falls back to the
keyword extractor on timeout, error, malformed output or cancellation.
"""

import asyncio
import json
import logging
import re
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

import httpx
from pydantic import ValidationError

from focus_pool.config import ExtractionConfig
from focus_pool.encoding.prompts import EXTRACT_CANDIDATES_PROMPT
from focus_pool.models.item import CandidateItem, FocusType, ItemSource
from focus_pool.models.turn import ConversationTurn


logger = logging.getLogger(__name__)


class ExtractionError(Exception):
    """Raised when an extraction response cannot be used."""


# Emotion label -> priority
EMOTION_SCORES = {
    "positive": 0.8,
    "happy": 0.8,
    "excited": 0.8,
    "curious": 0.6,
    "interested": 0.6,
    "neutral": 0.5,
    "frustrated": 0.4,
    "confused": 0.4,
    "negative": 0.3,
    "sad": 0.3,
    "angry": 0.3,
}

# Topic label -> trigger words (substring match)
TOPIC_KEYWORDS = {
    "工作": ["工作", "项目", "任务", "开发", "设计", "编程", "代码"],
    "学习": ["学习", "研究", "了解", "教程", "课程", "知识"],
    "生活": ["生活", "日常", "家庭", "朋友", "休息", "放松"],
    "健康": ["健康", "运动", "锻炼", "饮食", "睡眠", "身体"],
    "情感": ["感觉", "心情", "情绪", "想法", "感受", "体会"],
    "计划": ["计划", "安排", "准备", "打算", "考虑", "想要"],
    "问题": ["问题", "困难", "挑战", "障碍", "麻烦", "疑问"],
    "目标": ["目标", "理想", "愿望", "期望", "希望", "梦想"],
}

# Topic label -> trigger word prefixes (case-insensitive)
TOPIC_KEYWORDS_EN = {
    "work": ["work", "project", "task", "develop", "design", "programming", "code"],
    "study": ["study", "research", "learn", "tutorial", "course", "knowledge"],
    "life": ["daily", "family", "friend", "weekend", "relax", "home"],
    "health": ["health", "exercise", "workout", "diet", "sleep", "body"],
    "feelings": ["feel", "mood", "emotion", "thought"],
    "plans": ["plan", "schedule", "prepare", "intend", "consider"],
    "problems": ["problem", "difficult", "challenge", "obstacle", "trouble", "issue"],
    "goals": ["goal", "dream", "wish", "hope", "ambition"],
}

_EN_TOPIC_PATTERNS = {
    topic: re.compile(r"(?<![a-z])(?:" + "|".join(map(re.escape, words)) + r")", re.IGNORECASE)
    for topic, words in TOPIC_KEYWORDS_EN.items()
}

# Capitalized names / proper nouns
ENTITY_PATTERN = re.compile(r"(?<![A-Za-z])([A-Z][a-zA-Z]+(?: [A-Z][a-zA-Z]+){0,2})(?![A-Za-z])")

STOP_NAMES = {
    "The", "And", "But", "This", "That", "What", "When", "Where", "Who",
    "How", "Why", "Which", "Your", "Their", "These", "Those", "Some",
    "Any", "All", "Yes", "No", "Not", "Now", "Then", "Here", "There",
    "Today", "Tomorrow", "Yesterday", "Hello", "Hi", "Hey", "Thanks",
    "Thank", "Please", "Sorry", "I", "My", "We", "Our", "You", "It",
    "Can", "Could", "Would", "Should", "Let", "Maybe", "Also", "Just",
}


def emotion_to_priority(emotion: str | None) -> float:
    """Map an emotion label to a priority (0.5 when unknown)."""
    if not emotion:
        return 0.5
    return EMOTION_SCORES.get(emotion.strip().lower(), 0.5)


def extract_topic_keywords(text: str) -> list[str]:
    """Topic labels whose trigger words appear in the text."""
    topics = []
    for topic, words in TOPIC_KEYWORDS.items():
        if any(word in text for word in words):
            topics.append(topic)
    for topic, pattern in _EN_TOPIC_PATTERNS.items():
        if pattern.search(text):
            topics.append(topic)
    return topics


def extract_entity_names(text: str, limit: int = 5) -> list[str]:
    """Capitalized phrases that look like names."""
    names: list[str] = []
    for match in ENTITY_PATTERN.finditer(text):
        words = [w for w in match.group(1).split() if w not in STOP_NAMES]
        name = " ".join(words)
        if len(name) < 2 or name in names:
            continue
        names.append(name)
        if len(names) >= limit:
            break
    return names


class BaseExtractor(ABC):
    """Abstract base class for candidate extractors."""

    @abstractmethod
    async def extract(self, turn: ConversationTurn) -> list[CandidateItem]:
        """Extract candidate items from a turn."""
        pass

    async def extract_candidates(
        self,
        text: str,
        timestamp: datetime | None = None,
        known_emotion: str | None = None,
        known_intent: str | None = None,
        entities: list[str] | None = None,
    ) -> list[CandidateItem]:
        """Extract candidates from raw turn fields."""
        turn = ConversationTurn(
            text=text,
            emotion=known_emotion,
            intent=known_intent,
            entities=entities or [],
            **({"timestamp": timestamp} if timestamp else {}),
        )
        return await self.extract(turn)

    async def close(self) -> None:
        """Release any held resources."""
        pass


class KeywordExtractor(BaseExtractor):
    """
    Rule-based extractor, used alone or as the LLM fallback.

    - Known intent -> event candidate
    - Known entities and capitalized names -> entity candidates
    - Keyword tables -> topic candidates
    All candidates carry the priority implied by the known emotion.
    """

    def __init__(self, max_entities: int = 5):
        self.max_entities = max_entities

    async def extract(self, turn: ConversationTurn) -> list[CandidateItem]:
        return self.extract_sync(turn)

    def extract_sync(self, turn: ConversationTurn) -> list[CandidateItem]:
        priority = emotion_to_priority(turn.emotion)
        snippet = turn.snippet()
        candidates: list[CandidateItem] = []

        def add(item_type: FocusType, label: str, origin: str) -> None:
            label = label.strip()
            if not label:
                return
            if any(c.item_type == item_type.value and c.label == label for c in candidates):
                return
            candidates.append(
                CandidateItem(
                    item_type=item_type,
                    label=label,
                    priority=priority,
                    source=ItemSource.KEYWORD,
                    metadata={"source": origin, "content_snippet": snippet},
                )
            )

        intent = (turn.intent or "").strip()
        if intent and intent.lower() != "unknown":
            add(FocusType.EVENT, intent, "intent")

        for entity in turn.entities:
            add(FocusType.ENTITY, entity, "entity")

        if not turn.is_blank:
            known = {e.strip().casefold() for e in turn.entities}
            for name in extract_entity_names(turn.text, self.max_entities):
                if name.casefold() not in known:
                    add(FocusType.ENTITY, name, "pattern")

            for topic in extract_topic_keywords(turn.text):
                add(FocusType.TOPIC, topic, "topic_extraction")

        return candidates


def parse_json_array(text: str) -> list[Any]:
    """
    Pull a JSON array out of an LLM response.

    Accepts a bare array, an array inside a code fence, an object wrapping
    the array under "items"/"candidates", or an array embedded in prose.

    Raises:
        ExtractionError: If no array can be decoded.
    """
    fenced = re.search(r"```(?:json)?\s*(.*?)```", text, re.DOTALL)
    body = fenced.group(1) if fenced else text

    for chunk in (body.strip(), body[body.find("["): body.rfind("]") + 1]):
        if not chunk:
            continue
        try:
            data = json.loads(chunk)
        except json.JSONDecodeError:
            continue
        if isinstance(data, dict):
            data = data.get("items", data.get("candidates"))
        if isinstance(data, list):
            return data

    raise ExtractionError(f"No JSON array in extraction response: {text[:80]!r}")


class LLMExtractor(BaseExtractor):
    """Extractor backed by an LLM returning a JSON array of candidates."""

    _types = {t.value for t in FocusType}

    def __init__(self, config: ExtractionConfig):
        self.config = config

    @abstractmethod
    async def generate(self, prompt: str) -> str:
        """Generate text from a prompt."""
        pass

    def build_prompt(self, turn: ConversationTurn) -> str:
        return EXTRACT_CANDIDATES_PROMPT.format(
            text=turn.text,
            emotion=turn.emotion or "unknown",
            intent=turn.intent or "unknown",
            entities=", ".join(turn.entities) or "none",
            max_candidates=self.config.max_candidates,
        )

    async def extract(self, turn: ConversationTurn) -> list[CandidateItem]:
        if len(turn.text.strip()) < self.config.min_text_length:
            return []
        response = await self.generate(self.build_prompt(turn))
        return self.parse_response(response, turn)

    def parse_response(
        self,
        response: str,
        turn: ConversationTurn | None = None,
    ) -> list[CandidateItem]:
        """
        Convert an LLM response into candidates.

        Malformed entries are skipped; an undecodable response raises
        ExtractionError.
        """
        entries = parse_json_array(response)
        fallback_priority = emotion_to_priority(turn.emotion) if turn else 0.5
        snippet = turn.snippet() if turn else ""

        candidates: list[CandidateItem] = []
        for entry in entries:
            if not isinstance(entry, dict):
                continue
            item_type = str(entry.get("type", "")).strip().lower()
            if item_type not in self._types:
                continue

            priority = entry.get("priority", entry.get("priorityOrEmotion"))
            try:
                candidate = CandidateItem(
                    item_type=item_type,
                    label=entry.get("label", ""),
                    aliases=[str(a) for a in entry.get("aliases") or [] if a],
                    priority=fallback_priority if priority is None else priority,
                    linked_labels=[
                        str(label)
                        for label in entry.get("linked_labels", entry.get("linkedLabels")) or []
                        if label
                    ],
                    source=ItemSource.LLM,
                    metadata={"source": "llm", "content_snippet": snippet},
                )
            except (ValidationError, TypeError) as e:
                logger.debug(f"Skipping malformed extraction entry: {e}")
                continue
            if candidate.is_blank:
                continue

            candidates.append(candidate)
            if len(candidates) >= self.config.max_candidates:
                break

        return candidates


class OllamaExtractor(LLMExtractor):
    """
    Ollama-based extractor for local LLM operations.

    Uses Ollama's generate API with models like:
    - llama3.2 (fast, good quality)
    - qwen2.5 (strong on Chinese text)
    """

    def __init__(self, config: ExtractionConfig, client: httpx.AsyncClient | None = None):
        super().__init__(config)
        self.base_url = config.ollama_base_url.rstrip("/")
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.config.timeout_seconds)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def generate(self, prompt: str) -> str:
        """Generate text using Ollama."""
        client = await self._get_client()

        response = await client.post(
            f"{self.base_url}/api/generate",
            json={
                "model": self.config.model,
                "prompt": prompt,
                "stream": False,
                "options": {
                    "temperature": self.config.temperature,
                    "num_predict": self.config.max_tokens,
                },
            },
        )
        response.raise_for_status()

        data = response.json()
        return data["response"].strip()

    async def __aenter__(self) -> "OllamaExtractor":
        await self._get_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


class OpenAIExtractor(LLMExtractor):
    """
    OpenAI-based extractor.

    Uses OpenAI's chat API with models like gpt-4o-mini.
    """

    def __init__(self, config: ExtractionConfig):
        super().__init__(config)
        self._client: Any = None

    def _get_client(self) -> Any:
        """Get or create OpenAI client."""
        if self._client is None:
            try:
                from openai import AsyncOpenAI
                self._client = AsyncOpenAI()
            except ImportError:
                raise ImportError("openai package required for OpenAI extraction")
        return self._client

    async def generate(self, prompt: str) -> str:
        """Generate text using OpenAI."""
        client = self._get_client()

        response = await client.chat.completions.create(
            model=self.config.model,
            messages=[{"role": "user", "content": prompt}],
            temperature=self.config.temperature,
            max_tokens=self.config.max_tokens,
        )

        return response.choices[0].message.content.strip()


class AnthropicExtractor(LLMExtractor):
    """
    Anthropic-based extractor.

    Uses Anthropic's messages API with models like claude-3-haiku.
    """

    def __init__(self, config: ExtractionConfig):
        super().__init__(config)
        self._client: Any = None

    def _get_client(self) -> Any:
        """Get or create Anthropic client."""
        if self._client is None:
            try:
                from anthropic import AsyncAnthropic
                self._client = AsyncAnthropic()
            except ImportError:
                raise ImportError("anthropic package required for Anthropic extraction")
        return self._client

    async def generate(self, prompt: str) -> str:
        """Generate text using Anthropic."""
        client = self._get_client()

        response = await client.messages.create(
            model=self.config.model,
            max_tokens=self.config.max_tokens,
            messages=[{"role": "user", "content": prompt}],
        )

        return response.content[0].text.strip()


class ResilientExtractor(BaseExtractor):
    """
    Runs a primary extractor with a fallback.

    The primary runs in its own task, bounded by ``timeout_seconds``. On
    timeout, exception, or cancellation of that task, the fallback
    extractor answers instead. Cancelling the caller cancels the primary
    and propagates.
    """

    def __init__(
        self,
        primary: BaseExtractor,
        fallback: BaseExtractor | None = None,
        timeout_seconds: float = 15.0,
    ):
        self.primary = primary
        self.fallback = fallback or KeywordExtractor()
        self.timeout_seconds = timeout_seconds
        self.fallback_count = 0

    async def extract(self, turn: ConversationTurn) -> list[CandidateItem]:
        task = asyncio.create_task(self.primary.extract(turn))
        try:
            done, _ = await asyncio.wait({task}, timeout=self.timeout_seconds)
        except asyncio.CancelledError:
            task.cancel()
            raise

        if not done:
            task.cancel()
            return await self._fall_back(turn, f"timed out after {self.timeout_seconds}s")
        if task.cancelled():
            return await self._fall_back(turn, "cancelled")
        if task.exception() is not None:
            return await self._fall_back(turn, repr(task.exception()))
        return task.result()

    async def _fall_back(self, turn: ConversationTurn, reason: str) -> list[CandidateItem]:
        self.fallback_count += 1
        logger.warning(f"Extraction failed ({reason}), using keyword fallback")
        try:
            return await self.fallback.extract(turn)
        except Exception as e:
            logger.error(f"Fallback extraction failed: {e}")
            return []

    async def close(self) -> None:
        await self.primary.close()
        await self.fallback.close()


def create_extractor(config: ExtractionConfig | None = None) -> BaseExtractor:
    """
    Factory function to create the appropriate extractor.

    Args:
        config: Extraction configuration. Uses defaults if None.

    Returns:
        A keyword extractor for provider "none", otherwise the provider's
        LLM extractor wrapped with the keyword fallback.
    """
    if config is None:
        config = ExtractionConfig()

    if config.provider == "none":
        return KeywordExtractor()

    providers = {
        "ollama": OllamaExtractor,
        "openai": OpenAIExtractor,
        "anthropic": AnthropicExtractor,
    }

    extractor_class = providers.get(config.provider)
    if extractor_class is None:
        raise ValueError(f"Unknown extraction provider: {config.provider}")

    return ResilientExtractor(
        extractor_class(config),
        KeywordExtractor(),
        config.timeout_seconds,
    )
