"""
Encoding module: turning conversational turns into pool candidates.

Provides:
- LLM extractors (Ollama, OpenAI, Anthropic)
- Keyword / regex fallback extractor
- Resilient wrapper with timeout and fallback
"""

from focus_pool.encoding.extractor import (
    AnthropicExtractor,
    BaseExtractor,
    ExtractionError,
    KeywordExtractor,
    LLMExtractor,
    OllamaExtractor,
    OpenAIExtractor,
    ResilientExtractor,
    create_extractor,
    emotion_to_priority,
    extract_entity_names,
    extract_topic_keywords,
    parse_json_array,
)

__all__ = [
    "AnthropicExtractor",
    "BaseExtractor",
    "ExtractionError",
    "KeywordExtractor",
    "LLMExtractor",
    "OllamaExtractor",
    "OpenAIExtractor",
    "ResilientExtractor",
    "create_extractor",
    "emotion_to_priority",
    "extract_entity_names",
    "extract_topic_keywords",
    "parse_json_array",
]
