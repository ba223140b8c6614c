"""
Prompt templates for candidate extraction.
"""

EXTRACT_CANDIDATES_PROMPT = """Identify what the user is focused on in this conversational turn.

Turn: {text}
Known emotion: {emotion}
Known intent: {intent}
Known entities: {entities}

Return a JSON array of at most {max_candidates} objects, each with:
- "type": one of "event", "topic", "entity"
- "label": a short, specific label (e.g. "Flutter性能优化", not "工作" or "chat")
- "aliases": alternate labels for the same thing (optional)
- "priority": importance or emotional weight between 0 and 1 (optional)
- "linked_labels": labels of other items in this turn it relates to (optional)

Return only the JSON array, with no explanation.

JSON:"""
