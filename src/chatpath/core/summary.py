"""short labels for nodes and edges, derived from message text.

keyword heuristics only. the reducer takes any ``Summarizer`` so this
can be swapped for a real summarization call.
"""

from __future__ import annotations

import re
from typing import Callable, Optional

from .models import ConversationNode, Message, Role


# --- configuration ---

MAX_LABEL_LENGTH = 15  # display budget for node and edge labels
SHORT_CONVERSATION = 4  # messages
RECENT_WINDOW = 6  # messages scanned for topics
SEED_EXCERPT_LENGTH = 100
MAX_TITLE_LENGTH = 50

SEED_PREFIX = "Continuing from:"
WELCOME_MARKER = "Welcome to ChatPath"

Summarizer = Callable[[list[Message]], str]

STOP_WORDS = frozenset("""
a about above after again against all also am an and any are as at be because
been before being below between both but by can could did do does doing down
during each few for from further had has have having he her here hers herself
him himself his how i if in into is it its itself just let like me more most
my myself no nor not now of off on once only or other our ours ourselves out
over own same she should so some such than that the their theirs them
themselves then there these they this those through to too under until up
very was we were what when where which while who whom why will with would you
your yours yourself yourselves tell think know want need get got make really
thing things something anything maybe please thanks okay yes
""".split())

# checked in order; first topic with a keyword hit wins
TOPIC_KEYWORDS: dict[str, tuple[str, ...]] = {
    "Technology": ("code", "software", "programming", "computer", "technology", "python", "javascript", "api", "database", "algorithm"),
    "Science": ("science", "physics", "chemistry", "biology", "experiment", "research", "theory", "quantum", "energy"),
    "Creative": ("creative", "story", "writing", "art", "music", "design", "poem", "novel", "paint"),
    "Business": ("business", "market", "startup", "sales", "revenue", "strategy", "customer", "finance", "company"),
    "Learning": ("learn", "learning", "study", "course", "education", "teach", "understand", "explain", "tutorial"),
    "Problem Solving": ("problem", "issue", "bug", "error", "fix", "solve", "debug", "broken", "troubleshoot"),
    "Planning": ("plan", "planning", "schedule", "goal", "roadmap", "timeline", "organize", "project"),
}

_WORD_RE = re.compile(r"[A-Za-z][A-Za-z'-]*")
_QUOTED_RE = re.compile(r'"([^"]+)"')


def create_branch_seed_message(selected_text: str) -> str:
    """content of the first message of a freshly carved branch."""
    excerpt = selected_text
    if len(excerpt) > SEED_EXCERPT_LENGTH:
        excerpt = excerpt[:SEED_EXCERPT_LENGTH] + "..."
    return f'{SEED_PREFIX} "{excerpt}"\n\nWhat would you like to explore about this?'


def generate_conversation_summary(messages: list[Message]) -> str:
    """derive a short label from a node's messages."""
    if not messages:
        return "New Conversation"

    seed = _seed_label(messages)
    if seed:
        return seed

    if len(messages) <= SHORT_CONVERSATION:
        words = _content_words(" ".join(m.content for m in messages if m.role == Role.USER))
        if words:
            return _fit_words([w.title() for w in words[:2]])

    recent = " ".join(m.content for m in messages[-RECENT_WINDOW:])
    topic = _match_topic(recent)
    if topic:
        return topic

    longest = sorted(_content_words(recent), key=len, reverse=True)[:2]
    if longest:
        return _fit_words([w.title() for w in longest])

    first_user = next((m for m in messages if m.role == Role.USER), None)
    if first_user and first_user.content.split():
        return _fit_words(first_user.content.split()[:3])
    return "New Conversation"


def conversation_title(node: ConversationNode) -> str:
    """header title: first sentence of the first user message."""
    first_user = next((m for m in node.messages if m.role == Role.USER), None)
    if first_user is None:
        return f"Conversation {node.id[:8]}"

    content = first_user.content.strip()
    if WELCOME_MARKER in content:
        return "New Conversation"

    first_sentence = re.split(r"[.!?]", content)[0].strip()
    if len(first_sentence) > MAX_TITLE_LENGTH:
        first_sentence = first_sentence[:MAX_TITLE_LENGTH] + "..."
    return first_sentence or f"Conversation {node.id[:8]}"


def _seed_label(messages: list[Message]) -> Optional[str]:
    if len(messages) != 1 or not messages[0].content.startswith(SEED_PREFIX):
        return None
    match = _QUOTED_RE.search(messages[0].content)
    if not match:
        return None
    words = match.group(1).split()
    return _fit_words(words[:3], keep=2) if words else None


def _content_words(text: str) -> list[str]:
    """lowercased non-stop-words of length >= 3, first occurrence order, unique."""
    seen: set[str] = set()
    words = []
    for raw in _WORD_RE.findall(text):
        word = raw.lower().strip("'-")
        if len(word) < 3 or word in STOP_WORDS or word in seen:
            continue
        seen.add(word)
        words.append(word)
    return words


def _match_topic(text: str) -> Optional[str]:
    tokens = {w.lower() for w in _WORD_RE.findall(text)}
    for topic, keywords in TOPIC_KEYWORDS.items():
        if any(k in tokens for k in keywords):
            return topic
    return None


def _fit_words(words: list[str], keep: int = 1) -> str:
    """drop trailing words until the label fits, keeping at least ``keep``."""
    while len(words) > keep and len(" ".join(words)) > MAX_LABEL_LENGTH:
        words = words[:-1]
    return _clip(" ".join(words))


def _clip(text: str, limit: int = MAX_LABEL_LENGTH) -> str:
    if len(text) <= limit:
        return text
    return text[:limit - 3].rstrip() + "..."
