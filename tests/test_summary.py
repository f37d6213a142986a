"""tests for label and title heuristics."""

from chatpath.core.models import ConversationNode, Message, Role
from chatpath.core.reducer import PROMPT_MESSAGE, WELCOME_MESSAGE
from chatpath.core.summary import (
    MAX_LABEL_LENGTH,
    conversation_title,
    create_branch_seed_message,
    generate_conversation_summary,
)


def _msgs(*pairs):
    return [Message.create(content, role) for role, content in pairs]


class TestSeedMessage:
    """tests for create_branch_seed_message."""

    def test_short_selection(self):
        assert create_branch_seed_message("explore different topics") == (
            'Continuing from: "explore different topics"\n\n'
            "What would you like to explore about this?"
        )

    def test_long_selection_truncated(self):
        """quotes longer than 100 chars are cut with an ellipsis."""
        text = "x" * 150
        seed = create_branch_seed_message(text)
        assert f'"{"x" * 100}..."' in seed


class TestSummary:
    """tests for generate_conversation_summary."""

    def test_empty(self):
        assert generate_conversation_summary([]) == "New Conversation"

    def test_seed_three_words(self):
        """short quotes keep three words."""
        seed = _msgs((Role.ASSISTANT, create_branch_seed_message("red blue green yellow")))
        assert generate_conversation_summary(seed) == "red blue green"

    def test_seed_two_words_when_long(self):
        """three words over the budget drop to two."""
        seed = _msgs((Role.ASSISTANT, create_branch_seed_message("dark matter halos")))
        assert generate_conversation_summary(seed) == "dark matter"

    def test_seed_clipped_at_two_words(self):
        """two words still over the budget are cut, not dropped."""
        seed = _msgs((Role.ASSISTANT, create_branch_seed_message("explore different topics")))
        assert generate_conversation_summary(seed) == "explore diff..."

    def test_short_conversation_uses_user_words(self):
        msgs = _msgs(
            (Role.ASSISTANT, "hello"),
            (Role.USER, "what about tomato seeds"),
        )
        assert generate_conversation_summary(msgs) == "Tomato Seeds"

    def test_second_word_dropped_when_long(self):
        """two words over the budget fall back to the first."""
        msgs = _msgs(
            (Role.ASSISTANT, "hello"),
            (Role.USER, "what about gardening tomatoes"),
        )
        assert generate_conversation_summary(msgs) == "Gardening"

    def test_welcome_root(self):
        """greeting-only root falls through to the topic match."""
        msgs = _msgs((Role.ASSISTANT, WELCOME_MESSAGE), (Role.ASSISTANT, PROMPT_MESSAGE))
        assert generate_conversation_summary(msgs) == "Technology"

    def test_topic_in_long_conversation(self):
        msgs = _msgs(
            (Role.USER, "hi"),
            (Role.ASSISTANT, "hello"),
            (Role.USER, "ok"),
            (Role.ASSISTANT, "sure"),
            (Role.USER, "our startup needs revenue"),
        )
        assert generate_conversation_summary(msgs) == "Business"

    def test_longest_words_fallback(self):
        """no topic hit: the two longest content words."""
        msgs = _msgs(
            (Role.USER, "hi"),
            (Role.ASSISTANT, "hello"),
            (Role.USER, "ok"),
            (Role.ASSISTANT, "sure"),
            (Role.USER, "planting tomato seeds"),
        )
        assert generate_conversation_summary(msgs) == "Planting Tomato"

    def test_label_bounded(self):
        """free-form input never exceeds the label length."""
        msgs = _msgs((Role.USER, "supercalifragilistic antidisestablishmentarianism"))
        label = generate_conversation_summary(msgs)
        assert 0 < len(label) <= MAX_LABEL_LENGTH


class TestTitle:
    """tests for conversation_title."""

    def test_first_sentence(self):
        node = ConversationNode(
            id="abcdef123456",
            messages=_msgs((Role.ASSISTANT, "hi"), (Role.USER, "Plan a trip. Somewhere warm.")),
        )
        assert conversation_title(node) == "Plan a trip"

    def test_no_user_message(self):
        node = ConversationNode(id="abcdef123456", messages=_msgs((Role.ASSISTANT, "hi")))
        assert conversation_title(node) == "Conversation abcdef12"

    def test_long_sentence_truncated(self):
        node = ConversationNode(id="n", messages=_msgs((Role.USER, "word " * 30)))
        title = conversation_title(node)
        assert title.endswith("...")
        assert len(title) == 53
