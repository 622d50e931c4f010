"""Bounded per-conversation history for follow-up queries.

NotebookLM is stateless between query calls: follow-ups must resend the
earlier turns. Entries use the wire shape ``[text, null, role]`` where
role 1 is the user's question and role 2 the answer.
"""

from dataclasses import dataclass

MAX_HISTORY_ENTRIES = 10

ROLE_QUESTION = 1
ROLE_ANSWER = 2


@dataclass
class ConversationTurn:
    """One question/answer pair."""
    query: str
    answer: str
    turn_number: int  # 1-indexed

    def to_dict(self) -> dict:
        return {"turn": self.turn_number, "query": self.query, "answer": self.answer}


class ConversationHistory:
    """conversation_id -> most recent wire entries, oldest first, FIFO-evicted."""

    def __init__(self, max_entries: int = MAX_HISTORY_ENTRIES):
        self.max_entries = max_entries
        self._entries: dict[str, list[list]] = {}
        self._turn_counts: dict[str, int] = {}

    def __contains__(self, conversation_id: str) -> bool:
        return conversation_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, conversation_id: str | None) -> list[list]:
        """Entries to send with the next query (empty for a new conversation)."""
        if not conversation_id:
            return []
        return [list(entry) for entry in self._entries.get(conversation_id, [])]

    def append(self, conversation_id: str, text: str, role: int) -> None:
        entries = self._entries.setdefault(conversation_id, [])
        entries.append([text, None, role])
        if len(entries) > self.max_entries:
            del entries[: len(entries) - self.max_entries]

    def record_turn(self, conversation_id: str, query: str, answer: str) -> int:
        """Append a question and its answer. Returns the turn number."""
        self.append(conversation_id, query, ROLE_QUESTION)
        self.append(conversation_id, answer, ROLE_ANSWER)
        turn_number = self._turn_counts.get(conversation_id, 0) + 1
        self._turn_counts[conversation_id] = turn_number
        return turn_number

    def turn_count(self, conversation_id: str) -> int:
        return self._turn_counts.get(conversation_id, 0)

    def turns(self, conversation_id: str) -> list[ConversationTurn]:
        """Pair retained entries back into turns.

        Eviction can leave a dangling answer at the front; it is skipped.
        """
        entries = self._entries.get(conversation_id, [])
        retained_pairs = []
        pending_query = None
        for text, _, role in entries:
            if role == ROLE_QUESTION:
                pending_query = text
            elif pending_query is not None:
                retained_pairs.append((pending_query, text))
                pending_query = None

        first_turn = max(1, self.turn_count(conversation_id) - len(retained_pairs) + 1)
        return [
            ConversationTurn(query=query, answer=answer, turn_number=first_turn + offset)
            for offset, (query, answer) in enumerate(retained_pairs)
        ]
