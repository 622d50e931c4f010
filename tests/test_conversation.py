from notebooklm_rpc.conversation import MAX_HISTORY_ENTRIES, ROLE_ANSWER, ROLE_QUESTION, ConversationHistory


def test_new_conversation_has_no_history():
    history = ConversationHistory()
    assert history.get(None) == []
    assert history.get("unknown") == []


def test_record_turn_uses_wire_shape():
    history = ConversationHistory()
    assert history.record_turn("c1", "Q", "A") == 1
    assert history.get("c1") == [["Q", None, ROLE_QUESTION], ["A", None, ROLE_ANSWER]]


def test_history_is_capped_fifo():
    history = ConversationHistory()
    for i in range(MAX_HISTORY_ENTRIES + 1):
        history.append("c1", f"entry {i}", ROLE_QUESTION)

    entries = history.get("c1")
    assert len(entries) == MAX_HISTORY_ENTRIES
    assert entries[0][0] == "entry 1"
    assert entries[-1][0] == f"entry {MAX_HISTORY_ENTRIES}"


def test_get_returns_a_copy():
    history = ConversationHistory()
    history.record_turn("c1", "Q", "A")
    history.get("c1")[0][0] = "mutated"
    assert history.get("c1")[0][0] == "Q"


def test_conversations_are_independent():
    history = ConversationHistory()
    history.record_turn("c1", "Q1", "A1")
    history.record_turn("c2", "Q2", "A2")
    assert len(history) == 2
    assert "c1" in history
    assert history.turn_count("c2") == 1


def test_turns_after_eviction():
    history = ConversationHistory(max_entries=4)
    for n in range(1, 4):
        history.record_turn("c1", f"q{n}", f"a{n}")

    turns = history.turns("c1")
    assert [(t.turn_number, t.query, t.answer) for t in turns] == [(2, "q2", "a2"), (3, "q3", "a3")]


def test_turns_skip_dangling_answer():
    history = ConversationHistory(max_entries=3)
    history.record_turn("c1", "q1", "a1")
    history.record_turn("c1", "q2", "a2")

    # oldest question evicted, its answer is left without a pair
    turns = history.turns("c1")
    assert [t.to_dict() for t in turns] == [{"turn": 2, "query": "q2", "answer": "a2"}]
