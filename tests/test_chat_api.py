import json

import httpx

from gateway.services.chat_service import (
    build_prompt,
    format_history,
    is_follow_up_question,
    no_documents_message,
)
from gateway.services.retrieval_service import RetrievalResult
from gateway.db.supabase import DocumentChunk
from gateway.schemas.chat import ConversationMessage


def _echo_materials(request: httpx.Request) -> httpx.Response:
    prompt = json.loads(request.content)["inputs"]
    lines = [line for line in prompt.splitlines() if line.startswith("Midterm")]
    return httpx.Response(200, json=[{"generated_text": f"{prompt}\nAnswer: According to the syllabus, {lines[0]}."}])


def test_answer_mentions_indexed_content(client, store, upstream):
    store.add_document("cs101", "Midterm: Oct 12")
    upstream.generation = _echo_materials

    response = client.post(
        "/ask-chatbot",
        json={"query": "When is the midterm?", "classId": "cs101", "conversationHistory": []},
    )

    assert response.status_code == 200
    assert "Oct 12" in response.json()["answer"]
    assert "Answer:" not in response.json()["answer"]
    assert store.match_calls == [{"class_id": "cs101", "match_count": 5, "match_threshold": 0.5}]


def test_no_documents_returns_upload_hint_without_generation(client, upstream):
    response = client.post("/ask-chatbot", json={"query": "When is the midterm?", "classId": "cs101"})

    assert response.status_code == 200
    assert "upload" in response.json()["answer"].lower()
    assert upstream.generation_requests() == []


def test_missing_class_asks_user_to_pick_one(client, upstream):
    response = client.post("/ask-chatbot", json={"query": "What is due?"})

    assert response.status_code == 200
    assert "select a class" in response.json()["answer"]
    assert upstream.generation_requests() == []


def test_all_models_failing_degrades_to_document_excerpt(client, store, upstream):
    store.add_document("cs101", "Midterm: Oct 12 in room 204. " + "Bring a calculator. " * 40)
    upstream.generation = lambda request: httpx.Response(503, text="overloaded")

    response = client.post("/ask-chatbot", json={"query": "When is the midterm?", "classId": "cs101"})

    assert response.status_code == 200
    answer = response.json()["answer"]
    assert "unavailable" in answer
    assert "Midterm: Oct 12" in answer
    assert len(upstream.generation_requests()) == 3 * 3


def test_embedding_failure_is_a_server_error(client, upstream):
    upstream.embedding = lambda request: httpx.Response(500, text="embedding down")

    response = client.post("/ask-chatbot", json={"query": "When is the midterm?", "classId": "cs101"})

    assert response.status_code == 500
    assert "embedding" in response.json()["error"].lower()
    assert "details" in response.json()


def test_multi_class_retrieval_groups_by_class_and_skips_failures(client, store, upstream):
    store.add_document("cs101", "CS101 midterm is Oct 12")
    store.add_document("ma201", "MA201 quiz is Nov 3")
    store.failing_classes.add("ph110")
    prompts: list[str] = []

    def capture(request: httpx.Request) -> httpx.Response:
        prompts.append(json.loads(request.content)["inputs"])
        return httpx.Response(200, json=[{"generated_text": "Both exams are soon."}])

    upstream.generation = capture

    response = client.post(
        "/ask-chatbot",
        json={
            "query": "What exams are coming up?",
            "classIds": ["cs101", "ma201", "ph110"],
            "mentionContext": {
                "hasMentions": True,
                "mentionedClasses": [{"name": "CS101"}, {"name": "MA201"}, {"name": "PH110"}],
            },
        },
    )

    assert response.status_code == 200
    assert response.json()["answer"] == "Both exams are soon."
    assert {call["match_count"] for call in store.match_calls} == {3}
    assert "Documents from class cs101:\nCS101 midterm is Oct 12" in prompts[0]
    assert "Documents from class ma201:\nMA201 quiz is Nov 3" in prompts[0]
    assert "Searching across 3 classes: CS101, MA201, PH110" in prompts[0]
    assert "@mentions" in prompts[0]


def test_uploaded_files_are_embedded_on_demand(client, store, upstream):
    syllabus = (
        "CS101 course syllabus for the fall semester. The midterm exam is on Oct 12. "
        "Each assignment is due on Fridays."
    )
    store.class_files.append(
        {"id": "f1", "name": "syllabus.txt", "path": "cs101/syllabus.txt", "class_id": "cs101", "type": "text/plain"}
    )
    store.files[("secure-syllabi", "cs101/syllabus.txt")] = syllabus.encode()
    upstream.generation = lambda request: httpx.Response(200, json=[{"generated_text": "Oct 12."}])

    response = client.post("/ask-chatbot", json={"query": "When is the midterm?", "classId": "cs101"})

    assert response.status_code == 200
    assert response.json()["answer"] == "Oct 12."
    assert store.inserted[0]["file_name"] == "syllabus.txt (chunk 1/1)"
    assert len(store.match_calls) == 2


def test_failed_auto_embedding_reports_processing_issue(client, store, upstream):
    store.class_files.append(
        {"id": "f2", "name": "notes.txt", "path": "cs101/notes.txt", "class_id": "cs101", "type": "text/plain"}
    )

    response = client.post("/ask-chatbot", json={"query": "When is the midterm?", "classId": "cs101"})

    assert response.status_code == 200
    assert "encountered issues processing" in response.json()["answer"]
    assert upstream.generation_requests() == []


def test_invalid_body_is_rejected(client):
    assert client.post("/ask-chatbot", json={"classId": "cs101"}).status_code == 400
    too_long = client.post("/ask-chatbot", json={"query": "x" * 1001, "classId": "cs101"})
    assert too_long.status_code == 400
    assert too_long.json()["error"] == "Invalid request body"


def test_follow_up_detection():
    assert not is_follow_up_question("why?", has_history=False)
    assert is_follow_up_question("why?", has_history=True)
    assert is_follow_up_question("Can you explain the grading policy in more detail please", True)
    assert is_follow_up_question("What does that mean for the final project grade", True)
    assert not is_follow_up_question("When is the final exam for the database course", True)


def test_history_keeps_last_turns_only():
    history = [
        ConversationMessage(role="user" if index % 2 == 0 else "assistant", content=f"turn {index}")
        for index in range(10)
    ]

    text = format_history(history, 8)

    assert "turn 0" not in text
    assert "turn 1\n" not in text
    assert text.splitlines()[0] == "User: turn 2"
    assert text.splitlines()[-1] == "Assistant: turn 9"


def test_prompts_end_with_answer_marker():
    retrieval = RetrievalResult(documents=[DocumentChunk("Midterm: Oct 12")], context_text="Midterm: Oct 12")

    fresh = build_prompt("When is the midterm?", retrieval, "", follow_up=False)
    follow_up = build_prompt("why?", retrieval, "User: hi\nAssistant: hello", follow_up=True)
    no_docs = build_prompt("hello", RetrievalResult(), "User: hi", follow_up=False)

    assert fresh.endswith("Answer:") and "---\nMidterm: Oct 12\n---" in fresh
    assert follow_up.startswith("You are an intelligent academic assistant helping a student")
    assert "Previous conversation:\nUser: hi" in follow_up
    assert "don't have specific course materials" in no_docs


def test_no_documents_message_variants():
    assert "upload some course materials" in no_documents_message(["cs101"])
    assert "classes you mentioned (Searching across 2 classes: a, b)" in no_documents_message(
        ["a", "b"], "Searching across 2 classes: a, b"
    )
