import pytest
import requests

from conftest import EMAIL, SECRET, FakeHTTPClient, FakeModel, encoded_page
from quizloop.deriver import HeuristicDeriver, ModelDeriver
from quizloop.exceptions import DerivationError, ExtractionError, InternalError, StoreError, SubmissionError
from quizloop.parser import ContentExtractor
from quizloop.solver_core import QuizLoopController
from quizloop.store import MemoryStore
from quizloop.submitter import Submitter

HOST = "https://host"
SUBMIT_URL = f"{HOST}/submit"


def question(n):
    return (f"Quiz {n}: download {HOST}/data/q{n}.csv and compute the sum of the amount column. "
            f"Post your answer to {SUBMIT_URL}")


def make_controller(store, pages, grades, deriver=None, max_chain_length=50):
    client = FakeHTTPClient(pages=pages, posts={SUBMIT_URL: list(grades)})
    controller = QuizLoopController(
        email=EMAIL,
        secret=SECRET,
        extractor=ContentExtractor(renderer=None, client=client),
        deriver=deriver or HeuristicDeriver(),
        submitter=Submitter(client),
        store=store,
        max_chain_length=max_chain_length,
    )
    return controller, client


def messages(store):
    return [record.message for record in store.logs_for(EMAIL)]


def test_chain_follows_next_url(store):
    pages = {
        f"{HOST}/quiz-1": encoded_page(question(1)),
        f"{HOST}/next": encoded_page(question(2)),
    }
    grades = [{"correct": False, "url": f"{HOST}/next"}, {"correct": True}]
    controller, client = make_controller(store, pages, grades)

    result = controller.run(f"{HOST}/quiz-1")

    attempts = store.attempts_for(EMAIL)
    assert len(attempts) == 2
    assert attempts[0].quiz_url == f"{HOST}/quiz-1"
    assert attempts[0].correct is False
    assert attempts[0].answer == 0
    assert attempts[0].response == {"correct": False, "url": f"{HOST}/next"}
    assert attempts[0].question == question(1)
    assert attempts[1].quiz_url == f"{HOST}/next"
    assert attempts[1].correct is True
    assert attempts[0].id != attempts[1].id

    assert client.posted[0] == (SUBMIT_URL, {"email": EMAIL, "secret": SECRET,
                                             "url": f"{HOST}/quiz-1", "answer": 0})
    assert client.posted[1][1]["url"] == f"{HOST}/next"
    assert result.stopped_reason == 'done'
    assert len(result.attempts) == 2

    starts = [r for r in store.logs_for(EMAIL) if r.message == "Starting quiz solver"]
    assert [r.quiz_url for r in starts] == [f"{HOST}/quiz-1", f"{HOST}/next"]


def test_single_round_without_next_url(store):
    controller, _ = make_controller(store, {f"{HOST}/quiz-1": encoded_page(question(1))}, [{"correct": True}])

    result = controller.run(f"{HOST}/quiz-1")

    assert len(store.attempts_for(EMAIL)) == 1
    assert result.stopped_reason == 'done'
    assert messages(store) == [
        "Starting quiz solver",
        "Successfully extracted page content.",
        "Received answer (heuristic).",
        "Answer correct",
    ]
    assert store.attempts_for(EMAIL)[0].duration_ms >= 0


def test_incorrect_answer_logged_as_error(store):
    controller, _ = make_controller(store, {f"{HOST}/quiz-1": encoded_page(question(1))},
                                    [{"correct": False, "reason": "Wrong sum"}])
    controller.run(f"{HOST}/quiz-1")

    last = store.logs_for(EMAIL)[-1]
    assert last.message == "Answer incorrect"
    assert last.log_level == "error"
    assert last.metadata["submitResult"] == {"correct": False, "reason": "Wrong sum"}


def test_extraction_failure_writes_one_error_log(store):
    pages = {f"{HOST}/quiz-1": "<html><body><p>No script and nothing rendered</p></body></html>"}
    controller, client = make_controller(store, pages, [])

    with pytest.raises(ExtractionError):
        controller.run(f"{HOST}/quiz-1")

    errors = store.logs_for(EMAIL, level="error")
    assert store.attempts_for(EMAIL) == []
    assert len(errors) == 1
    assert "No question content" in errors[0].message
    assert errors[0].metadata["error_type"] == "ExtractionError"
    assert client.posted == []


def test_derivation_failure_stops_before_submitting(store):
    deriver = ModelDeriver(FakeModel(""))
    controller, client = make_controller(store, {f"{HOST}/quiz-1": encoded_page(question(1))}, [],
                                         deriver=deriver)

    with pytest.raises(DerivationError):
        controller.run(f"{HOST}/quiz-1")

    assert client.posted == []
    assert store.attempts_for(EMAIL) == []
    assert store.logs_for(EMAIL)[-1].message.startswith("Quiz derivation failed")


def test_submission_failure(store):
    controller, _ = make_controller(store, {f"{HOST}/quiz-1": encoded_page(question(1))},
                                    [requests.Timeout("timed out")])

    with pytest.raises(SubmissionError):
        controller.run(f"{HOST}/quiz-1")

    assert store.attempts_for(EMAIL) == []
    assert len(store.logs_for(EMAIL, level="error")) == 1


def test_structured_model_answer_is_stored_as_object(store):
    deriver = ModelDeriver(FakeModel('{"x":1}'))
    controller, client = make_controller(store, {f"{HOST}/quiz-1": encoded_page(question(1))},
                                         [{"correct": True}], deriver=deriver)
    controller.run(f"{HOST}/quiz-1")

    assert store.attempts_for(EMAIL)[0].answer == {"x": 1}
    assert client.posted[0][1]["answer"] == {"x": 1}


def test_cycle_stops_chain(store):
    grades = [{"correct": True, "url": f"{HOST}/quiz-1"}]
    controller, _ = make_controller(store, {f"{HOST}/quiz-1": encoded_page(question(1))}, grades)

    result = controller.run(f"{HOST}/quiz-1")

    assert result.stopped_reason == 'cycle'
    assert len(store.attempts_for(EMAIL)) == 1
    assert store.logs_for(EMAIL)[-1].message.startswith("Chain stopped")


def test_max_chain_length(store):
    pages = {f"{HOST}/quiz-{n}": encoded_page(question(n)) for n in range(1, 4)}
    grades = [{"correct": True, "url": f"{HOST}/quiz-2"},
              {"correct": True, "url": f"{HOST}/quiz-3"},
              {"correct": True}]
    controller, _ = make_controller(store, pages, grades, max_chain_length=2)

    result = controller.run(f"{HOST}/quiz-1")

    assert result.stopped_reason == 'max_chain_length'
    assert [a.quiz_url for a in store.attempts_for(EMAIL)] == [f"{HOST}/quiz-1", f"{HOST}/quiz-2"]


def test_relative_next_url_is_resolved(store):
    pages = {
        f"{HOST}/quiz-1": encoded_page(question(1)),
        f"{HOST}/quiz-2": encoded_page(question(2)),
    }
    controller, _ = make_controller(store, pages, [{"correct": True, "url": "/quiz-2"}, {"correct": True}])
    controller.run(f"{HOST}/quiz-1")

    assert [a.quiz_url for a in store.attempts_for(EMAIL)] == [f"{HOST}/quiz-1", f"{HOST}/quiz-2"]


def test_log_store_failure_does_not_abort_round(config):
    class FlakyLogStore(MemoryStore):
        def insert_log(self, record):
            raise StoreError("quiz_logs unavailable")

    store = FlakyLogStore([config])
    controller, _ = make_controller(store, {f"{HOST}/quiz-1": encoded_page(question(1))}, [{"correct": True}])
    controller.run(f"{HOST}/quiz-1")

    assert len(store.attempts_for(EMAIL)) == 1


def test_attempt_store_failure_is_internal_error(store):
    def broken_insert(attempt):
        raise StoreError("quiz_attempts unavailable")

    store.insert_attempt = broken_insert
    controller, _ = make_controller(store, {f"{HOST}/quiz-1": encoded_page(question(1))}, [{"correct": True}])

    with pytest.raises(InternalError):
        controller.run(f"{HOST}/quiz-1")

    errors = store.logs_for(EMAIL, level="error")
    assert len(errors) == 1
    assert errors[0].metadata["error_type"] == "StoreError"
