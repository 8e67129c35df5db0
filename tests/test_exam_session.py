import random
import pytest
from sqlalchemy.orm import sessionmaker
from examsim.core.database import build_engine
from examsim.core.errors import InsufficientQuestions, InvalidState, NotFound, ResultsNotReady, ValidationError
from examsim.models.orm import Base, ExamSession, QuestionCounter, SessionStatus
from examsim.services import exam
from conftest import add_question


def start_all(db, seed=0, **kwargs):
    return exam.start_exam(db, 10, rng=random.Random(seed), **kwargs)


def test_start_exam_sets_limits(catalog_db):
    session = exam.start_exam(catalog_db, 5, subtopics=["Neuro"], difficulties=["medium", "hard"],
                              time_per_question=60, rng=random.Random(1))
    assert session.status == SessionStatus.IN_PROGRESS
    assert session.total_questions == 5
    assert len(session.question_ids) == 5
    assert session.time_limit == 300
    assert session.time_remaining == 300
    assert session.subtopic_filter == ["Neuro"]
    assert session.difficulty_filter == ["medium", "hard"]
    assert exam.load_answers(catalog_db, session.id) == {}


def test_start_exam_insufficient_creates_nothing(catalog_db):
    with pytest.raises(InsufficientQuestions):
        exam.start_exam(catalog_db, 4, difficulties=["very_hard"])
    assert catalog_db.query(ExamSession).count() == 0


def test_answer_last_write_wins_and_keeps_time_spent(catalog_db):
    session = start_all(catalog_db)
    qid = session.question_ids[0]
    exam.submit_answer(catalog_db, session.id, qid, "A", time_spent=30)
    exam.submit_answer(catalog_db, session.id, qid, "B")
    answers = exam.load_answers(catalog_db, session.id)
    assert answers[qid].selected == "B"
    assert answers[qid].time_spent == 30
    exam.submit_answer(catalog_db, session.id, qid, "C", time_spent=45)
    assert exam.load_answers(catalog_db, session.id)[qid].time_spent == 45
    # Entries only exist for touched questions
    assert list(exam.load_answers(catalog_db, session.id)) == [qid]


def test_clearing_a_selection(catalog_db):
    session = start_all(catalog_db)
    qid = session.question_ids[0]
    exam.submit_answer(catalog_db, session.id, qid, "D")
    exam.submit_answer(catalog_db, session.id, qid, None)
    assert exam.load_answers(catalog_db, session.id)[qid].selected is None


def test_flag_is_independent_of_selection(catalog_db):
    session = start_all(catalog_db)
    qid = session.question_ids[1]
    exam.toggle_flag(catalog_db, session.id, qid, True)
    answer = exam.load_answers(catalog_db, session.id)[qid]
    assert answer.flagged is True
    assert answer.selected is None
    exam.submit_answer(catalog_db, session.id, qid, "E")
    answer = exam.load_answers(catalog_db, session.id)[qid]
    assert (answer.selected, answer.flagged) == ("E", True)
    exam.toggle_flag(catalog_db, session.id, qid, False)
    assert exam.load_answers(catalog_db, session.id)[qid].selected == "E"


def test_rejects_foreign_question_and_bad_label(catalog_db):
    session = exam.start_exam(catalog_db, 3, subtopics=["Chest"], rng=random.Random(0))
    with pytest.raises(ValidationError):
        exam.submit_answer(catalog_db, session.id, "neuro-m0", "A")
    with pytest.raises(ValidationError):
        exam.toggle_flag(catalog_db, session.id, "neuro-m0", True)
    with pytest.raises(ValidationError):
        exam.submit_answer(catalog_db, session.id, session.question_ids[0], "F")
    with pytest.raises(ValidationError):
        exam.submit_answer(catalog_db, session.id, session.question_ids[0], "A", time_spent=-1)


def test_unknown_session_is_not_found(catalog_db):
    with pytest.raises(NotFound):
        exam.get_exam_session(catalog_db, "nope")
    with pytest.raises(NotFound):
        exam.submit_answer(catalog_db, "nope", "neuro-m0", "A")
    with pytest.raises(NotFound):
        exam.toggle_flag(catalog_db, "nope", "neuro-m0", True)
    with pytest.raises(NotFound):
        exam.update_time_remaining(catalog_db, "nope", 10)
    with pytest.raises(NotFound):
        exam.complete_exam(catalog_db, "nope")
    with pytest.raises(NotFound):
        exam.get_exam_results(catalog_db, "nope")


def test_update_time_remaining(catalog_db):
    session = start_all(catalog_db)
    exam.update_time_remaining(catalog_db, session.id, 600)
    assert exam.get_exam_session(catalog_db, session.id).time_remaining == 600
    with pytest.raises(ValidationError):
        exam.update_time_remaining(catalog_db, session.id, -5)


def test_complete_scores_and_freezes(catalog_db):
    session = start_all(catalog_db)
    ids = session.question_ids
    exam.submit_answer(catalog_db, session.id, ids[0], "A")
    exam.submit_answer(catalog_db, session.id, ids[1], "A")
    exam.submit_answer(catalog_db, session.id, ids[2], "B")
    results = exam.complete_exam(catalog_db, session.id, time_remaining=500)
    assert results.score == 2
    assert results.total_questions == 10
    assert results.percentage == 20
    assert results.time_taken == 400

    stored = exam.get_exam_session(catalog_db, session.id)
    assert stored.status == SessionStatus.COMPLETED
    assert stored.completed_at is not None
    assert (stored.score, stored.percentage) == (2, 20)

    with pytest.raises(InvalidState):
        exam.complete_exam(catalog_db, session.id)
    with pytest.raises(InvalidState):
        exam.submit_answer(catalog_db, session.id, ids[3], "A")
    with pytest.raises(InvalidState):
        exam.toggle_flag(catalog_db, session.id, ids[3], True)
    with pytest.raises(InvalidState):
        exam.update_time_remaining(catalog_db, session.id, 10)
    assert exam.get_exam_session(catalog_db, session.id).score == 2
    assert ids[3] not in exam.load_answers(catalog_db, session.id)


def test_complete_without_time_uses_zero(catalog_db):
    session = start_all(catalog_db)
    results = exam.complete_exam(catalog_db, session.id)
    assert results.time_taken == session.time_limit
    assert results.score == 0


def test_results_match_completion(catalog_db):
    session = start_all(catalog_db)
    with pytest.raises(ResultsNotReady):
        exam.get_exam_results(catalog_db, session.id)
    exam.submit_answer(catalog_db, session.id, session.question_ids[0], "A")
    exam.toggle_flag(catalog_db, session.id, session.question_ids[4], True)
    at_completion = exam.complete_exam(catalog_db, session.id, time_remaining=120)
    assert exam.get_exam_results(catalog_db, session.id) == at_completion
    assert exam.get_exam_results(catalog_db, session.id) == at_completion


def test_abandoned_session_is_terminal(catalog_db):
    session = start_all(catalog_db)
    session.status = SessionStatus.ABANDONED
    catalog_db.commit()
    with pytest.raises(InvalidState):
        exam.submit_answer(catalog_db, session.id, session.question_ids[0], "A")
    with pytest.raises(InvalidState):
        exam.complete_exam(catalog_db, session.id)
    with pytest.raises(ResultsNotReady) as exc:
        exam.get_exam_results(catalog_db, session.id)
    assert "abandoned" in exc.value.message
    assert "until it is completed" not in exc.value.message


def test_completion_bumps_counters(catalog_db):
    session = start_all(catalog_db)
    exam.submit_answer(catalog_db, session.id, "neuro-m0", "A")
    exam.submit_answer(catalog_db, session.id, "neuro-m1", "C")
    exam.toggle_flag(catalog_db, session.id, "neuro-m2", True)
    exam.complete_exam(catalog_db, session.id)
    counters = {c.question_id: (c.total_attempts, c.correct_count)
                for c in catalog_db.query(QuestionCounter).all()}
    assert counters == {"neuro-m0": (1, 1), "neuro-m1": (1, 0)}


@pytest.fixture
def file_factory(tmp_path):
    engine = build_engine(f"sqlite+pysqlite:///{tmp_path / 'exam.db'}")
    Base.metadata.create_all(engine)
    yield sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)
    engine.dispose()


def test_concurrent_answers_to_different_questions_both_persist(file_factory):
    setup = file_factory()
    add_question(setup, "q1")
    add_question(setup, "q2")
    setup.commit()
    session_id = exam.start_exam(setup, 2, rng=random.Random(0)).id
    setup.close()

    s1, s2 = file_factory(), file_factory()
    # Both writers load the session before either one writes
    exam.get_exam_session(s1, session_id)
    exam.get_exam_session(s2, session_id)
    exam.submit_answer(s1, session_id, "q1", "A")
    exam.submit_answer(s2, session_id, "q2", "B")
    s1.close()
    s2.close()

    check = file_factory()
    answers = exam.load_answers(check, session_id)
    assert {qid: a.selected for qid, a in answers.items()} == {"q1": "A", "q2": "B"}
    check.close()


def test_answer_racing_completion_is_rejected(file_factory):
    setup = file_factory()
    add_question(setup, "q1")
    add_question(setup, "q2")
    setup.commit()
    session_id = exam.start_exam(setup, 2, rng=random.Random(0)).id
    setup.close()

    s1, s2 = file_factory(), file_factory()
    # s2 still holds an in-progress copy when s1 completes
    assert exam.get_exam_session(s2, session_id).status == SessionStatus.IN_PROGRESS
    exam.submit_answer(s1, session_id, "q1", "A")
    results = exam.complete_exam(s1, session_id)
    with pytest.raises(InvalidState):
        exam.submit_answer(s2, session_id, "q2", "A")
    s1.close()
    s2.close()

    check = file_factory()
    assert exam.get_exam_results(check, session_id) == results
    assert "q2" not in exam.load_answers(check, session_id)
    check.close()
