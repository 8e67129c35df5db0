import random
import pytest
from examsim.core.errors import InsufficientQuestions, ValidationError
from examsim.models.orm import Question
from examsim.services import catalog, selector


class ZeroRng:
    def __init__(self):
        self.calls = []

    def randint(self, a, b):
        self.calls.append((a, b))
        return 0


def test_insufficient_very_hard_questions(catalog_db):
    with pytest.raises(InsufficientQuestions) as exc:
        selector.select_questions(catalog_db, 5, difficulties=["very_hard"])
    assert exc.value.found == 3
    assert exc.value.needed == 5
    assert "Found 3, need 5" in str(exc.value)


def test_insufficient_is_checked_before_fetching(catalog_db, monkeypatch):
    def boom(*args, **kwargs):
        raise AssertionError("ids fetched before the count check")
    monkeypatch.setattr(catalog, "find_question_ids", boom)
    with pytest.raises(InsufficientQuestions):
        selector.select_questions(catalog_db, 4, subtopics=["Chest"])


def test_unknown_filter_yields_insufficient(catalog_db):
    with pytest.raises(InsufficientQuestions) as exc:
        selector.select_questions(catalog_db, 1, subtopics=["Cardiac"])
    assert exc.value.found == 0


def test_selection_is_distinct_and_filtered(catalog_db):
    ids = selector.select_questions(catalog_db, 5, subtopics=["Neuro"],
                                    difficulties=["medium", "hard"], rng=random.Random(7))
    assert len(ids) == 5
    assert len(set(ids)) == 5
    for qid in ids:
        q = catalog_db.get(Question, qid)
        assert q.subtopic == "Neuro"
        assert q.difficulty.value in ("medium", "hard")


def test_empty_filters_mean_no_constraint(catalog_db):
    assert catalog.count_questions(catalog_db, [], []) == 10
    ids = selector.select_questions(catalog_db, 10, subtopics=[], difficulties=[], rng=random.Random(1))
    assert sorted(ids) == sorted(catalog.find_question_ids(catalog_db))


def test_seeded_selection_is_reproducible(catalog_db):
    a = selector.select_questions(catalog_db, 6, rng=random.Random(42))
    b = selector.select_questions(catalog_db, 6, rng=random.Random(42))
    assert a == b


def test_fisher_yates_walks_every_index():
    rng = ZeroRng()
    items = [0, 1, 2, 3, 4]
    selector.fisher_yates(items, rng)
    assert rng.calls == [(0, 4), (0, 3), (0, 2), (0, 1)]
    # Every element left its starting slot
    assert items == [1, 2, 3, 4, 0]


def test_fisher_yates_is_a_permutation():
    items = list(range(50))
    selector.fisher_yates(items, random.Random(3))
    assert sorted(items) == list(range(50))


def test_count_must_be_positive(catalog_db):
    with pytest.raises(ValidationError):
        selector.select_questions(catalog_db, 0)


def test_unknown_difficulty_is_rejected(catalog_db):
    with pytest.raises(ValidationError):
        selector.select_questions(catalog_db, 1, difficulties=["trivial"])


def test_get_questions_preserves_order_and_drops_unknown(catalog_db):
    qs = catalog.get_questions(catalog_db, ["chest-vh2", "missing", "neuro-m0", "chest-vh0"])
    assert [q.id for q in qs] == ["chest-vh2", "neuro-m0", "chest-vh0"]


def test_list_subtopics(catalog_db):
    subtopics = catalog.list_subtopics(catalog_db)
    assert [(s.name, s.question_count) for s in subtopics] == [("Chest", 3), ("Neuro", 7)]
