import logging
import random
from typing import List, MutableSequence, Optional, Sequence
from sqlalchemy.orm import Session
from examsim.core.errors import InsufficientQuestions, ValidationError
from examsim.services import catalog

logger = logging.getLogger(__name__)

_system_rng = random.SystemRandom()

def fisher_yates(items: MutableSequence, rng: random.Random) -> MutableSequence:
    """Full in-place shuffle: every position i swaps with a uniform j in [0, i]."""
    for i in range(len(items) - 1, 0, -1):
        j = rng.randint(0, i)
        items[i], items[j] = items[j], items[i]
    return items

def select_questions(db: Session, count: int, subtopics: Optional[Sequence[str]] = None,
                     difficulties: Optional[Sequence[str]] = None,
                     rng: Optional[random.Random] = None) -> List[str]:
    """Pick `count` distinct question ids matching the filters, in display order."""
    if count < 1:
        raise ValidationError("Question count must be at least 1")
    total = catalog.count_questions(db, subtopics, difficulties)
    if total < count:
        logger.warning(f"Selection rejected: found {total}, need {count} "
                       f"(subtopics={subtopics}, difficulties={difficulties})")
        raise InsufficientQuestions(found=total, needed=count)
    ids = catalog.find_question_ids(db, subtopics, difficulties)
    if len(ids) < count:
        raise InsufficientQuestions(found=len(ids), needed=count)
    fisher_yates(ids, rng or _system_rng)
    return ids[:count]
