import json
import logging

from sqlalchemy.orm import Session

from marketplace.models import OfferContent

logger = logging.getLogger(__name__)

QUESTION_CONTENT_TYPES = {"poll", "quiz"}


def get_offer_content(db: Session, offer_id: str) -> OfferContent | None:
    return db.query(OfferContent).filter(OfferContent.offer_id == offer_id).first()


def _question_ids(content: dict) -> set[str]:
    ids = set()
    for page in content.get("pages", []):
        for question in page.get("questions", []):
            if "id" in question:
                ids.add(str(question["id"]))
    return ids


def is_valid(db: Session, offer_id: str, form: str | None) -> bool:
    """Check a submitted earn form against the offer's content.

    The form must be a JSON object. For poll and quiz offers every answered
    key must name one of the offer's questions.
    """
    if not form:
        return False
    try:
        answers = json.loads(form)
    except ValueError:
        logger.info("Form for offer %s is not valid JSON", offer_id)
        return False
    if not isinstance(answers, dict):
        return False

    offer_content = get_offer_content(db, offer_id)
    if offer_content is None or offer_content.content_type not in QUESTION_CONTENT_TYPES:
        return True

    known = _question_ids(json.loads(offer_content.content))
    unknown = set(answers) - known
    if unknown:
        logger.info("Form for offer %s answers unknown questions: %s", offer_id, sorted(unknown))
        return False
    return True
