import logging
import math
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from assistant import llm

logger = logging.getLogger(__name__)


class IntentParseError(Exception):
    pass


@dataclass
class IntentAction:
    id: str
    verb: str        # "add-item" | "update" | "remove-item"
    entity: str      # "asset" | "liability" | "income" | "expense" | "property-planner"
    target: str
    amount: Optional[float]
    currency: Optional[str]
    raw: str
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class IntentResult:
    actions: List[IntentAction]
    raw: str


def normalize_amount(value) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if math.isnan(value) or math.isinf(value):
        return None
    return float(abs(value))


def normalize_currency(currency) -> Optional[str]:
    if not currency or not isinstance(currency, str):
        return None
    code = currency.strip().upper()
    return code if len(code) == 3 else None


def normalize_action(candidate: Dict[str, Any], fallback_raw: str) -> IntentAction:
    raw = (candidate.get("raw") or "").strip()
    metadata = {k: v for k, v in (candidate.get("metadata") or {}).items() if v is not None}
    return IntentAction(
        id=uuid.uuid4().hex,
        verb=candidate["verb"],
        entity=candidate["entity"],
        target=(candidate.get("target") or "").strip(),
        amount=normalize_amount(candidate.get("amount")),
        currency=normalize_currency(candidate.get("currency")),
        raw=raw or fallback_raw,
        metadata=metadata,
    )


def parse_intent(message: Optional[str], financial_context: Optional[str] = None) -> IntentResult:
    """Turn a chat message into normalised intent actions awaiting confirmation."""
    trimmed = (message or "").strip()
    if not trimmed:
        raise IntentParseError("Message is empty")

    try:
        candidates = llm.infer_intent_actions(trimmed, financial_context)
        actions = [normalize_action(c, trimmed) for c in candidates]
    except Exception as e:
        logger.warning("Intent extraction failed: %s", e)
        raise IntentParseError("Unable to interpret your request. Please try rephrasing.") from e

    logger.info("Parsed %d intent action(s)", len(actions))
    return IntentResult(actions=actions, raw=message)
