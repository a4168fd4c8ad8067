"""Coarse intent classification: local regex heuristic with optional LLM delegate."""

import logging
import re
from collections.abc import Awaitable, Callable
from enum import Enum

logger = logging.getLogger(__name__)

# Shorter input is never sent to the delegate
_MIN_DELEGATE_CHARS = 3


class Intent(str, Enum):
    GREETING = "greeting"
    MARKET = "market"
    FEASIBILITY = "feasibility"
    UX = "ux"
    RISK = "risk"
    BUDGET = "budget"
    GENERAL = "general"


# Evaluated in order; first match wins.
_LOCAL_RULES: tuple[tuple[Intent, re.Pattern[str]], ...] = (
    (Intent.GREETING, re.compile(
        r"^\s*(hi|hello|hey|hiya|howdy|greetings|good (morning|afternoon|evening))\b",
        re.IGNORECASE,
    )),
    (Intent.MARKET, re.compile(
        r"\b(markets?|customers?|competitors?|competition|audience|segments?|pricing|"
        r"go[- ]to[- ]market|gtm|demand|positioning|brand\w*)\b",
        re.IGNORECASE,
    )),
    (Intent.FEASIBILITY, re.compile(
        r"\b(feasib\w*|scal\w*|build|implement\w*|architecture|technical|tech|stack|apis?|"
        r"performance|infrastructure|backend|database)\b",
        re.IGNORECASE,
    )),
    (Intent.UX, re.compile(
        r"\b(ux|ui|user experience|usability|onboarding|interface|accessibility|"
        r"wireframes?|user flows?)\b",
        re.IGNORECASE,
    )),
    (Intent.RISK, re.compile(
        r"\b(risks?|risky|security|compliance|legal|liabilit\w*|privacy|threats?|"
        r"failures?|bugs?|qa|testing)\b",
        re.IGNORECASE,
    )),
    (Intent.BUDGET, re.compile(
        r"\b(budget\w*|costs?|price|roi|spend\w*|funding|revenue|cac|ltv|margins?|runway)\b",
        re.IGNORECASE,
    )),
)

IntentDelegate = Callable[[str], Awaitable[str]]


def classify_local(text: str | None) -> Intent:
    if not text:
        return Intent.GENERAL
    for intent, pattern in _LOCAL_RULES:
        if pattern.search(text):
            return intent
    return Intent.GENERAL


class IntentClassifier:
    """Label a message with an Intent.

    When a delegate is configured it is asked first; any exception, short input
    or unknown label falls back to the local heuristic. ``classify`` never
    raises.
    """

    def __init__(self, delegate: IntentDelegate | None = None) -> None:
        self._delegate = delegate

    async def classify(self, text: str | None) -> Intent:
        stripped = (text or "").strip()
        if self._delegate is None or len(stripped) < _MIN_DELEGATE_CHARS:
            return classify_local(stripped)

        try:
            label = await self._delegate(stripped)
        except Exception as exc:
            logger.warning("Delegated intent classification failed, using heuristic: %s", exc)
            return classify_local(stripped)

        try:
            return Intent(str(label).strip().lower())
        except ValueError:
            logger.debug("Delegate returned unknown intent label %r, using heuristic", label)
            return classify_local(stripped)
