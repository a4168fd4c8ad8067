"""Responder resolution: an ordered chain of resolver coroutines.

Default chain: tag override -> greeting -> delegated (LLM) routing ->
heuristic keyword scoring -> static intent map. Each resolver returns a
ResponderSet or None; the first non-None result wins.
"""

import logging
import re
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from types import MappingProxyType

from src.intent import Intent
from src.models import Persona, ResolveMode, ResponderSet
from src.tags import resolve_tagged

logger = logging.getLogger(__name__)

IDENTITY_BONUS = 3.0
CAPABILITY_BONUS = 1.0


@dataclass(frozen=True)
class CategoryRule:
    name: str
    aliases: frozenset[str]            # id/name words that give a persona this identity
    capabilities: frozenset[str]       # capability tags that count toward this category
    keywords: tuple[tuple[str, float], ...]


RULES: tuple[CategoryRule, ...] = (
    CategoryRule(
        name="developer",
        aliases=frozenset({"developer", "dev", "engineer", "engineering", "cto", "tech"}),
        capabilities=frozenset({"code", "architecture", "apis", "testing", "infrastructure", "scalability"}),
        keywords=(
            ("code", 2.0), ("api", 2.0), ("backend", 1.5), ("frontend", 1.5), ("database", 1.5),
            ("testing", 1.5), ("bug", 1.5), ("deploy", 1.5), ("architecture", 2.0),
            ("scale", 1.5), ("scalability", 2.0), ("performance", 1.0), ("stack", 1.0),
            ("integration", 1.0), ("latency", 1.0), ("security", 1.0),
        ),
    ),
    CategoryRule(
        name="pm",
        aliases=frozenset({"pm", "product", "chair"}),
        capabilities=frozenset({"roadmap", "prioritization", "planning", "coordination", "strategy"}),
        keywords=(
            ("roadmap", 2.0), ("scope", 2.0), ("milestone", 2.0), ("milestones", 2.0),
            ("priority", 1.5), ("prioritize", 1.5), ("timeline", 1.5), ("deadline", 1.5),
            ("mvp", 1.5), ("requirements", 1.5), ("sprint", 1.0), ("stakeholder", 1.0),
            ("launch", 1.0), ("plan", 1.0),
        ),
    ),
    CategoryRule(
        name="marketing",
        aliases=frozenset({"marketing", "marketer", "growth", "cmo", "brand"}),
        capabilities=frozenset({"market research", "branding", "growth", "positioning", "pricing"}),
        keywords=(
            ("cac", 2.5), ("ltv", 2.5), ("roi", 2.0), ("budget", 1.5), ("pricing", 2.0),
            ("acquisition", 1.5), ("retention", 1.0), ("campaign", 1.5), ("audience", 1.5),
            ("competitor", 1.5), ("competitors", 1.5), ("brand", 1.5), ("market", 1.5),
            ("go-to-market", 2.0), ("funnel", 1.5), ("conversion", 1.0),
        ),
    ),
    CategoryRule(
        name="design",
        aliases=frozenset({"designer", "design", "ux", "ui"}),
        capabilities=frozenset({"user research", "prototyping", "accessibility", "visual design", "usability"}),
        keywords=(
            ("ux", 2.0), ("ui", 2.0), ("design", 1.5), ("usability", 2.0), ("onboarding", 1.5),
            ("wireframe", 2.0), ("prototype", 1.5), ("accessibility", 2.0), ("layout", 1.0),
            ("user flow", 1.5), ("interface", 1.0), ("mockup", 1.5),
        ),
    ),
    CategoryRule(
        name="legal",
        aliases=frozenset({"legal", "lawyer", "counsel", "compliance", "attorney"}),
        capabilities=frozenset({"compliance", "contracts", "privacy", "regulation"}),
        keywords=(
            ("gdpr", 2.5), ("contract", 2.0), ("liability", 2.0), ("compliance", 2.0),
            ("privacy", 1.5), ("regulation", 2.0), ("license", 1.5), ("terms", 1.0),
            ("trademark", 2.0), ("lawsuit", 2.0),
        ),
    ),
    CategoryRule(
        name="finance",
        aliases=frozenset({"finance", "financial", "cfo", "accountant"}),
        capabilities=frozenset({"forecasting", "accounting", "fundraising", "unit economics"}),
        keywords=(
            ("revenue", 2.0), ("margin", 2.0), ("cash flow", 2.0), ("burn", 1.5),
            ("runway", 2.0), ("funding", 1.5), ("valuation", 2.0), ("forecast", 1.5),
            ("profit", 1.5), ("cost", 1.0), ("investors", 1.5),
        ),
    ),
)

# Static last-resort routing; None targets resolve to the configured chair.
INTENT_ROUTES: MappingProxyType = MappingProxyType({
    Intent.GREETING: None,
    Intent.BUDGET: None,
    Intent.MARKET: "marketing",
    Intent.GENERAL: "marketing",
    Intent.FEASIBILITY: "developer",
    Intent.UX: "ux",
    Intent.RISK: "qa",
})


def _keyword_pattern(keyword: str) -> re.Pattern[str]:
    return re.compile(rf"(?<![\w-]){re.escape(keyword)}(?![\w-])", re.IGNORECASE)


_KEYWORD_PATTERNS: MappingProxyType = MappingProxyType({
    keyword: _keyword_pattern(keyword)
    for rule in RULES
    for keyword, _ in rule.keywords
})


def keyword_hits(message: str, rules: Sequence[CategoryRule] = RULES) -> dict[str, float]:
    """Return summed keyword weights per category for ``message``."""
    return {
        rule.name: sum(w for kw, w in rule.keywords if _KEYWORD_PATTERNS[kw].search(message))
        for rule in rules
    }


def persona_identity(persona: Persona, rules: Sequence[CategoryRule] = RULES) -> str | None:
    """Return the category a persona belongs to, if any. The id takes precedence over the name."""
    for source in (persona.id, persona.name):
        words = set(re.findall(r"[a-z0-9]+", source.lower()))
        for rule in rules:
            if words & rule.aliases:
                return rule.name
    return None


def score_persona(
    persona: Persona,
    hits: dict[str, float],
    rules: Sequence[CategoryRule] = RULES,
) -> float:
    identity = persona_identity(persona, rules)
    capabilities = {c.lower() for c in persona.capabilities}
    score = 0.0
    for rule in rules:
        weight = hits.get(rule.name, 0.0)
        if not weight:
            continue
        bonus = IDENTITY_BONUS if identity == rule.name else 0.0
        bonus += CAPABILITY_BONUS * len(capabilities & rule.capabilities)
        score += weight * bonus
    return score


def score_personas(
    personas: Sequence[Persona],
    message: str,
    rules: Sequence[CategoryRule] = RULES,
) -> list[tuple[Persona, float]]:
    hits = keyword_hits(message, rules)
    return [(p, score_persona(p, hits, rules)) for p in personas]


def pick_top_scorer(scored: Sequence[tuple[Persona, float]]) -> Persona | None:
    """Highest score wins; ties and all-zero keep the first persona in list order."""
    best: tuple[Persona, float] | None = None
    for persona, score in scored:
        if best is None or score > best[1]:
            best = (persona, score)
    return best[0] if best else None


@dataclass(frozen=True)
class RoutingRequest:
    personas: tuple[Persona, ...]
    message: str
    intent: Intent


Resolver = Callable[[RoutingRequest], Awaitable[ResponderSet | None]]
# (roster, message) -> persona id chosen by an external decision capability
PersonaDecider = Callable[[list[dict], str], Awaitable[str | None]]


def _routed(persona: Persona, strategy: str) -> ResponderSet:
    return ResponderSet(responders=(persona,), mode=ResolveMode.ROUTED, strategy=strategy)


def _route_intent(request: RoutingRequest, chair: str, intent: Intent) -> Persona:
    target = INTENT_ROUTES.get(intent, "marketing") or chair
    by_id = {p.id: p for p in request.personas}
    return by_id.get(target, request.personas[0])


async def tag_override(request: RoutingRequest) -> ResponderSet | None:
    tagged = resolve_tagged(list(request.personas), request.message)
    if not tagged:
        return None
    return ResponderSet(responders=tuple(tagged), mode=ResolveMode.TAGGED, strategy="tags")


def greeting_resolver(chair: str) -> Resolver:
    async def resolve(request: RoutingRequest) -> ResponderSet | None:
        if request.intent != Intent.GREETING:
            return None
        return _routed(_route_intent(request, chair, Intent.GREETING), "greeting")
    return resolve


def delegated_resolver(decider: PersonaDecider) -> Resolver:
    async def resolve(request: RoutingRequest) -> ResponderSet | None:
        roster = [
            {
                "id": p.id,
                "name": p.name,
                "description": p.description,
                "capabilities": sorted(p.capabilities),
            }
            for p in request.personas
        ]
        try:
            persona_id = await decider(roster, request.message)
        except Exception as exc:
            logger.warning("Delegated routing failed, falling through: %s", exc)
            return None
        match = next((p for p in request.personas if p.id == persona_id), None)
        if match is None:
            logger.debug("Delegated routing returned unknown persona %r", persona_id)
            return None
        return _routed(match, "delegated")
    return resolve


async def heuristic_resolver(request: RoutingRequest) -> ResponderSet | None:
    winner = pick_top_scorer(score_personas(request.personas, request.message))
    return _routed(winner, "heuristic") if winner else None


def intent_map_resolver(chair: str) -> Resolver:
    async def resolve(request: RoutingRequest) -> ResponderSet | None:
        return _routed(_route_intent(request, chair, request.intent), "intent_map")
    return resolve


class PersonaRouter:
    """Try resolvers in order until one yields a responder set."""

    def __init__(self, resolvers: Sequence[Resolver]) -> None:
        self._resolvers = list(resolvers)

    async def resolve(
        self,
        personas: Sequence[Persona],
        message: str,
        intent: Intent,
    ) -> ResponderSet:
        if not personas:
            return ResponderSet(responders=(), mode=ResolveMode.ROUTED, strategy="none")

        request = RoutingRequest(personas=tuple(personas), message=message or "", intent=intent)
        for resolver in self._resolvers:
            result = await resolver(request)
            if result is not None and result.responders:
                logger.debug(
                    "Resolved responders %s via %s",
                    [p.id for p in result.responders],
                    result.strategy,
                )
                return result

        return _routed(request.personas[0], "first_active")


def build_router(
    chair: str,
    decider: PersonaDecider | None = None,
    strategies: Sequence[str] = ("tags", "greeting", "delegated", "heuristic", "intent_map"),
) -> PersonaRouter:
    """Build a PersonaRouter from strategy names.

    ``delegated`` is skipped when no decider is supplied.
    """
    factories: dict[str, Callable[[], Resolver | None]] = {
        "tags": lambda: tag_override,
        "greeting": lambda: greeting_resolver(chair),
        "delegated": lambda: delegated_resolver(decider) if decider else None,
        "heuristic": lambda: heuristic_resolver,
        "intent_map": lambda: intent_map_resolver(chair),
    }
    resolvers: list[Resolver] = []
    for name in strategies:
        if name not in factories:
            raise ValueError(f"Unknown routing strategy: {name}")
        resolver = factories[name]()
        if resolver is not None:
            resolvers.append(resolver)
    return PersonaRouter(resolvers)
