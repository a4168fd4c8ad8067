"""Load settings.yaml and persona files into typed dataclasses. Checks API keys at startup."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import frontmatter
import yaml

from src.models import Persona

logger = logging.getLogger(__name__)

_SETTINGS_PATH = Path(__file__).parent / "settings.yaml"
_PERSONAS_DIR = Path(__file__).parent / "personas"

_DEFAULT_STRATEGIES = ["tags", "greeting", "delegated", "heuristic", "intent_map"]


@dataclass
class ModelConfig:
    name: str
    sdk: str
    model: str
    api_key_env: str
    timeout_sec: int
    max_tokens: int
    temperature: float | None = None
    base_url: str | None = None


@dataclass
class PromptsConfig:
    agent_protocol: str
    summary: str
    routing: str
    intent: str


@dataclass
class DefaultsConfig:
    provider: str
    chair: str
    max_rounds: int
    active_personas: list[str]
    output_dir: Path
    follow_up: str | None = None
    history_limit: int = 20


@dataclass
class PacingConfig:
    min_sec: float = 1.5
    max_sec: float = 3.0


@dataclass
class RoutingConfig:
    strategies: list[str] = field(default_factory=lambda: list(_DEFAULT_STRATEGIES))
    delegated_intent: bool = True


@dataclass
class PricingConfig:
    prompt_per_million: float = 2.50
    completion_per_million: float = 10.00


@dataclass
class AppConfig:
    defaults: DefaultsConfig
    models: dict[str, ModelConfig]
    prompts: PromptsConfig
    personas: dict[str, Persona] = field(default_factory=dict)
    pacing: PacingConfig = field(default_factory=PacingConfig)
    routing: RoutingConfig = field(default_factory=RoutingConfig)
    pricing: PricingConfig = field(default_factory=PricingConfig)
    available_providers: set[str] = field(default_factory=set)


def parse_persona_file(file_path: Path) -> Persona:
    """Parse a persona markdown file: YAML frontmatter plus a system-prompt body.

    The persona id defaults to the file stem.
    """
    post = frontmatter.load(str(file_path))
    meta = dict(post.metadata)
    persona_id = str(meta.get("id") or file_path.stem)
    return Persona(
        id=persona_id,
        name=str(meta.get("name") or persona_id),
        description=str(meta.get("description") or ""),
        system_prompt=post.content.strip(),
        capabilities=frozenset(str(c) for c in meta.get("capabilities") or []),
        is_active=bool(meta.get("is_active", True)),
        color=meta.get("color"),
        icon=meta.get("icon"),
    )


def load_personas(personas_dir: Path = _PERSONAS_DIR) -> dict[str, Persona]:
    """Load every ``*.md`` persona in ``personas_dir``, keyed by persona id."""
    if not personas_dir.is_dir():
        raise FileNotFoundError(f"Personas directory not found: {personas_dir}")

    personas: dict[str, Persona] = {}
    for path in sorted(personas_dir.glob("*.md")):
        persona = parse_persona_file(path)
        if persona.id in personas:
            logger.warning("Duplicate persona id %s in %s, skipping", persona.id, path.name)
            continue
        personas[persona.id] = persona
    logger.debug("Loaded %d personas from %s", len(personas), personas_dir)
    return personas


def load_config(
    settings_path: Path = _SETTINGS_PATH,
    personas_dir: Path | None = _PERSONAS_DIR,
) -> AppConfig:
    """Load and validate configuration from settings.yaml.

    Raises FileNotFoundError if settings file missing.
    Logs warnings for missing API keys but does not raise — callers check
    available_providers count. Pass ``personas_dir=None`` to skip persona files.
    """
    if not settings_path.exists():
        raise FileNotFoundError(f"Settings file not found: {settings_path}")

    with settings_path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)

    defaults_raw = raw["defaults"]
    defaults = DefaultsConfig(
        provider=str(defaults_raw["provider"]),
        chair=str(defaults_raw["chair"]),
        max_rounds=int(defaults_raw["max_rounds"]),
        active_personas=list(defaults_raw["active_personas"]),
        output_dir=Path(defaults_raw["output_dir"]),
        follow_up=defaults_raw.get("follow_up"),
        history_limit=int(defaults_raw.get("history_limit", 20)),
    )

    pacing_raw = raw.get("pacing") or {}
    pacing = PacingConfig(
        min_sec=float(pacing_raw.get("min_sec", 1.5)),
        max_sec=float(pacing_raw.get("max_sec", 3.0)),
    )
    if pacing.min_sec < 0 or pacing.max_sec < pacing.min_sec:
        raise ValueError(f"Invalid pacing window: {pacing.min_sec}-{pacing.max_sec}s")

    routing_raw = raw.get("routing") or {}
    routing = RoutingConfig(
        strategies=list(routing_raw.get("strategies") or _DEFAULT_STRATEGIES),
        delegated_intent=bool(routing_raw.get("delegated_intent", True)),
    )

    pricing_raw = raw.get("pricing") or {}
    pricing = PricingConfig(
        prompt_per_million=float(pricing_raw.get("prompt_per_million", 2.50)),
        completion_per_million=float(pricing_raw.get("completion_per_million", 10.00)),
    )

    prompts_raw = raw["prompts"]
    prompts = PromptsConfig(
        agent_protocol=prompts_raw["agent_protocol"],
        summary=prompts_raw["summary"],
        routing=prompts_raw["routing"],
        intent=prompts_raw["intent"],
    )

    models: dict[str, ModelConfig] = {}
    available_providers: set[str] = set()

    for provider_name, model_raw in raw["models"].items():
        temperature = model_raw.get("temperature")
        model_cfg = ModelConfig(
            name=provider_name,
            sdk=model_raw["sdk"],
            model=model_raw["model"],
            api_key_env=model_raw["api_key_env"],
            timeout_sec=int(model_raw["timeout_sec"]),
            max_tokens=int(model_raw["max_tokens"]),
            temperature=float(temperature) if temperature is not None else None,
            base_url=model_raw.get("base_url"),
        )
        models[provider_name] = model_cfg

        api_key = os.environ.get(model_raw["api_key_env"], "").strip()
        if api_key:
            available_providers.add(provider_name)
            logger.info("Provider available: %s", provider_name)
        else:
            logger.info(
                "Provider skipped (no API key): %s — set %s in .env",
                provider_name,
                model_raw["api_key_env"],
            )

    personas = load_personas(personas_dir) if personas_dir is not None else {}

    return AppConfig(
        defaults=defaults,
        models=models,
        prompts=prompts,
        personas=personas,
        pacing=pacing,
        routing=routing,
        pricing=pricing,
        available_providers=available_providers,
    )
