"""Load settings.yaml into typed dataclasses. Validates API keys at startup."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from deep_research.models import RoleModels

logger = logging.getLogger(__name__)

_SETTINGS_PATH = Path(__file__).parent / "settings.yaml"

CUSTOM_MODE = "Custom"
BASE_MODE = "Balanced"
_ROLES = ("planner", "searcher", "synthesizer", "clarification")


@dataclass
class ProviderConfig:
    name: str
    sdk: str
    api_key_env: str
    timeout_sec: int
    supports_citations: bool = False
    modes: dict[str, RoleModels] = field(default_factory=dict)
    base_url: str | None = None


@dataclass
class PromptsConfig:
    clarification: str
    planner: str
    search: str
    synthesis: str


@dataclass
class DefaultsConfig:
    provider: str
    mode: str
    output_dir: Path
    min_search_cycles: int = 7
    max_search_cycles: int | None = None   # None: the 7-17 target is advisory only
    pacing_delay_sec: float = 0.4
    search_concurrency: int = 4
    search_retries: int = 0


@dataclass
class InboxConfig:
    dir: Path
    archive_dir: Path


@dataclass
class AppConfig:
    defaults: DefaultsConfig
    providers: dict[str, ProviderConfig]
    prompts: PromptsConfig
    inbox: InboxConfig | None = None
    available_providers: set[str] = field(default_factory=set)


def _parse_role_models(raw: dict) -> RoleModels:
    return RoleModels(**{role: str(raw[role]) for role in _ROLES})


def load_config(settings_path: Path = _SETTINGS_PATH) -> AppConfig:
    """Load and validate configuration from settings.yaml.

    Raises FileNotFoundError if settings file missing.
    Logs warnings for missing API keys but does not raise; callers check
    available_providers.
    """
    if not settings_path.exists():
        raise FileNotFoundError(f"Settings file not found: {settings_path}")

    with settings_path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)

    defaults_raw = raw["defaults"]
    max_cycles = defaults_raw.get("max_search_cycles")
    defaults = DefaultsConfig(
        provider=str(defaults_raw["provider"]),
        mode=str(defaults_raw["mode"]),
        output_dir=Path(defaults_raw["output_dir"]),
        min_search_cycles=int(defaults_raw.get("min_search_cycles", 7)),
        max_search_cycles=int(max_cycles) if max_cycles is not None else None,
        pacing_delay_sec=float(defaults_raw.get("pacing_delay_sec", 0.4)),
        search_concurrency=int(defaults_raw.get("search_concurrency", 4)),
        search_retries=int(defaults_raw.get("search_retries", 0)),
    )

    prompts_raw = raw["prompts"]
    prompts = PromptsConfig(
        clarification=prompts_raw["clarification"],
        planner=prompts_raw["planner"],
        search=prompts_raw["search"],
        synthesis=prompts_raw["synthesis"],
    )

    inbox: InboxConfig | None = None
    if "inbox" in raw:
        inbox = InboxConfig(
            dir=Path(raw["inbox"]["dir"]),
            archive_dir=Path(raw["inbox"]["archive_dir"]),
        )

    providers: dict[str, ProviderConfig] = {}
    available_providers: set[str] = set()

    for provider_name, provider_raw in raw["providers"].items():
        providers[provider_name] = ProviderConfig(
            name=provider_name,
            sdk=provider_raw["sdk"],
            api_key_env=provider_raw["api_key_env"],
            timeout_sec=int(provider_raw["timeout_sec"]),
            supports_citations=bool(provider_raw.get("supports_citations", False)),
            modes={
                mode_name: _parse_role_models(mode_raw)
                for mode_name, mode_raw in provider_raw.get("modes", {}).items()
            },
            base_url=provider_raw.get("base_url"),
        )

        api_key = os.environ.get(provider_raw["api_key_env"], "").strip()
        if api_key:
            available_providers.add(provider_name)
            logger.info("Provider available: %s", provider_name)
        else:
            logger.info(
                "Provider skipped (no API key): %s (set %s in .env)",
                provider_name,
                provider_raw["api_key_env"],
            )

    return AppConfig(
        defaults=defaults,
        providers=providers,
        prompts=prompts,
        inbox=inbox,
        available_providers=available_providers,
    )


def resolve_role_models(
    config: AppConfig,
    provider_name: str,
    mode: str,
    overrides: dict[str, str] | None = None,
) -> RoleModels:
    """Resolve a mode name to concrete model identifiers for each role.

    Overrides only apply in Custom mode; empty override values fall back to
    the Custom table, or to the Balanced table when Custom is not configured.

    Raises:
        ValueError: If the provider or mode is not configured.
    """
    provider_cfg = config.providers.get(provider_name)
    if provider_cfg is None:
        raise ValueError(f"Unknown provider: {provider_name}")

    if mode == CUSTOM_MODE:
        base = provider_cfg.modes.get(CUSTOM_MODE) or provider_cfg.modes.get(BASE_MODE)
        if base is None:
            raise ValueError(f"Provider {provider_name} has no '{BASE_MODE}' mode to customise")
        chosen = {role: getattr(base, role) for role in _ROLES}
        for role, model in (overrides or {}).items():
            if role not in _ROLES:
                raise ValueError(f"Unknown role override: {role}")
            if model and model.strip():
                chosen[role] = model.strip()
        return RoleModels(**chosen)

    if mode not in provider_cfg.modes:
        known = ", ".join(sorted(provider_cfg.modes)) or "none"
        raise ValueError(f"Unknown mode '{mode}' for provider {provider_name} (known: {known})")
    return provider_cfg.modes[mode]
