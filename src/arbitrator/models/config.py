"""
Pydantic configuration models for arbitrator.

These models define the screening thresholds, domain sets, search and
batching parameters, request pacing and the work directory layout.
Configuration can be loaded from YAML files and overridden by CLI arguments.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Self

from pydantic import BaseModel, Field, field_validator, model_validator

from arbitrator.core.constants import (
    CURATED_DOMAIN_PREFIX,
    DEFAULT_BATCH_SIZE,
    DEFAULT_HIT_LIST_SIZE,
    DEFAULT_MAX_POLL_ATTEMPTS,
    DEFAULT_WORK_DIR,
    MIN_MS_BETWEEN_EUTILS_REQUESTS,
    MIN_MS_BETWEEN_EUTILS_REQUESTS_APIKEY,
    MIN_MS_BETWEEN_POLLS,
    MIN_MS_BETWEEN_POLLS_APIKEY,
    MIN_MS_BETWEEN_SEARCH_REQUESTS,
    MIN_MS_BETWEEN_SEARCH_REQUESTS_APIKEY,
)
from arbitrator.core.exceptions import InvalidDomainError
from arbitrator.models.jobs import ServiceClass


class RateLimitPolicy(BaseModel):
    """
    Minimum intervals between outbound requests, in milliseconds.

    Keyed by service class and whether an NCBI API key is in use. Only
    E-utilities honour API keys; the BLAST URL API and CD-Search do not,
    so their keyed intervals default to the unkeyed ones.
    """

    primary_search_ms: int = Field(default=MIN_MS_BETWEEN_SEARCH_REQUESTS, ge=0)
    primary_search_apikey_ms: int = Field(default=MIN_MS_BETWEEN_SEARCH_REQUESTS_APIKEY, ge=0)
    confirmation_poll_ms: int = Field(default=MIN_MS_BETWEEN_POLLS, ge=0)
    confirmation_poll_apikey_ms: int = Field(default=MIN_MS_BETWEEN_POLLS_APIKEY, ge=0)
    auxiliary_api_ms: int = Field(default=MIN_MS_BETWEEN_EUTILS_REQUESTS, ge=0)
    auxiliary_api_apikey_ms: int = Field(default=MIN_MS_BETWEEN_EUTILS_REQUESTS_APIKEY, ge=0)

    model_config = {"frozen": True}

    def interval_ms(self, service_class: ServiceClass, has_key: bool) -> int:
        """Minimum milliseconds between two requests of a service class."""
        table = {
            ServiceClass.PRIMARY_SEARCH: (self.primary_search_ms, self.primary_search_apikey_ms),
            ServiceClass.CONFIRMATION_POLL: (
                self.confirmation_poll_ms,
                self.confirmation_poll_apikey_ms,
            ),
            ServiceClass.AUXILIARY_API: (self.auxiliary_api_ms, self.auxiliary_api_apikey_ms),
        }
        no_key, with_key = table[service_class]
        return with_key if has_key else no_key

    def interval_seconds(self, service_class: ServiceClass, has_key: bool) -> float:
        return self.interval_ms(service_class, has_key) / 1000.0


class ArbitratorConfig(BaseModel):
    """
    Configuration for a screening run.

    Thresholds:
        - quality_threshold (q): the first-stage BLASTP expect cutoff is 10^-q,
          so q=2 searches with EXPECT=0.01
        - superiority_threshold (s): a group whose best domain hit is to a
          positive domain is called positive when
          log10(e_other) - log10(e_target) >= s

    Domains:
        - positive_domains: CDD accessions marking the target family
        - uninformative_domains: CDD accessions whose hits are ignored
          before scoring (e.g. domains shared with paralog families)
    """

    quality_threshold: float = Field(
        ge=0,
        description="Negative log10 of the first-stage expect value cutoff",
    )
    superiority_threshold: float = Field(
        description="Minimum log10 margin of the positive domain hit over competitors",
    )
    positive_domains: frozenset[str] = Field(
        min_length=1,
        description="CDD accessions (cdNNNNN) of the positive domain(s)",
    )
    uninformative_domains: frozenset[str] = Field(
        default_factory=frozenset,
        description="CDD accessions whose hits are discarded before scoring",
    )

    batch_size: int = Field(
        default=DEFAULT_BATCH_SIZE,
        ge=1,
        le=4000,
        description="Synonymous groups per CD-Search request (URL length bound)",
    )
    hit_list_size: int = Field(
        default=DEFAULT_HIT_LIST_SIZE,
        ge=1,
        description="Maximum number of first-stage hits per seed",
    )
    max_poll_attempts: int = Field(
        default=DEFAULT_MAX_POLL_ATTEMPTS,
        ge=1,
        description="Polls before a pending job is reported as stuck",
    )
    max_workers: int | None = Field(
        default=None,
        ge=1,
        description="Concurrent first-stage searches (default: one per pending seed)",
    )

    api_key: str | None = Field(default=None, description="NCBI API key")
    email: str | None = Field(default=None, description="Contact email sent to NCBI")

    work_dir: Path = Field(
        default=Path(DEFAULT_WORK_DIR),
        description="Cached search results and checkpoint files",
    )
    no_recovery: bool = Field(
        default=False,
        description="Discard checkpoints and cached results before running",
    )

    rate_limits: RateLimitPolicy = Field(default_factory=RateLimitPolicy)

    model_config = {"frozen": True}

    @field_validator("positive_domains", "uninformative_domains", mode="before")
    @classmethod
    def split_domain_string(cls, v: Any) -> Any:
        """Accept comma-separated strings as well as sequences."""
        if isinstance(v, str):
            return frozenset(d.strip() for d in v.split(",") if d.strip())
        return v

    @field_validator("positive_domains", "uninformative_domains")
    @classmethod
    def require_curated_domains(cls, v: frozenset[str]) -> frozenset[str]:
        """Only NCBI-curated (cd) domains survive hit filtering."""
        for domain in v:
            if not domain.startswith(CURATED_DOMAIN_PREFIX):
                msg = f"Only NCBI-curated domains allowed: '{domain}' does not begin with 'cd'"
                raise ValueError(msg)
        return v

    @model_validator(mode="after")
    def validate_domain_sets(self) -> Self:
        """A domain cannot be both positive and uninformative."""
        overlap = self.positive_domains & self.uninformative_domains
        if overlap:
            msg = (
                f"Domains cannot be both positive and uninformative: "
                f"{', '.join(sorted(overlap))}"
            )
            raise ValueError(msg)
        return self

    @property
    def expect(self) -> float:
        """First-stage expect value cutoff, 10^-quality_threshold."""
        return 10.0 ** -self.quality_threshold

    @property
    def has_api_key(self) -> bool:
        return bool(self.api_key)

    @classmethod
    def from_yaml(cls, path: Path, **overrides: Any) -> ArbitratorConfig:
        """
        Load configuration from a YAML file.

        Nested sections (thresholds, domains, search, ncbi, rate_limits) are
        flattened onto model fields. Unknown keys are ignored. Keyword
        overrides that are not None take precedence over file values.

        Args:
            path: Path to YAML configuration file.
            **overrides: Field values from the command line.

        Returns:
            ArbitratorConfig populated from YAML values merged with defaults.

        Raises:
            FileNotFoundError: If YAML file does not exist.
            ValueError: If YAML is not a mapping or holds invalid values.
        """
        import yaml

        raw = yaml.safe_load(path.read_text())
        if not isinstance(raw, dict):
            msg = f"YAML config must be a mapping, got {type(raw).__name__}"
            raise ValueError(msg)

        flat = _flatten_yaml_config(raw)
        flat.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**flat)

    def to_yaml(self, path: Path) -> None:
        """Write configuration to a YAML file."""
        path.write_text(self.to_yaml_str())

    def to_yaml_str(self) -> str:
        """Serialize configuration to a YAML string, omitting the API key."""
        import yaml

        data = {
            "thresholds": {
                "quality": self.quality_threshold,
                "superiority": self.superiority_threshold,
            },
            "domains": {
                "positive": sorted(self.positive_domains),
                "uninformative": sorted(self.uninformative_domains),
            },
            "search": {
                "batch_size": self.batch_size,
                "hit_list_size": self.hit_list_size,
                "max_poll_attempts": self.max_poll_attempts,
                "max_workers": self.max_workers,
            },
            "ncbi": {"email": self.email},
            "work_dir": str(self.work_dir),
            "rate_limits": self.rate_limits.model_dump(),
        }
        return yaml.dump(data, default_flow_style=False, sort_keys=False)


def parse_domain_list(text: str) -> frozenset[str]:
    """
    Parse a comma-separated list of CDD accessions.

    Raises:
        InvalidDomainError: If an accession does not begin with 'cd'
    """
    domains = frozenset(d.strip() for d in text.split(",") if d.strip())
    for domain in domains:
        if not domain.startswith(CURATED_DOMAIN_PREFIX):
            raise InvalidDomainError(domain)
    return domains


def _flatten_yaml_config(raw: dict[str, Any]) -> dict[str, Any]:
    """
    Flatten nested YAML config structure into ArbitratorConfig keyword arguments.

    Maps the documented nested YAML structure:
        thresholds.quality -> quality_threshold
        domains.positive -> positive_domains
        search.batch_size -> batch_size
        ncbi.api_key -> api_key
    """
    flat: dict[str, Any] = {}

    thresholds = raw.get("thresholds", {})
    _map_if_present(thresholds, "quality", flat, "quality_threshold")
    _map_if_present(thresholds, "superiority", flat, "superiority_threshold")

    domains = raw.get("domains", {})
    _map_if_present(domains, "positive", flat, "positive_domains")
    _map_if_present(domains, "uninformative", flat, "uninformative_domains")

    search = raw.get("search", {})
    _map_if_present(search, "batch_size", flat, "batch_size")
    _map_if_present(search, "hit_list_size", flat, "hit_list_size")
    _map_if_present(search, "max_poll_attempts", flat, "max_poll_attempts")
    _map_if_present(search, "max_workers", flat, "max_workers")

    ncbi = raw.get("ncbi", {})
    _map_if_present(ncbi, "api_key", flat, "api_key")
    _map_if_present(ncbi, "email", flat, "email")

    _map_if_present(raw, "work_dir", flat, "work_dir")
    _map_if_present(raw, "no_recovery", flat, "no_recovery")

    rate_limits = raw.get("rate_limits", {})
    if rate_limits:
        flat["rate_limits"] = RateLimitPolicy(**rate_limits)

    return flat


def _map_if_present(
    source: dict[str, Any],
    source_key: str,
    target: dict[str, Any],
    target_key: str,
) -> None:
    """Copy value from source dict to target dict if key exists."""
    if source_key in source and source[source_key] is not None:
        target[target_key] = source[source_key]
