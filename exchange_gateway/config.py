"""
Exchange Gateway - Configuration.

============================================================
PURPOSE
============================================================
Declarative per-venue descriptors and gateway settings.

A venue is described by data, not code:
- id, display name, version
- base URL per access tier
- endpoint template per logical operation
- market table and fee schedule
- capability flags
- signing scheme per tier
- rate-limit interval

PRECEDENCE:
Descriptors are combined with ``merge_descriptor`` which
defines precedence once: overrides > built-in venue table.
Only the mapping-valued sections are merged one level deep.

============================================================
"""

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Union

import yaml
from dotenv import load_dotenv

from .errors import ConfigurationError
from .types import AccessTier, Operation


logger = logging.getLogger(__name__)


PLACEHOLDER_PATTERN = re.compile(r"\{([A-Za-z_][A-Za-z0-9_]*)\}")

# Sections merged one level deep by merge_descriptor
MERGEABLE_SECTIONS = ("urls", "endpoints", "markets", "has", "fees", "options", "auth")


# ============================================================
# CREDENTIALS
# ============================================================

@dataclass(frozen=True)
class Credentials:
    """
    API credentials borrowed per call.

    Never logged: ``repr`` masks everything but the key prefix.
    """

    api_key: str = ""
    secret: str = ""
    passphrase: Optional[str] = None

    def has_key(self) -> bool:
        return bool(self.api_key)

    def has_secret(self) -> bool:
        return bool(self.secret)

    @classmethod
    def from_env(cls, venue_id: str, dotenv: bool = True) -> Optional["Credentials"]:
        """
        Load credentials from ``<VENUE>_API_KEY`` / ``_API_SECRET`` / ``_PASSPHRASE``.

        Args:
            venue_id: Venue identifier
            dotenv: Load a ``.env`` file first

        Returns:
            Credentials, or None if no API key is set
        """
        if dotenv:
            load_dotenv()

        prefix = venue_id.upper()
        api_key = os.environ.get(f"{prefix}_API_KEY", "")
        if not api_key:
            return None

        return cls(
            api_key=api_key,
            secret=os.environ.get(f"{prefix}_API_SECRET", ""),
            passphrase=os.environ.get(f"{prefix}_PASSPHRASE") or None,
        )

    def __repr__(self) -> str:
        key = f"{self.api_key[:4]}...***" if len(self.api_key) > 4 else "***"
        return f"Credentials(api_key='{key}', secret='***', passphrase='***')"


# ============================================================
# MARKET / ENDPOINT / FEES
# ============================================================

@dataclass(frozen=True)
class MarketDescriptor:
    """Static metadata of one market on one venue."""

    id: str
    """Venue-local market id."""

    symbol: str
    """Canonical symbol, BASE/QUOTE."""

    base: str
    quote: str

    broker_id: Optional[int] = None
    """Optional broker / route id."""

    broker: Optional[str] = None
    fee_tier: Optional[str] = None

    extra: Mapping[str, Any] = field(default_factory=dict)
    """Venue-specific extra fields (e.g. a display suffix)."""

    @classmethod
    def from_dict(cls, symbol: str, data: Mapping[str, Any]) -> "MarketDescriptor":
        known = {"id", "symbol", "base", "quote", "brokerId", "broker_id", "broker", "feeTier", "fee_tier"}
        try:
            return cls(
                id=str(data["id"]),
                symbol=symbol,
                base=str(data["base"]),
                quote=str(data["quote"]),
                broker_id=data.get("broker_id", data.get("brokerId")),
                broker=data.get("broker"),
                fee_tier=data.get("fee_tier", data.get("feeTier")),
                extra={k: v for k, v in data.items() if k not in known},
            )
        except KeyError as e:
            raise ConfigurationError(f"Market {symbol} missing field {e}")


@dataclass(frozen=True)
class EndpointTemplate:
    """
    HTTP endpoint template.

    Placeholders like ``{coin}`` must be bound from call parameters
    before signing.
    """

    method: str
    path: str
    tier: AccessTier = AccessTier.PUBLIC

    @property
    def placeholders(self) -> FrozenSet[str]:
        return frozenset(PLACEHOLDER_PATTERN.findall(self.path))

    @classmethod
    def from_value(cls, value: Union["EndpointTemplate", Mapping[str, Any]]) -> "EndpointTemplate":
        if isinstance(value, EndpointTemplate):
            return value
        try:
            return cls(
                method=str(value.get("method", "GET")).upper(),
                path=str(value["path"]),
                tier=AccessTier(value.get("tier", "public")),
            )
        except (KeyError, ValueError) as e:
            raise ConfigurationError(f"Invalid endpoint template {value!r}: {e}")


@dataclass(frozen=True)
class FeeSchedule:
    """Trading fee rates as fractions (0.003 == 0.3%)."""

    maker: Optional[float] = None
    taker: Optional[float] = None
    percentage: bool = True

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "FeeSchedule":
        trading = (data or {}).get("trading", data or {})
        return cls(
            maker=trading.get("maker"),
            taker=trading.get("taker"),
            percentage=trading.get("percentage", True),
        )


# ============================================================
# VENUE DESCRIPTOR
# ============================================================

@dataclass(frozen=True)
class VenueDescriptor:
    """
    Declarative description of one venue.

    Built once at adapter construction, read-only afterwards.
    """

    id: str
    name: str
    rate_limit_ms: int
    urls: Mapping[str, str]
    endpoints: Mapping[Operation, EndpointTemplate]
    markets: Mapping[str, MarketDescriptor]
    capabilities: FrozenSet[str]
    auth: Mapping[AccessTier, str]
    fees: FeeSchedule = field(default_factory=FeeSchedule)
    version: Optional[str] = None
    countries: tuple = ()
    options: Mapping[str, Any] = field(default_factory=dict)

    def base_url(self, tier: AccessTier) -> str:
        try:
            return self.urls[tier.value]
        except KeyError:
            raise ConfigurationError(f"{self.id} has no base URL for tier {tier.value}")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "VenueDescriptor":
        """
        Build a descriptor from plain data.

        Capabilities are the operations with an endpoint plus any
        ``has`` flag set to true; a ``has`` flag set to false removes
        a capability even if an endpoint exists.

        Raises:
            ConfigurationError: If a required section is missing
        """
        for key in ("id", "urls", "endpoints"):
            if key not in data:
                raise ConfigurationError(f"Venue descriptor missing '{key}'")

        endpoints: Dict[Operation, EndpointTemplate] = {}
        for name, value in data["endpoints"].items():
            try:
                operation = Operation(name)
            except ValueError:
                raise ConfigurationError(f"{data['id']}: unknown operation '{name}'")
            endpoints[operation] = EndpointTemplate.from_value(value)

        markets = {
            symbol: MarketDescriptor.from_dict(symbol, market)
            for symbol, market in (data.get("markets") or {}).items()
        }

        flags = dict(data.get("has") or {})
        capabilities = {op.value for op in endpoints}
        capabilities.update(name for name, enabled in flags.items() if enabled)
        capabilities.difference_update(name for name, enabled in flags.items() if not enabled)

        auth = {AccessTier.PUBLIC: "public"}
        for tier, scheme in (data.get("auth") or {}).items():
            auth[AccessTier(tier)] = scheme

        return cls(
            id=str(data["id"]),
            name=str(data.get("name", data["id"])),
            rate_limit_ms=int(data.get("rate_limit", data.get("rateLimit", 1000))),
            urls=dict(data["urls"]),
            endpoints=endpoints,
            markets=markets,
            capabilities=frozenset(capabilities),
            auth=auth,
            fees=FeeSchedule.from_dict(data.get("fees")),
            version=data.get("version"),
            countries=tuple(data.get("countries") or ()),
            options=dict(data.get("options") or {}),
        )


def merge_descriptor(
    defaults: Mapping[str, Any],
    overrides: Optional[Mapping[str, Any]],
) -> Dict[str, Any]:
    """
    Merge venue descriptor data.

    Precedence: overrides > defaults. Scalar keys are replaced;
    the sections in MERGEABLE_SECTIONS are merged one level deep
    (override wins per key). The inputs are not mutated.

    Args:
        defaults: Built-in descriptor data
        overrides: Caller overrides

    Returns:
        New merged mapping
    """
    merged: Dict[str, Any] = dict(defaults)
    for key, value in (overrides or {}).items():
        if key in MERGEABLE_SECTIONS and isinstance(value, Mapping):
            section = dict(merged.get(key) or {})
            section.update(value)
            merged[key] = section
        else:
            merged[key] = value
    return merged


def load_overrides(path: Union[str, Path]) -> Dict[str, Dict[str, Any]]:
    """
    Load per-venue overrides from a YAML document.

    The top level maps venue id to an override mapping::

        btctrade:
          rate_limit: 2000
          urls:
            public: https://sandbox.example/v1/public

    Raises:
        ConfigurationError: If the file is missing or malformed
    """
    path = Path(path)
    if not path.exists():
        raise ConfigurationError(f"Override file not found: {path}")

    try:
        with path.open("r", encoding="utf-8") as f:
            document = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}")

    if document is None:
        return {}
    if not isinstance(document, dict) or not all(isinstance(v, dict) for v in document.values()):
        raise ConfigurationError(f"{path}: expected a mapping of venue id to overrides")

    logger.info(f"Loaded overrides for {sorted(document)} from {path}")
    return {str(venue_id): overrides for venue_id, overrides in document.items()}


# ============================================================
# GATEWAY CONFIGURATION
# ============================================================

@dataclass
class GatewayConfig:
    """
    Settings shared by every adapter instance.
    """

    timeout_seconds: float = 30.0
    """Timeout applied to each transport call."""

    enable_rate_limit: bool = True
    """Gate outbound calls by the venue's minimum interval."""

    user_agent: str = "exchange-gateway/1.0"

    options: Dict[str, Any] = field(default_factory=dict)
    """Free-form per-venue options merged into the descriptor."""

    @classmethod
    def from_env(cls) -> "GatewayConfig":
        """Create config from ``GATEWAY_*`` environment variables."""
        load_dotenv()
        return cls(
            timeout_seconds=float(os.environ.get("GATEWAY_TIMEOUT_SECONDS", "30")),
            enable_rate_limit=os.environ.get("GATEWAY_ENABLE_RATE_LIMIT", "true").lower()
            not in ("0", "false", "no"),
        )


def required_placeholders(path: str) -> List[str]:
    """List placeholder names in a path template, in order."""
    return PLACEHOLDER_PATTERN.findall(path)
