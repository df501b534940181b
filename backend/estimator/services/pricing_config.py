"""
Pricing configuration — organization settings resolved once into named fields.

Organization settings arrive as a loose JSON document. ``resolve_pricing_config``
reads it a single time, fills every missing or unusable value with the
documented default below, and records each substitution in
``defaults_applied`` so callers can show it.

Markup resolution order: the takeoff's own markup, then the organization
default, then ``DEFAULT_MARKUP_PERCENT``. The legacy takeoff column used to
default to 15 % while organizations defaulted to 35 %; an unset takeoff
markup is stored as NULL now and the substitution is reported instead.
"""
import math
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

PRICING_CONFIG_VERSION = "1"

# ---------------------------------------------------------------------------
# Documented defaults
# ---------------------------------------------------------------------------
DEFAULT_MARKUP_PERCENT: float = 35.0             # organization default markup
DEFAULT_V2_MARKUP_PERCENT: float = 26.0          # separate material/labor markup (V2)
DEFAULT_LI_RATE_PERCENT: float = 12.65           # labor & industries insurance
DEFAULT_UNEMPLOYMENT_RATE_PERCENT: float = 6.60  # state unemployment
DEFAULT_INSURANCE_RATE_PER_1000: float = 24.38   # project insurance, $ per $1,000


class PricingMethodology(str, Enum):
    LEGACY = "legacy"   # one blended markup on material + labor + overhead
    V2 = "v2"           # separate material / labor markups plus project insurance


class BurdenRates(BaseModel):
    """Labor burden, stored as percentages of base labor cost."""
    li_rate_percent: float = DEFAULT_LI_RATE_PERCENT
    unemployment_rate_percent: float = DEFAULT_UNEMPLOYMENT_RATE_PERCENT

    @property
    def burden_factor(self) -> float:
        """Multiplier applied once to base labor: 1 + L&I + unemployment."""
        return 1.0 + self.li_rate_percent / 100.0 + self.unemployment_rate_percent / 100.0


class PricingConfig(BaseModel):
    config_version: str = PRICING_CONFIG_VERSION
    methodology: PricingMethodology = PricingMethodology.LEGACY
    markup_percent: float = DEFAULT_MARKUP_PERCENT
    labor_markup_percent: Optional[float] = None   # V2 only; falls back to markup_percent
    burden: BurdenRates = Field(default_factory=BurdenRates)
    insurance_rate_per_1000: float = DEFAULT_INSURANCE_RATE_PER_1000
    markup_source: str = "default"                 # "takeoff" | "organization" | "default"
    defaults_applied: List[str] = Field(default_factory=list)


def default_markup_for(methodology: PricingMethodology) -> float:
    """Documented markup default for a methodology (35 % legacy, 26 % V2)."""
    if methodology == PricingMethodology.V2:
        return DEFAULT_V2_MARKUP_PERCENT
    return DEFAULT_MARKUP_PERCENT


def _number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _lookup(settings: Dict[str, Any], *keys: str) -> Optional[float]:
    for key in keys:
        value = _number(settings.get(key))
        if value is not None:
            return value
    return None


def _section(settings: Dict[str, Any], key: str) -> Dict[str, Any]:
    nested = settings.get(key)
    return nested if isinstance(nested, dict) else {}


def _with_default(
    sources: List[Dict[str, Any]], name: str, default: float, applied: List[str], *aliases: str
) -> float:
    """First usable value for ``name`` or an alias, searching ``sources`` in order."""
    value = None
    for source in sources:
        value = _lookup(source, name, *aliases)
        if value is not None:
            break
    if value is None:
        applied.append(f"{name}={default}")
        return default
    return value


def resolve_markup(
    takeoff_markup: Any, settings: Dict[str, Any], default: float = DEFAULT_MARKUP_PERCENT
) -> Tuple[float, str]:
    """Return (markup_percent, source) following takeoff → organization → default."""
    value = _number(takeoff_markup)
    if value is not None:
        return value, "takeoff"
    value = _lookup(settings, "markup_percent", "default_markup_percent")
    if value is not None:
        return value, "organization"
    return default, "default"


def resolve_pricing_config(
    org_settings: Optional[Dict[str, Any]] = None,
    takeoff_markup: Any = None,
    methodology: Any = None,
) -> PricingConfig:
    """
    Resolve organization settings into a PricingConfig.

    ``org_settings`` is the organization's raw settings document (may be None).
    Burden rates are read from ``labor_rates`` (the stored organization shape,
    ``li_insurance_rate_percent`` / ``unemployment_rate_percent``), from
    ``labor_burden`` or from the top level, nested values winning.
    """
    settings = dict(org_settings or {})
    burden_sources = [_section(settings, "labor_rates"), _section(settings, "labor_burden"), settings]
    applied: List[str] = []

    method_raw = methodology or settings.get("pricing_methodology")
    try:
        method = PricingMethodology(method_raw) if method_raw else PricingMethodology.LEGACY
    except ValueError:
        applied.append(f"methodology={PricingMethodology.LEGACY.value}")
        method = PricingMethodology.LEGACY

    default_markup = default_markup_for(method)
    markup, source = resolve_markup(takeoff_markup, settings, default_markup)
    if source == "default":
        applied.append(f"markup_percent={default_markup}")

    burden = BurdenRates(
        li_rate_percent=_with_default(
            burden_sources, "li_rate_percent", DEFAULT_LI_RATE_PERCENT, applied,
            "li_insurance_rate_percent", "li_insurance_rate",
        ),
        unemployment_rate_percent=_with_default(
            burden_sources, "unemployment_rate_percent", DEFAULT_UNEMPLOYMENT_RATE_PERCENT,
            applied, "unemployment_rate",
        ),
    )

    insurance = DEFAULT_INSURANCE_RATE_PER_1000
    if method == PricingMethodology.V2:
        insurance = _with_default(
            [settings], "insurance_rate_per_1000", DEFAULT_INSURANCE_RATE_PER_1000, applied
        )

    return PricingConfig(
        methodology=method,
        markup_percent=markup,
        labor_markup_percent=_lookup(settings, "labor_markup_percent"),
        burden=burden,
        insurance_rate_per_1000=insurance,
        markup_source=source,
        defaults_applied=applied,
    )
