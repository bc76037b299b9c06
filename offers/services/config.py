from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any

from django.conf import settings


def default_currency() -> str:
    return str(getattr(settings, "DEFAULT_CURRENCY", "USD") or "USD").upper().strip() or "USD"


def tequila_api_key() -> str:
    return str(getattr(settings, "TEQUILA_API_KEY", "") or "").strip()


def partner_pricing_url() -> str:
    return str(getattr(settings, "PARTNER_PRICING_URL", "") or "").strip()


def widget_retry_schedule() -> tuple[float, ...]:
    """Attempt offsets in seconds from ``WIDGET_RETRY_SCHEDULE``; malformed entries are skipped."""
    schedule = []
    for item in getattr(settings, "WIDGET_RETRY_SCHEDULE", None) or ():
        try:
            schedule.append(float(item))
        except (TypeError, ValueError):
            continue
    return tuple(sorted(offset for offset in schedule if offset > 0)) or SearchConfig.widget_retry_schedule


def cache_admin_token() -> str:
    return str(getattr(settings, "CACHE_ADMIN_TOKEN", "") or "").strip()


@dataclass(frozen=True)
class SearchConfig:
    """Per-request knobs for one offer search.

    Built fresh for every request so that nothing in the pipeline reads
    mutable module state.
    """

    result_limit: int = 30
    structured_timeout_seconds: float = 8.0
    budget_seconds: float = 15.0
    widget_fallback_enabled: bool = True
    widget_deadline_seconds: float = 13.0
    widget_retry_schedule: tuple[float, ...] = (1.0, 3.0, 6.0, 10.0)
    default_currency: str = "USD"

    @classmethod
    def from_settings(cls, **overrides: Any) -> "SearchConfig":
        config = cls(
            result_limit=int(getattr(settings, "SEARCH_RESULT_LIMIT", 30)),
            structured_timeout_seconds=float(getattr(settings, "STRUCTURED_TIMEOUT_SECONDS", 8)),
            budget_seconds=float(getattr(settings, "SEARCH_BUDGET_SECONDS", 15)),
            widget_fallback_enabled=bool(getattr(settings, "WIDGET_FALLBACK_ENABLED", True)),
            widget_deadline_seconds=float(getattr(settings, "WIDGET_DEADLINE_SECONDS", 13)),
            widget_retry_schedule=widget_retry_schedule(),
            default_currency=default_currency(),
        )
        return replace(config, **overrides) if overrides else config


@dataclass(frozen=True)
class SiteFlags:
    flight_popup_enabled: bool = True
    booking_popup_enabled: bool = True
    overlay_enabled: bool = True
    phone_number: str = "(888) 319-6206"
    lead_page_enabled: bool = False

    @classmethod
    def from_settings(cls, overrides: dict[str, Any] | None = None) -> "SiteFlags":
        flags = cls(
            flight_popup_enabled=bool(getattr(settings, "FLIGHT_POPUP_ENABLED", True)),
            booking_popup_enabled=bool(getattr(settings, "BOOKING_POPUP_ENABLED", True)),
            overlay_enabled=bool(getattr(settings, "OVERLAY_ENABLED", True)),
            phone_number=str(getattr(settings, "SUPPORT_PHONE_NUMBER", cls.phone_number)),
            lead_page_enabled=bool(getattr(settings, "LEAD_PAGE_ENABLED", False)),
        )
        # Unknown keys and explicit None values are ignored.
        accepted = {
            key: value
            for key, value in (overrides or {}).items()
            if key in cls.__dataclass_fields__ and value is not None
        }
        return replace(flags, **accepted) if accepted else flags

    def as_dict(self) -> dict[str, Any]:
        return {
            "flightPopupEnabled": self.flight_popup_enabled,
            "bookingPopupEnabled": self.booking_popup_enabled,
            "overlayEnabled": self.overlay_enabled,
            "phoneNumber": self.phone_number,
            "leadPageEnabled": self.lead_page_enabled,
        }
