"""
Routing of runs to backend functions.

Each (mode, tier) pair maps to one backend function and the label of
the provider behind it. The label is what diagnostics show, e.g.
"OpenRouter too slow".
"""

from __future__ import annotations

from dataclasses import dataclass

from sara.config import Settings
from sara.types import ProviderTier, RunMode


@dataclass(frozen=True)
class ProviderRoute:
    """Where a run goes."""

    function: str
    provider: str
    tier: ProviderTier


class RouteTable:
    """Backend function lookup by mode and provider tier."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._routes = self._build_route_map()

    def _build_route_map(self) -> dict[tuple[RunMode, ProviderTier], ProviderRoute]:
        s = self._settings
        primary, secondary = ProviderTier.PRIMARY, ProviderTier.SECONDARY
        return {
            (RunMode.SINGLE, primary): ProviderRoute(s.FUNCTION_SINGLE_PRIMARY, s.PRIMARY_PROVIDER, primary),
            (RunMode.SINGLE, secondary): ProviderRoute(
                s.FUNCTION_SINGLE_SECONDARY, s.SECONDARY_PROVIDER, secondary
            ),
            (RunMode.MULTI, primary): ProviderRoute(s.FUNCTION_MULTI_PRIMARY, s.PRIMARY_PROVIDER, primary),
            (RunMode.MULTI, secondary): ProviderRoute(
                s.FUNCTION_MULTI_SECONDARY, s.SECONDARY_PROVIDER, secondary
            ),
        }

    def get(self, mode: RunMode, tier: ProviderTier) -> ProviderRoute:
        return self._routes[(RunMode(mode), ProviderTier(tier))]

    def provider_label(self, tier: ProviderTier) -> str:
        if ProviderTier(tier) is ProviderTier.PRIMARY:
            return self._settings.PRIMARY_PROVIDER
        return self._settings.SECONDARY_PROVIDER
