"""
MarketDash — Fallback Chain

Runs one capability across an ordered list of providers and returns the
first non-empty result. Provider order encodes source quality and is never
changed at runtime.

Each provider gets exactly one attempt per run. Raised exceptions, None,
and empty sequences all move on to the next provider; every such miss is
reported to the failure hook. Exhaustion is not an error: the chain
returns None (single records) or [] (sequences).

A chain built with ``raise_if_unconfigured`` behaves like a direct call: when
every provider in it lacks credentials, the first ProviderNotConfiguredError
is raised instead of returning the empty result.
"""

from __future__ import annotations

from typing import Any, Optional, Sequence

import structlog

from marketdash.data.base import MarketDataProvider, propagate_failures
from marketdash.exceptions import ProviderNotConfiguredError
from marketdash.observability import (
    KIND_EMPTY,
    FailureHook,
    ProviderFailure,
    classify_error,
    log_provider_failure,
)

log = structlog.get_logger(__name__)

# Capabilities that return lists; the rest return a single record or None
SEQUENCE_CAPABILITIES = frozenset({"get_historical_data", "search_symbols"})


class FallbackChain:
    """Ordered provider list for a single capability."""

    def __init__(
        self,
        capability: str,
        providers: Sequence[MarketDataProvider],
        on_failure: Optional[FailureHook] = None,
        raise_if_unconfigured: bool = False,
    ):
        self.capability = capability
        self.providers = list(providers)
        self.on_failure = on_failure or log_provider_failure
        self.raise_if_unconfigured = raise_if_unconfigured

    @property
    def provider_names(self) -> list[str]:
        return [p.name for p in self.providers]

    def _empty(self) -> Any:
        return [] if self.capability in SEQUENCE_CAPABILITIES else None

    def _report(self, provider: MarketDataProvider, symbol: str, kind: str, error: Optional[str] = None):
        self.on_failure(
            ProviderFailure(
                provider=provider.name,
                capability=self.capability,
                symbol=symbol,
                kind=kind,
                error=error,
            )
        )

    async def run(self, *args: Any, symbol: str = "") -> Any:
        """Call the capability on each provider until one returns data.

        Args:
            *args: Passed through to the provider method.
            symbol: Symbol or query, used only for failure records.
        """
        unconfigured: list[ProviderNotConfiguredError] = []
        for provider in self.providers:
            method = getattr(provider, self.capability)
            try:
                with propagate_failures():
                    result = await method(*args)
            except ProviderNotConfiguredError as exc:
                unconfigured.append(exc)
                self._report(provider, symbol, classify_error(exc), str(exc))
                continue
            except Exception as exc:
                self._report(provider, symbol, classify_error(exc), str(exc) or type(exc).__name__)
                continue

            if result is None or (isinstance(result, (list, tuple)) and not result):
                self._report(provider, symbol, KIND_EMPTY)
                continue

            log.debug(
                "fallback.resolved",
                capability=self.capability,
                symbol=symbol,
                provider=provider.name,
            )
            return result

        if self.raise_if_unconfigured and unconfigured and len(unconfigured) == len(self.providers):
            raise unconfigured[0]
        log.info("fallback.exhausted", capability=self.capability, symbol=symbol, providers=self.provider_names)
        return self._empty()
