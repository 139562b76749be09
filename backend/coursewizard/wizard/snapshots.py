"""Step snapshots and the registry the payload builder pulls them from.

Steps that own nested form state (pricing, additional details) register a
provider here. At save time every provider is pulled again; a provider that
is not mounted answers ``None`` and the last value pulled from it is used
instead, so an unvisited or unmounted step never erases its part of the draft.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Dict, Optional, Protocol, Tuple, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)

CURRENCIES: Tuple[str, ...] = ("INR", "USD", "EUR", "GBP")

PAYMENT_STEP = "payment"
ADDITIONAL_STEP = "additional"


def non_negative(value: Any, default: float = 0.0) -> float:
    """Coerce form input to a float >= 0. Unparseable input becomes ``default``."""
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return max(0.0, default)
    if not math.isfinite(number):
        return max(0.0, default)
    return max(0.0, number)


def non_negative_int(value: Any, default: int = 0) -> int:
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return max(0, default)
    if not math.isfinite(number):
        return max(0, default)
    return max(0, int(number))


def clamp_percentage(value: Any, default: float = 0.0) -> float:
    return min(100.0, non_negative(value, default))


class StepSnapshot(BaseModel):
    """Immutable pull of a step's state at the moment of a save."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)


def _zero_prices() -> Dict[str, float]:
    return {code: 0.0 for code in CURRENCIES}


class PaymentDetails(StepSnapshot):
    listed_price: Dict[str, float] = Field(default_factory=_zero_prices)
    selling_price: Dict[str, float] = Field(default_factory=_zero_prices)
    global_pricing_enabled: bool = False
    currency_specific_pricing_enabled: bool = False
    enabled_currencies: Dict[str, bool] = Field(default_factory=dict)
    installments_on: bool = False
    installment_period: int = 0
    number_of_installments: int = 0
    buffer_time: int = 0
    payment_methods: Dict[str, Dict[str, bool]] = Field(default_factory=dict)
    require_payment_before_access: bool = False
    send_payment_receipts: bool = False
    enable_automatic_invoicing: bool = False

    @classmethod
    def disabled(cls) -> "PaymentDetails":
        """Pricing for a course whose pricing step never produced a value."""
        return cls(enabled_currencies={code: False for code in CURRENCIES})


class FAQ(StepSnapshot):
    question: str
    answer: str


class AdditionalDetails(StepSnapshot):
    faqs: Tuple[FAQ, ...] = ()
    affiliate_active: bool = False
    affiliate_reward_percentage: float = 0.0
    watermark_removal_enabled: bool = False

    @classmethod
    def disabled(cls) -> "AdditionalDetails":
        return cls()


@runtime_checkable
class StepSnapshotProvider(Protocol):
    def pull(self) -> Optional[StepSnapshot]:
        ...


class SnapshotRegistry:
    """Registered step providers plus the last snapshot pulled from each."""

    def __init__(self) -> None:
        self._providers: Dict[str, StepSnapshotProvider] = {}
        self._cache: Dict[str, StepSnapshot] = {}

    @property
    def steps(self) -> Tuple[str, ...]:
        return tuple(self._providers)

    def is_registered(self, step: str) -> bool:
        return step in self._providers

    def register(self, step: str, provider: StepSnapshotProvider) -> None:
        if step in self._providers and self._providers[step] is not provider:
            logger.debug("Replacing snapshot provider for step %s", step)
        self._providers[step] = provider

    def deregister(self, step: str) -> None:
        # Take a last pull so edits made since the previous save survive the unmount.
        provider = self._providers.pop(step, None)
        if provider is None:
            return
        snapshot = provider.pull()
        if snapshot is not None:
            self._cache[step] = snapshot

    def seed(self, step: str, snapshot: StepSnapshot) -> None:
        """Provide a starting value (e.g. from a loaded course) before the step mounts."""
        self._cache.setdefault(step, snapshot)

    def cached(self, step: str) -> Optional[StepSnapshot]:
        return self._cache.get(step)

    def pull(self, step: str) -> Optional[StepSnapshot]:
        provider = self._providers.get(step)
        if provider is not None:
            snapshot = provider.pull()
            if snapshot is not None:
                self._cache[step] = snapshot
                return snapshot
        return self._cache.get(step)

    def pull_all(self) -> Dict[str, StepSnapshot]:
        snapshots: Dict[str, StepSnapshot] = {}
        for step in list(self._providers) + [s for s in self._cache if s not in self._providers]:
            snapshot = self.pull(step)
            if snapshot is not None:
                snapshots[step] = snapshot
        return snapshots
