from __future__ import annotations

from typing import Callable, Dict, List, Optional

from .snapshots import (
    ADDITIONAL_STEP,
    CURRENCIES,
    FAQ,
    PAYMENT_STEP,
    AdditionalDetails,
    PaymentDetails,
    SnapshotRegistry,
    clamp_percentage,
    non_negative,
    non_negative_int,
)

MAX_FAQS = 10

UNIVERSAL_PAYMENT_METHODS: Dict[str, bool] = {
    "card": True,
    "paypal": False,
    "bankTransfer": False,
}


class SnapshotStep:
    """A wizard step holding its own form state, pulled on demand at save time."""

    key: str = ""

    def __init__(self, on_change: Optional[Callable[[], None]] = None) -> None:
        self._on_change = on_change
        self.mounted = False

    def mount(self, registry: SnapshotRegistry) -> None:
        self.mounted = True
        registry.register(self.key, self)

    def unmount(self, registry: SnapshotRegistry) -> None:
        # deregister pulls once more, so it must run while still mounted
        registry.deregister(self.key)
        self.mounted = False

    def pull(self):
        if not self.mounted:
            return None
        return self.snapshot()

    def snapshot(self):
        raise NotImplementedError

    def _changed(self) -> None:
        if self._on_change is not None:
            self._on_change()


class PaymentDetailsStep(SnapshotStep):
    key = PAYMENT_STEP

    def __init__(self, on_change: Optional[Callable[[], None]] = None) -> None:
        super().__init__(on_change)
        # Raw form values are kept as typed by the user; coercion happens in snapshot()
        self.global_pricing_enabled = True
        self.currency_specific_pricing_enabled = False
        self.global_list_price = "15"
        self.global_actual_price = "10"
        self.currency_list_prices: Dict[str, str] = {code: "" for code in CURRENCIES}
        self.currency_actual_prices: Dict[str, str] = {code: "" for code in CURRENCIES}
        self.enabled_currencies: Dict[str, bool] = {code: code == "INR" for code in CURRENCIES}
        self.universal_payment_methods: Dict[str, bool] = dict(UNIVERSAL_PAYMENT_METHODS)
        self.payment_methods_by_currency: Dict[str, Dict[str, bool]] = {}
        self.installments_on = False
        self.installment_period = 3
        self.number_of_installments = 2
        self.buffer_time = 0
        self.require_payment_before_access = True
        self.send_payment_receipts = True
        self.enable_automatic_invoicing = False

    def set_global_prices(self, listed: str, selling: str) -> None:
        self.global_list_price = str(listed)
        self.global_actual_price = str(selling)
        self._changed()

    def set_currency_prices(self, code: str, listed: Optional[str] = None, selling: Optional[str] = None) -> None:
        if code not in CURRENCIES:
            raise ValueError(f"Unsupported currency: {code}")
        if listed is not None:
            self.currency_list_prices[code] = str(listed)
        if selling is not None:
            self.currency_actual_prices[code] = str(selling)
        self._changed()

    def use_currency_specific_pricing(self, enabled: bool) -> None:
        self.currency_specific_pricing_enabled = bool(enabled)
        self.global_pricing_enabled = not enabled
        self._changed()

    def toggle_currency(self, code: str, enabled: bool) -> None:
        if code not in CURRENCIES:
            raise ValueError(f"Unsupported currency: {code}")
        self.enabled_currencies[code] = bool(enabled)
        self._changed()

    def set_payment_method(self, method: str, enabled: bool, currency: Optional[str] = None) -> None:
        if currency is None:
            self.universal_payment_methods[method] = bool(enabled)
        else:
            self.payment_methods_by_currency.setdefault(currency, {})[method] = bool(enabled)
        self._changed()

    def set_installments(
        self,
        enabled: bool,
        *,
        period: Optional[int] = None,
        count: Optional[int] = None,
        buffer_time: Optional[int] = None,
    ) -> None:
        self.installments_on = bool(enabled)
        if period is not None:
            self.installment_period = period
        if count is not None:
            self.number_of_installments = count
        if buffer_time is not None:
            self.buffer_time = buffer_time
        self._changed()

    def set_policies(
        self,
        *,
        require_payment_before_access: Optional[bool] = None,
        send_payment_receipts: Optional[bool] = None,
        enable_automatic_invoicing: Optional[bool] = None,
    ) -> None:
        if require_payment_before_access is not None:
            self.require_payment_before_access = require_payment_before_access
        if send_payment_receipts is not None:
            self.send_payment_receipts = send_payment_receipts
        if enable_automatic_invoicing is not None:
            self.enable_automatic_invoicing = enable_automatic_invoicing
        self._changed()

    def hydrate(self, stored: PaymentDetails) -> None:
        """Restore form state from a saved draft. Does not count as an edit."""
        self.global_pricing_enabled = stored.global_pricing_enabled
        self.currency_specific_pricing_enabled = stored.currency_specific_pricing_enabled
        if stored.global_pricing_enabled and not stored.currency_specific_pricing_enabled:
            self.global_list_price = _price_text(stored.listed_price.get("INR", 0.0))
            self.global_actual_price = _price_text(stored.selling_price.get("INR", 0.0))
        for code in CURRENCIES:
            self.currency_list_prices[code] = _price_text(stored.listed_price.get(code, 0.0))
            self.currency_actual_prices[code] = _price_text(stored.selling_price.get(code, 0.0))
        self.enabled_currencies.update(stored.enabled_currencies)
        methods = dict(stored.payment_methods)
        universal = methods.pop("universal", None)
        if universal:
            self.universal_payment_methods.update(universal)
        # merge so currencies absent from the stored draft keep their current toggles
        for code, toggles in methods.items():
            self.payment_methods_by_currency.setdefault(code, {}).update(toggles)
        self.installments_on = stored.installments_on
        self.installment_period = stored.installment_period
        self.number_of_installments = stored.number_of_installments
        self.buffer_time = stored.buffer_time
        self.require_payment_before_access = stored.require_payment_before_access
        self.send_payment_receipts = stored.send_payment_receipts
        self.enable_automatic_invoicing = stored.enable_automatic_invoicing

    def snapshot(self) -> PaymentDetails:
        listed: Dict[str, float] = {}
        selling: Dict[str, float] = {}
        for code in CURRENCIES:
            if self.currency_specific_pricing_enabled:
                listed[code] = non_negative(self.currency_list_prices.get(code))
                selling[code] = non_negative(self.currency_actual_prices.get(code))
            elif self.global_pricing_enabled:
                listed[code] = non_negative(self.global_list_price)
                selling[code] = non_negative(self.global_actual_price)
            else:
                listed[code] = 0.0
                selling[code] = 0.0
        payment_methods: Dict[str, Dict[str, bool]] = {"universal": dict(self.universal_payment_methods)}
        for code, toggles in self.payment_methods_by_currency.items():
            payment_methods[code] = dict(toggles)
        return PaymentDetails(
            listed_price=listed,
            selling_price=selling,
            global_pricing_enabled=self.global_pricing_enabled,
            currency_specific_pricing_enabled=self.currency_specific_pricing_enabled,
            enabled_currencies=dict(self.enabled_currencies),
            installments_on=self.installments_on,
            installment_period=non_negative_int(self.installment_period),
            number_of_installments=non_negative_int(self.number_of_installments),
            buffer_time=non_negative_int(self.buffer_time),
            payment_methods=payment_methods,
            require_payment_before_access=self.require_payment_before_access,
            send_payment_receipts=self.send_payment_receipts,
            enable_automatic_invoicing=self.enable_automatic_invoicing,
        )


def _price_text(value: float) -> str:
    return f"{value:g}"


class AdditionalDetailsStep(SnapshotStep):
    key = ADDITIONAL_STEP

    def __init__(self, on_change: Optional[Callable[[], None]] = None) -> None:
        super().__init__(on_change)
        self.affiliate_reward_enabled = False
        self.affiliate_reward_percentage = "10"
        self.watermark_removal_enabled = False
        self.faqs: List[Dict[str, str]] = [{"question": "", "answer": ""}]

    def add_faq(self) -> int:
        if len(self.faqs) >= MAX_FAQS:
            raise ValueError(f"At most {MAX_FAQS} FAQs are allowed")
        self.faqs.append({"question": "", "answer": ""})
        self._changed()
        return len(self.faqs) - 1

    def remove_faq(self, index: int) -> None:
        # the editor always keeps one (possibly blank) row
        if len(self.faqs) <= 1:
            return
        del self.faqs[index]
        self._changed()

    def set_faq(self, index: int, *, question: Optional[str] = None, answer: Optional[str] = None) -> None:
        faq = self.faqs[index]
        if question is not None:
            faq["question"] = question
        if answer is not None:
            faq["answer"] = answer
        self._changed()

    def set_affiliate(self, enabled: bool, percentage: Optional[str] = None) -> None:
        self.affiliate_reward_enabled = bool(enabled)
        if percentage is not None:
            self.affiliate_reward_percentage = str(percentage)
        self._changed()

    def set_watermark_removal(self, enabled: bool) -> None:
        self.watermark_removal_enabled = bool(enabled)
        self._changed()

    def hydrate(self, stored: AdditionalDetails) -> None:
        # A stale "off" from the server must not undo a toggle the user just switched on.
        self.affiliate_reward_enabled = stored.affiliate_active or self.affiliate_reward_enabled
        self.affiliate_reward_percentage = _price_text(stored.affiliate_reward_percentage)
        self.watermark_removal_enabled = stored.watermark_removal_enabled
        if stored.faqs:
            self.faqs = [{"question": f.question, "answer": f.answer} for f in stored.faqs]
        else:
            self.faqs = [{"question": "", "answer": ""}]

    def snapshot(self) -> AdditionalDetails:
        faqs = tuple(
            FAQ(question=f["question"].strip(), answer=f["answer"].strip())
            for f in self.faqs
            if (f.get("question") or "").strip() and (f.get("answer") or "").strip()
        )
        return AdditionalDetails(
            faqs=faqs,
            affiliate_active=self.affiliate_reward_enabled,
            affiliate_reward_percentage=clamp_percentage(self.affiliate_reward_percentage),
            watermark_removal_enabled=self.watermark_removal_enabled,
        )
