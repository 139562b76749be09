from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional, Tuple

from ..draft_client import DraftClient, PersistenceClient, PublishResult
from ..errors import DraftValidationError, PublishError
from ..settings import settings
from .autosave import AutosaveTicker
from .coordinator import SaveCoordinator, SaveOutcome, SaveStatus, SaveTrigger
from .notifications import Notifier
from .session import WizardSession
from .snapshots import ADDITIONAL_STEP, PAYMENT_STEP, AdditionalDetails, PaymentDetails, SnapshotRegistry
from .steps import AdditionalDetailsStep, PaymentDetailsStep, SnapshotStep

logger = logging.getLogger(__name__)

STEPS: Tuple[str, ...] = (
    "Course Details",
    "Curriculum",
    "Drip Content",
    "Certificate",
    "Payment Details",
    "Additional Details",
    "Preview & Publish",
)
PAYMENT_STEP_INDEX = STEPS.index("Payment Details")
ADDITIONAL_STEP_INDEX = STEPS.index("Additional Details")
PREVIEW_STEP_INDEX = STEPS.index("Preview & Publish")

DEFAULT_PUBLISH_STATUS = "Live & Selling"


class CourseWizard:
    """Course authoring wizard: the session, its steps and every save trigger."""

    def __init__(
        self,
        client: PersistenceClient,
        *,
        session: Optional[WizardSession] = None,
        notifier: Optional[Notifier] = None,
        autosave_interval: Optional[float] = None,
        autosave_enabled: Optional[bool] = None,
    ) -> None:
        self.client = client
        self.session = session if session is not None else WizardSession()
        self.notifier = notifier if notifier is not None else Notifier()
        self.registry = SnapshotRegistry()
        self.coordinator = SaveCoordinator(self.session, client, self.registry, self.notifier)
        self.payment = PaymentDetailsStep(on_change=self.coordinator.mark_dirty)
        self.additional = AdditionalDetailsStep(on_change=self.coordinator.mark_dirty)
        self.autosave_enabled = settings.autosave_enabled if autosave_enabled is None else autosave_enabled
        self.ticker = AutosaveTicker(self.coordinator, autosave_interval)
        self.active_step = 0
        self.errors: Dict[str, str] = {}
        self.closed = False

    @classmethod
    def from_course(cls, client: PersistenceClient, course: Mapping[str, Any], **kwargs: Any) -> "CourseWizard":
        wizard = cls(client, session=WizardSession.from_course(course), **kwargs)
        pricing = course.get("pricing")
        if pricing:
            snapshot = PaymentDetails.model_validate(pricing)
            wizard.registry.seed(PAYMENT_STEP, snapshot)
            wizard.payment.hydrate(snapshot)
        additional = course.get("additionalDetails")
        if additional:
            snapshot = AdditionalDetails.model_validate(additional)
            wizard.registry.seed(ADDITIONAL_STEP, snapshot)
            wizard.additional.hydrate(snapshot)
        return wizard

    @classmethod
    async def open(cls, client: DraftClient, course_id: Optional[str] = None, **kwargs: Any) -> "CourseWizard":
        """Open the wizard on a new course, or on a stored one when ``course_id`` is given."""
        if course_id is None:
            wizard = cls(client, **kwargs)
        else:
            course = await client.get_course(course_id)
            wizard = cls.from_course(client, course, **kwargs)
            logger.info("Opened course %s for editing", wizard.session.resource_id)
        wizard.start()
        return wizard

    @property
    def step_name(self) -> str:
        return STEPS[self.active_step]

    @property
    def resource_id(self) -> Optional[str]:
        return self.session.resource_id

    def start(self) -> None:
        self._enter(self.active_step)
        if self.autosave_enabled:
            self.ticker.start()

    def edit(self, **fields: Any) -> None:
        self.session.update(fields)

    async def save(self) -> SaveOutcome:
        return await self.coordinator.request_save(SaveTrigger.MANUAL)

    async def go_to_step(self, index: int) -> Optional[SaveOutcome]:
        index = max(0, min(len(STEPS) - 1, index))
        if index == self.active_step:
            return None
        self._leave(self.active_step)
        self.active_step = index
        self._enter(index)
        return await self.coordinator.request_save(SaveTrigger.NAVIGATION)

    async def next_step(self) -> Optional[SaveOutcome]:
        self.errors = self.session.validate_details()
        if self.errors:
            error = DraftValidationError(self.errors)
            self.notifier.error(error.message)
            return SaveOutcome(trigger=SaveTrigger.NAVIGATION, status=SaveStatus.INVALID, error=error)
        return await self.go_to_step(self.active_step + 1)

    async def previous_step(self) -> Optional[SaveOutcome]:
        return await self.go_to_step(self.active_step - 1)

    def can_preview(self) -> bool:
        modules = self.session.get("modules") or []
        has_module = any((m.get("title") or "").strip() for m in modules)
        has_lesson = any(
            (lesson.get("title") or "").strip()
            for m in modules
            for lesson in m.get("lessons") or []
        )
        return has_module and has_lesson

    async def preview(self) -> Optional[SaveOutcome]:
        if not self.can_preview():
            self.notifier.error("Please save at least one module with one lesson to preview the course.")
            return None
        return await self.go_to_step(PREVIEW_STEP_INDEX)

    async def publish(self, status: str = DEFAULT_PUBLISH_STATUS) -> PublishResult:
        await self.coordinator.wait_idle()
        if self.session.dirty:
            outcome = await self.coordinator.request_save(SaveTrigger.MANUAL)
            if outcome.status in (SaveStatus.FAILED, SaveStatus.INVALID):
                raise PublishError("Save the draft before publishing", outcome.message)
        if self.session.resource_id is None:
            raise PublishError("Save the draft before publishing")
        result = await self.client.publish(self.session.resource_id, status)
        if not result.success:
            self.notifier.error(result.message or "Failed to publish course")
            raise PublishError(result.message or "Failed to publish course")
        self.notifier.success(result.message or "Course published successfully")
        return result

    def on_unload(self) -> SaveOutcome:
        """Page is going away: send what we have, do not wait."""
        return self.coordinator.dispatch_unload()

    async def close(self) -> SaveOutcome:
        await self.ticker.stop()
        if not self.closed:
            self.closed = True
            self._leave(self.active_step)
        return self.on_unload()

    def _step_at(self, index: int) -> Optional[SnapshotStep]:
        if index == PAYMENT_STEP_INDEX:
            return self.payment
        if index == ADDITIONAL_STEP_INDEX:
            return self.additional
        return None

    def _enter(self, index: int) -> None:
        step = self._step_at(index)
        if step is not None and not step.mounted:
            step.mount(self.registry)

    def _leave(self, index: int) -> None:
        step = self._step_at(index)
        if step is not None and step.mounted:
            step.unmount(self.registry)
