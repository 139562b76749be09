"""Save coordination for the course wizard.

Four triggers ask for a save: the manual button, the autosave ticker, step
navigation and page teardown. At most one save call is outstanding at a time:

* a manual or navigation request arriving while a save is in flight is
  remembered and replayed as a manual save once the current one finishes;
* a timer request arriving while a save is in flight is dropped, the next
  tick tries again;
* an unload request is sent immediately and never awaited, even while
  another save is in flight.

Failures are never raised out of ``request_save``. They come back in the
``SaveOutcome`` and, for manual and navigation saves, on the notifier.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional, Set

from pydantic import BaseModel, ConfigDict

from ..draft_client import PersistenceClient, SaveResult
from ..errors import DraftValidationError, SaveError, WizardError
from .notifications import Notifier
from .payload import DraftPayload, build_draft_payload
from .session import WizardSession
from .snapshots import SnapshotRegistry

logger = logging.getLogger(__name__)

PayloadBuilder = Callable[[WizardSession, SnapshotRegistry], DraftPayload]


class SaveTrigger(str, Enum):
    MANUAL = "manual"
    TIMER = "timer"
    NAVIGATION = "navigation"
    UNLOAD = "unload"


class SaveState(str, Enum):
    IDLE = "idle"
    IN_FLIGHT = "in-flight"


class SaveStatus(str, Enum):
    SAVED = "saved"
    SKIPPED = "skipped"  # nothing new worth saving
    INVALID = "invalid"  # manual save without any identifying detail
    COALESCED = "coalesced"  # replayed after the in-flight save
    DROPPED = "dropped"  # timer tick during an in-flight save
    DISPATCHED = "dispatched"  # unload save sent, result not awaited
    FAILED = "failed"


class SaveOutcome(BaseModel):
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    trigger: SaveTrigger
    status: SaveStatus
    resource_id: Optional[str] = None
    message: Optional[str] = None
    error: Optional[WizardError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def raise_for_error(self) -> None:
        if self.error is not None:
            raise self.error


# Triggers with a UI to report failures into
_REPORTED = (SaveTrigger.MANUAL, SaveTrigger.NAVIGATION)


class SaveCoordinator:
    def __init__(
        self,
        session: WizardSession,
        client: PersistenceClient,
        registry: Optional[SnapshotRegistry] = None,
        notifier: Optional[Notifier] = None,
        *,
        builder: PayloadBuilder = build_draft_payload,
    ) -> None:
        self.session = session
        self.client = client
        self.registry = registry if registry is not None else SnapshotRegistry()
        self.notifier = notifier if notifier is not None else Notifier()
        self._builder = builder
        self._in_flight = False
        self._save_again = False
        self._idle = asyncio.Event()
        self._idle.set()
        self._background: Set[asyncio.Task] = set()

    @property
    def state(self) -> SaveState:
        return SaveState.IN_FLIGHT if self._in_flight else SaveState.IDLE

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    @property
    def follow_up_pending(self) -> bool:
        return self._save_again

    def mark_dirty(self) -> None:
        self.session.mark_dirty()

    async def request_save(self, trigger: SaveTrigger) -> SaveOutcome:
        trigger = SaveTrigger(trigger)
        if trigger is SaveTrigger.UNLOAD:
            return self.dispatch_unload()

        if self._in_flight:
            if trigger is SaveTrigger.TIMER:
                logger.debug("Autosave tick dropped; a save is already in flight")
                return SaveOutcome(trigger=trigger, status=SaveStatus.DROPPED)
            self._save_again = True
            return SaveOutcome(trigger=trigger, status=SaveStatus.COALESCED, resource_id=self.session.resource_id)

        skipped = self._check_eligible(trigger)
        if skipped is not None:
            return skipped

        outcome = await self._save(trigger)
        if self._save_again:
            self._save_again = False
            # nothing edited since: the request was already served by this save
            if self.session.dirty:
                await self.request_save(SaveTrigger.MANUAL)
        return outcome

    def dispatch_unload(self) -> SaveOutcome:
        """Send a best-effort save without waiting for it. Never raises."""
        trigger = SaveTrigger.UNLOAD
        skipped = self._check_eligible(trigger)
        if skipped is not None:
            return skipped
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop; unload save not sent")
            return SaveOutcome(trigger=trigger, status=SaveStatus.SKIPPED, message="No running event loop")
        # Build now: the steps are about to be torn down.
        revision = self.session.revision
        try:
            payload = self._builder(self.session, self.registry)
        except Exception:
            logger.debug("Could not build unload draft", exc_info=True)
            return SaveOutcome(trigger=trigger, status=SaveStatus.SKIPPED, message="Draft could not be built")
        self._log_summary(trigger, payload)
        task = loop.create_task(self._unload_save(payload, revision))
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return SaveOutcome(trigger=trigger, status=SaveStatus.DISPATCHED, resource_id=self.session.resource_id)

    async def wait_idle(self) -> None:
        """Wait until no save is in flight, including a replayed follow-up."""
        while self._in_flight or self._save_again:
            await self._idle.wait()
            await asyncio.sleep(0)

    async def drain(self) -> None:
        """Wait for outstanding unload saves (shutdown and tests)."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    def _check_eligible(self, trigger: SaveTrigger) -> Optional[SaveOutcome]:
        if not self.session.dirty:
            if trigger is SaveTrigger.MANUAL:
                self.notifier.info("All changes are already saved")
            return SaveOutcome(
                trigger=trigger,
                status=SaveStatus.SKIPPED,
                resource_id=self.session.resource_id,
                message="No unsaved changes",
            )
        if not self.session.has_identifying_content():
            if trigger is SaveTrigger.MANUAL:
                error = DraftValidationError({"title": "Course title is required."})
                self.notifier.error(error.message)
                return SaveOutcome(trigger=trigger, status=SaveStatus.INVALID, error=error)
            return SaveOutcome(trigger=trigger, status=SaveStatus.SKIPPED, message="Nothing to save yet")
        return None

    async def _save(self, trigger: SaveTrigger) -> SaveOutcome:
        revision = self.session.revision
        try:
            payload = self._builder(self.session, self.registry)
        except Exception as exc:
            logger.exception("Failed to build draft payload")
            return self._failed(trigger, SaveError(f"Failed to prepare draft: {exc}"))
        self._log_summary(trigger, payload)

        self._in_flight = True
        self._idle.clear()
        try:
            result = await self.client.save(payload.resource_id, payload)
        except Exception as exc:
            logger.warning("Draft save raised %r", exc)
            result = SaveResult(success=False, message=str(exc) or "Failed to save draft")
        finally:
            self._in_flight = False
            self._idle.set()
        return self._reconcile(trigger, revision, result)

    async def _unload_save(self, payload: DraftPayload, revision: int) -> None:
        try:
            result = await self.client.save(payload.resource_id, payload)
        except Exception:
            logger.debug("Unload save failed", exc_info=True)
            return
        self._reconcile(SaveTrigger.UNLOAD, revision, result)

    def _reconcile(self, trigger: SaveTrigger, revision: int, result: SaveResult) -> SaveOutcome:
        if not result.success:
            return self._failed(trigger, SaveError(result.message or "Failed to save draft", result.status_code))

        current = self.session.resource_id
        returned = result.resource_id
        if current is None:
            if not returned:
                return self._failed(trigger, SaveError("Draft store did not return a course id"))
            self.session.adopt_resource_id(returned)
            logger.info("Draft created with id %s", returned)
        elif returned and returned != current:
            logger.warning("Draft store answered id %s for draft %s; keeping %s", returned, current, current)

        self.session.confirm_saved(revision, datetime.now(timezone.utc))
        if trigger is SaveTrigger.MANUAL:
            self.notifier.success(result.message or "Draft saved successfully!")
        return SaveOutcome(
            trigger=trigger,
            status=SaveStatus.SAVED,
            resource_id=self.session.resource_id,
            message=result.message,
        )

    def _failed(self, trigger: SaveTrigger, error: SaveError) -> SaveOutcome:
        if trigger is SaveTrigger.UNLOAD:
            logger.debug("Unload save failed: %s", error.message)
        else:
            logger.warning("%s save failed: %s", trigger.value.capitalize(), error.message)
        if trigger in _REPORTED:
            self.notifier.error(error.message)
        return SaveOutcome(
            trigger=trigger,
            status=SaveStatus.FAILED,
            resource_id=self.session.resource_id,
            message=error.message,
            error=error,
        )

    def _log_summary(self, trigger: SaveTrigger, payload: DraftPayload) -> None:
        logger.debug(
            "%s save draft: course=%s has_title=%s modules=%d lessons=%d",
            "Manual" if trigger is SaveTrigger.MANUAL else "Auto",
            payload.resource_id or "new",
            payload.has_title,
            len(payload.modules),
            payload.lesson_count,
        )
