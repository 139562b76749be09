from __future__ import annotations
import logging
import httpx
from typing import Any, Dict, Optional, Protocol
from pydantic import BaseModel
from .errors import WizardError
from .settings import settings
from .wizard.payload import DraftPayload

logger = logging.getLogger(__name__)

NETWORK_ERROR_MESSAGE = "Cannot connect to server. Please make sure the backend server is running."
UNAUTHENTICATED_MESSAGE = "You are not authenticated. Please log in and try again."


class SaveResult(BaseModel):
	success: bool
	resource_id: Optional[str] = None
	message: Optional[str] = None
	status_code: Optional[int] = None
	data: Optional[Dict[str, Any]] = None


class PublishResult(BaseModel):
	success: bool
	message: Optional[str] = None
	status_code: Optional[int] = None
	data: Optional[Dict[str, Any]] = None


class PersistenceClient(Protocol):
	async def save(self, resource_id: Optional[str], payload: DraftPayload) -> SaveResult:
		...

	async def publish(self, resource_id: str, status: str) -> PublishResult:
		...


def _json_body(r: httpx.Response) -> Dict[str, Any]:
	try:
		data = r.json()
	except ValueError:
		return {}
	return data if isinstance(data, dict) else {}


def _failure_message(r: httpx.Response, body: Dict[str, Any], default: str) -> str:
	if r.status_code == 401:
		return UNAUTHENTICATED_MESSAGE
	detail = body.get("message") or body.get("detail")
	if isinstance(detail, str) and detail:
		return detail
	return default


class DraftClient:
	"""HTTP client for the course draft store.

	Transport and HTTP failures are reported in the returned result, never raised,
	so a save trigger can always carry on.
	"""

	def __init__(
		self,
		base_url: Optional[str] = None,
		*,
		token: Optional[str] = None,
		timeout: Optional[float] = None,
		transport: Optional[httpx.AsyncBaseTransport] = None,
	) -> None:
		self.base_url = (base_url or settings.draft_api_base_url).rstrip("/")
		self.token = token if token is not None else settings.draft_api_token
		headers = {"Content-Type": "application/json"}
		if self.token:
			headers["Authorization"] = f"Bearer {self.token}"
		self._client = httpx.AsyncClient(
			base_url=self.base_url,
			headers=headers,
			timeout=timeout or settings.draft_api_timeout_seconds,
			transport=transport,
		)

	async def save(self, resource_id: Optional[str], payload: DraftPayload) -> SaveResult:
		# No id yet: the store creates the draft and issues one
		url = f"/courses/{resource_id}/draft" if resource_id else "/courses/draft"
		try:
			r = await self._client.post(url, json=payload.to_request_body())
		except httpx.RequestError as net_err:
			logger.warning("Draft save could not reach %s: %s", self.base_url, net_err)
			return SaveResult(success=False, message=NETWORK_ERROR_MESSAGE)
		body = _json_body(r)
		if r.is_success and body.get("success", True):
			data = body.get("data") or {}
			return SaveResult(
				success=True,
				resource_id=data.get("id"),
				message=body.get("message") or "Draft saved successfully",
				status_code=r.status_code,
				data=data,
			)
		return SaveResult(
			success=False,
			message=_failure_message(r, body, "Failed to save draft"),
			status_code=r.status_code,
		)

	async def publish(self, resource_id: str, status: str = "Live & Selling") -> PublishResult:
		try:
			r = await self._client.post(f"/courses/{resource_id}/publish", json={"status": status})
		except httpx.RequestError as net_err:
			logger.warning("Publish could not reach %s: %s", self.base_url, net_err)
			return PublishResult(success=False, message=NETWORK_ERROR_MESSAGE)
		body = _json_body(r)
		if r.is_success and body.get("success", True):
			return PublishResult(
				success=True,
				message=body.get("message") or "Course published successfully",
				status_code=r.status_code,
				data=body.get("data") or {},
			)
		return PublishResult(
			success=False,
			message=_failure_message(r, body, "Failed to publish course"),
			status_code=r.status_code,
		)

	async def get_course(self, course_id: str) -> Dict[str, Any]:
		try:
			r = await self._client.get(f"/courses/{course_id}")
		except httpx.RequestError as net_err:
			raise WizardError(NETWORK_ERROR_MESSAGE) from net_err
		body = _json_body(r)
		if not r.is_success:
			raise WizardError(_failure_message(r, body, f"Failed to load course {course_id}"))
		return body.get("data") or {}

	async def aclose(self) -> None:
		await self._client.aclose()

	async def __aenter__(self) -> "DraftClient":
		return self

	async def __aexit__(self, *exc_info: Any) -> None:
		await self.aclose()
