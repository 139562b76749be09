from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Mapping, Optional, Tuple


DETAIL_FIELDS: Tuple[str, ...] = (
    "title",
    "subtitle",
    "description",
    "category",
    "level",
    "language",
    "tags",
    "visibility",
    "cover",
)
CURRICULUM_FIELDS: Tuple[str, ...] = ("modules",)
CERTIFICATE_FIELDS: Tuple[str, ...] = (
    "certificate_enabled",
    "certificate_template",
    "certificate_title",
    "certificate_description",
    "completion_percentage",
    "application_logo_enabled",
    "signatures",
)

# Steps whose values live directly in the session (no snapshot provider)
STEP_FIELDS: Dict[str, Tuple[str, ...]] = {
    "details": DETAIL_FIELDS,
    "curriculum": CURRICULUM_FIELDS,
    "certificate": CERTIFICATE_FIELDS,
}

NOT_SET = "NA"


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


class WizardSession:
    """The in-memory course document edited by every wizard step.

    ``dirty`` is raised by every edit and cleared only by the save coordinator
    once the store confirms a save covering the latest edit. ``revision`` counts
    edits so a save that was in flight while the user kept typing does not
    clear the flag for edits it never carried.
    """

    def __init__(self, fields: Optional[Mapping[str, Any]] = None, resource_id: Optional[str] = None) -> None:
        self._fields: Dict[str, Any] = dict(fields or {})
        self._resource_id = resource_id
        self.dirty = False
        self.revision = 0
        self.last_saved_at: Optional[datetime] = None

    @property
    def resource_id(self) -> Optional[str]:
        return self._resource_id

    @property
    def fields(self) -> Dict[str, Any]:
        return dict(self._fields)

    def get(self, key: str, default: Any = None) -> Any:
        return self._fields.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._fields[key] = value
        self.mark_dirty()

    def update(self, values: Optional[Mapping[str, Any]] = None, **kwargs: Any) -> None:
        changes = dict(values or {}, **kwargs)
        if not changes:
            return
        self._fields.update(changes)
        self.mark_dirty()

    def step_fields(self, step: str) -> Dict[str, Any]:
        return {key: self._fields[key] for key in STEP_FIELDS.get(step, ()) if key in self._fields}

    def mark_dirty(self) -> None:
        self.dirty = True
        self.revision += 1

    def adopt_resource_id(self, resource_id: Optional[str]) -> bool:
        """Record the identifier issued by the draft store (save coordinator only).

        The first identifier wins; later answers never replace it and an empty
        answer never clears it.
        """
        if not resource_id or self._resource_id is not None:
            return False
        self._resource_id = resource_id
        return True

    def confirm_saved(self, revision: int, saved_at: datetime) -> None:
        """Clear ``dirty`` if no edit happened after ``revision`` was read (save coordinator only)."""
        self.last_saved_at = saved_at
        if self.revision == revision:
            self.dirty = False

    def has_identifying_content(self) -> bool:
        for key in ("title", "subtitle", "description", "category"):
            if not _blank(self._fields.get(key)):
                return True
        modules = self._fields.get("modules") or []
        has_modules = any(not _blank(m.get("title")) for m in modules)
        has_lessons = any(m.get("lessons") for m in modules)
        return has_modules or has_lessons

    def validate_details(self) -> Dict[str, str]:
        errors: Dict[str, str] = {}
        if _blank(self._fields.get("title")):
            errors["title"] = "Course title is required."
        if _blank(self._fields.get("category")):
            errors["category"] = "Category is required."
        if _blank(self._fields.get("level")):
            errors["level"] = "Level is required."
        if _blank(self._fields.get("language")):
            errors["language"] = "Language is required."
        return errors

    @classmethod
    def from_course(cls, course: Mapping[str, Any]) -> "WizardSession":
        """Hydrate a clean session from a course returned by the draft store."""

        def _shown(value: Any) -> str:
            # "NA" marks a field the author never filled in
            if _blank(value) or value == NOT_SET:
                return ""
            return str(value)

        fields: Dict[str, Any] = {
            "title": course.get("name") or "",
            "subtitle": course.get("subtitle") or "",
            "description": course.get("description") or "",
            "category": _shown(course.get("category")),
            "level": _shown(course.get("level")),
            "language": _shown(course.get("language")),
            "tags": list(course.get("tags") or []),
            "visibility": course.get("visibility") or "Public",
            "cover": course.get("coverImage"),
            "modules": [dict(m) for m in course.get("modules") or []],
        }
        certificate = course.get("certificate") or {}
        if certificate:
            fields.update(
                certificate_enabled=bool(certificate.get("enabled")),
                certificate_template=certificate.get("template", "1"),
                certificate_title=certificate.get("title", ""),
                certificate_description=certificate.get("description", ""),
                completion_percentage=certificate.get("completionPercentage", 100),
                application_logo_enabled=certificate.get("applicationLogoEnabled", True),
                signatures=list(certificate.get("signatures") or []),
            )
        return cls(fields, resource_id=course.get("id") or course.get("_id"))
