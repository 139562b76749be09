"""Merge the session and the step snapshots into one complete draft document.

Every save sends the whole document (overwrite, not patch): absent values are
replaced by documented defaults and disabled groups are sent explicitly.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .session import NOT_SET, WizardSession
from .snapshots import (
    ADDITIONAL_STEP,
    PAYMENT_STEP,
    AdditionalDetails,
    PaymentDetails,
    SnapshotRegistry,
    clamp_percentage,
    non_negative_int,
)

logger = logging.getLogger(__name__)

UNTITLED_COURSE = "Untitled course"
DEFAULT_DESCRIPTION = "Course description will be added later"
DEFAULT_CERTIFICATE_TITLE = "Certificate of Completion"
DEFAULT_CERTIFICATE_DESCRIPTION = "This is to certify that [Name] has successfully completed the course"

RESOURCE_TYPES: Dict[str, Tuple[str, ...]] = {
    "image": ("jpg", "jpeg", "png", "gif", "webp", "svg", "bmp"),
    "video": ("mp4", "avi", "mov", "wmv", "flv", "webm", "mkv"),
    "audio": ("mp3", "wav", "ogg", "aac", "m4a", "flac", "wma"),
    "document": ("pdf", "doc", "docx", "xls", "xlsx", "ppt", "pptx", "txt", "rtf", "odt", "ods", "odp"),
    "archive": ("zip", "rar", "7z", "tar", "gz", "bz2"),
}


class PayloadModel(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)


class ResourcePayload(PayloadModel):
    name: str
    type: str
    url: str = ""
    size: int = 0
    download_count: int = 0


class LessonPayload(PayloadModel):
    title: str
    description: str = ""
    type: str = "Video"
    duration: int = 0
    order: int
    is_unlocked: bool = True
    content: Dict[str, Any] = Field(default_factory=dict)
    resources: Tuple[ResourcePayload, ...] = ()


class ModulePayload(PayloadModel):
    title: str
    description: str = ""
    order: int
    lessons: Tuple[LessonPayload, ...] = ()


class CertificateSettings(PayloadModel):
    enabled: bool = False
    template: str = "1"
    title: str = DEFAULT_CERTIFICATE_TITLE
    description: str = DEFAULT_CERTIFICATE_DESCRIPTION
    completion_percentage: int = 100
    application_logo_enabled: bool = True
    signatures: Tuple[Dict[str, Any], ...] = ()

    @classmethod
    def disabled(cls) -> "CertificateSettings":
        return cls()


class DraftPayload(PayloadModel):
    """The canonical document sent to the draft store. Built fresh for every save."""

    resource_id: Optional[str] = Field(default=None, exclude=True)
    name: str
    subtitle: str = ""
    description: str
    category: str
    level: str
    language: str
    tags: Tuple[str, ...] = ()
    visibility: str = "Public"
    cover_image: Optional[str] = None
    modules: Tuple[ModulePayload, ...] = ()
    status: str = "Draft"
    certificate: CertificateSettings = Field(default_factory=CertificateSettings.disabled)
    pricing: PaymentDetails = Field(default_factory=PaymentDetails.disabled)
    additional_details: AdditionalDetails = Field(default_factory=AdditionalDetails.disabled)

    @property
    def has_title(self) -> bool:
        return bool(self.name) and self.name != UNTITLED_COURSE

    @property
    def lesson_count(self) -> int:
        return sum(len(m.lessons) for m in self.modules)

    def to_request_body(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _has_title(item: Mapping[str, Any]) -> bool:
    return bool(_text(item.get("title")))


def resource_type(file_name: str) -> str:
    ext = file_name.rsplit(".", 1)[-1].lower() if "." in file_name else ""
    for kind, extensions in RESOURCE_TYPES.items():
        if ext in extensions:
            return kind
    return "other"


def _resources(items: Optional[Iterable[Mapping[str, Any]]]) -> Tuple[ResourcePayload, ...]:
    resources: List[ResourcePayload] = []
    for item in items or []:
        name = item.get("name") or item.get("originalName") or "Untitled"
        resources.append(
            ResourcePayload(
                name=name,
                type=item.get("type") or resource_type(item.get("name") or item.get("originalName") or ""),
                url=item.get("url") or item.get("path") or "",
                size=non_negative_int(item.get("size")),
                download_count=non_negative_int(item.get("downloadCount")),
            )
        )
    return tuple(resources)


def _quiz_questions(questions: Iterable[Mapping[str, Any]]) -> List[Dict[str, Any]]:
    prepared: List[Dict[str, Any]] = []
    for q in questions:
        if not q or not _text(q.get("question")):
            continue
        options = [opt for opt in q.get("options") or [] if opt and _text(opt.get("text"))]
        option_texts = [_text(opt.get("text")) for opt in options]
        kind = q.get("type")
        correct: Any = ""
        if kind == "single":
            flagged = next((opt for opt in options if opt.get("isCorrect")), None)
            correct = _text(flagged.get("text")) if flagged else (option_texts[0] if option_texts else "")
        elif kind == "multiple":
            correct = [_text(opt.get("text")) for opt in options if opt.get("isCorrect")]
            if not correct and option_texts:
                correct = [option_texts[0]]
        question: Dict[str, Any] = {
            "question": _text(q.get("question")),
            "type": "multiple-choice" if kind in ("single", "multiple") else "text",
            "options": option_texts,
            "correctAnswer": correct,
            "points": q.get("points") or 10,
        }
        if _text(q.get("explanation")):
            question["explanation"] = _text(q.get("explanation"))
        prepared.append(question)
    return prepared


def _lesson_content(lesson: Mapping[str, Any]) -> Dict[str, Any]:
    content: Dict[str, Any] = dict(lesson.get("content") or {})
    kind = lesson.get("type")

    if lesson.get("preClassMessage"):
        content["preClassMessage"] = lesson["preClassMessage"]
    if lesson.get("postClassMessage"):
        content["postClassMessage"] = lesson["postClassMessage"]

    if kind == "Video" and lesson.get("videos"):
        first = lesson["videos"][0] or {}
        video = first.get("video") or {}
        thumbnail = first.get("thumbnail") or {}
        if video.get("url"):
            content["videoUrl"] = video["url"]
        if thumbnail.get("url"):
            content["thumbnailUrl"] = thumbnail["url"]

    if kind == "Text" and _text(lesson.get("description")):
        content["textContent"] = lesson["description"]

    if kind == "Assignment" and lesson.get("assignmentFields"):
        fields = lesson["assignmentFields"]
        if fields.get("instructions"):
            content["instructions"] = fields["instructions"]
        if fields.get("submissionType"):
            content["submissionType"] = fields["submissionType"]
        if fields.get("maxFileSize") is not None:
            content["maxFileSize"] = non_negative_int(fields["maxFileSize"]) or 10
        if isinstance(fields.get("allowedFileTypes"), list):
            content["allowedFileTypes"] = [t for t in fields["allowedFileTypes"] if _text(t)]

    if kind == "Audio" and lesson.get("audioFiles"):
        audio_files = [
            {
                "url": audio["url"],
                "name": audio.get("name") or audio["url"].rsplit("/", 1)[-1] or "Audio",
                "size": non_negative_int(audio.get("size")),
                "storagePath": audio.get("storagePath") or audio.get("path"),
            }
            for audio in lesson["audioFiles"]
            if audio and audio.get("url")
        ]
        if audio_files:
            content["audioFiles"] = audio_files
            content["audioUrl"] = audio_files[0]["url"]

    if kind == "Live" and lesson.get("liveFields"):
        live = lesson["liveFields"]
        content["meetingLink"] = live.get("customLink") or ""
        content["meetingPlatform"] = live.get("meetingLink") or "Custom Link"
        start = _parse_datetime(live.get("startDateTime"))
        if start is not None:
            content["startDateTime"] = start.isoformat()
            if live.get("duration"):
                minutes = non_negative_int(live["duration"])
                try:
                    content["endDateTime"] = (start + timedelta(minutes=minutes)).isoformat()
                except OverflowError:
                    logger.warning("Live session duration %r out of range, end time left unset", live["duration"])

    if kind == "Quiz" and lesson.get("quizQuestions"):
        content["questions"] = _quiz_questions(lesson["quizQuestions"])
        if lesson.get("timeLimit"):
            content["timeLimit"] = non_negative_int(lesson["timeLimit"]) or 30
        if lesson.get("passingScore"):
            content["passingScore"] = non_negative_int(lesson["passingScore"]) or 70

    return content


def _parse_datetime(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value))
    except ValueError:
        return None


def prepare_modules(modules: Optional[Iterable[Mapping[str, Any]]]) -> Tuple[ModulePayload, ...]:
    """Drop untitled modules and lessons and fill in order, type and content."""
    prepared: List[ModulePayload] = []
    for module_index, module in enumerate(m for m in modules or [] if _has_title(m)):
        lessons = []
        for lesson_index, lesson in enumerate(item for item in module.get("lessons") or [] if _has_title(item)):
            lessons.append(
                LessonPayload(
                    title=lesson["title"],
                    description=lesson.get("description") or "",
                    type=lesson.get("type") or "Video",
                    duration=non_negative_int(lesson.get("duration")),
                    order=lesson["order"] if lesson.get("order") is not None else lesson_index + 1,
                    is_unlocked=lesson["isUnlocked"] if lesson.get("isUnlocked") is not None else True,
                    content=_lesson_content(lesson),
                    resources=_resources(lesson.get("resources")),
                )
            )
        prepared.append(
            ModulePayload(
                title=module["title"],
                description=module.get("description") or "",
                order=module["order"] if module.get("order") is not None else module_index + 1,
                lessons=tuple(lessons),
            )
        )
    return tuple(prepared)


def _certificate(session: WizardSession) -> CertificateSettings:
    if not session.get("certificate_enabled"):
        return CertificateSettings.disabled()
    return CertificateSettings(
        enabled=True,
        template=_text(session.get("certificate_template")) or "1",
        title=_text(session.get("certificate_title")) or DEFAULT_CERTIFICATE_TITLE,
        description=_text(session.get("certificate_description")) or DEFAULT_CERTIFICATE_DESCRIPTION,
        completion_percentage=int(clamp_percentage(session.get("completion_percentage"), 100)),
        application_logo_enabled=bool(session.get("application_logo_enabled", True)),
        signatures=tuple(dict(s) for s in session.get("signatures") or [] if s.get("enabled", True)),
    )


def build_draft_payload(session: WizardSession, registry: Optional[SnapshotRegistry] = None) -> DraftPayload:
    snapshots = registry.pull_all() if registry is not None else {}
    pricing = snapshots.get(PAYMENT_STEP)
    additional = snapshots.get(ADDITIONAL_STEP)

    title = _text(session.get("title"))
    description = _text(session.get("description"))
    if not description:
        description = f"Course: {title}" if title else DEFAULT_DESCRIPTION

    return DraftPayload(
        resource_id=session.resource_id,
        name=title or UNTITLED_COURSE,
        subtitle=_text(session.get("subtitle")),
        description=description,
        category=_text(session.get("category")) or NOT_SET,
        level=_text(session.get("level")) or NOT_SET,
        language=_text(session.get("language")) or NOT_SET,
        tags=tuple(_text(t) for t in session.get("tags") or [] if _text(t)),
        visibility=_text(session.get("visibility")) or "Public",
        cover_image=session.get("cover") or None,
        modules=prepare_modules(session.get("modules")),
        certificate=_certificate(session),
        pricing=pricing if isinstance(pricing, PaymentDetails) else PaymentDetails.disabled(),
        additional_details=additional if isinstance(additional, AdditionalDetails) else AdditionalDetails.disabled(),
    )
