from __future__ import annotations
import json
import logging
import re
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from .auth import Instructor, get_current_user
from ..db import get_db
from ..models import Course, CoursePublishRecord


router = APIRouter(prefix="/courses", tags=["courses"])

logger = logging.getLogger(__name__)

DRAFT_STATUS = "Draft"
PUBLISHED_STATUSES: List[str] = ["Published", "Live & Selling", "Paused", "Archived"]
QUESTION_TYPES: List[str] = ["multiple-choice", "true-false", "text"]
NOT_SET = "NA"


class PublishRequest(BaseModel):
    status: str = "Live & Selling"


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _find_course(db: Session, course_id: str) -> Optional[Course]:
    # Accept either the primary id or the human course code
    course = db.get(Course, course_id)
    if course is None:
        course = db.query(Course).filter(Course.course_code == course_id).first()
    return course


def _get_owned_course(db: Session, course_id: str, user: Instructor, action: str) -> Course:
    course = _find_course(db, course_id)
    if course is None:
        raise HTTPException(status_code=404, detail="Course not found")
    if course.instructor != user.username:
        raise HTTPException(status_code=403, detail=f"You do not have permission to {action} this course")
    return course


def generate_course_code(db: Session, creator: str) -> str:
    """C-{first 3 letters of the creator}-{running number}, e.g. C-JAN-0007."""
    initials = re.sub(r"\s+", "", creator)[:3].upper().ljust(3, "X")
    prefix = f"C-{initials}-"
    last = 0
    for (code,) in db.query(Course.course_code).filter(Course.course_code.like(f"{prefix}%")).all():
        suffix = (code or "")[len(prefix):]
        if suffix.isdigit():
            last = max(last, int(suffix))
    return f"{prefix}{last + 1:04d}"


def validate_quiz_questions(questions: Any) -> Optional[str]:
    if not isinstance(questions, list):
        return "Questions must be an array"
    if not questions:
        return "Quiz must have at least one question"
    for i, q in enumerate(questions, start=1):
        if not isinstance(q, dict) or _blank(q.get("question")) or not isinstance(q.get("question"), str):
            return f"Question {i}: Question text is required"
        kind = q.get("type")
        if kind not in QUESTION_TYPES:
            return f"Question {i}: Invalid question type. Must be one of: {', '.join(QUESTION_TYPES)}"
        answer = q.get("correctAnswer")
        if kind == "multiple-choice":
            options = q.get("options")
            if not isinstance(options, list) or len(options) < 2:
                return f"Question {i}: Multiple-choice questions must have at least 2 options"
            for j, option in enumerate(options, start=1):
                if not isinstance(option, str) or not option.strip():
                    return f"Question {i}, Option {j}: Option text cannot be empty"
            if answer is None:
                return f"Question {i}: Correct answer is required"
            answers = answer if isinstance(answer, list) else [answer]
            if not answers:
                return f"Question {i}: At least one correct answer is required"
            for a in answers:
                if not isinstance(a, str):
                    return f"Question {i}: Correct answer must be a string or array of strings"
                if a not in options:
                    return f"Question {i}: Correct answer \"{a}\" is not in the options list"
        elif kind == "true-false":
            if answer not in (True, False, "true", "false"):
                return f"Question {i}: True-false questions must have correctAnswer as true or false"
        elif kind == "text":
            if _blank(answer) or not isinstance(answer, (str, int, float)):
                return f"Question {i}: Text questions must have a correct answer"
    return None


def _validate_quizzes(modules: Any) -> Optional[str]:
    for module in modules or []:
        for lesson in (module or {}).get("lessons") or []:
            content = (lesson or {}).get("content") or {}
            if lesson.get("type") == "Quiz" and "questions" in content:
                error = validate_quiz_questions(content["questions"])
                if error:
                    return error
    return None


def _apply_draft_defaults(data: Dict[str, Any]) -> None:
    # Drafts may be saved half-filled (e.g. on an abrupt exit); "NA" marks what is missing
    if _blank(data.get("name")):
        data["name"] = "Untitled course"
    if _blank(data.get("description")):
        name = data.get("name")
        data["description"] = f"Course: {name}" if name and name != "Untitled course" else "Course description will be added later"
    for key in ("category", "level", "language"):
        if _blank(data.get(key)):
            data[key] = NOT_SET
    additional = data.get("additionalDetails")
    if isinstance(additional, dict) and additional.get("affiliateRewardPercentage") is not None:
        try:
            pct = float(additional["affiliateRewardPercentage"])
        except (TypeError, ValueError):
            pct = 0.0
        additional["affiliateRewardPercentage"] = max(0.0, min(100.0, pct))


def _total_duration(modules: Any) -> int:
    total = 0
    for module in modules or []:
        for lesson in (module or {}).get("lessons") or []:
            try:
                total += max(0, int(lesson.get("duration") or 0))
            except (TypeError, ValueError):
                continue
    return total


def _course_out(course: Course) -> Dict[str, Any]:
    data: Dict[str, Any] = json.loads(course.payload_json or "{}")
    data.update(
        {
            "id": course.id,
            "courseCode": course.course_code,
            "instructor": course.instructor,
            "status": course.status,
            "duration": course.duration,
            "createdAt": course.created_at.isoformat() if course.created_at else None,
            "lastUpdated": course.last_updated.isoformat() if course.last_updated else None,
        }
    )
    return data


def _publish_snapshot(data: Dict[str, Any]) -> Dict[str, Any]:
    modules = data.get("modules") if isinstance(data.get("modules"), list) else []
    pricing = data.get("pricing") or {}
    additional = data.get("additionalDetails") or {}
    return {
        "details": {
            "name": data.get("name") or "",
            "subtitle": data.get("subtitle") or "",
            "description": (data.get("description") or "")[:200],
            "category": data.get("category") or "",
            "level": data.get("level") or "",
            "language": data.get("language") or "",
        },
        "curriculum": {
            "moduleCount": len(modules),
            "modules": [
                {"title": m.get("title") or f"Module {i}", "lessonCount": len(m.get("lessons") or [])}
                for i, m in enumerate(modules, start=1)
            ],
        },
        "pricing": {
            "listedPrice": pricing.get("listedPrice") or {},
            "sellingPrice": pricing.get("sellingPrice") or {},
        },
        "faqCount": len(additional.get("faqs") or []),
        "affiliateActive": bool(additional.get("affiliateActive")),
    }


def _save_draft(db: Session, user: Instructor, body: Dict[str, Any], course: Optional[Course]) -> Dict[str, Any]:
    data = dict(body)
    for key in ("id", "courseCode", "instructor", "duration", "createdAt", "lastUpdated"):
        data.pop(key, None)
    _apply_draft_defaults(data)
    error = _validate_quizzes(data.get("modules"))
    if error:
        raise HTTPException(status_code=400, detail=f"Quiz validation failed: {error}")

    created = course is None
    if course is None:
        course = Course(instructor=user.username, status=DRAFT_STATUS)
        db.add(course)
    if not course.course_code:
        course.course_code = generate_course_code(db, user.username)
    # Once published, saving a draft never reverts the status
    if course.status not in PUBLISHED_STATUSES:
        course.status = DRAFT_STATUS
    data["status"] = course.status

    course.name = data["name"]
    course.duration = _total_duration(data.get("modules"))
    course.payload_json = json.dumps(data)
    course.last_updated = datetime.utcnow()
    db.commit()
    db.refresh(course)
    logger.info(
        "%s draft %s (%s): %r, %d modules",
        "Created" if created else "Updated",
        course.id,
        course.course_code,
        course.name,
        len(data.get("modules") or []),
    )
    return {"success": True, "data": _course_out(course), "message": "Draft saved successfully"}


@router.post("/draft")
async def create_draft(
    body: Dict[str, Any] = Body(...),
    user: Instructor = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return _save_draft(db, user, body, None)


@router.post("/{course_id}/draft")
async def update_draft(
    course_id: str,
    body: Dict[str, Any] = Body(...),
    user: Instructor = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    course = _get_owned_course(db, course_id, user, "update")
    return _save_draft(db, user, body, course)


@router.post("/{course_id}/publish")
async def publish_course(
    course_id: str,
    req: PublishRequest,
    user: Instructor = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    course = _get_owned_course(db, course_id, user, "publish")
    if req.status not in PUBLISHED_STATUSES:
        raise HTTPException(status_code=400, detail=f"status must be one of {PUBLISHED_STATUSES}")
    data: Dict[str, Any] = json.loads(course.payload_json or "{}")
    if any(_blank(data.get(key)) or data.get(key) == NOT_SET for key in ("name", "description", "category", "level")):
        raise HTTPException(
            status_code=400,
            detail="Course must have name, description, category, and level before publishing",
        )
    version = db.query(CoursePublishRecord).filter(CoursePublishRecord.course_id == course.id).count() + 1
    db.add(
        CoursePublishRecord(
            course_id=course.id,
            version=version,
            status=req.status,
            snapshot_json=json.dumps(_publish_snapshot(data)),
        )
    )
    course.status = req.status
    data["status"] = req.status
    course.payload_json = json.dumps(data)
    db.commit()
    db.refresh(course)
    logger.info("Published course %s as %r (version %d)", course.id, req.status, version)
    out = _course_out(course)
    out["publishVersion"] = version
    return {"success": True, "data": out, "message": "Course published successfully"}


@router.get("/{course_id}")
async def get_course(course_id: str, user: Instructor = Depends(get_current_user), db: Session = Depends(get_db)):
    course = _get_owned_course(db, course_id, user, "view")
    return {"success": True, "data": _course_out(course)}


@router.get("")
async def list_courses(user: Instructor = Depends(get_current_user), db: Session = Depends(get_db)):
    rows = (
        db.query(Course)
        .filter(Course.instructor == user.username)
        .order_by(Course.last_updated.desc())
        .all()
    )
    return {
        "success": True,
        "data": [
            {
                "id": c.id,
                "courseCode": c.course_code,
                "name": c.name,
                "status": c.status,
                "lastUpdated": c.last_updated.isoformat() if c.last_updated else None,
            }
            for c in rows
        ],
    }
