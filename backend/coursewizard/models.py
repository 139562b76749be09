from __future__ import annotations
import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Integer, Text, ForeignKey
from .db import Base


def _new_course_id() -> str:
	return uuid.uuid4().hex


class AuthUser(Base):
	__tablename__ = "auth_users"
	# Primary key is username
	username = Column(String(128), primary_key=True, index=True)
	password_hash = Column(String(256), nullable=False)
	email = Column(String(256), nullable=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class AuthSession(Base):
	__tablename__ = "auth_sessions"
	# jti of the issued token
	session_id = Column(String(64), primary_key=True)
	username = Column(String(128), nullable=False, index=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	last_activity_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class Course(Base):
	__tablename__ = "courses"
	id = Column(String(32), primary_key=True, default=_new_course_id)
	# Human readable code, e.g. C-JAN-0001
	course_code = Column(String(32), nullable=True, unique=True, index=True)
	instructor = Column(String(128), nullable=False, index=True)
	name = Column(String(256), nullable=False, default="Untitled course")
	status = Column(String(32), nullable=False, default="Draft")
	duration = Column(Integer, default=0, nullable=False)
	payload_json = Column(Text, nullable=False, default="{}")  # JSON string of the last saved draft
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	last_updated = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class CoursePublishRecord(Base):
	__tablename__ = "course_publish_history"
	id = Column(Integer, primary_key=True, autoincrement=True)
	course_id = Column(String(32), ForeignKey("courses.id"), nullable=False, index=True)
	version = Column(Integer, nullable=False)
	status = Column(String(32), nullable=False)
	snapshot_json = Column(Text, nullable=False)
	published_at = Column(DateTime, default=datetime.utcnow, nullable=False)
