from datetime import datetime, timedelta, timezone
from typing import Optional
import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException
from fastapi.security import OAuth2PasswordBearer, OAuth2PasswordRequestForm
from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..db import get_db
from ..models import AuthSession, AuthUser
from ..settings import settings

router = APIRouter(prefix="/auth", tags=["auth"])

logger = logging.getLogger(__name__)
logging.getLogger('passlib').setLevel(logging.ERROR)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token")

# bcrypt ignores everything past 72 bytes
BCRYPT_MAX_BYTES = 72


class Token(BaseModel):
	access_token: str
	token_type: str = "bearer"


class Instructor(BaseModel):
	"""The authenticated course author. Owns the drafts it creates."""
	username: str


class RegisterRequest(BaseModel):
	username: str
	password: str
	email: Optional[str] = None


def _truncate(password: str) -> str:
	raw = password.encode('utf-8')[:BCRYPT_MAX_BYTES]
	return raw.decode('utf-8', errors='ignore')


def hash_password(password: str) -> str:
	return pwd_context.hash(_truncate(password))


def verify_password(password: str, password_hash: str) -> bool:
	return pwd_context.verify(_truncate(password), password_hash)


def _seed_instructor(db: Session) -> None:
	# Dev convenience: SEED_USERNAME / SEED_PASSWORD become a real account on first login
	username, password = settings.seed_username, settings.seed_password_plain
	if not username or not password:
		return
	if db.get(AuthUser, username) is None:
		db.add(AuthUser(username=username, password_hash=hash_password(password)))
		db.commit()
		logger.info("Seeded instructor account %s", username)


def authenticate(db: Session, username: str, password: str) -> Optional[Instructor]:
	_seed_instructor(db)
	row = db.get(AuthUser, username)
	if row is None or not verify_password(password, row.password_hash):
		return None
	return Instructor(username=row.username)


def create_access_token(username: str, session_id: str, expires_delta: Optional[timedelta] = None) -> str:
	if expires_delta is None:
		expires_delta = timedelta(minutes=max(1, settings.access_token_expire_minutes))
	claims = {
		"sub": username,
		"jti": session_id,
		"exp": datetime.now(timezone.utc) + expires_delta,
	}
	return jwt.encode(claims, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def _decode(token: str) -> tuple[str, str]:
	try:
		claims = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
	except JWTError:
		raise HTTPException(status_code=401, detail="Could not validate credentials")
	username, session_id = claims.get("sub"), claims.get("jti")
	if not username or not session_id:
		raise HTTPException(status_code=401, detail="Could not validate credentials")
	return username, session_id


def _active_session(db: Session, token: str) -> AuthSession:
	username, session_id = _decode(token)
	row = db.get(AuthSession, session_id)
	# Logged out or purged sessions stop authenticating even with an unexpired token
	if row is None or row.username != username:
		raise HTTPException(status_code=401, detail="Session expired, please log in again")
	return row


def get_current_user(token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)) -> Instructor:
	row = _active_session(db, token)
	row.last_activity_at = datetime.utcnow()
	db.commit()
	return Instructor(username=row.username)


@router.post("/token", response_model=Token)
async def login(form_data: OAuth2PasswordRequestForm = Depends(), db: Session = Depends(get_db)):
	instructor = authenticate(db, form_data.username, form_data.password)
	if instructor is None:
		raise HTTPException(status_code=401, detail="Incorrect username or password")
	session_id = uuid.uuid4().hex
	db.add(AuthSession(session_id=session_id, username=instructor.username))
	db.commit()
	return Token(access_token=create_access_token(instructor.username, session_id))


@router.post("/logout")
async def logout(token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)):
	row = _active_session(db, token)
	db.delete(row)
	db.commit()
	return {"success": True, "message": "Logged out"}


@router.get("/me", response_model=Instructor)
async def me(instructor: Instructor = Depends(get_current_user)):
	return instructor


@router.post("/register", status_code=201)
async def register(req: RegisterRequest, db: Session = Depends(get_db)):
	username = req.username.strip()
	if not 3 <= len(username) <= 128:
		raise HTTPException(status_code=400, detail="username must be 3-128 characters")
	if not req.password:
		raise HTTPException(status_code=400, detail="password is required")
	if db.get(AuthUser, username) is not None:
		raise HTTPException(status_code=409, detail="username already exists")
	db.add(AuthUser(username=username, password_hash=hash_password(req.password), email=(req.email or "").strip() or None))
	db.commit()
	logger.info("Registered instructor %s", username)
	return {"success": True, "data": {"username": username}, "message": "Account created"}
