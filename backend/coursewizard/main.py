import asyncio
import logging

from fastapi import FastAPI

from .db import Base, engine, get_db, ensure_schema
from .cleanup import purge_idle_sessions
from .routers import auth
from .routers import courses

logger = logging.getLogger(__name__)

app = FastAPI(title="Course Wizard API")
app.include_router(auth.router)
app.include_router(courses.router)


@app.get("/info")
def root():
	return {"status": "ok"}


def _purge_once() -> None:
	db = next(get_db())
	try:
		removed = purge_idle_sessions(db)
		if removed:
			logger.info("Purged %d idle auth sessions", removed)
	except Exception:
		logger.exception("Session cleanup failed")
	finally:
		db.close()


async def _cleanup_watcher():
	# Daily, after the run at startup
	while True:
		await asyncio.sleep(24 * 60 * 60)
		_purge_once()


@app.on_event("startup")
async def startup_event():
	# Initialize DB schema
	Base.metadata.create_all(bind=engine)
	# Apply lightweight dev migrations
	ensure_schema()
	_purge_once()
	asyncio.create_task(_cleanup_watcher())
