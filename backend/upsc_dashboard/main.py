import asyncio
import logging

from fastapi import FastAPI
from sqlalchemy.exc import SQLAlchemyError

from .cleanup import run_maintenance
from .db import SessionLocal, init_db
from .errors import register_exception_handlers
from .settings import settings
from .routers import health, auth, tenants, tenant_data
from .routers import admin, admin_coupons, admin_subscriptions
from .routers import coupons, subscriptions
from .routers import questions
from .routers import wellness, knowledge_base
from .routers import calendar, sync
from .routers import planning
from .routers import analytics
from .routers import ai_assistant

logger = logging.getLogger(__name__)

MAINTENANCE_INTERVAL = 24 * 60 * 60


def _maintain_once() -> None:
	db = SessionLocal()
	try:
		run_maintenance(db)
	except SQLAlchemyError:
		db.rollback()
		logger.exception("maintenance run failed")
	finally:
		db.close()


async def _maintenance_loop():
	# Run once at startup, then daily
	while True:
		await asyncio.to_thread(_maintain_once)
		await asyncio.sleep(MAINTENANCE_INTERVAL)


def create_app() -> FastAPI:
	logging.basicConfig(level=settings.log_level)
	app = FastAPI(title=settings.app_name)
	register_exception_handlers(app)

	app.include_router(health.router)
	app.include_router(auth.router)
	app.include_router(tenants.router)
	app.include_router(tenant_data.router)
	app.include_router(admin_coupons.router)
	app.include_router(admin_subscriptions.router)
	app.include_router(admin.router)
	app.include_router(coupons.router)
	app.include_router(subscriptions.router)
	app.include_router(questions.router)
	app.include_router(wellness.router)
	app.include_router(knowledge_base.router)
	app.include_router(calendar.router)
	app.include_router(sync.router)
	app.include_router(planning.syllabus_router)
	app.include_router(planning.revision_router)
	app.include_router(analytics.router)
	app.include_router(ai_assistant.router)

	@app.get("/info")
	def info():
		return {"status": "ok", "app": settings.app_name, "gemini_configured": bool(settings.gemini_api_key)}

	@app.on_event("startup")
	async def startup_event():
		init_db()
		app.state.maintenance = asyncio.create_task(_maintenance_loop())

	@app.on_event("shutdown")
	async def shutdown_event():
		task = getattr(app.state, "maintenance", None)
		if task is not None:
			task.cancel()

	return app


app = create_app()
