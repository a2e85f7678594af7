from __future__ import annotations

import os
import time

from apscheduler.schedulers.background import BackgroundScheduler
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from database import Base, engine
from logging_config import generate_request_id, get_logger, request_id_var, setup_logging
from routers.announcements import router as announcements_router
from routers.auth import router as auth_router
from routers.dashboard import router as dashboard_router
from routers.events import router as events_router
from routers.partners import router as partners_router
from routers.students import router as students_router
from utils.errors import AppError
from utils.otp_service import run_sweep


setup_logging()
logger = get_logger("http")

OTP_SWEEP_SECONDS = int(os.getenv("OTP_SWEEP_SECONDS", "60"))

app = FastAPI(title="Blind Date Backend")

app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("CORS_ORIGINS", "*").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
)

# Create tables (simple project; no migrations).
Base.metadata.create_all(bind=engine)

app.include_router(auth_router, prefix="/api")
app.include_router(students_router, prefix="/api")
app.include_router(events_router, prefix="/api")
app.include_router(partners_router, prefix="/api")
app.include_router(announcements_router, prefix="/api")
app.include_router(dashboard_router, prefix="/api")


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    req_id = request.headers.get("X-Request-ID") or generate_request_id()
    request_id_var.set(req_id)
    start = time.time()

    response = await call_next(request)

    response.headers["X-Request-ID"] = req_id
    logger.info(
        "%s %s -> %s",
        request.method,
        request.url.path,
        response.status_code,
        extra={"context": {"duration_ms": round((time.time() - start) * 1000, 2)}},
    )
    return response


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.detail)
    body = {"ok": False, "title": exc.title, "error": exc.detail}
    body.update(exc.extra())
    return JSONResponse(status_code=exc.status_code, content=body)


@app.on_event("startup")
def _start_scheduler():
    # Expired OTPs are swept once a minute; verification checks expiry on its own.
    sched = BackgroundScheduler(timezone=os.getenv("TZ", "UTC"))
    sched.add_job(run_sweep, "interval", seconds=OTP_SWEEP_SECONDS, id="cleanup_expired_otps", replace_existing=True)
    sched.start()
    app.state._scheduler = sched


@app.on_event("shutdown")
def _stop_scheduler():
    sched = getattr(app.state, "_scheduler", None)
    if sched:
        sched.shutdown(wait=False)


@app.get("/")
def root():
    return {"status": "Backend running"}
