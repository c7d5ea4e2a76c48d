"""Intern attendance service - FastAPI entrypoint."""
import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import ServerSelectionTimeoutError
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.config import settings
from app.db import db_shutdown, db_startup
from app.errors import AttendanceError
from app.api import attendance
from app.api.deps import get_current_actor
from app.services.attendance_store import AttendanceStore, BeanieAttendanceRepository
from app.services.daily_attendance import DailyAttendanceGenerator, run_daily_attendance_cron
from app.services.roles import BeanieActorDirectory, ensure_default_roles
from app.services.schedule_graph import BeanieScheduleGraph

logging.basicConfig(level=settings.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)


def _daily_generator() -> DailyAttendanceGenerator:
    return DailyAttendanceGenerator(
        BeanieScheduleGraph(),
        AttendanceStore(BeanieAttendanceRepository()),
        BeanieActorDirectory(),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        await db_startup()
        await ensure_default_roles()
    except ServerSelectionTimeoutError as e:
        logger.error("MongoDB is not reachable at %s", settings.mongodb_url)
        raise RuntimeError(
            "MongoDB connection failed. Check that MongoDB is running and MONGODB_URL is correct."
        ) from e

    cron_task = None
    if settings.attendance_cron_enabled:
        cron_task = asyncio.create_task(run_daily_attendance_cron(_daily_generator))
    yield
    if cron_task:
        cron_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await cron_task
    await db_shutdown()


app = FastAPI(
    title=settings.app_name,
    description="Daily intern attendance with schedule-derived mentor access",
    version="0.1.0",
    lifespan=lifespan,
)


@app.exception_handler(AttendanceError)
async def attendance_exception_handler(request: Request, exc: AttendanceError):
    return JSONResponse(status_code=exc.status_code, content={"message": exc.message})


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    fields = ", ".join(".".join(str(p) for p in e["loc"][1:]) or str(e["loc"][0]) for e in errors)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"message": f"Invalid or missing fields: {fields}", "detail": jsonable_errors(errors)},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"message": str(exc) or "Internal server error"})


def jsonable_errors(errors: list[dict]) -> list[dict]:
    return [{"loc": list(e["loc"]), "msg": e["msg"], "type": e["type"]} for e in errors]


app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.cors_origins.split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# API routes; every attendance route requires a super admin, admin or mentor.
app.include_router(
    attendance.router,
    prefix="/api/attendance",
    tags=["Attendance"],
    dependencies=[Depends(get_current_actor)],
)


@app.get("/health")
def health():
    return {"status": "ok", "app": settings.app_name}
