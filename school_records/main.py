import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from motor.motor_asyncio import AsyncIOMotorDatabase

from . import accounts, attendance, config, homework, students, teachers
from .database import connect
from .errors import register_exception_handlers

logger = logging.getLogger(__name__)

SERVICES = (
    attendance.AttendanceService,
    homework.HomeworkService,
    students.StudentService,
    teachers.TeacherService,
)


def configure_logging(level: str = config.LOG_LEVEL) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


async def ensure_indexes(db: AsyncIOMotorDatabase) -> None:
    await accounts.ensure_indexes(db)
    for service in SERVICES:
        await service(db).ensure_indexes()


def create_app(database: Optional[AsyncIOMotorDatabase] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging()
        app.state.db = database if database is not None else connect()
        await ensure_indexes(app.state.db)
        logger.info("Indexes ensured for %d record collections", len(SERVICES))
        yield

    app = FastAPI(title="School Records API", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(app)

    app.include_router(accounts.router)
    app.include_router(attendance.router)
    app.include_router(homework.router)
    app.include_router(students.router)
    app.include_router(teachers.router)

    @app.get("/")
    def read_root():
        return {"message": "School Records API running"}

    @app.get("/health")
    def health():
        return {"ok": True, "time": datetime.now(timezone.utc).isoformat()}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
