from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from examprep.config import settings
from examprep.db import init_all_databases
from examprep.errors import ExamPrepError


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_all_databases(settings.data_dir)
    from examprep.db.sqlite import get_db
    from examprep.services.quiz_engine import expire_idle_attempts

    async for db in get_db():
        await expire_idle_attempts(db, timedelta(minutes=settings.attempt_idle_minutes))
    yield


async def _exam_prep_error(request: Request, exc: ExamPrepError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"detail": str(exc)})


def create_app() -> FastAPI:
    application = FastAPI(
        title="ExamPrep Backend", version="0.1.0", lifespan=lifespan
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    application.add_exception_handler(ExamPrepError, _exam_prep_error)

    from examprep.routers import analytics, flashcards, health, questions, quiz

    application.include_router(health.router)
    application.include_router(
        flashcards.router, prefix="/flashcards", tags=["flashcards"]
    )
    application.include_router(
        questions.router, prefix="/questions", tags=["questions"]
    )
    application.include_router(
        quiz.router, prefix="/quiz", tags=["quiz"]
    )
    application.include_router(
        analytics.router, prefix="/analytics", tags=["analytics"]
    )

    return application


app = create_app()
