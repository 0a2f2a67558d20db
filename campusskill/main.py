# campusskill/main.py
import logging
import sys
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import exc as sa_exc

from campusskill.config import settings
from campusskill.database import engine, Base, check_db_connection
from campusskill.errors import CampusSkillError
from campusskill.realtime.hub import hub
from campusskill.routers import auth, tasks, users, chat, realtime

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger(__name__)


def create_application() -> FastAPI:
    app = FastAPI(title=settings.APP_NAME, version="1.0")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.CLIENT_URL],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include Routers
    app.include_router(auth.router, prefix="/api")
    app.include_router(tasks.router, prefix="/api")
    app.include_router(users.router, prefix="/api")
    app.include_router(chat.router, prefix="/api")
    app.include_router(realtime.router)

    @app.exception_handler(CampusSkillError)
    async def campusskill_error_handler(request: Request, exc: CampusSkillError):
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "code": exc.code, "message": exc.message},
        )

    # Create DB Tables (for demo only, use Alembic in prod)
    @app.on_event("startup")
    async def startup_event():
        async with engine.begin() as conn:
            try:
                await conn.run_sync(Base.metadata.create_all)
            except sa_exc.IntegrityError as e:
                msg = str(getattr(e, "orig", e))
                if "already exists" in msg:
                    logger.warning("Ignored duplicate DDL error during create_all: %s", msg)
                else:
                    raise

    @app.on_event("shutdown")
    async def shutdown_event():
        await engine.dispose()

    @app.get("/api/health")
    async def health():
        db_ok = await check_db_connection()
        return JSONResponse(
            status_code=200 if db_ok else 503,
            content={
                "success": db_ok,
                "database": "connected" if db_ok else "disconnected",
                "realtime_connections": hub.connection_count,
            },
        )

    return app


app = create_application()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("campusskill.main:app", host="0.0.0.0", port=8000, reload=True)
