from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from cvmatch.dependencies import ServiceContainer, build_container
from cvmatch.middleware.error_handlers import ExceptionHandlerMiddleware, PerformanceMiddleware
from cvmatch.routers import chat, cvs, jobs
from cvmatch.services.db import init_indexes
from cvmatch.utils.logging_config import get_logger
from cvmatch.utils.utils import utcnow

logger = get_logger(__name__)

VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan context manager"""
    logger.info("CV Match API starting up...")
    owned = getattr(app.state, "container", None) is None
    if owned:
        app.state.container = build_container()

    container: ServiceContainer = app.state.container
    if container.db is not None:
        logger.info("Initializing database indexes...")
        try:
            await init_indexes(container.db)
        except Exception as e:
            logger.warning(f"Database index initialization had issues: {e}")
            logger.info("Application will continue - some operations may be slower without indexes")

    logger.info("CV Match API startup completed")
    yield

    logger.info("CV Match API shutting down...")
    if owned:
        container.close()
    logger.info("CV Match API shutdown completed")


def create_app(container: Optional[ServiceContainer] = None) -> FastAPI:
    app = FastAPI(title="CV Match API", version=VERSION, lifespan=lifespan)
    if container is not None:
        app.state.container = container

    # Exception handler should be the outermost middleware
    app.add_middleware(PerformanceMiddleware, slow_request_threshold=2.0)
    app.add_middleware(ExceptionHandlerMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/")
    @app.head("/")
    async def root():
        return {"message": "Welcome to the CV Match API", "version": VERSION, "status": "ok"}

    @app.get("/health")
    @app.head("/health")
    async def health_check():
        return {"status": "healthy", "timestamp": utcnow().isoformat()}

    app.include_router(cvs.router, prefix="/api/cvs", tags=["cvs"])
    app.include_router(jobs.router, prefix="/api/jobs", tags=["jobs"])
    app.include_router(chat.router, prefix="/api/chat", tags=["chat"])
    return app


def run():
    import uvicorn
    from cvmatch.utils.logging_config import configure_for_environment

    configure_for_environment()
    uvicorn.run(create_app(), host="0.0.0.0", port=8000)


if __name__ == "__main__":
    run()
