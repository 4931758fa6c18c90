import logging
from contextlib import asynccontextmanager
from typing import Optional
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from peofiles.api.errors import handle_domain_error, handle_request_validation_error
from peofiles.api.routes import files, offices
from peofiles.core.config import Settings, settings as default_settings
from peofiles.core.errors import PeoFilesError
from peofiles.core.scheduler import start_scheduler, stop_scheduler
from peofiles.services.file_service import FileService, build_file_service

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None, file_service: Optional[FileService] = None) -> FastAPI:
    """
    Create the FastAPI application.

    Without file_service the store named by settings is opened on startup
    and auto-deletes run on the background scheduler. A service passed in
    is used as is and left open on shutdown.
    """
    settings = settings or default_settings
    logging.basicConfig(level=settings.LOG_LEVEL)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Startup: open the store and start the background scheduler
        Shutdown: drop pending auto-deletes and stop the scheduler
        """
        owns_service = app.state.file_service is None
        if owns_service:
            start_scheduler()
            app.state.file_service = build_file_service(settings)
            logger.info(f"Using {settings.STORAGE_BACKEND} storage backend")
        yield
        if owns_service:
            app.state.file_service.close()
            app.state.file_service = None
            stop_scheduler()

    app = FastAPI(
        title="PEO Files API",
        description="Upload, browse and download scanned documents per PEO office and adjuster",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.file_service = file_service

    # CORS middleware - the upload page is served from another origin
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.get_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # All routes are prefixed with /api
    app.include_router(files.router, prefix="/api")
    app.include_router(offices.router, prefix="/api")

    app.add_exception_handler(PeoFilesError, handle_domain_error)
    app.add_exception_handler(RequestValidationError, handle_request_validation_error)

    @app.get("/")
    async def root():
        """Root endpoint - API information"""
        return {"message": "PEO Files API", "version": "1.0.0"}

    @app.get("/health")
    async def health():
        """Health check endpoint - used by monitoring/deployment tools"""
        return {"status": "healthy"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=3000)
