import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.middleware.sessions import SessionMiddleware

from . import config
from .database import init_db, make_engine, make_session_factory
from .errors import PhotoShareError, ServerError
from .repositories import PhotoRepository, UserRepository
from .routes import router
from .storage import FileStorage, PhotoCleaner
from .votes import VoteCoordinator

__version__ = "1.0.0"

logger = logging.getLogger(__name__)


def configure_logging(level=None):
    logging.basicConfig(
        level=level or config.LOG_LEVEL,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def create_app(database_url=None, media_dir=None, secret_key=None, engine=None) -> FastAPI:
    """
    Builds the application. The engine, repositories, vote coordinator and file
    cleaner are created here once and shared through app.state.
    """
    configure_logging()
    media_dir = media_dir or config.MEDIA_DIR

    # --- Database Configuration ---
    if engine is None:
        engine = make_engine(database_url or config.DATABASE_URL, timeout=config.DB_TIMEOUT, echo=config.LOG_SQL)
    init_db(engine)
    session_factory = make_session_factory(engine)

    storage = FileStorage(media_dir)
    cleaner = PhotoCleaner(storage)

    @asynccontextmanager
    async def lifespan(app):
        yield
        cleaner.shutdown(wait=False)
        engine.dispose()

    app = FastAPI(
        title="photoshare",
        description="Share, tag, vote on and search photos.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.engine = engine
    app.state.storage = storage
    app.state.cleaner = cleaner
    app.state.photos = PhotoRepository(session_factory, cleaner)
    app.state.users = UserRepository(session_factory)
    app.state.votes = VoteCoordinator(session_factory)

    # --- Middleware ---
    app.add_middleware(SessionMiddleware, secret_key=secret_key or config.SECRET_KEY)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # --- Error Handling ---
    @app.exception_handler(PhotoShareError)
    def handle_photoshare_error(request: Request, exc: PhotoShareError):
        if isinstance(exc, ServerError):
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message, exc_info=exc)
            return JSONResponse({"detail": ServerError.default_message}, status_code=500)
        return JSONResponse({"detail": exc.message}, status_code=exc.status_code)

    @app.exception_handler(Exception)
    def handle_unexpected_error(request: Request, exc: Exception):
        logger.exception("%s %s failed", request.method, request.url.path, exc_info=exc)
        return JSONResponse({"detail": ServerError.default_message}, status_code=500)

    # --- Routes and Media ---
    app.include_router(router)
    app.mount("/media", StaticFiles(directory=media_dir), name="media")

    return app
