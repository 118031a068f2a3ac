from dotenv import load_dotenv

load_dotenv(".env")

from contextlib import asynccontextmanager

import logfire
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from core.auth import ACCESS_TOKEN_HEADER, REFRESH_TOKEN_HEADER
from core.config import Settings, get_settings
from core.errors import register_exception_handlers
from core.tokens import TokenCodec
from database.database import Database
from routes import auth, public, user
from utils.state import State

state = State()


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        state.logger.info("Starting up...")
        app.state.db.open()
        logfire.instrument_sqlalchemy(engine=app.state.db.engine)
        yield
        app.state.db.close()
        state.logger.info("Shutting down...")

    app = FastAPI(
        title="Trippz Auth API",
        description="Accounts, sessions and token lifecycle for the Trippz travel platform",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.db = Database(settings.database_url)
    app.state.token_codec = TokenCodec(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_credentials=True,
        allow_origins=[settings.frontend_url],
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[ACCESS_TOKEN_HEADER, REFRESH_TOKEN_HEADER],
    )
    register_exception_handlers(app)

    logfire.instrument_fastapi(app, capture_headers=False)
    logfire.instrument_httpx()

    app.include_router(auth.router, prefix="/api/v1/auth")
    app.include_router(user.router, prefix="/api/v1/users")
    app.include_router(public.router, prefix="/api/v1/public")

    @app.get("/")
    async def root():
        return {"message": "Welcome to the Trippz Auth API"}

    return app


app = create_app()
