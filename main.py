from typing import Callable, Optional
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session
from apis import auth, projects, tasks, messages, websockets
from helpers.errors import persistence_error_handler
from settings import ENVIRONMENT
from ws_service.chat import ChatEngine


def create_app(session_factory: Optional[Callable[[], Session]] = None) -> FastAPI:
    """Build the API. `session_factory` feeds the WebSocket layer; REST uses `get_session`."""
    app = FastAPI(
        title="Team Board API",
        version="1.0.0",
        docs_url="/api/docs",
        redoc_url="/api/redoc"
    )

    # CORS middleware for development
    if ENVIRONMENT == "development":
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )
    else:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["http://localhost:3000", "http://localhost:5173"],
            allow_credentials=True,
            allow_methods=["GET", "POST", "PUT", "DELETE"],
            allow_headers=["*"],
        )

    app.add_exception_handler(SQLAlchemyError, persistence_error_handler)

    app.state.chat_engine = ChatEngine(session_factory) if session_factory else ChatEngine()

    app.include_router(auth.router, prefix="/api")
    app.include_router(projects.router, prefix="/api")
    app.include_router(tasks.router, prefix="/api")
    app.include_router(messages.router, prefix="/api")
    app.include_router(websockets.router, prefix="/api")

    @app.get("/api/health")
    async def health():
        """API health check."""
        return {"message": "Team Board API is running"}

    return app


app = create_app()
