"""
Quiz Chain Solver API - FastAPI Server
Main entry point for the quiz solving service.
"""

import hmac
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse
from pydantic import BaseModel
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

from quizloop import exceptions
from quizloop.models import ConfigRecord, LogRecord
from quizloop.settings import Settings
from quizloop.store import RecordStore, build_store
from quizloop.tasks import ChainRunner, build_runner

# Configure logging
logging.basicConfig(
    level=Settings.from_env().log_level,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

ERROR_CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
}


class QuizRequest(BaseModel):
    """Request model for the quiz endpoint. Presence is checked by the handler."""
    email: Optional[str] = None
    secret: Optional[str] = None
    url: Optional[str] = None


class QuizResponse(BaseModel):
    """Acknowledgment returned before solving starts."""
    message: str
    url: str
    task_id: Optional[str] = None


def validate_request(request: QuizRequest):
    missing = [name for name in ('email', 'secret', 'url') if not getattr(request, name)]
    if missing:
        raise exceptions.ValidationError(f"Missing required fields: {', '.join(missing)}")


def authenticate(store: RecordStore, email: str, secret: str) -> ConfigRecord:
    """Load the caller's configuration and check the shared secret."""
    config = store.get_config(email)
    if config is None:
        raise exceptions.AuthError("Configuration not found")
    if not hmac.compare_digest(config.secret.encode('utf-8'), secret.encode('utf-8')):
        raise exceptions.AuthError("Invalid secret")
    return config


def create_app(settings: Optional[Settings] = None, store: Optional[RecordStore] = None,
               runner: Optional[ChainRunner] = None) -> FastAPI:
    """Build the API with its store and background runner."""
    settings = settings or Settings.from_env()
    store = store or build_store(settings)
    runner = runner or build_runner(settings, store)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        runner.shutdown(wait=False)

    app = FastAPI(
        title="Quiz Chain Solver API",
        description="Solves chains of quiz pages in the background and records every attempt",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.store = store
    app.state.runner = runner

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    @app.get("/")
    async def root():
        """Root endpoint with API documentation."""
        html = """
        <!DOCTYPE html>
        <html>
        <head><title>Quiz Chain Solver API</title></head>
        <body>
            <h1>Quiz Chain Solver API</h1>
            <p><b>POST</b> <code>/quiz</code> with <code>{"email": "...", "secret": "...", "url": "..."}</code></p>
            <p><b>GET</b> <code>/status/{task_id}</code> to follow a background chain</p>
            <p><b>GET</b> <code>/health</code> health check</p>
        </body>
        </html>
        """
        return HTMLResponse(content=html)

    @app.post("/quiz", response_model=QuizResponse)
    def handle_quiz(request: QuizRequest):
        """
        Main endpoint to start solving a quiz chain.

        - Returns 400 if the JSON body is invalid or a field is missing
        - Returns 403 if the email is unknown or the secret does not match
        - Returns 200 before solving starts; progress is written to the log store
        """
        validate_request(request)
        config = authenticate(store, request.email, request.secret)

        try:
            store.insert_log(LogRecord(
                email=request.email, quiz_url=request.url, log_level='info',
                message='Received quiz request', metadata={'url': request.url},
            ))
        except exceptions.StoreError as e:
            logger.error(f"Could not persist request log: {e}")
        task_id = runner.spawn(config, request.secret, request.url)

        return QuizResponse(message="Quiz processing started", url=request.url, task_id=task_id)

    @app.get("/status/{task_id}")
    async def get_task_status(task_id: str):
        """Get the status of a quiz chain task."""
        status = runner.status(task_id)
        if status is None:
            raise HTTPException(status_code=404, detail="Task not found")
        return status

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "version": "1.0.0"}

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request, exc):
        """Malformed JSON bodies are client errors, not 422s."""
        return JSONResponse(
            status_code=400,
            content={"error": "Invalid JSON", "details": jsonable_encoder(exc.errors())}
        )

    @app.exception_handler(exceptions.ValidationError)
    async def validation_exception_handler(request, exc):
        return JSONResponse(status_code=400, content={"error": str(exc)})

    @app.exception_handler(exceptions.AuthError)
    async def auth_exception_handler(request, exc):
        logger.warning(f"Rejected quiz request: {exc}")
        return JSONResponse(status_code=403, content={"error": str(exc)})

    @app.exception_handler(Exception)
    async def general_exception_handler(request, exc):
        """Handle general exceptions."""
        logger.error(f"Unexpected error: {str(exc)}")
        # Served outside CORSMiddleware, so the headers are set here
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error", "details": str(exc)},
            headers=ERROR_CORS_HEADERS,
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=7860)
