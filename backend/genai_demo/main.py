import logging
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from dotenv import load_dotenv
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded

# Load environment variables
load_dotenv()

from genai_demo.api.routes import analytics, chat, conversations, file_search, settings
from genai_demo.api import websocket
import genai_demo.core.config as config_module
from genai_demo.core.errors import (
    ConfigurationError,
    ErrorCategory,
    NotFoundError,
    RemoteServiceError,
    ValidationError,
    describe_error,
)
from genai_demo.services.analytics import AnalyticsTracker
from genai_demo.services.conversation_store import ConversationStore
from genai_demo.services.event_bus import event_bus
from genai_demo.services.file_search_session import FileSearchSession

logging.basicConfig(
    level=logging.DEBUG if config_module.settings.debug else logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Rate limiter setup
limiter = Limiter(key_func=get_remote_address)

app = FastAPI(
    title="GenAI Demo API",
    version="1.0.0",
    description="Backend API for the chat and File Search demo"
)

# Attach limiter to app state
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=config_module.settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(chat.router, prefix="/api")
app.include_router(file_search.router, prefix="/api")
app.include_router(conversations.router, prefix="/api")
app.include_router(analytics.router, prefix="/api")
app.include_router(settings.router, prefix="/api")
app.include_router(websocket.router)


# ── Error translation ─────────────────────────────────────────────────

@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError):
    return JSONResponse(status_code=400, content={"success": False, "error": exc.message})


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=400, content={"success": False, "error": exc.message})


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"success": False, "error": exc.message})


@app.exception_handler(RemoteServiceError)
async def remote_error_handler(request: Request, exc: RemoteServiceError):
    status_code, user_message, category = describe_error(exc)
    logger.error("Provider error on %s %s: %s", request.method, request.url.path, exc)
    content = {
        "success": False,
        "error": exc.message if category == ErrorCategory.UNKNOWN else user_message,
        "category": category.value,
        "statusCode": status_code,
    }
    if config_module.settings.debug:
        content["details"] = {"message": exc.message, "providerStatus": exc.status_code, **exc.details}
    return JSONResponse(status_code=status_code, content=content)


@app.get("/")
async def root():
    return {
        "name": "GenAI Demo API",
        "version": "1.0.0",
        "docs": "/docs"
    }


@app.get("/health")
async def health():
    return {"status": "healthy", "hasApiKey": config_module.settings.has_api_key}


@app.on_event("startup")
async def startup():
    """Create the long-lived service objects."""
    current = config_module.settings
    app.state.analytics = AnalyticsTracker(current.amplitude_api_key, api_url=current.amplitude_api_url)
    app.state.file_search = FileSearchSession.from_settings(
        current, on_event=event_bus.publish, analytics=app.state.analytics
    )
    app.state.conversations = ConversationStore(Path(current.state_dir))
    if not current.has_api_key:
        logger.warning("GEMINI_API_KEY is not configured; provider routes will be disabled")


@app.on_event("shutdown")
async def shutdown():
    """Stop every poller and close HTTP clients."""
    await app.state.file_search.aclose()
    await app.state.analytics.aclose()
