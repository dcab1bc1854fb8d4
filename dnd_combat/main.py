"""FastAPI application entry point."""
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from dnd_combat.config import get_settings
from dnd_combat.middleware.error_handler import setup_error_handlers
from dnd_combat.api.routes import combat

settings = get_settings()

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


app = FastAPI(
    title="D&D Combat Engine",
    description="Turn-based D&D combat with initiative, action economy and AI narration",
    version="0.1.0",
)


# Middleware to log ALL requests
@app.middleware("http")
async def log_requests(request: Request, call_next):
    logger.debug(f"[REQUEST] {request.method} {request.url.path}")
    response = await call_next(request)
    logger.debug(f"[RESPONSE] {request.method} {request.url.path} -> {response.status_code}")
    return response

# CORS middleware for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        settings.FRONTEND_URL,
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://localhost:5173",  # Vite
        "http://127.0.0.1:5173",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Setup structured error handlers
setup_error_handlers(app, debug=settings.DEBUG)


@app.get("/")
async def root():
    """Health check endpoint."""
    return {"status": "online", "game": "D&D Combat Engine", "version": "0.1.0"}


@app.get("/health")
async def health_check():
    """Detailed health check."""
    return {
        "status": "healthy",
        "narration_enabled": settings.NARRATION_ENABLED,
        "api_key_configured": bool(settings.ANTHROPIC_API_KEY),
        "debug_mode": settings.DEBUG
    }


# Routes
app.include_router(combat.router, prefix="/api/combat", tags=["combat"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("dnd_combat.main:app", host=settings.HOST, port=settings.PORT, reload=settings.DEBUG)
