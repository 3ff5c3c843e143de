"""
FastAPI application for the SheetCheck evaluation service
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from sheetcheck.config import settings
from sheetcheck.core import BaseAPIException, logger
from sheetcheck.routes import documents, evaluation, grades, scorer
from sheetcheck.services import close_services

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events"""
    logger.info("Starting SheetCheck API...")
    logger.info(f"Environment: {'development' if settings.DEBUG else 'production'}")
    if not settings.SUPABASE_URL:
        logger.warning("SUPABASE_URL is not set; using in-memory storage")

    yield

    logger.info("Shutting down SheetCheck API...")
    await close_services()


app = FastAPI(
    title="SheetCheck API",
    description="Automated answer-sheet evaluation with vision OCR and LLM scoring",
    version=VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Global exception handlers
@app.exception_handler(BaseAPIException)
async def api_exception_handler(request: Request, exc: BaseAPIException):
    """Handle custom API exceptions"""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "error": exc.detail,
            "error_code": exc.error_code
        }
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions"""
    logger.error(f"Unexpected error: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "An unexpected error occurred",
            "error_code": "INTERNAL_ERROR"
        }
    )


# Include routers
app.include_router(evaluation.router, prefix="/api/evaluations", tags=["Evaluations"])
app.include_router(documents.router, prefix="/api", tags=["Documents"])
app.include_router(grades.router, prefix="/api/grades", tags=["Grades"])
app.include_router(scorer.router, prefix="/api/scorer", tags=["Scorer"])


@app.get("/")
async def root():
    """API root endpoint"""
    return {
        "name": "SheetCheck API",
        "version": VERSION,
        "status": "running",
        "docs": "/docs",
        "redoc": "/redoc"
    }


@app.get("/health")
async def health_check():
    """Health check endpoint for monitoring"""
    return {
        "status": "healthy",
        "version": VERSION,
        "storage": "supabase" if settings.SUPABASE_URL else "memory",
        "scorer": "http" if settings.SCORER_URL else settings.LLM_PROVIDER,
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "sheetcheck.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level="info"
    )
