from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from adhesion.api import auth, public, member, secretary, documents
from adhesion.core.config import settings
from adhesion.core.errors import LifecycleError, ValidationFailed
import logging

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)

# Get logger for this module
logger = logging.getLogger(__name__)
logger.info("Starting %s membership API", settings.ASSOCIATION_CODE)


app = FastAPI(
    title="Association Membership API",
    description="Membership applications, review and profile amendments",
    version="1.0.0",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.FRONTEND_URL, "http://localhost:3000", "http://127.0.0.1:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(LifecycleError)
async def lifecycle_error_handler(request: Request, exc: LifecycleError):
    """Render business refusals with their stable code and hints."""
    logger.warning(
        "%s %s refused: code=%s context=%s",
        request.method, request.url.path, exc.code, exc.context,
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    """Report request validation errors in the same envelope, without echoing input values."""
    fields = []
    for err in exc.errors():
        fields.append({
            "field": ".".join(str(part) for part in err.get("loc", ()) if part != "body"),
            "message": err.get("msg"),
            "type": err.get("type"),
        })
    error = ValidationFailed(
        message="Request validation failed.",
        hints=["Correct the listed fields and try again."],
        context={"fields": fields},
    )
    return JSONResponse(status_code=422, content=error.to_dict())


# Include routers
app.include_router(auth.router)
app.include_router(public.router)
app.include_router(member.router)
app.include_router(secretary.router)
app.include_router(documents.router)


@app.get("/")
def root():
    """Root endpoint."""
    return {"message": "Association Membership API", "version": "1.0.0"}


@app.get("/api/health")
def health_check():
    """Health check endpoint: API and database connectivity."""
    from adhesion.db.base import get_db
    from sqlalchemy import text
    from datetime import datetime, timezone

    db_status = "unreachable"
    db_error = None
    db_gen = get_db()
    try:
        db = next(db_gen)
        db.execute(text("SELECT 1"))
        db_status = "connected"
    except Exception as e:
        db_error = str(e)
    finally:
        db_gen.close()

    status = "healthy" if db_status == "connected" else "degraded"

    return {
        "status": status,
        "version": "1.0.0",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "services": {
            "api": "ok",
            "database": db_status,
        },
        **({"database_error": db_error} if db_error else {})
    }
