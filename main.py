"""
Medication Safety Engine

Checks a new prescription against the patient's active medications and
allergies before it is written:
- Drug-drug and drug-allergy alerts ranked by clinical severity
- Blocking of high-risk prescriptions unless a documented override is given
- Safe same-class alternatives
- Audit trail of every committed prescribing decision
"""
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from medsafety.config import settings
from medsafety.api.safety_routes import router as safety_router
from medsafety.database.connection import db_manager

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    description="""
    Prescribing-time medication safety checks:

    * **Evaluate** - Drug-drug and drug-allergy alerts for a candidate prescription
    * **Prescribe** - Commit, block, or commit with a documented override
    * **Alternatives** - Same-class substitutes without blocking alerts
    * **Interaction check** - Interactions among a list of medications
    """,
    version=settings.VERSION,
    docs_url="/api/docs",
    redoc_url="/api/redoc"
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(safety_router)


@app.on_event("startup")
async def startup_event():
    """Initialize database on startup"""
    logger.info(f"Starting {settings.APP_NAME} {settings.VERSION}...")
    db_manager.init_database()
    logger.info(f"Database initialized ({db_manager.dialect_name})")
    logger.info("API documentation available at /api/docs")


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    database = "ok"
    try:
        with db_manager.session_scope() as db:
            db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error(f"Health check database probe failed: {e}")
        database = "unavailable"

    return {
        "status": "healthy" if database == "ok" else "degraded",
        "version": settings.VERSION,
        "services": {
            "database": database
        }
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level="info"
    )
