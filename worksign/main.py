"""Main FastAPI application entry point."""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from worksign.api.error_handlers import register_error_handlers
from worksign.api.routes import router
from worksign.core.config import get_settings
from worksign.core.logging import setup_logging
from worksign.database import SessionLocal, init_db
# Import models to register them with SQLAlchemy Base
from worksign.models.audit import TicketHistory
from worksign.models.directory import Team, TeamMembership, User
from worksign.models.domain import ProgressEntry, ShareLink, Ticket
from worksign.services.share_links import migrate_legacy_links

settings = get_settings()
setup_logging(settings.log_level)

# Create FastAPI app
app = FastAPI(
    title="worksign - Field Work Sign-off",
    description="Daily progress, field officer sign-off links and final admin signature for field-work tickets.",
    version="0.1.0"
)

# Enable CORS for local development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)

# Include API routes
app.include_router(router, prefix="/api", tags=["worksign"])


@app.on_event("startup")
def on_startup() -> None:
    init_db()
    db = SessionLocal()
    try:
        migrate_legacy_links(db)
    finally:
        db.close()


# Health check
@app.get("/health")
def health_check():
    return {"status": "healthy", "service": "worksign"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.host, port=settings.port)
