"""Main FastAPI application entry point."""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from negotiation_engine.config import CORS_ORIGINS
from negotiation_engine.database import engine, Base
from negotiation_engine.logger import setup_logging
from negotiation_engine.api.error_handlers import register_exception_handlers
from negotiation_engine.api.routes import router
# Import models to register them with SQLAlchemy Base
from negotiation_engine.models.domain import Pairing, Negotiation
from negotiation_engine.models.events import NegotiationEvent

setup_logging()

# Create database tables
Base.metadata.create_all(bind=engine)

# Create FastAPI app
app = FastAPI(
    title="Negotiation Engine",
    description="Bilateral compensation negotiation between the Provider and Seeker of a pairing.",
    version="0.1.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

# Include API routes
app.include_router(router, prefix="/api", tags=["Negotiations"])


# Health check
@app.get("/health")
def health_check():
    return {"status": "healthy", "service": "Negotiation Engine"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
