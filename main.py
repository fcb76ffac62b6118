from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging

from database import Base, SessionLocal, engine, settings
from api import admin, events, game, marketing, reservations, selections
from core.round_manager import RoundManager

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: 建立資料表，完全沒有回合時建立 Round #1
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        current = RoundManager.ensure_active_round(db)
        logger.info(f"Current round is {current.round_number} ({current.status.value})")
    finally:
        db.close()
    yield


app = FastAPI(
    title="Fundraiser Squares API",
    description="Backend API for the 65-square fundraiser raffle board",
    version="1.0.0",
    lifespan=lifespan
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(game.router)
app.include_router(reservations.router)
app.include_router(selections.router)
app.include_router(admin.router)
app.include_router(marketing.router)
app.include_router(events.router)


@app.get("/")
def root():
    return {"message": "Fundraiser Squares API", "status": "ok"}


@app.get("/health")
def health():
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
