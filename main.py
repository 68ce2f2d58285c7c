from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging

from database import get_settings
from core.engine import MatchEngine
from api import rooms, surveys, matching, users

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: 建立引擎（含資料表）並啟動房間過期檢查
    engine = MatchEngine.from_settings(get_settings())
    app.state.engine = engine
    engine.start()
    yield
    # Shutdown: 停止背景 thread
    engine.stop()


app = FastAPI(
    title="Badminton Match Engine API",
    description="Partner matching, match rooms and post-match reputation for badminton players",
    version="1.0.0",
    lifespan=lifespan
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure this properly in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(rooms.router)
app.include_router(surveys.router)
app.include_router(matching.router)
app.include_router(users.router)


@app.get("/")
def root():
    return {"message": "Badminton Match Engine API", "status": "ok"}


@app.get("/health")
def health():
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn
    logging.basicConfig(level=logging.INFO)
    uvicorn.run(app, host="0.0.0.0", port=8000)
