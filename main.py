"""
Question Generation Engine API — Main Application
Upload course materials, structure and chunk them, and run asynchronous
question generation jobs against them.
"""

from dotenv import load_dotenv
load_dotenv()

from contextlib import asynccontextmanager
from datetime import datetime, timezone
import logging
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from database.database import engine, Base, SessionLocal
from database import models  # noqa: F401  (register tables)
from routers import materials, generation_jobs

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s  %(levelname)s  %(message)s",
)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("openai").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup: create tables + uploads directory."""
    Base.metadata.create_all(bind=engine)
    os.makedirs(materials.UPLOAD_DIR, exist_ok=True)
    yield


app = FastAPI(
    title="Question Generation Engine API",
    description="Document structuring, token-budgeted chunking, quota distribution and asynchronous question generation",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("CORS_ORIGINS", "*").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(materials.router)
app.include_router(generation_jobs.router)


@app.get("/health")
def health_check():
    """API liveness plus a database round trip."""
    database = "healthy"
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
    except Exception as e:
        database = f"unhealthy: {e}"
    finally:
        db.close()
    return {
        "status": "healthy" if database == "healthy" else "degraded",
        "database": database,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "service": "question-generation-api",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=int(os.getenv("PORT", "8000")), reload=False)
