# main.py
import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import MongoClient, ASCENDING
from pymongo.errors import PyMongoError

from Connections.db_sql import engine
from Models.base import Base
from Models import auth_models, complaints_models  # noqa: F401  (register tables)
from middlewares.transaction_logger_middleware import TransactionLoggerMiddleware
from utils.complaint_feed import ComplaintFeed
from utils.mongo_index import ensure_index
from utils.transaction_logger import TRANSACTION_COLLECTION

# ── Routers
from routes.auth import router as auth_router
from routes.complaints import router as complaints_router

load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

MONGO_DB = os.getenv("MONGO_DB", "campus_grievance")


def _open_transaction_log(app: FastAPI):
    """Wire MongoDB transaction history; returns clients to close, or None."""
    mongo_uri = os.getenv("MONGO_URI")
    if not mongo_uri:
        logger.warning("MONGO_URI is not set; transaction history disabled")
        return None

    # Async client (for the logging middleware)
    am_client = AsyncIOMotorClient(mongo_uri)
    # Sync client (for indexes)
    sm_client = MongoClient(mongo_uri)

    # verify connection early (fail fast)
    try:
        sm_client.admin.command("ping")
    except PyMongoError as e:
        am_client.close()
        sm_client.close()
        raise RuntimeError(f"MongoDB ping failed: {e}") from e

    drop_mismatch = os.getenv("ALLOW_INDEX_DROP", "false").lower() == "true"
    ensure_index(
        sm_client[MONGO_DB][TRANSACTION_COLLECTION],
        [("timestamp", ASCENDING)],
        name="ts",
        unique=False,
        drop_if_mismatch=drop_mismatch,
    )

    app.state.mongo_db = am_client[MONGO_DB]
    return am_client, sm_client


@asynccontextmanager
async def lifespan(app: FastAPI):
    Base.metadata.create_all(bind=engine)
    clients = _open_transaction_log(app)
    try:
        yield
    finally:
        app.state.mongo_db = None
        if clients:
            for c in clients:
                c.close()


app = FastAPI(title="Campus Grievance API", lifespan=lifespan)
app.state.complaint_feed = ComplaintFeed()
app.state.mongo_db = None

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("CORS_ORIGINS", "*").split(","),
    allow_credentials=os.getenv("CORS_CREDENTIALS", "false").lower() == "true",
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(TransactionLoggerMiddleware)

# Register Routers
app.include_router(auth_router, prefix="/auth", tags=["Auth"])
app.include_router(complaints_router, prefix="/complaints", tags=["Complaints"])


@app.get("/")
async def root():
    return {"message": "Campus Grievance API is running!"}


@app.get("/healthz")
async def healthz():
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn

    # reload and workers>1 are incompatible; pick ONE
    uvicorn.run("main:app", host="0.0.0.0", port=8080, reload=True)
