import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ochat.api.endpoints.admin import router as admin_router
from ochat.api.endpoints.dm import router as dm_router
from ochat.api.endpoints.files import router as files_router
from ochat.api.endpoints.messages import router as messages_router
from ochat.api.endpoints.polls import router as polls_router
from ochat.api.endpoints.users import router as users_router
from ochat.core.config import settings
from ochat.core.database import Base, engine
from ochat.services.file_service import start_file_sweeper, stop_file_sweeper
import ochat.models  # noqa: F401  (registers tables on Base.metadata)

logger = logging.getLogger("uvicorn.error")


# Lifespan event handler
@asynccontextmanager
async def lifespan(app: FastAPI):
    Base.metadata.create_all(bind=engine)
    logger.info(
        "OChat ready (active window=%ss, heartbeat=%ss)",
        settings.ACTIVE_WINDOW_SECONDS,
        settings.HEARTBEAT_INTERVAL_SECONDS,
    )

    # Expire uploaded files in the background
    start_file_sweeper()

    yield

    stop_file_sweeper()


app = FastAPI(title="OChat API", version="1.0.0", lifespan=lifespan)


# CORS middleware
_default_origins = [
    "http://localhost",
    "http://localhost:3000",
    "http://127.0.0.1:3000",
    "http://localhost:5173",
    "http://127.0.0.1:5173",
]
_extra_origins = settings.extra_origins

app.add_middleware(
    CORSMiddleware,
    allow_origins=_default_origins + _extra_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(users_router)
app.include_router(messages_router)
app.include_router(dm_router)
app.include_router(polls_router)
app.include_router(files_router)
app.include_router(admin_router)


@app.get("/")
async def root():
    return {
        "message": "OChat API",
        "links": {"health": "/health", "docs": "/docs"},
    }


# Health check endpoint
@app.get("/health")
async def health_check():
    return {"message": "server is running"}


if __name__ == "__main__":
    import uvicorn
    import argparse

    parser = argparse.ArgumentParser()
    parser.add_argument("--port", type=int, default=3001)
    args = parser.parse_args()

    uvicorn.run(app, host="0.0.0.0", port=args.port)
