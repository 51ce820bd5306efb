from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from assets_tracker.api import api_router
from assets_tracker.core.config import settings
from assets_tracker.core.db import init_db
from assets_tracker.core.exceptions import AuthorizationError
from assets_tracker.core.logger import logger
from assets_tracker.core.redis_client import test_redis_connection


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    logger.info("Database initialized")
    test_redis_connection()
    yield
    logger.info("Shutting down")


app = FastAPI(lifespan=lifespan, title="Assets Tracker API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
    allow_credentials=True
)


@app.exception_handler(AuthorizationError)
async def authorization_error_handler(request: Request, exc: AuthorizationError):
    return JSONResponse(status_code=401, content={"detail": str(exc)})


app.include_router(api_router)


@app.get("/")
async def root():
    return {"message": "Assets Tracker API is running", "version": "1.0.0"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
