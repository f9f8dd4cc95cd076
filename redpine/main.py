"""FastAPI application - serves the analysis API."""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from redpine.api.upload import router as upload_router

app = FastAPI(title="Red Pine Audio Analysis", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(upload_router, prefix="/api")


@app.get("/api/health")
async def health():
    return {"status": "ok"}


def run():
    import uvicorn
    from redpine.config import settings
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(
        "redpine.main:app",
        host=settings.host,
        port=settings.port,
    )
