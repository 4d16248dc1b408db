# FastAPI application entry point

from __future__ import annotations

import logging
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from landmarker.routers import landmarks

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(levelname)s | %(name)s | %(message)s",
)

app = FastAPI(
    title="Pose Landmarker",
    version="1.0.0",
    description="Upload an image or video → get per-pose landmarks, world landmarks and segmentation masks.",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(landmarks.router, prefix="/api", tags=["landmarks"])


@app.get("/api/health")
async def health():
    return {"status": "ok"}
