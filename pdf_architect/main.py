# File: pdf_architect/main.py
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging

from pdf_architect.core.config import settings
from pdf_architect.api.api import api_router

# Set up logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

if not settings.GEMINI_API_KEY:
    logger.warning("GEMINI_API_KEY is not set; only manual edits will work.")

# Create FastAPI app
app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.PROJECT_VERSION
)

# Configure CORS with settings
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition"],
)

# Include API router
app.include_router(api_router)

@app.get("/")
def read_root():
    return {"status": "PDF Architect API is running"}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
