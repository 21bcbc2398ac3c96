# File: pdf_architect/api/api.py
from fastapi import APIRouter

from pdf_architect.api.endpoints import documents

api_router = APIRouter(prefix="/api")
api_router.include_router(documents.router, prefix="/documents", tags=["documents"])
