from fastapi import APIRouter

from pipeline_board.api.routes import pipeline

api_router = APIRouter()
api_router.include_router(pipeline.router)
