"""
API路由汇总
"""

from fastapi import APIRouter

from . import article_sessions

api_router = APIRouter()

api_router.include_router(article_sessions.router, prefix="/api/articles")
