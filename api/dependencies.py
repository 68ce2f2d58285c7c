"""
API 共用的 dependency
"""
from fastapi import Request

from core.engine import MatchEngine


def get_engine(request: Request) -> MatchEngine:
    """
    取得 lifespan 中建立的 MatchEngine

    測試時可以用 app.dependency_overrides 換成自己的引擎
    """
    return request.app.state.engine
