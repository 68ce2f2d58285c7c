"""
Matching API Endpoints

職責：
1. 搜尋配對候選人（依策略計分排序）
2. 登錄候選人資料到記憶體候選人池
"""
from fastapi import APIRouter, Depends, HTTPException
import logging

from api.dependencies import get_engine
from core.engine import MatchEngine
from core.exceptions import UnavailableError, ValidationError
from schemas import CandidateProfile, SearchRequest, SearchResponse, StatusResponse
from services.providers import InMemoryCandidatePool
from services.ranking_service import best_match
from services.time_slot_service import require_valid

router = APIRouter(prefix="/api/matching", tags=["matching"])
logger = logging.getLogger(__name__)


@router.post("/search", response_model=SearchResponse)
def search(request: SearchRequest, engine: MatchEngine = Depends(get_engine)):
    """
    搜尋候選人

    流程：
    1. 驗證請求的時間段（1-8 小時、14 天內）
    2. 由 MatchCandidateRanker 過濾並排序
    3. 返回排序好的列表與最佳配對

    空結果不是錯誤；沒有定位時依設定回傳 503 或略過地理圍欄
    """
    try:
        require_valid(request.time_slot, engine.clock())
        candidates = engine.ranker.rank(request)
        return SearchResponse(candidates=candidates, best_match=best_match(candidates, engine.ranker.strategy))

    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except UnavailableError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to search candidates: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.put("/candidates", response_model=StatusResponse)
def upsert_candidate(profile: CandidateProfile, engine: MatchEngine = Depends(get_engine)):
    """新增或更新候選人（只有記憶體候選人池支援）"""
    pool = engine.candidate_pool
    if not isinstance(pool, InMemoryCandidatePool):
        raise HTTPException(status_code=405, detail="Candidate pool is read-only")

    pool.upsert(profile)
    logger.info(f"Candidate {profile.user.id} registered in the pool")
    return StatusResponse(status="ok")
