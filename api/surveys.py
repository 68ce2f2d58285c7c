"""
Survey API Endpoints

職責：
1. 提交賽後問卷（提交後立即更新被評價者的聲譽）
2. 建立 / 查詢待填問卷
3. 查詢聲譽
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
import logging

from api.dependencies import get_engine
from core.engine import MatchEngine
from core.exceptions import NotFoundError, StateConflictError, UnavailableError, ValidationError
from schemas import (
    MatchParticipant,
    MatchSurvey,
    PendingSurvey,
    PendingSurveyCreate,
    ReputationScore,
    SurveySubmit
)

router = APIRouter(prefix="/api/surveys", tags=["surveys"])
logger = logging.getLogger(__name__)


@router.post("", response_model=MatchSurvey)
def submit_survey(survey_data: SurveySubmit, engine: MatchEngine = Depends(get_engine)):
    """
    提交問卷

    錯誤：
        400: 評分超出範圍、評價自己
        409: 同一場比賽已經提交過、問卷已過期
    """
    try:
        survey = MatchSurvey(
            **survey_data.model_dump(),
            submitted_at=engine.clock()
        )
        return engine.surveys.submit(survey)

    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except StateConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except UnavailableError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to submit survey: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/pending", response_model=List[PendingSurvey])
def create_pending_surveys(pending_data: PendingSurveyCreate, engine: MatchEngine = Depends(get_engine)):
    """比賽結束後，為 excluding_user_id 建立每位對手的待填問卷"""
    try:
        return engine.surveys.create_pending_surveys(
            pending_data.match_id,
            pending_data.participants,
            excluding_user_id=pending_data.excluding_user_id
        )

    except Exception as e:
        logger.error(f"Failed to create pending surveys: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/matches/{match_id}/pending", response_model=List[PendingSurvey])
def create_pending_surveys_for_match(match_id: str, engine: MatchEngine = Depends(get_engine)):
    """
    比賽結束：每位參與者都拿到其他所有參與者的待填問卷

    match_id 是已經開始比賽的 room id
    """
    try:
        room = engine.rooms.get_match(match_id)
        participants = [
            MatchParticipant(id=p.user_id, nickname=p.nickname) for p in room.participants
        ]

        created = []
        for participant in participants:
            created.extend(engine.surveys.create_pending_surveys(
                match_id, participants, excluding_user_id=participant.id
            ))
        return created

    except NotFoundError:
        raise HTTPException(status_code=404, detail="Match not found")
    except Exception as e:
        logger.error(f"Failed to create pending surveys for match: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/pending", response_model=List[PendingSurvey])
def list_pending_surveys(
    evaluator_id: Optional[str] = Query(None),
    engine: MatchEngine = Depends(get_engine)
):
    """尚未過期的待填問卷（可依評價者過濾）"""
    try:
        return engine.surveys.pending(evaluator_id=evaluator_id)

    except Exception as e:
        logger.error(f"Failed to list pending surveys: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/reputation/{user_id}", response_model=ReputationScore)
def get_reputation(user_id: str, engine: MatchEngine = Depends(get_engine)):
    """沒有任何評價的使用者回傳預設值 {0, 100, 3, 0}"""
    try:
        return engine.reputation.get_score(user_id)

    except UnavailableError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to get reputation: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")
