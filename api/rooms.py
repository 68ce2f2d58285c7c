"""
Room API Endpoints

職責：
1. 建立房間、透過代碼加入
2. 房主操作：踢人、邀請、開始比賽、關閉房間
3. 玩家離開、查詢房間
"""
from fastapi import APIRouter, Depends, HTTPException
import logging

from api.dependencies import get_engine
from core.engine import MatchEngine
from core.exceptions import (
    NotFoundError,
    RoomCodeExhausted,
    StateConflictError,
    ValidationError
)
from schemas import InviteRequest, KickRequest, Room, RoomAction, RoomCreate, RoomJoin

router = APIRouter(prefix="/api/rooms", tags=["rooms"])
logger = logging.getLogger(__name__)


@router.post("", response_model=Room)
def create_room(room_data: RoomCreate, engine: MatchEngine = Depends(get_engine)):
    """
    建立房間

    流程：
    1. 生成唯一的 6 碼房間代碼
    2. 房主成為第一位參與者
    3. 返回房間資訊（包含代碼，給朋友輸入用）
    """
    try:
        return engine.rooms.create_room(
            owner_id=room_data.owner_id,
            nickname=room_data.nickname,
            skill_level=room_data.skill_level,
            mode=room_data.mode
        )

    except RoomCodeExhausted as e:
        raise HTTPException(status_code=503, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to create room: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/{code}/join", response_model=Room)
def join_room(code: str, join_data: RoomJoin, engine: MatchEngine = Depends(get_engine)):
    """
    透過房間代碼加入

    代碼不分大小寫；房間已開始、已滿、已過期都會被拒絕
    """
    try:
        return engine.rooms.join_room(
            code,
            user_id=join_data.user_id,
            nickname=join_data.nickname,
            skill_level=join_data.skill_level
        )

    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Room not found")
    except StateConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to join room: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/code/{code}", response_model=Room)
def get_room_by_code(code: str, engine: MatchEngine = Depends(get_engine)):
    try:
        return engine.rooms.get_room_by_code(code)

    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Room not found")
    except Exception as e:
        logger.error(f"Failed to get room by code: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/{room_id}", response_model=Room)
def get_room(room_id: str, engine: MatchEngine = Depends(get_engine)):
    """取得房間資訊（已關閉的房間回傳 404）"""
    try:
        return engine.rooms.get_room(room_id)

    except NotFoundError:
        raise HTTPException(status_code=404, detail="Room not found")
    except Exception as e:
        logger.error(f"Failed to get room: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/{room_id}/kick", response_model=Room)
def kick_player(room_id: str, kick_data: KickRequest, engine: MatchEngine = Depends(get_engine)):
    """踢出玩家（僅房主）"""
    try:
        return engine.rooms.kick_player(room_id, kick_data.caller_id, kick_data.participant_id)

    except NotFoundError:
        raise HTTPException(status_code=404, detail="Room not found")
    except StateConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to kick player: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/{room_id}/invite", response_model=Room)
def invite_friend(room_id: str, invite_data: InviteRequest, engine: MatchEngine = Depends(get_engine)):
    """邀請好友（僅房主，好友會收到房間代碼）"""
    try:
        return engine.rooms.invite_friend(room_id, invite_data.caller_id, invite_data.friend_id)

    except NotFoundError:
        raise HTTPException(status_code=404, detail="Room not found")
    except StateConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to invite friend: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/{room_id}/start", response_model=Room)
def start_match(room_id: str, action: RoomAction, engine: MatchEngine = Depends(get_engine)):
    """
    開始比賽

    前置條件：
    - 呼叫者是房主
    - 人數剛好等於模式需要的人數（單打 2、雙打 4）
    """
    try:
        return engine.rooms.start_match(room_id, action.caller_id)

    except NotFoundError:
        raise HTTPException(status_code=404, detail="Room not found")
    except StateConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to start match: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/{room_id}/leave", response_model=Room)
def leave_room(room_id: str, action: RoomAction, engine: MatchEngine = Depends(get_engine)):
    """離開房間（房主離開時房間關閉）"""
    try:
        return engine.rooms.leave_room(room_id, action.caller_id)

    except NotFoundError:
        raise HTTPException(status_code=404, detail="Room not found")
    except StateConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to leave room: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/{room_id}/close", response_model=Room)
def close_room(room_id: str, action: RoomAction, engine: MatchEngine = Depends(get_engine)):
    try:
        return engine.rooms.close_room(room_id, action.caller_id)

    except NotFoundError:
        raise HTTPException(status_code=404, detail="Room not found")
    except StateConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to close room: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")
