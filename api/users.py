"""
User API Endpoints

職責：
1. 登錄 / 更新使用者資料（聲譽由問卷決定，不接受客戶端傳入）
2. 查詢使用者（含顯示等級）
3. 修改自評等級
"""
from fastapi import APIRouter, Depends, HTTPException
import logging

from api.dependencies import get_engine
from core.engine import MatchEngine
from core.exceptions import NotFoundError, UnavailableError, ValidationError
from schemas import SelfLevelUpdate, User

router = APIRouter(prefix="/api/users", tags=["users"])
logger = logging.getLogger(__name__)


@router.put("", response_model=User)
def register_user(user: User, engine: MatchEngine = Depends(get_engine)):
    """
    登錄使用者

    已經收到的問卷會立刻算進聲譽；8-9 級需要對應的驗證身分

    錯誤：
        400: 自評等級不合法
    """
    try:
        return engine.reputation.register(user)

    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except UnavailableError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to register user: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/{user_id}", response_model=User)
def get_user(user_id: str, engine: MatchEngine = Depends(get_engine)):
    try:
        return engine.users.require(user_id)

    except NotFoundError:
        raise HTTPException(status_code=404, detail="User not found")
    except Exception as e:
        logger.error(f"Failed to get user: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.put("/{user_id}/level", response_model=User)
def set_self_level(user_id: str, update: SelfLevelUpdate, engine: MatchEngine = Depends(get_engine)):
    """修改自評等級（已有評價的使用者會重新計算 calculated_level）"""
    try:
        return engine.reputation.set_self_level(user_id, update.level)

    except NotFoundError:
        raise HTTPException(status_code=404, detail="User not found")
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to set self level: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")
