"""
命名服務：生成與檢查 Room Code

純計算邏輯，不涉及狀態轉換
"""
import random

from schemas import ROOM_CODE_ALPHABET, ROOM_CODE_LENGTH

_ALPHABET_SET = frozenset(ROOM_CODE_ALPHABET)


def generate_room_code(rng: random.Random = None) -> str:
    """
    生成隨機的 6 位房間代碼

    字元集排除容易混淆的 0, O, 1, I, L

    範例：K7MX2P, HQ9ARZ

    注意：
    - 不檢查唯一性（由呼叫者負責）
    - 碰撞機率低，但呼叫者仍必須處理碰撞
    """
    rng = rng or random
    return ''.join(rng.choices(ROOM_CODE_ALPHABET, k=ROOM_CODE_LENGTH))


def normalize_room_code(code: str) -> str:
    """使用者輸入的代碼去空白、轉大寫"""
    return code.strip().upper()


def is_valid_room_code(code: str) -> bool:
    """
    檢查房間代碼格式

    返回：
        True 如果剛好 6 位且每個字元都在字元集中
    """
    return len(code) == ROOM_CODE_LENGTH and all(ch in _ALPHABET_SET for ch in code)
