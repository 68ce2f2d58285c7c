"""
地理圍欄服務：大圓距離與半徑判斷

純計算邏輯，沒有副作用。
座標合法性由 Coordinate 在建構時保證（超出範圍直接拒絕），這裡不做 clamp。
"""
import math
from typing import Iterable, List

from schemas import Coordinate, User

EARTH_RADIUS_MILES = 3958.8
DEFAULT_RADIUS_MILES = 50.0


def distance_miles(a: Coordinate, b: Coordinate) -> float:
    """
    使用 Haversine 公式計算兩點間的距離（英里）

    參數：
        a: 起點座標
        b: 終點座標

    返回：
        距離（英里），a == b 時為 0
    """
    if a == b:
        return 0.0

    lat1 = math.radians(a.latitude)
    lat2 = math.radians(b.latitude)
    delta_lat = math.radians(b.latitude - a.latitude)
    delta_lon = math.radians(b.longitude - a.longitude)

    h = (
        math.sin(delta_lat / 2) ** 2
        + math.cos(lat1) * math.cos(lat2) * math.sin(delta_lon / 2) ** 2
    )
    # 浮點誤差可能讓 h 略大於 1（對蹠點附近）
    h = min(1.0, max(0.0, h))
    c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))

    return EARTH_RADIUS_MILES * c


def within_radius(a: Coordinate, b: Coordinate, radius_miles: float) -> bool:
    """距離 <= 半徑（邊界包含在內）"""
    return distance_miles(a, b) <= radius_miles


def filter_within_radius(
    origin: Coordinate,
    users: Iterable[User],
    radius_miles: float = DEFAULT_RADIUS_MILES
) -> List[User]:
    """
    過濾出半徑內的使用者

    沒有位置資訊的使用者一律排除
    """
    return [
        user for user in users
        if user.location is not None and within_radius(origin, user.location, radius_miles)
    ]
