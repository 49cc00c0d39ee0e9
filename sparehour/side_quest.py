# side_quest.py
# daytime-only arrival challenge: eligibility gate, template tasks, arrival check

import re
from typing import Optional

from sparehour.domain import LngLat, SideQuest, TimeWindow
from sparehour.utils import haversine_meters

DAY_START_MIN = 6 * 60  # 06:00
DAY_END_MIN = 20 * 60  # 20:00
VERIFY_RADIUS_M = 140

SAFETY = ["公共场所触发", "仅白天可触发", "不需要与陌生人见面", "注意交通与台阶/水边"]

INELIGIBLE_MESSAGE = f"彩蛋仅在白天可触发（建议选择 {DAY_START_MIN // 60:02d}:00-{DAY_END_MIN // 60:02d}:00）"

_PARK = re.compile(r"公园|风景|景点|广场|江|湖|湿地|绿地")
_MALL = re.compile(r"商场|购物|步行街|mall")
_MUSEUM = re.compile(r"博物馆|展馆|美术馆|图书馆")


def is_daytime_window(window: TimeWindow) -> bool:
    """Whole window inside 06:00-20:00. Crossing midnight never qualifies."""
    if window.crosses_midnight:
        return False
    return window.start_minute >= DAY_START_MIN and window.end_minute <= DAY_END_MIN


def safe_tasks(name: str, category: str, play_min: Optional[int] = None) -> list[str]:
    full = f"{name} {category}".lower()
    steps = 300 if play_min is not None and play_min < 20 else 600
    if _PARK.search(full):
        return [
            f"在园内慢走 {steps} 步，找一处你觉得“最松弛”的角落",
            "停留 2 分钟，拍一张“树影/水面/天空”（可不上传）",
            "离开前深呼吸 10 次，把今天的烦恼丢在这里",
        ]
    if _MUSEUM.search(full):
        return [
            "找到一块你最感兴趣的展牌，读完并用一句话总结",
            "选一个角落安静坐 2 分钟，观察人群节奏",
            "离开前在脑子里记住 1 个新知识点",
        ]
    if _MALL.search(full):
        return [
            "随便逛 10 分钟，只进 1 家你没去过的店看看",
            "找到一个光线舒服的地方停留 2 分钟，放空一下",
            "离开前给自己一个“今日小奖励”的想法（不一定要买）",
        ]
    return [
        f"到达后慢走 {steps} 步，寻找一个“能让你放松”的视角",
        "停留 2 分钟，观察周围 3 个有趣细节",
        "离开前给这段碎片时间取个名字",
    ]


def build_side_quest(
    window: TimeWindow,
    name: str,
    category: str,
    destination: LngLat,
    play_min: Optional[int] = None,
) -> SideQuest:
    if not is_daytime_window(window):
        return SideQuest(eligible=False, destination_location=destination)
    return SideQuest(
        eligible=True,
        tasks=safe_tasks(name, category, play_min),
        verification_radius_meters=VERIFY_RADIUS_M,
        destination_location=destination,
    )


def verify_arrival(user: LngLat, destination: LngLat, radius_m: int = VERIFY_RADIUS_M) -> tuple[bool, int]:
    """(reached, rounded distance in meters). Nothing about the user is kept."""
    dist = haversine_meters(user, destination)
    return dist <= radius_m, round(dist)
