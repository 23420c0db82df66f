"""人間らしい操作間隔・マウス/スクロール操作

一定間隔の機械的アクセスを避けるため、待機時間に揺らぎを加える。
"""

import random
import time

# 実在ブラウザのUser-Agent
USER_AGENTS = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/127.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/126.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 14_5) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/127.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 14_4) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/126.0.0.0 Safari/537.36",
]


def jitter(base_ms: int, spread: float = 0.35) -> int:
    """base_ms を ±spread の範囲でランダムに揺らす"""
    delta = round(base_ms * spread)
    return base_ms + random.randint(-delta, delta)


def human_pause(base_ms: int) -> None:
    """揺らぎ付きの待機"""
    time.sleep(max(0, jitter(base_ms)) / 1000)


def random_pause(min_ms: int, max_ms: int) -> None:
    """min_ms〜max_ms を基準にした揺らぎ付き待機"""
    human_pause(random.randint(min_ms, max_ms))


def random_user_agent() -> str:
    return random.choice(USER_AGENTS)


def random_viewport() -> dict:
    return {
        "width": random.randint(1200, 1440),
        "height": random.randint(750, 900),
    }


def human_mouse_move(page) -> None:
    """画面中央付近へ小刻みな揺れを伴ってマウス移動"""
    viewport = page.viewport_size or {"width": 1280, "height": 800}
    width, height = viewport["width"], viewport["height"]

    target_x = random.randint(round(width * 0.2), round(width * 0.8))
    target_y = random.randint(round(height * 0.2), round(height * 0.8))
    start_x = random.randint(0, width)
    start_y = random.randint(0, height)
    steps = random.randint(10, 24)

    page.mouse.move(start_x, start_y)
    for i in range(1, steps + 1):
        x = round(start_x + (i / steps) * (target_x - start_x) + random.randint(-2, 2))
        y = round(start_y + (i / steps) * (target_y - start_y) + random.randint(-2, 2))
        page.mouse.move(x, y)
        human_pause(random.randint(8, 18))


def human_scroll(page) -> None:
    """少し下にスクロールして少し戻す"""
    page.mouse.wheel(0, random.randint(250, 400))
    human_pause(random.randint(120, 240))
    page.mouse.wheel(0, -random.randint(120, 220))
