"""
재시도 지연(backoff) 계산

delay = min(2 ** attempts * base + jitter, cap)

jitter를 제외하면 attempts에 대해 단조 비감소이며 cap을 넘지 않습니다.
"""

import random
from datetime import datetime, timedelta


def backoff_seconds(
    attempts: int,
    base_delay: float,
    max_delay: float,
    jitter: float = 0.0,
) -> float:
    """
    실패 후 다음 시도까지의 지연 시간(초)

    Args:
        attempts: 지금까지의 시도 횟수 (방금 실패한 시도 포함, 1부터)
        base_delay: 기본 지연
        max_delay: 상한
        jitter: 추가 지연 상한 (0이면 결정적)
    """
    exponent = max(attempts, 0)
    # 큰 attempts에서 float overflow 방지
    if exponent >= 64:
        delay = max_delay
    else:
        delay = (2 ** exponent) * base_delay
    if jitter > 0:
        delay += random.uniform(0, jitter)
    return min(delay, max_delay)


def next_attempt_time(
    now: datetime,
    attempts: int,
    base_delay: float,
    max_delay: float,
    jitter: float = 0.0,
) -> datetime:
    """다음 시도 가능 시각"""
    return now + timedelta(seconds=backoff_seconds(attempts, base_delay, max_delay, jitter))
