"""
시간 관련 유틸리티 함수

저장소의 DateTime 컬럼은 timezone 정보 없는 UTC 값을 사용합니다.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional


def utc_now() -> datetime:
    """timezone 정보 없는 현재 UTC 시각"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_timestamp(value) -> Optional[datetime]:
    """ISO 문자열 또는 datetime을 timezone 정보 없는 UTC datetime으로 변환"""
    if value is None:
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def is_fresh(updated_at: Optional[datetime], window_seconds: float, now: Optional[datetime] = None) -> bool:
    """
    updated_at이 window_seconds 이내인지 확인합니다 (passive expiry).

    Args:
        updated_at: 마지막 갱신 시각
        window_seconds: 유효 기간 (초)
        now: 기준 시각 (기본: 현재 UTC)

    Returns:
        bool: 유효 기간 안이면 True
    """
    if updated_at is None:
        return False
    now = now or utc_now()
    return now - updated_at <= timedelta(seconds=window_seconds)
