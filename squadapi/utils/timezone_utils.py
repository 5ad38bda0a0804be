"""
타임존 유틸리티

엔진 내부의 모든 시각은 UTC aware datetime으로 다룹니다.
"오늘"(일일 로그인 보상, 판사 배정)은 설정된 TIMEZONE 기준 날짜입니다.
"""

from datetime import date, datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from squadapi.config import settings


def utc_now() -> datetime:
    """현재 UTC 시간을 반환합니다."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """naive datetime은 UTC로 가정하고, aware datetime은 UTC로 변환합니다.

    SQLite는 타임존 정보를 저장하지 않으므로 조회 결과를 비교하기 전에 항상 거칩니다.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def local_today(tz_name: Optional[str] = None) -> date:
    """설정된 타임존 기준 오늘 날짜"""
    tz = ZoneInfo(tz_name or settings.TIMEZONE)
    return datetime.now(tz).date()
