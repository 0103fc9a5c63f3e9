"""
변경 피드 구독 필터

필터 조건은 문자열 식이 아니라 타입이 있는 predicate 객체로 표현하며,
컬럼 이름은 생성 시점에 매핑된 테이블 컬럼과 대조해 검증합니다.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, Optional

import carmarket.models  # noqa: F401  (Base.metadata 등록)
from carmarket.database.sql import Base
from carmarket.schemas.events import ChangeEvent, ChangeType

ALL_CHANGES: FrozenSet[ChangeType] = frozenset(ChangeType)


@dataclass(frozen=True)
class RowFilter:
    """행의 한 컬럼에 대한 predicate (eq 또는 in)"""
    column: str
    values: FrozenSet[str]

    @classmethod
    def eq(cls, column: str, value: Any) -> "RowFilter":
        return cls(column=column, values=frozenset({str(value)}))

    @classmethod
    def one_of(cls, column: str, values: Iterable[Any]) -> "RowFilter":
        return cls(column=column, values=frozenset(str(v) for v in values))

    def matches(self, row: Dict[str, Any]) -> bool:
        value = row.get(self.column)
        return value is not None and str(value) in self.values


@dataclass(frozen=True)
class ChangeFilter:
    """테이블 + 이벤트 종류 + (선택) 행 predicate"""
    table: str
    events: FrozenSet[ChangeType] = field(default=ALL_CHANGES)
    predicate: Optional[RowFilter] = None

    def __post_init__(self):
        table = Base.metadata.tables.get(self.table)
        if table is None:
            raise ValueError(f"Unknown table: {self.table}")
        if self.predicate is not None and self.predicate.column not in table.c:
            raise ValueError(f"Unknown column {self.predicate.column!r} on {self.table}")
        if not self.events:
            raise ValueError("At least one change type is required")

    @classmethod
    def for_room(cls, table: str, room_id: str, *events: ChangeType) -> "ChangeFilter":
        """room_id 컬럼이 일치하는 행만"""
        return cls(
            table=table,
            events=frozenset(events) if events else ALL_CHANGES,
            predicate=RowFilter.eq("room_id", room_id),
        )

    def matches(self, event: ChangeEvent) -> bool:
        if event.table != self.table or event.type not in self.events:
            return False
        if self.predicate is None:
            return True
        # DELETE는 old, 나머지는 new 기준
        return self.predicate.matches(event.row)
