from __future__ import annotations

from copy import deepcopy
from datetime import datetime, timezone
from types import SimpleNamespace
from typing import Any, Callable, Iterable, Optional
from uuid import uuid4

# 中文注释:
# - 单测用的内存版 Supabase client，只实现服务层实际用到的 PostgREST 链式调用。
# - fail_on={("submissions", "update")} 可模拟某张表某类写操作失败。

Filter = Callable[[dict[str, Any]], bool]


def _coerce(value: Any) -> Any:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, str):
        text = value.strip()
        if len(text) >= 10 and text[4:5] == "-" and text[7:8] == "-":
            try:
                dt = datetime.fromisoformat(text[:-1] + "+00:00" if text.endswith("Z") else text)
            except ValueError:
                return value
            return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)
    return value


def _compare(row_value: Any, op: str, value: Any) -> bool:
    if row_value is None or value is None:
        return False
    left, right = _coerce(row_value), _coerce(value)
    try:
        if op == "lt":
            return left < right
        if op == "lte":
            return left <= right
        if op == "gt":
            return left > right
        return left >= right
    except TypeError:
        return False


def _same(row_value: Any, value: Any) -> bool:
    if row_value == value:
        return True
    return row_value is not None and value is not None and str(row_value) == str(value)


class FakeQuery:
    def __init__(self, db: "FakeSupabase", table: str) -> None:
        self.db = db
        self.table_name = table
        self.op = "select"
        self.payload: Any = None
        self.on_conflict: Optional[str] = None
        self.filters: list[Filter] = []
        self.orders: list[tuple[str, bool]] = []
        self.limit_n: Optional[int] = None
        self.single_row = False
        self._negate_next = False

    # --- verbs ---
    def select(self, *_args: Any, **_kwargs: Any) -> "FakeQuery":
        return self

    def insert(self, payload: Any) -> "FakeQuery":
        self.op, self.payload = "insert", payload
        return self

    def update(self, payload: dict[str, Any]) -> "FakeQuery":
        self.op, self.payload = "update", payload
        return self

    def upsert(self, payload: Any, on_conflict: Optional[str] = None, **_kwargs: Any) -> "FakeQuery":
        self.op, self.payload, self.on_conflict = "upsert", payload, on_conflict
        return self

    def delete(self) -> "FakeQuery":
        self.op = "delete"
        return self

    # --- filters ---
    @property
    def not_(self) -> "FakeQuery":
        self._negate_next = True
        return self

    def _add(self, predicate: Filter) -> "FakeQuery":
        if self._negate_next:
            self._negate_next = False
            self.filters.append(lambda row: not predicate(row))
        else:
            self.filters.append(predicate)
        return self

    def eq(self, col: str, value: Any) -> "FakeQuery":
        return self._add(lambda row: _same(row.get(col), value))

    def neq(self, col: str, value: Any) -> "FakeQuery":
        return self._add(lambda row: not _same(row.get(col), value))

    def in_(self, col: str, values: Iterable[Any]) -> "FakeQuery":
        wanted = {str(v) for v in values}
        return self._add(lambda row: row.get(col) is not None and str(row.get(col)) in wanted)

    def is_(self, col: str, value: Any) -> "FakeQuery":
        if str(value).lower() == "null":
            return self._add(lambda row: row.get(col) is None)
        return self._add(lambda row: row.get(col) is value)

    def lt(self, col: str, value: Any) -> "FakeQuery":
        return self._add(lambda row: _compare(row.get(col), "lt", value))

    def lte(self, col: str, value: Any) -> "FakeQuery":
        return self._add(lambda row: _compare(row.get(col), "lte", value))

    def gt(self, col: str, value: Any) -> "FakeQuery":
        return self._add(lambda row: _compare(row.get(col), "gt", value))

    def gte(self, col: str, value: Any) -> "FakeQuery":
        return self._add(lambda row: _compare(row.get(col), "gte", value))

    def contains(self, col: str, values: Iterable[Any]) -> "FakeQuery":
        wanted = set(values)
        return self._add(lambda row: wanted <= set(row.get(col) or []))

    def overlaps(self, col: str, values: Iterable[Any]) -> "FakeQuery":
        wanted = set(values)
        return self._add(lambda row: bool(wanted & set(row.get(col) or [])))

    # --- modifiers ---
    def order(self, col: str, desc: bool = False, **_kwargs: Any) -> "FakeQuery":
        self.orders.append((col, desc))
        return self

    def limit(self, n: int) -> "FakeQuery":
        self.limit_n = n
        return self

    def single(self) -> "FakeQuery":
        self.single_row = True
        return self

    def maybe_single(self) -> "FakeQuery":
        self.single_row = True
        return self

    # --- execution ---
    def _matches(self, row: dict[str, Any]) -> bool:
        return all(f(row) for f in self.filters)

    def execute(self) -> SimpleNamespace:
        if (self.table_name, self.op) in self.db.fail_on:
            raise RuntimeError(f"simulated {self.op} failure on {self.table_name}")
        self.db.calls.append((self.table_name, self.op))
        rows = self.db.tables.setdefault(self.table_name, [])

        if self.op == "insert":
            data = [self.db._store(self.table_name, item) for item in _as_list(self.payload)]
        elif self.op == "update":
            data = []
            for row in rows:
                if self._matches(row):
                    row.update(deepcopy(self.payload))
                    data.append(deepcopy(row))
        elif self.op == "upsert":
            data = []
            keys = [k.strip() for k in (self.on_conflict or "id").split(",")]
            for item in _as_list(self.payload):
                existing = next(
                    (r for r in rows if all(_same(r.get(k), item.get(k)) for k in keys)),
                    None,
                )
                if existing is not None:
                    existing.update(deepcopy(item))
                    data.append(deepcopy(existing))
                else:
                    data.append(self.db._store(self.table_name, item))
        elif self.op == "delete":
            data = [deepcopy(r) for r in rows if self._matches(r)]
            self.db.tables[self.table_name] = [r for r in rows if not self._matches(r)]
        else:
            data = [deepcopy(r) for r in rows if self._matches(r)]
            for col, desc in reversed(self.orders):
                data.sort(key=lambda r: (r.get(col) is None, _coerce(r.get(col))), reverse=desc)
            if self.limit_n is not None:
                data = data[: self.limit_n]

        if self.single_row:
            return SimpleNamespace(data=data[0] if data else None)
        return SimpleNamespace(data=data)


def _as_list(payload: Any) -> list[dict[str, Any]]:
    if isinstance(payload, list):
        return payload
    return [payload]


class FakeSupabase:
    def __init__(self, tables: Optional[dict[str, list[dict[str, Any]]]] = None) -> None:
        self.tables: dict[str, list[dict[str, Any]]] = {k: [dict(r) for r in v] for k, v in (tables or {}).items()}
        self.fail_on: set[tuple[str, str]] = set()
        self.calls: list[tuple[str, str]] = []

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def _store(self, table: str, item: dict[str, Any]) -> dict[str, Any]:
        row = deepcopy(item)
        row.setdefault("id", str(uuid4()))
        row.setdefault("created_at", datetime.now(timezone.utc).isoformat())
        self.tables.setdefault(table, []).append(row)
        return deepcopy(row)

    def rows(self, table: str) -> list[dict[str, Any]]:
        return self.tables.get(table, [])

    def writes(self, table: str) -> list[str]:
        return [op for name, op in self.calls if name == table and op != "select"]
