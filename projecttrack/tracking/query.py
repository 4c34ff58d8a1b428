"""
Listing query pipeline: filter, search, sort and paginate.

Why:
    Listings accept user-supplied parameters. Instead of forwarding raw query
    strings to the store, parameters are parsed into an explicit, enumerated
    schema (`ListParams`) before any repository sees them. The in-memory
    repository evaluates them with `apply_query`; the Postgres repository
    compiles the same schema into parameterised SQL.

Behavior:
    - Search is a case-insensitive substring match OR-ed across the
      collection's search fields.
    - Sort keys come from an allow-list; "-" prefix means descending; ties are
      broken by id so paging is deterministic.
    - Pages are 1-based; a page beyond the range is empty, not an error.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .errors import ValidationFailed
from .models import PROJECT_STATUSES, STUDENT_STATUSES, STUDENT_YEARS

DEFAULT_PAGE = 1
DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100
# Larger page numbers are clamped; OFFSET stays within a Postgres bigint.
MAX_PAGE = 10**9
DEFAULT_SORT = "-created_at"
MAX_SEARCH_LENGTH = 100


@dataclass(frozen=True)
class SortKey:
    field: str
    descending: bool = False


@dataclass(frozen=True)
class CollectionSpec:
    """Enumerates what a collection may be filtered, searched and sorted by."""

    name: str
    sort_fields: frozenset
    search_fields: Tuple[str, ...]
    # filter name -> predicate(record, value) used by the in-memory engine
    predicates: Mapping[str, Callable[[Any, Any], bool]]


def _eq(attr: str) -> Callable[[Any, Any], bool]:
    return lambda record, value: getattr(record, attr) == value


PROJECTS = CollectionSpec(
    name="projects",
    sort_fields=frozenset({"created_at", "updated_at", "title", "deadline", "start_date", "status", "progress"}),
    search_fields=("title", "description"),
    predicates={
        "status": _eq("status"),
        "student_id": _eq("student_id"),
        "tag": lambda record, value: value in record.tags,
        "deadline_before": lambda record, value: record.deadline < value,
        "deadline_after": lambda record, value: record.deadline >= value,
    },
)

STUDENTS = CollectionSpec(
    name="students",
    sort_fields=frozenset({"created_at", "updated_at", "name", "enrollment_number", "roll_number", "department", "year", "status"}),
    search_fields=("name", "enrollment_number", "roll_number", "email"),
    predicates={
        "status": _eq("status"),
        "department": _eq("department"),
        "year": _eq("year"),
    },
)


@dataclass(frozen=True)
class ListParams:
    filters: Mapping[str, Any] = field(default_factory=dict)
    search: Optional[str] = None
    sort: Tuple[SortKey, ...] = (SortKey("created_at", True),)
    page: int = DEFAULT_PAGE
    page_size: int = DEFAULT_PAGE_SIZE

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size

    def narrowed_to_student(self, student_id: str) -> "ListParams":
        """Return params restricted to one student's projects.

        Replaces any caller-supplied `student_id` filter.
        """
        filters = dict(self.filters)
        filters["student_id"] = student_id
        return replace(self, filters=filters)


@dataclass
class Page:
    items: List[Any]
    total: int
    page: int
    page_size: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.page_size) if self.total else 0

    @property
    def has_next(self) -> bool:
        return self.page * self.page_size < self.total

    @property
    def has_prev(self) -> bool:
        return self.page > 1

    def to_dict(self, serialize: Callable[[Any], dict]) -> Dict[str, Any]:
        return {
            "items": [serialize(item) for item in self.items],
            "count": len(self.items),
            "total": self.total,
            "total_pages": self.total_pages,
            "page": self.page,
            "page_size": self.page_size,
            "next": {"page": self.page + 1, "page_size": self.page_size} if self.has_next else None,
            "prev": {"page": self.page - 1, "page_size": self.page_size} if self.has_prev else None,
        }


# --- Parsing -----------------------------------------------------------------------


def _parse_int(value: object, code: str) -> int:
    if isinstance(value, bool):
        raise ValidationFailed(code)
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise ValidationFailed(code) from exc


def parse_page(value: object) -> int:
    if value is None or value == "":
        return DEFAULT_PAGE
    page = _parse_int(value, "invalid_page")
    if page < 1:
        raise ValidationFailed("invalid_page", "page must be 1 or greater")
    return min(page, MAX_PAGE)


def parse_page_size(value: object) -> int:
    if value is None or value == "":
        return DEFAULT_PAGE_SIZE
    size = _parse_int(value, "invalid_page_size")
    if size <= 0:
        raise ValidationFailed("invalid_page_size", "page size must be positive")
    return min(size, MAX_PAGE_SIZE)


def parse_sort(value: object, spec: CollectionSpec) -> Tuple[SortKey, ...]:
    raw = value if isinstance(value, str) and value.strip() else DEFAULT_SORT
    keys: List[SortKey] = []
    for part in raw.split(","):
        token = part.strip()
        if not token:
            continue
        descending = token.startswith("-")
        name = token.lstrip("-+")
        if name not in spec.sort_fields:
            raise ValidationFailed("invalid_sort", f"cannot sort {spec.name} by {name!r}")
        keys.append(SortKey(name, descending))
    if not keys:
        raise ValidationFailed("invalid_sort")
    return tuple(keys)


def parse_search(value: object) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationFailed("invalid_search")
    term = value.strip()
    if len(term) > MAX_SEARCH_LENGTH:
        raise ValidationFailed("invalid_search", "search term is too long")
    return term or None


def parse_timestamp(value: object, code: str) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError as exc:
            raise ValidationFailed(code) from exc
    else:
        raise ValidationFailed(code)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _choice(value: object, allowed: Sequence[str], code: str) -> Optional[str]:
    if value is None or value == "":
        return None
    if not isinstance(value, str) or value not in allowed:
        raise ValidationFailed(code, f"must be one of: {', '.join(allowed)}")
    return value


def build_project_params(
    *,
    status: object = None,
    student_id: object = None,
    tag: object = None,
    deadline_before: object = None,
    deadline_after: object = None,
    search: object = None,
    sort: object = None,
    page: object = None,
    page_size: object = None,
) -> ListParams:
    filters: Dict[str, Any] = {}
    parsed_status = _choice(status, PROJECT_STATUSES, "invalid_status")
    if parsed_status:
        filters["status"] = parsed_status
    if student_id:
        filters["student_id"] = str(student_id)
    if isinstance(tag, str) and tag.strip():
        filters["tag"] = tag.strip()
    before = parse_timestamp(deadline_before, "invalid_deadline_before")
    if before:
        filters["deadline_before"] = before
    after = parse_timestamp(deadline_after, "invalid_deadline_after")
    if after:
        filters["deadline_after"] = after
    return ListParams(
        filters=filters,
        search=parse_search(search),
        sort=parse_sort(sort, PROJECTS),
        page=parse_page(page),
        page_size=parse_page_size(page_size),
    )


def build_student_params(
    *,
    status: object = None,
    department: object = None,
    year: object = None,
    search: object = None,
    sort: object = None,
    page: object = None,
    page_size: object = None,
) -> ListParams:
    filters: Dict[str, Any] = {}
    parsed_status = _choice(status, STUDENT_STATUSES, "invalid_status")
    if parsed_status:
        filters["status"] = parsed_status
    if isinstance(department, str) and department.strip():
        filters["department"] = department.strip()
    parsed_year = _choice(year, STUDENT_YEARS, "invalid_year")
    if parsed_year:
        filters["year"] = parsed_year
    return ListParams(
        filters=filters,
        search=parse_search(search),
        sort=parse_sort(sort, STUDENTS),
        page=parse_page(page),
        page_size=parse_page_size(page_size),
    )


# --- In-memory evaluation --------------------------------------------------------


def _matches(record: Any, params: ListParams, spec: CollectionSpec) -> bool:
    for name, value in params.filters.items():
        predicate = spec.predicates.get(name)
        if predicate is None:
            raise ValidationFailed("invalid_filter", f"cannot filter {spec.name} by {name!r}")
        if not predicate(record, value):
            return False
    if params.search:
        needle = params.search.casefold()
        return any(needle in str(getattr(record, f) or "").casefold() for f in spec.search_fields)
    return True


def sort_records(records: List[Any], keys: Sequence[SortKey]) -> List[Any]:
    """Stable multi-key sort; None values sort last in either direction."""
    ordered = sorted(records, key=lambda r: r.id)
    for key in reversed(keys):
        if key.descending:
            ordered.sort(key=lambda r, f=key.field: (getattr(r, f) is not None, getattr(r, f)), reverse=True)
        else:
            ordered.sort(key=lambda r, f=key.field: (getattr(r, f) is None, getattr(r, f)))
    return ordered


def paginate(items: Sequence[Any], total: int, params: ListParams) -> Page:
    """Wrap one already-windowed slice of results with its paging metadata."""
    return Page(items=list(items), total=total, page=params.page, page_size=params.page_size)


def apply_query(records: Iterable[Any], params: ListParams, spec: CollectionSpec) -> Page:
    matching = [r for r in records if _matches(r, params, spec)]
    ordered = sort_records(matching, params.sort)
    window = ordered[params.offset: params.offset + params.page_size]
    return paginate(window, len(matching), params)


__all__ = [
    "DEFAULT_PAGE_SIZE",
    "MAX_PAGE",
    "MAX_PAGE_SIZE",
    "PROJECTS",
    "STUDENTS",
    "CollectionSpec",
    "ListParams",
    "Page",
    "SortKey",
    "apply_query",
    "build_project_params",
    "build_student_params",
    "paginate",
    "parse_page",
    "parse_page_size",
    "parse_sort",
    "parse_timestamp",
    "sort_records",
]
