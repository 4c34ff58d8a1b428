"""
Postgres-backed repository for projects and student profiles.

Design:
- Minimal psycopg3 usage; each call opens a short-lived connection and runs
  as one transaction (see `projecttrack.db.connect`).
- Milestones and comments are embedded JSONB arrays on the project row, so a
  project update is a single-row `select ... for update` read-modify-write.
- Listing parameters are compiled into SQL from the enumerated `ListParams`
  schema: columns via `psycopg.sql.Identifier` from the allow-lists in
  `tracking.query`, values always as bound parameters.
- The roster's project list is derived with a correlated subquery; student
  deletion clears ownership through `on delete set null`.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

try:
    from psycopg import sql
    from psycopg.types.json import Jsonb
except Exception:  # pragma: no cover - optional in some dev envs
    sql = None  # type: ignore
    Jsonb = None  # type: ignore

from projecttrack.db import HAVE_PSYCOPG, connect, is_uuid

from .errors import NotFound, ValidationFailed
from .models import Comment, Milestone, Project, StudentProfile
from .progress import recompute_progress
from .query import PROJECTS, STUDENTS, CollectionSpec, ListParams, Page, paginate

_PROJECT_COLUMNS = """
    id::text,
    title,
    description,
    student_id::text,
    start_date,
    deadline,
    status,
    progress,
    tags,
    milestones,
    comments,
    completed_at,
    created_at,
    updated_at,
    (select json_build_object(
              'id', s.id::text, 'name', s.name, 'email', s.email,
              'enrollment_number', s.enrollment_number, 'roll_number', s.roll_number,
              'department', s.department)
       from public.students s where s.id = projects.student_id)
"""

_STUDENT_COLUMNS = """
    s.id::text,
    s.account_id::text,
    s.name,
    s.email,
    s.enrollment_number,
    s.roll_number,
    s.department,
    s.year,
    s.phone_number,
    s.status,
    s.created_at,
    s.updated_at,
    coalesce(
      (select array_agg(p.id::text order by p.created_at, p.id)
         from public.projects p where p.student_id = s.id),
      '{}'
    )
"""

# Columns a student update may touch.
_STUDENT_MUTABLE = frozenset(
    {"name", "email", "enrollment_number", "roll_number", "department", "year", "phone_number", "status"}
)


def _ts(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


def _milestone_from_json(data: Dict[str, Any]) -> Milestone:
    return Milestone(
        id=str(data["id"]),
        title=data.get("title", ""),
        description=data.get("description", ""),
        due_date=_ts(data.get("due_date")),
        completed=bool(data.get("completed", False)),
        completed_at=_ts(data.get("completed_at")),
    )


def _comment_from_json(data: Dict[str, Any]) -> Comment:
    return Comment(
        id=str(data["id"]),
        author_id=str(data.get("author_id", "")),
        author_name=data.get("author_name", ""),
        author_role=data.get("author_role", ""),
        text=data.get("text", ""),
        created_at=_ts(data.get("created_at")),
    )


def _project_from_row(row: Tuple) -> Project:
    return Project(
        id=row[0],
        title=row[1],
        description=row[2],
        student_id=row[3],
        start_date=row[4],
        deadline=row[5],
        status=row[6],
        progress=int(row[7]),
        tags=list(row[8] or []),
        milestones=[_milestone_from_json(m) for m in (row[9] or [])],
        comments=[_comment_from_json(c) for c in (row[10] or [])],
        completed_at=row[11],
        created_at=row[12],
        updated_at=row[13],
        student=dict(row[14]) if row[14] else None,
    )


def _student_from_row(row: Tuple) -> StudentProfile:
    return StudentProfile(
        id=row[0],
        account_id=row[1],
        name=row[2],
        email=row[3],
        enrollment_number=row[4],
        roll_number=row[5],
        department=row[6],
        year=row[7],
        phone_number=row[8],
        status=row[9],
        created_at=row[10],
        updated_at=row[11],
        projects=list(row[12] or []),
    )


# --- Query compilation ----------------------------------------------------------


def escape_like(term: str) -> str:
    """Escape LIKE wildcards so user input matches literally."""
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _equals(column: str):
    return lambda value: (sql.SQL("{} = %s").format(sql.Identifier(column)), [value])


def _uuid_equals(column: str):
    def build(value):
        if not is_uuid(value):
            return sql.SQL("false"), []
        return sql.SQL("{} = %s").format(sql.Identifier(column)), [value]
    return build


_SQL_FILTERS: Dict[str, Dict[str, Callable[[Any], Tuple[Any, List[Any]]]]] = {
    PROJECTS.name: {
        "status": _equals("status"),
        "student_id": _uuid_equals("student_id"),
        "tag": lambda value: (sql.SQL("%s = any(tags)"), [value]),
        "deadline_before": lambda value: (sql.SQL("deadline < %s"), [value]),
        "deadline_after": lambda value: (sql.SQL("deadline >= %s"), [value]),
    },
    STUDENTS.name: {
        "status": _equals("status"),
        "department": _equals("department"),
        "year": _equals("year"),
    },
}


def compile_where(params: ListParams, spec: CollectionSpec) -> Tuple[Any, List[Any]]:
    """Compile filters and search into a `where` fragment plus bound args."""
    builders = _SQL_FILTERS[spec.name]
    clauses: List[Any] = []
    args: List[Any] = []
    for name, value in params.filters.items():
        builder = builders.get(name)
        if builder is None:
            raise ValidationFailed("invalid_filter", f"cannot filter {spec.name} by {name!r}")
        clause, clause_args = builder(value)
        clauses.append(clause)
        args.extend(clause_args)
    if params.search:
        pattern = f"%{escape_like(params.search)}%"
        ors = [sql.SQL("{} ilike %s").format(sql.Identifier(f)) for f in spec.search_fields]
        clauses.append(sql.SQL("(") + sql.SQL(" or ").join(ors) + sql.SQL(")"))
        args.extend([pattern] * len(ors))
    if not clauses:
        return sql.SQL("true"), args
    return sql.SQL(" and ").join(clauses), args


def compile_order(params: ListParams, spec: CollectionSpec) -> Any:
    parts = []
    for key in params.sort:
        if key.field not in spec.sort_fields:
            raise ValidationFailed("invalid_sort", f"cannot sort {spec.name} by {key.field!r}")
        direction = sql.SQL("desc" if key.descending else "asc")
        parts.append(sql.SQL("{} {} nulls last").format(sql.Identifier(key.field), direction))
    parts.append(sql.SQL("id asc"))
    return sql.SQL(", ").join(parts)


class DBTrackingRepo:
    def __init__(self, dsn: str) -> None:
        if not HAVE_PSYCOPG:
            raise RuntimeError("psycopg3 is required for DBTrackingRepo")
        if not dsn:
            raise RuntimeError("No database DSN provided for DBTrackingRepo")
        self._dsn = dsn

    def ping(self) -> None:
        with connect(self._dsn) as conn:
            conn.execute("select 1")

    # --- Students --------------------------------------------------------------

    def create_student(self, profile: StudentProfile) -> StudentProfile:
        if not is_uuid(profile.account_id):
            raise NotFound("account_not_found", "Account not found")
        with connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    insert into public.students (id, account_id, name, email, enrollment_number, roll_number,
                                                 department, year, phone_number, status)
                    values (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                    """,
                    (
                        profile.id,
                        profile.account_id,
                        profile.name,
                        profile.email,
                        profile.enrollment_number,
                        profile.roll_number,
                        profile.department,
                        profile.year,
                        profile.phone_number,
                        profile.status,
                    ),
                )
                cur.execute(f"select {_STUDENT_COLUMNS} from public.students s where s.id = %s", (profile.id,))
                return _student_from_row(cur.fetchone())

    def _fetch_student(self, where: str, value: str) -> Optional[StudentProfile]:
        if not is_uuid(value):
            return None
        with connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(f"select {_STUDENT_COLUMNS} from public.students s where {where} = %s", (value,))
                row = cur.fetchone()
        return _student_from_row(row) if row else None

    def get_student(self, student_id: str) -> Optional[StudentProfile]:
        return self._fetch_student("s.id", student_id)

    def get_student_by_account(self, account_id: str) -> Optional[StudentProfile]:
        return self._fetch_student("s.account_id", account_id)

    def list_students(self, params: ListParams) -> Page:
        where, args = compile_where(params, STUDENTS)
        order = compile_order(params, STUDENTS)
        with connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(sql.SQL("select count(*) from public.students where {}").format(where), args)
                total = int(cur.fetchone()[0])
                stmt = sql.SQL("select {} from public.students s where {} order by {} limit %s offset %s").format(
                    sql.SQL(_STUDENT_COLUMNS), where, order
                )
                cur.execute(stmt, [*args, params.page_size, params.offset])
                rows = cur.fetchall()
        return paginate([_student_from_row(r) for r in rows], total, params)

    def update_student(self, student_id: str, changes: Dict[str, object]) -> Optional[StudentProfile]:
        if not is_uuid(student_id):
            return None
        unknown = set(changes) - _STUDENT_MUTABLE
        if unknown:
            raise ValidationFailed("unknown_field", f"cannot update: {', '.join(sorted(unknown))}")
        with connect(self._dsn) as conn:
            with conn.cursor() as cur:
                if changes:
                    assignments = sql.SQL(", ").join(
                        sql.SQL("{} = %s").format(sql.Identifier(k)) for k in changes
                    )
                    cur.execute(
                        sql.SQL("update public.students set {}, updated_at = now() where id = %s").format(assignments),
                        [*changes.values(), student_id],
                    )
                    if cur.rowcount == 0:
                        return None
                cur.execute(f"select {_STUDENT_COLUMNS} from public.students s where s.id = %s", (student_id,))
                row = cur.fetchone()
        return _student_from_row(row) if row else None

    def delete_student(self, student_id: str) -> bool:
        if not is_uuid(student_id):
            return False
        with connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute("delete from public.students where id = %s", (student_id,))
                return cur.rowcount > 0

    def student_stats(self) -> Tuple[int, Dict[str, int]]:
        with connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute("select status, count(*) from public.students group by status")
                counts = {status: int(n) for status, n in cur.fetchall()}
        return sum(counts.values()), counts

    def dangling_project_refs(self) -> List[Tuple[str, str]]:
        with connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    select p.id::text, p.student_id::text
                      from public.projects p
                      left join public.students s on s.id = p.student_id
                     where p.student_id is not null and s.id is null
                    """
                )
                return [(r[0], r[1]) for r in cur.fetchall()]

    # --- Projects --------------------------------------------------------------

    def create_project(self, project: Project) -> Project:
        if not is_uuid(project.student_id):
            raise NotFound("student_not_found", "Student not found")
        recompute_progress(project)
        with connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"""
                    insert into public.projects (id, title, description, student_id, start_date, deadline, status,
                                                 progress, tags, milestones, comments, completed_at)
                    values (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                    returning {_PROJECT_COLUMNS}
                    """,
                    (
                        project.id,
                        project.title,
                        project.description,
                        project.student_id,
                        project.start_date,
                        project.deadline,
                        project.status,
                        project.progress,
                        list(project.tags),
                        Jsonb([m.to_dict() for m in project.milestones]),
                        Jsonb([c.to_dict() for c in project.comments]),
                        project.completed_at,
                    ),
                )
                return _project_from_row(cur.fetchone())

    def get_project(self, project_id: str) -> Optional[Project]:
        if not is_uuid(project_id):
            return None
        with connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(f"select {_PROJECT_COLUMNS} from public.projects where id = %s", (project_id,))
                row = cur.fetchone()
        return _project_from_row(row) if row else None

    def list_projects(self, params: ListParams) -> Page:
        where, args = compile_where(params, PROJECTS)
        order = compile_order(params, PROJECTS)
        with connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(sql.SQL("select count(*) from public.projects where {}").format(where), args)
                total = int(cur.fetchone()[0])
                stmt = sql.SQL("select {} from public.projects where {} order by {} limit %s offset %s").format(
                    sql.SQL(_PROJECT_COLUMNS), where, order
                )
                cur.execute(stmt, [*args, params.page_size, params.offset])
                rows = cur.fetchall()
        return paginate([_project_from_row(r) for r in rows], total, params)

    def list_projects_for_student(self, student_id: str) -> List[Project]:
        if not is_uuid(student_id):
            return []
        with connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"select {_PROJECT_COLUMNS} from public.projects where student_id = %s order by created_at, id",
                    (student_id,),
                )
                return [_project_from_row(r) for r in cur.fetchall()]

    def update_project(self, project_id: str, mutate: Callable[[Project], None]) -> Optional[Project]:
        """Lock the row, apply `mutate`, recompute progress and write back.

        Raising from `mutate` rolls the transaction back.
        """
        if not is_uuid(project_id):
            return None
        with connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(f"select {_PROJECT_COLUMNS} from public.projects where id = %s for update", (project_id,))
                row = cur.fetchone()
                if not row:
                    return None
                project = _project_from_row(row)
                mutate(project)
                if project.student_id is not None and not is_uuid(project.student_id):
                    raise NotFound("student_not_found", "Student not found")
                recompute_progress(project)
                cur.execute(
                    f"""
                    update public.projects
                       set title = %s, description = %s, student_id = %s, start_date = %s, deadline = %s,
                           status = %s, progress = %s, tags = %s, milestones = %s, comments = %s,
                           completed_at = %s, updated_at = now()
                     where id = %s
                    returning {_PROJECT_COLUMNS}
                    """,
                    (
                        project.title,
                        project.description,
                        project.student_id,
                        project.start_date,
                        project.deadline,
                        project.status,
                        project.progress,
                        list(project.tags),
                        Jsonb([m.to_dict() for m in project.milestones]),
                        Jsonb([c.to_dict() for c in project.comments]),
                        project.completed_at,
                        project_id,
                    ),
                )
                return _project_from_row(cur.fetchone())

    def delete_project(self, project_id: str) -> bool:
        if not is_uuid(project_id):
            return False
        with connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute("delete from public.projects where id = %s", (project_id,))
                return cur.rowcount > 0

    def project_stats(self) -> Tuple[int, Dict[str, int]]:
        with connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute("select status, count(*) from public.projects group by status")
                counts = {status: int(n) for status, n in cur.fetchall()}
        return sum(counts.values()), counts


__all__ = ["DBTrackingRepo", "compile_order", "compile_where", "escape_like"]
