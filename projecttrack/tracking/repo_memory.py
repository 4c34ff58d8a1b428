"""
In-memory repository for projects and student profiles.

Why:
    Tests and offline development run without Postgres. The repository mirrors
    the guarantees of the Postgres implementation: unique keys are checked and
    written inside one critical section (the equivalent of a unique index),
    project updates are atomic read-modify-write operations, and the roster's
    project list is derived from project ownership at read time.

Records are deep-copied on the way in and out so callers never hold a live
reference into the store.
"""
from __future__ import annotations

import threading
from typing import Callable, Dict, List, Optional, Tuple

from .errors import Conflict, NotFound
from .models import Project, StudentProfile, utcnow
from .progress import recompute_progress
from .query import PROJECTS, STUDENTS, ListParams, Page, apply_query

_UNIQUE_STUDENT_KEYS = (
    ("account_id", "account_already_linked", "This account already has a student profile"),
    ("enrollment_number", "duplicate_enrollment_number", "Student with this enrollment number already exists"),
    ("roll_number", "duplicate_roll_number", "Student with this roll number already exists"),
)


class MemoryTrackingRepo:
    def __init__(self) -> None:
        self._lock = threading.RLock()
        self.projects: Dict[str, Project] = {}
        self.students: Dict[str, StudentProfile] = {}
        # unique indexes: field -> value -> student id
        self._student_index: Dict[str, Dict[str, str]] = {key: {} for key, _, _ in _UNIQUE_STUDENT_KEYS}

    # --- Students --------------------------------------------------------------

    def _check_unique(self, profile: StudentProfile, *, ignore_id: Optional[str] = None) -> None:
        for key, code, message in _UNIQUE_STUDENT_KEYS:
            owner = self._student_index[key].get(getattr(profile, key))
            if owner is not None and owner != ignore_id:
                raise Conflict(code, message)

    def _index(self, profile: StudentProfile) -> None:
        for key, _, _ in _UNIQUE_STUDENT_KEYS:
            self._student_index[key][getattr(profile, key)] = profile.id

    def _unindex(self, profile: StudentProfile) -> None:
        for key, _, _ in _UNIQUE_STUDENT_KEYS:
            self._student_index[key].pop(getattr(profile, key), None)

    def _project_ids_for(self, student_id: str) -> List[str]:
        owned = [p for p in self.projects.values() if p.student_id == student_id]
        owned.sort(key=lambda p: (p.created_at, p.id))
        return [p.id for p in owned]

    def _with_projects(self, profile: StudentProfile) -> StudentProfile:
        out = profile.clone()
        out.projects = self._project_ids_for(profile.id)
        return out

    def create_student(self, profile: StudentProfile) -> StudentProfile:
        with self._lock:
            self._check_unique(profile)
            stored = profile.clone()
            stored.projects = []
            self.students[stored.id] = stored
            self._index(stored)
            return self._with_projects(stored)

    def get_student(self, student_id: str) -> Optional[StudentProfile]:
        with self._lock:
            profile = self.students.get(student_id)
            return self._with_projects(profile) if profile else None

    def get_student_by_account(self, account_id: str) -> Optional[StudentProfile]:
        with self._lock:
            student_id = self._student_index["account_id"].get(account_id)
            return self.get_student(student_id) if student_id else None

    def list_students(self, params: ListParams) -> Page:
        with self._lock:
            page = apply_query(list(self.students.values()), params, STUDENTS)
            page.items = [self._with_projects(s) for s in page.items]
            return page

    def update_student(self, student_id: str, changes: Dict[str, object]) -> Optional[StudentProfile]:
        with self._lock:
            current = self.students.get(student_id)
            if current is None:
                return None
            updated = current.clone()
            for key, value in changes.items():
                setattr(updated, key, value)
            updated.updated_at = utcnow()
            self._check_unique(updated, ignore_id=student_id)
            self._unindex(current)
            self.students[student_id] = updated
            self._index(updated)
            return self._with_projects(updated)

    def delete_student(self, student_id: str) -> bool:
        """Delete a profile and clear the owner reference on its projects."""
        with self._lock:
            profile = self.students.pop(student_id, None)
            if profile is None:
                return False
            self._unindex(profile)
            now = utcnow()
            for project in self.projects.values():
                if project.student_id == student_id:
                    project.student_id = None
                    project.updated_at = now
            return True

    def student_stats(self) -> Tuple[int, Dict[str, int]]:
        with self._lock:
            counts: Dict[str, int] = {}
            for profile in self.students.values():
                counts[profile.status] = counts.get(profile.status, 0) + 1
            return len(self.students), counts

    def dangling_project_refs(self) -> List[Tuple[str, str]]:
        """Return (project_id, student_id) pairs whose owner no longer exists."""
        with self._lock:
            return [
                (p.id, p.student_id)
                for p in self.projects.values()
                if p.student_id is not None and p.student_id not in self.students
            ]

    # --- Projects --------------------------------------------------------------

    def _with_owner(self, project: Project) -> Project:
        out = project.clone()
        owner = self.students.get(out.student_id) if out.student_id else None
        out.student = owner.owner_summary() if owner else None
        return out

    def create_project(self, project: Project) -> Project:
        with self._lock:
            if project.student_id not in self.students:
                raise NotFound("student_not_found", "Student not found")
            stored = project.clone()
            recompute_progress(stored)
            self.projects[stored.id] = stored
            return self._with_owner(stored)

    def get_project(self, project_id: str) -> Optional[Project]:
        with self._lock:
            project = self.projects.get(project_id)
            return self._with_owner(project) if project else None

    def list_projects(self, params: ListParams) -> Page:
        with self._lock:
            page = apply_query(list(self.projects.values()), params, PROJECTS)
            page.items = [self._with_owner(p) for p in page.items]
            return page

    def list_projects_for_student(self, student_id: str) -> List[Project]:
        with self._lock:
            return [self._with_owner(self.projects[pid]) for pid in self._project_ids_for(student_id)]

    def update_project(self, project_id: str, mutate: Callable[[Project], None]) -> Optional[Project]:
        """Atomically apply `mutate` to the stored project.

        Progress is recomputed from the milestones as they stand after the
        mutation; nothing is stored when `mutate` raises.
        """
        with self._lock:
            current = self.projects.get(project_id)
            if current is None:
                return None
            working = current.clone()
            mutate(working)
            if working.student_id is not None and working.student_id not in self.students:
                raise NotFound("student_not_found", "Student not found")
            working.student = None
            recompute_progress(working)
            working.updated_at = utcnow()
            self.projects[project_id] = working
            return self._with_owner(working)

    def delete_project(self, project_id: str) -> bool:
        with self._lock:
            return self.projects.pop(project_id, None) is not None

    def project_stats(self) -> Tuple[int, Dict[str, int]]:
        with self._lock:
            counts: Dict[str, int] = {}
            for project in self.projects.values():
                counts[project.status] = counts.get(project.status, 0) + 1
            return len(self.projects), counts


__all__ = ["MemoryTrackingRepo"]
