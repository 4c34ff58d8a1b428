"""
Pytest configuration for projecttrack tests.

Why: Force AnyIO to use the asyncio backend and give every test fresh
in-memory stores so state never leaks between cases.
"""
import os
import sys
from pathlib import Path
from datetime import timedelta

import pytest

# Import-time guard in web.main must see a non-production environment.
os.environ["PROJECTTRACK_ENV"] = "test"

REPO_ROOT = Path(__file__).resolve().parents[2]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from projecttrack.identity_access.accounts import AccountStore  # noqa: E402
from projecttrack.identity_access.domain import ROLE_STUDENT, ROLE_TEACHER, Caller  # noqa: E402
from projecttrack.identity_access.stores import SessionStore  # noqa: E402
from projecttrack.tracking.models import utcnow  # noqa: E402
from projecttrack.tracking.repo_memory import MemoryTrackingRepo  # noqa: E402
from projecttrack.tracking.services.projects import ProjectsService  # noqa: E402
from projecttrack.tracking.services.roster import RosterService, build_profile  # noqa: E402
from projecttrack.web import wiring  # noqa: E402


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def _reset_stores(monkeypatch: pytest.MonkeyPatch):
    """Swap in fresh in-memory stores and clear env toggles per test."""
    for var in ("DATABASE_URL", "PROJECTTRACK_DATABASE_URL", "AUTO_CREATE_SCHEMA", "SESSION_TTL_SECONDS"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("PROJECTTRACK_ENV", "test")
    wiring.set_repo(MemoryTrackingRepo())
    wiring.set_accounts(AccountStore())
    wiring.set_sessions(SessionStore())
    yield


@pytest.fixture
def repo() -> MemoryTrackingRepo:
    return wiring.get_repo()


@pytest.fixture
def projects(repo) -> ProjectsService:
    return ProjectsService(repo)


@pytest.fixture
def roster(repo) -> RosterService:
    return RosterService(repo)


@pytest.fixture
def teacher() -> Caller:
    return Caller(account_id="acc-teacher", role=ROLE_TEACHER, name="Tina Teacher")


@pytest.fixture
def make_student(repo):
    """Create a roster profile and return (profile, caller)."""
    counter = {"n": 0}

    def _make(name: str = "Alice Brown", **overrides):
        counter["n"] += 1
        n = counter["n"]
        data = {
            "name": name,
            "email": f"student{n}@example.com",
            "enrollment_number": f"CS2021{n:03d}",
            "roll_number": f"21/CS/{n:03d}",
            "department": "Computer Science",
            "year": "3",
        }
        data.update(overrides)
        profile = repo.create_student(build_profile(f"acc-student-{n}", data))
        caller = Caller(account_id=profile.account_id, role=ROLE_STUDENT, name=profile.name, student_id=profile.id)
        return profile, caller

    return _make


@pytest.fixture
def deadline() -> str:
    return (utcnow() + timedelta(days=30)).isoformat()
