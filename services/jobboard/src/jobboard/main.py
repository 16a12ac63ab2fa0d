from __future__ import annotations

import hashlib
import json
import logging
import os
import secrets
import sqlite3
import tempfile
import threading
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, Generic, Literal, TypeVar

import bcrypt
from common.roles import Role
from common.utils import (
    check_password_bytes,
    now_utc_iso,
    page_offset,
    total_pages,
    utc_iso_after,
)
from fastapi import FastAPI, HTTPException, Query, Request, Response
from fastapi.concurrency import run_in_threadpool
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, EmailStr, Field, HttpUrl, field_validator
from starlette.exceptions import HTTPException as StarletteHTTPException

from jobboard.access import (
    AccessDenied,
    AccessPolicy,
    Identity,
    SelfAction,
    application_ownership,
    check_access,
    job_ownership,
    lookup_role,
)

DEFAULT_DB_PATH = os.path.join(tempfile.gettempdir(), "jobboard", "jobboard.sqlite3")
DEFAULT_SESSION_TTL_HOURS = 168
DEFAULT_BCRYPT_ROUNDS = 12
SESSION_COOKIE = "jobboard_session"
LOGGER = logging.getLogger("jobboard.api")

JobStatus = Literal["open", "closed", "archived"]
ApplicationStatus = Literal["applied", "screening", "interview_scheduled", "rejected", "hired"]
T = TypeVar("T")

READABLE_FIELDS = {
    ("users", "role"),
    ("jobs", "recruiter_id"),
    ("applications", "candidate_id"),
    ("applications", "job_id"),
}
USER_COLUMNS = """
    id, email, role, full_name, first_name, last_name, company, phone,
    avatar_url, bio, location, website, linkedin_url, created_at, updated_at
"""
USER_EDITABLE_COLUMNS = (
    "full_name",
    "first_name",
    "last_name",
    "company",
    "phone",
    "avatar_url",
    "bio",
    "location",
    "website",
    "linkedin_url",
    "role",
)
JOB_COLUMNS = """
    jobs.id, jobs.recruiter_id, jobs.title, jobs.description, jobs.requirements,
    jobs.salary_range, jobs.location, jobs.tags_json, jobs.status,
    jobs.pipeline_config_json, jobs.created_at, jobs.updated_at,
    recruiters.full_name AS recruiter_full_name, recruiters.company AS recruiter_company
"""
JOB_EDITABLE_COLUMNS = ("title", "description", "requirements", "salary_range", "location", "status")
REQUIRED_JOB_COLUMNS = ("title", "description", "status")
APPLICATION_COLUMNS = """
    applications.id, applications.job_id, applications.candidate_id, applications.status,
    applications.score, applications.cover_letter, applications.created_at,
    applications.updated_at,
    jobs.title AS job_title, jobs.location AS job_location, jobs.status AS job_status,
    jobs.recruiter_id AS job_recruiter_id,
    candidates.full_name AS candidate_full_name, candidates.email AS candidate_email
"""


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


def like_pattern(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def clean_tags(tags: list[str]) -> list[str]:
    seen: list[str] = []
    for tag in tags:
        normalized = " ".join(tag.split())
        if normalized and normalized not in seen:
            seen.append(normalized)
    return seen


def bearer_token(request: Request) -> str | None:
    header = request.headers.get("authorization", "")
    scheme, _, value = header.partition(" ")
    if scheme.lower() == "bearer" and value.strip():
        return value.strip()
    cookie = request.cookies.get(SESSION_COOKIE, "").strip()
    return cookie or None


class Envelope(BaseModel, Generic[T]):
    data: T
    message: str | None = None


class Paginated(BaseModel, Generic[T]):
    data: list[T]
    count: int
    page: int
    limit: int
    total_pages: int


class MessageResponse(BaseModel):
    message: str


class SignUpRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=72)
    first_name: str = Field(..., min_length=1, max_length=120)
    last_name: str = Field(..., min_length=1, max_length=120)
    role: Literal["candidate", "recruiter"]
    company: str | None = Field(default=None, max_length=200)
    phone: str | None = Field(default=None, max_length=40)

    @field_validator("password")
    @classmethod
    def validate_password_bytes(cls, value: str) -> str:
        return check_password_bytes(value)


class SignInRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=72)

    @field_validator("password")
    @classmethod
    def validate_password_bytes(cls, value: str) -> str:
        return check_password_bytes(value)


class UserPublic(BaseModel):
    id: str
    email: str
    role: Role
    full_name: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    company: str | None = None
    phone: str | None = None
    avatar_url: str | None = None
    bio: str | None = None
    location: str | None = None
    website: str | None = None
    linkedin_url: str | None = None
    created_at: str
    updated_at: str


class CandidateProfile(BaseModel):
    id: str
    user_id: str
    resume_url: str | None = None
    skills: list[str] = Field(default_factory=list)
    experience_years: int = 0
    bio: str | None = None
    linkedin_url: str | None = None
    portfolio_url: str | None = None
    created_at: str
    updated_at: str


class RecruiterProfile(BaseModel):
    id: str
    user_id: str
    company_name: str
    company_website: str | None = None
    company_logo: str | None = None
    created_at: str
    updated_at: str


class UserDetail(UserPublic):
    candidate_profile: CandidateProfile | None = None
    recruiter_profile: RecruiterProfile | None = None


class SessionGrant(BaseModel):
    token: str
    expires_at: str
    user: UserPublic


class SessionIdentity(BaseModel):
    user_id: str
    email: str | None = None


class RoleLookup(BaseModel):
    role: Role | None = None


class UserUpdateRequest(BaseModel):
    full_name: str | None = Field(default=None, min_length=2, max_length=200)
    first_name: str | None = Field(default=None, min_length=1, max_length=120)
    last_name: str | None = Field(default=None, min_length=1, max_length=120)
    company: str | None = Field(default=None, max_length=200)
    phone: str | None = Field(default=None, max_length=40)
    avatar_url: HttpUrl | None = None
    bio: str | None = Field(default=None, max_length=1000)
    location: str | None = Field(default=None, max_length=200)
    website: HttpUrl | None = None
    linkedin_url: HttpUrl | None = None
    role: Role | None = None


class RoleUpdateRequest(BaseModel):
    role: Role


class CandidateProfileUpsertRequest(BaseModel):
    resume_url: HttpUrl | None = None
    skills: list[str] = Field(default_factory=list)
    experience_years: int = Field(default=0, ge=0, le=50)
    bio: str | None = Field(default=None, max_length=1000)
    linkedin_url: HttpUrl | None = None
    portfolio_url: HttpUrl | None = None


class RecruiterProfileUpsertRequest(BaseModel):
    company_name: str = Field(..., min_length=2, max_length=200)
    company_website: HttpUrl | None = None
    company_logo: HttpUrl | None = None


class RecruiterSummary(BaseModel):
    id: str
    full_name: str | None = None
    company: str | None = None


class JobRecord(BaseModel):
    id: str
    recruiter_id: str
    title: str
    description: str
    requirements: str | None = None
    salary_range: str | None = None
    location: str | None = None
    tags: list[str] = Field(default_factory=list)
    status: JobStatus
    pipeline_config: dict[str, Any] = Field(default_factory=dict)
    created_at: str
    updated_at: str
    recruiter: RecruiterSummary | None = None


class JobCreateRequest(BaseModel):
    title: str = Field(..., min_length=3, max_length=200)
    description: str = Field(..., min_length=10, max_length=20000)
    requirements: str | None = Field(default=None, max_length=20000)
    salary_range: str | None = Field(default=None, max_length=120)
    location: str | None = Field(default=None, max_length=200)
    tags: list[str] = Field(..., min_length=1)


class JobUpdateRequest(BaseModel):
    title: str | None = Field(default=None, min_length=3, max_length=200)
    description: str | None = Field(default=None, min_length=10, max_length=20000)
    requirements: str | None = Field(default=None, max_length=20000)
    salary_range: str | None = Field(default=None, max_length=120)
    location: str | None = Field(default=None, max_length=200)
    tags: list[str] | None = Field(default=None, min_length=1)
    status: JobStatus | None = None


class JobSummary(BaseModel):
    id: str
    title: str
    location: str | None = None
    status: JobStatus
    recruiter_id: str


class CandidateSummary(BaseModel):
    id: str
    full_name: str | None = None
    email: str


class ApplicationRecord(BaseModel):
    id: str
    job_id: str
    candidate_id: str
    status: ApplicationStatus
    score: float
    cover_letter: str | None = None
    created_at: str
    updated_at: str
    job: JobSummary
    candidate: CandidateSummary
    candidate_profile: CandidateProfile | None = None


class ApplyRequest(BaseModel):
    cover_letter: str | None = Field(default=None, max_length=10000)


class ApplicationStatusUpdateRequest(BaseModel):
    status: ApplicationStatus
    score: float | None = Field(default=None, ge=0, le=100)


class PipelineConfig(BaseModel):
    auto_reject_score: float | None = Field(default=None, ge=0, le=100)
    stages: list[str] | None = None


class StartPipelineRequest(BaseModel):
    candidates: list[uuid.UUID] = Field(..., min_length=1)
    pipeline_config: PipelineConfig | None = None


class AuditEvent(BaseModel):
    event_id: int
    occurred_at: str
    request_id: str | None = None
    method: str
    path: str
    action: str
    required_role: str | None = None
    source_ip: str | None = None
    user_agent: str | None = None
    auth_subject: str | None = None
    status: str
    message: str | None = None


class MetricsSnapshot(BaseModel):
    generated_at: str
    totals: dict[str, int]
    endpoints: dict[str, dict[str, float | int]]


class DuplicateEmailError(Exception):
    pass


class DuplicateApplicationError(Exception):
    pass


class MetricsStore:
    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._totals = {"requests": 0, "errors": 0, "denied": 0}
        self._endpoints: dict[str, dict[str, float | int]] = {}

    def observe(self, *, method: str, path: str, status_code: int, duration_ms: float) -> None:
        key = f"{method} {path}"
        bucket = f"{status_code // 100}xx"
        with self._lock:
            self._totals["requests"] += 1
            if status_code >= 400:
                self._totals["errors"] += 1
            if status_code in (401, 403):
                self._totals["denied"] += 1
            endpoint = self._endpoints.setdefault(
                key,
                {"count": 0, "2xx": 0, "4xx": 0, "5xx": 0, "latency_ms_sum": 0.0},
            )
            endpoint["count"] = int(endpoint["count"]) + 1
            if bucket in ("2xx", "4xx", "5xx"):
                endpoint[bucket] = int(endpoint[bucket]) + 1
            endpoint["latency_ms_sum"] = float(endpoint["latency_ms_sum"]) + duration_ms
            endpoint["latency_ms_avg"] = float(endpoint["latency_ms_sum"]) / int(endpoint["count"])

    def snapshot(self) -> MetricsSnapshot:
        with self._lock:
            return MetricsSnapshot(
                generated_at=now_utc_iso(),
                totals=dict(self._totals),
                endpoints={key: dict(value) for key, value in self._endpoints.items()},
            )


class JobBoardRepository:
    def __init__(self, database_path: str, *, bcrypt_rounds: int = DEFAULT_BCRYPT_ROUNDS) -> None:
        self.database_path = database_path
        self.bcrypt_rounds = bcrypt_rounds
        self._connection: sqlite3.Connection | None = None
        self._lock = threading.RLock()

    @property
    def connection(self) -> sqlite3.Connection:
        if self._connection is None:
            raise RuntimeError("Database connection is not initialized")
        return self._connection

    def connect(self) -> None:
        with self._lock:
            os.makedirs(os.path.dirname(os.path.abspath(self.database_path)), exist_ok=True)
            self._connection = sqlite3.connect(self.database_path, check_same_thread=False)
            self._connection.row_factory = sqlite3.Row
            self._connection.execute("PRAGMA foreign_keys=ON")
            self._connection.executescript(
                """
                CREATE TABLE IF NOT EXISTS users (
                    id TEXT PRIMARY KEY,
                    email TEXT NOT NULL UNIQUE COLLATE NOCASE,
                    password_hash TEXT NOT NULL,
                    role TEXT NOT NULL CHECK (role IN ('candidate', 'recruiter', 'admin')),
                    full_name TEXT,
                    first_name TEXT,
                    last_name TEXT,
                    company TEXT,
                    phone TEXT,
                    avatar_url TEXT,
                    bio TEXT,
                    location TEXT,
                    website TEXT,
                    linkedin_url TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS candidate_profiles (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL UNIQUE REFERENCES users(id) ON DELETE CASCADE,
                    resume_url TEXT,
                    skills_json TEXT NOT NULL DEFAULT '[]',
                    experience_years INTEGER NOT NULL DEFAULT 0,
                    bio TEXT,
                    linkedin_url TEXT,
                    portfolio_url TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS recruiter_profiles (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL UNIQUE REFERENCES users(id) ON DELETE CASCADE,
                    company_name TEXT NOT NULL,
                    company_website TEXT,
                    company_logo TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS jobs (
                    id TEXT PRIMARY KEY,
                    recruiter_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                    title TEXT NOT NULL,
                    description TEXT NOT NULL,
                    requirements TEXT,
                    salary_range TEXT,
                    location TEXT,
                    tags_json TEXT NOT NULL DEFAULT '[]',
                    status TEXT NOT NULL DEFAULT 'open'
                        CHECK (status IN ('open', 'closed', 'archived')),
                    pipeline_config_json TEXT NOT NULL DEFAULT '{}',
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS applications (
                    id TEXT PRIMARY KEY,
                    job_id TEXT NOT NULL REFERENCES jobs(id) ON DELETE CASCADE,
                    candidate_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                    status TEXT NOT NULL DEFAULT 'applied' CHECK (
                        status IN ('applied', 'screening', 'interview_scheduled', 'rejected', 'hired')
                    ),
                    score REAL NOT NULL DEFAULT 0,
                    cover_letter TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    UNIQUE (job_id, candidate_id)
                );

                CREATE TABLE IF NOT EXISTS sessions (
                    id TEXT PRIMARY KEY,
                    token_hash TEXT NOT NULL UNIQUE,
                    user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                    created_at TEXT NOT NULL,
                    expires_at TEXT NOT NULL,
                    revoked_at TEXT
                );

                CREATE TABLE IF NOT EXISTS audit_events (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    occurred_at TEXT NOT NULL,
                    request_id TEXT,
                    method TEXT NOT NULL,
                    path TEXT NOT NULL,
                    action TEXT NOT NULL,
                    required_role TEXT,
                    source_ip TEXT,
                    user_agent TEXT,
                    auth_subject TEXT,
                    status TEXT NOT NULL,
                    message TEXT
                );

                CREATE INDEX IF NOT EXISTS idx_jobs_recruiter ON jobs (recruiter_id);
                CREATE INDEX IF NOT EXISTS idx_jobs_status ON jobs (status, created_at);
                CREATE INDEX IF NOT EXISTS idx_applications_job ON applications (job_id);
                CREATE INDEX IF NOT EXISTS idx_applications_candidate ON applications (candidate_id);
                """
            )
            self._connection.commit()

    def close(self) -> None:
        with self._lock:
            if self._connection is None:
                return
            self._connection.close()
            self._connection = None

    def fetch_field(self, table: str, column: str, row_id: str) -> str | None:
        if (table, column) not in READABLE_FIELDS:
            raise ValueError(f"Field {table}.{column} is not readable")
        with self._lock:
            row = self.connection.execute(
                f"SELECT {column} AS value FROM {table} WHERE id = ?",
                (row_id,),
            ).fetchone()
            if row is None:
                return None
            return row["value"]

    def hash_password(self, password: str) -> str:
        return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=self.bcrypt_rounds)).decode()

    def create_user(
        self,
        *,
        email: str,
        password: str,
        role: Role,
        first_name: str | None = None,
        last_name: str | None = None,
        company: str | None = None,
        phone: str | None = None,
    ) -> UserPublic:
        password_hash = self.hash_password(password)
        full_name = " ".join(part for part in (first_name, last_name) if part) or None
        with self._lock:
            now = now_utc_iso()
            user_id = str(uuid.uuid4())
            try:
                self.connection.execute(
                    """
                    INSERT INTO users (
                        id, email, password_hash, role, full_name, first_name,
                        last_name, company, phone, created_at, updated_at
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        user_id,
                        email,
                        password_hash,
                        role.value,
                        full_name,
                        first_name,
                        last_name,
                        company,
                        phone,
                        now,
                        now,
                    ),
                )
            except sqlite3.IntegrityError as exc:
                self.connection.rollback()
                raise DuplicateEmailError(email) from exc
            self.connection.commit()
            return self.get_user_or_raise(user_id)

    def ensure_admin(self, email: str, password: str) -> UserPublic:
        with self._lock:
            row = self.connection.execute(
                "SELECT id FROM users WHERE email = ?",
                (email,),
            ).fetchone()
            if row is None:
                return self.create_user(email=email, password=password, role=Role.ADMIN)
            updated = self.update_user(row["id"], {"role": Role.ADMIN.value})
            if updated is None:
                raise KeyError(f"Unknown user_id: {row['id']}")
            return updated

    def verify_credentials(self, email: str, password: str) -> UserPublic | None:
        with self._lock:
            row = self.connection.execute(
                "SELECT id, password_hash FROM users WHERE email = ?",
                (email,),
            ).fetchone()
        if row is None:
            return None
        if not bcrypt.checkpw(password.encode(), row["password_hash"].encode()):
            return None
        return self.get_user(row["id"])

    def get_user_or_raise(self, user_id: str) -> UserPublic:
        user = self.get_user(user_id)
        if user is None:
            raise KeyError(f"Unknown user_id: {user_id}")
        return user

    def get_user(self, user_id: str) -> UserPublic | None:
        with self._lock:
            row = self.connection.execute(
                f"SELECT {USER_COLUMNS} FROM users WHERE id = ?",
                (user_id,),
            ).fetchone()
            if row is None:
                return None
            return UserPublic(**dict(row))

    def get_user_detail(self, user_id: str) -> UserDetail | None:
        with self._lock:
            user = self.get_user(user_id)
            if user is None:
                return None
            return UserDetail(
                **user.model_dump(),
                candidate_profile=self.get_candidate_profile(user_id),
                recruiter_profile=self.get_recruiter_profile(user_id),
            )

    def list_users(self, *, page: int, limit: int) -> tuple[list[UserPublic], int]:
        with self._lock:
            count = int(
                self.connection.execute("SELECT COUNT(1) AS c FROM users").fetchone()["c"]
            )
            cursor = self.connection.execute(
                f"""
                SELECT {USER_COLUMNS}
                FROM users
                ORDER BY created_at DESC, rowid DESC
                LIMIT ? OFFSET ?
                """,
                (limit, page_offset(page, limit)),
            )
            return [UserPublic(**dict(row)) for row in cursor.fetchall()], count

    def update_user(self, user_id: str, fields: dict[str, Any]) -> UserPublic | None:
        updates = {
            column: (str(value) if value is not None and column != "role" else value)
            for column, value in fields.items()
            if column in USER_EDITABLE_COLUMNS
        }
        with self._lock:
            if updates:
                assignments = ", ".join(f"{column} = ?" for column in updates)
                cursor = self.connection.execute(
                    f"UPDATE users SET {assignments}, updated_at = ? WHERE id = ?",
                    (*updates.values(), now_utc_iso(), user_id),
                )
                self.connection.commit()
                if cursor.rowcount == 0:
                    return None
            return self.get_user(user_id)

    def delete_user(self, user_id: str) -> bool:
        with self._lock:
            cursor = self.connection.execute("DELETE FROM users WHERE id = ?", (user_id,))
            self.connection.commit()
            return cursor.rowcount > 0

    def create_session(self, user_id: str, *, ttl_hours: float) -> tuple[str, str]:
        with self._lock:
            raw_token = f"jb_{secrets.token_urlsafe(32)}"
            expires_at = utc_iso_after(hours=ttl_hours)
            self.connection.execute(
                """
                INSERT INTO sessions (id, token_hash, user_id, created_at, expires_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (str(uuid.uuid4()), hash_token(raw_token), user_id, now_utc_iso(), expires_at),
            )
            self.connection.commit()
            return raw_token, expires_at

    def resolve_session(self, token_value: str) -> Identity | None:
        with self._lock:
            row = self.connection.execute(
                """
                SELECT users.id AS user_id, users.email AS email
                FROM sessions
                JOIN users ON users.id = sessions.user_id
                WHERE sessions.token_hash = ?
                  AND sessions.revoked_at IS NULL
                  AND sessions.expires_at > ?
                """,
                (hash_token(token_value), now_utc_iso()),
            ).fetchone()
            if row is None:
                return None
            return Identity(user_id=row["user_id"], email=row["email"])

    def revoke_session(self, token_value: str) -> bool:
        with self._lock:
            cursor = self.connection.execute(
                """
                UPDATE sessions
                SET revoked_at = ?
                WHERE token_hash = ? AND revoked_at IS NULL
                """,
                (now_utc_iso(), hash_token(token_value)),
            )
            self.connection.commit()
            return cursor.rowcount > 0

    def get_candidate_profile(self, user_id: str) -> CandidateProfile | None:
        with self._lock:
            row = self.connection.execute(
                """
                SELECT id, user_id, resume_url, skills_json, experience_years, bio,
                       linkedin_url, portfolio_url, created_at, updated_at
                FROM candidate_profiles
                WHERE user_id = ?
                """,
                (user_id,),
            ).fetchone()
            if row is None:
                return None
            return self._to_candidate_profile(row)

    def upsert_candidate_profile(
        self,
        user_id: str,
        payload: CandidateProfileUpsertRequest,
    ) -> CandidateProfile:
        with self._lock:
            now = now_utc_iso()
            self.connection.execute(
                """
                INSERT INTO candidate_profiles (
                    id, user_id, resume_url, skills_json, experience_years, bio,
                    linkedin_url, portfolio_url, created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    resume_url = excluded.resume_url,
                    skills_json = excluded.skills_json,
                    experience_years = excluded.experience_years,
                    bio = excluded.bio,
                    linkedin_url = excluded.linkedin_url,
                    portfolio_url = excluded.portfolio_url,
                    updated_at = excluded.updated_at
                """,
                (
                    str(uuid.uuid4()),
                    user_id,
                    str(payload.resume_url) if payload.resume_url else None,
                    json.dumps(clean_tags(payload.skills)),
                    payload.experience_years,
                    payload.bio,
                    str(payload.linkedin_url) if payload.linkedin_url else None,
                    str(payload.portfolio_url) if payload.portfolio_url else None,
                    now,
                    now,
                ),
            )
            self.connection.commit()
            profile = self.get_candidate_profile(user_id)
            if profile is None:
                raise KeyError(f"Unknown candidate profile: {user_id}")
            return profile

    def get_recruiter_profile(self, user_id: str) -> RecruiterProfile | None:
        with self._lock:
            row = self.connection.execute(
                """
                SELECT id, user_id, company_name, company_website, company_logo,
                       created_at, updated_at
                FROM recruiter_profiles
                WHERE user_id = ?
                """,
                (user_id,),
            ).fetchone()
            if row is None:
                return None
            return RecruiterProfile(**dict(row))

    def upsert_recruiter_profile(
        self,
        user_id: str,
        payload: RecruiterProfileUpsertRequest,
    ) -> RecruiterProfile:
        with self._lock:
            now = now_utc_iso()
            self.connection.execute(
                """
                INSERT INTO recruiter_profiles (
                    id, user_id, company_name, company_website, company_logo,
                    created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    company_name = excluded.company_name,
                    company_website = excluded.company_website,
                    company_logo = excluded.company_logo,
                    updated_at = excluded.updated_at
                """,
                (
                    str(uuid.uuid4()),
                    user_id,
                    payload.company_name,
                    str(payload.company_website) if payload.company_website else None,
                    str(payload.company_logo) if payload.company_logo else None,
                    now,
                    now,
                ),
            )
            self.connection.commit()
            profile = self.get_recruiter_profile(user_id)
            if profile is None:
                raise KeyError(f"Unknown recruiter profile: {user_id}")
            return profile

    def list_jobs(
        self,
        *,
        page: int,
        limit: int,
        status: str | None = None,
        recruiter_id: str | None = None,
        search: str | None = None,
        location: str | None = None,
        tag: str | None = None,
    ) -> tuple[list[JobRecord], int]:
        filters: list[str] = []
        params: list[Any] = []
        if status:
            filters.append("jobs.status = ?")
            params.append(status)
        if recruiter_id:
            filters.append("jobs.recruiter_id = ?")
            params.append(recruiter_id)
        if search:
            filters.append(
                "(jobs.title LIKE ? ESCAPE '\\' OR jobs.description LIKE ? ESCAPE '\\')"
            )
            params.extend([like_pattern(search), like_pattern(search)])
        if location:
            filters.append("jobs.location LIKE ? ESCAPE '\\'")
            params.append(like_pattern(location))
        if tag:
            filters.append(
                "EXISTS (SELECT 1 FROM json_each(jobs.tags_json) WHERE json_each.value = ?)"
            )
            params.append(tag)
        where = f"WHERE {' AND '.join(filters)}" if filters else ""
        with self._lock:
            count = int(
                self.connection.execute(
                    f"SELECT COUNT(1) AS c FROM jobs {where}",
                    tuple(params),
                ).fetchone()["c"]
            )
            cursor = self.connection.execute(
                f"""
                SELECT {JOB_COLUMNS}
                FROM jobs
                LEFT JOIN users AS recruiters ON recruiters.id = jobs.recruiter_id
                {where}
                ORDER BY jobs.created_at DESC, jobs.rowid DESC
                LIMIT ? OFFSET ?
                """,
                (*params, limit, page_offset(page, limit)),
            )
            return [self._to_job(row) for row in cursor.fetchall()], count

    def get_job(self, job_id: str) -> JobRecord | None:
        with self._lock:
            row = self.connection.execute(
                f"""
                SELECT {JOB_COLUMNS}
                FROM jobs
                LEFT JOIN users AS recruiters ON recruiters.id = jobs.recruiter_id
                WHERE jobs.id = ?
                """,
                (job_id,),
            ).fetchone()
            if row is None:
                return None
            return self._to_job(row)

    def create_job(self, recruiter_id: str, payload: JobCreateRequest) -> JobRecord:
        with self._lock:
            now = now_utc_iso()
            job_id = str(uuid.uuid4())
            self.connection.execute(
                """
                INSERT INTO jobs (
                    id, recruiter_id, title, description, requirements, salary_range,
                    location, tags_json, created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    job_id,
                    recruiter_id,
                    payload.title,
                    payload.description,
                    payload.requirements,
                    payload.salary_range,
                    payload.location,
                    json.dumps(clean_tags(payload.tags)),
                    now,
                    now,
                ),
            )
            self.connection.commit()
            job = self.get_job(job_id)
            if job is None:
                raise KeyError(f"Unknown job_id: {job_id}")
            return job

    def update_job(self, job_id: str, payload: JobUpdateRequest) -> JobRecord | None:
        changes = payload.model_dump(exclude_unset=True)
        updates: dict[str, Any] = {
            column: value
            for column, value in changes.items()
            if column in JOB_EDITABLE_COLUMNS
            and not (value is None and column in REQUIRED_JOB_COLUMNS)
        }
        if changes.get("tags") is not None:
            updates["tags_json"] = json.dumps(clean_tags(changes["tags"]))
        with self._lock:
            if updates:
                assignments = ", ".join(f"{column} = ?" for column in updates)
                self.connection.execute(
                    f"UPDATE jobs SET {assignments}, updated_at = ? WHERE id = ?",
                    (*updates.values(), now_utc_iso(), job_id),
                )
                self.connection.commit()
            return self.get_job(job_id)

    def delete_job(self, job_id: str) -> bool:
        with self._lock:
            cursor = self.connection.execute("DELETE FROM jobs WHERE id = ?", (job_id,))
            self.connection.commit()
            return cursor.rowcount > 0

    def start_pipeline(
        self,
        job_id: str,
        application_ids: list[str],
        pipeline_config: dict[str, Any] | None,
    ) -> int:
        with self._lock:
            now = now_utc_iso()
            placeholders = ", ".join("?" for _ in application_ids)
            cursor = self.connection.execute(
                f"""
                UPDATE applications
                SET status = 'screening', score = 0, updated_at = ?
                WHERE job_id = ? AND id IN ({placeholders})
                """,
                (now, job_id, *application_ids),
            )
            moved = cursor.rowcount
            if pipeline_config is not None:
                row = self.connection.execute(
                    "SELECT pipeline_config_json FROM jobs WHERE id = ?",
                    (job_id,),
                ).fetchone()
                merged = json.loads(row["pipeline_config_json"]) if row else {}
                merged.update(pipeline_config)
                merged["last_pipeline_start"] = now
                self.connection.execute(
                    "UPDATE jobs SET pipeline_config_json = ?, updated_at = ? WHERE id = ?",
                    (json.dumps(merged), now, job_id),
                )
            self.connection.commit()
            return moved

    def create_application(
        self,
        job_id: str,
        candidate_id: str,
        cover_letter: str | None,
    ) -> ApplicationRecord:
        with self._lock:
            now = now_utc_iso()
            app_id = str(uuid.uuid4())
            try:
                self.connection.execute(
                    """
                    INSERT INTO applications (
                        id, job_id, candidate_id, cover_letter, created_at, updated_at
                    )
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (app_id, job_id, candidate_id, cover_letter, now, now),
                )
            except sqlite3.IntegrityError as exc:
                self.connection.rollback()
                raise DuplicateApplicationError(f"{candidate_id} -> {job_id}") from exc
            self.connection.commit()
            application = self.get_application(app_id)
            if application is None:
                raise KeyError(f"Unknown application_id: {app_id}")
            return application

    def get_application(
        self,
        app_id: str,
        *,
        job_id: str | None = None,
        include_profile: bool = False,
    ) -> ApplicationRecord | None:
        query = f"""
            SELECT {APPLICATION_COLUMNS}
            FROM applications
            JOIN jobs ON jobs.id = applications.job_id
            JOIN users AS candidates ON candidates.id = applications.candidate_id
            WHERE applications.id = ?
        """
        params: list[Any] = [app_id]
        if job_id is not None:
            query += " AND applications.job_id = ?"
            params.append(job_id)
        with self._lock:
            row = self.connection.execute(query, tuple(params)).fetchone()
            if row is None:
                return None
            application = self._to_application(row)
            if include_profile:
                application.candidate_profile = self.get_candidate_profile(
                    application.candidate_id
                )
            return application

    def list_applications(
        self,
        *,
        page: int,
        limit: int,
        job_id: str | None = None,
        candidate_id: str | None = None,
        recruiter_id: str | None = None,
        status: str | None = None,
    ) -> tuple[list[ApplicationRecord], int]:
        filters: list[str] = []
        params: list[Any] = []
        if job_id:
            filters.append("applications.job_id = ?")
            params.append(job_id)
        if candidate_id:
            filters.append("applications.candidate_id = ?")
            params.append(candidate_id)
        if recruiter_id:
            filters.append("jobs.recruiter_id = ?")
            params.append(recruiter_id)
        if status:
            filters.append("applications.status = ?")
            params.append(status)
        where = f"WHERE {' AND '.join(filters)}" if filters else ""
        joins = """
            JOIN jobs ON jobs.id = applications.job_id
            JOIN users AS candidates ON candidates.id = applications.candidate_id
        """
        with self._lock:
            count = int(
                self.connection.execute(
                    f"SELECT COUNT(1) AS c FROM applications {joins} {where}",
                    tuple(params),
                ).fetchone()["c"]
            )
            cursor = self.connection.execute(
                f"""
                SELECT {APPLICATION_COLUMNS}
                FROM applications
                {joins}
                {where}
                ORDER BY applications.created_at DESC, applications.rowid DESC
                LIMIT ? OFFSET ?
                """,
                (*params, limit, page_offset(page, limit)),
            )
            return [self._to_application(row) for row in cursor.fetchall()], count

    def update_application_status(
        self,
        app_id: str,
        *,
        job_id: str,
        status: str,
        score: float | None,
    ) -> ApplicationRecord | None:
        with self._lock:
            now = now_utc_iso()
            if score is None:
                cursor = self.connection.execute(
                    """
                    UPDATE applications SET status = ?, updated_at = ?
                    WHERE id = ? AND job_id = ?
                    """,
                    (status, now, app_id, job_id),
                )
            else:
                cursor = self.connection.execute(
                    """
                    UPDATE applications SET status = ?, score = ?, updated_at = ?
                    WHERE id = ? AND job_id = ?
                    """,
                    (status, score, now, app_id, job_id),
                )
            self.connection.commit()
            if cursor.rowcount == 0:
                return None
            return self.get_application(app_id, job_id=job_id)

    def record_audit_event(
        self,
        *,
        request_id: str | None,
        method: str,
        path: str,
        action: str,
        required_role: str | None,
        source_ip: str | None,
        user_agent: str | None,
        auth_subject: str | None,
        status: str,
        message: str | None,
    ) -> int:
        with self._lock:
            cursor = self.connection.execute(
                """
                INSERT INTO audit_events (
                    occurred_at, request_id, method, path, action, required_role,
                    source_ip, user_agent, auth_subject, status, message
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    now_utc_iso(),
                    request_id,
                    method,
                    path,
                    action,
                    required_role,
                    source_ip,
                    user_agent,
                    auth_subject,
                    status,
                    message,
                ),
            )
            self.connection.commit()
            return int(cursor.lastrowid)

    def list_audit_events(
        self,
        *,
        limit: int,
        action: str | None,
        status: str | None,
    ) -> list[AuditEvent]:
        with self._lock:
            query = """
                SELECT
                    id AS event_id, occurred_at, request_id, method, path, action,
                    required_role, source_ip, user_agent, auth_subject, status, message
                FROM audit_events
            """
            params: list[Any] = []
            filters: list[str] = []
            if action:
                filters.append("action = ?")
                params.append(action)
            if status:
                filters.append("status = ?")
                params.append(status)
            if filters:
                query += " WHERE " + " AND ".join(filters)
            query += " ORDER BY id DESC LIMIT ?"
            params.append(limit)
            cursor = self.connection.execute(query, tuple(params))
            return [AuditEvent(**dict(row)) for row in cursor.fetchall()]

    def _to_candidate_profile(self, row: sqlite3.Row) -> CandidateProfile:
        data = dict(row)
        data["skills"] = json.loads(data.pop("skills_json") or "[]")
        return CandidateProfile(**data)

    def _to_job(self, row: sqlite3.Row) -> JobRecord:
        data = dict(row)
        recruiter_full_name = data.pop("recruiter_full_name", None)
        recruiter_company = data.pop("recruiter_company", None)
        data["tags"] = json.loads(data.pop("tags_json") or "[]")
        data["pipeline_config"] = json.loads(data.pop("pipeline_config_json") or "{}")
        data["recruiter"] = RecruiterSummary(
            id=data["recruiter_id"],
            full_name=recruiter_full_name,
            company=recruiter_company,
        )
        return JobRecord(**data)

    def _to_application(self, row: sqlite3.Row) -> ApplicationRecord:
        return ApplicationRecord(
            id=row["id"],
            job_id=row["job_id"],
            candidate_id=row["candidate_id"],
            status=row["status"],
            score=row["score"],
            cover_letter=row["cover_letter"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            job=JobSummary(
                id=row["job_id"],
                title=row["job_title"],
                location=row["job_location"],
                status=row["job_status"],
                recruiter_id=row["job_recruiter_id"],
            ),
            candidate=CandidateSummary(
                id=row["candidate_id"],
                full_name=row["candidate_full_name"],
                email=row["candidate_email"],
            ),
        )


def paginate(items: list[Any], count: int, *, page: int, limit: int) -> dict[str, Any]:
    return {
        "data": items,
        "count": count,
        "page": page,
        "limit": limit,
        "total_pages": total_pages(count, limit),
    }


def create_app(
    *,
    database_path: str | None = None,
    session_ttl_hours: float | None = None,
    bcrypt_rounds: int | None = None,
    admin_email: str | None = None,
    admin_password: str | None = None,
) -> FastAPI:
    resolved_path = database_path or os.getenv("JOBBOARD_DB_PATH", DEFAULT_DB_PATH)
    resolved_ttl = session_ttl_hours or float(
        os.getenv("JOBBOARD_SESSION_TTL_HOURS", str(DEFAULT_SESSION_TTL_HOURS))
    )
    resolved_rounds = bcrypt_rounds or int(
        os.getenv("JOBBOARD_BCRYPT_ROUNDS", str(DEFAULT_BCRYPT_ROUNDS))
    )
    resolved_admin_email = (admin_email or os.getenv("JOBBOARD_ADMIN_EMAIL", "")).strip()
    resolved_admin_password = admin_password or os.getenv("JOBBOARD_ADMIN_PASSWORD", "")
    if resolved_admin_password:
        check_password_bytes(resolved_admin_password)

    repository = JobBoardRepository(database_path=resolved_path, bcrypt_rounds=resolved_rounds)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await run_in_threadpool(repository.connect)
        if resolved_admin_email and resolved_admin_password:
            admin = await run_in_threadpool(
                repository.ensure_admin,
                resolved_admin_email,
                resolved_admin_password,
            )
            LOGGER.info(json.dumps({"event": "admin_bootstrapped", "user_id": admin.id}))
        app.state.repository = repository
        app.state.session_ttl_hours = resolved_ttl
        app.state.metrics = MetricsStore()
        try:
            yield
        finally:
            await run_in_threadpool(repository.close)

    app = FastAPI(title="Job Board API", version="1.0.0", lifespan=lifespan)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": str(exc.detail)},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request,
        exc: RequestValidationError,
    ) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={"error": "Invalid input data", "details": jsonable_encoder(exc.errors())},
        )

    async def write_audit_event(
        request: Request,
        *,
        action: str,
        status: str,
        required_role: str | None = None,
        message: str | None = None,
        identity: Identity | None = None,
    ) -> int:
        return await run_in_threadpool(
            request.app.state.repository.record_audit_event,
            request_id=getattr(request.state, "request_id", None),
            method=request.method,
            path=request.url.path,
            action=action,
            required_role=required_role,
            source_ip=request.client.host if request.client else None,
            user_agent=request.headers.get("user-agent"),
            auth_subject=f"user:{identity.user_id}" if identity else None,
            status=status,
            message=message,
        )

    @app.middleware("http")
    async def observability_middleware(request: Request, call_next):
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request.state.request_id = request_id
        started = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception as exc:
            duration_ms = (time.perf_counter() - started) * 1000
            request.app.state.metrics.observe(
                method=request.method,
                path=request.url.path,
                status_code=500,
                duration_ms=duration_ms,
            )
            LOGGER.exception(
                json.dumps(
                    {
                        "event": "request_complete",
                        "request_id": request_id,
                        "method": request.method,
                        "path": request.url.path,
                        "status_code": 500,
                        "duration_ms": round(duration_ms, 3),
                        "error": str(exc),
                    }
                )
            )
            return JSONResponse(
                status_code=500,
                content={"error": "Internal Server Error", "request_id": request_id},
                headers={"x-request-id": request_id},
            )

        duration_ms = (time.perf_counter() - started) * 1000
        route = request.scope.get("route")
        request.app.state.metrics.observe(
            method=request.method,
            path=getattr(route, "path", request.url.path),
            status_code=response.status_code,
            duration_ms=duration_ms,
        )
        response.headers["x-request-id"] = request_id
        LOGGER.info(
            json.dumps(
                {
                    "event": "request_complete",
                    "request_id": request_id,
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": response.status_code,
                    "duration_ms": round(duration_ms, 3),
                    "source_ip": request.client.host if request.client else None,
                }
            )
        )
        return response

    async def current_identity(request: Request) -> Identity | None:
        if hasattr(request.state, "identity"):
            return request.state.identity
        token = bearer_token(request)
        identity = None
        if token:
            identity = await run_in_threadpool(request.app.state.repository.resolve_session, token)
        request.state.identity = identity
        return identity

    async def require_access(
        request: Request,
        *,
        action: str,
        policy: AccessPolicy | None = None,
    ) -> Identity:
        resolved_policy = policy or AccessPolicy()
        identity = await current_identity(request)
        try:
            return await run_in_threadpool(
                check_access,
                request.app.state.repository,
                identity,
                resolved_policy,
            )
        except AccessDenied as exc:
            await write_audit_event(
                request,
                action=action,
                status=exc.outcome,
                required_role=resolved_policy.required_role,
                message=exc.message,
                identity=identity,
            )
            raise HTTPException(status_code=exc.status_code, detail=exc.message) from exc

    recruiter_only = AccessPolicy(role=Role.RECRUITER, role_message="Recruiter access required")
    candidate_only = AccessPolicy(role=Role.CANDIDATE, role_message="Only candidates can apply to jobs")
    admin_only = AccessPolicy(role=Role.ADMIN, role_message="Admin access required")

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok", "service": "jobboard"}

    @app.get("/metrics", response_model=MetricsSnapshot)
    async def metrics(request: Request) -> MetricsSnapshot:
        return request.app.state.metrics.snapshot()

    @app.post("/auth/sign-up", status_code=201, response_model=Envelope[UserPublic])
    async def sign_up(payload: SignUpRequest, request: Request) -> Envelope[UserPublic]:
        if payload.role == Role.RECRUITER.value and not (payload.company or "").strip():
            raise HTTPException(status_code=400, detail="Company name is required for recruiters")
        try:
            user = await run_in_threadpool(
                request.app.state.repository.create_user,
                email=str(payload.email),
                password=payload.password,
                role=Role(payload.role),
                first_name=payload.first_name.strip(),
                last_name=payload.last_name.strip(),
                company=(payload.company or "").strip() or None,
                phone=(payload.phone or "").strip() or None,
            )
        except DuplicateEmailError as exc:
            raise HTTPException(
                status_code=400,
                detail="User already exists with this email",
            ) from exc
        await write_audit_event(
            request,
            action="sign_up",
            status="ok",
            message=f"role={user.role.value}",
            identity=Identity(user_id=user.id, email=user.email),
        )
        return Envelope(data=user, message="Registration successful! You can now sign in.")

    @app.post("/auth/sign-in", response_model=Envelope[SessionGrant])
    async def sign_in(payload: SignInRequest, request: Request) -> Envelope[SessionGrant]:
        repository: JobBoardRepository = request.app.state.repository
        user = await run_in_threadpool(
            repository.verify_credentials,
            str(payload.email),
            payload.password,
        )
        if user is None:
            await write_audit_event(
                request,
                action="sign_in",
                status="unauthorized",
                message="invalid credentials",
            )
            raise HTTPException(status_code=401, detail="Invalid email or password")
        token, expires_at = await run_in_threadpool(
            repository.create_session,
            user.id,
            ttl_hours=request.app.state.session_ttl_hours,
        )
        return Envelope(data=SessionGrant(token=token, expires_at=expires_at, user=user))

    @app.post("/auth/sign-out", response_model=MessageResponse)
    async def sign_out(request: Request) -> MessageResponse:
        await require_access(request, action="sign_out")
        token = bearer_token(request)
        if token:
            await run_in_threadpool(request.app.state.repository.revoke_session, token)
        return MessageResponse(message="Signed out")

    @app.get("/auth/session", response_model=Envelope[SessionIdentity])
    async def session(request: Request) -> Envelope[SessionIdentity]:
        identity = await require_access(request, action="session_resolve")
        return Envelope(data=SessionIdentity(user_id=identity.user_id, email=identity.email))

    @app.get("/me/role", response_model=Envelope[RoleLookup])
    async def my_role(request: Request) -> Envelope[RoleLookup]:
        identity = await require_access(request, action="role_lookup")
        role = await run_in_threadpool(
            lookup_role,
            request.app.state.repository,
            identity.user_id,
        )
        return Envelope(data=RoleLookup(role=role))

    @app.get("/me", response_model=Envelope[UserDetail])
    async def get_me(request: Request) -> Envelope[UserDetail]:
        identity = await require_access(request, action="me_read")
        user = await run_in_threadpool(
            request.app.state.repository.get_user_detail,
            identity.user_id,
        )
        if user is None:
            raise HTTPException(status_code=404, detail="User not found")
        return Envelope(data=user)

    @app.put("/me", response_model=Envelope[UserPublic])
    async def update_me(payload: UserUpdateRequest, request: Request) -> Envelope[UserPublic]:
        identity = await require_access(request, action="me_update")
        repository: JobBoardRepository = request.app.state.repository
        changes = payload.model_dump(exclude_unset=True)
        if changes.get("role") is None:
            changes.pop("role", None)
        else:
            if payload.role is Role.ADMIN:
                await write_audit_event(
                    request,
                    action="me_update",
                    status="forbidden",
                    required_role=Role.ADMIN.value,
                    message="self-assigned admin role",
                    identity=identity,
                )
                raise HTTPException(status_code=403, detail="Cannot assign admin role to yourself")
            current_role = await run_in_threadpool(lookup_role, repository, identity.user_id)
            if current_role is Role.ADMIN:
                raise HTTPException(status_code=400, detail="Cannot change your own role")
            changes["role"] = payload.role.value
        user = await run_in_threadpool(repository.update_user, identity.user_id, changes)
        if user is None:
            raise HTTPException(status_code=404, detail="User not found")
        return Envelope(data=user, message="Profile updated successfully!")

    @app.get("/me/candidate-profile", response_model=Envelope[CandidateProfile | None])
    async def get_candidate_profile(request: Request) -> Envelope[CandidateProfile | None]:
        identity = await require_access(
            request,
            action="candidate_profile_read",
            policy=AccessPolicy(role=Role.CANDIDATE, role_message="Candidate access required"),
        )
        profile = await run_in_threadpool(
            request.app.state.repository.get_candidate_profile,
            identity.user_id,
        )
        return Envelope(data=profile)

    @app.put("/me/candidate-profile", response_model=Envelope[CandidateProfile])
    async def upsert_candidate_profile(
        payload: CandidateProfileUpsertRequest,
        request: Request,
    ) -> Envelope[CandidateProfile]:
        identity = await require_access(
            request,
            action="candidate_profile_upsert",
            policy=AccessPolicy(role=Role.CANDIDATE, role_message="Candidate access required"),
        )
        profile = await run_in_threadpool(
            request.app.state.repository.upsert_candidate_profile,
            identity.user_id,
            payload,
        )
        return Envelope(data=profile, message="Profile saved")

    @app.get("/me/recruiter-profile", response_model=Envelope[RecruiterProfile | None])
    async def get_recruiter_profile(request: Request) -> Envelope[RecruiterProfile | None]:
        identity = await require_access(
            request,
            action="recruiter_profile_read",
            policy=recruiter_only,
        )
        profile = await run_in_threadpool(
            request.app.state.repository.get_recruiter_profile,
            identity.user_id,
        )
        return Envelope(data=profile)

    @app.put("/me/recruiter-profile", response_model=Envelope[RecruiterProfile])
    async def upsert_recruiter_profile(
        payload: RecruiterProfileUpsertRequest,
        request: Request,
    ) -> Envelope[RecruiterProfile]:
        identity = await require_access(
            request,
            action="recruiter_profile_upsert",
            policy=recruiter_only,
        )
        profile = await run_in_threadpool(
            request.app.state.repository.upsert_recruiter_profile,
            identity.user_id,
            payload,
        )
        return Envelope(data=profile, message="Profile saved")

    @app.get("/jobs", response_model=Paginated[JobRecord])
    async def list_open_jobs(
        request: Request,
        page: int = Query(default=1, ge=1),
        limit: int = Query(default=10, ge=1, le=100),
        search: str | None = Query(default=None, max_length=200),
        location: str | None = Query(default=None, max_length=200),
        tag: str | None = Query(default=None, max_length=100),
    ) -> dict[str, Any]:
        jobs, count = await run_in_threadpool(
            request.app.state.repository.list_jobs,
            page=page,
            limit=limit,
            status="open",
            search=search,
            location=location,
            tag=tag,
        )
        return paginate(jobs, count, page=page, limit=limit)

    @app.get("/jobs/{job_id}", response_model=Envelope[JobRecord])
    async def get_job(job_id: str, request: Request) -> Envelope[JobRecord]:
        job = await run_in_threadpool(request.app.state.repository.get_job, job_id)
        if job is None:
            raise HTTPException(status_code=404, detail="Job not found")
        return Envelope(data=job)

    @app.post("/jobs/{job_id}/apply", status_code=201, response_model=Envelope[ApplicationRecord])
    async def apply_to_job(
        job_id: str,
        request: Request,
        payload: ApplyRequest | None = None,
    ) -> Envelope[ApplicationRecord]:
        identity = await require_access(request, action="job_apply", policy=candidate_only)
        repository: JobBoardRepository = request.app.state.repository
        profile = await run_in_threadpool(repository.get_candidate_profile, identity.user_id)
        if profile is None or not profile.resume_url:
            raise HTTPException(
                status_code=400,
                detail="Please complete your profile and upload a resume before applying",
            )
        job = await run_in_threadpool(repository.get_job, job_id)
        if job is None:
            raise HTTPException(status_code=404, detail="Job not found")
        if job.status != "open":
            raise HTTPException(status_code=400, detail="This job is not accepting applications")
        try:
            application = await run_in_threadpool(
                repository.create_application,
                job_id,
                identity.user_id,
                payload.cover_letter if payload else None,
            )
        except DuplicateApplicationError as exc:
            raise HTTPException(
                status_code=409,
                detail="You have already applied to this job",
            ) from exc
        return Envelope(data=application, message="Application submitted successfully!")

    @app.get("/my/applications", response_model=Paginated[ApplicationRecord])
    async def list_my_applications(
        request: Request,
        page: int = Query(default=1, ge=1),
        limit: int = Query(default=10, ge=1, le=100),
        status: ApplicationStatus | None = None,
    ) -> dict[str, Any]:
        identity = await require_access(request, action="my_applications_list")
        applications, count = await run_in_threadpool(
            request.app.state.repository.list_applications,
            page=page,
            limit=limit,
            candidate_id=identity.user_id,
            status=status,
        )
        return paginate(applications, count, page=page, limit=limit)

    @app.get("/my/applications/{app_id}", response_model=Envelope[ApplicationRecord])
    async def get_my_application(app_id: str, request: Request) -> Envelope[ApplicationRecord]:
        await require_access(
            request,
            action="my_application_read",
            policy=AccessPolicy(ownership=application_ownership(app_id)),
        )
        application = await run_in_threadpool(
            request.app.state.repository.get_application,
            app_id,
        )
        if application is None:
            raise HTTPException(status_code=404, detail="Application not found")
        return Envelope(data=application)

    @app.get("/recruiter/jobs", response_model=Paginated[JobRecord])
    async def list_recruiter_jobs(
        request: Request,
        page: int = Query(default=1, ge=1),
        limit: int = Query(default=10, ge=1, le=100),
        status: JobStatus | None = None,
        tag: str | None = Query(default=None, max_length=100),
        search: str | None = Query(default=None, max_length=200),
    ) -> dict[str, Any]:
        identity = await require_access(request, action="recruiter_jobs_list", policy=recruiter_only)
        jobs, count = await run_in_threadpool(
            request.app.state.repository.list_jobs,
            page=page,
            limit=limit,
            status=status,
            recruiter_id=identity.user_id,
            search=search,
            tag=tag,
        )
        return paginate(jobs, count, page=page, limit=limit)

    @app.post("/recruiter/jobs", status_code=201, response_model=Envelope[JobRecord])
    async def create_job(
        payload: JobCreateRequest,
        request: Request,
        response: Response,
    ) -> Envelope[JobRecord]:
        identity = await require_access(request, action="job_create", policy=recruiter_only)
        job = await run_in_threadpool(
            request.app.state.repository.create_job,
            identity.user_id,
            payload,
        )
        event_id = await write_audit_event(
            request,
            action="job_create",
            status="ok",
            required_role=Role.RECRUITER.value,
            message=f"job_id={job.id}",
            identity=identity,
        )
        response.headers["x-audit-event-id"] = str(event_id)
        return Envelope(data=job, message="Job created successfully!")

    @app.get("/recruiter/jobs/{job_id}", response_model=Envelope[JobRecord])
    async def get_recruiter_job(job_id: str, request: Request) -> Envelope[JobRecord]:
        await require_access(
            request,
            action="recruiter_job_read",
            policy=AccessPolicy(ownership=job_ownership(job_id)),
        )
        job = await run_in_threadpool(request.app.state.repository.get_job, job_id)
        if job is None:
            raise HTTPException(status_code=404, detail="Job not found or access denied")
        return Envelope(data=job)

    @app.put("/recruiter/jobs/{job_id}", response_model=Envelope[JobRecord])
    async def update_job(
        job_id: str,
        payload: JobUpdateRequest,
        request: Request,
    ) -> Envelope[JobRecord]:
        await require_access(
            request,
            action="job_update",
            policy=AccessPolicy(ownership=job_ownership(job_id)),
        )
        job = await run_in_threadpool(request.app.state.repository.update_job, job_id, payload)
        if job is None:
            raise HTTPException(status_code=404, detail="Job not found or access denied")
        return Envelope(data=job, message="Job updated successfully!")

    @app.delete("/recruiter/jobs/{job_id}", response_model=MessageResponse)
    async def delete_job(job_id: str, request: Request, response: Response) -> MessageResponse:
        identity = await require_access(
            request,
            action="job_delete",
            policy=AccessPolicy(ownership=job_ownership(job_id)),
        )
        await run_in_threadpool(request.app.state.repository.delete_job, job_id)
        event_id = await write_audit_event(
            request,
            action="job_delete",
            status="ok",
            message=f"job_id={job_id}",
            identity=identity,
        )
        response.headers["x-audit-event-id"] = str(event_id)
        return MessageResponse(message="Job deleted successfully!")

    @app.get("/recruiter/jobs/{job_id}/applications", response_model=Paginated[ApplicationRecord])
    async def list_job_applications(
        job_id: str,
        request: Request,
        page: int = Query(default=1, ge=1),
        limit: int = Query(default=10, ge=1, le=100),
        status: ApplicationStatus | None = None,
    ) -> dict[str, Any]:
        await require_access(
            request,
            action="job_applications_list",
            policy=AccessPolicy(ownership=job_ownership(job_id)),
        )
        applications, count = await run_in_threadpool(
            request.app.state.repository.list_applications,
            page=page,
            limit=limit,
            job_id=job_id,
            status=status,
        )
        return paginate(applications, count, page=page, limit=limit)

    @app.get(
        "/recruiter/jobs/{job_id}/applications/{app_id}",
        response_model=Envelope[ApplicationRecord],
    )
    async def get_job_application(
        job_id: str,
        app_id: str,
        request: Request,
    ) -> Envelope[ApplicationRecord]:
        await require_access(
            request,
            action="job_application_read",
            policy=AccessPolicy(ownership=job_ownership(job_id)),
        )
        application = await run_in_threadpool(
            request.app.state.repository.get_application,
            app_id,
            job_id=job_id,
            include_profile=True,
        )
        if application is None:
            raise HTTPException(status_code=404, detail="Application not found")
        return Envelope(data=application)

    @app.put(
        "/recruiter/jobs/{job_id}/applications/{app_id}",
        response_model=Envelope[ApplicationRecord],
    )
    async def update_job_application(
        job_id: str,
        app_id: str,
        payload: ApplicationStatusUpdateRequest,
        request: Request,
    ) -> Envelope[ApplicationRecord]:
        await require_access(
            request,
            action="job_application_update",
            policy=AccessPolicy(ownership=job_ownership(job_id)),
        )
        application = await run_in_threadpool(
            request.app.state.repository.update_application_status,
            app_id,
            job_id=job_id,
            status=payload.status,
            score=payload.score,
        )
        if application is None:
            raise HTTPException(status_code=404, detail="Application not found")
        return Envelope(data=application, message="Application status updated successfully!")

    @app.post("/recruiter/jobs/{job_id}/start-pipeline", response_model=MessageResponse)
    async def start_pipeline(
        job_id: str,
        payload: StartPipelineRequest,
        request: Request,
    ) -> MessageResponse:
        await require_access(
            request,
            action="pipeline_start",
            policy=AccessPolicy(ownership=job_ownership(job_id)),
        )
        candidate_ids = [str(value) for value in payload.candidates]
        config = (
            payload.pipeline_config.model_dump(exclude_none=True)
            if payload.pipeline_config
            else None
        )
        moved = await run_in_threadpool(
            request.app.state.repository.start_pipeline,
            job_id,
            candidate_ids,
            config,
        )
        LOGGER.info(
            json.dumps(
                {
                    "event": "pipeline_started",
                    "request_id": getattr(request.state, "request_id", None),
                    "job_id": job_id,
                    "requested": len(candidate_ids),
                    "moved": moved,
                    "config": config,
                }
            )
        )
        return MessageResponse(
            message=(
                f"Pipeline started successfully for {moved} candidates. "
                "They have been moved to screening stage."
            )
        )

    @app.get("/recruiter/applications", response_model=Paginated[ApplicationRecord])
    async def list_recruiter_applications(
        request: Request,
        page: int = Query(default=1, ge=1),
        limit: int = Query(default=10, ge=1, le=100),
        status: ApplicationStatus | None = None,
    ) -> dict[str, Any]:
        identity = await require_access(
            request,
            action="recruiter_applications_list",
            policy=recruiter_only,
        )
        applications, count = await run_in_threadpool(
            request.app.state.repository.list_applications,
            page=page,
            limit=limit,
            recruiter_id=identity.user_id,
            status=status,
        )
        return paginate(applications, count, page=page, limit=limit)

    @app.get("/admin/users", response_model=Paginated[UserPublic])
    async def list_users(
        request: Request,
        page: int = Query(default=1, ge=1),
        limit: int = Query(default=10, ge=1, le=100),
    ) -> dict[str, Any]:
        await require_access(request, action="admin_users_list", policy=admin_only)
        users, count = await run_in_threadpool(
            request.app.state.repository.list_users,
            page=page,
            limit=limit,
        )
        return paginate(users, count, page=page, limit=limit)

    @app.get("/admin/users/{user_id}", response_model=Envelope[UserDetail])
    async def get_user(user_id: str, request: Request) -> Envelope[UserDetail]:
        await require_access(request, action="admin_user_read", policy=admin_only)
        user = await run_in_threadpool(request.app.state.repository.get_user_detail, user_id)
        if user is None:
            raise HTTPException(status_code=404, detail="User not found")
        return Envelope(data=user)

    @app.put("/admin/users/{user_id}/role", response_model=Envelope[UserPublic])
    async def update_user_role(
        user_id: str,
        payload: RoleUpdateRequest,
        request: Request,
        response: Response,
    ) -> Envelope[UserPublic]:
        identity = await require_access(
            request,
            action="admin_role_update",
            policy=AccessPolicy(
                role=Role.ADMIN,
                role_message="Admin access required",
                self_action=SelfAction(target_id=user_id, message="Cannot change your own role"),
            ),
        )
        user = await run_in_threadpool(
            request.app.state.repository.update_user,
            user_id,
            {"role": payload.role.value},
        )
        if user is None:
            raise HTTPException(status_code=404, detail="User not found")
        event_id = await write_audit_event(
            request,
            action="admin_role_update",
            status="ok",
            required_role=Role.ADMIN.value,
            message=f"user_id={user_id}; role={payload.role.value}",
            identity=identity,
        )
        response.headers["x-audit-event-id"] = str(event_id)
        return Envelope(data=user, message="User role updated successfully")

    @app.delete("/admin/users/{user_id}", response_model=MessageResponse)
    async def delete_user(user_id: str, request: Request, response: Response) -> MessageResponse:
        identity = await require_access(
            request,
            action="admin_user_delete",
            policy=AccessPolicy(
                role=Role.ADMIN,
                role_message="Admin access required",
                self_action=SelfAction(
                    target_id=user_id,
                    message="Cannot delete your own account",
                ),
            ),
        )
        deleted = await run_in_threadpool(request.app.state.repository.delete_user, user_id)
        if not deleted:
            raise HTTPException(status_code=404, detail="User not found")
        event_id = await write_audit_event(
            request,
            action="admin_user_delete",
            status="ok",
            required_role=Role.ADMIN.value,
            message=f"user_id={user_id}",
            identity=identity,
        )
        response.headers["x-audit-event-id"] = str(event_id)
        return MessageResponse(message="User deleted successfully")

    @app.get("/admin/applications", response_model=Paginated[ApplicationRecord])
    async def list_all_applications(
        request: Request,
        page: int = Query(default=1, ge=1),
        limit: int = Query(default=10, ge=1, le=100),
        status: ApplicationStatus | None = None,
    ) -> dict[str, Any]:
        await require_access(request, action="admin_applications_list", policy=admin_only)
        applications, count = await run_in_threadpool(
            request.app.state.repository.list_applications,
            page=page,
            limit=limit,
            status=status,
        )
        return paginate(applications, count, page=page, limit=limit)

    @app.get("/admin/audit-events", response_model=list[AuditEvent])
    async def list_audit_events(
        request: Request,
        limit: int = Query(default=100, ge=1, le=500),
        action: str | None = None,
        status: str | None = None,
    ) -> list[AuditEvent]:
        await require_access(request, action="audit_events_list", policy=admin_only)
        return await run_in_threadpool(
            request.app.state.repository.list_audit_events,
            limit=limit,
            action=action,
            status=status,
        )

    return app


app = create_app()
