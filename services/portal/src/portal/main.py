from __future__ import annotations

import json
import os
from html import escape
from typing import Any

import httpx
from common.roles import Role, dashboard_for
from common.utils import check_password_bytes
from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from pydantic import BaseModel, EmailStr, Field, field_validator
from starlette.exceptions import HTTPException as StarletteHTTPException

from portal.guard import (
    AUTH_ENTRY_PATHS,
    LOGGER,
    Access,
    SessionResolver,
    classify,
    decide,
    is_guard_exempt,
)

app = FastAPI(title="Job Board Portal", version="1.0.0")
JOBBOARD_BASE_URL = os.getenv("JOBBOARD_BASE_URL", "http://localhost:8001")
COOKIE_SECURE = os.getenv("PORTAL_COOKIE_SECURE", "").strip().lower() in {"1", "true", "yes"}
SESSION_COOKIE = "jobboard_session"
FORWARDED_HEADERS = ("x-request-id", "x-audit-event-id")


class SessionRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=72)
    redirect: str | None = Field(default=None, max_length=500)

    @field_validator("password")
    @classmethod
    def validate_password_bytes(cls, value: str) -> str:
        return check_password_bytes(value)


def session_token(request: Request) -> str | None:
    cookie = request.cookies.get(SESSION_COOKIE, "").strip()
    if cookie:
        return cookie
    scheme, _, value = request.headers.get("authorization", "").partition(" ")
    if scheme.lower() == "bearer" and value.strip():
        return value.strip()
    return None


def is_local_path(value: str | None) -> bool:
    if not value or not value.startswith("/"):
        return False
    return not value.startswith("//") and "\\" not in value


def jobboard_headers(token: str | None) -> dict[str, str]:
    if not token:
        return {}
    return {"authorization": f"Bearer {token}"}


def forwarded_headers(response: httpx.Response) -> dict[str, str]:
    return {
        name: response.headers[name] for name in FORWARDED_HEADERS if name in response.headers
    }


async def request_to_jobboard(
    method: str,
    path: str,
    *,
    token: str | None = None,
    params: list[tuple[str, str]] | dict[str, str] | None = None,
    payload: Any = None,
) -> tuple[httpx.Response, dict[str, Any]]:
    request_kwargs: dict[str, Any] = {"headers": jobboard_headers(token)}
    if params:
        request_kwargs["params"] = params
    if payload is not None:
        request_kwargs["json"] = payload

    try:
        async with httpx.AsyncClient(timeout=15) as client:
            response = await client.request(
                method=method,
                url=f"{JOBBOARD_BASE_URL}{path}",
                **request_kwargs,
            )
    except httpx.RequestError as exc:
        raise HTTPException(status_code=502, detail="Upstream job board is unavailable") from exc

    try:
        response_payload = response.json()
    except ValueError:
        response_payload = {}
    if not isinstance(response_payload, dict):
        response_payload = {"data": response_payload}

    if response.status_code >= 400:
        detail = response_payload.get("error", "Upstream job board request failed")
        if 400 <= response.status_code < 500:
            raise HTTPException(status_code=response.status_code, detail=detail)
        raise HTTPException(status_code=502, detail=detail)

    return response, response_payload


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid input data", "details": jsonable_encoder(exc.errors())},
    )


@app.middleware("http")
async def route_guard(request: Request, call_next):
    path = request.url.path
    if is_guard_exempt(path):
        return await call_next(request)
    if classify(path).access is Access.PUBLIC and path not in AUTH_ENTRY_PATHS:
        return await call_next(request)

    token = session_token(request)
    resolver = SessionResolver(JOBBOARD_BASE_URL)
    identity = await resolver.resolve_identity(token)
    role = await resolver.fetch_role(token) if identity else None
    decision = decide(path, identity, role)
    if not decision.allowed:
        LOGGER.info(
            json.dumps(
                {
                    "event": "guard_redirect",
                    "path": path,
                    "location": decision.location,
                    "user_id": identity.get("user_id") if identity else None,
                    "role": role.value if role else None,
                }
            )
        )
        return RedirectResponse(decision.location, status_code=307)

    request.state.identity = identity
    request.state.role = role
    return await call_next(request)


PAGE_SHELL = """<!doctype html>
<html lang="en">
  <head>
    <meta charset="UTF-8" />
    <meta name="viewport" content="width=device-width, initial-scale=1.0" />
    <title>__TITLE__ | Job Board</title>
    <style>
      body { font-family: ui-sans-serif, system-ui, sans-serif; margin: 2rem; max-width: 1100px; }
      nav a { margin-right: 0.8rem; }
      h2 { margin-top: 1.5rem; }
      .panel { border: 1px solid #ddd; border-radius: 8px; padding: 1rem; margin-top: 1rem; }
      textarea, input, select { width: 100%; margin: 0.35rem 0; padding: 0.55rem; }
      button { padding: 0.55rem 0.9rem; cursor: pointer; margin-right: 0.4rem; margin-top: 0.4rem; }
      pre { background: #f7f7f7; padding: 1rem; overflow-x: auto; min-height: 120px; }
    </style>
  </head>
  <body>
    <nav>
      <a href="/">Home</a>
      <a href="/jobs">Jobs</a>
      <a href="/profile">Profile</a>
      <a href="/sign-in">Sign in</a>
      <a href="/sign-up">Sign up</a>
      <a href="#" onclick="signOut()">Sign out</a>
    </nav>
    <h1>__TITLE__</h1>
__BODY__
    <pre id="output"></pre>
    <script>
      async function callApi(path, method = 'GET', payload = null) {
        const response = await fetch(path, {
          method,
          credentials: 'same-origin',
          headers: { 'Content-Type': 'application/json' },
          body: payload === null ? null : JSON.stringify(payload)
        });
        const data = await response.json();
        if (!response.ok) {
          writeOutput(data);
          throw new Error(data.error || 'Request failed');
        }
        return data;
      }

      function writeOutput(data) {
        document.getElementById('output').textContent = JSON.stringify(data, null, 2);
      }

      function value(id) {
        return document.getElementById(id).value.trim();
      }

      function parseCsv(text) {
        return text.split(',').map(s => s.trim()).filter(Boolean);
      }

      async function signOut() {
        await callApi('/api/session', 'DELETE');
        window.location.href = '/';
      }
__SCRIPT__
    </script>
  </body>
</html>
"""


def render_page(title: str, body: str, script: str = "") -> str:
    return (
        PAGE_SHELL.replace("__TITLE__", escape(title))
        .replace("__BODY__", body)
        .replace("__SCRIPT__", script)
    )


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok", "service": "portal"}


@app.get("/", response_class=HTMLResponse)
async def index() -> str:
    return render_page(
        "Find your next role",
        """
    <p>Candidates browse and apply to open jobs. Recruiters post jobs and review applicants.</p>
    <p><a href="/jobs">Browse jobs</a> or <a href="/sign-up">create an account</a>.</p>
""",
    )


@app.get("/about", response_class=HTMLResponse)
async def about() -> str:
    return render_page(
        "About",
        "    <p>A small job board connecting candidates with recruiters.</p>\n",
    )


@app.get("/contact", response_class=HTMLResponse)
async def contact() -> str:
    return render_page(
        "Contact",
        "    <p>Questions about a posting? Reach the recruiter through the job page.</p>\n",
    )


@app.get("/jobs", response_class=HTMLResponse)
async def jobs_page() -> str:
    return render_page(
        "Open jobs",
        """
    <div class="panel">
      <input id="search" placeholder="Search title or description" />
      <input id="location" placeholder="Location" />
      <input id="tag" placeholder="Tag" />
      <button onclick="loadJobs()">Search</button>
    </div>
    <ul id="jobs"></ul>
""",
        """
      async function loadJobs() {
        const params = new URLSearchParams();
        for (const key of ['search', 'location', 'tag']) {
          if (value(key)) params.set(key, value(key));
        }
        const data = await callApi(`/api/jobs?${params.toString()}`);
        const list = document.getElementById('jobs');
        list.innerHTML = '';
        for (const job of data.data) {
          const item = document.createElement('li');
          const link = document.createElement('a');
          link.href = `/jobs/${job.id}`;
          link.textContent = `${job.title} (${job.location || 'Remote'})`;
          item.appendChild(link);
          list.appendChild(item);
        }
      }
      loadJobs();
""",
    )


@app.get("/jobs/create", response_class=HTMLResponse)
async def create_job_page() -> str:
    return render_page(
        "Post a job",
        """
    <div class="panel">
      <input id="title" placeholder="Title" />
      <textarea id="description" rows="6" placeholder="Description"></textarea>
      <textarea id="requirements" rows="4" placeholder="Requirements"></textarea>
      <input id="salary_range" placeholder="Salary range" />
      <input id="location" placeholder="Location" />
      <input id="tags" placeholder="Tags (comma-separated)" />
      <button onclick="createJob()">Publish</button>
    </div>
""",
        """
      async function createJob() {
        const data = await callApi('/api/recruiter/jobs', 'POST', {
          title: value('title'),
          description: value('description'),
          requirements: value('requirements') || null,
          salary_range: value('salary_range') || null,
          location: value('location') || null,
          tags: parseCsv(value('tags'))
        });
        writeOutput(data);
      }
""",
    )


@app.get("/jobs/{job_id}", response_class=HTMLResponse)
async def job_detail_page(job_id: str) -> str:
    return render_page(
        "Job details",
        f"""
    <div class="panel" id="job" data-job-id="{escape(job_id)}"></div>
    <textarea id="cover_letter" rows="6" placeholder="Cover letter (optional)"></textarea>
    <button onclick="applyToJob()">Apply</button>
""",
        """
      const jobId = document.getElementById('job').dataset.jobId;
      async function loadJob() {
        const data = await callApi(`/api/jobs/${jobId}`);
        document.getElementById('job').textContent = `${data.data.title}: ${data.data.description}`;
      }
      async function applyToJob() {
        const data = await callApi(`/api/jobs/${jobId}/apply`, 'POST', {
          cover_letter: value('cover_letter') || null
        });
        writeOutput(data);
      }
      loadJob();
""",
    )


@app.get("/sign-in", response_class=HTMLResponse)
async def sign_in_page() -> str:
    return render_page(
        "Sign in",
        """
    <div class="panel">
      <input id="email" type="email" placeholder="Email" />
      <input id="password" type="password" placeholder="Password" />
      <button onclick="signIn()">Sign in</button>
    </div>
""",
        """
      async function signIn() {
        const redirect = new URLSearchParams(window.location.search).get('redirect');
        const data = await callApi('/api/session', 'POST', {
          email: value('email'),
          password: document.getElementById('password').value,
          redirect
        });
        window.location.href = data.data.redirect;
      }
""",
    )


@app.get("/sign-up", response_class=HTMLResponse)
async def sign_up_page() -> str:
    return render_page(
        "Create an account",
        """
    <div class="panel">
      <input id="first_name" placeholder="First name" />
      <input id="last_name" placeholder="Last name" />
      <input id="email" type="email" placeholder="Email" />
      <input id="password" type="password" placeholder="Password (8+ characters)" />
      <select id="role">
        <option value="candidate">Candidate</option>
        <option value="recruiter">Recruiter</option>
      </select>
      <input id="company" placeholder="Company (recruiters)" />
      <input id="phone" placeholder="Phone" />
      <button onclick="signUp()">Sign up</button>
    </div>
""",
        """
      async function signUp() {
        const data = await callApi('/api/auth/sign-up', 'POST', {
          first_name: value('first_name'),
          last_name: value('last_name'),
          email: value('email'),
          password: document.getElementById('password').value,
          role: value('role'),
          company: value('company') || null,
          phone: value('phone') || null
        });
        writeOutput(data);
      }
""",
    )


@app.get("/profile", response_class=HTMLResponse)
async def profile_page() -> str:
    return render_page(
        "Your profile",
        """
    <div class="panel">
      <input id="full_name" placeholder="Full name" />
      <input id="location" placeholder="Location" />
      <textarea id="bio" rows="4" placeholder="Bio"></textarea>
      <button onclick="saveUser()">Save</button>
    </div>
    <div class="panel">
      <h2>Candidate profile</h2>
      <input id="resume_url" placeholder="Resume URL" />
      <input id="skills" placeholder="Skills (comma-separated)" />
      <input id="experience_years" type="number" min="0" max="50" placeholder="Years of experience" />
      <button onclick="saveCandidateProfile()">Save candidate profile</button>
    </div>
""",
        """
      async function loadUser() {
        const data = await callApi('/api/me');
        document.getElementById('full_name').value = data.data.full_name || '';
        document.getElementById('location').value = data.data.location || '';
        document.getElementById('bio').value = data.data.bio || '';
        writeOutput(data);
      }
      async function saveUser() {
        const data = await callApi('/api/me', 'PUT', {
          full_name: value('full_name') || null,
          location: value('location') || null,
          bio: value('bio') || null
        });
        writeOutput(data);
      }
      async function saveCandidateProfile() {
        const data = await callApi('/api/me/candidate-profile', 'PUT', {
          resume_url: value('resume_url') || null,
          skills: parseCsv(value('skills')),
          experience_years: Number(value('experience_years') || 0)
        });
        writeOutput(data);
      }
      loadUser();
""",
    )


@app.get("/dashboard/candidate", response_class=HTMLResponse)
async def candidate_dashboard() -> str:
    return render_page(
        "Candidate dashboard",
        "    <h2>Your applications</h2>\n",
        """
      callApi('/api/my/applications?limit=50').then(writeOutput);
""",
    )


@app.get("/dashboard/recruiter", response_class=HTMLResponse)
async def recruiter_dashboard() -> str:
    return render_page(
        "Recruiter dashboard",
        """
    <p><a href="/jobs/create">Post a job</a></p>
    <button onclick="loadJobs()">Your jobs</button>
    <button onclick="loadApplications()">Applications</button>
""",
        """
      async function loadJobs() {
        writeOutput(await callApi('/api/recruiter/jobs?limit=50'));
      }
      async function loadApplications() {
        writeOutput(await callApi('/api/recruiter/applications?limit=50'));
      }
      loadJobs();
""",
    )


@app.get("/dashboard/admin", response_class=HTMLResponse)
async def admin_dashboard() -> str:
    return render_page(
        "Admin dashboard",
        """
    <p><a href="/admin/users">Manage users</a></p>
    <button onclick="loadApplications()">All applications</button>
    <button onclick="loadAuditEvents()">Audit events</button>
""",
        """
      async function loadApplications() {
        writeOutput(await callApi('/api/admin/applications?limit=50'));
      }
      async function loadAuditEvents() {
        writeOutput(await callApi('/api/admin/audit-events?limit=50'));
      }
      loadApplications();
""",
    )


@app.get("/admin/users", response_class=HTMLResponse)
async def admin_users_page() -> str:
    return render_page(
        "Users",
        """
    <div class="panel">
      <input id="user_id" placeholder="User ID" />
      <select id="role">
        <option value="candidate">Candidate</option>
        <option value="recruiter">Recruiter</option>
        <option value="admin">Admin</option>
      </select>
      <button onclick="changeRole()">Change role</button>
      <button onclick="deleteUser()">Delete user</button>
      <button onclick="loadUsers()">Refresh</button>
    </div>
""",
        """
      async function loadUsers() {
        writeOutput(await callApi('/api/admin/users?limit=100'));
      }
      async function changeRole() {
        writeOutput(await callApi(`/api/admin/users/${value('user_id')}/role`, 'PUT', {
          role: value('role')
        }));
      }
      async function deleteUser() {
        writeOutput(await callApi(`/api/admin/users/${value('user_id')}`, 'DELETE'));
      }
      loadUsers();
""",
    )


@app.post("/api/session")
async def create_session(payload: SessionRequest) -> JSONResponse:
    _, upstream_payload = await request_to_jobboard(
        "POST",
        "/auth/sign-in",
        payload={"email": str(payload.email), "password": payload.password},
    )
    grant = upstream_payload.get("data") or {}
    token = grant.get("token")
    if not token:
        raise HTTPException(status_code=502, detail="Upstream job board returned no session")
    user = grant.get("user") or {}
    if is_local_path(payload.redirect):
        next_path = payload.redirect
    else:
        next_path = dashboard_for(Role.parse(user.get("role")))

    response = JSONResponse(content={"data": {"redirect": next_path, "user": user}})
    response.set_cookie(
        SESSION_COOKIE,
        token,
        httponly=True,
        samesite="lax",
        secure=COOKIE_SECURE,
        path="/",
    )
    return response


@app.delete("/api/session")
async def delete_session(request: Request) -> JSONResponse:
    token = session_token(request)
    if token:
        try:
            await request_to_jobboard("POST", "/auth/sign-out", token=token)
        except HTTPException as exc:
            # An expired or revoked session is already signed out upstream.
            if exc.status_code != 401:
                raise
    response = JSONResponse(content={"message": "Signed out"})
    response.delete_cookie(SESSION_COOKIE, path="/")
    return response


@app.api_route("/api/{path:path}", methods=["GET", "POST", "PUT", "DELETE"])
async def proxy_to_jobboard(path: str, request: Request) -> JSONResponse:
    payload = None
    body = await request.body()
    if body:
        try:
            payload = json.loads(body)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail="Invalid JSON body") from exc

    response, response_payload = await request_to_jobboard(
        request.method,
        f"/{path}",
        token=session_token(request),
        params=request.query_params.multi_items(),
        payload=payload,
    )
    return JSONResponse(
        status_code=response.status_code,
        content=response_payload,
        headers=forwarded_headers(response),
    )
