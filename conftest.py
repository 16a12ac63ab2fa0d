from __future__ import annotations

import importlib.util

# Request models validate addresses with pydantic's email extras.
# Skip collecting the app-level suites when email-validator is not installed.
if importlib.util.find_spec("email_validator") is None:
    collect_ignore_glob = [
        "services/jobboard/tests/*",
        "services/portal/tests/test_portal_api.py",
        "tests/bdd/*",
        "tests/test_smoke_harness.py",
    ]
