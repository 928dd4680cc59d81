from __future__ import annotations

import os
import subprocess
import sys
from pathlib import Path

import pytest


API_ROOT = Path(__file__).resolve().parents[1]


@pytest.mark.parametrize(
    "module",
    [
        "workdesk.main",
        "workdesk.services.audit",
        "workdesk.services.notifications",
        "workdesk.business.billing.models",
        "workdesk.business.users.service",
        "workdesk.authz.service",
        "workdesk.models.registry",
    ],
)
def test_module_imports_in_fresh_interpreter(module: str) -> None:
    env = {**os.environ, "APP_ENV": "test", "PYTHONPATH": str(API_ROOT)}

    result = subprocess.run(
        [sys.executable, "-c", f"import {module}"],
        cwd=API_ROOT,
        env=env,
        capture_output=True,
        text=True,
        timeout=60,
    )

    assert result.returncode == 0, result.stderr


def test_registry_covers_every_table() -> None:
    from workdesk.core.database import Base
    from workdesk.models import registry

    mapped = {model.__table__.name for model in (getattr(registry, name) for name in registry.__all__)}
    assert mapped == set(Base.metadata.tables)
