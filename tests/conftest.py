"""Shared fixtures: an in-memory workspace with three declared intents."""

from pathlib import Path

import pytest

from governance_hooks.config import Config
from governance_hooks.constants import DEFAULT_INTENTS_PATH
from governance_hooks.runtime import build_runtime
from governance_hooks.storage import MemoryStorage
from governance_hooks.vcs import StaticRevisionProvider


INTENTS_YAML = """
active_intents:
  - id: INT-001
    name: Core refactor
    status: active
    owned_scope:
      - "src/core/**"
    constraints:
      - "No public API changes"
    acceptance_criteria:
      - "All unit tests pass"
  - id: INT-002
    name: Docs refresh
    status: active
    owned_scope:
      - "docs/**"
      - "*.md"
  - id: INT-OPS
    name: Workspace maintenance
    status: active
    owned_scope:
      - "**"
"""


@pytest.fixture
def make_runtime():
    """Factory: build a runtime over a fresh MemoryStorage."""

    def _make(files=None, intents=INTENTS_YAML, storage=None, **overrides):
        storage = storage if storage is not None else MemoryStorage()
        if intents is not None:
            storage.write_text(DEFAULT_INTENTS_PATH, intents)
        for path, content in (files or {}).items():
            storage.write_text(path, content)

        build_args = {k: overrides.pop(k) for k in ("approval", "semantic", "on_blocked") if k in overrides}
        config = Config(workspace=Path("."), **overrides)
        return build_runtime(
            config,
            storage=storage,
            revisions=StaticRevisionProvider("rev-test"),
            **build_args,
        )

    return _make


@pytest.fixture
def runtime(make_runtime):
    return make_runtime(files={"src/core/engine.py": "def run():\n    return 1\n"})
