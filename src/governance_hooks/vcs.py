"""Version-control collaborator: supplies the current revision identifier."""

import logging
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path

from governance_hooks.constants import UNKNOWN_REVISION

logger = logging.getLogger(__name__)


class RevisionProvider(ABC):
    @abstractmethod
    def current_revision(self) -> str:
        pass


class StaticRevisionProvider(RevisionProvider):
    def __init__(self, revision: str = UNKNOWN_REVISION):
        self.revision = revision

    def current_revision(self) -> str:
        return self.revision


class GitRevisionProvider(RevisionProvider):
    """Reads HEAD via ``git rev-parse``; falls back to "unknown" outside a repo."""

    def __init__(self, repo_path: Path, timeout_s: float = 10.0):
        self.repo_path = Path(repo_path)
        self.timeout_s = timeout_s

    def current_revision(self) -> str:
        try:
            result = subprocess.run(
                ["git", "-C", str(self.repo_path), "rev-parse", "HEAD"],
                capture_output=True,
                text=True,
                timeout=self.timeout_s,
            )
        except subprocess.TimeoutExpired:
            logger.warning("git rev-parse timed out in %s", self.repo_path)
            return UNKNOWN_REVISION
        except FileNotFoundError:
            logger.warning("git command not found; recording revision as %s", UNKNOWN_REVISION)
            return UNKNOWN_REVISION

        revision = result.stdout.strip()
        if result.returncode != 0 or not revision:
            logger.debug("No git revision for %s: %s", self.repo_path, result.stderr.strip())
            return UNKNOWN_REVISION
        return revision
