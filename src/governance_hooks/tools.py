"""Governed tools: the mutating operations agents are allowed to call.

Each tool wraps its side effect in an action and hands it to the session's
hook engine; none of them touch storage outside ``execute_with_hooks``.
"""

import shlex
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

from governance_hooks.hooks import HookResult, MutationOutcome, MutationRequest
from governance_hooks.locks import LockSnapshot
from governance_hooks.session import GovernanceSession
from governance_hooks.storage import Storage, WorkspaceViolation, normalize_rel_path


@dataclass(frozen=True)
class ExecResult:
    argv: List[str]
    returncode: int
    stdout: str
    stderr: str


def _target(path: str) -> str:
    """Normalized path, or the raw one when it escapes the workspace (the gate blocks it)."""
    try:
        return normalize_rel_path(path)
    except WorkspaceViolation:
        return path


class GovernedTools:
    def __init__(
        self,
        session: GovernanceSession,
        storage: Storage,
        workspace_root: Optional[Path] = None,
        command_timeout_s: float = 30.0,
    ):
        self.session = session
        self.storage = storage
        self.workspace_root = workspace_root
        self.command_timeout_s = command_timeout_s

    def read_file(self, path: str) -> Tuple[str, LockSnapshot]:
        """Read content and take the snapshot a later write must commit against."""
        snapshot = self.session.engine.locks.acquire(path)
        return self.storage.read_text(path), snapshot

    def write_file(
        self,
        path: str,
        content: str,
        snapshot: Optional[LockSnapshot] = None,
        model_identifier: Optional[str] = None,
    ) -> HookResult:
        rel = _target(path)

        def action() -> MutationOutcome:
            self.storage.write_text(rel, content)
            return MutationOutcome(contents=[(rel, content)], value=len(content.encode("utf-8")))

        meta = MutationRequest(
            tool_name="write_to_file",
            paths=(rel,),
            snapshots=(snapshot,) if snapshot else (),
            model_identifier=model_identifier,
        )
        return self.session.execute(action, meta)

    def delete_file(self, path: str, snapshot: Optional[LockSnapshot] = None) -> HookResult:
        rel = _target(path)

        def action() -> MutationOutcome:
            removed = self.storage.read_bytes(rel)
            self.storage.delete(rel)
            return MutationOutcome(contents=[(rel, removed)], value=rel)

        meta = MutationRequest(
            tool_name="delete_file",
            paths=(rel,),
            snapshots=(snapshot,) if snapshot else (),
        )
        return self.session.execute(action, meta)

    def execute_command(self, command: str, cwd: str = ".", timeout_s: Optional[float] = None) -> HookResult:
        """Run a shell-free command inside the workspace (requires a local root)."""
        if self.workspace_root is None:
            raise ValueError("execute_command needs a local workspace root")
        rel_cwd = _target(cwd)
        argv = shlex.split(command)

        def action() -> MutationOutcome:
            p = subprocess.run(
                argv,
                cwd=str(self.workspace_root / rel_cwd),
                text=True,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                timeout=timeout_s or self.command_timeout_s,
            )
            res = ExecResult(argv=argv, returncode=p.returncode, stdout=p.stdout, stderr=p.stderr)
            return MutationOutcome(contents=[(rel_cwd, shlex.join(argv))], value=res)

        meta = MutationRequest(
            tool_name="execute_command",
            paths=(rel_cwd,),
            command=command,
            details={"cwd": rel_cwd},
        )
        return self.session.execute(action, meta)
