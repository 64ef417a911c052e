"""Approval channels for Destructive commands.

Authorization of a Destructive command is a suspend point: the gate hands
an ApprovalRequest to a channel (human prompt, policy service, callback)
and waits for grant/deny. The wait is bounded by a timeout and can be
cancelled; both resolve to a denial.
"""

import logging
import threading
from abc import ABC, abstractmethod
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple

import click
import httpx

from governance_hooks.errors import ApprovalError

logger = logging.getLogger(__name__)

_POLL_INTERVAL_S = 0.05


class ApprovalDecision(str, Enum):
    GRANTED = "granted"
    DENIED = "denied"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"
    ERROR = "error"


@dataclass(frozen=True)
class ApprovalRequest:
    """What the operator (or policy service) is asked to approve."""
    command: str
    intent_id: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"command": self.command, "intent_id": self.intent_id, "details": dict(self.details)}


class ApprovalChannel(ABC):
    """Abstract source of grant/deny decisions."""

    @abstractmethod
    def request(self, req: ApprovalRequest, cancel: threading.Event) -> bool:
        """
        Ask for a decision.

        Args:
            req: The command awaiting approval.
            cancel: Set when the caller stops waiting; long-running channels
                    should check it and give up.

        Returns:
            True to grant, False to deny.

        Raises:
            ApprovalError: If the decision source cannot be reached.
        """
        pass


class StaticApprovalChannel(ApprovalChannel):
    """Always grants or always denies (policy fixtures, tests, CI)."""

    def __init__(self, grant: bool):
        self.grant = grant
        self.requests = []

    def request(self, req: ApprovalRequest, cancel: threading.Event) -> bool:
        self.requests.append(req)
        return self.grant


class CallbackApprovalChannel(ApprovalChannel):
    """Delegates the decision to a plain callable."""

    def __init__(self, callback: Callable[[ApprovalRequest], bool]):
        self.callback = callback

    def request(self, req: ApprovalRequest, cancel: threading.Event) -> bool:
        return bool(self.callback(req))


class ConsoleApprovalChannel(ApprovalChannel):
    """Asks the human operator on the terminal."""

    def request(self, req: ApprovalRequest, cancel: threading.Event) -> bool:
        click.echo(f"Destructive command requested: {req.command}", err=True)
        if req.intent_id:
            click.echo(f"  Intent: {req.intent_id}", err=True)
        for key, value in req.details.items():
            click.echo(f"  {key}: {value}", err=True)
        return click.confirm("Approve?", default=False, err=True)


class HttpApprovalChannel(ApprovalChannel):
    """Policy-service channel.

    POSTs the request as JSON and expects ``{"decision": "grant" | "deny"}``.
    """

    def __init__(self, url: str, timeout: float = 30.0, client: Optional[httpx.Client] = None):
        self.url = url
        self.timeout = timeout
        self._client = client

    def request(self, req: ApprovalRequest, cancel: threading.Event) -> bool:
        client = self._client or httpx.Client(timeout=self.timeout)
        try:
            response = client.post(self.url, json=req.to_dict())
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            raise ApprovalError(f"Approval service returned HTTP {e.response.status_code}") from e
        except httpx.RequestError as e:
            raise ApprovalError(f"Approval service unreachable: {e}") from e
        except ValueError as e:
            raise ApprovalError(f"Approval service returned invalid JSON: {e}") from e
        finally:
            if self._client is None:
                client.close()

        decision = str(data.get("decision", "")).lower() if isinstance(data, dict) else ""
        if decision not in ("grant", "deny"):
            raise ApprovalError(f"Approval service returned unknown decision: {decision or data!r}")
        return decision == "grant"


def await_decision(
    channel: ApprovalChannel,
    req: ApprovalRequest,
    timeout_s: float,
    cancel: Optional[threading.Event] = None,
) -> Tuple[ApprovalDecision, str]:
    """
    Run a channel request on a worker thread and wait a bounded time.

    Args:
        channel: The decision source.
        req: The request to decide.
        timeout_s: Maximum seconds to wait for a decision.
        cancel: Optional external cancellation token.

    Returns:
        (decision, reason) - reason is a short human-readable explanation.
    """
    token = cancel or threading.Event()
    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="approval")
    future = executor.submit(channel.request, req, token)
    try:
        remaining = timeout_s
        while remaining > 0:
            step = min(_POLL_INTERVAL_S, remaining)
            done, _ = wait([future], timeout=step, return_when=FIRST_COMPLETED)
            if token.is_set():
                logger.info("Approval for '%s' cancelled by caller", req.command)
                return ApprovalDecision.CANCELLED, "approval request was cancelled"
            if done:
                break
            remaining -= step

        if not future.done():
            token.set()
            logger.warning("Approval for '%s' timed out after %.1fs", req.command, timeout_s)
            return ApprovalDecision.TIMED_OUT, f"no decision within {timeout_s:g}s"

        try:
            granted = future.result()
        except Exception as e:
            logger.warning("Approval channel error for '%s': %s", req.command, e)
            return ApprovalDecision.ERROR, str(e)

        if granted:
            return ApprovalDecision.GRANTED, "approved"
        return ApprovalDecision.DENIED, "rejected by approver"
    finally:
        executor.shutdown(wait=False)
