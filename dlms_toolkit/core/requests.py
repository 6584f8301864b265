from __future__ import annotations

"""Propose/apply messages for confirmation-gated actions.

A gated action runs in two phases. ``propose_*`` validates the input and
returns a :class:`MutationRequest` without touching the document. Whatever
confirmation mechanism exists answers it with a :class:`Decision`, and
``apply(request, decision)`` performs the mutation synchronously.

:func:`resolve_request` bridges a request to an asynchronous
:class:`~dlms_toolkit.core.interfaces.ConfirmationProvider`. Cancelling the
await leaves the document untouched because nothing has been applied yet.
"""

import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from dlms_toolkit.core.interfaces import ConfirmationProvider

__all__ = ["RequestAction", "MutationRequest", "Decision", "resolve_request"]

logger = logging.getLogger(__name__)


class RequestAction(str, Enum):
    PURGE_PENDING = "purge_pending"
    CLEAR_PENDING = "clear_pending"
    RENAME_NODE = "rename_node"
    NEW_DOCUMENT = "new_document"
    COMMIT = "commit"


@dataclass(frozen=True)
class MutationRequest:
    """A validated, not yet applied, gated action.

    Attributes
    ----------
    action
        What will be mutated on approval.
    prompt
        Question or prompt shown to the user.
    target_id
        Node or pending id the action applies to, if any.
    expects_text
        True when the answer is free text (rename, commit message) rather
        than a yes/no confirmation.
    default_text
        Pre-filled answer for text prompts.
    details
        Extra values captured at propose time.
    token
        Unique id of this request, for logging.
    """

    action: RequestAction
    prompt: str
    target_id: Optional[str] = None
    expects_text: bool = False
    default_text: str = ""
    details: Dict[str, Any] = field(default_factory=dict)
    token: str = field(default_factory=lambda: uuid.uuid4().hex[:12])


@dataclass(frozen=True)
class Decision:
    """Reply to a :class:`MutationRequest`."""

    approved: bool
    text: Optional[str] = None

    @classmethod
    def approve(cls, text: Optional[str] = None) -> "Decision":
        return cls(True, text)

    @classmethod
    def deny(cls) -> "Decision":
        return cls(False, None)


async def resolve_request(request: MutationRequest, confirmer: ConfirmationProvider) -> Decision:
    """Await the collaborator's answer to ``request``.

    A cancelled text prompt (``None``) counts as a denial.
    """
    logger.debug("Awaiting decision: action=%s token=%s", request.action.value, request.token)
    if request.expects_text:
        text = await confirmer.prompt_text(request.prompt, request.default_text)
        decision = Decision.deny() if text is None else Decision.approve(text)
    else:
        decision = Decision(bool(await confirmer.confirm(request.prompt)))
    logger.debug(
        "Decision received: action=%s token=%s approved=%s",
        request.action.value, request.token, decision.approved,
    )
    return decision
