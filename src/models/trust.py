"""
Script trust models

Security levels, trust decisions and the records the Script Trust Gate keeps
per file identity.
"""

from enum import Enum
from dataclasses import dataclass, field
from typing import Optional, Tuple

from pydantic import BaseModel, Field


class SecurityLevel(str, Enum):
    """
    Capability allowlist tiers, ordered by strictness

    Each level strictly extends the one before it.
    """
    STRICT = "strict"
    STANDARD = "standard"
    PERMISSIVE = "permissive"


class TrustDecision(str, Enum):
    """Per-file decision on whether embedded scripts may run"""
    ALLOWED = "allowed"
    DENIED = "denied"
    NOT_YET_DECIDED = "not-yet-decided"


class PromptOutcome(str, Enum):
    """Answers the UI prompt can give (see ScriptTrustGate.decision_request)"""
    ALLOW = "allow"
    ALLOW_PERMANENTLY = "allow-permanently"
    DENY = "deny"

    def record_args(self) -> Tuple[TrustDecision, bool]:
        """
        Map a prompt outcome to (decision, persistent)

        Returns:
            Tuple suitable for ScriptTrustGate.decision_record()
        """
        if self is PromptOutcome.ALLOW_PERMANENTLY:
            return TrustDecision.ALLOWED, True
        if self is PromptOutcome.ALLOW:
            return TrustDecision.ALLOWED, False
        return TrustDecision.DENIED, False


class GateVerdict(str, Enum):
    """What the caller must do with script content for one render"""
    ALLOW = "allow"    # hand scripts to the runtime with the resolved capabilities
    PROMPT = "prompt"  # ask the user, record the outcome, re-consult
    BLOCK = "block"    # suppress script content, render the rest


@dataclass(frozen=True)
class TrustRecord:
    """
    Trust decision for one file identity

    Attributes:
        fileIdentity: Canonical path, or "untitled:sha256:<hex>" for unsaved buffers
        decision: ALLOWED, DENIED or NOT_YET_DECIDED
        persistent: True if the record survives restarts
    """
    fileIdentity: str
    decision: TrustDecision = TrustDecision.NOT_YET_DECIDED
    persistent: bool = False


@dataclass(frozen=True)
class TrustCheck:
    """
    Answer of ScriptTrustGate.consult() for one render

    Attributes:
        fileIdentity: File the answer applies to
        verdict: ALLOW, PROMPT or BLOCK
        decision: Effective decision that produced the verdict
        securityLevel: Level in force when the gate was consulted
        capabilities: Capability identifiers to expose (empty unless ALLOW)
        reason: Short explanation for logs and UI
    """
    fileIdentity: str
    verdict: GateVerdict
    decision: TrustDecision
    securityLevel: SecurityLevel
    capabilities: Tuple[str, ...] = field(default_factory=tuple)
    reason: str = ""

    @property
    def allowed(self) -> bool:
        return self.verdict is GateVerdict.ALLOW


class TrustStoreEntry(BaseModel):
    """On-disk shape of one persisted trust record"""

    decision: TrustDecision = Field(description="Stored decision for the file")
    persistent: bool = Field(default=True, description="Always true for stored records")


def level_coerce(level: Optional[str]) -> SecurityLevel:
    """
    Coerce a configured level name into a SecurityLevel

    Unknown or missing names fall back to the strictest level.
    """
    try:
        return SecurityLevel(level) if level is not None else SecurityLevel.STRICT
    except ValueError:
        return SecurityLevel.STRICT
