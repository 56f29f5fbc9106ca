"""
Script trust gate

Decides whether the executable script content of a document may run, and
which capabilities the (external) script runtime may expose to it.

Per file identity the decision moves NotYetDecided -> Allowed | Denied, each
either persistent (stored in the trust store, survives restarts) or
session-scoped (dropped when the document is closed).

Verdict rules, applied to session and persistent records together:
    - any Denied record            -> BLOCK (no prompt)
    - otherwise any Allowed record -> ALLOW with the level's capabilities
    - otherwise                    -> PROMPT; the caller asks the user,
                                      records the outcome, consults again

Trust store:
    YAML mapping of file identity -> {decision, persistent}. Writes go to a
    temporary file in the same directory, are flushed and fsynced, then
    atomically renamed over the store. A store that fails to load leaves the
    gate degraded: stored records are ignored and every script-bearing file
    prompts.
"""

import os
import hashlib
import tempfile
import threading
from dataclasses import replace
from pathlib import Path
from typing import Awaitable, Dict, Mapping, Optional, Protocol, Tuple, Union

import yaml
from loguru import logger
from pydantic import ValidationError

from ..models.trust import (
    GateVerdict,
    PromptOutcome,
    SecurityLevel,
    TrustCheck,
    TrustDecision,
    TrustRecord,
    TrustStoreEntry,
    level_coerce,
)
from .errors import InvalidSecurityCapability, TrustStoreIOError
from .log import LOG


# Each level strictly extends the one before it
CAPABILITIES: Dict[SecurityLevel, Tuple[str, ...]] = {
    SecurityLevel.STRICT: ("math", "json"),
    SecurityLevel.STANDARD: ("math", "json", "date", "collections", "promise"),
    SecurityLevel.PERMISSIVE: ("math", "json", "date", "collections", "promise", "fetch"),
}

UNTITLED_PREFIX = "untitled:sha256:"


def capabilities_resolve(level: Union[SecurityLevel, str]) -> Tuple[str, ...]:
    """
    Ordered capability identifiers for a security level

    Unknown level names resolve to the strict set.

    Example:
        >>> capabilities_resolve("strict")
        ('math', 'json')
    """
    if not isinstance(level, SecurityLevel):
        level = level_coerce(level)
    return CAPABILITIES[level]


def capability_require(capability: str, level: Union[SecurityLevel, str]) -> None:
    """
    Check a capability against a level's allowlist

    For runtimes that enforce the allowlist the gate hands out.

    Raises:
        InvalidSecurityCapability: If the capability is not in the allowlist
    """
    if capability not in capabilities_resolve(level):
        name = level.value if isinstance(level, SecurityLevel) else str(level)
        raise InvalidSecurityCapability(capability, name)


def fileIdentity_make(path: Optional[Union[str, Path]] = None, content: Optional[str] = None) -> str:
    """
    Canonical identity for a document

    Saved files are identified by their resolved real path; unsaved buffers
    by a hash of their content.

    Args:
        path: File path, if the document is saved
        content: Buffer text, for unsaved documents

    Returns:
        Real path, or "untitled:sha256:<hex>"

    Raises:
        ValueError: If neither path nor content is given
    """
    if path is not None:
        return os.path.realpath(os.path.expanduser(str(path)))
    if content is not None:
        return UNTITLED_PREFIX + hashlib.sha256(content.encode("utf-8")).hexdigest()
    raise ValueError("A file identity needs a path or the buffer content")


class TrustStore:
    """
    YAML-backed store of persistent trust records

    Attributes:
        path: Location of the YAML file
    """

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path).expanduser()

    def load(self) -> Dict[str, TrustRecord]:
        """
        Read all persisted records

        A missing file is an empty store.

        Raises:
            TrustStoreIOError: If the file cannot be read or is malformed
        """
        if not self.path.exists():
            return {}

        try:
            data = yaml.safe_load(self.path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, yaml.YAMLError) as error:
            raise TrustStoreIOError(f"Cannot read trust store {self.path}: {error}") from error

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise TrustStoreIOError(f"Trust store {self.path} must contain a mapping")

        records: Dict[str, TrustRecord] = {}
        for identity, value in data.items():
            try:
                entry = TrustStoreEntry.model_validate(value)
            except ValidationError as error:
                raise TrustStoreIOError(f"Invalid trust store entry for {identity}: {error}") from error
            if entry.decision is TrustDecision.NOT_YET_DECIDED:
                continue
            records[str(identity)] = TrustRecord(str(identity), entry.decision, persistent=True)
        return records

    def write(self, records: Mapping[str, TrustRecord]) -> None:
        """
        Atomically replace the store contents

        The data is on disk (fsynced) when this returns.

        Raises:
            TrustStoreIOError: If the file cannot be written
        """
        data = {
            identity: TrustStoreEntry(decision=record.decision, persistent=True).model_dump(mode="json")
            for identity, record in sorted(records.items())
        }

        temp_name: Optional[str] = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, temp_name = tempfile.mkstemp(prefix=".trust-", suffix=".yaml", dir=self.path.parent)
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                yaml.safe_dump(data, handle, default_flow_style=False)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(temp_name, self.path)
            temp_name = None
        except OSError as error:
            raise TrustStoreIOError(f"Cannot write trust store {self.path}: {error}") from error
        finally:
            if temp_name is not None and os.path.exists(temp_name):
                os.unlink(temp_name)


class DecisionPrompt(Protocol):
    """UI side of the trust decision: ask the user about one file"""

    def __call__(self, fileIdentity: str) -> Awaitable[PromptOutcome]:
        ...


class ScriptTrustGate:
    """
    Per-file trust state machine and capability allowlist

    The verdict for a file is computed once per session and cached; it is
    recomputed after decision_record(), document_close() or a change of
    security level.

    Attributes:
        store: Persistent store, or None for session-only operation
        securityLevel: Level used for the next consult
        enableScripts: Master switch; when False every consult blocks
        degraded: True when the store failed to load
    """

    def __init__(
        self,
        store: Optional[TrustStore] = None,
        securityLevel: Union[SecurityLevel, str] = SecurityLevel.STANDARD,
        enableScripts: bool = True,
    ) -> None:
        self.store = store
        self.securityLevel = securityLevel if isinstance(securityLevel, SecurityLevel) else level_coerce(securityLevel)
        self.enableScripts = enableScripts
        self.degraded = False

        self._lock = threading.Lock()
        self._writeLock = threading.Lock()
        self._identityLocks: Dict[str, threading.Lock] = {}
        self._session: Dict[str, TrustRecord] = {}
        self._persistent: Dict[str, TrustRecord] = {}
        self._verdicts: Dict[str, TrustCheck] = {}

        self.store_load()

    def store_load(self) -> None:
        """(Re)load persisted records; a failure degrades the gate"""
        if self.store is None:
            return
        try:
            records = self.store.load()
        except TrustStoreIOError as error:
            logger.warning(f"{error}; persisted trust decisions are ignored for this session")
            records = {}
            self.degraded = True
        else:
            self.degraded = False
        with self._lock:
            self._persistent = records
            self._verdicts.clear()
        LOG(f"Loaded {len(records)} persisted trust record(s)", level=2)

    def _identityLock(self, fileIdentity: str) -> threading.Lock:
        with self._lock:
            return self._identityLocks.setdefault(fileIdentity, threading.Lock())

    def securityLevel_set(self, level: Union[SecurityLevel, str]) -> None:
        """Change the level; applies from the next consult"""
        with self._lock:
            self.securityLevel = level if isinstance(level, SecurityLevel) else level_coerce(level)
            self._verdicts.clear()

    def scripts_enable(self, enabled: bool) -> None:
        with self._lock:
            self.enableScripts = enabled
            self._verdicts.clear()

    def record_get(self, fileIdentity: str) -> TrustRecord:
        """
        Effective record for a file

        Returns:
            The record that decides the verdict, or a NotYetDecided record
        """
        with self._lock:
            candidates = [r for r in (self._session.get(fileIdentity), self._persistent.get(fileIdentity)) if r]
        for decision in (TrustDecision.DENIED, TrustDecision.ALLOWED):
            for record in candidates:
                if record.decision is decision:
                    return record
        return TrustRecord(fileIdentity)

    def decision_current(self, fileIdentity: str) -> TrustDecision:
        return self.record_get(fileIdentity).decision

    def consult(self, fileIdentity: str) -> TrustCheck:
        """
        Verdict for a script-bearing document

        Args:
            fileIdentity: Identity from fileIdentity_make()

        Returns:
            TrustCheck with verdict ALLOW (and capabilities), PROMPT or BLOCK
        """
        with self._lock:
            cached = self._verdicts.get(fileIdentity)
            level = self.securityLevel
            enabled = self.enableScripts
        if cached is not None:
            return cached

        decision = self.decision_current(fileIdentity)

        if not enabled:
            check = TrustCheck(fileIdentity, GateVerdict.BLOCK, decision, level, reason="scripts disabled")
        elif decision is TrustDecision.DENIED:
            check = TrustCheck(fileIdentity, GateVerdict.BLOCK, decision, level, reason="denied")
        elif decision is TrustDecision.ALLOWED:
            check = TrustCheck(
                fileIdentity, GateVerdict.ALLOW, decision, level,
                capabilities=capabilities_resolve(level), reason="allowed",
            )
        else:
            reason = "trust store unavailable" if self.degraded else "not yet decided"
            check = TrustCheck(fileIdentity, GateVerdict.PROMPT, decision, level, reason=reason)

        with self._lock:
            self._verdicts[fileIdentity] = check
        LOG(f"Trust verdict for {fileIdentity}: {check.verdict.value} ({check.reason})", level=2)
        return check

    def decision_record(
        self, fileIdentity: str, decision: TrustDecision, persistent: bool = False
    ) -> TrustRecord:
        """
        Record an explicit user decision

        Persistent decisions are written to the store before this returns.
        Decisions for one file are serialized; different files do not wait
        on each other except for the short store write.

        Args:
            fileIdentity: Identity from fileIdentity_make()
            decision: ALLOWED or DENIED
            persistent: Keep the decision across restarts

        Returns:
            The stored record

        Raises:
            ValueError: For NOT_YET_DECIDED
            TrustStoreIOError: If a persistent decision cannot be written; the
                               decision is then kept for this session only
        """
        if decision is TrustDecision.NOT_YET_DECIDED:
            raise ValueError("Only allowed or denied can be recorded")

        record = TrustRecord(fileIdentity, decision, persistent)

        with self._identityLock(fileIdentity):
            if not persistent:
                with self._lock:
                    self._session[fileIdentity] = record
                    self._verdicts.pop(fileIdentity, None)
                LOG(f"Session trust for {fileIdentity}: {decision.value}", level=2)
                return record

            try:
                if self.store is None:
                    raise TrustStoreIOError("No trust store configured")
                if self.degraded:
                    raise TrustStoreIOError(f"Trust store {self.store.path} is unavailable")
                with self._writeLock:
                    with self._lock:
                        records = {**self._persistent, fileIdentity: record}
                    self.store.write(records)
                    with self._lock:
                        self._persistent = records
                        self._session.pop(fileIdentity, None)
                        self._verdicts.pop(fileIdentity, None)
            except TrustStoreIOError:
                logger.warning(f"Keeping trust decision for {fileIdentity} for this session only")
                with self._lock:
                    self._session[fileIdentity] = replace(record, persistent=False)
                    self._verdicts.pop(fileIdentity, None)
                raise

        LOG(f"Persistent trust for {fileIdentity}: {decision.value}", level=2)
        return record

    async def decision_request(self, fileIdentity: str, prompt: DecisionPrompt) -> TrustCheck:
        """
        Consult, prompting the user when no decision exists yet

        Args:
            fileIdentity: Identity from fileIdentity_make()
            prompt: Coroutine function returning a PromptOutcome

        Returns:
            TrustCheck after the outcome was recorded
        """
        check = self.consult(fileIdentity)
        if check.verdict is not GateVerdict.PROMPT:
            return check

        outcome = PromptOutcome(await prompt(fileIdentity))
        decision, persistent = outcome.record_args()
        self.decision_record(fileIdentity, decision, persistent)
        return self.consult(fileIdentity)

    def document_close(self, fileIdentity: str) -> None:
        """Discard session-scoped state (and an idle write lock) for a closed document"""
        with self._lock:
            self._session.pop(fileIdentity, None)
            self._verdicts.pop(fileIdentity, None)
            lock = self._identityLocks.get(fileIdentity)
            if lock is not None and not lock.locked():
                del self._identityLocks[fileIdentity]
        LOG(f"Closed {fileIdentity}; session trust discarded", level=3)
