"""
Typed event definitions published by a SimulationNode.

Child process output, errors, and exits are bridged into these records, and the
node's chain-follow stream is republished as BlockStreamItem records.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal, Mapping, Optional, Tuple

from nodesim.exceptions import ApplicationError

from .log_schema import NodeLogMessage

ProcessRole = Literal["node", "miner"]
OutputStream = Literal["stdout", "stderr"]
BlockEventType = Literal["connected", "disconnected"]


def utc_timestamp() -> str:
    """Return the current time as an ISO-8601 UTC string."""
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class LogEvent:
    """One chunk of output emitted by a managed process."""

    node: str
    proc: ProcessRole
    type: OutputStream
    message: str
    timestamp: str = field(default_factory=utc_timestamp)
    json_message: Optional[NodeLogMessage] = None


@dataclass(frozen=True)
class ErrorEvent:
    """A spawn or runtime error reported for a managed process."""

    node: str
    proc: ProcessRole
    error: BaseException
    timestamp: str = field(default_factory=utc_timestamp)


@dataclass(frozen=True)
class ExitEvent:
    """Emitted exactly once when a managed process terminates."""

    node: str
    proc: ProcessRole
    code: Optional[int]
    signal: Optional[str]
    last_err: Optional[BaseException] = None
    timestamp: str = field(default_factory=utc_timestamp)


@dataclass(frozen=True)
class Transaction:
    hash: str


@dataclass(frozen=True)
class Block:
    """Block as delivered by the chain-follow stream."""

    hash: str
    sequence: int
    transactions: Tuple[Transaction, ...] = ()
    raw: Mapping[str, Any] = field(default_factory=dict, compare=False, repr=False)

    def has_transaction(self, transaction_hash: str) -> bool:
        """Case-insensitive lookup of ``transaction_hash`` in this block."""
        wanted = transaction_hash.lower()
        return any(tx.hash.lower() == wanted for tx in self.transactions)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Block":
        try:
            transactions = tuple(Transaction(hash=str(tx["hash"])) for tx in payload.get("transactions", []))
            return cls(
                hash=str(payload["hash"]),
                sequence=int(payload["sequence"]),
                transactions=transactions,
                raw=dict(payload),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise MalformedBlockError(f"Malformed block payload: {exc}") from exc


@dataclass(frozen=True)
class BlockStreamItem:
    """One update from the chain-follow stream."""

    type: BlockEventType
    block: Block

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "BlockStreamItem":
        if not isinstance(payload, Mapping):
            raise MalformedBlockError(f"Block stream item must be an object, got {type(payload).__name__}")
        event_type = payload.get("type")
        if event_type not in ("connected", "disconnected"):
            raise MalformedBlockError(f"Unknown block stream item type: {event_type!r}")
        block = payload.get("block")
        if not isinstance(block, Mapping):
            raise MalformedBlockError("Block stream item is missing its block")
        return cls(type=event_type, block=Block.from_payload(block))


class MalformedBlockError(ApplicationError):
    """A chain-follow stream record could not be decoded."""


__all__ = [
    "Block",
    "BlockEventType",
    "BlockStreamItem",
    "ErrorEvent",
    "ExitEvent",
    "LogEvent",
    "MalformedBlockError",
    "OutputStream",
    "ProcessRole",
    "Transaction",
    "utc_timestamp",
]
