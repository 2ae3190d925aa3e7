from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Optional, Tuple

from nodesim.events.types import ProcessRole


@dataclass
class ManagedProcess:
    """One spawned child process and what the supervisor knows about it."""

    role: ProcessRole
    command: str
    args: Tuple[str, ...]
    process: Optional[asyncio.subprocess.Process] = None
    last_error: Optional[BaseException] = None
    exited: bool = False
    monitor_task: Optional[asyncio.Task] = field(default=None, repr=False)

    @property
    def pid(self) -> Optional[int]:
        if self.process is None:
            return None
        return self.process.pid

    @property
    def returncode(self) -> Optional[int]:
        if self.process is None:
            return None
        return self.process.returncode
