import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional


def utc_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def new_run_id() -> str:
    return datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ") + "-" + uuid.uuid4().hex[:8]


@dataclass
class RunLogger:
    """
    Append-only JSONL log of one generation session.

    One JSON object per line: start/end/error per step, plus progress events
    while sections are drafted.
    """

    session_id: str
    log_path: Path
    run_id: str = field(default_factory=new_run_id)

    @classmethod
    def for_session(cls, session_id: str, log_dir: Path) -> "RunLogger":
        run_id = new_run_id()
        return cls(session_id=session_id, log_path=Path(log_dir) / f"{run_id}.jsonl", run_id=run_id)

    def _write(self, step: int, agent: str, event: str, status: str, **extra: Any) -> None:
        payload: dict[str, Any] = {
            "ts": utc_iso(),
            "run_id": self.run_id,
            "session_id": self.session_id,
            "step": step,
            "agent": agent,
            "event": event,
            "status": status,
        }
        payload.update(extra)
        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        with self.log_path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(payload, ensure_ascii=False, default=str) + "\n")

    def start(self, step: int, agent: str, input: Any) -> None:
        self._write(step, agent, "start", "ok", input=input)

    def progress(self, step: int, agent: str, section: str, percent: int) -> None:
        self._write(step, agent, "progress", "ok", section=section, percent=percent)

    def end(self, step: int, agent: str, output: Any, metrics: Optional[dict[str, Any]] = None) -> None:
        self._write(step, agent, "end", "ok", output=output, metrics=metrics or {})

    def error(self, step: int, agent: str, input: Any, err: BaseException) -> None:
        self._write(
            step,
            agent,
            "error",
            "error",
            input=input,
            error={"type": err.__class__.__name__, "message": str(err)},
        )
