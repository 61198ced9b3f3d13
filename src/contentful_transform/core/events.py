from __future__ import annotations

import json
import os
import sys
import threading
import time
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from queue import Empty, Full, Queue
from typing import Any, Dict, List, Optional, TextIO

DEFAULT_SCHEMA_VERSION = "1.0"

# Optional global bus so stages can report progress without threading it through signatures
_GLOBAL_BUS: Optional["EventBus"] = None


def set_global_bus(bus: Optional["EventBus"]) -> None:
    global _GLOBAL_BUS
    _GLOBAL_BUS = bus


def get_global_bus() -> Optional["EventBus"]:
    return _GLOBAL_BUS


def publish_event(
    *,
    stage: str,
    status: str,
    duration_ms: Optional[int] = None,
    counts: Optional[Dict[str, Any]] = None,
    details: Optional[Dict[str, Any]] = None,
    error: Optional[Dict[str, Any]] = None,
) -> None:
    """Publish a progress event to the global bus, if one is configured.

    Bus failures are ignored.
    """
    bus = _GLOBAL_BUS
    if bus is None:
        return
    try:
        bus.publish(
            stage=stage,
            status=status,
            duration_ms=duration_ms,
            counts=counts,
            details=details,
            error=error,
        )
    except Exception:
        pass


class timed_stage:
    """Context manager publishing started/completed/failed events for a stage.

    Usage:
        with timed_stage("sink.write", details={"target": "-"}) as stage:
            audit = await sink.write(records)
            stage.counts = {"records_written": audit["record_count"]}
    """

    def __init__(
        self,
        stage: str,
        *,
        counts: Optional[Dict[str, Any]] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.stage = stage
        self.counts = counts
        self.details = details
        self._start_ms: Optional[int] = None

    def __enter__(self) -> "timed_stage":
        self._start_ms = int(time.time() * 1000)
        publish_event(stage=self.stage, status="started", details=self.details)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):  # type: ignore
        duration_ms = int(time.time() * 1000) - (self._start_ms or 0)
        if exc_type is not None:
            publish_event(
                stage=self.stage,
                status="failed",
                duration_ms=duration_ms,
                counts=self.counts,
                details=self.details,
                error={"code": exc_type.__name__, "message": str(exc_val)},
            )
        else:
            publish_event(
                stage=self.stage,
                status="completed",
                duration_ms=duration_ms,
                counts=self.counts,
                details=self.details,
            )
        return False


@dataclass
class FunctionalEvent:
    """Structured progress event, decoupled from debug logging."""

    schema_version: str = DEFAULT_SCHEMA_VERSION
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    seq_no: int = 0
    ts: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    run_id: str = "-"

    stage: str = "-"  # e.g. source.read, validate, sink.write
    status: str = "-"  # started|completed|failed

    duration_ms: Optional[int] = None
    counts: Optional[Dict[str, Any]] = None
    details: Optional[Dict[str, Any]] = None
    error: Optional[Dict[str, Any]] = None


class EventObserver:
    """Observer interface for handling functional events."""

    def handle(self, event: FunctionalEvent) -> None:  # pragma: no cover
        raise NotImplementedError

    def flush(self) -> None:
        pass


class StderrObserver(EventObserver):
    """One-line human-readable progress, written to stderr so stdout stays clean for output."""

    def __init__(self, stream: Optional[TextIO] = None):
        self._stream = stream

    def handle(self, event: FunctionalEvent) -> None:
        stream = self._stream or sys.stderr
        duration = f" ({event.duration_ms} ms)" if event.duration_ms is not None else ""
        msg = f"{event.stage} {event.status}{duration}"
        if event.counts:
            msg += " | " + ", ".join(f"{k}={v}" for k, v in event.counts.items())
        if event.details:
            brief = {k: event.details[k] for k in list(event.details.keys())[:4]}
            msg += f" | {brief}"
        if event.error:
            msg += f" | {event.error.get('code')}: {event.error.get('message')}"
        print(msg, file=stream)


class JSONLObserver(EventObserver):
    """Buffers events and appends them as JSON lines to `<base_path>/<run_id>.jsonl` on flush."""

    def __init__(self, base_path: str, run_id: str) -> None:
        self._buf: List[str] = []
        self.file_path = os.path.join(base_path, f"{run_id}.jsonl")
        os.makedirs(base_path, exist_ok=True)

    def handle(self, event: FunctionalEvent) -> None:
        self._buf.append(json.dumps(asdict(event), ensure_ascii=False, default=str))

    def flush(self) -> None:
        if not self._buf:
            return
        with open(self.file_path, "a", encoding="utf-8") as f:
            f.write("\n".join(self._buf) + "\n")
        self._buf.clear()


class EventBus:
    """Event bus with a background dispatcher thread and a bounded queue.

    Publishing never blocks: when the queue is full, events are dropped and
    counted. Paired started/completed events get an automatic duration.
    """

    def __init__(
        self,
        *,
        run_id: str,
        observers: Optional[List[EventObserver]] = None,
        queue_size: int = 10_000,
    ) -> None:
        self.run_id = str(run_id)
        self._observers: List[EventObserver] = observers or []
        self._q: Queue[FunctionalEvent] = Queue(maxsize=max(1, queue_size))
        self._seq_no = 0
        self._lock = threading.Lock()
        self._running = False
        self._worker: Optional[threading.Thread] = None
        self._dropped = 0
        self._stage_start_times: Dict[str, int] = {}

    @property
    def dropped(self) -> int:
        return self._dropped

    def _dispatch(self, evt: FunctionalEvent) -> None:
        for obs in self._observers:
            try:
                obs.handle(evt)
            except Exception:
                # Isolate observer failures
                pass

    def _dispatch_loop(self) -> None:
        while self._running:
            try:
                evt = self._q.get(timeout=0.2)
            except Empty:
                continue
            self._dispatch(evt)

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._worker = threading.Thread(target=self._dispatch_loop, name="functional_event_bus", daemon=True)
        self._worker.start()

    def shutdown(self) -> None:
        if not self._running:
            return
        self._running = False
        if self._worker is not None and self._worker.is_alive():
            self._worker.join(timeout=2.0)
        while True:
            try:
                evt = self._q.get_nowait()
            except Empty:
                break
            self._dispatch(evt)
        for obs in self._observers:
            try:
                obs.flush()
            except Exception:
                pass
        self._worker = None

    def publish(
        self,
        *,
        stage: str,
        status: str,
        duration_ms: Optional[int] = None,
        counts: Optional[Dict[str, Any]] = None,
        details: Optional[Dict[str, Any]] = None,
        error: Optional[Dict[str, Any]] = None,
    ) -> None:
        now_ms = int(time.time() * 1000)
        with self._lock:
            if status == "started":
                self._stage_start_times[stage] = now_ms
            elif status in ("completed", "failed") and duration_ms is None:
                start_ms = self._stage_start_times.pop(stage, None)
                if start_ms is not None:
                    duration_ms = now_ms - start_ms
            self._seq_no += 1
            seq_no = self._seq_no

        evt = FunctionalEvent(
            seq_no=seq_no,
            run_id=self.run_id,
            stage=stage,
            status=status,
            duration_ms=duration_ms,
            counts=counts,
            details=details,
            error=error,
        )
        try:
            self._q.put_nowait(evt)
        except Full:
            self._dropped += 1


def _env_flag(name: str, default: str) -> str:
    val = os.getenv(name)
    return val if val not in (None, "") else default


def build_default_bus(*, run_id: str, quiet: bool = False) -> Optional[EventBus]:
    """Construct the default EventBus from environment variables.

    CONTENTFUL_TRANSFORM_EVENTS_ENABLED: "true" | "false" (default: "true")
    CONTENTFUL_TRANSFORM_EVENTS_TRANSPORTS: comma list of stderr,jsonl (default: "stderr")
    CONTENTFUL_TRANSFORM_EVENTS_PATH: directory for jsonl events (default: ".contentful-transform/events")
    CONTENTFUL_TRANSFORM_EVENTS_QUEUE_SIZE: int (default: 10000)

    `quiet` suppresses the stderr progress observer.
    """
    enabled = _env_flag("CONTENTFUL_TRANSFORM_EVENTS_ENABLED", "true").lower() == "true"
    if not enabled:
        return None

    transports = [
        s.strip() for s in _env_flag("CONTENTFUL_TRANSFORM_EVENTS_TRANSPORTS", "stderr").split(",") if s.strip()
    ]
    try:
        q_size = int(_env_flag("CONTENTFUL_TRANSFORM_EVENTS_QUEUE_SIZE", "10000"))
    except ValueError:
        q_size = 10000

    observers: List[EventObserver] = []
    if "stderr" in transports and not quiet:
        observers.append(StderrObserver())
    if "jsonl" in transports:
        base_path = _env_flag("CONTENTFUL_TRANSFORM_EVENTS_PATH", ".contentful-transform/events")
        observers.append(JSONLObserver(base_path=base_path, run_id=run_id))

    if not observers:
        return None
    return EventBus(run_id=run_id, observers=observers, queue_size=q_size)
