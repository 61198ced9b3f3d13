from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional

# Records travel through the pipeline in Contentful wire shape (plain dicts).
Record = Dict[str, Any]
ContentType = Dict[str, Any]

RecordType = Literal["Entry", "Asset"]

DEFAULT_ENVIRONMENT = "master"


def _sys(obj: Record) -> Dict[str, Any]:
    return obj.get("sys") or {}


def _link_id(link: Any) -> Optional[str]:
    if isinstance(link, dict):
        return (link.get("sys") or {}).get("id")
    return None


def record_id(record: Record) -> str:
    return _sys(record).get("id", "")


def record_type(record: Record) -> Optional[str]:
    return _sys(record).get("type")


def space_id(record: Record) -> Optional[str]:
    return _link_id(_sys(record).get("space"))


def environment_id(record: Record) -> str:
    return _link_id(_sys(record).get("environment")) or DEFAULT_ENVIRONMENT


def content_type_id(record: Record) -> Optional[str]:
    return _link_id(_sys(record).get("contentType"))


def record_version(record: Record) -> Optional[int]:
    """Version for conditional writes; delivery-API records only carry `revision`."""
    sys = _sys(record)
    version = sys.get("version")
    if version is None:
        version = sys.get("revision")
    return version


def is_published(record: Record) -> bool:
    sys = _sys(record)
    return bool(sys.get("revision") or sys.get("publishedAt"))


def is_link(value: Any) -> bool:
    return isinstance(value, dict) and _sys(value).get("type") == "Link"


def is_content_type(obj: Any) -> bool:
    return isinstance(obj, dict) and _sys(obj).get("type") == "ContentType"


def is_processable(obj: Any, *, draft: bool = False) -> bool:
    """Entries and Assets only; unpublished records only when running in draft mode."""
    if not isinstance(obj, dict) or not isinstance(obj.get("sys"), dict):
        return False
    if record_type(obj) not in ("Entry", "Asset"):
        return False
    if not draft and not is_published(obj):
        return False
    return True


@dataclass(frozen=True)
class EntryInfo:
    """Lightweight metadata the aggregator keeps for every record seen in a run."""

    id: str
    type: RecordType
    content_type_id: Optional[str] = None
    published: bool = False

    @classmethod
    def from_record(cls, record: Record) -> "EntryInfo":
        return cls(
            id=record_id(record),
            type=record_type(record),  # type: ignore[arg-type]
            content_type_id=content_type_id(record),
            published=is_published(record),
        )


@dataclass(frozen=True)
class Credential:
    """A temporary delivery API key created by a client for read-only access."""

    id: str
    access_token: str = field(repr=False)
    environment_id: str = DEFAULT_ENVIRONMENT


@dataclass
class RequestStats:
    requests: int = 0
    rate_limits: int = 0
    max_queue_size: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "requests": self.requests,
            "rate_limits": self.rate_limits,
            "max_queue_size": self.max_queue_size,
        }


@dataclass
class ValidationOutcome:
    """Explicit result of validating one record; the record itself is never dropped."""

    record: Record
    errors: List[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors

    @property
    def record_id(self) -> str:
        return record_id(self.record)


@dataclass
class RunResult:
    run_id: str
    status: Literal["success", "completed_with_errors"] = "success"
    records_read: int = 0
    error_messages: List[str] = field(default_factory=list)
    stats: Dict[str, Dict[str, int]] = field(default_factory=dict)
    sink_audits: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.error_messages
