"""
Pydantic data models for the partitioned performance API.

Optional identity fields are plain ``Optional[...] = None`` so a field the
cluster did not send stays distinct from one it sent as an empty string.
"""

from typing import Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from .errors import DataInvariantViolation


# names of the statistics that every partitioned performance workload carries
F_BYTESIN = "bytes_in"
F_BYTESOUT = "bytes_out"
F_READS = "reads"
F_WRITES = "writes"
F_OPS = "ops"
F_L2 = "l2"
F_L3 = "l3"
F_CPU = "cpu"
F_LATREAD = "latency_read"
F_LATWRITE = "latency_write"
F_LATOTHER = "latency_other"

PP_FIXED_FIELDS = (
    F_BYTESIN,
    F_BYTESOUT,
    F_READS,
    F_WRITES,
    F_OPS,
    F_L2,
    F_L3,
    F_CPU,
    F_LATREAD,
    F_LATWRITE,
    F_LATOTHER,
)

# the five overflow buckets of every dataset
W_ADDITIONAL = "Additional"
W_EXCLUDED = "Excluded"
W_OVERACCOUNTED = "Overaccounted"
W_SYSTEM = "System"
W_UNKNOWN = "Unknown"
# pinned workloads are regular stats with a marker, not a bucket
W_PINNED = "Pinned"

WORKLOAD_TYPES = (W_ADDITIONAL, W_EXCLUDED, W_OVERACCOUNTED, W_SYSTEM, W_UNKNOWN)


def is_valid_workload_type(t: str) -> bool:
    return t in WORKLOAD_TYPES


class DatasetDefinition(BaseModel):
    """Metadata for a single partitioned performance dataset."""

    id: int
    name: str
    creation_time: int
    metrics: list[str] = Field(default_factory=list)
    statkey: str = ""
    filters: list[str] = Field(default_factory=list)
    filter_count: int = 0
    workload_count: int = 0


class DatasetInfo(BaseModel):
    """Response of the dataset listing endpoint."""

    datasets: list[DatasetDefinition] = Field(default_factory=list)
    resume: Optional[str] = None
    total: int = 0


class WorkloadSample(BaseModel):
    """A single workload entry from the workload summary endpoint."""

    # required performance metrics
    bytes_in: float
    bytes_out: float
    reads: float
    writes: float
    ops: float
    l2: float
    l3: float
    cpu: float
    latency_read: float
    latency_write: float
    latency_other: float

    node: int
    time: int

    # optional criteria, depending on the dataset definition
    username: Optional[str] = None
    protocol: Optional[str] = None
    share_name: Optional[str] = None
    job_type: Optional[str] = None
    groupname: Optional[str] = None
    path: Optional[str] = None
    zone_name: Optional[str] = None
    domain_id: Optional[str] = None
    export_id: Optional[int] = None
    user_id: Optional[int] = None
    local_address: Optional[str] = None
    user_sid: Optional[str] = None
    error: Optional[str] = None
    remote_address: Optional[str] = None
    workload_type: Optional[str] = None
    group_sid: Optional[str] = None
    remote_name: Optional[str] = None
    system_name: Optional[str] = None
    zone_id: Optional[int] = None
    workload_id: Optional[int] = None
    local_name: Optional[str] = None
    group_id: Optional[int] = None

    @field_validator(*PP_FIXED_FIELDS, mode="before")
    @classmethod
    def _numeric(cls, v):
        # bool is an int subclass, reject it along with strings
        if isinstance(v, bool) or not isinstance(v, (int, float)):
            raise ValueError(f"expected a number, got {v!r}")
        return v

    def fields(self) -> dict[str, float]:
        """The fixed statistics of this workload, keyed by field name."""
        return {f: getattr(self, f) for f in PP_FIXED_FIELDS}

    @classmethod
    def parse(cls, raw: dict) -> "WorkloadSample":
        try:
            return cls.model_validate(raw)
        except ValidationError as e:
            bad = sorted({str(err["loc"][0]) for err in e.errors() if err["loc"]})
            raise DataInvariantViolation(
                f"workload entry violates the API contract (fields: {', '.join(bad)}): {e}"
            ) from e
