"""
Tag derivation for workload samples.

Squashes the alternative identity fields of a workload (name vs. id vs. SID)
into the tag names used in the dataset definitions, e.g.
export_id groupname local_address path protocol remote_address share_name
username zone_name.
"""

from __future__ import annotations

from typing import Optional, Protocol

from loguru import logger

from ppstats_client.errors import Cancelled, PPStatsError
from ppstats_client.models import WorkloadSample

EXPORT_LOOKUP_FAILED = "unknown (lookup failed)"


class ExportLookup(Protocol):
    def get_export_path(self, export_id: int) -> str: ...


class ExportPathCache:
    """NFS export id -> export path, resolved lazily and kept for the process lifetime.

    Only successful lookups are cached; a failed lookup is tried again for
    the next sample that carries the id.
    """

    def __init__(self, lookup: Optional[ExportLookup], enabled: bool = False) -> None:
        self.enabled = enabled and lookup is not None
        self._lookup = lookup
        self._paths: dict[int, str] = {}

    def __contains__(self, export_id: int) -> bool:
        return export_id in self._paths

    def path(self, export_id: int) -> Optional[str]:
        if not self.enabled:
            return None
        path = self._paths.get(export_id)
        if path is not None:
            return path
        try:
            path = self._lookup.get_export_path(export_id)
        except Cancelled:
            raise
        except PPStatsError as e:
            logger.error(f"failed to lookup export id {export_id}, {e}")
            return EXPORT_LOOKUP_FAILED
        self._paths[export_id] = path
        return path


def tags_for_sample(sample: WorkloadSample, exports: Optional[ExportPathCache] = None) -> dict[str, str]:
    """Convert the optional identity fields of a workload into string tags."""
    tags: dict[str, str] = {}

    # NFS export id
    if sample.export_id is not None:
        tags["export_id"] = str(sample.export_id)
        if exports is not None and exports.enabled:
            tags["export_path"] = exports.path(sample.export_id)

    # associated group identity
    if sample.groupname is not None:
        tags["groupname"] = f"GID:{sample.groupname}"
    elif sample.group_id is not None:
        tags["groupname"] = f"GID:{sample.group_id}"
    elif sample.group_sid is not None:
        tags["groupname"] = f"SID:{sample.group_sid}"

    # local network name/address
    if sample.local_name is not None:
        tags["local_address"] = sample.local_name
    elif sample.local_address is not None:
        tags["local_address"] = sample.local_address

    if sample.path is not None:
        tags["path"] = sample.path

    if sample.protocol is not None:
        tags["protocol"] = sample.protocol

    # remote network name/address
    if sample.remote_name is not None:
        tags["remote_address"] = sample.remote_name
    elif sample.remote_address is not None:
        tags["remote_address"] = sample.remote_address

    # SMB share name
    if sample.share_name is not None:
        tags["share_name"] = sample.share_name

    # associated user identity
    if sample.username is not None:
        tags["username"] = sample.username
    elif sample.user_id is not None:
        tags["username"] = f"UID:{sample.user_id}"
    elif sample.user_sid is not None:
        tags["username"] = f"SID:{sample.user_sid}"

    # access zone
    if sample.zone_name is not None:
        tags["zone_name"] = sample.zone_name
    elif sample.zone_id is not None:
        tags["zone_name"] = f"zone:{sample.zone_id}"

    # one of the overflow buckets, or Pinned
    if sample.workload_type is not None:
        tags["workload_type"] = sample.workload_type

    # System dataset only: process/service name and job-engine job
    if sample.system_name is not None:
        tags["system_name"] = sample.system_name
    if sample.job_type is not None:
        tags["job_type"] = sample.job_type

    if sample.domain_id is not None:
        tags["domain_id"] = sample.domain_id

    if sample.workload_id is not None:
        tags["workload_id"] = str(sample.workload_id)

    return tags
