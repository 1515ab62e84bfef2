"""An in-memory object store for CronJobs and the Jobs they own."""

from __future__ import annotations

import copy
import itertools
import threading
import uuid
from datetime import datetime, timezone
from typing import Callable

from cronbatch import v1_types as v1
from cronbatch.objects import Job, NamespacedName, ObjectMeta


class NotFoundError(LookupError):
    """Raised when the requested object does not exist."""

    def __init__(self, kind: str, key: NamespacedName) -> None:
        self.kind = kind
        self.key = key
        super().__init__(f'{kind} "{key.name}" not found in namespace "{key.namespace}"')


class AlreadyExistsError(ValueError):
    """Raised when an object with the same key is already stored."""

    def __init__(self, kind: str, key: NamespacedName) -> None:
        self.kind = kind
        self.key = key
        super().__init__(f'{kind} "{key.name}" already exists in namespace "{key.namespace}"')


def job_owner_index(job: Job) -> list[str]:
    """Return the name of the v1 CronJob controlling ``job``, as an index value list."""
    owner = job.metadata.controller_of()
    if owner is None:
        return []
    if owner.api_version != v1.GROUP_VERSION or owner.kind != "CronJob":
        return []
    return [owner.name]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ObjectStore:
    """Holds CronJobs and Jobs; objects go in and come out as independent copies."""

    def __init__(self, clock: Callable[[], datetime] | None = None) -> None:
        self._clock = clock or _utc_now
        self._cronjobs: dict[NamespacedName, v1.CronJob] = {}
        self._jobs: dict[NamespacedName, Job] = {}
        self._lock = threading.RLock()
        self._versions = itertools.count(1)

    def _next_version(self) -> str:
        return str(next(self._versions))

    def _admit(self, meta: ObjectMeta) -> None:
        if not meta.name:
            raise ValueError("name is required")
        if not meta.uid:
            meta.uid = str(uuid.uuid4())
        if meta.creation_timestamp is None:
            meta.creation_timestamp = self._clock().replace(microsecond=0)
        meta.resource_version = self._next_version()

    def create_cronjob(self, cronjob: v1.CronJob) -> v1.CronJob:
        """Store a new CronJob, filling in its server-side metadata."""
        with self._lock:
            key = cronjob.metadata.key
            if key in self._cronjobs:
                raise AlreadyExistsError("CronJob", key)
            stored = copy.deepcopy(cronjob)
            self._admit(stored.metadata)
            self._cronjobs[key] = stored
            cronjob.metadata = copy.deepcopy(stored.metadata)
            return copy.deepcopy(stored)

    def get_cronjob(self, key: NamespacedName) -> v1.CronJob:
        with self._lock:
            try:
                return copy.deepcopy(self._cronjobs[key])
            except KeyError:
                raise NotFoundError("CronJob", key) from None

    def update_cronjob_status(self, cronjob: v1.CronJob) -> v1.CronJob:
        """Replace only the status of a stored CronJob."""
        with self._lock:
            key = cronjob.metadata.key
            stored = self._cronjobs.get(key)
            if stored is None:
                raise NotFoundError("CronJob", key)
            stored.status = copy.deepcopy(cronjob.status)
            stored.metadata.resource_version = self._next_version()
            cronjob.metadata.resource_version = stored.metadata.resource_version
            return copy.deepcopy(stored)

    def list_cronjobs(self) -> v1.CronJobList:
        with self._lock:
            return v1.CronJobList(
                items=[copy.deepcopy(self._cronjobs[key]) for key in sorted(self._cronjobs)]
            )

    def create_job(self, job: Job) -> Job:
        """Store a new Job, filling in its server-side metadata."""
        with self._lock:
            key = job.metadata.key
            if key in self._jobs:
                raise AlreadyExistsError("Job", key)
            stored = copy.deepcopy(job)
            self._admit(stored.metadata)
            self._jobs[key] = stored
            job.metadata = copy.deepcopy(stored.metadata)
            return copy.deepcopy(stored)

    def get_job(self, key: NamespacedName) -> Job:
        with self._lock:
            try:
                return copy.deepcopy(self._jobs[key])
            except KeyError:
                raise NotFoundError("Job", key) from None

    def update_job_status(self, job: Job) -> Job:
        """Replace only the status of a stored Job."""
        with self._lock:
            key = job.metadata.key
            stored = self._jobs.get(key)
            if stored is None:
                raise NotFoundError("Job", key)
            stored.status = copy.deepcopy(job.status)
            stored.metadata.resource_version = self._next_version()
            job.metadata.resource_version = stored.metadata.resource_version
            return copy.deepcopy(stored)

    def delete_job(self, job: Job) -> None:
        with self._lock:
            key = job.metadata.key
            if self._jobs.pop(key, None) is None:
                raise NotFoundError("Job", key)

    def list_jobs(self, namespace: str, owner_name: str | None = None) -> list[Job]:
        """List Jobs in ``namespace``, optionally only those controlled by CronJob ``owner_name``."""
        with self._lock:
            return [
                copy.deepcopy(job)
                for key, job in sorted(self._jobs.items())
                if key.namespace == namespace
                and (owner_name is None or owner_name in job_owner_index(job))
            ]