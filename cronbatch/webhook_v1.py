"""Defaulting and validation admission checks for v1 CronJobs."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from cronbatch import v1_types as v1
from cronbatch.schedule import ScheduleError, parse_standard
from cronbatch.validation import FieldError, InvalidError

_log = logging.getLogger("cronjob-resource")

_DNS1035_LABEL_MAX_LENGTH = 63
# Jobs are named "<cronjob>-<unix time>", which adds 11 characters.
_MAX_NAME_LENGTH = _DNS1035_LABEL_MAX_LENGTH - 11


def _expect_cronjob(obj: object, what: str = "a CronJob object") -> v1.CronJob:
    if not isinstance(obj, v1.CronJob):
        raise TypeError(f"expected {what} but got {type(obj).__name__}")
    return obj


@dataclass
class CronJobCustomDefaulter:
    """Fills unset optional fields of a CronJob with default values."""

    default_concurrency_policy: v1.ConcurrencyPolicy = v1.ConcurrencyPolicy.ALLOW
    default_suspend: bool = False
    default_successful_jobs_history_limit: int = 3
    default_failed_jobs_history_limit: int = 1

    def default(self, obj: object) -> None:
        """Apply the defaults to ``obj`` in place."""
        cronjob = _expect_cronjob(obj, "an CronJob object")
        _log.info("Defaulting for CronJob name=%s", cronjob.metadata.name)
        spec = cronjob.spec
        if not spec.concurrency_policy:
            spec.concurrency_policy = self.default_concurrency_policy
        if spec.suspend is None:
            spec.suspend = self.default_suspend
        if spec.successful_jobs_history_limit is None:
            spec.successful_jobs_history_limit = self.default_successful_jobs_history_limit
        if spec.failed_jobs_history_limit is None:
            spec.failed_jobs_history_limit = self.default_failed_jobs_history_limit


class CronJobCustomValidator:
    """Validates CronJobs on creation, update and deletion.

    Each method returns a list of warnings and raises InvalidError on rejection.
    """

    def validate_create(self, obj: object) -> list[str]:
        cronjob = _expect_cronjob(obj)
        _log.info("Validation for CronJob upon creation name=%s", cronjob.metadata.name)
        validate_cronjob(cronjob)
        return []

    def validate_update(self, old_obj: object, new_obj: object) -> list[str]:
        cronjob = _expect_cronjob(new_obj, "a CronJob object for the newObj")
        _log.info("Validation for CronJob upon update name=%s", cronjob.metadata.name)
        validate_cronjob(cronjob)
        return []

    def validate_delete(self, obj: object) -> list[str]:
        cronjob = _expect_cronjob(obj)
        _log.info("Validation for CronJob upon deletion name=%s", cronjob.metadata.name)
        return []


def _validate_name(cronjob: v1.CronJob) -> FieldError | None:
    name = cronjob.metadata.name
    if len(name.encode()) > _MAX_NAME_LENGTH:
        return FieldError("metadata.name", name, f"must be no more than {_MAX_NAME_LENGTH} characters")
    return None


def _validate_schedule_format(schedule: str, path: str) -> FieldError | None:
    try:
        parse_standard(schedule)
    except ScheduleError as err:
        return FieldError(path, schedule, str(err))
    return None


def _validate_spec(cronjob: v1.CronJob) -> FieldError | None:
    return _validate_schedule_format(cronjob.spec.schedule, "spec.schedule")


def validate_cronjob(cronjob: v1.CronJob) -> None:
    """Check the name and schedule of ``cronjob``; raise InvalidError if either is wrong."""
    errors = [error for error in (_validate_name(cronjob), _validate_spec(cronjob)) if error is not None]
    if errors:
        raise InvalidError(v1.GROUP, "CronJob", cronjob.metadata.name, errors)


def new_defaulter() -> CronJobCustomDefaulter:
    """Return the defaulter registered for v1 CronJobs."""
    return CronJobCustomDefaulter(
        default_concurrency_policy=v1.ConcurrencyPolicy.ALLOW,
        default_suspend=False,
        default_successful_jobs_history_limit=3,
        default_failed_jobs_history_limit=1,
    )