from datetime import datetime, timezone

import pytest

from cronbatch import v1_types as v1
from cronbatch.objects import JobSpec, JobTemplateSpec, ObjectMeta, ObjectReference
from cronbatch.v2_types import (
    GROUP_VERSION,
    ConcurrencyPolicy,
    ConversionError,
    CronJob,
    CronJobList,
    CronJobSpec,
    CronJobStatus,
    CronSchedule,
)


def _v2_cronjob() -> CronJob:
    return CronJob(
        metadata=ObjectMeta(name="test-cronjob", namespace="default", labels={"app": "demo"}),
        spec=CronJobSpec(
            schedule=CronSchedule(minute="*/5", hour="3"),
            job_template=JobTemplateSpec(spec=JobSpec(template={"containers": [{"name": "test-container"}]})),
            starting_deadline_seconds=60,
            concurrency_policy=ConcurrencyPolicy.FORBID,
            suspend=True,
            successful_jobs_history_limit=3,
            failed_jobs_history_limit=1,
        ),
        status=CronJobStatus(
            active=[ObjectReference(kind="Job", namespace="default", name="test-job")],
            last_schedule_time=datetime(2025, 1, 2, 3, 0, tzinfo=timezone.utc),
        ),
    )


def test_empty_schedule_is_all_wildcards():
    assert CronSchedule().to_expression() == "* * * * *"


def test_schedule_expression_keeps_field_order():
    sched = CronSchedule(minute="1", hour="2", day_of_month="3", month="4", day_of_week="5")
    assert sched.to_expression() == "1 2 3 4 5"


def test_from_expression_wildcards_become_unset():
    sched = CronSchedule.from_expression("*/5 * * * *")
    assert sched == CronSchedule(minute="*/5")


@pytest.mark.parametrize("expression", ["1 * * * *", "0 0 * * *", "*/5 1-3 1,15 jan mon", "* * * * *"])
def test_schedule_round_trip(expression):
    assert CronSchedule.from_expression(expression).to_expression() == expression


@pytest.mark.parametrize("expression", ["invalid-cron-schedule", "* * * *", "* * * * * *", "@hourly"])
def test_from_expression_rejects_non_five_field(expression):
    with pytest.raises(ConversionError, match="not a standard 5-field schedule"):
        CronSchedule.from_expression(expression)


def test_convert_to_hub_copies_everything():
    src = _v2_cronjob()
    dst = v1.CronJob()
    src.convert_to(dst)
    assert dst.spec.schedule == "*/5 3 * * *"
    assert dst.metadata == src.metadata
    assert dst.spec.concurrency_policy is v1.ConcurrencyPolicy.FORBID
    assert dst.spec.starting_deadline_seconds == 60
    assert dst.spec.suspend is True
    assert dst.spec.successful_jobs_history_limit == 3
    assert dst.spec.failed_jobs_history_limit == 1
    assert dst.spec.job_template == src.spec.job_template
    assert dst.status.active == src.status.active
    assert dst.status.last_schedule_time == src.status.last_schedule_time


def test_convert_from_hub_splits_schedule():
    hub = v1.CronJob(
        metadata=ObjectMeta(name="test-cronjob", namespace="default"),
        spec=v1.CronJobSpec(schedule="1 * * * *", concurrency_policy=v1.ConcurrencyPolicy.REPLACE),
    )
    spoke = CronJob()
    spoke.convert_from(hub)
    assert spoke.spec.schedule == CronSchedule(minute="1")
    assert spoke.spec.concurrency_policy is ConcurrencyPolicy.REPLACE
    assert spoke.metadata.key == hub.metadata.key


def test_unset_policy_stays_unset_across_conversion():
    hub = v1.CronJob(spec=v1.CronJobSpec(schedule="* * * * *"))
    spoke = CronJob()
    spoke.convert_from(hub)
    back = v1.CronJob()
    spoke.convert_to(back)
    assert spoke.spec.concurrency_policy is None
    assert back.spec.concurrency_policy is None
    assert back.spec.suspend is None


def test_round_trip_through_hub_is_lossless():
    original = _v2_cronjob()
    hub = v1.CronJob()
    original.convert_to(hub)
    restored = CronJob()
    restored.convert_from(hub)
    assert restored == original


def test_convert_from_invalid_schedule_leaves_target_untouched():
    hub = v1.CronJob(
        metadata=ObjectMeta(name="other"),
        spec=v1.CronJobSpec(schedule="invalid-cron-schedule"),
    )
    spoke = _v2_cronjob()
    before = _v2_cronjob()
    with pytest.raises(ConversionError):
        spoke.convert_from(hub)
    assert spoke == before


def test_converted_metadata_is_independent():
    src = _v2_cronjob()
    dst = v1.CronJob()
    src.convert_to(dst)
    dst.metadata.labels["extra"] = "x"
    assert "extra" not in src.metadata.labels


@pytest.mark.parametrize(
    "field_name",
    ["starting_deadline_seconds", "successful_jobs_history_limit", "failed_jobs_history_limit"],
)
def test_negative_limits_rejected(field_name):
    with pytest.raises(ValueError, match=field_name):
        CronJobSpec(**{field_name: -1})


def test_policy_given_as_string_is_coerced():
    spec = CronJobSpec(concurrency_policy="Allow")
    assert spec.concurrency_policy is ConcurrencyPolicy.ALLOW


def test_unknown_policy_rejected():
    with pytest.raises(ValueError):
        CronJobSpec(concurrency_policy="Sometimes")


def test_kind_and_version():
    assert CronJob.KIND == "CronJob"
    assert CronJob.API_VERSION == GROUP_VERSION
    assert GROUP_VERSION.endswith("/v2")
    assert GROUP_VERSION.split("/")[0] == v1.GROUP


def test_cronjob_list_iterates_items():
    jobs = [_v2_cronjob(), CronJob(metadata=ObjectMeta(name="second"))]
    listing = CronJobList(items=jobs)
    assert len(listing) == 2
    assert [job.metadata.name for job in listing] == ["test-cronjob", "second"]