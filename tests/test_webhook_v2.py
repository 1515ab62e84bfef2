import pytest

from cronbatch import v1_types as v1
from cronbatch import v2_types as v2
from cronbatch.objects import ObjectMeta
from cronbatch.validation import InvalidError
from cronbatch.webhook_v2 import (
    CronJobCustomDefaulter,
    CronJobCustomValidator,
    new_defaulter,
    validate_cronjob,
)

LONG_NAME = "this-name-is-way-too-long-and-should-fail-validation-because-it-is-way-too-long"


def make_cronjob(name="valid-cronjob-name", **schedule):
    return v2.CronJob(
        metadata=ObjectMeta(name=name),
        spec=v2.CronJobSpec(schedule=v2.CronSchedule(**schedule)),
    )


def test_default_fills_unset_fields():
    obj = make_cronjob(minute="*/5")
    new_defaulter().default(obj)
    assert obj.spec.concurrency_policy == v2.ConcurrencyPolicy.ALLOW
    assert obj.spec.suspend is False
    assert obj.spec.successful_jobs_history_limit == 3
    assert obj.spec.failed_jobs_history_limit == 1


def test_default_keeps_set_fields():
    obj = make_cronjob(minute="*/5")
    obj.spec.concurrency_policy = v2.ConcurrencyPolicy.FORBID
    obj.spec.suspend = True
    obj.spec.successful_jobs_history_limit = 5
    obj.spec.failed_jobs_history_limit = 2
    CronJobCustomDefaulter().default(obj)
    assert obj.spec.concurrency_policy == v2.ConcurrencyPolicy.FORBID
    assert obj.spec.suspend is True
    assert obj.spec.successful_jobs_history_limit == 5
    assert obj.spec.failed_jobs_history_limit == 2


def test_default_rejects_other_types():
    with pytest.raises(TypeError, match="expected an CronJob object"):
        new_defaulter().default(v1.CronJob())


def test_validate_create_accepts_valid_schedule():
    obj = make_cronjob(minute="*/5")
    assert CronJobCustomValidator().validate_create(obj) == []


def test_validate_create_accepts_all_wildcards():
    assert CronJobCustomValidator().validate_create(make_cronjob()) == []


def test_validate_create_rejects_long_name():
    with pytest.raises(InvalidError, match="must be no more than 52 characters"):
        CronJobCustomValidator().validate_create(make_cronjob(name=LONG_NAME))


def test_validate_create_rejects_bad_field():
    obj = make_cronjob(minute="abc")
    with pytest.raises(InvalidError) as info:
        CronJobCustomValidator().validate_create(obj)
    assert "invalid cron schedule format: Failed to parse int from abc" in str(info.value)
    assert [error.field for error in info.value.errors] == ["spec.schedule"]
    assert info.value.errors[0].value == "abc * * * *"


def test_validate_update_reports_both_errors():
    old = make_cronjob(minute="*/5")
    new = make_cronjob(name=LONG_NAME, hour="99")
    with pytest.raises(InvalidError) as info:
        CronJobCustomValidator().validate_update(old, new)
    assert [error.field for error in info.value.errors] == ["metadata.name", "spec.schedule"]


def test_validate_update_accepts_valid_update():
    old = make_cronjob(minute="*/5")
    new = make_cronjob(name="valid-cronjob-name-updated", minute="0", hour="0")
    assert CronJobCustomValidator().validate_update(old, new) == []


def test_validate_update_rejects_wrong_type():
    with pytest.raises(TypeError, match="for the newObj"):
        CronJobCustomValidator().validate_update(make_cronjob(), v1.CronJob())


def test_validate_delete_accepts_anything_valid_typed():
    assert CronJobCustomValidator().validate_delete(make_cronjob(name=LONG_NAME)) == []


def test_validate_delete_rejects_wrong_type():
    with pytest.raises(TypeError):
        CronJobCustomValidator().validate_delete(object())


def test_validate_cronjob_error_names_object():
    with pytest.raises(InvalidError) as info:
        validate_cronjob(make_cronjob(name="bad", month="13"))
    assert info.value.name == "bad"
    assert info.value.kind == "CronJob"
    assert info.value.group == v2.GROUP