from datetime import datetime, timezone

import pytest

from cronbatch import v1_types as v1
from cronbatch.client import (
    AlreadyExistsError,
    NotFoundError,
    ObjectStore,
    job_owner_index,
)
from cronbatch.objects import (
    Job,
    NamespacedName,
    ObjectMeta,
    OwnerReference,
    new_controller_ref,
)

NOW = datetime(2025, 1, 1, 12, 0, 0, 500, tzinfo=timezone.utc)


@pytest.fixture
def store():
    return ObjectStore(clock=lambda: NOW)


def make_cronjob(name="test-cronjob", namespace="default"):
    return v1.CronJob(
        metadata=ObjectMeta(name=name, namespace=namespace),
        spec=v1.CronJobSpec(schedule="1 * * * *"),
    )


def make_job(name, owner=None, namespace="default"):
    meta = ObjectMeta(name=name, namespace=namespace)
    if owner is not None:
        meta.owner_references.append(owner)
    return Job(metadata=meta)


def test_create_and_get_cronjob(store):
    cronjob = make_cronjob()
    store.create_cronjob(cronjob)
    fetched = store.get_cronjob(NamespacedName("default", "test-cronjob"))
    assert fetched.spec.schedule == "1 * * * *"
    assert fetched.metadata.uid == cronjob.metadata.uid
    assert fetched.metadata.creation_timestamp == NOW.replace(microsecond=0)


def test_returned_objects_are_copies(store):
    store.create_cronjob(make_cronjob())
    key = NamespacedName("default", "test-cronjob")
    fetched = store.get_cronjob(key)
    fetched.spec.schedule = "changed"
    assert store.get_cronjob(key).spec.schedule == "1 * * * *"


def test_create_duplicate_cronjob_fails(store):
    store.create_cronjob(make_cronjob())
    with pytest.raises(AlreadyExistsError):
        store.create_cronjob(make_cronjob())


def test_create_requires_name(store):
    with pytest.raises(ValueError, match="name is required"):
        store.create_cronjob(make_cronjob(name=""))


def test_get_missing_cronjob(store):
    with pytest.raises(NotFoundError) as info:
        store.get_cronjob(NamespacedName("default", "missing"))
    assert info.value.key == NamespacedName("default", "missing")


def test_update_status_ignores_spec(store):
    cronjob = make_cronjob()
    store.create_cronjob(cronjob)
    cronjob.spec.schedule = "*/5 * * * *"
    cronjob.status.last_schedule_time = NOW
    store.update_cronjob_status(cronjob)
    fetched = store.get_cronjob(cronjob.metadata.key)
    assert fetched.spec.schedule == "1 * * * *"
    assert fetched.status.last_schedule_time == NOW
    assert fetched.metadata.resource_version == cronjob.metadata.resource_version


def test_update_status_of_missing_cronjob(store):
    with pytest.raises(NotFoundError):
        store.update_cronjob_status(make_cronjob())


def test_list_cronjobs_sorted(store):
    store.create_cronjob(make_cronjob(name="b"))
    store.create_cronjob(make_cronjob(name="a"))
    names = [cronjob.metadata.name for cronjob in store.list_cronjobs()]
    assert names == ["a", "b"]


def test_job_lifecycle(store):
    job = make_job("test-job")
    store.create_job(job)
    job.status.active = 2
    store.update_job_status(job)
    assert store.get_job(job.metadata.key).status.active == 2
    store.delete_job(job)
    with pytest.raises(NotFoundError):
        store.get_job(job.metadata.key)
    with pytest.raises(NotFoundError):
        store.delete_job(job)


def test_list_jobs_by_owner(store):
    cronjob = make_cronjob()
    store.create_cronjob(cronjob)
    ref = new_controller_ref(cronjob.metadata, v1.GROUP_VERSION, "CronJob")
    store.create_job(make_job("owned", ref))
    store.create_job(make_job("orphan"))
    store.create_job(make_job("elsewhere", ref, namespace="other"))
    owned = store.list_jobs("default", "test-cronjob")
    assert [job.metadata.name for job in owned] == ["owned"]
    everything = store.list_jobs("default")
    assert [job.metadata.name for job in everything] == ["orphan", "owned"]


def test_job_owner_index_for_cronjob_controller():
    ref = OwnerReference(v1.GROUP_VERSION, "CronJob", "nightly", controller=True)
    assert job_owner_index(make_job("j", ref)) == ["nightly"]


@pytest.mark.parametrize(
    "ref",
    [
        None,
        OwnerReference(v1.GROUP_VERSION, "CronJob", "nightly", controller=False),
        OwnerReference("batch/v1", "CronJob", "nightly", controller=True),
        OwnerReference(v1.GROUP_VERSION, "Deployment", "nightly", controller=True),
    ],
)
def test_job_owner_index_ignores_other_owners(ref):
    assert job_owner_index(make_job("j", ref)) == []