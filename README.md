# cronbatch

`cronbatch` runs batch jobs on a cron schedule. It defines a `CronJob`
resource in two versions. It checks new objects and fills in their defaults
before they are stored. A reconciler then creates `Job` objects when a
schedule comes due. Everything runs in one process, on an in-memory object
store.

## What is in the package

### `cronbatch.objects`

The shared object model:

- `ObjectMeta`, with `controller_of()`;
- `NamespacedName`, `OwnerReference` and `ObjectReference`;
- `Job`, with `JobSpec`, `JobStatus` and `JobCondition`. `Job.reference()`
  returns an `ObjectReference` to the job;
- `JobTemplateSpec`;
- `new_controller_ref(meta, api_version, kind)`.

### `cronbatch.v1_types`

The stored `CronJob`. Its `spec.schedule` is a five-field cron string.

- `CronJobSpec` rejects negative history limits and negative deadlines with
  `ValueError`.
- `ConcurrencyPolicy` takes the values `Allow`, `Forbid` and `Replace`.
- `CronJobList` holds several CronJobs. You can iterate over it and take its
  length.

### `cronbatch.v2_types`

A `CronJob` whose schedule is a `CronSchedule`. That class has optional
fields `minute`, `hour`, `day_of_month`, `month` and `day_of_week`.

- `CronSchedule.to_expression()` joins the fields into a cron string. Unset
  fields become `*`.
- `CronSchedule.from_expression()` splits a cron string back into fields. It
  raises `ConversionError` unless the string has exactly five space-separated
  fields.
- `CronJob.convert_to(v1_obj)` fills a v1 object from a v2 one.
  `CronJob.convert_from(v1_obj)` fills the v2 object from a v1 one.

### `cronbatch.schedule`

`parse_standard(spec)` reads a five-field expression (minute, hour,
day-of-month, month, day-of-week). It accepts:

- ranges, steps and lists;
- month and weekday names;
- the descriptors `@yearly`, `@annually`, `@monthly`, `@weekly`, `@daily`,
  `@midnight` and `@hourly`;
- `@every <duration>`, for example `@every 1h30m`.

Bad input raises `ScheduleError`. `Schedule.next(after)` returns the first
activation strictly after `after`. It returns `None` if there is none within
five years.

### `cronbatch.webhook_v1` and `cronbatch.webhook_v2`

Each module has a `CronJobCustomDefaulter` and a `CronJobCustomValidator`.

`new_defaulter()` returns a defaulter that fills only the fields left unset:

| Field | Default |
| --- | --- |
| concurrency policy | `Allow` |
| suspend | `False` |
| successful jobs history limit | `3` |
| failed jobs history limit | `1` |

The validator's `validate_create`, `validate_update` and `validate_delete`
methods return a list of warnings. Create and update also reject two cases:

- a name longer than 52 characters;
- a schedule that does not parse.

They reject by raising `cronbatch.validation.InvalidError`, which carries one
`FieldError` per problem. In v2, the schedule is rebuilt from its fields
before it is parsed. Passing the wrong object type raises `TypeError`.

`validate_cronjob(cronjob)` runs the same checks directly.

### `cronbatch.client`

`ObjectStore` is a thread-safe, in-memory store of v1 CronJobs and Jobs.

- It hands out independent copies of what it holds.
- On create, it assigns a uid, a creation timestamp and a resource version.
- A duplicate create raises `AlreadyExistsError`. A missing object raises
  `NotFoundError`.
- `list_jobs(namespace, owner_name)` filters Jobs by the CronJob that
  controls them. It does this through `job_owner_index(job)`.

### `cronbatch.controller`

`CronJobReconciler(store, clock)` reconciles one CronJob per call to
`reconcile(request)`. Each pass does the following, in order:

1. Sort the child Jobs into active, successful and failed.
2. Rebuild `status.active` and `status.last_schedule_time`, taking the time
   from the `batch.tutorial.kubebuilder.io/scheduled-at` annotation on each
   Job.
3. Delete the oldest finished Jobs beyond the history limits.
4. Stop here if the CronJob is suspended.
5. Work out the latest missed run and the next run, using
   `get_next_schedule`.
6. Create a Job for the missed run, unless the run is past its starting
   deadline, or the `Forbid` policy blocks it because a Job is still active.
   Under `Replace`, active Jobs are deleted first.

The pass returns a `Result`. Its `requeue_after` says how long to wait before
the next pass.

An unparseable schedule, or more than 100 missed starts, is logged and ends
the pass without a requeue. The helpers `is_job_finished`,
`scheduled_time_for_job` and `construct_job_for_cronjob` are public.

`RealClock` reads UTC time. You can pass any object with a `now()` method
instead, to step through time in tests.

### `cronbatch.manager`

`Manager` brings the store, the reconciler, admission and health checks
together.

- **Work queue.** `enqueue(key)` and `run_pending()` drive the queue. A
  reconcile that raises is retried after one second. A `Result` with
  `requeue_after` is queued again when that time is due.
- **Admission.** `enable_webhooks()` registers the defaulters and validators
  for both versions. `admit(version, operation, obj, old_obj)` applies them in
  process. `version` is `"v1"` or `"v2"`. `operation` is `CREATE`, `UPDATE`
  or `DELETE`.
- **Checks.** `add_healthz_check` and `add_readyz_check` register checks.
  `healthz()` and `readyz()` run them and report which passed.
- **Running.** `start(stop_event)` runs until the event is set or `stop()` is
  called. Given a health probe address, it serves `GET /healthz` and
  `GET /readyz` over plain HTTP. Each answers `200 ok`, or `500` with a
  per-check report.

## Installing

```
pip install .
```

To install with the test dependencies and run the tests:

```
pip install ".[test]"
pytest
```

## Running

The `cronbatch` command runs `cronbatch.cli.main`:

```
cronbatch --help
cronbatch --health-probe-bind-address :8081 --leader-elect
```

### Flags

Boolean flags accept `--flag`, `--flag=true` or `--flag=false`. Every flag
also works with a single dash.

| Flag | Default | Effect |
| --- | --- | --- |
| `--metrics-bind-address` | `0` | Recorded on the manager |
| `--health-probe-bind-address` | `:8081` | Address of the health probe server |
| `--leader-elect` | off | Recorded on the manager |
| `--metrics-secure` | on | Recorded on the manager |
| `--webhook-cert-path` | empty | Directory of the webhook certificate pair |
| `--webhook-cert-name` | `tls.crt` | Webhook certificate file |
| `--webhook-cert-key` | `tls.key` | Webhook key file |
| `--metrics-cert-path` | empty | Directory of the metrics certificate pair |
| `--metrics-cert-name` | `tls.crt` | Metrics certificate file |
| `--metrics-cert-key` | `tls.key` | Metrics key file |
| `--enable-http2` | off | Recorded on the manager |
| `--zap-devel` | on | Debug logging |
| `--zap-log-level` | none | `debug`, `info` or `error`; overrides `--zap-devel` |

When a certificate directory is given, the pair is loaded once to check that
it is usable. If it is not, the command exits with status 1.

Set `ENABLE_WEBHOOKS=false` in the environment to leave the admission
webhooks unregistered.

SIGINT or SIGTERM stops the manager. The command then exits with status 0.

## Using it from Python

```python
from cronbatch.client import ObjectStore
from cronbatch.controller import CronJobReconciler
from cronbatch.objects import NamespacedName, ObjectMeta
from cronbatch.v1_types import CronJob, CronJobSpec
from cronbatch.webhook_v1 import CronJobCustomValidator, new_defaulter

cronjob = CronJob(
    metadata=ObjectMeta(name="nightly", namespace="default"),
    spec=CronJobSpec(schedule="0 2 * * *"),
)
new_defaulter().default(cronjob)
CronJobCustomValidator().validate_create(cronjob)

store = ObjectStore()
store.create_cronjob(cronjob)

reconciler = CronJobReconciler(store)
result = reconciler.reconcile(NamespacedName(namespace="default", name="nightly"))
print(result.requeue_after)
```

## What it does not do

- **No external API.** Objects live only in the in-memory `ObjectStore`.
  Nothing is persisted, and the package does not connect to any cluster.
  Jobs are records in the store; nothing runs their pod templates.
- **No metrics endpoint.** The metrics address, the secure-metrics setting
  and the metrics certificate are recorded but not served.
- **No network admission.** The webhooks are called in process through
  `Manager.admit`. No HTTPS webhook server is started, and the webhook
  certificate is only checked.
- **No leader election.** The leader election setting and the HTTP/2 setting
  are recorded but have no effect.