"""Runs the CronJob reconciler, admission webhooks and health probes together."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Callable

from cronbatch import v1_types as v1
from cronbatch import v2_types as v2
from cronbatch import webhook_v1, webhook_v2
from cronbatch.client import ObjectStore
from cronbatch.controller import Clock, CronJobReconciler, Result
from cronbatch.objects import NamespacedName

_log = logging.getLogger(__name__)

Check = Callable[[], None]

_RETRY_SECONDS = 1.0


@dataclass(frozen=True)
class _Webhook:
    kind: type
    defaulter: Any
    validator: Any


def _split_address(address: str) -> tuple[str, int] | None:
    """Turn ``host:port`` into a socket address; ``""`` and ``"0"`` disable serving."""
    if address in ("", "0"):
        return None
    host, sep, port = address.rpartition(":")
    if not sep or not port.isdigit():
        raise ValueError(f"invalid bind address {address!r}")
    return host.strip("[]"), int(port)


class Manager:
    """Owns the object store, the reconciler's work queue, the webhooks and the probes."""

    def __init__(
        self,
        store: ObjectStore | None = None,
        clock: Clock | None = None,
        *,
        health_probe_bind_address: str = "",
        metrics_bind_address: str = "0",
        secure_metrics: bool = True,
        leader_election: bool = False,
        leader_election_id: str = "",
        alpn_protocols: list[str] | None = None,
        metrics_cert: tuple[str, str] | None = None,
        webhook_cert: tuple[str, str] | None = None,
        resync_period: float = 600.0,
        poll_interval: float = 1.0,
    ) -> None:
        self.store = store if store is not None else ObjectStore()
        self.reconciler = CronJobReconciler(self.store, clock)
        self.health_probe_bind_address = health_probe_bind_address
        self.metrics_bind_address = metrics_bind_address
        self.secure_metrics = secure_metrics
        self.leader_election = leader_election
        self.leader_election_id = leader_election_id
        self.alpn_protocols = list(alpn_protocols) if alpn_protocols else None
        self.metrics_cert = metrics_cert
        self.webhook_cert = webhook_cert
        self.resync_period = resync_period
        self.poll_interval = poll_interval
        self.probe_address: tuple[str, int] | None = None
        self.started = threading.Event()

        self._healthz: dict[str, Check] = {}
        self._readyz: dict[str, Check] = {}
        self._webhooks: dict[str, _Webhook] = {}
        self._queue: dict[NamespacedName, None] = {}
        self._requeue: dict[NamespacedName, datetime] = {}
        self._lock = threading.RLock()
        self._stopping = threading.Event()
        self._running = False

    @property
    def clock(self) -> Clock:
        return self.reconciler.clock

    # Health checks

    @staticmethod
    def _add_check(checks: dict[str, Check], name: str, check: Check) -> None:
        if name in checks:
            raise ValueError(f"check {name!r} already exists")
        checks[name] = check

    def add_healthz_check(self, name: str, check: Check) -> None:
        """Register a liveness check; ``check`` raises to report failure."""
        with self._lock:
            self._add_check(self._healthz, name, check)

    def add_readyz_check(self, name: str, check: Check) -> None:
        """Register a readiness check; ``check`` raises to report failure."""
        with self._lock:
            self._add_check(self._readyz, name, check)

    @staticmethod
    def _run_checks(checks: dict[str, Check]) -> dict[str, str | None]:
        outcome: dict[str, str | None] = {}
        for name, check in sorted(checks.items()):
            try:
                check()
            except Exception as err:  # a failing check reports, it does not crash the probe
                outcome[name] = str(err) or type(err).__name__
            else:
                outcome[name] = None
        return outcome

    def healthz(self) -> dict[str, bool]:
        """Run the liveness checks and tell which of them passed."""
        with self._lock:
            checks = dict(self._healthz)
        return {name: error is None for name, error in self._run_checks(checks).items()}

    def readyz(self) -> dict[str, bool]:
        """Run the readiness checks and tell which of them passed."""
        with self._lock:
            checks = dict(self._readyz)
        return {name: error is None for name, error in self._run_checks(checks).items()}

    # Admission

    def enable_webhooks(self) -> None:
        """Register the defaulting and validating webhooks of both CronJob versions."""
        with self._lock:
            self._webhooks["v1"] = _Webhook(
                v1.CronJob, webhook_v1.new_defaulter(), webhook_v1.CronJobCustomValidator()
            )
            self._webhooks["v2"] = _Webhook(
                v2.CronJob, webhook_v2.new_defaulter(), webhook_v2.CronJobCustomValidator()
            )

    def admit(self, version: str, operation: str, obj: object, old_obj: object = None) -> list[str]:
        """Default and validate ``obj`` as the API server would; return warnings.

        Raises LookupError when no webhook serves ``version`` and the validator's
        InvalidError when the object is rejected.
        """
        with self._lock:
            hook = self._webhooks.get(version)
        if hook is None:
            raise LookupError(f"no webhook registered for CronJob {version}")
        op = operation.upper()
        if op == "CREATE":
            hook.defaulter.default(obj)
            return hook.validator.validate_create(obj)
        if op == "UPDATE":
            if old_obj is None:
                raise ValueError("an update needs the old object")
            hook.defaulter.default(obj)
            return hook.validator.validate_update(old_obj, obj)
        if op == "DELETE":
            return hook.validator.validate_delete(obj)
        raise ValueError(f"unsupported operation {operation!r}")

    # Work queue

    def enqueue(self, key: NamespacedName) -> None:
        """Ask for the CronJob ``key`` to be reconciled on the next pass."""
        with self._lock:
            self._queue[key] = None

    def _promote_due(self) -> None:
        now = self.clock.now()
        for key, due in list(self._requeue.items()):
            if due <= now:
                del self._requeue[key]
                self._queue[key] = None

    def run_pending(self) -> dict[NamespacedName, Result]:
        """Reconcile every queued or due key once; return the results of those that succeeded."""
        results: dict[NamespacedName, Result] = {}
        with self._lock:
            self._promote_due()
            while self._queue:
                key = next(iter(self._queue))
                del self._queue[key]
                try:
                    result = self.reconciler.reconcile(key)
                except Exception:
                    _log.exception("reconciler error for %s", key)
                    self._requeue[key] = self.clock.now() + _retry_delay()
                    continue
                results[key] = result
                if result.requeue_after is not None:
                    self._requeue[key] = self.clock.now() + result.requeue_after
                else:
                    self._requeue.pop(key, None)
        return results

    def _enqueue_all(self) -> None:
        for cronjob in self.store.list_cronjobs():
            self.enqueue(cronjob.metadata.key)

    # Lifecycle

    def stop(self) -> None:
        """Ask a running ``start`` to return."""
        self._stopping.set()

    def _should_stop(self, stop_event: threading.Event | None) -> bool:
        return self._stopping.is_set() or (stop_event is not None and stop_event.is_set())

    def _serve_probes(self) -> ThreadingHTTPServer | None:
        address = _split_address(self.health_probe_bind_address)
        if address is None:
            return None
        server = ThreadingHTTPServer(address, _probe_handler(self))
        self.probe_address = server.server_address[:2]
        threading.Thread(target=server.serve_forever, name="health-probes", daemon=True).start()
        _log.info("serving health probes on %s:%d", *self.probe_address)
        return server

    def start(self, stop_event: threading.Event | None = None) -> None:
        """Run until ``stop_event`` is set or ``stop`` is called."""
        with self._lock:
            if self._running:
                raise RuntimeError("manager already started")
            self._running = True
            self._stopping.clear()
        server = None
        try:
            server = self._serve_probes()
            self._enqueue_all()
            last_resync = time.monotonic()
            self.run_pending()
            self.started.set()
            while not self._should_stop(stop_event):
                if time.monotonic() - last_resync >= self.resync_period:
                    self._enqueue_all()
                    last_resync = time.monotonic()
                self.run_pending()
                self._stopping.wait(self.poll_interval)
        finally:
            if server is not None:
                server.shutdown()
                server.server_close()
            with self._lock:
                self._running = False
            self.started.clear()


def _retry_delay():
    from datetime import timedelta

    return timedelta(seconds=_RETRY_SECONDS)


def _probe_handler(manager: Manager) -> type[BaseHTTPRequestHandler]:
    class ProbeHandler(BaseHTTPRequestHandler):
        def do_GET(self) -> None:  # noqa: N802
            path = self.path.split("?", 1)[0].rstrip("/")
            if path == "/healthz":
                checks = manager._healthz
            elif path == "/readyz":
                checks = manager._readyz
            else:
                self._reply(404, "not found\n")
                return
            with manager._lock:
                snapshot = dict(checks)
            outcome = Manager._run_checks(snapshot)
            failures = {name: error for name, error in outcome.items() if error is not None}
            if not failures:
                self._reply(200, "ok")
                return
            lines = [
                f"[-]{name} failed: {error}" if name in failures else f"[+]{name} ok"
                for name, error in outcome.items()
            ]
            self._reply(500, "\n".join(lines) + f"\n{path[1:]} check failed\n")

        def _reply(self, status: int, body: str) -> None:
            data = body.encode()
            self.send_response(status)
            self.send_header("Content-Type", "text/plain; charset=utf-8")
            self.send_header("Content-Length", str(len(data)))
            self.end_headers()
            self.wfile.write(data)

        def log_message(self, format: str, *args: object) -> None:
            _log.debug("probe: " + format, *args)

    return ProbeHandler