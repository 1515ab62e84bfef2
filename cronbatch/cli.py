"""Command-line entry point that configures and runs the CronJob manager."""

from __future__ import annotations

import argparse
import logging
import os
import signal
import ssl
import threading
from dataclasses import dataclass
from typing import Mapping, Sequence

from cronbatch.manager import Manager

_log = logging.getLogger("setup")

LEADER_ELECTION_ID = "80807133.tutorial.kubebuilder.io"

_LOG_LEVELS = {"debug": logging.DEBUG, "info": logging.INFO, "error": logging.ERROR}


@dataclass
class Options:
    """Settings taken from the command line."""

    metrics_bind_address: str = "0"
    health_probe_bind_address: str = ":8081"
    leader_elect: bool = False
    metrics_secure: bool = True
    webhook_cert_path: str = ""
    webhook_cert_name: str = "tls.crt"
    webhook_cert_key: str = "tls.key"
    metrics_cert_path: str = ""
    metrics_cert_name: str = "tls.crt"
    metrics_cert_key: str = "tls.key"
    enable_http2: bool = False
    zap_devel: bool = True
    zap_log_level: str | None = None


def _parse_bool(text: str) -> bool:
    if text in ("1", "t", "T", "true", "TRUE", "True"):
        return True
    if text in ("0", "f", "F", "false", "FALSE", "False"):
        return False
    raise argparse.ArgumentTypeError(f"invalid boolean value {text!r}")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="cronbatch", allow_abbrev=False)
    defaults = Options()

    def text(flag: str, dest: str, help_text: str) -> None:
        parser.add_argument(f"-{flag}", f"--{flag}", dest=dest, default=getattr(defaults, dest), help=help_text)

    def flag(flag_name: str, dest: str, help_text: str) -> None:
        parser.add_argument(
            f"-{flag_name}",
            f"--{flag_name}",
            dest=dest,
            type=_parse_bool,
            nargs="?",
            const=True,
            default=getattr(defaults, dest),
            help=help_text,
        )

    text(
        "metrics-bind-address",
        "metrics_bind_address",
        "The address the metrics endpoint binds to. Use :8443 for HTTPS or :8080 for HTTP, "
        "or leave as 0 to disable the metrics service.",
    )
    text("health-probe-bind-address", "health_probe_bind_address", "The address the probe endpoint binds to.")
    flag(
        "leader-elect",
        "leader_elect",
        "Enable leader election for controller manager. "
        "Enabling this will ensure there is only one active controller manager.",
    )
    flag(
        "metrics-secure",
        "metrics_secure",
        "If set, the metrics endpoint is served securely via HTTPS. Use --metrics-secure=false to use HTTP instead.",
    )
    text("webhook-cert-path", "webhook_cert_path", "The directory that contains the webhook certificate.")
    text("webhook-cert-name", "webhook_cert_name", "The name of the webhook certificate file.")
    text("webhook-cert-key", "webhook_cert_key", "The name of the webhook key file.")
    text("metrics-cert-path", "metrics_cert_path", "The directory that contains the metrics server certificate.")
    text("metrics-cert-name", "metrics_cert_name", "The name of the metrics server certificate file.")
    text("metrics-cert-key", "metrics_cert_key", "The name of the metrics server key file.")
    flag("enable-http2", "enable_http2", "If set, HTTP/2 will be enabled for the metrics and webhook servers")
    flag("zap-devel", "zap_devel", "Development mode defaults: debug logging.")
    parser.add_argument(
        "-zap-log-level",
        "--zap-log-level",
        dest="zap_log_level",
        choices=sorted(_LOG_LEVELS),
        default=None,
        help="Log level: debug, info or error.",
    )
    return parser


def parse_args(argv: Sequence[str] | None = None) -> Options:
    """Parse command-line flags into Options; exits with status 2 on bad flags."""
    namespace = _build_parser().parse_args(argv)
    return Options(**vars(namespace))


def _configure_logging(options: Options) -> None:
    if options.zap_log_level is not None:
        level = _LOG_LEVELS[options.zap_log_level]
    else:
        level = logging.DEBUG if options.zap_devel else logging.INFO
    logging.basicConfig(level=level, format="%(asctime)s\t%(levelname)s\t%(name)s\t%(message)s")


def _load_cert_pair(directory: str, cert_name: str, key_name: str) -> tuple[str, str]:
    cert = os.path.join(directory, cert_name)
    key = os.path.join(directory, key_name)
    ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER).load_cert_chain(cert, key)
    return cert, key


def _ping() -> None:
    """A check that always passes."""


def build_manager(options: Options, environ: Mapping[str, str] | None = None) -> Manager:
    """Create a manager configured by ``options``; raises OSError for unusable certificates."""
    environ = os.environ if environ is None else environ

    alpn_protocols = None
    if not options.enable_http2:
        _log.info("disabling http/2")
        alpn_protocols = ["http/1.1"]

    webhook_cert = None
    if options.webhook_cert_path:
        _log.info(
            "Initializing webhook certificate watcher using provided certificates "
            "webhook-cert-path=%s webhook-cert-name=%s webhook-cert-key=%s",
            options.webhook_cert_path,
            options.webhook_cert_name,
            options.webhook_cert_key,
        )
        webhook_cert = _load_cert_pair(options.webhook_cert_path, options.webhook_cert_name, options.webhook_cert_key)

    metrics_cert = None
    if options.metrics_cert_path:
        _log.info(
            "Initializing metrics certificate watcher using provided certificates "
            "metrics-cert-path=%s metrics-cert-name=%s metrics-cert-key=%s",
            options.metrics_cert_path,
            options.metrics_cert_name,
            options.metrics_cert_key,
        )
        metrics_cert = _load_cert_pair(options.metrics_cert_path, options.metrics_cert_name, options.metrics_cert_key)

    manager = Manager(
        health_probe_bind_address=options.health_probe_bind_address,
        metrics_bind_address=options.metrics_bind_address,
        secure_metrics=options.metrics_secure,
        leader_election=options.leader_elect,
        leader_election_id=LEADER_ELECTION_ID,
        alpn_protocols=alpn_protocols,
        metrics_cert=metrics_cert,
        webhook_cert=webhook_cert,
    )

    if environ.get("ENABLE_WEBHOOKS") != "false":
        manager.enable_webhooks()

    manager.add_healthz_check("healthz", _ping)
    manager.add_readyz_check("readyz", _ping)
    return manager


def main(argv: Sequence[str] | None = None) -> int:
    """Run the manager until interrupted; return the process exit status."""
    options = parse_args(argv)
    _configure_logging(options)

    try:
        manager = build_manager(options)
    except (OSError, ValueError) as err:
        _log.error("unable to start manager: %s", err)
        return 1

    stop = threading.Event()
    previous: dict[int, object] = {}

    def _on_signal(signum: int, frame: object) -> None:
        stop.set()

    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            previous[signum] = signal.signal(signum, _on_signal)
        except ValueError:
            break

    _log.info("starting manager")
    try:
        manager.start(stop)
    except Exception as err:
        _log.error("problem running manager: %s", err)
        return 1
    finally:
        for signum, handler in previous.items():
            signal.signal(signum, handler)
    return 0