"""Command line interface for installing and removing the Quokka stack."""

from __future__ import annotations

import argparse
import contextlib
import logging
import signal
import sys
import threading
import uuid
from pathlib import Path
from typing import Any, Callable, Iterator

from cli import config, output
from core.deploy import DeploymentContext, InstallOutcome, UninstallOutcome, install, uninstall
from core.errors import OperationCancelledError, QuokkaError
from core.settings import Settings

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

ContextFactory = Callable[[Settings], DeploymentContext]

logger = logging.getLogger("quokka.cli")


class CLIError(Exception):
    def __init__(self, message: str, exit_code: int = 2) -> None:
        super().__init__(message)
        self.exit_code = exit_code


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="quokka", description="Install or remove the Quokka stack")
    parser.add_argument("--config", type=Path, default=Path("quokka.yml"), help="Path to CLI configuration file")
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    parser.add_argument("--format", choices=["json", "md", "table"], default="json", help="Result output format")
    parser.add_argument("--region", help="Region override")

    subparsers = parser.add_subparsers(dest="command", required=True)

    install_cmd = subparsers.add_parser("install", help="Provision the stack (no-op when it already exists)")
    install_cmd.add_argument("--email", required=True, help="Notification email passed to the stack")
    install_cmd.add_argument("--uid", help="Unique suffix for staging resources (random when omitted)")
    install_cmd.add_argument("--policy-template", type=Path, help="Access policy template to synthesize")
    install_cmd.add_argument("--result-file", type=Path, help="Where to write the installation record")

    subparsers.add_parser("uninstall", help="Delete the stack (no-op when it does not exist)")

    return parser


def app(argv: list[str] | None = None, context_factory: ContextFactory | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format=LOG_FORMAT)

    factory = context_factory or DeploymentContext.from_session
    try:
        settings = _load(args)
        context = factory(settings)
        if context.on_status is None:
            context.on_status = _report_status
        with _cancel_on_interrupt(context.cancel_event):
            if args.command == "install":
                outcome = install(context, args.email, args.uid or uuid.uuid4().hex[:6])
                output.emit(_install_payload(outcome), args.format)
            elif args.command == "uninstall":
                outcome = uninstall(context)
                output.emit(_uninstall_payload(outcome), args.format)
    except CLIError as exc:
        print(exc, file=sys.stderr)
        return exc.exit_code
    except (KeyboardInterrupt, OperationCancelledError):
        print("Cancelled", file=sys.stderr)
        return 130
    except QuokkaError as exc:
        logger.error("%s: %s", exc.kind, exc)
        output.emit(exc.describe(), "json", stream=sys.stderr)
        return 1
    except Exception as exc:  # pragma: no cover - unexpected errors bubble up
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    return 0


def _report_status(status: str) -> None:
    logger.info("Stack status: %s", status)


@contextlib.contextmanager
def _cancel_on_interrupt(cancel_event: threading.Event) -> Iterator[None]:
    """Route SIGINT to the cancel event so in-flight polls stop at their next check."""
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    def handler(signum: int, frame: Any) -> None:
        cancel_event.set()

    previous = signal.signal(signal.SIGINT, handler)
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous)


def _load(args: argparse.Namespace) -> Settings:
    try:
        settings = config.load_settings(args.config)
    except ValueError as exc:
        raise CLIError(f"Invalid configuration in {args.config}: {exc}") from exc
    overrides: dict[str, Any] = {"region": args.region}
    if args.command == "install":
        overrides["policy_template"] = args.policy_template
        overrides["result_file"] = args.result_file
    return settings.merge_cli(**overrides)


def _install_payload(outcome: InstallOutcome) -> dict[str, Any]:
    descriptor = outcome.descriptor
    return {
        "created": outcome.created,
        "name": descriptor.name,
        "id": descriptor.stack_id,
        "status": descriptor.status,
        "outputs": descriptor.outputs,
        "record": str(outcome.record_path) if outcome.record_path else None,
    }


def _uninstall_payload(outcome: UninstallOutcome) -> dict[str, Any]:
    descriptor = outcome.descriptor
    return {
        "deleted": outcome.deleted,
        "name": descriptor.name if descriptor else None,
        "id": descriptor.stack_id if descriptor else None,
        "status": descriptor.status if descriptor else None,
    }


def main() -> None:
    raise SystemExit(app())


if __name__ == "__main__":
    main()
