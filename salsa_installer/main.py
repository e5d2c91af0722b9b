from __future__ import annotations

import argparse
import logging
import os
from pathlib import Path
from typing import Dict, Optional

from .checkpoint import FileCheckpointStore
from .config import load_config
from .errors import EXIT_OK, InstallerError, PreconditionNotMet, ValidationFailed
from .executor import Executor, RunResult
from .lib.block import list_block_devices
from .lib.command import SubprocessRunner, SystemRunner
from .lib.manifests import load_package_manifest
from .logging_utils import configure_logging
from .plan import build_plan
from .prompter import AnswersPrompter, Prompter, TerminalPrompter
from .session import gather_input
from .validate import ValidationContext

logger = logging.getLogger(__name__)


def _answers(cfg_answers: Dict[str, str], args: argparse.Namespace) -> Dict[str, str]:
    answers = dict(cfg_answers)
    for key in ("hostname", "timezone", "username", "device"):
        value = getattr(args, key, None)
        if value is not None:
            answers[key] = value
    if args.swap is not None:
        answers["swap_size"] = str(args.swap)
    if args.password_file:
        # Passwords are never accepted on the command line (visible in ps).
        try:
            answers["password"] = Path(args.password_file).read_text(encoding="utf-8").rstrip("\r\n")
        except (OSError, UnicodeDecodeError) as e:
            raise ValidationFailed("password", f"cannot read {args.password_file}: {e}") from e
    return answers


def _report(result: RunResult) -> None:
    if result.ok:
        logger.info("Installation complete. Please reboot into the new system.")
        return
    logger.error(
        "Installation %s at %s: %s",
        result.status.value,
        result.failed_action,
        result.failure,
    )
    if result.compensated:
        logger.error("Rolled back: %s", ", ".join(result.compensated))
    for err in result.compensation_errors:
        logger.error("Rollback step failed, repair manually: %s\n%s", err, err.stderr)
    logger.error("Checkpoint: %s (rerun with --resume once repaired)", result.checkpoint_location)


def run(
    args: argparse.Namespace,
    *,
    runner: Optional[SystemRunner] = None,
    prompter: Optional[Prompter] = None,
) -> int:
    """Gather input, build the plan and execute (or print) it."""

    cfg = load_config(args.config)
    configure_logging(log_path=args.log or cfg.log_path)

    if not args.dry_run and os.geteuid() != 0:
        raise PreconditionNotMet("This installer must be run as root")

    manifest = load_package_manifest(args.packages or cfg.packages_path)
    timeout_s = args.timeout if args.timeout is not None else cfg.timeout_s
    runner = runner or SubprocessRunner(default_timeout_s=timeout_s)

    store = FileCheckpointStore(args.checkpoint or cfg.checkpoint_path)
    checkpoint = None
    if args.fresh and not args.dry_run:
        store.clear()
    elif not args.dry_run:
        checkpoint = store.load()
        if checkpoint is not None and not args.resume:
            raise PreconditionNotMet(
                f"A checkpoint from an earlier run exists at {store.location}; "
                "pass --resume to continue it or --fresh to start over"
            )

    context = ValidationContext(
        zoneinfo_root=cfg.zoneinfo_root,
        device_loader=lambda: list_block_devices(runner),
    )
    answers = _answers(cfg.answers, args)
    if prompter is None:
        if args.non_interactive:
            prompter = AnswersPrompter(answers, assume_yes=args.yes)
        else:
            prompter = TerminalPrompter(defaults=answers)

    session = gather_input(prompter, context, target_root=cfg.target_root)
    plan = build_plan(session, manifest)

    if args.dry_run:
        print(plan.render())
        return EXIT_OK

    executor = Executor(
        runner,
        store,
        session=session,
        retries=args.retries if args.retries is not None else cfg.retries,
        max_workers=args.workers or cfg.max_workers,
    )
    result = executor.resume(plan, checkpoint) if args.resume else executor.run(plan)
    _report(result)
    return result.exit_code


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="salsa-installer",
        description="Guided Arch Linux installer",
        allow_abbrev=False,
    )
    p.add_argument("--config", default=None, help="YAML file with answers/execution/paths")
    p.add_argument("--packages", default=None, help="Package manifest YAML (defaults to the bundled one)")
    p.add_argument("--checkpoint", default=None, help="Checkpoint file (json|yaml)")
    p.add_argument("--log", default=None, help="Path to installer log")

    answers = p.add_argument_group("answers")
    answers.add_argument("--hostname")
    answers.add_argument("--timezone")
    answers.add_argument("--username")
    answers.add_argument("--password-file", help="File holding the user/root password")
    answers.add_argument("--device", help="Target disk, e.g. sda or nvme0n1")
    answers.add_argument("--swap", type=int, default=None, help="Swap file size in GiB (0: none)")

    p.add_argument("--non-interactive", action="store_true", help="Never prompt; take answers from flags/config")
    p.add_argument("--yes", action="store_true", help="Confirm the summary in non-interactive mode")
    p.add_argument("--dry-run", action="store_true", help="Print the plan without executing it")
    mode = p.add_mutually_exclusive_group()
    mode.add_argument("--resume", action="store_true", help="Continue after the last checkpoint")
    mode.add_argument("--fresh", action="store_true", help="Discard an existing checkpoint")
    p.add_argument("--retries", type=int, default=None, help="Retries for idempotent actions (default 1)")
    p.add_argument("--timeout", type=float, default=None, help="Per-command timeout in seconds")
    p.add_argument("--workers", type=int, default=None, help="Worker bound for parallel groups (max 4)")
    return p


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        return run(args)
    except InstallerError as e:
        logger.error("%s", e)
        return e.exit_code
    except Exception:
        logger.exception("Installer failed")
        raise


if __name__ == "__main__":
    raise SystemExit(main())
