"""
terrarun - command-line entry point.

Exit codes:
    0  operation succeeded
    1  Terraform ran and failed
    2  configuration error (nothing was launched)
"""

import argparse
import json
import logging
import sys
from typing import Dict, List, Optional

from . import __version__
from .config import RunnerConfig, Settings
from .core import OperationResult, TerraformRunner
from .errors import ConfigurationError
from .utils import setup_logging

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2


def _parse_pairs(pairs: Optional[List[str]], flag: str) -> Dict[str, str]:
    """Turn ["k=v", ...] into a dict."""
    result = {}
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise ConfigurationError(f"{flag} expects key=value, got {pair!r}")
        result[key] = value
    return result


def _add_run_options(parser: argparse.ArgumentParser):
    parser.add_argument("--timeout", type=float, help="Seconds allowed per attempt")
    parser.add_argument("--retries", type=int, help="Retries after the first attempt")


def _add_input_options(parser: argparse.ArgumentParser):
    parser.add_argument("--var", action="append", metavar="NAME=VALUE", help="Set a variable")
    parser.add_argument("--var-file", help="Load variables from a .tfvars file")
    parser.add_argument("--target", action="append", metavar="ADDRESS", help="Target a resource")
    parser.add_argument(
        "--sensitive", action="append", metavar="NAME",
        help="Redact the value of this variable from output",
    )


def _add_mutation_options(parser: argparse.ArgumentParser):
    parser.add_argument("--auto-approve", action="store_true")
    parser.add_argument("--no-lock", action="store_true", help="Pass -lock=false")
    parser.add_argument("--lock-timeout")
    parser.add_argument("--parallelism", type=int)
    parser.add_argument("--no-refresh", action="store_true", help="Pass -refresh=false")
    parser.add_argument(
        "--no-backup", dest="backup", action="store_false", default=None,
        help="Do not back up the state file first",
    )
    parser.add_argument(
        "--rollback", action="store_true", default=None,
        help="Restore the state backup if the operation fails",
    )
    parser.add_argument("--backup-path", help="Explicit location for the state backup")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="terrarun",
        description="Run Terraform with retries, timeouts and state protection.",
    )
    parser.add_argument("--version", action="version", version=f"terrarun {__version__}")
    parser.add_argument("--binary", help="Terraform executable (overrides settings)")
    parser.add_argument("--config-dir", help="Directory containing settings.json")
    parser.add_argument("--log-level", default=None, help="DEBUG, INFO, WARNING, ERROR")
    parser.add_argument("--log-file", action="store_true", help="Also log to a file")
    parser.add_argument("--json", action="store_true", help="Print results as JSON")
    parser.add_argument("--quiet", action="store_true", help="Do not stream Terraform output")

    sub = parser.add_subparsers(dest="command", required=True)

    init = sub.add_parser("init", help="Initialize a working directory")
    init.add_argument("path")
    init.add_argument("--no-backend", dest="backend", action="store_false")
    init.add_argument("--backend-config", action="append", metavar="KEY=VALUE")
    init.add_argument("--upgrade", action="store_true")
    init.add_argument("--reconfigure", action="store_true")
    init.add_argument("--migrate-state", action="store_true")
    init.add_argument("--lock-timeout")
    _add_run_options(init)

    validate = sub.add_parser("validate", help="Validate the configuration")
    validate.add_argument("path")
    _add_run_options(validate)

    plan = sub.add_parser("plan", help="Create an execution plan")
    plan.add_argument("path")
    plan.add_argument("--out", help="Save the plan to this file")
    plan.add_argument("--destroy", action="store_true")
    _add_input_options(plan)
    _add_run_options(plan)

    apply = sub.add_parser("apply", help="Apply changes")
    apply.add_argument("path")
    apply.add_argument("--plan-file", help="Apply a saved plan")
    _add_input_options(apply)
    _add_mutation_options(apply)
    _add_run_options(apply)

    destroy = sub.add_parser("destroy", help="Destroy managed infrastructure")
    destroy.add_argument("path")
    _add_input_options(destroy)
    _add_mutation_options(destroy)
    _add_run_options(destroy)

    show = sub.add_parser("show-plan", help="Summarize a saved plan file")
    show.add_argument("path")
    show.add_argument("plan_file")

    state = sub.add_parser("state", help="Inspect state")
    state_sub = state.add_subparsers(dest="state_command", required=True)
    state_list = state_sub.add_parser("list")
    state_list.add_argument("path")
    state_show = state_sub.add_parser("show")
    state_show.add_argument("path")
    state_show.add_argument("address")

    output = sub.add_parser("output", help="Show outputs")
    output.add_argument("path")

    workspace = sub.add_parser("workspace", help="Manage workspaces")
    ws_sub = workspace.add_subparsers(dest="workspace_command", required=True)
    ws_list = ws_sub.add_parser("list")
    ws_list.add_argument("path")
    for name in ("select", "new", "delete"):
        ws_cmd = ws_sub.add_parser(name)
        ws_cmd.add_argument("path")
        ws_cmd.add_argument("name")
        if name == "delete":
            ws_cmd.add_argument("--force", action="store_true")

    return parser


def _load_config(args: argparse.Namespace, settings: Settings) -> RunnerConfig:
    if args.binary:
        settings.set("terraform_binary", args.binary)
    return RunnerConfig.from_settings(settings)


def _emit(value, as_json: bool):
    if as_json:
        print(json.dumps(value, indent=2, default=str))
    elif isinstance(value, str):
        print(value)
    else:
        for item in value:
            print(item)


def _report(result: OperationResult, args: argparse.Namespace, tail_lines: int) -> int:
    if args.json:
        _emit(result.to_dict(), True)
    else:
        if result.plan_analysis is not None and result.plan_analysis.summary:
            print(result.plan_analysis.summary)
        if result.backup is not None:
            print(f"State backup: {result.backup.backup_path}")
    if not result.success:
        print(result.failure_message(tail_lines), file=sys.stderr)
        return EXIT_FAILED
    return EXIT_OK


def _mutation_kwargs(args: argparse.Namespace) -> dict:
    return dict(
        variables=_parse_pairs(args.var, "--var"),
        var_file=args.var_file,
        targets=args.target,
        auto_approve=args.auto_approve,
        lock=not args.no_lock,
        lock_timeout=args.lock_timeout,
        parallelism=args.parallelism,
        refresh=not args.no_refresh,
        backup=args.backup,
        rollback=args.rollback,
        backup_path=args.backup_path,
        sensitive=args.sensitive,
        timeout=args.timeout,
        max_retries=args.retries,
    )


def run_command(args: argparse.Namespace, runner: TerraformRunner, callback) -> int:
    """Dispatch a parsed command line to the runner."""
    tail = runner.config.stderr_tail_lines

    if args.command == "init":
        result = runner.init(
            args.path,
            backend=args.backend,
            backend_config=_parse_pairs(args.backend_config, "--backend-config"),
            upgrade=args.upgrade,
            reconfigure=args.reconfigure,
            migrate_state=args.migrate_state,
            lock_timeout=args.lock_timeout,
            timeout=args.timeout,
            max_retries=args.retries,
            output_callback=callback,
        )
        return _report(result, args, tail)

    if args.command == "validate":
        result = runner.validate(
            args.path, timeout=args.timeout, max_retries=args.retries, output_callback=callback
        )
        return _report(result, args, tail)

    if args.command == "plan":
        result = runner.plan(
            args.path,
            variables=_parse_pairs(args.var, "--var"),
            var_file=args.var_file,
            targets=args.target,
            destroy=args.destroy,
            out_file=args.out,
            sensitive=args.sensitive,
            timeout=args.timeout,
            max_retries=args.retries,
            output_callback=callback,
        )
        return _report(result, args, tail)

    if args.command == "apply":
        kwargs = _mutation_kwargs(args)
        if args.plan_file:
            for key in ("variables", "var_file", "targets"):
                kwargs.pop(key)
        result = runner.apply(
            args.path, plan_file=args.plan_file, output_callback=callback, **kwargs
        )
        return _report(result, args, tail)

    if args.command == "destroy":
        result = runner.destroy(args.path, output_callback=callback, **_mutation_kwargs(args))
        return _report(result, args, tail)

    if args.command == "show-plan":
        return _report(runner.show_plan(args.path, args.plan_file), args, tail)

    if args.command == "state":
        if args.state_command == "list":
            resources = runner.state_list(args.path)
            if args.json:
                _emit([vars(resource) for resource in resources], True)
            else:
                _emit([resource.address for resource in resources], False)
        else:
            _emit(runner.state_show(args.path, args.address), args.json)
        return EXIT_OK

    if args.command == "output":
        _emit(runner.output(args.path, as_json=args.json), args.json)
        return EXIT_OK

    if args.command == "workspace":
        manager = runner.workspace_manager(args.path)
        if args.workspace_command == "list":
            workspaces = manager.list_workspaces()
            if args.json:
                _emit([vars(ws) for ws in workspaces], True)
            else:
                _emit([("* " if ws.is_current else "  ") + ws.name for ws in workspaces], False)
            return EXIT_OK
        if args.workspace_command == "select":
            ok = manager.switch_workspace(args.name)
        elif args.workspace_command == "new":
            ok = manager.create_workspace(args.name)
        else:
            ok = manager.delete_workspace(args.name, force=args.force)
        return EXIT_OK if ok else EXIT_FAILED

    raise ConfigurationError(f"Unknown command: {args.command}")


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for terrarun."""
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = Settings(config_dir=args.config_dir)
    setup_logging(
        log_level=args.log_level or settings.get("logging.level", "INFO"),
        log_file=args.log_file or bool(settings.get("logging.file", False)),
    )

    def stream(line: str):
        print(line, file=sys.stderr if args.json else sys.stdout, flush=True)

    callback = None if args.quiet else stream

    try:
        runner = TerraformRunner(_load_config(args, settings))
        return run_command(args, runner, callback)
    except ConfigurationError as e:
        logger.error(str(e))
        print(f"terrarun: {e}", file=sys.stderr)
        return EXIT_CONFIG


if __name__ == "__main__":
    sys.exit(main())
