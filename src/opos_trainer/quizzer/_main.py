"""Command-line entry points for ``opos quiz``."""

from __future__ import annotations

import argparse
import random
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional, Sequence

from rich import box
from rich.console import Console
from rich.table import Table
from rich.text import Text

from ..core import workspace as workspace_mod
from ..core.logging import configure_logger
from . import config as config_mod
from .engine import MODES
from .errors import InvariantError, QuizError, ValidationError
from .models import DEFAULT_TOPIC, topic_label
from .service import TrainerService, build_service, mask_key
from .session import render_summary, run_quiz_session

InputProvider = Callable[[], str]

_YES = {"y", "yes", "s", "si", "sí"}


@dataclass
class _Context:
    console: Console
    input_provider: InputProvider
    client: Any = None
    log_path: Optional[Path] = None
    config_path: Optional[Path] = None


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="opos quiz",
        description="Practice multiple-choice exam questions in the terminal.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="Path to quiz.toml (defaults to OPOS_TRAINER_CONFIG or the workspace).",
    )
    parser.add_argument(
        "--workspace",
        type=Path,
        help="Override the workspace root (defaults to OPOS_TRAINER_DATA_HOME).",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Also log to stderr at DEBUG level.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sp_config = sub.add_parser("config", help="Manage quiz.toml")
    config_sub = sp_config.add_subparsers(dest="action", required=True)
    sp_c_init = config_sub.add_parser(
        "init", help="Write the default configuration template"
    )
    sp_c_init.add_argument(
        "--force",
        action="store_true",
        help="Overwrite an existing config file if present.",
    )
    config_sub.add_parser("path", help="Print the resolved config path")
    config_sub.add_parser("validate", help="Validate the active configuration")

    sp_start = sub.add_parser("start", help="Start a test session")
    sp_start.add_argument("mode", choices=MODES)
    sp_start.add_argument(
        "--topic", help="Only draw questions from this topic (e.g. 'Tema 3')"
    )
    sp_start.add_argument(
        "--seed", type=int, help="Seed the shuffle for a repeatable order"
    )
    sp_start.add_argument(
        "--tui", action="store_true", help="Use the Textual interface"
    )

    sp_import = sub.add_parser(
        "import", help="Import questions from delimited text files"
    )
    sp_import.add_argument("paths", nargs="+", type=Path)
    sp_import.add_argument(
        "--topic",
        default=DEFAULT_TOPIC,
        help="Topic applied to every imported question",
    )
    sp_import.add_argument(
        "--assign",
        action="append",
        default=[],
        metavar="N=TOPIC",
        help="Override the topic of the N-th parsed question (1-based)",
    )
    sp_import.add_argument(
        "--skip-duplicates",
        action="store_true",
        help="Skip questions whose text and topic already exist",
    )
    sp_import.add_argument(
        "--dry-run",
        action="store_true",
        help="Show the parsed questions without saving them",
    )
    sp_import.add_argument(
        "--extensions",
        nargs="+",
        default=["txt"],
        help="File extensions to include when walking directories",
    )
    sp_import.add_argument(
        "--level-limit",
        type=int,
        default=0,
        help="Directory depth limit (0 = no limit)",
    )

    sp_q = sub.add_parser("questions", help="Manage the question collection")
    q_sub = sp_q.add_subparsers(dest="action", required=True)
    sp_q_list = q_sub.add_parser("list", help="List questions")
    sp_q_list.add_argument("--topic")
    sp_q_add = q_sub.add_parser("add", help="Add one question")
    sp_q_add.add_argument("--text", required=True)
    sp_q_add.add_argument(
        "--option",
        action="append",
        required=True,
        help="Option text; pass exactly four times (A to D)",
    )
    sp_q_add.add_argument("--answer", required=True, help="Correct letter A-D")
    sp_q_add.add_argument("--topic", default=DEFAULT_TOPIC)
    sp_q_rm = q_sub.add_parser("remove", help="Delete a question by number")
    sp_q_rm.add_argument("number", type=int, help="1-based position")
    sp_q_rm.add_argument(
        "--yes", action="store_true", help="Do not ask for confirmation"
    )
    q_sub.add_parser(
        "recover", help="Recover questions missing from the saved collection"
    )
    q_sub.add_parser("sync", help="Reload questions from the remote collection")
    sp_q_clear = q_sub.add_parser(
        "clear", help="Delete every question and the active user's history"
    )
    sp_q_clear.add_argument(
        "--yes", action="store_true", help="Do not ask for confirmation"
    )

    sp_export = sub.add_parser("export", help="Export questions or a backup")
    sp_export.add_argument(
        "--format", choices=["text", "backup"], default="text"
    )
    sp_export.add_argument("--out", type=Path, help="Destination file")

    sp_restore = sub.add_parser("restore", help="Restore a JSON backup")
    sp_restore.add_argument("file", type=Path)

    sp_stats = sub.add_parser("stats", help="Show answer statistics")
    sp_stats.add_argument("--user", help="Defaults to the active user")

    sp_users = sub.add_parser("users", help="Manage users")
    users_sub = sp_users.add_subparsers(dest="action", required=True)
    users_sub.add_parser("list", help="List known users")
    sp_u_switch = users_sub.add_parser("switch", help="Change the active user")
    sp_u_switch.add_argument("name")
    sp_u_delete = users_sub.add_parser(
        "delete", help="Delete a user's history"
    )
    sp_u_delete.add_argument("name")
    sp_u_delete.add_argument(
        "--yes", action="store_true", help="Do not ask for confirmation"
    )

    sp_key = sub.add_parser("key", help="Manage the explanation API key")
    key_sub = sp_key.add_subparsers(dest="action", required=True)
    sp_k_set = key_sub.add_parser("set", help="Store an API key")
    sp_k_set.add_argument("value")
    key_sub.add_parser("clear", help="Remove the stored API key")
    key_sub.add_parser("show", help="Show the masked API key")

    sub.add_parser("info", help="Show storage and workspace details")
    return parser


def _load_config(args: argparse.Namespace) -> config_mod.QuizConfig:
    return config_mod.load_config(
        explicit_path=args.config, workspace_path=args.workspace
    )


def _open_service(
    args: argparse.Namespace,
    ctx: _Context,
    *,
    rng: Optional[random.Random] = None,
) -> TrainerService:
    cfg = _load_config(args)
    layout = workspace_mod.ensure_workspace(
        path=args.workspace or cfg.paths.data_home_override
    )
    _, ctx.log_path = configure_logger(
        log_dir=layout.path_for("logs"),
        level=cfg.logging.level,
        verbose=args.verbose or cfg.logging.verbose,
    )
    ctx.config_path = config_mod.resolve_config_path(
        explicit_path=args.config, workspace_path=args.workspace
    )
    return build_service(cfg, layout, client=ctx.client, rng=rng)


def _confirm(ctx: _Context, prompt: str) -> bool:
    ctx.console.print(f"{prompt} [y/N]", markup=False)
    try:
        reply = ctx.input_provider()
    except (EOFError, KeyboardInterrupt, StopIteration):
        return False
    return reply.strip().lower() in _YES


def _handle_config(args: argparse.Namespace, ctx: _Context) -> int:
    target = config_mod.resolve_config_path(
        explicit_path=args.config, workspace_path=args.workspace
    )
    if args.action == "init":
        config_mod.write_template(target, overwrite=args.force)
        ctx.console.print(f"Wrote config template to {target}")
        return 0
    if args.action == "path":
        ctx.console.print(str(target))
        return 0
    cfg = _load_config(args)
    ctx.console.print("Configuration OK")
    ctx.console.print(f"  storage: {cfg.storage.backend}")
    ctx.console.print(f"  provider: {cfg.ai.provider} ({cfg.ai.model})")
    ctx.console.print(f"  auto_explain: {cfg.ai.auto_explain}")
    remote = cfg.remote.document_path if cfg.remote.enabled else "disabled"
    ctx.console.print(f"  remote: {remote}")
    return 0


def _handle_start(args: argparse.Namespace, ctx: _Context) -> int:
    rng = random.Random(args.seed) if args.seed is not None else None
    service = _open_service(args, ctx, rng=rng)
    session = service.start_test(args.mode, args.topic)
    ctx.console.print(
        f"Starting {args.mode} test: {session.total} question(s) "
        f"from {session.topic_filter} for {service.users.current}.",
        markup=False,
    )
    if args.tui:
        from .view.quiz import QuizApp

        app = QuizApp(service)
        app.run()
        if app.session_result is not None:
            render_summary(ctx.console, app.session_result, service.session)
        return 0
    run_quiz_session(service, ctx.console, ctx.input_provider)
    return 0


def _parse_assignments(raw: Sequence[str]) -> list[tuple[int, str]]:
    assignments: list[tuple[int, str]] = []
    for item in raw:
        number, sep, topic = item.partition("=")
        if not sep or not number.strip().isdigit() or not topic.strip():
            raise ValidationError(f"Invalid --assign value '{item}'; use N=TOPIC.")
        assignments.append((int(number) - 1, topic.strip()))
    return assignments


def _handle_import(args: argparse.Namespace, ctx: _Context) -> int:
    service = _open_service(args, ctx)
    batch = service.prepare_import(
        args.paths,
        topic=args.topic,
        extensions=args.extensions,
        level_limit=args.level_limit,
    )
    for index, topic in _parse_assignments(args.assign):
        batch.assign_topic(index, topic)

    table = Table(title=f"Parsed {len(batch)} question(s)", box=box.SIMPLE)
    table.add_column("#", justify="right")
    table.add_column("Topic")
    table.add_column("Question", overflow="fold")
    table.add_column("Answer", justify="center")
    for number, draft in enumerate(batch.drafts, start=1):
        table.add_row(
            str(number), draft.topic or "", Text(draft.text), draft.answer
        )
    ctx.console.print(table)

    if args.dry_run:
        ctx.console.print("Dry run: nothing saved.")
        return 0
    report = service.commit_import(batch, skip_duplicates=args.skip_duplicates)
    ctx.console.print(
        f"Imported {report.added} question(s); skipped {report.skipped} "
        "duplicate(s)."
    )
    return 0


def _handle_questions(args: argparse.Namespace, ctx: _Context) -> int:
    service = _open_service(args, ctx)
    if args.action == "list":
        pool = service.questions.pool(args.topic)
        if not pool:
            ctx.console.print("No questions to show.")
            return 1
        table = Table(box=box.SIMPLE, expand=True)
        table.add_column("#", justify="right")
        table.add_column("Topic")
        table.add_column("Question", overflow="fold")
        table.add_column("Answer", justify="center")
        wanted = {id(question) for question in pool}
        for number, question in enumerate(service.questions, start=1):
            if id(question) in wanted:
                table.add_row(
                    str(number),
                    topic_label(question.topic),
                    Text(question.text),
                    question.correct_option,
                )
        ctx.console.print(table)
        return 0
    if args.action == "add":
        question, remote = service.add_question(
            args.text, args.option, args.answer, args.topic
        )
        ctx.console.print(
            f"Added question {question.id} to {question.topic}.", markup=False
        )
        if remote is not None:
            style = "green" if remote.success else "yellow"
            ctx.console.print(f"[{style}]{remote.message}[/]")
        return 0
    if args.action == "remove":
        index = args.number - 1
        if not 0 <= index < len(service.questions):
            raise ValidationError(f"No question number {args.number}.")
        question = service.questions[index]
        confirmed = args.yes or _confirm(
            ctx, f"Delete question {args.number}: {question.text!r}?"
        )
        if not confirmed:
            ctx.console.print("Nothing deleted.")
            return 1
        service.remove_question(index, confirmed=True)
        ctx.console.print(f"Deleted question {args.number}.")
        return 0
    if args.action == "recover":
        recovered = service.recover_questions()
        ctx.console.print(f"Recovered {len(recovered)} question(s).")
        return 0
    if args.action == "clear":
        confirmed = args.yes or _confirm(
            ctx,
            f"Delete all {len(service.questions)} question(s) and the history "
            f"of {service.users.current}?",
        )
        if not confirmed:
            ctx.console.print("Nothing deleted.")
            return 1
        removed = service.clear_all(confirmed=True)
        ctx.console.print(
            f"Deleted {removed} question(s) and the history of "
            f"{service.users.current}.",
            markup=False,
        )
        return 0
    result = service.sync_remote()
    if not result.success:
        _print_error(f"Error: {result.message}")
        return 1
    ctx.console.print(result.message)
    return 0


def _handle_export(args: argparse.Namespace, ctx: _Context) -> int:
    service = _open_service(args, ctx)
    if args.format == "backup":
        path = service.export_backup(args.out)
    else:
        path = service.export_text(args.out)
    ctx.console.print(f"Wrote {path}")
    return 0


def _handle_restore(args: argparse.Namespace, ctx: _Context) -> int:
    service = _open_service(args, ctx)
    summary = service.restore(args.file)
    ctx.console.print(
        f"Restored {summary.questions_added} question(s) "
        f"({summary.questions_skipped} already present) and "
        f"{summary.history_added} history entries for "
        f"{service.users.current}.",
        markup=False,
    )
    return 0


def _handle_stats(args: argparse.Namespace, ctx: _Context) -> int:
    service = _open_service(args, ctx)
    report = service.statistics(args.user)
    stats = report.statistics
    ctx.console.print(
        f"{report.user}: {stats.correct}/{stats.total} correct "
        f"({stats.percentage}%)",
        markup=False,
    )
    if report.per_topic:
        table = Table(title="Last 100 answers per topic", box=box.SIMPLE)
        table.add_column("Topic")
        table.add_column("Accuracy", justify="right")
        for topic, percentage in report.per_topic.items():
            table.add_row(topic_label(topic), f"{percentage}%")
        ctx.console.print(table)
    return 0


def _handle_users(args: argparse.Namespace, ctx: _Context) -> int:
    service = _open_service(args, ctx)
    if args.action == "list":
        table = Table(box=box.SIMPLE)
        table.add_column("User")
        table.add_column("Answers", justify="right")
        table.add_column("Accuracy", justify="right")
        for summary in service.list_users():
            name = f"* {summary.name}" if summary.active else f"  {summary.name}"
            table.add_row(
                name,
                str(summary.statistics.total),
                f"{summary.statistics.percentage}%",
            )
        ctx.console.print(table)
        return 0
    if args.action == "switch":
        if service.switch_user(args.name):
            ctx.console.print(
                f"Active user is now {service.users.current}.", markup=False
            )
        else:
            ctx.console.print(
                f"{service.users.current} is already active.", markup=False
            )
        return 0
    if args.name.strip() == service.users.current:
        raise InvariantError(
            "Cannot delete the active user. Switch to another user first."
        )
    confirmed = args.yes or _confirm(
        ctx, f"Delete all history for {args.name!r}?"
    )
    if not confirmed:
        ctx.console.print("Nothing deleted.")
        return 1
    service.delete_user(args.name)
    ctx.console.print(f"Deleted user {args.name}.", markup=False)
    return 0


def _handle_key(args: argparse.Namespace, ctx: _Context) -> int:
    service = _open_service(args, ctx)
    if args.action == "set":
        if not service.set_api_key(args.value):
            _print_error("Error: could not save the API key.")
            return 1
        ctx.console.print(f"Stored {service.config.ai.provider} API key.")
        return 0
    if args.action == "clear":
        if service.clear_api_key():
            ctx.console.print("API key removed.")
        else:
            ctx.console.print("No stored API key.")
        return 0
    ctx.console.print(mask_key(service.api_key()))
    return 0


def _handle_info(args: argparse.Namespace, ctx: _Context) -> int:
    service = _open_service(args, ctx)
    info = service.storage_info()
    table = Table(show_header=False, box=box.MINIMAL_DOUBLE_HEAD)
    table.add_column("Key", style="bold")
    table.add_column("Value")
    table.add_row("Storage", info.backend)
    table.add_row("Location", str(info.location or "-"))
    table.add_row("Questions", str(info.questions))
    table.add_row("Topics", str(info.topics))
    table.add_row("Active user", info.current_user)
    table.add_row("Users", str(info.users))
    table.add_row("Remote", str(info.remote or "disabled"))
    table.add_row("API key", "configured" if info.api_key_configured else "missing")
    table.add_row("Config", str(ctx.config_path or "-"))
    table.add_row("Log file", str(ctx.log_path or "-"))
    ctx.console.print(table)
    return 0


_HANDLERS = {
    "config": _handle_config,
    "start": _handle_start,
    "import": _handle_import,
    "questions": _handle_questions,
    "export": _handle_export,
    "restore": _handle_restore,
    "stats": _handle_stats,
    "users": _handle_users,
    "key": _handle_key,
    "info": _handle_info,
}


def main(
    argv: Optional[Sequence[str]] = None,
    *,
    console: Optional[Console] = None,
    input_provider: Optional[InputProvider] = None,
    client: Any = None,
) -> int:
    parser = build_arg_parser()
    try:
        args = parser.parse_args(list(argv) if argv is not None else None)
    except SystemExit as exc:
        return int(exc.code or 0)

    out = console or Console()
    ctx = _Context(
        console=out,
        input_provider=input_provider or (lambda: out.input("> ")),
        client=client,
    )
    handler = _HANDLERS[args.command]
    try:
        return handler(args, ctx)
    except (ValidationError, config_mod.ConfigError) as exc:
        _print_error(f"Error: {exc}")
        return 2
    except (QuizError, workspace_mod.WorkspaceError) as exc:
        _print_error(f"Error: {exc}")
        return 1


def _print_error(message: str) -> None:
    sys.stderr.write(message + "\n")


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
