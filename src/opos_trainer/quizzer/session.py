"""Rich-powered test session loop.

The loop renders the current question of the live test, reads one command
per prompt and forwards it to :class:`~opos_trainer.quizzer.service.TrainerService`.
All state lives in the session engine, so the loop itself only parses input
and draws output; tests drive it with a scripted ``input_provider`` and a
recording ``Console``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Literal, Optional

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .engine import SessionResult, TestSession
from .errors import QuizError
from .models import LETTERS, topic_label
from .service import AnswerOutcome, TrainerService

__all__ = [
    "ExitAction",
    "QuizSessionResult",
    "SessionCommand",
    "parse_session_command",
    "render_summary",
    "run_quiz_session",
]

InputProvider = Callable[[], str]
ExitAction = Literal["finished", "quit"]


@dataclass(frozen=True)
class SessionCommand:
    """Normalized user command parsed from console input."""

    type: Literal["select", "next", "prev", "goto", "explain", "finish", "quit"]
    choice: Optional[str] = None
    index: Optional[int] = None


@dataclass(frozen=True)
class QuizSessionResult:
    """Return value from ``run_quiz_session``."""

    exit_action: ExitAction
    result: Optional[SessionResult] = None


def parse_session_command(raw: Optional[str]) -> Optional[SessionCommand]:
    """Parse raw user input into a structured command."""

    if raw is None:
        return None
    text = raw.strip()
    if not text:
        return None
    lowered = text.lower()
    if lowered in {"n", "next"}:
        return SessionCommand("next")
    if lowered in {"p", "prev", "previous"}:
        return SessionCommand("prev")
    if lowered in {"e", "explain"}:
        return SessionCommand("explain")
    if lowered in {"f", "finish", "submit"}:
        return SessionCommand("finish")
    if lowered in {"q", "quit", "exit"}:
        return SessionCommand("quit")
    if lowered.startswith(("g ", "goto ")):
        target = lowered.split(maxsplit=1)[1]
        if target.isdigit() and int(target) > 0:
            return SessionCommand("goto", index=int(target) - 1)
        return None
    if len(text) == 1 and text.upper() in LETTERS:
        return SessionCommand("select", text.upper())
    return None


def run_quiz_session(
    service: TrainerService,
    console: Console,
    input_provider: InputProvider,
) -> QuizSessionResult:
    """Drive the live test until the user finishes or quits."""

    session = service.session
    if session is None:
        raise QuizError("No test in progress. Start one first.")

    while True:
        _render_question(console, session)
        try:
            raw = input_provider()
        except (EOFError, KeyboardInterrupt, StopIteration):
            console.print("\n[bold yellow]Session interrupted.[/]")
            service.exit_test()
            return QuizSessionResult("quit")
        command = parse_session_command(raw)
        if command is None:
            console.print("[red]Unrecognized command. Try again.[/]")
            continue
        try:
            action = _apply_command(command, service, console)
        except QuizError as exc:
            console.print(f"[red]{exc}[/]")
            continue
        if action == "quit":
            service.exit_test()
            return QuizSessionResult("quit")
        if action == "finished":
            result = service.finish()
            render_summary(console, result, session)
            return QuizSessionResult("finished", result)


def _apply_command(
    command: SessionCommand,
    service: TrainerService,
    console: Console,
) -> Optional[ExitAction]:
    if command.type == "select" and command.choice:
        outcome = service.answer(command.choice)
        _render_outcome(console, command.choice, outcome)
        return None
    if command.type == "next":
        service.navigate(1)
        return None
    if command.type == "prev":
        service.navigate(-1)
        return None
    if command.type == "goto" and command.index is not None:
        service.jump(command.index)
        return None
    if command.type == "explain":
        result = service.explain()
        if not result.ok:
            console.print(f"[yellow]{result.text}[/]")
        return None
    if command.type == "quit":
        console.print("\n[bold yellow]Leaving the test without a score.[/]")
        return "quit"
    if command.type == "finish":
        return "finished"
    return None


def _render_outcome(
    console: Console, letter: str, outcome: AnswerOutcome
) -> None:
    if not outcome.accepted:
        console.print("[yellow]This question is already answered.[/]")
        return
    if outcome.is_correct:
        console.print(f"[bold green]{letter}: correct.[/]")
    else:
        console.print(f"[bold red]{letter}: incorrect.[/]")
    if outcome.explanation is not None and not outcome.explanation.ok:
        console.print(f"[yellow]{outcome.explanation.text}[/]")


def _render_question(console: Console, session: TestSession) -> None:
    index = session.current_index
    question = session.current
    header = Text.assemble(
        (f"Pregunta {index + 1}", "bold cyan"),
        (f" / {session.total}", "dim"),
        (f"  {topic_label(question.topic)}", "magenta"),
    )
    console.print()
    console.rule(header)
    console.print(Text(question.text, style="bold"))

    table = Table(show_header=False, box=box.SIMPLE, expand=True)
    table.add_column("Key", justify="center", style="cyan")
    table.add_column("Option")

    selected = session.selected_for(index)
    for letter, option in zip(LETTERS, question.options):
        row = Text(option)
        if selected is not None:
            if letter == question.correct_option:
                row.stylize("bold green")
            elif letter == selected:
                row.stylize("bold red")
        marker = "•" if letter == selected else " "
        table.add_row(letter, Text(marker + " ") + row)
    console.print(table)

    explanation = session.explanations.get(index)
    if explanation:
        console.print(
            Panel(Text(explanation), title="Explicación", border_style="blue")
        )

    console.print(
        Text(
            f"Answered {session.answered_count()}/{session.total} | "
            f"Score {session.live_score():.2f}/10 | "
            "Commands: A-D, n (next), p (prev), g N (go to), "
            "e (explain), f (finish), q (quit)",
            style="dim",
        )
    )


def render_summary(
    console: Console,
    result: SessionResult,
    session: Optional[TestSession] = None,
) -> None:
    """Print the score, pass mark verdict, per-topic and per-question tables."""

    console.print()
    console.rule(Text("Resultado", style="bold magenta"))

    verdict = (
        Text("Aprobado", style="bold green")
        if result.passed
        else Text("Suspenso", style="bold red")
    )
    overview = Table(show_header=False, box=box.MINIMAL_DOUBLE_HEAD)
    overview.add_column("Metric", style="bold")
    overview.add_column("Value", justify="right")
    overview.add_row("Mode", result.mode)
    overview.add_row("Topic", result.topic_filter)
    overview.add_row("Questions", str(result.total))
    overview.add_row("Answered", str(result.answered))
    overview.add_row("Correct", str(result.correct))
    overview.add_row("Wrong", str(result.wrong))
    overview.add_row("Unanswered", str(result.unanswered))
    overview.add_row("Score", f"{result.score:.2f}/10")
    overview.add_row("Result", verdict)
    console.print(overview)

    if result.per_topic:
        per_topic = Table(title="Per topic", box=box.SIMPLE)
        per_topic.add_column("Topic")
        per_topic.add_column("Asked", justify="right")
        per_topic.add_column("Correct", justify="right")
        per_topic.add_column("Accuracy", justify="right")
        for topic, metrics in result.per_topic.items():
            per_topic.add_row(
                topic,
                str(metrics.asked),
                str(metrics.correct),
                f"{metrics.accuracy * 100:.1f}%",
            )
        console.print(per_topic)

    responses = Table(title="Responses", box=box.SIMPLE, expand=True)
    responses.add_column("#", justify="right")
    responses.add_column("Question", overflow="fold")
    responses.add_column("Your answer")
    responses.add_column("Correct answer")
    responses.add_column("Result", justify="center")
    for response in result.responses:
        if not response.answered:
            outcome = "-"
        else:
            outcome = "✅" if response.is_correct else "❌"
        responses.add_row(
            str(response.index + 1),
            Text(response.question.text),
            response.selected or "-",
            response.question.correct_option,
            outcome,
        )
    console.print(responses)

    if session is not None:
        for index, text in sorted(session.explanations.items()):
            console.print(
                Panel(
                    Text(text),
                    title=f"Explicación - Pregunta {index + 1}",
                    border_style="blue",
                )
            )
