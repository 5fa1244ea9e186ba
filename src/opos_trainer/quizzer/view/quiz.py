from typing import List, Optional

from rich.text import Text
from textual.app import App, ComposeResult
from textual.containers import Container, Vertical
from textual.widget import Widget
from textual.widgets import Button, Static

from ..engine import SessionResult
from ..errors import QuizError
from ..models import LETTERS, Question, topic_label
from ..service import AnswerOutcome, TrainerService


def summary_lines(result: SessionResult) -> List[str]:
    """Plain-text summary of a finished test, one line per fact."""

    verdict = "Aprobado" if result.passed else "Suspenso"
    lines = [
        f"Nota: {result.score:.2f}/10 ({verdict})",
        f"Correctas: {result.correct}  Incorrectas: {result.wrong}  "
        f"Sin responder: {result.unanswered}",
    ]
    for topic, metrics in result.per_topic.items():
        lines.append(
            f"{topic}: {metrics.correct}/{metrics.asked} "
            f"({metrics.accuracy * 100:.0f}%)"
        )
    return lines


class QuizApp(App):
    CSS_PATH = None
    CSS = """
#options Button.selected { background: $accent; color: black; }
#options Button.correct { background: green; }
#options Button.wrong { background: red; }
#footer { height: auto; }
"""
    BINDINGS = [
        ("n", "next", "Next"),
        ("p", "prev", "Prev"),
        ("a", "select_a", "Select A"),
        ("b", "select_b", "Select B"),
        ("c", "select_c", "Select C"),
        ("d", "select_d", "Select D"),
        ("e", "explain", "Explain"),
        ("f", "finish", "Finish"),
        ("q", "quit", "Quit"),
    ]

    def __init__(self, service: TrainerService):
        super().__init__()
        self.service = service
        self.session_result: Optional[SessionResult] = None
        self.notice = ""

    def compose(self) -> ComposeResult:
        session = self.service.session
        if session is None or not session.total:
            yield Static("No test in progress.", id="empty")
            return
        with Container(id="stage"):
            yield self._question_view()
        with Container(id="footer"):
            yield Button("Prev", id="prev")
            yield Button("Next", id="next")
            yield Button("Explain", id="explain")
            yield Button("Finish", id="finish")
            yield Static(self.status_text(), id="status")
            yield Static("", id="message", markup=False)

    # Pure helpers for navigation and answering (testable without running App)
    def current_question(self) -> Question:
        session = self.service.session
        if session is None:
            raise QuizError("No test in progress.")
        return session.current

    def next_question(self) -> int:
        index = self.service.navigate(1)
        self._update_stage()
        return index

    def prev_question(self) -> int:
        index = self.service.navigate(-1)
        self._update_stage()
        return index

    def select_answer(self, key: str) -> Optional[AnswerOutcome]:
        letter = str(key).strip().upper()[:1]
        if letter not in LETTERS or self.session_result is not None:
            return None
        outcome = self.service.answer(letter)
        if not outcome.accepted:
            self.notice = "Already answered."
        elif outcome.is_correct:
            self.notice = "Correct."
        else:
            correct = self.current_question().correct_option
            self.notice = f"Incorrect. The answer is {correct}."
            if outcome.explanation is not None and not outcome.explanation.ok:
                self.notice += f" {outcome.explanation.text}"
        self._update_stage()
        return outcome

    def explain_current(self) -> str:
        try:
            result = self.service.explain()
        except QuizError as exc:
            self.notice = str(exc)
        else:
            self.notice = "" if result.ok else result.text
        self._update_stage()
        return self.notice

    def finish_test(self) -> SessionResult:
        if self.session_result is None:
            self.session_result = self.service.finish()
            self.notice = "\n".join(summary_lines(self.session_result))
        self._update_stage()
        return self.session_result

    def status_text(self) -> str:
        session = self.service.session
        if session is None:
            return ""
        return (
            f"Answered: {session.answered_count()}/{session.total}  "
            f"Score: {session.live_score():.2f}/10"
        )

    def _question_view(self) -> "QuestionView":
        session = self.service.session
        assert session is not None
        index = session.current_index
        return QuestionView(
            session.current,
            index=index + 1,
            total=session.total,
            selected=session.selected_for(index),
            explanation=session.explanations.get(index),
        )

    def _update_stage(self) -> None:
        if self.service.session is None:
            return
        try:
            stage = self.query_one("#stage", Container)
        except Exception:
            return
        stage.remove_children()
        stage.mount(self._question_view())
        try:
            self.query_one("#status", Static).update(self.status_text())
            self.query_one("#message", Static).update(self.notice)
        except Exception:
            pass

    def action_next(self) -> None:
        self.next_question()

    def action_prev(self) -> None:
        self.prev_question()

    def action_select_a(self) -> None:
        self.select_answer("A")

    def action_select_b(self) -> None:
        self.select_answer("B")

    def action_select_c(self) -> None:
        self.select_answer("C")

    def action_select_d(self) -> None:
        self.select_answer("D")

    def action_explain(self) -> None:
        self.explain_current()

    def action_finish(self) -> None:
        self.finish_test()

    async def action_quit(self) -> None:
        if self.session_result is None:
            self.service.exit_test()
        self.exit(self.session_result)

    def on_button_pressed(self, event: Button.Pressed) -> None:
        bid = getattr(event.button, "id", "") or ""
        if bid.startswith("option-") and len(bid) == 8:
            self.select_answer(bid[-1])
        elif bid == "finish":
            self.action_finish()
        elif bid == "explain":
            self.action_explain()
        elif bid == "next":
            self.action_next()
        elif bid == "prev":
            self.action_prev()


class QuestionView(Widget):
    """Render one question with lettered options, progress and feedback."""

    def __init__(
        self,
        question: Question,
        index: int,
        total: int,
        *,
        selected: Optional[str] = None,
        explanation: Optional[str] = None,
    ) -> None:
        super().__init__()
        self.question = question
        self.index = index
        self.total = total
        self.selected = (selected or "").strip().upper() or None
        self.explanation = explanation

    def compose(self) -> ComposeResult:
        yield Static(topic_label(self.question.topic), id="topic")
        yield Static(self.question.text, id="text", markup=False)
        with Vertical(id="options"):
            for letter, option in zip(LETTERS, self.question.options):
                btn = Button(Text(f"{letter}) {option}"), id=f"option-{letter}")
                for cls in self.option_classes(letter):
                    btn.add_class(cls)
                yield btn
        yield Static(f"{self.index}/{self.total}", id="progress")
        yield Static(self.feedback_text(), id="feedback")
        if self.explanation:
            yield Static(self.explanation, id="explanation", markup=False)

    def option_classes(self, letter: str) -> List[str]:
        """CSS classes for ``letter`` once the question has been answered."""

        if self.selected is None:
            return []
        if letter == self.question.correct_option:
            return ["correct"]
        if letter == self.selected:
            return ["selected", "wrong"]
        return []

    def feedback_text(self) -> str:
        if self.selected is None:
            return ""
        if self.selected == self.question.correct_option:
            return "Correct."
        return f"Incorrect. The answer is {self.question.correct_option}."
