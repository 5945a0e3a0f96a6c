from __future__ import annotations

from pathlib import Path
from typing import Iterable, Sequence

from rich.table import Table
from textual import events
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.screen import ModalScreen
from textual.widgets import Button, Input, Label, Static

BindingSpec = Binding | tuple[str, str] | tuple[str, str, str]


def key_help_rows(bindings: Iterable[BindingSpec]) -> list[tuple[str, str]]:
    """Key and description pairs for the bindings that have a description."""
    rows = []
    for binding in bindings:
        if isinstance(binding, Binding):
            key, description = binding.key, binding.description
        else:
            key, description = binding[0], binding[2] if len(binding) > 2 else ""
        if description:
            rows.append((key, description))
    return rows


class HelpScreen(ModalScreen[None]):
    """Key reference built from the app's bindings; any key closes it."""

    CSS = """
    HelpScreen {
        align: center middle;
        background: $surface 80%;
    }

    #keys_dialog {
        width: auto;
        max-width: 80;
        height: auto;
        padding: 1 2;
        border: round $accent;
        background: $panel;
    }

    #keys_notes {
        margin-top: 1;
        color: $text-muted;
    }
    """

    def __init__(self, bindings: Sequence[BindingSpec], notes: str = "") -> None:
        super().__init__()
        self._rows = key_help_rows(bindings)
        self._notes = notes

    def compose(self) -> ComposeResult:
        table = Table(box=None, show_header=False, pad_edge=False)
        table.add_column(style="bold")
        table.add_column()
        for key, description in self._rows:
            table.add_row(key, description)
        with Vertical(id="keys_dialog"):
            yield Static(table, id="keys_table")
            if self._notes:
                yield Static(self._notes, id="keys_notes", markup=False)

    def on_key(self, event: events.Key) -> None:
        event.stop()
        self.dismiss(None)


class PathInputScreen(ModalScreen[Path | None]):
    """Asks for a directory path; dismisses with the path or None."""

    BINDINGS = [("escape", "cancel", "Cancel")]

    CSS = """
    PathInputScreen {
        align: center middle;
        background: $surface 80%;
    }

    #path_dialog {
        width: 70%;
        max-width: 80;
        padding: 1 2;
        border: heavy $accent;
        background: $panel;
    }

    #path_error {
        color: $error;
        height: 1;
    }
    """

    def __init__(
        self,
        title: str,
        current: Path | None,
        *,
        must_exist: bool = False,
        placeholder: str = "Path to directory",
    ) -> None:
        super().__init__()
        self._title = title
        self._current = current
        self._must_exist = must_exist
        self._placeholder = placeholder

    def compose(self) -> ComposeResult:
        with Vertical(id="path_dialog"):
            yield Label(self._title)
            yield Input(
                value=str(self._current) if self._current else "",
                placeholder=self._placeholder,
                id="path_input",
            )
            yield Label("", id="path_error")
            with Horizontal():
                yield Button("Set", id="path_set")
                yield Button("Cancel", id="path_cancel")

    def action_cancel(self) -> None:
        self.dismiss(None)

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "path_cancel":
            self.dismiss(None)
        elif event.button.id == "path_set":
            self._submit()

    def on_input_submitted(self, event: Input.Submitted) -> None:
        if event.input.id == "path_input":
            self._submit()

    def _submit(self) -> None:
        input_widget = self.query_one("#path_input", Input)
        error_label = self.query_one("#path_error", Label)
        value = input_widget.value.strip()
        if not value:
            error_label.update("Please enter a directory path.")
            return
        path = Path(value).expanduser()
        if self._must_exist and not path.is_dir():
            error_label.update(f"Not a directory: {path}")
            return
        self.dismiss(path)
