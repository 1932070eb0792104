"""Interactive chat loop on top of the streaming controller."""

from __future__ import annotations

import inspect
import logging
import shlex
from pathlib import Path

import click

from .client import OllamaClient
from .config import CHAT_TEMPLATES, WELCOME_MESSAGE
from .context import attach_file, build_context, extract_code_blocks, list_directory, read_file
from .controller import ChatController
from .errors import LamaError, NotCancellableError, UnreachableError
from .models import ChunkEvent, ErrorEvent, StreamEvent
from .storage import SessionStore
from .theme import THEMES, UIContext, ViewMode

logger = logging.getLogger(__name__)

HELP_TEXT = """\
Commands:
  /help                 Show this help
  /models               List installed models
  /model NAME           Switch to another model
  /files [PATH]         Browse a directory
  /view PATH            Show a file
  /attach PATH          Add a file to the next prompt
  /context PATH [GLOB]  Add a directory tree to the next prompt
  /template NAME        Start the next prompt from a template
  /code [N]             Show code blocks from the last answer
  /history              List saved sessions
  /load ID              Resume a saved session
  /delete ID            Delete a saved session
  /new                  Start a new conversation
  /save                 Save the conversation now
  /theme [NAME]         Switch colour theme
  /quit                 Exit
Press Ctrl+C while an answer is streaming to stop it."""


class ChatRepl:
    def __init__(
        self,
        client: OllamaClient,
        store: SessionStore | None,
        ui: UIContext | None = None,
        model: str | None = None,
    ):
        self.client = client
        self.store = store
        self.ui = ui or UIContext()
        self.model = model
        self.controller: ChatController | None = None
        self.pending_context = ""
        self.template = ""

    # Output helpers

    def _style(self, text: str, color: str, bold: bool = False) -> str:
        return click.style(text, fg=getattr(self.ui.theme, color), bold=bold)

    def _echo(self, text: str, color: str = "subtle", bold: bool = False) -> None:
        click.echo(self._style(text, color, bold))

    def _error(self, message: str) -> None:
        click.echo(self._style(f"Error: {message}", "error", bold=True))

    def _in_view(self, *views: ViewMode):
        """Walk the view table through ``views``."""
        for view in views:
            self.ui = self.ui.go(view)

    def _back_to_chat(self) -> None:
        self.ui = self.ui.go(ViewMode.CHAT)

    # Startup

    def start(self) -> ChatController:
        if self.model is None:
            try:
                models = self.client.list_models()
            except UnreachableError as e:
                raise click.ClickException(
                    "Please ensure Ollama is running and accessible with at least one "
                    f"model pulled. ({e})"
                ) from e
            if not models:
                raise click.ClickException(
                    "No Ollama models found. Please pull a model (e.g., 'ollama pull llama3.2')"
                )
            self.model = models[0]

        self.controller = ChatController(
            self.client, self.model, store=self.store, queue_events=False
        )
        self.controller.add_listener(self.render_event)
        return self.controller

    def run(self) -> None:
        controller = self.start()
        self._echo(WELCOME_MESSAGE, "primary")
        self._echo(f"Current model: {controller.model}", "secondary")

        while True:
            try:
                line = click.prompt(
                    self._style("You", "primary", bold=True),
                    default="",
                    show_default=False,
                    prompt_suffix="> ",
                )
            except click.Abort:
                click.echo()
                break

            line = line.strip()
            if not line:
                continue
            if line.startswith("/"):
                if not self.handle_command(line):
                    break
                continue
            self.ask(line)

        if not controller.flush(timeout=5):
            logger.warning("Exiting with an auto-save still running")

    # Chat

    def render_event(self, event: StreamEvent) -> None:
        if isinstance(event, ChunkEvent):
            click.echo(event.text, nl=False)
        elif isinstance(event, ErrorEvent):
            click.echo()
            self._error(str(event.error))
        else:
            click.echo("\n")
            blocks = extract_code_blocks(self.controller.conversation.last_assistant_text)
            if blocks:
                self._echo(f"{len(blocks)} code block(s) available • /code to show")

    def ask(self, text: str) -> None:
        controller = self.controller
        prompt = f"{self.template}{text}{self.pending_context}"
        try:
            controller.submit_turn(prompt)
        except LamaError as e:
            self._error(str(e))
            return

        self.template = ""
        self.pending_context = ""
        click.echo(self._style(f"{controller.model}: ", "secondary", bold=True), nl=False)
        try:
            controller.wait_until_idle()
        except KeyboardInterrupt:
            self._stop_answer(controller)

    def _stop_answer(self, controller: ChatController) -> None:
        # a turn still opening its stream cannot be cancelled yet
        controller.wait_until_started()
        try:
            controller.cancel()
        except NotCancellableError:
            logger.debug("Answer finished before it could be stopped")
            return
        click.echo()
        self._echo("[answer stopped]", "warning")

    # Commands

    def handle_command(self, line: str) -> bool:
        """Run a slash command; returns False when the loop should end."""
        try:
            name, *args = shlex.split(line[1:])
        except ValueError as e:
            self._error(f"Cannot parse command: {e}")
            return True

        if name in ("quit", "exit", "q"):
            return False

        handler = getattr(self, f"cmd_{name}", None)
        if handler is None:
            self._error(f"Unknown command /{name}. Type /help for a list.")
            return True

        try:
            inspect.signature(handler).bind(*args)
        except TypeError:
            self._error(f"Wrong arguments for /{name}. Type /help for usage.")
            return True

        try:
            handler(*args)
        except LamaError as e:
            self._error(str(e))
        finally:
            if self.ui.view is not ViewMode.CHAT:
                self._back_to_chat()
        return True

    def cmd_help(self) -> None:
        self._in_view(ViewMode.HELP)
        self._echo(HELP_TEXT)

    def cmd_models(self) -> None:
        self._in_view(ViewMode.MODEL_SELECT)
        for model in self.client.list_models():
            marker = " (current)" if model == self.controller.model else ""
            click.echo(f"  • {model}{marker}")

    def cmd_model(self, name: str) -> None:
        self._in_view(ViewMode.MODEL_SELECT)
        available = self.client.list_models()
        if name not in available:
            self._error(f"Model '{name}' is not installed")
            return
        self.controller.set_model(name)
        self._echo(f"Switched to {name}", "success")

    def cmd_files(self, path: str = ".") -> None:
        self._in_view(ViewMode.FILES)
        for entry in list_directory(path):
            if entry.is_dir:
                click.echo(self._style(f"  {entry.name}/", "primary"))
            else:
                click.echo(f"  {entry.name}  ({entry.size} bytes)")

    def cmd_view(self, path: str) -> None:
        self._in_view(ViewMode.FILES, ViewMode.FILE_VIEWER)
        content = read_file(path).decode("utf-8", errors="replace")
        self._echo(f"--- {path} ---", "secondary")
        click.echo(content)

    def cmd_attach(self, path: str) -> None:
        self._in_view(ViewMode.FILES)
        self.pending_context += attach_file(path)
        self._echo(f"Attached: {Path(path).name}", "success")

    def cmd_context(self, path: str, include: str | None = None) -> None:
        self._in_view(ViewMode.FILES)
        context = build_context(path, include)
        if not context:
            self._echo("No matching files found.", "warning")
            return
        self.pending_context += f"\n\nContext:\n{context}"
        self._echo(f"Added {len(context)} characters of context from {path}", "success")

    def cmd_template(self, *name_parts: str) -> None:
        name = " ".join(name_parts)
        matches = [t for t in CHAT_TEMPLATES if t.lower() == name.lower()]
        if not matches:
            self._error(f"Unknown template. Available: {', '.join(CHAT_TEMPLATES)}")
            return
        self.template = CHAT_TEMPLATES[matches[0]]
        self._echo(f"Template: {matches[0]} • your next message completes it", "success")

    def cmd_code(self, index: str | None = None) -> None:
        blocks = extract_code_blocks(self.controller.conversation.last_assistant_text)
        if not blocks:
            self._echo("No code blocks in the last answer.", "warning")
            return
        if index is None:
            for i, block in enumerate(blocks, 1):
                preview = block if len(block) <= 100 else block[:100] + "..."
                click.echo(f"  [{i}] {preview}")
            return
        try:
            click.echo(blocks[int(index) - 1])
        except (ValueError, IndexError):
            self._error(f"No code block {index}")

    def cmd_history(self) -> None:
        self._in_view(ViewMode.HISTORY)
        if self.store is None:
            self._error("Chat history is not available")
            return
        summaries = self.store.list_sessions()
        if not summaries:
            self._echo("No saved sessions yet.")
            return
        for summary in summaries:
            click.echo(f"  {self._style(summary.id, 'primary')}  {summary.describe()}")

    def cmd_load(self, session_id: str) -> None:
        self._in_view(ViewMode.HISTORY)
        if self.store is None:
            self._error("Chat history is not available")
            return
        session = self.store.load(session_id)
        self.controller.load_session(session)
        self._echo(f"Loaded '{session.title}' ({session.model})", "success")

    def cmd_delete(self, session_id: str) -> None:
        self._in_view(ViewMode.HISTORY)
        if self.store is None:
            self._error("Chat history is not available")
            return
        if not click.confirm(f"Delete session {session_id}?", default=False):
            return
        self.store.delete(session_id)
        self._echo(f"Deleted {session_id}", "success")

    def cmd_new(self) -> None:
        self.controller.reset()
        self.pending_context = ""
        self.template = ""
        self._echo("Started a new conversation.", "success")

    def cmd_save(self) -> None:
        stored = self.controller.save()
        self._echo(f"Saved as {stored.id} ('{stored.title}')", "success")

    def cmd_theme(self, name: str | None = None) -> None:
        if name is None:
            self.ui = self.ui.next_theme()
        elif name in THEMES:
            self.ui = self.ui.with_theme(THEMES[name])
        else:
            self._error(f"Unknown theme '{name}'. Use one of: {', '.join(THEMES)}")
            return
        self._echo(f"Theme: {self.ui.theme.name}", "primary")
