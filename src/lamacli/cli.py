"""CLI interface for lamacli."""

from __future__ import annotations

import logging
import sys

import click

from . import __version__
from .client import OllamaClient
from .config import COMMAND_SYSTEM_PROMPTS, DATA_DIR, HISTORY_DIR, LOG_LEVEL
from .context import build_context, compose_prompt
from .controller import ChatController
from .conversation import Conversation
from .errors import ContextError, LamaError, SessionError, TransportError
from .models import ChunkEvent, ErrorEvent
from .repl import ChatRepl
from .storage import SessionStore
from .theme import THEMES, UIContext

logger = logging.getLogger(__name__)

RESPONSE_HEADERS = {
    "ask": "Response",
    "suggest": "Suggested Command",
    "explain": "Command Explanation",
}


def _configure_logging(verbose: bool) -> None:
    # stdout carries the model's answer; diagnostics go to stderr
    logging.basicConfig(
        level=logging.DEBUG if verbose else LOG_LEVEL,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _open_store() -> SessionStore:
    try:
        return SessionStore(HISTORY_DIR)
    except SessionError as e:
        raise click.ClickException(str(e)) from e


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="lamacli")
@click.option(
    "--theme",
    type=click.Choice(sorted(THEMES)),
    default="dark",
    show_default=True,
    help="Colour theme for interactive mode",
)
@click.option("--verbose", "-v", is_flag=True, help="Log debug output to stderr")
@click.pass_context
def cli(ctx: click.Context, theme: str, verbose: bool):
    """lamacli — chat with your local Ollama models from the terminal.

    Run without a command to start an interactive chat. Conversations are
    saved automatically and can be resumed with /history and /load.
    """
    _configure_logging(verbose)
    if ctx.invoked_subcommand is not None:
        return

    try:
        store: SessionStore | None = SessionStore(HISTORY_DIR)
    except SessionError as e:
        click.secho(f"Warning: chat history disabled ({e})", fg="yellow", err=True)
        store = None

    repl = ChatRepl(OllamaClient(), store, UIContext(theme=THEMES[theme]))
    repl.run()


def _llm_options(func):
    func = click.option("--system", "system_prompt", default="", help="Custom system prompt")(func)
    func = click.option("--include", default=None, help="File pattern for context (e.g. '*.md')")(func)
    func = click.option("--context", "context_path", default=None, help="Include directory context (e.g. '.')")(func)
    func = click.option("--model", default=None, help="Override the default model")(func)
    func = click.option(
        "--stream/--no-stream", default=True, help="Print the answer as it is generated"
    )(func)
    return click.argument("prompt", nargs=-1)(func)


def _run_llm_command(
    command: str,
    prompt_words: tuple[str, ...],
    model: str | None,
    context_path: str | None,
    include: str | None,
    system_prompt: str,
    stream: bool,
) -> None:
    prompt = " ".join(prompt_words).strip()
    if not prompt:
        raise click.UsageError(f"prompt is required for {command} command")

    client = OllamaClient()
    model = model or client.default_model()

    context = ""
    if context_path:
        try:
            context = build_context(context_path, include)
        except ContextError as e:
            raise click.ClickException(f"failed to build context: {e}") from e

    final_prompt = compose_prompt(prompt, context)
    system_prompt = system_prompt or COMMAND_SYSTEM_PROMPTS[command]

    click.echo()
    click.secho(f"{RESPONSE_HEADERS[command]} (using {model}):", bold=True)

    if not stream:
        try:
            answer = client.generate(model, final_prompt, system_prompt)
        except TransportError as e:
            raise click.ClickException(f"failed to generate response: {e}") from e
        click.echo(answer)
        click.echo()
        return

    controller = ChatController(
        client, model, system_prompt=system_prompt, conversation=Conversation(welcome_message="")
    )
    try:
        controller.submit_turn(final_prompt)
    except LamaError as e:
        raise click.ClickException(str(e)) from e

    for event in controller.iter_events():
        if isinstance(event, ChunkEvent):
            click.echo(event.text, nl=False)
        elif isinstance(event, ErrorEvent):
            click.echo()
            raise click.ClickException(f"failed to generate response: {event.error}")
    click.echo("\n")


@cli.command()
@_llm_options
def ask(prompt, stream, model, context_path, include, system_prompt):
    """Ask a question.

    Example:
        lamacli ask --context=. --include="*.md" "Summarize this project"
    """
    _run_llm_command("ask", prompt, model, context_path, include, system_prompt, stream)


@cli.command()
@_llm_options
def suggest(prompt, stream, model, context_path, include, system_prompt):
    """Get command suggestions.

    Example:
        lamacli suggest "find large files"
    """
    _run_llm_command("suggest", prompt, model, context_path, include, system_prompt, stream)


@cli.command()
@_llm_options
def explain(prompt, stream, model, context_path, include, system_prompt):
    """Explain a command.

    Example:
        lamacli explain "docker compose up -d"
    """
    _run_llm_command("explain", prompt, model, context_path, include, system_prompt, stream)


@cli.command()
def config():
    """Show the available models and where data is stored."""
    try:
        models = OllamaClient().list_models()
    except TransportError as e:
        raise click.ClickException(f"failed to list models: {e}") from e

    click.echo()
    click.echo(click.style("Available Models", bold=True))
    if not models:
        click.echo("  (none; pull one with 'ollama pull llama3.2')")
    for i, model in enumerate(models):
        suffix = " (default)" if i == 0 else ""
        click.echo(f"  • {model}{suffix}")
    click.echo()
    click.echo(f"  Data directory: {DATA_DIR}")
    click.echo()


cli.add_command(ask, "a")
cli.add_command(suggest, "s")
cli.add_command(explain, "e")
cli.add_command(config, "c")


@cli.group()
def sessions():
    """Manage saved chat sessions."""


@sessions.command("list")
def sessions_list():
    """List saved sessions, most recent first."""
    store = _open_store()
    try:
        summaries = store.list_sessions()
    except SessionError as e:
        raise click.ClickException(str(e)) from e

    if not summaries:
        click.echo("No saved sessions yet.")
        return
    for summary in summaries:
        click.echo(f"{click.style(summary.id, bold=True)}  {summary.describe()}")


@sessions.command("show")
@click.argument("session_id")
def sessions_show(session_id: str):
    """Print the transcript of a saved session."""
    store = _open_store()
    try:
        session = store.load(session_id)
    except SessionError as e:
        raise click.ClickException(str(e)) from e

    click.echo(click.style(session.title, bold=True) + f"  ({session.model})")
    click.echo()
    for i, text in enumerate(session.history):
        if not text:
            continue
        speaker = "You" if i % 2 == 0 else "LLM"
        click.echo(click.style(f"{speaker}:", bold=True))
        click.echo(text)
        click.echo()


@sessions.command("delete")
@click.argument("session_id")
@click.confirmation_option(prompt="This will delete the saved session. Are you sure?")
def sessions_delete(session_id: str):
    """Delete a saved session."""
    store = _open_store()
    try:
        store.delete(session_id)
    except SessionError as e:
        raise click.ClickException(str(e)) from e
    click.echo(f"Deleted {session_id}")
