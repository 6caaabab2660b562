"""a2a-taskhub command-line interface."""

from __future__ import annotations

import asyncio
import json
import logging
import sys

import click

from .client import A2AClient, A2AClientError
from .config import ServerConfig, ServerMode
from .models import Task, TextPart

DEFAULT_URL = "http://localhost:3000"


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def _echo_task(task: Task) -> None:
    click.echo(json.dumps(task.to_wire(), indent=2, ensure_ascii=False))


def _echo_reply(task: Task) -> None:
    message = task.status.message
    if message is None:
        click.echo("Agent: [No response]")
    else:
        for part in message.parts:
            if isinstance(part, TextPart):
                click.echo(f"Agent: {part.text}")
            else:
                click.echo("Agent: [Non-text response]")

    if task.artifacts:
        click.echo("Artifacts:")
        for position, artifact in enumerate(task.artifacts, start=1):
            click.echo(f"  {position}. {artifact.name or 'Unnamed'}")
            for part in artifact.parts:
                if isinstance(part, TextPart):
                    click.echo(f"     {part.text}")
                else:
                    click.echo("     [Non-text content]")


@click.group()
@click.version_option(package_name="a2a-taskhub")
def app() -> None:
    """a2a-taskhub CLI - run the A2A task server or talk to one."""


@app.command()
@click.option("--host", default=None, help="Address to bind (default: A2A_HOST or 127.0.0.1).")
@click.option("--port", type=int, default=None, help="Port to listen on (default: A2A_PORT or 3000).")
@click.option(
    "--mode",
    type=click.Choice([item.value for item in ServerMode]),
    default=None,
    help="'reply' answers directly, 'agent' routes tasks through the OpenAI agent.",
)
@click.option("--model", default=None, help="OpenAI model used in agent mode.")
@click.option("--strict", is_flag=True, default=False, help="Reject illegal task state transitions.")
@click.option("--cors-origin", "cors_origins", multiple=True, help="Allowed CORS origin (repeatable).")
@click.option("--log-level", default=None, help="Logging level (default: A2A_LOG_LEVEL or INFO).")
def serve(
    host: str | None,
    port: int | None,
    mode: str | None,
    model: str | None,
    strict: bool,
    cors_origins: tuple[str, ...],
    log_level: str | None,
) -> None:
    """Start the JSON-RPC task server."""
    import uvicorn

    from .server import create_app

    try:
        base = ServerConfig.from_env()
        config = ServerConfig(
            host=host or base.host,
            port=port or base.port,
            mode=mode or base.mode,
            event_buffer_size=base.event_buffer_size,
            strict_transitions=strict or base.strict_transitions,
            cors_origins=cors_origins or base.cors_origins,
            openai_model=model or base.openai_model,
            openai_base_url=base.openai_base_url,
            log_level=log_level or base.log_level,
            sse_heartbeat_interval=base.sse_heartbeat_interval,
        )
    except ValueError as e:
        click.echo(f"✗ {e}", err=True)
        sys.exit(1)

    _configure_logging(config.log_level)
    try:
        application = create_app(config)
    except (ImportError, ValueError) as e:
        click.echo(f"✗ {e}", err=True)
        sys.exit(1)

    click.echo(f"Starting A2A task server on {config.host}:{config.port} ({config.mode.value} mode)")
    uvicorn.run(application, host=config.host, port=config.port, log_level=config.log_level.lower())


@app.command()
@click.option("--url", default=DEFAULT_URL, show_default=True, help="A2A server URL.")
def chat(url: str) -> None:
    """Send each line typed to the server as a new task; 'exit' quits."""
    client = A2AClient(url)
    click.echo(f"Connected to {url}")
    click.echo("Type 'exit' to quit")
    while True:
        try:
            line = click.prompt(">", prompt_suffix=" ", default="", show_default=False)
        except click.Abort:
            break
        text = line.strip()
        if not text:
            continue
        if text == "exit":
            break
        try:
            task = asyncio.run(client.send_task(text))
        except A2AClientError as e:
            click.echo(f"Error: {e}", err=True)
            continue
        _echo_reply(task)


@app.command()
@click.argument("task_id")
@click.option("--url", default=DEFAULT_URL, show_default=True, help="A2A server URL.")
def get(task_id: str, url: str) -> None:
    """Print the current state of TASK_ID."""
    try:
        task = asyncio.run(A2AClient(url).get_task(task_id))
    except A2AClientError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    _echo_task(task)


@app.command()
@click.argument("task_id")
@click.option("--url", default=DEFAULT_URL, show_default=True, help="A2A server URL.")
def cancel(task_id: str, url: str) -> None:
    """Cancel TASK_ID."""
    try:
        task = asyncio.run(A2AClient(url).cancel_task(task_id))
    except A2AClientError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    _echo_task(task)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
