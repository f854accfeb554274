"""
Pilot - Main Entry Point

CLI for serving the agent API, running an agent in-process, streaming a
run from a live server, and managing Browserbase sessions.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Any, Optional

import httpx
import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table

from pilot.config.settings import Settings, load_settings
from pilot.exceptions import ConfigurationError, PilotError
from pilot.observability.logging_config import configure_logging

# Load environment (.env values take precedence over the shell)
root_env = Path(__file__).parent / ".env"
if root_env.exists():
    load_dotenv(root_env, override=True)
else:
    load_dotenv(override=True)

app = typer.Typer(
    name="pilot",
    help="Pilot - autonomous browser agent on Browserbase",
)
console = Console()
logger = logging.getLogger("pilot")


def _get_settings(config: Optional[Path]) -> Settings:
    """Load settings and configure logging, with a friendly error on failure."""
    try:
        settings = load_settings(config)
    except ConfigurationError as e:
        console.print(Panel(
            f"[red]{e}[/]\n\n"
            f"Set the missing values in your .env file or pass [bold]--config[/].",
            title="⚠ Configuration Error",
            border_style="red",
        ))
        raise typer.Exit(code=1)
    configure_logging(env=settings.env, level=settings.log_level)
    return settings


def _read_goal(words: Optional[list[str]]) -> str:
    if words:
        return " ".join(words)
    return Prompt.ask("Enter your goal for the agent")


def print_event(data: dict[str, Any]) -> None:
    """Render one agent event record."""
    kind = data.get("type")

    if kind == "session_start":
        console.print(f"[cyan]Started session:[/] {data.get('sessionId')}")
        console.print(f"[dim]Session URL: {data.get('sessionUrl')}[/]\n")

    elif kind == "starting_url":
        console.print(f"[cyan]Starting URL:[/] {data.get('url')}")
        console.print(f"Reasoning: {data.get('reasoning')}\n")

    elif kind == "step_complete":
        console.print(f"[green]Step completed:[/] {data['result']['text']}\n")

    elif kind == "step_planned":
        step = data["result"]
        table = Table(show_header=False, box=None, padding=(0, 1))
        table.add_column("Field", style="dim")
        table.add_column("Value")
        table.add_row("Action", step.get("text", ""))
        table.add_row("Reasoning", step.get("reasoning", ""))
        table.add_row("Tool", step.get("tool", ""))
        table.add_row("Instruction", step.get("instruction", ""))
        console.print("[bold]Planning next step:[/]")
        console.print(table)
        if data.get("done"):
            console.print("[green]- Task complete![/]")
        console.print()

    elif kind == "step_executed":
        console.print("Executed step.")
        if data.get("extraction"):
            console.print("Extraction result:", data["extraction"])
        if data.get("url"):
            console.print(f"Navigated to: {data['url']}")
        console.print()

    elif kind == "complete":
        console.print(Panel(
            f"Total steps executed: [bold]{len(data.get('steps', []))}[/]",
            title="✓ Task completed successfully",
            border_style="green",
        ))

    elif kind == "error":
        console.print(f"[red]Error occurred:[/] {data.get('error')}\n")

    else:
        console.print(f"[yellow]Unknown response type:[/] {data}")


# =========================================================================
# Commands
# =========================================================================


@app.command()
def serve(
    config: Optional[Path] = typer.Option(None, help="YAML settings file"),
    host: Optional[str] = typer.Option(None, help="Bind address"),
    port: Optional[int] = typer.Option(None, help="Bind port"),
):
    """Serve the HTTP API with uvicorn."""
    import uvicorn

    from pilot.server.api import create_app

    settings = _get_settings(config)
    if not settings.api_key:
        console.print("[yellow]⚠ API_KEY is not set: authenticated routes will answer 500.[/]")

    uvicorn.run(
        create_app(settings),
        host=host or settings.host,
        port=port or settings.port,
        log_config=None,
    )


@app.command()
def run(
    goal: Optional[list[str]] = typer.Argument(None, help="Goal for the agent"),
    session_id: Optional[str] = typer.Option(None, help="Reuse an existing session"),
    timezone: Optional[str] = typer.Option(None, help="Timezone used to pick a region"),
    context_id: Optional[str] = typer.Option(None, help="Persisted context to reuse"),
    config: Optional[Path] = typer.Option(None, help="YAML settings file"),
):
    """Run an agent in-process and print its events."""
    from pilot.agent.loop import AgentLoop, AgentRun
    from pilot.agent.planner import Planner
    from pilot.browser.executor import ActionExecutor
    from pilot.browser.sessions import SessionManager
    from pilot.llm.router import ModelRouter

    settings = _get_settings(config)
    text = _read_goal(goal)

    async def _run():
        executor = ActionExecutor(settings)
        router = ModelRouter(settings)
        loop = AgentLoop(
            SessionManager(settings),
            executor,
            Planner(router, executor),
            max_steps=settings.max_steps,
        )
        agent_run = AgentRun(
            goal=text,
            session_id=session_id,
            timezone=timezone or os.environ.get("TZ"),
            context_id=context_id,
        )
        async for event in loop.run(agent_run):
            print_event(event.to_record())

        stats = router.get_usage_stats()
        console.print(
            f"[dim]Model calls: {stats['total_calls']}  "
            f"tokens: {stats['total_tokens']}  "
            f"est. cost: ${stats['total_cost_usd']}[/]"
        )
        return agent_run

    agent_run = asyncio.run(_run())
    if agent_run.error:
        raise typer.Exit(code=1)


@app.command()
def stream(
    goal: Optional[list[str]] = typer.Argument(None, help="Goal for the agent"),
    url: str = typer.Option("http://localhost:3000", help="Pilot server base URL"),
    session_id: Optional[str] = typer.Option(None, help="Reuse an existing session"),
):
    """Start a run on a live server and print each streamed event."""
    api_key = os.environ.get("API_KEY", "").strip()
    if not api_key:
        console.print(Panel(
            "[red]API_KEY environment variable is not set[/]\n\n"
            "Set it in your .env file:\n"
            "  [dim]API_KEY=your_api_key_here[/]",
            title="⚠ Configuration Error",
            border_style="red",
        ))
        raise typer.Exit(code=1)

    text = _read_goal(goal)
    console.print(f'\nTesting agent API with goal: "{text}"\n')

    body: dict[str, Any] = {"goal": text}
    if session_id:
        body["sessionId"] = session_id

    try:
        with httpx.stream(
            "POST",
            f"{url.rstrip('/')}/api/agent",
            json=body,
            headers={"X-API-Key": api_key},
            timeout=httpx.Timeout(30.0, read=None),
        ) as response:
            console.print(f"Status: {response.status_code}")
            if response.status_code != 200:
                response.read()
                console.print(f"[red]Error response:[/] {response.text}")
                raise typer.Exit(code=1)

            for line in response.iter_lines():
                if not line.strip():
                    continue
                try:
                    print_event(json.loads(line))
                except ValueError:
                    console.print(f"Raw output: {line}")
    except httpx.HTTPError as e:
        console.print(f"[red]Error making request:[/] {e}")
        raise typer.Exit(code=1)

    console.print("[dim]Response ended[/]")


@app.command()
def region(
    timezone: str = typer.Argument(..., help="IANA timezone, e.g. Europe/Berlin"),
):
    """Show which Browserbase region a timezone maps to."""
    from pilot.browser.region import select_region, utc_offset_hours

    selected = select_region(timezone)
    try:
        offset = f"UTC{utc_offset_hours(timezone):+d}"
    except (ValueError, KeyError):
        offset = "unknown timezone"
    console.print(f"[cyan]{timezone}[/] ({offset}) → [bold]{selected.value}[/]")


@app.command()
def end_session(
    session_id: str = typer.Argument(..., help="Session to release"),
    config: Optional[Path] = typer.Option(None, help="YAML settings file"),
):
    """Release a Browserbase session."""
    from pilot.browser.sessions import SessionManager

    settings = _get_settings(config)

    async def _run():
        await SessionManager(settings).terminate(session_id)

    try:
        asyncio.run(_run())
    except PilotError as e:
        console.print(f"[red]Failed to delete session:[/] {e}")
        raise typer.Exit(code=1)
    console.print(f"[green]Released session {session_id}[/]")


if __name__ == "__main__":
    app()
