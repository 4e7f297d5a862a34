#!/usr/bin/env python3
"""OpsDesk CLI.

Usage:
    opsdesk tasks [--search --category --status --priority --by-priority]
    opsdesk add TITLE -c CATEGORY -p PRIORITY [--alert-at "YYYY-MM-DD HH:MM"]
    opsdesk status TASK_ID STATUS    - Change a task's status
    opsdesk rm TASK_ID               - Delete a task
    opsdesk notes [--search TERM]    - List notes
    opsdesk note TITLE [--content TEXT --tags a,b]
    opsdesk dashboard                - Show summary counts
    opsdesk alerts [--watch]         - Show (and follow) task alerts
"""

import os
import sys
import time
from datetime import datetime
from typing import Optional

import click
import httpx
from rich.console import Console
from rich.table import Table
from rich.panel import Panel
from rich.text import Text

API_BASE = os.getenv("OPSDESK_API_URL", "http://localhost:8000")
USER = os.getenv("OPSDESK_USER", "")

CATEGORIES = ["infrastructure", "security", "development", "support", "monitoring"]
PRIORITIES = ["low", "medium", "high", "critical"]
STATUSES = ["pending", "scheduled", "in_progress", "completed", "cancelled"]

PRIORITY_STYLES = {
    "critical": "bold red",
    "high": "dark_orange",
    "medium": "yellow",
    "low": "green",
}

STATUS_ICONS = {
    "completed": "[green]✓[/green]",
    "in_progress": "[blue]▶[/blue]",
    "pending": "[yellow]●[/yellow]",
    "scheduled": "[magenta]⏰[/magenta]",
    "cancelled": "[dim]✗[/dim]",
}

console = Console()


def _headers() -> dict:
    return {"X-User-Id": USER} if USER else {}


def _handle_api_error(error: Exception, endpoint: str) -> None:
    """Handle API errors with user-friendly messages."""
    if isinstance(error, httpx.ConnectError):
        console.print()
        console.print("[red]⚠️  Cannot connect to OpsDesk API[/red]")
        console.print()
        console.print(f"[dim]Tried: {API_BASE}{endpoint}[/dim]")
        console.print("[dim]Is the server running? Is OPSDESK_API_URL correct?[/dim]")
    elif isinstance(error, httpx.TimeoutException):
        console.print()
        console.print("[red]⚠️  Request timed out[/red]")
    elif isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
        console.print()
        if status in (400, 404, 422):
            try:
                detail = error.response.json().get("detail", "Bad request")
            except ValueError:
                detail = "Bad request"
            console.print(f"[red]⚠️  {detail}[/red]")
        elif status >= 500:
            console.print("[red]⚠️  Server error - the API is having issues[/red]")
        else:
            console.print(f"[red]⚠️  API Error: HTTP {status}[/red]")
    else:
        console.print()
        console.print(f"[red]⚠️  Unexpected error: {error}[/red]")
    sys.exit(1)


def api_request(
    method: str,
    endpoint: str,
    data: Optional[dict] = None,
    params: Optional[dict] = None,
):
    """Make a request to the API and return the decoded body (None for 204)."""
    try:
        response = httpx.request(
            method,
            f"{API_BASE}{endpoint}",
            json=data,
            params={k: v for k, v in (params or {}).items() if v},
            headers=_headers(),
            timeout=30,
        )
        response.raise_for_status()
        if response.status_code == 204:
            return None
        return response.json()
    except httpx.HTTPError as e:
        _handle_api_error(e, endpoint)


def api_get(endpoint: str, params: Optional[dict] = None):
    return api_request("GET", endpoint, params=params)


def api_post(endpoint: str, data: Optional[dict] = None):
    return api_request("POST", endpoint, data=data or {})


def format_alert_time(value: Optional[str]) -> str:
    if not value:
        return "-"
    return value.replace("T", " ")[:16]


def format_alert(alert: dict) -> Panel:
    """Format an alert as a rich Panel."""
    critical = alert.get("severity") == "critical"
    content = Text(alert.get("body", ""))
    return Panel(
        content,
        title=f"[bold]{'🚨' if critical else '⏰'} {alert.get('title', 'Alert')}[/bold]",
        subtitle=f"[dim]{alert.get('task_id') or ''}[/dim]",
        border_style="red" if critical else "yellow",
    )


@click.group()
def cli():
    """OpsDesk - IT operations tasks, notes and alerts."""
    pass


@cli.command()
@click.option("--search", "-s", help="Text to find in title or description")
@click.option("--category", "-c", type=click.Choice(CATEGORIES + ["all"]))
@click.option("--status", type=click.Choice(STATUSES + ["all"]))
@click.option("--priority", "-p", type=click.Choice(PRIORITIES + ["all"]))
@click.option("--by-priority", is_flag=True, help="Sort critical first")
def tasks(
    search: Optional[str],
    category: Optional[str],
    status: Optional[str],
    priority: Optional[str],
    by_priority: bool,
):
    """List tasks, newest first."""
    data = api_get(
        "/tasks",
        {
            "search": search,
            "category": category,
            "status": status,
            "priority": priority,
            "sort": "priority" if by_priority else None,
        },
    )

    if not data:
        console.print("[dim]No tasks found.[/dim]")
        return

    table = Table(title="Tasks")
    table.add_column("ID", style="dim", width=8)
    table.add_column("", width=2)
    table.add_column("Title", style="bold")
    table.add_column("Category", width=14)
    table.add_column("Priority", width=9)
    table.add_column("Alert", width=16)

    for task in data:
        priority_value = task.get("priority", "")
        style = PRIORITY_STYLES.get(priority_value, "")
        table.add_row(
            task.get("id", "?")[:8],
            STATUS_ICONS.get(task.get("status"), "?"),
            task.get("title", "Untitled")[:50],
            task.get("category", ""),
            f"[{style}]{priority_value}[/{style}]" if style else priority_value,
            format_alert_time(task.get("alert_time")),
        )

    console.print()
    console.print(table)
    console.print()
    console.print(f"[dim]Total: {len(data)} tasks[/dim]")


@cli.command()
@click.argument("title")
@click.option("--description", "-d", help="Task description")
@click.option("--category", "-c", type=click.Choice(CATEGORIES), required=True)
@click.option("--priority", "-p", type=click.Choice(PRIORITIES), required=True)
@click.option(
    "--alert-at",
    type=click.DateTime(formats=["%Y-%m-%d %H:%M", "%Y-%m-%dT%H:%M"]),
    help="Local time to raise a reminder",
)
def add(
    title: str,
    description: Optional[str],
    category: str,
    priority: str,
    alert_at: Optional[datetime],
):
    """Create a new task."""
    payload = {
        "title": title,
        "description": description,
        "category": category,
        "priority": priority,
    }
    if alert_at:
        # Send with the local offset so the server stores the right instant
        payload["alert_time"] = alert_at.astimezone().isoformat()

    with console.status("[bold blue]Creating task...", spinner="dots"):
        data = api_post("/tasks", payload)

    console.print()
    console.print(f"[green]✓[/green] Created: [bold]{data['title']}[/bold]")
    console.print(f"[dim]ID: {data['id']} | status: {data['status']}[/dim]")


@cli.command()
@click.argument("task_id")
@click.argument("status", type=click.Choice(STATUSES))
def status(task_id: str, status: str):
    """Change a task's status."""
    data = api_request("PATCH", f"/tasks/{task_id}/status", {"status": status})
    console.print(
        f"{STATUS_ICONS.get(data['status'], '')} {data['title']} → {data['status']}"
    )


@cli.command()
@click.argument("task_id")
@click.confirmation_option(prompt="Delete this task?")
def rm(task_id: str):
    """Delete a task."""
    api_request("DELETE", f"/tasks/{task_id}")
    console.print("[green]✓[/green] Task removed")


@cli.command()
@click.option("--search", "-s", help="Text to find in title, content or tags")
def notes(search: Optional[str]):
    """List notes, newest first."""
    data = api_get("/notes", {"search": search})

    if not data:
        console.print("[dim]No notes found.[/dim]")
        return

    console.print()
    for note in data:
        content = Text(note.get("content") or "")
        if note.get("tags"):
            content.append("\n\n")
            content.append(" ".join(f"#{tag}" for tag in note["tags"]), style="cyan")
        console.print(
            Panel(
                content,
                title=f"[bold]{note.get('title', 'Untitled')}[/bold]",
                subtitle=f"[dim]{note.get('id', '?')[:8]}[/dim]",
                border_style="blue",
            )
        )


@cli.command()
@click.argument("title")
@click.option("--content", "-m", help="Note body")
@click.option("--tags", "-t", default="", help="Comma-separated tags")
def note(title: str, content: Optional[str], tags: str):
    """Create a note."""
    data = api_post("/notes", {"title": title, "content": content, "tags": tags})
    console.print(f"[green]✓[/green] Note saved: [bold]{data['title']}[/bold]")


@cli.command()
def dashboard():
    """Show summary counts and recent tasks."""
    data = api_get("/dashboard")
    stats = data.get("stats", {})

    console.print()
    console.print("[bold]📊 OVERVIEW[/bold]")
    console.print(f"• [yellow]{stats.get('pending', 0)}[/yellow] pending")
    console.print(f"• [blue]{stats.get('in_progress', 0)}[/blue] in progress")
    console.print(f"• [green]{stats.get('completed_today', 0)}[/green] completed today")
    console.print(f"• [red]{stats.get('critical', 0)}[/red] critical")
    console.print(f"• {stats.get('scheduled_alerts', 0)} upcoming alerts")
    console.print(f"• {stats.get('notes', 0)} notes")

    recent = data.get("recent_tasks", [])
    if recent:
        console.print()
        console.print("[bold]🕒 RECENT[/bold]")
        for task in recent:
            console.print(
                f"{STATUS_ICONS.get(task.get('status'), '?')} {task.get('title')} "
                f"[dim]({task.get('priority')})[/dim]"
            )
    console.print()


@cli.command()
@click.option("--watch", "-w", is_flag=True, help="Keep polling for new alerts")
@click.option("--interval", default=15, help="Seconds between polls with --watch")
def alerts(watch: bool, interval: int):
    """Show task alerts."""
    last_seq = 0
    while True:
        data = api_get("/alerts", {"after": last_seq})
        for alert in data:
            console.print(format_alert(alert))
            last_seq = max(last_seq, alert.get("seq", 0))

        if not watch:
            if not data:
                console.print("[dim]No alerts.[/dim]")
            return
        time.sleep(interval)


if __name__ == "__main__":
    cli()
