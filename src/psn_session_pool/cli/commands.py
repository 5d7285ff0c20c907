"""Command implementations for the ``psn-pool`` CLI.

Pattern: Prompt Renderer
-------------------------
Each command builds a ``PSNClient`` from the loaded settings, runs one or
more calls against it, and renders the result with Rich.  Before exiting it
always prints the accounts' current refresh tokens: PSN rotates them on every
refresh, so the ones in the settings file stop working once they have been
used.
"""

from __future__ import annotations

import asyncio
import logging
import pathlib
from typing import Awaitable, Callable

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from psn_session_pool.client import PSNClient
from psn_session_pool.config.settings import Settings
from psn_session_pool.errors import PSNError
from psn_session_pool.models import (
    MessageThreadsSummary,
    PSNUser,
    StoreSearchResult,
    TrophyTitles,
)

logger = logging.getLogger(__name__)
console = Console()


def _render_profile(user: PSNUser) -> None:
    lines = [f"[bold]{user.online_id}[/bold] ({user.region or 'unknown region'})"]
    if user.about_me:
        lines.append(user.about_me)
    if user.trophy_summary is not None:
        earned = user.trophy_summary.earned_trophies
        lines.append(
            f"Level {user.trophy_summary.level} ({user.trophy_summary.progress}%) - "
            f"P{earned.platinum} G{earned.gold} S{earned.silver} B{earned.bronze}"
        )
    console.print(Panel("\n".join(lines), title="Profile", border_style="blue"))


def _render_titles(titles: TrophyTitles) -> None:
    table = Table(title=f"Trophy titles ({titles.total_results} total)")
    table.add_column("NP communication id", style="cyan")
    table.add_column("Title", style="bold")
    table.add_column("Platform")
    table.add_column("Progress", justify="right")
    for title in titles.trophy_titles:
        progress = f"{title.compared_user.progress}%" if title.compared_user else "-"
        table.add_row(
            title.np_communication_id,
            title.trophy_title_name,
            title.trophy_title_platfrom,
            progress,
        )
    console.print(table)


def _render_threads(summary: MessageThreadsSummary) -> None:
    table = Table(title=f"Message threads ({summary.total_size} total)")
    table.add_column("Thread", style="cyan")
    table.add_column("Modified")
    for thread in summary.threads:
        table.add_row(thread.thread_id, thread.thread_modified_date)
    console.print(table)


def _render_store(result: StoreSearchResult) -> None:
    table = Table(title="Store results")
    table.add_column("Id", style="cyan")
    table.add_column("Name", style="bold")
    table.add_column("Platforms")
    table.add_column("Released")
    for item in result.included:
        table.add_row(
            item.id,
            item.attributes.name,
            ", ".join(item.attributes.platforms),
            item.attributes.release_date,
        )
    console.print(table)


def _render_tokens(client: PSNClient) -> None:
    table = Table(title="Current refresh tokens (save these)")
    table.add_column("Session", style="cyan")
    table.add_column("Online id")
    table.add_column("State")
    table.add_column("Refresh token", style="green")
    table.add_column("Expires")
    for snapshot in client.get_inner():
        table.add_row(
            snapshot.uuid,
            snapshot.online_id or "-",
            snapshot.state.value,
            snapshot.refresh_token or "-",
            snapshot.refresh_expires_at.isoformat() if snapshot.refresh_expires_at else "-",
        )
    console.print(table)


async def _run(
    settings: Settings,
    action: Callable[[PSNClient], Awaitable[int | None]],
) -> int:
    """Run *action* against a fresh client; its return value, if any, is the exit status."""
    async with PSNClient.from_settings(settings) as client:
        try:
            status = await action(client)
        except PSNError as exc:
            console.print(f"[red]Request failed:[/red] {exc}")
            return 1
        finally:
            _render_tokens(client)
    return status or 0


def run_trophies(settings: Settings, online_id: str, offset: int = 0) -> int:
    async def action(client: PSNClient) -> None:
        _render_titles(await client.get_trophy_titles(online_id, offset))

    return asyncio.run(_run(settings, action))


def run_threads(settings: Settings, offset: int = 0) -> int:
    async def action(client: PSNClient) -> None:
        _render_threads(await client.get_message_threads(offset))

    return asyncio.run(_run(settings, action))


def run_store_search(settings: Settings, name: str, country: str) -> int:
    async def action(client: PSNClient) -> None:
        _render_store(await client.search_store_items(name, country=country))

    return asyncio.run(_run(settings, action))


def run_send_message(
    settings: Settings,
    online_id: str,
    text: str | None,
    image_path: str | None,
) -> int:
    image = pathlib.Path(image_path).read_bytes() if image_path else None

    async def action(client: PSNClient) -> None:
        response = await client.send_message(online_id, text=text, image=image)
        console.print(f"[green]Sent[/green] to {online_id} in thread {response.thread_id}")

    return asyncio.run(_run(settings, action))


def run_profiles(settings: Settings, online_ids: list[str]) -> int:
    """Fetch several profiles concurrently, spread over the configured accounts.

    Exits with 1 if any of the lookups failed.
    """

    async def action(client: PSNClient) -> int:
        results = await asyncio.gather(
            *(client.get_profile(online_id) for online_id in online_ids),
            return_exceptions=True,
        )
        for online_id, result in zip(online_ids, results):
            if isinstance(result, PSNError):
                console.print(f"[red]{online_id}:[/red] {result}")
            elif isinstance(result, BaseException):
                raise result
            else:
                _render_profile(result)
        return 1 if any(isinstance(result, PSNError) for result in results) else 0

    return asyncio.run(_run(settings, action))
