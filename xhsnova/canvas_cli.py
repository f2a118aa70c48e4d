"""
Terminal canvas viewer.

Streams the bluechat research service for a query and renders the keyword
grid live as cards arrive.

Run with: python -m xhsnova.canvas_cli "春季护肤" --user-id me
"""

import argparse
import asyncio
import sys
import uuid

from rich.console import Console
from rich.live import Live
from rich.panel import Panel
from rich.table import Table

from .canvas import CanvasState
from .config import SLOTS_PER_KEYWORD
from .exceptions import NovaError
from .logging_config import set_debug_mode
from .upstream import BluechatClient

console = Console()


def render_canvas(state: CanvasState) -> Table:
    """Build a table with one row per keyword and one column per slot."""
    table = Table(title=f"Canvas ({state.phase})", show_lines=True, expand=True)
    table.add_column("Keyword", style="cyan", no_wrap=True)
    for i in range(SLOTS_PER_KEYWORD):
        table.add_column(f"#{i + 1}")

    for keyword_index, keyword in enumerate(state.keywords):
        band = state.canvas_items[keyword_index * SLOTS_PER_KEYWORD:(keyword_index + 1) * SLOTS_PER_KEYWORD]
        cells = []
        for slot in band:
            if slot.is_loading:
                cells.append(f"[dim]{slot.title}[/dim]")
            else:
                likes = slot.like_count or 0
                cells.append(f"[bold]{slot.title}[/bold]\n[dim]{slot.author or ''} ♥ {likes}[/dim]")
        table.add_row(keyword, *cells)
    return table


async def run(query: str, user_id: str, session_id: str, stage: str, limit: int, count: int) -> CanvasState:
    state = CanvasState()
    client = BluechatClient()
    request = {
        "stage": stage,
        "query": query,
        "user_id": user_id,
        "session_id": session_id,
        "limit": limit,
        "ids": [],
        "count": count
    }

    with Live(render_canvas(state), console=console, refresh_per_second=8) as live:
        async for event in client.stream_chat(request):
            state.process_stream_event(event)
            live.update(render_canvas(state))

    for insight in state.insights:
        console.print(Panel(insight.content, title=insight.title or "Insight", border_style="magenta"))
    return state


def main():
    parser = argparse.ArgumentParser(description="Stream research results into a live canvas grid")
    parser.add_argument("query", help="Topic to research")
    parser.add_argument("--user-id", default="cli")
    parser.add_argument("--session-id", default=None)
    parser.add_argument("--stage", default="STAGE_1", choices=["STAGE_1", "STAGE_2"])
    parser.add_argument("--limit", type=int, default=SLOTS_PER_KEYWORD)
    parser.add_argument("--count", type=int, default=5)
    parser.add_argument("--debug", action="store_true", help="Log debug output to the console")
    args = parser.parse_args()

    if args.debug:
        set_debug_mode(True)

    session_id = args.session_id or uuid.uuid4().hex
    try:
        asyncio.run(run(args.query, args.user_id, session_id, args.stage, args.limit, args.count))
    except NovaError as e:
        console.print(f"\n[red]Error:[/red] {e.message}")
        sys.exit(1)
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
        sys.exit(130)


if __name__ == "__main__":
    main()
