"""
MockupGen — command line front-end

Usage:
  python -m mockupgen.main --image logo.png --category mug
  python -m mockupgen.main --image logo.png --category tote-bag --description "dark background, minimal"
  python -m mockupgen.main --image logo.png --category poster --export 4K --no-interactive
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from rich.console import Console
from rich.live import Live
from rich.panel import Panel
from rich.prompt import Prompt
from rich.rule import Rule
from rich.table import Table

from .codec import EXPORT_WIDTHS, to_data_uri
from .config import Settings
from .errors import ExportError
from .exporter import export_slot, save_original
from .orchestrator import SlotOrchestrator
from .prompts import MockupCategory
from .slots import ResultSlot, SlotStatus

console = Console()

MIME_BY_EXT = {
    ".png":  "image/png",
    ".jpg":  "image/jpeg",
    ".jpeg": "image/jpeg",
    ".webp": "image/webp",
}

_STATUS_STYLE = {
    SlotStatus.PENDING:   "[dim]queued[/dim]",
    SlotStatus.LOADING:   "[cyan]creating…[/cyan]",
    SlotStatus.SUCCEEDED: "[green]✓ ready[/green]",
    SlotStatus.FAILED:    "[red]✗ failed[/red]",
}


# ── CLI ───────────────────────────────────────────────────────────────────────

def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="MockupGen — 4 photorealistic product mockups from one logo"
    )
    parser.add_argument("--image", required=True, help="Logo / design file (PNG recommended)")
    parser.add_argument(
        "--category",
        default=MockupCategory.STATIONERY.slug,
        help="Mockup category: " + ", ".join(c.slug for c in MockupCategory),
    )
    parser.add_argument("--description", default="", help="Optional style / details")
    parser.add_argument("--output", default=None, help="Output directory (default: <MOCKUP_OUTPUT_DIR>/<timestamp>)")
    parser.add_argument(
        "--export",
        default=None,
        choices=list(EXPORT_WIDTHS),
        help="Also export every successful mockup at this resolution",
    )
    parser.add_argument(
        "--no-interactive",
        action="store_true",
        help="Exit after the batch instead of opening the redo / save prompt",
    )
    parser.add_argument("--verbose", action="store_true", help="Show library logs")
    return parser.parse_args(argv)


def load_source_image(path: Path) -> str:
    mime = MIME_BY_EXT.get(path.suffix.lower())
    if mime is None:
        raise ValueError(f"Unsupported image type: {path.suffix or path.name}")
    return to_data_uri(path.read_bytes(), mime)


# ── Rendering ─────────────────────────────────────────────────────────────────

def render_slots(slots: Sequence[ResultSlot], category: MockupCategory) -> Table:
    table = Table(title=f"Mockups — {category.value}", expand=False)
    table.add_column("#", justify="right")
    table.add_column("Status")
    table.add_column("Detail", overflow="fold")
    for slot in slots:
        if slot.succeeded:
            detail = f"[dim]identity {slot.identity}[/dim]"
        elif slot.failed:
            detail = slot.error or ""
        else:
            detail = ""
        table.add_row(str(slot.position + 1), _STATUS_STYLE[slot.status], detail)
    return table


def _save_results(slots: Sequence[ResultSlot], output_dir: Path, export: Optional[str]) -> List[Path]:
    saved: List[Path] = []
    for slot in slots:
        if not slot.succeeded:
            continue
        try:
            saved.append(save_original(slot, output_dir))
            if export:
                saved.append(export_slot(slot, export, output_dir))
        except ExportError as exc:
            console.print(f"  [yellow]⚠ Slot {slot.position + 1}: {exc}[/yellow]")
    return saved


# ── Interactive review ────────────────────────────────────────────────────────

def parse_command(raw: str, slot_count: int) -> Tuple[str, Optional[int], Optional[str]]:
    """
    Parse one review command.

      redo N            → ("REDO", N-1, None)
      save N [QUALITY]  → ("SAVE", N-1, QUALITY or None)
      all               → ("ALL", None, None)
      quit / q / exit   → ("QUIT", None, None)
    Anything else       → ("UNKNOWN", None, None)
    """
    words = raw.strip().split()
    if not words:
        return ("UNKNOWN", None, None)
    verb = words[0].lower()
    if verb in {"q", "quit", "exit"}:
        return ("QUIT", None, None)
    if verb == "all":
        return ("ALL", None, None)
    if verb in {"redo", "save"} and len(words) >= 2 and words[1].isdigit():
        index = int(words[1]) - 1
        if 0 <= index < slot_count:
            quality = words[2] if verb == "save" and len(words) > 2 else None
            return (verb.upper(), index, quality)
    return ("UNKNOWN", None, None)


async def review_loop(
    orchestrator: SlotOrchestrator,
    source_image: str,
    category: MockupCategory,
    description: str,
    output_dir: Path,
) -> None:
    """Redo individual slots or export them until the user quits."""
    while True:
        console.print(render_slots(orchestrator.slots, category))
        console.print(
            "  [dim]Commands: 'redo 2'  |  'save 1 4K'  |  'all'  |  'quit'\n"
            f"  Qualities: {', '.join(f'{k} ({v}px)' for k, v in EXPORT_WIDTHS.items())}[/dim]\n"
        )
        raw = await asyncio.get_running_loop().run_in_executor(None, Prompt.ask, "💬 Command")
        action, index, quality = parse_command(raw, len(orchestrator.slots))

        if action == "QUIT":
            break

        if action == "REDO":
            orchestrator.redo_slot(index, source_image, category, description)
            console.print(f"[bold cyan]→ Regenerating slot {index + 1}...[/bold cyan]")
            t0 = time.time()
            await orchestrator.wait_idle()
            console.print(f"  [dim]done in {time.time() - t0:.1f}s[/dim]")

        elif action == "SAVE":
            slot = orchestrator.slot(index)
            try:
                path = export_slot(slot, quality, output_dir) if quality else save_original(slot, output_dir)
            except ExportError as exc:
                console.print(f"  [yellow]⚠ {exc}[/yellow]")
                continue
            console.print(f"  [green]✓ Saved[/green] → {path}")

        elif action == "ALL":
            for path in _save_results(orchestrator.slots, output_dir, None):
                console.print(f"  [green]✓[/green] {path}")

        else:
            console.print("  [yellow]⚠ Could not understand the command — try again.[/yellow]")


# ── Main ──────────────────────────────────────────────────────────────────────

async def run(args: argparse.Namespace, settings: Settings) -> int:
    try:
        category = MockupCategory.parse(args.category)
        source_image = load_source_image(Path(args.image))
    except (ValueError, OSError) as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        return 2

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    output_dir = Path(args.output) if args.output else settings.output_dir / timestamp

    console.print(Rule("[bold magenta]MockupGen[/bold magenta]"))
    console.print(
        f"  Category: [bold]{category.value}[/bold]  |  "
        f"Image: [bold]{args.image}[/bold]  |  "
        f"Output: [bold]{output_dir}[/bold]"
    )

    orchestrator = settings.build_orchestrator()
    t0 = time.time()
    with Live(render_slots((), category), console=console, refresh_per_second=8) as live:
        unsubscribe = orchestrator.subscribe(lambda slots: live.update(render_slots(slots, category)))
        orchestrator.start_batch(source_image, category, args.description)
        await orchestrator.wait_idle()
        unsubscribe()

    n_ok = len(orchestrator.succeeded())
    saved = _save_results(orchestrator.slots, output_dir, args.export)
    console.print(
        Panel(
            f"{n_ok}/{len(orchestrator.slots)} mockup(s) generated in [bold]{time.time() - t0:.0f}s[/bold]\n"
            + (f"Saved to: [bold]{output_dir}[/bold]" if saved else "Nothing saved."),
            title="[bold green]Batch complete[/bold green]" if n_ok else "[bold red]Batch failed[/bold red]",
            border_style="green" if n_ok else "red",
        )
    )

    if not args.no_interactive:
        await review_loop(orchestrator, source_image, category, args.description, output_dir)
    return 0 if n_ok else 1


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = parse_args(argv)
    logging.basicConfig(
        format="%(asctime)s — %(levelname)s — %(name)s — %(message)s",
        level=logging.INFO if args.verbose else logging.WARNING,
    )
    try:
        settings = Settings.from_env()
    except ValueError as exc:
        console.print(f"[bold red]Invalid configuration:[/bold red] {exc}")
        sys.exit(1)
    _check_env(settings)
    sys.exit(asyncio.run(run(args, settings)))


def _check_env(settings: Settings) -> None:
    """Refuse to start without a credential."""
    if not settings.is_configured:
        console.print("[bold red]Error:[/bold red] GEMINI_API_KEY not set.")
        console.print("Create a .env file from .env.example and add your key.")
        sys.exit(1)


if __name__ == "__main__":
    main()
