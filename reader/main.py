"""ReadAble terminal reader — simplify a document and listen to it.

Run with: python -m reader.main FILE [--debug] [--listen] [--original]

Features:
  - Spinner per pipeline stage (connect, extract, chunk, simplify, combine)
  - Simplified text in a panel, original text with --original
  - Processing summary and reading time estimate
  - --listen: playback REPL with live word highlighting
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from engine.formatter import estimate_reading_time, format_text_for_speech
from engine.preferences import (
    JsonFileSettingsStore,
    ReaderPreferences,
    load_preferences,
    playback_rate,
    save_preferences,
    validate_preferences,
)
from engine.synchronizer import SpeechSynchronizer
from engine.tts import Pyttsx3Engine, select_voice
from engine.types import CombinedResult

from .config import Settings, settings
from .pipeline import DocumentPipeline, PipelineError, PipelineResult

console = Console()

CONTEXT_WORDS = 8

HELP = (
    "[dim]Commands: play, pause, stop, seek N, rate X, voice male|female, "
    "text simplified|original, help, quit[/]"
)


def _setup_logging(debug: bool) -> None:
    level = logging.DEBUG if debug else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(name)-14s %(levelname)-7s %(message)s",
        datefmt="%H:%M:%S",
    )
    # Keep HTTP-level debug logs out of the reader's output
    if debug:
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)
        logging.getLogger("pdfminer").setLevel(logging.WARNING)
        logging.getLogger("PIL").setLevel(logging.WARNING)


# ── Document display ──────────────────────────────────────────

def _print_summary(result: PipelineResult) -> None:
    stats = result.combined.stats
    table = Table(title="Processing summary", show_header=False, box=None)
    table.add_row("Document", result.doc_id)
    table.add_row("Chunks", str(stats.total_chunks))
    table.add_row("Simplified", f"[green]{stats.successful_chunks}[/]")
    if stats.failed_chunks:
        table.add_row("Kept original", f"[yellow]{stats.failed_chunks}[/]")
    table.add_row("Words", str(stats.word_count))
    if result.extraction.images and result.extraction.images.total_images:
        images = result.extraction.images
        table.add_row("Images", f"{images.total_images} ({images.text_images} with text, {images.diagrams} diagrams)")
    reading = estimate_reading_time(result.combined.display_text)
    table.add_row("Reading time", f"~{reading.minutes} min {reading.seconds} s")
    console.print(table)

    for err in stats.errors:
        console.print(f"  [yellow]chunk {err.seq}:[/] {err.error}")


def _show_document(result: PipelineResult, show_original: bool) -> None:
    combined = result.combined
    if show_original:
        console.print(Panel(combined.original_text, title="Original", border_style="dim"))
    console.print(Panel(combined.display_text, title="Simplified", border_style="blue"))
    _print_summary(result)


# ── Playback REPL ─────────────────────────────────────────────

def _context(words: list[str], index: int) -> Text:
    """The current word highlighted between its neighbours."""
    lo = max(0, index - CONTEXT_WORDS)
    hi = min(len(words), index + CONTEXT_WORDS + 1)
    line = Text("  ")
    if lo > 0:
        line.append("… ", style="dim")
    for i in range(lo, hi):
        if i == index:
            line.append(words[i], style="bold black on yellow")
        else:
            line.append(words[i], style="dim")
        line.append(" ")
    if hi < len(words):
        line.append("…", style="dim")
    return line


async def _playback_repl(combined: CombinedResult, prefs: ReaderPreferences,
                         store: JsonFileSettingsStore, cfg: Settings) -> None:
    engine = Pyttsx3Engine(loop=asyncio.get_running_loop(), words_per_minute=cfg.base_words_per_minute)
    try:
        await asyncio.to_thread(engine.start)
    except Exception as e:
        # pyttsx3 raises driver-specific errors when no speech backend exists
        console.print(f"[red]Speech is not available: {e}[/]")
        return

    voices = engine.list_voices()
    voice = select_voice(prefs.voice_type, voices)
    sync = SpeechSynchronizer(
        engine,
        rate=playback_rate(prefs),
        voice=voice,
        restart_delay=cfg.seek_restart_delay,
        rate_settle_delay=cfg.rate_settle_delay,
        voice_settle_delay=cfg.voice_settle_delay,
    )
    texts = {
        "simplified": combined.speech_text,
        "original": format_text_for_speech(combined.original_text),
    }
    sync.load(texts["simplified"])

    def on_word(index: Optional[int]) -> None:
        if index is not None and prefs.highlight_while_reading:
            console.print(_context(sync.words, index))

    sync.on_word(on_word)
    sync.on_error(lambda message: console.print(f"[red]Speech error: {message}[/]"))

    console.print(f"[bold]Listening[/] [dim]({len(sync.words)} words, voice: "
                  f"{voice.name if voice else 'default'}, rate: {sync.state.rate:.1f}x)[/]")
    console.print(HELP)

    try:
        while True:
            try:
                line = await asyncio.to_thread(console.input, "[bold green]>[/] ")
            except (EOFError, KeyboardInterrupt):
                console.print("\n[dim]Goodbye![/]")
                break

            parts = line.strip().split()
            if not parts:
                continue
            cmd, args = parts[0].lower(), parts[1:]

            if cmd in ("quit", "exit", "q"):
                console.print("[dim]Goodbye![/]")
                break
            elif cmd == "help":
                console.print(HELP)
            elif cmd == "play":
                await sync.play()
            elif cmd == "pause":
                sync.pause()
            elif cmd == "stop":
                sync.stop()
            elif cmd == "seek" and len(args) == 1 and args[0].isdigit():
                target = int(args[0])
                if target >= len(sync.words):
                    console.print(f"[yellow]Word {target} is past the end ({len(sync.words)} words).[/]")
                    continue
                await sync.play_from_word(target)
            elif cmd == "rate" and len(args) == 1:
                try:
                    await sync.set_rate(float(args[0]))
                except ValueError as e:
                    console.print(f"[red]{e}[/]")
                    continue
                console.print(f"[dim]Rate {sync.state.rate:.2f}x[/]")
            elif cmd == "voice" and args and args[0] in ("male", "female"):
                prefs.voice_type = args[0]
                save_preferences(store, prefs)
                chosen = select_voice(prefs.voice_type, voices)
                await sync.set_voice(chosen)
                console.print(f"[dim]Voice: {chosen.name if chosen else 'default'}[/]")
            elif cmd == "text" and args and args[0] in texts:
                sync.load(texts[args[0]])
                console.print(f"[dim]Loaded {args[0]} text ({len(sync.words)} words). Type 'play'.[/]")
            else:
                console.print(f"[yellow]Unknown command: {line.strip()}[/]")
                console.print(HELP)
    finally:
        sync.close()
        await asyncio.to_thread(engine.close)


# ── Entry point ───────────────────────────────────────────────

async def _run(path: str, listen: bool, show_original: bool) -> int:
    store = JsonFileSettingsStore(settings.preferences_path)
    prefs = load_preferences(store)
    for tip in validate_preferences(prefs):
        console.print(f"[dim]Tip: {tip}[/]")

    pipeline = DocumentPipeline(settings)
    try:
        with console.status("[dim]Starting...[/]", spinner="dots") as status:
            result = await pipeline.process_file(
                path,
                on_progress=lambda stage, message: status.update(f"[dim]{message}[/]"),
            )
    except PipelineError as e:
        console.print(f"[red]Error ({e.stage}): {e}[/]")
        return 1
    finally:
        await pipeline.close()

    _show_document(result, show_original)
    if listen:
        await _playback_repl(result.combined, prefs, store, settings)
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="ReadAble document reader")
    parser.add_argument("file", help="Document to read (.txt, .docx or .pdf)")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("--listen", action="store_true", help="Read the document aloud")
    parser.add_argument("--original", action="store_true", help="Also show the original text")
    args = parser.parse_args()

    _setup_logging(args.debug)
    sys.exit(asyncio.run(_run(args.file, args.listen, args.original)))


if __name__ == "__main__":
    main()
