"""Tail and follow per-component log files."""

import threading
from collections import deque
from pathlib import Path
from typing import Dict, Optional

from rich.console import Console
from rich.markup import escape
from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from astra_stack.utils.logging import get_logger

logger = get_logger(__name__)


class LogFileChangeHandler(FileSystemEventHandler):
    """File system event handler forwarding changes of watched log files."""

    def __init__(self, watched: Dict[Path, str], callback):
        """
        Initialize handler.

        Args:
            watched: Resolved log path -> component name
            callback: Called with the path whenever a watched file changes
        """
        self.watched = watched
        self.callback = callback

    def on_modified(self, event: FileSystemEvent):
        """Handle file modification events."""
        self._dispatch(event)

    def on_created(self, event: FileSystemEvent):
        """Handle file creation events."""
        self._dispatch(event)

    def _dispatch(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        path = Path(event.src_path).resolve()
        if path in self.watched:
            self.callback(path)


class LogFollower:
    """Prints the tail of each component log and then follows appended lines."""

    def __init__(self, paths: Dict[str, Path], console: Optional[Console] = None):
        """
        Initialize LogFollower.

        Args:
            paths: Component name -> log file
            console: Console to print to
        """
        self.paths = {name: Path(path).resolve() for name, path in paths.items()}
        self.console = console or Console()
        self.observer: Optional[Observer] = None
        self._offsets: Dict[Path, int] = {}
        self._lock = threading.Lock()

    def print_tail(self, lines: int = 50) -> int:
        """
        Print the last lines of every log file.

        Args:
            lines: Lines per component

        Returns:
            Number of log files found
        """
        found = 0
        for name, path in self.paths.items():
            if not path.is_file():
                self.console.print(f"[dim]No log file for {name} ({path})[/dim]")
                self._offsets[path] = 0
                continue

            found += 1
            with open(path, "rb") as f:
                tail = deque(f, maxlen=lines)
                self._offsets[path] = f.tell()

            self.console.rule(f"[bold]{name}[/bold]")
            for line in tail:
                self._print_line(name, line.decode("utf-8", errors="replace"))
        return found

    def follow(self, stop_event: Optional[threading.Event] = None, poll: float = 0.5) -> None:
        """
        Print lines appended to the log files until stopped.

        Args:
            stop_event: Ends following when set; otherwise runs until
                interrupted with Ctrl+C
            poll: Seconds between stop checks
        """
        stop_event = stop_event or threading.Event()
        self._start_watcher()
        try:
            while not stop_event.wait(poll):
                pass
        finally:
            self._stop_watcher()

    def read_new(self, path: Path) -> None:
        """Print whatever was appended to ``path`` since the last read."""
        names = {p: n for n, p in self.paths.items()}
        name = names.get(path)
        if name is None:
            return

        with self._lock:
            if not path.is_file():
                return
            offset = self._offsets.get(path, 0)
            if path.stat().st_size < offset:
                # Truncated or rotated
                offset = 0

            with open(path, "rb") as f:
                f.seek(offset)
                data = f.read()

            # Keep a partial last line for the next event
            data = data[:data.rfind(b"\n") + 1]
            self._offsets[path] = offset + len(data)

            for line in data.decode("utf-8", errors="replace").splitlines():
                self._print_line(name, line)

    def _print_line(self, name: str, line: str) -> None:
        self.console.print(f"[cyan]\\[{name}][/cyan] {escape(line.rstrip())}", highlight=False)

    def _start_watcher(self) -> None:
        handler = LogFileChangeHandler(
            watched={path: name for name, path in self.paths.items()},
            callback=self.read_new
        )

        directories = {path.parent for path in self.paths.values()}
        self.observer = Observer()
        for directory in directories:
            directory.mkdir(parents=True, exist_ok=True)
            self.observer.schedule(handler, str(directory), recursive=False)
        self.observer.start()

        logger.debug(f"Following {len(self.paths)} log file(s)")

    def _stop_watcher(self) -> None:
        if self.observer:
            self.observer.stop()
            self.observer.join()
            self.observer = None
