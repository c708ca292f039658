"""Filesystem helpers for devbootstrap."""

import logging
import os
import shutil

from rich.console import Console


class FileSystemService:
    """Encapsulates file and directory side effects."""

    def __init__(self, logger: logging.Logger, console: Console):
        self.logger = logger
        self.console = console

    def is_non_empty_dir(self, path: str) -> bool:
        if not os.path.isdir(path):
            return False
        try:
            return any(True for _ in os.scandir(path))
        except OSError as exc:
            self.logger.warning("Could not list %s: %s", path, exc)
            return False

    def file_contains(self, path: str, needle: str) -> bool:
        if not os.path.isfile(path):
            return False
        with open(path, "r", encoding="utf-8", errors="replace") as file_obj:
            return needle in file_obj.read()

    def append_block(self, path: str, lines):
        """Appends ``lines`` to ``path``, creating parent directories."""
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        with open(path, "a", encoding="utf-8") as file_obj:
            file_obj.write("\n")
            for line in lines:
                file_obj.write(f"{line}\n")
        self.logger.debug("Appended %s line(s) to %s", len(lines), path)

    def copy_if_missing(self, source: str, destination: str) -> bool:
        if os.path.exists(destination) or not os.path.isfile(source):
            return False
        shutil.copy2(source, destination)
        self.logger.info("Created %s from %s", destination, source)
        return True

    def remove_file(self, path: str):
        try:
            os.remove(path)
            self.logger.debug("Removed file: %s", path)
        except OSError as exc:
            message = f"Warning: Could not remove {path}: {exc}"
            self.console.print(f"[yellow]{message}[/yellow]")
            self.logger.warning(message)
