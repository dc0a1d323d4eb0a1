"""Code editor session: open tabs and unsaved buffers over a VirtualFS."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .errors import IsADirectory, NotFound, UnsavedChanges
from .vfs import Result, VirtualFS

logger = logging.getLogger(__name__)


@dataclass
class Tab:
    """One open file.

    Attributes:
        path: Canonical path of the file.
        saved: Content as last read from or written to the filesystem.
        buffer: Current editor content.
    """

    path: str
    saved: str
    buffer: str

    @property
    def dirty(self) -> bool:
        return self.buffer != self.saved


class EditorSession:
    """Editor state for one window.

    Tabs hold their own buffers; the filesystem only changes on save().
    """

    def __init__(self, vfs: VirtualFS):
        self.vfs = vfs
        self._tabs: dict[str, Tab] = {}
        self.active: str | None = None

    @property
    def tabs(self) -> list[str]:
        """Open paths in the order they were opened."""
        return list(self._tabs)

    def tab(self, path: str) -> Tab:
        canonical = self.vfs.normalize(path)
        try:
            return self._tabs[canonical]
        except KeyError:
            raise NotFound(f"File is not open: '{canonical}'", canonical) from None

    def open(self, path: str) -> Tab:
        """Open a file (or focus it if already open).

        Raises:
            NotFound: If the file does not exist.
            IsADirectory: If the path is a directory.
        """
        canonical = self.vfs.normalize(path)
        if canonical in self._tabs:
            self.active = canonical
            return self._tabs[canonical]
        if self.vfs.is_directory(canonical):
            raise IsADirectory(f"Is a directory: '{canonical}'", canonical)
        content = self.vfs.read_file(canonical)
        if content is None:
            raise NotFound(f"No such file: '{canonical}'", canonical)
        tab = Tab(path=canonical, saved=content, buffer=content)
        self._tabs[canonical] = tab
        self.active = canonical
        return tab

    def edit(self, path: str, text: str) -> None:
        """Replace the buffer of an open tab."""
        self.tab(path).buffer = text

    def is_dirty(self, path: str) -> bool:
        return self.tab(path).dirty

    def save(self, path: str | None = None) -> Result:
        """Write a tab's buffer through the filesystem.

        Args:
            path: Tab to save; defaults to the active tab.
        """
        tab = self.tab(path or self.active or "")
        result = self.vfs.write_file(tab.path, tab.buffer)
        if result:
            tab.saved = tab.buffer
        else:
            logger.warning("save failed for %s: %s", tab.path, result.error)
        return result

    def save_all(self) -> list[Result]:
        return [self.save(path) for path, tab in self._tabs.items() if tab.dirty]

    def close(self, path: str, discard: bool = False) -> None:
        """Close a tab.

        Raises:
            UnsavedChanges: If the tab has unsaved edits and discard is False.
        """
        tab = self.tab(path)
        if tab.dirty and not discard:
            raise UnsavedChanges(f"Unsaved changes in '{tab.path}'", tab.path)
        del self._tabs[tab.path]
        if self.active == tab.path:
            self.active = next(reversed(self._tabs), None)

    def reload(self, path: str) -> Tab:
        """Re-read a clean tab after the file changed elsewhere.

        Dirty buffers are kept; only the saved baseline is refreshed.
        """
        tab = self.tab(path)
        content = self.vfs.read_file(tab.path)
        if content is None:
            raise NotFound(f"No such file: '{tab.path}'", tab.path)
        if not tab.dirty:
            tab.buffer = content
        tab.saved = content
        return tab
