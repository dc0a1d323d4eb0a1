"""Default tree for a fresh desktop."""

from __future__ import annotations

from .base import Node, now_iso

HOME_FOLDERS = ("Documents", "Downloads", "Pictures", "Music", "Videos", "Desktop")

README = """# Ubuntu OS Simulator

Welcome to the Ubuntu OS simulator!

## Terminal
- Basic Unix commands (ls, cd, pwd, cat, mkdir, rm, cp, mv, echo, touch)
- Command history
- Virtual file system

## Code Editor
- File explorer
- Tab management

Use the terminal to navigate the file system and the code editor to modify files.
"""

PROJECT = """# My Ubuntu Project

This is a sample project file created in the Ubuntu OS simulator.

## Getting Started
1. Open the terminal
2. Navigate through the file system
3. Edit files with the code editor
4. Save your changes

Happy coding!
"""


def _dir(name: str, now: str, *children: Node) -> Node:
    return Node.directory(name, {child.name: child for child in children}, now=now)


def default_tree(username: str = "user") -> Node:
    """Build the default root: /home/<username>, /usr and /etc.

    Args:
        username: Owner of the home directory.

    Returns:
        Root directory node.
    """
    if not username or "/" in username:
        raise ValueError(f"Invalid username: {username!r}")

    now = now_iso()
    home = _dir(
        username,
        now,
        *(_dir(folder, now) for folder in HOME_FOLDERS),
        Node.file("README.md", README, now=now),
        Node.file("project.txt", PROJECT, now=now),
    )
    passwd = (
        "root:x:0:0:root:/root:/bin/bash\n"
        f"{username}:x:1000:1000:{username}:/home/{username}:/bin/bash\n"
    )
    return _dir(
        "",
        now,
        _dir("home", now, home),
        _dir("usr", now, _dir("bin", now), _dir("lib", now)),
        _dir("etc", now, Node.file("passwd", passwd, now=now)),
    )
