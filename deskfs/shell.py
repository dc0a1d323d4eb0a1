"""Terminal command interpreter over a VirtualFS.

The shell tracks its own working directory, environment variables and
command history; every filesystem effect goes through the injected
VirtualFS so the terminal, editor and file browser share one tree.
"""

from __future__ import annotations

import logging
import os
import re
import shlex
from datetime import datetime
from typing import Callable

from . import paths
from .errors import InvalidPath, SyncError, VFSError
from .vfs import Result, VirtualFS

logger = logging.getLogger(__name__)

DEFAULT_PATH = "/usr/local/bin:/usr/bin:/bin:/usr/local/sbin:/usr/sbin:/sbin"
CLEAR_SCREEN = "\x1b[2J\x1b[H"

_VARIABLE = re.compile(r"\$(?:\{(\w+)\}|(\w+))")

HELP = """Available commands:
ls [-l] [path]       - List directory contents
pwd                  - Print working directory
cd [path]            - Change directory (~ for home, - for previous)
mkdir [-p] <path>    - Create directory
rm [-r] [-f] <path>  - Remove file or directory
cp [-r] <src> <dst>  - Copy file or directory
mv <src> <dst>       - Move/rename file or directory
cat <file>           - Display file contents
echo <text>          - Display text (echo text > file, echo text >> file)
touch <file>         - Create empty file or update timestamp
whoami               - Display current user
date                 - Display current date and time
env                  - Show environment variables
export KEY=VALUE     - Set an environment variable
history              - Show command history
clear                - Clear terminal screen
help                 - Show this help message"""


def _strerror(error: VFSError) -> str:
    if isinstance(error, (InvalidPath, SyncError)) or error.code is None:
        return error.message
    return os.strerror(error.code)


class Shell:
    """Interactive command interpreter.

    Attributes:
        vfs: Filesystem the commands operate on.
        username: Name reported by ``whoami``.
        home: Home directory ("~").
        cwd: Current working directory.
        env: Environment variables (HOME, USER, SHELL, PATH, PWD, ...).
        history: Executed command lines, oldest first.
    """

    HISTORY_LIMIT = 1000

    def __init__(
        self,
        vfs: VirtualFS,
        username: str | None = None,
        home: str | None = None,
        shell: str = "/bin/bash",
    ):
        self.vfs = vfs
        self.username = username or vfs.username
        self.home = vfs.normalize(home or f"/home/{self.username}")
        self.cwd = self.home if vfs.is_directory(self.home) else paths.ROOT
        self.previous = self.cwd
        self.env: dict[str, str] = {
            "HOME": self.home,
            "USER": self.username,
            "SHELL": shell,
            "PATH": DEFAULT_PATH,
            "PWD": self.cwd,
        }
        self.history: list[str] = []
        self._commands: dict[str, Callable[[list[str]], str]] = {
            "ls": self.cmd_ls,
            "pwd": self.cmd_pwd,
            "cd": self.cmd_cd,
            "mkdir": self.cmd_mkdir,
            "rm": self.cmd_rm,
            "cp": self.cmd_cp,
            "mv": self.cmd_mv,
            "cat": self.cmd_cat,
            "echo": self.cmd_echo,
            "touch": self.cmd_touch,
            "whoami": self.cmd_whoami,
            "date": self.cmd_date,
            "env": self.cmd_env,
            "export": self.cmd_export,
            "history": self.cmd_history,
            "clear": self.cmd_clear,
            "help": self.cmd_help,
        }

    @property
    def commands(self) -> list[str]:
        return sorted(self._commands)

    @property
    def prompt(self) -> str:
        location = self.cwd
        if self.cwd == self.home:
            location = "~"
        elif self.home != paths.ROOT and paths.is_within(self.cwd, self.home):
            location = "~" + self.cwd[len(self.home):]
        return f"{self.username}@ubuntu:{location}$ "

    def resolve(self, path: str) -> str:
        """Resolve a command argument against the working directory."""
        if path == "~" or path.startswith("~/"):
            path = self.home + path[1:]
        return paths.resolve(path, self.cwd, resolve_dots=self.vfs.snapshot.resolve_dots)

    def execute(self, line: str) -> str:
        """Run one command line and return its output.

        Args:
            line: Command line, e.g. "echo hello > notes.txt".

        Returns:
            Output text ("" when the command prints nothing).
        """
        line = line.strip()
        if not line:
            return ""
        self.history.append(line)
        del self.history[: -self.HISTORY_LIMIT]

        try:
            lexer = shlex.shlex(line, posix=True, punctuation_chars=True)
            lexer.whitespace_split = True
            tokens = [self._expand(token) for token in lexer]
        except ValueError as e:
            return f"sh: syntax error: {e}"
        if not tokens:
            return ""

        name, args = tokens[0], tokens[1:]
        command = self._commands.get(name)
        if command is None:
            return f"{name}: command not found"
        logger.debug("executing %s %s", name, args)
        return command(args)

    def _expand(self, token: str) -> str:
        return _VARIABLE.sub(lambda m: self.env.get(m.group(1) or m.group(2), ""), token)

    @staticmethod
    def _split_flags(args: list[str]) -> tuple[set[str], list[str]]:
        flags: set[str] = set()
        operands: list[str] = []
        for arg in args:
            if arg.startswith("-") and len(arg) > 1 and not operands:
                flags.update(arg[1:])
            else:
                operands.append(arg)
        return flags, operands

    def _set_cwd(self, path: str) -> None:
        self.previous, self.cwd = self.cwd, path
        self.env["OLDPWD"] = self.previous
        self.env["PWD"] = path

    def _into_directory(self, src: str, dst: str) -> str:
        """Target path for cp/mv: inside ``dst`` when it is a directory."""
        if self.vfs.is_directory(dst):
            return paths.join(dst, paths.basename(src))
        return dst

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    def cmd_ls(self, args: list[str]) -> str:
        flags, operands = self._split_flags(args)
        target = operands[0] if operands else "."
        path = self.resolve(target)
        node = self.vfs.get_node(path)
        if node is None:
            return f"ls: cannot access '{target}': No such file or directory"
        if not node.is_dir:
            return target

        if "l" not in flags:
            return "  ".join(self.vfs.list_directory(path) or [])
        lines = []
        for info in self.vfs.list_detailed(path) or []:
            modified = info.modified_at[:10]
            name = f"{info.name}/" if info.is_dir else info.name
            lines.append(f"{info.permissions} {info.size:>8} {modified} {name}")
        return "\n".join(lines)

    def cmd_pwd(self, args: list[str]) -> str:
        return self.cwd

    def cmd_cd(self, args: list[str]) -> str:
        target = args[0] if args else self.env.get("HOME", self.home)
        if target == "-":
            target = self.previous
        path = self.resolve(target)
        node = self.vfs.get_node(path)
        if node is None:
            return f"cd: {target}: No such file or directory"
        if not node.is_dir:
            return f"cd: {target}: Not a directory"
        self._set_cwd(path)
        return ""

    def cmd_mkdir(self, args: list[str]) -> str:
        flags, operands = self._split_flags(args)
        if not operands:
            return "mkdir: missing operand"
        errors = []
        for operand in operands:
            path = self.resolve(operand)
            if "p" in flags:
                result = self.vfs.make_directories(path)
            else:
                result = self.vfs.create_directory(path)
            if not result:
                errors.append(
                    f"mkdir: cannot create directory '{operand}': {_strerror(result.error)}"
                )
        return "\n".join(errors)

    def cmd_rm(self, args: list[str]) -> str:
        flags, operands = self._split_flags(args)
        if not operands:
            return "rm: missing operand"
        recursive = bool(flags & {"r", "R"})
        force = "f" in flags
        errors = []
        for operand in operands:
            path = self.resolve(operand)
            node = self.vfs.get_node(path)
            if node is None:
                if not force:
                    errors.append(f"rm: cannot remove '{operand}': No such file or directory")
                continue
            if node.is_dir and not recursive:
                errors.append(f"rm: cannot remove '{operand}': Is a directory")
                continue
            if paths.is_within(self.cwd, path):
                errors.append(f"rm: refusing to remove '{operand}': contains working directory")
                continue
            result = self.vfs.delete_node(path)
            if not result:
                errors.append(f"rm: cannot remove '{operand}': {_strerror(result.error)}")
        return "\n".join(errors)

    def cmd_cp(self, args: list[str]) -> str:
        flags, operands = self._split_flags(args)
        if len(operands) < 2:
            return "cp: missing operand"
        src, dst = operands[0], operands[1]
        src_path = self.resolve(src)
        node = self.vfs.get_node(src_path)
        if node is None:
            return f"cp: cannot stat '{src}': No such file or directory"
        if node.is_dir and not flags & {"r", "R"}:
            return f"cp: -r not specified; omitting directory '{src}'"
        dst_path = self._into_directory(src_path, self.resolve(dst))
        result = self.vfs.copy_item(src_path, dst_path)
        return self._report("cp", "copy", src, dst, result)

    def cmd_mv(self, args: list[str]) -> str:
        _, operands = self._split_flags(args)
        if len(operands) < 2:
            return "mv: missing operand"
        src, dst = operands[0], operands[1]
        src_path = self.resolve(src)
        if not self.vfs.exists(src_path):
            return f"mv: cannot stat '{src}': No such file or directory"
        dst_path = self._into_directory(src_path, self.resolve(dst))
        result = self.vfs.move_item(src_path, dst_path)
        if result and paths.is_within(self.cwd, src_path):
            self._set_cwd(paths.join(dst_path, paths.relative_to(self.cwd, src_path)))
        return self._report("mv", "move", src, dst, result)

    @staticmethod
    def _report(name: str, verb: str, src: str, dst: str, result: Result) -> str:
        if result:
            return ""
        return f"{name}: cannot {verb} '{src}' to '{dst}': {_strerror(result.error)}"

    def cmd_cat(self, args: list[str]) -> str:
        if not args:
            return "cat: missing operand"
        output = []
        for operand in args:
            path = self.resolve(operand)
            content = self.vfs.read_file(path)
            if content is not None:
                output.append(content.rstrip("\n"))
            elif self.vfs.is_directory(path):
                output.append(f"cat: {operand}: Is a directory")
            else:
                output.append(f"cat: {operand}: No such file or directory")
        return "\n".join(output)

    def cmd_echo(self, args: list[str]) -> str:
        for operator, mode in ((">>", "a"), (">", "w")):
            if operator in args:
                index = args.index(operator)
                if index + 1 >= len(args):
                    return "sh: syntax error near unexpected token `newline'"
                target = args[index + 1]
                text = " ".join(args[:index] + args[index + 2 :]) + "\n"
                result = self.vfs.write_file(self.resolve(target), text, mode=mode)
                if not result:
                    return f"sh: {target}: {_strerror(result.error)}"
                return ""
        return " ".join(args)

    def cmd_touch(self, args: list[str]) -> str:
        if not args:
            return "touch: missing file operand"
        errors = []
        for operand in args:
            path = self.resolve(operand)
            node = self.vfs.get_node(path)
            if node is None:
                result = self.vfs.create_file(path, "")
            elif node.is_file:
                result = self.vfs.update_file(path, node.content or "")
            else:
                continue
            if not result:
                errors.append(f"touch: cannot touch '{operand}': {_strerror(result.error)}")
        return "\n".join(errors)

    def cmd_whoami(self, args: list[str]) -> str:
        return self.env.get("USER", self.username)

    def cmd_date(self, args: list[str]) -> str:
        return datetime.now().astimezone().strftime("%a %b %d %H:%M:%S %Z %Y")

    def cmd_env(self, args: list[str]) -> str:
        return "\n".join(f"{key}={value}" for key, value in sorted(self.env.items()))

    def cmd_export(self, args: list[str]) -> str:
        if not args:
            return self.cmd_env(args)
        for arg in args:
            key, sep, value = arg.partition("=")
            if not sep or not re.fullmatch(r"[A-Za-z_]\w*", key):
                return f"export: '{arg}': not a valid identifier"
            self.env[key] = value
        return ""

    def cmd_history(self, args: list[str]) -> str:
        return "\n".join(f"{i:>5}  {line}" for i, line in enumerate(self.history, 1))

    def cmd_clear(self, args: list[str]) -> str:
        return CLEAR_SCREEN

    def cmd_help(self, args: list[str]) -> str:
        return HELP
