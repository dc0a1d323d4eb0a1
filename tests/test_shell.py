"""Tests for the terminal command interpreter."""

import pytest

from deskfs import Shell, VirtualFS
from deskfs.shell import CLEAR_SCREEN, HELP


@pytest.fixture
def vfs():
    return VirtualFS()


@pytest.fixture
def shell(vfs):
    return Shell(vfs)


class TestSession:
    """Test shell state: prompt, cwd, environment, history."""

    def test_starts_in_home(self, shell):
        assert shell.execute("pwd") == "/home/user"
        assert shell.prompt == "user@ubuntu:~$ "

    def test_starts_at_root_without_home(self):
        shell = Shell(VirtualFS(seed=False))

        assert shell.cwd == "/"
        assert shell.prompt == "user@ubuntu:/$ "

    def test_prompt_with_root_home(self, vfs):
        """Only the root itself abbreviates to ~ when home is /."""
        shell = Shell(vfs, home="/")

        assert shell.prompt == "user@ubuntu:~$ "
        shell.execute("cd /etc")
        assert shell.prompt == "user@ubuntu:/etc$ "

    def test_environment(self, shell):
        assert shell.env["HOME"] == "/home/user"
        assert shell.env["USER"] == "user"
        assert shell.env["SHELL"] == "/bin/bash"
        assert "/usr/bin" in shell.env["PATH"]
        assert shell.env["PWD"] == "/home/user"

    def test_blank_line(self, shell):
        assert shell.execute("   ") == ""
        assert shell.history == []

    def test_unknown_command(self, shell):
        assert shell.execute("frobnicate now") == "frobnicate: command not found"

    def test_syntax_error(self, shell):
        assert shell.execute("echo 'unterminated").startswith("sh: syntax error:")

    def test_history(self, shell):
        shell.execute("pwd")
        shell.execute("whoami")

        assert shell.history == ["pwd", "whoami"]
        assert shell.execute("history").splitlines()[-1].endswith("history")

    def test_history_is_capped(self, shell):
        for i in range(Shell.HISTORY_LIMIT + 5):
            shell.execute(f"echo {i}")

        assert len(shell.history) == Shell.HISTORY_LIMIT
        assert shell.history[0] == "echo 5"

    def test_variable_expansion(self, shell):
        assert shell.execute("echo $HOME ${USER}") == "/home/user user"
        assert shell.execute("echo $UNSET") == ""

    def test_export(self, shell):
        assert shell.execute("export GREETING=hi") == ""
        assert shell.execute("echo $GREETING") == "hi"
        assert "GREETING=hi" in shell.execute("env").splitlines()

    def test_export_invalid(self, shell):
        assert shell.execute("export 1x=2") == "export: '1x=2': not a valid identifier"

    def test_whoami(self, shell):
        assert shell.execute("whoami") == "user"

    def test_date(self, shell):
        assert shell.execute("date")

    def test_clear_and_help(self, shell):
        assert shell.execute("clear") == CLEAR_SCREEN
        assert shell.execute("help") == HELP

    def test_commands(self, shell):
        assert {"ls", "cd", "pwd", "mkdir", "rm", "cp", "mv", "cat", "echo", "touch"} <= set(
            shell.commands
        )


class TestCd:
    """Test cd and working directory tracking."""

    def test_cd_relative(self, shell):
        assert shell.execute("cd Documents") == ""
        assert shell.cwd == "/home/user/Documents"
        assert shell.env["PWD"] == "/home/user/Documents"
        assert shell.prompt == "user@ubuntu:~/Documents$ "

    def test_cd_parent_and_absolute(self, shell):
        shell.execute("cd ..")
        assert shell.cwd == "/home"

        shell.execute("cd /usr/bin")
        assert shell.cwd == "/usr/bin"
        assert shell.prompt == "user@ubuntu:/usr/bin$ "

    def test_cd_home_forms(self, shell):
        shell.execute("cd /etc")
        shell.execute("cd")
        assert shell.cwd == "/home/user"

        shell.execute("cd ~/Music")
        assert shell.cwd == "/home/user/Music"

    def test_cd_previous(self, shell):
        shell.execute("cd /etc")
        shell.execute("cd -")

        assert shell.cwd == "/home/user"
        assert shell.env["OLDPWD"] == "/etc"

    def test_cd_missing(self, shell):
        assert shell.execute("cd nope") == "cd: nope: No such file or directory"
        assert shell.cwd == "/home/user"

    def test_cd_file(self, shell):
        assert shell.execute("cd README.md") == "cd: README.md: Not a directory"


class TestListing:
    """Test ls."""

    def test_ls_home(self, shell):
        assert shell.execute("ls") == (
            "Desktop  Documents  Downloads  Music  Pictures  Videos  project.txt  README.md"
        )

    def test_ls_path(self, shell):
        assert shell.execute("ls /usr") == "bin  lib"

    def test_ls_empty(self, shell):
        assert shell.execute("ls Music") == ""

    def test_ls_file(self, shell):
        assert shell.execute("ls README.md") == "README.md"

    def test_ls_missing(self, shell):
        assert shell.execute("ls nope") == "ls: cannot access 'nope': No such file or directory"

    def test_ls_long(self, shell):
        shell.execute("echo hello > notes.txt")

        lines = shell.execute("ls -l").splitlines()

        assert lines[0].startswith("755 ")
        assert lines[0].endswith(" Desktop/")
        notes = [line for line in lines if line.endswith(" notes.txt")][0]
        assert notes.startswith("644 ")
        assert notes.split()[1] == "6"


class TestFileCommands:
    """Test commands that change the filesystem."""

    def test_mkdir(self, shell, vfs):
        assert shell.execute("mkdir src") == ""
        assert vfs.is_directory("/home/user/src")

    def test_mkdir_exists(self, shell):
        assert shell.execute("mkdir Documents") == (
            "mkdir: cannot create directory 'Documents': File exists"
        )

    def test_mkdir_missing_parent(self, shell):
        assert shell.execute("mkdir a/b") == (
            "mkdir: cannot create directory 'a/b': No such file or directory"
        )

    def test_mkdir_parents(self, shell, vfs):
        assert shell.execute("mkdir -p a/b/c") == ""
        assert vfs.is_directory("/home/user/a/b/c")

    def test_mkdir_missing_operand(self, shell):
        assert shell.execute("mkdir") == "mkdir: missing operand"

    def test_echo(self, shell):
        assert shell.execute("echo hello   world") == "hello world"
        assert shell.execute("echo 'hello   world'") == "hello   world"

    def test_echo_redirect(self, shell, vfs):
        """echo writes the text plus a newline."""
        assert shell.execute("echo hello > notes.txt") == ""
        assert vfs.read_file("/home/user/notes.txt") == "hello\n"

        shell.execute("echo again > notes.txt")
        assert vfs.read_file("/home/user/notes.txt") == "again\n"

    def test_echo_append(self, shell, vfs):
        shell.execute("echo one > log.txt")
        shell.execute("echo two >> log.txt")

        assert vfs.read_file("/home/user/log.txt") == "one\ntwo\n"
        assert shell.execute("cat log.txt") == "one\ntwo"

    def test_echo_redirect_missing_target(self, shell):
        assert "syntax error" in shell.execute("echo hi >")

    def test_echo_redirect_into_directory(self, shell):
        assert shell.execute("echo hi > Documents") == "sh: Documents: Is a directory"

    def test_cat(self, shell):
        assert shell.execute("cat /etc/passwd").splitlines()[0].startswith("root:")

    def test_cat_errors(self, shell):
        assert shell.execute("cat nope") == "cat: nope: No such file or directory"
        assert shell.execute("cat Documents") == "cat: Documents: Is a directory"
        assert shell.execute("cat") == "cat: missing operand"

    def test_touch(self, shell, vfs):
        assert shell.execute("touch empty.txt") == ""
        assert vfs.read_file("/home/user/empty.txt") == ""

    def test_touch_existing_keeps_content(self, shell, vfs):
        shell.execute("echo keep > a.txt")

        assert shell.execute("touch a.txt") == ""
        assert vfs.read_file("/home/user/a.txt") == "keep\n"

    def test_touch_missing_parent(self, shell):
        assert shell.execute("touch nope/a.txt") == (
            "touch: cannot touch 'nope/a.txt': No such file or directory"
        )

    def test_rm_file(self, shell, vfs):
        shell.execute("touch a.txt")

        assert shell.execute("rm a.txt") == ""
        assert vfs.exists("/home/user/a.txt") is False

    def test_rm_directory_needs_recursive(self, shell, vfs):
        assert shell.execute("rm Documents") == "rm: cannot remove 'Documents': Is a directory"
        assert shell.execute("rm -r Documents") == ""
        assert vfs.exists("/home/user/Documents") is False

    def test_rm_missing(self, shell):
        assert shell.execute("rm nope") == "rm: cannot remove 'nope': No such file or directory"
        assert shell.execute("rm -f nope") == ""

    def test_rm_refuses_working_directory(self, shell, vfs):
        assert "refusing to remove" in shell.execute("rm -rf /home")
        assert vfs.is_directory("/home/user")

    def test_cp_file(self, shell, vfs):
        assert shell.execute("cp README.md copy.md") == ""
        assert vfs.read_file("/home/user/copy.md") == vfs.read_file("/home/user/README.md")

    def test_cp_into_directory(self, shell, vfs):
        assert shell.execute("cp README.md Documents") == ""
        assert vfs.is_file("/home/user/Documents/README.md")

    def test_cp_directory(self, shell, vfs):
        shell.execute("touch Documents/a.txt")

        assert shell.execute("cp Documents docs") == (
            "cp: -r not specified; omitting directory 'Documents'"
        )
        assert shell.execute("cp -r Documents docs") == ""
        assert vfs.is_file("/home/user/docs/a.txt")

    def test_cp_into_itself(self, shell):
        output = shell.execute("cp -r Documents Documents/sub")

        assert output.startswith("cp: cannot copy 'Documents' to 'Documents/sub': ")

    def test_cp_missing(self, shell):
        assert shell.execute("cp nope x") == "cp: cannot stat 'nope': No such file or directory"
        assert shell.execute("cp README.md") == "cp: missing operand"

    def test_mv(self, shell, vfs):
        assert shell.execute("mv project.txt plan.txt") == ""
        assert vfs.exists("/home/user/project.txt") is False
        assert vfs.is_file("/home/user/plan.txt")

    def test_mv_into_directory(self, shell, vfs):
        assert shell.execute("mv project.txt Documents") == ""
        assert vfs.is_file("/home/user/Documents/project.txt")

    def test_mv_missing(self, shell):
        assert shell.execute("mv nope x") == "mv: cannot stat 'nope': No such file or directory"

    def test_mv_follows_working_directory(self, shell):
        """Moving a directory containing the cwd moves the cwd with it."""
        shell.execute("mkdir -p proj/src")
        shell.execute("cd proj/src")

        assert shell.execute("mv /home/user/proj /home/user/proj2") == ""
        assert shell.cwd == "/home/user/proj2/src"
        assert shell.execute("pwd") == "/home/user/proj2/src"


class TestSharedTree:
    """Shell and engine operate on one tree."""

    def test_engine_writes_visible_in_shell(self, shell, vfs):
        vfs.create_file("/home/user/from-ui.txt", "made in the file browser")

        assert shell.execute("cat from-ui.txt") == "made in the file browser"

    def test_custom_username(self):
        vfs = VirtualFS(username="alice")
        shell = Shell(vfs)

        assert shell.execute("pwd") == "/home/alice"
        assert shell.execute("whoami") == "alice"
        assert shell.prompt == "alice@ubuntu:~$ "
