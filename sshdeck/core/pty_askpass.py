"""Run a program on a pseudo-terminal and answer its password prompts.

Usage: pty_askpass.py PROGRAM [ARGS...]

The secret is read from SSHDECK_ASKPASS_SECRET and removed from the
environment before the program starts. Every time the program prints a line
matching ``password...:`` or ``passphrase...:`` the secret is typed in,
otherwise bytes are relayed both ways until the program closes the terminal.
The exit status is the program's own.

This file is executed as a standalone script, so it only imports the
standard library.
"""
import errno
import os
import pty
import re
import select
import sys
import termios
import tty

SECRET_ENV = "SSHDECK_ASKPASS_SECRET"
PROMPT = re.compile(rb"(?i)(password|passphrase).*:")
PENDING_LIMIT = 4096


def _write_all(fd, data):
    while data:
        written = os.write(fd, data)
        data = data[written:]


def _disable_echo(fd):
    try:
        attrs = termios.tcgetattr(fd)
    except termios.error:
        return
    attrs[3] &= ~termios.ECHO
    termios.tcsetattr(fd, termios.TCSANOW, attrs)


def relay(master_fd, secret, stdin_fd, stdout_fd):
    """Copy program output to stdout_fd and stdin_fd to the program.

    Blocks without a timeout. Returns once the program side hits EOF.
    """
    pending = b""
    watch_stdin = stdin_fd is not None
    while True:
        fds = [master_fd, stdin_fd] if watch_stdin else [master_fd]
        readable, _, _ = select.select(fds, [], [])

        if master_fd in readable:
            try:
                chunk = os.read(master_fd, 4096)
            except OSError as e:
                # Linux reports a closed slave side as EIO
                if e.errno == errno.EIO:
                    return
                raise
            if not chunk:
                return
            _write_all(stdout_fd, chunk)
            pending = (pending + chunk)[-PENDING_LIMIT:]
            if secret and PROMPT.search(pending):
                _write_all(master_fd, secret + b"\r")
                pending = b""

        if watch_stdin and stdin_fd in readable:
            data = os.read(stdin_fd, 4096)
            if data:
                _write_all(master_fd, data)
            else:
                watch_stdin = False


def _stdin_fd():
    if sys.stdin is None:
        return None
    try:
        return sys.stdin.fileno()
    except (OSError, ValueError):
        return None


def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    if not argv:
        sys.stderr.write("usage: pty_askpass.py PROGRAM [ARGS...]\n")
        return 2

    secret = os.environ.pop(SECRET_ENV, "").encode("utf-8")

    pid, master_fd = pty.fork()
    if pid == 0:
        _disable_echo(0)
        try:
            os.execvp(argv[0], argv)
        except OSError as e:
            os.write(2, f"{argv[0]}: {e.strerror}\n".encode("utf-8", "replace"))
        os._exit(127)

    stdin_fd = _stdin_fd()
    saved_attrs = None
    if stdin_fd is not None and os.isatty(stdin_fd):
        saved_attrs = termios.tcgetattr(stdin_fd)
        tty.setraw(stdin_fd)
    try:
        relay(master_fd, secret, stdin_fd, sys.stdout.fileno())
    finally:
        if saved_attrs is not None:
            termios.tcsetattr(stdin_fd, termios.TCSAFLUSH, saved_attrs)
        os.close(master_fd)

    _, status = os.waitpid(pid, 0)
    if os.WIFSIGNALED(status):
        return 128 + os.WTERMSIG(status)
    return os.WEXITSTATUS(status)


if __name__ == "__main__":
    sys.exit(main())
