"""File transfer commands for SFTP, SCP and FTP hosts.

Every operation is one external process call: ``sftp`` with a throwaway
batch file, ``ssh``/``scp``, or ``curl`` authenticated through a throwaway
netrc file. Public methods of TransferCommandEngine never raise; they return
an Outcome whose error is the client's own output or a fixed fallback phrase.
"""
from contextlib import contextmanager
from typing import List
import logging
import os
import tempfile

from ..models.remote_file import RemoteFileEntry
from ..models.session import AuthMethod, ConnectionConfig, TransferBackend, clamp_port
from .credentials import CredentialStore
from .listing import parse_listing, parse_name_only_listing
from .outcome import Outcome, TransferError
from .process_runner import CommandResult, Invocation, ProcessRunner
from .quoting import encode_url_path, netrc_token, sftp_quote, shell_quote
from .remote_path import basename, join_remote_path, normalize_remote_path
from .settings import ClientSettings, DEFAULT_PREVIEW_BYTES
from .ssh_command import ssh_target, transfer_option_args

logger = logging.getLogger(__name__)

PREVIEW_HEAD_BYTES = 32


@contextmanager
def temporary_file(prefix: str, content: str = "", mode: int = 0o600):
    """Create a single-use temp file and remove it when the block exits."""
    fd, path = tempfile.mkstemp(prefix=prefix)
    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            os.fchmod(f.fileno(), mode)
            f.write(content)
    except OSError:
        os.remove(path)
        raise TransferError(f"Failed to create temporary file {prefix}")
    try:
        yield path
    finally:
        try:
            os.remove(path)
        except FileNotFoundError:
            pass


def render_preview(data: bytes, total_size: int, max_bytes: int = DEFAULT_PREVIEW_BYTES) -> str:
    clipped = data[:max_bytes]
    if b"\x00" in clipped:
        head = " ".join(f"{b:02X}" for b in clipped[:PREVIEW_HEAD_BYTES])
        return f"Binary file\nSize: {total_size} bytes\nHead: {head}"
    return clipped.decode('utf-8', errors='replace')


def _read_preview_file(path: str, max_bytes: int) -> str:
    try:
        size = os.path.getsize(path)
        with open(path, 'rb') as f:
            data = f.read(max_bytes)
    except OSError:
        raise TransferError("Failed to read downloaded preview file")
    return render_preview(data, size, max_bytes)


def _check_single_line(*values: str) -> None:
    for value in values:
        if "\n" in value or "\r" in value:
            raise TransferError("Path contains unsupported newline characters")


class _Backend:
    """One transfer protocol. Methods raise TransferError on failure."""

    def __init__(self, engine: 'TransferCommandEngine'):
        self.engine = engine

    def list_directory(self, config, path) -> List[RemoteFileEntry]:
        raise NotImplementedError

    def upload(self, config, local_path, remote_dir, is_dir) -> None:
        raise NotImplementedError

    def download(self, config, remote_path, local_path) -> None:
        raise NotImplementedError

    def preview(self, config, remote_path, max_bytes) -> str:
        raise NotImplementedError

    def make_directory(self, config, remote_path) -> None:
        raise NotImplementedError

    def rename(self, config, old_path, new_path) -> None:
        raise NotImplementedError

    def delete(self, config, remote_path, is_dir) -> None:
        raise NotImplementedError

    @staticmethod
    def _check(result: CommandResult, fallback: str) -> CommandResult:
        if not result.succeeded:
            raise TransferError(result.message_or(fallback))
        return result


class _SSHFamilyBackend(_Backend):
    """Shared plumbing for backends that authenticate like ssh."""

    def run_ssh_program(self, config: ConnectionConfig, executable: str, args: List[str]) -> CommandResult:
        invocation = Invocation(executable, args)
        runner = self.engine.runner
        if config.auth_method == AuthMethod.PASSWORD:
            password = self.engine.credentials.get_password(config.id)
            if not password:
                raise TransferError("Password for this host is missing in the credential store")
            return runner.run_with_password(invocation, password)
        return runner.run(invocation)

    def remote_shell(self, config: ConnectionConfig, command: str, fallback: str) -> CommandResult:
        args = transfer_option_args(config)
        args += ["-p", str(clamp_port(config.port)), ssh_target(config), command]
        result = self.run_ssh_program(config, self.engine.settings.ssh_path, args)
        return self._check(result, fallback)

    # sftp has no recursive mkdir/rm, so all backends of this family go through a remote shell
    def make_directory(self, config, remote_path):
        self.remote_shell(config, f"mkdir -p -- {shell_quote(remote_path)}", "Remote mkdir failed")

    def rename(self, config, old_path, new_path):
        self.remote_shell(config, f"mv -- {shell_quote(old_path)} {shell_quote(new_path)}",
                          "Remote rename failed")

    def delete(self, config, remote_path, is_dir):
        self.remote_shell(config, f"rm -rf -- {shell_quote(remote_path)}", "Remote delete failed")

    def preview(self, config, remote_path, max_bytes):
        with temporary_file("sshdeck-preview-") as local_path:
            self.download(config, remote_path, local_path)
            return _read_preview_file(local_path, max_bytes)


class SFTPBackend(_SSHFamilyBackend):
    def run_batch(self, config: ConnectionConfig, commands: str, fallback: str, prefix: str) -> CommandResult:
        target = ssh_target(config)
        with temporary_file(prefix, commands) as batch_path:
            args = ["-q", "-P", str(clamp_port(config.port))]
            args += transfer_option_args(config)
            args += ["-b", batch_path, target]
            result = self.run_ssh_program(config, self.engine.settings.sftp_path, args)
        return self._check(result, fallback)

    def list_directory(self, config, path):
        _check_single_line(path)
        result = self.run_batch(config, f"cd {sftp_quote(path)}\nls -la\n",
                                "SFTP list failed", "sshdeck-sftp-list-")
        return parse_listing(result.combined_output, path)

    def upload(self, config, local_path, remote_dir, is_dir):
        _check_single_line(remote_dir, local_path)
        put = "put -r" if is_dir else "put"
        self.run_batch(config, f"cd {sftp_quote(remote_dir)}\n{put} {sftp_quote(local_path)}\n",
                       "SFTP upload failed", "sshdeck-sftp-upload-")

    def download(self, config, remote_path, local_path):
        _check_single_line(remote_path, local_path)
        self.run_batch(config, f"get {sftp_quote(remote_path)} {sftp_quote(local_path)}\n",
                       "SFTP download failed", "sshdeck-sftp-download-")


class SCPBackend(_SSHFamilyBackend):
    @staticmethod
    def scp_target(config: ConnectionConfig, remote_path: str) -> str:
        return f"{ssh_target(config)}:{shell_quote(remote_path)}"

    def list_directory(self, config, path):
        result = self.remote_shell(config, f"LC_ALL=C ls -la {shell_quote(path)}", "SCP browse failed")
        return parse_listing(result.combined_output, path)

    def upload(self, config, local_path, remote_dir, is_dir):
        target = self.scp_target(config, join_remote_path(remote_dir, basename(local_path)))
        args = ["-P", str(clamp_port(config.port))]
        if is_dir:
            args.append("-r")
        args += transfer_option_args(config)
        args += [local_path, target]
        result = self.run_ssh_program(config, self.engine.settings.scp_path, args)
        self._check(result, "SCP upload failed")

    def download(self, config, remote_path, local_path):
        source = self.scp_target(config, remote_path)
        args = ["-P", str(clamp_port(config.port))]
        args += transfer_option_args(config)
        args += [source, local_path]
        result = self.run_ssh_program(config, self.engine.settings.scp_path, args)
        self._check(result, "SCP download failed")


class FTPBackend(_Backend):
    def credentials_for(self, config: ConnectionConfig):
        if not config.username:
            raise TransferError("FTP requires username")
        password = self.engine.credentials.get_password(config.id)
        if not password:
            raise TransferError("FTP requires password in the credential store")
        return config.username, password

    def url(self, config: ConnectionConfig, remote_path: str, directory: bool = False) -> str:
        scheme = "ftps" if config.file_transfer.ftp_use_tls else "ftp"
        path = encode_url_path(remote_path)
        if directory and not path.endswith("/"):
            path += "/"
        return f"{scheme}://{config.host}:{clamp_port(config.port)}{path}"

    def run_curl(self, config: ConnectionConfig, extra_args: List[str]) -> CommandResult:
        if not config.host:
            raise TransferError("FTP requires host")
        username, password = self.credentials_for(config)
        if any(c in value for value in (username, password) for c in "\r\n"):
            raise TransferError("FTP credentials contain unsupported newline characters")

        netrc = (f"machine {config.host}\n"
                 f"login {netrc_token(username)}\n"
                 f"password {netrc_token(password)}\n")
        with temporary_file("sshdeck-netrc-", netrc, 0o600) as netrc_path:
            args = ["-sS", "--netrc-file", netrc_path]
            if config.file_transfer.ftp_passive:
                args.append("--ftp-pasv")
            else:
                args += ["--ftp-port", "-"]
            args += extra_args
            return self.engine.runner.run(Invocation(self.engine.settings.curl_path, args))

    def quote_commands(self, config: ConnectionConfig, commands: List[str], fallback: str) -> None:
        args = []
        for command in commands:
            args += ["-Q", command]
        args.append(self.url(config, "/", directory=True))
        self._check(self.run_curl(config, args), fallback)

    def list_directory(self, config, path):
        url = self.url(config, path, directory=True)
        result = self._check(self.run_curl(config, [url]), "FTP list failed")
        entries = parse_listing(result.stdout, path)
        if entries:
            return entries

        logger.debug(f"Long FTP listing of {path} gave no entries, retrying with --list-only")
        fallback = self._check(self.run_curl(config, ["--list-only", url]), "FTP list failed")
        return parse_name_only_listing(fallback.stdout, path)

    def upload(self, config, local_path, remote_dir, is_dir):
        if is_dir:
            raise TransferError("FTP folder upload is not supported. Use SFTP/SCP or upload files.")
        destination = join_remote_path(remote_dir, basename(local_path))
        result = self.run_curl(config, ["-T", local_path, self.url(config, destination)])
        self._check(result, "FTP upload failed")

    def download(self, config, remote_path, local_path):
        result = self.run_curl(config, ["-o", local_path, self.url(config, remote_path)])
        self._check(result, "FTP download failed")

    def preview(self, config, remote_path, max_bytes):
        with temporary_file("sshdeck-preview-") as local_path:
            range_end = max(0, max_bytes - 1)
            result = self.run_curl(config, ["--range", f"0-{range_end}", "-o", local_path,
                                            self.url(config, remote_path)])
            self._check(result, "Failed to read remote file")
            return _read_preview_file(local_path, max_bytes)

    def make_directory(self, config, remote_path):
        _check_single_line(remote_path)
        self.quote_commands(config, [f"MKD {remote_path}"], "FTP mkdir failed")

    def rename(self, config, old_path, new_path):
        _check_single_line(old_path, new_path)
        self.quote_commands(config, [f"RNFR {old_path}", f"RNTO {new_path}"], "FTP rename failed")

    def delete(self, config, remote_path, is_dir):
        _check_single_line(remote_path)
        verb = "RMD" if is_dir else "DELE"
        self.quote_commands(config, [f"{verb} {remote_path}"], "FTP delete failed")


class TransferCommandEngine:
    def __init__(self, credentials: CredentialStore, settings: ClientSettings = None,
                 runner: ProcessRunner = None):
        self.credentials = credentials
        self.settings = settings or ClientSettings()
        self.runner = runner or ProcessRunner(self.settings.python_path)
        self._backends = {
            TransferBackend.SFTP: SFTPBackend(self),
            TransferBackend.SCP: SCPBackend(self),
            TransferBackend.FTP: FTPBackend(self),
        }

    def backend_for(self, config: ConnectionConfig) -> _Backend:
        return self._backends[config.file_transfer.backend]

    def _call(self, action: str, config: ConnectionConfig, method: str, *args) -> Outcome:
        backend = config.file_transfer.backend
        try:
            value = getattr(self.backend_for(config), method)(config, *args)
        except TransferError as e:
            logger.warning(f"{backend.title} {action} failed for {config.display_name()}: {e.message}")
            return Outcome.failure(e.message)
        return Outcome.success(value)

    # ===== Operations =====
    def list_directory(self, config: ConnectionConfig, path: str) -> Outcome:
        return self._call("list", config, "list_directory", normalize_remote_path(path))

    def upload(self, config: ConnectionConfig, local_path: str, remote_dir: str) -> Outcome:
        if not local_path or not os.path.exists(local_path):
            return Outcome.failure("Local path does not exist")
        is_dir = os.path.isdir(local_path)
        logger.info(f"Uploading {local_path} to {remote_dir or '.'} on {config.display_name()}")
        return self._call("upload", config, "upload", local_path,
                          normalize_remote_path(remote_dir), is_dir)

    def download(self, config: ConnectionConfig, remote_path: str, local_path: str) -> Outcome:
        if not local_path:
            return Outcome.failure("Local path is empty")
        logger.info(f"Downloading {remote_path} from {config.display_name()} to {local_path}")
        return self._call("download", config, "download", normalize_remote_path(remote_path), local_path)

    def preview(self, config: ConnectionConfig, remote_path: str, max_bytes: int = None) -> Outcome:
        max_bytes = max(1, max_bytes or self.settings.preview_max_bytes)
        return self._call("preview", config, "preview", normalize_remote_path(remote_path), max_bytes)

    def make_directory(self, config: ConnectionConfig, remote_path: str) -> Outcome:
        return self._call("mkdir", config, "make_directory", normalize_remote_path(remote_path))

    def rename(self, config: ConnectionConfig, old_path: str, new_path: str) -> Outcome:
        return self._call("rename", config, "rename",
                          normalize_remote_path(old_path), normalize_remote_path(new_path))

    def delete(self, config: ConnectionConfig, remote_path: str, is_dir: bool = False) -> Outcome:
        return self._call("delete", config, "delete", normalize_remote_path(remote_path), is_dir)
