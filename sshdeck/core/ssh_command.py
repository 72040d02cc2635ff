"""Turn a ConnectionConfig into an ssh/telnet command line.

The argument order produced by ``ConnectionArgumentBuilder.ssh_args`` is
fixed; callers and tests compare it against hand-written reference commands.
"""
from typing import Dict, List, Optional
import logging

from ..models.session import (
    AuthMethod, ConnectionConfig, ConnectionProtocol, ProxyType, SessionOptions, clamp_port,
)
from .credentials import CredentialStore
from .outcome import Outcome, TransferError
from .process_runner import Invocation, wrap_with_password
from .quoting import shell_join
from .remote_path import expand_local_path
from .settings import ClientSettings

logger = logging.getLogger(__name__)


def ssh_bool(value: bool) -> str:
    return "yes" if value else "no"


def non_empty_lines(text: str) -> List[str]:
    lines = []
    for raw in (text or "").splitlines():
        line = raw.strip()
        if line and not line.startswith("#"):
            lines.append(line)
    return lines


def auth_methods(config: ConnectionConfig) -> List[str]:
    """PreferredAuthentications list; the selected auth method is always on."""
    options = config.options
    use_pubkey = True if config.auth_method == AuthMethod.KEY else options.enable_pubkey_auth
    use_password = True if config.auth_method == AuthMethod.PASSWORD else options.enable_password_auth
    methods = []
    if use_pubkey:
        methods.append("publickey")
    if options.enable_kbd_interactive_auth:
        methods.append("keyboard-interactive")
    if use_password:
        methods.append("password")
    if options.enable_gssapi_auth:
        methods.append("gssapi-with-mic")
    return methods


def proxy_command(options: SessionOptions) -> Optional[str]:
    if options.proxy_type == ProxyType.NONE:
        return None

    if options.proxy_type == ProxyType.COMMAND:
        command = (options.proxy_command.strip()
                   .replace("%proxy_user%", options.proxy_username.strip())
                   .replace("%proxy_password%", options.proxy_password))
        return command or None

    proxy_host = options.proxy_host.strip()
    if not proxy_host or options.proxy_port <= 0:
        return None

    endpoint = f"{proxy_host}:{options.proxy_port}"
    user = options.proxy_username.strip()
    user_arg = f" -P {user}" if user else ""
    if options.proxy_type == ProxyType.SOCKS4:
        return f"nc -x {endpoint} -X 4{user_arg} %h %p"
    if options.proxy_type == ProxyType.SOCKS5:
        return f"nc -x {endpoint} -X 5{user_arg} %h %p"
    return f"nc -x {endpoint} -X connect %h %p"


def mask_secret(text: str, secret: str) -> str:
    return text.replace(secret, "********") if secret else text


def ssh_target(config: ConnectionConfig) -> str:
    if not config.host or not config.username:
        raise TransferError("Host or username is empty")
    return f"{config.username}@{config.host}"


def transfer_option_args(config: ConnectionConfig) -> List[str]:
    """The option subset shared by sftp, scp and ssh-exec transfer calls."""
    options = config.options
    args = ["-o", f"StrictHostKeyChecking={options.strict_host_key_checking.ssh_value}"]

    timeout = max(0, options.connect_timeout)
    if timeout > 0:
        args += ["-o", f"ConnectTimeout={timeout}"]

    known_hosts = expand_local_path(options.user_known_hosts_file)
    if known_hosts:
        args += ["-o", f"UserKnownHostsFile={known_hosts}"]

    proxy = proxy_command(options)
    if proxy:
        args += ["-o", f"ProxyCommand={proxy}"]

    if config.auth_method == AuthMethod.KEY:
        key_path = expand_local_path(config.key_path)
        if key_path:
            args += ["-o", "IdentitiesOnly=yes", "-i", key_path]
    return args


class ConnectionArgumentBuilder:
    def __init__(self, settings: ClientSettings = None, credentials: CredentialStore = None):
        self.settings = settings or ClientSettings()
        self.credentials = credentials

    # ===== argv =====
    def ssh_args(self, config: ConnectionConfig) -> List[str]:
        options = config.options
        args: List[str] = []

        def add_option(key, value):
            args.extend(["-o", f"{key}={value}"])

        args.append(options.request_tty.ssh_flag)
        args.extend(["-p", str(clamp_port(config.port))])
        if options.compression:
            args.append("-C")

        use_pubkey = True if config.auth_method == AuthMethod.KEY else options.enable_pubkey_auth
        use_password = True if config.auth_method == AuthMethod.PASSWORD else options.enable_password_auth

        add_option("StrictHostKeyChecking", options.strict_host_key_checking.ssh_value)
        add_option("TCPKeepAlive", ssh_bool(options.tcp_keepalive))
        add_option("Compression", ssh_bool(options.compression))
        add_option("ForwardAgent", ssh_bool(options.forward_agent))
        add_option("PubkeyAuthentication", ssh_bool(use_pubkey))
        add_option("PasswordAuthentication", ssh_bool(use_password))
        add_option("KbdInteractiveAuthentication", ssh_bool(options.enable_kbd_interactive_auth))
        add_option("GSSAPIAuthentication", ssh_bool(options.enable_gssapi_auth))
        add_option("GSSAPIDelegateCredentials", ssh_bool(options.gssapi_delegate_credentials))

        timeout = max(0, options.connect_timeout)
        if timeout > 0:
            add_option("ConnectTimeout", timeout)

        keepalive = max(0, options.keepalive_interval)
        if keepalive > 0:
            add_option("ServerAliveInterval", keepalive)
            add_option("ServerAliveCountMax", max(1, options.keepalive_count_max))

        family = options.address_family.ssh_value
        if family:
            add_option("AddressFamily", family)

        known_hosts = expand_local_path(options.user_known_hosts_file)
        if known_hosts:
            add_option("UserKnownHostsFile", known_hosts)

        bind_address = options.bind_address.strip()
        if bind_address:
            args.extend(["-b", bind_address])

        if options.x11_forwarding:
            args.append("-X")

        methods = auth_methods(config)
        if methods:
            add_option("PreferredAuthentications", ",".join(methods))

        for key, value in (("KexAlgorithms", options.kex_algorithms),
                           ("Ciphers", options.ciphers),
                           ("MACs", options.macs),
                           ("HostKeyAlgorithms", options.host_key_algorithms),
                           ("RekeyLimit", options.rekey_limit)):
            if value.strip():
                add_option(key, value.strip())

        for pattern in non_empty_lines(options.send_env):
            add_option("SendEnv", pattern)
        for assignment in non_empty_lines(options.set_env):
            if "=" in assignment:
                add_option("SetEnv", assignment)

        for flag, text in (("-L", options.local_forwards),
                           ("-R", options.remote_forwards),
                           ("-D", options.dynamic_forwards)):
            for forward in non_empty_lines(text):
                args.extend([flag, forward])

        proxy = proxy_command(options)
        if proxy:
            add_option("ProxyCommand", proxy)

        args.extend(options.log_verbosity.ssh_flags)
        if options.logging_enabled:
            log_path = expand_local_path(options.log_file)
            if log_path:
                args.extend(["-E", log_path])

        if config.auth_method == AuthMethod.KEY:
            key_path = expand_local_path(config.key_path)
            if not key_path:
                raise TransferError("Private key path is empty")
            add_option("IdentitiesOnly", "yes")
            args.extend(["-i", key_path])

        remote_command = options.remote_command.strip()
        if options.no_shell and not remote_command:
            args.append("-N")

        args.append(f"{config.username}@{config.host}")
        if remote_command:
            args.append(remote_command)
        return args

    def telnet_args(self, config: ConnectionConfig) -> List[str]:
        args = []
        if config.username:
            args.extend(["-l", config.username])
        args.append(config.host)
        args.append(str(clamp_port(config.port)))
        return args

    def environment(self, config: ConnectionConfig) -> Dict[str, str]:
        options = config.options
        env = {
            "TERM": options.terminal_type.strip() or "xterm-256color",
            "COLORTERM": "truecolor",
            "LANG": "en_US.UTF-8",
        }
        charset = options.locale_charset.strip()
        if charset:
            env["LC_CTYPE"] = f"en_US.{charset}"
        display = options.x11_display.strip()
        if display:
            env["DISPLAY"] = display
        for item in non_empty_lines(options.set_env):
            if "=" in item:
                key, value = item.split("=", 1)
                env[key.strip()] = value
        return env

    # ===== entry points =====
    def build(self, config: ConnectionConfig) -> Outcome[Invocation]:
        """Invocation for an embedded terminal session."""
        try:
            return Outcome.success(self._build(config))
        except TransferError as e:
            logger.warning(f"Cannot build session command for {config.display_name()}: {e.message}")
            return Outcome.failure(e.message)

    def _build(self, config: ConnectionConfig) -> Invocation:
        if not config.host:
            raise TransferError("Host is empty")

        env = self.environment(config)
        if config.protocol == ConnectionProtocol.TELNET:
            if not self.settings.telnet_path:
                raise TransferError("Telnet client not found")
            return Invocation(self.settings.telnet_path, self.telnet_args(config), env)

        if not config.username:
            raise TransferError("Username is empty")

        invocation = Invocation(self.settings.ssh_path, self.ssh_args(config), env)
        logger.debug(f"Session command for {config.display_name()}: "
                     f"{mask_secret(invocation.command_line(), config.options.proxy_password)}")

        if config.auth_method == AuthMethod.PASSWORD:
            password = self.credentials.get_password(config.id) if self.credentials else ""
            if not password:
                raise TransferError("Password is empty in the credential store")
            invocation = wrap_with_password(invocation, password, self.settings.python_path)
        return invocation

    def build_terminal_command(self, config: ConnectionConfig) -> Outcome[str]:
        """Single shell-escaped command line for an external terminal window."""
        if config.protocol == ConnectionProtocol.TELNET:
            if not config.host:
                return Outcome.failure("Host is required")
            if not self.settings.telnet_path:
                return Outcome.failure("Telnet client not found")
            return Outcome.success(shell_join([self.settings.telnet_path, *self.telnet_args(config)]))

        if not config.host or not config.username:
            return Outcome.failure("Host and username are required")
        if config.auth_method == AuthMethod.PASSWORD:
            return Outcome.failure("System terminal mode supports only key auth. "
                                   "Switch to key auth or the embedded terminal.")

        key_path = expand_local_path(config.key_path)
        if not key_path:
            return Outcome.failure("Private key path is required for system terminal mode")

        words = [
            self.settings.ssh_path,
            "-p", str(clamp_port(config.port)),
            "-o", f"StrictHostKeyChecking={config.options.strict_host_key_checking.ssh_value}",
            "-o", "IdentitiesOnly=yes", "-i", key_path,
            f"{config.username}@{config.host}",
        ]
        remote_command = config.options.remote_command.strip()
        if remote_command:
            words.append(remote_command)
        return Outcome.success(shell_join(words))
