from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Optional, Dict, Any
import uuid

MIN_PORT = 1
MAX_PORT = 65535


class ConnectionProtocol(str, Enum):
    SSH = "ssh"
    TELNET = "telnet"


class AuthMethod(str, Enum):
    KEY = "key"
    PASSWORD = "password"


class LaunchMode(str, Enum):
    EMBEDDED = "embedded"
    SYSTEM_TERMINAL = "system_terminal"


class RequestTTY(str, Enum):
    FORCE = "force"
    AUTO = "auto"
    DISABLED = "disabled"

    @property
    def ssh_flag(self) -> str:
        return {"force": "-tt", "auto": "-t", "disabled": "-T"}[self.value]


class StrictHostKeyMode(str, Enum):
    ACCEPT_NEW = "accept-new"
    STRICT = "strict"
    OFF = "off"

    @property
    def ssh_value(self) -> str:
        return {"accept-new": "accept-new", "strict": "yes", "off": "no"}[self.value]


class AddressFamily(str, Enum):
    AUTO = "auto"
    IPV4 = "ipv4"
    IPV6 = "ipv6"

    @property
    def ssh_value(self) -> Optional[str]:
        return {"auto": None, "ipv4": "inet", "ipv6": "inet6"}[self.value]


class ProxyType(str, Enum):
    NONE = "none"
    SOCKS4 = "socks4"
    SOCKS5 = "socks5"
    HTTP = "http"
    COMMAND = "command"


class LogVerbosity(str, Enum):
    NONE = "none"
    VERBOSE = "verbose"
    DEBUG2 = "debug2"
    DEBUG3 = "debug3"

    @property
    def ssh_flags(self):
        return {"none": [], "verbose": ["-v"], "debug2": ["-vv"], "debug3": ["-vvv"]}[self.value]


class TransferBackend(str, Enum):
    SFTP = "sftp"
    SCP = "scp"
    FTP = "ftp"

    @property
    def title(self) -> str:
        return self.value.upper()


def clamp_port(port) -> int:
    try:
        value = int(port)
    except (TypeError, ValueError):
        value = 22
    return max(MIN_PORT, min(MAX_PORT, value))


def _coerce(enum_cls, value, default):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        return default


def _load_fields(cls, data: Dict[str, Any], enums: Dict[str, Any]) -> Dict[str, Any]:
    # Unknown keys are dropped, missing keys keep the dataclass default
    known = {f.name for f in fields(cls)}
    kwargs = {k: v for k, v in (data or {}).items() if k in known}
    for name, (enum_cls, default) in enums.items():
        if name in kwargs:
            kwargs[name] = _coerce(enum_cls, kwargs[name], default)
    return kwargs


def _dump(obj) -> Dict[str, Any]:
    out = {}
    for f in fields(obj):
        value = getattr(obj, f.name)
        if isinstance(value, Enum):
            value = value.value
        elif hasattr(value, "to_dict"):
            value = value.to_dict()
        out[f.name] = value
    return out


@dataclass
class SessionOptions:
    terminal_type: str = "xterm-256color"
    locale_charset: str = "UTF-8"

    request_tty: RequestTTY = RequestTTY.FORCE
    connect_timeout: int = 15
    keepalive_interval: int = 0
    keepalive_count_max: int = 3
    tcp_keepalive: bool = True
    address_family: AddressFamily = AddressFamily.AUTO
    bind_address: str = ""
    strict_host_key_checking: StrictHostKeyMode = StrictHostKeyMode.ACCEPT_NEW
    user_known_hosts_file: str = ""

    enable_pubkey_auth: bool = True
    enable_password_auth: bool = True
    enable_kbd_interactive_auth: bool = True
    enable_gssapi_auth: bool = True
    forward_agent: bool = False
    gssapi_delegate_credentials: bool = False
    compression: bool = False
    x11_forwarding: bool = False
    x11_display: str = ""

    kex_algorithms: str = ""
    ciphers: str = ""
    macs: str = ""
    host_key_algorithms: str = ""
    rekey_limit: str = ""
    remote_command: str = ""
    no_shell: bool = False

    # newline-delimited specs
    local_forwards: str = ""
    remote_forwards: str = ""
    dynamic_forwards: str = ""
    send_env: str = ""
    set_env: str = ""

    proxy_type: ProxyType = ProxyType.NONE
    proxy_host: str = ""
    proxy_port: int = 0
    proxy_username: str = ""
    proxy_password: str = ""
    proxy_command: str = ""

    logging_enabled: bool = False
    log_file: str = ""
    log_verbosity: LogVerbosity = LogVerbosity.NONE

    _ENUMS = {
        'request_tty': (RequestTTY, RequestTTY.FORCE),
        'address_family': (AddressFamily, AddressFamily.AUTO),
        'strict_host_key_checking': (StrictHostKeyMode, StrictHostKeyMode.ACCEPT_NEW),
        'proxy_type': (ProxyType, ProxyType.NONE),
        'log_verbosity': (LogVerbosity, LogVerbosity.NONE),
    }

    def to_dict(self) -> Dict[str, Any]:
        return _dump(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SessionOptions':
        return cls(**_load_fields(cls, data, cls._ENUMS))


@dataclass
class FileTransferConfig:
    backend: TransferBackend = TransferBackend.SFTP
    remote_root: str = "."
    auto_refresh_seconds: int = 3
    live_preview: bool = True
    ftp_use_tls: bool = False
    ftp_passive: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return _dump(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'FileTransferConfig':
        return cls(**_load_fields(cls, data, {'backend': (TransferBackend, TransferBackend.SFTP)}))


@dataclass
class ConnectionConfig:
    host: str = ""
    port: int = 22
    username: str = ""
    name: str = "New Host"
    protocol: ConnectionProtocol = ConnectionProtocol.SSH
    auth_method: AuthMethod = AuthMethod.KEY
    key_path: str = "~/.ssh/id_rsa"
    launch_mode: LaunchMode = LaunchMode.EMBEDDED
    options: SessionOptions = field(default_factory=SessionOptions)
    file_transfer: FileTransferConfig = field(default_factory=FileTransferConfig)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def __post_init__(self):
        self.port = clamp_port(self.port)
        self.host = (self.host or "").strip()
        self.username = (self.username or "").strip()

    def display_name(self) -> str:
        if self.name and self.name.strip():
            return self.name.strip()
        if self.protocol == ConnectionProtocol.SSH and self.username:
            return f"{self.username}@{self.host}:{self.port}"
        return f"{self.host}:{self.port}"

    def to_dict(self) -> Dict[str, Any]:
        return _dump(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ConnectionConfig':
        data = data or {}
        kwargs = _load_fields(cls, data, {
            'protocol': (ConnectionProtocol, ConnectionProtocol.SSH),
            'auth_method': (AuthMethod, AuthMethod.KEY),
            'launch_mode': (LaunchMode, LaunchMode.EMBEDDED),
        })
        kwargs['options'] = SessionOptions.from_dict(data.get('options') or {})
        kwargs['file_transfer'] = FileTransferConfig.from_dict(data.get('file_transfer') or {})
        return cls(**kwargs)
