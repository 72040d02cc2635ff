"""Read and write OpenSSH ``ssh_config`` text.

Decoding maps ``Host`` blocks onto ConnectionConfig objects, one per concrete
alias. Encoding writes one ``Host`` block per config under a unique alias.
Directives that have no counterpart in the model are ignored on import.
"""
from typing import Dict, Iterable, List, Optional, Set
import logging
import re

from ..models.session import (
    AddressFamily, AuthMethod, ConnectionConfig, LogVerbosity, ProxyType,
    RequestTTY, SessionOptions, StrictHostKeyMode, clamp_port,
)
from .ssh_command import non_empty_lines, proxy_command, ssh_bool

logger = logging.getLogger(__name__)

INDENT = "    "
SKIPPED_KEYWORDS = ("match", "include")

_ALIAS_SEPARATOR = re.compile(r"[^\w.-]+")
_NEEDS_QUOTES = re.compile(r"[\s#\"'\\]")

_REQUEST_TTY_VALUES = {
    RequestTTY.FORCE: "force",
    RequestTTY.AUTO: "auto",
    RequestTTY.DISABLED: "no",
}
_LOG_LEVELS = {
    LogVerbosity.NONE: "INFO",
    LogVerbosity.VERBOSE: "VERBOSE",
    LogVerbosity.DEBUG2: "DEBUG2",
    LogVerbosity.DEBUG3: "DEBUG3",
}


class EmptyConfigError(ValueError):
    def __init__(self, message="OpenSSH config does not contain importable Host entries."):
        super().__init__(message)


# ===== encode =====

def quote_if_needed(value: str) -> str:
    if not _NEEDS_QUOTES.search(value):
        return value
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def sanitized_alias(name: str, fallback: str) -> str:
    source = name.strip() or fallback
    pieces = [p for p in _ALIAS_SEPARATOR.split(source.lower()) if p]
    return "-".join(pieces) or "host"


def unique_alias(config: ConnectionConfig, used: Set[str]) -> str:
    base = sanitized_alias(config.name, config.host or "host")
    candidate = base
    suffix = 2
    while candidate in used:
        candidate = f"{base}-{suffix}"
        suffix += 1
    used.add(candidate)
    return candidate


def _proxy_value(options: SessionOptions) -> str:
    # The template is exported as typed; placeholders may carry secrets
    if options.proxy_type == ProxyType.COMMAND:
        return options.proxy_command.strip()
    return proxy_command(options) or ""


def _encode_host(config: ConnectionConfig, alias: str) -> List[str]:
    options = config.options
    lines = [f"Host {quote_if_needed(alias)}"]

    def add(key, value):
        lines.append(f"{INDENT}{key} {value}")

    def add_if_set(key, value):
        value = value.strip()
        if value:
            add(key, quote_if_needed(value))

    display_name = config.display_name().strip()
    if display_name and display_name != alias:
        lines.append(f"{INDENT}# Name: {display_name}")

    add_if_set("HostName", config.host)
    add_if_set("User", config.username)
    add("Port", clamp_port(config.port))

    if config.auth_method == AuthMethod.PASSWORD:
        add("PubkeyAuthentication", "no")
        add("PasswordAuthentication", "yes")
    else:
        add("PubkeyAuthentication", "yes")
        add("PasswordAuthentication", ssh_bool(options.enable_password_auth))
        add_if_set("IdentityFile", config.key_path)

    add("RequestTTY", _REQUEST_TTY_VALUES[options.request_tty])
    add("StrictHostKeyChecking", options.strict_host_key_checking.ssh_value)
    add("TCPKeepAlive", ssh_bool(options.tcp_keepalive))
    add("ForwardAgent", ssh_bool(options.forward_agent))
    add("KbdInteractiveAuthentication", ssh_bool(options.enable_kbd_interactive_auth))
    add("GSSAPIAuthentication", ssh_bool(options.enable_gssapi_auth))
    add("GSSAPIDelegateCredentials", ssh_bool(options.gssapi_delegate_credentials))
    add("Compression", ssh_bool(options.compression))
    add("ForwardX11", ssh_bool(options.x11_forwarding))

    if options.connect_timeout > 0:
        add("ConnectTimeout", options.connect_timeout)
    if options.keepalive_interval > 0:
        add("ServerAliveInterval", options.keepalive_interval)
        add("ServerAliveCountMax", options.keepalive_count_max)
    if options.address_family.ssh_value:
        add("AddressFamily", options.address_family.ssh_value)

    add_if_set("UserKnownHostsFile", options.user_known_hosts_file)
    add_if_set("BindAddress", options.bind_address)
    add_if_set("KexAlgorithms", options.kex_algorithms)
    add_if_set("Ciphers", options.ciphers)
    add_if_set("MACs", options.macs)
    add_if_set("HostKeyAlgorithms", options.host_key_algorithms)
    add_if_set("RekeyLimit", options.rekey_limit)
    add_if_set("RemoteCommand", options.remote_command)
    add_if_set("ProxyCommand", _proxy_value(options))
    add_if_set("SetEnv", " ".join(non_empty_lines(options.set_env)))

    for key, text in (("SendEnv", options.send_env),
                      ("LocalForward", options.local_forwards),
                      ("RemoteForward", options.remote_forwards),
                      ("DynamicForward", options.dynamic_forwards)):
        for value in non_empty_lines(text):
            add(key, quote_if_needed(value))

    if options.logging_enabled or options.log_verbosity != LogVerbosity.NONE:
        add("LogLevel", _LOG_LEVELS[options.log_verbosity])
    if options.no_shell and not options.remote_command.strip():
        add("SessionType", "none")
    return lines


def encode(configs: Iterable[ConnectionConfig]) -> str:
    used: Set[str] = set()
    blocks = []
    for config in configs:
        alias = unique_alias(config, used)
        blocks.append("\n".join(_encode_host(config, alias)))
    return "\n\n".join(blocks) + "\n"


# ===== decode =====

def _words(line: str) -> List[str]:
    """Split like ssh does: double quotes group, ``#`` starting a word ends the line.

    A backslash escapes only a quote, another backslash, or (outside quotes)
    a blank. Any other backslash or apostrophe is literal.
    """
    words: List[str] = []
    word: Optional[str] = None
    quoted = False
    i = 0
    while i < len(line):
        ch = line[i]
        following = line[i + 1] if i + 1 < len(line) else ""
        if ch == "\\" and (following in ('"', "\\") or (not quoted and following in (" ", "\t"))):
            word = (word or "") + following
            i += 2
            continue
        if quoted:
            if ch == '"':
                quoted = False
            else:
                word += ch
        elif ch == '"':
            quoted = True
            word = word or ""
        elif ch.isspace():
            if word is not None:
                words.append(word)
                word = None
        elif ch == "#" and word is None:
            break
        else:
            word = (word or "") + ch
        i += 1
    if quoted:
        raise ValueError("No closing quotation")
    if word is not None:
        words.append(word)
    return words


def split_directive(line: str) -> List[str]:
    """Tokenize one line; quotes group words and ``#`` starts a comment."""
    tokens = _words(line)
    if not tokens:
        return tokens

    # Keyword=Value and Keyword = Value forms
    keyword = tokens[0]
    rest = tokens[1:]
    if "=" in keyword:
        keyword, value = keyword.split("=", 1)
        if value:
            rest.insert(0, value)
    elif rest and rest[0].startswith("="):
        value = rest.pop(0)[1:]
        if value:
            rest.insert(0, value)
    return [keyword, *rest]


def concrete_aliases(values: List[str]) -> List[str]:
    return [alias for alias in values
            if alias and "*" not in alias and "?" not in alias and not alias.startswith("!")]


def parse_bool(value: Optional[str]) -> Optional[bool]:
    if value is None:
        return None
    lowered = value.lower()
    if lowered in ("yes", "true", "on"):
        return True
    if lowered in ("no", "false", "off"):
        return False
    return None


def _parse_int(value: Optional[str]) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _parse_strict_host_key(value: str) -> StrictHostKeyMode:
    lowered = value.lower()
    if lowered == "accept-new":
        return StrictHostKeyMode.ACCEPT_NEW
    if lowered in ("no", "off"):
        return StrictHostKeyMode.OFF
    return StrictHostKeyMode.STRICT


def _parse_request_tty(value: str) -> RequestTTY:
    lowered = value.lower()
    if lowered == "force":
        return RequestTTY.FORCE
    if lowered == "no":
        return RequestTTY.DISABLED
    return RequestTTY.AUTO


def _parse_address_family(value: str) -> AddressFamily:
    return {"inet": AddressFamily.IPV4, "inet6": AddressFamily.IPV6}.get(value.lower(), AddressFamily.AUTO)


def _parse_log_level(value: str) -> LogVerbosity:
    levels = {v: k for k, v in _LOG_LEVELS.items() if k != LogVerbosity.NONE}
    return levels.get(value.upper(), LogVerbosity.NONE)


class _HostBlock:
    """Directives collected under one ``Host`` line, keyed by lower-cased keyword."""

    def __init__(self, aliases: List[str]):
        self.aliases = aliases
        self.directives: Dict[str, List[str]] = {}

    def add(self, keyword: str, values: List[str]):
        self.directives.setdefault(keyword.lower(), []).append(" ".join(values))

    def first(self, key: str) -> Optional[str]:
        values = self.directives.get(key)
        return values[0].strip() if values else None

    def joined(self, key: str) -> str:
        values = [v.strip() for v in self.directives.get(key, [])]
        return "\n".join(v for v in values if v)

    def flag(self, key: str) -> Optional[bool]:
        return parse_bool(self.first(key))

    def build(self) -> List[ConnectionConfig]:
        return [self._build_one(alias) for alias in self.aliases]

    def _build_one(self, alias: str) -> ConnectionConfig:
        config = ConnectionConfig(
            name=alias,
            host=self.first("hostname") or alias,
            username=self.first("user") or "",
            port=_parse_int(self.first("port")) or 22,
        )

        identity_file = self.first("identityfile") or ""
        if identity_file:
            config.auth_method = AuthMethod.KEY
            config.key_path = identity_file
        elif self.flag("passwordauthentication") and self.flag("pubkeyauthentication") is False:
            config.auth_method = AuthMethod.PASSWORD
            config.key_path = ""
        else:
            config.auth_method = AuthMethod.KEY
            config.key_path = ""

        self._apply_options(config.options)
        return config

    def _apply_options(self, options: SessionOptions):
        value = self.first("stricthostkeychecking")
        if value:
            options.strict_host_key_checking = _parse_strict_host_key(value)
        value = self.first("requesttty")
        if value:
            options.request_tty = _parse_request_tty(value)
        value = self.first("addressfamily")
        if value:
            options.address_family = _parse_address_family(value)

        for key, attr in (("connecttimeout", "connect_timeout"),
                          ("serveraliveinterval", "keepalive_interval"),
                          ("serveralivecountmax", "keepalive_count_max")):
            number = _parse_int(self.first(key))
            if number is not None:
                setattr(options, attr, number)

        for key, attr in (("userknownhostsfile", "user_known_hosts_file"),
                          ("bindaddress", "bind_address"),
                          ("kexalgorithms", "kex_algorithms"),
                          ("ciphers", "ciphers"),
                          ("macs", "macs"),
                          ("hostkeyalgorithms", "host_key_algorithms"),
                          ("rekeylimit", "rekey_limit"),
                          ("remotecommand", "remote_command")):
            setattr(options, attr, self.first(key) or "")

        command = self.first("proxycommand") or ""
        if command and command.lower() != "none":
            options.proxy_type = ProxyType.COMMAND
            options.proxy_command = command

        value = self.first("loglevel")
        if value:
            options.log_verbosity = _parse_log_level(value)
            options.logging_enabled = options.log_verbosity != LogVerbosity.NONE

        kbd_interactive = self.flag("kbdinteractiveauthentication")
        if kbd_interactive is None:
            kbd_interactive = self.flag("challengeresponseauthentication")

        for flag, attr in ((self.flag("forwardagent"), "forward_agent"),
                           (self.flag("tcpkeepalive"), "tcp_keepalive"),
                           (self.flag("pubkeyauthentication"), "enable_pubkey_auth"),
                           (self.flag("passwordauthentication"), "enable_password_auth"),
                           (kbd_interactive, "enable_kbd_interactive_auth"),
                           (self.flag("gssapiauthentication"), "enable_gssapi_auth"),
                           (self.flag("gssapidelegatecredentials"), "gssapi_delegate_credentials"),
                           (self.flag("compression"), "compression"),
                           (self.flag("forwardx11"), "x11_forwarding")):
            if flag is not None:
                setattr(options, attr, flag)

        if (self.first("sessiontype") or "").lower() == "none":
            options.no_shell = True

        options.send_env = self.joined("sendenv")
        options.set_env = "\n".join(self.joined("setenv").split())
        options.local_forwards = self.joined("localforward")
        options.remote_forwards = self.joined("remoteforward")
        options.dynamic_forwards = self.joined("dynamicforward")


def decode(text: str) -> List[ConnectionConfig]:
    blocks: List[_HostBlock] = []
    current: Optional[_HostBlock] = None

    for number, raw in enumerate((text or "").splitlines(), 1):
        try:
            parts = split_directive(raw)
        except ValueError as e:
            logger.warning(f"Skipping line {number} of OpenSSH config: {e}")
            continue
        if not parts:
            continue

        keyword, values = parts[0].lower(), parts[1:]
        if keyword in SKIPPED_KEYWORDS:
            continue
        if keyword == "host":
            aliases = concrete_aliases(values)
            current = _HostBlock(aliases) if aliases else None
            if current is not None:
                blocks.append(current)
            continue
        if current is not None:
            current.add(keyword, values)

    configs = [config for block in blocks for config in block.build()]
    if not configs:
        raise EmptyConfigError()
    logger.info(f"Decoded {len(configs)} host(s) from OpenSSH config")
    return configs
