import pytest

from sshdeck.core.process_runner import ASKPASS_HELPER, ASKPASS_SECRET_ENV
from sshdeck.core.ssh_command import (
    ConnectionArgumentBuilder, auth_methods, mask_secret, non_empty_lines, proxy_command,
    transfer_option_args,
)
from sshdeck.models.session import (
    AddressFamily, AuthMethod, ConnectionProtocol, LogVerbosity, ProxyType, RequestTTY,
    StrictHostKeyMode,
)


@pytest.fixture
def builder(settings, credentials):
    return ConnectionArgumentBuilder(settings, credentials)


def opt(args, key):
    """Values of every ``-o key=value`` pair in args."""
    return [a.split("=", 1)[1] for i, a in enumerate(args)
            if i > 0 and args[i - 1] == "-o" and a.startswith(key + "=")]


def test_default_key_auth_args(builder, make_config):
    args = builder.ssh_args(make_config())
    assert args == [
        "-tt", "-p", "22",
        "-o", "StrictHostKeyChecking=accept-new",
        "-o", "TCPKeepAlive=yes",
        "-o", "Compression=no",
        "-o", "ForwardAgent=no",
        "-o", "PubkeyAuthentication=yes",
        "-o", "PasswordAuthentication=yes",
        "-o", "KbdInteractiveAuthentication=yes",
        "-o", "GSSAPIAuthentication=yes",
        "-o", "GSSAPIDelegateCredentials=no",
        "-o", "ConnectTimeout=15",
        "-o", "PreferredAuthentications=publickey,keyboard-interactive,password,gssapi-with-mic",
        "-o", "IdentitiesOnly=yes",
        "-i", "/keys/id_ed25519",
        "alice@example.com",
    ]


def test_target_and_remote_command_come_last(builder, make_config):
    config = make_config(remote_command="tail -f /var/log/syslog")
    args = builder.ssh_args(config)
    assert args[-2:] == ["alice@example.com", "tail -f /var/log/syslog"]
    assert "-N" not in args


def test_no_shell_without_remote_command(builder, make_config):
    args = builder.ssh_args(make_config(no_shell=True))
    assert args[-2:] == ["-N", "alice@example.com"]


def test_optional_flags(builder, make_config):
    config = make_config(
        request_tty=RequestTTY.DISABLED,
        compression=True,
        keepalive_interval=30,
        keepalive_count_max=0,
        address_family=AddressFamily.IPV6,
        bind_address="10.0.0.5",
        x11_forwarding=True,
        strict_host_key_checking=StrictHostKeyMode.OFF,
        connect_timeout=0,
        kex_algorithms=" curve25519-sha256 ",
        log_verbosity=LogVerbosity.DEBUG2,
        logging_enabled=True,
        log_file="/tmp/ssh.log",
    )
    args = builder.ssh_args(config)
    assert args[:4] == ["-T", "-p", "22", "-C"]
    assert opt(args, "StrictHostKeyChecking") == ["no"]
    assert opt(args, "ServerAliveInterval") == ["30"]
    assert opt(args, "ServerAliveCountMax") == ["1"]
    assert opt(args, "AddressFamily") == ["inet6"]
    assert opt(args, "KexAlgorithms") == ["curve25519-sha256"]
    assert opt(args, "ConnectTimeout") == []
    assert args[args.index("-b") + 1] == "10.0.0.5"
    assert "-X" in args
    assert args[args.index("-vv") + 1:args.index("-vv") + 3] == ["-E", "/tmp/ssh.log"]


def test_forwards_and_env(builder, make_config):
    config = make_config(
        local_forwards="8080:localhost:80\n\n# comment\n9090:db:5432",
        remote_forwards="2222:localhost:22",
        dynamic_forwards="1080",
        send_env="LANG\nLC_*",
        set_env="FOO=bar\nbroken\nBAZ=1=2",
    )
    args = builder.ssh_args(config)
    pairs = list(zip(args, args[1:]))
    assert ("-L", "8080:localhost:80") in pairs
    assert ("-L", "9090:db:5432") in pairs
    assert ("-R", "2222:localhost:22") in pairs
    assert ("-D", "1080") in pairs
    assert opt(args, "SendEnv") == ["LANG", "LC_*"]
    assert opt(args, "SetEnv") == ["FOO=bar", "BAZ=1=2"]


def test_password_auth_forces_password_method(builder, make_config):
    config = make_config(auth=AuthMethod.PASSWORD, enable_password_auth=False,
                         enable_kbd_interactive_auth=False, enable_gssapi_auth=False)
    assert auth_methods(config) == ["publickey", "password"]
    args = builder.ssh_args(config)
    assert opt(args, "PasswordAuthentication") == ["yes"]
    assert "-i" not in args
    assert opt(args, "IdentitiesOnly") == []


def test_key_auth_requires_key_path(builder, make_config):
    outcome = builder.build(make_config(key_path="  "))
    assert not outcome.ok
    assert outcome.error == "Private key path is empty"


def test_socks5_proxy(builder, make_config):
    config = make_config(proxy_type=ProxyType.SOCKS5, proxy_host="p", proxy_port=1080)
    assert opt(builder.ssh_args(config), "ProxyCommand") == ["nc -x p:1080 -X 5 %h %p"]


def test_proxy_variants(make_config):
    options = make_config(proxy_type=ProxyType.SOCKS4, proxy_host="p", proxy_port=1080,
                          proxy_username=" bob ").options
    assert proxy_command(options) == "nc -x p:1080 -X 4 -P bob %h %p"

    options.proxy_type = ProxyType.HTTP
    assert proxy_command(options) == "nc -x p:1080 -X connect %h %p"

    options.proxy_port = 0
    assert proxy_command(options) is None

    options.proxy_type = ProxyType.COMMAND
    options.proxy_command = "corkscrew %proxy_user%:%proxy_password% proxy 8080 %h %p"
    options.proxy_password = "s3"
    assert proxy_command(options) == "corkscrew bob:s3 proxy 8080 %h %p"


def test_build_validations(builder, make_config):
    assert builder.build(make_config(host="")).error == "Host is empty"
    assert builder.build(make_config(username="")).error == "Username is empty"


def test_build_key_invocation_has_environment(builder, make_config):
    config = make_config(set_env="EDITOR=vim", x11_display=":1", locale_charset="ISO-8859-1")
    invocation = builder.build(config).unwrap()
    assert invocation.executable == "/usr/bin/ssh"
    assert invocation.env["TERM"] == "xterm-256color"
    assert invocation.env["COLORTERM"] == "truecolor"
    assert invocation.env["LANG"] == "en_US.UTF-8"
    assert invocation.env["LC_CTYPE"] == "en_US.ISO-8859-1"
    assert invocation.env["DISPLAY"] == ":1"
    assert invocation.env["EDITOR"] == "vim"


def test_build_password_requires_credential(builder, make_config):
    outcome = builder.build(make_config(auth=AuthMethod.PASSWORD))
    assert outcome.error == "Password is empty in the credential store"


def test_build_password_wraps_with_helper(builder, credentials, make_config):
    credentials.set_password("host-1", "hunter2")
    invocation = builder.build(make_config(auth=AuthMethod.PASSWORD)).unwrap()
    assert invocation.executable == "/usr/bin/python3"
    assert invocation.argv[:2] == [ASKPASS_HELPER, "/usr/bin/ssh"]
    assert "hunter2" not in invocation.argv
    assert invocation.env[ASKPASS_SECRET_ENV] == "hunter2"


def test_telnet(builder, make_config):
    config = make_config(port=23)
    config.protocol = ConnectionProtocol.TELNET
    invocation = builder.build(config).unwrap()
    assert invocation.executable == "/usr/bin/telnet"
    assert invocation.argv == ["-l", "alice", "example.com", "23"]

    config.username = ""
    assert builder.telnet_args(config) == ["example.com", "23"]


def test_telnet_missing_client(settings, make_config):
    settings.telnet_path = ""
    config = make_config()
    config.protocol = ConnectionProtocol.TELNET
    assert ConnectionArgumentBuilder(settings).build(config).error == "Telnet client not found"


def test_terminal_command_key_auth(builder, make_config):
    config = make_config(port=2222, remote_command="htop")
    assert builder.build_terminal_command(config).unwrap() == (
        "'/usr/bin/ssh' '-p' '2222' '-o' 'StrictHostKeyChecking=accept-new' "
        "'-o' 'IdentitiesOnly=yes' '-i' '/keys/id_ed25519' 'alice@example.com' 'htop'"
    )


def test_terminal_command_rejections(builder, make_config):
    assert builder.build_terminal_command(make_config(username="")).error == \
        "Host and username are required"
    assert builder.build_terminal_command(make_config(auth=AuthMethod.PASSWORD)).error.startswith(
        "System terminal mode supports only key auth")
    assert builder.build_terminal_command(make_config(key_path="")).error == \
        "Private key path is required for system terminal mode"


def test_terminal_command_telnet(builder, make_config):
    config = make_config(port=23)
    config.protocol = ConnectionProtocol.TELNET
    assert builder.build_terminal_command(config).unwrap() == \
        "'/usr/bin/telnet' '-l' 'alice' 'example.com' '23'"


def test_transfer_option_args(make_config):
    config = make_config(user_known_hosts_file="/kh", proxy_type=ProxyType.SOCKS5,
                         proxy_host="p", proxy_port=1080)
    assert transfer_option_args(config) == [
        "-o", "StrictHostKeyChecking=accept-new",
        "-o", "ConnectTimeout=15",
        "-o", "UserKnownHostsFile=/kh",
        "-o", "ProxyCommand=nc -x p:1080 -X 5 %h %p",
        "-o", "IdentitiesOnly=yes", "-i", "/keys/id_ed25519",
    ]
    assert "-i" not in transfer_option_args(make_config(auth=AuthMethod.PASSWORD))


def test_helpers():
    assert non_empty_lines(" a \n\n#x\n b") == ["a", "b"]
    assert mask_secret("pass=abc", "abc") == "pass=********"
    assert mask_secret("pass=abc", "") == "pass=abc"


def test_port_assigned_after_construction_is_clamped(builder, make_config):
    config = make_config()
    config.port = 70000
    assert builder.ssh_args(config)[1:3] == ["-p", "65535"]

    config.port = 0
    assert builder.telnet_args(config)[-1] == "1"
