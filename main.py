import argparse
import json
import logging
import signal
import sys

from PyQt5.QtCore import QCoreApplication

from sshdeck.core.credentials import KeyringCredentialStore
from sshdeck.core.openssh_config import EmptyConfigError, decode, encode
from sshdeck.core.remote_file_service import RemoteFileService
from sshdeck.core.settings import SettingsManager
from sshdeck.core.ssh_command import ConnectionArgumentBuilder
from sshdeck.core.transfer import TransferCommandEngine
from sshdeck.models.session import ConnectionConfig

logger = logging.getLogger("sshdeck")


def load_hosts(path):
    with open(path, 'r', encoding='utf-8') as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = data.get('hosts', [])
    return [ConnectionConfig.from_dict(item) for item in data]


def find_host(hosts, name):
    for host in hosts:
        if name in (host.id, host.name, host.display_name()):
            return host
    raise SystemExit(f"Host not found: {name}")


def cmd_import_openssh(args):
    with open(args.file, 'r', encoding='utf-8') as f:
        text = f.read()
    try:
        hosts = decode(text)
    except EmptyConfigError as e:
        print(e, file=sys.stderr)
        return 1
    print(json.dumps({'hosts': [h.to_dict() for h in hosts]}, indent=2))
    return 0


def cmd_export_openssh(args):
    sys.stdout.write(encode(load_hosts(args.hosts)))
    return 0


def cmd_command(args):
    settings = SettingsManager(args.settings).settings
    host = find_host(load_hosts(args.hosts), args.name)
    outcome = ConnectionArgumentBuilder(settings).build_terminal_command(host)
    if not outcome.ok:
        print(outcome.error, file=sys.stderr)
        return 1
    print(outcome.value)
    return 0


def cmd_ls(args):
    settings = SettingsManager(args.settings).settings
    host = find_host(load_hosts(args.hosts), args.name)
    engine = TransferCommandEngine(KeyringCredentialStore(), settings)
    outcome = engine.list_directory(host, args.path or host.file_transfer.remote_root)
    if not outcome.ok:
        print(outcome.error, file=sys.stderr)
        return 1
    if args.json:
        print(json.dumps([entry.to_dict() for entry in outcome.value], indent=2))
        return 0
    for entry in outcome.value:
        kind = "d" if entry.is_dir else "-"
        print(f"{kind} {entry.size_text:>10} {entry.modified_text:<12} {entry.name}")
    return 0


def cmd_config(args):
    manager = SettingsManager(args.settings)
    try:
        current = manager.get(args.key)
    except KeyError:
        print(f"Unknown setting: {args.key}", file=sys.stderr)
        return 1
    if args.value is None:
        print(current)
        return 0

    value = args.value
    if isinstance(current, int):
        try:
            value = int(value)
        except ValueError:
            print(f"{args.key} must be an integer", file=sys.stderr)
            return 1
    manager.set(args.key, value)
    manager.save_settings()
    return 0


def cmd_watch(args):
    """Keep a directory listing fresh until interrupted."""
    app = QCoreApplication(sys.argv[:1])
    signal.signal(signal.SIGINT, signal.SIG_DFL)

    settings = SettingsManager(args.settings).settings
    host = find_host(load_hosts(args.hosts), args.name)
    if args.path:
        host.file_transfer.remote_root = args.path

    service = RemoteFileService(TransferCommandEngine(KeyringCredentialStore(), settings))
    service.log_appended.connect(print)
    service.activate(host)
    if args.interval:
        service.set_refresh_interval(args.interval)
    try:
        return app.exec_()
    finally:
        service.shutdown()


def build_parser():
    parser = argparse.ArgumentParser(prog="sshdeck", description="SSH/Telnet session and file transfer helper")
    parser.add_argument('--settings', help="settings JSON file (default ~/.config/sshdeck/settings.json)")
    parser.add_argument('-v', '--verbose', action='store_true', help="debug logging")
    sub = parser.add_subparsers(dest='command', required=True)

    p = sub.add_parser('import-openssh', help="print hosts from an OpenSSH config as JSON")
    p.add_argument('file')
    p.set_defaults(func=cmd_import_openssh)

    p = sub.add_parser('export-openssh', help="print hosts from a JSON file as OpenSSH config")
    p.add_argument('hosts')
    p.set_defaults(func=cmd_export_openssh)

    p = sub.add_parser('command', help="print the command line for an external terminal")
    p.add_argument('hosts')
    p.add_argument('name')
    p.set_defaults(func=cmd_command)

    p = sub.add_parser('ls', help="list a remote directory")
    p.add_argument('hosts')
    p.add_argument('name')
    p.add_argument('path', nargs='?')
    p.add_argument('--json', action='store_true', help="print entries as JSON")
    p.set_defaults(func=cmd_ls)

    p = sub.add_parser('config', help="show or change a client setting")
    p.add_argument('key')
    p.add_argument('value', nargs='?')
    p.set_defaults(func=cmd_config)

    p = sub.add_parser('watch', help="list a remote directory on an auto-refresh timer")
    p.add_argument('hosts')
    p.add_argument('name')
    p.add_argument('path', nargs='?')
    p.add_argument('--interval', type=int, help="refresh interval in seconds (1-60)")
    p.set_defaults(func=cmd_watch)
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s',
    )
    return args.func(args)


if __name__ == '__main__':
    sys.exit(main())
