from sshdeck.core.listing import (
    parse_listing, parse_name_only_listing, parse_unix_line, parse_windows_line,
)

SFTP_OUTPUT = """\
sftp> cd "/srv"
sftp> ls -la
drwxr-xr-x    5 alice    staff        4096 Mar  1 10:00 .
drwxr-xr-x   20 root     root         4096 Jan  9  2023 ..
-rw-r--r--    1 alice    staff        1234 Mar  1 10:00 notes.txt
drwxr-xr-x    2 alice    staff        4096 Feb 28 09:12 Backups
lrwxrwxrwx    1 alice    staff          11 Feb 27 18:40 current -> releases/42
-rw-r--r--    1 alice    staff           7 Feb 27 18:40 My File.txt
"""


def test_unix_line_fields():
    entry = parse_unix_line("-rw-r--r-- 1 u g 1234 Jan 01 12:00 file.txt", "/tmp")
    assert entry.name == "file.txt"
    assert entry.full_path == "/tmp/file.txt"
    assert entry.is_dir is False
    assert entry.size_text == "1234"
    assert entry.modified_text == "Jan 01 12:00"


def test_unix_line_symlink_target_is_dropped():
    entry = parse_unix_line("lrwxrwxrwx 1 u g 11 Jan 01 12:00 link -> target", "/")
    assert entry.name == "link"
    assert entry.full_path == "/link"
    assert entry.is_dir is False


def test_unix_line_rejects_short_and_unknown_types():
    assert parse_unix_line("-rw-r--r-- 1 u g 1234 Jan 01 file.txt", "/") is None
    assert parse_unix_line("crw-rw-rw- 1 root root 1, 3 Jan 01 12:00 null", "/dev") is None


def test_windows_line():
    entry = parse_windows_line("01-02-24  10:00AM       <DIR>          Logs", "/")
    assert entry.name == "Logs"
    assert entry.is_dir is True
    assert entry.size_text == "-"

    entry = parse_windows_line("01-02-24  03:15PM              2048 report.csv", "/data")
    assert entry.full_path == "/data/report.csv"
    assert entry.is_dir is False
    assert entry.size_text == "2048"


def test_parse_listing_skips_noise_and_dot_entries():
    entries = parse_listing(SFTP_OUTPUT, "/srv")
    assert [e.name for e in entries] == ["Backups", "current", "My File.txt", "notes.txt"]
    assert [e.is_dir for e in entries] == [True, False, False, False]
    assert entries[2].full_path == "/srv/My File.txt"


def test_parse_listing_total_line_and_garbage():
    text = "total 8\nConnected to example.com.\nnot a listing line\n\n"
    assert parse_listing(text, ".") == []


def test_parse_listing_mixed_windows_lines():
    text = (
        "01-02-24  10:00AM       <DIR>          b_dir\n"
        "01-02-24  10:00AM                 10 A.TXT\n"
        "drwxr-xr-x 2 u g 4096 Jan 01 12:00 a_dir\n"
    )
    entries = parse_listing(text, "/")
    assert [e.name for e in entries] == ["a_dir", "b_dir", "A.TXT"]


def test_parse_listing_is_sorted_dirs_first_case_insensitive():
    text = (
        "-rw-r--r-- 1 u g 1 Jan 01 12:00 beta\n"
        "-rw-r--r-- 1 u g 1 Jan 01 12:00 Alpha\n"
        "drwxr-xr-x 2 u g 1 Jan 01 12:00 zeta\n"
        "drwxr-xr-x 2 u g 1 Jan 01 12:00 Eta\n"
    )
    names = [e.name for e in parse_listing(text, ".")]
    assert names == ["Eta", "zeta", "Alpha", "beta"]


def test_parse_name_only_listing():
    entries = parse_name_only_listing("readme.md\npub/\n\n.\n..\n", "/")
    assert [(e.name, e.is_dir, e.full_path) for e in entries] == [
        ("pub", True, "/pub"),
        ("readme.md", False, "/readme.md"),
    ]
    assert entries[1].size_text == "-"
    assert entries[1].modified_text == ""


def test_parse_listing_handles_none():
    assert parse_listing(None, ".") == []
    assert parse_name_only_listing("", ".") == []
