import shlex

from sshdeck.core.quoting import (
    encode_path_segment, encode_url_path, netrc_token, sftp_quote, shell_join, shell_quote,
)


def test_shell_quote_plain_and_empty():
    assert shell_quote("abc") == "'abc'"
    assert shell_quote("") == "''"


def test_shell_quote_embedded_single_quote():
    assert shell_quote("a'b") == "'a'\\''b'"


def test_shell_quote_reads_back_unchanged():
    for value in ["it's", "two words", "$HOME", "back`tick`", "semi;colon", "new\nline", "'"]:
        assert shlex.split(shell_quote(value)) == [value]


def test_shell_join():
    assert shell_join(["ssh", "-p", "22", "my host"]) == "'ssh' '-p' '22' 'my host'"


def test_sftp_quote_escapes_backslash_then_quote():
    assert sftp_quote('dir "x"') == '"dir \\"x\\""'
    assert sftp_quote("a\\b") == '"a\\\\b"'


def test_netrc_token():
    assert netrc_token('p"w\\') == '"p\\"w\\\\"'


def test_encode_path_segment():
    assert encode_path_segment("a b") == "a%20b"
    assert encode_path_segment("x@y:z") == "x@y:z"
    assert encode_path_segment("100%") == "100%25"
    assert encode_path_segment("q?#") == "q%3F%23"


def test_encode_url_path():
    assert encode_url_path("") == "/"
    assert encode_url_path(".") == "/"
    assert encode_url_path("pub/file name.txt") == "/pub/file%20name.txt"
    assert encode_url_path("/pub/dir/") == "/pub/dir/"
    assert encode_url_path("/") == "/"
