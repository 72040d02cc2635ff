"""Escaping helpers shared by the command builders.

Every value that ends up in a remote shell, an sftp batch file, a netrc file
or an FTP URL passes through one of these functions.
"""
from urllib.parse import quote

# RFC 3986 sub-delims plus ':' and '@' are legal inside a path segment
_PATH_SEGMENT_SAFE = "!$&'()*+,;=:@"


def shell_quote(value: str) -> str:
    """Single-quote a word for a POSIX shell.

    Embedded single quotes are closed, escaped and reopened ('\\''), so the
    shell reads the result back as exactly ``value``.
    """
    if not value:
        return "''"
    return "'" + value.replace("'", "'\\''") + "'"


def shell_join(words) -> str:
    return " ".join(shell_quote(w) for w in words)


def sftp_quote(value: str) -> str:
    """Double-quote an argument for an sftp batch file."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def netrc_token(value: str) -> str:
    """Quote a login or password token for a netrc file read by curl."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def encode_path_segment(segment: str) -> str:
    return quote(segment, safe=_PATH_SEGMENT_SAFE)


def encode_url_path(path: str) -> str:
    """Percent-encode each segment of an absolute FTP path.

    Empty and "." paths map to "/", relative paths are rooted, and a trailing
    slash is preserved.
    """
    normalized = (path or "").strip()
    if not normalized or normalized == ".":
        normalized = "/"
    if not normalized.startswith("/"):
        normalized = "/" + normalized

    encoded = "/".join(encode_path_segment(part) if part else "" for part in normalized.split("/"))
    if normalized.endswith("/") and not encoded.endswith("/"):
        encoded += "/"
    return encoded
