import os


def normalize_remote_path(path) -> str:
    value = (path or "").strip()
    return value or "."


def join_remote_path(base: str, name: str) -> str:
    clean_base = normalize_remote_path(base)
    if clean_base == "/":
        return "/" + name
    if clean_base.endswith("/"):
        return clean_base + name
    return clean_base + "/" + name


def parent_path(path: str) -> str:
    value = (path or "").strip()
    if value in ("", ".", "~", "/"):
        return value or "."

    if value.endswith("/"):
        value = value[:-1]

    slash = value.rfind("/")
    if slash < 0:
        return "."
    return value[:slash] or "/"


def basename(path: str) -> str:
    return os.path.basename(path.rstrip("/\\")) or path


def expand_local_path(path) -> str:
    value = (path or "").strip()
    if not value:
        return ""
    return os.path.expanduser(value)
