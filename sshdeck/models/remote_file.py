from dataclasses import dataclass
from typing import Dict, Any


@dataclass(frozen=True)
class RemoteFileEntry:
    name: str
    full_path: str
    is_dir: bool
    size_text: str = "-"
    modified_text: str = ""

    @property
    def id(self) -> str:
        return self.full_path

    def sort_key(self):
        # Directories first, then case-insensitive name
        return (0 if self.is_dir else 1, self.name.casefold())

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'full_path': self.full_path,
            'is_dir': self.is_dir,
            'size_text': self.size_text,
            'modified_text': self.modified_text,
        }
