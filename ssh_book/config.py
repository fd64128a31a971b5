from __future__ import annotations

from pathlib import Path

from platformdirs import user_data_dir
from pydantic import BaseModel, ConfigDict

APP_NAME = "ssh-book"
DATA_FILE_NAME = "data.json"


class StoreConfig(BaseModel):
    """Where the record store keeps its document."""

    model_config = ConfigDict(frozen=True)

    data_dir: Path
    file_name: str = DATA_FILE_NAME

    @property
    def data_file(self) -> Path:
        return self.data_dir / self.file_name

    @classmethod
    def default(cls) -> StoreConfig:
        """Per-user application data directory for the current platform."""
        return cls(data_dir=Path(user_data_dir(APP_NAME, appauthor=False)))

    @classmethod
    def resolve(cls, data_dir: Path | str | None = None) -> StoreConfig:
        if data_dir is None:
            return cls.default()
        return cls(data_dir=Path(data_dir).expanduser())
