"""Event arguments passed to listeners of a POST route."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping


class UploadState(Enum):
    """The stage of a file upload."""

    STARTING = "starting"
    PROGRESS = "progress"
    FINISHED = "finished"


@dataclass(frozen=True)
class BasePostEventArgs:
    """The server event and the id tracking one POST."""

    event: Any
    post_id: str


@dataclass(frozen=True)
class PostEventArgs(BasePostEventArgs):
    """A raw, unparsed POST body."""

    data: bytes


@dataclass(frozen=True)
class PostFormEventArgs(BasePostEventArgs):
    """A parsed POST form."""

    form: Mapping[str, str]


@dataclass(frozen=True)
class PostUploadEventArgs(BasePostEventArgs):
    """Progress of a file upload within a POST."""

    form_field_name: str
    original_filename: str
    filename: str
    content_type: str
    num_bytes_transferred: int
    state: UploadState

    def __post_init__(self) -> None:
        if self.num_bytes_transferred < 0:
            raise ValueError("num_bytes_transferred must not be negative.")
        object.__setattr__(self, "state", UploadState(self.state))