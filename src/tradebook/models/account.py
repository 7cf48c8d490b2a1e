from __future__ import annotations

from dataclasses import dataclass


@dataclass
class Account:
    userid: str
    name: str
    active: bool = True
    id: int | None = None

    def __post_init__(self) -> None:
        self.userid = self.userid.strip().upper()
        self.name = self.name.strip()
