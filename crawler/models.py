from dataclasses import dataclass, field
from typing import Optional


@dataclass
class Domain:
    name: str
    enabled: bool = True
    last_crawled_at: Optional[float] = None


@dataclass
class QueueEntry:
    url: str
    domain: str
    enqueued_at: float
    attempts: int = 0
    not_before: float = 0.0


@dataclass
class Document:
    url: str
    content_hash: str
    text: str
    updated_at: float
    fetched_at: float
    title: str = ""
    language: Optional[str] = None
    links: list = field(default_factory=list)
