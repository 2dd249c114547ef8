"""
Topic Catalog: the immutable word dataset.

Loaded once at startup from data/topics.json (or settings.catalog_path).
Each named topic is a list of (secret, hint) entries whose hint is the topic
name. One extra aggregate entry ("Random") is synthesized from every topic's
entries plus the file's extra word groups; it is always the last topic.
"""
import json
import logging
import os
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

DEFAULT_CATALOG_PATH = os.path.abspath(
    os.path.join(os.path.dirname(__file__), "..", "data", "topics.json")
)


class TopicEntry(BaseModel):
    secret: str
    hint: str


class Topic(BaseModel):
    name: str
    entries: List[TopicEntry]
    is_aggregate: bool = False


# ── File shapes ───────────────────────────────────────────────────────────────

class _TopicFile(BaseModel):
    name: str
    words: List[str] = Field(min_length=1)


class _ExtraGroup(BaseModel):
    hint: str
    words: List[str] = []


class _AggregateFile(BaseModel):
    name: str = "Random"
    extras: List[_ExtraGroup] = []


class _CatalogFile(BaseModel):
    topics: List[_TopicFile] = Field(min_length=1)
    aggregate: _AggregateFile = Field(default_factory=_AggregateFile)


class TopicCatalog:
    """Read-only list of topics; safe to share across lobbies without locking."""

    def __init__(self, topics: List[Topic]):
        if not topics:
            raise ValueError("Topic catalog is empty")
        self._topics = tuple(topics)

    def __len__(self) -> int:
        return len(self._topics)

    def __iter__(self):
        return iter(self._topics)

    @property
    def topics(self) -> List[Topic]:
        return list(self._topics)

    def get(self, index: Optional[int]) -> Topic:
        """Topic at `index`, or the first topic when the index is out of range."""
        if index is None or not 0 <= index < len(self._topics):
            return self._topics[0]
        return self._topics[index]

    def summary(self) -> List[Dict[str, Any]]:
        """Names and word counts only, never the words themselves."""
        return [{"name": t.name, "words": len(t.entries)} for t in self._topics]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TopicCatalog":
        parsed = _CatalogFile.model_validate(data)
        topics = [
            Topic(
                name=t.name,
                entries=[TopicEntry(secret=w, hint=t.name) for w in t.words],
            )
            for t in parsed.topics
        ]
        aggregate_entries = [e for t in topics for e in t.entries]
        for group in parsed.aggregate.extras:
            aggregate_entries.extend(TopicEntry(secret=w, hint=group.hint) for w in group.words)
        topics.append(Topic(
            name=parsed.aggregate.name,
            entries=aggregate_entries,
            is_aggregate=True,
        ))
        return cls(topics)


def load_catalog(path: Optional[str] = None) -> TopicCatalog:
    path = path or DEFAULT_CATALOG_PATH
    with open(path, encoding="utf-8") as fh:
        data = json.load(fh)
    catalog = TopicCatalog.from_dict(data)
    logger.info(
        "Loaded %d topics from %s (%s)",
        len(catalog), path, ", ".join(t.name for t in catalog),
    )
    return catalog
