"""Domain models for the archive database layer."""

from __future__ import annotations

from dataclasses import dataclass, field


def chunk_id(message_id: str, index: int) -> str:
    """Return the deterministic vector key for chunk *index* of *message_id*.

    The key doubles as the upsert identity in the vector index: indexing the
    same message twice with the same chunker settings overwrites its entries.

    Examples:
        chunk_id("<abc@example.org>", 2) -> "<abc@example.org>#chunk2"
    """
    if index < 0:
        raise ValueError(f"chunk index must be >= 0, got {index}")
    return f"{message_id}#chunk{index}"


@dataclass
class Message:
    id: str
    mailbox_id: str
    subject: str = ""
    from_email: str = ""
    ts: str | None = None
    body_text: str | None = None
    embedded_at: str | None = None  # set once by the indexing pipeline


@dataclass
class Chunk:
    """A token-bounded slice of a message body.

    ``message_id`` and the denormalized message fields are empty while the
    chunk is a bare chunker result; ``for_message()`` binds them.
    """

    index: int
    text: str
    token_count: int
    message_id: str = ""
    mailbox_id: str = ""
    subject: str = ""
    from_email: str = ""
    ts: str = ""

    @property
    def id(self) -> str:
        return chunk_id(self.message_id, self.index)

    def for_message(self, message: Message) -> Chunk:
        return Chunk(
            index=self.index,
            text=self.text,
            token_count=self.token_count,
            message_id=message.id,
            mailbox_id=message.mailbox_id,
            subject=message.subject or "",
            from_email=message.from_email or "",
            ts=message.ts or "",
        )


@dataclass
class VectorEntry:
    key: str
    embedding: list[float]
    metadata: dict = field(default_factory=dict)

    @classmethod
    def from_chunk(cls, chunk: Chunk, embedding: list[float], model: str) -> VectorEntry:
        return cls(
            key=chunk.id,
            embedding=list(embedding),
            metadata={
                "message_id": chunk.message_id,
                "mailbox_id": chunk.mailbox_id,
                "subject": chunk.subject,
                "from_email": chunk.from_email,
                "ts": chunk.ts,
                "chunk_index": chunk.index,
                "embedding_model": model,
            },
        )


@dataclass
class VectorMatch:
    """A nearest-neighbour hit: entry key, its metadata and the distance."""

    key: str
    distance: float
    metadata: dict = field(default_factory=dict)

    @property
    def message_id(self) -> str:
        return self.metadata.get("message_id", "")


@dataclass
class SearchResult:
    message: Message
    score: float
    matched_chunk: int
