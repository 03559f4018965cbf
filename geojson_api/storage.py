# geojson_api/storage.py

import json
import logging
import os
import tempfile
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, BinaryIO, Iterator, Union

from .errors import NotFoundError, StorageError

logger = logging.getLogger(__name__)

FILE_SUFFIX = ".geojson"
CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True)
class StoredDocument:
    identifier: str
    size: int


@dataclass(frozen=True)
class StoredRecord:
    identifier: str
    content: bytes
    size: int
    modified: datetime


@dataclass(frozen=True)
class StoredStream:
    identifier: str
    size: int
    modified: datetime
    chunks: Iterator[bytes]


def new_identifier() -> str:
    return str(uuid.uuid4())


def is_valid_identifier(identifier: str) -> bool:
    """Only canonical lowercase UUID4 strings name a stored document."""
    try:
        parsed = uuid.UUID(identifier)
    except (TypeError, ValueError, AttributeError):
        return False
    return parsed.version == 4 and str(parsed) == identifier


def serialize_document(document: Any) -> bytes:
    return json.dumps(document, indent=2, ensure_ascii=False, allow_nan=False).encode("utf-8")


class DocumentStore(ABC):
    """Write-once document storage keyed by generated identifiers."""

    @abstractmethod
    def put(self, document: Any) -> StoredDocument:
        ...

    @abstractmethod
    def get(self, identifier: str) -> StoredRecord:
        ...

    def stream(self, identifier: str) -> StoredStream:
        record = self.get(identifier)
        return StoredStream(record.identifier, record.size, record.modified, iter([record.content]))


class FileStore(DocumentStore):
    """One pretty-printed JSON file per document under a storage root."""

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def path_for(self, identifier: str) -> Path:
        if not is_valid_identifier(identifier):
            raise NotFoundError()
        return self.root / f"{identifier}{FILE_SUFFIX}"

    def put(self, document: Any) -> StoredDocument:
        """Persist a document under a fresh identifier.

        The file is written next to its final location and renamed into place,
        so a reader sees either the complete document or nothing.
        """
        identifier = new_identifier()
        try:
            payload = serialize_document(document)
        except (TypeError, ValueError) as e:
            raise StorageError(f"Document is not serializable: {e}") from e

        target = self.path_for(identifier)
        tmp_path = None
        try:
            fd, tmp_path = tempfile.mkstemp(dir=self.root, prefix=f".{identifier}.", suffix=".tmp")
            with os.fdopen(fd, "wb") as tmp:
                tmp.write(payload)
                tmp.flush()
                os.fsync(tmp.fileno())
            os.replace(tmp_path, target)
        except OSError as e:
            if tmp_path is not None:
                try:
                    os.unlink(tmp_path)
                except FileNotFoundError:
                    pass
                except OSError:
                    logger.warning("Could not remove temporary file %s", tmp_path)
            raise StorageError(f"Failed to write {identifier}: {e}") from e

        return StoredDocument(identifier=identifier, size=len(payload))

    def get(self, identifier: str) -> StoredRecord:
        path = self.path_for(identifier)
        try:
            with open(path, "rb") as f:
                stat = os.fstat(f.fileno())
                content = f.read()
        except FileNotFoundError:
            raise NotFoundError() from None
        except OSError as e:
            raise StorageError(f"Failed to read {identifier}: {e}") from e

        return StoredRecord(
            identifier=identifier,
            content=content,
            size=len(content),
            modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
        )

    def stream(self, identifier: str) -> StoredStream:
        """Open a stored document for chunked reading.

        The file is opened here, so a missing record raises before any chunk is produced.
        """
        path = self.path_for(identifier)
        try:
            f = open(path, "rb")
        except FileNotFoundError:
            raise NotFoundError() from None
        except OSError as e:
            raise StorageError(f"Failed to open {identifier}: {e}") from e

        try:
            stat = os.fstat(f.fileno())
        except OSError as e:
            f.close()
            raise StorageError(f"Failed to stat {identifier}: {e}") from e

        return StoredStream(
            identifier=identifier,
            size=stat.st_size,
            modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
            chunks=_iter_file(f),
        )


def _iter_file(f: BinaryIO, chunk_size: int = CHUNK_SIZE) -> Iterator[bytes]:
    with f:
        while True:
            data = f.read(chunk_size)
            if not data:
                break
            yield data
