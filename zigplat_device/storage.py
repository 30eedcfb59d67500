"""
Credential storage - one pairing credential per device id.

Contract:
    get(device_id)    -> Credential, or None when the device is unpaired
    set(device_id, credential)
    remove(device_id) (no-op when absent)

A record that exists but cannot be decoded raises CorruptCredentialError
from get(); absence and corruption are never conflated.

Implementations:
    MemoryCredentialStore    process-local dict (tests, dry runs)
    JsonFileCredentialStore  one JSON file holding every device's record
"""

import json
import logging
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Optional, Union

from zigplat_mqtt.schemas import Credential, CorruptCredentialError

logger = logging.getLogger(__name__)


class CredentialStore(ABC):
    """Key/value persistence of credentials, keyed by device id."""

    @abstractmethod
    def get(self, device_id: str) -> Optional[Credential]:
        ...

    @abstractmethod
    def set(self, device_id: str, credential: Credential) -> None:
        ...

    @abstractmethod
    def remove(self, device_id: str) -> None:
        ...


class MemoryCredentialStore(CredentialStore):
    """
    In-process store.

    Records are kept serialized so a corrupt record can be represented the
    same way it would be on disk.
    """

    def __init__(self, records: Optional[Dict[str, str]] = None):
        self._records: Dict[str, str] = dict(records or {})
        self._lock = threading.Lock()

    def get(self, device_id: str) -> Optional[Credential]:
        with self._lock:
            raw = self._records.get(device_id)
        if raw is None:
            return None
        return Credential.from_json(raw)

    def set(self, device_id: str, credential: Credential) -> None:
        with self._lock:
            self._records[device_id] = credential.to_json()

    def remove(self, device_id: str) -> None:
        with self._lock:
            self._records.pop(device_id, None)

    def __contains__(self, device_id: str) -> bool:
        return device_id in self._records


class JsonFileCredentialStore(CredentialStore):
    """
    File-backed store.

    File layout::

        {
          "0x00124b0012345678": {"apiKey": "..."},
          "0x00124b00deadbeef": {"apiKey": "..."}
        }

    Writes go to a temporary file in the same directory and are moved into
    place with os.replace, so readers never observe a half-written file.

    Thread Safety:
        All file access is serialized by a lock (many Platforms share one
        store, each on its own session thread).
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._lock = threading.Lock()

    def get(self, device_id: str) -> Optional[Credential]:
        with self._lock:
            records = self._read_all()
        record = records.get(device_id)
        if record is None:
            return None
        return Credential.from_dict(record)

    def set(self, device_id: str, credential: Credential) -> None:
        with self._lock:
            records = self._read_all_or_reset()
            records[device_id] = credential.to_dict()
            self._write_all(records)
        logger.debug(f"Stored credential for {device_id} in {self.path}")

    def remove(self, device_id: str) -> None:
        with self._lock:
            records = self._read_all_or_reset()
            if device_id not in records:
                return
            del records[device_id]
            self._write_all(records)
        logger.debug(f"Removed credential for {device_id} from {self.path}")

    def _read_all(self) -> Dict[str, object]:
        """
        Raises:
            CorruptCredentialError: If the file is not a JSON object
        """
        if not self.path.exists():
            return {}

        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise CorruptCredentialError(f"Credential file {self.path} is not valid JSON: {e}") from e

        if not isinstance(data, dict):
            raise CorruptCredentialError(f"Credential file {self.path} must hold a JSON object")
        return data

    def _read_all_or_reset(self) -> Dict[str, object]:
        try:
            return self._read_all()
        except CorruptCredentialError as e:
            logger.warning(f"⚠️ {e}; starting from an empty credential file")
            return {}

    def _write_all(self, records: Dict[str, object]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".credentials-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(records, f, indent=2, sort_keys=True)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
