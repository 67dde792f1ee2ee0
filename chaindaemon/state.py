"""Deployment state of a daemon, kept in a JSON file per chain."""

from __future__ import annotations

import copy
import json
import logging
import os
import threading
from pathlib import Path
from typing import Any

from chaindaemon.querier import (
    ChainInfo,
    ChainKind,
    DaemonError,
    StateAlreadyLocked,
    StateReadOnly,
)

logger = logging.getLogger(__name__)

CODE_IDS_KEY = "code_ids"
DEFAULT_STATE_FILE = "state.json"
DEFAULT_STATE_FOLDER_NAME = ".chaindaemon"

# Files held for writing by a DaemonState in this process.
LOCKED_FILES: set[str] = set()
_locked_files_lock = threading.Lock()


def _read_json(path: str) -> Any:
    try:
        with open(path, encoding="utf-8") as handle:
            text = handle.read()
    except OSError as exc:
        raise DaemonError(f"could not read state file {path}: {exc}") from exc
    if not text.strip():
        return {}
    try:
        return json.loads(text)
    except ValueError as exc:
        raise DaemonError(f"state file {path} is not valid JSON: {exc}") from exc


def _child(value: Any, key: str) -> Any:
    if isinstance(value, dict):
        return value.get(key)
    return None


def _child_object(parent: dict, key: str) -> dict:
    value = parent.get(key)
    if value is None:
        value = parent[key] = {}
    if not isinstance(value, dict):
        raise DaemonError(f"state entry {key!r} is not an object")
    return value


class _JsonFile:
    """The content of a state file held in memory."""

    def __init__(self, path: str) -> None:
        self.path = path
        self.data: dict = _read_json(path) if os.path.exists(path) else {}
        if not isinstance(self.data, dict):
            raise DaemonError(f"state file {path} does not hold an object")
        self.lock = threading.Lock()

    def chain(self, chain_name: str, chain_id: str) -> dict:
        return _child_object(_child_object(self.data, chain_name), chain_id)

    def prepare(self, chain_id: str, chain_name: str, deployment_id: str) -> None:
        chain = self.chain(chain_name, chain_id)
        _child_object(chain, deployment_id)
        _child_object(chain, CODE_IDS_KEY)

    def write(self) -> None:
        folder = os.path.dirname(self.path)
        if folder:
            os.makedirs(folder, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as handle:
            json.dump(self.data, handle, indent=2)


class DaemonState:
    """Chain data and deployment state, stored in a JSON file.

    The file maps chain name to chain id to an object holding one entry per
    deployment id (contract id to address) and ``code_ids``.
    """

    def __init__(
        self,
        json_file_path: str | os.PathLike[str],
        chain_data: ChainInfo,
        deployment_id: str = "default",
        read_only: bool = False,
        write_on_change: bool = True,
    ) -> None:
        path = os.fspath(json_file_path)
        logger.debug("Using state file : %s", path)
        if chain_data.kind == ChainKind.LOCAL:
            stem = Path(path).stem
            path = os.path.join(os.path.dirname(path), f"{stem}_local.json")

        self.path = path
        self.chain_data = chain_data
        self.deployment_id = deployment_id
        self.read_only = read_only
        self.write_on_change = write_on_change
        self._file: _JsonFile | None = None

        if read_only:
            return
        logger.info("Writing daemon state JSON file: %r", path)
        with _locked_files_lock:
            if path in LOCKED_FILES:
                raise StateAlreadyLocked(path)
            json_file = _JsonFile(path)
            LOCKED_FILES.add(path)
        json_file.prepare(chain_data.chain_id, chain_data.chain_name, deployment_id)
        if write_on_change:
            json_file.write()
        self._file = json_file

    def __enter__(self) -> "DaemonState":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def close(self) -> None:
        """Release the state file so another DaemonState may write to it."""
        if self._file is not None:
            with _locked_files_lock:
                LOCKED_FILES.discard(self._file.path)
            self._file = None

    def _writable(self) -> _JsonFile:
        if self._file is None:
            raise StateReadOnly(self.path)
        return self._file

    def get(self, key: str) -> Any:
        """Return the value stored under ``key`` for this chain, or None."""
        name, chain_id = self.chain_data.chain_name, self.chain_data.chain_id
        if self._file is None:
            if not self.read_only:
                raise DaemonError(f"state file {self.path} has been closed")
            chain = _child(_child(_read_json(self.path), name), chain_id)
        else:
            with self._file.lock:
                chain = copy.deepcopy(self._file.chain(name, chain_id))
        return _child(chain, key)

    def set(self, key: str, contract_id: str, value: Any) -> None:
        """Store ``value`` under ``key`` and ``contract_id`` for this chain."""
        json_file = self._writable()
        try:
            json.dumps(value)
        except (TypeError, ValueError) as exc:
            raise DaemonError(f"value for {contract_id!r} is not JSON: {exc}") from exc
        with json_file.lock:
            chain = json_file.chain(self.chain_data.chain_name, self.chain_data.chain_id)
            _child_object(chain, key)[contract_id] = value
            if self.write_on_change:
                json_file.write()

    def remove(self, key: str, contract_id: str) -> None:
        """Clear the value under ``key`` and ``contract_id``; it is stored as null."""
        json_file = self._writable()
        with json_file.lock:
            chain = json_file.chain(self.chain_data.chain_name, self.chain_data.chain_id)
            _child_object(chain, key)[contract_id] = None
            if self.write_on_change:
                json_file.write()

    def force_write(self) -> None:
        """Write the current state to the file."""
        json_file = self._writable()
        with json_file.lock:
            json_file.write()

    def flush(self) -> None:
        """Clear all state of this chain; only allowed on local chains."""
        if self.chain_data.kind != ChainKind.LOCAL:
            raise DaemonError("Can only flush local chain state")
        json_file = self._writable()
        with json_file.lock:
            _child_object(json_file.data, self.chain_data.chain_name)[
                self.chain_data.chain_id
            ] = {}
            if self.write_on_change:
                json_file.write()

    def get_address(self, contract_id: str) -> str:
        """Return the address of a contract in the current deployment."""
        value = _child(self.get(self.deployment_id), contract_id)
        if value is None:
            raise DaemonError(f"address of contract {contract_id} not in store")
        if not isinstance(value, str):
            raise DaemonError(f"address of contract {contract_id} is not a string")
        return value

    def set_address(self, contract_id: str, address: str) -> None:
        """Store the address of a contract in the current deployment."""
        self.set(self.deployment_id, contract_id, str(address))

    def remove_address(self, contract_id: str) -> None:
        """Clear the address of a contract in the current deployment."""
        self.remove(self.deployment_id, contract_id)

    def get_code_id(self, contract_id: str) -> int:
        """Return the code id stored for a contract on this chain."""
        value = _child(self.get(CODE_IDS_KEY), contract_id)
        if value is None:
            raise DaemonError(f"code id of contract {contract_id} not in store")
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise DaemonError(f"code id of contract {contract_id} is not an unsigned integer")
        return value

    def set_code_id(self, contract_id: str, code_id: int) -> None:
        """Store the code id of a contract on this chain."""
        self.set(CODE_IDS_KEY, contract_id, int(code_id))

    def remove_code_id(self, contract_id: str) -> None:
        """Clear the code id of a contract on this chain."""
        self.remove(CODE_IDS_KEY, contract_id)

    def get_all_addresses(self) -> dict[str, str]:
        """Return every contract address of the current deployment."""
        addresses = self.get(self.deployment_id)
        if not isinstance(addresses, dict):
            return {}
        result = {}
        for contract_id, address in addresses.items():
            if address is None:
                continue
            if not isinstance(address, str):
                raise DaemonError(f"address of contract {contract_id} is not a string")
            result[contract_id] = address
        return result

    def get_all_code_ids(self) -> dict[str, int]:
        """Return every code id stored on this chain."""
        code_ids = self.get(CODE_IDS_KEY)
        if not isinstance(code_ids, dict):
            return {}
        result = {}
        for contract_id, code_id in code_ids.items():
            if code_id is None:
                continue
            if isinstance(code_id, bool) or not isinstance(code_id, int) or code_id < 0:
                raise DaemonError(f"code id of contract {contract_id} is not an unsigned integer")
            result[contract_id] = code_id
        return result


def _first_component(path: str) -> str:
    for sep in filter(None, (os.sep, os.altsep)):
        path = path.split(sep, 1)[0]
    return path


def state_file_path(
    env_file_path: str | os.PathLike[str] = DEFAULT_STATE_FILE,
    state_folder: str | os.PathLike[str] | None = None,
) -> str:
    """Resolve the configured state file path.

    Absolute paths are kept; paths starting with ``.`` or ``..`` are taken from the
    current directory; other relative paths go into the state folder, which is
    created if needed and defaults to a folder in the home directory.
    """
    path = os.fspath(env_file_path)
    if os.path.isabs(path):
        return path
    first = _first_component(path)
    if first in (".", ".."):
        return str(Path.cwd() / path)
    folder = (
        Path(state_folder)
        if state_folder is not None
        else Path.home() / DEFAULT_STATE_FOLDER_NAME
    )
    folder.mkdir(parents=True, exist_ok=True)
    return str(folder / path)