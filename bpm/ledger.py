# ledger.py
"""
Ledger de pacotes instalados do bpm.

Recursos:
- InstalledEntry: repo, nome, versão, binários e data de instalação
- Consulta (is_installed/get/entries/owners)
- Mutação (record/update/remove) sempre por snapshot completo:
  lê o estado inteiro, altera em memória e regrava tudo de forma atômica
  (arquivo temporário + os.replace)
- Ledger em memória (sem persistência) para testes e simulações
- Lock consultivo exclusivo (fcntl.flock) durante comandos que alteram o ledger
"""

from __future__ import annotations

import contextlib
import fcntl
import json
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Iterator, List, Optional, Tuple

from bpm import log
from bpm.errors import LedgerIOFailure, NotInstalled

logger = log.get_logger("ledger")

LEDGER_FORMAT = 1


def _now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


@dataclass
class InstalledEntry:
    repo: str
    name: str
    version: str
    binaries: List[str] = field(default_factory=list)
    installed_at: str = field(default_factory=_now)

    def key(self) -> Tuple[str, str]:
        return (self.repo, self.name)

    def to_dict(self) -> dict:
        return {
            "repo": self.repo,
            "name": self.name,
            "version": self.version,
            "binaries": list(self.binaries),
            "installed_at": self.installed_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "InstalledEntry":
        return cls(
            repo=data["repo"],
            name=data["name"],
            version=data["version"],
            binaries=list(data.get("binaries", [])),
            installed_at=data.get("installed_at") or _now(),
        )


class Ledger:
    """
    Registro persistente do que está instalado, chaveado por (repo, nome).
    path=None mantém o estado só em memória.
    """

    def __init__(self, path: Optional[str] = None):
        self.path = path
        self._entries: Dict[Tuple[str, str], InstalledEntry] = {}
        if path is not None:
            self._entries = self._read()

    @classmethod
    def load(cls, path: str) -> "Ledger":
        return cls(path)

    @classmethod
    def memory(cls, entries: Optional[List[InstalledEntry]] = None) -> "Ledger":
        ledger = cls(None)
        for e in entries or []:
            ledger._entries[e.key()] = e
        return ledger

    # ----------------------
    # Persistência
    # ----------------------
    def _read(self) -> Dict[Tuple[str, str], InstalledEntry]:
        if self.path is None:
            return dict(self._entries)
        if not os.path.isfile(self.path):
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            entries = [InstalledEntry.from_dict(d) for d in data.get("packages", [])]
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
            raise LedgerIOFailure(self.path, str(e)) from e
        return {e.key(): e for e in entries}

    def _write(self, entries: Dict[Tuple[str, str], InstalledEntry]) -> None:
        if self.path is None:
            self._entries = entries
            return
        payload = {
            "version": LEDGER_FORMAT,
            "packages": [e.to_dict() for _, e in sorted(entries.items())],
        }
        tmp = self.path + ".tmp"
        try:
            os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2, ensure_ascii=False)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, self.path)
        except OSError as e:
            if os.path.lexists(tmp):
                with contextlib.suppress(OSError):
                    os.remove(tmp)
            raise LedgerIOFailure(self.path, str(e)) from e
        self._entries = entries
        logger.debug("Ledger gravado: %s (%d pacotes)", self.path, len(entries))

    def _mutate(self) -> Dict[Tuple[str, str], InstalledEntry]:
        """Estado atual completo, relido do disco, para ser alterado e regravado."""
        return dict(self._read())

    @contextlib.contextmanager
    def lock(self) -> Iterator["Ledger"]:
        """Lock exclusivo em <ledger>.lock enquanto durar o bloco."""
        if self.path is None:
            yield self
            return
        lock_path = self.path + ".lock"
        try:
            os.makedirs(os.path.dirname(lock_path) or ".", exist_ok=True)
            lock_file = open(lock_path, "a+")
        except OSError as e:
            raise LedgerIOFailure(lock_path, str(e)) from e
        with lock_file:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
            try:
                # outro processo pode ter alterado o ledger antes do lock
                self._entries = self._read()
                yield self
            finally:
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)

    # ----------------------
    # Consulta
    # ----------------------
    def is_installed(self, repo: str, name: str) -> Optional[str]:
        entry = self._entries.get((repo, name))
        return entry.version if entry else None

    def get(self, repo: str, name: str) -> Optional[InstalledEntry]:
        return self._entries.get((repo, name))

    def entries(self) -> List[InstalledEntry]:
        return [e for _, e in sorted(self._entries.items())]

    def owners(self, binary: str) -> List[InstalledEntry]:
        """Entradas que declaram o binário (nome no store de binários)."""
        return [e for e in self.entries() if binary in e.binaries]

    def __len__(self) -> int:
        return len(self._entries)

    # ----------------------
    # Mutação
    # ----------------------
    def record(self, entry: InstalledEntry) -> None:
        entries = self._mutate()
        entries[entry.key()] = entry
        self._write(entries)
        logger.debug("Registrado %s:%s %s", entry.repo, entry.name, entry.version)

    def update(self, entry: InstalledEntry) -> None:
        """Substitui a entrada existente para o mesmo repo+nome."""
        entries = self._mutate()
        if entry.key() not in entries:
            raise NotInstalled(entry.repo, entry.name)
        entries[entry.key()] = entry
        self._write(entries)
        logger.debug("Atualizado %s:%s -> %s", entry.repo, entry.name, entry.version)

    def remove(self, repo: str, name: str) -> InstalledEntry:
        entries = self._mutate()
        entry = entries.pop((repo, name), None)
        if entry is None:
            raise NotInstalled(repo, name)
        self._write(entries)
        logger.debug("Removido %s:%s do ledger", repo, name)
        return entry


__all__ = ["InstalledEntry", "Ledger", "LEDGER_FORMAT"]
