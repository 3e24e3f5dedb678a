# package.py
"""
Driver de instalação do bpm.

Recursos:
- Execução de um InstallPlan passo a passo (pending -> skipped | installed | failed)
- Cópia dos binários para temporários no store, trocados só depois que todas as cópias deram certo
- Registro/substituição da entrada no ledger a cada passo concluído
- Falha num passo desfaz só esse passo (binários anteriores restaurados) e aborta o restante;
  passos anteriores não são desfeitos
- Update: re-resolve o pacote e só executa passos cuja versão mudou
- Remove: apaga entrada e binários, sem cascata para dependências/dependentes
- Verificação de binários ausentes no store
"""

from __future__ import annotations

import enum
import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from bpm import log, utils
from bpm.dependency import InstallPlan, Resolver
from bpm.errors import BinaryCopyFailure, ExecutionError, NotInstalled
from bpm.ledger import InstalledEntry, Ledger
from bpm.meta import PackageReference, PackageVersion, RepositorySet

logger = log.get_logger("package")

# sufixos dos arquivos de trabalho de um passo dentro do store
STAGE_SUFFIX = ".bpm-new"
BACKUP_SUFFIX = ".bpm-old"


class StepStatus(str, enum.Enum):
    PENDING = "pending"
    SKIPPED = "skipped"
    INSTALLED = "installed"
    FAILED = "failed"


@dataclass
class StepResult:
    reference: PackageReference
    status: StepStatus = StepStatus.PENDING
    error: Optional[ExecutionError] = None

    def to_dict(self) -> dict:
        out = {"reference": str(self.reference), "status": self.status.value}
        if self.error is not None:
            out["error"] = str(self.error)
        return out


@dataclass
class ExecutionReport:
    plan: InstallPlan
    steps: List[StepResult] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.failed is None

    @property
    def failed(self) -> Optional[StepResult]:
        return next((s for s in self.steps if s.status is StepStatus.FAILED), None)

    def with_status(self, status: StepStatus) -> List[PackageReference]:
        return [s.reference for s in self.steps if s.status is status]

    @property
    def skipped(self) -> List[PackageReference]:
        return self.with_status(StepStatus.SKIPPED)

    @property
    def installed(self) -> List[PackageReference]:
        return self.with_status(StepStatus.INSTALLED)

    def to_dict(self) -> dict:
        return {"root": str(self.plan.root), "ok": self.ok, "steps": [s.to_dict() for s in self.steps]}


class Installer:
    """
    Executa planos contra o ledger e o store de binários (bins_dir).
    O ledger é um valor explícito: pode ser persistente ou em memória.
    """

    def __init__(self, repos: RepositorySet, ledger: Ledger, bins_dir: str):
        self.repos = repos
        self.ledger = ledger
        self.bins_dir = bins_dir
        self.resolver = Resolver(repos)

    # Helpers ---------------------------------------------------------------
    def _bin_path(self, binary: str) -> str:
        return os.path.join(self.bins_dir, binary)

    def _drop_unowned(self, binaries) -> None:
        """Apaga do store os binários que nenhuma entrada do ledger declara mais."""
        for b in binaries:
            if self.ledger.owners(b):
                continue
            try:
                utils.rm(self._bin_path(b))
            except OSError as e:
                logger.warning("Falha ao remover %s: %s", self._bin_path(b), e)

    def _rollback(self, staged: List[str], placed: List[Tuple[str, Optional[str]]]) -> None:
        """Desfaz um passo: restaura os binários sobrescritos e apaga os temporários."""
        for target, backup in reversed(placed):
            try:
                utils.rm(target)
                if backup is not None:
                    os.replace(backup, target)
            except OSError as e:
                logger.warning("Falha ao restaurar %s: %s", target, e)
        for tmp in staged:
            try:
                utils.rm(tmp)
            except OSError as e:
                logger.warning("Falha ao remover %s: %s", tmp, e)

    def _install_step(self, pv: PackageVersion, current: Optional[InstalledEntry]) -> None:
        names = [os.path.basename(b) for b in pv.binaries]
        staged: List[str] = []
        placed: List[Tuple[str, Optional[str]]] = []  # (destino, cópia do arquivo anterior)
        try:
            # 1. copia tudo para temporários dentro do store
            for binary, name in zip(pv.binaries, names):
                src = os.path.join(pv.path, binary)
                tmp = self._bin_path(name) + STAGE_SUFFIX
                try:
                    utils.copy_file(src, tmp)
                except OSError as e:
                    raise BinaryCopyFailure(pv.reference, binary, str(e)) from e
                staged.append(tmp)
                logger.debug("Copiado %s -> %s", src, tmp)

            # 2. troca os destinos, guardando o que havia antes
            for binary, name, tmp in zip(pv.binaries, names, list(staged)):
                target = self._bin_path(name)
                for owner in self.ledger.owners(name):
                    if owner.key() != (pv.repo, pv.name):
                        logger.warning("Binário %s de %s:%s será sobrescrito por %s",
                                       name, owner.repo, owner.name, pv.reference)
                try:
                    backup = None
                    if os.path.lexists(target):
                        backup = target + BACKUP_SUFFIX
                        os.replace(target, backup)
                    placed.append((target, backup))
                    os.replace(tmp, target)
                except OSError as e:
                    raise BinaryCopyFailure(pv.reference, binary, str(e)) from e
                staged.remove(tmp)

            # 3. commit no ledger
            entry = InstalledEntry(pv.repo, pv.name, pv.version, binaries=names)
            if current is None:
                self.ledger.record(entry)
            else:
                self.ledger.update(entry)
        except ExecutionError:
            # o ledger é a fonte da verdade: o store volta ao estado anterior ao passo
            self._rollback(staged, placed)
            raise

        for _, backup in placed:
            if backup is not None:
                utils.rm(backup)
        if current is not None:
            self._drop_unowned(set(current.binaries) - set(names))

    # Core API ---------------------------------------------------------------
    def execute(self, plan: InstallPlan) -> ExecutionReport:
        report = ExecutionReport(plan, [StepResult(ref) for ref in plan])
        for step in report.steps:
            pv = plan.versions[step.reference]
            current = self.ledger.get(pv.repo, pv.name)
            if current is not None and current.version == pv.version:
                step.status = StepStatus.SKIPPED
                logger.info("%s já instalado, pulando", step.reference)
                continue

            if current is None:
                logger.info("Instalando %s", step.reference)
            else:
                logger.info("Atualizando %s:%s %s -> %s", pv.repo, pv.name, current.version, pv.version)
            try:
                self._install_step(pv, current)
            except ExecutionError as e:
                step.status = StepStatus.FAILED
                step.error = e
                logger.error("Falha em %s: %s (passos restantes abortados)", step.reference, e)
                break
            step.status = StepStatus.INSTALLED
            logger.info("Instalado: %s", step.reference)
        return report

    def plan(self, ref: PackageReference) -> InstallPlan:
        return self.resolver.resolve(ref)

    def install(self, ref: PackageReference) -> ExecutionReport:
        return self.execute(self.plan(ref))

    def update(self, repo: str, name: str) -> ExecutionReport:
        current = self.ledger.get(repo, name)
        if current is None:
            raise NotInstalled(repo, name)
        plan = self.resolver.resolve(PackageReference(repo, name))
        logger.debug("Update de %s:%s: instalado %s, resolvido %s",
                     repo, name, current.version, plan.steps[-1].version)
        return self.execute(plan)

    def remove(self, repo: str, name: str) -> InstalledEntry:
        entry = self.ledger.remove(repo, name)
        self._drop_unowned(entry.binaries)
        logger.info("Removido %s:%s %s", repo, name, entry.version)
        return entry

    def list_installed(self) -> List[InstalledEntry]:
        return self.ledger.entries()

    def verify(self) -> Dict[str, List[str]]:
        """Pacote -> binários registrados no ledger mas ausentes do store."""
        broken = {}
        for entry in self.ledger.entries():
            missing = [b for b in entry.binaries if not os.path.isfile(self._bin_path(b))]
            if missing:
                logger.error("Binários ausentes para %s:%s: %s", entry.repo, entry.name, missing)
                broken[f"{entry.repo}:{entry.name}"] = missing
        return broken


__all__ = ["Installer", "ExecutionReport", "StepResult", "StepStatus"]
