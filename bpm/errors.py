# errors.py
"""
Taxonomia de erros do bpm.

Erros de resolução (NotFound, CyclicDependency, ConflictingVersions) abortam o
comando antes de qualquer efeito colateral. Erros de execução
(BinaryCopyFailure, LedgerIOFailure) interrompem o restante do plano sem
desfazer os passos já concluídos.
"""

from __future__ import annotations

from typing import Sequence


class BpmError(Exception):
    """Base de todos os erros reportados ao usuário."""
    pass


class ManifestError(BpmError):
    """Erro ao carregar ou validar um manifesto (packages.mri)"""
    pass


# Resolução ------------------------------------------------------------------
class ResolutionError(BpmError):
    pass


class NotFound(ResolutionError):
    pass


class UnknownRepository(NotFound):
    def __init__(self, repo: str):
        self.repo = repo
        super().__init__(f"Repositório não carregado: {repo}")


class UnknownPackage(NotFound):
    def __init__(self, repo: str, name: str):
        self.repo = repo
        self.name = name
        super().__init__(f"Pacote {name} não encontrado no repositório {repo}")


class UnknownVersion(NotFound):
    def __init__(self, repo: str, name: str, version: str):
        self.repo = repo
        self.name = name
        self.version = version
        super().__init__(f"Versão {version} não encontrada para {repo}:{name}")


class CyclicDependency(ResolutionError):
    """path: cadeia de referências que revisita um pacote (ex.: [A, B, A])"""

    def __init__(self, path: Sequence):
        self.path = list(path)
        chain = " -> ".join(str(ref) for ref in self.path)
        super().__init__(f"Dependência circular detectada: {chain}")


class ConflictingVersions(ResolutionError):
    def __init__(self, name: str, v1: str, v2: str, path: Sequence = ()):
        self.name = name
        self.v1 = v1
        self.v2 = v2
        self.path = list(path)
        msg = f"Versões conflitantes para {name}: {v1} e {v2}"
        if self.path:
            msg += " (via " + " -> ".join(str(ref) for ref in self.path) + ")"
        super().__init__(msg)


# Ledger ---------------------------------------------------------------------
class NotInstalled(BpmError):
    def __init__(self, repo: str, name: str):
        self.repo = repo
        self.name = name
        super().__init__(f"Pacote {repo}:{name} não está instalado")


# Execução -------------------------------------------------------------------
class ExecutionError(BpmError):
    pass


class BinaryCopyFailure(ExecutionError):
    def __init__(self, reference, binary: str, reason: str):
        self.reference = reference
        self.binary = binary
        self.reason = reason
        super().__init__(f"Falha ao copiar binário {binary} de {reference}: {reason}")


class LedgerIOFailure(ExecutionError):
    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Falha de E/S no ledger {path}: {reason}")
