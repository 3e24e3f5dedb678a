# commands.py
"""
Superfície de comandos do bpm: Install, Remove, Update, List (+ Plan, Search, Info, Verify).

Cada comando devolve um CommandResult com sucesso/falha e um diagnóstico legível.
Erros BpmError viram ok=False; qualquer outra exceção é propagada.
O mapeamento para exit codes fica na CLI.
"""

from __future__ import annotations

import functools
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional

from bpm import config, log, meta
from bpm.errors import BpmError
from bpm.ledger import InstalledEntry, Ledger
from bpm.meta import PackageReference, RepositorySet
from bpm.package import ExecutionReport, Installer

logger = log.get_logger("commands")


@dataclass
class CommandResult:
    ok: bool
    command: str
    message: str
    report: Optional[ExecutionReport] = None
    entries: List[InstalledEntry] = field(default_factory=list)
    data: Any = None

    def to_dict(self) -> dict:
        out = {"ok": self.ok, "command": self.command, "message": self.message}
        if self.report is not None:
            out["report"] = self.report.to_dict()
        if self.entries:
            out["entries"] = [e.to_dict() for e in self.entries]
        if self.data is not None:
            out["data"] = self.data
        return out


@dataclass
class Context:
    """Colaboradores de um comando: repositórios carregados, ledger e store de binários."""
    repos: RepositorySet
    ledger: Ledger
    bins_dir: str

    @classmethod
    def from_config(cls, store_dir: Optional[str] = None) -> "Context":
        paths = config.ensure_dirs(store_dir)
        return cls(
            repos=meta.load_repositories(paths["repo_dir"]),
            ledger=Ledger.load(paths["ledger"]),
            bins_dir=paths["bins_dir"],
        )

    def installer(self) -> Installer:
        return Installer(self.repos, self.ledger, self.bins_dir)


def _command(name: str):
    """Converte BpmError em CommandResult de falha, com log."""
    def decorator(fn: Callable[..., CommandResult]):
        @functools.wraps(fn)
        def wrapper(*args, **kwargs) -> CommandResult:
            try:
                return fn(*args, **kwargs)
            except BpmError as e:
                logger.error("%s falhou: %s", name, e)
                return CommandResult(False, name, str(e))
        return wrapper
    return decorator


def _report_result(command: str, report: ExecutionReport) -> CommandResult:
    if report.ok:
        msg = (f"{report.plan.root}: {len(report.installed)} instalados, "
               f"{len(report.skipped)} já satisfeitos")
        return CommandResult(True, command, msg, report=report)
    failed = report.failed
    return CommandResult(False, command, f"{failed.reference}: {failed.error}", report=report)


# ---------------------------
# Comandos principais
# ---------------------------

@_command("install")
def install(ctx: Context, ref: PackageReference) -> CommandResult:
    with ctx.ledger.lock():
        report = ctx.installer().install(ref)
    return _report_result("install", report)


@_command("remove")
def remove(ctx: Context, repo: str, name: str) -> CommandResult:
    with ctx.ledger.lock():
        entry = ctx.installer().remove(repo, name)
    return CommandResult(True, "remove", f"Removido {entry.repo}:{entry.name} {entry.version}",
                         entries=[entry])


@_command("update")
def update(ctx: Context, repo: str, name: str) -> CommandResult:
    with ctx.ledger.lock():
        report = ctx.installer().update(repo, name)
    return _report_result("update", report)


@_command("list")
def list_installed(ctx: Context) -> CommandResult:
    entries = ctx.installer().list_installed()
    msg = f"{len(entries)} pacotes instalados" if entries else "Nenhum pacote instalado."
    return CommandResult(True, "list", msg, entries=entries)


# ---------------------------
# Comandos auxiliares
# ---------------------------

@_command("plan")
def plan(ctx: Context, ref: PackageReference, tree: bool = False) -> CommandResult:
    """Resolve sem instalar; indica o que seria pulado por já estar instalado."""
    installer = ctx.installer()
    p = installer.plan(ref)
    steps = []
    for step in p:
        current = ctx.ledger.is_installed(step.repo, step.name)
        steps.append({
            "reference": str(step),
            "installed": current,
            "action": "skip" if current == step.version else ("update" if current else "install"),
        })
    data = {"root": str(ref), "steps": steps}
    if tree:
        data["tree"] = installer.resolver.explain(ref)
    return CommandResult(True, "plan", f"{len(p)} passos para {ref}", data=data)


@_command("search")
def search(ctx: Context, pattern: str) -> CommandResult:
    found = [{"repo": r, "name": n, "versions": v} for r, n, v in ctx.repos.search(pattern)]
    return CommandResult(True, "search", f"{len(found)} pacotes encontrados", data=found)


@_command("info")
def info(ctx: Context, repo: str, name: str) -> CommandResult:
    versions = ctx.repos.versions(repo, name)
    latest = ctx.repos.latest_version(repo, name)
    data = {
        "repo": repo,
        "name": name,
        "latest": latest.version,
        "installed": ctx.ledger.is_installed(repo, name),
        "versions": {
            v: {
                "path": pv.path,
                "binaries": list(pv.binaries),
                "dependencies": [str(d) for d in pv.dependencies],
            }
            for v, pv in sorted(versions.items(), key=lambda kv: meta.version_key(kv[0]))
        },
    }
    return CommandResult(True, "info", f"{repo}:{name} (mais recente: {latest.version})", data=data)


@_command("verify")
def verify(ctx: Context) -> CommandResult:
    broken = ctx.installer().verify()
    total = len(ctx.ledger)
    if broken:
        return CommandResult(False, "verify", f"{len(broken)} de {total} pacotes com binários ausentes",
                             data=broken)
    return CommandResult(True, "verify", f"Sistema íntegro ({total} pacotes verificados)", data={})
