#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
dependency.py — Resolver de dependências do bpm

Funcionalidades principais:
- Travessia em profundidade com pilha explícita (sem recursão nativa)
- Ordem pós-fixada: dependências sempre antes dos dependentes
- Detecção de ciclos com o caminho completo (ex.: A -> B -> A)
- Detecção de versões conflitantes para o mesmo pacote
- Versões não fixadas resolvem para a maior versão no momento da travessia
- Interface de diagnóstico (explain) em árvore
- API: Resolver.resolve(root) -> InstallPlan
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Set, Tuple

from bpm import log
from bpm.errors import ConflictingVersions, CyclicDependency
from bpm.meta import PackageReference, PackageVersion, RepositorySet

logger = log.get_logger("dependency")


# ---------------------------------------------------------------------
# Modelos de dados
# ---------------------------------------------------------------------

@dataclass
class InstallPlan:
    """
    Plano de instalação:
      root: referência pedida pelo usuário
      steps: referências concretas, dependências antes dos dependentes, sem duplicatas
      versions: referência -> PackageVersion resolvida
    """
    root: PackageReference
    steps: List[PackageReference] = field(default_factory=list)
    versions: Dict[PackageReference, PackageVersion] = field(default_factory=dict)

    def append(self, pv: PackageVersion) -> None:
        ref = pv.reference
        self.steps.append(ref)
        self.versions[ref] = pv

    def __iter__(self) -> Iterator[PackageReference]:
        return iter(self.steps)

    def __len__(self) -> int:
        return len(self.steps)

    def __contains__(self, ref: PackageReference) -> bool:
        return ref in self.versions

    def as_list(self) -> List[str]:
        return [str(ref) for ref in self.steps]


@dataclass
class _Frame:
    """Item da pilha de trabalho: versão em expansão e próximo índice de dependência."""
    version: PackageVersion
    next_dep: int = 0


# ---------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------

def _path(stack: List[_Frame], last: PackageVersion) -> List[PackageReference]:
    """Cadeia de referências do caminho ativo até last (para diagnóstico)."""
    return [f.version.reference for f in stack] + [last.reference]


class Resolver:
    """
    Resolver determinístico sobre um RepositorySet.
    Não consulta o ledger: sempre calcula o plano transitivo completo.
    """

    def __init__(self, repos: RepositorySet):
        self.repos = repos

    def _select(self, ref: PackageReference) -> PackageVersion:
        pv = self.repos.lookup(ref.repo, ref.name, ref.version)
        if ref.version is None:
            logger.debug("%s resolvido para a versão %s", ref, pv.version)
        return pv

    def resolve(self, root: PackageReference) -> InstallPlan:
        """Resolve root e todas as dependências transitivas. Não tem efeitos colaterais."""
        plan = InstallPlan(root=root)
        resolved: Dict[Tuple[str, str], str] = {}
        visiting: Set[Tuple[str, str]] = set()

        root_pv = self._select(root)
        stack: List[_Frame] = [_Frame(root_pv)]
        visiting.add(root_pv.reference.key())

        while stack:
            frame = stack[-1]
            deps = frame.version.dependencies

            if frame.next_dep >= len(deps):
                # todas as dependências agendadas: o pacote entra no plano
                stack.pop()
                key = frame.version.reference.key()
                visiting.discard(key)
                resolved[key] = frame.version.version
                plan.append(frame.version)
                continue

            dep = deps[frame.next_dep]
            frame.next_dep += 1
            pv = self._select(dep)
            key = pv.reference.key()

            if key in visiting:
                raise CyclicDependency(_path(stack, pv))
            if key in resolved:
                if resolved[key] != pv.version:
                    raise ConflictingVersions(f"{pv.repo}:{pv.name}", resolved[key], pv.version,
                                              _path(stack, pv))
                continue

            visiting.add(key)
            stack.append(_Frame(pv))

        logger.debug("Plano para %s: %s", root, plan.as_list())
        return plan

    # ----------------------
    # Diagnostics / explain
    # ----------------------
    def explain(self, root: PackageReference) -> Dict[str, Any]:
        """
        Gera a árvore de dependências de root para diagnóstico.
        Pacotes já exibidos aparecem com "seen": True em vez de expandir de novo.
        Valida o grafo com resolve() antes, então falha com os mesmos erros.
        """
        plan = self.resolve(root)
        top_ref = plan.steps[-1]
        tree: Dict[str, Any] = {"reference": str(top_ref), "dependencies": []}
        seen: Set[PackageReference] = {top_ref}
        stack = [(top_ref, tree)]

        while stack:
            ref, out = stack.pop()
            expand = []
            for dep in plan.versions[ref].dependencies:
                child_ref = self._select(dep).reference
                child: Dict[str, Any] = {"reference": str(child_ref), "dependencies": []}
                out["dependencies"].append(child)
                if child_ref in seen:
                    child["seen"] = True
                else:
                    seen.add(child_ref)
                    expand.append((child_ref, child))
            stack.extend(reversed(expand))
        return tree


__all__ = ["InstallPlan", "Resolver"]
