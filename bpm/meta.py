#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
meta.py — Modelo de manifestos do bpm

- PackageReference / PackageVersion / Repository / RepositorySet
- Carregamento de packages.mri (TOML) ou packages.yml (YAML) de cada repositório
- Parsing de referências "repo:nome[:versão]"
- Ordenação de versões (packaging.version, fallback lexicográfico)
"""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Tuple

import yaml
from packaging.version import InvalidVersion, Version

from bpm import log
from bpm.errors import ManifestError, UnknownPackage, UnknownRepository, UnknownVersion

logger = log.get_logger("meta")

# nomes aceitos para o manifesto de um repositório, em ordem de preferência
MANIFEST_NAMES = ["packages.mri", "packages.toml", "packages.yml", "packages.yaml"]


# ---------------------------------------------------------------------
# Versões
# ---------------------------------------------------------------------

def version_key(v: str) -> tuple:
    """
    Chave de ordenação de versão.
    Versões PEP 440 comparam naturalmente e ficam acima das não parseáveis,
    que comparam lexicograficamente entre si.
    """
    try:
        return (1, Version(v), "")
    except InvalidVersion:
        return (0, None, v)


# ---------------------------------------------------------------------
# Modelos de dados
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class PackageReference:
    """
    Referência a um pacote: repo, nome e versão opcional.
    Sem versão, a resolução escolhe a maior versão disponível no repo.
    """
    repo: str
    name: str
    version: Optional[str] = None

    def key(self) -> Tuple[str, str]:
        return (self.repo, self.name)

    def __str__(self) -> str:
        if self.version:
            return f"{self.repo}:{self.name}:{self.version}"
        return f"{self.repo}:{self.name}"


@dataclass(frozen=True)
class PackageVersion:
    """
    Uma versão concreta de um pacote:
      path: diretório com o conteúdo do pacote
      binaries: nomes relativos a path, sem duplicatas
      dependencies: referências na ordem declarada
    """
    repo: str
    name: str
    version: str
    path: str
    binaries: Tuple[str, ...] = ()
    dependencies: Tuple[PackageReference, ...] = ()

    @property
    def reference(self) -> PackageReference:
        return PackageReference(self.repo, self.name, self.version)


@dataclass
class Repository:
    id: str
    # nome -> versão -> PackageVersion (ordem de declaração preservada)
    packages: Dict[str, Dict[str, PackageVersion]] = field(default_factory=dict)

    def add(self, pv: PackageVersion) -> None:
        versions = self.packages.setdefault(pv.name, {})
        if pv.version in versions:
            raise ManifestError(f"Versão duplicada {pv.name}.{pv.version} no repositório {self.id}")
        versions[pv.version] = pv


class RepositorySet:
    """Conjunto de repositórios carregados. Somente leitura após a carga."""

    def __init__(self, repositories: Optional[List[Repository]] = None):
        self._repos: Dict[str, Repository] = {}
        for repo in repositories or []:
            self.add(repo)

    def add(self, repo: Repository) -> None:
        if repo.id in self._repos:
            raise ManifestError(f"Repositório duplicado: {repo.id}")
        self._repos[repo.id] = repo

    def __contains__(self, repo_id: str) -> bool:
        return repo_id in self._repos

    def __iter__(self) -> Iterator[Repository]:
        return iter(self._repos.values())

    def __len__(self) -> int:
        return len(self._repos)

    def repository(self, repo_id: str) -> Repository:
        try:
            return self._repos[repo_id]
        except KeyError:
            raise UnknownRepository(repo_id) from None

    def versions(self, repo_id: str, name: str) -> Dict[str, PackageVersion]:
        repo = self.repository(repo_id)
        versions = repo.packages.get(name)
        if not versions:
            raise UnknownPackage(repo_id, name)
        return versions

    def latest_version(self, repo_id: str, name: str) -> PackageVersion:
        versions = list(self.versions(repo_id, name).values())
        # empate (ex.: "1.0" e "1.0.0"): vence a declarada por último
        _, best = max(enumerate(versions), key=lambda item: (version_key(item[1].version), item[0]))
        return best

    def lookup(self, repo_id: str, name: str, version: Optional[str] = None) -> PackageVersion:
        if version is None:
            return self.latest_version(repo_id, name)
        versions = self.versions(repo_id, name)
        if version not in versions:
            raise UnknownVersion(repo_id, name, version)
        return versions[version]

    def search(self, pattern: str) -> List[Tuple[str, str, List[str]]]:
        """Busca por substring no nome. Retorna (repo, nome, versões ordenadas)."""
        out = []
        for repo in self:
            for name, versions in repo.packages.items():
                if pattern in name:
                    out.append((repo.id, name, sorted(versions, key=version_key)))
        return sorted(out)


# ---------------------------------------------------------------------
# Referências
# ---------------------------------------------------------------------

def _split_parts(text: str) -> List[str]:
    parts = [p.strip() for p in (text or "").strip().split(":")]
    if any(not p for p in parts):
        raise ManifestError(f"Referência inválida: '{text}'")
    return parts


def parse_reference(text: str) -> PackageReference:
    """'repo:nome' ou 'repo:nome:versão' -> PackageReference"""
    parts = _split_parts(text)
    if len(parts) == 2:
        return PackageReference(parts[0], parts[1])
    if len(parts) == 3:
        return PackageReference(parts[0], parts[1], parts[2])
    raise ManifestError(f"Referência inválida: '{text}' (esperado repo:nome[:versão])")


def parse_dependency(text: str, repo_id: str) -> PackageReference:
    """Como parse_reference, mas um nome simples refere-se ao próprio repositório."""
    parts = _split_parts(text)
    if len(parts) == 1:
        return PackageReference(repo_id, parts[0])
    return parse_reference(text)


# ---------------------------------------------------------------------
# Carregamento de manifestos
# ---------------------------------------------------------------------

def _package_version(repo_id: str, name: str, version: str, raw: Any, source: str) -> PackageVersion:
    where = f"{source}: {name}.{version}"
    if not isinstance(raw, dict):
        raise ManifestError(f"Entrada inválida em {where}")

    path = raw.get("path")
    if not isinstance(path, str) or not path.strip():
        raise ManifestError(f"Campo obrigatório 'path' ausente ou vazio em {where}")

    binaries = raw.get("binaries")
    if not isinstance(binaries, list) or not all(isinstance(b, str) and b for b in binaries):
        raise ManifestError(f"Campo 'binaries' deve ser uma lista de strings em {where}")
    if not binaries:
        raise ManifestError(f"Campo 'binaries' vazio em {where}")
    binaries = list(dict.fromkeys(binaries))
    seen: Dict[str, str] = {}
    for b in binaries:
        base = os.path.basename(b)
        if base in seen:
            raise ManifestError(f"Binários '{seen[base]}' e '{b}' têm o mesmo nome no store em {where}")
        seen[base] = b

    deps = raw.get("dependencies", []) or []
    if not isinstance(deps, list) or not all(isinstance(d, str) for d in deps):
        raise ManifestError(f"Campo 'dependencies' deve ser uma lista de strings em {where}")

    return PackageVersion(
        repo=repo_id,
        name=name,
        version=version,
        path=path,
        binaries=tuple(binaries),
        dependencies=tuple(parse_dependency(d, repo_id) for d in deps),
    )


def parse_manifest(data: Dict[str, Any], repo_id: str, source: str = "<memory>") -> Repository:
    """
    Converte o conteúdo cru de um manifesto em Repository.

    Aceita tanto a forma aninhada (TOML [neovim."0.9.0"]) quanto chaves
    planas "neovim.0.9.0" (separadas no primeiro ponto).
    """
    if not isinstance(data, dict):
        raise ManifestError(f"Manifesto inválido em {source}: esperado um mapeamento")
    repo = Repository(id=repo_id)
    for key, value in data.items():
        key = str(key)
        if isinstance(value, dict) and "path" in value:
            name, sep, version = key.partition(".")
            if not sep or not name or not version:
                raise ManifestError(f"Chave inválida em {source}: '{key}' (esperado nome.versão)")
            repo.add(_package_version(repo_id, name, version, value, source))
        elif isinstance(value, dict):
            for version, raw in value.items():
                repo.add(_package_version(repo_id, key, str(version), raw, source))
        else:
            raise ManifestError(f"Entrada inválida em {source}: '{key}'")
    return repo


def load_manifest(path: str, repo_id: str) -> Repository:
    """Carrega um manifesto TOML (.mri/.toml) ou YAML (.yml/.yaml)."""
    logger.debug("Carregando manifesto %s (repo=%s)", path, repo_id)
    try:
        if path.endswith((".yml", ".yaml")):
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        else:
            with open(path, "rb") as f:
                data = tomllib.load(f)
    except OSError as e:
        raise ManifestError(f"Não foi possível ler {path}: {e}") from e
    except (tomllib.TOMLDecodeError, yaml.YAMLError) as e:
        raise ManifestError(f"Manifesto malformado {path}: {e}") from e
    return parse_manifest(data, repo_id, source=path)


def find_manifest(repo_path: str) -> Optional[str]:
    for fn in MANIFEST_NAMES:
        candidate = os.path.join(repo_path, fn)
        if os.path.isfile(candidate):
            return candidate
    return None


def load_repositories(repo_dir: str) -> RepositorySet:
    """Cada subdiretório de repo_dir com um manifesto é um repositório (id = nome do diretório)."""
    repos = RepositorySet()
    if not os.path.isdir(repo_dir):
        logger.warning("Diretório de repositórios não existe: %s", repo_dir)
        return repos
    for entry in sorted(os.listdir(repo_dir)):
        repo_path = os.path.join(repo_dir, entry)
        if not os.path.isdir(repo_path):
            continue
        manifest = find_manifest(repo_path)
        if manifest is None:
            logger.debug("Ignorando %s: sem manifesto", repo_path)
            continue
        repos.add(load_manifest(manifest, entry))
    logger.debug("%d repositórios carregados de %s", len(repos), repo_dir)
    return repos


__all__ = [
    "PackageReference", "PackageVersion", "Repository", "RepositorySet",
    "version_key", "parse_reference", "parse_dependency",
    "parse_manifest", "load_manifest", "load_repositories", "MANIFEST_NAMES",
]
