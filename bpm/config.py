#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
config.py — Módulo de configuração do bpm

- Suporta $BPM_CONFIG > ~/.config/bpm/config.yml > /etc/bpm/config.yml > defaults
- Configuração em YAML
- Permite leitura, escrita, reset e listagem completa da config
- Caminhos do store (repos, bins, ledger, logs) derivados de store_dir quando vazios
"""

import os
import yaml

# Caminhos padrão
USER_CONFIG = os.path.expanduser("~/.config/bpm/config.yml")
SYSTEM_CONFIG = "/etc/bpm/config.yml"

# Valores padrão
DEFAULTS = {
    # Diretório raiz do store
    "store_dir": os.path.expanduser("~/.bpm"),

    # Derivados de store_dir quando vazios
    "repo_dir": "",
    "bins_dir": "",
    "ledger": "",
    "log_dir": "",

    # Logging
    "log_level": "info",
}

# chave -> caminho relativo ao store_dir
_DERIVED = {
    "repo_dir": "repos",
    "bins_dir": "bins",
    "ledger": "installed.json",
    "log_dir": "logs",
}

_config = DEFAULTS.copy()


def _load_from(path: str) -> dict:
    """Carrega configuração de um arquivo YAML se existir."""
    if not os.path.isfile(path):
        return {}
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        return {}
    return data


def _config_path(system: bool = False) -> str:
    env_path = os.getenv("BPM_CONFIG")
    if env_path and not system:
        return env_path
    return SYSTEM_CONFIG if system else USER_CONFIG


def load_config() -> dict:
    """Carrega config seguindo a hierarquia: env > user > system > defaults"""
    global _config

    # 1. Variável de ambiente
    env_path = os.getenv("BPM_CONFIG")
    if env_path and os.path.exists(env_path):
        _config = {**DEFAULTS, **_load_from(env_path)}
        return _config

    # 2. Configuração do usuário
    if os.path.exists(USER_CONFIG):
        _config = {**DEFAULTS, **_load_from(USER_CONFIG)}
        return _config

    # 3. Configuração global
    if os.path.exists(SYSTEM_CONFIG):
        _config = {**DEFAULTS, **_load_from(SYSTEM_CONFIG)}
        return _config

    # 4. Defaults
    _config = DEFAULTS.copy()
    return _config


def _save(cfg: dict, system: bool = False) -> None:
    """Salva configuração em YAML (usuário ou sistema)."""
    path = _config_path(system)
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(cfg, f, default_flow_style=False, allow_unicode=True)


def get(key: str, default=None):
    """Obtém valor de uma chave da configuração (com fallback e caminhos derivados)."""
    value = _config.get(key, DEFAULTS.get(key, default))
    if key in _DERIVED and not value:
        store = os.path.expanduser(str(_config.get("store_dir") or DEFAULTS["store_dir"]))
        return os.path.join(store, _DERIVED[key])
    if key in _DERIVED or key == "store_dir":
        return os.path.expanduser(str(value))
    return value


def set(key: str, value, system: bool = False):
    """Define valor para uma chave e salva em config.yml."""
    cfg = load_config()
    cfg[key] = value
    _save(cfg, system=system)
    _config.update(cfg)


def all() -> dict:
    """Retorna configuração completa (merge de defaults + arquivo carregado)."""
    load_config()
    return {key: get(key) for key in _config}


def reset(system: bool = False):
    """Restaura configuração para os valores padrão."""
    _save(DEFAULTS.copy(), system=system)
    load_config()


def paths(store_dir: str | None = None) -> dict:
    """
    Retorna os caminhos efetivos do store.
    Com store_dir explícito (ex.: --store na CLI) todos os caminhos derivam dele.
    """
    if store_dir:
        store = os.path.abspath(os.path.expanduser(store_dir))
        return {key: os.path.join(store, rel) for key, rel in _DERIVED.items()} | {"store_dir": store}
    return {key: get(key) for key in ["store_dir", *_DERIVED]}


def ensure_dirs(store_dir: str | None = None):
    """Garante que diretórios essenciais existem."""
    p = paths(store_dir)
    for key in ["store_dir", "repo_dir", "bins_dir", "log_dir"]:
        os.makedirs(p[key], exist_ok=True)
    os.makedirs(os.path.dirname(p["ledger"]), exist_ok=True)
    return p


# Carrega config logo no import
load_config()
