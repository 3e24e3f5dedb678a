#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
cli.py — CLI do bpm (install, remove, update, list, plan, search, info, verify, config)
"""

from __future__ import annotations
import argparse
import json
import sys
from typing import Any

from bpm import __version__, commands, config as config_mod, log as log_mod
from bpm.errors import BpmError
from bpm.meta import parse_reference

logger = log_mod.get_logger("cli")

# ANSI colors simples
C = {
    "reset": "\033[0m",
    "red": "\033[31m",
    "green": "\033[32m",
    "yellow": "\033[33m",
    "blue": "\033[34m",
    "magenta": "\033[35m",
    "cyan": "\033[36m",
    "bold": "\033[1m",
}

STATUS_COLORS = {"installed": "green", "skipped": "blue", "failed": "red", "pending": "yellow"}


def color(text: str, col: str) -> str:
    return f"{C.get(col, '')}{text}{C['reset']}"


def _print_json_or_plain(data: Any, as_json: bool) -> None:
    if as_json:
        print(json.dumps(data, ensure_ascii=False, indent=2))
    else:
        if isinstance(data, dict):
            for k, v in data.items():
                print(f"{color(str(k), 'cyan')}: {v}")
        elif isinstance(data, list):
            for item in data:
                print(item)
        else:
            print(data)


def _setup_logging(verbose: bool, store: str | None = None) -> None:
    log_mod.set_level("debug" if verbose else str(config_mod.get("log_level")))
    log_mod.set_log_dir(config_mod.paths(store)["log_dir"])


def _context(args) -> commands.Context:
    return commands.Context.from_config(getattr(args, "store", None))


def _finish(result: commands.CommandResult, args) -> int:
    """Imprime o resultado e devolve o exit code (0 sucesso, 1 falha)."""
    if getattr(args, "json", False):
        _print_json_or_plain(result.to_dict(), True)
    elif result.ok:
        print(color(f"[OK] {result.message}", "green"))
    else:
        print(color(f"[ERRO] {result.message}", "red"), file=sys.stderr)
    return 0 if result.ok else 1


def _print_steps(result: commands.CommandResult) -> None:
    if result.report is None:
        return
    for step in result.report.steps:
        st = step.status.value
        print(f"  {color(f'{st:<9}', STATUS_COLORS.get(st, 'reset'))} {step.reference}")


def _ref(text: str):
    try:
        return parse_reference(text)
    except BpmError as e:
        print(color(f"[ERRO] {e}", "red"), file=sys.stderr)
        return None


# ---------------------------
# Command handlers
# ---------------------------

def cmd_install(args):
    """
    bpm install <repo:pacote[:versão]>
    """
    ref = _ref(args.ref)
    if ref is None:
        return 2
    result = commands.install(_context(args), ref)
    if not args.json:
        _print_steps(result)
    return _finish(result, args)


def cmd_remove(args):
    """
    bpm remove <repo:pacote>
    """
    ref = _ref(args.ref)
    if ref is None:
        return 2
    return _finish(commands.remove(_context(args), ref.repo, ref.name), args)


def cmd_update(args):
    """
    bpm update <repo:pacote>
    """
    ref = _ref(args.ref)
    if ref is None:
        return 2
    result = commands.update(_context(args), ref.repo, ref.name)
    if not args.json:
        _print_steps(result)
    return _finish(result, args)


def cmd_list(args):
    """
    bpm list
    """
    result = commands.list_installed(_context(args))
    if args.json:
        return _finish(result, args)
    if not result.entries:
        print(result.message)
        return 0
    print(color("Pacotes instalados:", "magenta"))
    for e in result.entries:
        print(f"{color(f'{e.repo}:{e.name}', 'cyan')} {color(e.version, 'magenta')} {e.binaries}")
    return 0


def cmd_plan(args):
    """
    bpm plan <repo:pacote[:versão]> [--tree]
    """
    ref = _ref(args.ref)
    if ref is None:
        return 2
    result = commands.plan(_context(args), ref, tree=args.tree)
    if result.ok and not args.json:
        for i, step in enumerate(result.data["steps"], 1):
            print(f"{i:>3}. {color(step['reference'], 'cyan')} [{step['action']}]")
        if args.tree:
            _print_tree(result.data["tree"])
    return _finish(result, args)


def _print_tree(node: dict) -> None:
    # pilha explícita: (nó, nível)
    stack = [(node, 0)]
    while stack:
        n, depth = stack.pop()
        mark = " (*)" if n.get("seen") else ""
        print(f"{'  ' * depth}{n['reference']}{mark}")
        for child in reversed(n["dependencies"]):
            stack.append((child, depth + 1))


def cmd_search(args):
    """
    bpm search <padrão>
    """
    result = commands.search(_context(args), args.pattern)
    if result.ok and not args.json:
        print(color("=== Disponíveis ===", "magenta"))
        for p in result.data:
            print(f"{color(p['repo'] + ':' + p['name'], 'cyan')} {', '.join(p['versions'])}")
        return 0
    return _finish(result, args)


def cmd_info(args):
    """
    bpm info <repo:pacote>
    """
    ref = _ref(args.ref)
    if ref is None:
        return 2
    result = commands.info(_context(args), ref.repo, ref.name)
    if result.ok and not args.json:
        d = result.data
        print(color(f"Pacote: {d['repo']}:{d['name']} (mais recente {d['latest']})", "cyan"))
        print(color(f"Status: instalado ({d['installed']})", "green") if d["installed"]
              else color("Status: não instalado", "yellow"))
        for v, info in d["versions"].items():
            print(f"  {color(v, 'magenta')}: binários={info['binaries']} dependências={info['dependencies']}")
        return 0
    return _finish(result, args)


def cmd_verify(args):
    """
    bpm verify
    """
    result = commands.verify(_context(args))
    if not result.ok and not args.json:
        for pkg, missing in result.data.items():
            print(color(f"[{pkg}]: ausentes {missing}", "yellow"))
    return _finish(result, args)


def cmd_config(args):
    """
    bpm config get <key>
    bpm config set <key> <value> [--system]
    bpm config list
    bpm config reset [--system]
    """
    act = args.action
    if act == "get":
        if not args.key:
            print("Uso: bpm config get <chave>")
            return 2
        print(config_mod.get(args.key))
        return 0
    elif act == "set":
        if not args.key or args.value is None:
            print("Uso: bpm config set <chave> <valor> [--system]")
            return 2
        config_mod.set(args.key, args.value, system=args.system)
        print(f"[OK] Configuração '{args.key}' definida para '{args.value}' ({'global' if args.system else 'usuário'})")
        return 0
    elif act == "list":
        for k, v in config_mod.all().items():
            print(f"{k}: {v}")
        return 0
    else:
        config_mod.reset(system=args.system)
        print(f"[OK] Configuração restaurada para padrões {'globais' if args.system else 'de usuário'}")
        return 0


def cmd_version(args):
    print(f"bpm ver: {__version__}")
    return 0


# -----------------------------------------------------------------------------
# Build argument parser and connect commands
# -----------------------------------------------------------------------------

def build_parser():
    p = argparse.ArgumentParser(prog="bpm", description="bpm - Gerenciador de pacotes binários")
    p.add_argument("--verbose", "-v", action="store_true", help="Modo verboso")
    p.add_argument("--json", action="store_true", help="Imprime JSON quando aplicável")
    p.add_argument("--store", default=None, help="Diretório do store (sobrepõe store_dir da config)")
    sub = p.add_subparsers(dest="command")

    # install
    si = sub.add_parser("install", aliases=["i"], help="Instalar pacote e dependências")
    si.add_argument("ref", help="repo:pacote[:versão]")
    si.set_defaults(func=cmd_install)

    # remove
    sr = sub.add_parser("remove", aliases=["rm"], help="Remover pacote")
    sr.add_argument("ref", help="repo:pacote")
    sr.set_defaults(func=cmd_remove)

    # update
    su = sub.add_parser("update", aliases=["u"], help="Atualizar pacote para a versão mais recente")
    su.add_argument("ref", help="repo:pacote")
    su.set_defaults(func=cmd_update)

    # list
    sl = sub.add_parser("list", aliases=["ls"], help="Listar pacotes instalados")
    sl.set_defaults(func=cmd_list)

    # plan
    sp = sub.add_parser("plan", help="Mostrar ordem de instalação sem instalar")
    sp.add_argument("ref", help="repo:pacote[:versão]")
    sp.add_argument("--tree", action="store_true", help="Mostrar árvore de dependências")
    sp.set_defaults(func=cmd_plan)

    # search
    ss = sub.add_parser("search", aliases=["s"], help="Buscar pacotes nos repositórios")
    ss.add_argument("pattern")
    ss.set_defaults(func=cmd_search)

    # info
    sinfo = sub.add_parser("info", help="Mostrar informações do pacote")
    sinfo.add_argument("ref", help="repo:pacote")
    sinfo.set_defaults(func=cmd_info)

    # verify
    sv = sub.add_parser("verify", aliases=["check"], help="Verificar binários instalados")
    sv.set_defaults(func=cmd_verify)

    # config
    sc = sub.add_parser("config", help="Gerenciar configuração do bpm")
    sc.add_argument("action", choices=["get", "set", "list", "reset"], help="Ação sobre a configuração")
    sc.add_argument("key", nargs="?", help="Chave da configuração")
    sc.add_argument("value", nargs="?", help="Valor (para set)")
    sc.add_argument("--system", action="store_true", help="Salvar/operar no config global (/etc)")
    sc.set_defaults(func=cmd_config)

    # version
    sver = sub.add_parser("version", help="Mostrar versão")
    sver.set_defaults(func=cmd_version)

    return p


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    if not hasattr(args, "func"):
        parser.print_help()
        sys.exit(2)

    _setup_logging(getattr(args, "verbose", False), getattr(args, "store", None))

    try:
        rc = args.func(args)
    except BpmError as e:
        # ex.: manifesto inválido ao carregar os repositórios
        logger.error("Erro ao executar comando: %s", e)
        print(color(f"[ERRO] {e}", "red"), file=sys.stderr)
        sys.exit(1)
    sys.exit(rc if isinstance(rc, int) else 0)


if __name__ == "__main__":
    main()
