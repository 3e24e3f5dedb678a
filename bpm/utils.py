import os
import shutil

from bpm import log


# -------------------------
# Sistema de arquivos
# -------------------------
def ensure_dir(path: str):
    """Cria diretório se não existir"""
    os.makedirs(path, exist_ok=True)


def copy_file(src: str, dst: str):
    """Copia arquivo preservando metadados (permissões de execução inclusas)"""
    if not os.path.isfile(src):
        raise FileNotFoundError(f"Arquivo não encontrado: {src}")
    ensure_dir(os.path.dirname(dst))
    shutil.copy2(src, dst)


def rm(path: str) -> bool:
    """Remove arquivo ou diretório. Retorna False se não existia."""
    if os.path.isdir(path) and not os.path.islink(path):
        shutil.rmtree(path)
    elif os.path.lexists(path):
        os.remove(path)
    else:
        log.debug("Nada a remover em %s", path)
        return False
    return True
