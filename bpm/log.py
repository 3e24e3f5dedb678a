import logging
import os
from logging.handlers import RotatingFileHandler
from datetime import datetime

from bpm import config

# -------------------------
# Configuração inicial
# -------------------------
LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}

_root_logger = logging.getLogger("bpm")
_root_logger.setLevel(logging.DEBUG)  # captura tudo


class ColorFormatter(logging.Formatter):
    """Formata mensagens com cores para o console"""
    COLORS = {
        logging.DEBUG: "\033[36m",   # ciano
        logging.INFO: "\033[32m",    # verde
        logging.WARNING: "\033[33m", # amarelo
        logging.ERROR: "\033[31m",   # vermelho
        logging.CRITICAL: "\033[41m" # fundo vermelho
    }
    RESET = "\033[0m"

    def format(self, record):
        color = self.COLORS.get(record.levelno, self.RESET)
        ts = datetime.fromtimestamp(record.created).strftime("%Y-%m-%d %H:%M:%S")
        module = f"[{record.name}]" if record.name != "bpm" else ""
        msg = super().format(record)
        return f"{color}[{ts}] {record.levelname.lower():<8}{module}{self.RESET} {msg}"


def _file_handler(log_dir: str):
    """Handler rotativo em <log_dir>/bpm.log, ou None se o diretório não for gravável"""
    try:
        os.makedirs(log_dir, exist_ok=True)
        fh = RotatingFileHandler(os.path.join(log_dir, "bpm.log"),
                                 maxBytes=10 * 1024 * 1024, backupCount=5)
    except OSError as e:
        _root_logger.warning("Log em arquivo desativado (%s): %s", log_dir, e)
        return None
    fh.setLevel(logging.DEBUG)
    fh.setFormatter(logging.Formatter(
        "%(asctime)s [%(levelname)s] [%(name)s] %(message)s",
        "%Y-%m-%d %H:%M:%S"
    ))
    return fh


def _setup_handlers():
    """Configura handlers globais"""
    if _root_logger.handlers:
        return  # já configurado

    # Console
    ch = logging.StreamHandler()
    ch.setLevel(LEVELS.get(str(config.get("log_level")).lower(), logging.INFO))
    ch.setFormatter(ColorFormatter("%(message)s"))
    _root_logger.addHandler(ch)

    # Arquivo
    fh = _file_handler(config.get("log_dir"))
    if fh is not None:
        _root_logger.addHandler(fh)


_setup_handlers()


# -------------------------
# API pública
# -------------------------
def get_logger(name: str = "bpm"):
    """Obtém sub-logger (ex.: log.get_logger("ledger"))"""
    return _root_logger.getChild(name)


def set_level(level: str):
    """Altera nível dos handlers de console (o arquivo segue em DEBUG)"""
    lvl = LEVELS.get(level.lower())
    if lvl is None:
        raise ValueError(f"Nível inválido: {level}")
    for handler in _root_logger.handlers:
        if not isinstance(handler, RotatingFileHandler):
            handler.setLevel(lvl)


def set_log_dir(log_dir: str):
    """Troca o arquivo de log (ex.: store escolhido com --store)"""
    for handler in list(_root_logger.handlers):
        if isinstance(handler, RotatingFileHandler):
            if os.path.abspath(handler.baseFilename) == os.path.abspath(os.path.join(log_dir, "bpm.log")):
                return
            _root_logger.removeHandler(handler)
            handler.close()
    fh = _file_handler(log_dir)
    if fh is not None:
        _root_logger.addHandler(fh)


# Atalho simples (sem precisar chamar get_logger)
def debug(msg, *args, **kwargs): _root_logger.debug(msg, *args, **kwargs)
