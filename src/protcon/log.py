import logging
from typing import Optional


### CLASSES ###
class c:
  """Terminal colors class"""

  _ = "\033[0m"  # reset terminal
  p = "\033[38;5;204m"  # pink
  o = "\033[38;5;208m"  # orange
  b = "\033[38;5;295m"  # blue
  c = "\033[38;5;299m"  # cyan
  g = "\033[38;5;47m"  # green
  grey = "\033[90m"  # grey
  r = "\033[38;5;1m"  # red
  br = "\x1b[31;1m"  # boldred
  y = "\033[38;5;226m"  # yellow


class CustomLogger(logging.Formatter):
  """Custom logger with specialized formatting.

  NOTE:
    ``[+] logging.DEBUG``: Used for all general info

    ``[*] logging.INFO``: Used for more important key info that isn't negative

    ``[-] logging.WARNING``: Used for non-severe info that is negative

    ``[!] logging.ERROR``: Used for errors that require attention but are super concerning

    ``[!] logging.CRITICAL``: Used for very severe errors that require immediate attention and are concerning
  """

  log_format_detailed = f"{c.grey}%(asctime)s{c._} %(message)s {c.p}(%(filename)s:%(lineno)d){c._}"
  log_format_basic = "%(message)s"

  FORMATS = {
    logging.DEBUG: f"{c.g}[+]{c._} {log_format_basic}",
    logging.INFO: f"{c.b}[*]{c._} {log_format_basic}",
    logging.WARNING: f"{c.y}[-]{c._} {log_format_detailed}",
    logging.ERROR: f"{c.r}[!]{c._} {log_format_detailed}",
    logging.CRITICAL: f"{c.br}[!]{c._} {log_format_detailed}",
  }
  """:meta private:"""
  # marking this as private so sphinx doesn't try to document it

  def format(self, record):
    log_fmt = self.FORMATS.get(record.levelno)
    formatter = logging.Formatter(log_fmt)
    return formatter.format(record)


logger = logging.getLogger("protcon")
logger.setLevel(logging.DEBUG)

# create console handler with a higher log level
ch = logging.StreamHandler()
ch.setLevel(logging.DEBUG)
ch.setFormatter(CustomLogger())
logger.addHandler(ch)

# rotamer survival diagnostics only ever go to explicitly opened files
ROTAMER_LOGGER_NAME = "protcon.rotamers"


### FUNCTIONS ###
def get_rotamer_logger(tag) -> logging.Logger:
  """Get a rotamer diagnostics logger private to one owner.

  The logger never propagates, so records only reach the files opened on it
  with :obj:`open_rotamer_log`.

  Parameters:
    tag: Unique suffix identifying the owner (e.g. ``id(engine)``)

  Returns:
    The child logger ``protcon.rotamers.<tag>``

  """
  log = logging.getLogger(f"{ROTAMER_LOGGER_NAME}.{tag}")
  log.setLevel(logging.DEBUG)
  log.propagate = False
  return log


def open_rotamer_log(log: logging.Logger, fpath: str, append: bool = False) -> logging.FileHandler:
  """Attach a plain-text file handler to a rotamer diagnostics logger.

  Parameters:
    log: Logger returned by :obj:`get_rotamer_logger`
    fpath: Path of the log file to write
    append: Append to an existing file instead of truncating it

  Returns:
    The attached handler, to be passed to :obj:`close_rotamer_log`

  """
  handler = logging.FileHandler(fpath, mode="a" if append else "w")
  handler.setLevel(logging.DEBUG)
  handler.setFormatter(logging.Formatter("%(message)s"))
  log.addHandler(handler)
  return handler


def close_rotamer_log(log: logging.Logger, handler: Optional[logging.FileHandler]):
  """Detach and close a handler created by :obj:`open_rotamer_log`.
  Passing ``None`` is a no-op.
  """
  if handler is None:
    return
  log.removeHandler(handler)
  handler.close()
