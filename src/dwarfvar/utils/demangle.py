"""
C++ symbol demangling via binutils c++filt.
"""

import logging
import re
import shutil
import subprocess
import threading
from typing import Dict, Iterable, Optional

logger = logging.getLogger(__name__)

# GCC appends e.g. " [clone .constprop.0]" to specialized copies
_CLONE_SUFFIX = re.compile(r'(\s*\[clone [^\]]*\])+$')


class Demangler:
    """Turns a linkage name into its source-level spelling."""

    def demangle(self, name: str) -> str:
        raise NotImplementedError

    def demangle_many(self, names: Iterable[str]) -> Dict[str, str]:
        """Demangle several names, returning a name -> demangled mapping."""
        return {name: self.demangle(name) for name in names}


class IdentityDemangler(Demangler):
    """Returns names unchanged. Used when no demangler is available."""

    def demangle(self, name: str) -> str:
        return name


class CxxFiltDemangler(Demangler):
    """Demangler backed by the c++filt command line tool.

    Results are memoized, and demangle_many sends every uncached name to a
    single c++filt process. If c++filt cannot be found or fails, the input is
    returned unchanged, so C binaries still work on hosts without binutils.

    Args:
        executable: Name or path of c++filt
    """

    def __init__(self, executable: str = 'c++filt'):
        self.executable: Optional[str] = shutil.which(executable)
        self._cache: Dict[str, str] = {}
        self._lock = threading.Lock()
        if self.executable is None:
            logger.warning(f"{executable} not found, linkage names will not be demangled")

    def demangle(self, name: str) -> str:
        return self.demangle_many([name])[name]

    def demangle_many(self, names: Iterable[str]) -> Dict[str, str]:
        names = list(dict.fromkeys(names))
        pending = [name for name in names if name not in self._cache]
        if pending:
            results = self._run(pending)
            with self._lock:
                for name, demangled in zip(pending, results):
                    self._cache[name] = _CLONE_SUFFIX.sub('', demangled)
        return {name: self._cache[name] for name in names}

    def _run(self, names: list) -> list:
        """Demangle names with one c++filt process, one name per line."""
        mangled = [name for name in names if name.startswith('_Z') and '\n' not in name]
        if self.executable is None or not mangled:
            return names

        try:
            completed = subprocess.run(
                [self.executable],
                input='\n'.join(mangled) + '\n',
                capture_output=True,
                text=True,
                check=True,
            )
        except (OSError, subprocess.CalledProcessError) as e:
            logger.warning(f"c++filt failed, leaving {len(mangled)} names mangled: {e}")
            return names

        lines = completed.stdout.splitlines()
        if len(lines) != len(mangled):
            logger.warning(f"c++filt returned {len(lines)} lines for {len(mangled)} names")
            return names

        demangled = dict(zip(mangled, lines))
        logger.debug(f"Demangled {len(mangled)} names with one c++filt call")
        return [demangled.get(name, name).strip() or name for name in names]
