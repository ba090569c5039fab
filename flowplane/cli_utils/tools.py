"""Load tool modules named on the command line."""

from __future__ import annotations

import sys
from importlib import import_module
from importlib.util import module_from_spec, spec_from_file_location
from pathlib import Path
from types import ModuleType


def _load_tools_module(target: str) -> ModuleType:
    """Import ``target`` given as a dotted module name or a ``.py`` file path.

    Tool modules register their callables with ``flowplane.tools.register_tool``
    as a side effect of being imported.
    """

    path = Path(target).expanduser()
    if path.suffix == ".py" or path.exists():
        if not path.is_file():
            raise FileNotFoundError(f"Tools module not found: {target}")
        module_name = f"flowplane_tools_{path.stem}"
        if module_name in sys.modules:
            return sys.modules[module_name]
        spec = spec_from_file_location(module_name, path.resolve())
        if spec is None or spec.loader is None:
            raise ImportError(f"Cannot load tools module from {target}")
        module = module_from_spec(spec)
        sys.modules[module_name] = module
        try:
            spec.loader.exec_module(module)
        except Exception:
            sys.modules.pop(module_name, None)
            raise
        return module
    return import_module(target)
