"""installas: install a Go binary stamped with a version of your choosing."""

__version__ = "0.1.0"

from installas.chain import ProxyEnvironment
from installas.module import ModuleVersion, ValidationError
from installas.proxy import ProxyMaterializer

__all__ = [
    "ModuleVersion",
    "ProxyEnvironment",
    "ProxyMaterializer",
    "ValidationError",
    "__version__",
]
