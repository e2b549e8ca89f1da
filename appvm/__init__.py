"""appvm package."""

__all__ = [
    "balloon",
    "builder",
    "cli",
    "config",
    "constants",
    "domain",
    "exceptions",
    "hypervisor",
    "lifecycle",
    "locks",
    "models",
    "progress",
    "resolver",
    "templates",
    "utils",
]
