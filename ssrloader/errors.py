"""Exception types raised by the SSR loader."""

from __future__ import annotations


class SSRLoaderError(Exception):
    """Base error for SSR loader operations."""


class TransformFailure(SSRLoaderError):
    """The transform pipeline produced no result for a module."""

    def __init__(self, url: str) -> None:
        super().__init__(f"failed to load module for ssr: {url}")
        self.url = url


class ResolutionFailure(SSRLoaderError, ModuleNotFoundError):
    """An external dependency could not be located."""

    def __init__(self, dep_id: str, resolve_dir: str) -> None:
        super().__init__(
            f"Cannot find module '{dep_id}' from '{resolve_dir}'",
            name=dep_id,
        )
        self.dep_id = dep_id
        self.resolve_dir = resolve_dir


class FrozenNamespaceError(SSRLoaderError, TypeError):
    """Raised when a completed module namespace is mutated."""

    def __init__(self, url: str, name: str) -> None:
        super().__init__(
            f"Cannot modify export '{name}' of completed module {url or '<anonymous>'}"
        )
        self.url = url
        self.name = name


class ConfigError(SSRLoaderError):
    """Server configuration failed validation."""

    def __init__(self, errors: list) -> None:
        super().__init__(
            "Invalid configuration: " + "; ".join(str(e) for e in errors)
        )
        self.errors = list(errors)
