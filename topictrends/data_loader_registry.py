"""
Registry mapping document file extensions to DataLoader classes.

Loaders declare the extensions they read with the ``register_data_loader``
decorator; the orchestrator asks the registry which loader handles the
files found in an input directory.
"""

from typing import Dict, Set, List, Type, Optional, Union, TYPE_CHECKING
from pathlib import Path

from ._file_driver import normalize_extension

if TYPE_CHECKING:
    from .data_loaders import DataLoader


class DataLoaderRegistry:
    """
    Class-level mapping between file extensions and DataLoader classes.
    Each extension belongs to exactly one loader.
    """

    _extension_to_loader: Dict[str, Type['DataLoader']] = {}
    _loader_to_extensions: Dict[Type['DataLoader'], Set[str]] = {}

    @classmethod
    def register_loader(cls, loader_class: Type, extensions: List[str]) -> None:
        """
        Register a DataLoader class for the given extensions.

        Raises ValueError if an extension is already claimed by another class.
        """
        normalized = {normalize_extension(ext) for ext in extensions}

        for ext in normalized:
            existing = cls._extension_to_loader.get(ext)
            if existing is not None and existing is not loader_class:
                raise ValueError(
                    f"Extension '{ext}' is already registered to {existing.__name__}. "
                    f"Cannot register to {loader_class.__name__}."
                )

        for ext in normalized:
            cls._extension_to_loader[ext] = loader_class
        cls._loader_to_extensions.setdefault(loader_class, set()).update(normalized)

    @classmethod
    def get_loader_class(cls, extension: str) -> Optional[Type]:
        """Loader class for an extension, or None if unsupported"""
        return cls._extension_to_loader.get(normalize_extension(extension))

    @classmethod
    def get_supported_extensions(cls) -> Set[str]:
        return set(cls._extension_to_loader.keys())

    @classmethod
    def get_extensions_for_loader(cls, loader_class: Type) -> Set[str]:
        return set(cls._loader_to_extensions.get(loader_class, set()))

    @classmethod
    def get_loader_for_extensions(cls, extensions: Set[str]) -> Optional[Type]:
        """
        Common loader class for a set of extensions.

        Returns None when the set is empty, contains an unsupported extension,
        or spans more than one loader.
        """
        loader_classes = set()
        for ext in extensions:
            loader_class = cls.get_loader_class(ext)
            if loader_class is None:
                return None
            loader_classes.add(loader_class)
        if len(loader_classes) != 1:
            return None
        return loader_classes.pop()

    @classmethod
    def discover_supported_files(cls, directory: Union[str, Path],
                                 extensions: Optional[Set[str]] = None) -> List[Path]:
        """
        Supported files directly inside a directory, sorted by file name.

        Args:
            directory: Directory to scan (not recursive)
            extensions: Restrict discovery to these extensions (default: all registered)
        """
        directory = Path(directory)
        if not directory.is_dir():
            return []

        if extensions is None:
            wanted = cls.get_supported_extensions()
        else:
            wanted = {normalize_extension(ext) for ext in extensions}

        return sorted(
            (p for p in directory.iterdir() if p.is_file() and p.suffix.lower() in wanted),
            key=lambda p: p.name
        )

    @classmethod
    def clear_registry(cls) -> None:
        """Clear all registered loaders (mainly for testing)."""
        cls._extension_to_loader.clear()
        cls._loader_to_extensions.clear()


def register_data_loader(*extensions: str):
    """
    Decorator for registering DataLoader classes with their supported extensions.

    Usage:
        @register_data_loader('txt')
        class TextDirectoryDataLoader(DataLoader):
            pass
    """
    def decorator(loader_class: Type) -> Type:
        DataLoaderRegistry.register_loader(loader_class, list(extensions))
        return loader_class
    return decorator
