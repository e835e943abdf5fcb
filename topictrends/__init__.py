# topictrends/__init__.py
import importlib
from types import ModuleType

__version__ = "1.0.0"

__all__ = [
    "core",
    "topic_models",
    "data_loaders",
    "dataframe_schema",
    "text_preprocessing",
    "model_evaluation",
    "metadata",
    "temporal",
    "visualization",
    "__version__",
]

# Map attribute -> submodule for lazy loading
_lazy_submodules = {
    "core": "topictrends.core",
    "topic_models": "topictrends.topic_models",
    "data_loaders": "topictrends.data_loaders",
    "dataframe_schema": "topictrends.dataframe_schema",
    "text_preprocessing": "topictrends.text_preprocessing",
    "model_evaluation": "topictrends.model_evaluation",
    "metadata": "topictrends.metadata",
    "temporal": "topictrends.temporal",
    "visualization": "topictrends.visualization",
}

def __getattr__(name: str) -> ModuleType:
    if name in _lazy_submodules:
        module = importlib.import_module(_lazy_submodules[name])
        globals()[name] = module  # cache for future
        return module
    raise AttributeError(f"module 'topictrends' has no attribute '{name}'")

def __dir__():
    return sorted(list(globals().keys()) + list(_lazy_submodules.keys()))
