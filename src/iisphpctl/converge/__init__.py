"""Convergence steps that drive an IIS host to the desired PHP site state."""
from __future__ import annotations

from .documents import set_default_documents
from .fastcgi import MappingResult, ensure_handler_registered, ensure_path_handler
from .features import FeatureReport, ensure_features
from .interfaces import Collaborators
from .interpreter import (
    PhpDownload,
    compiler_token,
    ensure_interpreter,
    ensure_php_ini,
    resolve_download,
)
from .pipeline import ConvergencePipeline, build_collaborators
from .pool import ensure_pool
from .privilege import require_privileged, verify_privileged
from .runtime import ensure_runtime_present
from .site import SiteResult, SiteStrategy, ensure_site
from .site_directory import ensure_directory, ensure_index_file, grant_read_execute

__all__ = [
    "Collaborators",
    "ConvergencePipeline",
    "FeatureReport",
    "MappingResult",
    "PhpDownload",
    "SiteResult",
    "SiteStrategy",
    "build_collaborators",
    "compiler_token",
    "ensure_directory",
    "ensure_features",
    "ensure_handler_registered",
    "ensure_index_file",
    "ensure_interpreter",
    "ensure_path_handler",
    "ensure_php_ini",
    "ensure_pool",
    "ensure_runtime_present",
    "ensure_site",
    "grant_read_execute",
    "require_privileged",
    "resolve_download",
    "set_default_documents",
    "verify_privileged",
]
