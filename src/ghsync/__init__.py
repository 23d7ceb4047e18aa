"""ghsync: idempotent GitHub branch, content, tag and pull-request updates via API."""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("ghsync")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"  # Fallback for editable installs without metadata

from .content import ChangeSet, blob_hash  # noqa: F401
from .models import RepositoryRef, RefMutationReport  # noqa: F401
from .refs import is_commit_hash, qualify_ref_name  # noqa: F401

__all__ = [
    "ChangeSet",
    "RefMutationReport",
    "RepositoryRef",
    "blob_hash",
    "is_commit_hash",
    "qualify_ref_name",
    "__version__",
]
