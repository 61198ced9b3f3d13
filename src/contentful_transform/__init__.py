"""contentful_transform.

Stream Contentful entries and assets from a space or a JSON export through
user-supplied filters and transforms, check them against their content types,
and write them to stdout, files or other spaces.
"""

from contentful_transform.orchestrator import TransformOrchestrator, run_transform
from contentful_transform.cli import main

__version__ = "0.1.0"

__all__ = [
    "TransformOrchestrator",
    "run_transform",
    "main",
]
