"""
Classifier loading.

Three sources, tried in this order:

    load_classifier(path="models/news.json")   a model file on disk
    load_classifier(resource="default")        a model bundled in tagserver.classifiers
    load_classifier()                          the bundled default model

Model files are JSON:

    {
        "name": "news",
        "background": "O",
        "case_sensitive": true,
        "entities": {
            "PERSON": ["Alice", "Bob"],
            "ORGANIZATION": ["Stanford University"]
        }
    }
"""

import json
import logging
from importlib import resources
from pathlib import Path
from typing import Any, Optional, Union

from ..errors import ClassifierLoadError
from .classifier import GazetteerClassifier


logger = logging.getLogger(__name__)

RESOURCE_PACKAGE = "tagserver.classifiers"
DEFAULT_RESOURCE = "default"


def load_classifier(
    path: Optional[Union[str, Path]] = None,
    resource: Optional[str] = None,
) -> GazetteerClassifier:
    """
    Load a classifier from a file, a bundled resource, or the default.

    Raises:
        ClassifierLoadError: If the model is missing or malformed.
    """
    if path:
        logger.info(f"Using classifier loaded from {path}")
        return load_classifier_file(path)
    if resource:
        logger.info(f"Using bundled classifier {resource}")
        return load_bundled_classifier(resource)
    logger.info("Using default classifier")
    return load_bundled_classifier(DEFAULT_RESOURCE)


def load_classifier_file(path: Union[str, Path]) -> GazetteerClassifier:
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ClassifierLoadError(f"Cannot read classifier {path}: {e}") from e
    return _from_json(text, source=str(path), default_name=path.stem)


def load_bundled_classifier(name: str) -> GazetteerClassifier:
    filename = name if name.endswith(".json") else f"{name}.json"
    # Resource names are flat; reject anything that could walk out of the package.
    if "/" in filename or "\\" in filename or filename.startswith("."):
        raise ClassifierLoadError(f"Invalid classifier resource name: {name!r}")

    entry = resources.files(RESOURCE_PACKAGE).joinpath(filename)
    if not entry.is_file():
        raise ClassifierLoadError(f"No bundled classifier named {name!r}")
    return _from_json(entry.read_text(encoding="utf-8"), source=filename, default_name=name)


def _from_json(text: str, source: str, default_name: str) -> GazetteerClassifier:
    try:
        data: Any = json.loads(text)
    except ValueError as e:
        raise ClassifierLoadError(f"Malformed classifier {source}: {e}") from e

    if not isinstance(data, dict) or not isinstance(data.get("entities"), dict):
        raise ClassifierLoadError(f"Classifier {source} has no 'entities' mapping")

    entities = data["entities"]
    for label, phrases in entities.items():
        if not isinstance(phrases, list) or not all(isinstance(p, str) for p in phrases):
            raise ClassifierLoadError(
                f"Classifier {source}: entities[{label!r}] must be a list of strings"
            )

    classifier = GazetteerClassifier(
        entities,
        background=str(data.get("background", "O")),
        case_sensitive=bool(data.get("case_sensitive", True)),
        name=str(data.get("name", default_name)),
    )
    logger.debug(f"Loaded {classifier!r} from {source}")
    return classifier
