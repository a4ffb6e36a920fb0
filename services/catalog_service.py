"""
Cast catalog loading.

The catalog is a JSON file of the form
``{"contestants": [{"name": ..., "bio": ..., "imageUrl": ..., "star": ...}]}``
used to seed new rooms and by the ``import-cast`` command.
"""
import json
import logging
from pathlib import Path
from typing import List, Union

from pydantic import ValidationError

from schemas import ContestantCreate

logger = logging.getLogger(__name__)


def load_cast(path: Union[str, Path]) -> List[ContestantCreate]:
    """
    Read the cast file at ``path``.

    A missing or unreadable file is not fatal: rooms simply start with an
    empty pool and the host adds contestants by hand.
    """
    cast_path = Path(path)
    if not cast_path.exists():
        logger.warning("Cast file %s not found, starting with no contestants", cast_path)
        return []

    try:
        raw = json.loads(cast_path.read_text(encoding="utf-8"))
        return [ContestantCreate.model_validate(c) for c in raw.get("contestants", [])]
    except (OSError, ValueError, AttributeError, ValidationError) as e:
        logger.error("Failed to load cast file %s: %s", cast_path, e)
        return []
