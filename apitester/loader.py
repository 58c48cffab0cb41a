# apitester/loader.py
"""Load JSON suite and config documents from paths or glob patterns."""

from __future__ import annotations

import glob
import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from apitester.suite_types import ConfigurationError

logger = logging.getLogger(__name__)


def expand_paths(patterns: Iterable[Union[str, Path]]) -> List[Path]:
    """Expand globs; a plain path that does not exist is an error, an empty glob too."""
    out: List[Path] = []
    for pattern in patterns:
        text = str(pattern)
        if glob.has_magic(text):
            matched = sorted(glob.glob(text, recursive=True))
            if not matched:
                raise ConfigurationError(f"No files match {text!r}")
            out.extend(Path(m) for m in matched)
        else:
            p = Path(text)
            if not p.is_file():
                raise ConfigurationError(f"File not found: {p}")
            out.append(p)
    # Same file listed twice would duplicate every test id
    return list(dict.fromkeys(p.resolve() for p in out))


def load_json(path: Union[str, Path]) -> Any:
    p = Path(path)
    try:
        with p.open("r", encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError:
        raise ConfigurationError(f"File not found: {p}") from None
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"{p}: invalid JSON ({e.msg} at line {e.lineno})") from e
    except OSError as e:
        raise ConfigurationError(f"{p}: {e}") from e


def load_suite_documents(patterns: Iterable[Union[str, Path]]) -> List[Dict[str, Any]]:
    """Load each suite document, tagging it with its source path."""
    docs: List[Dict[str, Any]] = []
    for p in expand_paths(patterns):
        doc = load_json(p)
        if not isinstance(doc, dict):
            raise ConfigurationError(f"{p}: suite document must be a JSON object")
        doc["_source"] = str(p)
        docs.append(doc)
        logger.debug(f"Loaded suite document {p}")
    return docs


def load_config(path: Optional[Union[str, Path]]) -> Dict[str, Any]:
    """Free-form key/value defaults; missing path means no config."""
    if not path:
        return {}
    data = load_json(path)
    if not isinstance(data, dict):
        raise ConfigurationError(f"{path}: config document must be a JSON object")
    return data
