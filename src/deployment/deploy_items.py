"""
Assembly of the configuration items pushed to (or pulled from) a stack.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from errors import InvalidInput

logger = logging.getLogger(__name__)

DEPLOYABLES = ("bot", "style", "models", "terms")


def get_deployables(opts: Mapping[str, Any]) -> Dict[str, Any]:
    """Pick the selected deployable flags out of an options mapping."""
    return {key: opts[key] for key in DEPLOYABLES if opts.get(key)}


def normalize_deploy_opts(opts: Mapping[str, Any], command: str = "deploy") -> Dict[str, Any]:
    """
    Validate deploy/load options and expand ``all``.

    Raises:
        InvalidInput: On stray positional arguments, or when nothing was
            selected and ``all`` isn't set
    """
    args = opts.get("args") or []
    if args:
        raise InvalidInput(f"unknown arguments: {' '.join(args)}")

    if opts.get("all"):
        return {**opts, **{key: True for key in DEPLOYABLES}}

    if not get_deployables(opts):
        raise InvalidInput(f"you didn't indicate anything to {command}!")

    return dict(opts)


def get_namespace(models: List[Dict[str, Any]], lenses: List[Dict[str, Any]]) -> Optional[str]:
    """Derive the namespace from the first model (or lens) id."""
    first = (models or lenses or [None])[0]
    if not first or "." not in first.get("id", ""):
        return None
    return first["id"].rsplit(".", 1)[0]


def pack_models(
    models: Optional[List[Dict[str, Any]]] = None,
    lenses: Optional[List[Dict[str, Any]]] = None,
    namespace: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Bundle models and lenses into a models pack.

    Raises:
        InvalidInput: If there's nothing to pack, or an id is outside the
            namespace
    """
    models = models or []
    lenses = lenses or []
    if not (models or lenses):
        raise InvalidInput('expected "models" and/or "lenses"')

    namespace = namespace or get_namespace(models, lenses)
    if not namespace:
        raise InvalidInput("unable to derive a namespace from model ids")

    for item in models + lenses:
        if not item.get("id", "").startswith(f"{namespace}."):
            raise InvalidInput(
                f'expected "{item.get("id")}" to be in namespace "{namespace}"'
            )

    pack: Dict[str, Any] = {"namespace": namespace}
    if models:
        pack["models"] = models
    if lenses:
        pack["lenses"] = lenses
    return pack


class LocalConfFiles:
    """Read and write the local copies of a stack's configuration."""

    def __init__(self, root: Optional[Union[str, Path]] = None):
        self.root = Path(root) if root else Path.cwd()

    @property
    def conf_dir(self) -> Path:
        return self.root / "conf"

    @property
    def bot(self) -> Path:
        return self.conf_dir / "bot.json"

    @property
    def style(self) -> Path:
        return self.conf_dir / "style.json"

    @property
    def terms(self) -> Path:
        return self.conf_dir / "terms-and-conditions.md"

    @property
    def models_dir(self) -> Path:
        return self.root / "models"

    @property
    def lenses_dir(self) -> Path:
        return self.root / "lenses"

    def ensure_dirs(self) -> None:
        for directory in (self.conf_dir, self.models_dir, self.lenses_dir):
            directory.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def _maybe_read_json(path: Path) -> Any:
        if not path.exists():
            return None
        with open(path, "r") as f:
            return json.load(f)

    @staticmethod
    def _read_dir_of_jsons(directory: Path) -> List[Dict[str, Any]]:
        if not directory.is_dir():
            return []
        items = []
        for path in sorted(directory.glob("*.json")):
            with open(path, "r") as f:
                items.append(json.load(f))
        return items

    def read_bot(self) -> Optional[Dict[str, Any]]:
        return self._maybe_read_json(self.bot)

    def read_style(self) -> Optional[Dict[str, Any]]:
        return self._maybe_read_json(self.style)

    def read_terms(self) -> Optional[str]:
        return self.terms.read_text() if self.terms.exists() else None

    def read_models(self) -> List[Dict[str, Any]]:
        return self._read_dir_of_jsons(self.models_dir)

    def read_lenses(self) -> List[Dict[str, Any]]:
        return self._read_dir_of_jsons(self.lenses_dir)

    @staticmethod
    def _write(path: Path, data: Any) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        text = data if isinstance(data, str) else json.dumps(data, indent=2)
        path.write_text(text)

    def write_bot(self, bot: Dict[str, Any]) -> None:
        self._write(self.bot, bot)

    def write_style(self, style: Dict[str, Any]) -> None:
        self._write(self.style, style)

    def write_terms(self, terms: str) -> None:
        self._write(self.terms, terms)

    def write_models(self, models_pack: Dict[str, Any]) -> None:
        """Write each model and lens in a pack to ``<id>.json``."""
        for key, directory in (("models", self.models_dir), ("lenses", self.lenses_dir)):
            for item in models_pack.get(key) or []:
                self._write(directory / f"{item['id']}.json", item)


def get_deploy_items(opts: Mapping[str, Any], files: LocalConfFiles) -> Dict[str, Any]:
    """
    Read the selected items from local files.

    Raises:
        InvalidInput: If the selection is invalid or nothing could be read
    """
    opts = normalize_deploy_opts(opts)
    items: Dict[str, Any] = {}

    if opts.get("style"):
        style = files.read_style()
        if style is not None:
            items["style"] = style

    if opts.get("terms"):
        terms = files.read_terms()
        if terms is not None:
            items["terms"] = terms

    if opts.get("models"):
        models = files.read_models()
        lenses = files.read_lenses()
        if models or lenses:
            items["modelsPack"] = pack_models(models, lenses)

    if opts.get("bot"):
        bot = files.read_bot()
        if bot is not None:
            items["bot"] = bot

    if not items:
        raise InvalidInput("nothing to deploy: no local files found for the selected items")

    return items
