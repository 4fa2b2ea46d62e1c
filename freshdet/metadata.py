from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Sequence, Union


PathLike = Union[str, Path]


def unknown_label(class_id: int) -> str:
    return f"Unknown_{class_id}"


def label_for(labels: Sequence[str], class_id: int) -> str:
    """
    Label for a class index; out-of-range indices map to `Unknown_<index>`.
    """

    if 0 <= class_id < len(labels):
        return labels[class_id]
    return unknown_label(class_id)


def load_class_names(metadata_path: PathLike) -> List[str]:
    """
    Load the label table from a lightweight `metadata.yaml`.

    Both forms of the `names:` block are accepted:

        names:
          0: Fresh_Apple
          1: Fresh_Banana

        names:
          - Fresh_Apple
          - Fresh_Banana

    The result is a list indexed by class id. Gaps in a mapping are filled with
    `Unknown_<id>` so indices stay aligned with the model. This parser avoids
    adding a PyYAML dependency.
    """

    path = Path(metadata_path)
    if not path.exists():
        raise FileNotFoundError(f"Label metadata not found: {path}")

    mapped: Dict[int, str] = {}
    listed: List[str] = []
    in_names = False

    with open(path, "r", encoding="utf-8") as f:
        for raw in f:
            line = raw.strip()
            if not line or line.startswith("#"):
                continue
            if line == "names:":
                in_names = True
                continue
            if not in_names:
                continue
            # A new top-level key ends the block.
            if not raw[:1].isspace() and not line.startswith("-"):
                break

            if line.startswith("-"):
                listed.append(_unquote(line[1:]))
                continue

            # Parse "id: label"
            if ":" not in line:
                continue
            left, right = line.split(":", 1)
            left = left.strip()
            if not left.isdigit():
                continue
            mapped[int(left)] = _unquote(right)

    if listed and mapped:
        raise ValueError(f"Mixed list and mapping forms in names block: {path}")
    if listed:
        return listed
    if not mapped:
        return []
    return [mapped.get(i, unknown_label(i)) for i in range(max(mapped) + 1)]


def _unquote(value: str) -> str:
    return value.strip().strip("'").strip('"')
