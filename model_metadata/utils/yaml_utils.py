"""YAML reading and writing for persisted metadata documents."""
import logging
import os
from typing import Any

import yaml

logger = logging.getLogger(__name__)


class QuotedString(str):
    """A string that is always emitted double-quoted."""


class MetadataDumper(yaml.SafeDumper):
    """SafeDumper that keeps key order and indents block sequences."""

    def increase_indent(self, flow=False, indentless=False):
        return super().increase_indent(flow, False)


def _represent_quoted(dumper: yaml.SafeDumper, data: QuotedString):
    return dumper.represent_scalar("tag:yaml.org,2002:str", str(data), style='"')


def _represent_multiline(dumper: yaml.SafeDumper, data: str):
    if "\n" in data:
        return dumper.represent_scalar("tag:yaml.org,2002:str", data, style="|")
    return dumper.represent_scalar("tag:yaml.org,2002:str", data)


MetadataDumper.add_representer(QuotedString, _represent_quoted)
MetadataDumper.add_representer(str, _represent_multiline)


def dump_yaml(data: Any) -> str:
    return yaml.dump(
        data,
        Dumper=MetadataDumper,
        sort_keys=False,
        allow_unicode=True,
        default_flow_style=False,
        width=4096,
    )


def write_yaml(path: str, data: Any) -> None:
    """Write ``data`` to ``path``, creating parent directories."""
    parent = os.path.dirname(path)
    if parent:
        os.makedirs(parent, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        f.write(dump_yaml(data))
    logger.debug(f"Wrote {path}")


def load_yaml(path: str) -> Any:
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f)
