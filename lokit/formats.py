"""Lookup of format adapters by configured type name or file extension."""
import os
from typing import Dict, Type

from lokit.adapters import FormatAdapter
from lokit.android_resources import AndroidAdapter
from lokit.errors import ConfigurationError
from lokit.i18next_resources import I18nextAdapter
from lokit.markdown_resources import MarkdownAdapter
from lokit.properties_parser import PropertiesAdapter
from lokit.yaml_resources import YamlAdapter

# PO/POT files keep polib's entry model and are handled by po_resources.
GETTEXT_TYPE = "gettext"

ADAPTERS: Dict[str, Type[FormatAdapter]] = {
    adapter.type_name: adapter
    for adapter in (PropertiesAdapter, AndroidAdapter, YamlAdapter, I18nextAdapter, MarkdownAdapter)
}

SUPPORTED_TYPES = sorted(list(ADAPTERS) + [GETTEXT_TYPE])


def get_adapter(type_name: str) -> FormatAdapter:
    """
    Return an adapter instance for a configured target type.

    Raises:
        ConfigurationError: If the type is unknown.
    """
    adapter_cls = ADAPTERS.get(type_name.lower())
    if adapter_cls is None:
        raise ConfigurationError(
            f"Unknown target type '{type_name}'. Supported types: {', '.join(SUPPORTED_TYPES)}"
        )
    return adapter_cls()


def adapter_for_path(file_path: str) -> FormatAdapter:
    """Pick an adapter from a file's extension."""
    extension = os.path.splitext(file_path)[1].lower()
    for adapter_cls in ADAPTERS.values():
        if extension in adapter_cls.extensions:
            return adapter_cls()
    raise ConfigurationError(f"No adapter handles files with extension '{extension}' ({file_path})")
