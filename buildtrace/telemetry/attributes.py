"""Attribute enrichment for build spans."""

from typing import Any, Mapping, Optional

from buildtrace.constants import (
    ATTR_IS_CI,
    ATTR_SDK_NAME,
    ATTR_SDK_VERSION,
    ATTR_SERVICE_NAME,
    ATTR_TASK_PATH,
    ATTR_TASK_TYPE,
    SDK_NAME,
    SDK_VERSION,
)


class AttributeEnricher:
    """
    Merges attribute sources into span attribute sets.

    Precedence on key collisions, lowest first:
        builtin (service name, sdk name/version)
        < environment (CI flag, root span only)
        < custom tags (root span only)

    Task spans carry only their builtin task attributes.
    """

    def __init__(
        self,
        service_name: str,
        custom_tags: Optional[Mapping[str, Any]] = None,
        is_ci: bool = False,
    ):
        self.service_name = service_name
        self.custom_tags = dict(custom_tags or {})
        self.is_ci = is_ci

    def builtin_attributes(self) -> dict[str, Any]:
        return {
            ATTR_SERVICE_NAME: self.service_name,
            ATTR_SDK_NAME: SDK_NAME,
            ATTR_SDK_VERSION: SDK_VERSION,
        }

    def resource_attributes(self) -> dict[str, Any]:
        """Attributes describing the producer of every exported batch."""
        attributes = self.builtin_attributes()
        attributes.update(self.custom_tags)
        return attributes

    def root_attributes(self, base: Optional[Mapping[str, Any]] = None) -> dict:
        """Decorate the root span's own attributes with all sources."""
        attributes = dict(base or {})
        attributes.update(self.builtin_attributes())
        attributes[ATTR_IS_CI] = self.is_ci
        attributes.update(self.custom_tags)
        return attributes

    def task_attributes(self, task_path: str, task_type: str) -> dict[str, Any]:
        return {
            ATTR_TASK_PATH: task_path,
            ATTR_TASK_TYPE: task_type,
        }
