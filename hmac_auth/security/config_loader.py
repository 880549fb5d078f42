"""
Connection Configuration Loader
Reads hmac-config.xml into an immutable ConfigStore

File format:
    <configs>
        <config name="test-pc" protocol="rdp">
            <param name="hostname" value="10.2.3.4"/>
            <param name="port" value="3389"/>
        </config>
    </configs>

Structural problems raise ConfigStoreError so callers can report a server
misconfiguration instead of silently denying access. DTDs and entity
declarations are rejected outright (XML bomb / XXE prevention).
"""
import logging
import os
import threading
from typing import Dict, Optional, Tuple
from xml.etree import ElementTree as ET
from xml.etree.ElementTree import ParseError

from hmac_auth.models.connection import Configuration, ConfigStore

logger = logging.getLogger(__name__)


class ConfigStoreError(Exception):
    """The configuration source is unreadable or structurally invalid"""


def _local_name(tag: str) -> str:
    # Strip any "{namespace}" prefix
    return tag.rsplit("}", 1)[-1]


class _ConfigBuilder:
    """Collects <config>/<param> elements while walking the document"""

    def __init__(self):
        self.configs: Dict[str, Configuration] = {}
        self.current_name: Optional[str] = None
        self.current_protocol: Optional[str] = None
        self.current_params: Dict[str, str] = {}

    def visit(self, element) -> None:
        tag = _local_name(element.tag)

        if tag == "config":
            self._start_config(element)
            for child in element:
                self.visit(child)
            self._end_config()
            return

        if tag == "param":
            self._add_param(element)

        for child in element:
            self.visit(child)

    def _start_config(self, element) -> None:
        if self.current_name is not None:
            raise ConfigStoreError("Configurations cannot be nested.")

        name = element.get("name")
        if not name:
            raise ConfigStoreError("Each configuration must have a name.")

        protocol = element.get("protocol")
        if not protocol:
            raise ConfigStoreError(f"Configuration {name!r} must have a protocol.")

        if name in self.configs:
            raise ConfigStoreError(f"Duplicate configuration name: {name!r}")

        self.current_name = name
        self.current_protocol = protocol
        self.current_params = {}

    def _end_config(self) -> None:
        self.configs[self.current_name] = Configuration(
            protocol=self.current_protocol,
            parameters=self.current_params
        )
        self.current_name = None
        self.current_protocol = None
        self.current_params = {}

    def _add_param(self, element) -> None:
        if self.current_name is None:
            raise ConfigStoreError("Parameter without corresponding configuration.")

        name = element.get("name")
        if not name:
            raise ConfigStoreError(
                f"Parameter in configuration {self.current_name!r} must have a name."
            )
        if name in self.current_params:
            raise ConfigStoreError(
                f"Duplicate parameter {name!r} in configuration {self.current_name!r}"
            )

        self.current_params[name] = element.get("value", "")


def parse_config_xml(xml_content: str) -> ConfigStore:
    """
    Parse configuration XML into a ConfigStore

    Args:
        xml_content: XML document text

    Raises:
        ConfigStoreError: If the document is malformed or structurally invalid

    Returns:
        Store of all configurations in the document
    """
    if "<!DOCTYPE" in xml_content or "<!ENTITY" in xml_content:
        logger.warning("DTD or entity declaration found in connection configuration")
        raise ConfigStoreError("DTD and entity declarations are not allowed")

    try:
        root = ET.fromstring(xml_content)
    except ParseError as e:
        raise ConfigStoreError(f"Invalid XML: {e}") from e

    builder = _ConfigBuilder()
    builder.visit(root)

    return ConfigStore(configurations=builder.configs)


def load_config_file(path: str) -> ConfigStore:
    """
    Read and parse a configuration file

    Raises:
        ConfigStoreError: If the file cannot be read or parsed
    """
    logger.debug(f"Reading configuration file: {path}")

    try:
        with open(path, "r", encoding="utf-8") as f:
            content = f.read()
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigStoreError(f"Error reading configuration file {path}: {e}") from e

    store = parse_config_xml(content)
    logger.debug(f"Loaded {len(store)} connection configuration(s) from {path}")
    return store


class ConfigFileSource:
    """
    Loader that re-reads the configuration file on every call
    """

    def __init__(self, path: str):
        self.path = path

    def __call__(self) -> ConfigStore:
        return load_config_file(self.path)


class CachedConfigSource:
    """
    Loader that reuses the last parsed snapshot until the file changes

    Only the refresh path is locked; returned stores are immutable and can
    be read concurrently.
    """

    def __init__(self, path: str):
        self.path = path
        self._lock = threading.Lock()
        # (file signature, store) replaced as a single reference
        self._cached: Optional[Tuple[Tuple[int, int], ConfigStore]] = None

    def _file_signature(self) -> Tuple[int, int]:
        try:
            stat = os.stat(self.path)
        except OSError as e:
            raise ConfigStoreError(f"Error reading configuration file {self.path}: {e}") from e
        return (stat.st_mtime_ns, stat.st_size)

    def __call__(self) -> ConfigStore:
        file_signature = self._file_signature()

        cached = self._cached
        if cached is not None and cached[0] == file_signature:
            return cached[1]

        with self._lock:
            # Another caller may have refreshed while we waited
            cached = self._cached
            if cached is not None and cached[0] == file_signature:
                return cached[1]

            store = load_config_file(self.path)
            self._cached = (file_signature, store)
            logger.info(f"Connection configuration refreshed from {self.path}")
            return store

    def invalidate(self) -> None:
        with self._lock:
            self._cached = None
