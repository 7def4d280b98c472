"""Gateway configuration parsed from config maps, and a store holding it."""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Mapping
from dataclasses import dataclass, field

import yaml

from .api import IngressVisibility

GATEWAY_CONFIG_NAME = "config-gateway"
NETWORK_CONFIG_NAME = "config-network"

_VISIBILITY_CONFIG_KEY = "visibility"
_DEFAULT_GATEWAY_CLASS = "istio"
_STORE_NAME = "gateway-api"

_logger = logging.getLogger(__name__)


class ConfigError(ValueError):
    """Raised when configuration is missing or malformed."""


@dataclass(frozen=True)
class NamespacedName:
    namespace: str
    name: str

    def __str__(self):
        return f"{self.namespace}/{self.name}"


_DEFAULT_ISTIO_GATEWAY = NamespacedName("istio-system", "knative-gateway")
_DEFAULT_ISTIO_LOCAL_GATEWAY = NamespacedName("istio-system", "knative-local-gateway")
_DEFAULT_LOCAL_GATEWAY_SERVICE = NamespacedName("istio-system", "knative-local-gateway")
_DEFAULT_GATEWAY_SERVICE = NamespacedName("istio-system", "istio-ingressgateway")


@dataclass(frozen=True)
class GatewayConfig:
    gateway_class: str = ""
    gateway: NamespacedName | None = None
    service: NamespacedName | None = None


@dataclass
class Gateway:
    """Gateway settings keyed by ingress visibility."""

    gateways: dict[IngressVisibility, GatewayConfig] = field(default_factory=dict)

    def deep_copy(self):
        return Gateway(dict(self.gateways))


@dataclass
class Config:
    """Configuration for the ingress reconciler."""

    network: dict[str, str] | None = None
    gateway: Gateway | None = None


def _quote(text):
    return json.dumps(text)


def parse_namespaced_name(namespaced_name):
    """Parse a "namespace/name" key; both parts are required."""
    parts = namespaced_name.split("/")
    if len(parts) == 1:
        namespace, name = "", parts[0]
    elif len(parts) == 2:
        namespace, name = parts
    else:
        raise ConfigError(f"unexpected key format: {_quote(namespaced_name)}")
    if not namespace or not name:
        raise ConfigError(f"missing namespace or name in {_quote(namespaced_name)}")
    return NamespacedName(namespace, name)


def _default_gateway():
    return Gateway(
        {
            IngressVisibility.EXTERNAL_IP: GatewayConfig(
                _DEFAULT_GATEWAY_CLASS, _DEFAULT_ISTIO_GATEWAY, _DEFAULT_GATEWAY_SERVICE
            ),
            IngressVisibility.CLUSTER_LOCAL: GatewayConfig(
                _DEFAULT_GATEWAY_CLASS,
                _DEFAULT_ISTIO_LOCAL_GATEWAY,
                _DEFAULT_LOCAL_GATEWAY_SERVICE,
            ),
        }
    )


def _visibility_fields(key, value):
    if value is None:
        value = {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"visibility {_quote(key)} must be a mapping")
    fields = {}
    for name in ("class", "gateway", "service"):
        item = value.get(name)
        if item is None:
            item = ""
        if not isinstance(item, str):
            raise ConfigError(f"visibility {_quote(key)} has a non-string {name}")
        fields[name] = item
    return fields


def _parse_part(key, what, text):
    try:
        return parse_namespaced_name(text)
    except ConfigError as exc:
        raise ConfigError(f"visibility {_quote(key)} failed to parse {what}: {exc}") from exc


def new_gateway_from_config_map(data):
    """Build a Gateway from config map data, falling back to defaults."""
    raw = data.get(_VISIBILITY_CONFIG_KEY)
    if raw is None:
        return _default_gateway()

    try:
        parsed = yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        raise ConfigError(f"invalid {_VISIBILITY_CONFIG_KEY} configuration: {exc}") from exc
    if parsed is None:
        parsed = {}
    if not isinstance(parsed, Mapping):
        raise ConfigError(f"{_VISIBILITY_CONFIG_KEY} configuration must be a mapping")
    entries = {str(key): value for key, value in parsed.items()}

    for visibility in (IngressVisibility.CLUSTER_LOCAL, IngressVisibility.EXTERNAL_IP):
        if visibility.value not in entries:
            raise ConfigError(f"visibility {_quote(visibility.value)} must not be empty")

    gateways = {}
    for key, value in entries.items():
        try:
            visibility = IngressVisibility(key)
        except ValueError:
            raise ConfigError(f"unrecognized visibility: {_quote(key)}") from None
        fields = _visibility_fields(key, value)
        if not fields["class"]:
            raise ConfigError(f"visibility {_quote(key)} must set gatewayclass")
        gateways[visibility] = GatewayConfig(
            gateway_class=fields["class"],
            gateway=_parse_part(key, "gateway", fields["gateway"]),
            service=_parse_part(key, "service", fields["service"]),
        )
    return Gateway(gateways)


def _network_from_config_map(data):
    return dict(data)


_CONFIG_KEY = object()


def to_context(ctx, config):
    """Return a new context mapping that carries the config."""
    return {**(ctx or {}), _CONFIG_KEY: config}


def from_context(ctx):
    """Return the config carried by the context."""
    try:
        return ctx[_CONFIG_KEY]
    except (KeyError, TypeError):
        raise LookupError("no configuration in context") from None


def from_context_or_defaults(ctx):
    """Like from_context, but an empty Config when none is attached."""
    try:
        config = from_context(ctx)
    except LookupError:
        return Config()
    return config if config is not None else Config()


class Store:
    """Holds the latest parsed config maps; callbacks run after each store."""

    def __init__(self, *args):
        self._on_after_store = args
        self._constructors = {
            GATEWAY_CONFIG_NAME: new_gateway_from_config_map,
            NETWORK_CONFIG_NAME: _network_from_config_map,
        }
        self._values = {}
        self._lock = threading.Lock()

    def on_config_changed(self, name, data):
        """Parse and store a changed config map; bad input keeps the old value."""
        try:
            constructor = self._constructors[name]
        except KeyError:
            raise ConfigError(f"{_STORE_NAME}: unknown config map {_quote(name)}") from None
        try:
            value = constructor(data)
        except ConfigError as exc:
            _logger.error("%s: failed to parse config map %s: %s", _STORE_NAME, name, exc)
            return
        with self._lock:
            self._values[name] = value
        for callback in self._on_after_store:
            callback(name, value)

    def load(self):
        """Return a copy of the current configuration."""
        with self._lock:
            values = dict(self._values)
        for name in (GATEWAY_CONFIG_NAME, NETWORK_CONFIG_NAME):
            if name not in values:
                raise ConfigError(f"config map {_quote(name)} has not been loaded")
        return Config(
            network=dict(values[NETWORK_CONFIG_NAME]),
            gateway=values[GATEWAY_CONFIG_NAME].deep_copy(),
        )

    def to_context(self, ctx):
        return to_context(ctx, self.load())