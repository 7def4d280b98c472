"""Lists the gateway pods and URLs used to probe an ingress."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from urllib.parse import SplitResult

from .api import HTTPOption, IngressVisibility
from .config import NamespacedName, from_context

HTTP_PORT_EXTERNAL = "8080"
HTTP_PORT_INTERNAL = "8081"
HTTPS_PORT_EXTERNAL = "8443"

_logger = logging.getLogger(__name__)


class EndpointsNotFoundError(LookupError):
    """Raised when the endpoints of a gateway service do not exist."""

    def __init__(self, namespace, name):
        super().__init__(f'failed to get endpoints: endpoints "{name}" not found')
        self.namespace = namespace
        self.name = name


class NoGatewayPodsError(RuntimeError):
    """Raised when a gateway service has no ready addresses."""

    def __init__(self):
        super().__init__("no gateway pods available")


@dataclass
class EndpointSubset:
    addresses: list[str] = field(default_factory=list)
    ports: dict[str, int] = field(default_factory=dict)


@dataclass
class Endpoints:
    namespace: str
    name: str
    subsets: list[EndpointSubset] = field(default_factory=list)

    @property
    def key(self):
        return NamespacedName(self.namespace, self.name)


@dataclass
class ProbeTarget:
    pod_ips: frozenset[str]
    pod_port: str
    urls: list[SplitResult] = field(default_factory=list)


def domains_to_url(domains, scheme):
    """Return the root URL of each domain under the given scheme."""
    return [SplitResult(scheme, domain, "/", "", "") for domain in domains]


class GatewayPodTargetLister:
    """Finds probe targets from the endpoints of the gateway services.

    The endpoints lister is a mapping from NamespacedName to Endpoints.
    """

    def __init__(self, endpoints_lister, logger=None):
        self.endpoints_lister = endpoints_lister
        self.logger = logger or _logger

    def list_probe_targets(self, ctx, ing):
        private_ips = self._endpoint_ips(ctx, IngressVisibility.CLUSTER_LOCAL)
        public_ips = self._endpoint_ips(ctx, IngressVisibility.EXTERNAL_IP)
        return [self._target(ing, rule, private_ips, public_ips) for rule in ing.spec.rules]

    def _endpoint_ips(self, ctx, visibility):
        service = from_context(ctx).gateway.gateways[visibility].service
        try:
            endpoints = self.endpoints_lister[service]
        except KeyError:
            raise EndpointsNotFoundError(service.namespace, service.name) from None
        ready = frozenset(
            address for subset in endpoints.subsets for address in subset.addresses
        )
        if not ready:
            raise NoGatewayPodsError()
        self.logger.debug("gateway %s has ready addresses %s", service, sorted(ready))
        return ready

    @staticmethod
    def _target(ing, rule, private_ips, public_ips):
        if rule.visibility != IngressVisibility.EXTERNAL_IP:
            return ProbeTarget(private_ips, HTTP_PORT_INTERNAL, domains_to_url(rule.hosts, "http"))
        if ing.spec.http_option == HTTPOption.REDIRECTED:
            return ProbeTarget(public_ips, HTTPS_PORT_EXTERNAL, domains_to_url(rule.hosts, "https"))
        return ProbeTarget(public_ips, HTTP_PORT_EXTERNAL, domains_to_url(rule.hosts, "http"))


def new_probe_target_lister(endpoints_lister, logger=None):
    return GatewayPodTargetLister(endpoints_lister, logger)