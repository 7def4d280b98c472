"""Resource model for Knative ingresses and Gateway API HTTP routes."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

INGRESS_API_VERSION = "networking.internal.knative.dev/v1alpha1"
INGRESS_KIND = "Ingress"

INGRESS_CLASS_ANNOTATION_KEY = "networking.knative.dev/ingress.class"
VISIBILITY_LABEL_KEY = "networking.knative.dev/visibility"
INGRESS_LABEL_KEY = "networking.internal.knative.dev/ingress"
LAST_APPLIED_CONFIG_ANNOTATION = "kubectl.kubernetes.io/last-applied-configuration"

CONDITION_TRUE = "True"
CONDITION_FALSE = "False"
CONDITION_UNKNOWN = "Unknown"

INGRESS_CONDITION_READY = "Ready"
INGRESS_CONDITION_LOAD_BALANCER_READY = "LoadBalancerReady"
INGRESS_CONDITION_NETWORK_CONFIGURED = "NetworkConfigured"

_DEPENDENT_CONDITIONS = (
    INGRESS_CONDITION_LOAD_BALANCER_READY,
    INGRESS_CONDITION_NETWORK_CONFIGURED,
)

FILTER_REQUEST_HEADER_MODIFIER = "RequestHeaderModifier"
PATH_MATCH_PREFIX = "Prefix"
HEADER_MATCH_EXACT = "Exact"
GATEWAY_ALLOW_FROM_LIST = "FromList"
GATEWAY_ALLOW_ALL = "All"
CONDITION_ROUTE_ADMITTED = "Admitted"


class IngressVisibility(str, Enum):
    """Where an ingress rule is reachable from."""

    EXTERNAL_IP = "ExternalIP"
    CLUSTER_LOCAL = "ClusterLocal"


class HTTPOption(str, Enum):
    """How plain HTTP traffic is handled."""

    ENABLED = "Enabled"
    REDIRECTED = "Redirected"


@dataclass
class HeaderMatch:
    exact: str = ""


@dataclass
class IngressBackendSplit:
    service_name: str
    service_port: int
    service_namespace: str = ""
    percent: int = 0
    append_headers: dict[str, str] | None = None


@dataclass
class HTTPIngressPath:
    splits: list[IngressBackendSplit] = field(default_factory=list)
    path: str = ""
    headers: dict[str, HeaderMatch] | None = None
    append_headers: dict[str, str] | None = None
    rewrite_host: str = ""


@dataclass
class IngressRule:
    hosts: list[str] = field(default_factory=list)
    visibility: IngressVisibility = IngressVisibility.EXTERNAL_IP
    paths: list[HTTPIngressPath] = field(default_factory=list)


@dataclass
class IngressSpec:
    rules: list[IngressRule] = field(default_factory=list)
    http_option: HTTPOption = HTTPOption.ENABLED


@dataclass(frozen=True)
class Condition:
    type: str
    status: str
    reason: str = ""
    message: str = ""


@dataclass
class LoadBalancerIngressStatus:
    ip: str = ""
    domain: str = ""
    domain_internal: str = ""
    mesh_only: bool = False


@dataclass
class IngressStatus:
    """Ingress status whose Ready condition follows its dependent conditions."""

    conditions: list[Condition] = field(default_factory=list)
    public_load_balancer: list[LoadBalancerIngressStatus] | None = None
    private_load_balancer: list[LoadBalancerIngressStatus] | None = None

    def get_condition(self, condition_type):
        """Return the condition of the given type, or None."""
        return next((c for c in self.conditions if c.type == condition_type), None)

    def is_ready(self):
        ready = self.get_condition(INGRESS_CONDITION_READY)
        return ready is not None and ready.status == CONDITION_TRUE

    def initialize_conditions(self):
        """Add any missing conditions, as Unknown unless Ready is already True."""
        ready = self.get_condition(INGRESS_CONDITION_READY)
        if ready is None:
            ready = Condition(INGRESS_CONDITION_READY, CONDITION_UNKNOWN)
            self._set(ready)
        status = CONDITION_TRUE if ready.status == CONDITION_TRUE else CONDITION_UNKNOWN
        for dependent in _DEPENDENT_CONDITIONS:
            if self.get_condition(dependent) is None:
                self._set(Condition(dependent, status))

    def mark_network_configured(self):
        self._mark_true(INGRESS_CONDITION_NETWORK_CONFIGURED)

    def mark_ingress_not_ready(self, reason, message):
        self._mark_unknown(INGRESS_CONDITION_READY, reason, message)

    def mark_load_balancer_ready(self, public_lbs, private_lbs):
        self.public_load_balancer = list(public_lbs)
        self.private_load_balancer = list(private_lbs)
        self._mark_true(INGRESS_CONDITION_LOAD_BALANCER_READY)

    def mark_load_balancer_not_ready(self):
        self._mark_unknown(
            INGRESS_CONDITION_LOAD_BALANCER_READY,
            "Uninitialized",
            "Waiting for load balancer to be ready",
        )

    def _set(self, condition):
        others = [c for c in self.conditions if c.type != condition.type]
        self.conditions = sorted([*others, condition], key=lambda c: c.type)

    def _status_of(self, condition_type):
        condition = self.get_condition(condition_type)
        return condition.status if condition is not None else None

    def _mark_true(self, condition_type):
        self._set(Condition(condition_type, CONDITION_TRUE))
        if all(self._status_of(d) == CONDITION_TRUE for d in _DEPENDENT_CONDITIONS):
            self._set(Condition(INGRESS_CONDITION_READY, CONDITION_TRUE))

    def _mark_false(self, condition_type, reason, message):
        self._set(Condition(condition_type, CONDITION_FALSE, reason, message))
        if condition_type in _DEPENDENT_CONDITIONS:
            self._set(Condition(INGRESS_CONDITION_READY, CONDITION_FALSE, reason, message))

    def _mark_unknown(self, condition_type, reason, message):
        self._set(Condition(condition_type, CONDITION_UNKNOWN, reason, message))
        if any(self._status_of(d) == CONDITION_FALSE for d in _DEPENDENT_CONDITIONS):
            # A failed dependent outranks an unknown one.
            if self._status_of(INGRESS_CONDITION_READY) != CONDITION_FALSE:
                self._mark_false(INGRESS_CONDITION_READY, reason, message)
            return
        if condition_type in _DEPENDENT_CONDITIONS:
            self._set(Condition(INGRESS_CONDITION_READY, CONDITION_UNKNOWN, reason, message))


@dataclass(frozen=True)
class OwnerReference:
    api_version: str
    kind: str
    name: str
    uid: str
    controller: bool = True
    block_owner_deletion: bool = True


@dataclass
class Ingress:
    name: str
    namespace: str
    uid: str = ""
    labels: dict[str, str] | None = None
    annotations: dict[str, str] | None = None
    spec: IngressSpec = field(default_factory=IngressSpec)
    status: IngressStatus = field(default_factory=IngressStatus)
    deletion_timestamp: datetime | None = None

    def controller_ref(self):
        """Return an owner reference that marks this ingress as controller."""
        return OwnerReference(
            api_version=INGRESS_API_VERSION,
            kind=INGRESS_KIND,
            name=self.name,
            uid=self.uid,
        )

    def deep_copy(self):
        return copy.deepcopy(self)


@dataclass
class HTTPRouteFilter:
    type: str = FILTER_REQUEST_HEADER_MODIFIER
    headers_to_set: dict[str, str] | None = None


@dataclass
class HTTPRouteForwardTo:
    service_name: str | None = None
    port: int | None = None
    weight: int | None = None
    filters: list[HTTPRouteFilter] = field(default_factory=list)


@dataclass
class HTTPPathMatch:
    type: str = PATH_MATCH_PREFIX
    value: str = "/"


@dataclass
class HTTPHeaderMatch:
    type: str = HEADER_MATCH_EXACT
    values: dict[str, str] = field(default_factory=dict)


@dataclass
class HTTPRouteMatch:
    path: HTTPPathMatch | None = None
    headers: HTTPHeaderMatch | None = None


@dataclass
class HTTPRouteRule:
    forward_to: list[HTTPRouteForwardTo] = field(default_factory=list)
    filters: list[HTTPRouteFilter] | None = None
    matches: list[HTTPRouteMatch] = field(default_factory=list)


@dataclass(frozen=True)
class GatewayReference:
    namespace: str
    name: str


@dataclass
class RouteGateways:
    allow: str = GATEWAY_ALLOW_FROM_LIST
    gateway_refs: list[GatewayReference] = field(default_factory=list)


@dataclass
class RouteGatewayStatus:
    gateway_ref: GatewayReference
    conditions: list[Condition] = field(default_factory=list)


@dataclass
class HTTPRouteSpec:
    hostnames: list[str] = field(default_factory=list)
    rules: list[HTTPRouteRule] = field(default_factory=list)
    gateways: RouteGateways | None = None


@dataclass
class HTTPRoute:
    name: str
    namespace: str
    labels: dict[str, str] | None = None
    annotations: dict[str, str] | None = None
    owner_references: list[OwnerReference] = field(default_factory=list)
    spec: HTTPRouteSpec = field(default_factory=HTTPRouteSpec)
    gateway_statuses: list[RouteGatewayStatus] | None = None

    def deep_copy(self):
        return copy.deepcopy(self)