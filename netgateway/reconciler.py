"""Reconciles Knative ingresses into Gateway API HTTP routes."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .api import (
    CONDITION_ROUTE_ADMITTED,
    CONDITION_TRUE,
    INGRESS_CLASS_ANNOTATION_KEY,
    IngressVisibility,
    LoadBalancerIngressStatus,
)
from .config import from_context
from .resources import longest_host, make_http_route

GATEWAY_API_INGRESS_CLASS_NAME = "gateway-api.ingress.networking.knative.dev"

NOT_RECONCILED_REASON = "ReconcileIngressFailed"
NOT_RECONCILED_MESSAGE = "Ingress reconciliation failed"

ROUTE_NOT_READY_REASON = "HTTPRouteNotReady"
ROUTE_NOT_READY_MESSAGE = "Waiting for HTTPRoute becomes Ready."

EVENT_TYPE_NORMAL = "Normal"
EVENT_TYPE_WARNING = "Warning"

CLUSTER_DOMAIN = "cluster.local"

_logger = logging.getLogger(__name__)


class NotFoundError(LookupError):
    """Raised by a route client when the requested route does not exist."""


class ReconcileError(RuntimeError):
    """Raised when an ingress could not be reconciled."""


@dataclass(frozen=True)
class Event:
    type: str
    reason: str
    message: str


def _service_hostname(name, namespace):
    return f"{name}.{namespace}.svc.{CLUSTER_DOMAIN}"


def is_gateway_admitted(gateway_status):
    """Return whether the first Admitted condition of a gateway status is True."""
    for condition in gateway_status.conditions:
        if condition.type == CONDITION_ROUTE_ADMITTED:
            return condition.status == CONDITION_TRUE
    return False


def is_http_route_ready(route):
    """Return whether every gateway of the route has admitted it."""
    if route.gateway_statuses is None:
        return False
    return all(is_gateway_admitted(status) for status in route.gateway_statuses)


def ingress_class_filter(annotations):
    """Return whether an object's annotations select this ingress class."""
    return (annotations or {}).get(INGRESS_CLASS_ANNOTATION_KEY) == GATEWAY_API_INGRESS_CLASS_NAME


def _same_map(left, right):
    return (left or {}) == (right or {})


class Reconciler:
    """Keeps HTTP routes in line with ingresses and updates ingress status.

    ``route_client`` provides ``get(namespace, name)`` (raising NotFoundError
    when missing), ``create(route)`` and ``update(route)``; the last two return
    the stored route. ``status_manager`` provides ``is_ready(ctx, ingress)``.
    Recorded events are kept in ``events``.
    """

    def __init__(self, route_client, status_manager, logger=None):
        self.route_client = route_client
        self.status_manager = status_manager
        self.logger = logger or _logger
        self.events = []

    def _record(self, event_type, reason, message):
        self.events.append(Event(event_type, reason, message))

    def reconcile_kind(self, ctx, ing):
        """Reconcile one ingress; on failure mark it not ready and re-raise."""
        try:
            self._reconcile_ingress(ctx, ing)
        except Exception:
            ing.status.mark_ingress_not_ready(NOT_RECONCILED_REASON, NOT_RECONCILED_MESSAGE)
            raise

    def _reconcile_ingress(self, ctx, ing):
        before = ing.deep_copy()
        ing.status.initialize_conditions()

        self.logger.info("Reconciling ingress: %s/%s", ing.namespace, ing.name)

        for rule in ing.spec.rules:
            route = self.reconcile_http_route(ctx, ing, rule)
            if is_http_route_ready(route):
                ing.status.mark_network_configured()
            else:
                ing.status.mark_ingress_not_ready(ROUTE_NOT_READY_REASON, ROUTE_NOT_READY_MESSAGE)
            self.logger.info("HTTPRoute successfully synced %s/%s", route.namespace, route.name)

        try:
            ready = self.status_manager.is_ready(ctx, before)
        except Exception as exc:
            raise ReconcileError(f"failed to probe Ingress: {exc}") from exc

        if not ready:
            ing.status.mark_load_balancer_not_ready()
            return

        gateways = from_context(ctx).gateway.gateways
        public = gateways[IngressVisibility.EXTERNAL_IP].service
        private = gateways[IngressVisibility.CLUSTER_LOCAL].service
        ing.status.mark_load_balancer_ready(
            [LoadBalancerIngressStatus(domain_internal=_service_hostname(public.name, public.namespace))],
            [LoadBalancerIngressStatus(domain_internal=_service_hostname(private.name, private.namespace))],
        )

    def reconcile_http_route(self, ctx, ing, rule):
        """Create or update the HTTP route of one rule and return it."""
        try:
            existing = self.route_client.get(ing.namespace, longest_host(rule.hosts))
        except NotFoundError:
            existing = None

        desired = make_http_route(ctx, ing, rule)

        if existing is None:
            try:
                created = self.route_client.create(desired)
            except Exception as exc:
                self._record(EVENT_TYPE_WARNING, "CreationFailed", f"Failed to create HTTPRoute: {exc}")
                raise ReconcileError(f"failed to create HTTPRoute: {exc}") from exc
            self._record(EVENT_TYPE_NORMAL, "Created", f'Created HTTPRoute "{created.name}"')
            return created

        if (
            existing.spec == desired.spec
            and _same_map(existing.annotations, desired.annotations)
            and _same_map(existing.labels, desired.labels)
        ):
            return existing

        changed = existing.deep_copy()
        changed.spec = desired.spec
        changed.annotations = desired.annotations
        changed.labels = desired.labels
        try:
            return self.route_client.update(changed)
        except Exception as exc:
            self._record(EVENT_TYPE_WARNING, "UpdateFailed", f"Failed to update HTTPRoute: {exc}")
            raise ReconcileError(f"failed to update HTTPRoute: {exc}") from exc