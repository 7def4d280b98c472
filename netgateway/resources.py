"""Building Gateway API HTTP routes from Knative ingress rules."""

from __future__ import annotations

from .api import (
    GATEWAY_ALLOW_FROM_LIST,
    HEADER_MATCH_EXACT,
    LAST_APPLIED_CONFIG_ANNOTATION,
    PATH_MATCH_PREFIX,
    VISIBILITY_LABEL_KEY,
    GatewayReference,
    HTTPHeaderMatch,
    HTTPPathMatch,
    HTTPRoute,
    HTTPRouteFilter,
    HTTPRouteForwardTo,
    HTTPRouteMatch,
    HTTPRouteRule,
    HTTPRouteSpec,
    IngressVisibility,
    RouteGateways,
)
from .config import ConfigError, from_context

_CLUSTER_LOCAL_LABEL_VALUE = "cluster-local"


def _union(*maps):
    """Merge mappings into a new dict; later mappings win, None is skipped."""
    merged = {}
    for mapping in maps:
        if mapping:
            merged.update(mapping)
    return merged


def longest_host(hosts):
    """Return the most specific host: the last one in alphabetical order."""
    if not hosts:
        raise ValueError("no hosts given")
    return max(hosts)


def _gateway_reference(ctx, visibility):
    gateway = from_context(ctx).gateway
    if gateway is None or visibility not in gateway.gateways:
        raise ConfigError(f"no gateway configured for visibility {visibility.value!r}")
    namespaced_name = gateway.gateways[visibility].gateway
    if namespaced_name is None:
        raise ConfigError(f"no gateway configured for visibility {visibility.value!r}")
    return GatewayReference(namespace=namespaced_name.namespace, name=namespaced_name.name)


def _make_rule(path):
    pre_filters = None
    if path.append_headers is not None:
        pre_filters = [HTTPRouteFilter(headers_to_set=dict(path.append_headers))]

    rewrite = None
    if path.rewrite_host:
        rewrite = {"Host": path.rewrite_host, ":Authority": path.rewrite_host}

    forwards = [
        HTTPRouteForwardTo(
            service_name=split.service_name,
            port=split.service_port,
            weight=split.percent,
            filters=[HTTPRouteFilter(headers_to_set=_union(split.append_headers, rewrite))],
        )
        for split in path.splits
    ]

    headers_match = None
    if path.headers is not None:
        headers_match = HTTPHeaderMatch(
            type=HEADER_MATCH_EXACT,
            values={key: match.exact for key, match in path.headers.items()},
        )

    path_match = HTTPPathMatch(type=PATH_MATCH_PREFIX, value=path.path or "/")
    return HTTPRouteRule(
        forward_to=forwards,
        filters=pre_filters,
        matches=[HTTPRouteMatch(path=path_match, headers=headers_match)],
    )


def _make_spec(ctx, rule):
    return HTTPRouteSpec(
        hostnames=sorted(rule.hosts),
        rules=[_make_rule(path) for path in rule.paths],
        gateways=RouteGateways(
            allow=GATEWAY_ALLOW_FROM_LIST,
            gateway_refs=[_gateway_reference(ctx, rule.visibility)],
        ),
    )


def make_http_route(ctx, ing, rule):
    """Create the HTTPRoute that serves one rule of the ingress."""
    visibility = ""
    if rule.visibility == IngressVisibility.CLUSTER_LOCAL:
        visibility = _CLUSTER_LOCAL_LABEL_VALUE

    annotations = {
        key: value
        for key, value in (ing.annotations or {}).items()
        if key != LAST_APPLIED_CONFIG_ANNOTATION
    }
    return HTTPRoute(
        name=longest_host(rule.hosts),
        namespace=ing.namespace,
        labels=_union(ing.labels, {VISIBILITY_LABEL_KEY: visibility}),
        annotations=annotations,
        owner_references=[ing.controller_ref()],
        spec=_make_spec(ctx, rule),
    )