# netgateway

netgateway turns networking `Ingress` resources into Gateway API
`HTTPRoute` resources and keeps the Ingress status up to date.

## Modules

- `netgateway.api`: the data model as dataclasses. `Ingress` with its
  `IngressSpec`, `IngressRule`, `HTTPIngressPath` and
  `IngressBackendSplit`; `IngressStatus` with its conditions (`Ready`,
  `LoadBalancerReady`, `NetworkConfigured`) and the methods that mark
  them; and `HTTPRoute` with its spec, rules, matches, filters and
  gateway statuses.
- `netgateway.config`: `new_gateway_from_config_map(data)` reads the
  data of the `config-gateway` config map into a `Gateway`, which maps
  each `IngressVisibility` to a `GatewayConfig` (gateway class, gateway
  and service). `to_context`, `from_context` and
  `from_context_or_defaults` put a `Config` into a context mapping and
  take it back out. `Store` keeps the latest parsed config maps.
- `netgateway.resources`: `make_http_route(ctx, ing, rule)` builds the
  desired `HTTPRoute` for one Ingress rule. `longest_host(hosts)` picks
  the route's name, which is the last host in alphabetical order.
- `netgateway.lister`: `GatewayPodTargetLister.list_probe_targets(ctx, ing)`
  returns one `ProbeTarget` per rule. Each target holds the ready pod
  IPs of the gateway service, the pod port, and the root URL of each
  host. The port is 8080 for external rules, 8443 with `https` URLs when
  the HTTP option is `Redirected`, and 8081 for cluster-local rules.
- `netgateway.reconciler`: `Reconciler.reconcile_kind(ctx, ing)` creates
  or updates the HTTPRoute for each rule. It asks a status manager
  whether the Ingress is ready, then marks the load balancer status to
  match.

## Installation

```
pip install netgateway
```

## Configuration

Each visibility is set in the `visibility` key of the gateway config map
data:

```yaml
visibility: |
  ExternalIP:
    class: istio
    gateway: istio-system/knative-gateway
    service: istio-system/istio-ingressgateway
  ClusterLocal:
    class: istio
    gateway: istio-system/knative-local-gateway
    service: istio-system/knative-local-gateway
```

When the `visibility` key is missing, the defaults shown above are used.
When it is present, both `ExternalIP` and `ClusterLocal` must be given,
and each must set `class`. Each must also set `gateway` and `service` as
`namespace/name`. Anything else raises `ConfigError`.

`Store(*callbacks)` parses config maps passed to
`on_config_changed(name, data)`. It accepts `config-gateway` and
`config-network`; an unknown name raises `ConfigError`. If the data does
not parse, the error is logged and the old value is kept. After each
store, every callback is called with the name and the new value.
`load()` returns a copy of both as a `Config`, and raises `ConfigError`
if either has not been loaded yet. `to_context(ctx)` returns a context
that carries that `Config`.

## Building a route

```python
from netgateway.api import HTTPIngressPath, Ingress, IngressBackendSplit, IngressRule, IngressSpec
from netgateway.config import Config, new_gateway_from_config_map, to_context
from netgateway.resources import make_http_route

ctx = to_context({}, Config(gateway=new_gateway_from_config_map({})))
ing = Ingress(
    name="hello",
    namespace="default",
    spec=IngressSpec(rules=[
        IngressRule(
            hosts=["hello.example.com"],
            paths=[HTTPIngressPath(splits=[
                IngressBackendSplit(service_name="hello", service_port=80, percent=100),
            ])],
        ),
    ]),
)
route = make_http_route(ctx, ing, ing.spec.rules[0])
# route.name == "hello.example.com"
# route.spec.gateways.gateway_refs[0].name == "knative-gateway"
```

## Reconciling

`Reconciler(route_client, status_manager)` takes two collaborators:

- a route client with `get(namespace, name)`, which raises
  `NotFoundError` when the route does not exist, and with
  `create(route)` and `update(route)`, which both return the stored
  route;
- a status manager with `is_ready(ctx, ingress)`.

A route is created when it is missing. It is updated when its spec,
labels or annotations differ from the desired route. Events such as
`Created`, `CreationFailed` and `UpdateFailed` are appended to
`Reconciler.events`.

When the status manager reports ready, the load balancer status is set
to `<service>.<namespace>.svc.cluster.local` for the external and the
cluster-local gateway service. If reconciliation fails, the Ingress is
marked not ready with reason `ReconcileIngressFailed` and the error is
raised again. A failure of the status manager comes back as a
`ReconcileError`.

`ingress_class_filter(annotations)` tells whether an object belongs to
the `gateway-api.ingress.networking.knative.dev` ingress class.
`is_http_route_ready(route)` tells whether every gateway has admitted
the route.

## What this package does not do

netgateway does not talk to a cluster. It has no Kubernetes API client,
no informers or watches, no work queue, and no prober that sends
requests to gateway pods. It also provides no command to run. Route
storage, the endpoints used by the lister, and the readiness check are
all supplied by the caller.

## Running the tests

```
pip install -e ".[test]"
pytest
```