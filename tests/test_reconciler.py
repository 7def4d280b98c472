import pytest

from netgateway.api import (
    CONDITION_TRUE,
    CONDITION_UNKNOWN,
    INGRESS_CLASS_ANNOTATION_KEY,
    INGRESS_CONDITION_LOAD_BALANCER_READY,
    INGRESS_CONDITION_NETWORK_CONFIGURED,
    INGRESS_CONDITION_READY,
    Condition,
    GatewayReference,
    HTTPIngressPath,
    HTTPOption,
    HTTPRoute,
    Ingress,
    IngressBackendSplit,
    IngressRule,
    IngressSpec,
    IngressVisibility,
    LoadBalancerIngressStatus,
    RouteGatewayStatus,
)
from netgateway.config import Config, Gateway, GatewayConfig, NamespacedName, to_context
from netgateway.reconciler import (
    GATEWAY_API_INGRESS_CLASS_NAME,
    Event,
    NotFoundError,
    ReconcileError,
    Reconciler,
    ingress_class_filter,
    is_gateway_admitted,
    is_http_route_ready,
)
from netgateway.resources import make_http_route

PUBLIC_SVC = "istio-gateway.istio-system.svc.cluster.local"
PRIVATE_SVC = "knative-local-gateway.istio-system.svc.cluster.local"


def default_config():
    return Config(
        network={},
        gateway=Gateway(
            {
                IngressVisibility.EXTERNAL_IP: GatewayConfig(
                    service=NamespacedName("istio-system", "istio-gateway"),
                    gateway=NamespacedName("istio-system", "istio-gateway"),
                ),
                IngressVisibility.CLUSTER_LOCAL: GatewayConfig(
                    service=NamespacedName("istio-system", "knative-local-gateway"),
                    gateway=NamespacedName("istio-system", "knative-local-gateway"),
                ),
            }
        ),
    )


@pytest.fixture
def ctx():
    return to_context({}, default_config())


def basic_ingress():
    return Ingress(
        name="name",
        namespace="ns",
        annotations={INGRESS_CLASS_ANNOTATION_KEY: GATEWAY_API_INGRESS_CLASS_NAME},
        spec=IngressSpec(
            http_option=HTTPOption.ENABLED,
            rules=[
                IngressRule(
                    hosts=["example.com"],
                    visibility=IngressVisibility.EXTERNAL_IP,
                    paths=[
                        HTTPIngressPath(
                            splits=[
                                IngressBackendSplit(
                                    service_name="goo",
                                    service_port=123,
                                    service_namespace="ns",
                                    percent=100,
                                )
                            ]
                        )
                    ],
                )
            ],
        ),
    )


class FakeRouteClient:
    def __init__(self, routes=(), get_error=None, create_error=None, update_error=None):
        self.routes = {(r.namespace, r.name): r for r in routes}
        self.created = []
        self.updated = []
        self.get_error = get_error
        self.create_error = create_error
        self.update_error = update_error

    def get(self, namespace, name):
        if self.get_error is not None:
            raise self.get_error
        try:
            return self.routes[(namespace, name)]
        except KeyError:
            raise NotFoundError(name) from None

    def create(self, route):
        if self.create_error is not None:
            raise self.create_error
        self.created.append(route)
        self.routes[(route.namespace, route.name)] = route
        return route

    def update(self, route):
        if self.update_error is not None:
            raise self.update_error
        self.updated.append(route)
        self.routes[(route.namespace, route.name)] = route
        return route


class FakeStatusManager:
    def __init__(self, ready=True, error=None):
        self.ready = ready
        self.error = error
        self.seen = []

    def is_ready(self, ctx, ing):
        self.seen.append(ing)
        if self.error is not None:
            raise self.error
        return self.ready


def expected_route(ctx, ing):
    return make_http_route(ctx, ing, ing.spec.rules[0])


def test_first_reconcile_creates_route_and_marks_load_balancer(ctx):
    ing = basic_ingress()
    client = FakeRouteClient()
    reconciler = Reconciler(client, FakeStatusManager(ready=True))

    reconciler.reconcile_kind(ctx, ing)

    assert client.created == [expected_route(ctx, basic_ingress())]
    assert client.updated == []
    assert reconciler.events == [Event("Normal", "Created", 'Created HTTPRoute "example.com"')]
    lb = ing.status.get_condition(INGRESS_CONDITION_LOAD_BALANCER_READY)
    assert lb.status == CONDITION_TRUE
    assert ing.status.public_load_balancer == [LoadBalancerIngressStatus(domain_internal=PUBLIC_SVC)]
    assert ing.status.private_load_balancer == [LoadBalancerIngressStatus(domain_internal=PRIVATE_SVC)]


def test_unadmitted_route_leaves_network_unconfigured(ctx):
    ing = basic_ingress()
    reconciler = Reconciler(FakeRouteClient(), FakeStatusManager(ready=True))

    reconciler.reconcile_kind(ctx, ing)

    network = ing.status.get_condition(INGRESS_CONDITION_NETWORK_CONFIGURED)
    assert network.status == CONDITION_UNKNOWN
    assert ing.status.is_ready() is False


def test_reconcile_existing_identical_route_changes_nothing(ctx):
    existing = expected_route(ctx, basic_ingress())
    client = FakeRouteClient([existing])
    reconciler = Reconciler(client, FakeStatusManager(ready=True))

    reconciler.reconcile_kind(ctx, basic_ingress())

    assert client.created == []
    assert client.updated == []
    assert reconciler.events == []


def test_admitted_route_and_ready_probe_make_ingress_ready(ctx):
    existing = expected_route(ctx, basic_ingress())
    existing.gateway_statuses = [
        RouteGatewayStatus(
            GatewayReference("istio-system", "istio-gateway"),
            [Condition("Admitted", CONDITION_TRUE)],
        )
    ]
    ing = basic_ingress()
    reconciler = Reconciler(FakeRouteClient([existing]), FakeStatusManager(ready=True))

    reconciler.reconcile_kind(ctx, ing)

    assert ing.status.get_condition(INGRESS_CONDITION_NETWORK_CONFIGURED).status == CONDITION_TRUE
    assert ing.status.is_ready() is True


def test_changed_labels_trigger_update(ctx):
    existing = expected_route(ctx, basic_ingress())
    existing.labels = {"stale": "label"}
    client = FakeRouteClient([existing])
    reconciler = Reconciler(client, FakeStatusManager(ready=True))

    reconciler.reconcile_kind(ctx, basic_ingress())

    desired = expected_route(ctx, basic_ingress())
    assert len(client.updated) == 1
    assert client.updated[0].labels == desired.labels
    assert client.updated[0].spec == desired.spec
    assert existing.labels == {"stale": "label"}


def test_prober_not_ready_marks_load_balancer_not_ready(ctx):
    ing = basic_ingress()
    client = FakeRouteClient()
    reconciler = Reconciler(client, FakeStatusManager(ready=False))

    reconciler.reconcile_kind(ctx, ing)

    lb = ing.status.get_condition(INGRESS_CONDITION_LOAD_BALANCER_READY)
    assert lb.status == CONDITION_UNKNOWN
    assert lb.reason == "Uninitialized"
    assert ing.status.public_load_balancer is None
    assert len(client.created) == 1


def test_probe_error_raises_and_marks_not_reconciled(ctx):
    ing = basic_ingress()
    client = FakeRouteClient()
    reconciler = Reconciler(client, FakeStatusManager(error=RuntimeError("this is the error")))

    with pytest.raises(ReconcileError, match="^failed to probe Ingress: this is the error$"):
        reconciler.reconcile_kind(ctx, ing)

    ready = ing.status.get_condition(INGRESS_CONDITION_READY)
    assert ready.status == CONDITION_UNKNOWN
    assert ready.reason == "ReconcileIngressFailed"
    assert ready.message == "Ingress reconciliation failed"
    assert reconciler.events == [Event("Normal", "Created", 'Created HTTPRoute "example.com"')]
    assert client.created == [expected_route(ctx, basic_ingress())]


def test_status_manager_sees_ingress_before_conditions(ctx):
    ing = basic_ingress()
    manager = FakeStatusManager(ready=True)
    Reconciler(FakeRouteClient(), manager).reconcile_kind(ctx, ing)

    assert len(manager.seen) == 1
    assert manager.seen[0].status.conditions == []
    assert ing.status.conditions != []


def test_create_failure_records_warning(ctx):
    ing = basic_ingress()
    reconciler = Reconciler(
        FakeRouteClient(create_error=RuntimeError("boom")), FakeStatusManager()
    )

    with pytest.raises(ReconcileError, match="^failed to create HTTPRoute: boom$"):
        reconciler.reconcile_kind(ctx, ing)

    assert reconciler.events == [
        Event("Warning", "CreationFailed", "Failed to create HTTPRoute: boom")
    ]
    assert ing.status.get_condition(INGRESS_CONDITION_READY).reason == "ReconcileIngressFailed"


def test_update_failure_records_warning(ctx):
    existing = expected_route(ctx, basic_ingress())
    existing.annotations = {"old": "value"}
    client = FakeRouteClient([existing], update_error=RuntimeError("nope"))
    reconciler = Reconciler(client, FakeStatusManager())

    with pytest.raises(ReconcileError, match="^failed to update HTTPRoute: nope$"):
        reconciler.reconcile_http_route(ctx, basic_ingress(), basic_ingress().spec.rules[0])

    assert reconciler.events == [Event("Warning", "UpdateFailed", "Failed to update HTTPRoute: nope")]


def test_get_error_propagates(ctx):
    ing = basic_ingress()
    reconciler = Reconciler(
        FakeRouteClient(get_error=ConnectionError("down")), FakeStatusManager()
    )

    with pytest.raises(ConnectionError, match="down"):
        reconciler.reconcile_kind(ctx, ing)

    assert ing.status.get_condition(INGRESS_CONDITION_READY).reason == "ReconcileIngressFailed"
    assert reconciler.events == []


def test_is_http_route_ready_without_statuses():
    assert is_http_route_ready(HTTPRoute(name="r", namespace="ns")) is False


def test_is_http_route_ready_requires_all_admitted():
    ref = GatewayReference("istio-system", "gw")
    admitted = RouteGatewayStatus(ref, [Condition("Admitted", "True")])
    rejected = RouteGatewayStatus(ref, [Condition("Admitted", "False")])
    route = HTTPRoute(name="r", namespace="ns", gateway_statuses=[admitted, rejected])
    assert is_http_route_ready(route) is False
    route.gateway_statuses = [admitted, admitted]
    assert is_http_route_ready(route) is True


def test_is_gateway_admitted():
    ref = GatewayReference("istio-system", "gw")
    assert is_gateway_admitted(RouteGatewayStatus(ref)) is False
    assert is_gateway_admitted(RouteGatewayStatus(ref, [Condition("Other", "True")])) is False
    first_wins = RouteGatewayStatus(
        ref, [Condition("Admitted", "False"), Condition("Admitted", "True")]
    )
    assert is_gateway_admitted(first_wins) is False
    assert is_gateway_admitted(RouteGatewayStatus(ref, [Condition("Admitted", "True")])) is True


@pytest.mark.parametrize(
    "annotations, expected",
    [
        ({INGRESS_CLASS_ANNOTATION_KEY: "fake-controller"}, False),
        ({INGRESS_CLASS_ANNOTATION_KEY: GATEWAY_API_INGRESS_CLASS_NAME}, True),
        ({}, False),
        (None, False),
    ],
)
def test_ingress_class_filter(annotations, expected):
    assert ingress_class_filter(annotations) is expected