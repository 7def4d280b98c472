"""Build Gateway API HTTPRoutes from networking Ingress resources and reconcile their status."""

__version__ = "0.1.0"