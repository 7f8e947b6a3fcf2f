"""Monitoring: metrics-server, kube-prometheus-stack and a podinfo sample app."""

from __future__ import annotations

from stackgraph.engine.outputs import Output
from stackgraph.models.resources import HelmReleaseSpec, NamespaceSpec, Ref, resource
from stackgraph.settings import StackSettings
from stackgraph.stacks.base import Stack

DEFAULT_GRAFANA_PASSWORD = "workshop-admin"


def _resources(memory_request: str, cpu_request: str, memory_limit: str, cpu_limit: str) -> dict[str, dict[str, str]]:
    return {
        "requests": {"memory": memory_request, "cpu": cpu_request},
        "limits": {"memory": memory_limit, "cpu": cpu_limit},
    }


def build(settings: StackSettings) -> Stack:
    grafana_password = settings.get_secret("grafanaAdminPassword", DEFAULT_GRAFANA_PASSWORD)

    monitoring_ns = resource("monitoring-ns", NamespaceSpec(namespace="monitoring"))
    apps_ns = resource("apps-ns", NamespaceSpec(namespace="apps"))

    # Needed for kubectl top and HPAs
    metrics_server = resource(
        "metrics-server",
        HelmReleaseSpec(
            chart="metrics-server",
            repository="https://kubernetes-sigs.github.io/metrics-server/",
            namespace="kube-system",
            version="3.12.2",
            values={"args": ["--kubelet-insecure-tls"]},
        ),
    )

    prometheus_stack = resource(
        "kube-prometheus-stack",
        HelmReleaseSpec(
            chart="kube-prometheus-stack",
            repository="https://prometheus-community.github.io/helm-charts",
            namespace=Ref("monitoring-ns", "name"),
            version="66.3.1",
            values={
                "grafana": {
                    "enabled": True,
                    "adminPassword": grafana_password,
                    "service": {"type": "LoadBalancer", "port": 80},
                    "grafana.ini": {"server": {"root_url": "%(protocol)s://%(domain)s/"}},
                },
                "prometheus": {
                    "prometheusSpec": {
                        "retention": "24h",
                        "resources": _resources("512Mi", "250m", "1Gi", "500m"),
                        # Select ServiceMonitors/PodMonitors from every namespace
                        "serviceMonitorSelectorNilUsesHelmValues": False,
                        "podMonitorSelectorNilUsesHelmValues": False,
                    },
                },
                "alertmanager": {
                    "enabled": True,
                    "alertmanagerSpec": {"resources": _resources("64Mi", "50m", "128Mi", "100m")},
                },
                "kubeEtcd": {"enabled": False},
                "kubeControllerManager": {"enabled": False},
                "kubeScheduler": {"enabled": False},
                "kubeProxy": {"enabled": False},
            },
        ),
    )

    # ServiceMonitor CRDs come from the Prometheus stack
    podinfo = resource(
        "podinfo",
        HelmReleaseSpec(
            chart="podinfo",
            repository="https://stefanprodan.github.io/podinfo",
            namespace=Ref("apps-ns", "name"),
            version="6.7.1",
            values={
                "replicaCount": 2,
                "resources": _resources("64Mi", "100m", "128Mi", "200m"),
                "service": {"type": "ClusterIP"},
                "serviceMonitor": {"enabled": True, "interval": "15s"},
            },
        ),
        depends_on=("kube-prometheus-stack",),
    )

    return Stack(
        name="monitoring",
        description="Metrics server, Prometheus/Grafana and the podinfo sample application",
        resources=[monitoring_ns, apps_ns, metrics_server, prometheus_stack, podinfo],
        outputs=[
            Output("monitoringNamespace", Ref("monitoring-ns", "name")),
            Output("appsNamespace", Ref("apps-ns", "name")),
            Output("metricsServerStatus", Ref("metrics-server", "status")),
            Output("prometheusStackStatus", Ref("kube-prometheus-stack", "status")),
            Output("podinfoStatus", Ref("podinfo", "status")),
        ],
    )
