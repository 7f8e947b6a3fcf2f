"""kagent: the agent orchestration platform with an OpenAI-compatible LLM provider.

The LLM API key lands in the ``kagent-openai`` Secret first; the kagent
release only references that Secret by name and key.
"""

from __future__ import annotations

from stackgraph.engine.outputs import Output
from stackgraph.models.resources import HelmReleaseSpec, NamespaceSpec, Ref, SecretSpec, resource
from stackgraph.settings import StackSettings
from stackgraph.stacks.base import Stack

KAGENT_VERSION = "0.7.8"
KAGENT_CHART_REPO = "oci://ghcr.io/kagent-dev/kagent/helm"
DEFAULT_LLM_ENDPOINT = "https://inference.do-ai.run/v1"
DEFAULT_LLM_MODEL = "llama3.3-70b-instruct"
API_KEY_FIELD = "OPENAI_API_KEY"


def build(settings: StackSettings) -> Stack:
    llm_api_key = settings.require_secret("llmApiKey")
    llm_endpoint = settings.get("llmEndpoint", DEFAULT_LLM_ENDPOINT)
    llm_model = settings.get("llmModel", DEFAULT_LLM_MODEL)

    namespace = resource("kagent-ns", NamespaceSpec(namespace="kagent"))

    llm_secret = resource(
        "kagent-openai",
        SecretSpec(
            secret_name="kagent-openai",
            namespace=Ref("kagent-ns", "name"),
            string_data={API_KEY_FIELD: llm_api_key},
        ),
    )

    crds = resource(
        "kagent-crds",
        HelmReleaseSpec(
            chart=f"{KAGENT_CHART_REPO}/kagent-crds",
            namespace=Ref("kagent-ns", "name"),
            version=KAGENT_VERSION,
            values={"kmcp": {"enabled": True}},
        ),
    )

    kagent = resource(
        "kagent",
        HelmReleaseSpec(
            chart=f"{KAGENT_CHART_REPO}/kagent",
            namespace=Ref("kagent-ns", "name"),
            version=KAGENT_VERSION,
            values={
                # Agents expect the "kagent-controller" service name
                "fullnameOverride": "kagent",
                "providers": {
                    "default": "openAI",
                    "openAI": {
                        "provider": "OpenAI",
                        "model": llm_model,
                        "apiKeySecretRef": Ref("kagent-openai", "name"),
                        "apiKeySecretKey": API_KEY_FIELD,
                        "config": {
                            "baseUrl": llm_endpoint,
                            # Anthropic models behind OpenAI-compatible endpoints need this
                            "maxTokens": 4096,
                        },
                    },
                },
                "ui": {
                    "enabled": True,
                    "service": {"type": "LoadBalancer", "ports": {"port": 8080}},
                },
                "kmcp": {"enabled": True},
                "agents": {
                    "k8s-agent": {"enabled": True},
                    "promql-agent": {"enabled": True},
                    "observability-agent": {"enabled": True},
                },
                "grafana-mcp": {
                    "fullnameOverride": "kagent-grafana-mcp",
                    "grafana": {"url": "http://kube-prometheus-stack-grafana.monitoring:80"},
                },
            },
        ),
        depends_on=("kagent-crds",),
    )

    return Stack(
        name="kagent",
        description="kagent agent platform wired to an OpenAI-compatible LLM endpoint",
        resources=[namespace, llm_secret, crds, kagent],
        outputs=[
            Output("namespace", Ref("kagent-ns", "name")),
            Output("kagentVersion", KAGENT_VERSION),
            Output("kagentReleaseName", Ref("kagent", "name")),
            Output("kagentReleaseStatus", Ref("kagent", "status")),
        ],
    )
