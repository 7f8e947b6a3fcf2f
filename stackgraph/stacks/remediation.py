"""Remediation: a Pulumi Neo agent, an incident orchestrator and a broken workload.

Assumes the ``kagent`` and ``apps`` namespaces already exist from the
kagent and monitoring stacks.  ``podinfo-faulty`` requests more memory than a
workshop node has, so its pod stays Pending until an agent fixes it.
"""

from __future__ import annotations

from typing import Any

from stackgraph.engine.outputs import Output
from stackgraph.models.resources import CustomResourceSpec, DeploymentSpec, Ref, SecretSpec, resource
from stackgraph.secrets import interpolate
from stackgraph.settings import StackSettings
from stackgraph.stacks.base import Stack

KAGENT_NAMESPACE = "kagent"
APPS_NAMESPACE = "apps"
KAGENT_API_VERSION = "kagent.dev/v1alpha2"
PULUMI_MCP_URL = "https://mcp.ai.pulumi.com/mcp"
FAULTY_IMAGE = "stefanprodan/podinfo:6.9.4"

PULUMI_AGENT_PROMPT = """\
You are a Pulumi infrastructure expert using Pulumi Neo to fix Kubernetes infrastructure issues.

You have access to Pulumi Neo tools:
- neo-bridge: Launch a Neo task to analyze and fix issues autonomously
- neo-get-tasks: Check status of Neo tasks

When asked to fix an issue, call neo-bridge with a message that includes ALL of these mandatory instructions:

MANDATORY INSTRUCTIONS TO INCLUDE IN EVERY NEO-BRIDGE CALL:
"IMPORTANT CONSTRAINTS:
1. Do NOT run pulumi preview
2. Do NOT run any validation or checks
3. Do NOT ask any questions - proceed with assumptions
4. Do NOT wait for user confirmation
5. Go DIRECTLY to creating the pull request with the fix
6. If you need to choose between options, pick the most reasonable one automatically
7. Skip all interactive prompts and approval steps
8. Create the PR immediately without any preliminary steps

Fix the issue and create a PR now."

After calling neo-bridge, use neo-get-tasks to monitor progress and get the PR link.

IMPORTANT: You must execute completely autonomously. Never ask questions. Never wait for approval. Just fix and report."""

ORCHESTRATOR_PROMPT = """\
You are an incident response orchestrator for Kubernetes infrastructure. When users report issues, \
you coordinate multiple specialist agents to investigate and resolve them.

Your specialist agents:
1. **k8s-agent**: Kubernetes expert for diagnosing pods, deployments, services, events, and cluster state
2. **observability-agent**: Metrics expert for querying Prometheus and analyzing resource utilization
3. **pulumi-agent**: Infrastructure expert for fixing issues in Pulumi code via pull requests

Investigation workflow:
1. Start by asking k8s-agent to check the current state of the problematic resource
2. If resource issues are found (like scheduling problems), ask observability-agent to analyze cluster resources
3. Once root cause is identified, ask pulumi-agent to create a PR with the fix

Always:
- Explain what you're doing at each step
- Summarize findings from each specialist
- Provide clear, actionable recommendations
- When creating fixes, explain what will be changed and why"""

DEMO_INSTRUCTIONS = """
Demo Instructions:
==================
1. Verify the faulty deployment is stuck in Pending:
   kubectl get pods -n {namespace} -l app=podinfo-faulty

2. Open the Kagent dashboard (get IP with: kubectl get svc -n kagent)

3. Select the '{orchestrator}' in the chat interface

4. Send this message:
   "Investigate why podinfo-faulty is not running and fix it"

5. Watch the orchestrator:
   - Delegate to k8s-agent to check pod status
   - Delegate to observability-agent to analyze node resources
   - Delegate to pulumi-agent to create a fix PR

6. Click the Neo task link to approve and create the PR

7. The fix should change memory request from 8Gi to 128Mi
"""


def _secret_header(header: str, key: str) -> dict[str, Any]:
    return {
        "name": header,
        "valueFrom": {"name": Ref("pulumi-access-token", "name"), "key": key, "type": "Secret"},
    }


def _agent_tool(name: str) -> dict[str, Any]:
    return {"type": "Agent", "agent": {"kind": "Agent", "apiGroup": "kagent.dev", "name": name}}


def _faulty_deployment_spec() -> dict[str, Any]:
    labels = {"app": "podinfo-faulty"}
    return {
        "replicas": 1,
        "selector": {"matchLabels": labels},
        "template": {
            "metadata": {"labels": labels},
            "spec": {
                "containers": [
                    {
                        "name": "podinfo",
                        "image": FAULTY_IMAGE,
                        "ports": [{"containerPort": 9898, "name": "http"}],
                        # 8Gi on 8GB nodes: the pod can never be scheduled
                        "resources": {
                            "requests": {"memory": "8Gi", "cpu": "100m"},
                            "limits": {"memory": "8Gi", "cpu": "200m"},
                        },
                        "readinessProbe": {"httpGet": {"path": "/readyz", "port": "http"}},
                        "livenessProbe": {"httpGet": {"path": "/healthz", "port": "http"}},
                    }
                ],
            },
        },
    }


def build(settings: StackSettings) -> Stack:
    access_token = settings.require_secret("pulumiAccessToken")
    org = settings.require("pulumiOrg")

    pulumi_secret = resource(
        "pulumi-access-token",
        SecretSpec(
            secret_name="pulumi-access-token",
            namespace=KAGENT_NAMESPACE,
            string_data={
                "authorization": interpolate("Bearer {}", access_token),
                "org": org,
            },
        ),
    )

    pulumi_mcp = resource(
        "pulumi-remote-mcp",
        CustomResourceSpec(
            api_version=KAGENT_API_VERSION,
            resource_kind="RemoteMCPServer",
            resource_name="pulumi-remote-mcp",
            namespace=KAGENT_NAMESPACE,
            spec={
                "url": PULUMI_MCP_URL,
                "description": "Pulumi Remote MCP for infrastructure management and Pulumi Neo",
                "protocol": "STREAMABLE_HTTP",
                "headersFrom": [
                    _secret_header("Authorization", "authorization"),
                    _secret_header("X-Pulumi-Org", "org"),
                ],
            },
        ),
    )

    pulumi_agent = resource(
        "pulumi-agent",
        CustomResourceSpec(
            api_version=KAGENT_API_VERSION,
            resource_kind="Agent",
            resource_name="pulumi-agent",
            namespace=KAGENT_NAMESPACE,
            spec={
                "description": "Infrastructure management agent using Pulumi Neo",
                "type": "Declarative",
                "declarative": {
                    "systemMessage": PULUMI_AGENT_PROMPT,
                    "modelConfig": "default-model-config",
                    "tools": [
                        {
                            "type": "McpServer",
                            "mcpServer": {
                                "name": Ref("pulumi-remote-mcp", "name"),
                                "kind": "RemoteMCPServer",
                                "apiGroup": "kagent.dev",
                                # Empty list selects every tool the server exposes
                                "toolNames": [],
                            },
                        }
                    ],
                    "a2aConfig": {
                        "skills": [
                            {
                                "id": "analyze-infrastructure",
                                "name": "Analyze Infrastructure",
                                "description": "Analyze Pulumi infrastructure code and current state",
                                "tags": ["pulumi", "infrastructure", "analysis"],
                                "examples": ["What infrastructure is deployed?", "Show me the current Pulumi stacks"],
                            },
                            {
                                "id": "create-fix-pr",
                                "name": "Create Fix PR",
                                "description": "Create a pull request to fix infrastructure issues using Pulumi Neo",
                                "tags": ["pulumi", "infrastructure", "pr", "fix"],
                                "examples": ["Create a PR to fix the memory request", "Fix the deployment configuration"],
                            },
                        ]
                    },
                },
            },
        ),
    )

    orchestrator = resource(
        "orchestrator-agent",
        CustomResourceSpec(
            api_version=KAGENT_API_VERSION,
            resource_kind="Agent",
            resource_name="orchestrator-agent",
            namespace=KAGENT_NAMESPACE,
            spec={
                "description": "Incident orchestrator that coordinates specialist agents to investigate and resolve issues",
                "type": "Declarative",
                "declarative": {
                    "systemMessage": ORCHESTRATOR_PROMPT,
                    "modelConfig": "default-model-config",
                    "tools": [
                        _agent_tool("k8s-agent"),
                        _agent_tool("observability-agent"),
                        _agent_tool(Ref("pulumi-agent", "name")),
                    ],
                    "a2aConfig": {
                        "skills": [
                            {
                                "id": "incident-response",
                                "name": "Incident Response",
                                "description": "Investigate and resolve infrastructure incidents by coordinating specialist agents",
                                "tags": ["incident", "orchestration", "troubleshooting"],
                                "examples": [
                                    "Why is my deployment failing?",
                                    "Investigate podinfo-faulty and fix it",
                                    "My pods are stuck in Pending state",
                                    "Debug why the application is not starting",
                                ],
                            }
                        ]
                    },
                },
            },
        ),
    )

    faulty = resource(
        "podinfo-faulty",
        DeploymentSpec(
            deployment_name="podinfo-faulty",
            namespace=APPS_NAMESPACE,
            spec=_faulty_deployment_spec(),
            labels={"app": "podinfo-faulty", "purpose": "workshop-demo"},
            annotations={
                "workshop.cfgmgmtcamp.org/bug": "Memory request too high for node capacity",
                "workshop.cfgmgmtcamp.org/expected-state": "Pending",
            },
            # Intentionally never becomes ready
            wait_ready=False,
            timeout=10,
        ),
    )

    return Stack(
        name="remediation",
        description="Pulumi Neo remediation agents and a deliberately broken workload",
        resources=[pulumi_secret, pulumi_mcp, pulumi_agent, orchestrator, faulty],
        outputs=[
            Output("pulumiAgentName", Ref("pulumi-agent", "name")),
            Output("orchestratorAgentName", Ref("orchestrator-agent", "name")),
            Output("faultyDeploymentName", Ref("podinfo-faulty", "name")),
            Output(
                "demoInstructions",
                DEMO_INSTRUCTIONS.format(
                    namespace="${podinfo-faulty.namespace}",
                    orchestrator="${orchestrator-agent.name}",
                ),
            ),
        ],
    )
