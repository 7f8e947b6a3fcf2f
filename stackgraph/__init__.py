"""stackgraph: desired-state resource graphs for the agentic-AI Kubernetes workshop."""

__version__ = "0.1.0"
