from opsmate.models.tool import ToolContext
from opsmate.tools.base import ToolAdapter


class KubectlTool(ToolAdapter):
    """Kubernetes cluster operations through kubectl."""

    invocation_tokens = ("kubectl",)
    keywords = {
        "pod": 0.3,
        "deployment": 0.3,
        "namespace": 0.3,
        "statefulset": 0.3,
        "daemonset": 0.3,
        "replicaset": 0.3,
        "configmap": 0.3,
        "ingress": 0.3,
        "kubernetes": 0.4,
        "k8s": 0.4,
        "cluster": 0.15,
        "service": 0.1,
        "node": 0.1,
    }
    error_families = ("kubectl",)

    @property
    def name(self) -> str:
        return "kubectl"

    def prompt_hints(self, context: ToolContext) -> str:
        return (
            f"- Cluster Context: {context.kube_context or 'current'}\n\n"
            "Common kubectl operations:\n"
            "- get: list resources (pods, deployments, services, nodes)\n"
            "- describe: detailed information about resources\n"
            "- logs: view pod logs\n"
            "- exec: execute command in container\n"
            "- apply: apply configuration\n"
            "- delete: remove resources\n"
            "- scale: scale replicas\n"
            "- port-forward: forward local port to pod"
        )
