from opsmate.models.tool import ToolContext
from opsmate.tools.base import ToolAdapter


class DockerTool(ToolAdapter):
    """Containers, images and compose stacks through the docker CLI."""

    invocation_tokens = ("docker", "docker-compose")
    keywords = {
        "container": 0.3,
        "image": 0.3,
        "compose": 0.3,
        "dockerfile": 0.4,
        "volume": 0.2,
        "registry": 0.1,
        "network": 0.1,
    }
    error_families = ("docker",)

    @property
    def name(self) -> str:
        return "docker"

    def prompt_hints(self, context: ToolContext) -> str:
        return (
            f"- Docker Host: {context.docker_host or 'default'}\n\n"
            "Common Docker operations:\n"
            "- ps: list containers\n"
            "- images: list images\n"
            "- run: create and start container\n"
            "- exec: execute command in running container\n"
            "- logs: view container logs\n"
            "- stop/start/restart: container lifecycle\n"
            "- rm/rmi: remove containers/images\n"
            "- build: build image from Dockerfile\n"
            "- pull/push: registry operations"
        )
