from opsmate.models.tool import ToolContext
from opsmate.tools.base import ToolAdapter


class NginxTool(ToolAdapter):
    """The nginx web server: config tests, service lifecycle, logs."""

    invocation_tokens = ("nginx",)
    keywords = {
        "reverse proxy": 0.6,
        "web server": 0.5,
        "http server": 0.5,
        "server block": 0.5,
        "ssl certificate": 0.4,
        "port 80": 0.4,
        "port 443": 0.4,
    }
    # Bind failures are also port problems
    error_families = ("nginx", "network")

    @property
    def name(self) -> str:
        return "nginx"

    def prompt_hints(self, context: ToolContext) -> str:
        return (
            "\nCommon nginx operations:\n"
            "- nginx -t: test configuration\n"
            "- nginx -T: dump the full configuration\n"
            "- nginx -s reload: reload configuration without downtime\n"
            "- systemctl status nginx: service status\n"
            "- tail /var/log/nginx/error.log: recent errors\n"
            "Prefer reload over restart."
        )
