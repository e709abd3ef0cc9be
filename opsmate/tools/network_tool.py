from opsmate.models.tool import ToolContext
from opsmate.tools.base import ToolAdapter


class NetworkTool(ToolAdapter):
    """Ports, connectivity, DNS and firewall diagnostics."""

    invocation_tokens = (
        "netstat",
        "ss",
        "lsof",
        "nslookup",
        "traceroute",
        "iptables",
        "ufw",
        "telnet",
        "nc",
        "ping",
        "curl",
    )
    keywords = {
        "firewall": 0.6,
        "dns": 0.5,
        "port": 0.4,
        "listening": 0.4,
        "ip address": 0.4,
        "connection": 0.3,
        "network": 0.3,
        "route": 0.3,
        "latency": 0.3,
    }
    error_families = ("network",)

    @property
    def name(self) -> str:
        return "network"

    def prompt_hints(self, context: ToolContext) -> str:
        return (
            "\nCommon network diagnostics:\n"
            "- ss -tlnp: listening TCP ports and their processes\n"
            "- lsof -i :<port>: who holds a port\n"
            "- curl -sv <url>: test an HTTP endpoint\n"
            "- nslookup <host>: DNS lookup\n"
            "- ip addr / ip route: interfaces and routes\n"
            "- iptables -L -n / ufw status: firewall rules\n"
            "Only suggest read-only commands unless asked to change something."
        )
