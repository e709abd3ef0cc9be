from opsmate.models.tool import ToolContext
from opsmate.tools.base import ToolAdapter


class Apache2Tool(ToolAdapter):
    """Apache httpd through apache2ctl, a2en*/a2dis* and systemctl."""

    invocation_tokens = (
        "apache2ctl",
        "apachectl",
        "apache2",
        "httpd",
        "a2ensite",
        "a2dissite",
        "a2enmod",
        "a2dismod",
    )
    keywords = {
        "apache": 0.8,
        "virtualhost": 0.6,
        "vhost": 0.6,
        "htaccess": 0.5,
    }
    error_families = ("apache2", "network")

    @property
    def name(self) -> str:
        return "apache2"

    def prompt_hints(self, context: ToolContext) -> str:
        return (
            "\nCommon Apache operations:\n"
            "- apache2ctl configtest: test configuration\n"
            "- apache2ctl -S: list virtual hosts\n"
            "- apache2ctl -M: list loaded modules\n"
            "- apache2ctl graceful: reload without dropping connections\n"
            "- a2ensite / a2dissite: enable or disable a site\n"
            "- systemctl status apache2: service status"
        )
