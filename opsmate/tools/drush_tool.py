from opsmate.models.tool import ToolContext
from opsmate.tools.base import ToolAdapter


class DrushTool(ToolAdapter):
    """Drupal site administration through drush."""

    invocation_tokens = ("drush", "vendor/bin/drush")
    keywords = {"drupal": 0.6}
    # drush sqlq failures surface as MySQL errors
    error_families = ("drush", "sql")

    @property
    def name(self) -> str:
        return "drush"

    def prompt_hints(self, context: ToolContext) -> str:
        return (
            "\nCommon Drush operations:\n"
            "- sql:cli: open SQL CLI (pipe a .sql file with sql:cli < file)\n"
            "- sqlq: execute a single SQL query\n"
            "- sql:connect: show connection string\n"
            "- cr: clear cache\n"
            "- cex: export configuration\n"
            "- cim: import configuration\n"
            "- uli: generate login link"
        )
